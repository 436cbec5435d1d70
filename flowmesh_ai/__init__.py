"""flowmesh-ai: function-calling agent core for workflow automation nodes."""

__version__ = "0.1.0"
