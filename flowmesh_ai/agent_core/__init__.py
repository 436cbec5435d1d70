"""Function-calling agent core.

The agent core drives a bounded-round loop between a language model and the
integration tools bound to an agent node:

- ``paths``: dotted/indexed property paths over nested settings trees.
- ``parameters``: the trust boundary merging AI arguments with operator presets.
- ``tools``: tool discovery, JSON-Schema generation and tool call execution.
- ``memory``: prior-conversation context for prompts and conversation records.
- ``state``: conversation state persistence.
- ``events``: node execution events for execution history views.
- ``runtime``: the function-calling conversation manager.
"""
