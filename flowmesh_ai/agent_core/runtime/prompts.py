"""System prompt construction for function-calling conversations."""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence

from ..parameters import SPECIAL_KEYS
from ..paths import is_valid_path, root_property
from ..schemas.integration import PeekResultItem
from ..tools import ToolDefinition

DEFAULT_SYSTEM_PROMPT = """You are an AI assistant that can use tools to help users complete tasks.

Available tools:
{tool_descriptions}

{peekable_context}Instructions:
1. Use the tools to complete user requests instead of only explaining what could be done
2. Take missing parameter values from the user's message (file names, identifiers, descriptions)
3. Call the tool even if some information seems missing; parameters are resolved by the system
4. Pre-configured parameters are filled automatically
5. Finish with a clear response describing what you accomplished"""

CUSTOM_PROMPT_SUFFIX = """

Available tools:
{tool_descriptions}

{peekable_context}"""

MAX_PEEK_OPTIONS = 20


def describe_tools(tools: Sequence[ToolDefinition]) -> str:
    """One ``- name: description`` line per tool, plus its pre-configured settings."""
    if not tools:
        return "(no tools available)"
    lines: List[str] = []
    for tool in tools:
        lines.append(f"- {tool.name}: {tool.description}")
        node = tool.tool_executor.workflow_node
        authorized_roots = {root_property(p) for p in node.provided_by_agent if is_valid_path(p)}
        for key, value in node.integration_settings.items():
            if key in SPECIAL_KEYS or key in authorized_roots or value in (None, "", [], {}):
                continue
            lines.append(f"  Pre-configured: {key}={value}")
    return "\n".join(lines)


def describe_peekable_data(data: Dict[str, Dict[str, List[PeekResultItem]]]) -> str:
    if not data:
        return ""
    lines = ["Available data for selection:"]
    for tool_name, fields in data.items():
        for path, items in fields.items():
            labels = ", ".join(f'"{item.content or item.key or item.value}"' for item in items[:MAX_PEEK_OPTIONS])
            lines.append(f"For tool '{tool_name}', parameter '{path}', available options: {labels}")
    return "\n".join(lines) + "\n\n"


def build_system_prompt(
    tools: Sequence[ToolDefinition],
    peekable_data: Optional[Dict[str, Dict[str, List[PeekResultItem]]]] = None,
    custom_prompt: Optional[str] = None,
) -> str:
    tool_descriptions = describe_tools(tools)
    peekable_context = describe_peekable_data(peekable_data or {})
    if custom_prompt:
        suffix = CUSTOM_PROMPT_SUFFIX.format(tool_descriptions=tool_descriptions, peekable_context=peekable_context)
        return custom_prompt + suffix.rstrip()
    return DEFAULT_SYSTEM_PROMPT.format(tool_descriptions=tool_descriptions, peekable_context=peekable_context)
