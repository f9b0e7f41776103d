"""
Role and content accessors for conversation messages.

Processors accept LangChain messages as well as plain ``{"role", "content"}``
dicts, so every stage reads messages through these helpers instead of
touching attributes directly.
"""

from typing import Any

from langchain_core.messages import BaseMessage

# Roles every content-classifying stage keeps unconditionally
EXEMPT_ROLES = frozenset({"tool", "system"})

# LangChain message ``type`` → conversation role
_TYPE_TO_ROLE = {
    "human": "user",
    "HumanMessageChunk": "user",
    "ai": "assistant",
    "AIMessageChunk": "assistant",
    "system": "system",
    "SystemMessageChunk": "system",
    "tool": "tool",
    "ToolMessageChunk": "tool",
    "function": "tool",
    "FunctionMessageChunk": "tool",
}


def message_role(msg: Any) -> str:
    """Return the conversation role of a message ("" if unknown)."""
    if isinstance(msg, BaseMessage):
        role = _TYPE_TO_ROLE.get(msg.type)
        if role:
            return role
        # ChatMessage carries an arbitrary role string
        return str(getattr(msg, "role", "") or "")
    if isinstance(msg, dict):
        return str(msg.get("role", "") or "")
    return str(getattr(msg, "role", "") or "")


def message_content(msg: Any) -> Any:
    """Return the raw content of a message (string, list of parts, or None)."""
    if isinstance(msg, dict):
        return msg.get("content")
    return getattr(msg, "content", None)


def is_exempt(msg: Any) -> bool:
    """Tool and system messages are structural, never classified."""
    return message_role(msg) in EXEMPT_ROLES
