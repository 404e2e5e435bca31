"""Role normalization for messages entering from upstream frameworks.

Upstream agent frameworks hand back messages in several shapes: objects with a
``_getType()`` or ``get_type()`` method, objects or dicts carrying ``type`` or
``role``, or bare classes such as ``HumanMessage``. This module is the only
place that inspects those shapes; everything downstream sees ``RoleMessage``.

Resolution order:
1. ``_getType()`` / ``get_type()`` callable
2. ``type`` attribute or key
3. ``role`` attribute or key
4. class name
"""

from collections.abc import Iterable
from typing import Any

from .data_structures import RoleMessage

_ROLE_ALIASES = {
    "human": "user",
    "user": "user",
    "ai": "assistant",
    "assistant": "assistant",
    "system": "system",
    "tool": "tool",
    "function": "tool",
}

_CLASS_ROLES = {
    "HumanMessage": "user",
    "HumanMessageChunk": "user",
    "AIMessage": "assistant",
    "AIMessageChunk": "assistant",
    "SystemMessage": "system",
    "ToolMessage": "tool",
    "FunctionMessage": "tool",
}


def _field(obj: Any, name: str) -> Any:
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


def _raw_type(obj: Any) -> str | None:
    for method_name in ("_getType", "get_type"):
        method = _field(obj, method_name)
        if callable(method):
            value = method()
            if isinstance(value, str) and value:
                return value

    for name in ("type", "role"):
        value = _field(obj, name)
        if isinstance(value, str) and value:
            return value

    if not isinstance(obj, dict):
        return _CLASS_ROLES.get(type(obj).__name__)
    return None


def _content_text(content: Any) -> str:
    """Flatten string or multi-part content into plain text."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and part.get("type") == "text":
                parts.append(str(part.get("text", "")))
        return "".join(parts)
    return ""


def resolve_role(obj: Any) -> str | None:
    """Resolve the canonical role of a message-like object.

    Returns:
        One of ``user``, ``assistant``, ``system``, ``tool`` or None when the
        shape is not recognized
    """
    raw = _raw_type(obj)
    if raw is None:
        return None
    return _ROLE_ALIASES.get(raw.lower(), _CLASS_ROLES.get(raw))


def normalize_message(obj: Any) -> RoleMessage | None:
    """Normalize one message into a user/assistant turn.

    System, tool and unrecognized messages, as well as messages whose content
    is blank, are dropped (None).
    """
    role = resolve_role(obj)
    if role not in ("user", "assistant"):
        return None

    content = _content_text(_field(obj, "content"))
    if not content.strip():
        return None
    return RoleMessage(role=role, content=content)


def normalize_messages(objs: Iterable[Any]) -> list[RoleMessage]:
    """Normalize a sequence of messages, dropping the unrecognized ones."""
    return [m for m in (normalize_message(obj) for obj in objs) if m is not None]
