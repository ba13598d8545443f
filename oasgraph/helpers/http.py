"""HTTP utilities shared by resolvers and link evaluation."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any


def get_header(headers: Mapping[str, str], name: str) -> str | None:
    """Get a header value by name (case-insensitive, first match wins)."""
    name_lower = name.lower()
    for key, value in headers.items():
        if key.lower() == name_lower:
            return value
    return None


def extract_path(data: Any, dot_path: str) -> Any:
    """Traverse a dict with dot-notation: 'user.token' -> data["user"]["token"].

    A leading ``$.`` is ignored, so JSONPath-like inputs such as
    ``$.user.token`` work too.
    """
    if not dot_path:
        return None
    if dot_path.startswith("$."):
        dot_path = dot_path[2:]
    current: Any = data
    for key in dot_path.split("."):
        if isinstance(current, dict):
            current = current.get(key)
        else:
            return None
    return current


def join_url(base_url: str, path: str) -> str:
    """Join a base URL and an operation path without doubling the slash."""
    return f"{base_url.rstrip('/')}/{path.lstrip('/')}"
