"""GraphQL naming utilities: sanitization and its best-effort inverse."""

from __future__ import annotations

import re
from collections.abc import Callable
from enum import Enum
from typing import Any

_PART_SEPARATOR = re.compile(r"[^a-zA-Z0-9]")
_ALL_CAPS_SEPARATOR = re.compile(r"[^a-zA-Z0-9_]")
_ILLEGAL_CHARS = re.compile(r"[^a-zA-Z0-9_]")


class CaseStyle(Enum):
    SIMPLE = "simple"  # only strip illegal characters
    PASCAL_CASE = "PascalCase"  # type names
    CAMEL_CASE = "camelCase"  # field and argument names
    ALL_CAPS = "ALL_CAPS"  # enum values


def capitalize(s: str) -> str:
    return s[:1].upper() + s[1:]


def uncapitalize(s: str) -> str:
    return s[:1].lower() + s[1:]


def sanitize(raw: str, style: CaseStyle) -> str:
    """Turn an arbitrary string into a legal GraphQL name in the given style.

    Never returns an empty string: a result that would be empty or start
    with a digit is prefixed with ``_``.

    >>> sanitize("get:/users/{user_id}", CaseStyle.CAMEL_CASE)
    'getUsersUserId'
    >>> sanitize("in-stock", CaseStyle.ALL_CAPS)
    'IN_STOCK'
    """
    if style is CaseStyle.SIMPLE:
        sane = _ILLEGAL_CHARS.sub("", raw)
    elif style is CaseStyle.ALL_CAPS:
        parts = [p for p in _ALL_CAPS_SEPARATOR.split(raw) if p]
        sane = "_".join(parts).upper()
    else:
        first, *rest = _PART_SEPARATOR.split(raw)
        sane = first + "".join(capitalize(p) for p in rest)
        if style is CaseStyle.PASCAL_CASE:
            sane = capitalize(sane)
        else:
            sane = uncapitalize(sane)

    if not sane or sane[0].isdigit():
        sane = "_" + sane
    return sane


def store_sane_name(
    sane: str,
    raw: str,
    mapping: dict[str, str],
    on_collision: Callable[[str, str, str], None] | None = None,
) -> str:
    """Record that *sane* stands for *raw*; the last write wins.

    *on_collision* is called with ``(sane, previous_raw, raw)`` when a
    different raw string was already stored under the same sane name.
    """
    if sane in mapping and mapping[sane] != raw and on_collision is not None:
        on_collision(sane, mapping[sane], raw)
    mapping[sane] = raw
    return sane


def sanitize_object_keys(value: Any, style: CaseStyle = CaseStyle.CAMEL_CASE) -> Any:
    """Recursively sanitize the keys of every object inside a JSON value."""
    if isinstance(value, list):
        return [sanitize_object_keys(item, style) for item in value]
    if isinstance(value, dict):
        return {
            sanitize(str(k), style): sanitize_object_keys(v, style)
            for k, v in value.items()
        }
    return value


def desanitize_object_keys(value: Any, mapping: dict[str, str]) -> Any:
    """Map sanitized keys back to their raw form. Unknown keys are kept as is."""
    if isinstance(value, list):
        return [desanitize_object_keys(item, mapping) for item in value]
    if isinstance(value, dict):
        return {
            mapping.get(k, k): desanitize_object_keys(v, mapping)
            for k, v in value.items()
        }
    return value


def operation_identifier_of(method: str, path: str) -> str:
    """Identifier of an operation that has no explicit ``operationId``.

    Used both when extracting operations and when decoding a link's
    ``operationRef``, so both sides always agree.
    """
    return sanitize(f"{method.lower()}:{path}", CaseStyle.CAMEL_CASE)
