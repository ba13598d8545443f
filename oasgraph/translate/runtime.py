"""Evaluation of OpenAPI link runtime expressions (``$response.body#/id`` etc.)."""

from __future__ import annotations

import re
from typing import Any

from oasgraph.helpers.http import get_header
from oasgraph.helpers.naming import CaseStyle, sanitize
from oasgraph.translate.types import PassthroughState
from oasgraph.translate.warnings import RuntimeExpressionError

_EMBEDDED = re.compile(r"\{([^{}]+)\}")


def is_runtime_expression(value: Any) -> bool:
    return isinstance(value, str) and value.startswith("$")


def _step(current: Any, token: str, style: CaseStyle) -> Any:
    if isinstance(current, list):
        return current[int(token)]
    if isinstance(current, dict):
        if token in current:
            return current[token]
        # Response bodies have sanitized keys while links use the raw names
        return current[sanitize(token, style)]
    raise KeyError(token)


def _from_pointer(pointer: str, value: Any, expression: str, style: CaseStyle) -> Any:
    current = value
    for token in pointer.lstrip("/").split("/") if pointer.strip("/") else []:
        try:
            current = _step(current, token.replace("~1", "/").replace("~0", "~"), style)
        except (KeyError, IndexError, ValueError) as e:
            raise RuntimeExpressionError(
                f"Cannot create link because '{expression}' does not point to a value",
                details={"expression": expression},
            ) from e
    return current


def _lookup(values: dict[str, Any], name: str, style: CaseStyle) -> Any:
    if name in values:
        return values[name]
    return values.get(sanitize(name, style))


def _evaluate(expression: str, source: Any, state: PassthroughState | None, style: CaseStyle) -> Any:
    if expression.startswith("$response.body"):
        _, _, pointer = expression.partition("#")
        return _from_pointer(pointer, source, expression, style)
    if state is None:
        # Everything else is read from the side table of the execution
        raise RuntimeExpressionError(
            f"Cannot evaluate '{expression}' without an execution context, "
            f"pass a ResolveContext as context_value",
            details={"expression": expression},
        )

    if expression == "$url":
        return state.used_request.get("url")
    if expression == "$method":
        return state.used_request.get("method")
    if expression == "$statusCode":
        return state.used_status_code

    for prefix in ("$request.", "$response."):
        if not expression.startswith(prefix):
            continue
        rest = expression[len(prefix):]
        kind, _, name = rest.partition(".")

        if prefix == "$request." and rest.startswith("body"):
            _, _, pointer = rest.partition("#")
            return _from_pointer(pointer, state.used_payload, expression, style)
        if kind in ("query", "path") and name:
            return _lookup(state.used_params, name, style)
        if kind == "header" and name:
            if prefix == "$request.":
                headers = state.used_request.get("headers") or {}
            else:
                headers = state.response_headers
            return get_header(headers, name)

    raise RuntimeExpressionError(
        f"Cannot create link because '{expression}' is an invalid runtime expression",
        details={"expression": expression},
    )


def resolve_link_parameter(
    value: Any,
    source: Any,
    state: PassthroughState | None,
    style: CaseStyle = CaseStyle.CAMEL_CASE,
) -> Any:
    """Value of one link parameter.

    *value* is a runtime expression, a string embedding expressions in
    braces (``"{$response.body#/id}-x"``) or a constant. *source* is the
    value of the parent field, i.e. the response body of the parent
    operation, whose keys were sanitized in *style*. Without *state* only
    ``$response.body`` expressions can be evaluated.
    """
    if is_runtime_expression(value):
        return _evaluate(value, source, state, style)
    if isinstance(value, str) and _EMBEDDED.search(value):
        return _EMBEDDED.sub(lambda m: str(_evaluate(m.group(1), source, state, style)), value)
    return value


def callback_expressions(url: str) -> list[str]:
    """Runtime expressions of a callback URL, e.g. ``{$request.query.id}/events``."""
    if is_runtime_expression(url) and not _EMBEDDED.search(url):
        return [url]
    return [e for e in _EMBEDDED.findall(url) if is_runtime_expression(e)]


def callback_argument_name(expression: str) -> str:
    """Raw name of the subscription argument filling one callback expression.

    >>> callback_argument_name("$request.path.user_id")
    'user_id'
    >>> callback_argument_name("$request.body#/hook/url")
    'hook/url'
    """
    _, _, pointer = expression.partition("#")
    if pointer.strip("/"):
        return pointer.strip("/")
    return expression.rsplit(".", 1)[-1].lstrip("$")


def resolve_callback_topic(url: str, args: dict[str, Any], style: CaseStyle) -> str:
    """The callback URL with every expression replaced by its argument value."""

    def value_of(expression: str) -> str:
        return str(_lookup(args, callback_argument_name(expression), style))

    if is_runtime_expression(url) and not _EMBEDDED.search(url):
        return value_of(url)
    return _EMBEDDED.sub(
        lambda m: value_of(m.group(1)) if is_runtime_expression(m.group(1)) else m.group(0), url
    )
