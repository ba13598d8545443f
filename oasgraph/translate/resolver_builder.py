"""Resolvers that turn GraphQL field resolution into API requests.

A resolver stores what it did (parameters, request, status code, response
headers and credentials) in a side table of the execution context, keyed by
its resolution path. Resolvers below it, such as link fields or operations
inside a viewer, read the closest state up their own path. Values returned
to GraphQL are never annotated, and concurrent executions never share state.
"""

from __future__ import annotations

import base64
import copy
import json
import logging
from collections.abc import Callable
from typing import Any
from urllib.parse import quote, urlencode

import requests
from graphql import GraphQLError, GraphQLResolveInfo
from graphql.pyutils import Path

from oasgraph.helpers.http import extract_path, get_header, join_url
from oasgraph.helpers.naming import (
    CaseStyle,
    desanitize_object_keys,
    sanitize,
    sanitize_object_keys,
    uncapitalize,
)
from oasgraph.translate.oas import get_base_url, is_json_content_type, resolve_maybe_ref, trim
from oasgraph.translate.runtime import resolve_callback_topic, resolve_link_parameter
from oasgraph.translate.types import (
    BuildContext,
    Operation,
    PassthroughState,
    PassthroughTable,
    ResolveContext,
    TargetType,
    ViewerSource,
)
from oasgraph.translate.warnings import AuthenticationError

logger = logging.getLogger(__name__)

Resolver = Callable[..., Any]

_TEXT_TARGETS = (TargetType.STRING, TargetType.ID)


# -- Side table ---------------------------------------------------------------


def passthrough_table(context: Any) -> PassthroughTable | None:
    """The side table of an execution context.

    A plain dict context keeps its table under ``"passthrough"``. Without a
    context there is no table: viewers then hand their credentials down as
    their value, and links can only read the parent response body.
    """
    if isinstance(context, ResolveContext):
        return context.passthrough
    if isinstance(context, dict):
        return context.setdefault("passthrough", PassthroughTable())
    return None


def path_key(path: Path | None) -> tuple[str | int, ...]:
    return tuple(path.as_list()) if path is not None else ()


def ancestor_state(table: PassthroughTable, path: Path | None) -> PassthroughState:
    """Copy of the state stored closest to *path*, walking up to the root."""
    key = path_key(path)
    while key:
        if key in table:
            return copy.deepcopy(table[key])
        key = key[:-1]
    return PassthroughState()


def store_state(info: GraphQLResolveInfo, state: PassthroughState) -> None:
    table = passthrough_table(info.context)
    if table is not None:
        table[path_key(info.path)] = state


# -- Request construction -----------------------------------------------------


def link_parameter_name(ctx: BuildContext, param_name: str) -> str:
    """Argument filled by a link parameter, dropping a location prefix like ``path.``."""
    name = param_name.split(".", 1)[1] if "." in param_name else param_name
    return sanitize(name, ctx.field_style)


def payload_argument_name(ctx: BuildContext, operation: Operation) -> str:
    """Name of the argument carrying the request body of an operation."""
    if operation.payload_definition is None:
        raise ValueError(f"Operation {operation.operation_string} has no request body")
    input_name = ctx.definition(operation.payload_definition).graphql_input_type_name
    return uncapitalize(sanitize(input_name, ctx.field_style))


def _stringify(value: Any) -> str:
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def extract_request_data_from_args(
    ctx: BuildContext, operation: Operation, args: dict[str, Any]
) -> tuple[str, dict[str, Any], dict[str, str]]:
    """Fill in path parameters and collect query parameters and headers.

    Returns (path, query, headers). Cookie parameters are joined into a
    single ``cookie`` header.
    """
    path = operation.path
    query: dict[str, Any] = {}
    headers: dict[str, str] = {}
    cookies: list[str] = []

    for param in operation.parameters:
        name = param.get("name")
        if not isinstance(name, str):
            continue
        sane_name = sanitize(name, ctx.field_style)
        if sane_name not in args or args[sane_name] is None:
            continue
        value = args[sane_name]

        location = param.get("in")
        if location == "path":
            path = path.replace("{" + name + "}", quote(_stringify(value), safe=""))
        elif location == "query":
            query[name] = value if isinstance(value, list) else _stringify(value)
        elif location == "header":
            headers[name] = _stringify(value)
        elif location == "cookie":
            cookies.append(f"{name}={_stringify(value)}")

    if cookies:
        headers["cookie"] = "; ".join(cookies)
    return path, query, headers


def _apply_parameter_defaults(
    ctx: BuildContext, operation: Operation, args: dict[str, Any]
) -> None:
    for param in operation.parameters:
        if not isinstance(param.get("name"), str):
            continue
        sane_name = sanitize(param["name"], ctx.field_style)
        if sane_name in args:
            continue
        schema = resolve_maybe_ref(param.get("schema"), operation.oas)
        if isinstance(schema, dict) and "default" in schema:
            args[sane_name] = schema["default"]


def _merge_missing(target: dict[str, Any], extra: dict[str, Any]) -> None:
    # Values from arguments and links win; header names are case-insensitive
    present = {k.lower() for k in target}
    for key, value in extra.items():
        if key.lower() not in present:
            target[key] = value


def _encode_payload(content_type: str, payload: Any) -> str | Any:
    if is_json_content_type(content_type):
        return json.dumps(payload)
    if "application/x-www-form-urlencoded" in content_type and isinstance(payload, dict):
        return urlencode(payload)
    return payload


def get_auth_options(
    ctx: BuildContext, operation: Operation, state: PassthroughState
) -> tuple[dict[str, str], dict[str, str], list[str]]:
    """Headers, query parameters and cookies authenticating a request.

    The first security requirement of the operation for which credentials
    were supplied (through a viewer) is used.
    """
    if not operation.security_requirements:
        return {}, {}, []

    requirement = next(
        (
            r
            for r in operation.security_requirements
            if sanitize(r, CaseStyle.CAMEL_CASE) in state.security
        ),
        None,
    )
    if requirement is None:
        raise AuthenticationError(
            "Missing information to authenticate API request.",
            details={"requirements": operation.security_requirements},
        )

    credentials = state.security[sanitize(requirement, CaseStyle.CAMEL_CASE)]
    definition = ctx.security[requirement].definition
    headers: dict[str, str] = {}
    query: dict[str, str] = {}
    cookies: list[str] = []

    if definition.get("type") == "apiKey":
        api_key = str(credentials.get("apiKey", ""))
        location, name = definition.get("in"), definition.get("name")
        if not isinstance(name, str):
            raise AuthenticationError(f"Security scheme '{requirement}' has no parameter name")
        if location == "header":
            headers[name] = api_key
        elif location == "query":
            query[name] = api_key
        elif location == "cookie":
            cookies.append(f"{name}={api_key}")
        else:
            raise AuthenticationError(f"Cannot send apiKey in '{location}'")
    elif definition.get("type") == "http" and definition.get("scheme") == "basic":
        raw = f"{credentials.get('username', '')}:{credentials.get('password', '')}"
        headers["Authorization"] = "Basic " + base64.b64encode(raw.encode()).decode()
    else:
        raise AuthenticationError(f"Cannot recognize security scheme '{requirement}'")

    return headers, query, cookies


def get_oauth_token(ctx: BuildContext, context: Any) -> Any:
    """OAuth token found in the execution context at ``token_json_path``."""
    token_json_path = ctx.options.token_json_path
    if not token_json_path:
        return None
    values = context.values if isinstance(context, ResolveContext) else context
    token = extract_path(values, token_json_path)
    if token is None:
        logger.warning("Could not extract OAuth token from context at '%s'", token_json_path)
    return token


# -- Response handling --------------------------------------------------------


def _error_body(response: requests.Response) -> Any:
    if is_json_content_type(get_header(response.headers, "content-type")):
        try:
            return response.json()
        except ValueError:
            pass
    return response.text


def _raise_for_status(ctx: BuildContext, operation: Operation, response: requests.Response) -> None:
    if response.status_code < 300:
        return
    body = _error_body(response)
    logger.debug("%s - %s", response.status_code, trim(body, 100))
    message = f"Could not invoke operation {operation.operation_string}"
    if not ctx.options.provide_error_extensions:
        raise GraphQLError(f"{message}: {response.status_code} - {trim(body, 500)}")
    raise GraphQLError(
        message,
        extensions={
            "method": operation.method.upper(),
            "path": operation.path,
            "statusCode": response.status_code,
            "responseHeaders": dict(response.headers),
            "responseBody": body,
        },
    )


def _parse_body(operation: Operation, response: requests.Response) -> Any:
    content_type = get_header(response.headers, "content-type")
    if content_type is None:
        if operation.response_content_type is None or not response.text:
            return None
        logger.warning(
            "Response of operation %s has no content-type header", operation.operation_string
        )
        return response.text
    if is_json_content_type(content_type):
        if not response.text:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise GraphQLError(
                f"Cannot parse JSON response of operation {operation.operation_string}",
                original_error=e,
            ) from e
    return response.text


def _uses_auto_limit(ctx: BuildContext, operation: Operation) -> bool:
    if not ctx.options.add_limit_argument:
        return False
    return not any(p.get("name") == "limit" for p in operation.parameters)


# -- Resolver factory ---------------------------------------------------------


def get_resolver(
    ctx: BuildContext,
    operation: Operation,
    *,
    args_from_link: dict[str, Any] | None = None,
) -> Resolver:
    """Create the resolver performing the API request of an operation.

    *args_from_link* maps parameter names (optionally prefixed with their
    location, e.g. ``path.id``) to link values; these are evaluated against
    the parent value and state and passed as arguments.
    """
    custom = ctx.options.custom_resolver_for(operation.title, operation.path, operation.method)
    if custom is not None:
        logger.debug("Using custom resolver for %s", operation.operation_string)
        return custom

    links = dict(args_from_link or {})
    options = ctx.options
    base_url = options.base_url or get_base_url(operation)
    payload_name = (
        payload_argument_name(ctx, operation) if operation.payload_definition is not None else None
    )
    auto_limit = _uses_auto_limit(ctx, operation)

    def resolve(source: Any, info: GraphQLResolveInfo, **args: Any) -> Any:
        table = passthrough_table(info.context)
        parent_state = ancestor_state(table, info.path.prev) if table is not None else None

        for param_name, value in links.items():
            args[link_parameter_name(ctx, param_name)] = resolve_link_parameter(
                value, source, parent_state, ctx.field_style
            )

        state = parent_state if parent_state is not None else PassthroughState()
        if isinstance(source, ViewerSource):
            for scheme, credentials in source.security.items():
                state.security.setdefault(scheme, credentials)

        _apply_parameter_defaults(ctx, operation, args)
        state.used_params.update(args)

        path, query, headers = extract_request_data_from_args(ctx, operation, args)
        url = join_url(base_url, path)
        headers["content-type"] = operation.payload_content_type or "application/json"
        headers["accept"] = operation.response_content_type or "application/json"

        data = None
        if payload_name is not None and args.get(payload_name) is not None:
            payload = desanitize_object_keys(args[payload_name], ctx.sane_map)
            state.used_payload = payload
            data = _encode_payload(headers["content-type"], payload)

        if callable(options.headers):
            extra = options.headers(
                operation.method,
                operation.path,
                operation.title,
                {"source": source, "args": args, "context": info.context, "info": info},
            )
            _merge_missing(headers, extra or {})
        elif options.headers:
            _merge_missing(headers, options.headers)
        if options.qs:
            _merge_missing(query, options.qs)

        auth_headers, auth_query, auth_cookies = get_auth_options(ctx, operation, state)
        headers.update(auth_headers)
        query.update(auth_query)
        if auth_cookies:
            headers["cookie"] = "; ".join(filter(None, [headers.get("cookie"), *auth_cookies]))

        token = get_oauth_token(ctx, info.context)
        if token is not None:
            if options.send_oauth_token_in_query:
                query["access_token"] = str(token)
            else:
                headers["Authorization"] = f"Bearer {token}"

        kwargs = dict(options.request_options or {})
        headers = {**(kwargs.pop("headers", None) or {}), **headers}
        query = {**(kwargs.pop("params", None) or {}), **query}

        method = operation.method.upper()
        state.used_request = {"method": method, "url": url, "headers": headers, "params": query}
        logger.debug("Call %s %s params:%s headers:%s", method, url, query, headers)
        response = ctx.session.request(method, url, params=query, headers=headers, data=data, **kwargs)

        _raise_for_status(ctx, operation, response)
        logger.debug("%s - %s", response.status_code, trim(response.text, 100))

        state.used_status_code = str(response.status_code)
        state.response_headers = dict(response.headers)
        result = sanitize_object_keys(_parse_body(operation, response), ctx.field_style)

        limit = args.get("limit")
        if auto_limit and limit is not None and isinstance(result, list):
            if limit < 0:
                raise GraphQLError("Auto-generated 'limit' argument must be greater than or equal to 0")
            result = result[:limit]

        store_state(info, state)
        return result

    return resolve


# -- Subscriptions ------------------------------------------------------------


def pubsub_of(context: Any) -> Any:
    if isinstance(context, ResolveContext):
        return context.pubsub
    if isinstance(context, dict):
        return context.get("pubsub")
    return None


def get_subscribe(ctx: BuildContext, operation: Operation) -> Resolver:
    """Create the resolver returning the event stream of a subscription.

    The stream is ``pubsub.subscribe(topic)`` of the execution context,
    where the topic is the callback URL filled in with the arguments.
    """
    custom = ctx.options.custom_subscription_resolver_for(
        operation.title, operation.path, operation.method, "subscribe"
    )
    if custom is not None:
        logger.debug("Using custom subscribe resolver for %s", operation.operation_string)
        return custom

    def subscribe(_source: Any, info: GraphQLResolveInfo, **args: Any) -> Any:
        topic = resolve_callback_topic(operation.path, args, ctx.field_style)
        pubsub = pubsub_of(info.context)
        if pubsub is None:
            raise GraphQLError(
                f"Cannot subscribe to '{topic}' without a pubsub in the execution context"
            )
        logger.debug("Subscribing to %s", topic)
        return pubsub.subscribe(topic)

    return subscribe


def get_publish_resolver(ctx: BuildContext, operation: Operation) -> Resolver:
    """Create the resolver turning one published payload into the field value."""
    custom = ctx.options.custom_subscription_resolver_for(
        operation.title, operation.path, operation.method, "resolve"
    )
    if custom is not None:
        logger.debug("Using custom publish resolver for %s", operation.operation_string)
        return custom

    as_text = ctx.definition(operation.response_definition).target_type in _TEXT_TARGETS

    def resolve(payload: Any, _info: GraphQLResolveInfo, **_args: Any) -> Any:
        if isinstance(payload, (bytes, bytearray)):
            payload = payload.decode()
        if isinstance(payload, str) and not as_text:
            try:
                payload = json.loads(payload)
            except ValueError as e:
                raise GraphQLError(
                    f"Cannot parse JSON payload of subscription {operation.operation_string}",
                    original_error=e,
                ) from e
        logger.debug("Message received on %s: %s", operation.operation_string, trim(payload, 100))
        return sanitize_object_keys(payload, ctx.field_style)

    return resolve
