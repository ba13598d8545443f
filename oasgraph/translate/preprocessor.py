"""Preprocessing: turn OpenAPI documents into operations and data definitions.

Every distinct schema shape becomes one DataDefinition stored in the
BuildContext arena. Definitions refer to each other by handle, so recursive
schemas form a graph instead of an endless unrolling. A schema is looked up
by (preferred name, schema content) before a new definition is created.
"""

from __future__ import annotations

import logging
from typing import Any, cast

from oasgraph.formats.options import Options
from oasgraph.helpers.naming import (
    CaseStyle,
    capitalize,
    operation_identifier_of,
    sanitize,
)
from oasgraph.translate.oas import (
    count_operations,
    format_operation_string,
    get_links,
    get_parameters,
    get_request_schema_and_names,
    get_response_schema_and_names,
    get_response_status_code,
    get_callbacks,
    get_schema_target_type,
    get_security_requirements,
    get_servers,
    is_operation,
    ref_name,
    resolve_maybe_ref,
)
from oasgraph.translate.runtime import callback_argument_name, callback_expressions
from oasgraph.translate.types import (
    BuildContext,
    DataDefinition,
    Operation,
    ProcessedSecurityScheme,
    TargetType,
)
from oasgraph.translate.warnings import UnresolvableReferenceError

logger = logging.getLogger(__name__)

PLACEHOLDER_NAME = "PlaceholderName"

# Target types that become named GraphQL types and therefore reserve a name
_NAMED_TARGET_TYPES = frozenset({
    TargetType.OBJECT,
    TargetType.ANY_OF,
    TargetType.UNION,
    TargetType.ENUM,
})


def preprocess_oas(oass: list[dict[str, Any]], options: Options) -> BuildContext:
    """Extract operations, security schemes and data definitions from documents."""
    ctx = BuildContext(options=options, oass=list(oass))
    if options.session is not None:
        ctx.session = options.session

    for oas in oass:
        total, query, mutation = count_operations(oas)
        ctx.report.num_ops += total
        ctx.report.num_ops_query += query
        ctx.report.num_ops_mutation += mutation

        for key, scheme in get_processed_security_schemes(ctx, oas).items():
            if key in ctx.security:
                ctx.warn(
                    "DUPLICATE_SECURITY_SCHEME",
                    f"Multiple documents share the security scheme '{key}'",
                    path=["components", "securitySchemes", key],
                )
                continue
            ctx.security[key] = scheme

        for path, path_item in (oas.get("paths") or {}).items():
            for method in path_item:
                if not is_operation(method):
                    continue
                _add_operation(ctx, oas, path, method)
                if options.create_subscriptions_from_callbacks:
                    _add_subscriptions(ctx, oas, path, method)

    logger.debug(
        "Preprocessed %d operations and %d subscriptions into %d data definitions",
        len(ctx.operations),
        len(ctx.subscriptions),
        len(ctx.definitions),
    )
    return ctx


def _add_operation(ctx: BuildContext, oas: dict[str, Any], path: str, method: str) -> None:
    title = oas.get("info", {}).get("title", "")
    operation_string = format_operation_string(method, path, title if len(ctx.oass) > 1 else None)
    location = ["paths", path, method]

    endpoint = oas["paths"][path][method]
    operation_id = endpoint.get("operationId") or operation_identifier_of(method, path)
    if operation_id in ctx.operations:
        ctx.warn(
            "DUPLICATE_OPERATIONID",
            f"Multiple operations have the operationId '{operation_id}'; "
            f"operation {operation_string} is ignored",
            path=location,
        )
        return

    try:
        operation = process_operation(ctx, oas, path, method, operation_id, operation_string)
    except UnresolvableReferenceError as e:
        ctx.warn("INVALID_OAS", f"Operation {operation_string}: {e}", path=location)
        return

    if operation is not None:
        ctx.operations[operation_id] = operation


def process_operation(
    ctx: BuildContext,
    oas: dict[str, Any],
    path: str,
    method: str,
    operation_id: str,
    operation_string: str,
) -> Operation | None:
    """Build the Operation for one path and method, or None if it has no response schema."""
    endpoint = oas["paths"][path][method]
    title = oas.get("info", {}).get("title", "")
    location = ["paths", path, method]

    description = endpoint.get("description") or endpoint.get("summary") or ""
    if ctx.options.equivalent_to_messages:
        if description:
            description += "\n\n"
        description += f"Equivalent to {operation_string}"

    status_code, success_codes = get_response_status_code(oas, path, method)
    if len(success_codes) > 1:
        ctx.warn(
            "MULTIPLE_RESPONSES",
            f"Operation {operation_string} has multiple successful responses {success_codes}",
            mitigation_addendum=f"The response '{status_code}' is used.",
            path=location,
        )

    response_content_type, response_schema, response_names = get_response_schema_and_names(
        oas, path, method, status_code, ctx.options.fill_empty_responses
    )
    if response_schema is None:
        ctx.warn(
            "MISSING_RESPONSE_SCHEMA",
            f"Operation {operation_string} has no (valid) response schema",
            mitigation_addendum="Enable 'fill_empty_responses' to add a placeholder schema.",
            path=location,
        )
        return None

    links = get_links(oas, path, method, status_code)
    response_definition = create_or_reuse_data_def(
        ctx, response_schema, response_names, oas, links=links, path=location
    )

    payload_content_type, payload_schema, payload_names, payload_required = (
        get_request_schema_and_names(oas, path, method)
    )
    payload_definition = None
    if payload_schema is not None:
        payload_definition = create_or_reuse_data_def(
            ctx, payload_schema, payload_names, oas, path=location + ["requestBody"]
        ).handle

    security_requirements = (
        get_security_requirements(oas, path, method, ctx.security) if ctx.options.viewer else []
    )

    selected = ctx.options.selected_operation_kind(title, path, method)
    is_mutation = selected == "mutation" if selected else method != "get"

    return Operation(
        operation_id=operation_id,
        operation_string=operation_string,
        description=description,
        path=path,
        method=method,
        response_definition=response_definition.handle,
        response_content_type=response_content_type,
        status_code=status_code,
        payload_definition=payload_definition,
        payload_content_type=payload_content_type,
        payload_required=payload_required,
        parameters=get_parameters(oas, path, method),
        security_requirements=security_requirements,
        servers=get_servers(oas, path, method),
        tags=list(endpoint.get("tags") or []),
        in_viewer=bool(security_requirements) and ctx.options.viewer,
        is_mutation=is_mutation,
        oas=oas,
    )


def _add_subscriptions(ctx: BuildContext, oas: dict[str, Any], path: str, method: str) -> None:
    location = ["paths", path, method, "callbacks"]
    try:
        callbacks = get_callbacks(oas, path, method)
    except UnresolvableReferenceError as e:
        ctx.warn("INVALID_OAS", f"Callbacks of operation {method.upper()} {path}: {e}", path=location)
        return

    for name, url, path_item in callbacks:
        methods = [m for m in path_item if is_operation(m)]
        if not methods:
            continue
        ctx.report.num_ops_subscription += 1
        if len(methods) > 1:
            ctx.warn(
                "CALLBACKS_MULTIPLE_OPERATION_OBJECTS",
                f"Callback '{name}' at '{url}' has the operations {methods}",
                mitigation_addendum=f"The '{methods[0]}' operation is used.",
                path=location + [name, url],
            )

        endpoint = path_item[methods[0]]
        operation_id = endpoint.get("operationId") or name
        if operation_id in ctx.subscriptions:
            ctx.warn(
                "DUPLICATE_OPERATIONID",
                f"Multiple callbacks have the operationId '{operation_id}'; "
                f"callback '{name}' at '{url}' is ignored",
                path=location + [name, url],
            )
            continue

        try:
            subscription = process_subscription(ctx, oas, name, url, methods[0], endpoint, operation_id)
        except UnresolvableReferenceError as e:
            ctx.warn("INVALID_OAS", f"Callback '{name}' at '{url}': {e}", path=location + [name, url])
            continue
        if subscription is not None:
            ctx.subscriptions[operation_id] = subscription


def process_subscription(
    ctx: BuildContext,
    oas: dict[str, Any],
    name: str,
    url: str,
    method: str,
    endpoint: dict[str, Any],
    operation_id: str,
) -> Operation | None:
    """Build the subscription for one callback, or None if it has no request body schema.

    Subscribers receive what the API would send to the callback, so the
    callback request body is the response of the subscription. Every
    runtime expression of the callback URL becomes a required argument;
    together they name the topic to listen to.
    """
    title = oas.get("info", {}).get("title", "")
    operation_string = format_operation_string(method, url, title if len(ctx.oass) > 1 else None)
    location = ["callbacks", name, url, method]

    description = endpoint.get("description") or endpoint.get("summary") or ""
    if ctx.options.equivalent_to_messages:
        if description:
            description += "\n\n"
        description += f"Equivalent to {operation_string}"

    content_type, schema, names, _ = get_request_schema_and_names(oas, url, method, endpoint)
    if schema is None:
        ctx.warn(
            "MISSING_RESPONSE_SCHEMA",
            f"Callback {operation_string} has no (valid) request body schema",
            path=location,
        )
        return None
    if content_type == "application/json":
        names["from_path"] = name
    response_definition = create_or_reuse_data_def(ctx, schema, names, oas, path=location)

    parameters: list[dict[str, Any]] = []
    for expression in callback_expressions(url):
        raw = callback_argument_name(expression)
        if any(p["name"] == raw for p in parameters):
            continue
        parameters.append(
            {
                "name": raw,
                "in": "path",
                "required": True,
                "schema": {"type": "string"},
                "description": f"Value of '{expression}' in the callback URL",
            }
        )

    return Operation(
        operation_id=operation_id,
        operation_string=operation_string,
        description=description,
        path=url,
        method=method,
        response_definition=response_definition.handle,
        response_content_type=content_type,
        parameters=parameters,
        tags=list(endpoint.get("tags") or []),
        is_subscription=True,
        oas=oas,
    )


# -- Security schemes ---------------------------------------------------------


def _credentials_schema(description: str, credentials: list[str]) -> dict[str, Any]:
    return {
        "type": "object",
        "description": description,
        "properties": {name: {"type": "string"} for name in credentials},
        "required": list(credentials),
    }


def get_processed_security_schemes(
    ctx: BuildContext, oas: dict[str, Any]
) -> dict[str, ProcessedSecurityScheme]:
    """Security schemes of a document that viewers can authenticate with."""
    result: dict[str, ProcessedSecurityScheme] = {}
    title = oas.get("info", {}).get("title", "")
    schemes = (oas.get("components") or {}).get("securitySchemes") or {}

    for key, raw in schemes.items():
        definition = cast(dict[str, Any], resolve_maybe_ref(raw, oas))
        scheme_type = definition.get("type")
        location = ["components", "securitySchemes", key]

        if scheme_type == "apiKey":
            credentials = ["apiKey"]
            description = f"API key credentials for the security protocol '{key}'"
        elif scheme_type == "http" and definition.get("scheme") == "basic":
            credentials = ["username", "password"]
            description = f"Basic auth credentials for security protocol '{key}'"
        elif scheme_type == "oauth2":
            ctx.warn(
                "OAUTH_SECURITY_SCHEME",
                f"OAuth security scheme found in OAS '{title}'. "
                f"OAuth support is provided using the 'token_json_path' option",
                path=location,
            )
            continue
        else:
            detail = f"type '{scheme_type}'"
            if scheme_type == "http":
                detail += f" and scheme '{definition.get('scheme')}'"
            ctx.warn(
                "UNSUPPORTED_HTTP_SECURITY_SCHEME",
                f"Currently unsupported authentication protocol {detail} in OAS '{title}'",
                path=location,
            )
            continue

        if len(ctx.oass) > 1:
            description += f" in {title}"
        result[key] = ProcessedSecurityScheme(
            raw_name=key,
            definition=definition,
            credentials=credentials,
            schema=_credentials_schema(description, credentials),
            oas=oas,
        )
    return result


# -- Data definitions ---------------------------------------------------------


def _type_name(ctx: BuildContext, raw: str) -> str:
    if ctx.options.simple_names:
        return capitalize(sanitize(raw, CaseStyle.SIMPLE))
    return sanitize(raw, CaseStyle.PASCAL_CASE)


def _preferred_name(ctx: BuildContext, names: dict[str, str], schema: dict[str, Any]) -> str:
    """Best possible name, ignoring collisions."""
    for candidate in (
        names.get("preferred"),
        schema.get("x-graphql-type-name"),
        names.get("from_ref"),
        names.get("from_schema"),
        names.get("from_path"),
    ):
        if isinstance(candidate, str) and candidate:
            return _type_name(ctx, candidate)
    return PLACEHOLDER_NAME


def _choose_type_name(ctx: BuildContext, names: dict[str, str], preferred_name: str) -> str:
    """First naming hint not yet used, or the preferred name with a numeric suffix."""
    candidates = [names.get("preferred"), names.get("from_ref"), names.get("from_schema"), names.get("from_path")]
    for candidate in candidates:
        if not candidate:
            continue
        name = _type_name(ctx, candidate)
        if name not in ctx.used_names and f"{name}Input" not in ctx.used_names:
            return name

    suffix = 2
    while (
        f"{preferred_name}{suffix}" in ctx.used_names
        or f"{preferred_name}{suffix}Input" in ctx.used_names
    ):
        suffix += 1
    return f"{preferred_name}{suffix}"


def collapse_all_of(
    ctx: BuildContext,
    schema: dict[str, Any],
    oas: dict[str, Any],
    path: list[str] | None = None,
) -> dict[str, Any]:
    """Merge ``allOf`` members into one schema.

    Properties, required names and ``oneOf``/``anyOf`` members are unioned.
    The first occurrence of a conflicting property is kept.
    """
    if not isinstance(schema.get("allOf"), list):
        return schema

    collapsed = {k: v for k, v in schema.items() if k != "allOf"}
    properties: dict[str, Any] = dict(collapsed.get("properties") or {})
    required: list[str] = list(collapsed.get("required") or [])

    for raw_member in schema["allOf"]:
        member = resolve_maybe_ref(raw_member, oas)
        if not isinstance(member, dict):
            continue
        member = collapse_all_of(ctx, cast(dict[str, Any], member), oas, path)

        if "type" in member:
            if "type" not in collapsed:
                collapsed["type"] = member["type"]
            elif collapsed["type"] != member["type"]:
                ctx.warn(
                    "ALLOF_TYPE_MISMATCH",
                    f"allOf member of type '{member['type']}' conflicts with type '{collapsed['type']}'",
                    path=path,
                )

        for key, prop in (member.get("properties") or {}).items():
            if key not in properties:
                properties[key] = prop
            elif properties[key] != prop:
                ctx.warn(
                    "DUPLICATE_FIELD_NAME",
                    f"Property '{key}' is defined differently by multiple allOf members",
                    path=path,
                )

        for name in member.get("required") or []:
            if name not in required:
                required.append(name)

        for keyword in ("oneOf", "anyOf"):
            if isinstance(member.get(keyword), list):
                merged = list(collapsed.get(keyword) or [])
                merged.extend(m for m in member[keyword] if m not in merged)
                collapsed[keyword] = merged

        for key, value in member.items():
            if key not in ("type", "properties", "required", "oneOf", "anyOf"):
                collapsed.setdefault(key, value)

    if properties:
        collapsed["properties"] = properties
    if required:
        collapsed["required"] = required
    return collapsed


def _merge_links(
    ctx: BuildContext,
    definition: DataDefinition,
    links: dict[str, dict[str, Any]],
    path: list[str] | None,
) -> None:
    for key, link in links.items():
        existing = definition.links.get(key)
        if existing is None:
            definition.links[key] = link
        elif existing != link:
            ctx.warn(
                "DUPLICATE_LINK_KEY",
                f"Multiple operations with the same response body share the "
                f"link key '{key}' with different content",
                path=path,
            )


def create_or_reuse_data_def(
    ctx: BuildContext,
    schema: Any,
    names: dict[str, str],
    oas: dict[str, Any],
    *,
    links: dict[str, dict[str, Any]] | None = None,
    path: list[str] | None = None,
) -> DataDefinition:
    """Return the definition of a schema, creating it (and its children) if new."""
    names = dict(names)
    if isinstance(schema, dict) and isinstance(schema.get("$ref"), str):
        names["from_ref"] = ref_name(schema["$ref"])
        try:
            schema = resolve_maybe_ref(schema, oas)
        except UnresolvableReferenceError as e:
            ctx.warn("UNRESOLVABLE_REFERENCE", str(e), path=path)
            schema = {}

    if not isinstance(schema, dict):
        ctx.warn("INVALID_SCHEMA", f"Schema '{schema!r}' is not an object", path=path)
        schema = {}
    schema = collapse_all_of(ctx, cast(dict[str, Any], schema), oas, path)
    target_type = get_schema_target_type(schema) or TargetType.JSON
    if isinstance(schema.get("title"), str) and "from_schema" not in names:
        names["from_schema"] = schema["title"]

    preferred_name = _preferred_name(ctx, names, schema)
    sane_links = {sanitize(k, CaseStyle.CAMEL_CASE): v for k, v in (links or {}).items()}

    for existing in ctx.definitions:
        if existing.preferred_name == preferred_name and existing.schema == schema:
            _merge_links(ctx, existing, sane_links, path)
            return existing

    if target_type in _NAMED_TARGET_TYPES:
        name = _choose_type_name(ctx, names, preferred_name)
        ctx.used_names.update({name, f"{name}Input"})
    else:
        name = preferred_name

    required: list[str] = []
    for prop_name in schema.get("required") or []:
        if prop_name not in required:
            required.append(prop_name)

    definition = DataDefinition(
        handle=len(ctx.definitions),
        preferred_name=preferred_name,
        schema=schema,
        target_type=target_type,
        graphql_type_name=name,
        graphql_input_type_name=f"{name}Input",
        required=required,
        links=sane_links,
    )
    # Registered before recursing so self references find it
    ctx.definitions.append(definition)
    _create_sub_definitions(ctx, definition, oas, path)
    return definition


def _create_sub_definitions(
    ctx: BuildContext,
    definition: DataDefinition,
    oas: dict[str, Any],
    path: list[str] | None,
) -> None:
    schema = definition.schema
    name = definition.graphql_type_name

    if definition.target_type is TargetType.LIST:
        items = schema.get("items")
        if not isinstance(items, dict):
            ctx.warn("INVALID_SCHEMA", f"List schema '{name}' has no usable items", path=path)
            items = {}
        definition.sub_definitions = create_or_reuse_data_def(
            ctx, items, {"from_ref": f"{name}ListItem"}, oas, path=path
        ).handle

    elif definition.target_type is TargetType.OBJECT:
        definition.sub_definitions = _property_definitions(
            ctx, schema.get("properties") or {}, oas, path
        )

    elif definition.target_type is TargetType.ANY_OF:
        definition.sub_definitions = _any_of_definitions(ctx, definition, oas, path)

    elif definition.target_type is TargetType.UNION:
        members: list[int] = []
        for member in schema["oneOf"]:
            names = {"from_path": f"{name}Member"}
            members.append(create_or_reuse_data_def(ctx, member, names, oas, path=path).handle)
        definition.sub_definitions = members


def _property_definitions(
    ctx: BuildContext,
    properties: dict[str, Any],
    oas: dict[str, Any],
    path: list[str] | None,
) -> dict[str, int]:
    result: dict[str, int] = {}
    for key, prop in properties.items():
        result[key] = create_or_reuse_data_def(ctx, prop, {"from_ref": key}, oas, path=path).handle
    return result


def _any_of_definitions(
    ctx: BuildContext,
    definition: DataDefinition,
    oas: dict[str, Any],
    path: list[str] | None,
) -> dict[str, int]:
    """Union of the base properties and those of every anyOf member.

    A property declared with different content in several places cannot be
    typed precisely and is exposed as JSON.
    """
    seen: dict[str, Any] = {}
    incompatible: set[str] = set()
    sources: list[dict[str, Any]] = [definition.schema]
    for raw_member in definition.schema["anyOf"]:
        member = resolve_maybe_ref(raw_member, oas)
        if isinstance(member, dict):
            sources.append(collapse_all_of(ctx, cast(dict[str, Any], member), oas, path))

    for source in sources:
        for key, prop in (source.get("properties") or {}).items():
            resolved = resolve_maybe_ref(prop, oas)
            if key not in seen:
                seen[key] = prop
            elif resolve_maybe_ref(seen[key], oas) != resolved and key not in incompatible:
                incompatible.add(key)
                ctx.warn(
                    "ANYOF_INCOMPATIBLE_PROPERTY",
                    f"Property '{key}' of '{definition.graphql_type_name}' is "
                    f"defined differently by several anyOf members",
                    path=path,
                )

    result = _property_definitions(
        ctx, {k: v for k, v in seen.items() if k not in incompatible}, oas, path
    )
    for key in incompatible:
        json_schema = {"description": f"Property '{key}' with incompatible anyOf definitions"}
        result[key] = create_or_reuse_data_def(ctx, json_schema, {"from_ref": key}, oas, path=path).handle
    return dict(sorted(result.items()))
