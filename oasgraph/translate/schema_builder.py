"""Synthesis of GraphQL types, fields and arguments from data definitions.

Types are created at most once per definition (and variance) and cached on
the definition. Object fields are thunks, so a definition that refers to
itself ends up as a self-referencing GraphQL type.
"""

from __future__ import annotations

import logging
from typing import Any, cast

from graphql import (
    GraphQLArgument,
    GraphQLBoolean,
    GraphQLEnumType,
    GraphQLEnumValue,
    GraphQLField,
    GraphQLFloat,
    GraphQLID,
    GraphQLInputField,
    GraphQLInputObjectType,
    GraphQLInputType,
    GraphQLInt,
    GraphQLList,
    GraphQLNonNull,
    GraphQLObjectType,
    GraphQLOutputType,
    GraphQLScalarType,
    GraphQLString,
    GraphQLUnionType,
    value_from_ast_untyped,
)

from oasgraph.helpers.naming import CaseStyle, operation_identifier_of, sanitize
from oasgraph.translate.oas import get_schema_target_type, is_operation, resolve_maybe_ref
from oasgraph.translate.preprocessor import create_or_reuse_data_def
from oasgraph.translate.resolver_builder import (
    get_publish_resolver,
    get_resolver,
    get_subscribe,
    link_parameter_name,
    payload_argument_name,
)
from oasgraph.translate.types import BuildContext, DataDefinition, Operation, TargetType
from oasgraph.translate.warnings import SchemaConstructionError

logger = logging.getLogger(__name__)

MAX_ITERATIONS = 50

GraphQLJSON = GraphQLScalarType(
    name="JSON",
    description="Arbitrary JSON value",
    serialize=lambda value: value,
    parse_value=lambda value: value,
    parse_literal=value_from_ast_untyped,
)

_SCALARS: dict[TargetType, GraphQLScalarType] = {
    TargetType.STRING: GraphQLString,
    TargetType.ID: GraphQLID,
    TargetType.INTEGER: GraphQLInt,
    TargetType.NUMBER: GraphQLFloat,
    TargetType.BOOLEAN: GraphQLBoolean,
    TargetType.JSON: GraphQLJSON,
}

_OBJECT_LIKE = (TargetType.OBJECT, TargetType.ANY_OF)

LIMIT_DESCRIPTION = (
    "Auto-generated argument that limits the size of returned list of "
    "objects/list, selecting the first `n` elements of the list"
)


def get_graphql_type(
    ctx: BuildContext,
    definition: DataDefinition,
    *,
    operation: Operation | None = None,
    is_input: bool = False,
    iteration: int = 0,
) -> Any:
    """Return the GraphQL type of a definition, creating it if needed.

    The returned type is an output type, or an input type when *is_input*
    is set. An *operation* given at iteration 0 marks the definition as that
    operation's response, which gives its object type link fields.
    """
    if iteration > MAX_ITERATIONS:
        raise SchemaConstructionError(
            f"Too many iterations when creating schema {definition.graphql_type_name}"
        )

    if operation is not None and iteration == 0 and not is_input and definition.links:
        ctx.link_sources.setdefault(definition.handle, operation)

    target_type = definition.target_type
    if target_type in _OBJECT_LIKE:
        return _object_type(ctx, definition, is_input, iteration)
    if target_type is TargetType.UNION:
        return _union_type(ctx, definition, is_input, iteration)
    if target_type is TargetType.LIST:
        return _list_type(ctx, definition, is_input, iteration)
    if target_type is TargetType.ENUM:
        return _enum_type(ctx, definition)
    return _SCALARS[target_type]


def _cached(definition: DataDefinition, is_input: bool) -> Any:
    return definition.graphql_input_type if is_input else definition.graphql_type


def _cache(definition: DataDefinition, is_input: bool, graphql_type: Any) -> Any:
    if is_input:
        definition.graphql_input_type = cast(GraphQLInputType, graphql_type)
    else:
        definition.graphql_type = cast(GraphQLOutputType, graphql_type)
    return graphql_type


# -- Objects ------------------------------------------------------------------


def _object_type(
    ctx: BuildContext, definition: DataDefinition, is_input: bool, iteration: int
) -> Any:
    cached = _cached(definition, is_input)
    if cached is not None:
        return cached

    properties = cast(dict[str, int], definition.sub_definitions or {})
    if not properties:
        ctx.warn(
            "OBJECT_MISSING_PROPERTIES",
            f"The schema '{definition.graphql_type_name}' has no properties",
        )
        return _cache(definition, is_input, GraphQLJSON)

    definition.iteration = iteration
    description = definition.schema.get("description")
    if is_input:
        graphql_type: Any = GraphQLInputObjectType(
            name=definition.graphql_input_type_name,
            description=description,
            fields=lambda: resolve_fields(ctx, definition, True, iteration),
        )
    else:
        graphql_type = GraphQLObjectType(
            name=definition.graphql_type_name,
            description=description,
            fields=lambda: resolve_fields(ctx, definition, False, iteration),
        )
    return _cache(definition, is_input, graphql_type)


def resolve_fields(
    ctx: BuildContext, definition: DataDefinition, is_input: bool, iteration: int = 0
) -> dict[str, Any]:
    """Fields of the object type of a definition, computed once."""
    key = (definition.handle, is_input)
    if key not in ctx.field_maps:
        if is_input:
            ctx.field_maps[key] = _input_fields(ctx, definition, iteration)
        else:
            ctx.field_maps[key] = _output_fields(ctx, definition, iteration)
    return ctx.field_maps[key]


def complete_types(ctx: BuildContext) -> None:
    """Compute the fields of every object type, including types created meanwhile.

    graphql-core turns errors raised by field thunks into TypeErrors, so the
    fields are computed here and the thunks only read the result.
    """
    while True:
        pending = [
            (definition, is_input)
            for definition in ctx.definitions
            for is_input in (False, True)
            if isinstance(_cached(definition, is_input), (GraphQLObjectType, GraphQLInputObjectType))
            and (definition.handle, is_input) not in ctx.field_maps
        ]
        if not pending:
            return
        for definition, is_input in pending:
            resolve_fields(ctx, definition, is_input, definition.iteration)


def _property_types(
    ctx: BuildContext, definition: DataDefinition, is_input: bool, iteration: int
) -> dict[str, tuple[Any, str | None]]:
    """Sanitized field name -> (type, description) of every property."""
    result: dict[str, tuple[Any, str | None]] = {}
    properties = cast(dict[str, int], definition.sub_definitions or {})
    for key, handle in properties.items():
        name = sanitize(key, ctx.field_style)
        if name in result:
            ctx.warn(
                "DUPLICATE_FIELD_NAME",
                f"Properties of '{definition.graphql_type_name}' sanitize to the same field name '{name}'",
            )
            continue
        ctx.sanitize_and_store(key)

        sub_definition = ctx.definition(handle)
        field_type = get_graphql_type(ctx, sub_definition, is_input=is_input, iteration=iteration + 1)
        if key in definition.required:
            field_type = GraphQLNonNull(field_type)
        result[name] = (field_type, sub_definition.schema.get("description"))
    return result


def _input_fields(
    ctx: BuildContext, definition: DataDefinition, iteration: int
) -> dict[str, GraphQLInputField]:
    fields = {
        name: GraphQLInputField(field_type, description=description)
        for name, (field_type, description) in _property_types(ctx, definition, True, iteration).items()
    }
    return dict(sorted(fields.items()))


def _output_fields(
    ctx: BuildContext, definition: DataDefinition, iteration: int
) -> dict[str, GraphQLField]:
    fields = {
        name: GraphQLField(field_type, description=description)
        for name, (field_type, description) in _property_types(ctx, definition, False, iteration).items()
    }
    operation = ctx.link_sources.get(definition.handle)
    if operation is not None:
        for name, link_field in _link_fields(ctx, definition, operation).items():
            if name in fields:
                ctx.warn(
                    "LINK_NAME_COLLISION",
                    f"Cannot create link '{name}' because '{definition.graphql_type_name}' "
                    f"already has a field with the same name",
                )
                continue
            fields[name] = link_field
    return dict(sorted(fields.items()))


# -- Links --------------------------------------------------------------------


def _link_fields(
    ctx: BuildContext, definition: DataDefinition, operation: Operation
) -> dict[str, GraphQLField]:
    fields: dict[str, GraphQLField] = {}
    for link_key, link in definition.links.items():
        target = resolve_link_target(ctx, link, operation)
        if target is None:
            continue

        args_from_link: dict[str, Any] = dict(link.get("parameters") or {})
        provided = {link_parameter_name(ctx, name) for name in args_from_link}
        response = ctx.definition(target.response_definition)
        description = link.get("description") or f"Link to operation {target.operation_string}"
        fields[link_key] = GraphQLField(
            get_graphql_type(ctx, response, operation=target),
            args=get_args(ctx, target, exclude=provided),
            resolve=get_resolver(ctx, target, args_from_link=args_from_link),
            description=description,
        )
    return fields


def resolve_link_target(
    ctx: BuildContext, link: dict[str, Any], operation: Operation
) -> Operation | None:
    """The operation a link points to, or None (with a warning) if there is none."""
    if isinstance(link.get("operationId"), str):
        target = ctx.operations.get(link["operationId"])
        if target is None:
            ctx.warn(
                "UNRESOLVABLE_LINK",
                f"Cannot find operation with operationId '{link['operationId']}'",
            )
        return target

    if isinstance(link.get("operationRef"), str):
        operation_id = _operation_ref_to_id(ctx, link["operationRef"], operation)
        if operation_id is None:
            return None
        target = ctx.operations.get(operation_id)
        if target is None:
            ctx.warn(
                "UNRESOLVABLE_LINK",
                f"Cannot find operation for operationRef '{link['operationRef']}'",
            )
        return target

    ctx.warn("UNRESOLVABLE_LINK", f"Link '{link}' has neither operationId nor operationRef")
    return None


def _operation_ref_to_id(
    ctx: BuildContext, operation_ref: str, operation: Operation
) -> str | None:
    """Decode ``#/paths/~1users~1{id}/get``, optionally prefixed by a document title."""
    if "#/" not in operation_ref:
        ctx.warn("UNRESOLVABLE_LINK", f"Cannot resolve operationRef '{operation_ref}'")
        return None
    if operation_ref.count("#/") > 1:
        ctx.warn("AMBIGUOUS_LINK", f"The operationRef '{operation_ref}' contains multiple '#/'")

    location, _, pointer = operation_ref.partition("#/")
    if location:
        matches = [oas for oas in ctx.oass if oas.get("info", {}).get("title") == location]
        if len(matches) != 1:
            ctx.warn(
                "UNRESOLVABLE_LINK",
                f"The operationRef '{operation_ref}' does not refer to exactly one known document",
            )
            return None
        oas = matches[0]
    else:
        oas = operation.oas

    if not pointer.startswith("paths/") or "/" not in pointer[len("paths/"):]:
        ctx.warn("UNRESOLVABLE_LINK", f"Cannot extract path and method from operationRef '{operation_ref}'")
        return None

    encoded_path, _, method = pointer[len("paths/"):].rpartition("/")
    path = encoded_path.replace("~1", "/").replace("~0", "~")
    if not is_operation(method):
        ctx.warn("UNRESOLVABLE_LINK", f"The operationRef '{operation_ref}' has an invalid method '{method}'")
        return None

    endpoint = (oas.get("paths") or {}).get(path, {}).get(method)
    if not isinstance(endpoint, dict):
        ctx.warn("UNRESOLVABLE_LINK", f"The operationRef '{operation_ref}' points to an unknown operation")
        return None
    return endpoint.get("operationId") or operation_identifier_of(method, path)


# -- Lists, unions and enums --------------------------------------------------


def _list_type(
    ctx: BuildContext, definition: DataDefinition, is_input: bool, iteration: int
) -> Any:
    cached = _cached(definition, is_input)
    if cached is not None:
        return cached

    if not isinstance(definition.sub_definitions, int):
        raise SchemaConstructionError(
            f"List schema '{definition.graphql_type_name}' has no item definition"
        )
    item = ctx.definition(definition.sub_definitions)
    item_type = get_graphql_type(ctx, item, is_input=is_input, iteration=iteration + 1)
    return _cache(definition, is_input, GraphQLList(item_type))


def _union_type(
    ctx: BuildContext, definition: DataDefinition, is_input: bool, iteration: int
) -> Any:
    if is_input:
        # GraphQL has no input unions
        return GraphQLJSON
    if definition.graphql_type is not None:
        return definition.graphql_type

    members = [ctx.definition(h) for h in cast(list[int], definition.sub_definitions or [])]
    for member in members:
        if member.target_type not in _OBJECT_LIKE or not member.sub_definitions:
            ctx.warn(
                "UNION_MEMBER_NON_OBJECT",
                f"The oneOf schema '{definition.graphql_type_name}' has the non-object "
                f"member '{member.graphql_type_name}'",
            )
            return _cache(definition, False, GraphQLJSON)

    member_types: list[GraphQLObjectType] = []
    member_fields: list[set[str]] = []
    for member in members:
        member_type = get_graphql_type(ctx, member, iteration=iteration + 1)
        if member_type in member_types:
            continue
        member_types.append(member_type)
        member_fields.append(
            {sanitize(k, ctx.field_style) for k in cast(dict[str, int], member.sub_definitions)}
        )

    for i, fields in enumerate(member_fields):
        for j, other in enumerate(member_fields):
            if i != j and fields <= other:
                ctx.warn(
                    "AMBIGUOUS_UNION_MEMBERS",
                    f"The fields of member '{member_types[i].name}' of '{definition.graphql_type_name}' "
                    f"are a subset of those of '{member_types[j].name}'",
                )
                break

    def resolve_type(value: Any, _info: Any, _abstract_type: Any) -> str | None:
        keys = set(value) if isinstance(value, dict) else set[str]()
        for member_type, fields in zip(member_types, member_fields):
            if keys <= fields:
                return member_type.name
        return None

    union = GraphQLUnionType(
        name=definition.graphql_type_name,
        types=member_types,
        resolve_type=resolve_type,
        description=definition.schema.get("description"),
    )
    return _cache(definition, False, union)


def _enum_type(ctx: BuildContext, definition: DataDefinition) -> GraphQLEnumType | GraphQLScalarType:
    if definition.graphql_type is not None:
        return definition.graphql_type

    values: dict[str, GraphQLEnumValue] = {}
    for literal in definition.schema.get("enum") or []:
        if literal is None:
            continue
        name = sanitize(str(literal), CaseStyle.ALL_CAPS)
        if name in values:
            suffix = 2
            while f"{name}{suffix}" in values:
                suffix += 1
            ctx.warn(
                "ENUM_VALUE_COLLISION",
                f"The values of enum '{definition.graphql_type_name}' collide on '{name}'",
                mitigation_addendum=f"'{literal}' is exposed as '{name}{suffix}'.",
            )
            name = f"{name}{suffix}"
        values[name] = GraphQLEnumValue(value=literal)

    if not values:
        # GraphQL enums need at least one value
        without_enum = {k: v for k, v in definition.schema.items() if k != "enum"}
        scalar = _SCALARS.get(get_schema_target_type(without_enum) or TargetType.JSON, GraphQLJSON)
        ctx.warn(
            "ENUM_WITHOUT_VALUES",
            f"Enum '{definition.graphql_type_name}' has no values other than null",
            mitigation_addendum=f"Use '{scalar.name}' instead.",
        )
        definition.graphql_type = scalar
        definition.graphql_input_type = scalar
        return scalar

    enum = GraphQLEnumType(
        name=definition.graphql_type_name,
        values=values,
        description=definition.schema.get("description"),
    )
    # Enums are both input and output types
    definition.graphql_type = enum
    definition.graphql_input_type = enum
    return enum


# -- Arguments ----------------------------------------------------------------


def _provided_by_options(ctx: BuildContext, param: dict[str, Any]) -> bool:
    headers = ctx.options.headers
    if param.get("in") == "header" and isinstance(headers, dict):
        return param["name"] in headers
    if param.get("in") == "query" and ctx.options.qs:
        return param["name"] in ctx.options.qs
    return False


def _returns_list_of_structures(ctx: BuildContext, operation: Operation) -> bool:
    response = ctx.definition(operation.response_definition)
    if response.target_type is not TargetType.LIST or not isinstance(response.sub_definitions, int):
        return False
    item = ctx.definition(response.sub_definitions)
    return item.target_type in (*_OBJECT_LIKE, TargetType.UNION, TargetType.LIST)


def get_args(
    ctx: BuildContext,
    operation: Operation,
    *,
    exclude: set[str] | None = None,
) -> dict[str, GraphQLArgument]:
    """Arguments of the field of an operation.

    One argument per parameter, an optional ``limit`` and the request
    payload. Parameters whose sanitized name is in *exclude* (supplied by a
    link) or whose value comes from the options are left out.
    """
    exclude = exclude or set()
    args: dict[str, GraphQLArgument] = {}
    location = ["paths", operation.path, operation.method]

    for param in operation.parameters:
        if "name" not in param:
            ctx.warn(
                "UNNAMED_PARAMETER",
                f"A parameter of operation {operation.operation_string} has no name",
                path=location,
            )
            continue
        if _provided_by_options(ctx, param):
            continue
        name = ctx.sanitize_and_store(param["name"])
        if name in exclude:
            continue

        schema = param.get("schema")
        if schema is None and isinstance(param.get("content"), dict):
            content = param["content"]
            if "application/json" not in content:
                ctx.warn(
                    "NON_APPLICATION_JSON_SCHEMA",
                    f"Parameter '{param['name']}' of operation {operation.operation_string} "
                    f"has no application/json schema",
                    path=location,
                )
                continue
            schema = (content["application/json"] or {}).get("schema")
        if schema is None:
            ctx.warn(
                "INVALID_OAS",
                f"Parameter '{param['name']}' of operation {operation.operation_string} has no schema",
                path=location,
            )
            continue

        definition = create_or_reuse_data_def(
            ctx, schema, {"from_ref": param["name"]}, operation.oas, path=location
        )
        arg_type = get_graphql_type(ctx, definition, is_input=True)
        resolved = resolve_maybe_ref(schema, operation.oas)
        has_default = isinstance(resolved, dict) and "default" in resolved
        if param.get("required") and not has_default:
            arg_type = GraphQLNonNull(arg_type)
        args[name] = GraphQLArgument(arg_type, description=param.get("description"))

    if (
        ctx.options.add_limit_argument
        and not operation.is_subscription
        and _returns_list_of_structures(ctx, operation)
    ):
        if "limit" in args:
            ctx.warn(
                "LIMIT_ARGUMENT_NAME_COLLISION",
                f"The 'limit' argument of operation {operation.operation_string} already exists",
                path=location,
            )
        else:
            args["limit"] = GraphQLArgument(GraphQLInt, description=LIMIT_DESCRIPTION)

    if operation.payload_definition is not None:
        payload = ctx.definition(operation.payload_definition)
        payload_type = get_graphql_type(ctx, payload, is_input=True)
        if operation.payload_required:
            payload_type = GraphQLNonNull(payload_type)
        args[payload_argument_name(ctx, operation)] = GraphQLArgument(
            payload_type, description=payload.schema.get("description")
        )

    return args


def get_field_for_operation(ctx: BuildContext, operation: Operation) -> GraphQLField:
    """The Query, Mutation, Subscription or viewer field exposing an operation."""
    logger.debug("Create field for operation %s", operation.operation_string)
    response = ctx.definition(operation.response_definition)
    if operation.is_subscription:
        return GraphQLField(
            get_graphql_type(ctx, response),
            args=get_args(ctx, operation),
            subscribe=get_subscribe(ctx, operation),
            resolve=get_publish_resolver(ctx, operation),
            description=operation.description or None,
        )
    return GraphQLField(
        get_graphql_type(ctx, response, operation=operation),
        args=get_args(ctx, operation),
        resolve=get_resolver(ctx, operation),
        description=operation.description or None,
    )
