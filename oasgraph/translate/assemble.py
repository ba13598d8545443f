"""Assemble the GraphQL schema from preprocessed operations."""

from __future__ import annotations

import logging
from collections import Counter
from typing import Any

from graphql import GraphQLField, GraphQLObjectType, GraphQLSchema, GraphQLString

from oasgraph.formats.options import Options
from oasgraph.helpers.naming import uncapitalize
from oasgraph.translate.auth_builder import create_and_load_viewer
from oasgraph.translate.oas import is_operation
from oasgraph.translate.preprocessor import preprocess_oas
from oasgraph.translate.schema_builder import complete_types, get_field_for_operation
from oasgraph.translate.types import BuildContext, Operation, TargetType
from oasgraph.translate.warnings import OasGraphError, Report

logger = logging.getLogger(__name__)

Fields = dict[str, GraphQLField]


def create_graphql_schema(
    oas: dict[str, Any] | list[dict[str, Any]],
    options: Options | None = None,
) -> tuple[GraphQLSchema, Report]:
    """Translate one or more OpenAPI 3 documents into a GraphQL schema.

    Returns the schema and a report of what was created and what had to be
    worked around. Raises StrictModeError on the first warning when
    ``options.strict`` is set.
    """
    oass = oas if isinstance(oas, list) else [oas]
    options = options or Options()
    for document in oass:
        _check_version(document)

    ctx = preprocess_oas(oass, options)
    _preliminary_checks(ctx)

    query_fields: Fields = {}
    mutation_fields: Fields = {}
    auth_query_fields: dict[str, Fields] = {}
    auth_mutation_fields: dict[str, Fields] = {}

    for operation in sort_operations(ctx):
        logger.debug("Process operation '%s'...", operation.operation_id)
        if operation.in_viewer:
            groups = auth_mutation_fields if operation.is_mutation else auth_query_fields
            targets = [groups.setdefault(r, {}) for r in operation.security_requirements]
        else:
            targets = [mutation_fields if operation.is_mutation else query_fields]

        field: GraphQLField | None = None
        for fields in targets:
            name = _field_name(ctx, operation, fields)
            if name is None:
                continue
            field = field or get_field_for_operation(ctx, operation)
            fields[name] = field

    ctx.report.num_queries_created = len(query_fields) + sum(
        len(f) for f in auth_query_fields.values()
    )
    ctx.report.num_mutations_created = len(mutation_fields) + sum(
        len(f) for f in auth_mutation_fields.values()
    )

    subscription_fields: Fields = {}
    for operation in ctx.subscriptions.values():
        name = ctx.sanitize_and_store(operation.operation_id)
        if name in subscription_fields:
            ctx.warn(
                "DUPLICATE_FIELD_NAME",
                f"Callback {operation.operation_string} would create the field '{name}' twice",
            )
            continue
        subscription_fields[name] = get_field_for_operation(ctx, operation)
    ctx.report.num_subscriptions_created = len(subscription_fields)

    if auth_query_fields:
        query_fields.update(create_and_load_viewer(ctx, auth_query_fields, is_mutation=False))
    if auth_mutation_fields:
        mutation_fields.update(create_and_load_viewer(ctx, auth_mutation_fields, is_mutation=True))

    complete_types(ctx)

    schema = GraphQLSchema(
        query=_root_type("Query", "The start of any query", query_fields)
        if query_fields
        else _placeholder_query(),
        mutation=_root_type("Mutation", "The start of any mutation", mutation_fields)
        if mutation_fields
        else None,
        subscription=_root_type("Subscription", "The start of any subscription", subscription_fields)
        if subscription_fields
        else None,
    )
    logger.info(
        "Created %d queries, %d mutations and %d subscriptions from %d operations (%d warnings)",
        ctx.report.num_queries_created,
        ctx.report.num_mutations_created,
        ctx.report.num_subscriptions_created,
        ctx.report.num_ops,
        len(ctx.report.warnings),
    )
    return schema, ctx.report


def _check_version(oas: dict[str, Any]) -> None:
    if not isinstance(oas, dict):
        raise OasGraphError("An OpenAPI document must be a mapping")
    if "swagger" in oas:
        raise OasGraphError(
            "Swagger 2.0 documents are not supported; convert them to OpenAPI 3 first",
            details={"swagger": oas["swagger"]},
        )
    if not str(oas.get("openapi", "")).startswith("3"):
        raise OasGraphError(
            "Expected an OpenAPI 3 document", details={"openapi": oas.get("openapi")}
        )


def _preliminary_checks(ctx: BuildContext) -> None:
    titles = Counter(oas.get("info", {}).get("title", "") for oas in ctx.oass)
    for title, count in titles.items():
        if count > 1:
            ctx.warn("MULTIPLE_OAS_SAME_TITLE", f"Multiple documents share the title '{title}'")

    _check_custom_resolvers(ctx, ctx.options.custom_resolvers, subscriptions=False)
    _check_custom_resolvers(ctx, ctx.options.custom_subscription_resolvers, subscriptions=True)


def _check_custom_resolvers(ctx: BuildContext, resolvers: dict[str, Any], subscriptions: bool) -> None:
    for title, paths in resolvers.items():
        oas = next((o for o in ctx.oass if o.get("info", {}).get("title") == title), None)
        if oas is None:
            ctx.warn(
                "CUSTOM_RESOLVER_UNKNOWN_OAS",
                f"Custom resolvers reference a document with the unknown title '{title}'",
            )
            continue
        for path, methods in paths.items():
            for method in methods:
                if subscriptions:
                    known = any(
                        (s.title, s.path, s.method) == (title, path, method)
                        for s in ctx.subscriptions.values()
                    )
                else:
                    path_item = (oas.get("paths") or {}).get(path) or {}
                    known = is_operation(method) and method in path_item
                if not known:
                    ctx.warn(
                        "CUSTOM_RESOLVER_UNKNOWN_PATH_METHOD",
                        f"A custom resolver references an unknown operation "
                        f"'{method.upper()} {path}' in '{title}'",
                    )


def sort_operations(ctx: BuildContext) -> list[Operation]:
    """Operations returning single objects first, then GET first.

    The first operation to build a shared response type decides its links,
    so operations that are more likely to carry them go first. Ties keep
    discovery order.
    """

    def key(operation: Operation) -> tuple[bool, bool]:
        response = ctx.definition(operation.response_definition)
        return response.target_type is TargetType.LIST, operation.method != "get"

    return sorted(ctx.operations.values(), key=key)


def _field_name(ctx: BuildContext, operation: Operation, fields: Fields) -> str | None:
    if operation.is_mutation or ctx.options.operation_id_field_names:
        name = ctx.sanitize_and_store(operation.operation_id)
    else:
        type_name = ctx.definition(operation.response_definition).graphql_type_name
        name = uncapitalize(type_name)
        if name in fields:
            # Another operation returns the same type
            name = ctx.sanitize_and_store(operation.operation_id)

    if name in fields:
        ctx.warn(
            "DUPLICATE_FIELD_NAME",
            f"Operation {operation.operation_string} would create the field '{name}' twice",
            path=["paths", operation.path, operation.method],
        )
        return None
    return name


def _root_type(name: str, description: str, fields: Fields) -> GraphQLObjectType:
    return GraphQLObjectType(name=name, description=description, fields=dict(sorted(fields.items())))


def _placeholder_query() -> GraphQLObjectType:
    return GraphQLObjectType(
        name="Query",
        description="The start of any query",
        fields={
            "placeholder": GraphQLField(
                GraphQLString,
                description=(
                    "Placeholder field: no operation could be translated into a query, "
                    "and GraphQL requires at least one"
                ),
            )
        },
    )
