"""Viewers: fields taking credentials that wrap authenticated operations."""

from __future__ import annotations

import logging
from typing import Any

from graphql import (
    GraphQLArgument,
    GraphQLField,
    GraphQLNonNull,
    GraphQLObjectType,
    GraphQLResolveInfo,
    GraphQLString,
)

from oasgraph.helpers.naming import CaseStyle, capitalize, sanitize
from oasgraph.translate.preprocessor import create_or_reuse_data_def
from oasgraph.translate.resolver_builder import ancestor_state, passthrough_table, store_state
from oasgraph.translate.schema_builder import get_graphql_type
from oasgraph.translate.types import BuildContext, ProcessedSecurityScheme, ViewerSource

logger = logging.getLogger(__name__)


def _viewer_resolver(security_of: Any) -> Any:
    """Resolver storing the credentials given as arguments for the fields below."""

    def resolve(_source: Any, info: GraphQLResolveInfo, **args: Any) -> ViewerSource:
        security = security_of(args)
        table = passthrough_table(info.context)
        if table is not None:
            state = ancestor_state(table, info.path.prev)
            state.security.update(security)
            store_state(info, state)
        return ViewerSource(security=security)

    return resolve


def _viewer_type_name(ctx: BuildContext, field_name: str) -> str:
    """Type name of a viewer field, never reusing a name of the schema."""
    base = capitalize(field_name)
    name, suffix = base, 2
    while name in ctx.used_names:
        name = f"{base}{suffix}"
        suffix += 1
    if name != base:
        ctx.warn(
            "VIEWER_TYPE_NAME_COLLISION",
            f"Viewer type name '{base}' is already used by another type",
            mitigation_addendum=f"The viewer type is named '{name}'.",
        )
    ctx.used_names.add(name)
    return name


def _viewer_field(
    ctx: BuildContext,
    name: str,
    scheme: ProcessedSecurityScheme,
    fields: dict[str, GraphQLField],
) -> GraphQLField:
    scheme_key = sanitize(scheme.raw_name, CaseStyle.CAMEL_CASE)
    title = scheme.oas.get("info", {}).get("title", "")
    if len(ctx.oass) == 1:
        type_description = f"A viewer for the security protocol: '{scheme.raw_name}'"
        description = f"A viewer that wraps all operations authenticated via {scheme.viewer_type}"
    else:
        type_description = f"A viewer for the security protocol '{scheme.raw_name}' in {title}"
        description = (
            f"A viewer that wraps all operations authenticated via {scheme.viewer_type}\n\n"
            f"For the security scheme: {title} {scheme.raw_name}"
        )

    # username before password
    args = {credential: GraphQLArgument(GraphQLNonNull(GraphQLString)) for credential in scheme.credentials}
    viewer_type = GraphQLObjectType(
        name=_viewer_type_name(ctx, name),
        description=type_description,
        fields=dict(sorted(fields.items())),
    )
    return GraphQLField(
        viewer_type,
        args=args,
        resolve=_viewer_resolver(lambda a: {scheme_key: dict(a)}),
        description=description,
    )


def _any_auth_field(ctx: BuildContext, name: str, fields: dict[str, GraphQLField]) -> GraphQLField:
    args: dict[str, GraphQLArgument] = {}
    for key, scheme in ctx.security.items():
        definition = create_or_reuse_data_def(ctx, scheme.schema, {"from_ref": key}, scheme.oas)
        args[sanitize(key, CaseStyle.CAMEL_CASE)] = GraphQLArgument(
            get_graphql_type(ctx, definition, is_input=True)
        )

    viewer_type = GraphQLObjectType(
        name=_viewer_type_name(ctx, name),
        description="Warning: Not every request will work with this viewer type",
        fields=dict(sorted(fields.items())),
    )
    return GraphQLField(
        viewer_type,
        args=dict(sorted(args.items())),
        resolve=_viewer_resolver(lambda a: {k: dict(v) for k, v in a.items() if v is not None}),
        description="A viewer that wraps operations for all available authentication mechanisms",
    )


def create_and_load_viewer(
    ctx: BuildContext,
    fields_by_requirement: dict[str, dict[str, GraphQLField]],
    is_mutation: bool = False,
) -> dict[str, GraphQLField]:
    """Viewer fields for the Query (or Mutation) root type.

    One viewer per security scheme wraps the operations requiring it; the
    AnyAuth viewer wraps all of them and accepts credentials for every
    scheme at once.
    """
    results: dict[str, GraphQLField] = {}
    any_auth_fields: dict[str, GraphQLField] = {}
    used_viewer_names: dict[str, list[str]] = {}

    for requirement, fields in fields_by_requirement.items():
        any_auth_fields.update(fields)
        scheme = ctx.security[requirement]
        viewer_type = scheme.viewer_type

        prefix = "mutation viewer" if is_mutation else "viewer"
        name = sanitize(f"{prefix} {viewer_type}", CaseStyle.CAMEL_CASE)
        used = used_viewer_names.setdefault(viewer_type, [])
        if name in used:
            name += str(len(used) + 1)
        used.append(name)

        logger.debug("Creating viewer '%s' for security scheme '%s'", name, requirement)
        results[name] = _viewer_field(ctx, name, scheme, fields)

    if any_auth_fields:
        name = "mutationViewerAnyAuth" if is_mutation else "viewerAnyAuth"
        results[name] = _any_auth_field(ctx, name, any_auth_fields)
    return results
