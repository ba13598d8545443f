"""Build diagnostics: error classes, warning types and the Report.

Recoverable problems become warnings (the affected operation, field or
link is dropped or degraded to JSON) unless the build runs in strict mode,
where every warning is raised as a StrictModeError.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from oasgraph.translate.types import BuildContext

logger = logging.getLogger(__name__)


class OasGraphError(Exception):
    """Base class for every error raised by oasgraph."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.details: dict[str, Any] = details or {}


class StrictModeError(OasGraphError):
    """A warning promoted to an error because the build is strict."""


class SchemaConstructionError(OasGraphError):
    """A GraphQL type cannot be built at all."""


class UnresolvableReferenceError(OasGraphError):
    """A ``$ref`` does not point to anything in its document."""


class RuntimeExpressionError(OasGraphError):
    """A link parameter uses an expression that cannot be evaluated."""


class AuthenticationError(OasGraphError):
    """An operation requires credentials that were not supplied."""


MITIGATIONS: dict[str, str] = {
    # Data validation
    "INVALID_OAS": "Ignore issue and continue.",
    "INVALID_SCHEMA": "Use the JSON scalar for the schema.",
    "UNNAMED_PARAMETER": "Ignore parameter.",
    "MULTIPLE_RESPONSES": "Select first response object with successful status code (200-299).",
    "MISSING_RESPONSE_SCHEMA": "Ignore operation.",
    "UNRESOLVABLE_REFERENCE": "The schema will be replaced with the JSON scalar.",
    "ALLOF_TYPE_MISMATCH": "Keep the type of the outer schema.",
    "DUPLICATE_FIELD_NAME": "Ignore field and maintain preexisting field.",
    "DUPLICATE_LINK_KEY": "Ignore link and maintain preexisting link.",
    "SANITIZATION_COLLISION": "Desanitize the name to the last raw name seen.",
    "UNSUPPORTED_HTTP_SECURITY_SCHEME": "Ignore security scheme.",
    "NON_APPLICATION_JSON_SCHEMA": "Ignore schema.",
    "OBJECT_MISSING_PROPERTIES": "The (sub-)object will be stored in a JSON scalar.",
    "UNION_MEMBER_NON_OBJECT": "The union will be stored in a JSON scalar.",
    "AMBIGUOUS_UNION_MEMBERS": "Resolve union values to the first member whose fields contain every key of the value.",
    "ANYOF_INCOMPATIBLE_PROPERTY": "The property will be stored in a JSON scalar.",
    "ENUM_VALUE_COLLISION": "Append a numeric suffix to the later enum value.",
    "ENUM_WITHOUT_VALUES": "Use the scalar of the enum type, or the JSON scalar.",
    # Links
    "UNRESOLVABLE_LINK": "Ignore link.",
    "AMBIGUOUS_LINK": "Use first occurrence of '#/'.",
    "LINK_NAME_COLLISION": "Ignore link and maintain preexisting field.",
    # Multiple documents
    "MULTIPLE_OAS_SAME_TITLE": "Ignore issue and continue.",
    "DUPLICATE_OPERATIONID": "Ignore operation and maintain preexisting operation.",
    "DUPLICATE_SECURITY_SCHEME": "Ignore security scheme and maintain preexisting scheme.",
    # Options
    "CUSTOM_RESOLVER_UNKNOWN_OAS": "Ignore this set of custom resolvers.",
    "CUSTOM_RESOLVER_UNKNOWN_PATH_METHOD": "Ignore this custom resolver.",
    "CALLBACKS_MULTIPLE_OPERATION_OBJECTS": "Select the first operation object of the callback.",
    "LIMIT_ARGUMENT_NAME_COLLISION": "Do not override existing 'limit' argument.",
    "VIEWER_TYPE_NAME_COLLISION": "Append a numeric suffix to the viewer type name.",
    # Miscellaneous
    "OAUTH_SECURITY_SCHEME": "Ignore security scheme.",
}


@dataclass
class BuildWarning:
    """One recoverable problem found while building the schema."""

    type: str
    message: str
    mitigation: str
    mitigation_addendum: str | None = None
    path: list[str] | None = None  # location in the source document


@dataclass
class Report:
    """Counts and warnings accumulated over one build."""

    warnings: list[BuildWarning] = field(default_factory=lambda: list[BuildWarning]())
    num_ops: int = 0
    num_ops_query: int = 0
    num_ops_mutation: int = 0
    num_ops_subscription: int = 0  # callbacks, when subscriptions are created
    num_queries_created: int = 0
    num_mutations_created: int = 0
    num_subscriptions_created: int = 0

    def of_type(self, warning_type: str) -> list[BuildWarning]:
        """Warnings of a single type, in the order they were raised."""
        return [w for w in self.warnings if w.type == warning_type]


def handle_warning(
    ctx: BuildContext,
    warning_type: str,
    message: str,
    mitigation_addendum: str | None = None,
    path: list[str] | None = None,
) -> None:
    """Record a warning, or raise it when the build is strict."""
    if warning_type not in MITIGATIONS:
        raise KeyError(f"Unknown warning type '{warning_type}'")

    if ctx.options.strict:
        raise StrictModeError(
            f"{warning_type} - {message}",
            details={"type": warning_type, "path": path},
        )

    mitigation = MITIGATIONS[warning_type]
    if mitigation_addendum:
        mitigation = f"{mitigation} {mitigation_addendum}"

    logger.warning("%s - %s", warning_type, message)
    ctx.report.warnings.append(
        BuildWarning(
            type=warning_type,
            message=message,
            mitigation=mitigation,
            mitigation_addendum=mitigation_addendum,
            path=path,
        )
    )
