"""Types shared by the translation steps.

Three layers of types:
1. Preprocessing output: DataDefinition, Operation, ProcessedSecurityScheme
2. BuildContext: everything one schema build reads and writes
3. Resolve-time state: PassthroughState, stored per resolution path
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import requests
from graphql import GraphQLInputType, GraphQLOutputType

from oasgraph.formats.options import Options
from oasgraph.helpers.naming import CaseStyle, sanitize, store_sane_name
from oasgraph.translate.warnings import Report, handle_warning

# -- Preprocessing output -----------------------------------------------------


class TargetType(Enum):
    """The GraphQL shape a schema is translated to."""

    OBJECT = "object"
    LIST = "list"
    UNION = "union"  # oneOf
    ANY_OF = "anyOf"  # merged object
    ENUM = "enum"
    STRING = "string"
    ID = "id"
    INTEGER = "integer"
    NUMBER = "number"
    BOOLEAN = "boolean"
    JSON = "json"


@dataclass
class DataDefinition:
    """One distinct schema shape, shared by every place it appears."""

    handle: int  # index in BuildContext.definitions
    preferred_name: str
    schema: dict[str, Any]
    target_type: TargetType
    graphql_type_name: str
    graphql_input_type_name: str
    required: list[str] = field(default_factory=lambda: list[str]())
    # int for list items, dict for object properties, list for union/anyOf members
    sub_definitions: int | dict[str, int] | list[int] | None = None
    links: dict[str, dict[str, Any]] = field(default_factory=lambda: dict[str, dict[str, Any]]())
    graphql_type: GraphQLOutputType | None = None
    graphql_input_type: GraphQLInputType | None = None
    iteration: int = 0  # nesting depth at which its type was first created


@dataclass
class Operation:
    """One API call, to be exposed as a Query or Mutation field.

    Callbacks of an operation become subscriptions: their ``path`` is the
    callback URL expression and their response is the callback request body.
    """

    operation_id: str
    operation_string: str  # "<title> <METHOD> <path>"
    path: str
    method: str  # lowercase
    response_definition: int
    oas: dict[str, Any]
    description: str = ""
    payload_definition: int | None = None
    payload_content_type: str | None = None
    payload_required: bool = False
    response_content_type: str | None = None
    status_code: str | None = None
    parameters: list[dict[str, Any]] = field(default_factory=lambda: list[dict[str, Any]]())
    security_requirements: list[str] = field(default_factory=lambda: list[str]())
    servers: list[dict[str, Any]] = field(default_factory=lambda: list[dict[str, Any]]())
    tags: list[str] = field(default_factory=lambda: list[str]())
    in_viewer: bool = False
    is_mutation: bool = False
    is_subscription: bool = False

    @property
    def title(self) -> str:
        return self.oas.get("info", {}).get("title", "")


@dataclass
class ProcessedSecurityScheme:
    """A non-OAuth2 security scheme and the credentials it needs."""

    raw_name: str
    definition: dict[str, Any]
    credentials: list[str]  # viewer argument names, in declaration order
    schema: dict[str, Any]  # object schema describing the credentials
    oas: dict[str, Any]

    @property
    def viewer_type(self) -> str:
        """Scheme type as used in viewer names, e.g. "apiKey" or "basicAuth"."""
        scheme_type = self.definition.get("type", "")
        if scheme_type == "http" and self.definition.get("scheme") == "basic":
            return "basicAuth"
        return scheme_type


# -- Build context ------------------------------------------------------------


def _default_used_names() -> set[str]:
    # Root types and built-in scalars
    return {"Query", "Mutation", "Subscription", "String", "Int", "Float", "Boolean", "ID", "JSON"}


@dataclass
class BuildContext:
    """State of a single schema build, passed to every construction step."""

    options: Options = field(default_factory=Options)
    report: Report = field(default_factory=Report)
    oass: list[dict[str, Any]] = field(default_factory=lambda: list[dict[str, Any]]())
    operations: dict[str, Operation] = field(default_factory=lambda: dict[str, Operation]())
    subscriptions: dict[str, Operation] = field(default_factory=lambda: dict[str, Operation]())
    security: dict[str, ProcessedSecurityScheme] = field(
        default_factory=lambda: dict[str, ProcessedSecurityScheme]()
    )
    definitions: list[DataDefinition] = field(default_factory=lambda: list[DataDefinition]())
    used_names: set[str] = field(default_factory=_default_used_names)
    sane_map: dict[str, str] = field(default_factory=lambda: dict[str, str]())
    # Definition handle -> operation whose response it is; these types get link fields
    link_sources: dict[int, Operation] = field(default_factory=lambda: dict[int, Operation]())
    # (handle, is_input) -> fields of the object type built for that definition
    field_maps: dict[tuple[int, bool], dict[str, Any]] = field(
        default_factory=lambda: dict[tuple[int, bool], dict[str, Any]]()
    )
    session: Any = field(default_factory=requests.Session)  # used by resolvers

    @property
    def field_style(self) -> CaseStyle:
        """Case style of field and argument names."""
        return CaseStyle.SIMPLE if self.options.simple_names else CaseStyle.CAMEL_CASE

    def definition(self, handle: int) -> DataDefinition:
        return self.definitions[handle]

    def warn(
        self,
        warning_type: str,
        message: str,
        mitigation_addendum: str | None = None,
        path: list[str] | None = None,
    ) -> None:
        handle_warning(self, warning_type, message, mitigation_addendum, path)

    def sanitize_and_store(self, raw: str, style: CaseStyle | None = None) -> str:
        """Sanitize *raw* and remember the mapping for desanitizing payloads."""
        sane = sanitize(raw, style or self.field_style)
        return store_sane_name(sane, raw, self.sane_map, self._on_name_collision)

    def _on_name_collision(self, sane: str, previous: str, raw: str) -> None:
        self.warn(
            "SANITIZATION_COLLISION",
            f"'{raw}' and '{previous}' both sanitize to '{sane}'",
            mitigation_addendum=f"'{sane}' now desanitizes to '{raw}'.",
        )


# -- Resolve-time state -------------------------------------------------------


@dataclass
class PassthroughState:
    """What a resolver did, made available to the resolvers below it."""

    used_params: dict[str, Any] = field(default_factory=lambda: dict[str, Any]())
    used_payload: Any = None
    used_request: dict[str, Any] = field(default_factory=lambda: dict[str, Any]())
    used_status_code: str | None = None
    response_headers: dict[str, str] = field(default_factory=lambda: dict[str, str]())
    security: dict[str, dict[str, Any]] = field(default_factory=lambda: dict[str, dict[str, Any]]())


# Resolution path (field names, aliases and list indices) -> state
PassthroughTable = dict[tuple[str | int, ...], PassthroughState]


@dataclass
class ResolveContext:
    """Execution context for queries against a generated schema.

    *values* is searched by ``Options.token_json_path`` for an OAuth token.
    *pubsub* feeds subscription fields: ``pubsub.subscribe(topic)`` returns an
    async iterator of the payloads published on *topic*.
    """

    values: dict[str, Any] = field(default_factory=lambda: dict[str, Any]())
    passthrough: PassthroughTable = field(default_factory=lambda: PassthroughTable())
    pubsub: Any = None


@dataclass
class ViewerSource:
    """Value of a viewer field: the credentials passed to it, keyed by scheme."""

    security: dict[str, dict[str, Any]] = field(default_factory=lambda: dict[str, dict[str, Any]]())
