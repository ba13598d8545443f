"""Pydantic model for the options of a schema build."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, Literal

from pydantic import BaseModel, Field

# title -> path -> method -> value
PerOperation = dict[str, dict[str, dict[str, Any]]]


class Options(BaseModel):
    strict: bool = False  # turn every warning into an error
    viewer: bool = True  # wrap authenticated operations in viewer fields
    headers: dict[str, str] | Callable[..., dict[str, str] | None] | None = None
    qs: dict[str, str] | None = None
    request_options: dict[str, Any] | None = None  # extra requests.request() kwargs
    base_url: str | None = None
    token_json_path: str | None = None  # dot path of an OAuth token in the context
    send_oauth_token_in_query: bool = False
    fill_empty_responses: bool = False
    operation_id_field_names: bool = False
    custom_resolvers: PerOperation = Field(default_factory=dict)
    create_subscriptions_from_callbacks: bool = False
    # title -> callback path -> method -> {"subscribe": ..., "resolve": ...}
    custom_subscription_resolvers: PerOperation = Field(default_factory=dict)
    select_query_or_mutation_field: dict[
        str, dict[str, dict[str, Literal["query", "mutation"]]]
    ] = Field(default_factory=dict)
    simple_names: bool = False
    add_limit_argument: bool = False
    provide_error_extensions: bool = True
    equivalent_to_messages: bool = True
    session: Any = None  # requests.Session used by resolvers

    model_config = {"arbitrary_types_allowed": True}

    def custom_resolver_for(self, title: str, path: str, method: str) -> Callable[..., Any] | None:
        """The user-supplied resolver of one operation, if any."""
        resolver = self.custom_resolvers.get(title, {}).get(path, {}).get(method)
        return resolver if callable(resolver) else None

    def custom_subscription_resolver_for(
        self, title: str, path: str, method: str, hook: Literal["subscribe", "resolve"]
    ) -> Callable[..., Any] | None:
        hooks = self.custom_subscription_resolvers.get(title, {}).get(path, {}).get(method)
        resolver = hooks.get(hook) if isinstance(hooks, dict) else None
        return resolver if callable(resolver) else None

    def selected_operation_kind(self, title: str, path: str, method: str) -> str | None:
        return self.select_query_or_mutation_field.get(title, {}).get(path, {}).get(method)
