"""Tests for oasgraph/translate/oas.py."""

from __future__ import annotations

import pytest

from oasgraph.translate.oas import (
    count_operations,
    get_base_url,
    get_parameters,
    get_request_schema_and_names,
    get_response_schema_and_names,
    get_response_status_code,
    get_schema_target_type,
    get_servers,
    infer_resource_name_from_path,
    resolve_json_pointer,
    resolve_maybe_ref,
    resolve_ref,
    trim,
)
from oasgraph.translate.types import Operation, TargetType
from oasgraph.translate.warnings import UnresolvableReferenceError


class TestReferences:
    def test_resolve_local_ref(self, example_oas) -> None:
        user = resolve_ref("#/components/schemas/User", example_oas)
        assert user["required"] == ["name"]

    def test_external_ref_unsupported(self, example_oas) -> None:
        with pytest.raises(UnresolvableReferenceError):
            resolve_ref("other.yaml#/components/schemas/User", example_oas)

    def test_missing_ref(self, example_oas) -> None:
        with pytest.raises(UnresolvableReferenceError, match="Missing"):
            resolve_ref("#/components/schemas/Missing", example_oas)

    def test_escaped_pointer(self) -> None:
        assert resolve_json_pointer("/paths/~1users/0", {"paths": {"/users": ["a"]}}) == "a"

    def test_chained_refs(self) -> None:
        oas = {"components": {"schemas": {"A": {"$ref": "#/components/schemas/B"}, "B": {"type": "string"}}}}
        assert resolve_maybe_ref({"$ref": "#/components/schemas/A"}, oas) == {"type": "string"}

    def test_circular_refs(self) -> None:
        oas = {
            "components": {
                "schemas": {
                    "A": {"$ref": "#/components/schemas/B"},
                    "B": {"$ref": "#/components/schemas/A"},
                }
            }
        }
        with pytest.raises(UnresolvableReferenceError, match="Circular"):
            resolve_maybe_ref({"$ref": "#/components/schemas/A"}, oas)

    def test_non_ref_untouched(self) -> None:
        assert resolve_maybe_ref({"type": "string"}, {}) == {"type": "string"}


class TestOperations:
    def test_count_operations(self, example_oas) -> None:
        assert count_operations(example_oas) == (6, 4, 2)

    def test_resource_name_from_path(self) -> None:
        assert infer_resource_name_from_path("/users/{id}/car-keys") == "usersCar-keys"
        assert infer_resource_name_from_path("/{id}") == ""

    def test_operation_parameters_override_path_item(self) -> None:
        oas = {
            "paths": {
                "/users/{id}": {
                    "parameters": [{"name": "id", "in": "path", "description": "path level"}],
                    "get": {
                        "parameters": [
                            {"name": "id", "in": "path", "description": "operation level"},
                            {"name": "id", "in": "query"},
                        ]
                    },
                }
            }
        }
        params = get_parameters(oas, "/users/{id}", "get")
        assert [(p["name"], p["in"]) for p in params] == [("id", "path"), ("id", "query")]
        assert params[0]["description"] == "operation level"

    def test_server_precedence(self) -> None:
        oas = {
            "servers": [{"url": "http://document"}],
            "paths": {
                "/a": {"servers": [{"url": "http://path-item"}], "get": {}},
                "/b": {"get": {"servers": [{"url": "http://operation"}]}},
                "/c": {"get": {}},
            },
        }
        assert get_servers(oas, "/a", "get") == [{"url": "http://path-item"}]
        assert get_servers(oas, "/b", "get") == [{"url": "http://operation"}]
        assert get_servers(oas, "/c", "get") == [{"url": "http://document"}]

    def test_base_url_with_variables(self) -> None:
        operation = Operation(
            operation_id="x",
            operation_string="GET /",
            path="/",
            method="get",
            response_definition=0,
            oas={},
            servers=[{"url": "https://{env}.api.test/v1/", "variables": {"env": {"default": "prod"}}}],
        )
        assert get_base_url(operation) == "https://prod.api.test/v1"


class TestBodies:
    def test_status_codes_from_yaml_integers(self) -> None:
        oas = {"paths": {"/a": {"get": {"responses": {200: {}, 404: {}}}}}}
        assert get_response_status_code(oas, "/a", "get") == ("200", ["200"])

    def test_multiple_success_codes(self) -> None:
        oas = {"paths": {"/a": {"get": {"responses": {"201": {}, "200": {}, "default": {}}}}}}
        assert get_response_status_code(oas, "/a", "get") == ("200", ["200", "201"])

    def test_lowest_success_code_wins(self) -> None:
        oas = {"paths": {"/a": {"get": {"responses": {"2XX": {}, "201": {}, "200": {}}}}}}
        assert get_response_status_code(oas, "/a", "get") == ("200", ["200", "201", "2XX"])

    def test_non_json_request_body_is_a_string_placeholder(self) -> None:
        oas = {
            "paths": {
                "/a": {
                    "post": {
                        "requestBody": {"content": {"application/xml": {"schema": {"type": "object"}}}}
                    }
                }
            }
        }
        content_type, schema, names, required = get_request_schema_and_names(oas, "/a", "post")
        assert content_type == "application/xml"
        assert schema == {"description": "application/xml request placeholder object", "type": "string"}
        assert names == {"from_path": "applicationXml"}
        assert required is False

    def test_response_names(self, example_oas) -> None:
        content_type, schema, names = get_response_schema_and_names(
            example_oas, "/users/{username}", "get", "200"
        )
        assert content_type == "application/json"
        assert schema is not None and schema["description"] == "A user"
        assert names == {"from_path": "users", "from_ref": "User"}

    def test_empty_response(self, example_oas) -> None:
        assert get_response_schema_and_names(example_oas, "/users/{username}", "delete", "204") == (
            None,
            None,
            {},
        )

    def test_empty_response_filled(self, example_oas) -> None:
        content_type, schema, names = get_response_schema_and_names(
            example_oas, "/users/{username}", "delete", "204", fill_empty_responses=True
        )
        assert content_type == "application/json"
        assert schema is not None and schema["type"] == "string"
        assert names == {"from_path": "users"}


class TestTargetType:
    @pytest.mark.parametrize(
        ("schema", "expected"),
        [
            ({"type": "string", "enum": ["a"]}, TargetType.ENUM),
            ({"oneOf": [{}]}, TargetType.UNION),
            ({"anyOf": [{}]}, TargetType.ANY_OF),
            ({"type": "object"}, TargetType.OBJECT),
            ({"type": "object", "additionalProperties": {"type": "string"}}, TargetType.JSON),
            ({"properties": {"a": {}}}, TargetType.OBJECT),
            ({"type": "array", "items": {}}, TargetType.LIST),
            ({"type": "integer"}, TargetType.INTEGER),
            ({"type": "integer", "format": "int64"}, TargetType.NUMBER),
            ({"type": "number"}, TargetType.NUMBER),
            ({"type": "string", "format": "uuid"}, TargetType.ID),
            ({"type": "string"}, TargetType.STRING),
            ({"type": "boolean"}, TargetType.BOOLEAN),
            ({}, TargetType.JSON),
        ],
    )
    def test_classification(self, schema, expected) -> None:
        assert get_schema_target_type(schema) is expected

    def test_non_mapping(self) -> None:
        assert get_schema_target_type("string") is None


def test_trim() -> None:
    assert trim("abcdef", 3) == "abc..."
    assert trim({"a": 1}, 100) == '{"a": 1}'
