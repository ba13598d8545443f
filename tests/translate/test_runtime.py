"""Tests for oasgraph/translate/runtime.py."""

from __future__ import annotations

import pytest

from oasgraph.helpers.naming import CaseStyle
from oasgraph.translate.runtime import (
    callback_argument_name,
    callback_expressions,
    is_runtime_expression,
    resolve_callback_topic,
    resolve_link_parameter,
)
from oasgraph.translate.types import PassthroughState
from oasgraph.translate.warnings import RuntimeExpressionError


@pytest.fixture
def state() -> PassthroughState:
    return PassthroughState(
        used_params={"username": "ada", "userName": "ada-sane"},
        used_payload={"name": "Ada", "tags": ["a", "b"]},
        used_request={
            "method": "GET",
            "url": "http://localhost:3000/api/users/ada",
            "headers": {"X-Request-Id": "r1"},
        },
        used_status_code="200",
        response_headers={"Location": "/users/ada"},
    )


SOURCE = {"employerId": "42", "items": [{"id": "a"}, {"id": "b"}], "a/b": 1}


class TestResolveLinkParameter:
    @pytest.mark.parametrize(
        "expression,expected",
        [
            ("$response.body#/employerId", "42"),
            ("$response.body#/employer_id", "42"),
            ("$response.body#/items/1/id", "b"),
            ("$response.body#/a~1b", 1),
            ("$response.body", SOURCE),
            ("$request.body#/name", "Ada"),
            ("$request.body#/tags/0", "a"),
            ("$request.path.username", "ada"),
            ("$request.query.user_name", "ada-sane"),
            ("$request.header.x-request-id", "r1"),
            ("$response.header.location", "/users/ada"),
            ("$url", "http://localhost:3000/api/users/ada"),
            ("$method", "GET"),
            ("$statusCode", "200"),
        ],
    )
    def test_expressions(self, state: PassthroughState, expression: str, expected: object) -> None:
        assert resolve_link_parameter(expression, SOURCE, state) == expected

    def test_embedded_expressions(self, state: PassthroughState) -> None:
        value = "/users/{$request.path.username}/employers/{$response.body#/employerId}"
        assert resolve_link_parameter(value, SOURCE, state) == "/users/ada/employers/42"

    @pytest.mark.parametrize("constant", [5, "plain", True, None])
    def test_constants(self, state: PassthroughState, constant: object) -> None:
        assert resolve_link_parameter(constant, SOURCE, state) == constant

    def test_invalid_expression(self, state: PassthroughState) -> None:
        with pytest.raises(RuntimeExpressionError, match="is an invalid runtime expression"):
            resolve_link_parameter("$foo.bar", SOURCE, state)

    @pytest.mark.parametrize(
        "expression", ["$response.body#/missing", "$response.body#/items/5/id", "$response.body#/items/x"]
    )
    def test_pointer_to_nothing(self, state: PassthroughState, expression: str) -> None:
        with pytest.raises(RuntimeExpressionError, match="does not point to a value") as exc_info:
            resolve_link_parameter(expression, SOURCE, state)
        assert exc_info.value.details == {"expression": expression}

    def test_simple_names_body(self) -> None:
        source = {"employerid": "42"}
        assert resolve_link_parameter("$response.body#/employer-id", source, None, CaseStyle.SIMPLE) == "42"
        with pytest.raises(RuntimeExpressionError, match="does not point to a value"):
            resolve_link_parameter("$response.body#/employer-id", source, None)

    def test_simple_names_parameters(self) -> None:
        state = PassthroughState(used_params={"userid": "ada"})
        assert resolve_link_parameter("$request.path.user-id", SOURCE, state, CaseStyle.SIMPLE) == "ada"

    def test_body_without_state(self) -> None:
        assert resolve_link_parameter("$response.body#/employerId", SOURCE, None) == "42"

    @pytest.mark.parametrize("expression", ["$statusCode", "$url", "$response.header.location", "$request.path.id"])
    def test_state_needs_execution_context(self, expression: str) -> None:
        with pytest.raises(RuntimeExpressionError, match="without an execution context"):
            resolve_link_parameter(expression, SOURCE, None)


def test_is_runtime_expression() -> None:
    assert is_runtime_expression("$response.body")
    assert not is_runtime_expression("response")
    assert not is_runtime_expression(42)


class TestCallbackTopics:
    URL = "/users/{$request.path.user_name}/devices/{$request.body#/device-type}"

    def test_expressions(self) -> None:
        assert callback_expressions(self.URL) == ["$request.path.user_name", "$request.body#/device-type"]
        assert callback_expressions("$request.body#/callbackUrl") == ["$request.body#/callbackUrl"]
        assert callback_expressions("/static/{id}") == []

    @pytest.mark.parametrize(
        "expression,expected",
        [
            ("$request.path.user_name", "user_name"),
            ("$request.query.id", "id"),
            ("$request.body#/device-type", "device-type"),
            ("$request.body#/hook/url", "hook/url"),
            ("$url", "url"),
        ],
    )
    def test_argument_names(self, expression: str, expected: str) -> None:
        assert callback_argument_name(expression) == expected

    def test_topic(self) -> None:
        args = {"userName": "ada", "deviceType": "phone"}
        assert resolve_callback_topic(self.URL, args, CaseStyle.CAMEL_CASE) == "/users/ada/devices/phone"

    def test_topic_with_simple_names(self) -> None:
        args = {"user_name": "ada", "devicetype": "phone"}
        assert resolve_callback_topic(self.URL, args, CaseStyle.SIMPLE) == "/users/ada/devices/phone"

    def test_bare_expression_topic(self) -> None:
        topic = resolve_callback_topic("$request.body#/callbackUrl", {"callbackUrl": "http://hook"}, CaseStyle.CAMEL_CASE)
        assert topic == "http://hook"
