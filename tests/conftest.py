"""Shared test fixtures for oasgraph tests."""

from __future__ import annotations

import json
from typing import Any
from unittest.mock import MagicMock

import pytest

from oasgraph.formats.options import Options
from oasgraph.translate.preprocessor import preprocess_oas
from oasgraph.translate.types import BuildContext

BASE_URL = "http://localhost:3000/api"


def _json(schema_ref: str) -> dict[str, Any]:
    return {"application/json": {"schema": {"$ref": f"#/components/schemas/{schema_ref}"}}}


def make_example_oas() -> dict[str, Any]:
    """A small API with users, companies, a link, a body and a text response."""
    username_param = {"name": "username", "in": "path", "required": True, "schema": {"type": "string"}}
    return {
        "openapi": "3.0.0",
        "info": {"title": "Example API", "version": "1.0.0"},
        "servers": [{"url": BASE_URL}],
        "paths": {
            "/users/{username}": {
                "get": {
                    "operationId": "getUserByUsername",
                    "description": "Returns a user",
                    "parameters": [username_param],
                    "responses": {
                        "200": {
                            "description": "A user",
                            "content": _json("User"),
                            "links": {
                                "employerCompany": {
                                    "operationId": "getCompanyById",
                                    "parameters": {"id": "$response.body#/employerId"},
                                }
                            },
                        }
                    },
                },
                "delete": {
                    "operationId": "deleteUser",
                    "parameters": [username_param],
                    "responses": {"204": {"description": "Deleted"}},
                },
            },
            "/users": {
                "get": {
                    "operationId": "getUsers",
                    "responses": {
                        "200": {
                            "description": "All users",
                            "content": {
                                "application/json": {
                                    "schema": {
                                        "type": "array",
                                        "items": {"$ref": "#/components/schemas/User"},
                                    }
                                }
                            },
                        }
                    },
                },
                "post": {
                    "operationId": "createUser",
                    "requestBody": {"required": True, "content": _json("User")},
                    "responses": {"201": {"description": "Created", "content": _json("User")}},
                },
            },
            "/companies/{id}": {
                "get": {
                    "operationId": "getCompanyById",
                    "parameters": [
                        {"name": "id", "in": "path", "required": True, "schema": {"type": "string"}}
                    ],
                    "responses": {"200": {"description": "A company", "content": _json("Company")}},
                }
            },
            "/status": {
                "get": {
                    "operationId": "getStatus",
                    "responses": {
                        "200": {
                            "description": "Plain text status",
                            "content": {"text/plain": {"schema": {"type": "string"}}},
                        }
                    },
                }
            },
        },
        "components": {
            "schemas": {
                "User": {
                    "type": "object",
                    "description": "A user",
                    "required": ["name"],
                    "properties": {
                        "name": {"type": "string"},
                        "employerId": {"type": "string"},
                        "followers": {"type": "integer", "format": "int64"},
                        "address": {"$ref": "#/components/schemas/Address"},
                        "status": {"type": "string", "enum": ["active", "in-active"]},
                    },
                },
                "Address": {
                    "type": "object",
                    "properties": {"street": {"type": "string"}, "city": {"type": "string"}},
                },
                "Company": {
                    "type": "object",
                    "properties": {"id": {"type": "string"}, "name": {"type": "string"}},
                },
            }
        },
    }


def make_auth_oas() -> dict[str, Any]:
    """An API whose operations are protected by an API key or basic auth."""

    def endpoint(schema_ref: str, security: list[dict[str, list[str]]] | None) -> dict[str, Any]:
        op: dict[str, Any] = {
            "parameters": [
                {"name": "id", "in": "path", "required": True, "schema": {"type": "string"}}
            ],
            "responses": {"200": {"description": "OK", "content": _json(schema_ref)}},
        }
        if security is not None:
            op["security"] = security
        return op

    return {
        "openapi": "3.0.0",
        "info": {"title": "Secure API", "version": "1.0.0"},
        "servers": [{"url": BASE_URL}],
        "paths": {
            "/patents/{id}": {"get": endpoint("Patent", [{"api_key": []}])},
            "/projects/{id}": {"get": endpoint("Project", [{"basic_auth": []}])},
            "/notes/{id}": {"get": endpoint("Note", None)},
        },
        "components": {
            "schemas": {
                "Patent": {"type": "object", "properties": {"id": {"type": "string"}, "title": {"type": "string"}}},
                "Project": {"type": "object", "properties": {"id": {"type": "string"}, "name": {"type": "string"}}},
                "Note": {"type": "object", "properties": {"id": {"type": "string"}, "text": {"type": "string"}}},
            },
            "securitySchemes": {
                "api_key": {"type": "apiKey", "in": "header", "name": "X-API-Key"},
                "basic_auth": {"type": "http", "scheme": "basic"},
                "oauth": {"type": "oauth2", "flows": {}},
            },
        },
    }


CALLBACK_URL = "/users/{$request.path.userName}/devices/{$request.body#/device-type}"


def make_callback_oas() -> dict[str, Any]:
    """An API that notifies a callback URL of every device registered for a user."""
    return {
        "openapi": "3.0.0",
        "info": {"title": "Device API", "version": "1.0.0"},
        "servers": [{"url": BASE_URL}],
        "paths": {
            "/users/{userName}/devices": {
                "post": {
                    "operationId": "postUserDevice",
                    "parameters": [
                        {"name": "userName", "in": "path", "required": True, "schema": {"type": "string"}}
                    ],
                    "requestBody": {"required": True, "content": _json("Device")},
                    "responses": {"201": {"description": "Created", "content": _json("Device")}},
                    "callbacks": {
                        "devicesEvent": {
                            CALLBACK_URL: {
                                "post": {
                                    "operationId": "devicesEventListener",
                                    "description": "A device was registered",
                                    "requestBody": {"content": _json("Device")},
                                    "responses": {"200": {"description": "Received"}},
                                }
                            }
                        }
                    },
                }
            }
        },
        "components": {
            "schemas": {
                "Device": {
                    "type": "object",
                    "properties": {"name": {"type": "string"}, "device-type": {"type": "string"}},
                }
            }
        },
    }


def make_response(
    status_code: int = 200,
    json_body: Any = None,
    text: str | None = None,
    headers: dict[str, str] | None = None,
) -> MagicMock:
    """A stand-in for requests.Response."""
    response = MagicMock()
    response.status_code = status_code
    response_headers = dict(headers or {})
    if json_body is not None:
        text = json.dumps(json_body)
        response_headers.setdefault("content-type", "application/json")
    response.text = text or ""
    response.headers = response_headers
    response.json.side_effect = lambda: json.loads(response.text)
    return response


def make_session(routes: dict[tuple[str, str], MagicMock]) -> MagicMock:
    """A stand-in for requests.Session answering (METHOD, url) from *routes*."""
    session = MagicMock()

    def request(method: str, url: str, **kwargs: Any) -> MagicMock:
        return routes[(method, url)]

    session.request.side_effect = request
    return session


def preprocess(oas: dict[str, Any], **options: Any) -> BuildContext:
    return preprocess_oas([oas], Options(**options))


@pytest.fixture
def example_oas() -> dict[str, Any]:
    return make_example_oas()


@pytest.fixture
def auth_oas() -> dict[str, Any]:
    return make_auth_oas()


@pytest.fixture
def callback_oas() -> dict[str, Any]:
    return make_callback_oas()
