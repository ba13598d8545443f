"""Helpers to read OpenAPI 3 documents: references, schemas, parameters, servers."""

from __future__ import annotations

import json
import re
from typing import Any, cast

from oasgraph.helpers.naming import capitalize, uncapitalize
from oasgraph.translate.types import Operation, ProcessedSecurityScheme, TargetType
from oasgraph.translate.warnings import UnresolvableReferenceError

OAS_OPERATIONS = ("get", "put", "post", "patch", "delete", "options", "head")

_SUCCESS_STATUS = re.compile(r"2[0-9]{2}|2XX")


# -- References ---------------------------------------------------------------


def _unescape_pointer_token(token: str) -> str:
    return token.replace("~1", "/").replace("~0", "~")


def resolve_json_pointer(pointer: str, value: Any) -> Any:
    """Follow a JSON pointer (``/a/b/0``) inside a JSON value.

    Raises KeyError when a token does not exist.
    """
    if pointer in ("", "/"):
        return value
    current = value
    for token in pointer.lstrip("/").split("/"):
        token = _unescape_pointer_token(token)
        if isinstance(current, list):
            current = current[int(token)]
        elif isinstance(current, dict):
            current = cast(dict[str, Any], current)[token]
        else:
            raise KeyError(token)
    return current


def resolve_ref(ref: str, oas: dict[str, Any]) -> Any:
    """Resolve a local ``$ref`` such as ``#/components/schemas/User``."""
    if not ref.startswith("#"):
        raise UnresolvableReferenceError(
            f"Cannot resolve external reference '{ref}'", details={"ref": ref}
        )
    try:
        return resolve_json_pointer(ref[1:], oas)
    except (KeyError, IndexError, ValueError) as e:
        raise UnresolvableReferenceError(
            f"Cannot resolve reference '{ref}'", details={"ref": ref}
        ) from e


def resolve_maybe_ref(obj: Any, oas: dict[str, Any]) -> Any:
    """Resolve *obj* while it is a reference object."""
    seen: set[str] = set()
    while isinstance(obj, dict) and isinstance(obj.get("$ref"), str):
        ref = cast(str, obj["$ref"])
        if ref in seen:
            raise UnresolvableReferenceError(f"Circular reference '{ref}'", details={"ref": ref})
        seen.add(ref)
        obj = resolve_ref(ref, oas)
    return obj


def ref_name(ref: str) -> str:
    """Last segment of a reference, used as a naming hint."""
    return ref.split("/")[-1]


# -- Operations ---------------------------------------------------------------


def is_operation(method: str) -> bool:
    return method.lower() in OAS_OPERATIONS


def count_operations(oas: dict[str, Any]) -> tuple[int, int, int]:
    """Return (total, query, mutation) operation counts of a document."""
    total = query = 0
    for path_item in oas.get("paths", {}).values():
        for method in path_item:
            if is_operation(method):
                total += 1
                if method.lower() == "get":
                    query += 1
    return total, query, total - query


def format_operation_string(method: str, path: str, title: str | None = None) -> str:
    if title:
        return f"{title} {method.upper()} {path}"
    return f"{method.upper()} {path}"


def infer_resource_name_from_path(path: str) -> str:
    """Name a resource from its path, dropping path parameters.

    >>> infer_resource_name_from_path("/users/{id}/car-keys")
    'usersCar-keys'
    """
    parts = [p for p in path.split("/") if p and "{" not in p and "}" not in p]
    if not parts:
        return ""
    return uncapitalize(parts[0] + "".join(capitalize(p) for p in parts[1:]))


def get_base_url(operation: Operation) -> str:
    """URL of the first server of an operation, without trailing slash."""
    server = operation.servers[0] if operation.servers else {"url": "/"}
    url: str = server.get("url", "/")
    for name, variable in (server.get("variables") or {}).items():
        if "default" in variable:
            url = url.replace("{" + name + "}", str(variable["default"]))
    return url.rstrip("/")


def get_servers(oas: dict[str, Any], path: str, method: str) -> list[dict[str, Any]]:
    """Servers of an operation: operation > path item > document > ``/``."""
    path_item = oas["paths"][path]
    for candidate in (path_item[method].get("servers"), path_item.get("servers"), oas.get("servers")):
        if isinstance(candidate, list) and candidate:
            return cast(list[dict[str, Any]], candidate)
    return [{"url": "/"}]


def get_parameters(oas: dict[str, Any], path: str, method: str) -> list[dict[str, Any]]:
    """Path item parameters followed by operation parameters, references resolved.

    An operation parameter overrides a path item parameter with the same
    name and location.
    """
    path_item = oas["paths"][path]
    merged: dict[tuple[str, str], dict[str, Any]] = {}
    unnamed: list[dict[str, Any]] = []
    for source in (path_item.get("parameters"), path_item[method].get("parameters")):
        if not isinstance(source, list):
            continue
        for raw in source:
            param = resolve_maybe_ref(raw, oas)
            if not isinstance(param, dict):
                continue
            param = cast(dict[str, Any], param)
            if "name" not in param:
                unnamed.append(param)
                continue
            merged[(param["name"], param.get("in", ""))] = param
    return list(merged.values()) + unnamed


def get_security_requirements(
    oas: dict[str, Any],
    path: str,
    method: str,
    security: dict[str, ProcessedSecurityScheme],
) -> list[str]:
    """Scheme keys required by an operation (document-level first), OAuth2 excluded."""
    results: list[str] = []
    operation = oas["paths"][path][method]
    for requirements in (oas.get("security"), operation.get("security")):
        for requirement in requirements or []:
            for key in requirement:
                scheme = security.get(key)
                if scheme is None or scheme.definition.get("type") == "oauth2":
                    continue
                if key not in results:
                    results.append(key)
    return results


# -- Request and response bodies ----------------------------------------------


def is_json_content_type(content_type: str | None) -> bool:
    return content_type is not None and "application/json" in content_type


def _pick_content(content: dict[str, Any]) -> tuple[str | None, Any]:
    """Prefer application/json, otherwise the first declared content type."""
    if not content:
        return None, None
    if "application/json" in content:
        return "application/json", (content["application/json"] or {}).get("schema")
    content_type = next(iter(content))
    return content_type, (content[content_type] or {}).get("schema")


def _names_for(schema: dict[str, Any], path: str) -> dict[str, str]:
    names = {"from_path": infer_resource_name_from_path(path)}
    if isinstance(schema.get("$ref"), str):
        names["from_ref"] = ref_name(schema["$ref"])
    return names


def _placeholder_schema(description: str, original: Any) -> dict[str, Any]:
    if isinstance(original, dict) and isinstance(original.get("description"), str):
        description += f"\n\nOriginal top level description: '{original['description']}'"
    return {"description": description, "type": "string"}


def get_request_schema_and_names(
    oas: dict[str, Any], path: str, method: str, endpoint: dict[str, Any] | None = None
) -> tuple[str | None, dict[str, Any] | None, dict[str, str], bool]:
    """Return (content type, schema, naming hints, required) of a request body.

    *endpoint* is the operation object when it does not live under
    ``paths``, as for callbacks.
    """
    if endpoint is None:
        endpoint = oas["paths"][path][method]
    request_body = resolve_maybe_ref(endpoint.get("requestBody"), oas)
    if not isinstance(request_body, dict):
        return None, None, {}, False

    content_type, schema = _pick_content(request_body.get("content") or {})
    if not isinstance(schema, dict):
        return None, None, {}, False

    required = bool(request_body.get("required", False))
    names = _names_for(schema, path)
    schema = resolve_maybe_ref(schema, oas)
    if isinstance(schema.get("title"), str):
        names["from_schema"] = schema["title"]

    if content_type != "application/json":
        first, *rest = (content_type or "").split("/")
        names = {"from_path": uncapitalize(first + "".join(capitalize(t) for t in rest))}
        schema = _placeholder_schema(f"{content_type} request placeholder object", schema)

    return content_type, schema, names, required


def _response_for(oas: dict[str, Any], path: str, method: str, status_code: str) -> Any:
    # YAML parses unquoted status codes as integers
    responses = oas["paths"][path][method].get("responses") or {}
    for code, response in responses.items():
        if str(code) == status_code:
            return response
    return None


def get_response_status_code(oas: dict[str, Any], path: str, method: str) -> tuple[str | None, list[str]]:
    """First successful status code of an operation, and all successful codes."""
    responses = oas["paths"][path][method].get("responses")
    if not isinstance(responses, dict):
        return None, []
    # "2XX" sorts after every explicit code
    codes = sorted(str(code) for code in responses if _SUCCESS_STATUS.fullmatch(str(code)))
    return (codes[0] if codes else None), codes


def get_response_schema_and_names(
    oas: dict[str, Any],
    path: str,
    method: str,
    status_code: str | None,
    fill_empty_responses: bool = False,
) -> tuple[str | None, dict[str, Any] | None, dict[str, str]]:
    """Return (content type, schema, naming hints) of the successful response.

    Non-JSON content is exposed as a single string; an empty response gets a
    string placeholder when *fill_empty_responses* is set.
    """
    if status_code is None:
        return None, None, {}

    response = resolve_maybe_ref(_response_for(oas, path, method, status_code), oas)
    content_type, schema = (None, None)
    if isinstance(response, dict):
        content_type, schema = _pick_content(response.get("content") or {})

    if isinstance(schema, dict):
        names = _names_for(schema, path)
        schema = resolve_maybe_ref(schema, oas)
        if isinstance(schema.get("title"), str):
            names["from_schema"] = schema["title"]
        if content_type != "application/json":
            schema = _placeholder_schema(
                "Placeholder object to access non-application/json response bodies", schema
            )
        return content_type, schema, names

    if fill_empty_responses and (status_code == "204" or content_type is None):
        return (
            "application/json",
            {
                "description": "Placeholder object to support operations with no response schema",
                "type": "string",
            },
            {"from_path": infer_resource_name_from_path(path)},
        )
    return content_type, None, {}


def get_links(
    oas: dict[str, Any], path: str, method: str, status_code: str | None
) -> dict[str, dict[str, Any]]:
    """Links declared on the successful response, references resolved."""
    if status_code is None:
        return {}
    response = resolve_maybe_ref(_response_for(oas, path, method, status_code), oas)
    if not isinstance(response, dict) or not isinstance(response.get("links"), dict):
        return {}
    return {
        key: cast(dict[str, Any], resolve_maybe_ref(link, oas))
        for key, link in response["links"].items()
    }


def get_callbacks(
    oas: dict[str, Any], path: str, method: str
) -> list[tuple[str, str, dict[str, Any]]]:
    """(callback name, callback URL expression, path item) of every callback of an operation."""
    results: list[tuple[str, str, dict[str, Any]]] = []
    callbacks = oas["paths"][path][method].get("callbacks")
    if not isinstance(callbacks, dict):
        return results
    for name, callback in callbacks.items():
        callback = resolve_maybe_ref(callback, oas)
        if not isinstance(callback, dict):
            continue
        for expression, path_item in callback.items():
            path_item = resolve_maybe_ref(path_item, oas)
            if isinstance(path_item, dict):
                results.append((name, expression, cast(dict[str, Any], path_item)))
    return results


# -- Schemas ------------------------------------------------------------------


def get_schema_target_type(schema: Any) -> TargetType | None:
    """Classify a (collapsed) schema. Returns None for non-mapping input."""
    if not isinstance(schema, dict):
        return None
    schema = cast(dict[str, Any], schema)

    if isinstance(schema.get("enum"), list):
        return TargetType.ENUM
    if isinstance(schema.get("oneOf"), list):
        return TargetType.UNION
    if isinstance(schema.get("anyOf"), list):
        return TargetType.ANY_OF

    if schema.get("type") == "object":
        if isinstance(schema.get("additionalProperties"), dict):
            return TargetType.JSON
        return TargetType.OBJECT
    if "properties" in schema:
        return TargetType.OBJECT
    if "items" in schema or schema.get("type") == "array":
        return TargetType.LIST

    schema_type = schema.get("type")
    if schema_type == "integer":
        # Int is 32-bit in GraphQL
        return TargetType.NUMBER if schema.get("format") == "int64" else TargetType.INTEGER
    if schema_type == "string":
        return TargetType.ID if schema.get("format") == "uuid" else TargetType.STRING
    if schema_type == "number":
        return TargetType.NUMBER
    if schema_type == "boolean":
        return TargetType.BOOLEAN
    if "nullable" in schema:
        return TargetType.STRING
    return TargetType.JSON


def trim(value: Any, length: int) -> str:
    """Stringify *value* and cut it to *length* characters."""
    text = value if isinstance(value, str) else json.dumps(value, default=str)
    if len(text) > length:
        return text[:length] + "..."
    return text
