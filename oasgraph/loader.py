"""Load OpenAPI documents from files or URLs."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import requests
import yaml

from oasgraph.translate.warnings import OasGraphError


def load_oas(source: str | Path) -> dict[str, Any]:
    """Load an OpenAPI 3 document from a file path or an http(s) URL.

    YAML and JSON are both accepted. Swagger 2.0 documents are rejected.
    """
    text = _read(str(source))
    try:
        document = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise OasGraphError(f"Cannot parse '{source}'", details={"source": str(source)}) from e

    if not isinstance(document, dict):
        raise OasGraphError(f"'{source}' does not contain an object", details={"source": str(source)})
    if "swagger" in document:
        raise OasGraphError(
            f"'{source}' is a Swagger {document['swagger']} document; convert it to OpenAPI 3 first",
            details={"source": str(source)},
        )
    if not str(document.get("openapi", "")).startswith("3"):
        raise OasGraphError(f"'{source}' is not an OpenAPI 3 document", details={"source": str(source)})
    # YAML may produce non-string keys (e.g. status codes); normalize through JSON
    return json.loads(json.dumps(document, default=str))


def _read(source: str) -> str:
    if source.startswith(("http://", "https://")):
        response = requests.get(source, timeout=30)
        response.raise_for_status()
        return response.text
    path = Path(source)
    if not path.exists():
        raise OasGraphError(f"File not found: {source}", details={"source": source})
    return path.read_text()
