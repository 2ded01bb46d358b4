"""
Request builder for outbound calls to the external resource API.

Turns an ``OperationDescriptor`` into a ready-to-send ``httpx.Request``:
path placeholders are substituted and percent-encoded, query parameters are
appended in the order given, default headers are merged under the caller's,
and the body is encoded as JSON or as an urlencoded form. Every failure here
is raised as ``InvalidDescriptorError`` before any I/O happens.
"""

import json
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from urllib.parse import quote, urlencode

import httpx
from pydantic import BaseModel

from resource_proxy.errors import InvalidDescriptorError
from resource_proxy.http_client import build_timeout
from resource_proxy.settings import Settings

JSON_MEDIA_TYPE = "application/json"
FORM_MEDIA_TYPE = "application/x-www-form-urlencoded"

DEFAULT_HEADERS: Mapping[str, str] = {
    "Content-Type": JSON_MEDIA_TYPE,
    "Accept": JSON_MEDIA_TYPE,
}

ALLOWED_METHODS = frozenset({"GET", "POST", "PUT", "PATCH", "DELETE"})

_PLACEHOLDER = re.compile(r"\{(\w+)\}")


class BodyEncoding(str, Enum):
    JSON = "json"
    FORM = "form-urlencoded"
    NONE = "none"


@dataclass(frozen=True, slots=True)
class OperationDescriptor:
    """Caller-owned description of a single outbound call."""

    method: str
    path: str
    path_params: Mapping[str, Any] = field(default_factory=dict)
    query_params: Mapping[str, Any | None] = field(default_factory=dict)
    headers: Mapping[str, str] = field(default_factory=dict)
    body: Any = None
    encoding: BodyEncoding = BodyEncoding.NONE


def expand_path(template: str, path_params: Mapping[str, Any]) -> str:
    """Substitute every ``{name}`` placeholder with its percent-encoded binding."""
    if not template.startswith("/") or template.startswith("//") or "://" in template:
        raise InvalidDescriptorError(
            f"Path template must be relative to the base URL: {template!r}"
        )

    placeholders = _PLACEHOLDER.findall(template)
    missing = [name for name in placeholders if name not in path_params]
    if missing:
        raise InvalidDescriptorError(
            f"Path template {template!r} has unbound placeholders: {', '.join(missing)}"
        )
    extraneous = sorted(set(path_params) - set(placeholders))
    if extraneous:
        raise InvalidDescriptorError(
            f"Path template {template!r} has no placeholders for: {', '.join(extraneous)}"
        )

    return _PLACEHOLDER.sub(
        lambda match: quote(str(path_params[match.group(1)]), safe=""),
        template,
    )


def encode_query(query_params: Mapping[str, Any | None]) -> str:
    """Encode query parameters in order, dropping absent values."""
    return urlencode(
        [(key, str(value)) for key, value in query_params.items() if value is not None]
    )


def build_target(descriptor: OperationDescriptor) -> str:
    """Path plus query string, relative to the base URL."""
    path = expand_path(descriptor.path, descriptor.path_params)
    query = encode_query(descriptor.query_params)
    return f"{path}?{query}" if query else path


def _json_body(body: Any) -> bytes:
    if isinstance(body, BaseModel):
        payload = body.model_dump(mode="json", by_alias=True)
    elif isinstance(body, Mapping):
        payload = dict(body)
    else:
        raise InvalidDescriptorError(
            f"JSON encoding expects a model or mapping body, got {type(body).__name__}."
        )
    try:
        return json.dumps(payload, allow_nan=False).encode("utf-8")
    except (TypeError, ValueError) as exc:
        raise InvalidDescriptorError(f"Body is not JSON serializable: {exc}") from exc


def _form_body(body: Any) -> bytes:
    if not isinstance(body, Mapping):
        raise InvalidDescriptorError(
            f"Form encoding expects a flat mapping body, got {type(body).__name__}."
        )
    return urlencode(
        [(str(key), str(value)) for key, value in body.items() if value is not None]
    ).encode("ascii")


def build_request(settings: Settings, descriptor: OperationDescriptor) -> httpx.Request:
    """Build the outbound request for ``descriptor`` against the configured base URL."""
    method = descriptor.method.upper()
    if method not in ALLOWED_METHODS:
        raise InvalidDescriptorError(f"Unsupported HTTP method: {descriptor.method!r}")

    target = build_target(descriptor)

    headers = httpx.Headers(DEFAULT_HEADERS)
    headers.update(descriptor.headers)

    content: bytes | None = None
    if descriptor.encoding is BodyEncoding.JSON:
        if descriptor.body is None:
            raise InvalidDescriptorError("JSON encoding requires a body.")
        content = _json_body(descriptor.body)
    elif descriptor.encoding is BodyEncoding.FORM:
        if descriptor.body is None:
            raise InvalidDescriptorError("Form encoding requires a body.")
        content = _form_body(descriptor.body)
        # The form encoding is only correct under this content type.
        headers["Content-Type"] = FORM_MEDIA_TYPE
    elif descriptor.body is not None:
        raise InvalidDescriptorError("A body was supplied but the encoding is 'none'.")

    return httpx.Request(
        method,
        f"{settings.external_api_base_url}{target}",
        headers=headers,
        content=content,
        extensions={"timeout": build_timeout(settings).as_dict()},
    )
