"""
Inbound HTTP surface of the resource proxy.

Every route forwards to one ``ResourceApiClient`` operation and renders the
result as JSON. Failures are rendered as error envelopes:
``{status, error, message, timestamp, path}``.
"""

import contextlib
import json
import logging
from collections.abc import AsyncIterator
from typing import Any

from pydantic import BaseModel, TypeAdapter, ValidationError
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Mount, Route

from resource_proxy.client import ResourceApiClient
from resource_proxy.errors import ExternalApiError, InvalidDescriptorError
from resource_proxy.models import ErrorEnvelope, PartialUpdate, ResourcePayload
from resource_proxy.settings import Settings

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1/external"

# Never forwarded to the upstream by the with-headers route.
_UNFORWARDED_HEADERS = frozenset(
    {
        "host",
        "content-length",
        "accept-encoding",
        "connection",
        "keep-alive",
        "transfer-encoding",
        "te",
        "upgrade",
        "proxy-authorization",
        "proxy-connection",
    }
)

_FORM_CONTENT_TYPES = frozenset({"application/x-www-form-urlencoded", "multipart/form-data"})

_partial_update_adapter = TypeAdapter(PartialUpdate)


class BadInboundRequest(ValueError):
    """Inbound request could not be turned into an operation."""


def _client(request: Request) -> ResourceApiClient:
    return request.app.state.api_client


def _render(value: Any, status_code: int = 200) -> JSONResponse:
    if isinstance(value, BaseModel):
        content = value.model_dump(mode="json", by_alias=True)
    elif isinstance(value, list):
        content = [item.model_dump(mode="json", by_alias=True) for item in value]
    else:
        content = TypeAdapter(Any).dump_python(value, mode="json", by_alias=True)
    return JSONResponse(content, status_code=status_code)


def _envelope_response(envelope: ErrorEnvelope) -> JSONResponse:
    return JSONResponse(envelope.to_wire(), status_code=envelope.status)


def _reject_constant(name: str) -> Any:
    raise ValueError(f"{name} is not a valid JSON value")


async def _json_body(request: Request) -> Any:
    try:
        return json.loads(await request.body(), parse_constant=_reject_constant)
    except (ValueError, UnicodeDecodeError) as exc:
        raise BadInboundRequest(f"Malformed JSON request body: {exc}") from exc


async def _resource_payload(request: Request) -> ResourcePayload:
    try:
        return ResourcePayload.model_validate(await _json_body(request))
    except ValidationError as exc:
        raise BadInboundRequest(f"Invalid resource payload: {exc}") from exc


def _resource_id(request: Request) -> int:
    return request.path_params["id"]


async def list_resources(request: Request) -> JSONResponse:
    logger.info("REST request to get all resources")
    return _render(await _client(request).list_resources(request_path=request.url.path))


async def get_resource(request: Request) -> JSONResponse:
    resource_id = _resource_id(request)
    logger.info("REST request to get resource by id: %s", resource_id)
    return _render(
        await _client(request).get_resource(resource_id, request_path=request.url.path)
    )


async def search_resources(request: Request) -> JSONResponse:
    raw_user_id = request.query_params.get("userId")
    if raw_user_id is None:
        raise BadInboundRequest("Required request parameter 'userId' is not present.")
    try:
        user_id = int(raw_user_id)
    except ValueError as exc:
        raise BadInboundRequest("Request parameter 'userId' must be an integer.") from exc

    logger.info("REST request to get resources by userId: %s", user_id)
    return _render(
        await _client(request).search_resources(user_id, request_path=request.url.path)
    )


async def create_resource(request: Request) -> JSONResponse:
    payload = await _resource_payload(request)
    logger.info("REST request to create resource: %s", payload)
    resource = await _client(request).create_resource(payload, request_path=request.url.path)
    return _render(resource, status_code=201)


async def submit_form(request: Request) -> JSONResponse:
    content_type = request.headers.get("content-type", "").split(";")[0].strip().lower()
    if content_type not in _FORM_CONTENT_TYPES:
        raise BadInboundRequest(f"Content type '{content_type or 'none'}' is not supported.")

    form_data = dict(request.query_params)
    async with request.form() as form:
        for key, value in form.multi_items():
            if not isinstance(value, str):
                raise BadInboundRequest(f"File uploads are not supported (field '{key}').")
            form_data[key] = value
    logger.info("REST request to submit form data: %s", form_data)
    resource = await _client(request).submit_form(form_data, request_path=request.url.path)
    return _render(resource, status_code=201)


async def update_resource(request: Request) -> JSONResponse:
    resource_id = _resource_id(request)
    payload = await _resource_payload(request)
    logger.info("REST request to update resource with id: %s", resource_id)
    return _render(
        await _client(request).update_resource(
            resource_id, payload, request_path=request.url.path
        )
    )


async def partial_update_resource(request: Request) -> JSONResponse:
    resource_id = _resource_id(request)
    try:
        updates = _partial_update_adapter.validate_python(await _json_body(request))
    except ValidationError as exc:
        raise BadInboundRequest(f"Partial update must be a JSON object: {exc}") from exc

    logger.info("REST request to partially update resource with id: %s", resource_id)
    return _render(
        await _client(request).partial_update_resource(
            resource_id, updates, request_path=request.url.path
        )
    )


async def delete_resource(request: Request) -> Response:
    resource_id = _resource_id(request)
    logger.info("REST request to delete resource with id: %s", resource_id)
    await _client(request).delete_resource(resource_id, request_path=request.url.path)
    return Response(status_code=204)


async def get_resource_with_headers(request: Request) -> JSONResponse:
    resource_id = _resource_id(request)
    headers = {
        key: value
        for key, value in request.headers.items()
        if key.lower() not in _UNFORWARDED_HEADERS
    }
    logger.info(
        "REST request to get resource with id: %s and headers: %s", resource_id, headers
    )
    return _render(
        await _client(request).get_resource_with_headers(
            resource_id, headers, request_path=request.url.path
        )
    )


async def get_resource_with_status_handling(request: Request) -> JSONResponse:
    resource_id = _resource_id(request)
    logger.info("REST request to get resource with id: %s with status handling", resource_id)
    return _render(
        await _client(request).get_resource_with_status_handling(
            resource_id, request_path=request.url.path
        )
    )


async def get_resource_with_full_response(request: Request) -> JSONResponse:
    resource_id = _resource_id(request)
    logger.info("REST request to get resource with id: %s with full response", resource_id)
    return _render(
        await _client(request).get_resource_with_full_response(
            resource_id, request_path=request.url.path
        )
    )


async def health(request: Request) -> JSONResponse:
    return JSONResponse({"status": "healthy"})


async def handle_external_api_error(request: Request, exc: ExternalApiError) -> JSONResponse:
    logger.error(
        "External API error: %s",
        exc,
        extra={"kind": exc.kind.value, "status_code": exc.status_code},
    )
    return _envelope_response(exc.envelope)


async def handle_bad_request(request: Request, exc: Exception) -> JSONResponse:
    logger.warning("Rejected inbound request: %s", exc)
    return _envelope_response(
        ErrorEnvelope(
            status=400,
            error="Bad Request",
            message=str(exc),
            path=request.url.path,
        )
    )


async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unexpected error occurred: %s", exc, exc_info=exc)
    return _envelope_response(
        ErrorEnvelope(
            status=500,
            error="Internal Server Error",
            message=f"An unexpected error occurred: {exc}",
            path=request.url.path,
        )
    )


resource_routes = [
    Route("/resources", list_resources, methods=["GET"]),
    Route("/resources", create_resource, methods=["POST"]),
    Route("/resources/search", search_resources, methods=["GET"]),
    Route("/resources/form", submit_form, methods=["POST"]),
    Route("/resources/{id:int}", get_resource, methods=["GET"]),
    Route("/resources/{id:int}", update_resource, methods=["PUT"]),
    Route("/resources/{id:int}", partial_update_resource, methods=["PATCH"]),
    Route("/resources/{id:int}", delete_resource, methods=["DELETE"]),
    Route("/resources/{id:int}/with-headers", get_resource_with_headers, methods=["GET"]),
    Route(
        "/resources/{id:int}/with-status-handling",
        get_resource_with_status_handling,
        methods=["GET"],
    ),
    Route(
        "/resources/{id:int}/full-response",
        get_resource_with_full_response,
        methods=["GET"],
    ),
]


def build_app(settings: Settings, *, api_client: ResourceApiClient | None = None) -> Starlette:
    """Create the inbound application.

    When ``api_client`` is given it is used as-is and left open on shutdown;
    otherwise a client is built from ``settings`` at startup and closed on exit.
    """

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        owned = api_client is None
        client = api_client or ResourceApiClient.from_settings(settings)
        app.state.api_client = client
        logger.info(
            "Forwarding to external API",
            extra={"base_url": settings.external_api_base_url},
        )
        try:
            yield
        finally:
            if owned:
                await client.aclose()

    app = Starlette(
        routes=[
            Route("/health", health, methods=["GET"]),
            Mount(API_PREFIX, routes=resource_routes),
        ],
        exception_handlers={
            ExternalApiError: handle_external_api_error,
            BadInboundRequest: handle_bad_request,
            InvalidDescriptorError: handle_unexpected,
            Exception: handle_unexpected,
        },
        lifespan=lifespan,
    )
    if api_client is not None:
        app.state.api_client = api_client
    return app
