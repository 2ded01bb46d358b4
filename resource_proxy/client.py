"""
Resource API client for the external JSON service.

Each public method is one operation: it describes the outbound call, builds
it, sends it once and resolves the outcome. Failures surface as
``ExternalApiError`` subclasses carrying an error envelope.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import httpx

from resource_proxy.errors import ErrorKind
from resource_proxy.http_client import create_external_client
from resource_proxy.models import PartialUpdate, Resource, ResourcePayload
from resource_proxy.request_builder import BodyEncoding, OperationDescriptor, build_request
from resource_proxy.resolver import (
    StatusInterceptor,
    api_error,
    decode,
    exchange,
    execute,
    not_found,
)
from resource_proxy.settings import Settings

logger = logging.getLogger(__name__)

RESOURCES_PATH = "/posts"
RESOURCE_PATH = "/posts/{id}"


def _server_error(response: httpx.Response, request_path: str) -> Any:
    logger.error("Server error occurred", extra={"path": request_path})
    raise api_error(
        ErrorKind.SERVER_ERROR,
        status=response.status_code,
        error=response.reason_phrase,
        message="Server error",
        path=request_path,
    )


@dataclass(slots=True)
class ResourceApiClient:
    """Typed wrapper around the shared AsyncClient."""

    _client: httpx.AsyncClient
    _settings: Settings

    @classmethod
    def from_settings(cls, settings: Settings) -> "ResourceApiClient":
        """Factory that builds the client from Settings."""
        return cls(create_external_client(settings), settings)

    async def aclose(self) -> None:
        """Close the underlying HTTP resources."""
        await self._client.aclose()

    async def list_resources(self, *, request_path: str | None = None) -> list[Resource]:
        logger.info("Fetching all resources from external API")
        return await self._call(
            OperationDescriptor("GET", RESOURCES_PATH),
            shape=list[Resource],
            request_path=request_path,
        )

    async def get_resource(self, resource_id: int, *, request_path: str | None = None) -> Resource:
        logger.info("Fetching resource with id: %s", resource_id)
        return await self._call(
            OperationDescriptor("GET", RESOURCE_PATH, path_params={"id": resource_id}),
            shape=Resource,
            request_path=request_path,
        )

    async def search_resources(
        self,
        user_id: int | None,
        *,
        request_path: str | None = None,
    ) -> list[Resource]:
        """List the resources owned by ``user_id``; ``None`` sends no filter."""
        logger.info("Fetching resources for userId: %s", user_id)
        return await self._call(
            OperationDescriptor("GET", RESOURCES_PATH, query_params={"userId": user_id}),
            shape=list[Resource],
            request_path=request_path,
        )

    async def create_resource(
        self,
        payload: ResourcePayload,
        *,
        request_path: str | None = None,
    ) -> Resource:
        logger.info("Creating new resource: %s", payload)
        return await self._call(
            OperationDescriptor("POST", RESOURCES_PATH, body=payload, encoding=BodyEncoding.JSON),
            shape=Resource,
            request_path=request_path,
        )

    async def submit_form(
        self,
        form_data: Mapping[str, str],
        *,
        request_path: str | None = None,
    ) -> Resource:
        logger.info("Submitting form data")
        return await self._call(
            OperationDescriptor(
                "POST",
                RESOURCES_PATH,
                body=form_data,
                encoding=BodyEncoding.FORM,
            ),
            shape=Resource,
            request_path=request_path,
        )

    async def update_resource(
        self,
        resource_id: int,
        payload: ResourcePayload,
        *,
        request_path: str | None = None,
    ) -> Resource:
        logger.info("Updating resource with id: %s", resource_id)
        return await self._call(
            OperationDescriptor(
                "PUT",
                RESOURCE_PATH,
                path_params={"id": resource_id},
                body=payload,
                encoding=BodyEncoding.JSON,
            ),
            shape=Resource,
            request_path=request_path,
        )

    async def partial_update_resource(
        self,
        resource_id: int,
        updates: PartialUpdate,
        *,
        request_path: str | None = None,
    ) -> Resource:
        logger.info("Partially updating resource with id: %s", resource_id)
        return await self._call(
            OperationDescriptor(
                "PATCH",
                RESOURCE_PATH,
                path_params={"id": resource_id},
                body=updates,
                encoding=BodyEncoding.JSON,
            ),
            shape=Resource,
            request_path=request_path,
        )

    async def delete_resource(self, resource_id: int, *, request_path: str | None = None) -> None:
        logger.info("Deleting resource with id: %s", resource_id)
        await self._call(
            OperationDescriptor("DELETE", RESOURCE_PATH, path_params={"id": resource_id}),
            shape=None,
            request_path=request_path,
        )

    async def get_resource_with_headers(
        self,
        resource_id: int,
        headers: Mapping[str, str],
        *,
        request_path: str | None = None,
    ) -> Resource:
        logger.info("Fetching resource with id: %s and custom headers", resource_id)
        return await self._call(
            OperationDescriptor(
                "GET",
                RESOURCE_PATH,
                path_params={"id": resource_id},
                headers=headers,
            ),
            shape=Resource,
            request_path=request_path,
        )

    async def get_resource_with_status_handling(
        self,
        resource_id: int,
        *,
        request_path: str | None = None,
    ) -> Resource:
        """Fetch a resource with explicit handling for 404 and 5xx answers."""
        logger.info("Fetching resource with id: %s with status handling", resource_id)

        def _not_found(response: httpx.Response, path: str) -> Any:
            logger.error("Resource not found with id: %s", resource_id)
            raise not_found(path, "Resource not found")

        return await self._call(
            OperationDescriptor("GET", RESOURCE_PATH, path_params={"id": resource_id}),
            shape=Resource,
            request_path=request_path,
            interceptors=(
                StatusInterceptor(lambda status: status == 404, _not_found),
                StatusInterceptor(lambda status: 500 <= status < 600, _server_error),
            ),
        )

    async def get_resource_with_full_response(
        self,
        resource_id: int,
        *,
        request_path: str | None = None,
    ) -> dict[str, Any]:
        """Return upstream status, headers and decoded body without status mapping."""
        logger.info("Fetching resource with id: %s with full response", resource_id)
        descriptor = OperationDescriptor("GET", RESOURCE_PATH, path_params={"id": resource_id})
        request = build_request(self._settings, descriptor)
        path = request_path or request.url.path

        raw = (await exchange(self._client, request, path)).unwrap()
        logger.info("Response status: %s", raw.status_code)
        logger.info("Response headers: %s", dict(raw.headers))

        body = decode(raw.body, Resource, path).unwrap() if raw.body.strip() else None
        return {
            "status": raw.status_code,
            "headers": {key: raw.headers.get_list(key) for key in raw.headers.keys()},
            "body": body,
        }

    async def _call(
        self,
        descriptor: OperationDescriptor,
        *,
        shape: Any,
        request_path: str | None,
        interceptors: tuple[StatusInterceptor, ...] = (),
    ) -> Any:
        """Normalized request handler for all outgoing API calls."""
        request = build_request(self._settings, descriptor)
        path = request_path or request.url.path
        resolution = await execute(
            self._client,
            request,
            path,
            shape=shape,
            interceptors=interceptors,
        )
        return resolution.unwrap()
