"""
Response resolver for outbound calls to the external resource API.

Every call ends in exactly one terminal state: ``Success`` carrying the
decoded value, or ``Failure`` carrying one of the ``ExternalApiError`` kinds
together with its error envelope. Nothing is retried.

Resolution order for a received response:

1. caller-registered ``StatusInterceptor`` pairs, first match wins;
2. 2xx -> decode into the requested shape (or no value when none is expected);
3. 404 -> NotFound, other 4xx -> ClientError, 5xx -> ServerError;
4. anything else -> Unexpected.

Transport failures before a status arrives resolve to Unreachable (503).
``exchange`` skips the table entirely and hands back status, headers and body.
"""

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any, Generic, NoReturn, TypeVar

import httpx
from pydantic import TypeAdapter, ValidationError

from resource_proxy.errors import ERRORS_BY_KIND, ErrorKind, ExternalApiError
from resource_proxy.models import ErrorEnvelope

logger = logging.getLogger(__name__)

T = TypeVar("T")

_SNIPPET_LIMIT = 512


@dataclass(frozen=True, slots=True)
class Success(Generic[T]):
    value: T

    def unwrap(self) -> T:
        return self.value


@dataclass(frozen=True, slots=True)
class Failure:
    error: ExternalApiError

    @property
    def kind(self) -> ErrorKind:
        return self.error.kind

    @property
    def envelope(self) -> ErrorEnvelope:
        return self.error.envelope

    def unwrap(self) -> NoReturn:
        raise self.error


Resolution = Success[Any] | Failure

StatusPredicate = Callable[[int], bool]
# Receives the response and the originating request path; returns a value or
# raises an ExternalApiError.
StatusHandler = Callable[[httpx.Response, str], Any]


@dataclass(frozen=True, slots=True)
class StatusInterceptor:
    predicate: StatusPredicate
    handler: StatusHandler


@dataclass(frozen=True, slots=True)
class RawExchange:
    """Uninterpreted upstream response."""

    status_code: int
    headers: httpx.Headers
    body: bytes


def api_error(
    kind: ErrorKind,
    *,
    status: int,
    error: str,
    message: str,
    path: str,
) -> ExternalApiError:
    """Build the error of ``kind`` with a freshly timestamped envelope."""
    envelope = ErrorEnvelope(status=status, error=error, message=message, path=path)
    return ERRORS_BY_KIND[kind](envelope)


def not_found(path: str, message: str | None = None) -> ExternalApiError:
    return api_error(
        ErrorKind.NOT_FOUND,
        status=404,
        error="Not Found",
        message=message or f"Resource not found: {path}",
        path=path,
    )


def unreachable(path: str, message: str) -> ExternalApiError:
    return api_error(
        ErrorKind.UNREACHABLE,
        status=503,
        error="Service Unavailable",
        message=f"Unable to access external API: {message}",
        path=path,
    )


def unexpected(path: str, exc: BaseException | str) -> ExternalApiError:
    return api_error(
        ErrorKind.UNEXPECTED,
        status=500,
        error="Internal Server Error",
        message=f"An unexpected error occurred: {exc}",
        path=path,
    )


def _snippet(response: httpx.Response) -> str:
    text = response.text.strip()
    if len(text) > _SNIPPET_LIMIT:
        text = f"{text[:_SNIPPET_LIMIT]}..."
    return text


def _upstream_error(response: httpx.Response, request_path: str) -> ExternalApiError:
    status = response.status_code
    reason = response.reason_phrase
    detail = f"{status} {reason}".strip()
    snippet = _snippet(response)
    if snippet:
        detail = f"{detail}: {snippet}"

    if 400 <= status < 500:
        kind, prefix = ErrorKind.CLIENT_ERROR, "External API request failed"
    else:
        kind, prefix = ErrorKind.SERVER_ERROR, "External API server error"

    logger.warning(
        "External API responded with error",
        extra={"path": request_path, "status_code": status, "content": snippet},
    )
    return api_error(
        kind,
        status=status,
        error=reason,
        message=f"{prefix}: {detail}",
        path=request_path,
    )


def decode(content: bytes, shape: Any, request_path: str) -> Resolution:
    """Validate a JSON body against ``shape`` (a model class or any type pydantic accepts)."""
    try:
        return Success(TypeAdapter(shape).validate_json(content))
    except ValidationError as exc:
        logger.error(
            "External API returned a body that does not match the expected shape",
            extra={"path": request_path},
        )
        return Failure(unexpected(request_path, exc))


def resolve(
    response: httpx.Response,
    request_path: str,
    *,
    shape: Any = None,
    interceptors: Sequence[StatusInterceptor] = (),
) -> Resolution:
    """Map a received response onto a terminal state.

    ``shape`` is the type to decode a 2xx body into; ``None`` means no body is
    expected and success carries no value.
    """
    status = response.status_code

    for interceptor in interceptors:
        if not interceptor.predicate(status):
            continue
        try:
            return Success(interceptor.handler(response, request_path))
        except ExternalApiError as exc:
            return Failure(exc)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Status handler failed", extra={"path": request_path})
            return Failure(unexpected(request_path, exc))

    if response.is_success:
        if shape is None:
            return Success(None)
        return decode(response.content, shape, request_path)

    if status == 404:
        logger.warning(
            "External API resource not found",
            extra={"path": request_path, "status_code": status},
        )
        return Failure(not_found(request_path))

    if 400 <= status < 600:
        return Failure(_upstream_error(response, request_path))

    logger.error(
        "External API returned an unhandled status",
        extra={"path": request_path, "status_code": status},
    )
    return Failure(unexpected(request_path, f"unhandled upstream status {status}"))


def resolve_transport_failure(
    exc: Exception,
    request: httpx.Request,
    request_path: str,
) -> Failure:
    """Map an exception raised while sending ``request`` onto a terminal state."""
    extra = {"method": request.method, "path": request_path}

    if isinstance(exc, httpx.TimeoutException):
        logger.error("External API request timed out", extra=extra, exc_info=exc)
        return Failure(
            unreachable(
                request_path,
                f"request timed out ({request.method} {request.url.path})",
            )
        )
    if isinstance(exc, httpx.TransportError):
        logger.error("External API is unreachable", extra=extra, exc_info=exc)
        return Failure(unreachable(request_path, str(exc) or type(exc).__name__))

    logger.error("External API call failed unexpectedly", extra=extra, exc_info=exc)
    return Failure(unexpected(request_path, exc))


async def _send(
    client: httpx.AsyncClient,
    request: httpx.Request,
    request_path: str,
) -> httpx.Response | Failure:
    logger.debug(
        "Sending external API request",
        extra={"method": request.method, "url": str(request.url)},
    )
    try:
        return await client.send(request)
    except Exception as exc:  # noqa: BLE001
        return resolve_transport_failure(exc, request, request_path)


async def execute(
    client: httpx.AsyncClient,
    request: httpx.Request,
    request_path: str,
    *,
    shape: Any = None,
    interceptors: Sequence[StatusInterceptor] = (),
) -> Resolution:
    """Send ``request`` once and resolve the outcome."""
    outcome = await _send(client, request, request_path)
    if isinstance(outcome, Failure):
        return outcome
    return resolve(outcome, request_path, shape=shape, interceptors=interceptors)


async def exchange(
    client: httpx.AsyncClient,
    request: httpx.Request,
    request_path: str,
) -> Success[RawExchange] | Failure:
    """Send ``request`` once and return the raw response whatever its status."""
    outcome = await _send(client, request, request_path)
    if isinstance(outcome, Failure):
        return outcome
    return Success(
        RawExchange(
            status_code=outcome.status_code,
            headers=outcome.headers,
            body=outcome.content,
        )
    )
