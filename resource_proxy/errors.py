"""Error taxonomy surfaced by the request builder and the response resolver."""

from enum import Enum

from resource_proxy.models import ErrorEnvelope


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    CLIENT_ERROR = "client_error"
    SERVER_ERROR = "server_error"
    UNREACHABLE = "unreachable"
    UNEXPECTED = "unexpected"


class InvalidDescriptorError(ValueError):
    """The caller described a request that cannot be built. Never reaches the network."""


class ExternalApiError(RuntimeError):
    """A call to the external API ended in a non-success terminal state."""

    kind: ErrorKind

    def __init__(self, envelope: ErrorEnvelope) -> None:
        super().__init__(envelope.message)
        self.envelope = envelope

    @property
    def status_code(self) -> int:
        return self.envelope.status


class NotFoundError(ExternalApiError):
    kind = ErrorKind.NOT_FOUND


class UpstreamClientError(ExternalApiError):
    kind = ErrorKind.CLIENT_ERROR


class UpstreamServerError(ExternalApiError):
    kind = ErrorKind.SERVER_ERROR


class UpstreamUnreachableError(ExternalApiError):
    kind = ErrorKind.UNREACHABLE


class UnexpectedApiError(ExternalApiError):
    kind = ErrorKind.UNEXPECTED


ERRORS_BY_KIND: dict[ErrorKind, type[ExternalApiError]] = {
    cls.kind: cls
    for cls in (
        NotFoundError,
        UpstreamClientError,
        UpstreamServerError,
        UpstreamUnreachableError,
        UnexpectedApiError,
    )
}
