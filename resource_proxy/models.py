"""Wire models exchanged with callers and with the external API."""

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, JsonValue

# Arbitrary key/value mapping sent as-is on partial updates.
PartialUpdate = dict[str, JsonValue]


class ResourcePayload(BaseModel):
    """Request body for create and full update. No field is required."""

    name: str | None = None
    email: str | None = None
    message: str | None = None


class Resource(BaseModel):
    """Resource as returned by the external API; every field may be missing."""

    model_config = ConfigDict(populate_by_name=True)

    id: int | None = None
    name: str | None = None
    email: str | None = None
    message: str | None = None
    status: str | None = None
    created_at: datetime | None = Field(default=None, alias="createdAt")


class ErrorEnvelope(BaseModel):
    """Uniform error record rendered for every non-success outcome."""

    model_config = ConfigDict(frozen=True)

    status: int
    error: str
    message: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    path: str

    def to_wire(self) -> dict[str, object]:
        return self.model_dump(mode="json")
