"""Environment-driven configuration for the resource proxy."""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

DEFAULT_BASE_URL = "https://jsonplaceholder.typicode.com"


def _read_positive_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip() or str(default)
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer.") from exc
    if value <= 0:
        raise ValueError(f"{name} must be greater than zero.")
    return value


@dataclass(frozen=True, slots=True)
class Settings:
    """Container for runtime configuration.

    ``connect_timeout_ms`` and ``read_timeout_ms`` are milliseconds, matching
    the variables they are read from.
    """

    external_api_base_url: str = DEFAULT_BASE_URL
    connect_timeout_ms: int = 5000
    read_timeout_ms: int = 5000
    server_host: str = "0.0.0.0"
    server_port: int = 8080

    @property
    def connect_timeout(self) -> float:
        return self.connect_timeout_ms / 1000

    @property
    def read_timeout(self) -> float:
        return self.read_timeout_ms / 1000

    @classmethod
    def load(cls) -> "Settings":
        """
        Load configuration from environment variables.

        Python-dotenv is used so developers can rely on a local .env file without
        exporting variables globally.
        """
        load_dotenv()

        base_url = os.getenv("EXTERNAL_API_BASE_URL", "").strip() or DEFAULT_BASE_URL
        if not base_url.startswith(("http://", "https://")):
            raise ValueError("EXTERNAL_API_BASE_URL must be an absolute http(s) URL.")

        server_host = os.getenv("SERVER_HOST", "").strip() or "0.0.0.0"

        return cls(
            external_api_base_url=base_url.rstrip("/"),
            connect_timeout_ms=_read_positive_int("EXTERNAL_API_CONNECT_TIMEOUT", 5000),
            read_timeout_ms=_read_positive_int("EXTERNAL_API_READ_TIMEOUT", 5000),
            server_host=server_host,
            server_port=_read_positive_int("SERVER_PORT", 8080),
        )
