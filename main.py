"""Entry point for the resource proxy HTTP service."""

import logging
import os

import uvicorn

from resource_proxy.routes import build_app
from resource_proxy.settings import Settings


def _configure_logging() -> None:
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )


def main() -> None:
    """Bootstrap and run the HTTP server."""
    _configure_logging()
    logger = logging.getLogger("resource-proxy")
    settings = Settings.load()
    app = build_app(settings)

    logger.info(
        "Resource proxy ready at http://localhost:%s/api/v1/external, forwarding to %s",
        settings.server_port,
        settings.external_api_base_url,
    )
    try:
        uvicorn.run(app, host=settings.server_host, port=settings.server_port, log_config=None)
    except KeyboardInterrupt:
        logger.info("Shutdown requested (Ctrl+C).")
    except Exception:
        logger.exception("Server stopped due to an unexpected error.")
        raise
    finally:
        logger.info("Server shutdown complete.")


if __name__ == "__main__":
    main()
