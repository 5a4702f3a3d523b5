"""Entry point for the Media Services MCP server."""

import logging
import os

from media_services.server import build_server
from media_services.settings import Settings


def _configure_logging() -> None:
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )


def main() -> None:
    """Resolve the account endpoint, then run the SSE server."""
    _configure_logging()
    logger = logging.getLogger("media-services-mcp")
    settings = Settings.load()
    server = build_server(settings)

    try:
        server.startup()
        logger.info(
            "MCP SSE server ready at http://localhost:%s/sse",
            settings.mcp_sse_port,
        )
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Shutdown requested (Ctrl+C).")
    except Exception:
        logger.exception("Server stopped due to an unexpected error.")
        raise
    finally:
        server.shutdown()
        logger.info("Server shutdown complete.")


if __name__ == "__main__":
    main()
