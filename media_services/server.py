"""
Core server bootstrap for the Media Services MCP server.

Startup connects the Media Services client, which resolves the account
endpoint before any tool can run.
"""

import logging
from typing import Any

from fastmcp import FastMCP  # type: ignore[import-not-found]

from media_services.client import MediaServicesClient
from media_services.settings import Settings
from media_services.tools import MediaToolDependencies, register_media_tools


class ServerApp:
    """Server container wiring settings, the client and the MCP tools."""

    def __init__(self, settings: Settings) -> None:
        self._logger = logging.getLogger(__name__)
        self._settings = settings
        self._state: dict[str, Any] = {"settings": settings}
        self._media_client: MediaServicesClient | None = None
        self._tool_dependencies = MediaToolDependencies()
        self._mcp_app = FastMCP(
            name="Media Services MCP Server",
            instructions=(
                "Inspect and manage media assets of a Media Services account."
            ),
        )
        register_media_tools(self._mcp_app, self._tool_dependencies)
        self._state["mcp_app"] = self._mcp_app

    def startup(self) -> None:
        """Connect to the account; blocks until the service endpoint is resolved."""
        self._logger.info("Starting server bootstrap")
        self._media_client = MediaServicesClient.from_settings(self._settings)
        self._tool_dependencies.attach_client(self._media_client)
        self._state["service_endpoint"] = str(self._media_client.service_endpoint)
        self._state["initialized"] = True

    def shutdown(self) -> None:
        """Release acquired resources."""
        self._logger.info("Shutting down server bootstrap")
        self._media_client = None
        self._tool_dependencies.detach_client()
        self._state.clear()

    def serve_forever(self) -> None:
        """Run the FastMCP SSE server until interrupted."""
        host = "0.0.0.0"
        port = self._settings.mcp_sse_port
        self._logger.info("Starting SSE transport", extra={"host": host, "port": port})
        self._mcp_app.run(transport="sse", host=host, port=port)

    async def serve_sse_async(self, host: str = "0.0.0.0") -> None:
        """Async helper for running the SSE transport (used by smoke tests)."""
        await self._mcp_app.run_http_async(
            transport="sse",
            host=host,
            port=self._settings.mcp_sse_port,
        )

    @property
    def mcp(self) -> FastMCP:
        """Expose the configured FastMCP instance."""
        return self._mcp_app


def build_server(settings: Settings) -> ServerApp:
    """Factory used by main.py to create the configured server instance."""
    return ServerApp(settings)
