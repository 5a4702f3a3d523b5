"""MCP tool registrations for the Media Services server."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Annotated, Any, Callable

from fastmcp import Context, FastMCP
from pydantic import Field

from media_services.client import MediaServicesClient
from media_services.entities import Asset
from media_services.errors import MediaServicesError

logger = logging.getLogger(__name__)


@dataclass
class MediaToolDependencies:
    """Runtime dependencies required by the MCP tools."""

    media_client: MediaServicesClient | None = None

    def attach_client(self, client: MediaServicesClient) -> None:
        self.media_client = client

    def detach_client(self) -> None:
        self.media_client = None

    def require_client(self) -> MediaServicesClient:
        if self.media_client is None:
            raise RuntimeError("Media Services client is not initialized.")
        return self.media_client


def _asset_summary(asset: Asset) -> dict[str, Any]:
    return asset.model_dump(mode="json", exclude_none=True)


def register_media_tools(
    mcp: FastMCP,
    dependencies: MediaToolDependencies,
) -> None:
    """Register MCP tools that proxy to the Media Services account."""

    def _validate_non_empty(value: str, field_name: str) -> str:
        if not value or not value.strip():
            raise ValueError(f"{field_name} must be a non-empty string.")
        return value.strip()

    def _log_tool_event(tool_name: str, event: str, **fields: object) -> None:
        logger.info(
            "media_tool_event",
            extra={"tool": tool_name, "event": event, **fields},
        )

    async def _with_error_handling(
        tool_name: str,
        action: Callable[[], dict[str, Any]],
    ) -> dict[str, Any]:
        # The client blocks on network I/O, so it runs off the event loop.
        try:
            return await asyncio.to_thread(action)
        except MediaServicesError as exc:
            logger.warning("%s failed due to service error", tool_name, exc_info=True)
            _log_tool_event(tool_name, "service_error", error=str(exc))
            return {"error": str(exc)}
        except Exception as exc:  # noqa: BLE001
            logger.exception("%s failed unexpectedly", tool_name)
            _log_tool_event(tool_name, "unexpected_error", error=str(exc))
            return {"error": f"Unexpected error: {exc}"}

    @mcp.tool(
        name="get_service_endpoint",
        description="Returns the resolved Media Services API endpoint that all data requests are sent to.",
    )
    async def get_service_endpoint() -> dict[str, Any]:
        """Report the endpoint discovered at startup."""

        client = dependencies.require_client()

        def _call() -> dict[str, Any]:
            endpoint = str(client.service_endpoint)
            _log_tool_event("get_service_endpoint", "success", service_endpoint=endpoint)
            return {"service_endpoint": endpoint}

        return await _with_error_handling("get_service_endpoint", _call)

    @mcp.tool(
        name="list_assets",
        description="Lists media assets in the account. Optionally restricts the result to assets with an exact name and caps the number returned.",
    )
    async def list_assets(
        ctx: Context,
        top: Annotated[int, Field(ge=1, le=1000, description="Maximum number of assets to return.")] = 50,
        name: Annotated[str | None, Field(description="Only return assets with exactly this name.")] = None,
    ) -> dict[str, Any]:
        """Return a page of assets."""

        client = dependencies.require_client()
        name_value = _validate_non_empty(name, "name") if name is not None else None

        def _call() -> dict[str, Any]:
            assets = client.list_assets(top=top, name=name_value)
            _log_tool_event("list_assets", "success", count=len(assets))
            return {"assets": [_asset_summary(asset) for asset in assets]}

        result = await _with_error_handling("list_assets", _call)
        if "assets" in result:
            await ctx.info(f"Listed {len(result['assets'])} asset(s).")
        return result

    @mcp.tool(
        name="get_asset",
        description="Retrieves a single media asset by its identifier (e.g., 'nb:cid:UUID:...').",
    )
    async def get_asset(
        asset_id: Annotated[str, Field(description="The asset identifier.")],
    ) -> dict[str, Any]:
        """Return one asset, or an error when it does not exist."""

        asset_id_value = _validate_non_empty(asset_id, "asset_id")
        client = dependencies.require_client()

        def _call() -> dict[str, Any]:
            asset = client.get_asset(asset_id_value)
            if asset is None:
                raise MediaServicesError(f"Asset {asset_id_value} was not found.")
            _log_tool_event("get_asset", "success", asset_id=asset_id_value)
            return {"asset": _asset_summary(asset)}

        return await _with_error_handling("get_asset", _call)

    @mcp.tool(
        name="delete_asset",
        description="Deletes a media asset by its identifier. Deleting an asset that no longer exists is reported, not treated as a failure.",
    )
    async def delete_asset(
        asset_id: Annotated[str, Field(description="The asset identifier.")],
    ) -> dict[str, Any]:
        """Delete one asset."""

        asset_id_value = _validate_non_empty(asset_id, "asset_id")
        client = dependencies.require_client()

        def _call() -> dict[str, Any]:
            deleted = client.delete_asset(asset_id_value)
            _log_tool_event("delete_asset", "success", asset_id=asset_id_value, deleted=deleted)
            return {"asset_id": asset_id_value, "deleted": deleted}

        return await _with_error_handling("delete_asset", _call)

    logger.info("Media Services MCP tools registered.")
