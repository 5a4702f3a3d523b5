"""
Media Services client: the owner every materialized entity points back to.

The client builds the request decorators and the context factory, which
resolves the account endpoint as part of construction. Typed helpers wrap the
common entity-set queries.
"""

import logging
from collections.abc import Callable

import httpx

from media_services.context import MediaDataServiceContext
from media_services.decorators import AccessTokenDecorator, ServiceVersionDecorator
from media_services.entities import Asset, Job, MediaProcessor
from media_services.factory import MediaServicesContextFactory
from media_services.retry import RetryPolicy
from media_services.settings import DEFAULT_API_VERSION, Settings

logger = logging.getLogger(__name__)


def _require_non_empty(value: str, field_name: str) -> str:
    """Normalize and validate non-empty request arguments."""
    cleaned = value.strip()
    if not cleaned:
        raise ValueError(f"{field_name} must be a non-empty string.")
    return cleaned


class MediaServicesClient:
    """Connects to a Media Services account and hands out data contexts."""

    def __init__(
        self,
        endpoint: str | httpx.URL,
        access_token: str | Callable[[], str],
        *,
        api_version: str = DEFAULT_API_VERSION,
        retry_policy: RetryPolicy | None = None,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._factory = MediaServicesContextFactory(
            endpoint,
            AccessTokenDecorator(access_token),
            ServiceVersionDecorator(api_version),
            self,
            retry_policy=retry_policy,
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        transport: httpx.BaseTransport | None = None,
    ) -> "MediaServicesClient":
        """Factory that builds the client from Settings."""
        return cls(
            settings.service_url,
            settings.access_token,
            api_version=settings.api_version,
            retry_policy=RetryPolicy.from_settings(settings),
            timeout=settings.api_timeout,
            transport=transport,
        )

    @property
    def service_endpoint(self) -> httpx.URL:
        return self._factory.service_endpoint

    def create_context(self) -> MediaDataServiceContext:
        return self._factory.create_context()

    def list_assets(self, *, top: int | None = None, name: str | None = None) -> list[Asset]:
        """Return assets, optionally restricted to an exact name."""
        filter_by = None
        if name is not None:
            escaped = _require_non_empty(name, "name").replace("'", "''")
            filter_by = f"Name eq '{escaped}'"
        logger.debug("Listing assets", extra={"top": top, "asset_name": name})
        with self.create_context() as context:
            return context.query(Asset.entity_set, filter_by=filter_by, top=top)

    def get_asset(self, asset_id: str) -> Asset | None:
        asset_id_clean = _require_non_empty(asset_id, "asset_id")
        logger.debug("Fetching asset", extra={"asset_id": asset_id_clean})
        with self.create_context() as context:
            return context.get(Asset.entity_set, asset_id_clean)

    def delete_asset(self, asset_id: str) -> bool:
        """Delete an asset; returns False when it does not exist."""
        asset = self.get_asset(asset_id)
        if asset is None:
            return False
        asset.delete()
        logger.info("Asset deleted", extra={"asset_id": asset.id})
        return True

    def list_jobs(self, *, top: int | None = None) -> list[Job]:
        with self.create_context() as context:
            return context.query(Job.entity_set, top=top)

    def list_media_processors(self) -> list[MediaProcessor]:
        with self.create_context() as context:
            return context.query(MediaProcessor.entity_set)
