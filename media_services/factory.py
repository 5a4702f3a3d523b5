"""Factory for data service contexts connected to a Media Services account."""

import logging
import weakref
from typing import Any

import httpx

from media_services.context import (
    DataServiceContext,
    MediaDataServiceContext,
    MergeOption,
    ReadingEntityArgs,
)
from media_services.decorators import RequestDecorator
from media_services.entities import ENTITY_TYPES, OwnerContextInit
from media_services.http_client import create_probe_client
from media_services.resolver import resolve_service_endpoint
from media_services.retry import RetryPolicy

logger = logging.getLogger(__name__)


class MediaServicesContextFactory:
    """Creates data service contexts bound to the account's API endpoint.

    The logical endpoint is resolved once, while the factory is constructed;
    that call blocks (retries included) and raises if resolution fails, so a
    factory instance always carries a resolved endpoint. ``create_context``
    may then be called any number of times, from any thread.

    ``owner_context`` is handed to every materialized entity that accepts it
    and is held there through a weak reference, so it must support weak
    references. It is checked before the endpoint is probed.
    """

    def __init__(
        self,
        endpoint: str | httpx.URL,
        access_decorator: RequestDecorator,
        version_decorator: RequestDecorator,
        owner_context: Any,
        *,
        retry_policy: RetryPolicy | None = None,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        try:
            weakref.ref(owner_context)
        except TypeError as exc:
            raise TypeError(
                f"owner_context must support weak references; got {type(owner_context).__name__}."
            ) from exc

        self._decorators: tuple[RequestDecorator, ...] = (access_decorator, version_decorator)
        self._owner_context = owner_context
        self._retry_policy = retry_policy or RetryPolicy()
        self._timeout = timeout
        self._transport = transport

        with create_probe_client(timeout=timeout, transport=transport) as client:
            self._service_endpoint = resolve_service_endpoint(
                client, endpoint, self._decorators, self._retry_policy
            )

    @property
    def service_endpoint(self) -> httpx.URL:
        return self._service_endpoint

    def create_context(self) -> MediaDataServiceContext:
        """Create a new, independently owned data service context."""
        data_context = DataServiceContext(
            self._service_endpoint,
            ignore_missing_properties=True,
            ignore_resource_not_found=True,
            merge_option=MergeOption.PRESERVE_CHANGES,
            retry_policy=self._retry_policy,
            timeout=self._timeout,
            transport=self._transport,
        )
        for decorator in self._decorators:
            data_context.add_request_decorator(decorator)
        data_context.on_reading_entity(self._on_reading_entity)
        for entity_type in ENTITY_TYPES:
            data_context.register_entity_set(entity_type.entity_set, entity_type)
        logger.debug(
            "Created data service context",
            extra={"service_endpoint": str(self._service_endpoint)},
        )

        return MediaDataServiceContext(data_context)

    def _on_reading_entity(self, args: ReadingEntityArgs) -> None:
        if isinstance(args.entity, OwnerContextInit):
            args.entity.initialize_with_owner(self._owner_context)
