"""Request decorators that stamp credentials and the API version on requests."""

import logging
from collections.abc import Callable
from typing import Protocol

import httpx

from media_services.errors import AccessTokenError
from media_services.settings import DEFAULT_API_VERSION

logger = logging.getLogger(__name__)

VERSION_HEADER = "x-ms-version"


class RequestDecorator(Protocol):
    """Mutates an outgoing request in place."""

    def decorate(self, request: httpx.Request) -> None:
        ...


class AccessTokenDecorator:
    """Adds the bearer access token to every request it decorates.

    ``token_source`` may be a fixed token or a callable returning the current
    one; acquiring and refreshing the token is the caller's concern.
    """

    def __init__(self, token_source: str | Callable[[], str]) -> None:
        if isinstance(token_source, str):
            token = token_source
            self._token_source: Callable[[], str] = lambda: token
        else:
            self._token_source = token_source

    def decorate(self, request: httpx.Request) -> None:
        token = (self._token_source() or "").strip()
        if not token:
            logger.error("No access token available", extra={"url": str(request.url)})
            raise AccessTokenError("An access token is required but none was available.")
        request.headers["Authorization"] = f"Bearer {token}"


class ServiceVersionDecorator:
    """Adds the service API version header."""

    def __init__(self, version: str = DEFAULT_API_VERSION) -> None:
        if not version.strip():
            raise ValueError("version must be a non-empty string.")
        self.version = version.strip()

    def decorate(self, request: httpx.Request) -> None:
        request.headers[VERSION_HEADER] = self.version


def apply_decorators(request: httpx.Request, decorators: tuple[RequestDecorator, ...]) -> None:
    """Apply ``decorators`` first to last; a later decorator wins on header conflicts."""
    for decorator in decorators:
        decorator.decorate(request)
