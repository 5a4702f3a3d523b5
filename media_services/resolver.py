"""Resolution of the logical service URI to the account's API endpoint.

The logical URI answers either with ``301 Moved Permanently`` pointing at the
account endpoint, or with ``200 OK`` when it already is that endpoint. Only a
single redirect hop is honoured: the redirect target is returned as-is and
never probed.
"""

import logging

import httpx

from media_services.decorators import RequestDecorator, apply_decorators
from media_services.errors import (
    RedirectLocationError,
    ServiceConnectivityError,
    TransientServiceError,
    UnexpectedStatusError,
)
from media_services.retry import RetryPolicy

logger = logging.getLogger(__name__)


def endpoint_from_response(response: httpx.Response) -> httpx.URL:
    """Interpret a probe response and return the endpoint it designates."""
    if response.status_code == httpx.codes.MOVED_PERMANENTLY:
        location = response.headers.get("Location")
        if not location or not location.strip():
            raise RedirectLocationError("Redirect response did not include a Location header.")
        try:
            target = httpx.URL(location.strip())
        except httpx.InvalidURL as exc:
            raise RedirectLocationError(
                f"Redirect Location header is not a valid URI: {location!r}.",
                location=location,
            ) from exc
        if not target.is_absolute_url or not target.host:
            raise RedirectLocationError(
                f"Redirect Location header is not an absolute URI: {location!r}.",
                location=location,
            )
        return target

    if response.status_code == httpx.codes.OK:
        return response.url

    raise UnexpectedStatusError(response.status_code, str(response.request.url))


def resolve_service_endpoint(
    client: httpx.Client,
    endpoint: str | httpx.URL,
    decorators: tuple[RequestDecorator, ...],
    retry_policy: RetryPolicy,
) -> httpx.URL:
    """Probe ``endpoint`` and return the canonical service endpoint.

    Transport failures are retried by ``retry_policy``; when it gives up a
    ServiceConnectivityError is raised. Malformed redirects and unexpected
    status codes fail on the first attempt.
    """

    def _probe() -> httpx.URL:
        request = client.build_request("GET", endpoint)
        apply_decorators(request, decorators)
        logger.debug("Probing service endpoint", extra={"url": str(request.url)})
        response = client.send(request, follow_redirects=False, stream=True)
        try:
            return endpoint_from_response(response)
        finally:
            response.close()

    try:
        resolved = retry_policy.execute(_probe)
    except (httpx.TransportError, TransientServiceError) as exc:
        attempts = retry_policy.max_attempts if retry_policy.is_transient(exc) else 1
        logger.error(
            "Service endpoint probe failed",
            extra={"url": str(endpoint), "attempts": attempts},
            exc_info=exc,
        )
        raise ServiceConnectivityError(
            f"Could not reach {endpoint} after {attempts} attempt(s): {exc!s}"
        ) from exc

    logger.info(
        "Resolved service endpoint",
        extra={"logical_endpoint": str(endpoint), "service_endpoint": str(resolved)},
    )
    return resolved
