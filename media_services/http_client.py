"""HTTP client factories for the endpoint probe and the data service contexts."""

import httpx

PROTOCOL_HEADERS = {
    "Accept": "application/json",
    "DataServiceVersion": "3.0",
    "MaxDataServiceVersion": "3.0",
}


class SharedTransport(httpx.BaseTransport):
    """Delegates to a caller-owned transport and leaves closing it to the caller."""

    def __init__(self, transport: httpx.BaseTransport) -> None:
        self._transport = transport

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        return self._transport.handle_request(request)

    def close(self) -> None:
        pass


def _borrow(transport: httpx.BaseTransport | None) -> httpx.BaseTransport | None:
    return SharedTransport(transport) if transport is not None else None


def create_probe_client(
    *,
    timeout: float,
    transport: httpx.BaseTransport | None = None,
) -> httpx.Client:
    """
    Build the Client used to probe the logical endpoint.

    Redirects are never followed so the probe can inspect a 301 itself. A
    transport passed in stays open when the client closes.
    """
    return httpx.Client(timeout=timeout, transport=_borrow(transport), follow_redirects=False)


def create_data_client(
    base_url: httpx.URL,
    *,
    timeout: float,
    transport: httpx.BaseTransport | None = None,
) -> httpx.Client:
    """Build a Client rooted at the resolved service endpoint.

    Contexts sharing a caller-supplied transport do not close it for each other.
    """
    return httpx.Client(
        base_url=base_url,
        headers=PROTOCOL_HEADERS,
        timeout=timeout,
        transport=_borrow(transport),
        follow_redirects=False,
    )
