import json
import re
from typing import Any

import httpx
import pytest

from media_services.retry import RetryPolicy

LOGICAL_HOST = "media.example.net"
ACCOUNT_ENDPOINT = "https://account1.media.example.net/api/"

_KEY_PATTERN = re.compile(r"^(?P<set>\w+)\('(?P<key>.+)'\)$")


class FakeAccount:
    """MockTransport handler emulating the logical root and one account API."""

    logical_endpoint = f"https://{LOGICAL_HOST}/"
    account_endpoint = ACCOUNT_ENDPOINT

    def __init__(self) -> None:
        self.entity_sets: dict[str, dict[str, dict[str, Any]]] = {
            "Assets": {},
            "Jobs": {},
            "MediaProcessors": {},
        }
        self.requests: list[httpx.Request] = []
        self.probe_count = 0

    def add(self, entity_set: str, record: dict[str, Any]) -> None:
        self.entity_sets[entity_set][record["Id"]] = record

    def data_requests(self) -> list[httpx.Request]:
        return [request for request in self.requests if request.url.host != LOGICAL_HOST]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.host == LOGICAL_HOST:
            self.probe_count += 1
            return httpx.Response(301, headers={"Location": ACCOUNT_ENDPOINT})

        resource = request.url.path.removeprefix("/api/")
        if resource in self.entity_sets:
            if request.method == "POST":
                record = json.loads(request.content)
                record.setdefault("Id", f"nb:cid:UUID:{len(self.requests)}")
                self.add(resource, record)
                return httpx.Response(201, json=record)
            return httpx.Response(200, json={"value": list(self.entity_sets[resource].values())})

        match = _KEY_PATTERN.match(resource)
        if match is None or match.group("set") not in self.entity_sets:
            return httpx.Response(404, text="Resource not found")
        records = self.entity_sets[match.group("set")]
        key = match.group("key")
        if key not in records:
            return httpx.Response(404, text="Resource not found")
        if request.method == "DELETE":
            del records[key]
            return httpx.Response(204)
        if request.method == "MERGE":
            return httpx.Response(204)
        return httpx.Response(200, json=records[key])


class RecordingDecorator:
    """Decorator double that records the order it runs in."""

    def __init__(self, name: str, calls: list[str]) -> None:
        self.name = name
        self._calls = calls

    def decorate(self, request: httpx.Request) -> None:
        self._calls.append(self.name)
        request.headers["X-Decorated-By"] = self.name
        request.headers[f"X-{self.name}"] = "yes"


class Owner:
    """Stand-in for the shared owning client."""


@pytest.fixture
def fake_account() -> FakeAccount:
    return FakeAccount()


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def retry_policy(sleeps: list[float]) -> RetryPolicy:
    return RetryPolicy(max_attempts=3, wait_initial=0.5, wait_max=2.0, sleep=sleeps.append)


@pytest.fixture
def owner() -> Owner:
    return Owner()


@pytest.fixture
def decorator_calls() -> list[str]:
    return []


@pytest.fixture
def recording_decorators(decorator_calls: list[str]) -> tuple[RecordingDecorator, RecordingDecorator]:
    return (
        RecordingDecorator("credential", decorator_calls),
        RecordingDecorator("version", decorator_calls),
    )


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"
