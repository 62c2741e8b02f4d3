"""Pytest configuration and shared fixtures."""

import asyncio
from typing import Any, Callable, List, Optional

import pytest
from websockets.exceptions import ConnectionClosed

from stats_telemetry.config.settings import ChannelConfig
from stats_telemetry.stats import StatsSource


class FakeStats(StatsSource):
    """Source returning queued results; exceptions in the queue are raised."""

    def __init__(self, *results: Any, name: Optional[str] = None, repeat_last: bool = True):
        super().__init__()
        self._results = list(results)
        self._name = name
        self.repeat_last = repeat_last
        self.serialize_calls = 0
        self.gate: Optional[asyncio.Event] = None

    @property
    def name(self) -> str:
        return self._name or super().name

    async def serialize(self):
        self.serialize_calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if len(self._results) > 1 or not self.repeat_last:
            result = self._results.pop(0)
        else:
            result = self._results[0]
        if isinstance(result, BaseException):
            raise result
        return result


class FakeConnection:
    """Stand-in for a websockets client connection."""

    def __init__(self):
        self.sent: List[Any] = []
        self.close_calls = 0
        self.fail_sends = False
        self._closed = asyncio.Event()

    async def send(self, data):
        if self.fail_sends:
            raise ConnectionClosed(None, None)
        self.sent.append(data)

    async def close(self):
        self.close_calls += 1
        self._closed.set()

    def drop(self):
        """Simulate the server going away."""
        self._closed.set()

    def __aiter__(self):
        return self

    async def __anext__(self):
        await self._closed.wait()
        raise StopAsyncIteration


class FakeConnector:
    """Replacement for ``websockets.connect`` recording every attempt."""

    def __init__(self):
        self.calls: List[tuple] = []
        self.connections: List[FakeConnection] = []
        self.gate: Optional[asyncio.Event] = None
        self.error: Optional[Exception] = None

    async def __call__(self, url, **kwargs):
        self.calls.append((url, kwargs))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        connection = FakeConnection()
        self.connections.append(connection)
        return connection


class FakeResponse:
    def __init__(self, status: int = 200, reason: str = "OK"):
        self.status = status
        self.reason = reason


class FakePost:
    def __init__(self, session: "FakeHttpSession", url: str, data: Any, headers: dict):
        self.session = session
        self.url = url
        self.data = data
        self.headers = headers

    async def __aenter__(self):
        self.session.started.append(self)
        gate = self.session.gates.pop(0) if self.session.gates else None
        if gate is not None:
            await gate.wait()
        if self.session.error is not None:
            raise self.session.error
        self.session.delivered.append(self)
        return FakeResponse(self.session.status, self.session.reason)

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return False


class FakeHttpSession:
    """Minimal aiohttp.ClientSession double; ``gates`` hold requests in order."""

    def __init__(self):
        self.closed = False
        self.started: List[FakePost] = []
        self.delivered: List[FakePost] = []
        self.gates: List[Optional[asyncio.Event]] = []
        self.status = 200
        self.reason = "OK"
        self.error: Optional[Exception] = None

    def post(self, url, data=None, headers=None):
        return FakePost(self, url, data, headers or {})

    async def close(self):
        self.closed = True


@pytest.fixture
def channel_config() -> ChannelConfig:
    return ChannelConfig(request_timeout_seconds=2, open_timeout_seconds=2)


@pytest.fixture
def fake_connector() -> FakeConnector:
    return FakeConnector()


@pytest.fixture
def fake_http_session() -> FakeHttpSession:
    return FakeHttpSession()


@pytest.fixture
def make_stats() -> Callable[..., FakeStats]:
    return FakeStats


@pytest.fixture
def wait_until():
    """Poll a predicate on the running loop until it holds."""
    async def _wait_until(predicate: Callable[[], bool], timeout: float = 1.0):
        deadline = asyncio.get_running_loop().time() + timeout
        while not predicate():
            if asyncio.get_running_loop().time() > deadline:
                raise AssertionError("condition not met before timeout")
            await asyncio.sleep(0.005)
    return _wait_until
