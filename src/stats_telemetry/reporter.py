"""Reporter multiplexing statistics sources over one outbound channel."""

import asyncio
import logging
from enum import Enum
from typing import Any, Callable, List, Optional, Set, Tuple, Union

import aiohttp
from yarl import URL

from .channels import Channel, HttpChannel, SocketChannel
from .config.settings import ChannelConfig
from .errors import ConstructionError, NotReadyError, SerializationError, UnsupportedSchemeError
from .payload import Payload, as_payload
from .stats import StatsSource

logger = logging.getLogger(__name__)


class ChannelKind(str, Enum):
    """Transport selected from the destination scheme."""
    SOCKET = "socket"
    HTTP = "http"


class SessionState(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"
    STOPPED = "stopped"


def classify_scheme(scheme: str) -> ChannelKind:
    """Map a URL scheme to its channel kind (ws* -> socket, http* -> http)."""
    scheme = (scheme or "").lower()
    if scheme.startswith("ws"):
        return ChannelKind.SOCKET
    if scheme.startswith("http"):
        return ChannelKind.HTTP
    raise UnsupportedSchemeError(scheme)


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


class ReportingSession:
    """
    Scheduling state of one source reported by a Reporter.

    The timer task fires a tick every ``frequency`` seconds, or a single
    tick right away when ``frequency`` is 0. A tick is skipped while the
    source is still serializing the previous one; transmissions are not
    waited for, so a newer tick supersedes a send that is still pending.
    """

    def __init__(self, reporter: "Reporter", source: StatsSource, frequency: float,
                 on_stop: Callable[["ReportingSession"], None]):
        self.reporter = reporter
        self.source = source
        self.frequency = frequency
        self.state = SessionState.IDLE
        self.ticks = 0
        self.skipped_ticks = 0
        self._on_stop: Optional[Callable[["ReportingSession"], None]] = on_stop
        self._timer: Optional[asyncio.Task] = None
        self._tick_tasks: Set[asyncio.Task] = set()
        self._serializing = False

    @property
    def name(self) -> str:
        return self.source.name

    @property
    def active(self) -> bool:
        return self.state == SessionState.ACTIVE

    def start(self):
        """Arm the timer. Requires a running event loop."""
        self._timer = asyncio.get_running_loop().create_task(self._run())
        self.state = SessionState.ACTIVE

    def stop(self):
        """Cancel the timer and notify the reporter; later calls are no-ops."""
        on_stop, self._on_stop = self._on_stop, None
        if on_stop is None:
            return

        self.state = SessionState.STOPPED
        current = _current_task()
        for task in (self._timer, *self._tick_tasks):
            if task is not None and task is not current and not task.done():
                task.cancel()
        self._timer = None
        self._tick_tasks.clear()

        on_stop(self)

    async def _run(self):
        if not self.frequency:
            try:
                await self._tick()
            finally:
                self.stop()
            return

        while True:
            await asyncio.sleep(self.frequency)
            if self._serializing:
                self.skipped_ticks += 1
                logger.debug(f"Skipping {self.name} tick, previous serialization still running")
                continue
            task = asyncio.get_running_loop().create_task(self._tick())
            self._tick_tasks.add(task)
            task.add_done_callback(self._tick_tasks.discard)

    async def _tick(self):
        self.ticks += 1
        self._serializing = True
        try:
            payload = await self._serialize()
        except NotReadyError:
            # wait to be ready
            return
        except SerializationError as e:
            self.reporter._report_failure(self.source, e)
            return
        finally:
            self._serializing = False

        # released while serializing
        if not self.active:
            return

        try:
            await self.reporter._transmit(payload)
        except Exception as e:
            self.reporter._report_failure(self.source, e)

    async def _serialize(self) -> Payload:
        """
        Ask the source for its current state.

        Raises:
            NotReadyError: the source has no data yet
            SerializationError: any other failure of the source
        """
        try:
            value = await self.source.serialize()
        except (NotReadyError, SerializationError):
            raise
        except Exception as e:
            raise SerializationError(str(e) or type(e).__name__) from e
        return as_payload(value)


class Reporter:
    """
    Reports statistics sources to a WebSocket or HTTP endpoint.

    Every source gets its own ReportingSession and schedule but all of
    them share a single channel, closed when the last session stops and
    reopened by the next report.

    Example:
        reporter = Reporter('wss://address/metrics')
        reporter.start_reporting(stats, 1)
    """

    def __init__(
        self,
        url: Union[str, URL],
        config: Optional[ChannelConfig] = None,
        default_frequency: float = 1.0,
        http_session: Optional[aiohttp.ClientSession] = None,
        channel: Optional[Channel] = None,
    ):
        try:
            parsed = URL(str(url))
        except (TypeError, ValueError) as e:
            raise ConstructionError(f"Invalid destination URL {url!r}: {e}") from e

        self._kind = classify_scheme(parsed.scheme)
        if not parsed.host:
            raise ConstructionError(f"Destination URL {url!r} has no host")
        self._url = str(parsed)

        self.config = config or ChannelConfig()
        self.default_frequency = default_frequency

        if channel is not None:
            self._channel = channel
        elif self._kind == ChannelKind.SOCKET:
            self._channel = SocketChannel(self._url, self.config)
        else:
            self._channel = HttpChannel(self._url, self.config, session=http_session)

        self._sessions: List[ReportingSession] = []
        self._reporting = 0

    @property
    def url(self) -> str:
        """Normalized destination URL."""
        return self._url

    @property
    def channel_kind(self) -> ChannelKind:
        return self._kind

    @property
    def channel(self) -> Channel:
        return self._channel

    @property
    def reporting_count(self) -> int:
        """Number of sources currently reported."""
        return self._reporting

    @property
    def sessions(self) -> Tuple[ReportingSession, ...]:
        return tuple(self._sessions)

    def on_log(self, log: str):
        """Log sink for informational events."""
        logger.info(log)

    def on_error(self, error: str = "unknown"):
        """Log sink for errors."""
        logger.error(error)

    def start_reporting(self, source: StatsSource, frequency: Optional[float] = None) -> ReportingSession:
        """
        Start reporting ``source`` to the destination.

        Args:
            source: statistics source to serialize on every tick
            frequency: report interval in seconds, 0 reports only once.
                Defaults to ``default_frequency``.

        Returns:
            The session; ``source.release()`` or ``session.stop()`` ends it
        """
        if frequency is None:
            frequency = self.default_frequency
        if frequency < 0:
            raise ValueError(f"frequency must be >= 0, got {frequency}")

        name = source.name
        source.on_error = lambda error: self.on_error(f"{name} error, {error}")
        source.on_log = lambda log: self.on_log(f"{name}, {log}")

        session = ReportingSession(self, source, frequency, on_stop=self._session_stopped)
        source.on_release = session.stop
        session.start()

        self._sessions.append(session)
        self._reporting += 1

        if frequency:
            self.on_log(f"Start {name} reporting every {frequency:g} seconds")
        else:
            self.on_log(f"Start {name} reporting once")
        return session

    async def aclose(self):
        """Stop every session and wait for the channel to finish closing."""
        for session in list(self._sessions):
            session.stop()
        await self._channel.wait_closed()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    def _session_stopped(self, session: ReportingSession):
        self._sessions.remove(session)
        self._reporting -= 1
        self.on_log(f"Stop {session.name} reporting")
        if self._reporting > 0:
            return
        # close useless connection
        self._channel.close()

    async def _transmit(self, payload: Payload) -> bool:
        return await self._channel.send(payload)

    def _report_failure(self, source: StatsSource, error: Any):
        detail = str(error) or type(error).__name__
        self.on_error(f"{source.name} error, {detail}")
