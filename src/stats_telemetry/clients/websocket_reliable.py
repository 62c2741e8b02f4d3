"""Reconnectable WebSocket client with a send queue for frames issued while connecting."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, Set, Union

import websockets
from websockets.exceptions import ConnectionClosed

from ..errors import TransmissionError
from ..utils.logging import log_error_with_context

logger = logging.getLogger(__name__)

Frame = Union[bytes, str]


@dataclass
class QueuedFrame:
    """A frame waiting for the connection, with the future its sender awaits."""
    data: Frame
    future: asyncio.Future

    def resolve(self, delivered: bool):
        if not self.future.done():
            self.future.set_result(delivered)

    def fail(self, error: Exception):
        if not self.future.done():
            self.future.set_exception(error)


class ReliableWebSocket:
    """
    WebSocket connection that can be opened, closed and opened again.

    ``open()`` starts connecting in the background. Frames sent before the
    handshake completes wait in ``queueing`` and are flushed in order once
    connected. A dropped connection leaves the socket closed until the
    next ``open()``.
    """

    def __init__(
        self,
        open_timeout: float = 10.0,
        ping_interval: Optional[float] = 20.0,
        ping_timeout: Optional[float] = 10.0,
        max_size: Optional[int] = 2**20,
        connect: Optional[Callable[..., Awaitable[Any]]] = None,
    ):
        self.open_timeout = open_timeout
        self.ping_interval = ping_interval
        self.ping_timeout = ping_timeout
        self.max_size = max_size
        self._connect = connect or websockets.connect

        self.url: Optional[str] = None
        self.queueing: List[QueuedFrame] = []
        self._connection = None
        self._connect_task: Optional[asyncio.Task] = None
        self._reader_task: Optional[asyncio.Task] = None
        self._cleanup_tasks: Set[asyncio.Task] = set()

        self.stats = {
            'connection_count': 0,
            'frames_sent': 0,
            'frames_discarded': 0,
        }

    @property
    def closed(self) -> bool:
        """True when neither connected nor connecting."""
        return self._connection is None and self._connect_task is None

    @property
    def connected(self) -> bool:
        return self._connection is not None

    def open(self, url: str):
        """Start connecting to ``url`` unless already open or opening."""
        if not self.closed:
            return
        self.url = url
        self._connect_task = asyncio.get_running_loop().create_task(self._establish(url))

    async def send(self, data: Frame) -> bool:
        """
        Send one frame.

        While connecting, the frame is queued and this waits until it is
        flushed (True) or discarded (False).

        Raises:
            TransmissionError: the socket is closed, the connection fails
                or drops during the write
        """
        connection = self._connection
        if connection is None:
            if self._connect_task is None:
                raise TransmissionError("WebSocket is closed")
            frame = QueuedFrame(data, asyncio.get_running_loop().create_future())
            self.queueing.append(frame)
            return await frame.future

        await self._transmit(connection, data)
        return True

    def discard_pending(self) -> int:
        """Drop every queued frame, returning how many were dropped."""
        frames, self.queueing = self.queueing, []
        for frame in frames:
            frame.resolve(False)
        self.stats['frames_discarded'] += len(frames)
        return len(frames)

    def close(self):
        """Tear the connection down; pending frames are discarded."""
        self.discard_pending()

        if self._connect_task is not None:
            self._connect_task.cancel()
            self._connect_task = None

        if self._reader_task is not None:
            self._reader_task.cancel()
            self._reader_task = None

        connection, self._connection = self._connection, None
        if connection is not None:
            task = asyncio.get_running_loop().create_task(connection.close())
            self._cleanup_tasks.add(task)
            task.add_done_callback(self._cleanup_tasks.discard)
            logger.info(f"Closing WebSocket connection to {self.url}")

    async def wait_closed(self):
        """Wait for closing handshakes started by ``close()``."""
        while self._cleanup_tasks:
            results = await asyncio.gather(*list(self._cleanup_tasks), return_exceptions=True)
            for result in results:
                if isinstance(result, Exception):
                    logger.warning(f"WebSocket close failed: {result}")

    async def _establish(self, url: str):
        try:
            connection = await self._connect(
                url,
                open_timeout=self.open_timeout,
                ping_interval=self.ping_interval,
                ping_timeout=self.ping_timeout,
                max_size=self.max_size,
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._connect_task = None
            log_error_with_context(logger, e, "websocket_connect", url=url)
            frames, self.queueing = self.queueing, []
            for frame in frames:
                frame.fail(TransmissionError(f"Connection to {url} failed: {e}"))
            return

        self._connect_task = None
        self._connection = connection
        self.stats['connection_count'] += 1
        logger.info(f"Connected to {url}")

        self._reader_task = asyncio.get_running_loop().create_task(self._read(connection))

        while self.queueing and self._connection is connection:
            frame = self.queueing.pop(0)
            if frame.future.done():
                continue
            try:
                await self._transmit(connection, frame.data)
            except TransmissionError as e:
                frame.fail(e)
            else:
                frame.resolve(True)

    async def _transmit(self, connection, data: Frame):
        try:
            await connection.send(data)
        except ConnectionClosed as e:
            self._drop(connection)
            raise TransmissionError(f"WebSocket closed during send: {e}") from e
        self.stats['frames_sent'] += 1

    async def _read(self, connection):
        """Drain incoming frames so pings and close frames are handled."""
        try:
            async for message in connection:
                logger.debug(f"Ignoring incoming message of {len(message)} bytes from {self.url}")
        except ConnectionClosed as e:
            logger.warning(f"WebSocket connection to {self.url} lost: {e}")
        finally:
            self._drop(connection)

    def _drop(self, connection):
        if self._connection is connection:
            self._connection = None
            reader, self._reader_task = self._reader_task, None
            if reader is not None and reader is not asyncio.current_task():
                reader.cancel()
            logger.info(f"Disconnected from {self.url}")
