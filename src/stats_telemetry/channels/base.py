"""Base interface for outbound channels."""

import abc
import asyncio
import logging
from typing import Coroutine, Set

from ..payload import Payload

logger = logging.getLogger(__name__)


class Channel(abc.ABC):
    """
    The single outbound transport of a reporter.

    A channel opens lazily on the first send, tolerates interleaved sends
    from several sessions and can be opened again after ``close()``.
    """

    def __init__(self, url: str):
        self.url = url
        self._cleanup_tasks: Set[asyncio.Task] = set()

    @property
    @abc.abstractmethod
    def closed(self) -> bool:
        """True when no connection or request is held."""

    @abc.abstractmethod
    def ensure_open(self):
        """Open the underlying transport if it is closed."""

    @abc.abstractmethod
    async def send(self, payload: Payload) -> bool:
        """
        Transmit one payload.

        Returns True once delivered and False when a newer send or a close
        superseded it.

        Raises:
            TransmissionError: the payload could not be delivered
        """

    @abc.abstractmethod
    def close(self):
        """Release the transport; asynchronous cleanup continues in the background."""

    async def wait_closed(self):
        """Wait until cleanup started by ``close()`` has finished."""
        while self._cleanup_tasks:
            results = await asyncio.gather(*list(self._cleanup_tasks), return_exceptions=True)
            for result in results:
                if isinstance(result, Exception):
                    logger.warning(f"Channel cleanup failed for {self.url}: {result}")

    def _schedule_cleanup(self, coro: Coroutine):
        task = asyncio.get_running_loop().create_task(coro)
        self._cleanup_tasks.add(task)
        task.add_done_callback(self._cleanup_tasks.discard)
