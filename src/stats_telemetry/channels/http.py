"""HTTP channel issuing one POST per payload."""

import asyncio
import logging
from typing import Optional

import aiohttp

from ..config.settings import ChannelConfig
from ..errors import RequestAbortedError, TransmissionError
from ..payload import Payload
from .base import Channel

logger = logging.getLogger(__name__)


class HttpChannel(Channel):
    """
    POSTs payloads to the destination URL with at most one request in flight.

    A new send aborts the previous request if it is still pending, so the
    latest issued payload wins.
    """

    def __init__(self, url: str, config: Optional[ChannelConfig] = None,
                 session: Optional[aiohttp.ClientSession] = None):
        super().__init__(url)
        self.config = config or ChannelConfig()
        self.session = session
        self._owns_session = session is None
        self._request: Optional[asyncio.Task] = None

        self.stats = {
            'requests_sent': 0,
            'requests_aborted': 0,
            'requests_failed': 0,
        }

    @property
    def closed(self) -> bool:
        return self.session is None or self.session.closed

    @property
    def in_flight(self) -> bool:
        return self._request is not None and not self._request.done()

    def ensure_open(self):
        if self.closed:
            logger.debug(f"Opening HTTP session for {self.url}")
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.config.request_timeout_seconds)
            )
            self._owns_session = True

    async def send(self, payload: Payload) -> bool:
        self.ensure_open()
        self._abort_pending()

        request = asyncio.get_running_loop().create_task(self._post(self.session, payload))
        self._request = request
        try:
            await asyncio.wait({request})
        except asyncio.CancelledError:
            request.cancel()
            raise
        finally:
            if self._request is request and request.done():
                self._request = None

        if request.cancelled():
            logger.debug(f"Request to {self.url} superseded before completion")
            return False
        return request.result()

    def close(self):
        self._abort_pending()
        session, self.session = self.session, None
        if session is not None and self._owns_session and not session.closed:
            self._schedule_cleanup(session.close())
        elif not self._owns_session:
            # Caller-owned session stays open for the next send
            self.session = session

    def _abort_pending(self):
        if self.in_flight:
            logger.debug(f"Aborting previous request to {self.url}")
            self._request.cancel()
            self.stats['requests_aborted'] += 1
        self._request = None

    async def _post(self, session: aiohttp.ClientSession, payload: Payload) -> bool:
        headers = {'Content-Type': payload.content_type}
        try:
            async with session.post(self.url, data=payload.body, headers=headers) as response:
                if response.status >= 400:
                    self.stats['requests_failed'] += 1
                    raise TransmissionError(
                        f"POST {self.url} failed with HTTP {response.status} {response.reason}"
                    )
        except asyncio.TimeoutError as e:
            self.stats['requests_failed'] += 1
            raise RequestAbortedError(f"POST {self.url} timed out") from e
        except aiohttp.ClientError as e:
            self.stats['requests_failed'] += 1
            raise TransmissionError(f"POST {self.url} failed: {e}") from e

        self.stats['requests_sent'] += 1
        return True
