"""Persistent WebSocket channel."""

import logging
from typing import Optional

from ..clients.websocket_reliable import ReliableWebSocket
from ..config.settings import ChannelConfig
from ..payload import Payload
from .base import Channel

logger = logging.getLogger(__name__)


class SocketChannel(Channel):
    """
    Sends each payload as one WebSocket message frame.

    Only the freshest sample is delivered: frames still queued from an
    unfinished connection attempt are discarded before a new one is sent.
    """

    def __init__(self, url: str, config: Optional[ChannelConfig] = None,
                 websocket: Optional[ReliableWebSocket] = None):
        super().__init__(url)
        config = config or ChannelConfig()
        self.websocket = websocket or ReliableWebSocket(
            open_timeout=config.open_timeout_seconds,
            ping_interval=config.ping_interval_seconds,
            ping_timeout=config.ping_timeout_seconds,
            max_size=config.max_frame_size,
        )

    @property
    def closed(self) -> bool:
        return self.websocket.closed

    def ensure_open(self):
        if self.websocket.closed:
            logger.debug(f"Opening WebSocket channel to {self.url}")
            self.websocket.open(self.url)

    async def send(self, payload: Payload) -> bool:
        self.ensure_open()
        discarded = self.websocket.discard_pending()
        if discarded:
            logger.debug(f"Discarded {discarded} stale frame(s) for {self.url}")
        return await self.websocket.send(payload.body)

    def close(self):
        if self.websocket.closed:
            return
        self.websocket.close()
        self._schedule_cleanup(self.websocket.wait_closed())
