"""Outbound channels shared by every reporting session."""

from .base import Channel
from .http import HttpChannel
from .websocket import SocketChannel

__all__ = ["Channel", "HttpChannel", "SocketChannel"]
