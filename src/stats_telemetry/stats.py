"""Capability contract consumed from every statistics source."""

import abc
from typing import Any, Callable, Optional


class StatsSource(abc.ABC):
    """
    A producer of statistics snapshots.

    The reporter installs ``on_error``, ``on_log`` and ``on_release`` when
    reporting starts. A source calls ``release()`` once it wants reporting
    to stop, typically when it is disposed.
    """

    def __init__(self):
        self.on_error: Callable[[str], None] = lambda error: None
        self.on_log: Callable[[str], None] = lambda log: None
        self.on_release: Optional[Callable[[], None]] = None

    @property
    def name(self) -> str:
        """Stable identifier used to tag log messages."""
        return type(self).__name__

    @abc.abstractmethod
    async def serialize(self) -> Any:
        """
        Serialize the current state.

        Returns a Payload or a plain value (bytes, str or any
        JSON-encodable value). Raises NotReadyError while no data is
        available.
        """

    def release(self):
        """Signal that reporting for this source must stop."""
        if self.on_release:
            self.on_release()
