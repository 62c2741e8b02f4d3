"""Built-in source reporting the liveness of the telemetry service."""

import os
import time
from datetime import datetime, timezone
from typing import Callable, Optional

from .payload import StructuredPayload
from .stats import StatsSource


class HeartbeatStats(StatsSource):
    """Reports service name, uptime and a sequence number on every tick."""

    def __init__(self, service_name: str, reporting: Optional[Callable[[], int]] = None,
                 clock: Callable[[], float] = time.monotonic):
        super().__init__()
        self.service_name = service_name
        self._reporting = reporting
        self._clock = clock
        self._started = clock()
        self.sequence = 0

    async def serialize(self) -> StructuredPayload:
        self.sequence += 1
        snapshot = {
            'service': self.service_name,
            'pid': os.getpid(),
            'sequence': self.sequence,
            'uptime_seconds': round(self._clock() - self._started, 3),
            'timestamp': datetime.now(timezone.utc).isoformat(),
        }
        if self._reporting is not None:
            snapshot['reporting'] = self._reporting()
        return StructuredPayload(snapshot)
