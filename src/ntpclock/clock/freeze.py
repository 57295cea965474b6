"""
Clock stabilization model.

A TimeFreeze pins an NTP offset to the wall clock and the monotonic uptime
read at the same instant. Later readings only use the uptime delta, so the
projected time is unaffected by anyone changing the system clock after the
capture.
"""

import logging
import math
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from ntpclock.clock.uptime import UptimeSource, system_uptime

logger = logging.getLogger(__name__)

UPTIME_KEY = "uptime"
TIMESTAMP_KEY = "timestamp"
OFFSET_KEY = "offset"

# Largest accepted move of the implied boot time between save and load
DEFAULT_BOOT_TIME_TOLERANCE = 1.0


@dataclass(frozen=True)
class TimeFreeze:
    """An offset anchored to a wall-clock timestamp and an uptime reading."""
    offset: float
    timestamp: float
    uptime: float

    @classmethod
    def capture(
        cls,
        offset: float,
        uptime_source: UptimeSource = system_uptime,
        wall_clock: Callable[[], float] = time.time,
    ) -> "TimeFreeze":
        """Record the offset along with the current wall time and uptime."""
        return cls(offset=offset, timestamp=wall_clock(), uptime=uptime_source())

    @property
    def boot_time(self) -> float:
        """Wall-clock time the host booted, as implied by this capture."""
        return self.timestamp - self.uptime

    def stable_timestamp(self, now_uptime: float | None = None) -> float:
        """Local time at capture plus the uptime elapsed since, without the offset."""
        now_uptime = system_uptime() if now_uptime is None else now_uptime
        return (now_uptime - self.uptime) + self.timestamp

    def adjusted_timestamp(self, now_uptime: float | None = None) -> float:
        """Best estimate of true Unix time at the given uptime."""
        return self.offset + self.stable_timestamp(now_uptime)

    def time_since_last_sync(self, now_uptime: float | None = None) -> float:
        now_uptime = system_uptime() if now_uptime is None else now_uptime
        return now_uptime - self.uptime

    def to_dict(self) -> dict[str, float]:
        return {
            UPTIME_KEY: self.uptime,
            TIMESTAMP_KEY: self.timestamp,
            OFFSET_KEY: self.offset,
        }

    @classmethod
    def from_dict(
        cls,
        data: Mapping[str, Any] | None,
        uptime_source: UptimeSource = system_uptime,
        wall_clock: Callable[[], float] = time.time,
        tolerance: float = DEFAULT_BOOT_TIME_TOLERANCE,
    ) -> "TimeFreeze | None":
        """
        Rebuild a stored TimeFreeze.

        Args:
            data: Mapping produced by to_dict()
            uptime_source: Current uptime source
            wall_clock: Current wall clock
            tolerance: Accepted drift of the implied boot time, in seconds

        Returns:
            The TimeFreeze, or None if the data is incomplete or the host has
            rebooted since it was stored (uptime anchors are then meaningless)
        """
        if not isinstance(data, Mapping):
            return None

        values = []
        for key in (UPTIME_KEY, TIMESTAMP_KEY, OFFSET_KEY):
            value = data.get(key)
            if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
                logger.debug("Stored stable time has no usable %r field", key)
                return None
            values.append(float(value))
        uptime, timestamp, offset = values

        current_boot = wall_clock() - uptime_source()
        previous_boot = timestamp - uptime
        if abs(current_boot - previous_boot) > tolerance:
            logger.info(
                "Discarding stored stable time: boot time moved by %.3fs",
                current_boot - previous_boot,
            )
            return None

        return cls(offset=offset, timestamp=timestamp, uptime=uptime)
