"""
Monotonic uptime source.

The clock model interpolates between syncs with a counter that keeps ticking
while the machine sleeps and ignores wall-clock adjustments. Linux exposes
one directly as CLOCK_BOOTTIME; elsewhere uptime is derived from the kernel
boot time reported by psutil, which only has whole-second precision on some
platforms.
"""

import logging
import time
from collections.abc import Callable

import psutil

from ntpclock.exceptions import UptimeUnavailableError

logger = logging.getLogger(__name__)

UptimeSource = Callable[[], float]


def system_uptime() -> float:
    """
    Seconds since boot, including time spent asleep.

    Raises:
        UptimeUnavailableError: If the host offers no usable uptime source
    """
    if hasattr(time, "CLOCK_BOOTTIME"):
        try:
            return time.clock_gettime(time.CLOCK_BOOTTIME)
        except OSError as e:
            raise UptimeUnavailableError(f"CLOCK_BOOTTIME unavailable: {e}") from e

    try:
        boot_time = psutil.boot_time()
    except (OSError, psutil.Error) as e:
        raise UptimeUnavailableError(f"Kernel boot time unavailable: {e}") from e

    now = time.time()
    if now < boot_time:
        raise UptimeUnavailableError("Inconsistent clock state: system time precedes boot time")
    return now - boot_time


def check_uptime_source(uptime_source: UptimeSource = system_uptime) -> float:
    """Read the uptime source once so a broken host fails at startup."""
    uptime = uptime_source()
    logger.debug("Uptime source %s reports %.3fs", getattr(uptime_source, "__name__", uptime_source), uptime)
    return uptime
