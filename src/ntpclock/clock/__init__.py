"""
Clock Module

Stable time model, uptime source, persistence and the Clock itself.
"""

from ntpclock.clock.freeze import TimeFreeze
from ntpclock.clock.storage import FileTimeStorage, MemoryTimeStorage, TimeStorage
from ntpclock.clock.uptime import check_uptime_source, system_uptime
from ntpclock.clock.clock import AnnotatedTime, Clock

__all__ = [
    "TimeFreeze",
    "FileTimeStorage",
    "MemoryTimeStorage",
    "TimeStorage",
    "check_uptime_source",
    "system_uptime",
    "AnnotatedTime",
    "Clock",
]
