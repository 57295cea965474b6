"""
ntpclock - Stable NTP Time Without Touching the System Clock

Queries NTP pools, selects a robust clock offset from many samples and
anchors it to a monotonic uptime source, so the current time can be read
at any moment without stepping the local wall clock.

Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company.
All rights reserved.
"""

from ntpclock.clock import AnnotatedTime, Clock, TimeFreeze
from ntpclock.exceptions import (
    InvalidAddressError,
    InvalidPacketError,
    NoValidSampleError,
    NTPClockError,
    StorageError,
    UptimeUnavailableError,
)

__version__ = "0.1.0"
__author__ = "DNS Science.io"
__copyright__ = "Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company"

__all__ = [
    "AnnotatedTime",
    "Clock",
    "TimeFreeze",
    "NTPClockError",
    "InvalidAddressError",
    "InvalidPacketError",
    "NoValidSampleError",
    "StorageError",
    "UptimeUnavailableError",
]
