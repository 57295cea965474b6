"""
Exception hierarchy for ntpclock.

Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company.
All rights reserved.
"""


class NTPClockError(Exception):
    """Base exception for ntpclock errors."""
    pass


class InvalidPacketError(NTPClockError):
    """Received buffer is not a decodable NTP packet."""
    pass


class NoValidSampleError(NTPClockError):
    """No server produced a usable sample."""
    pass


class UptimeUnavailableError(NTPClockError):
    """The host cannot provide a monotonic uptime that ticks through sleep."""
    pass


class InvalidAddressError(NTPClockError, ValueError):
    """String is not a valid IPv4 or IPv6 address."""
    pass


class StorageError(NTPClockError):
    """Stable time could not be written to storage."""
    pass
