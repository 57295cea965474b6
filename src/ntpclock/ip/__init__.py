"""
Internet Address Module

Provides the IPv4/IPv6 address type used for resolved NTP servers.
"""

from ntpclock.ip.core import (
    InternetAddress,
    IPv4Address,
    IPv6Address,
    parse_address,
    is_private,
)

__all__ = [
    "InternetAddress",
    "IPv4Address",
    "IPv6Address",
    "parse_address",
    "is_private",
]
