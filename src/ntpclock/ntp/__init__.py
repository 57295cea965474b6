"""
NTP protocol module.

Packet codec, single UDP exchanges, pool sampling and offset selection.

Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company.
All rights reserved.
"""

from ntpclock.ntp.packet import (
    NTP_EPOCH,
    ClockSource,
    LeapIndicator,
    NTPMode,
    NTPPacket,
    Stratum,
    decode,
    encode,
)
from ntpclock.ntp.client import NTPClient, ResponseValidation, is_valid_response
from ntpclock.ntp.pool import query_pool
from ntpclock.ntp.selection import best_sample, select_offset

__all__ = [
    "NTP_EPOCH",
    "ClockSource",
    "LeapIndicator",
    "NTPMode",
    "NTPPacket",
    "Stratum",
    "decode",
    "encode",
    "NTPClient",
    "ResponseValidation",
    "is_valid_response",
    "query_pool",
    "best_sample",
    "select_offset",
]
