"""
NTP packet codec.

Encodes and decodes the 48-byte NTP v3/v4 header. Timestamps on the wire are
seconds since 1900 in 32.32 fixed point; in memory they are Unix epoch
seconds as floats.

Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company.
All rights reserved.
"""

import math
import struct
import time
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Any

from ntpclock.exceptions import InvalidPacketError


# NTP timestamp epoch (Jan 1, 1900)
NTP_EPOCH = 2208988800

# Seconds covered by one 32-bit NTP era
NTP_ERA_SECONDS = 2**32

PACKET_SIZE = 48

# Unset request timestamps encode as an all-zero wire value
UNSET_TIME = -float(NTP_EPOCH)

# LI/VN/Mode, stratum, poll, precision, root delay, root dispersion, reference id
_HEADER = struct.Struct(">BBbbIII")
# Reference, origin, receive and transmit timestamps
_TIMESTAMPS = struct.Struct(">QQQQ")


class LeapIndicator(IntEnum):
    """NTP Leap Indicator values."""
    NO_WARNING = 0
    LAST_MINUTE_61 = 1
    LAST_MINUTE_59 = 2
    ALARM = 3  # Clock not synchronized

    @property
    def description(self) -> str:
        return get_leap_description(self)


class NTPMode(IntEnum):
    """NTP mode field values."""
    RESERVED = 0
    SYMMETRIC_ACTIVE = 1
    SYMMETRIC_PASSIVE = 2
    CLIENT = 3
    SERVER = 4
    BROADCAST = 5
    CONTROL = 6  # Reserved for NTP control messages
    PRIVATE = 7  # Reserved for private use


class Stratum(str, Enum):
    """Stratum level of the server clock."""
    UNSPECIFIED = "unspecified"  # 0, also Kiss-o'-Death
    PRIMARY = "primary"          # 1
    SECONDARY = "secondary"      # 2-14
    INVALID = "invalid"          # 15 and up

    @classmethod
    def from_value(cls, value: int) -> "Stratum":
        if value == 0:
            return cls.UNSPECIFIED
        if value == 1:
            return cls.PRIMARY
        if value < 15:
            return cls.SECONDARY
        return cls.INVALID


class ClockSourceKind(str, Enum):
    """How the reference identifier should be read."""
    DEBUG = "debug"                                # Kiss code (stratum 0)
    REFERENCE_CLOCK = "reference_clock"            # IANA clock tag (stratum 1)
    REFERENCE_IDENTIFIER = "reference_identifier"  # Upstream server (stratum 2+)


# IANA reference clock identifiers for stratum 1 servers
REFERENCE_CLOCKS = {
    "GPS": "Global Position System",
    "GAL": "Galileo Positioning System",
    "PPS": "Generic pulse-per-second",
    "IRIG": "Inter-Range Instrumentation Group",
    "WWVB": "LF Radio WWVB Ft. Collins, CO 60 kHz",
    "DCF": "LF Radio DCF77 Mainflingen, DE 77.5 kHz",
    "HBG": "LF Radio HBG Prangins, HB 75 kHz",
    "MSF": "LF Radio MSF Anthorn, UK 60 kHz",
    "JJY": "LF Radio JJY Fukushima, JP 40 kHz, Saga, JP 60 kHz",
    "LORC": "MF Radio LORAN C station, 100 kHz",
    "TDF": "MF Radio Allouis, FR 162 kHz",
    "CHU": "HF Radio CHU Ottawa, Ontario",
    "WWV": "HF Radio WWV Ft. Collins, CO",
    "WWVH": "HF Radio WWVH Kauai, HI",
    "NIST": "NIST telephone modem",
    "ACTS": "ACTS telephone modem",
    "USNO": "USNO telephone modem",
    "PTB": "European telephone modem",
    "LOCL": "Uncalibrated local clock",
    "CESM": "Calibrated Cesium clock",
    "RBDM": "Calibrated Rubidium clock",
    "OMEG": "OMEGA radio navigation system",
    "DCN": "DCN routing protocol",
    "TSP": "TSP time protocol",
    "DTS": "Digital Time Service",
    "ATOM": "Atomic clock (calibrated)",
    "VLF": "VLF radio (OMEGA,, etc.)",
    "1PPS": "External 1 PPS input",
    "FREE": "(Internal clock)",
    "INIT": "(Initialization)",
}


@dataclass(frozen=True)
class ClockSource:
    """Server or reference clock, interpreted from the stratum."""
    kind: ClockSourceKind
    id: int
    description: str | None = None

    @classmethod
    def from_stratum(cls, stratum: Stratum, source_id: int) -> "ClockSource":
        if stratum == Stratum.UNSPECIFIED:
            return cls(ClockSourceKind.DEBUG, source_id)
        if stratum == Stratum.PRIMARY:
            tag = _ascii_tag(source_id)
            return cls(ClockSourceKind.REFERENCE_CLOCK, source_id, REFERENCE_CLOCKS.get(tag))
        return cls(ClockSourceKind.REFERENCE_IDENTIFIER, source_id)

    @property
    def text(self) -> str:
        """ASCII tag for kiss codes and reference clocks, dotted IPv4 otherwise."""
        if self.kind == ClockSourceKind.REFERENCE_IDENTIFIER:
            return ".".join(str(b) for b in self.id.to_bytes(4, "big"))
        return _ascii_tag(self.id)


def _ascii_tag(source_id: int) -> str:
    return source_id.to_bytes(4, "big").decode("ascii", errors="ignore").rstrip("\x00")


# ================================================================
# Fixed-point conversions
# ================================================================

def unix_to_ntp(timestamp: float) -> int:
    """Convert a Unix timestamp to a 64-bit NTP timestamp (32.32)."""
    seconds = math.floor(timestamp)
    fraction = int((timestamp - seconds) * 2**32)
    # Seconds wrap at the 2036 era boundary
    return (((seconds + NTP_EPOCH) % NTP_ERA_SECONDS) << 32) | fraction


def ntp_to_unix(value: int) -> float:
    """Convert a 64-bit NTP timestamp (32.32) to a Unix timestamp."""
    seconds = value >> 32
    fraction = value & 0xFFFFFFFF
    # RFC 4330: MSB clear means era 1 (from 2036-02-07 06:28:16 UTC)
    if not seconds & 0x80000000:
        seconds += NTP_ERA_SECONDS
    return (seconds - NTP_EPOCH) + fraction / 2**32


def interval_to_ntp(interval: float) -> int:
    """Convert seconds to a 32-bit NTP short format value (16.16)."""
    seconds = math.floor(interval)
    fraction = int((interval - seconds) * 2**16)
    return ((seconds & 0xFFFF) << 16) | fraction


def ntp_to_interval(value: int) -> float:
    """Convert a 32-bit NTP short format value (16.16) to seconds."""
    return (value >> 16) + (value & 0xFFFF) / 2**16


# ================================================================
# Packet
# ================================================================

@dataclass
class NTPPacket:
    """
    An NTP header.

    Timestamps follow RFC 2030 naming:

        Originate Timestamp     T1   time request sent by client
        Receive Timestamp       T2   time request received by server
        Transmit Timestamp      T3   time reply sent by server
        Destination Timestamp   T4   time reply received by client

    Only the transmit timestamp changes after construction; it is stamped
    when the packet is encoded.
    """
    leap: LeapIndicator = LeapIndicator.NO_WARNING
    version: int = 3
    mode: NTPMode = NTPMode.CLIENT
    stratum: int = 0

    # Log2 seconds
    poll: int = 4
    precision: int = -6

    # Seconds
    root_delay: float = 1.0
    root_dispersion: float = 1.0

    reference_id: int = 0

    # Unix epoch seconds
    reference_time: float = UNSET_TIME
    origin_time: float = UNSET_TIME
    receive_time: float = UNSET_TIME
    transmit_time: float = 0.0
    destination_time: float = 0.0

    @classmethod
    def request(cls, version: int = 3) -> "NTPPacket":
        """Build a client-mode request packet."""
        return cls(version=version, mode=NTPMode.CLIENT)

    @classmethod
    def from_bytes(cls, data: bytes, destination_time: float) -> "NTPPacket":
        """Decode a received PDU; see decode()."""
        return decode(data, destination_time)

    def to_bytes(self, transmit_time: float | None = None) -> bytes:
        """Encode this packet; see encode()."""
        return encode(self, transmit_time)

    @property
    def stratum_level(self) -> Stratum:
        return Stratum.from_value(self.stratum)

    @property
    def clock_source(self) -> ClockSource:
        return ClockSource.from_stratum(self.stratum_level, self.reference_id)

    @property
    def offset(self) -> float:
        """Clock offset in seconds: ((T2 - T1) + (T3 - T4)) / 2."""
        return ((self.receive_time - self.origin_time) + (self.transmit_time - self.destination_time)) / 2.0

    @property
    def delay(self) -> float:
        """Round-trip delay in seconds: (T4 - T1) - (T3 - T2)."""
        return (self.destination_time - self.origin_time) - (self.transmit_time - self.receive_time)

    def to_dict(self) -> dict[str, Any]:
        return {
            "leap_indicator": int(self.leap),
            "version": self.version,
            "mode": int(self.mode),
            "stratum": self.stratum,
            "poll": self.poll,
            "precision": self.precision,
            "root_delay": self.root_delay,
            "root_dispersion": self.root_dispersion,
            "reference_id": self.clock_source.text,
            "reference_time": self.reference_time,
            "origin_time": self.origin_time,
            "receive_time": self.receive_time,
            "transmit_time": self.transmit_time,
            "destination_time": self.destination_time,
            "offset": self.offset,
            "delay": self.delay,
        }


def encode(packet: NTPPacket, transmit_time: float | None = None) -> bytes:
    """
    Encode a packet into a 48-byte buffer ready to be sent.

    Args:
        packet: Packet to encode; its transmit_time is updated
        transmit_time: Transmit timestamp (defaults to the current wall clock)

    Returns:
        48 bytes in network byte order
    """
    li_vn_mode = (
        (int(packet.leap) & 0x03) << 6
        | (packet.version & 0x07) << 3
        | (int(packet.mode) & 0x07)
    )
    header = _HEADER.pack(
        li_vn_mode,
        packet.stratum & 0xFF,
        packet.poll,
        packet.precision,
        interval_to_ntp(packet.root_delay),
        interval_to_ntp(packet.root_dispersion),
        packet.reference_id & 0xFFFFFFFF,
    )

    packet.transmit_time = time.time() if transmit_time is None else transmit_time
    timestamps = _TIMESTAMPS.pack(
        unix_to_ntp(packet.reference_time),
        unix_to_ntp(packet.origin_time),
        unix_to_ntp(packet.receive_time),
        unix_to_ntp(packet.transmit_time),
    )
    return header + timestamps


def decode(data: bytes, destination_time: float) -> NTPPacket:
    """
    Decode a received PDU.

    Args:
        data: Raw datagram (at least 48 bytes; anything after is ignored)
        destination_time: Local Unix time the datagram arrived

    Returns:
        Decoded NTPPacket

    Raises:
        InvalidPacketError: If the buffer is too short
    """
    if len(data) < PACKET_SIZE:
        raise InvalidPacketError(f"Invalid PDU length: {len(data)}")

    li_vn_mode, stratum, poll, precision, root_delay, root_dispersion, reference_id = (
        _HEADER.unpack_from(data, 0)
    )
    reference, origin, receive, transmit = _TIMESTAMPS.unpack_from(data, _HEADER.size)

    return NTPPacket(
        leap=LeapIndicator((li_vn_mode >> 6) & 0x03),
        version=(li_vn_mode >> 3) & 0x07,
        mode=NTPMode(li_vn_mode & 0x07),
        stratum=stratum,
        poll=poll,
        precision=precision,
        root_delay=ntp_to_interval(root_delay),
        root_dispersion=ntp_to_interval(root_dispersion),
        reference_id=reference_id,
        reference_time=ntp_to_unix(reference),
        origin_time=ntp_to_unix(origin),
        receive_time=ntp_to_unix(receive),
        transmit_time=ntp_to_unix(transmit),
        destination_time=destination_time,
    )


# Well-known NTP servers
KNOWN_NTP_SERVERS = {
    "pool": [
        "pool.ntp.org",
        "0.pool.ntp.org",
        "1.pool.ntp.org",
        "2.pool.ntp.org",
        "3.pool.ntp.org",
    ],
    "google": [
        "time.google.com",
        "time1.google.com",
        "time2.google.com",
        "time3.google.com",
        "time4.google.com",
    ],
    "cloudflare": [
        "time.cloudflare.com",
    ],
    "apple": [
        "time.apple.com",
    ],
    "microsoft": [
        "time.windows.com",
    ],
    "nist": [
        "time.nist.gov",
    ],
}


def get_stratum_description(stratum: int) -> str:
    """Get human-readable stratum description."""
    if stratum == 0:
        return "Kiss-o'-Death"
    elif stratum == 1:
        return "Primary (GPS, atomic clock)"
    elif stratum < 15:
        return f"Secondary (Stratum {stratum})"
    else:
        return "Unsynchronized"


def get_leap_description(leap: int) -> str:
    """Get human-readable leap indicator description."""
    descriptions = {
        0: "No warning",
        1: "Last minute of the day has 61 seconds",
        2: "Last minute of the day has 59 seconds",
        3: "Unknown (clock unsynchronized)",
    }
    return descriptions.get(leap, "Unknown")
