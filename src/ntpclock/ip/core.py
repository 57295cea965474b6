"""
Resolved internet addresses.

An address is either IPv4 or IPv6. Two addresses are the same address when
their canonical host strings match; the raw bytes they were built from are
not compared.
"""

import socket
from abc import ABC, abstractmethod

from netaddr import AddrFormatError, IPAddress, IPSet

from ntpclock.exceptions import InvalidAddressError


# Ranges callers skip when picking NTP servers
PRIVATE_RANGES_V4 = [
    "10.0.0.0/8",          # Private-Use
    "172.16.0.0/12",       # Private-Use
    "192.168.0.0/16",      # Private-Use
    "224.0.0.0/4",         # Multicast
    "255.255.255.255/32",  # Limited Broadcast
]

PRIVATE_RANGES_V6 = [
    "fd00::/8",            # Unique-Local (locally assigned)
    "ff00::/8",            # Multicast
]

_PRIVATE_V4 = IPSet(PRIVATE_RANGES_V4)
_PRIVATE_V6 = IPSet(PRIVATE_RANGES_V6)


class InternetAddress(ABC):
    """An IPv4 or IPv6 address returned by the resolver."""

    version: int = 0
    family: int = socket.AF_UNSPEC

    def __init__(self, address: IPAddress):
        if address.version != self.version:
            raise InvalidAddressError(
                f"{address} is not an IPv{self.version} address"
            )
        self._address = address

    @classmethod
    def parse(cls, text: str) -> "InternetAddress":
        """Build the IPv4 or IPv6 variant for a textual address."""
        try:
            address = IPAddress(text.strip())
        except (AddrFormatError, ValueError, TypeError) as e:
            raise InvalidAddressError(f"Invalid IP address: {text!r}") from e

        if address.version == 4:
            return IPv4Address(address)
        return IPv6Address(address)

    @property
    def host(self) -> str:
        """Canonical host string (e.g. '192.168.1.1' or 'fd00::1')."""
        return str(self._address)

    @property
    def ip(self) -> IPAddress:
        return self._address

    @property
    @abstractmethod
    def is_private(self) -> bool:
        """Whether the address falls in a private, local or multicast range."""

    def sockaddr(self, port: int) -> tuple:
        """Socket address tuple for this host and port."""
        return (self.host, port)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, InternetAddress):
            return NotImplemented
        return self.host == other.host

    def __hash__(self) -> int:
        return hash(self.host)

    def __str__(self) -> str:
        return self.host

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.host!r})"


class IPv4Address(InternetAddress):
    """An IPv4 address (e.g. '127.0.0.1')."""

    version = 4
    family = socket.AF_INET

    @property
    def is_private(self) -> bool:
        return self._address in _PRIVATE_V4


class IPv6Address(InternetAddress):
    """An IPv6 address (e.g. '::1')."""

    version = 6
    family = socket.AF_INET6

    @property
    def is_private(self) -> bool:
        return self._address in _PRIVATE_V6

    def sockaddr(self, port: int) -> tuple:
        return (self.host, port, 0, 0)


def parse_address(address: "str | InternetAddress") -> InternetAddress:
    """Return an InternetAddress, parsing strings as needed."""
    if isinstance(address, InternetAddress):
        return address
    return InternetAddress.parse(address)


def is_private(ip: str) -> bool:
    """Check if an IP address is private, multicast or broadcast."""
    try:
        return InternetAddress.parse(ip).is_private
    except InvalidAddressError:
        return False
