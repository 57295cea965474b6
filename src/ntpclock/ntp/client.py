"""
Single NTP exchange over UDP.

Each query owns one datagram endpoint: the request is sent as soon as the
endpoint is up, the first reply is decoded with its arrival time, and the
endpoint is closed on reply, error or timeout. Every failure resolves to
None so callers can simply take another sample.

Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company.
All rights reserved.
"""

import asyncio
import logging
import time
from dataclasses import dataclass

from ntpclock.config import NTPConfig
from ntpclock.exceptions import InvalidAddressError, InvalidPacketError
from ntpclock.ip.core import InternetAddress, parse_address
from ntpclock.logging_config import track_error
from ntpclock.ntp.packet import LeapIndicator, NTPMode, NTPPacket, Stratum, decode

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5.0
DEFAULT_PORT = 123
DEFAULT_VERSION = 3


@dataclass
class ResponseValidation:
    """Thresholds a server reply must meet to be used as a sample."""
    max_dispersion: float = 100.0
    # Allowed gap between client-observed elapsed time and computed delay
    max_delay_difference: float = 0.1

    @classmethod
    def from_config(cls, config: NTPConfig) -> "ResponseValidation":
        return cls(
            max_dispersion=config.max_dispersion,
            max_delay_difference=config.max_delay_difference,
        )


def is_valid_response(
    packet: NTPPacket,
    validation: ResponseValidation | None = None,
    now: float | None = None,
) -> bool:
    """
    Check that a reply is usable as a clock sample.

    Args:
        packet: Decoded reply
        validation: Thresholds (defaults to ResponseValidation())
        now: Current local Unix time (defaults to the wall clock)

    Returns:
        True if the reply comes from a synchronized server and its timing is
        consistent with what the client observed
    """
    validation = validation or ResponseValidation()
    now = time.time() if now is None else now

    if packet.mode not in (NTPMode.SERVER, NTPMode.SYMMETRIC_PASSIVE):
        return False
    if packet.leap == LeapIndicator.ALARM:
        return False
    if packet.stratum_level in (Stratum.UNSPECIFIED, Stratum.INVALID):
        return False
    if packet.root_dispersion >= validation.max_dispersion:
        return False

    delay = packet.delay
    if delay < 0:
        return False
    return abs(now - packet.origin_time - delay) < validation.max_delay_difference


class NTPExchangeProtocol(asyncio.DatagramProtocol):
    """Sends one request and completes a future with the first reply."""

    def __init__(self, request: NTPPacket, result: asyncio.Future):
        self.request = request
        self.result = result

    def connection_made(self, transport: asyncio.DatagramTransport) -> None:
        transport.sendto(self.request.to_bytes())

    def datagram_received(self, data: bytes, addr) -> None:
        destination_time = time.time()
        if not self.result.done():
            self.result.set_result((data, destination_time))

    def error_received(self, exc: Exception) -> None:
        if not self.result.done():
            self.result.set_exception(exc)

    def connection_lost(self, exc: Exception | None) -> None:
        if not self.result.done():
            self.result.set_exception(exc or ConnectionError("Endpoint closed before reply"))


class NTPClient:
    """
    Async NTP client for single exchanges.

    Usage:
        client = NTPClient(timeout=2.0)
        packet = await client.query("17.253.34.125")
        if packet:
            print(f"Offset: {packet.offset:.6f}s")
    """

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        version: int = DEFAULT_VERSION,
        port: int = DEFAULT_PORT,
        validation: ResponseValidation | None = None,
    ):
        """
        Initialize NTP client.

        Args:
            timeout: Per-exchange timeout in seconds
            version: NTP version sent in requests
            port: Default server port
            validation: Reply validation thresholds
        """
        self.timeout = timeout
        self.version = version
        self.port = port
        self.validation = validation or ResponseValidation()

    @classmethod
    def from_config(cls, config: NTPConfig) -> "NTPClient":
        return cls(
            timeout=config.timeout,
            version=config.version,
            port=config.port,
            validation=ResponseValidation.from_config(config),
        )

    async def _exchange(self, address: InternetAddress, port: int) -> tuple[bytes, float]:
        loop = asyncio.get_running_loop()
        result = loop.create_future()
        request = NTPPacket.request(version=self.version)

        transport, _ = await loop.create_datagram_endpoint(
            lambda: NTPExchangeProtocol(request, result),
            remote_addr=address.sockaddr(port),
            family=address.family,
        )
        try:
            return await result
        finally:
            transport.close()

    async def query(
        self,
        address: InternetAddress | str,
        port: int | None = None,
        timeout: float | None = None,
    ) -> NTPPacket | None:
        """
        Run one NTP exchange.

        Args:
            address: Server address
            port: Server port (defaults to the client port)
            timeout: Exchange timeout (defaults to the client timeout)

        Returns:
            The validated reply, or None on timeout, socket error,
            malformed reply or failed validation
        """
        port = self.port if port is None else port
        timeout = self.timeout if timeout is None else timeout

        try:
            address = parse_address(address)
        except InvalidAddressError as e:
            track_error("invalid_address", str(e))
            return None

        context = {"server": address.host, "port": port}
        try:
            data, destination_time = await asyncio.wait_for(self._exchange(address, port), timeout)
        except asyncio.TimeoutError:
            track_error("exchange_timeout", f"No reply within {timeout}s", context=context)
            return None
        except OSError as e:
            track_error("exchange_socket_error", str(e), context=context)
            return None

        try:
            packet = decode(data, destination_time)
        except InvalidPacketError as e:
            track_error("invalid_packet", str(e), context=context)
            return None

        if not is_valid_response(packet, self.validation):
            track_error(
                "invalid_response",
                "Reply rejected",
                context={**context, "mode": packet.mode.name, "stratum": packet.stratum},
            )
            return None

        logger.debug(
            "%s replied: offset=%.6fs delay=%.6fs stratum=%d",
            address.host, packet.offset, packet.delay, packet.stratum,
        )
        return packet

    async def query_samples(
        self,
        address: InternetAddress | str,
        number_of_samples: int,
        port: int | None = None,
        timeout: float | None = None,
    ) -> list[NTPPacket | None]:
        """Run independent concurrent exchanges against one server."""
        return list(await asyncio.gather(
            *(self.query(address, port, timeout) for _ in range(number_of_samples))
        ))


def query_sync(
    address: str,
    port: int = DEFAULT_PORT,
    timeout: float = DEFAULT_TIMEOUT,
    version: int = DEFAULT_VERSION,
) -> NTPPacket | None:
    """Synchronous wrapper for a single exchange."""
    client = NTPClient(timeout=timeout, version=version, port=port)
    return asyncio.run(client.query(address))
