"""
ntpclock Test Fixtures
"""

import asyncio
import time

import pytest
import pytest_asyncio

from ntpclock.config import NTPConfig, set_config
from ntpclock.ip.core import InternetAddress
from ntpclock.logging_config import reset_error_stats
from ntpclock.ntp.packet import LeapIndicator, NTPMode, NTPPacket, decode


# Captured from a stratum 2 server reply
SAMPLE_SERVER_PDU = bytes.fromhex(
    "1c0203e90000065700000a68ada2c09cdae2d084a5a76d5fdae2d3354a529000"
    "dae2d32bb38bab46dae2d32bb38d9e00"
)


class FakeUptime:
    """Uptime source under test control."""

    def __init__(self, value: float = 1000.0):
        self.value = value

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


class FakeResolver:
    """Resolver returning a fixed address list."""

    def __init__(self, hosts: list[str]):
        self.addresses = [InternetAddress.parse(host) for host in hosts]
        self.calls: list[tuple[str, float | None]] = []

    async def resolve(self, hostname: str, timeout: float | None = None) -> list[InternetAddress]:
        self.calls.append((hostname, timeout))
        return list(self.addresses)


def make_sample(offset: float, delay: float, origin: float | None = None) -> NTPPacket:
    """Build a server reply with the given offset and round-trip delay."""
    t1 = time.time() if origin is None else origin
    t2 = t1 + offset + delay / 2
    return NTPPacket(
        mode=NTPMode.SERVER,
        stratum=2,
        poll=3,
        precision=-20,
        root_delay=0.01,
        root_dispersion=0.02,
        reference_id=0x0A000001,
        reference_time=t1 - 60,
        origin_time=t1,
        receive_time=t2,
        transmit_time=t2,
        destination_time=t1 + delay,
    )


class FakeNTPClient:
    """
    Exchange client answering from a table of per-host offsets.

    Hosts missing from the table never answer. Each call waits for the
    configured delay so completions interleave like real exchanges.
    """

    def __init__(self, offsets: dict[str, float], delays: dict[str, float] | None = None):
        self.offsets = offsets
        self.delays = delays or {}
        self.calls: list[str] = []

    async def query(self, address, port=None, timeout=None):
        host = address.host
        self.calls.append(host)
        delay = self.delays.get(host, 0.01)
        await asyncio.sleep(delay)
        if host not in self.offsets:
            return None
        return make_sample(self.offsets[host], delay)


class FakeNTPServer(asyncio.DatagramProtocol):
    """Local UDP server answering NTP requests with a fixed clock offset."""

    def __init__(
        self,
        offset: float = 0.0,
        mode: NTPMode = NTPMode.SERVER,
        stratum: int = 2,
        leap: LeapIndicator = LeapIndicator.NO_WARNING,
        root_dispersion: float = 0.02,
        reply: bool = True,
        raw_reply: bytes | None = None,
        reply_after: float = 0.0,
    ):
        self.offset = offset
        self.mode = mode
        self.stratum = stratum
        self.leap = leap
        self.root_dispersion = root_dispersion
        self.reply = reply
        self.raw_reply = raw_reply
        self.reply_after = reply_after
        self.requests: list[NTPPacket] = []
        self.transport = None

    def connection_made(self, transport):
        self.transport = transport

    def datagram_received(self, data, addr):
        request = decode(data, 0.0)
        self.requests.append(request)
        if not self.reply:
            return

        if self.reply_after:
            asyncio.get_running_loop().call_later(self.reply_after, self._respond, request, addr)
        else:
            self._respond(request, addr)

    def _respond(self, request: NTPPacket, addr):
        if self.transport is None or self.transport.is_closing():
            return
        if self.raw_reply is not None:
            self.transport.sendto(self.raw_reply, addr)
            return

        now = time.time() + self.offset
        response = NTPPacket(
            leap=self.leap,
            version=3,
            mode=self.mode,
            stratum=self.stratum,
            poll=3,
            precision=-20,
            root_delay=0.01,
            root_dispersion=self.root_dispersion,
            reference_id=0x0A000001,
            reference_time=now - 30,
            origin_time=request.transmit_time,
            receive_time=now,
        )
        self.transport.sendto(response.to_bytes(transmit_time=now), addr)


@pytest_asyncio.fixture
async def ntp_server():
    """
    Start fake NTP servers on 127.0.0.1.

    Yields a factory: await ntp_server(**FakeNTPServer kwargs) -> (server, port).
    """
    loop = asyncio.get_running_loop()
    transports = []

    async def start(**kwargs):
        transport, protocol = await loop.create_datagram_endpoint(
            lambda: FakeNTPServer(**kwargs),
            local_addr=("127.0.0.1", 0),
        )
        transports.append(transport)
        return protocol, transport.get_extra_info("sockname")[1]

    yield start

    for transport in transports:
        transport.close()


@pytest.fixture
def fake_uptime() -> FakeUptime:
    return FakeUptime()


@pytest.fixture
def config(tmp_path) -> NTPConfig:
    """Configuration isolated from the environment and home directory."""
    config = NTPConfig(
        pool="pool.test",
        samples=2,
        max_servers=3,
        timeout=1.0,
        dns_timeout=1.0,
        nameservers=["127.0.0.1"],
        storage_path=tmp_path / "stable_time.json",
    )
    set_config(config)
    yield config
    set_config(None)


@pytest.fixture(autouse=True)
def clean_error_stats():
    reset_error_stats()
    yield
    reset_error_stats()
