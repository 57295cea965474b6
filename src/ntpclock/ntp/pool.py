"""
Pool sampling.

Resolves an NTP pool, queries every address several times concurrently and
reports a running offset estimate as replies come in.

Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company.
All rights reserved.
"""

import asyncio
import logging
from collections.abc import Callable
from typing import Protocol

from ntpclock.dns.core import DNSResolver
from ntpclock.exceptions import NoValidSampleError
from ntpclock.ip.core import InternetAddress
from ntpclock.ntp.client import NTPClient
from ntpclock.ntp.packet import NTPPacket
from ntpclock.ntp.selection import DEFAULT_MAX_ORIGIN_AGE, select_offset

logger = logging.getLogger(__name__)

DEFAULT_SAMPLES = 4
DEFAULT_MAX_SERVERS = 5

# Called with (offset or None, completed exchanges, total exchanges)
ProgressCallback = Callable[[float | None, int, int], None]


class Resolver(Protocol):
    async def resolve(self, hostname: str, timeout: float | None = None) -> list[InternetAddress]:
        ...


async def query_pool(
    pool: str,
    samples: int = DEFAULT_SAMPLES,
    max_servers: int = DEFAULT_MAX_SERVERS,
    timeout: float | None = None,
    on_progress: ProgressCallback | None = None,
    *,
    port: int | None = None,
    resolver: Resolver | None = None,
    client: NTPClient | None = None,
    dns_timeout: float | None = None,
    skip_private: bool = False,
    max_origin_age: float = DEFAULT_MAX_ORIGIN_AGE,
) -> float | None:
    """
    Sample every server behind a pool name and compute the clock offset.

    Args:
        pool: Pool hostname (or literal address)
        samples: Exchanges per server
        max_servers: Maximum number of resolved addresses to use
        timeout: Per-exchange timeout (defaults to the client timeout)
        on_progress: Called after every finished exchange, and once with
            (None, 0, 0) when the pool resolves to nothing
        port: Server port (defaults to the client port)
        resolver: Name resolver (defaults to DNSResolver())
        client: Exchange client (defaults to NTPClient())
        dns_timeout: Resolution timeout (defaults to the resolver timeout)
        skip_private: Drop private, multicast and broadcast addresses
        max_origin_age: Staleness window passed to offset selection

    Returns:
        The final offset in seconds, or None if no server gave a usable sample
    """
    resolver = resolver or DNSResolver()
    client = client or NTPClient()

    addresses = await resolver.resolve(pool, dns_timeout)
    if skip_private:
        addresses = [address for address in addresses if not address.is_private]
    addresses = addresses[:max_servers]

    total = len(addresses) * samples
    if total == 0:
        logger.info("Pool %s gave no servers to sample", pool)
        if on_progress:
            on_progress(None, 0, 0)
        return None

    async def sample(address: InternetAddress) -> tuple[InternetAddress, NTPPacket | None]:
        return address, await client.query(address, port, timeout)

    # Owned by this coroutine only; exchanges report back through as_completed
    responses: dict[InternetAddress, list[NTPPacket]] = {address: [] for address in addresses}
    tasks = [
        asyncio.ensure_future(sample(address))
        for _ in range(samples)
        for address in addresses
    ]

    completed = 0
    offset = None
    for next_done in asyncio.as_completed(tasks):
        address, packet = await next_done
        completed += 1
        if packet is not None:
            responses[address].append(packet)

        try:
            offset = select_offset(responses, max_origin_age=max_origin_age)
        except NoValidSampleError:
            offset = None

        if on_progress:
            on_progress(offset, completed, total)

    answered = sum(1 for packets in responses.values() if packets)
    logger.info(
        "Sampled %s: %d/%d server(s) answered, offset=%s",
        pool, answered, len(addresses), f"{offset:.6f}s" if offset is not None else "none",
    )
    return offset
