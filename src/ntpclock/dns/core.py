"""
Pool name resolution.

Turns an NTP pool hostname into the list of addresses to sample. Lookups
never raise: a failed or timed out resolution is an empty list.
"""

import asyncio
import logging

import dns.asyncresolver
import dns.exception
import dns.resolver

from ntpclock.exceptions import InvalidAddressError
from ntpclock.ip.core import InternetAddress
from ntpclock.logging_config import track_error

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5.0

# Queried in this order; IPv4 answers come first in the result
RECORD_TYPES = ("A", "AAAA")


class DNSResolver:
    """Async resolver for NTP pool names."""

    def __init__(self, nameservers: list[str] | None = None, timeout: float = DEFAULT_TIMEOUT):
        self.nameservers = list(nameservers or [])
        self.timeout = timeout
        self._resolver: dns.asyncresolver.Resolver | None = None

    @property
    def resolver(self) -> dns.asyncresolver.Resolver:
        # Built on first use so that hosts without resolv.conf can still
        # construct a resolver for literal addresses
        if self._resolver is None:
            if self.nameservers:
                resolver = dns.asyncresolver.Resolver(configure=False)
                resolver.nameservers = self.nameservers
            else:
                resolver = dns.asyncresolver.Resolver()
            resolver.timeout = self.timeout
            resolver.lifetime = self.timeout
            self._resolver = resolver
        return self._resolver

    async def _lookup(self, hostname: str, record_type: str, timeout: float) -> list[str]:
        """Resolve one record type, returning textual addresses."""
        try:
            answers = await self.resolver.resolve(hostname, record_type, lifetime=timeout)
            return [rdata.address for rdata in answers]
        except (dns.resolver.NXDOMAIN, dns.resolver.NoAnswer):
            return []
        except dns.resolver.NoNameservers as e:
            track_error("dns_failure", f"No nameservers answered for {hostname}", context={"type": record_type})
            logger.debug("NoNameservers for %s %s: %s", hostname, record_type, e)
            return []
        except dns.exception.Timeout:
            track_error("dns_failure", f"Timed out resolving {hostname}", context={"type": record_type})
            return []
        except dns.exception.DNSException as e:
            track_error("dns_failure", f"Could not resolve {hostname}: {e}", context={"type": record_type})
            return []

    async def resolve(self, hostname: str, timeout: float | None = None) -> list[InternetAddress]:
        """
        Resolve a hostname into its IPv4 and IPv6 addresses.

        Args:
            hostname: Pool name or literal IP address
            timeout: Overall timeout in seconds (defaults to the resolver timeout)

        Returns:
            Addresses in answer order, IPv4 first, without duplicates.
            Empty on failure or timeout.
        """
        timeout = self.timeout if timeout is None else timeout

        try:
            return [InternetAddress.parse(hostname)]
        except InvalidAddressError:
            pass

        if timeout <= 0:
            return []

        try:
            answers = await asyncio.wait_for(
                asyncio.gather(*(self._lookup(hostname, rtype, timeout) for rtype in RECORD_TYPES)),
                timeout,
            )
        except asyncio.TimeoutError:
            track_error("dns_failure", f"Timed out resolving {hostname}", context={"timeout": timeout})
            return []

        addresses: list[InternetAddress] = []
        for records in answers:
            for record in records:
                try:
                    address = InternetAddress.parse(record)
                except InvalidAddressError:
                    continue
                if address not in addresses:
                    addresses.append(address)

        logger.debug("Resolved %s to %d address(es)", hostname, len(addresses))
        return addresses


async def resolve(
    hostname: str,
    timeout: float = DEFAULT_TIMEOUT,
    nameserver: str | None = None,
) -> list[InternetAddress]:
    """Resolve a hostname into addresses."""
    resolver = DNSResolver(nameservers=[nameserver] if nameserver else None, timeout=timeout)
    return await resolver.resolve(hostname, timeout)


def resolve_sync(
    hostname: str,
    timeout: float = DEFAULT_TIMEOUT,
    nameserver: str | None = None,
) -> list[InternetAddress]:
    """Synchronous wrapper for resolve."""
    return asyncio.run(resolve(hostname, timeout, nameserver))
