"""
DNS Resolution Module

Resolves NTP pool names into the addresses used for sampling.
"""

from ntpclock.dns.core import (
    DNSResolver,
    resolve,
    resolve_sync,
)

__all__ = [
    "DNSResolver",
    "resolve",
    "resolve_sync",
]
