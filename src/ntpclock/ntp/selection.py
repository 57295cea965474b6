"""
Clock offset selection.

Picks one offset out of the responses gathered from every server: the
lowest-delay sample of each server, then the median across servers.
"""

import time
from collections.abc import Hashable, Iterable, Mapping

from ntpclock.exceptions import NoValidSampleError
from ntpclock.ntp.packet import NTPPacket

# Samples whose origin timestamp is this far from now are stale or replayed
DEFAULT_MAX_ORIGIN_AGE = 10.0


def best_sample(
    samples: Iterable[NTPPacket],
    now: float | None = None,
    max_origin_age: float = DEFAULT_MAX_ORIGIN_AGE,
) -> NTPPacket | None:
    """Return the lowest-delay fresh sample, or None if none is fresh."""
    now = time.time() if now is None else now
    fresh = [s for s in samples if abs(now - s.origin_time) < max_origin_age]
    if not fresh:
        return None
    return min(fresh, key=lambda s: s.delay)


def select_offset(
    responses: Mapping[Hashable, Iterable[NTPPacket]],
    now: float | None = None,
    max_origin_age: float = DEFAULT_MAX_ORIGIN_AGE,
) -> float:
    """
    Compute the clock offset from per-server samples.

    Args:
        responses: Samples keyed by server
        now: Current local Unix time (defaults to the wall clock)
        max_origin_age: Maximum distance between origin timestamp and now

    Returns:
        The median of the best per-server offsets (index len // 2 after sorting)

    Raises:
        NoValidSampleError: If no server has a usable sample
    """
    now = time.time() if now is None else now

    offsets = []
    for samples in responses.values():
        sample = best_sample(samples, now, max_origin_age)
        if sample is not None:
            offsets.append(sample.offset)

    if not offsets:
        raise NoValidSampleError(f"No valid sample among {len(responses)} server(s)")

    offsets.sort()
    return offsets[len(offsets) // 2]
