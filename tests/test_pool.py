"""
Tests for pool sampling.
"""

import pytest

from conftest import FakeNTPClient, FakeResolver
from ntpclock.ntp.client import NTPClient
from ntpclock.ntp.pool import query_pool


class ProgressRecorder:

    def __init__(self):
        self.calls: list[tuple[float | None, int, int]] = []

    def __call__(self, offset, completed, total):
        self.calls.append((offset, completed, total))


@pytest.mark.asyncio
async def test_no_addresses():
    progress = ProgressRecorder()

    offset = await query_pool(
        "empty.test", resolver=FakeResolver([]), client=FakeNTPClient({}), on_progress=progress,
    )

    assert offset is None
    assert progress.calls == [(None, 0, 0)]


@pytest.mark.asyncio
async def test_zero_samples():
    progress = ProgressRecorder()

    offset = await query_pool(
        "pool.test", samples=0,
        resolver=FakeResolver(["10.0.0.1"]), client=FakeNTPClient({"10.0.0.1": 0.5}),
        on_progress=progress,
    )

    assert offset is None
    assert progress.calls == [(None, 0, 0)]


@pytest.mark.asyncio
async def test_median_across_servers():
    resolver = FakeResolver(["10.0.0.1", "10.0.0.2", "10.0.0.3"])
    client = FakeNTPClient({"10.0.0.1": 0.10, "10.0.0.2": 0.12, "10.0.0.3": 9.9})
    progress = ProgressRecorder()

    offset = await query_pool("pool.test", samples=2, resolver=resolver, client=client, on_progress=progress)

    assert offset == pytest.approx(0.12, abs=1e-5)
    assert len(client.calls) == 6
    assert [(c, t) for _, c, t in progress.calls] == [(i, 6) for i in range(1, 7)]
    assert progress.calls[-1][0] == offset


@pytest.mark.asyncio
async def test_running_estimate():
    # 10.0.0.1 answers first, the others much later
    resolver = FakeResolver(["10.0.0.1", "10.0.0.2", "10.0.0.3"])
    client = FakeNTPClient(
        {"10.0.0.1": 1.0, "10.0.0.2": 2.0, "10.0.0.3": 3.0},
        delays={"10.0.0.1": 0.01, "10.0.0.2": 0.2, "10.0.0.3": 0.2},
    )
    progress = ProgressRecorder()

    offset = await query_pool("pool.test", samples=1, resolver=resolver, client=client, on_progress=progress)

    assert progress.calls[0][0] == pytest.approx(1.0, abs=1e-5)
    assert offset == pytest.approx(2.0, abs=1e-5)


@pytest.mark.asyncio
async def test_unanswered_servers():
    resolver = FakeResolver(["10.0.0.1", "10.0.0.2"])
    client = FakeNTPClient({"10.0.0.2": -0.3})
    progress = ProgressRecorder()

    offset = await query_pool("pool.test", samples=2, resolver=resolver, client=client, on_progress=progress)

    assert offset == pytest.approx(-0.3, abs=1e-5)
    assert progress.calls[-1][1:] == (4, 4)


@pytest.mark.asyncio
async def test_nothing_answers():
    progress = ProgressRecorder()

    offset = await query_pool(
        "pool.test", samples=3,
        resolver=FakeResolver(["10.0.0.1"]), client=FakeNTPClient({}), on_progress=progress,
    )

    assert offset is None
    assert progress.calls == [(None, 1, 3), (None, 2, 3), (None, 3, 3)]


@pytest.mark.asyncio
async def test_max_servers():
    resolver = FakeResolver([f"10.0.0.{i}" for i in range(1, 9)])
    client = FakeNTPClient({f"10.0.0.{i}": 0.0 for i in range(1, 9)})

    await query_pool("pool.test", samples=1, max_servers=3, resolver=resolver, client=client)

    assert sorted(client.calls) == ["10.0.0.1", "10.0.0.2", "10.0.0.3"]


@pytest.mark.asyncio
async def test_skip_private():
    resolver = FakeResolver(["10.0.0.1", "17.253.34.125"])
    client = FakeNTPClient({"10.0.0.1": 5.0, "17.253.34.125": 0.25})

    offset = await query_pool("pool.test", samples=1, resolver=resolver, client=client, skip_private=True)

    assert client.calls == ["17.253.34.125"]
    assert offset == pytest.approx(0.25, abs=1e-5)


@pytest.mark.asyncio
async def test_dns_timeout_forwarded():
    resolver = FakeResolver([])
    await query_pool("pool.test", resolver=resolver, client=FakeNTPClient({}), dns_timeout=0.5)
    assert resolver.calls == [("pool.test", 0.5)]


@pytest.mark.asyncio
async def test_against_local_server(ntp_server):
    _, port = await ntp_server(offset=0.75)
    progress = ProgressRecorder()

    offset = await query_pool(
        "127.0.0.1",
        samples=3,
        port=port,
        resolver=FakeResolver(["127.0.0.1"]),
        client=NTPClient(timeout=2.0),
        on_progress=progress,
    )

    assert offset == pytest.approx(0.75, abs=0.05)
    assert [(c, t) for _, c, t in progress.calls] == [(1, 3), (2, 3), (3, 3)]
