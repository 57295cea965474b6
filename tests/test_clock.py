"""
Tests for the Clock.
"""

import asyncio
import gc
import time
from datetime import datetime, timezone

import pytest

from conftest import FakeNTPClient, FakeResolver, FakeUptime
from ntpclock.clock import Clock, FileTimeStorage, MemoryTimeStorage
from ntpclock.exceptions import StorageError, UptimeUnavailableError
from ntpclock.logging_config import get_error_stats


class CallRecorder:

    def __init__(self):
        self.calls: list[tuple] = []

    def __call__(self, *args):
        self.calls.append(args)


class FailingStorage(MemoryTimeStorage):

    def save(self, data):
        raise StorageError("disk full")


def make_clock(config, hosts=(), offsets=None, storage=None, uptime=None) -> Clock:
    return Clock(
        storage=storage,
        uptime_source=uptime or FakeUptime(),
        config=config,
        resolver=FakeResolver(list(hosts)),
        client=FakeNTPClient(offsets or {}),
    )


class TestState:

    def test_unsynced(self, config):
        clock = make_clock(config)
        assert clock.now() is None
        assert clock.timestamp() is None
        assert clock.now_annotated() is None
        assert clock.current_offset is None

    def test_set_offset(self, config):
        clock = make_clock(config)
        clock.current_offset = 2.0

        assert clock.current_offset == 2.0
        assert clock.timestamp() == pytest.approx(time.time() + 2.0, abs=0.5)
        assert clock.now().tzinfo == timezone.utc

    def test_now_follows_uptime(self, config):
        uptime = FakeUptime(100.0)
        clock = make_clock(config, uptime=uptime)
        clock.current_offset = 0.0

        before = clock.timestamp()
        uptime.advance(30)
        assert clock.timestamp() - before == pytest.approx(30.0)

    def test_now_annotated(self, config):
        uptime = FakeUptime(100.0)
        clock = make_clock(config, uptime=uptime)
        clock.current_offset = 1.0
        uptime.advance(12)

        annotated = clock.now_annotated()
        assert annotated.time_since_last_sync == 12.0
        assert isinstance(annotated.date, datetime)

    def test_reset(self, config):
        storage = MemoryTimeStorage()
        clock = make_clock(config, storage=storage)
        clock.current_offset = 1.0

        clock.reset()
        assert clock.now() is None
        assert storage.load() is not None

        clock.current_offset = 1.0
        clock.reset(clear_storage=True)
        assert storage.load() is None

    def test_offset_persisted(self, config):
        storage = MemoryTimeStorage()
        clock = make_clock(config, storage=storage)
        clock.current_offset = -0.5
        assert storage.load()["offset"] == -0.5

    def test_storage_failure_is_not_fatal(self, config):
        clock = make_clock(config, storage=FailingStorage())
        clock.current_offset = 0.5
        assert clock.current_offset == 0.5
        assert get_error_stats()["storage_write"] == 1

    def test_uptime_unavailable(self, config):
        def broken() -> float:
            raise UptimeUnavailableError("no uptime")

        with pytest.raises(UptimeUnavailableError):
            Clock(uptime_source=broken, config=config)


class TestStorageSeeding:

    def test_load_from_storage(self, config):
        uptime = FakeUptime(500.0)
        storage = MemoryTimeStorage({"uptime": 500.0, "timestamp": time.time(), "offset": 0.25})
        clock = make_clock(config, storage=storage, uptime=uptime)

        assert clock.load_from_storage()
        assert clock.current_offset == 0.25
        assert clock.now() is not None

    def test_rebooted_storage_ignored(self, config):
        storage = MemoryTimeStorage({"uptime": 90_000.0, "timestamp": time.time() - 60, "offset": 0.25})
        clock = make_clock(config, storage=storage, uptime=FakeUptime(30.0))

        assert not clock.load_from_storage()
        assert clock.now() is None

    def test_no_storage(self, config):
        assert not make_clock(config).load_from_storage()

    def test_file_storage_across_instances(self, config):
        uptime = FakeUptime(500.0)
        first = make_clock(config, storage=FileTimeStorage(config.storage_path), uptime=uptime)
        first.current_offset = 0.125

        second = make_clock(config, storage=FileTimeStorage(config.storage_path), uptime=uptime)
        assert second.load_from_storage()
        assert second.current_offset == 0.125

    @pytest.mark.asyncio
    async def test_sync_seeds_from_storage(self, config):
        storage = MemoryTimeStorage({"uptime": 1000.0, "timestamp": time.time(), "offset": 0.25})
        clock = make_clock(config, storage=storage)

        await clock.sync()

        # Nothing answered, the stored value remains in use
        assert clock.current_offset == 0.25


class TestSync:

    @pytest.mark.asyncio
    async def test_no_servers(self, config):
        on_first = CallRecorder()
        on_complete = CallRecorder()
        clock = make_clock(config)

        result = await clock.sync(on_first=on_first, on_complete=on_complete)

        assert result == (None, None)
        assert on_complete.calls == [(None, None)]
        assert on_first.calls == []
        assert clock.now() is None

    @pytest.mark.asyncio
    async def test_no_answers(self, config):
        on_complete = CallRecorder()
        clock = make_clock(config, hosts=["10.0.0.1"])

        assert await clock.sync(on_complete=on_complete) == (None, None)
        assert on_complete.calls == [(None, None)]

    @pytest.mark.asyncio
    async def test_callbacks(self, config):
        on_first = CallRecorder()
        on_complete = CallRecorder()
        on_progress = CallRecorder()
        clock = make_clock(
            config,
            hosts=["10.0.0.1", "10.0.0.2", "10.0.0.3"],
            offsets={"10.0.0.1": 0.5, "10.0.0.2": 0.6, "10.0.0.3": 0.7},
        )

        date, offset = await clock.sync(
            samples=2, on_first=on_first, on_complete=on_complete, on_progress=on_progress,
        )

        assert offset == pytest.approx(0.6, abs=1e-5)
        assert isinstance(date, datetime)
        assert len(on_first.calls) == 1
        assert on_first.calls[0][0] is not None
        assert on_complete.calls == [(date, offset)]
        assert [call[1:] for call in on_progress.calls] == [(i, 6) for i in range(1, 7)]
        assert clock.current_offset == offset

    @pytest.mark.asyncio
    async def test_first_callback_sees_updated_clock(self, config):
        clock = make_clock(config, hosts=["10.0.0.1"], offsets={"10.0.0.1": 3.0})
        seen = []

        await clock.sync(samples=1, on_first=lambda date, offset: seen.append(clock.current_offset))

        assert seen == [pytest.approx(3.0, abs=1e-5)]

    @pytest.mark.asyncio
    async def test_sync_overrides(self, config):
        clock = make_clock(config, hosts=["10.0.0.1", "10.0.0.2"], offsets={"10.0.0.1": 0.1})

        await clock.sync("other.test", samples=3, max_servers=1)

        assert clock.resolver.calls[0][0] == "other.test"
        assert clock.client.calls == ["10.0.0.1"] * 3

    @pytest.mark.asyncio
    async def test_sync_defaults_from_config(self, config):
        clock = make_clock(config, hosts=["10.0.0.1", "10.0.0.2", "10.0.0.3", "10.0.0.4"])

        await clock.sync()

        assert clock.resolver.calls == [(config.pool, config.dns_timeout)]
        assert len(clock.client.calls) == config.samples * config.max_servers

    @pytest.mark.asyncio
    async def test_sync_persists(self, config):
        storage = MemoryTimeStorage()
        clock = make_clock(config, hosts=["10.0.0.1"], offsets={"10.0.0.1": -2.0}, storage=storage)

        await clock.sync()

        assert storage.load()["offset"] == pytest.approx(-2.0, abs=1e-5)

    @pytest.mark.asyncio
    async def test_start_sync(self, config):
        on_complete = CallRecorder()
        clock = make_clock(config, hosts=["10.0.0.1"], offsets={"10.0.0.1": 0.4})

        task = clock.start_sync(on_complete=on_complete)
        assert isinstance(task, asyncio.Task)
        await task

        assert len(on_complete.calls) == 1

    def test_start_sync_without_loop(self, config, recwarn):
        clock = make_clock(config, hosts=["10.0.0.1"], offsets={"10.0.0.1": 0.4})

        with pytest.raises(RuntimeError):
            clock.start_sync()

        gc.collect()
        assert not [w for w in recwarn if "never awaited" in str(w.message)]

    def test_sync_blocking(self, config):
        clock = make_clock(config, hosts=["10.0.0.1"], offsets={"10.0.0.1": 0.4})
        _, offset = clock.sync_blocking(samples=1)
        assert offset == pytest.approx(0.4, abs=1e-5)

    @pytest.mark.asyncio
    async def test_repeated_syncs_agree(self, config, ntp_server):
        _, port = await ntp_server(offset=1.5)
        config.port = port
        clock = Clock(
            uptime_source=FakeUptime(),
            config=config,
            resolver=FakeResolver(["127.0.0.1"]),
        )

        _, first = await clock.sync()
        _, second = await clock.sync()

        assert first == pytest.approx(1.5, abs=0.05)
        assert abs(first - second) < 0.1
