"""
High level clock synchronized with NTP.

The application owns a Clock instance. Dates it returns use the most accurate
offset found so far and are not affected by later changes to the system
clock.

Usage:
    clock = Clock(storage=FileTimeStorage("~/.ntpclock/stable_time.json"))
    await clock.sync(on_first=lambda date, offset: print(date))

    # (... later on ...)
    print(clock.now())

Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company.
All rights reserved.
"""

import asyncio
import concurrent.futures
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone

from ntpclock.clock.freeze import TimeFreeze
from ntpclock.clock.storage import TimeStorage
from ntpclock.clock.uptime import UptimeSource, check_uptime_source, system_uptime
from ntpclock.config import NTPConfig, get_config
from ntpclock.dns.core import DNSResolver
from ntpclock.exceptions import StorageError
from ntpclock.logging_config import track_error
from ntpclock.ntp.client import NTPClient
from ntpclock.ntp.pool import ProgressCallback, Resolver, query_pool

logger = logging.getLogger(__name__)

FirstCallback = Callable[[datetime, float], None]
CompletionCallback = Callable[[datetime | None, float | None], None]


@dataclass(frozen=True)
class AnnotatedTime:
    """A date along with how long ago the offset behind it was measured."""
    date: datetime
    time_since_last_sync: float


class Clock:
    """
    NTP-backed clock that never steps the system clock.

    A lock guards the stored TimeFreeze, so now() and current_offset can be
    read from any thread while a sync replaces it.
    """

    def __init__(
        self,
        storage: TimeStorage | None = None,
        uptime_source: UptimeSource = system_uptime,
        config: NTPConfig | None = None,
        resolver: Resolver | None = None,
        client: NTPClient | None = None,
    ):
        """
        Initialize the clock.

        Args:
            storage: Where the last stable time is persisted (None disables it)
            uptime_source: Monotonic uptime that ticks through sleep
            config: Sync defaults (defaults to the global configuration)
            resolver: Pool name resolver
            client: NTP exchange client

        Raises:
            UptimeUnavailableError: If the uptime source does not work
        """
        self.config = config or get_config()
        self.uptime_source = uptime_source
        check_uptime_source(uptime_source)

        self.storage = storage
        self.resolver = resolver or DNSResolver(
            nameservers=self.config.nameservers or None,
            timeout=self.config.dns_timeout,
        )
        self.client = client or NTPClient.from_config(self.config)

        self._lock = threading.Lock()
        self._stable_time: TimeFreeze | None = None

    # ================================================================
    # State
    # ================================================================

    @property
    def stable_time(self) -> TimeFreeze | None:
        with self._lock:
            return self._stable_time

    def _replace(self, stable_time: TimeFreeze | None, persist: bool = True) -> None:
        with self._lock:
            self._stable_time = stable_time

        if persist and stable_time is not None and self.storage is not None:
            try:
                self.storage.save(stable_time.to_dict())
            except StorageError as e:
                track_error("storage_write", str(e), exception=e)

    @property
    def current_offset(self) -> float | None:
        """Offset between the local clock and NTP time (None before any sync)."""
        stable_time = self.stable_time
        return stable_time.offset if stable_time else None

    @current_offset.setter
    def current_offset(self, offset: float | None) -> None:
        if offset is None:
            self._replace(None)
        else:
            self._replace(TimeFreeze.capture(offset, self.uptime_source))

    def timestamp(self) -> float | None:
        """The most accurate Unix timestamp so far (None if never synced)."""
        stable_time = self.stable_time
        if stable_time is None:
            return None
        return stable_time.adjusted_timestamp(self.uptime_source())

    def now(self) -> datetime | None:
        """The most accurate UTC date so far (None if never synced)."""
        timestamp = self.timestamp()
        if timestamp is None:
            return None
        return datetime.fromtimestamp(timestamp, tz=timezone.utc)

    def now_annotated(self) -> AnnotatedTime | None:
        stable_time = self.stable_time
        if stable_time is None:
            return None
        uptime = self.uptime_source()
        return AnnotatedTime(
            date=datetime.fromtimestamp(stable_time.adjusted_timestamp(uptime), tz=timezone.utc),
            time_since_last_sync=stable_time.time_since_last_sync(uptime),
        )

    def reset(self, clear_storage: bool = False) -> None:
        """Forget the current offset; now() returns None until the next sync."""
        self._replace(None)
        if clear_storage and self.storage is not None:
            self.storage.clear()

    def load_from_storage(self) -> bool:
        """Seed state from storage. Returns True if a stored value was usable."""
        if self.storage is None:
            return False

        stable_time = TimeFreeze.from_dict(
            self.storage.load(),
            uptime_source=self.uptime_source,
            tolerance=self.config.boot_time_tolerance,
        )
        if stable_time is None:
            return False

        self._replace(stable_time, persist=False)
        logger.debug("Restored stable time with offset %.6fs", stable_time.offset)
        return True

    # ================================================================
    # Sync
    # ================================================================

    async def sync(
        self,
        pool: str | None = None,
        samples: int | None = None,
        max_servers: int | None = None,
        timeout: float | None = None,
        on_first: FirstCallback | None = None,
        on_complete: CompletionCallback | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> tuple[datetime | None, float | None]:
        """
        Sync with an NTP pool.

        The full sync can take a few seconds. on_first is called with the
        first valid offset, which is good enough for an initial adjustment;
        sampling then continues over every server and the state keeps
        improving. Callbacks run on the event loop running this coroutine.

        Args:
            pool: Pool resolved into the servers to sample
            samples: Samples per server
            max_servers: Maximum number of servers to use
            timeout: Per-exchange timeout
            on_first: Called once with (date, offset) for the first valid offset
            on_complete: Called once with (date, offset) after every exchange
                finished, or (None, None) if no offset was found
            on_progress: Called with (offset, completed, total) after every
                exchange, after the clock state was updated

        Returns:
            The same (date, offset) pair passed to on_complete
        """
        config = self.config
        pool = pool or config.pool
        samples = config.samples if samples is None else samples
        max_servers = config.max_servers if max_servers is None else max_servers

        if self.stable_time is None:
            self.load_from_storage()

        applied_offset: float | None = None
        first_reported = False
        result: tuple[datetime | None, float | None] = (None, None)

        def handle_progress(offset: float | None, completed: int, total: int) -> None:
            nonlocal applied_offset, first_reported, result

            if offset is not None and offset != applied_offset:
                applied_offset = offset
                self._replace(TimeFreeze.capture(offset, self.uptime_source))

            if on_progress:
                on_progress(offset, completed, total)

            if offset is not None and not first_reported:
                first_reported = True
                if on_first:
                    on_first(self.now(), offset)

            if completed == total:
                result = (self.now(), offset) if offset is not None else (None, None)
                if on_complete:
                    on_complete(*result)

        await query_pool(
            pool,
            samples=samples,
            max_servers=max_servers,
            timeout=timeout,
            on_progress=handle_progress,
            port=config.port,
            resolver=self.resolver,
            client=self.client,
            dns_timeout=config.dns_timeout,
            max_origin_age=config.max_origin_age,
        )
        return result

    def start_sync(
        self,
        *args,
        loop: asyncio.AbstractEventLoop | None = None,
        **kwargs,
    ) -> "asyncio.Task | concurrent.futures.Future":
        """
        Start a sync without waiting for it.

        With loop, the sync is scheduled on that (running) loop from any
        thread and a concurrent Future is returned; otherwise it becomes a
        task on the current running loop.
        """
        if loop is not None:
            return asyncio.run_coroutine_threadsafe(self.sync(*args, **kwargs), loop)
        running = asyncio.get_running_loop()
        return running.create_task(self.sync(*args, **kwargs))

    def sync_blocking(self, *args, **kwargs) -> tuple[datetime | None, float | None]:
        """Synchronous wrapper for sync."""
        return asyncio.run(self.sync(*args, **kwargs))
