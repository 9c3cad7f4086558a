"""Per-host pacing for polite crawling."""

import asyncio
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from time import monotonic
from urllib.parse import urlparse


def host_key(url: str) -> str:
    """Return the hostname a URL is paced under."""
    try:
        hostname = urlparse(url).hostname
    except ValueError:
        hostname = None
    return hostname or "default"


class HostScheduler:
    """Serialize and pace outbound requests per hostname.

    Requests for one host are granted one at a time in FIFO order, and each
    grant waits until ``min_interval_ms`` has passed since the previous grant
    for that host. Hosts never block each other.

    Pacing state is kept for every hostname ever seen and is never expired.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._last_request_time: dict[str, float] = {}

    async def acquire(self, host: str, min_interval_ms: int) -> Callable[[], None]:
        """Wait for the host's turn, then return a release handle.

        The handle must be called exactly once when the request is done;
        extra calls are ignored.
        """
        lock = self._locks.setdefault(host, asyncio.Lock())
        await lock.acquire()
        try:
            last = self._last_request_time.get(host)
            if last is not None:
                wait_time = min_interval_ms / 1000 - (monotonic() - last)
                if wait_time > 0:
                    await asyncio.sleep(wait_time)
            self._last_request_time[host] = monotonic()
        except BaseException:
            lock.release()
            raise

        released = False

        def release() -> None:
            nonlocal released
            if released:
                return
            released = True
            lock.release()

        return release

    @asynccontextmanager
    async def slot(self, host: str, min_interval_ms: int) -> AsyncIterator[None]:
        """Hold the host's slot for the duration of the ``async with`` block."""
        release = await self.acquire(host, min_interval_ms)
        try:
            yield
        finally:
            release()

    def last_request_time(self, host: str) -> float | None:
        """Monotonic timestamp of the last grant for ``host``, if any."""
        return self._last_request_time.get(host)

    @property
    def known_hosts(self) -> int:
        return len(self._last_request_time)
