from __future__ import annotations

import asyncio
from time import monotonic

import pytest

from docset_preload.utils.rate_limiter import HostScheduler, host_key


class TestHostKey:
    def test_uses_hostname(self):
        assert host_key("https://Docs.Example.com:8443/guide") == "docs.example.com"

    def test_falls_back_to_default(self):
        assert host_key("not a url") == "default"


class TestHostScheduler:
    async def test_spaces_grants_for_same_host(self):
        scheduler = HostScheduler()
        grants = []
        for _ in range(3):
            async with scheduler.slot("docs.example.com", 100):
                grants.append(monotonic())

        assert grants[1] - grants[0] >= 0.09
        assert grants[2] - grants[1] >= 0.09

    async def test_zero_interval_does_not_wait(self):
        scheduler = HostScheduler()
        start = monotonic()
        for _ in range(5):
            async with scheduler.slot("docs.example.com", 0):
                pass
        assert monotonic() - start < 0.1

    async def test_hosts_do_not_block_each_other(self):
        scheduler = HostScheduler()
        release_a = await scheduler.acquire("a.example.com", 1000)
        try:
            release_b = await asyncio.wait_for(scheduler.acquire("b.example.com", 1000), timeout=0.2)
            release_b()
        finally:
            release_a()
        assert scheduler.known_hosts == 2

    async def test_same_host_is_serialized(self):
        scheduler = HostScheduler()
        release = await scheduler.acquire("docs.example.com", 0)
        waiter = asyncio.ensure_future(scheduler.acquire("docs.example.com", 0))
        await asyncio.sleep(0.05)
        assert not waiter.done()

        release()
        second_release = await asyncio.wait_for(waiter, timeout=0.5)
        second_release()

    async def test_release_is_idempotent(self):
        scheduler = HostScheduler()
        release = await scheduler.acquire("docs.example.com", 0)
        release()
        release()
        again = await asyncio.wait_for(scheduler.acquire("docs.example.com", 0), timeout=0.2)
        again()

    async def test_slot_releases_on_error(self):
        scheduler = HostScheduler()
        with pytest.raises(RuntimeError):
            async with scheduler.slot("docs.example.com", 0):
                raise RuntimeError("boom")
        release = await asyncio.wait_for(scheduler.acquire("docs.example.com", 0), timeout=0.2)
        release()

    async def test_records_last_request_time(self):
        scheduler = HostScheduler()
        assert scheduler.last_request_time("docs.example.com") is None
        async with scheduler.slot("docs.example.com", 0):
            pass
        assert scheduler.last_request_time("docs.example.com") is not None
