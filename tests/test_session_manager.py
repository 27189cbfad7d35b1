"""
Tests for the provider session manager.

Run with:
$ pytest -q tests/test_session_manager.py
"""

import asyncio

import pytest
from fakes import SessionFactory

from agentic_chatbot.tools.session_manager import ProviderSessionManager


class Clock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


async def _settle() -> None:
    for _ in range(3):
        await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_concurrent_acquires_share_one_connection() -> None:
    """Requests arriving while the session is being established wait for the same attempt."""

    factory = SessionFactory(delay=0.05)
    manager = ProviderSessionManager(factory, ttl=300, cache_enabled=True)

    leases = await asyncio.gather(*(manager.acquire() for _ in range(5)))

    assert len(factory.sessions) == 1
    assert all(lease.session is factory.sessions[0] for lease in leases)
    assert not any(lease.owned for lease in leases)


@pytest.mark.asyncio
async def test_cached_session_is_reused_and_not_closed_on_release() -> None:
    factory = SessionFactory()
    manager = ProviderSessionManager(factory, ttl=300, cache_enabled=True)

    async with manager.lease() as first:
        pass
    async with manager.lease() as second:
        pass

    assert first.session is second.session
    assert len(factory.sessions) == 1
    assert not factory.sessions[0].closed


@pytest.mark.asyncio
async def test_stale_session_is_closed_after_last_lease() -> None:
    clock = Clock()
    factory = SessionFactory()
    manager = ProviderSessionManager(factory, ttl=300, cache_enabled=True, clock=clock)

    old = await manager.acquire()
    clock.now += 301
    new = await manager.acquire()

    assert new.session is not old.session
    assert not old.session.closed

    await manager.release_if_owned(old)
    assert old.session.closed
    assert not new.session.closed


@pytest.mark.asyncio
async def test_unused_stale_session_is_closed_on_refresh() -> None:
    clock = Clock()
    factory = SessionFactory()
    manager = ProviderSessionManager(factory, ttl=300, cache_enabled=True, clock=clock)

    async with manager.lease():
        pass
    clock.now += 301
    async with manager.lease():
        await _settle()

    assert len(factory.sessions) == 2
    assert factory.sessions[0].closed
    assert not factory.sessions[1].closed


@pytest.mark.asyncio
async def test_uncached_sessions_are_owned_and_closed() -> None:
    factory = SessionFactory()
    manager = ProviderSessionManager(factory, cache_enabled=False)

    first = await manager.acquire()
    second = await manager.acquire()

    assert first.owned and second.owned
    assert first.session is not second.session

    await manager.release_if_owned(first)
    await manager.release_if_owned(second)
    assert all(session.closed for session in factory.sessions)


@pytest.mark.asyncio
async def test_owned_session_closed_when_request_fails() -> None:
    factory = SessionFactory()
    manager = ProviderSessionManager(factory, cache_enabled=True)

    with pytest.raises(RuntimeError):
        async with manager.lease(shared=False):
            raise RuntimeError("turn failed")

    assert factory.sessions[0].closed


@pytest.mark.asyncio
async def test_teardown_errors_are_swallowed() -> None:
    factory = SessionFactory(close_error=OSError("broken pipe"))
    manager = ProviderSessionManager(factory, cache_enabled=False)

    lease = await manager.acquire()
    await manager.release_if_owned(lease)
    await manager.release_if_owned(lease)

    assert lease.released
    assert factory.sessions[0].closed


@pytest.mark.asyncio
async def test_failed_connection_is_not_cached() -> None:
    factory = SessionFactory(error=ConnectionError("spawn failed"))
    manager = ProviderSessionManager(factory, cache_enabled=True)

    with pytest.raises(ConnectionError):
        await manager.acquire()

    factory.error = None
    lease = await manager.acquire()
    assert lease.session is factory.sessions[0]


@pytest.mark.asyncio
async def test_zero_ttl_still_hands_out_a_session() -> None:
    factory = SessionFactory()
    manager = ProviderSessionManager(factory, ttl=0, cache_enabled=True)

    lease = await manager.acquire()

    assert lease.session is factory.sessions[0]
    await manager.release_if_owned(lease)


@pytest.mark.asyncio
async def test_aclose_closes_cached_session() -> None:
    factory = SessionFactory(tools={"find": object()})
    manager = ProviderSessionManager(factory, cache_enabled=True)

    lease = await manager.acquire()
    assert list(lease.tools) == ["find"]

    await manager.aclose()
    assert factory.sessions[0].closed
    assert manager.established_at is None
