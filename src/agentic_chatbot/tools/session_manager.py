"""
Process-wide cache of tool-provider sessions.

With caching enabled one provider session is shared across requests and refreshed once it is older
than the TTL.  Concurrent requests that find no usable session wait on the same connection attempt
instead of spawning their own.  A stale session is retired and closed once its last lease is
released.  With caching disabled every request gets a private session that is closed on release.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import (
    dataclass,
    field,
)
from typing import (
    Any,
    AsyncIterator,
    Awaitable,
    Callable,
    Optional,
    Set,
)

from agentic_chatbot.config import settings

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], Awaitable[Any]]


@dataclass
class _CachedEntry:
    session: Any
    established_at: float
    leases: int = 0
    retired: bool = False


@dataclass
class SessionLease:
    """A session handed to one request; ``owned`` sessions are closed on release."""

    session: Any
    owned: bool
    entry: Optional[_CachedEntry] = field(default=None, repr=False)
    released: bool = False

    @property
    def tools(self):
        return getattr(self.session, "tools", {}) or {}


class ProviderSessionManager:
    """
    Hand out provider sessions to requests.

    Parameters
    ----------
    connect : SessionFactory
        Coroutine factory establishing a new session (an object with ``tools`` and ``aclose()``).
    ttl : float, optional
        Age in seconds after which a cached session is replaced.
    cache_enabled : bool, optional
        Share one session across requests.  Defaults to ``settings.MCP_SESSION_CACHE``.
    clock : callable
        Monotonic time source, replaceable in tests.
    """

    def __init__(
        self,
        connect: SessionFactory,
        ttl: float | None = None,
        cache_enabled: bool | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._connect = connect
        self.ttl = settings.MCP_SESSION_TTL_SECONDS if ttl is None else ttl
        self.cache_enabled = settings.MCP_SESSION_CACHE if cache_enabled is None else cache_enabled
        self._clock = clock
        self._entry: Optional[_CachedEntry] = None
        self._pending: Optional[asyncio.Task] = None
        self._lock = asyncio.Lock()
        self._closing: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    @property
    def established_at(self) -> float | None:
        return self._entry.established_at if self._entry else None

    def is_fresh(self) -> bool:
        entry = self._entry
        return entry is not None and (self._clock() - entry.established_at) < self.ttl

    async def acquire(self, shared: bool | None = None) -> SessionLease:
        """
        Return a lease on a usable session.

        Raises whatever the connection factory raises; a failed attempt is not cached.
        """
        shared = self.cache_enabled if shared is None else shared
        if not shared:
            session = await self._connect()
            return SessionLease(session=session, owned=True)

        while True:
            async with self._lock:
                if self.is_fresh():
                    entry = self._entry
                    entry.leases += 1
                    return SessionLease(session=entry.session, owned=False, entry=entry)

                stale = self._entry
                if stale is not None:
                    self._entry = None
                    stale.retired = True
                    logger.info("Provider session expired after %.0fs; refreshing", self.ttl)
                    if stale.leases == 0:
                        self._spawn_close(stale.session)

                if self._pending is None:
                    self._pending = asyncio.create_task(self._establish())
                pending = self._pending

            # A cancelled waiter must not cancel the shared attempt.
            entry = await asyncio.shield(pending)
            async with self._lock:
                if not entry.retired:
                    entry.leases += 1
                    return SessionLease(session=entry.session, owned=False, entry=entry)

    async def release_if_owned(self, lease: SessionLease | None) -> None:
        """Give *lease* back; owned sessions and retired unused cached sessions are closed."""
        if lease is None or lease.released:
            return
        lease.released = True
        if lease.owned:
            await self._close(lease.session)
            return

        entry = lease.entry
        if entry is None:
            return
        async with self._lock:
            entry.leases = max(0, entry.leases - 1)
            close_now = entry.retired and entry.leases == 0
        if close_now:
            await self._close(entry.session)

    @asynccontextmanager
    async def lease(self, shared: bool | None = None) -> AsyncIterator[SessionLease]:
        """``async with manager.lease() as lease:`` acquire and always release."""
        held = await self.acquire(shared)
        try:
            yield held
        finally:
            await self.release_if_owned(held)

    async def aclose(self) -> None:
        """Close the cached session (used at application shutdown)."""
        async with self._lock:
            entry, self._entry = self._entry, None
            pending, self._pending = self._pending, None
        if pending is not None and not pending.done():
            pending.cancel()
        if entry is not None:
            entry.retired = True
            await self._close(entry.session)

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #
    async def _establish(self) -> _CachedEntry:
        try:
            session = await self._connect()
            entry = _CachedEntry(session=session, established_at=self._clock())
            async with self._lock:
                self._entry = entry
            logger.info("Provider session established")
            return entry
        finally:
            async with self._lock:
                self._pending = None

    def _spawn_close(self, session: Any) -> None:
        task = asyncio.create_task(self._close(session))
        self._closing.add(task)
        task.add_done_callback(self._closing.discard)

    @staticmethod
    async def _close(session: Any) -> None:
        try:
            await session.aclose()
        except Exception as exc:  # pylint: disable=broad-except
            logger.warning("Error while closing provider session: %s", exc)
