"""
CSRF state tracking for the OAuth authorization-code flow.

When /auth/github redirects a browser to GitHub, it attaches a random
`state` value and remembers it here together with the scopes that were
requested. When GitHub redirects back to /auth/callback, the same `state`
must be presented; it is looked up and removed in one step, so a state value
is accepted at most once. A forged callback (one that did not start here)
carries an unknown state and is rejected.

Entries expire after a fixed window (10 minutes by default). Expired entries
are rejected on consumption even if they are still in the table, and a
background reaper evicts them periodically so abandoned flows do not
accumulate.

The OAuth client only depends on the abstract `StateStore`, so the in-memory
table can be replaced by a shared store (Redis, a database) when running
several processes.
"""

import asyncio
import logging
import secrets
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from github_oauth_mcp.errors import ExpiredState, InvalidState

logger = logging.getLogger(__name__)

# 32 random bytes -> 43 URL-safe characters, 256 bits of entropy.
STATE_TOKEN_BYTES = 32
DEFAULT_TTL_SECONDS = 600.0


@dataclass(frozen=True)
class PendingAuthorization:
    """
    An authorization redirect that has been issued but not yet called back.

    Attributes:
        state: The CSRF token sent to GitHub with the redirect
        requested_scopes: Scopes asked for, in the order requested
        created_at: Clock reading when the redirect was issued
    """

    state: str
    requested_scopes: tuple[str, ...]
    created_at: float


class StateStore(ABC):
    """Interface between the OAuth client and wherever pending flows live."""

    @abstractmethod
    async def create_pending(self, requested_scopes: Sequence[str]) -> str:
        """Record a new pending authorization and return its state token."""

    @abstractmethod
    async def consume_pending(self, state: str) -> PendingAuthorization:
        """
        Remove and return the pending authorization for `state`.

        Raises:
            InvalidState: No such entry (never issued, or already consumed)
            ExpiredState: The entry existed but was older than the TTL
        """

    @abstractmethod
    async def sweep(self) -> int:
        """Evict expired entries; return how many were removed."""


class InMemoryStateStore(StateStore):
    """
    Process-local state store backed by a dict.

    All access happens on the event loop thread and no method awaits between
    reading and writing the table, so `consume_pending` is a single
    compare-and-delete (`dict.pop`): two callbacks racing on the same state
    cannot both observe the entry.

    Args:
        ttl_seconds: How long a pending authorization stays valid
        sweep_interval_seconds: How often the background reaper runs
        clock: Monotonic time source, injectable for tests
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        sweep_interval_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.sweep_interval_seconds = sweep_interval_seconds
        self._clock = clock
        self._entries: dict[str, PendingAuthorization] = {}
        self._reaper: Optional[asyncio.Task] = None

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, state: object) -> bool:
        return state in self._entries

    async def create_pending(self, requested_scopes: Sequence[str]) -> str:
        self.start_reaper()

        state = secrets.token_urlsafe(STATE_TOKEN_BYTES)
        # Collisions are astronomically unlikely at 256 bits, but a reused
        # value would silently replace another flow's entry.
        while state in self._entries:
            state = secrets.token_urlsafe(STATE_TOKEN_BYTES)

        self._entries[state] = PendingAuthorization(
            state=state,
            requested_scopes=tuple(requested_scopes),
            created_at=self._clock(),
        )
        return state

    async def consume_pending(self, state: str) -> PendingAuthorization:
        entry = self._entries.pop(state, None)
        if entry is None:
            raise InvalidState()
        if self._is_expired(entry, self._clock()):
            raise ExpiredState()
        return entry

    async def sweep(self) -> int:
        now = self._clock()
        expired = [s for s, entry in self._entries.items() if self._is_expired(entry, now)]
        for state in expired:
            del self._entries[state]
        if expired:
            logger.info("Evicted %d expired pending authorizations", len(expired))
        return len(expired)

    def _is_expired(self, entry: PendingAuthorization, now: float) -> bool:
        return now - entry.created_at > self.ttl_seconds

    # --- Background reaper ---

    def start_reaper(self) -> None:
        """
        Start the periodic sweep task if it is not already running.

        Must be called from inside a running event loop; `create_pending`
        does this on first use so the server needs no startup hook.
        """
        loop = asyncio.get_running_loop()
        if self._reaper is None or self._reaper.done() or self._reaper.get_loop() is not loop:
            self._reaper = loop.create_task(self._run_reaper())

    async def _run_reaper(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval_seconds)
            try:
                await self.sweep()
            except Exception:
                logger.exception("State store sweep failed")

    async def aclose(self) -> None:
        """Stop the reaper task."""
        reaper, self._reaper = self._reaper, None
        if reaper is None:
            return
        reaper.cancel()
        # A task left over from an earlier event loop cannot be awaited here
        if reaper.get_loop() is not asyncio.get_running_loop():
            return
        try:
            await reaper
        except asyncio.CancelledError:
            pass
