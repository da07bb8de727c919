"""
Session store

Keeps the Identity bound to each browser session in process memory only.
Entries expire after a fixed TTL (renewed on access) and are pruned
periodically by a background task.
"""

import asyncio
import logging
import secrets
import time
import weakref
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

from camel_gateway.app.models.document import Identity

logger = logging.getLogger(__name__)


@dataclass
class _SessionEntry:
    identity: Identity
    expires_at: float


@dataclass
class _RefreshGate:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    # access token whose refresh exchange failed
    failed_token: Optional[str] = None


class SessionStore:
    """
    In-memory session -> Identity mapping

    Responsibilities:
    - Bind an Identity to a session id
    - Apply token refreshes to the shared Identity
    - Hand out the per-Identity lock used to serialize refreshes
    - Expire idle sessions
    """

    def __init__(self, ttl_seconds: int = 86400, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._sessions: Dict[str, _SessionEntry] = {}
        # released together with the Identity
        self._refresh_gates = weakref.WeakKeyDictionary()

    def __len__(self) -> int:
        return len(self._sessions)

    @staticmethod
    def new_session_id() -> str:
        return secrets.token_urlsafe(32)

    def get(self, session_id: str) -> Optional[Identity]:
        entry = self._sessions.get(session_id)
        if entry is None:
            return None
        now = self._clock()
        if now >= entry.expires_at:
            self._drop(session_id)
            return None
        entry.expires_at = now + self.ttl_seconds
        return entry.identity

    def put(self, session_id: str, identity: Identity) -> None:
        """Bind identity to session_id, replacing any previous binding"""
        self._sessions[session_id] = _SessionEntry(identity, self._clock() + self.ttl_seconds)
        logger.info(f"Bound session for user {identity.display_name}")

    def update(self, identity: Identity, access_token: str, refresh_token: Optional[str]) -> None:
        """
        Store a refreshed token pair

        The Identity is mutated in place so that every request holding it sees
        the new tokens. Providers that do not rotate refresh tokens return
        none, in which case the current one is kept.
        """
        identity.access_token = access_token
        if refresh_token:
            identity.refresh_token = refresh_token
        self._gate(identity).failed_token = None

    def delete(self, session_id: str) -> None:
        self._drop(session_id)

    def refresh_lock(self, identity: Identity) -> asyncio.Lock:
        """Lock that serializes token refreshes for one Identity"""
        return self._gate(identity).lock

    def mark_refresh_failed(self, identity: Identity, access_token: str) -> None:
        """Record that refreshing away from access_token failed"""
        self._gate(identity).failed_token = access_token

    def refresh_failed(self, identity: Identity, access_token: str) -> bool:
        """Whether a refresh away from access_token already failed for identity"""
        gate = self._refresh_gates.get(identity)
        return gate is not None and gate.failed_token == access_token

    def prune(self) -> int:
        """Remove expired sessions, returns how many were removed"""
        now = self._clock()
        expired = [sid for sid, entry in self._sessions.items() if now >= entry.expires_at]
        for session_id in expired:
            self._drop(session_id)
        if expired:
            logger.info(f"Pruned {len(expired)} expired sessions")
        return len(expired)

    async def run_pruner(self, interval_seconds: float) -> None:
        """Prune forever; meant to run as a background task"""
        while True:
            await asyncio.sleep(interval_seconds)
            self.prune()

    def _gate(self, identity: Identity) -> _RefreshGate:
        gate = self._refresh_gates.get(identity)
        if gate is None:
            gate = _RefreshGate()
            self._refresh_gates[identity] = gate
        return gate

    def _drop(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)
