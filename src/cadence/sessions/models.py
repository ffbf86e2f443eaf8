"""Session records and the session store boundary.

Sessions are owned by an external store. The cleaner only reads them and
patches ``active``, ``thinking``, ``thinking_at`` and ``updated_at`` through
``apply_sessions()``; it never creates or deletes sessions.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Protocol

from cadence.core.logging import get_logger

_logger = get_logger("sessions.store")


@dataclass(frozen=True)
class Session:
    """A client session as seen by the cleaner.

    Timestamps are epoch seconds; 0 means "never".
    """

    id: str
    active: bool = True
    active_at: float = 0.0
    updated_at: float = 0.0
    thinking_at: float = 0.0
    thinking: bool = False

    @property
    def last_activity(self) -> float:
        return max(self.active_at or 0.0, self.updated_at or 0.0, self.thinking_at or 0.0)


class SessionStore(Protocol):
    """External source of truth for sessions."""

    def get_sessions(self) -> Mapping[str, Session]:
        """Return the current session-id to session map."""
        ...

    def apply_sessions(self, sessions: Iterable[Session]) -> None:
        """Bulk-apply updated session records."""
        ...

    async def sync_remote(self) -> None:
        """Push local session changes to the server."""
        ...


class InMemorySessionStore:
    """Dictionary-backed SessionStore for tests and single-process hosts."""

    def __init__(self, sessions: Iterable[Session] = ()) -> None:
        self._sessions: dict[str, Session] = {s.id: s for s in sessions}
        self.sync_count = 0

    def get_sessions(self) -> Mapping[str, Session]:
        return dict(self._sessions)

    def apply_sessions(self, sessions: Iterable[Session]) -> None:
        for session in sessions:
            self._sessions[session.id] = session

    async def sync_remote(self) -> None:
        self.sync_count += 1
        _logger.debug("store.synced", sessions=len(self._sessions))

    def remove(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)


__all__ = ["InMemorySessionStore", "Session", "SessionStore"]
