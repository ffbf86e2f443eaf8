"""Session liveness and stale session cleanup."""

from cadence.sessions.cleaner import (
    CleanupResult,
    KillSessionProbe,
    SessionLivenessProbe,
    StaleConnectionCleaner,
)
from cadence.sessions.models import InMemorySessionStore, Session, SessionStore

__all__ = [
    "CleanupResult",
    "InMemorySessionStore",
    "KillSessionProbe",
    "Session",
    "SessionLivenessProbe",
    "SessionStore",
    "StaleConnectionCleaner",
]
