"""Stale session reaper.

Periodically scans the session store for sessions still marked active whose
last activity is older than the stale threshold, verifies whether each one
is really gone, and marks dead ones inactive.

Liveness is checked through a SessionLivenessProbe. The default adapter,
KillSessionProbe, reuses the session-kill RPC: a successful kill means the
session was alive (and is now terminated), a failed kill means it is
presumed dead. A transient network error during verification therefore
marks a live session dead. Hosts with a non-destructive ping should supply
their own probe.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field, replace
from typing import Any, Protocol

from cadence.core.config import StaleConnectionConfig
from cadence.core.errors import SessionCleanupError
from cadence.core.logging import get_logger
from cadence.sessions.models import Session, SessionStore
from cadence.utils.tasks import log_task_exception

_logger = get_logger("sessions.cleaner")


class SessionLivenessProbe(Protocol):
    """Checks whether a session is still alive on the server."""

    async def ping_session(self, session_id: str) -> bool:
        """Return True if the session is alive."""
        ...


class KillSessionProbe:
    """Liveness probe built on a session-kill RPC.

    Success of ``kill(session_id)`` is read as "was alive"; any failure as
    "presumed dead".
    """

    def __init__(self, kill: Callable[[str], Awaitable[Any]]) -> None:
        self._kill = kill

    async def ping_session(self, session_id: str) -> bool:
        try:
            await self._kill(session_id)
        except Exception as e:
            _logger.debug(
                "cleaner.kill_failed",
                session_id=session_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False
        return True


@dataclass
class CleanupResult:
    """Summary of one cleanup cycle."""

    total_sessions: int = 0
    stale_sessions: int = 0
    cleaned_sessions: int = 0
    errors: list[str] = field(default_factory=list)


class StaleConnectionCleaner:
    """Finds and reclaims sessions that stopped reporting activity.

    Each session gets ``max_retries`` failed cleanup attempts before it is
    skipped; retry counters are pruned once the session leaves the store.
    """

    def __init__(
        self,
        store: SessionStore,
        probe: SessionLivenessProbe,
        config: StaleConnectionConfig | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._probe = probe
        self._config = config or StaleConnectionConfig()
        self._clock = clock
        self._task: asyncio.Task[None] | None = None
        self._sync_task: asyncio.Task[None] | None = None
        self._running = False
        self._retry_counts: dict[str, int] = {}
        self._last_cleanup_time: float | None = None

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the periodic cleanup loop; the first cycle runs immediately."""
        if self._task is not None:
            return
        self._running = True
        self._task = asyncio.create_task(self._loop(), name="cadence-stale-cleaner")
        self._task.add_done_callback(self._on_loop_done)
        _logger.info(
            "cleaner.started",
            interval_seconds=self._config.check_interval_seconds,
            stale_threshold_seconds=self._config.stale_threshold_seconds,
        )

    async def stop(self) -> None:
        """Stop the cleanup loop and any pending remote sync."""
        self._running = False
        tasks = [t for t in (self._task, self._sync_task) if t is not None and not t.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            # A failed remote sync was already logged by its done-callback.
            await asyncio.gather(*tasks, return_exceptions=True)
        was_running = self._task is not None
        self._task = None
        self._sync_task = None
        if was_running:
            _logger.info("cleaner.stopped")

    async def update_config(self, **changes: Any) -> None:
        """Apply partial config changes, restarting the loop if it is running.

        Raises:
            pydantic.ValidationError: If the merged config is invalid.
        """
        merged = self._config.model_dump()
        merged.update(changes)
        self._config = StaleConnectionConfig.model_validate(merged)
        _logger.info("cleaner.config_updated", changes=sorted(changes))
        if self._running:
            await self.stop()
            await self.start()

    def get_config(self) -> StaleConnectionConfig:
        return self._config.model_copy()

    def get_statistics(self) -> dict[str, Any]:
        return {
            "is_running": self._running,
            "last_cleanup_time": self._last_cleanup_time,
            "retry_count": len(self._retry_counts),
            "config": self._config.model_dump(),
        }

    def get_retry_count(self, session_id: str) -> int:
        return self._retry_counts.get(session_id, 0)

    async def cleanup_now(self) -> CleanupResult:
        """Run one cleanup cycle. Never raises; per-session errors are collected."""
        started = time.monotonic()
        self._last_cleanup_time = self._clock()

        try:
            sessions = list(self._store.get_sessions().values())
        except Exception as e:
            _logger.warning("cleaner.store_read_failed", error=str(e))
            return CleanupResult(errors=[f"Failed to read sessions: {e}"])

        self._prune_retry_tracking({s.id for s in sessions})
        stale = self._identify_stale_sessions(sessions)
        result = CleanupResult(
            total_sessions=len(sessions),
            stale_sessions=len(stale),
        )
        if not stale:
            _logger.debug("cleaner.no_stale_sessions", total_sessions=len(sessions))
            return result

        for session in stale:
            try:
                if await self._cleanup_session(session):
                    result.cleaned_sessions += 1
            except SessionCleanupError as e:
                result.errors.append(str(e))

        if result.cleaned_sessions:
            self._schedule_remote_sync()

        _logger.info(
            "cleaner.cycle_completed",
            total_sessions=result.total_sessions,
            stale_sessions=result.stale_sessions,
            cleaned_sessions=result.cleaned_sessions,
            errors=len(result.errors),
            duration_ms=round((time.monotonic() - started) * 1000, 1),
        )
        return result

    async def cleanup_session(self, session: Session) -> bool:
        """Verify and reclaim one stale session.

        Returns:
            True if the session was marked inactive, False if it was alive or
            its retry budget is exhausted.

        Raises:
            SessionCleanupError: If marking the session inactive failed. The
                session's retry counter is incremented first.
        """
        cleaned = await self._cleanup_session(session)
        if cleaned:
            self._schedule_remote_sync()
        return cleaned

    async def _cleanup_session(self, session: Session) -> bool:
        session_id = session.id
        attempts = self._retry_counts.get(session_id, 0)
        if attempts >= self._config.max_retries:
            _logger.debug(
                "cleaner.retries_exhausted",
                session_id=session_id,
                attempts=attempts,
            )
            return False

        try:
            if await self._verify_session_alive(session_id):
                _logger.info("cleaner.session_alive", session_id=session_id)
                self._retry_counts.pop(session_id, None)
                return False

            self._mark_session_inactive(session_id)
        except Exception as e:
            self._retry_counts[session_id] = attempts + 1
            _logger.warning(
                "cleaner.session_cleanup_failed",
                session_id=session_id,
                attempt=attempts + 1,
                error=str(e),
            )
            raise SessionCleanupError(session_id, attempts + 1, str(e)) from e

        self._retry_counts.pop(session_id, None)
        _logger.info("cleaner.session_cleaned", session_id=session_id)
        return True

    # ─── Internal ─────────────────────────────────────────────────────

    def _on_loop_done(self, task: asyncio.Task[None]) -> None:
        log_task_exception(task, _logger, "cleaner.loop_died_unexpectedly")

    async def _loop(self) -> None:
        while self._running:
            try:
                await self.cleanup_now()
            except asyncio.CancelledError:
                break
            except Exception:
                _logger.exception("cleaner.cycle_failed")
            await asyncio.sleep(self._config.check_interval_seconds)

    def _identify_stale_sessions(self, sessions: list[Session]) -> list[Session]:
        now = self._clock()
        stale: list[Session] = []
        for session in sessions:
            if not session.active:
                continue
            idle_seconds = now - session.last_activity
            if (
                idle_seconds > self._config.stale_threshold_seconds
                or idle_seconds > self._config.inactive_threshold_seconds
            ):
                _logger.debug(
                    "cleaner.session_stale",
                    session_id=session.id,
                    idle_seconds=round(idle_seconds, 1),
                )
                stale.append(session)
        return stale

    async def _verify_session_alive(self, session_id: str) -> bool:
        try:
            return await asyncio.wait_for(
                self._probe.ping_session(session_id),
                timeout=self._config.verification_timeout_seconds,
            )
        except TimeoutError:
            _logger.debug("cleaner.verification_timeout", session_id=session_id)
            return False
        except Exception as e:
            _logger.debug(
                "cleaner.verification_failed",
                session_id=session_id,
                error=str(e),
            )
            return False

    def _mark_session_inactive(self, session_id: str) -> None:
        session = self._store.get_sessions().get(session_id)
        if session is None:
            return

        updated = replace(
            session,
            active=False,
            thinking=False,
            thinking_at=0.0,
            updated_at=self._clock(),
        )
        self._store.apply_sessions([updated])

    def _schedule_remote_sync(self) -> None:
        if self._sync_task is not None and not self._sync_task.done():
            return
        self._sync_task = asyncio.create_task(
            self._store.sync_remote(),
            name="cadence-session-sync",
        )
        self._sync_task.add_done_callback(self._on_sync_done)

    def _on_sync_done(self, task: asyncio.Task[None]) -> None:
        if self._sync_task is task:
            self._sync_task = None
        log_task_exception(task, _logger, "cleaner.remote_sync_failed", level="warning")

    def _prune_retry_tracking(self, existing: set[str]) -> None:
        for session_id in list(self._retry_counts):
            if session_id not in existing:
                del self._retry_counts[session_id]


__all__ = [
    "CleanupResult",
    "KillSessionProbe",
    "SessionLivenessProbe",
    "StaleConnectionCleaner",
]
