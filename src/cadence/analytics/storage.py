"""Persistence backends for connection analytics.

The analytics engine calls ``load()`` once on construction and ``save()``
opportunistically. Neither call is assumed to succeed: the engine logs and
carries on with in-memory state when a backend raises.

Payloads are plain JSON-compatible dicts produced by the engine.
"""

from __future__ import annotations

import copy
import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from cadence.core.logging import get_logger

_logger = get_logger("analytics.storage")


class MetricsStore(ABC):
    """Abstract key-value style store for analytics snapshots."""

    @abstractmethod
    def load(self) -> dict[str, Any] | None:
        """Load the last saved snapshot.

        Returns:
            The snapshot dict, or None if nothing has been saved.
        """
        ...

    @abstractmethod
    def save(self, payload: dict[str, Any]) -> None:
        """Persist a snapshot, replacing any previous one.

        Args:
            payload: JSON-compatible snapshot produced by ConnectionAnalytics.
        """
        ...


class InMemoryMetricsStore(MetricsStore):
    """Process-local store, mainly for tests and hosts without disk access."""

    def __init__(self, payload: dict[str, Any] | None = None) -> None:
        self._payload = copy.deepcopy(payload) if payload is not None else None
        self.save_count = 0

    def load(self) -> dict[str, Any] | None:
        return copy.deepcopy(self._payload) if self._payload is not None else None

    def save(self, payload: dict[str, Any]) -> None:
        self._payload = copy.deepcopy(payload)
        self.save_count += 1


class JsonFileMetricsStore(MetricsStore):
    """JSON file-based metrics storage.

    Writes are atomic: the snapshot goes to a sibling temp file which is then
    renamed over the target.
    """

    def __init__(self, path: Path) -> None:
        """Initialize JSON store.

        Args:
            path: File the snapshot is written to. Parent directories are
                created on first save.
        """
        self.path = Path(path)

    def load(self) -> dict[str, Any] | None:
        """Load snapshot from the JSON file."""
        if not self.path.exists():
            return None

        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, ValueError) as e:
            _logger.warning(
                "storage.load_corrupt",
                path=str(self.path),
                error=str(e),
            )
            return None

        if not isinstance(data, dict):
            _logger.warning("storage.load_unexpected_type", path=str(self.path))
            return None
        return data

    def save(self, payload: dict[str, Any]) -> None:
        """Save snapshot to the JSON file."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_file = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(temp_file, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2, default=str)
        temp_file.replace(self.path)


__all__ = ["InMemoryMetricsStore", "JsonFileMetricsStore", "MetricsStore"]
