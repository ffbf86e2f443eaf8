"""Online linear regressor for heartbeat interval prediction.

A deliberately small model: four weighted features, a fixed bias, and
single-sample gradient descent on every ``train()`` call. Training is
incremental; the rolling buffer of past samples is kept only so a batch
trainer could replay it.

Feature order: latency (seconds), success rate, network quality score,
time-of-day score.
"""

from __future__ import annotations

from collections.abc import Sequence

from cadence.core.constants import (
    HEARTBEAT_DEFAULT_MS,
    HEARTBEAT_MAX_MS,
    HEARTBEAT_MIN_MS,
)

FEATURE_NAMES = ("latency", "success_rate", "network_quality", "time_of_day")

DEFAULT_WEIGHTS = {
    "latency": -0.1,
    "success_rate": 1.0,
    "network_quality": 0.5,
    "time_of_day": 0.1,
}

BIAS_MS = 5000.0

_TRAINING_BUFFER_MAX = 1000
_TRAINING_BUFFER_KEEP = 500
_PREDICTIONS_MAX = 100
_PREDICTIONS_KEEP = 50
_MIN_PREDICTIONS_FOR_ACCURACY = 10


class LinearHeartbeatModel:
    """Linear heartbeat predictor trained online."""

    def __init__(self, learning_rate: float = 0.01) -> None:
        self.learning_rate = learning_rate
        self._weights: dict[str, float] = dict(DEFAULT_WEIGHTS)
        self._training_data: list[tuple[tuple[float, ...], float]] = []
        self._predictions: list[tuple[float, float]] = []

    @property
    def weights(self) -> dict[str, float]:
        return dict(self._weights)

    def predict(self, features: Sequence[float]) -> float:
        """Predict a heartbeat interval in milliseconds, clamped to [5000, 60000]."""
        if not features:
            return float(HEARTBEAT_DEFAULT_MS)

        prediction = BIAS_MS
        for name, value in zip(FEATURE_NAMES, features, strict=False):
            prediction += self._weights.get(name, 0.0) * value
        return max(float(HEARTBEAT_MIN_MS), min(float(HEARTBEAT_MAX_MS), prediction))

    def train(self, features: Sequence[float], target: float) -> None:
        """Apply one gradient step: ``w += lr * (target - predict(x)) * x``."""
        self._training_data.append((tuple(features), target))

        error = target - self.predict(features)
        for name, value in zip(FEATURE_NAMES, features, strict=False):
            self._weights[name] = self._weights.get(name, 0.0) + (
                self.learning_rate * error * value
            )

        if len(self._training_data) > _TRAINING_BUFFER_MAX:
            self._training_data = self._training_data[-_TRAINING_BUFFER_KEEP:]

    def record_prediction_accuracy(self, predicted: float, actual: float) -> None:
        self._predictions.append((predicted, actual))
        if len(self._predictions) > _PREDICTIONS_MAX:
            self._predictions = self._predictions[-_PREDICTIONS_KEEP:]

    def get_accuracy(self) -> float:
        """Return ``1 - mean relative error``, or 0.0 with fewer than 10 pairs."""
        if len(self._predictions) < _MIN_PREDICTIONS_FOR_ACCURACY:
            return 0.0
        errors = [abs(p - a) / max(a, 1.0) for p, a in self._predictions]
        return max(0.0, 1.0 - sum(errors) / len(errors))

    def get_training_data_size(self) -> int:
        return len(self._training_data)

    def get_prediction_count(self) -> int:
        return len(self._predictions)


__all__ = ["BIAS_MS", "DEFAULT_WEIGHTS", "FEATURE_NAMES", "LinearHeartbeatModel"]
