"""Global constants for Cadence.

Centralizes magic numbers shared across components, making them
discoverable and consistent. Per-instance tunables live in
``cadence.core.config``; these are the fixed limits and lookup values.
"""

# =============================================================================
# Interval Bounds (milliseconds)
# =============================================================================

HEARTBEAT_MIN_MS = 5000
"""Lower clamp for any learned or predicted heartbeat interval."""

HEARTBEAT_MAX_MS = 60000
"""Upper clamp for any learned or predicted heartbeat interval."""

HEARTBEAT_DEFAULT_MS = 30000
"""Heartbeat used when nothing better is known."""

LEARNED_TIMEOUT_MIN_MS = 5000
"""Lower clamp for a learned connection timeout."""

LEARNED_TIMEOUT_MAX_MS = 30000
"""Upper clamp for a learned connection timeout."""

# =============================================================================
# Analytics Storage Limits
# =============================================================================

MAX_FAILURE_PATTERNS = 10
"""Failure patterns kept per metrics entry and shown in reports."""

LATENCY_HISTORY_MAX = 100
"""Latency test history size that triggers pruning."""

LATENCY_HISTORY_KEEP = 50
"""Latency test entries kept after pruning."""

PROCESSING_BUDGET_MS = 100.0
"""Per-event processing budget for recording analytics."""

# =============================================================================
# Quality Scores
# =============================================================================

QUALITY_SCORES = {
    "excellent": 1.0,
    "good": 0.7,
    "poor": 0.3,
    "unknown": 0.5,
}
"""Normalized model feature for each network quality."""

# =============================================================================
# Transports
# =============================================================================

TRANSPORT_WEBSOCKET = "websocket"
TRANSPORT_POLLING = "polling"
