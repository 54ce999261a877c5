"""Prometheus metrics definitions for reelup.

All custom metrics use the ``reelup_`` prefix. The authorization service
additionally gets HTTP-level metrics from
``prometheus-fastapi-instrumentator``.

Module-level references stay ``None`` until :func:`init_metrics` runs, so
library users who never enable metrics register nothing in the global
registry. Callers must check for ``None`` before recording.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge

_initialized: bool = False

# ---------------------------------------------------------------------------
# Upload outcomes  (labels: outcome = completed | aborted | failed)
# ---------------------------------------------------------------------------
uploads_total: Counter | None = None

# ---------------------------------------------------------------------------
# Part transfers  (labels: status = ok | error | skipped)
# ---------------------------------------------------------------------------
parts_total: Counter | None = None
parts_in_flight: Gauge | None = None

# ---------------------------------------------------------------------------
# Byte counters
# ---------------------------------------------------------------------------
bytes_uploaded_total: Counter | None = None


def init_metrics() -> None:
    """Create and register all Prometheus metrics (idempotent)."""
    global _initialized
    global uploads_total, parts_total, parts_in_flight, bytes_uploaded_total

    if _initialized:
        return

    uploads_total = Counter(
        "reelup_uploads_total",
        "Total multipart uploads by outcome",
        ["outcome"],
    )

    parts_total = Counter(
        "reelup_parts_total",
        "Total part transfers by status",
        ["status"],
    )

    parts_in_flight = Gauge(
        "reelup_parts_in_flight",
        "Part transfers currently holding a concurrency slot",
    )

    bytes_uploaded_total = Counter(
        "reelup_bytes_uploaded_total",
        "Total part bytes accepted by the object store",
    )

    _initialized = True
