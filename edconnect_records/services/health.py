"""
Database health probe.

Reports status and round-trip latency for a store without raising, so it
can back a status page or a CLI check.
"""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Literal, Optional

from pydantic import BaseModel, Field

from edconnect_records.errors import wrap_error
from edconnect_records.infrastructure.store import RecordStore
from edconnect_records.utils.logging import get_logger

log = get_logger(__name__)


class HealthReport(BaseModel):
    status: Literal["healthy", "unhealthy"]
    latency_ms: Optional[float] = Field(None, description="Ping round trip, when it succeeded.")
    checked_at: datetime
    error: Optional[str] = None
    error_code: Optional[str] = None

    @property
    def healthy(self) -> bool:
        return self.status == "healthy"


def check_health(store: RecordStore) -> HealthReport:
    checked_at = datetime.now(timezone.utc)
    start = time.perf_counter()
    try:
        store.ping()
    except Exception as exc:  # noqa: BLE001 - failures are reported, not raised
        error = wrap_error(exc)
        log.warning("Health check failed", extra={"error": error.message, "code": error.code})
        return HealthReport(
            status="unhealthy",
            checked_at=checked_at,
            error=error.message,
            error_code=error.code,
        )
    latency_ms = round((time.perf_counter() - start) * 1000, 2)
    return HealthReport(status="healthy", latency_ms=latency_ms, checked_at=checked_at)


__all__ = ["HealthReport", "check_health"]
