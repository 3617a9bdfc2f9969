from __future__ import annotations

from edconnect_records.errors import DatabaseConnectionError
from edconnect_records.services.health import check_health


class _DownStore:
    def ping(self) -> None:
        raise DatabaseConnectionError("Database unavailable: connection refused")


class _BrokenStore:
    def ping(self) -> None:
        raise RuntimeError("driver crashed")


def test_healthy_store_reports_latency(store):
    report = check_health(store)

    assert report.healthy
    assert report.latency_ms is not None and report.latency_ms >= 0
    assert report.error is None


def test_unreachable_store_is_reported_not_raised():
    report = check_health(_DownStore())

    assert report.status == "unhealthy"
    assert report.error_code == "connection_error"
    assert "connection refused" in report.error
    assert report.latency_ms is None


def test_unexpected_failures_are_unknown_errors():
    report = check_health(_BrokenStore())

    assert not report.healthy
    assert report.error_code == "unknown_error"
    assert report.error == "driver crashed"
