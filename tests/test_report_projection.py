from __future__ import annotations

from datetime import datetime, timedelta, timezone

from safety_audit.exporters.report_projection import REPORT_COLUMNS, ReportExporter
from safety_audit.models import AuditOutcome, AuditResult, CheckStatus, ReportFilter, VehicleRecord
from safety_audit.processors.audit_history import AuditHistory
from safety_audit.processors.vehicle_store import VehicleStore

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


def _passed(plate: str, at: datetime, auditor: str = "a") -> AuditOutcome:
    return AuditOutcome(
        plate=plate,
        vehicle_name_snapshot=f"Vehicle {plate}",
        timestamp=at,
        result=AuditResult.PASS,
        auditor_identity=auditor,
        qr_payload=f"qr-{plate}",
    )


def _blocked(plate: str, at: datetime, problem: str = "bald tire") -> AuditOutcome:
    return AuditOutcome(
        plate=plate,
        vehicle_name_snapshot=f"Vehicle {plate}",
        timestamp=at,
        result=AuditResult.BLOCKED,
        auditor_identity="b",
        problem_description=problem,
    )


def test_passed_only_returns_just_the_pass_outcome() -> None:
    store = VehicleStore([VehicleRecord(plate="A1"), VehicleRecord(plate="B2")])
    history = AuditHistory([_passed("A1", T0), _blocked("B2", T0 + timedelta(minutes=5))])

    rows = ReportExporter().project(store, history, ReportFilter.PASSED_ONLY)

    assert len(rows) == 1
    assert rows[0]["Plate"] == "A1"
    assert rows[0]["Result"] == "Pass"
    assert rows[0]["QR Payload"] == "qr-A1"


def test_blocked_only_and_all() -> None:
    history = AuditHistory([_passed("A1", T0), _blocked("B2", T0 + timedelta(minutes=5))])
    exporter = ReportExporter()

    blocked = exporter.project(VehicleStore(), history, ReportFilter.BLOCKED_ONLY)
    everything = exporter.project(VehicleStore(), history)

    assert [r["Plate"] for r in blocked] == ["B2"]
    assert blocked[0]["Problem Description"] == "bald tire"
    assert [r["Plate"] for r in everything] == ["A1", "B2"]


def test_rows_sorted_by_timestamp_with_insertion_tie_break() -> None:
    history = AuditHistory([
        _passed("LATE", T0 + timedelta(hours=1)),
        _passed("TIE1", T0),
        _blocked("TIE2", T0),
        _passed("EARLY", T0 - timedelta(hours=1)),
    ])

    rows = ReportExporter().project(VehicleStore(), history)

    assert [r["Plate"] for r in rows] == ["EARLY", "TIE1", "TIE2", "LATE"]


def test_rows_have_report_columns_and_current_statuses() -> None:
    store = VehicleStore([VehicleRecord(plate="A1", dive_deep_status=CheckStatus.FAIL)])
    history = AuditHistory([_passed("A1", T0), _passed("GONE", T0)])

    rows = ReportExporter().project(store, history)

    assert list(rows[0].keys()) == REPORT_COLUMNS
    assert rows[0]["DiveDeep Status"] == "Fail"
    assert rows[0]["Timestamp"] == T0.isoformat()
    assert rows[1]["DiveDeep Status"] == "Unknown"


def test_projection_has_no_side_effects() -> None:
    store = VehicleStore([VehicleRecord(plate="A1")])
    history = AuditHistory([_passed("A1", T0)])
    store_before = store.copy()

    ReportExporter().project(store, history, ReportFilter.BLOCKED_ONLY)

    assert store == store_before
    assert len(history) == 1
