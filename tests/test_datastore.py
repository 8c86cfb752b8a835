from __future__ import annotations

import threading
from datetime import datetime, timezone

import pytest

from safety_audit.connectors.datastore import InMemoryDatastore, JsonFileDatastore, create_datastore
from safety_audit.exceptions import PersistenceUnavailable
from safety_audit.models import AuditOutcome, AuditResult, CheckStatus, ReportFilter, VehicleRecord
from safety_audit.utils.config_loader import AppConfig

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)

PASSED = AuditOutcome(
    plate="A1",
    vehicle_name_snapshot="Van",
    timestamp=T0,
    result=AuditResult.PASS,
    auditor_identity="a",
    qr_payload="qr",
)
BLOCKED = AuditOutcome(
    plate="B2",
    vehicle_name_snapshot="",
    timestamp=T0,
    result=AuditResult.BLOCKED,
    auditor_identity="a",
    problem_description="brakes",
)


@pytest.mark.asyncio
async def test_in_memory_round_trip_and_filter() -> None:
    store = InMemoryDatastore()
    record = VehicleRecord(plate="A1", dive_deep_status=CheckStatus.PASS, extra_info={"Depot": "N"}, last_merged_at=T0)

    await store.save_vehicles([record])
    await store.append_outcome(PASSED)
    await store.append_outcome(BLOCKED)

    assert await store.load_vehicles() == [record]
    assert await store.load_outcomes() == [PASSED, BLOCKED]
    assert await store.load_outcomes(ReportFilter.BLOCKED_ONLY) == [BLOCKED]


@pytest.mark.asyncio
async def test_unavailable_datastore_raises_for_every_operation() -> None:
    store = InMemoryDatastore()
    await store.save_vehicles([VehicleRecord(plate="A1")])
    store.available = False

    with pytest.raises(PersistenceUnavailable) as exc_info:
        await store.save_vehicles([])
    assert exc_info.value.operation == "saveVehicles"

    with pytest.raises(PersistenceUnavailable):
        await store.append_outcome(PASSED)
    with pytest.raises(PersistenceUnavailable):
        await store.load_vehicles()

    store.available = True
    assert len(await store.load_vehicles()) == 1


@pytest.mark.asyncio
async def test_json_file_datastore_survives_reopen(tmp_path) -> None:
    path = tmp_path / "data" / "audit.json"
    first = JsonFileDatastore(path)
    await first.save_vehicles([VehicleRecord(plate="A1", display_name="Van")])
    await first.append_outcome(PASSED)

    reopened = JsonFileDatastore(path)

    assert [r.display_name for r in await reopened.load_vehicles()] == ["Van"]
    assert await reopened.load_outcomes() == [PASSED]


def test_json_file_datastore_rejects_corrupt_file(tmp_path) -> None:
    path = tmp_path / "audit.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(PersistenceUnavailable):
        JsonFileDatastore(path)


def test_create_datastore_from_config(tmp_path) -> None:
    memory = create_datastore(AppConfig(datastore={"backend": "memory"}))
    json_store = create_datastore(
        AppConfig(datastore={"backend": "json", "json_path": str(tmp_path / "a.json")})
    )

    assert type(memory) is InMemoryDatastore
    assert isinstance(json_store, JsonFileDatastore)


@pytest.mark.asyncio
async def test_json_file_writes_run_off_the_event_loop_thread(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    store = JsonFileDatastore(tmp_path / "audit.json")
    writer_threads = []
    persist = store._persist

    def recording_persist(vehicles, outcomes) -> None:
        writer_threads.append(threading.get_ident())
        persist(vehicles, outcomes)

    monkeypatch.setattr(store, "_persist", recording_persist)

    await store.save_vehicles([VehicleRecord(plate="A1")])
    await store.append_outcome(PASSED)

    assert len(writer_threads) == 2
    assert threading.get_ident() not in writer_threads
    assert (tmp_path / "audit.json").exists()
