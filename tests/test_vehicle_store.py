from __future__ import annotations

import pytest

from safety_audit.exceptions import VehicleNotFound
from safety_audit.models import CheckStatus, VehicleRecord
from safety_audit.processors.vehicle_store import VehicleStore


def test_lookup_normalizes_user_input() -> None:
    store = VehicleStore([VehicleRecord(plate="ABC123", display_name="Van")])

    assert store.lookup("abc 123").display_name == "Van"
    assert store.lookup("  Abc123\t").plate == "ABC123"
    assert "abc 123" in store


def test_lookup_unknown_plate_raises_not_found() -> None:
    store = VehicleStore()

    with pytest.raises(VehicleNotFound) as exc_info:
        store.lookup("zz 9")

    assert exc_info.value.plate == "zz 9"
    assert exc_info.value.normalized_plate == "ZZ9"
    assert isinstance(exc_info.value, LookupError)
    assert store.get("zz 9") is None


def test_upsert_keeps_one_record_per_plate() -> None:
    store = VehicleStore()

    store.upsert(VehicleRecord(plate=" ab 1 "))
    stored = store.upsert(VehicleRecord(plate="AB1", dive_deep_status=CheckStatus.PASS))

    assert len(store) == 1
    assert stored.plate == "AB1"
    assert store.lookup("ab1").dive_deep_status is CheckStatus.PASS


def test_upsert_rejects_empty_plate() -> None:
    with pytest.raises(ValueError):
        VehicleStore().upsert(VehicleRecord(plate="  "))


def test_all_is_restartable() -> None:
    store = VehicleStore([VehicleRecord(plate="A1"), VehicleRecord(plate="B2")])

    view = store.all()

    assert sorted(r.plate for r in view) == ["A1", "B2"]
    assert sorted(r.plate for r in view) == ["A1", "B2"]


def test_copy_is_independent() -> None:
    store = VehicleStore([VehicleRecord(plate="A1")])
    clone = store.copy()

    clone.upsert(VehicleRecord(plate="B2"))

    assert len(store) == 1
    assert len(clone) == 2
    assert store != clone
