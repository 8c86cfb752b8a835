from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import pytest

from safety_audit.connectors.datastore import InMemoryDatastore
from safety_audit.models import SourceKind, VehicleFragment
from safety_audit.processors.reconciliation import Reconciler
from safety_audit.service import AuditContext, AuditService


class StepClock:
    """Deterministic clock; every call advances by ``step``."""

    def __init__(self, start: datetime | None = None, step: timedelta = timedelta(minutes=1)) -> None:
        self.current = start or datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)
        self.step = step

    def __call__(self) -> datetime:
        value = self.current
        self.current = self.current + self.step
        return value


@pytest.fixture
def clock() -> StepClock:
    return StepClock()


@pytest.fixture
def reconciler(clock: StepClock) -> Reconciler:
    return Reconciler(clock=clock)


@pytest.fixture
def make_fragment() -> Callable[..., VehicleFragment]:
    def _make(plate: str, kind: SourceKind, ordinal: int = 1, **fields: Any) -> VehicleFragment:
        fields.setdefault("display_name", "")
        return VehicleFragment(plate=plate, source_kind=kind, fields=fields, row_ordinal=ordinal)

    return _make


@pytest.fixture
def datastore() -> InMemoryDatastore:
    return InMemoryDatastore()


@pytest.fixture
def service(datastore: InMemoryDatastore, clock: StepClock) -> AuditService:
    return AuditService(AuditContext(datastore=datastore, clock=clock))
