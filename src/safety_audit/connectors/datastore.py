"""
Persistence boundary for vehicle records and audit outcomes.

All operations are coroutines and may fail with PersistenceUnavailable.
Retrying is left to the caller.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Iterable, List, Union

from ..exceptions import PersistenceUnavailable
from ..models import AuditOutcome, ReportFilter, VehicleRecord
from ..processors.audit_history import matches_filter


class VehicleDatastore(ABC):
    """Remote storage for the vehicle store and the audit history."""

    @abstractmethod
    async def load_vehicles(self) -> List[VehicleRecord]:
        """Fetch every stored vehicle record."""
        pass

    @abstractmethod
    async def save_vehicles(self, records: Iterable[VehicleRecord]) -> None:
        """Replace the stored vehicle collection."""
        pass

    @abstractmethod
    async def append_outcome(self, outcome: AuditOutcome) -> None:
        """Append one outcome to the audit history."""
        pass

    @abstractmethod
    async def load_outcomes(
        self,
        report_filter: ReportFilter = ReportFilter.ALL
    ) -> List[AuditOutcome]:
        """Fetch stored outcomes in the order they were appended."""
        pass

    async def close(self) -> None:
        """Release any held resources."""
        return None


class InMemoryDatastore(VehicleDatastore):
    """
    Datastore kept in process memory.

    Records are stored serialized so callers never share objects with the
    store. Setting ``available`` to False makes every operation fail.
    """

    def __init__(self):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.available = True
        self._vehicles: List[Dict[str, Any]] = []
        self._outcomes: List[Dict[str, Any]] = []

    def _check_available(self, operation: str) -> None:
        if not self.available:
            raise PersistenceUnavailable(operation, "datastore offline")

    async def load_vehicles(self) -> List[VehicleRecord]:
        self._check_available('loadVehicles')
        return [VehicleRecord.from_dict(item) for item in self._vehicles]

    async def save_vehicles(self, records: Iterable[VehicleRecord]) -> None:
        self._check_available('saveVehicles')
        vehicles = [record.to_dict() for record in records]
        await asyncio.to_thread(self._persist, vehicles, self._outcomes)
        self._vehicles = vehicles
        self.logger.info(f"Saved {len(self._vehicles)} vehicle record(s)")

    async def append_outcome(self, outcome: AuditOutcome) -> None:
        self._check_available('appendOutcome')
        outcomes = self._outcomes + [outcome.to_dict()]
        await asyncio.to_thread(self._persist, self._vehicles, outcomes)
        self._outcomes = outcomes

    async def load_outcomes(
        self,
        report_filter: ReportFilter = ReportFilter.ALL
    ) -> List[AuditOutcome]:
        self._check_available('loadOutcomes')
        outcomes = [AuditOutcome.from_dict(item) for item in self._outcomes]
        return [o for o in outcomes if matches_filter(o, report_filter)]

    def _persist(
        self,
        vehicles: List[Dict[str, Any]],
        outcomes: List[Dict[str, Any]]
    ) -> None:
        return None


class JsonFileDatastore(InMemoryDatastore):
    """Datastore backed by a single JSON file, for offline use."""

    def __init__(self, path: Union[str, Path]):
        super().__init__()
        self.path = Path(path)
        self._load_file()

    def _load_file(self) -> None:
        if not self.path.exists():
            return

        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise PersistenceUnavailable('open', f"{self.path}: {e}") from e

        self._vehicles = list(data.get('vehicles') or [])
        self._outcomes = list(data.get('outcomes') or [])
        self.logger.info(
            f"Loaded {len(self._vehicles)} vehicle(s) and "
            f"{len(self._outcomes)} outcome(s) from {self.path}"
        )

    def _persist(
        self,
        vehicles: List[Dict[str, Any]],
        outcomes: List[Dict[str, Any]]
    ) -> None:
        payload = {'vehicles': vehicles, 'outcomes': outcomes}
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_suffix(self.path.suffix + '.tmp')
            with open(tmp_path, 'w', encoding='utf-8') as f:
                json.dump(payload, f, indent=2, ensure_ascii=False)
            tmp_path.replace(self.path)
        except OSError as e:
            raise PersistenceUnavailable('write', f"{self.path}: {e}") from e


def create_datastore(config) -> VehicleDatastore:
    """Factory function to create the configured datastore."""
    backend = config.datastore.backend

    if backend == 'json':
        return JsonFileDatastore(config.datastore.json_path)

    if backend == 'firebase':
        from .firebase_connector import create_firebase_connector
        return create_firebase_connector(config)

    return InMemoryDatastore()
