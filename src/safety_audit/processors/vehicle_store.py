"""
In-memory index of merged vehicle records.
"""

import dataclasses
from typing import Dict, Iterable, Iterator, Optional, ValuesView

from ..exceptions import VehicleNotFound
from ..models import VehicleRecord
from .normalizer import normalize_plate


class VehicleStore:
    """
    Holds exactly one VehicleRecord per normalized plate.

    Records are never removed. Lookups accept raw, user-typed plates and
    apply the same normalization the feeds go through.
    """

    def __init__(self, records: Optional[Iterable[VehicleRecord]] = None):
        self._records: Dict[str, VehicleRecord] = {}
        for record in records or []:
            self.upsert(record)

    def lookup(self, plate: str) -> VehicleRecord:
        """
        Find the record for a plate.

        Raises:
            VehicleNotFound: If no record exists for the normalized plate
        """
        key = normalize_plate(plate)
        record = self._records.get(key)
        if record is None:
            raise VehicleNotFound(plate, key)
        return record

    def get(self, plate: str) -> Optional[VehicleRecord]:
        """Like lookup, but returns None for unknown plates."""
        return self._records.get(normalize_plate(plate))

    def upsert(self, record: VehicleRecord) -> VehicleRecord:
        """Insert or replace the record for its plate."""
        key = normalize_plate(record.plate)
        if not key:
            raise ValueError("Vehicle record requires a non-empty plate")
        if record.plate != key:
            record = dataclasses.replace(record, plate=key)
        self._records[key] = record
        return record

    def all(self) -> ValuesView[VehicleRecord]:
        """Live, re-iterable view over every record."""
        return self._records.values()

    def copy(self) -> 'VehicleStore':
        """Shallow copy; records themselves are immutable."""
        clone = VehicleStore()
        clone._records = dict(self._records)
        return clone

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[VehicleRecord]:
        return iter(self._records.values())

    def __contains__(self, plate: object) -> bool:
        return isinstance(plate, str) and normalize_plate(plate) in self._records

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, VehicleStore):
            return NotImplemented
        return self._records == other._records

    def __repr__(self) -> str:
        return f"VehicleStore({len(self._records)} records)"
