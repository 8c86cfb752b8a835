"""
Reconciliation of DiveDeep, VinAudit and Grounded fragments into vehicle records.
"""

import dataclasses
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional

from ..models import (
    CheckStatus,
    GroundedStatus,
    SourceKind,
    VehicleFragment,
    VehicleRecord
)
from .normalizer import (
    DISPLAY_NAME,
    EXTRA_INFO,
    GROUNDED,
    STATUS,
    clean_string,
    normalize_plate,
    parse_check_status,
    parse_grounded_status
)
from .vehicle_store import VehicleStore


@dataclass
class MergeStats:
    """Statistics from one merge pass."""
    fragments_applied: int = 0
    records_created: int = 0
    records_updated: int = 0
    records_unchanged: int = 0

    by_source: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert stats to dictionary."""
        return {
            'fragments_applied': self.fragments_applied,
            'records_created': self.records_created,
            'records_updated': self.records_updated,
            'records_unchanged': self.records_unchanged,
            'by_source': dict(self.by_source)
        }


def _as_check_status(value: Any) -> CheckStatus:
    if isinstance(value, CheckStatus):
        return value
    return parse_check_status(value)


def _as_grounded_status(value: Any) -> GroundedStatus:
    if isinstance(value, GroundedStatus):
        return value
    return parse_grounded_status(value)


class Reconciler:
    """
    Merges fragments into a VehicleStore.

    Each source kind owns its own record fields, so fragments from different
    feeds never conflict. Repeats of the same kind for a plate are applied in
    row order and the last one wins. Records missing from a batch are kept.
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.stats = MergeStats()

    def merge(
        self,
        existing_store: VehicleStore,
        fragments: Iterable[VehicleFragment]
    ) -> VehicleStore:
        """
        Merge a batch of fragments.

        Args:
            existing_store: Store to merge into; it is not modified
            fragments: Fragments from any mix of feeds

        Returns:
            New store containing the merged records
        """
        self.stats = MergeStats()
        updated = existing_store.copy()

        grouped: Dict[str, List[VehicleFragment]] = {}
        for fragment in fragments:
            plate = normalize_plate(fragment.plate)
            if not plate:
                continue
            grouped.setdefault(plate, []).append(fragment)

            kind = fragment.source_kind.value
            self.stats.by_source[kind] = self.stats.by_source.get(kind, 0) + 1
            self.stats.fragments_applied += 1

        merged_at = self.clock()

        for plate, plate_fragments in grouped.items():
            current = updated.get(plate)
            candidate = self._apply_fragments(
                current or VehicleRecord(plate=plate),
                plate_fragments
            )

            if current is None:
                self.stats.records_created += 1
            elif candidate.same_content(current):
                self.stats.records_unchanged += 1
                continue
            else:
                self.stats.records_updated += 1

            updated.upsert(dataclasses.replace(candidate, last_merged_at=merged_at))

        self.logger.info(
            f"Merge complete: {len(grouped)} plate(s), stats: {self.stats.to_dict()}"
        )
        return updated

    def _apply_fragments(
        self,
        record: VehicleRecord,
        fragments: List[VehicleFragment]
    ) -> VehicleRecord:
        """Build the record that results from applying fragments in order."""
        changes: Dict[str, Any] = {}

        if not record.display_name:
            for fragment in fragments:
                name = clean_string(fragment.fields.get(DISPLAY_NAME))
                if name:
                    changes['display_name'] = name
                    break

        for fragment in sorted(fragments, key=lambda f: f.row_ordinal):
            changes.update(self._owned_values(fragment))

        return dataclasses.replace(record, **changes)

    def _owned_values(self, fragment: VehicleFragment) -> Dict[str, Any]:
        """Values for the record fields this fragment's source kind owns."""
        if fragment.source_kind is SourceKind.DIVE_DEEP:
            return {'dive_deep_status': _as_check_status(fragment.fields.get(STATUS))}

        if fragment.source_kind is SourceKind.VIN_AUDIT:
            return {'vin_audit_status': _as_check_status(fragment.fields.get(STATUS))}

        return {
            'grounded_status': _as_grounded_status(fragment.fields.get(GROUNDED)),
            'extra_info': dict(fragment.fields.get(EXTRA_INFO) or {})
        }
