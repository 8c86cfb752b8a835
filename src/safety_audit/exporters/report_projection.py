"""
Projection of the audit history into flat report rows.
"""

from typing import Any, Dict, List

from ..models import ReportFilter
from ..processors.audit_history import AuditHistory, matches_filter
from ..processors.vehicle_store import VehicleStore


REPORT_COLUMNS = [
    'Timestamp',
    'Plate',
    'Vehicle Name',
    'Result',
    'Problem Description',
    'Auditor',
    'QR Payload',
    'DiveDeep Status',
    'VinAudit Status',
    'Grounded Status'
]


class ReportExporter:
    """
    Builds report rows from recorded decisions.

    Reports list decisions, not vehicle status, so filtering runs over the
    audit history. The current feed statuses are attached for context.
    Neither the store nor the history is modified.
    """

    def project(
        self,
        store: VehicleStore,
        history: AuditHistory,
        report_filter: ReportFilter = ReportFilter.ALL
    ) -> List[Dict[str, Any]]:
        """
        Args:
            store: Vehicle records, for the status columns
            history: Audit outcomes
            report_filter: All, PassedOnly or BlockedOnly

        Returns:
            Rows ordered by timestamp, ties kept in recording order
        """
        selected = [
            (sequence, outcome)
            for sequence, outcome in history.entries()
            if matches_filter(outcome, report_filter)
        ]
        selected.sort(key=lambda item: (item[1].timestamp, item[0]))

        return [self._row(store, outcome) for _, outcome in selected]

    def _row(self, store: VehicleStore, outcome) -> Dict[str, Any]:
        record = store.get(outcome.plate)
        return {
            'Timestamp': outcome.timestamp.isoformat(),
            'Plate': outcome.plate,
            'Vehicle Name': outcome.vehicle_name_snapshot,
            'Result': outcome.result.value,
            'Problem Description': outcome.problem_description or '',
            'Auditor': outcome.auditor_identity,
            'QR Payload': outcome.qr_payload or '',
            'DiveDeep Status': record.dive_deep_status.value if record else 'Unknown',
            'VinAudit Status': record.vin_audit_status.value if record else 'Unknown',
            'Grounded Status': record.grounded_status.value if record else 'Unknown'
        }
