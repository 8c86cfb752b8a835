"""
Append-only log of audit outcomes.
"""

from typing import Iterable, Iterator, List, Optional, Tuple

from ..models import AuditOutcome, AuditResult, ReportFilter
from .normalizer import normalize_plate


def matches_filter(outcome: AuditOutcome, report_filter: ReportFilter) -> bool:
    """Whether an outcome belongs in a report of the given kind."""
    if report_filter is ReportFilter.PASSED_ONLY:
        return outcome.result is AuditResult.PASS
    if report_filter is ReportFilter.BLOCKED_ONLY:
        return outcome.result is AuditResult.BLOCKED
    return True


class AuditHistory:
    """
    Outcomes in the order they were recorded.

    Entries are never edited or removed; a correction is a new outcome.
    """

    def __init__(self, outcomes: Optional[Iterable[AuditOutcome]] = None):
        self._entries: List[AuditOutcome] = []
        for outcome in outcomes or []:
            self.append(outcome)

    def append(self, outcome: AuditOutcome) -> int:
        """Record an outcome and return its insertion sequence number."""
        self._entries.append(outcome)
        return len(self._entries) - 1

    def entries(self) -> List[Tuple[int, AuditOutcome]]:
        """Snapshot of (sequence, outcome) pairs."""
        return list(enumerate(self._entries))

    def for_plate(self, plate: str) -> List[AuditOutcome]:
        key = normalize_plate(plate)
        return [o for o in self._entries if o.plate == key]

    def filtered(self, report_filter: ReportFilter) -> List[AuditOutcome]:
        return [o for o in self._entries if matches_filter(o, report_filter)]

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[AuditOutcome]:
        return iter(list(self._entries))
