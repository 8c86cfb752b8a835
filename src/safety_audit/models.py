"""
Domain types shared by the normalizer, reconciler, audit workflow and exporters.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional


class SourceKind(Enum):
    """The three independent feeds a vehicle record is built from."""
    DIVE_DEEP = "DiveDeep"
    VIN_AUDIT = "VinAudit"
    GROUNDED = "Grounded"


class CheckStatus(Enum):
    """Result of a DiveDeep or VinAudit inspection."""
    PASS = "Pass"
    FAIL = "Fail"
    UNKNOWN = "Unknown"


class GroundedStatus(Enum):
    """Whether the vehicle is currently grounded."""
    YES = "Yes"
    NO = "No"
    UNKNOWN = "Unknown"


class AuditResult(Enum):
    """Decision recorded by an auditor."""
    PASS = "Pass"
    BLOCKED = "Blocked"


class ReportFilter(Enum):
    """Which audit outcomes a report should contain."""
    ALL = "all"
    PASSED_ONLY = "passed"
    BLOCKED_ONLY = "blocked"


class WarningCategory(Enum):
    """Why part of a feed was not used."""
    SKIPPED_ROW = "skipped_row"
    MISSING_COLUMN = "missing_column"
    UNREADABLE_FILE = "unreadable_file"
    UNSUPPORTED_FORMAT = "unsupported_format"


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


@dataclass(frozen=True)
class FeedWarning:
    """A non-fatal problem found while ingesting a feed."""
    source_kind: SourceKind
    category: WarningCategory
    reason: str
    row_ordinal: Optional[int] = None

    def __str__(self) -> str:
        where = f" row {self.row_ordinal}" if self.row_ordinal is not None else ""
        return f"[{self.source_kind.value}{where}] {self.reason}"


@dataclass(frozen=True)
class VehicleFragment:
    """
    One feed's partial view of a vehicle.

    ``fields`` holds canonical field names (``status``, ``grounded``,
    ``display_name``) plus, for Grounded rows, any auxiliary columns under
    their original header.
    """
    plate: str
    source_kind: SourceKind
    fields: Mapping[str, Any]
    row_ordinal: int

    def __post_init__(self):
        object.__setattr__(self, 'fields', MappingProxyType(dict(self.fields)))


@dataclass(frozen=True)
class VehicleRecord:
    """Canonical vehicle merged from all feeds."""
    plate: str
    display_name: str = ''
    dive_deep_status: CheckStatus = CheckStatus.UNKNOWN
    vin_audit_status: CheckStatus = CheckStatus.UNKNOWN
    grounded_status: GroundedStatus = GroundedStatus.UNKNOWN
    extra_info: Dict[str, Any] = field(default_factory=dict)
    last_merged_at: Optional[datetime] = None

    def same_content(self, other: 'VehicleRecord') -> bool:
        """Compare everything except the merge timestamp."""
        return (
            self.plate == other.plate and
            self.display_name == other.display_name and
            self.dive_deep_status == other.dive_deep_status and
            self.vin_audit_status == other.vin_audit_status and
            self.grounded_status == other.grounded_status and
            dict(self.extra_info) == dict(other.extra_info)
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert record to a JSON-friendly dictionary."""
        return {
            'plate': self.plate,
            'display_name': self.display_name,
            'dive_deep_status': self.dive_deep_status.value,
            'vin_audit_status': self.vin_audit_status.value,
            'grounded_status': self.grounded_status.value,
            'extra_info': dict(self.extra_info),
            'last_merged_at': self.last_merged_at.isoformat() if self.last_merged_at else None
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'VehicleRecord':
        return cls(
            plate=data['plate'],
            display_name=data.get('display_name') or '',
            dive_deep_status=CheckStatus(data.get('dive_deep_status') or CheckStatus.UNKNOWN.value),
            vin_audit_status=CheckStatus(data.get('vin_audit_status') or CheckStatus.UNKNOWN.value),
            grounded_status=GroundedStatus(data.get('grounded_status') or GroundedStatus.UNKNOWN.value),
            extra_info=dict(data.get('extra_info') or {}),
            last_merged_at=_parse_timestamp(data.get('last_merged_at'))
        )


@dataclass(frozen=True)
class AuditOutcome:
    """
    One audit decision. Immutable once created; corrections are recorded as
    new outcomes.
    """
    plate: str
    vehicle_name_snapshot: str
    timestamp: datetime
    result: AuditResult
    auditor_identity: str
    problem_description: Optional[str] = None
    qr_payload: Optional[str] = None

    def __post_init__(self):
        if self.result is AuditResult.BLOCKED:
            if not self.problem_description:
                raise ValueError("Blocked outcome requires a problem description")
            if self.qr_payload is not None:
                raise ValueError("Blocked outcome must not carry a QR payload")
        else:
            if self.problem_description is not None:
                raise ValueError("Passing outcome must not carry a problem description")
            if not self.qr_payload:
                raise ValueError("Passing outcome requires a QR payload")

    def to_dict(self) -> Dict[str, Any]:
        """Convert outcome to a JSON-friendly dictionary."""
        return {
            'plate': self.plate,
            'vehicle_name_snapshot': self.vehicle_name_snapshot,
            'timestamp': self.timestamp.isoformat(),
            'result': self.result.value,
            'auditor_identity': self.auditor_identity,
            'problem_description': self.problem_description,
            'qr_payload': self.qr_payload
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AuditOutcome':
        return cls(
            plate=data['plate'],
            vehicle_name_snapshot=data.get('vehicle_name_snapshot') or '',
            timestamp=_parse_timestamp(data['timestamp']),
            result=AuditResult(data['result']),
            auditor_identity=data.get('auditor_identity') or '',
            problem_description=data.get('problem_description'),
            qr_payload=data.get('qr_payload')
        )
