"""Vehicle safety audit: feed reconciliation and audit decision recording."""

from importlib.metadata import PackageNotFoundError, version

from .exceptions import (
    AuditError,
    EmptyProblem,
    FlushFailed,
    InputError,
    InvalidState,
    PersistenceUnavailable,
    UnreadableFile,
    UnsupportedFormat,
    VehicleNotFound,
    WorkflowError
)
from .models import (
    AuditOutcome,
    AuditResult,
    CheckStatus,
    FeedWarning,
    GroundedStatus,
    ReportFilter,
    SourceKind,
    VehicleFragment,
    VehicleRecord
)
from .service import AuditContext, AuditService, FeedUpload

try:
    __version__ = version("vehicle-safety-audit")
except PackageNotFoundError:
    __version__ = "0.0.0"

__all__ = [
    'AuditError',
    'EmptyProblem',
    'FlushFailed',
    'InputError',
    'InvalidState',
    'PersistenceUnavailable',
    'UnreadableFile',
    'UnsupportedFormat',
    'VehicleNotFound',
    'WorkflowError',
    'AuditOutcome',
    'AuditResult',
    'CheckStatus',
    'FeedWarning',
    'GroundedStatus',
    'ReportFilter',
    'SourceKind',
    'VehicleFragment',
    'VehicleRecord',
    'AuditContext',
    'AuditService',
    'FeedUpload'
]
