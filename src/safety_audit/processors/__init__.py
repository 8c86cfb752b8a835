"""Core processing: normalization, reconciliation, storage and the audit workflow."""

from .normalizer import (
    DEFAULT_COLUMN_ALIASES,
    REQUIRED_FIELDS,
    FeedNormalizer,
    normalize_plate,
    parse_check_status,
    parse_grounded_status
)
from .reconciliation import MergeStats, Reconciler
from .vehicle_store import VehicleStore
from .audit_history import AuditHistory, matches_filter
from .audit_session import AuditSession, AuditState, advisory_verdict
from .qr_payload import JsonQrPayloadEncoder, QrPayloadEncoder

__all__ = [
    'DEFAULT_COLUMN_ALIASES',
    'REQUIRED_FIELDS',
    'FeedNormalizer',
    'normalize_plate',
    'parse_check_status',
    'parse_grounded_status',
    'MergeStats',
    'Reconciler',
    'VehicleStore',
    'AuditHistory',
    'matches_filter',
    'AuditSession',
    'AuditState',
    'advisory_verdict',
    'JsonQrPayloadEncoder',
    'QrPayloadEncoder'
]
