"""
QR payload encoding for passed audits. Rendering the payload as an image is
left to the caller.
"""

import json
from abc import ABC, abstractmethod
from datetime import datetime

from ..models import AuditResult, VehicleRecord


class QrPayloadEncoder(ABC):
    """Builds the text embedded in a pass certificate QR code."""

    @abstractmethod
    def encode(
        self,
        record: VehicleRecord,
        auditor_identity: str,
        timestamp: datetime
    ) -> str:
        """Return the payload for a passed vehicle."""
        pass


class JsonQrPayloadEncoder(QrPayloadEncoder):
    """Compact, key-sorted JSON payload with an optional prefix."""

    def __init__(self, prefix: str = ""):
        self.prefix = prefix

    def encode(
        self,
        record: VehicleRecord,
        auditor_identity: str,
        timestamp: datetime
    ) -> str:
        body = json.dumps(
            {
                'plate': record.plate,
                'vehicle': record.display_name,
                'auditor': auditor_identity,
                'timestamp': timestamp.isoformat(),
                'result': AuditResult.PASS.value
            },
            sort_keys=True,
            separators=(',', ':'),
            ensure_ascii=False
        )
        return f"{self.prefix}{body}"
