"""
Audit session workflow: lookup -> decision -> persisted outcome.

    Idle --select--> Selected --approve--> Decided
                     Selected --block--> Blocked-Pending-Reason --submit_problem--> Decided
    any non-terminal state --cancel--> Cancelled
"""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Awaitable, Callable, Optional

from ..exceptions import EmptyProblem, InvalidState
from ..models import AuditOutcome, AuditResult, CheckStatus, GroundedStatus, VehicleRecord
from .qr_payload import JsonQrPayloadEncoder, QrPayloadEncoder
from .vehicle_store import VehicleStore


OutcomeSink = Callable[[AuditOutcome], Awaitable[None]]


class AuditState(Enum):
    """States of an audit session."""
    IDLE = "Idle"
    SELECTED = "Selected"
    BLOCKED_PENDING_REASON = "Blocked-Pending-Reason"
    DECIDED = "Decided"
    CANCELLED = "Cancelled"


TERMINAL_STATES = frozenset({AuditState.DECIDED, AuditState.CANCELLED})


def advisory_verdict(record: VehicleRecord) -> CheckStatus:
    """
    Combined pass/fail guidance for the auditor.

    Fail if any check failed or the vehicle is grounded, Pass only when every
    feed is known and clean, Unknown otherwise. Never enforced by the session.
    """
    if (
        record.dive_deep_status is CheckStatus.FAIL or
        record.vin_audit_status is CheckStatus.FAIL or
        record.grounded_status is GroundedStatus.YES
    ):
        return CheckStatus.FAIL

    if (
        record.dive_deep_status is CheckStatus.PASS and
        record.vin_audit_status is CheckStatus.PASS and
        record.grounded_status is GroundedStatus.NO
    ):
        return CheckStatus.PASS

    return CheckStatus.UNKNOWN


class AuditSession:
    """
    One audit of one vehicle, producing at most one outcome.

    The session only reads the vehicle record. Outcome-producing transitions
    hand the outcome to ``outcome_sink`` and move to ``Decided`` only after the
    sink returns; if the sink raises, the state is left as it was.
    """

    def __init__(
        self,
        store: VehicleStore,
        auditor_identity: str,
        qr_encoder: Optional[QrPayloadEncoder] = None,
        outcome_sink: Optional[OutcomeSink] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.store = store
        self.auditor_identity = auditor_identity
        self.qr_encoder = qr_encoder or JsonQrPayloadEncoder()
        self.outcome_sink = outcome_sink
        self.clock = clock or (lambda: datetime.now(timezone.utc))

        self.state = AuditState.IDLE
        self.vehicle_ref: Optional[VehicleRecord] = None
        self.draft_problem = ''
        self.outcome: Optional[AuditOutcome] = None
        self._deciding = False

    @classmethod
    def begin(
        cls,
        store: VehicleStore,
        plate: str,
        auditor_identity: str,
        **kwargs
    ) -> 'AuditSession':
        """Create a session and select the vehicle in one step."""
        session = cls(store, auditor_identity, **kwargs)
        session.select(plate)
        return session

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def advisory(self) -> CheckStatus:
        if self.vehicle_ref is None:
            return CheckStatus.UNKNOWN
        return advisory_verdict(self.vehicle_ref)

    def select(self, plate: str) -> VehicleRecord:
        """
        Look up the vehicle to audit.

        Raises:
            VehicleNotFound: If the plate is unknown; the session stays Idle
            InvalidState: If a vehicle was already selected
        """
        self._require(AuditState.IDLE, 'select a vehicle')

        record = self.store.lookup(plate)
        self.vehicle_ref = record
        self.state = AuditState.SELECTED
        self.logger.info(f"Audit of {record.plate} started by {self.auditor_identity}")
        return record

    async def approve(self) -> AuditOutcome:
        """Record a passing outcome with a QR payload."""
        self._require(AuditState.SELECTED, 'approve')

        record = self.vehicle_ref
        if self.advisory is CheckStatus.FAIL:
            self.logger.warning(
                f"Approving {record.plate} although its feed data indicates a failure"
            )

        timestamp = self.clock()
        outcome = AuditOutcome(
            plate=record.plate,
            vehicle_name_snapshot=record.display_name,
            timestamp=timestamp,
            result=AuditResult.PASS,
            auditor_identity=self.auditor_identity,
            qr_payload=self.qr_encoder.encode(record, self.auditor_identity, timestamp)
        )
        return await self._commit(outcome)

    def block(self) -> None:
        """Start a block decision; a problem description must follow."""
        self._require(AuditState.SELECTED, 'block')

        self.state = AuditState.BLOCKED_PENDING_REASON
        self.draft_problem = ''

    def update_draft(self, text: str) -> None:
        """Keep the problem text typed so far."""
        self._require(AuditState.BLOCKED_PENDING_REASON, 'edit the problem description')
        self.draft_problem = text

    async def submit_problem(self, text: Optional[str] = None) -> AuditOutcome:
        """
        Record a blocking outcome.

        Args:
            text: Problem description; defaults to the current draft

        Raises:
            EmptyProblem: If the description is blank; state is unchanged
        """
        self._require(AuditState.BLOCKED_PENDING_REASON, 'submit a problem')

        if text is None:
            text = self.draft_problem
        problem = (text or '').strip()
        if not problem:
            raise EmptyProblem()

        self.draft_problem = text
        record = self.vehicle_ref
        outcome = AuditOutcome(
            plate=record.plate,
            vehicle_name_snapshot=record.display_name,
            timestamp=self.clock(),
            result=AuditResult.BLOCKED,
            auditor_identity=self.auditor_identity,
            problem_description=problem
        )
        return await self._commit(outcome)

    def cancel(self) -> None:
        """Abandon the session without producing an outcome."""
        if self._deciding or self.is_terminal:
            raise InvalidState(self.state, 'cancel')

        self.state = AuditState.CANCELLED
        self.draft_problem = ''
        self.logger.info(
            f"Audit{' of ' + self.vehicle_ref.plate if self.vehicle_ref else ''} cancelled"
        )

    async def _commit(self, outcome: AuditOutcome) -> AuditOutcome:
        self._deciding = True
        try:
            if self.outcome_sink is not None:
                await self.outcome_sink(outcome)
        finally:
            self._deciding = False

        self.outcome = outcome
        self.state = AuditState.DECIDED
        self.logger.info(f"Audit of {outcome.plate} decided: {outcome.result.value}")
        return outcome

    def _require(self, expected: AuditState, action: str) -> None:
        if self._deciding or self.state is not expected:
            raise InvalidState(self.state, action)
