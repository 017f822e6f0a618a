"""Approval state machine: validates and applies one decision against a request"""

import logging
from typing import Optional
from sqlalchemy.orm import Session
from coop_approvals.domain.exceptions import (
    IllegalTransition,
    LevelInconsistency,
    NoPendingStep,
    RequestNotFound,
)
from coop_approvals.domain.models import RequestStatus, StepStatus
from coop_approvals.domain.workflow import (
    RESET_NOTE,
    legal_decisions,
    next_level_after,
    requires_reset,
    step_status_for,
)
from coop_approvals.infrastructure.database.models import ApprovalRequestRecord, ApprovalStepRecord
from coop_approvals.infrastructure.database.repositories import RequestRepository
from coop_approvals.services.ledger_writer import LedgerWriter
from coop_approvals.utils.date_utils import utcnow

logger = logging.getLogger(__name__)


def find_pending_step(request: ApprovalRequestRecord) -> Optional[ApprovalStepRecord]:
    """Lowest-level step still awaiting a decision"""
    for step in sorted(request.steps, key=lambda s: s.level):
        if step.status == StepStatus.PENDING.value:
            return step
    return None


def reset_request(request: ApprovalRequestRecord) -> None:
    """Revive a rejected request: every step back to PENDING, chain restarts at level 1"""
    for step in request.steps:
        step.status = StepStatus.PENDING.value
        step.approver_id = None
        step.approved_at = None
        step.notes = RESET_NOTE
    request.status = RequestStatus.PENDING.value
    request.next_approval_level = 1
    request.completed_at = None
    request.notes = RESET_NOTE


class TransitionEngine:
    """
    Applies approval decisions inside the caller's unit of work.

    The engine flushes but never commits: the caller commits on success and
    rolls back on any exception, so a reset, a step update and the ledger
    effect of a completion are observed together or not at all. Role checks
    are the caller's responsibility.
    """

    def __init__(self, db: Session, ledger_writer: LedgerWriter | None = None):
        self.db = db
        self.requests = RequestRepository(db)
        self.ledger_writer = ledger_writer or LedgerWriter(db)

    def apply(
        self,
        request_id: str,
        decision: RequestStatus,
        actor_id: str,
        notes: Optional[str] = None,
    ) -> ApprovalRequestRecord:
        """
        Apply `decision` to the step currently awaiting approval.

        Flow:
        1. Lock the request; revive it first if it was REJECTED and the decision is not
        2. Locate the pending step and check it matches next_approval_level
        3. Check the decision against the (status, level) transition table
        4. Stamp the step, move the request status and level pointer
        5. On COMPLETED, settle through the ledger writer before returning

        Raises:
            RequestNotFound, NoPendingStep, LevelInconsistency, IllegalTransition,
            and any TransitionError raised by the ledger writer
        """
        request = self.requests.get_request_for_update(request_id)
        if request is None:
            raise RequestNotFound(f"Approval request {request_id} not found", request_id=request_id)

        current_status = RequestStatus(request.status)
        if current_status == RequestStatus.CANCELLED:
            raise IllegalTransition("Cancelled requests cannot be acted on", request_id=request_id)
        if current_status == RequestStatus.REJECTED and decision == RequestStatus.REJECTED:
            raise IllegalTransition("Request is already rejected", request_id=request_id)

        if requires_reset(current_status, decision):
            logger.info("Resetting rejected request", extra={"request_id": request_id, "actor_id": actor_id})
            reset_request(request)

        pending_step = find_pending_step(request)
        if pending_step is None:
            raise NoPendingStep("No pending approval steps found", request_id=request_id)

        if request.next_approval_level != pending_step.level:
            raise LevelInconsistency(
                f"Invalid approval level. Expected level {request.next_approval_level}, found {pending_step.level}",
                request_id=request_id,
            )

        status = RequestStatus(request.status)
        if decision not in legal_decisions(status, pending_step.level):
            raise IllegalTransition(
                f"Invalid status transition from {status.value} to {decision.value} at level {pending_step.level}",
                request_id=request_id,
            )

        now = utcnow()
        pending_step.status = step_status_for(decision).value
        pending_step.approver_id = actor_id
        pending_step.approved_at = now
        pending_step.notes = notes

        request.status = decision.value
        request.next_approval_level = next_level_after(decision, pending_step.level)
        if decision in (RequestStatus.REJECTED, RequestStatus.COMPLETED):
            request.completed_at = now

        if decision == RequestStatus.COMPLETED:
            self.ledger_writer.complete(request, actor_id)

        self.db.flush()
        return request
