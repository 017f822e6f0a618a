"""Approval workflow entry points exposed to HTTP handlers and other collaborators"""

import time
import logging
from decimal import Decimal
from typing import Any, Dict, Optional
from sqlalchemy.orm import Session
from coop_approvals.config import settings
from coop_approvals.domain.content import check_content, content_from_dict, content_to_dict
from coop_approvals.domain.eligibility import check_eligibility
from coop_approvals.domain.exceptions import (
    CONSISTENCY_VIOLATIONS,
    EligibilityError,
    IllegalTransition,
    InvalidRequestContent,
    NoPendingStep,
    RequestNotFound,
    SubjectNotFound,
    TransitionError,
    Unauthorized,
)
from coop_approvals.domain.models import (
    ApprovalRequestView,
    ApprovalStepView,
    CurrentActor,
    Page,
    RequestContent,
    RequestStatistics,
    RequestStatus,
    RequestType,
    StepDefinition,
    StepStatus,
    SubjectKind,
    SubjectRef,
    TransactionType,
    TransactionView,
)
from coop_approvals.domain.workflow import OPEN_STATUSES, PERIOD_LIMITED_STATUSES, chain_for, requires_reset
from coop_approvals.infrastructure.database.models import ApprovalRequestRecord
from coop_approvals.infrastructure.database.repositories import (
    LedgerRepository,
    LoanRepository,
    RequestRepository,
)
from coop_approvals.infrastructure.observability.logging import (
    log_eligibility_failure,
    log_request_created,
    log_transition,
    log_transition_failure,
)
from coop_approvals.infrastructure.observability.metrics import (
    eligibility_failure_counter,
    record_transition,
    request_created_counter,
    transition_failure_counter,
)
from coop_approvals.services.transition_engine import TransitionEngine, find_pending_step
from coop_approvals.utils.currency import format_currency, quantize_amount
from coop_approvals.utils.date_utils import start_of_next_year, start_of_year, utcnow

logger = logging.getLogger(__name__)

_SUBJECT_KIND_FOR = {
    RequestType.LOAN_APPLICATION: SubjectKind.SAVINGS,
    RequestType.SAVINGS_WITHDRAWAL: SubjectKind.SAVINGS,
    RequestType.PERSONAL_SAVINGS_WITHDRAWAL: SubjectKind.PERSONAL_SAVINGS,
}


def authorize_actor(actor: CurrentActor, step: StepDefinition) -> None:
    """
    Role gate for one approval level.

    Raises:
        Unauthorized: actor lacks the step's role or a high enough approval level
    """
    if actor.role_name != step.approver_role or actor.approval_level < step.level:
        raise Unauthorized(
            f"Level {step.level} requires role {step.approver_role}",
            actor_id=actor.id,
        )


def notification_event(view: ApprovalRequestView, event: str) -> Dict[str, Any]:
    """Payload describing a request lifecycle change for the notification service"""
    return {
        "event": event,
        "request_id": view.id,
        "request_type": view.request_type.value,
        "status": view.status.value,
        "recipient_id": view.initiator_id,
        "amount": str(view.requested_amount),
        "message": f"Your {view.request_type.value.replace('_', ' ').lower()} request for "
        f"{view.formatted_amount} is now {view.status.value.replace('_', ' ').lower()}.",
        "next_approver_role": view.current_approver_role,
    }


class ApprovalService:
    """
    Unit-of-work boundary around the approval workflow.

    Each mutating call commits once on success and rolls back on any failure,
    leaving the store in its previous committed state.
    """

    def __init__(self, db: Session):
        self.db = db
        self.requests = RequestRepository(db)
        self.ledgers = LedgerRepository(db)
        self.loans = LoanRepository(db)
        self.engine = TransitionEngine(db)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_request(
        self,
        request_type: RequestType,
        subject: SubjectRef,
        amount: Decimal,
        initiator_id: str,
        content: RequestContent,
    ) -> ApprovalRequestView:
        """
        Create a PENDING request with its full approval chain.

        Raises:
            EligibilityError subclass (SubjectNotFound, PeriodLimitExceeded,
            ActiveLoanBlocks, AmountExceedsCeiling, InsufficientBalance, ...)
        """
        try:
            amount = quantize_amount(amount)
            if amount <= 0:
                raise InvalidRequestContent("Requested amount must be positive")
            check_content(request_type, content)
            if subject.kind != _SUBJECT_KIND_FOR[request_type]:
                raise InvalidRequestContent(
                    f"{request_type.value} must reference a {_SUBJECT_KIND_FOR[request_type].value} entity"
                )

            # Lock the ledger row so the yearly count and the insert see one writer at a time
            snapshot = self.ledgers.snapshot(subject, for_update=True)
            if snapshot is None:
                raise SubjectNotFound(f"No active {subject.kind.value.lower().replace('_', ' ')} record found")

            now = utcnow()
            check_eligibility(
                request_type=request_type,
                snapshot=snapshot,
                amount=amount,
                active_loan=self.loans.find_active_loan(snapshot.member_id),
                requests_this_year=self.requests.count_requests_in_period(
                    snapshot.member_id,
                    request_type,
                    PERIOD_LIMITED_STATUSES,
                    start_of_year(now),
                    start_of_next_year(now),
                ),
                contribution_count=self.ledgers.full_contribution_history(snapshot.member_id),
                ceiling_ratio=settings.withdrawal_ceiling_ratio,
                min_contributions_for_loan=settings.min_contributions_for_loan,
            )

            record = self.requests.create_request(
                request_type=request_type,
                subject=subject,
                member_id=snapshot.member_id,
                amount=amount,
                initiator_id=initiator_id,
                content=content_to_dict(content),
                chain=chain_for(request_type),
            )
            self.db.commit()

        except EligibilityError as e:
            self.db.rollback()
            eligibility_failure_counter.labels(request_type=request_type.value, reason=e.reason).inc()
            log_eligibility_failure(request_type.value, None, e.reason, e.message)
            raise
        except Exception:
            self.db.rollback()
            raise

        request_created_counter.labels(request_type=request_type.value).inc()
        log_request_created(record.id, request_type.value, record.member_id, str(amount))
        return self.get_request(record.id)

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    def expected_step(self, request_id: str, decision: RequestStatus) -> StepDefinition:
        """The chain step a decision would act on, accounting for the reject-reset rule"""
        request = self._load(request_id)
        chain = chain_for(RequestType(request.request_type))
        if requires_reset(RequestStatus(request.status), decision):
            return chain[0]
        pending = find_pending_step(request)
        if pending is None:
            raise NoPendingStep("No pending approval steps found", request_id=request_id)
        return next(step for step in chain if step.level == pending.level)

    def authorize(self, actor: CurrentActor, request_id: str, decision: RequestStatus) -> None:
        authorize_actor(actor, self.expected_step(request_id, decision))

    def apply_decision(
        self,
        request_id: str,
        decision: RequestStatus,
        actor_id: str,
        notes: Optional[str] = None,
    ) -> ApprovalRequestView:
        """
        Apply one approver decision atomically.

        Raises:
            RequestNotFound, or a TransitionError subclass; the request is left
            in its last committed state
        """
        start_time = time.time()
        try:
            request = self.engine.apply(request_id, decision, actor_id, notes)
            level = request.next_approval_level
            request_type = request.request_type
            amount = request.requested_amount
            self.db.commit()

        except TransitionError as e:
            self.db.rollback()
            transition_failure_counter.labels(code=e.code).inc()
            log_transition_failure(
                request_id,
                decision.value,
                actor_id,
                e.code,
                e.message,
                consistency=isinstance(e, CONSISTENCY_VIOLATIONS),
            )
            raise
        except Exception:
            self.db.rollback()
            raise

        duration_ms = (time.time() - start_time) * 1000
        record_transition(request_type, decision.value, amount)
        log_transition(request_id, request_type, decision.value, level, actor_id, duration_ms)
        return self.get_request(request_id)

    def cancel_request(self, request_id: str, actor_id: str) -> ApprovalRequestView:
        """Withdraw a request nobody has acted on yet; only its initiator may do so"""
        try:
            request = self.requests.get_request_for_update(request_id)
            if request is None:
                raise RequestNotFound(f"Approval request {request_id} not found", request_id=request_id)
            if request.initiator_id != actor_id:
                raise Unauthorized("You can only cancel your own requests", actor_id=actor_id)
            untouched = all(step.status == StepStatus.PENDING.value for step in request.steps)
            if request.status != RequestStatus.PENDING.value or not untouched:
                raise IllegalTransition("Only pending requests can be cancelled", request_id=request_id)

            request.status = RequestStatus.CANCELLED.value
            request.notes = "Request cancelled by user"
            request.completed_at = utcnow()
            self.db.commit()

        except Exception:
            self.db.rollback()
            raise

        logger.info("Approval request cancelled", extra={"request_id": request_id, "actor_id": actor_id})
        return self.get_request(request_id)

    # ------------------------------------------------------------------
    # Read models
    # ------------------------------------------------------------------

    def get_request(self, request_id: str) -> ApprovalRequestView:
        return self._to_view(self._load(request_id))

    def list_requests(
        self,
        request_type: Optional[RequestType] = None,
        status: Optional[RequestStatus] = None,
        member_id: Optional[str] = None,
        page: int = 1,
        page_size: Optional[int] = None,
    ) -> Page[ApprovalRequestView]:
        page = max(page, 1)
        page_size = min(max(page_size or settings.default_page_size, 1), settings.max_page_size)
        items, total = self.requests.list_requests(request_type, status, member_id, page, page_size)
        return Page(items=[self._to_view(r) for r in items], total=total, page=page, page_size=page_size)

    def statistics(
        self,
        start=None,
        end=None,
        member_id: Optional[str] = None,
        request_type: Optional[RequestType] = None,
    ) -> RequestStatistics:
        """
        Request counts over a creation-time range, start inclusive and end exclusive.

        pending counts PENDING and IN_REVIEW; approved counts APPROVED and COMPLETED.
        """
        counts = self.requests.count_by_status(start=start, end=end, member_id=member_id, request_type=request_type)

        def total_of(*statuses: RequestStatus) -> int:
            return sum(counts.get(s.value, 0) for s in statuses)

        return RequestStatistics(
            total=sum(counts.values()),
            pending=total_of(RequestStatus.PENDING, RequestStatus.IN_REVIEW),
            approved=total_of(RequestStatus.APPROVED, RequestStatus.COMPLETED),
            rejected=total_of(RequestStatus.REJECTED),
            completed_amount_sum=self.requests.completed_amount_sum(
                start=start, end=end, member_id=member_id, request_type=request_type
            ),
        )

    def pending_count(self, role: Optional[str] = None, initiator_id: Optional[str] = None) -> int:
        return self.requests.count_awaiting(role=role, initiator_id=initiator_id)

    def _load(self, request_id: str) -> ApprovalRequestRecord:
        request = self.requests.get_request(request_id)
        if request is None:
            raise RequestNotFound(f"Approval request {request_id} not found", request_id=request_id)
        return request

    def _to_view(self, request: ApprovalRequestRecord) -> ApprovalRequestView:
        request_type = RequestType(request.request_type)
        status = RequestStatus(request.status)
        if request.savings_id is not None:
            subject = SubjectRef(kind=SubjectKind.SAVINGS, id=request.savings_id)
        else:
            subject = SubjectRef(kind=SubjectKind.PERSONAL_SAVINGS, id=request.personal_savings_id)

        steps = [
            ApprovalStepView(
                level=step.level,
                approver_role=step.approver_role,
                status=StepStatus(step.status),
                approver_id=step.approver_id,
                approved_at=step.approved_at,
                notes=step.notes,
            )
            for step in sorted(request.steps, key=lambda s: s.level)
        ]
        current_role = None
        if status in OPEN_STATUSES:
            current_role = next(
                (s.approver_role for s in steps if s.level == request.next_approval_level), None
            )

        transaction = None
        if request.transaction is not None:
            txn = request.transaction
            transaction = TransactionView(
                id=txn.id,
                transaction_type=TransactionType(txn.transaction_type),
                amount=Decimal(txn.amount),
                balance_after=Decimal(txn.balance_after),
                related_entity_type=txn.related_entity_type,
                related_entity_id=txn.related_entity_id,
                status=txn.status,
                created_at=txn.created_at,
            )

        amount = Decimal(request.requested_amount)
        return ApprovalRequestView(
            id=request.id,
            request_type=request_type,
            status=status,
            next_approval_level=request.next_approval_level,
            subject=subject,
            member_id=request.member_id,
            requested_amount=amount,
            formatted_amount=format_currency(amount),
            initiator_id=request.initiator_id,
            content=content_from_dict(request_type, request.content),
            steps=steps,
            current_approver_role=current_role,
            transaction=transaction,
            created_at=request.created_at,
            completed_at=request.completed_at,
        )
