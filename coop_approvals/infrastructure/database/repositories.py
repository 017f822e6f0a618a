"""Data access layer for approval requests and ledger entities"""

from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence, Tuple
from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload
from coop_approvals.infrastructure.database.models import (
    ApprovalRequestRecord,
    ApprovalStepRecord,
    LedgerTransaction,
    MemberLoan,
    PersonalSavingsPlan,
    SavingsContribution,
    SavingsRecord,
)
from coop_approvals.domain.models import (
    ActiveLoan,
    LedgerSnapshot,
    RequestStatus,
    RequestType,
    StepDefinition,
    StepStatus,
    SubjectKind,
    SubjectRef,
)
from coop_approvals.domain.workflow import OPEN_STATUSES
from coop_approvals.utils.currency import quantize_amount


class RequestRepository:
    """Repository for approval requests and their steps"""

    def __init__(self, db: Session):
        self.db = db

    def create_request(
        self,
        request_type: RequestType,
        subject: SubjectRef,
        member_id: str,
        amount: Decimal,
        initiator_id: str,
        content: dict,
        chain: Sequence[StepDefinition],
    ) -> ApprovalRequestRecord:
        """Persist a PENDING request together with every step of its chain"""
        db_request = ApprovalRequestRecord(
            request_type=request_type.value,
            status=RequestStatus.PENDING.value,
            next_approval_level=1,
            member_id=member_id,
            savings_id=subject.id if subject.kind == SubjectKind.SAVINGS else None,
            personal_savings_id=subject.id if subject.kind == SubjectKind.PERSONAL_SAVINGS else None,
            requested_amount=amount,
            initiator_id=initiator_id,
            content=content,
        )
        db_request.steps = [
            ApprovalStepRecord(
                level=step.level,
                approver_role=step.approver_role,
                status=StepStatus.PENDING.value,
                notes=step.description,
            )
            for step in chain
        ]
        self.db.add(db_request)
        self.db.flush()  # Get ID without committing
        return db_request

    def get_request(self, request_id: str) -> Optional[ApprovalRequestRecord]:
        return (
            self.db.query(ApprovalRequestRecord)
            .options(selectinload(ApprovalRequestRecord.steps))
            .filter(ApprovalRequestRecord.id == request_id)
            .first()
        )

    def get_request_for_update(self, request_id: str) -> Optional[ApprovalRequestRecord]:
        """Load and row-lock a request so racing approvers are serialised by the store"""
        request = (
            self.db.query(ApprovalRequestRecord)
            .filter(ApprovalRequestRecord.id == request_id)
            .with_for_update()
            .populate_existing()
            .first()
        )
        if request is not None:
            (
                self.db.query(ApprovalStepRecord)
                .filter(ApprovalStepRecord.request_id == request_id)
                .with_for_update()
                .populate_existing()
                .all()
            )
        return request

    def count_requests_in_period(
        self,
        member_id: str,
        request_type: RequestType,
        statuses: Iterable[RequestStatus],
        start: datetime,
        end: datetime,
    ) -> int:
        """Count a member's requests of one type created within [start, end)"""
        return (
            self.db.query(func.count(ApprovalRequestRecord.id))
            .filter(
                ApprovalRequestRecord.member_id == member_id,
                ApprovalRequestRecord.request_type == request_type.value,
                ApprovalRequestRecord.status.in_([s.value for s in statuses]),
                ApprovalRequestRecord.created_at >= start,
                ApprovalRequestRecord.created_at < end,
            )
            .scalar()
        )

    def _filtered(
        self,
        request_type: Optional[RequestType] = None,
        status: Optional[RequestStatus] = None,
        member_id: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ):
        query = self.db.query(ApprovalRequestRecord)
        if request_type is not None:
            query = query.filter(ApprovalRequestRecord.request_type == request_type.value)
        if status is not None:
            query = query.filter(ApprovalRequestRecord.status == status.value)
        if member_id is not None:
            query = query.filter(ApprovalRequestRecord.member_id == member_id)
        if start is not None:
            query = query.filter(ApprovalRequestRecord.created_at >= start)
        if end is not None:
            query = query.filter(ApprovalRequestRecord.created_at < end)
        return query

    def list_requests(
        self,
        request_type: Optional[RequestType],
        status: Optional[RequestStatus],
        member_id: Optional[str],
        page: int,
        page_size: int,
    ) -> Tuple[List[ApprovalRequestRecord], int]:
        """Fetch one page of requests, newest first, plus the unpaged total"""
        query = self._filtered(request_type=request_type, status=status, member_id=member_id)
        total = query.count()
        items = (
            query.options(selectinload(ApprovalRequestRecord.steps))
            .order_by(ApprovalRequestRecord.created_at.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )
        return items, total

    def count_by_status(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        member_id: Optional[str] = None,
        request_type: Optional[RequestType] = None,
    ) -> dict:
        """Map of status value to request count"""
        rows = (
            self._filtered(request_type=request_type, member_id=member_id, start=start, end=end)
            .with_entities(ApprovalRequestRecord.status, func.count(ApprovalRequestRecord.id))
            .group_by(ApprovalRequestRecord.status)
            .all()
        )
        return {status: count for status, count in rows}

    def completed_amount_sum(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        member_id: Optional[str] = None,
        request_type: Optional[RequestType] = None,
    ) -> Decimal:
        total = (
            self._filtered(request_type=request_type, member_id=member_id, start=start, end=end)
            .filter(ApprovalRequestRecord.status == RequestStatus.COMPLETED.value)
            .with_entities(func.sum(ApprovalRequestRecord.requested_amount))
            .scalar()
        )
        return quantize_amount(total or 0)

    def count_awaiting(self, role: Optional[str] = None, initiator_id: Optional[str] = None) -> int:
        """Count open requests whose current step awaits `role` (or raised by `initiator_id`)"""
        query = (
            self.db.query(func.count(ApprovalRequestRecord.id))
            .select_from(ApprovalRequestRecord)
            .filter(ApprovalRequestRecord.status.in_([s.value for s in OPEN_STATUSES]))
        )
        if initiator_id is not None:
            query = query.filter(ApprovalRequestRecord.initiator_id == initiator_id)
        if role is not None:
            query = query.join(
                ApprovalStepRecord,
                (ApprovalStepRecord.request_id == ApprovalRequestRecord.id)
                & (ApprovalStepRecord.level == ApprovalRequestRecord.next_approval_level),
            ).filter(
                ApprovalStepRecord.approver_role == role,
                ApprovalStepRecord.status == StepStatus.PENDING.value,
            )
        return query.scalar()


class LedgerRepository:
    """Repository for savings records and personal-savings plans"""

    def __init__(self, db: Session):
        self.db = db

    def get_savings(self, savings_id: str, for_update: bool = False) -> Optional[SavingsRecord]:
        query = self.db.query(SavingsRecord).filter(SavingsRecord.id == savings_id)
        if for_update:
            query = query.with_for_update().populate_existing()
        return query.first()

    def get_personal_plan(self, plan_id: str, for_update: bool = False) -> Optional[PersonalSavingsPlan]:
        query = self.db.query(PersonalSavingsPlan).filter(PersonalSavingsPlan.id == plan_id)
        if for_update:
            query = query.with_for_update().populate_existing()
        return query.first()

    def snapshot(self, subject: SubjectRef, for_update: bool = False) -> Optional[LedgerSnapshot]:
        """
        Balances of an ACTIVE ledger entity, or None when missing or closed.

        With for_update the entity row stays locked until the caller commits, so
        concurrent creations for the same member are serialised.
        """
        if subject.kind == SubjectKind.SAVINGS:
            savings = self.get_savings(subject.id, for_update=for_update)
            if savings is None or savings.status != "ACTIVE":
                return None
            return LedgerSnapshot(
                subject=subject,
                member_id=savings.member_id,
                current_balance=Decimal(savings.balance),
                cumulative_total=Decimal(savings.total_savings_amount),
            )

        plan = self.get_personal_plan(subject.id, for_update=for_update)
        if plan is None or plan.status != "ACTIVE":
            return None
        return LedgerSnapshot(
            subject=subject,
            member_id=plan.member_id,
            current_balance=Decimal(plan.current_balance),
            cumulative_total=Decimal(plan.current_balance),
        )

    def full_contribution_history(self, member_id: str) -> int:
        """Number of savings contributions ever recorded for a member"""
        return (
            self.db.query(func.count(SavingsContribution.id))
            .filter(SavingsContribution.member_id == member_id)
            .scalar()
        )


class LoanRepository:
    """Repository for member loans"""

    def __init__(self, db: Session):
        self.db = db

    def find_active_loan(self, member_id: str, loan_type_keyword: str = "regular") -> Optional[ActiveLoan]:
        """First loan of the given kind with an outstanding balance"""
        loan = (
            self.db.query(MemberLoan)
            .filter(
                MemberLoan.member_id == member_id,
                MemberLoan.remaining_balance > 0,
                func.lower(MemberLoan.loan_type).contains(loan_type_keyword.lower()),
            )
            .order_by(MemberLoan.created_at.asc())
            .first()
        )
        if loan is None:
            return None
        return ActiveLoan(
            loan_id=loan.id,
            loan_type=loan.loan_type,
            remaining_balance=Decimal(loan.remaining_balance),
        )

    def create_loan(
        self,
        member_id: str,
        loan_type: str,
        principal: Decimal,
        tenure_months: int,
        request_id: str,
    ) -> MemberLoan:
        db_loan = MemberLoan(
            member_id=member_id,
            loan_type=loan_type,
            principal=principal,
            remaining_balance=principal,
            tenure_months=tenure_months,
            request_id=request_id,
        )
        self.db.add(db_loan)
        self.db.flush()
        return db_loan


class TransactionRepository:
    """Repository for write-once ledger transactions"""

    def __init__(self, db: Session):
        self.db = db

    def create_transaction(
        self,
        request: ApprovalRequestRecord,
        transaction_type: str,
        amount: Decimal,
        balance_after: Decimal,
        related_entity_type: str,
        related_entity_id: str,
        initiated_by: str,
        description: str,
    ) -> LedgerTransaction:
        """Write a COMPLETED transaction linked back to its request"""
        db_transaction = LedgerTransaction(
            request=request,
            transaction_type=transaction_type,
            amount=amount,
            balance_after=balance_after,
            related_entity_type=related_entity_type,
            related_entity_id=related_entity_id,
            initiated_by=initiated_by,
            description=description,
            status="COMPLETED",
        )
        self.db.add(db_transaction)
        self.db.flush()
        return db_transaction

    def count_for_request(self, request_id: str) -> int:
        return (
            self.db.query(func.count(LedgerTransaction.id))
            .filter(LedgerTransaction.request_id == request_id)
            .scalar()
        )
