"""Pydantic schemas for API request/response validation"""

from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional
from pydantic import BaseModel, Field, model_validator
from coop_approvals.domain.content import content_to_dict
from coop_approvals.domain.models import (
    ApprovalRequestView,
    LoanContent,
    RequestContent,
    RequestStatus,
    RequestStatistics,
    RequestType,
    SubjectKind,
    WithdrawalContent,
)


class SubjectSchema(BaseModel):
    kind: SubjectKind
    id: str = Field(..., min_length=1)


class LoanContentSchema(BaseModel):
    kind: Literal["loan"] = "loan"
    loan_type: str = Field(..., min_length=1)
    tenure_months: int = Field(..., gt=0)
    purpose: str = ""


class WithdrawalContentSchema(BaseModel):
    kind: Literal["withdrawal"] = "withdrawal"
    reason: str = ""


class CreateRequestBody(BaseModel):
    """Request body for POST /v1/requests"""

    request_type: RequestType
    subject: SubjectSchema
    amount: Decimal = Field(..., gt=0, decimal_places=2, description="Requested amount")
    loan: Optional[LoanContentSchema] = None
    withdrawal: Optional[WithdrawalContentSchema] = None

    @model_validator(mode="after")
    def content_matches_type(self):
        if self.request_type == RequestType.LOAN_APPLICATION and self.loan is None:
            raise ValueError("loan details are required for LOAN_APPLICATION")
        return self

    def to_content(self) -> RequestContent:
        if self.request_type == RequestType.LOAN_APPLICATION:
            return LoanContent(
                loan_type=self.loan.loan_type,
                tenure_months=self.loan.tenure_months,
                purpose=self.loan.purpose,
            )
        return WithdrawalContent(reason=self.withdrawal.reason if self.withdrawal else "")


class DecisionBody(BaseModel):
    """Request body for POST /v1/requests/{request_id}/decision"""

    decision: RequestStatus
    notes: Optional[str] = Field(None, max_length=1000)


class ApprovalStepSchema(BaseModel):
    level: int
    approver_role: str
    status: str
    approver_id: Optional[str] = None
    approved_at: Optional[datetime] = None
    notes: Optional[str] = None


class TransactionSchema(BaseModel):
    id: str
    transaction_type: str
    amount: Decimal
    balance_after: Decimal
    related_entity_type: str
    related_entity_id: str
    status: str
    created_at: Optional[datetime] = None


class ApprovalRequestResponse(BaseModel):
    """Read model of one approval request"""

    id: str
    request_type: RequestType
    status: RequestStatus
    next_approval_level: int
    subject: SubjectSchema
    member_id: str
    requested_amount: Decimal
    formatted_amount: str
    initiator_id: str
    content: dict
    steps: List[ApprovalStepSchema]
    current_approver_role: Optional[str] = None
    transaction: Optional[TransactionSchema] = None
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @classmethod
    def from_view(cls, view: ApprovalRequestView) -> "ApprovalRequestResponse":
        transaction = None
        if view.transaction is not None:
            txn = view.transaction
            transaction = TransactionSchema(
                id=txn.id,
                transaction_type=txn.transaction_type.value,
                amount=txn.amount,
                balance_after=txn.balance_after,
                related_entity_type=txn.related_entity_type,
                related_entity_id=txn.related_entity_id,
                status=txn.status,
                created_at=txn.created_at,
            )
        return cls(
            id=view.id,
            request_type=view.request_type,
            status=view.status,
            next_approval_level=view.next_approval_level,
            subject=SubjectSchema(kind=view.subject.kind, id=view.subject.id),
            member_id=view.member_id,
            requested_amount=view.requested_amount,
            formatted_amount=view.formatted_amount,
            initiator_id=view.initiator_id,
            content=content_to_dict(view.content),
            steps=[
                ApprovalStepSchema(
                    level=s.level,
                    approver_role=s.approver_role,
                    status=s.status.value,
                    approver_id=s.approver_id,
                    approved_at=s.approved_at,
                    notes=s.notes,
                )
                for s in view.steps
            ],
            current_approver_role=view.current_approver_role,
            transaction=transaction,
            created_at=view.created_at,
            completed_at=view.completed_at,
        )


class RequestPageResponse(BaseModel):
    """Response for GET /v1/requests"""

    items: List[ApprovalRequestResponse]
    total: int
    page: int
    page_size: int
    total_pages: int


class StatisticsResponse(BaseModel):
    """Response for GET /v1/requests/statistics"""

    total: int
    pending: int
    approved: int
    rejected: int
    completed_amount_sum: Decimal
    formatted_completed_amount_sum: str

    @classmethod
    def from_stats(cls, stats: RequestStatistics, formatted: str) -> "StatisticsResponse":
        return cls(
            total=stats.total,
            pending=stats.pending,
            approved=stats.approved,
            rejected=stats.rejected,
            completed_amount_sum=stats.completed_amount_sum,
            formatted_completed_amount_sum=formatted,
        )


class PendingCountResponse(BaseModel):
    count: int
