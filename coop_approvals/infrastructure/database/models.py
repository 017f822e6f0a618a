"""SQLAlchemy ORM models for approval requests and the ledger entities they mutate"""

import uuid
from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import declarative_base, relationship
from coop_approvals.utils.date_utils import utcnow

Base = declarative_base()

Money = Numeric(15, 2)


def new_id() -> str:
    return str(uuid.uuid4())


class ApprovalRequestRecord(Base):
    """One workflow instance moving a monetary action through the approval chain"""

    __tablename__ = "approval_request"

    id = Column(String(36), primary_key=True, default=new_id)
    request_type = Column(Text, nullable=False, index=True)
    status = Column(Text, nullable=False, default="PENDING", index=True)
    next_approval_level = Column(Integer, nullable=False, default=1)
    member_id = Column(Text, nullable=False, index=True)
    # Exactly one of these is set
    savings_id = Column(String(36), nullable=True)
    personal_savings_id = Column(String(36), nullable=True)
    requested_amount = Column(Money, nullable=False)
    initiator_id = Column(Text, nullable=False, index=True)
    content = Column(JSON, nullable=False, default=dict)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    steps = relationship(
        "ApprovalStepRecord",
        back_populates="request",
        cascade="all, delete-orphan",
        order_by="ApprovalStepRecord.level",
    )
    transaction = relationship("LedgerTransaction", back_populates="request", uselist=False)


class ApprovalStepRecord(Base):
    """Role-gated checkpoint at one level of a request"""

    __tablename__ = "approval_step"
    __table_args__ = (UniqueConstraint("request_id", "level", name="uq_approval_step_request_level"),)

    id = Column(String(36), primary_key=True, default=new_id)
    request_id = Column(String(36), ForeignKey("approval_request.id", ondelete="CASCADE"), nullable=False)
    level = Column(Integer, nullable=False)
    approver_role = Column(Text, nullable=False)
    status = Column(Text, nullable=False, default="PENDING")
    approver_id = Column(Text, nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    notes = Column(Text, nullable=True)

    request = relationship("ApprovalRequestRecord", back_populates="steps")


class SavingsRecord(Base):
    """Regular savings account of a member"""

    __tablename__ = "savings_record"

    id = Column(String(36), primary_key=True, default=new_id)
    member_id = Column(Text, nullable=False, index=True)
    balance = Column(Money, nullable=False, default=0)
    # Lifetime contributions, the basis of the withdrawal ceiling
    total_savings_amount = Column(Money, nullable=False, default=0)
    status = Column(Text, nullable=False, default="ACTIVE")
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)


class PersonalSavingsPlan(Base):
    """Voluntary savings plan, withdrawable up to its full balance"""

    __tablename__ = "personal_savings_plan"

    id = Column(String(36), primary_key=True, default=new_id)
    member_id = Column(Text, nullable=False, index=True)
    plan_name = Column(Text, nullable=True)
    current_balance = Column(Money, nullable=False, default=0)
    status = Column(Text, nullable=False, default="ACTIVE")
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)


class SavingsContribution(Base):
    """Monthly contribution history, owned by the savings module"""

    __tablename__ = "savings_contribution"

    id = Column(String(36), primary_key=True, default=new_id)
    member_id = Column(Text, nullable=False, index=True)
    amount = Column(Money, nullable=False)
    contributed_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class MemberLoan(Base):
    """Loan owned by the loan module; created here when a loan application completes"""

    __tablename__ = "member_loan"

    id = Column(String(36), primary_key=True, default=new_id)
    member_id = Column(Text, nullable=False, index=True)
    loan_type = Column(Text, nullable=False)
    principal = Column(Money, nullable=False)
    remaining_balance = Column(Money, nullable=False)
    tenure_months = Column(Integer, nullable=True)
    status = Column(Text, nullable=False, default="ACTIVE")
    request_id = Column(String(36), ForeignKey("approval_request.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class LedgerTransaction(Base):
    """Immutable settlement record; at most one per approval request"""

    __tablename__ = "ledger_transaction"

    id = Column(String(36), primary_key=True, default=new_id)
    request_id = Column(String(36), ForeignKey("approval_request.id"), nullable=False, unique=True)
    transaction_type = Column(Text, nullable=False)
    amount = Column(Money, nullable=False)  # Negative for debits
    balance_after = Column(Money, nullable=False)
    related_entity_type = Column(Text, nullable=False)
    related_entity_id = Column(String(36), nullable=False)
    initiated_by = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    status = Column(Text, nullable=False, default="COMPLETED")
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    request = relationship("ApprovalRequestRecord", back_populates="transaction")


class ImmutableRecordError(Exception):
    """Attempt to modify or remove a write-once ledger row"""


@event.listens_for(LedgerTransaction, "before_update")
def _block_transaction_update(mapper, connection, target):
    raise ImmutableRecordError(f"Ledger transaction {target.id} is write-once")


@event.listens_for(LedgerTransaction, "before_delete")
def _block_transaction_delete(mapper, connection, target):
    raise ImmutableRecordError(f"Ledger transaction {target.id} cannot be deleted")
