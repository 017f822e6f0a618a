"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Generic, List, Optional, TypeVar, Union


class RequestType(str, Enum):
    """Kinds of monetary request that move through the approval chain"""

    LOAN_APPLICATION = "LOAN_APPLICATION"
    SAVINGS_WITHDRAWAL = "SAVINGS_WITHDRAWAL"
    PERSONAL_SAVINGS_WITHDRAWAL = "PERSONAL_SAVINGS_WITHDRAWAL"


class RequestStatus(str, Enum):
    """Overall request lifecycle state"""

    PENDING = "PENDING"
    IN_REVIEW = "IN_REVIEW"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class StepStatus(str, Enum):
    """State of a single approval level"""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class SubjectKind(str, Enum):
    """Ledger entity a request mutates"""

    SAVINGS = "SAVINGS"
    PERSONAL_SAVINGS = "PERSONAL_SAVINGS"


class TransactionType(str, Enum):
    SAVINGS_WITHDRAWAL = "SAVINGS_WITHDRAWAL"
    PERSONAL_SAVINGS_WITHDRAWAL = "PERSONAL_SAVINGS_WITHDRAWAL"
    LOAN_DISBURSEMENT = "LOAN_DISBURSEMENT"


@dataclass(frozen=True)
class SubjectRef:
    """Weak (kind, id) reference to a savings record or personal-savings plan"""

    kind: SubjectKind
    id: str


@dataclass(frozen=True)
class CurrentActor:
    """Actor as resolved by the external auth layer"""

    id: str
    role_name: str
    approval_level: int


@dataclass(frozen=True)
class LoanContent:
    """Payload of a LOAN_APPLICATION request"""

    loan_type: str
    tenure_months: int
    purpose: str = ""


@dataclass(frozen=True)
class WithdrawalContent:
    """Payload of a savings or personal-savings withdrawal request"""

    reason: str = ""


RequestContent = Union[LoanContent, WithdrawalContent]


@dataclass(frozen=True)
class StepDefinition:
    """One level of a fixed approval chain"""

    level: int
    approver_role: str
    description: str


@dataclass
class LedgerSnapshot:
    """Balances of a ledger entity as read at creation time"""

    subject: SubjectRef
    member_id: str
    current_balance: Decimal
    cumulative_total: Decimal


@dataclass
class ActiveLoan:
    """Outstanding loan as reported by the loan collaborator"""

    loan_id: str
    loan_type: str
    remaining_balance: Decimal


@dataclass
class EligibilityResult:
    """Outcome of one eligibility check; reason/message only set on failure"""

    passed: bool
    reason: Optional[str] = None
    message: Optional[str] = None


@dataclass
class ApprovalStepView:
    level: int
    approver_role: str
    status: StepStatus
    approver_id: Optional[str]
    approved_at: Optional[datetime]
    notes: Optional[str]


@dataclass
class TransactionView:
    id: str
    transaction_type: TransactionType
    amount: Decimal
    balance_after: Decimal
    related_entity_type: str
    related_entity_id: str
    status: str
    created_at: Optional[datetime]


@dataclass
class ApprovalRequestView:
    """Read model returned to collaborators"""

    id: str
    request_type: RequestType
    status: RequestStatus
    next_approval_level: int
    subject: SubjectRef
    member_id: str
    requested_amount: Decimal
    formatted_amount: str
    initiator_id: str
    content: RequestContent
    steps: List[ApprovalStepView]
    current_approver_role: Optional[str]
    transaction: Optional[TransactionView]
    created_at: Optional[datetime]
    completed_at: Optional[datetime]


T = TypeVar("T")


@dataclass
class Page(Generic[T]):
    items: List[T]
    total: int
    page: int
    page_size: int

    @property
    def total_pages(self) -> int:
        return (self.total + self.page_size - 1) // self.page_size if self.page_size else 0


@dataclass
class RequestStatistics:
    """Aggregate counts over a date range"""

    total: int
    pending: int
    approved: int
    rejected: int
    completed_amount_sum: Decimal = field(default_factory=lambda: Decimal("0"))
