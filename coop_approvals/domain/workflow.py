"""Approval chain definitions and the (status, level) transition table"""

from typing import Dict, FrozenSet, Tuple
from coop_approvals.domain.models import RequestStatus, RequestType, StepDefinition, StepStatus

# Every supported request type walks the same three-level chain
_STANDARD_CHAIN: Tuple[StepDefinition, ...] = (
    StepDefinition(level=1, approver_role="ADMIN", description="Initial review"),
    StepDefinition(level=2, approver_role="TREASURER", description="Financial verification"),
    StepDefinition(level=3, approver_role="CHAIRMAN", description="Final approval and disbursement"),
)

APPROVAL_CHAINS: Dict[RequestType, Tuple[StepDefinition, ...]] = {
    RequestType.LOAN_APPLICATION: _STANDARD_CHAIN,
    RequestType.SAVINGS_WITHDRAWAL: _STANDARD_CHAIN,
    RequestType.PERSONAL_SAVINGS_WITHDRAWAL: _STANDARD_CHAIN,
}

# Legal decisions keyed by (request status, level of the pending step).
# Any pair not listed has no legal transitions.
TRANSITIONS: Dict[Tuple[RequestStatus, int], FrozenSet[RequestStatus]] = {
    (RequestStatus.PENDING, 1): frozenset({RequestStatus.IN_REVIEW, RequestStatus.REJECTED}),
    (RequestStatus.IN_REVIEW, 2): frozenset({RequestStatus.APPROVED, RequestStatus.REJECTED}),
    (RequestStatus.APPROVED, 3): frozenset({RequestStatus.COMPLETED, RequestStatus.REJECTED}),
}

# Statuses that still await an approver
OPEN_STATUSES: FrozenSet[RequestStatus] = frozenset(
    {RequestStatus.PENDING, RequestStatus.IN_REVIEW, RequestStatus.APPROVED}
)

# Statuses that consume the once-per-year regular savings withdrawal
PERIOD_LIMITED_STATUSES: FrozenSet[RequestStatus] = OPEN_STATUSES | {RequestStatus.COMPLETED}

RESET_NOTE = "Reset for re-approval after rejection"


def chain_for(request_type: RequestType) -> Tuple[StepDefinition, ...]:
    """Fixed approval chain for a request type"""
    return APPROVAL_CHAINS[request_type]


def legal_decisions(status: RequestStatus, level: int) -> FrozenSet[RequestStatus]:
    """Decisions permitted for a request in `status` whose pending step is `level`"""
    return TRANSITIONS.get((status, level), frozenset())


def step_status_for(decision: RequestStatus) -> StepStatus:
    """A step only ever leaves PENDING as REJECTED or APPROVED"""
    return StepStatus.REJECTED if decision == RequestStatus.REJECTED else StepStatus.APPROVED


def next_level_after(decision: RequestStatus, current_level: int) -> int:
    """
    Level expected to act after `decision` is applied at `current_level`.

    - REJECTED pins the pointer back to 1 so a revived request restarts the chain
    - COMPLETED leaves the pointer at its terminal value
    - anything else advances by one
    """
    if decision == RequestStatus.REJECTED:
        return 1
    if decision == RequestStatus.COMPLETED:
        return current_level
    return current_level + 1


def requires_reset(status: RequestStatus, decision: RequestStatus) -> bool:
    """A rejected request receiving a non-rejecting decision is revived first"""
    return status == RequestStatus.REJECTED and decision != RequestStatus.REJECTED
