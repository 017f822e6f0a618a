"""Eligibility rules - pure decisions gating request creation"""

from decimal import Decimal
from typing import Optional
from coop_approvals.domain.models import ActiveLoan, EligibilityResult, LedgerSnapshot, RequestType
from coop_approvals.domain.exceptions import (
    ActiveLoanBlocks,
    AmountExceedsCeiling,
    EligibilityError,
    InsufficientBalance,
    NoContributionHistory,
    PeriodLimitExceeded,
)
from coop_approvals.utils.currency import format_currency

PASS = EligibilityResult(passed=True)

_FAILURES = {
    ActiveLoanBlocks.code: ActiveLoanBlocks,
    PeriodLimitExceeded.code: PeriodLimitExceeded,
    AmountExceedsCeiling.code: AmountExceedsCeiling,
    InsufficientBalance.code: InsufficientBalance,
    NoContributionHistory.code: NoContributionHistory,
}


def _fail(error_cls: type, message: str) -> EligibilityResult:
    return EligibilityResult(passed=False, reason=error_cls.code, message=message)


def is_regular_loan(loan: ActiveLoan) -> bool:
    return "regular" in loan.loan_type.lower()


def has_no_blocking_active_loan(active_loan: Optional[ActiveLoan], request_type: RequestType) -> EligibilityResult:
    """
    Savings withdrawals are blocked while a regular loan still has a balance.

    Personal-savings withdrawals and loan applications are never blocked here.
    """
    if request_type != RequestType.SAVINGS_WITHDRAWAL:
        return PASS
    if active_loan is not None and is_regular_loan(active_loan) and active_loan.remaining_balance > 0:
        return _fail(ActiveLoanBlocks, "Cannot withdraw while you have unpaid regular loans")
    return PASS


def within_period_limit(request_type: RequestType, requests_this_year: int) -> EligibilityResult:
    """
    One regular savings withdrawal per calendar year.

    `requests_this_year` counts the member's PENDING, IN_REVIEW, APPROVED and
    COMPLETED savings withdrawals created since the start of the year.
    """
    if request_type != RequestType.SAVINGS_WITHDRAWAL:
        return PASS
    if requests_this_year > 0:
        return _fail(PeriodLimitExceeded, "You can only make one withdrawal request per year")
    return PASS


def within_amount_ceiling(
    snapshot: LedgerSnapshot,
    amount: Decimal,
    is_personal_savings: bool,
    ceiling_ratio: Decimal,
) -> EligibilityResult:
    """
    Cap the requested amount against the ledger entity.

    Rules:
    - Personal savings: up to 100% of current balance
    - Regular savings: up to `ceiling_ratio` of cumulative total savings, and
      never more than the cumulative total itself. The cap deliberately uses
      lifetime contributions, not the spendable balance.
    """
    if is_personal_savings:
        if amount > snapshot.current_balance:
            return _fail(
                InsufficientBalance,
                f"Insufficient balance for withdrawal. Available: {format_currency(snapshot.current_balance)}",
            )
        return PASS

    ceiling = snapshot.cumulative_total * ceiling_ratio
    if amount > ceiling:
        percent = (ceiling_ratio * 100).normalize()
        return _fail(
            AmountExceedsCeiling,
            f"Maximum withdrawal amount is {format_currency(ceiling)} ({percent:f}% of total savings)",
        )
    if amount > snapshot.cumulative_total:
        return _fail(
            InsufficientBalance,
            f"Withdrawal amount exceeds available balance of {format_currency(snapshot.current_balance)}",
        )
    return PASS


def has_contribution_history(contribution_count: int, minimum: int) -> EligibilityResult:
    """Loan applicants need at least `minimum` recorded savings contributions"""
    if contribution_count < minimum:
        return _fail(NoContributionHistory, "A savings contribution history is required before applying for a loan")
    return PASS


def raise_for_result(result: EligibilityResult) -> None:
    """Turn a failed check into its EligibilityError subclass"""
    if result.passed:
        return
    error_cls = _FAILURES.get(result.reason, EligibilityError)
    raise error_cls(result.message or "Request is not eligible")


def check_eligibility(
    request_type: RequestType,
    snapshot: LedgerSnapshot,
    amount: Decimal,
    active_loan: Optional[ActiveLoan],
    requests_this_year: int,
    contribution_count: int,
    ceiling_ratio: Decimal,
    min_contributions_for_loan: int,
) -> None:
    """
    Main entry point: run every check for the request type, raising on the first failure.

    Raises:
        EligibilityError subclass naming the failed rule
    """
    if request_type == RequestType.LOAN_APPLICATION:
        raise_for_result(has_contribution_history(contribution_count, min_contributions_for_loan))
        return

    raise_for_result(within_period_limit(request_type, requests_this_year))
    raise_for_result(has_no_blocking_active_loan(active_loan, request_type))
    raise_for_result(
        within_amount_ceiling(
            snapshot,
            amount,
            is_personal_savings=request_type == RequestType.PERSONAL_SAVINGS_WITHDRAWAL,
            ceiling_ratio=ceiling_ratio,
        )
    )
