"""Settlement of completed requests: balance mutation plus one immutable transaction"""

import logging
from decimal import Decimal
from sqlalchemy.orm import Session
from coop_approvals.domain.content import content_from_dict
from coop_approvals.domain.exceptions import InsufficientFundsAtCompletion, InvalidSubjectConfiguration
from coop_approvals.domain.models import RequestType, SubjectKind, TransactionType
from coop_approvals.infrastructure.database.models import ApprovalRequestRecord, LedgerTransaction
from coop_approvals.infrastructure.database.repositories import LedgerRepository, LoanRepository, TransactionRepository
from coop_approvals.utils.currency import format_currency

logger = logging.getLogger(__name__)

_EXPECTED_SUBJECT = {
    RequestType.SAVINGS_WITHDRAWAL: SubjectKind.SAVINGS,
    RequestType.PERSONAL_SAVINGS_WITHDRAWAL: SubjectKind.PERSONAL_SAVINGS,
    RequestType.LOAN_APPLICATION: SubjectKind.SAVINGS,
}


def resolve_subject_kind(request: ApprovalRequestRecord) -> SubjectKind:
    """
    Which ledger entity the request points at.

    Raises:
        InvalidSubjectConfiguration: both or neither references set, or the
            populated one does not match the request type
    """
    has_savings = request.savings_id is not None
    has_plan = request.personal_savings_id is not None
    if has_savings == has_plan:
        raise InvalidSubjectConfiguration(
            "Request must reference exactly one of a savings record or a personal-savings plan",
            request_id=request.id,
        )
    kind = SubjectKind.SAVINGS if has_savings else SubjectKind.PERSONAL_SAVINGS
    if _EXPECTED_SUBJECT[RequestType(request.request_type)] != kind:
        raise InvalidSubjectConfiguration(
            f"{request.request_type} cannot settle against a {kind.value} entity",
            request_id=request.id,
        )
    return kind


class LedgerWriter:
    """
    Applies the financial effect of a COMPLETED transition.

    Runs inside the caller's unit of work and never commits; any exception
    raised here must abort the enclosing transition.
    """

    def __init__(self, db: Session):
        self.db = db
        self.ledgers = LedgerRepository(db)
        self.loans = LoanRepository(db)
        self.transactions = TransactionRepository(db)

    def complete(self, request: ApprovalRequestRecord, actor_id: str) -> LedgerTransaction:
        kind = resolve_subject_kind(request)
        if RequestType(request.request_type) == RequestType.LOAN_APPLICATION:
            return self._disburse_loan(request, actor_id)
        return self._debit_withdrawal(request, kind, actor_id)

    def _debit_withdrawal(self, request: ApprovalRequestRecord, kind: SubjectKind, actor_id: str) -> LedgerTransaction:
        amount = Decimal(request.requested_amount)
        content = content_from_dict(RequestType(request.request_type), request.content)

        if kind == SubjectKind.SAVINGS:
            entity = self.ledgers.get_savings(request.savings_id, for_update=True)
        else:
            entity = self.ledgers.get_personal_plan(request.personal_savings_id, for_update=True)
        if entity is None:
            raise InvalidSubjectConfiguration(
                f"{kind.value} entity referenced by request no longer exists",
                request_id=request.id,
            )

        balance = Decimal(entity.balance if kind == SubjectKind.SAVINGS else entity.current_balance)
        # Hard guard against drift since the creation-time checks
        if balance < amount:
            raise InsufficientFundsAtCompletion(
                f"Insufficient balance. Available: {format_currency(balance)}",
                request_id=request.id,
            )

        balance_after = balance - amount
        if kind == SubjectKind.SAVINGS:
            entity.balance = balance_after
            # Cumulative total is the withdrawal-limit basis, so it shrinks too
            entity.total_savings_amount = Decimal(entity.total_savings_amount) - amount
            transaction_type = TransactionType.SAVINGS_WITHDRAWAL
        else:
            entity.current_balance = balance_after
            transaction_type = TransactionType.PERSONAL_SAVINGS_WITHDRAWAL

        logger.debug(
            "Creating withdrawal transaction",
            extra={"request_id": request.id, "entity_id": entity.id, "amount": str(amount)},
        )
        return self.transactions.create_transaction(
            request=request,
            transaction_type=transaction_type.value,
            amount=-amount,
            balance_after=balance_after,
            related_entity_type=kind.value,
            related_entity_id=entity.id,
            initiated_by=actor_id,
            description=f"Withdrawal: {getattr(content, 'reason', '') or 'No reason provided'}",
        )

    def _disburse_loan(self, request: ApprovalRequestRecord, actor_id: str) -> LedgerTransaction:
        amount = Decimal(request.requested_amount)
        content = content_from_dict(RequestType.LOAN_APPLICATION, request.content)

        loan = self.loans.create_loan(
            member_id=request.member_id,
            loan_type=content.loan_type,
            principal=amount,
            tenure_months=content.tenure_months,
            request_id=request.id,
        )
        return self.transactions.create_transaction(
            request=request,
            transaction_type=TransactionType.LOAN_DISBURSEMENT.value,
            amount=amount,
            balance_after=amount,
            related_entity_type="LOAN",
            related_entity_id=loan.id,
            initiated_by=actor_id,
            description=f"{content.loan_type} loan disbursement",
        )
