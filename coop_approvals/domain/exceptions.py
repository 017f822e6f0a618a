"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    code = "DOMAIN_ERROR"

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        self.context = context


class RequestNotFound(DomainException):
    """No approval request with the given id"""

    code = "REQUEST_NOT_FOUND"


# Creation-time failures: the request is never created


class EligibilityError(DomainException):
    """A creation-time eligibility check failed"""

    code = "ELIGIBILITY_FAILED"

    @property
    def reason(self) -> str:
        return self.code


class ActiveLoanBlocks(EligibilityError):
    code = "ACTIVE_LOAN_BLOCKS"


class PeriodLimitExceeded(EligibilityError):
    code = "PERIOD_LIMIT_EXCEEDED"


class AmountExceedsCeiling(EligibilityError):
    code = "AMOUNT_EXCEEDS_CEILING"


class InsufficientBalance(EligibilityError):
    code = "INSUFFICIENT_BALANCE"


class SubjectNotFound(EligibilityError):
    code = "SUBJECT_NOT_FOUND"


class NoContributionHistory(EligibilityError):
    code = "NO_CONTRIBUTION_HISTORY"


class InvalidRequestContent(EligibilityError):
    code = "INVALID_REQUEST_CONTENT"


# Decision-time failures: the request stays in its last committed state


class TransitionError(DomainException):
    """A decision could not be applied"""

    code = "TRANSITION_FAILED"


class NoPendingStep(TransitionError):
    code = "NO_PENDING_STEP"


class LevelInconsistency(TransitionError):
    """next_approval_level disagrees with the pending step (bug or tampering)"""

    code = "LEVEL_INCONSISTENCY"


class IllegalTransition(TransitionError):
    code = "ILLEGAL_TRANSITION"


class Unauthorized(TransitionError):
    code = "UNAUTHORIZED"


class InvalidSubjectConfiguration(TransitionError):
    """Both or neither ledger references are set (bug or tampering)"""

    code = "INVALID_SUBJECT_CONFIGURATION"


class InsufficientFundsAtCompletion(TransitionError):
    """Balance drifted below the requested amount between creation and completion"""

    code = "INSUFFICIENT_BALANCE"


CONSISTENCY_VIOLATIONS = (LevelInconsistency, InvalidSubjectConfiguration)


class NotificationError(DomainException):
    """Notification webhook could not be delivered"""

    code = "NOTIFICATION_FAILED"
