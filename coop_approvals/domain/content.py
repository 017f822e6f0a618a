"""Conversion between request content payloads and their JSON form"""

from dataclasses import asdict
from typing import Any, Dict
from coop_approvals.domain.models import LoanContent, RequestContent, RequestType, WithdrawalContent
from coop_approvals.domain.exceptions import InvalidRequestContent

_CONTENT_TYPES = {
    RequestType.LOAN_APPLICATION: LoanContent,
    RequestType.SAVINGS_WITHDRAWAL: WithdrawalContent,
    RequestType.PERSONAL_SAVINGS_WITHDRAWAL: WithdrawalContent,
}


def content_type_for(request_type: RequestType) -> type:
    return _CONTENT_TYPES[request_type]


def check_content(request_type: RequestType, content: RequestContent) -> None:
    """Raise InvalidRequestContent when the payload does not belong to the request type"""
    expected = content_type_for(request_type)
    if not isinstance(content, expected):
        raise InvalidRequestContent(
            f"{request_type.value} requires {expected.__name__}, got {type(content).__name__}"
        )
    if isinstance(content, LoanContent):
        if not content.loan_type:
            raise InvalidRequestContent("Loan type is required")
        if content.tenure_months <= 0:
            raise InvalidRequestContent("Loan tenure must be at least one month")


def content_to_dict(content: RequestContent) -> Dict[str, Any]:
    return asdict(content)


def content_from_dict(request_type: RequestType, data: Dict[str, Any] | None) -> RequestContent:
    """Rebuild the typed payload stored alongside a request"""
    content_cls = content_type_for(request_type)
    try:
        return content_cls(**(data or {}))
    except TypeError as e:
        raise InvalidRequestContent(f"Malformed {request_type.value} content: {e}") from e
