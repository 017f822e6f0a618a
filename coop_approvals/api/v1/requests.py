"""Approval request endpoints - creation, decisions, cancellation, and read models"""

import logging
from datetime import date
from typing import Any, Dict, Optional
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request

from coop_approvals.api.dependencies import (
    get_approval_service,
    get_current_actor,
    get_notification_client,
    get_request_id,
)
from coop_approvals.api.v1.schemas import (
    ApprovalRequestResponse,
    CreateRequestBody,
    DecisionBody,
    PendingCountResponse,
    RequestPageResponse,
    StatisticsResponse,
)
from coop_approvals.domain.exceptions import (
    DomainException,
    EligibilityError,
    NotificationError,
    RequestNotFound,
    SubjectNotFound,
    TransitionError,
    Unauthorized,
)
from coop_approvals.domain.models import CurrentActor, RequestStatus, RequestType, SubjectRef
from coop_approvals.infrastructure.clients.notifications import NotificationClient
from coop_approvals.services.approval_service import ApprovalService, notification_event
from coop_approvals.utils.currency import format_currency
from coop_approvals.utils.date_utils import start_of_day, start_of_next_day

router = APIRouter()


def to_http_exception(error: DomainException) -> HTTPException:
    """Map workflow errors onto HTTP status codes"""
    if isinstance(error, (RequestNotFound, SubjectNotFound)):
        status_code = 404
    elif isinstance(error, Unauthorized):
        status_code = 403
    elif isinstance(error, EligibilityError):
        status_code = 422
    elif isinstance(error, TransitionError):
        status_code = 409
    else:
        status_code = 400
    return HTTPException(status_code=status_code, detail={"code": error.code, "message": error.message})


async def dispatch_notification(client: NotificationClient, payload: Dict[str, Any]) -> None:
    """Fire-and-forget delivery; the workflow change is already committed"""
    try:
        await client.send_event(payload)
    except NotificationError as e:
        logging.warning(f"Notification not delivered: {e}", extra={"request_id": payload.get("request_id")})


@router.post("/requests", response_model=ApprovalRequestResponse, status_code=201)
def create_request(
    body: CreateRequestBody,
    background_tasks: BackgroundTasks,
    request: Request,
    actor: CurrentActor = Depends(get_current_actor),
    service: ApprovalService = Depends(get_approval_service),
    notifier: NotificationClient = Depends(get_notification_client),
):
    """
    Submit a loan application or withdrawal request.

    Eligibility is checked once, here; the request starts PENDING at level 1.
    """
    try:
        view = service.create_request(
            request_type=body.request_type,
            subject=SubjectRef(kind=body.subject.kind, id=body.subject.id),
            amount=body.amount,
            initiator_id=actor.id,
            content=body.to_content(),
        )
    except DomainException as e:
        logging.info(f"Request creation refused: {e}", extra={"request_id": get_request_id(request)})
        raise to_http_exception(e)

    background_tasks.add_task(dispatch_notification, notifier, notification_event(view, "REQUEST_SUBMITTED"))
    return ApprovalRequestResponse.from_view(view)


@router.get("/requests/statistics", response_model=StatisticsResponse)
def get_statistics(
    start_date: Optional[date] = Query(None, description="First day counted (UTC)"),
    end_date: Optional[date] = Query(None, description="Last day counted (UTC), included in full"),
    member_id: Optional[str] = Query(None),
    request_type: Optional[RequestType] = Query(None),
    service: ApprovalService = Depends(get_approval_service),
):
    stats = service.statistics(
        start=start_of_day(start_date) if start_date else None,
        end=start_of_next_day(end_date) if end_date else None,
        member_id=member_id,
        request_type=request_type,
    )
    return StatisticsResponse.from_stats(stats, format_currency(stats.completed_amount_sum))


@router.get("/requests/pending-count", response_model=PendingCountResponse)
def get_pending_count(
    role: Optional[str] = Query(None, description="Count requests awaiting this approver role"),
    mine: bool = Query(False, description="Only requests initiated by the caller"),
    actor: CurrentActor = Depends(get_current_actor),
    service: ApprovalService = Depends(get_approval_service),
):
    count = service.pending_count(role=role.upper() if role else None, initiator_id=actor.id if mine else None)
    return PendingCountResponse(count=count)


@router.get("/requests", response_model=RequestPageResponse)
def list_requests(
    request_type: Optional[RequestType] = Query(None),
    status: Optional[RequestStatus] = Query(None),
    member_id: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    page_size: Optional[int] = Query(None, ge=1),
    service: ApprovalService = Depends(get_approval_service),
):
    result = service.list_requests(
        request_type=request_type, status=status, member_id=member_id, page=page, page_size=page_size
    )
    return RequestPageResponse(
        items=[ApprovalRequestResponse.from_view(v) for v in result.items],
        total=result.total,
        page=result.page,
        page_size=result.page_size,
        total_pages=result.total_pages,
    )


@router.get("/requests/{request_id}", response_model=ApprovalRequestResponse)
def get_request(request_id: str, service: ApprovalService = Depends(get_approval_service)):
    try:
        view = service.get_request(request_id)
    except RequestNotFound as e:
        raise to_http_exception(e)
    return ApprovalRequestResponse.from_view(view)


@router.post("/requests/{request_id}/decision", response_model=ApprovalRequestResponse)
def apply_decision(
    request_id: str,
    body: DecisionBody,
    background_tasks: BackgroundTasks,
    actor: CurrentActor = Depends(get_current_actor),
    service: ApprovalService = Depends(get_approval_service),
    notifier: NotificationClient = Depends(get_notification_client),
):
    """
    Act on the step currently awaiting approval.

    Flow:
    1. Check the actor holds the role (and level) of that step
    2. Apply the decision atomically, settling funds on COMPLETED
    3. Schedule the lifecycle notification after commit
    """
    try:
        service.authorize(actor, request_id, body.decision)
        view = service.apply_decision(request_id, body.decision, actor.id, body.notes)
    except DomainException as e:
        raise to_http_exception(e)

    background_tasks.add_task(dispatch_notification, notifier, notification_event(view, f"REQUEST_{view.status.value}"))
    return ApprovalRequestResponse.from_view(view)


@router.post("/requests/{request_id}/cancel", response_model=ApprovalRequestResponse)
def cancel_request(
    request_id: str,
    background_tasks: BackgroundTasks,
    actor: CurrentActor = Depends(get_current_actor),
    service: ApprovalService = Depends(get_approval_service),
    notifier: NotificationClient = Depends(get_notification_client),
):
    try:
        view = service.cancel_request(request_id, actor.id)
    except DomainException as e:
        raise to_http_exception(e)

    background_tasks.add_task(dispatch_notification, notifier, notification_event(view, "REQUEST_CANCELLED"))
    return ApprovalRequestResponse.from_view(view)
