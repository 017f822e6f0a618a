"""Dependency injection for FastAPI endpoints"""

from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session
from coop_approvals.domain.models import CurrentActor
from coop_approvals.infrastructure.clients.notifications import NotificationClient
from coop_approvals.infrastructure.database.session import get_db
from coop_approvals.services.approval_service import ApprovalService


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_current_actor(
    x_actor_id: str = Header(..., description="Authenticated actor id"),
    x_actor_role: str = Header("MEMBER", description="Role resolved by the auth layer"),
    x_actor_level: int = Header(0, description="Approval level resolved by the auth layer"),
) -> CurrentActor:
    """Actor identity as forwarded by the upstream auth/permission layer"""
    return CurrentActor(id=x_actor_id, role_name=x_actor_role.upper(), approval_level=x_actor_level)


def get_approval_service(db: Session = Depends(get_db)) -> ApprovalService:
    """Provide approval workflow service bound to the request's session"""
    return ApprovalService(db)


def get_notification_client() -> NotificationClient:
    """Provide notification webhook client instance"""
    return NotificationClient()
