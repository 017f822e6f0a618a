"""Integration tests for API endpoints"""

import pytest
from decimal import Decimal
from datetime import timedelta
from unittest.mock import AsyncMock
from fastapi.testclient import TestClient
from coop_approvals.infrastructure.database.models import PersonalSavingsPlan, SavingsRecord
from coop_approvals.utils.date_utils import utcnow

MEMBER = {"X-Actor-Id": "member_1", "X-Actor-Role": "MEMBER"}
ADMIN = {"X-Actor-Id": "admin_1", "X-Actor-Role": "ADMIN", "X-Actor-Level": "1"}
TREASURER = {"X-Actor-Id": "treasurer_1", "X-Actor-Role": "TREASURER", "X-Actor-Level": "2"}
CHAIRMAN = {"X-Actor-Id": "chairman_1", "X-Actor-Role": "CHAIRMAN", "X-Actor-Level": "3"}


def create_withdrawal(client: TestClient, savings_id: str, amount: str = "10000.00"):
    return client.post(
        "/v1/requests",
        json={
            "request_type": "SAVINGS_WITHDRAWAL",
            "subject": {"kind": "SAVINGS", "id": savings_id},
            "amount": amount,
            "withdrawal": {"reason": "Rent"},
        },
        headers=MEMBER,
    )


def decide(client: TestClient, request_id: str, decision: str, headers: dict, notes: str | None = None):
    return client.post(
        f"/v1/requests/{request_id}/decision",
        json={"decision": decision, "notes": notes},
        headers=headers,
    )


def test_health_endpoint(client: TestClient):
    """Test health check endpoint"""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_metrics_endpoint(client: TestClient):
    """Test Prometheus metrics endpoint"""
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "coop_transition_total" in response.text


def test_full_withdrawal_flow(client: TestClient, savings: SavingsRecord, mock_notifications: AsyncMock):
    """Test create then three approvals settle the withdrawal"""
    response = create_withdrawal(client, savings.id)
    assert response.status_code == 201
    data = response.json()
    request_id = data["id"]
    assert data["status"] == "PENDING"
    assert data["current_approver_role"] == "ADMIN"
    assert data["formatted_amount"] == "₦10,000.00"
    assert data["content"] == {"reason": "Rent"}
    assert response.headers["X-Request-ID"]

    assert decide(client, request_id, "IN_REVIEW", ADMIN, "Looks fine").status_code == 200
    assert decide(client, request_id, "APPROVED", TREASURER).status_code == 200
    response = decide(client, request_id, "COMPLETED", CHAIRMAN)

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "COMPLETED"
    assert data["steps"][0]["notes"] == "Looks fine"
    assert Decimal(data["transaction"]["amount"]) == Decimal("-10000.00")
    assert Decimal(data["transaction"]["balance_after"]) == Decimal("10000.00")

    events = [c.args[0]["event"] for c in mock_notifications.await_args_list]
    assert events == ["REQUEST_SUBMITTED", "REQUEST_IN_REVIEW", "REQUEST_APPROVED", "REQUEST_COMPLETED"]


def test_create_over_ceiling_returns_422(client: TestClient, savings: SavingsRecord):
    response = create_withdrawal(client, savings.id, amount="17000.00")

    assert response.status_code == 422
    detail = response.json()["detail"]
    assert detail["code"] == "AMOUNT_EXCEEDS_CEILING"
    assert "₦16,000.00" in detail["message"]


def test_create_for_unknown_subject_returns_404(client: TestClient, savings: SavingsRecord):
    response = create_withdrawal(client, "00000000-0000-0000-0000-000000000000")
    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "SUBJECT_NOT_FOUND"


def test_create_requires_actor_header(client: TestClient, savings: SavingsRecord):
    response = client.post(
        "/v1/requests",
        json={"request_type": "SAVINGS_WITHDRAWAL", "subject": {"kind": "SAVINGS", "id": savings.id}, "amount": "10"},
    )
    assert response.status_code == 422


def test_loan_requires_loan_details(client: TestClient, savings: SavingsRecord):
    response = client.post(
        "/v1/requests",
        json={"request_type": "LOAN_APPLICATION", "subject": {"kind": "SAVINGS", "id": savings.id}, "amount": "10"},
        headers=MEMBER,
    )
    assert response.status_code == 422


def test_wrong_role_is_forbidden(client: TestClient, savings: SavingsRecord):
    request_id = create_withdrawal(client, savings.id).json()["id"]

    response = decide(client, request_id, "IN_REVIEW", TREASURER)

    assert response.status_code == 403
    assert response.json()["detail"]["code"] == "UNAUTHORIZED"
    assert client.get(f"/v1/requests/{request_id}").json()["status"] == "PENDING"


def test_illegal_transition_returns_409(client: TestClient, savings: SavingsRecord):
    request_id = create_withdrawal(client, savings.id).json()["id"]
    decide(client, request_id, "IN_REVIEW", ADMIN)

    # Treasurer holds level 2 but COMPLETED is not a level-2 decision
    response = decide(client, request_id, "COMPLETED", TREASURER)

    assert response.status_code == 409
    assert response.json()["detail"]["code"] == "ILLEGAL_TRANSITION"


def test_second_completion_returns_409(client: TestClient, savings: SavingsRecord):
    request_id = create_withdrawal(client, savings.id).json()["id"]
    decide(client, request_id, "IN_REVIEW", ADMIN)
    decide(client, request_id, "APPROVED", TREASURER)
    decide(client, request_id, "COMPLETED", CHAIRMAN)

    response = decide(client, request_id, "COMPLETED", CHAIRMAN)

    assert response.status_code == 409
    assert response.json()["detail"]["code"] == "NO_PENDING_STEP"


def test_reject_and_retry_over_http(client: TestClient, savings: SavingsRecord):
    request_id = create_withdrawal(client, savings.id).json()["id"]
    decide(client, request_id, "IN_REVIEW", ADMIN)
    rejected = decide(client, request_id, "REJECTED", TREASURER, "Need bank statement")
    assert rejected.json()["status"] == "REJECTED"

    # Retry restarts at level 1, so the admin must act again
    response = decide(client, request_id, "IN_REVIEW", ADMIN)

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "IN_REVIEW"
    assert data["next_approval_level"] == 2


def test_cancel_endpoint(client: TestClient, savings: SavingsRecord):
    request_id = create_withdrawal(client, savings.id).json()["id"]

    forbidden = client.post(f"/v1/requests/{request_id}/cancel", headers=ADMIN)
    assert forbidden.status_code == 403

    response = client.post(f"/v1/requests/{request_id}/cancel", headers=MEMBER)
    assert response.status_code == 200
    assert response.json()["status"] == "CANCELLED"


def test_get_request_not_found(client: TestClient):
    """Test GET /v1/requests/{id} with invalid ID"""
    fake_uuid = "00000000-0000-0000-0000-000000000000"
    response = client.get(f"/v1/requests/{fake_uuid}")
    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "REQUEST_NOT_FOUND"


def test_list_statistics_and_pending_count(
    client: TestClient, savings: SavingsRecord, personal_plan: PersonalSavingsPlan
):
    withdrawal_id = create_withdrawal(client, savings.id).json()["id"]
    decide(client, withdrawal_id, "IN_REVIEW", ADMIN)
    for amount in ("1000.00", "2000.00"):
        client.post(
            "/v1/requests",
            json={
                "request_type": "PERSONAL_SAVINGS_WITHDRAWAL",
                "subject": {"kind": "PERSONAL_SAVINGS", "id": personal_plan.id},
                "amount": amount,
            },
            headers=MEMBER,
        )

    page = client.get("/v1/requests", params={"request_type": "PERSONAL_SAVINGS_WITHDRAWAL", "page_size": 1})
    assert page.status_code == 200
    data = page.json()
    assert data["total"] == 2
    assert data["total_pages"] == 2
    assert len(data["items"]) == 1

    stats = client.get("/v1/requests/statistics").json()
    assert stats["total"] == 3
    assert stats["pending"] == 3
    assert stats["formatted_completed_amount_sum"] == "₦0.00"

    admin_queue = client.get("/v1/requests/pending-count", params={"role": "admin"}, headers=ADMIN)
    assert admin_queue.json()["count"] == 2
    mine = client.get("/v1/requests/pending-count", params={"mine": True}, headers=MEMBER)
    assert mine.json()["count"] == 3


def test_acting_on_completed_request_returns_409_for_any_role(client: TestClient, savings: SavingsRecord):
    request_id = create_withdrawal(client, savings.id).json()["id"]
    decide(client, request_id, "IN_REVIEW", ADMIN)
    decide(client, request_id, "APPROVED", TREASURER)
    decide(client, request_id, "COMPLETED", CHAIRMAN)

    response = decide(client, request_id, "APPROVED", TREASURER)

    assert response.status_code == 409
    assert response.json()["detail"]["code"] == "NO_PENDING_STEP"


def test_statistics_end_date_includes_whole_day(client: TestClient, savings: SavingsRecord):
    create_withdrawal(client, savings.id)
    today = utcnow().date()

    same_day = client.get(
        "/v1/requests/statistics",
        params={"start_date": today.isoformat(), "end_date": today.isoformat()},
    )
    assert same_day.status_code == 200
    assert same_day.json()["total"] == 1

    before = client.get("/v1/requests/statistics", params={"end_date": (today - timedelta(days=1)).isoformat()})
    assert before.json()["total"] == 0
