"""Unit tests for the notification webhook client retry policy"""

import asyncio
import httpx
import pytest
from unittest.mock import AsyncMock, patch
from coop_approvals.domain.exceptions import NotificationError
from coop_approvals.infrastructure.clients import notifications
from coop_approvals.infrastructure.clients.notifications import NotificationClient

# The autouse fixture in conftest patches send_event; tests here need the real one
REAL_SEND_EVENT = notifications.NotificationClient.send_event


def _response(status_code: int) -> httpx.Response:
    return httpx.Response(status_code, request=httpx.Request("POST", "http://notify.test/events"))


@pytest.fixture
def no_sleep():
    with patch("coop_approvals.infrastructure.clients.notifications.asyncio.sleep", new_callable=AsyncMock) as sleep:
        yield sleep


def test_retries_server_errors_then_succeeds(no_sleep: AsyncMock):
    client = NotificationClient(webhook_url="http://notify.test/events")
    post = AsyncMock(side_effect=[_response(503), _response(200)])

    with patch.object(httpx.AsyncClient, "post", post):
        asyncio.run(REAL_SEND_EVENT(client, {"event": "REQUEST_SUBMITTED"}))

    assert post.await_count == 2
    no_sleep.assert_awaited_once_with(client.backoff_base)


def test_raises_after_final_attempt(no_sleep: AsyncMock):
    client = NotificationClient(webhook_url="http://notify.test/events")
    client.max_retries = 3
    post = AsyncMock(side_effect=httpx.ConnectError("connection refused"))

    with patch.object(httpx.AsyncClient, "post", post):
        with pytest.raises(NotificationError):
            asyncio.run(REAL_SEND_EVENT(client, {"event": "REQUEST_COMPLETED"}))

    assert post.await_count == 3
    assert [c.args[0] for c in no_sleep.await_args_list] == [client.backoff_base, client.backoff_base * 2]
