import asyncio
import time

import pytest
from fastapi.testclient import TestClient

from backend.app.auth.models import Role, Session
from backend.app.auth.sessions import RedisSessionStore
from backend.app.core.config import settings
from backend.app.main import app
from backend.app.routers.session_ws import warning_message

SESSION = Session(user_id="u-1", email="sam@example.com", role=Role.USER, is_verified=True)


@pytest.fixture
def short_idle(monkeypatch):
    monkeypatch.setattr(settings, "SESSION_IDLE_TIMEOUT_SECONDS", 0.6)
    monkeypatch.setattr(settings, "SESSION_WARNING_SECONDS", 0.3)


@pytest.fixture
def token(fake_redis, short_idle):
    sessions = RedisSessionStore(fake_redis)
    token = sessions.new_token()
    asyncio.run(sessions.save(token, SESSION))
    return token


def receive_until(ws, event):
    seen = []
    while True:
        msg = ws.receive_json()
        seen.append(msg)
        if msg["event"] == event:
            return seen


def test_warning_then_expiry(fake_redis, token):
    # No lifespan: the fake Redis client stays in place
    client = TestClient(app)

    with client.websocket_connect(f"/ws/session?token={token}") as ws:
        seen = receive_until(ws, "expired")

    events = [m["event"] for m in seen]
    assert events.index("warning") < events.index("expired")
    assert seen[-1]["message"] == "Session expired due to inactivity"
    warning = next(m for m in seen if m["event"] == "warning")
    assert warning["message"] == "Session will expire in 1 second due to inactivity"
    assert asyncio.run(fake_redis.get(f"session:{token}")) is None


def test_logout_over_socket(fake_redis, token):
    client = TestClient(app)

    with client.websocket_connect(f"/ws/session?token={token}") as ws:
        ws.send_json({"event": "logout"})
        seen = receive_until(ws, "logged_out")

    assert "expired" not in [m["event"] for m in seen]
    assert asyncio.run(fake_redis.get(f"session:{token}")) is None


def test_unknown_token_is_told_to_sign_in(fake_redis):
    client = TestClient(app)

    with client.websocket_connect("/ws/session?token=missing") as ws:
        msg = ws.receive_json()

    assert msg == {"event": "expired", "message": "Not authenticated"}


def test_http_activity_pushes_back_expiry(fake_redis, token):
    client = TestClient(app)
    headers = {"Authorization": f"Bearer {token}"}

    with client.websocket_connect(f"/ws/session?token={token}") as ws:
        time.sleep(0.45)
        response = client.post("/api/v1/auth/activity", headers=headers)
        assert response.status_code == 200
        touched_at = time.monotonic()
        seen = receive_until(ws, "expired")

    # A fresh 0.6s budget started at the request
    assert time.monotonic() - touched_at >= 0.5
    assert seen[-1]["message"] == "Session expired due to inactivity"


def test_activity_message_resets_clock(fake_redis, token):
    client = TestClient(app)

    with client.websocket_connect(f"/ws/session?token={token}") as ws:
        time.sleep(0.45)
        ws.send_json({"event": "activity"})
        sent_at = time.monotonic()
        seen = receive_until(ws, "expired")

    assert time.monotonic() - sent_at >= 0.5
    assert "warning" in [m["event"] for m in seen]


def test_http_logout_ends_the_stream(fake_redis, token):
    client = TestClient(app)

    with client.websocket_connect(f"/ws/session?token={token}") as ws:
        assert ws.receive_json()["event"] == "tick"
        response = client.post("/api/v1/auth/logout", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 204
        seen = receive_until(ws, "logged_out")

    assert "expired" not in [m["event"] for m in seen]
    assert asyncio.run(fake_redis.get(f"session:{token}")) is None


def test_redis_errors_close_with_expired(unreachable_redis):
    client = TestClient(app)

    with client.websocket_connect("/ws/session?token=any") as ws:
        msg = ws.receive_json()

    assert msg == {"event": "expired", "message": "Redis unavailable"}


@pytest.mark.parametrize(
    "seconds, text",
    [
        (120, "Session will expire in 2 minutes due to inactivity"),
        (60, "Session will expire in 1 minute due to inactivity"),
        (90, "Session will expire in 90 seconds due to inactivity"),
        (0.3, "Session will expire in 1 second due to inactivity"),
    ],
)
def test_warning_message_follows_window(seconds, text):
    assert warning_message(seconds) == text
