import asyncio
import json
import logging
import math

from fastapi import APIRouter, WebSocket

from backend.app.auth.idle import IdleSessionGuard
from backend.app.auth.sessions import SESSION_EXPIRED_MESSAGE, RedisSessionStore
from backend.app.core import redis_client as redis_module
from backend.app.core.errors import AuthenticationFailed, BackendUnavailable

logger = logging.getLogger(__name__)

router = APIRouter()

TICK_SECONDS = 1.0


def warning_message(warning_before: float) -> str:
    if warning_before >= 60 and warning_before % 60 == 0:
        amount, unit = int(warning_before // 60), "minute"
    else:
        amount, unit = max(1, math.ceil(warning_before)), "second"
    return f"Session will expire in {amount} {unit}{'' if amount == 1 else 's'} due to inactivity"


@router.websocket("/ws/session")
async def session_stream(websocket: WebSocket, token: str) -> None:
    """Idle-timeout channel for a signed-in client.

    The client sends ``{"event": "activity"}`` on pointer/key/scroll/touch
    input and ``{"event": "logout"}`` to sign out. The server pushes
    ``tick`` every second plus ``warning``, ``expired`` and ``logged_out``.

    Activity recorded over HTTP and HTTP logouts land in Redis, not on this
    socket, so the local timers are re-synced from the store every tick and
    before any warning or expiry is delivered.
    """
    await websocket.accept()

    try:
        sessions = RedisSessionStore(redis_module.require_redis())
        state = await sessions.resolve(token, touch=False)
        # Reconnects resume from the persisted activity time, not a fresh budget
        last_activity = await sessions.last_activity(token)
    except (AuthenticationFailed, BackendUnavailable) as exc:
        await websocket.send_text(json.dumps({"event": "expired", "message": exc.message}))
        await websocket.close(code=4401)
        return

    warning_text = warning_message(sessions.policy.warning_before)

    # Timer callbacks are synchronous; they hand events to the sender through this queue
    outbox: asyncio.Queue[dict] = asyncio.Queue()
    guard = IdleSessionGuard(
        sessions.policy,
        on_warning=lambda remaining: outbox.put_nowait(
            {"event": "warning", "remaining": int(remaining), "message": warning_text}
        ),
        on_expire=lambda: outbox.put_nowait({"event": "expired", "message": SESSION_EXPIRED_MESSAGE}),
    )
    guard.start(last_activity=last_activity)

    async def sync_with_store() -> bool:
        """Pull activity recorded elsewhere into the guard. False once the session is gone."""
        if await sessions.load(token) is None:
            guard.stop()
            return False
        stored = await sessions.last_activity(token)
        if stored is not None and guard.last_activity is not None and stored > guard.last_activity:
            if not sessions.policy.is_expired(sessions.policy.remaining(stored, guard.clock())):
                guard.start(last_activity=stored)
        return True

    async def pump_client_events():
        while True:
            raw = await websocket.receive_text()
            try:
                msg = json.loads(raw)
            except ValueError:
                continue
            event = msg.get("event")
            if event == "activity":
                guard.activity()
                await sessions.touch(token)
            elif event == "logout":
                guard.stop()
                await sessions.clear(token)
                logger.info("Session for %s logged out", state.session.email)
                await outbox.put({"event": "logged_out"})

    async def pump_ticks():
        # Runs until cancelled; pump_outbox owns closing the socket
        while True:
            if guard.running:
                if not await sync_with_store():
                    logger.info("Session for %s ended elsewhere", state.session.email)
                    await outbox.put({"event": "logged_out"})
                    continue
                await outbox.put({"event": "tick", "remaining": int(guard.remaining), "warning": guard.warning})
            await asyncio.sleep(TICK_SECONDS)

    async def pump_outbox():
        while True:
            msg = await outbox.get()
            if msg["event"] in ("warning", "expired"):
                if not await sync_with_store():
                    msg = {"event": "logged_out"}
                elif guard.running and (msg["event"] == "expired" or not guard.warning):
                    # Superseded by activity seen in the store; the guard has rescheduled
                    continue
            if msg["event"] == "expired":
                await sessions.clear(token)
            await websocket.send_text(json.dumps(msg))
            if msg["event"] in ("expired", "logged_out"):
                await websocket.close()
                return

    tasks = [
        asyncio.create_task(pump_client_events()),
        asyncio.create_task(pump_ticks()),
        asyncio.create_task(pump_outbox()),
    ]
    try:
        # A client disconnect surfaces as WebSocketDisconnect inside pump_client_events
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            if not task.cancelled() and isinstance(task.exception(), BackendUnavailable):
                logger.warning("Closing session socket: %s", task.exception())
                await websocket.close(code=1011)
                break
    finally:
        guard.stop()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
