# File: app/routers/events.py
import asyncio
import logging

from fastapi import APIRouter, HTTPException, WebSocket, WebSocketDisconnect, status
from starlette.concurrency import run_in_threadpool

from app.core.security import user_from_token
from app.db.session import SessionLocal
from app.models.issue import Issue
from app.services import policy
from app.services.actors import Actor, HighAdminActor, actor_from_user
from app.services.events import EventName, PublishedEvent, hub

logger = logging.getLogger(__name__)

router = APIRouter(tags=["events"])


def _authenticate(token: str) -> Actor:
    db = SessionLocal()
    try:
        return actor_from_user(user_from_token(db, token))
    finally:
        db.close()


def visible_to(event: PublishedEvent, actor: Actor) -> bool:
    """Issue events follow the same view rule as GET /issues/{id}."""
    if event.name == EventName.notification_created.value or isinstance(actor, HighAdminActor):
        return True
    data = event.payload
    snapshot = Issue(
        id=data.get("id"),
        zone=data.get("zone"),
        reported_by_id=data.get("reported_by_id"),
        assigned_to_id=data.get("assigned_to_id"),
        assigned_department=data.get("assigned_department"),
    )
    return policy.can_view(actor, snapshot)


@router.websocket("/ws/events")
async def events(websocket: WebSocket, token: str = ""):
    try:
        actor = await run_in_threadpool(_authenticate, token)
    except HTTPException:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    user_id = actor.id
    sub = hub.subscribe(user_id)

    async def forward():
        while True:
            event = await sub.queue.get()
            if visible_to(event, actor):
                await websocket.send_json(event.to_dict())

    async def listen():
        while True:
            if await websocket.receive_text() == "ping":
                await websocket.send_text("pong")

    tasks = [asyncio.create_task(forward()), asyncio.create_task(listen())]
    try:
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for t in done:
            exc = t.exception()
            if exc is not None and not isinstance(exc, WebSocketDisconnect):
                logger.warning("event listener for user %s failed: %s", user_id, exc)
    finally:
        for t in tasks:
            t.cancel()
        hub.unsubscribe(sub)
        logger.debug("event listener for user %s closed", user_id)
