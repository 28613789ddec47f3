"""Authenticated WebSocket endpoint fanning out ``case:{id}`` events from Redis."""

from __future__ import annotations

import asyncio
import json
import logging
import time

import redis.asyncio as aioredis
from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from auth import resolve_api_key
from config import settings
from database import SessionLocal
from models.case import Case
from ws.broadcast import parse_case_channel

logger = logging.getLogger(__name__)

router = APIRouter()

HEARTBEAT_INTERVAL = 30  # seconds
PONG_TIMEOUT = 10  # seconds


def _authenticate(token: str) -> bool:
    db = SessionLocal()
    try:
        return resolve_api_key(db, token) is not None
    finally:
        db.close()


def _case_snapshot(case_id: int) -> dict | None:
    """Current state of a case, sent right after subscribing."""
    db = SessionLocal()
    try:
        case = db.get(Case, case_id)
        if case is None:
            return None
        return {"id": case.id, "name": case.name, "description": case.description, "model": case.model}
    finally:
        db.close()


@router.websocket("/ws/")
async def case_ws(websocket: WebSocket, token: str = ""):
    if not token or not _authenticate(token):
        await websocket.close(code=1008, reason="Invalid or missing token")
        return

    await websocket.accept()

    r = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
    pubsub = r.pubsub()
    subscriptions: set[str] = set()
    last_activity = time.monotonic()
    waiting_pong = False
    pong_deadline = 0.0
    closed = False

    async def _send(data: dict) -> None:
        nonlocal last_activity
        if closed or websocket.client_state != WebSocketState.CONNECTED:
            return
        await websocket.send_json(data)
        last_activity = time.monotonic()

    async def _subscribe(channel: str) -> None:
        case_id = parse_case_channel(channel)
        if case_id is None:
            await _send({"type": "error", "channel": channel, "message": "Unknown channel"})
            return
        snapshot = await asyncio.to_thread(_case_snapshot, case_id)
        if snapshot is None:
            await _send({"type": "error", "channel": channel, "message": "Case not found"})
            return
        if channel not in subscriptions:
            await pubsub.subscribe(channel)
            subscriptions.add(channel)
        await _send({"type": "subscribed", "channel": channel, "data": snapshot})

    async def _reader() -> None:
        """Read client messages (subscribe/unsubscribe/pong)."""
        nonlocal waiting_pong, last_activity
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))
            last_activity = time.monotonic()

            raw = message.get("text")
            if not raw:
                continue
            try:
                msg = json.loads(raw)
            except json.JSONDecodeError:
                continue
            if not isinstance(msg, dict):
                continue

            msg_type = msg.get("type")
            channel = msg.get("channel", "")
            if msg_type == "subscribe" and channel:
                await _subscribe(channel)
            elif msg_type == "unsubscribe" and channel:
                if channel in subscriptions:
                    await pubsub.unsubscribe(channel)
                    subscriptions.discard(channel)
                await _send({"type": "unsubscribed", "channel": channel})
            elif msg_type == "pong":
                waiting_pong = False

    async def _redis_listener() -> None:
        """Forward Redis pub/sub messages to the socket."""
        while True:
            if not subscriptions:
                await asyncio.sleep(0.5)
                continue
            try:
                msg = await pubsub.get_message(ignore_subscribe_messages=True, timeout=0.5)
            except aioredis.RedisError:
                logger.warning("Redis pub/sub get_message failed, retrying", exc_info=True)
                await asyncio.sleep(1)
                continue
            if msg and msg["type"] == "message":
                try:
                    data = json.loads(msg["data"])
                except json.JSONDecodeError:
                    logger.warning("Dropping malformed event on %s", msg.get("channel"))
                    continue
                await _send(data)
            await asyncio.sleep(0.05)

    async def _heartbeat() -> None:
        """Ping every HEARTBEAT_INTERVAL; give up if no pong within PONG_TIMEOUT."""
        nonlocal waiting_pong, pong_deadline
        while True:
            await asyncio.sleep(1)
            now = time.monotonic()
            if waiting_pong and now > pong_deadline:
                logger.debug("Case WS pong timeout, closing")
                return
            if not waiting_pong and (now - last_activity) >= HEARTBEAT_INTERVAL:
                await _send({"type": "ping"})
                waiting_pong = True
                pong_deadline = now + PONG_TIMEOUT

    tasks: list[asyncio.Task] = []
    try:
        tasks = [
            asyncio.create_task(_reader(), name="ws-reader"),
            asyncio.create_task(_redis_listener(), name="ws-redis"),
            asyncio.create_task(_heartbeat(), name="ws-heartbeat"),
        ]
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for t in done:
            exc = t.exception()
            if exc and not isinstance(exc, WebSocketDisconnect):
                logger.warning("Case WS task %s failed: %s", t.get_name(), exc)
    except WebSocketDisconnect:
        pass
    finally:
        closed = True
        for t in tasks:
            if not t.done():
                t.cancel()
        for ch in list(subscriptions):
            try:
                await pubsub.unsubscribe(ch)
            except aioredis.RedisError:
                logger.debug("Unsubscribe from %s failed during cleanup", ch)
        try:
            await pubsub.aclose()
            await r.aclose()
        except aioredis.RedisError:
            logger.debug("Redis close failed during cleanup")
