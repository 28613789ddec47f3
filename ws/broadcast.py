"""Case change events published to Redis, one pub/sub channel per case."""

from __future__ import annotations

import json
import logging
import re
import time

import redis as redis_lib

from config import settings

logger = logging.getLogger(__name__)

_CHANNEL_RE = re.compile(r"^case:(\d+)$")


def case_channel(case_id: int) -> str:
    return f"case:{case_id}"


def parse_case_channel(channel: str) -> int | None:
    """Case id of a ``case:{id}`` channel name, ``None`` for anything else."""
    match = _CHANNEL_RE.match(channel)
    return int(match.group(1)) if match else None


def broadcast(channel: str, event_type: str, data: dict | None = None) -> None:
    """Publish ``{"type", "channel", "timestamp", "data"?}`` on *channel*."""
    payload: dict = {"type": event_type, "channel": channel, "timestamp": time.time()}
    if data is not None:
        payload["data"] = data
    r = redis_lib.from_url(settings.REDIS_URL, decode_responses=True)
    try:
        r.publish(channel, json.dumps(payload, default=str))
    finally:
        r.close()


def notify_case(case_id: int, event_type: str, data: dict | None = None) -> None:
    """Tell subscribed designers that a case changed.

    Editing must keep working without Redis, so publish failures are logged only.
    """
    try:
        broadcast(case_channel(case_id), event_type, data)
    except redis_lib.RedisError:
        logger.warning("Failed to broadcast %s for case %s", event_type, case_id, exc_info=True)
