"""API key resolution shared by the HTTP routes and the case WebSocket."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from database import get_db
from models.user import APIKey, UserProfile

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer()

# last_used_at is only rewritten when older than this
TOUCH_INTERVAL = timedelta(minutes=5)


def resolve_api_key(db: Session, token: str) -> UserProfile | None:
    """Return the owner of *token*, stamping the key's ``last_used_at``."""
    if not token:
        return None
    api_key = db.query(APIKey).filter(APIKey.key == token).first()
    if api_key is None:
        return None
    now = datetime.now(timezone.utc).replace(tzinfo=None)
    if api_key.last_used_at is None or now - api_key.last_used_at >= TOUCH_INTERVAL:
        api_key.last_used_at = now
        db.commit()
    return db.get(UserProfile, api_key.user_id)


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> UserProfile:
    """FastAPI dependency: the designer owning the bearer key."""
    user = resolve_api_key(db, credentials.credentials)
    if user is None:
        logger.debug("Rejected request with unknown API key")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key.",
        )
    return user
