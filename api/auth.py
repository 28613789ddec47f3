"""Auth token, first-run setup and current-user endpoints."""

from __future__ import annotations

import logging

import bcrypt
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from auth import get_current_user
from config import DesignerConfig, load_conf, save_conf
from database import get_db
from models.user import APIKey, UserProfile
from schemas.auth import MeResponse, SetupRequest, SetupStatusResponse, TokenRequest, TokenResponse

logger = logging.getLogger(__name__)

router = APIRouter()


def _hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def _verify_password(stored_hash: str, password: str) -> bool:
    """Verify password against stored bcrypt hash."""
    if not stored_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode(), stored_hash.encode())
    except (ValueError, UnicodeDecodeError):
        return False


@router.post("/token/", response_model=TokenResponse, responses={401: {"description": "Invalid credentials"}})
def obtain_token(payload: TokenRequest, db: Session = Depends(get_db)):
    user = db.query(UserProfile).filter(UserProfile.username == payload.username).first()
    if not user or not _verify_password(user.password_hash, payload.password):
        raise HTTPException(status_code=401, detail="Invalid credentials.")

    api_key = db.query(APIKey).filter(APIKey.user_id == user.id).first()
    if api_key:
        api_key.rotate()
    else:
        api_key = APIKey(user_id=user.id)
        db.add(api_key)
    logger.info("Issued API key for %s", user.username)
    db.commit()
    db.refresh(api_key)
    return {"key": api_key.key}


@router.get("/me/", response_model=MeResponse)
def me(user: UserProfile = Depends(get_current_user)):
    return {
        "username": user.username,
        "display_name": user.name,
        "key_last_used_at": user.api_key.last_used_at if user.api_key else None,
    }


@router.get("/setup-status/", response_model=SetupStatusResponse)
def setup_status(db: Session = Depends(get_db)):
    return {"needs_setup": db.query(UserProfile).first() is None}


@router.post("/setup/", response_model=TokenResponse, responses={409: {"description": "User already exists"}})
def setup(payload: SetupRequest, db: Session = Depends(get_db)):
    if db.query(UserProfile).first() is not None:
        raise HTTPException(status_code=409, detail="Setup already completed.")

    user = UserProfile(
        username=payload.username,
        password_hash=_hash_password(payload.password),
        display_name=payload.display_name,
    )
    db.add(user)
    db.flush()

    api_key = APIKey(user_id=user.id)
    db.add(api_key)
    db.commit()
    db.refresh(api_key)

    # Persist runtime choices in conf.json; env vars still win at next start
    try:
        current = load_conf()
        conf = DesignerConfig(
            database_url=payload.database_url or current.database_url,
            redis_url=payload.redis_url or current.redis_url,
            log_level=payload.log_level or current.log_level,
            log_file=current.log_file,
            cors_allow_all_origins=current.cors_allow_all_origins,
            llm_provider=payload.llm_provider or current.llm_provider,
            llm_model=payload.llm_model or current.llm_model,
            llm_base_url=payload.llm_base_url or current.llm_base_url,
            llm_tool_mode=payload.llm_tool_mode or current.llm_tool_mode,
            max_checkpoints=current.max_checkpoints,
        )
        save_conf(conf)
    except OSError:
        logger.warning("Failed to write conf.json during setup", exc_info=True)

    logger.info("Initial setup completed for user %s", user.username)
    return {"key": api_key.key}
