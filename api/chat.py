"""Assistant chat endpoints (server-sent events) and per-case chat history."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from api._helpers import get_case
from auth import get_current_user
from database import get_db
from models.user import UserProfile
from schemas.chat import ChatMessageOut, ChatRequest
from services.chat import clear_history, get_history, stream_chat, thread_id_for

router = APIRouter()

SSE_HEADERS = {"Cache-Control": "no-cache", "Connection": "keep-alive"}


def _event_stream(payload: ChatRequest, user_id: int, case_id: int | None = None) -> StreamingResponse:
    return StreamingResponse(
        stream_chat(
            payload.prompt,
            user_id=user_id,
            case_id=case_id,
            system_context=payload.system_context,
        ),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.post("/chat/")
def chat(
    payload: ChatRequest,
    profile: UserProfile = Depends(get_current_user),
):
    return _event_stream(payload, profile.id)


@router.post("/cases/{case_id}/chat/")
def case_chat(
    case_id: int,
    payload: ChatRequest,
    db: Session = Depends(get_db),
    profile: UserProfile = Depends(get_current_user),
):
    get_case(case_id, db)
    return _event_stream(payload, profile.id, case_id)


@router.get("/cases/{case_id}/chat/history/", response_model=list[ChatMessageOut])
def chat_history(
    case_id: int,
    db: Session = Depends(get_db),
    profile: UserProfile = Depends(get_current_user),
):
    get_case(case_id, db)
    return get_history(thread_id_for(profile.id, case_id))


@router.delete("/cases/{case_id}/chat/history/", status_code=204)
def delete_chat_history(
    case_id: int,
    db: Session = Depends(get_db),
    profile: UserProfile = Depends(get_current_user),
):
    get_case(case_id, db)
    clear_history(thread_id_for(profile.id, case_id))
