from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from management import messaging
from server.deps import get_current_user, get_store

router = APIRouter(prefix="/api/conversations", tags=["messages"])


class MessagePayload(BaseModel):
    content: str = ""


class DirectPayload(BaseModel):
    user_id: str = ""


@router.get("")
def conversations(
    search: Optional[str] = None, user: Dict[str, Any] = Depends(get_current_user), store=Depends(get_store)
):
    return {"conversations": messaging.list_conversations(store, user, search)}


@router.post("")
def start_direct(payload: DirectPayload, user: Dict[str, Any] = Depends(get_current_user), store=Depends(get_store)):
    return {"conversation": messaging.start_direct_conversation(store, user, payload.user_id)}


@router.get("/{conversation_id}/messages")
def messages(
    conversation_id: str,
    since: Optional[str] = None,
    user: Dict[str, Any] = Depends(get_current_user),
    store=Depends(get_store),
):
    return {"messages": messaging.list_messages(store, user, conversation_id, since)}


@router.post("/{conversation_id}/messages")
def send(
    conversation_id: str,
    payload: MessagePayload,
    user: Dict[str, Any] = Depends(get_current_user),
    store=Depends(get_store),
):
    return {"message": messaging.send_message(store, user, conversation_id, payload.content)}


@router.get("/{conversation_id}/unit")
def participant_unit(conversation_id: str, user: Dict[str, Any] = Depends(get_current_user), store=Depends(get_store)):
    return {"unit_info": messaging.participant_unit(store, user, conversation_id)}
