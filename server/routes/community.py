from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from management import complaints
from server.deps import get_current_user, get_store

router = APIRouter(tags=["community"])


class ComplaintPayload(BaseModel):
    unit_id: str = ""
    category: str = ""
    description: str = ""


class MessagePayload(BaseModel):
    content: str = ""


@router.get("/api/tenant/neighbours")
def neighbours(user: Dict[str, Any] = Depends(get_current_user), store=Depends(get_store)):
    return {"units": complaints.neighbour_units(store, user)}


@router.get("/api/complaints")
def list_complaints(user: Dict[str, Any] = Depends(get_current_user), store=Depends(get_store)):
    return {"complaints": complaints.list_complaints(store, user)}


@router.post("/api/complaints")
def open_complaint(
    payload: ComplaintPayload, user: Dict[str, Any] = Depends(get_current_user), store=Depends(get_store)
):
    return {"complaint": complaints.open_complaint(store, user, payload.model_dump())}


@router.get("/api/complaints/{complaint_id}/messages")
def thread(complaint_id: str, user: Dict[str, Any] = Depends(get_current_user), store=Depends(get_store)):
    return {"messages": complaints.thread(store, user, complaint_id)}


@router.post("/api/complaints/{complaint_id}/messages")
def post_message(
    complaint_id: str,
    payload: MessagePayload,
    user: Dict[str, Any] = Depends(get_current_user),
    store=Depends(get_store),
):
    return {"message": complaints.post_message(store, user, complaint_id, payload.content)}


@router.post("/api/complaints/{complaint_id}/escalate")
def escalate(complaint_id: str, user: Dict[str, Any] = Depends(get_current_user), store=Depends(get_store)):
    return {"complaint": complaints.escalate(store, user, complaint_id)}


@router.post("/api/complaints/{complaint_id}/resolve")
def resolve(complaint_id: str, user: Dict[str, Any] = Depends(get_current_user), store=Depends(get_store)):
    return {"complaint": complaints.resolve(store, user, complaint_id)}
