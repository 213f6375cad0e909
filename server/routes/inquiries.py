from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from management import inquiries
from server.deps import get_current_user, get_optional_user, get_store, require_landlord

router = APIRouter(tags=["inquiries"])


class InquiryPayload(BaseModel):
    name: str = ""
    email: str = ""
    phone: Optional[str] = None
    message: str = ""
    preferred_move_in: Optional[str] = None


class StatusPayload(BaseModel):
    status: str


class LeaseTerms(BaseModel):
    unit_id: str
    start_date: str
    end_date: str
    rent_amount: Optional[float] = None


@router.post("/api/browse/{listing_id}/inquiries")
def submit_inquiry(
    listing_id: str,
    payload: InquiryPayload,
    user: Optional[Dict[str, Any]] = Depends(get_optional_user),
    store=Depends(get_store),
):
    return {"inquiry": inquiries.submit_inquiry(store, listing_id, payload.model_dump(), user)}


@router.get("/api/my/inquiries")
def my_inquiries(user: Dict[str, Any] = Depends(get_current_user), store=Depends(get_store)):
    return {"inquiries": inquiries.my_inquiries(store, user)}


@router.get("/api/inquiries")
def list_inquiries(
    status: Optional[str] = None, landlord: Dict[str, Any] = Depends(require_landlord), store=Depends(get_store)
):
    return inquiries.list_inquiries(store, landlord, status)


@router.get("/api/inquiries/{inquiry_id}")
def open_inquiry(inquiry_id: str, landlord: Dict[str, Any] = Depends(require_landlord), store=Depends(get_store)):
    return {"inquiry": inquiries.open_inquiry(store, landlord, inquiry_id)}


@router.post("/api/inquiries/{inquiry_id}/status")
def update_status(
    inquiry_id: str,
    payload: StatusPayload,
    landlord: Dict[str, Any] = Depends(require_landlord),
    store=Depends(get_store),
):
    return {"inquiry": inquiries.update_status(store, landlord, inquiry_id, payload.status)}


@router.post("/api/inquiries/{inquiry_id}/chat")
def start_chat(inquiry_id: str, landlord: Dict[str, Any] = Depends(require_landlord), store=Depends(get_store)):
    return {"conversation": inquiries.start_chat(store, landlord, inquiry_id)}


@router.post("/api/inquiries/{inquiry_id}/lease")
def create_lease(
    inquiry_id: str,
    payload: LeaseTerms,
    landlord: Dict[str, Any] = Depends(require_landlord),
    store=Depends(get_store),
):
    return {"lease": inquiries.create_lease_from_inquiry(store, landlord, inquiry_id, payload.model_dump())}
