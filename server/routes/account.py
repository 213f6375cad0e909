from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from pydantic import BaseModel

from management import applications, profiles
from server.deps import get_current_user, get_store, to_blob

router = APIRouter(prefix="/api/account", tags=["account"])


class ProfilePayload(BaseModel):
    full_name: Optional[str] = None
    phone: Optional[str] = None
    company: Optional[str] = None
    address: Optional[str] = None
    avatar_url: Optional[str] = None
    is_name_private: Optional[bool] = None


class PasswordPayload(BaseModel):
    new_password: str
    confirm_password: str


class PreferencesPayload(BaseModel):
    updates: Dict[str, Any]


@router.get("/profile")
def get_profile(user: Dict[str, Any] = Depends(get_current_user)):
    return {"user": profiles.public_profile(user)}


@router.patch("/profile")
def update_profile(
    payload: ProfilePayload, user: Dict[str, Any] = Depends(get_current_user), store=Depends(get_store)
):
    return {"user": profiles.update_profile(store, user, payload.model_dump(exclude_unset=True))}


@router.post("/password")
def change_password(
    payload: PasswordPayload, user: Dict[str, Any] = Depends(get_current_user), store=Depends(get_store)
):
    profiles.change_password(store, user, payload.new_password, payload.confirm_password)
    return {"ok": True}


@router.get("/preferences")
def get_preferences(user: Dict[str, Any] = Depends(get_current_user)):
    return {"preferences": profiles.get_preferences(user)}


@router.post("/preferences")
def update_preferences(
    payload: PreferencesPayload, user: Dict[str, Any] = Depends(get_current_user), store=Depends(get_store)
):
    return {"preferences": profiles.update_preferences(store, user, payload.updates)}


@router.get("/landlord-application")
def my_application(user: Dict[str, Any] = Depends(get_current_user), store=Depends(get_store)):
    return {"application": applications.my_application(store, user)}


@router.post("/landlord-application")
def apply_for_landlord(
    business_address: str = Form(""),
    phone: str = Form(""),
    business_name: str = Form(""),
    government_id: Optional[UploadFile] = File(None),
    property_document: Optional[UploadFile] = File(None),
    user: Dict[str, Any] = Depends(get_current_user),
    store=Depends(get_store),
):
    application = applications.submit_application(
        store,
        user,
        {"business_address": business_address, "phone": phone, "business_name": business_name},
        to_blob(government_id),
        to_blob(property_document),
    )
    return {"application": application}
