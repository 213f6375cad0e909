from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel

from management import profiles
from server.deps import get_current_user, get_store

router = APIRouter(prefix="/api/auth", tags=["auth"])


class SignupPayload(BaseModel):
    full_name: str
    email: str
    password: str


class LoginPayload(BaseModel):
    email: str
    password: str


@router.post("/signup")
def signup(payload: SignupPayload, store=Depends(get_store)):
    return profiles.sign_up(store, payload.full_name, payload.email, payload.password)


@router.post("/login")
def login(payload: LoginPayload, store=Depends(get_store)):
    result = profiles.sign_in(store, payload.email, payload.password)
    if not result:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid login credentials")
    return result


@router.post("/logout")
def logout(request: Request, user: Dict[str, Any] = Depends(get_current_user), store=Depends(get_store)):
    token = getattr(request.state, "session_token", None)
    if token:
        store.sign_out(token)
    return {"ok": True}


@router.get("/me")
def me(user: Dict[str, Any] = Depends(get_current_user)):
    return {"user": profiles.public_profile(user)}
