"""Accounts: sign up/in, the ``profiles`` row, preferences and password changes."""

from __future__ import annotations

import copy
from typing import Any, Dict, Optional

from management.errors import NotFoundError, ValidationError
from telemetry.logging_utils import get_logger

logger = get_logger(__name__)

ROLES = ("tenant", "landlord", "admin")
HOME_PATHS = {
    "landlord": "/landlord/dashboard",
    "tenant": "/tenant/dashboard",
    "admin": "/admin",
}
MIN_SIGNUP_PASSWORD = 6
MIN_CHANGED_PASSWORD = 8
EDITABLE_FIELDS = ("full_name", "phone", "company", "address", "avatar_url", "is_name_private")

DEFAULT_PREFERENCES: Dict[str, Any] = {
    "notifications": {
        "emailNotifications": True,
        "pushNotifications": True,
        "smsNotifications": False,
        "newTenantAlerts": True,
        "paymentReminders": True,
        "maintenanceAlerts": True,
        "weeklyReports": False,
    },
    "display": {
        "theme": "light",
        "language": "en",
        "timezone": "Asia/Manila",
        "currency": "PHP",
        "dateFormat": "DD/MM/YYYY",
    },
}


def home_path(role: Optional[str]) -> str:
    return HOME_PATHS.get(role or "tenant", HOME_PATHS["tenant"])


def public_profile(profile: Dict[str, Any]) -> Dict[str, Any]:
    role = profile.get("role") or "tenant"
    return {
        "id": profile["id"],
        "email": profile.get("email"),
        "full_name": profile.get("full_name"),
        "phone": profile.get("phone"),
        "role": role,
        "avatar_url": profile.get("avatar_url"),
        "is_name_private": bool(profile.get("is_name_private")),
        "company": profile.get("company"),
        "address": profile.get("address"),
        "home_path": home_path(role),
    }


def display_name(profile: Optional[Dict[str, Any]], fallback: str = "Unknown User") -> str:
    if not profile:
        return fallback
    return profile.get("full_name") or profile.get("email") or fallback


def get_profile(store, user_id: str) -> Dict[str, Any]:
    profile = store.select_one("profiles", {"id": user_id})
    if not profile:
        raise NotFoundError("Profile not found")
    return profile


def find_profile_by_email(store, email: str) -> Optional[Dict[str, Any]]:
    target = (email or "").strip().lower()
    if not target:
        return None
    return store.select_one("profiles", {"email": target})


def _ensure_profile(store, auth_user: Dict[str, Any]) -> Dict[str, Any]:
    profile = store.select_one("profiles", {"id": auth_user["id"]})
    if profile:
        return profile
    # Users created outside the API (dashboard, SQL) have no profile row yet.
    metadata = auth_user.get("user_metadata") or {}
    return store.insert(
        "profiles",
        {
            "id": auth_user["id"],
            "email": (auth_user.get("email") or "").lower() or None,
            "full_name": metadata.get("full_name"),
            "role": "tenant",
            "is_name_private": False,
            "preferences": {},
        },
    )


def sign_up(store, full_name: str, email: str, password: str) -> Dict[str, Any]:
    full_name = (full_name or "").strip()
    email = (email or "").strip().lower()
    if not full_name or not email:
        raise ValidationError("Full name and email are required")
    if len(password or "") < MIN_SIGNUP_PASSWORD:
        raise ValidationError(f"Password must be at least {MIN_SIGNUP_PASSWORD} characters")
    try:
        auth_user = store.sign_up(email, password, full_name)
    except ValueError as exc:
        raise ValidationError(str(exc))
    profile = _ensure_profile(store, auth_user)
    session = store.sign_in(email, password)
    if not session:
        raise ValidationError("Account created but sign-in failed")
    logger.info("user_signed_up", extra={"user_id": profile["id"]})
    return {"token": session["access_token"], "user": public_profile(profile)}


def sign_in(store, email: str, password: str) -> Optional[Dict[str, Any]]:
    """Return token and profile, or None for bad credentials."""
    session = store.sign_in((email or "").strip().lower(), password or "")
    if not session:
        return None
    profile = _ensure_profile(store, session["user"])
    logger.info("user_signed_in", extra={"user_id": profile["id"], "role": profile.get("role")})
    return {"token": session["access_token"], "user": public_profile(profile)}


def resolve_token(store, token: str) -> Optional[Dict[str, Any]]:
    auth_user = store.get_user(token)
    if not auth_user:
        return None
    return _ensure_profile(store, auth_user)


def update_profile(store, user: Dict[str, Any], changes: Dict[str, Any]) -> Dict[str, Any]:
    values = {k: changes[k] for k in EDITABLE_FIELDS if k in changes and changes[k] is not None}
    if "full_name" in values:
        values["full_name"] = str(values["full_name"]).strip()
        if not values["full_name"]:
            raise ValidationError("Full name cannot be empty")
    if "is_name_private" in values:
        values["is_name_private"] = bool(values["is_name_private"])
    if not values:
        return public_profile(user)
    rows = store.update("profiles", values, {"id": user["id"]})
    return public_profile(rows[0])


def change_password(store, user: Dict[str, Any], new_password: str, confirm_password: str) -> None:
    if new_password != confirm_password:
        raise ValidationError("Passwords do not match")
    if len(new_password or "") < MIN_CHANGED_PASSWORD:
        raise ValidationError(f"Password must be at least {MIN_CHANGED_PASSWORD} characters")
    try:
        store.update_password(user["id"], new_password)
    except ValueError as exc:
        raise ValidationError(str(exc))
    logger.info("password_changed", extra={"user_id": user["id"]})


def _merge(base: Dict[str, Any], updates: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in updates.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def get_preferences(user: Dict[str, Any]) -> Dict[str, Any]:
    return _merge(DEFAULT_PREFERENCES, user.get("preferences") or {})


def update_preferences(store, user: Dict[str, Any], updates: Dict[str, Any]) -> Dict[str, Any]:
    if not isinstance(updates, dict):
        raise ValidationError("Preferences must be an object")
    stored = _merge(user.get("preferences") or {}, updates)
    store.update("profiles", {"preferences": stored}, {"id": user["id"]})
    return _merge(DEFAULT_PREFERENCES, stored)


def set_role(store, user_id: str, role: str) -> Dict[str, Any]:
    if role not in ROLES:
        raise ValidationError(f"Unknown role: {role}")
    get_profile(store, user_id)
    rows = store.update("profiles", {"role": role}, {"id": user_id})
    logger.info("profile_role_changed", extra={"user_id": user_id, "role": role})
    return rows[0]
