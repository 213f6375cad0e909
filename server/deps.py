from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional

from fastapi import Depends, HTTPException, Request, UploadFile, status

from management import profiles
from management.common import FileBlob
from server.security import bearer_token


def get_store(request: Request):
    return request.app.state.store


def get_ai(request: Request):
    return request.app.state.ai


def get_settings(request: Request):
    return request.app.state.settings


def get_geocoder(request: Request):
    return request.app.state.geocoder


def get_optional_user(request: Request, store=Depends(get_store)) -> Optional[Dict[str, Any]]:
    token = bearer_token(request.headers.get("Authorization"))
    if not token:
        return None
    profile = profiles.resolve_token(store, token)
    if profile:
        request.state.session_token = token
    return profile


def get_current_user(user: Optional[Dict[str, Any]] = Depends(get_optional_user)) -> Dict[str, Any]:
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return user


def require_role(*roles: str) -> Callable[..., Dict[str, Any]]:
    """Dependency that admits only users whose profile role is in ``roles``."""

    def _checker(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
        if user.get("role") not in roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
        return user

    return _checker


require_landlord = require_role("landlord")
require_admin = require_role("admin")


def to_blob(upload: Optional[UploadFile]) -> Optional[FileBlob]:
    if upload is None:
        return None
    data = upload.file.read()
    if not data:
        return None
    return FileBlob(upload.filename, upload.content_type, data)


def to_blobs(uploads: List[UploadFile]) -> List[FileBlob]:
    blobs = []
    for upload in uploads or []:
        blob = to_blob(upload)
        if blob is not None:
            blobs.append(blob)
    return blobs
