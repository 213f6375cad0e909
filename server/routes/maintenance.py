from __future__ import annotations

import base64
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from pydantic import BaseModel

from concierge.maintenance import analysis_payload, analyze_request
from management import maintenance
from management.common import FileBlob
from server.deps import get_ai, get_current_user, get_settings, get_store, require_landlord, to_blob

router = APIRouter(tags=["maintenance"])


class StatusPayload(BaseModel):
    status: str


@router.post("/api/tenant/maintenance")
def file_request(
    title: str = Form(""),
    description: str = Form(""),
    image: Optional[UploadFile] = File(None),
    user: Dict[str, Any] = Depends(get_current_user),
    store=Depends(get_store),
    ai=Depends(get_ai),
    settings=Depends(get_settings),
):
    def triage(text: str, blob: Optional[FileBlob]):
        image_data_url = None
        if blob is not None:
            image_data_url = f"data:{blob.content_type};base64,{base64.b64encode(blob.data).decode('ascii')}"
        result = analyze_request(ai, settings.maintenance_model, text, image_data_url, subject_id=user["id"])
        return analysis_payload(result), result.priority()

    request = maintenance.file_request(
        store, user, {"title": title, "description": description}, image=to_blob(image), triage=triage
    )
    return {"request": request}


@router.get("/api/tenant/maintenance")
def my_requests(user: Dict[str, Any] = Depends(get_current_user), store=Depends(get_store)):
    return {"requests": maintenance.tenant_requests(store, user)}


@router.get("/api/maintenance")
def landlord_requests(
    status: Optional[str] = None, landlord: Dict[str, Any] = Depends(require_landlord), store=Depends(get_store)
):
    return maintenance.landlord_requests(store, landlord, status)


@router.post("/api/maintenance/{request_id}/status")
def update_status(
    request_id: str,
    payload: StatusPayload,
    landlord: Dict[str, Any] = Depends(require_landlord),
    store=Depends(get_store),
):
    return {"request": maintenance.update_status(store, landlord, request_id, payload.status)}
