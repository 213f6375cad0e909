from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from management import applications
from server.deps import get_store, require_admin
from telemetry.metrics import fetch_metrics, summarize_metrics

router = APIRouter(prefix="/api/admin", tags=["admin"])


class RejectPayload(BaseModel):
    reason: str = ""


@router.get("/applications")
def list_applications(
    status: Optional[str] = None, admin: Dict[str, Any] = Depends(require_admin), store=Depends(get_store)
):
    apps = applications.list_applications(store, status)
    everything = apps if not status else applications.list_applications(store)
    return {"applications": apps, "counts": applications.application_counts(everything)}


@router.post("/applications/{application_id}/review")
def start_review(application_id: str, admin: Dict[str, Any] = Depends(require_admin), store=Depends(get_store)):
    return {"application": applications.mark_under_review(store, application_id)}


@router.post("/applications/{application_id}/approve")
def approve(application_id: str, admin: Dict[str, Any] = Depends(require_admin), store=Depends(get_store)):
    return {"application": applications.approve_application(store, admin, application_id)}


@router.post("/applications/{application_id}/reject")
def reject(
    application_id: str,
    payload: RejectPayload,
    admin: Dict[str, Any] = Depends(require_admin),
    store=Depends(get_store),
):
    return {"application": applications.reject_application(store, admin, application_id, payload.reason)}


@router.get("/metrics")
def metrics(limit: int = 500, admin: Dict[str, Any] = Depends(require_admin)):
    records = fetch_metrics(limit)
    return {"summary": summarize_metrics(records), "records": records[:50]}
