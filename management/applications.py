"""Tenant-to-landlord upgrade applications and their admin review."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from management import profiles
from management.common import FileBlob, get_or_404, now_iso, require_text, timestamp_ms, upload_blob
from management.errors import ConflictError, ValidationError
from telemetry.logging_utils import get_logger

logger = get_logger(__name__)

BUCKET = "applications"
OPEN_STATUSES = ("pending", "under_review", "approved")
REVIEWABLE_STATUSES = ("pending", "under_review")


def submit_application(
    store,
    user: Dict[str, Any],
    payload: Dict[str, Any],
    government_id: Optional[FileBlob],
    property_document: Optional[FileBlob] = None,
) -> Dict[str, Any]:
    if user.get("role") in ("landlord", "admin"):
        raise ConflictError("You already have landlord access")
    fields = require_text(payload, "business_address", "phone")
    if government_id is None or not government_id.data:
        raise ValidationError("Government ID is required")
    if store.select_one("landlord_applications", {"user_id": user["id"], "status": list(OPEN_STATUSES)}):
        raise ConflictError("You already have an application on file")

    stamp = timestamp_ms()
    gov_url = upload_blob(store, BUCKET, f"{user['id']}/government_id_{stamp}", government_id)
    doc_url = None
    if property_document is not None and property_document.data:
        doc_url = upload_blob(store, BUCKET, f"{user['id']}/property_doc_{stamp}", property_document)

    business_name = (payload.get("business_name") or "").strip() or None
    row = store.insert(
        "landlord_applications",
        {
            "user_id": user["id"],
            "business_name": business_name,
            "business_address": fields["business_address"],
            "phone": fields["phone"],
            "government_id_url": gov_url,
            "property_document_url": doc_url,
            "status": "pending",
            "submitted_at": now_iso(),
        },
    )
    logger.info("landlord_application_submitted", extra={"application_id": row["id"], "user_id": user["id"]})
    return row


def my_application(store, user: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    return store.select_one(
        "landlord_applications", {"user_id": user["id"]}, order="submitted_at", desc=True
    )


def list_applications(store, status: Optional[str] = None) -> List[Dict[str, Any]]:
    filters = {"status": status} if status else None
    apps = store.select("landlord_applications", filters, order="submitted_at", desc=True)
    user_ids = list({a["user_id"] for a in apps})
    applicants = {p["id"]: p for p in store.select("profiles", {"id": user_ids})} if user_ids else {}
    for app in apps:
        applicant = applicants.get(app["user_id"]) or {}
        app["applicant"] = {
            "full_name": applicant.get("full_name"),
            "email": applicant.get("email"),
        }
    return apps


def application_counts(apps: List[Dict[str, Any]]) -> Dict[str, int]:
    counts = {"pending": 0, "under_review": 0, "approved": 0, "rejected": 0}
    for app in apps:
        counts[app.get("status") or "pending"] = counts.get(app.get("status") or "pending", 0) + 1
    return counts


def _reviewable(store, application_id: str) -> Dict[str, Any]:
    app = get_or_404(store, "landlord_applications", application_id, "Application")
    if app.get("status") not in REVIEWABLE_STATUSES:
        raise ConflictError(f"Application already {app.get('status')}")
    return app


def mark_under_review(store, application_id: str) -> Dict[str, Any]:
    _reviewable(store, application_id)
    return store.update("landlord_applications", {"status": "under_review"}, {"id": application_id})[0]


def approve_application(store, admin: Dict[str, Any], application_id: str) -> Dict[str, Any]:
    app = _reviewable(store, application_id)
    updated = store.update(
        "landlord_applications",
        {"status": "approved", "reviewed_at": now_iso(), "rejection_reason": None},
        {"id": application_id},
    )[0]
    profiles.set_role(store, app["user_id"], "landlord")
    logger.info("landlord_application_approved", extra={"application_id": application_id, "admin_id": admin["id"]})
    return updated


def reject_application(store, admin: Dict[str, Any], application_id: str, reason: str) -> Dict[str, Any]:
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("Please provide a reason for rejection")
    _reviewable(store, application_id)
    updated = store.update(
        "landlord_applications",
        {"status": "rejected", "reviewed_at": now_iso(), "rejection_reason": reason},
        {"id": application_id},
    )[0]
    logger.info("landlord_application_rejected", extra={"application_id": application_id, "admin_id": admin["id"]})
    return updated
