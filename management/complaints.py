"""Neighbour complaints between units of the same property."""

from __future__ import annotations

from typing import Any, Dict, List

from management.common import get_or_404, index_by_id, now_iso, require_text
from management.errors import ConflictError, PermissionDeniedError, ValidationError
from management.leases import active_lease
from telemetry.logging_utils import get_logger

logger = get_logger(__name__)

CATEGORIES = ("Noise", "Cleanliness", "Parking", "Pet Issue", "Other")
ESCALATED_NOTICE = "Issue escalated to Landlord."
RESOLVED_NOTICE = "Issue marked as resolved."


def _my_unit(store, tenant: Dict[str, Any]) -> Dict[str, Any]:
    lease = active_lease(store, tenant["id"])
    if not lease:
        raise PermissionDeniedError("You need an active lease to use the community board")
    return get_or_404(store, "units", lease["unit_id"], "Unit")


def neighbour_units(store, tenant: Dict[str, Any]) -> List[Dict[str, Any]]:
    mine = _my_unit(store, tenant)
    units = store.select("units", {"property_id": mine["property_id"]})
    return [u for u in units if u["id"] != mine["id"] and u.get("unit_type") != "stairs"]


def _post(store, complaint_id: str, sender_id: str, content: str) -> Dict[str, Any]:
    message = store.insert(
        "complaint_messages", {"complaint_id": complaint_id, "sender_id": sender_id, "content": content}
    )
    store.update("tenant_complaints", {"updated_at": now_iso()}, {"id": complaint_id})
    return message


def open_complaint(store, tenant: Dict[str, Any], payload: Dict[str, Any]) -> Dict[str, Any]:
    fields = require_text(payload, "unit_id", "category", "description")
    if fields["category"] not in CATEGORIES:
        raise ValidationError(f"Unknown category: {fields['category']}")
    mine = _my_unit(store, tenant)
    if fields["unit_id"] == mine["id"]:
        raise ValidationError("You cannot file a complaint against your own unit")
    target = get_or_404(store, "units", fields["unit_id"], "Unit")
    if target["property_id"] != mine["property_id"]:
        raise ValidationError("That unit is not in your building")

    stamp = now_iso()
    complaint = store.insert(
        "tenant_complaints",
        {
            "complainant_id": tenant["id"],
            "respondent_unit_id": target["id"],
            "property_id": target["property_id"],
            "category": fields["category"],
            "description": fields["description"],
            "status": "open",
            "escalated_at": None,
            "updated_at": stamp,
        },
    )
    _post(
        store,
        complaint["id"],
        tenant["id"],
        f"Opened resolution regarding {fields['category']}: {fields['description']}",
    )
    logger.info("complaint_opened", extra={"complaint_id": complaint["id"], "property_id": target["property_id"]})
    return complaint


def _respondent_tenant_id(store, complaint: Dict[str, Any]) -> str:
    lease = store.select_one("leases", {"unit_id": complaint["respondent_unit_id"], "status": "active"})
    return lease["tenant_id"] if lease else None


def _party_role(store, user: Dict[str, Any], complaint: Dict[str, Any]) -> str:
    if complaint.get("complainant_id") == user["id"]:
        return "complainant"
    if _respondent_tenant_id(store, complaint) == user["id"]:
        return "respondent"
    prop = store.select_one("properties", {"id": complaint.get("property_id")})
    if prop and prop.get("landlord_id") == user["id"]:
        return "landlord"
    raise PermissionDeniedError("You are not part of this complaint")


def _complaint_for(store, user: Dict[str, Any], complaint_id: str):
    complaint = get_or_404(store, "tenant_complaints", complaint_id, "Complaint")
    return complaint, _party_role(store, user, complaint)


def list_complaints(store, user: Dict[str, Any]) -> List[Dict[str, Any]]:
    if user.get("role") == "landlord":
        prop_ids = [p["id"] for p in store.select("properties", {"landlord_id": user["id"]})]
        rows = store.select("tenant_complaints", {"property_id": prop_ids}) if prop_ids else []
    else:
        rows = store.select("tenant_complaints", {"complainant_id": user["id"]})
        lease = active_lease(store, user["id"])
        if lease:
            rows += store.select("tenant_complaints", {"respondent_unit_id": lease["unit_id"]})
    unique = {row["id"]: row for row in rows}
    complaints = sorted(unique.values(), key=lambda c: c.get("updated_at") or c.get("created_at") or "", reverse=True)
    unit_ids = list({c["respondent_unit_id"] for c in complaints})
    units = index_by_id(store.select("units", {"id": unit_ids})) if unit_ids else {}
    for complaint in complaints:
        unit = units.get(complaint["respondent_unit_id"]) or {}
        complaint["respondent_unit"] = {"unit_number": unit.get("unit_number")}
    return complaints


def thread(store, user: Dict[str, Any], complaint_id: str) -> List[Dict[str, Any]]:
    _complaint_for(store, user, complaint_id)
    return store.select("complaint_messages", {"complaint_id": complaint_id}, order="created_at")


def post_message(store, user: Dict[str, Any], complaint_id: str, content: str) -> Dict[str, Any]:
    complaint, _ = _complaint_for(store, user, complaint_id)
    text = (content or "").strip()
    if not text:
        raise ValidationError("Message cannot be empty")
    if complaint.get("status") == "resolved":
        raise ConflictError("This complaint is resolved")
    return _post(store, complaint_id, user["id"], text)


def escalate(store, user: Dict[str, Any], complaint_id: str) -> Dict[str, Any]:
    complaint, role = _complaint_for(store, user, complaint_id)
    if role == "landlord":
        raise PermissionDeniedError("Only the residents involved can escalate")
    if complaint.get("status") != "open":
        raise ConflictError(f"Complaint is already {complaint.get('status')}")
    stamp = now_iso()
    updated = store.update(
        "tenant_complaints", {"status": "escalated", "escalated_at": stamp, "updated_at": stamp}, {"id": complaint_id}
    )[0]
    _post(store, complaint_id, user["id"], ESCALATED_NOTICE)
    logger.info("complaint_escalated", extra={"complaint_id": complaint_id})
    return updated


def resolve(store, user: Dict[str, Any], complaint_id: str) -> Dict[str, Any]:
    complaint, _ = _complaint_for(store, user, complaint_id)
    if complaint.get("status") == "resolved":
        raise ConflictError("Complaint is already resolved")
    updated = store.update(
        "tenant_complaints", {"status": "resolved", "updated_at": now_iso()}, {"id": complaint_id}
    )[0]
    _post(store, complaint_id, user["id"], RESOLVED_NOTICE)
    logger.info("complaint_resolved", extra={"complaint_id": complaint_id})
    return updated
