"""Contact-form inquiries against published listings."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from management import leases, messaging
from management.common import EMAIL_LIKE_RE, get_or_404, index_by_id, now_iso, require_text
from management.errors import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from telemetry.logging_utils import get_logger

logger = get_logger(__name__)

STATUS_FLOW = ("new", "read", "replied", "archived")


def submit_inquiry(store, listing_id: str, payload: Dict[str, Any], user: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    listing = store.select_one("property_listings", {"id": listing_id, "status": "published"})
    if not listing:
        raise NotFoundError("Listing not found")
    fields = require_text(payload, "name", "email", "message")
    if not EMAIL_LIKE_RE.match(fields["email"]):
        raise ValidationError("Enter a valid email address")
    inquiry = store.insert(
        "listing_inquiries",
        {
            "listing_id": listing_id,
            "user_id": user["id"] if user else None,
            "name": fields["name"],
            "email": fields["email"].lower(),
            "phone": (payload.get("phone") or "").strip() or None,
            "message": fields["message"],
            "preferred_move_in": payload.get("preferred_move_in") or None,
            "status": "new",
            "replied_at": None,
        },
    )
    store.update(
        "property_listings", {"inquiry_count": int(listing.get("inquiry_count") or 0) + 1}, {"id": listing_id}
    )
    logger.info("inquiry_submitted", extra={"inquiry_id": inquiry["id"], "listing_id": listing_id})
    return inquiry


def _owned_inquiry(store, landlord: Dict[str, Any], inquiry_id: str) -> Dict[str, Any]:
    inquiry = get_or_404(store, "listing_inquiries", inquiry_id, "Inquiry")
    listing = store.select_one("property_listings", {"id": inquiry["listing_id"]})
    if not listing or listing.get("landlord_id") != landlord["id"]:
        raise PermissionDeniedError("This inquiry is not for one of your listings")
    inquiry["listing"] = {
        "id": listing["id"],
        "title": listing.get("title"),
        "property_id": listing.get("property_id"),
    }
    return inquiry


def list_inquiries(store, landlord: Dict[str, Any], status: Optional[str] = None) -> Dict[str, Any]:
    if status and status != "all" and status not in STATUS_FLOW:
        raise ValidationError(f"Unknown inquiry status: {status}")
    listings = index_by_id(store.select("property_listings", {"landlord_id": landlord["id"]}))
    rows = (
        store.select("listing_inquiries", {"listing_id": list(listings)}, order="created_at", desc=True)
        if listings
        else []
    )
    counts = {"all": len(rows), **{s: 0 for s in STATUS_FLOW}}
    for row in rows:
        counts[row.get("status") or "new"] += 1
        listing = listings[row["listing_id"]]
        row["listing"] = {"id": listing["id"], "title": listing.get("title"), "property_id": listing.get("property_id")}
    if status and status != "all":
        rows = [r for r in rows if r.get("status") == status]
    return {"inquiries": rows, "counts": counts}


def update_status(store, landlord: Dict[str, Any], inquiry_id: str, new_status: str) -> Dict[str, Any]:
    """Move an inquiry forward along new -> read -> replied -> archived."""
    inquiry = _owned_inquiry(store, landlord, inquiry_id)
    if new_status not in STATUS_FLOW:
        raise ValidationError(f"Unknown inquiry status: {new_status}")
    current = inquiry.get("status") or "new"
    if new_status == current:
        return inquiry
    if STATUS_FLOW.index(new_status) < STATUS_FLOW.index(current):
        raise ConflictError(f"Inquiry cannot move from {current} back to {new_status}")
    values: Dict[str, Any] = {"status": new_status}
    if new_status == "replied":
        values["replied_at"] = now_iso()
    updated = store.update("listing_inquiries", values, {"id": inquiry_id})[0]
    updated["listing"] = inquiry["listing"]
    logger.info("inquiry_status_changed", extra={"inquiry_id": inquiry_id, "from": current, "to": new_status})
    return updated


def open_inquiry(store, landlord: Dict[str, Any], inquiry_id: str) -> Dict[str, Any]:
    """Detail view; opening a new inquiry marks it read."""
    inquiry = _owned_inquiry(store, landlord, inquiry_id)
    if inquiry.get("status") == "new":
        return update_status(store, landlord, inquiry_id, "read")
    return inquiry


def start_chat(store, landlord: Dict[str, Any], inquiry_id: str) -> Dict[str, Any]:
    inquiry = _owned_inquiry(store, landlord, inquiry_id)
    if not inquiry.get("user_id"):
        raise ValidationError("This inquiry is not linked to a registered user")
    convo = messaging.find_or_create_conversation(
        store, landlord["id"], inquiry["user_id"], inquiry["listing_id"]
    )
    if STATUS_FLOW.index(inquiry.get("status") or "new") < STATUS_FLOW.index("replied"):
        update_status(store, landlord, inquiry_id, "replied")
    return convo


def create_lease_from_inquiry(store, landlord: Dict[str, Any], inquiry_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    inquiry = _owned_inquiry(store, landlord, inquiry_id)
    return leases.create_lease(
        store,
        landlord,
        unit_id=payload.get("unit_id"),
        tenant_id=inquiry.get("user_id"),
        start_date=payload.get("start_date"),
        end_date=payload.get("end_date"),
        rent_amount=payload.get("rent_amount"),
    )


def my_inquiries(store, user: Dict[str, Any]) -> List[Dict[str, Any]]:
    return store.select("listing_inquiries", {"user_id": user["id"]}, order="created_at", desc=True)
