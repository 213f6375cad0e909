from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, Tuple

from management import profiles
from management.common import FileBlob, get_or_404, index_by_id, now_iso, owned_property, require_text, timestamp_ms, upload_blob
from management.errors import PermissionDeniedError, ValidationError
from management.leases import active_lease
from telemetry.logging_utils import get_logger

logger = get_logger(__name__)

BUCKET = "maintenance"
STATUSES = ("open", "in_progress", "resolved")
PRIORITIES = ("critical", "warning", "info")


def file_request(
    store,
    tenant: Dict[str, Any],
    payload: Dict[str, Any],
    *,
    image: Optional[FileBlob] = None,
    triage: Optional[Callable[[str, Optional[FileBlob]], Tuple[Optional[Dict[str, Any]], str]]] = None,
) -> Dict[str, Any]:
    """Open a request for the unit of the tenant's active lease.

    ``triage`` is only consulted once the filing is known to be valid and
    returns ``(analysis, priority)``.
    """
    fields = require_text(payload, "title", "description")
    lease = active_lease(store, tenant["id"])
    if not lease:
        raise PermissionDeniedError("You need an active lease to file a maintenance request")
    unit = get_or_404(store, "units", lease["unit_id"], "Unit")
    if image is not None and not image.data:
        image = None
    if image is not None and not image.content_type.startswith("image/"):
        raise ValidationError("Attachment must be an image")
    analysis, priority = triage(fields["description"], image) if triage else (None, "info")
    if priority not in PRIORITIES:
        raise ValidationError(f"Unknown priority: {priority}")
    image_url = None
    if image is not None:
        image_url = upload_blob(store, BUCKET, f"{tenant['id']}/{timestamp_ms()}.{image.extension}", image)
    request = store.insert(
        "maintenance_requests",
        {
            "property_id": unit["property_id"],
            "unit_id": unit["id"],
            "tenant_id": tenant["id"],
            "title": fields["title"],
            "description": fields["description"],
            "priority": priority,
            "status": "open",
            "image_url": image_url,
            "analysis": analysis,
        },
    )
    logger.info(
        "maintenance_request_filed",
        extra={"request_id": request["id"], "unit_id": unit["id"], "priority": priority},
    )
    return request


def tenant_requests(store, tenant: Dict[str, Any]) -> List[Dict[str, Any]]:
    return store.select("maintenance_requests", {"tenant_id": tenant["id"]}, order="created_at", desc=True)


def landlord_requests(store, landlord: Dict[str, Any], status: Optional[str] = None) -> Dict[str, Any]:
    if status and status != "all" and status not in STATUSES:
        raise ValidationError(f"Unknown status: {status}")
    props = index_by_id(store.select("properties", {"landlord_id": landlord["id"]}))
    rows = (
        store.select("maintenance_requests", {"property_id": list(props)}, order="created_at", desc=True)
        if props
        else []
    )
    counts = {"all": len(rows), **{s: 0 for s in STATUSES}}
    unit_ids = list({r["unit_id"] for r in rows if r.get("unit_id")})
    units = index_by_id(store.select("units", {"id": unit_ids})) if unit_ids else {}
    tenant_ids = list({r["tenant_id"] for r in rows if r.get("tenant_id")})
    tenants = index_by_id(store.select("profiles", {"id": tenant_ids})) if tenant_ids else {}
    for row in rows:
        counts[row.get("status") or "open"] += 1
        row["property"] = {"name": (props.get(row["property_id"]) or {}).get("name")}
        row["unit"] = {"unit_number": (units.get(row.get("unit_id")) or {}).get("unit_number")}
        row["tenant"] = {"full_name": profiles.display_name(tenants.get(row.get("tenant_id")))}
    if status and status != "all":
        rows = [r for r in rows if r.get("status") == status]
    return {"requests": rows, "counts": counts}


def update_status(store, landlord: Dict[str, Any], request_id: str, status: str) -> Dict[str, Any]:
    if status not in STATUSES:
        raise ValidationError(f"Unknown status: {status}")
    request = get_or_404(store, "maintenance_requests", request_id, "Maintenance request")
    owned_property(store, landlord, request["property_id"])
    values: Dict[str, Any] = {"status": status}
    if status == "resolved":
        values["resolved_at"] = now_iso()
    updated = store.update("maintenance_requests", values, {"id": request_id})[0]
    logger.info("maintenance_status_changed", extra={"request_id": request_id, "status": status})
    return updated
