"""Lease lifecycle: pending -> pending_landlord -> active, or terminated by the landlord."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from management import profiles
from management.common import (
    decode_data_url,
    get_or_404,
    index_by_id,
    now_iso,
    owned_property,
    parse_date,
    timestamp_ms,
)
from management.errors import ConflictError, PermissionDeniedError, ValidationError
from telemetry.logging_utils import get_logger

logger = get_logger(__name__)

SIGNATURE_BUCKET = "signatures"
OPEN_STATUSES = ("pending", "pending_landlord", "active")
DIRECTORY_STATUSES = ("active", "pending_landlord")


def active_lease(store, tenant_id: str) -> Optional[Dict[str, Any]]:
    return store.select_one("leases", {"tenant_id": tenant_id, "status": "active"}, order="created_at", desc=True)


def lease_context(store, lease: Dict[str, Any]) -> Dict[str, Any]:
    """Attach ``unit`` and ``property`` rows to a lease."""
    unit = store.select_one("units", {"id": lease["unit_id"]}) or {}
    prop = store.select_one("properties", {"id": unit.get("property_id")}) if unit.get("property_id") else None
    return {**lease, "unit": unit or None, "property": prop}


def _lease_for_landlord(store, landlord: Dict[str, Any], lease_id: str) -> Dict[str, Any]:
    lease = get_or_404(store, "leases", lease_id, "Lease")
    unit = get_or_404(store, "units", lease["unit_id"], "Unit")
    owned_property(store, landlord, unit["property_id"])
    return lease


def available_units(store, landlord: Dict[str, Any], property_id: str) -> List[Dict[str, Any]]:
    owned_property(store, landlord, property_id)
    return store.select("units", {"property_id": property_id, "status": "available"})


def create_lease(
    store,
    landlord: Dict[str, Any],
    *,
    unit_id: str,
    tenant_id: Optional[str],
    start_date: Any,
    end_date: Any,
    rent_amount: Optional[float] = None,
) -> Dict[str, Any]:
    if not tenant_id:
        raise ValidationError("This inquiry is not linked to a registered user. Cannot create lease.")
    unit = get_or_404(store, "units", unit_id, "Unit")
    owned_property(store, landlord, unit["property_id"])
    if unit.get("status") != "available":
        raise ConflictError("Unit is not available")
    tenant = profiles.get_profile(store, tenant_id)
    start = parse_date(start_date, "start_date")
    end = parse_date(end_date, "end_date")
    if start >= end:
        raise ValidationError("End date must be after start date")
    rent = float(rent_amount) if rent_amount not in (None, "") else float(unit.get("rent_amount") or 0)
    if rent <= 0:
        raise ValidationError("Rent amount must be greater than zero")

    lease = store.insert(
        "leases",
        {
            "unit_id": unit_id,
            "tenant_id": tenant["id"],
            "start_date": start.isoformat(),
            "end_date": end.isoformat(),
            "rent_amount": rent,
            "status": "pending",
        },
    )
    store.update("units", {"status": "occupied"}, {"id": unit_id})
    logger.info("lease_created", extra={"lease_id": lease["id"], "unit_id": unit_id, "landlord_id": landlord["id"]})
    return lease


def _store_signature(store, path: str, signature_data_url: str) -> str:
    mime, data = decode_data_url(signature_data_url)
    if mime != "image/png":
        raise ValidationError("Signature must be a PNG image")
    store.upload(SIGNATURE_BUCKET, path, data, "image/png")
    return store.public_url(SIGNATURE_BUCKET, path)


def tenant_sign(store, tenant: Dict[str, Any], lease_id: str, signature_data_url: str) -> Dict[str, Any]:
    lease = get_or_404(store, "leases", lease_id, "Lease")
    if lease.get("tenant_id") != tenant["id"]:
        raise PermissionDeniedError("This lease belongs to another tenant")
    if lease.get("status") != "pending":
        raise ConflictError(f"Lease cannot be signed while {lease.get('status')}")
    url = _store_signature(
        store, f"{tenant['id']}/{lease_id}_signature_{timestamp_ms()}.png", signature_data_url
    )
    updated = store.update(
        "leases",
        {"status": "pending_landlord", "signature_url": url, "signed_at": now_iso()},
        {"id": lease_id},
    )[0]
    logger.info("lease_signed", extra={"lease_id": lease_id, "party": "tenant"})
    return updated


def landlord_sign(store, landlord: Dict[str, Any], lease_id: str, signature_data_url: str) -> Dict[str, Any]:
    lease = _lease_for_landlord(store, landlord, lease_id)
    if lease.get("status") != "pending_landlord":
        raise ConflictError(f"Lease cannot be countersigned while {lease.get('status')}")
    url = _store_signature(
        store, f"{landlord['id']}/{lease_id}_landlord_signature_{timestamp_ms()}.png", signature_data_url
    )
    updated = store.update(
        "leases",
        {"status": "active", "landlord_signature_url": url, "landlord_signed_at": now_iso()},
        {"id": lease_id},
    )[0]
    logger.info("lease_signed", extra={"lease_id": lease_id, "party": "landlord"})
    return updated


def terminate_lease(store, landlord: Dict[str, Any], lease_id: str) -> Dict[str, Any]:
    lease = _lease_for_landlord(store, landlord, lease_id)
    if lease.get("status") == "terminated":
        raise ConflictError("Lease is already terminated")
    updated = store.update(
        "leases", {"status": "terminated", "terminated_at": now_iso()}, {"id": lease_id}
    )[0]
    store.update("units", {"status": "available"}, {"id": lease["unit_id"]})
    logger.info("lease_terminated", extra={"lease_id": lease_id, "landlord_id": landlord["id"]})
    return updated


def tenant_directory(store, landlord: Dict[str, Any]) -> List[Dict[str, Any]]:
    props = index_by_id(store.select("properties", {"landlord_id": landlord["id"]}))
    if not props:
        return []
    units = index_by_id(store.select("units", {"property_id": list(props)}))
    if not units:
        return []
    leases = store.select(
        "leases",
        {"unit_id": list(units), "status": list(DIRECTORY_STATUSES)},
        order="created_at",
        desc=True,
    )
    tenant_ids = list({lease["tenant_id"] for lease in leases})
    tenants = index_by_id(store.select("profiles", {"id": tenant_ids})) if tenant_ids else {}
    directory = []
    for lease in leases:
        unit = units.get(lease["unit_id"]) or {}
        tenant = tenants.get(lease["tenant_id"])
        directory.append(
            {
                **lease,
                "tenant": profiles.public_profile(tenant) if tenant else None,
                "unit": unit,
                "property": props.get(unit.get("property_id")),
            }
        )
    return directory


def tenant_leases(store, tenant: Dict[str, Any]) -> List[Dict[str, Any]]:
    leases = store.select("leases", {"tenant_id": tenant["id"]}, order="created_at", desc=True)
    return [lease_context(store, lease) for lease in leases]
