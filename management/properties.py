from __future__ import annotations

from typing import Any, Dict, List, Optional

from management import profiles
from management.common import get_or_404, index_by_id, natural_key, owned_property, require_text
from management.errors import ConflictError, ValidationError
from management.leases import active_lease
from telemetry.logging_utils import get_logger

logger = get_logger(__name__)

UNIT_STATUSES = ("available", "occupied", "maintenance", "neardue")
REVENUE_STATUSES = ("occupied", "neardue")
ATTENTION_STATUSES = ("maintenance", "neardue")
SORT_OPTIONS = ("unit_number", "rent_asc", "rent_desc", "status")
VACANT_LABEL = "-"


def create_property(store, landlord: Dict[str, Any], payload: Dict[str, Any]) -> Dict[str, Any]:
    fields = require_text(payload, "name", "address")
    prop = store.insert(
        "properties",
        {
            "landlord_id": landlord["id"],
            "name": fields["name"],
            "address": fields["address"],
            "description": (payload.get("description") or "").strip() or None,
        },
    )
    logger.info("property_created", extra={"property_id": prop["id"], "landlord_id": landlord["id"]})
    return prop


def update_property(store, landlord: Dict[str, Any], property_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    owned_property(store, landlord, property_id)
    values = {}
    for key in ("name", "address", "description"):
        if payload.get(key) is not None:
            values[key] = str(payload[key]).strip()
    if values.get("name") == "" or values.get("address") == "":
        raise ValidationError("Name and address cannot be empty")
    if not values:
        return get_or_404(store, "properties", property_id, "Property")
    return store.update("properties", values, {"id": property_id})[0]


def delete_property(store, landlord: Dict[str, Any], property_id: str) -> None:
    owned_property(store, landlord, property_id)
    unit_ids = [u["id"] for u in store.select("units", {"property_id": property_id})]
    if unit_ids and store.select_one("leases", {"unit_id": unit_ids, "status": ["pending", "pending_landlord", "active"]}):
        raise ConflictError("Property has open leases")
    if store.select_one("property_listings", {"property_id": property_id}):
        raise ConflictError("Delete the property's listing first")
    store.delete("units", {"property_id": property_id})
    store.delete("properties", {"id": property_id})
    logger.info("property_deleted", extra={"property_id": property_id, "landlord_id": landlord["id"]})


def _tenant_names(store, units: List[Dict[str, Any]]) -> Dict[str, str]:
    if not units:
        return {}
    leases = store.select("leases", {"unit_id": [u["id"] for u in units], "status": "active"})
    tenants = index_by_id(store.select("profiles", {"id": list({l["tenant_id"] for l in leases})})) if leases else {}
    return {lease["unit_id"]: profiles.display_name(tenants.get(lease["tenant_id"]), VACANT_LABEL) for lease in leases}


def sort_units(units: List[Dict[str, Any]], sort_by: str = "unit_number") -> List[Dict[str, Any]]:
    if sort_by not in SORT_OPTIONS:
        raise ValidationError(f"Unknown sort option: {sort_by}")
    by_number = sorted(units, key=lambda u: natural_key(u.get("unit_number")))
    if sort_by == "rent_asc":
        return sorted(by_number, key=lambda u: float(u.get("rent_amount") or 0))
    if sort_by == "rent_desc":
        return sorted(by_number, key=lambda u: float(u.get("rent_amount") or 0), reverse=True)
    if sort_by == "status":
        return sorted(by_number, key=lambda u: u.get("status") or "")
    return by_number


def list_properties(
    store, landlord: Dict[str, Any], *, status: Optional[str] = None, sort_by: str = "unit_number"
) -> List[Dict[str, Any]]:
    if status and status not in UNIT_STATUSES:
        raise ValidationError(f"Unknown unit status: {status}")
    props = store.select("properties", {"landlord_id": landlord["id"]}, order="created_at")
    if not props:
        return []
    all_units = store.select("units", {"property_id": [p["id"] for p in props]})
    names = _tenant_names(store, all_units)
    result = []
    for prop in props:
        units = [u for u in all_units if u["property_id"] == prop["id"]]
        if status:
            units = [u for u in units if u.get("status") == status]
        for unit in units:
            unit["tenant_name"] = names.get(unit["id"], VACANT_LABEL)
        result.append({**prop, "units": sort_units(units, sort_by)})
    return result


def update_unit(store, landlord: Dict[str, Any], unit_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    unit = get_or_404(store, "units", unit_id, "Unit")
    owned_property(store, landlord, unit["property_id"])
    values: Dict[str, Any] = {}
    if payload.get("rent_amount") is not None:
        rent = float(payload["rent_amount"])
        if rent < 0:
            raise ValidationError("Rent cannot be negative")
        values["rent_amount"] = rent
    if payload.get("status") is not None:
        if payload["status"] not in UNIT_STATUSES:
            raise ValidationError(f"Unknown unit status: {payload['status']}")
        values["status"] = payload["status"]
    if payload.get("unit_number"):
        values["unit_number"] = str(payload["unit_number"]).strip()
    if not values:
        return unit
    return store.update("units", values, {"id": unit_id})[0]


def landlord_stats(store, landlord: Dict[str, Any]) -> Dict[str, Any]:
    props = store.select("properties", {"landlord_id": landlord["id"]})
    units = store.select("units", {"property_id": [p["id"] for p in props]}) if props else []
    revenue = 0.0
    occupied = 0
    pending = 0
    for unit in units:
        if unit.get("status") in REVENUE_STATUSES:
            revenue += float(unit.get("rent_amount") or 0)
        if unit.get("status") == "occupied":
            occupied += 1
        if unit.get("status") in ATTENTION_STATUSES:
            pending += 1
    total = len(units)
    return {
        "total_properties": len(props),
        "total_units": total,
        "monthly_revenue": revenue,
        "occupancy_rate": round(occupied / total * 100) if total else 0,
        "active_tenants": occupied,
        "pending_requests": pending,
    }


def _map_status(unit: Dict[str, Any], has_active_lease: bool) -> str:
    if unit.get("unit_type") == "stairs":
        return "stairs"
    if has_active_lease:
        return "occupied"
    return unit.get("status") or "available"


def tenant_unit_map(store, tenant: Dict[str, Any]) -> Dict[str, Any]:
    """Floor map of the building the tenant currently leases in."""
    lease = active_lease(store, tenant["id"])
    if not lease:
        return {"property": None, "units": []}
    my_unit = store.select_one("units", {"id": lease["unit_id"]}) or {}
    prop = store.select_one("properties", {"id": my_unit.get("property_id")})
    if not prop:
        return {"property": None, "units": []}
    units = store.select("units", {"property_id": prop["id"]})
    leases = store.select("leases", {"unit_id": [u["id"] for u in units], "status": "active"}) if units else []
    lease_by_unit = {l["unit_id"]: l for l in leases}
    residents = index_by_id(store.select("profiles", {"id": list({l["tenant_id"] for l in leases})})) if leases else {}

    mapped = []
    for unit in units:
        unit_lease = lease_by_unit.get(unit["id"])
        resident = residents.get(unit_lease["tenant_id"]) if unit_lease else None
        is_private = bool(resident and resident.get("is_name_private"))
        name = resident.get("full_name") if resident else None
        mapped.append(
            {
                "id": unit["id"],
                "unit_number": unit.get("unit_number"),
                "unit_type": unit.get("unit_type"),
                "grid_x": unit.get("grid_x") or 0,
                "grid_y": unit.get("grid_y") or 0,
                "status": _map_status(unit, unit_lease is not None),
                "tenant_id": unit_lease["tenant_id"] if unit_lease else None,
                "tenant_name": "Resident" if (not name or is_private) else name,
                "tenant_is_private": is_private if resident else None,
                "tenant_avatar_url": resident.get("avatar_url") if resident else None,
                "is_mine": unit["id"] == my_unit.get("id"),
            }
        )
    mapped.sort(key=lambda u: (u["grid_y"], u["grid_x"]))
    return {"property": prop, "units": mapped}
