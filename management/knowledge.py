from __future__ import annotations

from typing import Any, Dict, List, Optional

from management.common import get_or_404, owned_property
from management.errors import PermissionDeniedError, ValidationError
from management.leases import active_lease, lease_context

DEFAULT_CATEGORY = "General"


def clean_item(payload: Dict[str, Any]) -> Dict[str, str]:
    """Normalize a knowledge payload to table columns."""
    item = {
        "property_id": (payload.get("propertyId") or payload.get("property_id") or "").strip(),
        "category": (payload.get("category") or "").strip() or DEFAULT_CATEGORY,
        "topic": (payload.get("topic") or "").strip(),
        "content": (payload.get("content") or "").strip(),
    }
    if not item["property_id"] or not item["topic"] or not item["content"]:
        raise ValidationError("propertyId, topic, and content are required")
    return item


def add_item(store, landlord: Dict[str, Any], payload: Dict[str, Any]) -> Dict[str, Any]:
    item = clean_item(payload)
    owned_property(store, landlord, item["property_id"])
    return store.insert("property_knowledge_base", item)


def list_items(store, landlord: Dict[str, Any], property_id: str) -> List[Dict[str, Any]]:
    owned_property(store, landlord, property_id)
    return store.select("property_knowledge_base", {"property_id": property_id}, order="created_at", desc=True)


def delete_item(store, landlord: Dict[str, Any], item_id: str) -> None:
    item = get_or_404(store, "property_knowledge_base", item_id, "Knowledge item")
    owned_property(store, landlord, item["property_id"])
    store.delete("property_knowledge_base", {"id": item_id})


def concierge_context(store, user: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Property the caller's concierge answers for: their active lease's property."""
    lease = active_lease(store, user["id"])
    if not lease:
        return None
    prop = lease_context(store, lease).get("property")
    if not prop:
        return None
    return {"propertyId": prop["id"], "propertyName": prop.get("name")}


def can_ask_about(store, user: Dict[str, Any], property_id: str) -> bool:
    if user.get("role") == "admin":
        return True
    prop = store.select_one("properties", {"id": property_id})
    if not prop:
        return False
    if prop.get("landlord_id") == user["id"]:
        return True
    context = concierge_context(store, user)
    return bool(context and context["propertyId"] == property_id)


def require_access(store, user: Dict[str, Any], property_id: str) -> None:
    if not can_ask_about(store, user, property_id):
        raise PermissionDeniedError("You do not have access to this property")
