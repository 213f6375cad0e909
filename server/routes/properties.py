from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from management import builder, properties
from server.deps import get_current_user, get_store, require_landlord

router = APIRouter(tags=["properties"])


class PropertyPayload(BaseModel):
    name: Optional[str] = None
    address: Optional[str] = None
    description: Optional[str] = None


class UnitPlacement(BaseModel):
    unit_type: str
    grid_x: int
    grid_y: int


class UnitMove(BaseModel):
    grid_x: int
    grid_y: int


class UnitUpdate(BaseModel):
    unit_number: Optional[str] = None
    rent_amount: Optional[float] = None
    status: Optional[str] = None


@router.get("/api/landlord/stats")
def stats(landlord: Dict[str, Any] = Depends(require_landlord), store=Depends(get_store)):
    return properties.landlord_stats(store, landlord)


@router.get("/api/properties")
def list_properties(
    status: Optional[str] = None,
    sort_by: str = "unit_number",
    landlord: Dict[str, Any] = Depends(require_landlord),
    store=Depends(get_store),
):
    return {"properties": properties.list_properties(store, landlord, status=status, sort_by=sort_by)}


@router.post("/api/properties")
def create_property(
    payload: PropertyPayload, landlord: Dict[str, Any] = Depends(require_landlord), store=Depends(get_store)
):
    return {"property": properties.create_property(store, landlord, payload.model_dump())}


@router.patch("/api/properties/{property_id}")
def update_property(
    property_id: str,
    payload: PropertyPayload,
    landlord: Dict[str, Any] = Depends(require_landlord),
    store=Depends(get_store),
):
    return {"property": properties.update_property(store, landlord, property_id, payload.model_dump(exclude_unset=True))}


@router.delete("/api/properties/{property_id}")
def delete_property(property_id: str, landlord: Dict[str, Any] = Depends(require_landlord), store=Depends(get_store)):
    properties.delete_property(store, landlord, property_id)
    return {"ok": True}


@router.get("/api/properties/{property_id}/builder")
def builder_layout(property_id: str, landlord: Dict[str, Any] = Depends(require_landlord), store=Depends(get_store)):
    return builder.builder_layout(store, landlord, property_id)


@router.post("/api/properties/{property_id}/units")
def place_unit(
    property_id: str,
    payload: UnitPlacement,
    landlord: Dict[str, Any] = Depends(require_landlord),
    store=Depends(get_store),
):
    unit = builder.place_unit(store, landlord, property_id, payload.unit_type, payload.grid_x, payload.grid_y)
    return {"unit": unit}


@router.post("/api/units/{unit_id}/move")
def move_unit(
    unit_id: str, payload: UnitMove, landlord: Dict[str, Any] = Depends(require_landlord), store=Depends(get_store)
):
    return {"unit": builder.move_unit(store, landlord, unit_id, payload.grid_x, payload.grid_y)}


@router.patch("/api/units/{unit_id}")
def update_unit(
    unit_id: str, payload: UnitUpdate, landlord: Dict[str, Any] = Depends(require_landlord), store=Depends(get_store)
):
    return {"unit": properties.update_unit(store, landlord, unit_id, payload.model_dump(exclude_unset=True))}


@router.delete("/api/units/{unit_id}")
def remove_unit(unit_id: str, landlord: Dict[str, Any] = Depends(require_landlord), store=Depends(get_store)):
    builder.remove_unit(store, landlord, unit_id)
    return {"ok": True}


@router.get("/api/tenant/unit-map")
def unit_map(user: Dict[str, Any] = Depends(get_current_user), store=Depends(get_store)):
    return properties.tenant_unit_map(store, user)
