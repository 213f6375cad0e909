from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from management import dashboard, leases
from server.deps import get_current_user, get_store, require_landlord

router = APIRouter(tags=["leases"])


class LeasePayload(BaseModel):
    unit_id: str
    tenant_id: Optional[str] = None
    start_date: str
    end_date: str
    rent_amount: Optional[float] = None


class SignaturePayload(BaseModel):
    signature_data_url: str


@router.post("/api/leases")
def create_lease(payload: LeasePayload, landlord: Dict[str, Any] = Depends(require_landlord), store=Depends(get_store)):
    lease = leases.create_lease(
        store,
        landlord,
        unit_id=payload.unit_id,
        tenant_id=payload.tenant_id,
        start_date=payload.start_date,
        end_date=payload.end_date,
        rent_amount=payload.rent_amount,
    )
    return {"lease": lease}


@router.get("/api/properties/{property_id}/available-units")
def available_units(property_id: str, landlord: Dict[str, Any] = Depends(require_landlord), store=Depends(get_store)):
    return {"units": leases.available_units(store, landlord, property_id)}


@router.get("/api/tenants")
def tenant_directory(landlord: Dict[str, Any] = Depends(require_landlord), store=Depends(get_store)):
    return {"tenants": leases.tenant_directory(store, landlord)}


@router.post("/api/leases/{lease_id}/countersign")
def countersign(
    lease_id: str,
    payload: SignaturePayload,
    landlord: Dict[str, Any] = Depends(require_landlord),
    store=Depends(get_store),
):
    return {"lease": leases.landlord_sign(store, landlord, lease_id, payload.signature_data_url)}


@router.post("/api/leases/{lease_id}/terminate")
def terminate(lease_id: str, landlord: Dict[str, Any] = Depends(require_landlord), store=Depends(get_store)):
    return {"lease": leases.terminate_lease(store, landlord, lease_id)}


@router.get("/api/tenant/leases")
def my_leases(user: Dict[str, Any] = Depends(get_current_user), store=Depends(get_store)):
    return {"leases": leases.tenant_leases(store, user)}


@router.post("/api/tenant/leases/{lease_id}/sign")
def sign(
    lease_id: str,
    payload: SignaturePayload,
    user: Dict[str, Any] = Depends(get_current_user),
    store=Depends(get_store),
):
    return {"lease": leases.tenant_sign(store, user, lease_id, payload.signature_data_url)}


@router.get("/api/tenant/dashboard")
def tenant_dashboard(user: Dict[str, Any] = Depends(get_current_user), store=Depends(get_store)):
    return dashboard.tenant_dashboard(store, user)
