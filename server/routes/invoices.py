from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from pydantic import BaseModel

from management import invoices
from server.deps import get_current_user, get_store, require_landlord, to_blob

router = APIRouter(tags=["invoices"])


class InvoicePayload(BaseModel):
    tenant_name: str = ""
    tenant_email: Optional[str] = None
    unit_id: Optional[str] = None
    description: Optional[str] = None
    amount: Optional[float] = None
    due_date: Optional[str] = None


class StatusPayload(BaseModel):
    status: str


class ReviewPayload(BaseModel):
    action: str


class PaymentMethodUpdate(BaseModel):
    label: Optional[str] = None
    account_name: Optional[str] = None
    account_number: Optional[str] = None
    qr_url: Optional[str] = None
    instructions: Optional[str] = None
    is_active: Optional[bool] = None


@router.get("/api/invoices")
def list_invoices(
    status: Optional[str] = None,
    search: Optional[str] = None,
    landlord: Dict[str, Any] = Depends(require_landlord),
    store=Depends(get_store),
):
    return invoices.list_invoices(store, landlord, status=status, search=search)


@router.post("/api/invoices")
def create_invoice(
    payload: InvoicePayload, landlord: Dict[str, Any] = Depends(require_landlord), store=Depends(get_store)
):
    return {"invoice": invoices.create_invoice(store, landlord, payload.model_dump())}


@router.post("/api/invoices/{invoice_id}/status")
def set_status(
    invoice_id: str,
    payload: StatusPayload,
    landlord: Dict[str, Any] = Depends(require_landlord),
    store=Depends(get_store),
):
    return {"invoice": invoices.set_invoice_status(store, landlord, invoice_id, payload.status)}


@router.get("/api/payment-methods")
def payment_methods(landlord: Dict[str, Any] = Depends(require_landlord), store=Depends(get_store)):
    return {"payment_methods": invoices.list_payment_methods(store, landlord["id"])}


@router.post("/api/payment-methods")
def create_payment_method(
    label: str = Form(""),
    account_name: str = Form(""),
    account_number: str = Form(""),
    instructions: str = Form(""),
    is_active: bool = Form(True),
    qr_image: Optional[UploadFile] = File(None),
    landlord: Dict[str, Any] = Depends(require_landlord),
    store=Depends(get_store),
):
    payload = {
        "label": label,
        "account_name": account_name,
        "account_number": account_number,
        "instructions": instructions,
        "is_active": is_active,
    }
    method = invoices.create_payment_method(store, landlord, payload, to_blob(qr_image))
    return {"payment_method": method}


@router.patch("/api/payment-methods/{method_id}")
def update_payment_method(
    method_id: str,
    payload: PaymentMethodUpdate,
    landlord: Dict[str, Any] = Depends(require_landlord),
    store=Depends(get_store),
):
    method = invoices.update_payment_method(store, landlord, method_id, payload.model_dump(exclude_unset=True))
    return {"payment_method": method}


@router.delete("/api/payment-methods/{method_id}")
def delete_payment_method(
    method_id: str, landlord: Dict[str, Any] = Depends(require_landlord), store=Depends(get_store)
):
    invoices.delete_payment_method(store, landlord, method_id)
    return {"ok": True}


@router.get("/api/payment-submissions")
def submissions(landlord: Dict[str, Any] = Depends(require_landlord), store=Depends(get_store)):
    return {"submissions": invoices.list_submissions(store, landlord)}


@router.post("/api/payment-submissions/{submission_id}/review")
def review(
    submission_id: str,
    payload: ReviewPayload,
    landlord: Dict[str, Any] = Depends(require_landlord),
    store=Depends(get_store),
):
    return {"submission": invoices.review_submission(store, landlord, submission_id, payload.action)}


@router.get("/api/tenant/invoices")
def my_invoices(user: Dict[str, Any] = Depends(get_current_user), store=Depends(get_store)):
    return {"invoices": invoices.tenant_open_invoices(store, user)}


@router.post("/api/tenant/payments")
def submit_payment(
    invoice_id: str = Form(""),
    payment_method_id: str = Form(""),
    reference_number: str = Form(""),
    receipt: Optional[UploadFile] = File(None),
    user: Dict[str, Any] = Depends(get_current_user),
    store=Depends(get_store),
):
    submission = invoices.submit_payment(
        store,
        user,
        invoice_id,
        to_blob(receipt),
        payment_method_id=payment_method_id or None,
        reference_number=reference_number,
    )
    return {"submission": submission}
