"""Invoices, landlord payment methods and tenant payment submissions."""

from __future__ import annotations

import uuid
from datetime import date
from typing import Any, Dict, List, Optional

from management.common import (
    FileBlob,
    get_or_404,
    index_by_id,
    now_iso,
    parse_date,
    timestamp_ms,
    today,
    upload_blob,
)
from management.errors import ConflictError, PermissionDeniedError, ValidationError
from telemetry.logging_utils import get_logger

logger = get_logger(__name__)

INVOICE_STATUSES = ("pending", "paid", "overdue")
OPEN_INVOICE_STATUSES = ("pending", "overdue")
REVIEW_ACTIONS = ("approved", "rejected")
RECEIPT_BUCKET = "payment-receipts"


def effective_status(invoice: Dict[str, Any], as_of: Optional[date] = None) -> str:
    """Pending invoices past their due date read as overdue."""
    status = invoice.get("status") or "pending"
    if status == "pending" and invoice.get("due_date"):
        if parse_date(invoice["due_date"], "due_date") < (as_of or today()):
            return "overdue"
    return status


def _owned_invoice(store, landlord: Dict[str, Any], invoice_id: str) -> Dict[str, Any]:
    invoice = get_or_404(store, "invoices", invoice_id, "Invoice")
    if invoice.get("landlord_id") != landlord["id"]:
        raise PermissionDeniedError("This invoice belongs to another landlord")
    return invoice


def create_invoice(store, landlord: Dict[str, Any], payload: Dict[str, Any]) -> Dict[str, Any]:
    tenant_name = (payload.get("tenant_name") or "").strip()
    if not tenant_name:
        raise ValidationError("Tenant name is required")
    try:
        amount = float(payload.get("amount"))
    except (TypeError, ValueError):
        raise ValidationError("Amount must be a number")
    if amount <= 0:
        raise ValidationError("Amount must be greater than zero")
    if not payload.get("due_date"):
        raise ValidationError("Due date is required")
    due = parse_date(payload["due_date"], "due_date")
    unit_id = payload.get("unit_id") or None
    if unit_id:
        unit = get_or_404(store, "units", unit_id, "Unit")
        prop = store.select_one("properties", {"id": unit["property_id"]})
        if not prop or prop.get("landlord_id") != landlord["id"]:
            raise PermissionDeniedError("You do not manage this unit")
    invoice = store.insert(
        "invoices",
        {
            "landlord_id": landlord["id"],
            "unit_id": unit_id,
            "tenant_name": tenant_name,
            "tenant_email": (payload.get("tenant_email") or "").strip().lower() or None,
            "description": (payload.get("description") or "").strip() or None,
            "amount": amount,
            "due_date": due.isoformat(),
            "status": "pending",
            "paid_at": None,
        },
    )
    logger.info("invoice_created", extra={"invoice_id": invoice["id"], "landlord_id": landlord["id"]})
    return invoice


def invoice_stats(invoices: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {
        "total": len(invoices),
        "paid": sum(1 for i in invoices if i["status"] == "paid"),
        "pending": sum(1 for i in invoices if i["status"] == "pending"),
        "overdue": sum(1 for i in invoices if i["status"] == "overdue"),
        "paid_amount": sum(float(i.get("amount") or 0) for i in invoices if i["status"] == "paid"),
    }


def list_invoices(
    store, landlord: Dict[str, Any], *, status: Optional[str] = None, search: Optional[str] = None
) -> Dict[str, Any]:
    if status and status != "all" and status not in INVOICE_STATUSES:
        raise ValidationError(f"Unknown invoice status: {status}")
    invoices = store.select("invoices", {"landlord_id": landlord["id"]}, order="created_at", desc=True)
    as_of = today()
    for invoice in invoices:
        invoice["status"] = effective_status(invoice, as_of)
    stats = invoice_stats(invoices)
    term = (search or "").strip().lower()
    filtered = []
    for invoice in invoices:
        if status and status != "all" and invoice["status"] != status:
            continue
        if term:
            haystack = " ".join(
                str(invoice.get(k) or "") for k in ("tenant_name", "tenant_email", "description")
            ).lower()
            if term not in haystack:
                continue
        filtered.append(invoice)
    return {"invoices": filtered, "stats": stats}


def set_invoice_status(store, landlord: Dict[str, Any], invoice_id: str, status: str) -> Dict[str, Any]:
    _owned_invoice(store, landlord, invoice_id)
    if status not in INVOICE_STATUSES:
        raise ValidationError(f"Unknown invoice status: {status}")
    values = {"status": status, "paid_at": now_iso() if status == "paid" else None}
    updated = store.update("invoices", values, {"id": invoice_id})[0]
    logger.info("invoice_status_changed", extra={"invoice_id": invoice_id, "status": status})
    return updated


def mark_overdue_invoices(store, as_of: Optional[date] = None, *, apply: bool = False) -> List[Dict[str, Any]]:
    """Pending invoices past due; persisted as ``overdue`` when ``apply`` is set."""
    as_of = as_of or today()
    late = [inv for inv in store.select("invoices", {"status": "pending"}) if effective_status(inv, as_of) == "overdue"]
    if apply and late:
        store.update("invoices", {"status": "overdue"}, {"id": [inv["id"] for inv in late]})
        logger.info("invoices_marked_overdue", extra={"count": len(late)})
    return late


# Payment methods -----------------------------------------------------------
def list_payment_methods(store, landlord_id: str, *, active_only: bool = False) -> List[Dict[str, Any]]:
    filters: Dict[str, Any] = {"landlord_id": landlord_id}
    if active_only:
        filters["is_active"] = True
    return store.select("payment_methods", filters, order="created_at", desc=True)


def create_payment_method(
    store, landlord: Dict[str, Any], payload: Dict[str, Any], qr_image: Optional[FileBlob] = None
) -> Dict[str, Any]:
    label = (payload.get("label") or "").strip()
    if not label:
        raise ValidationError("Label is required")
    qr_url = payload.get("qr_url") or None
    if qr_image is not None and qr_image.data:
        qr_url = upload_blob(
            store, RECEIPT_BUCKET, f"{landlord['id']}/qr_{timestamp_ms()}.{qr_image.extension}", qr_image
        )
    return store.insert(
        "payment_methods",
        {
            "landlord_id": landlord["id"],
            "label": label,
            "account_name": (payload.get("account_name") or "").strip() or None,
            "account_number": (payload.get("account_number") or "").strip() or None,
            "qr_url": qr_url,
            "instructions": (payload.get("instructions") or "").strip() or None,
            "is_active": bool(payload.get("is_active", True)),
        },
    )


def update_payment_method(store, landlord: Dict[str, Any], method_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    method = get_or_404(store, "payment_methods", method_id, "Payment method")
    if method.get("landlord_id") != landlord["id"]:
        raise PermissionDeniedError("This payment method belongs to another landlord")
    allowed = ("label", "account_name", "account_number", "qr_url", "instructions", "is_active")
    values = {k: payload[k] for k in allowed if k in payload and payload[k] is not None}
    if "label" in values and not str(values["label"]).strip():
        raise ValidationError("Label cannot be empty")
    if not values:
        return method
    return store.update("payment_methods", values, {"id": method_id})[0]


def delete_payment_method(store, landlord: Dict[str, Any], method_id: str) -> None:
    method = get_or_404(store, "payment_methods", method_id, "Payment method")
    if method.get("landlord_id") != landlord["id"]:
        raise PermissionDeniedError("This payment method belongs to another landlord")
    store.delete("payment_methods", {"id": method_id})


# Payment submissions -------------------------------------------------------
def tenant_open_invoices(store, tenant: Dict[str, Any]) -> List[Dict[str, Any]]:
    email = (tenant.get("email") or "").lower()
    if not email:
        return []
    invoices = store.select(
        "invoices", {"tenant_email": email, "status": list(OPEN_INVOICE_STATUSES)}, order="due_date"
    )
    for invoice in invoices:
        invoice["status"] = effective_status(invoice)
    return invoices


def submit_payment(
    store,
    tenant: Dict[str, Any],
    invoice_id: str,
    receipt: Optional[FileBlob],
    *,
    payment_method_id: Optional[str] = None,
    reference_number: Optional[str] = None,
) -> Dict[str, Any]:
    invoice = next((i for i in tenant_open_invoices(store, tenant) if i["id"] == invoice_id), None)
    if not invoice:
        raise ValidationError("Select an invoice to pay.")
    if receipt is None or not receipt.data:
        raise ValidationError("Upload your payment receipt.")
    if payment_method_id:
        method = store.select_one("payment_methods", {"id": payment_method_id})
        if not method or method.get("landlord_id") != invoice["landlord_id"] or not method.get("is_active"):
            raise ValidationError("Payment method is not available for this invoice")
    if store.select_one("payment_submissions", {"invoice_id": invoice_id, "status": "pending"}):
        raise ConflictError("A payment for this invoice is already awaiting review")

    path = f"{tenant['id']}/{invoice_id}_{uuid.uuid4().hex}.{receipt.extension}"
    receipt_url = upload_blob(store, RECEIPT_BUCKET, path, receipt)
    submission = store.insert(
        "payment_submissions",
        {
            "invoice_id": invoice_id,
            "landlord_id": invoice["landlord_id"],
            "tenant_id": tenant["id"],
            "tenant_email": tenant.get("email"),
            "payment_method_id": payment_method_id or None,
            "amount": invoice["amount"],
            "reference_number": (reference_number or "").strip() or None,
            "receipt_url": receipt_url,
            "status": "pending",
            "reviewed_by": None,
            "reviewed_at": None,
        },
    )
    logger.info("payment_submitted", extra={"submission_id": submission["id"], "invoice_id": invoice_id})
    return submission


def list_submissions(store, landlord: Dict[str, Any]) -> List[Dict[str, Any]]:
    submissions = store.select("payment_submissions", {"landlord_id": landlord["id"]}, order="created_at", desc=True)
    invoice_ids = list({s["invoice_id"] for s in submissions})
    invoices = index_by_id(store.select("invoices", {"id": invoice_ids})) if invoice_ids else {}
    for submission in submissions:
        invoice = invoices.get(submission["invoice_id"]) or {}
        submission["invoice"] = {
            k: invoice.get(k) for k in ("id", "tenant_name", "tenant_email", "description", "amount", "due_date")
        }
    return submissions


def review_submission(store, landlord: Dict[str, Any], submission_id: str, action: str) -> Dict[str, Any]:
    if action not in REVIEW_ACTIONS:
        raise ValidationError("Action must be approved or rejected")
    submission = get_or_404(store, "payment_submissions", submission_id, "Payment submission")
    if submission.get("landlord_id") != landlord["id"]:
        raise PermissionDeniedError("This submission belongs to another landlord")
    if submission.get("status") != "pending":
        raise ConflictError(f"Submission already {submission.get('status')}")
    updated = store.update(
        "payment_submissions",
        {"status": action, "reviewed_by": landlord["id"], "reviewed_at": now_iso()},
        {"id": submission_id},
    )[0]
    if action == "approved":
        store.update("invoices", {"status": "paid", "paid_at": now_iso()}, {"id": submission["invoice_id"]})
    logger.info("payment_reviewed", extra={"submission_id": submission_id, "action": action})
    return updated


def recent_payments(store, tenant: Dict[str, Any], limit: int = 5) -> List[Dict[str, Any]]:
    payments = store.select(
        "payment_submissions", {"tenant_id": tenant["id"]}, order="created_at", desc=True, limit=limit
    )
    invoice_ids = list({p["invoice_id"] for p in payments})
    invoices = index_by_id(store.select("invoices", {"id": invoice_ids})) if invoice_ids else {}
    for payment in payments:
        payment["invoice"] = {"description": (invoices.get(payment["invoice_id"]) or {}).get("description")}
    return payments
