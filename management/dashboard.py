from __future__ import annotations

from typing import Any, Dict

from management import invoices, leases


def tenant_dashboard(store, tenant: Dict[str, Any]) -> Dict[str, Any]:
    my_leases = leases.tenant_leases(store, tenant)
    active = next((l for l in my_leases if l.get("status") == "active"), None)
    pending = next((l for l in my_leases if l.get("status") == "pending"), None)
    open_invoices = invoices.tenant_open_invoices(store, tenant)

    methods = []
    landlord_id = ((active or {}).get("property") or {}).get("landlord_id")
    if landlord_id:
        methods = invoices.list_payment_methods(store, landlord_id, active_only=True)

    if active:
        lease_status = "Active"
    elif pending:
        lease_status = "Pending Signature"
    else:
        lease_status = "None"
    return {
        "leases": my_leases,
        "active_lease": active,
        "pending_lease": pending,
        "invoices": open_invoices,
        "recent_payments": invoices.recent_payments(store, tenant),
        "payment_methods": methods,
        "stats": {
            "rent_amount": float(active["rent_amount"]) if active else 0.0,
            "next_due": open_invoices[0]["due_date"] if open_invoices else None,
            "lease_status": lease_status,
            "open_requests": store.count(
                "maintenance_requests", {"tenant_id": tenant["id"], "status": ["open", "in_progress"]}
            ),
        },
    }
