"""
Operator commands for the iReside API.

    ireside serve --port 8000
    ireside make-admin ops@example.com
    ireside overdue-invoices --mark
    ireside seed-amenities
    ireside metrics --limit 200
"""

from __future__ import annotations

import argparse
import json
import sys
from typing import List, Optional

from management.errors import ManagementError
from management.invoices import mark_overdue_invoices
from management.listings import seed_amenities
from management.profiles import find_profile_by_email, set_role
from server.settings import get_settings
from storage.factory import build_store, is_demo_store
from telemetry.logging_utils import configure_logging
from telemetry.metrics import fetch_metrics, set_metrics_store, summarize_metrics


def _store():
    settings = get_settings()
    store = build_store(settings.supabase_url, settings.supabase_key)
    if not is_demo_store(store):
        set_metrics_store(store)
    return store


def _serve(args: argparse.Namespace) -> int:
    import uvicorn

    from server.app import create_app

    settings = get_settings()
    if args.host:
        settings.host = args.host
    if args.port:
        settings.port = args.port
    uvicorn.run(create_app(settings=settings), host=settings.host, port=settings.port, log_config=None)
    return 0


def _make_admin(args: argparse.Namespace) -> int:
    store = _store()
    profile = find_profile_by_email(store, args.email)
    if not profile:
        print(f"No profile found for {args.email}", file=sys.stderr)
        return 1
    set_role(store, profile["id"], "admin")
    print(f"{args.email} is now an admin")
    return 0


def _overdue_invoices(args: argparse.Namespace) -> int:
    late = mark_overdue_invoices(_store(), apply=args.mark)
    for invoice in late:
        print(f"{invoice['id']}  {invoice.get('tenant_name')}  {invoice.get('amount')}  due {invoice.get('due_date')}")
    verb = "Marked" if args.mark else "Found"
    print(f"{verb} {len(late)} overdue invoice(s)")
    return 0


def _seed_amenities(args: argparse.Namespace) -> int:
    added = seed_amenities(_store())
    print(f"Added {added} amenities")
    return 0


def _metrics(args: argparse.Namespace) -> int:
    _store()
    summary = summarize_metrics(fetch_metrics(args.limit))
    print(json.dumps(summary, indent=2, default=str))
    return 0


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="ireside", description="iReside API management")
    parser.add_argument("--log-level", help="Override LOG_LEVEL for this run (DEBUG, INFO, ...).")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP API with uvicorn.")
    serve.add_argument("--host", help="Bind address (defaults to HOST or 0.0.0.0).")
    serve.add_argument("--port", type=int, help="Port (defaults to PORT or 8000).")
    serve.set_defaults(handler=_serve)

    admin = sub.add_parser("make-admin", help="Grant the admin role to an existing account.")
    admin.add_argument("email")
    admin.set_defaults(handler=_make_admin)

    overdue = sub.add_parser("overdue-invoices", help="List pending invoices past their due date.")
    overdue.add_argument("--mark", action="store_true", help="Persist the overdue status.")
    overdue.set_defaults(handler=_overdue_invoices)

    seed = sub.add_parser("seed-amenities", help="Insert the default amenity catalog.")
    seed.set_defaults(handler=_seed_amenities)

    metrics = sub.add_parser("metrics", help="Summarize AI usage metrics.")
    metrics.add_argument("--limit", type=int, default=500)
    metrics.set_defaults(handler=_metrics)
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(argv)
    if args.log_level:
        configure_logging(args.log_level, force=True)
    try:
        return args.handler(args)
    except ManagementError as exc:
        print(exc.message, file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
