from __future__ import annotations

from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from concierge.client import build_ai_client
from management.errors import ManagementError
from management.geocoding import NominatimGeocoder
from management.listings import seed_amenities
from server.routes import (
    account,
    admin,
    ai,
    auth,
    community,
    inquiries,
    invoices,
    leases,
    listings,
    maintenance,
    messages,
    properties,
)
from server.settings import Settings, get_settings
from storage.factory import build_store, is_demo_store
from telemetry.logging_utils import get_logger, timed_operation
from telemetry.metrics import set_metrics_store

logger = get_logger(__name__)

_UNSET: Any = object()

_LOCATION_PREFIXES = ("body", "query", "path", "form", "header")


def describe_validation_errors(errors) -> str:
    """Flatten FastAPI's validation error list into one readable sentence."""
    parts = []
    for error in errors:
        loc = [str(p) for p in error.get("loc", ()) if p not in _LOCATION_PREFIXES]
        field = ".".join(loc)
        parts.append(f"{field}: {error.get('msg')}" if field else str(error.get("msg")))
    return "Invalid request: " + "; ".join(parts or ["malformed body"])


ROUTERS = (
    auth.router,
    account.router,
    admin.router,
    properties.router,
    listings.router,
    inquiries.router,
    leases.router,
    invoices.router,
    maintenance.router,
    messages.router,
    community.router,
    ai.router,
)


def create_app(
    store: Any = None,
    ai_client: Any = _UNSET,
    settings: Optional[Settings] = None,
    geocoder: Any = None,
) -> FastAPI:
    """Build the API. Pass ``store``/``ai_client`` to override what the environment configures."""
    settings = settings or get_settings()
    if store is None:
        store = build_store(settings.supabase_url, settings.supabase_key)
        if is_demo_store(store):
            seed_amenities(store)
            set_metrics_store(None)
        else:
            set_metrics_store(store)
    if ai_client is _UNSET:
        ai_client = build_ai_client(
            settings.gemini_api_key,
            settings.gemini_base_url,
            timeout=settings.ai_timeout,
            max_retries=settings.ai_max_retries,
        )

    app = FastAPI(title="iReside API")
    app.state.settings = settings
    app.state.store = store
    app.state.ai = ai_client
    app.state.geocoder = geocoder or NominatimGeocoder(settings.geocoder_url)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def _log_requests(request: Request, call_next):
        with timed_operation(logger, "http_request", method=request.method, path=request.url.path) as extra:
            response = await call_next(request)
            extra["status_code"] = response.status_code
        return response

    @app.exception_handler(RequestValidationError)
    async def _invalid_request(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"error": describe_validation_errors(exc.errors())})

    @app.exception_handler(ManagementError)
    async def _management_error(request: Request, exc: ManagementError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("request_failed", extra={"path": request.url.path, "error": exc.message})
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.exception_handler(HTTPException)
    async def _http_error(request: Request, exc: HTTPException) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)

    @app.get("/api/health")
    def health():
        return {"ok": True, "demo_mode": is_demo_store(app.state.store), "ai_enabled": app.state.ai is not None}

    for router in ROUTERS:
        app.include_router(router)

    logger.info("app_created", extra={"demo_mode": is_demo_store(store), "ai_enabled": ai_client is not None})
    return app


def main() -> None:
    import uvicorn

    settings = get_settings()
    uvicorn.run(create_app(settings=settings), host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    main()
