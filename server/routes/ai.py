from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from concierge.assistant import answer_question, load_knowledge
from concierge.maintenance import analysis_payload, analyze_request
from management import knowledge
from management.errors import ManagementError
from server.deps import get_ai, get_optional_user, get_settings, get_store, require_landlord
from telemetry.logging_utils import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api/ai", tags=["ai"])


class ConciergePayload(BaseModel):
    question: Optional[str] = None
    propertyId: Optional[str] = None
    propertyName: Optional[str] = None


class KnowledgePayload(BaseModel):
    propertyId: Optional[str] = None
    category: Optional[str] = None
    topic: Optional[str] = None
    content: Optional[str] = None


def _error(status_code: int, message: str, **extra: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, **extra})


def _require_user(user: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return user


@router.post("/concierge")
def concierge(
    payload: ConciergePayload,
    user: Optional[Dict[str, Any]] = Depends(get_optional_user),
    store=Depends(get_store),
    ai=Depends(get_ai),
    settings=Depends(get_settings),
):
    question = (payload.question or "").strip()
    if not question:
        return _error(400, "Question is required")
    if ai is None:
        return _error(500, "GEMINI_API_KEY not configured")
    user = _require_user(user)

    property_id = payload.propertyId
    property_name = payload.propertyName
    if property_id:
        knowledge.require_access(store, user, property_id)
    else:
        context = knowledge.concierge_context(store, user)
        if context:
            property_id = context["propertyId"]
            property_name = property_name or context["propertyName"]

    try:
        items = load_knowledge(store, property_id)
    except Exception as exc:
        logger.error("knowledge_load_failed", extra={"property_id": property_id, "error": str(exc)[:200]})
        return _error(500, "Failed to load knowledge base")

    try:
        reply = answer_question(
            ai, settings.concierge_model, question, items, property_name=property_name, user_id=user["id"]
        )
    except Exception as exc:
        logger.error("concierge_failed", extra={"user_id": user["id"], "error": str(exc)[:200]})
        return _error(500, "Failed to generate response")
    return {"response": reply}


@router.get("/concierge/context")
def concierge_context(user: Optional[Dict[str, Any]] = Depends(get_optional_user), store=Depends(get_store)):
    user = _require_user(user)
    return {"context": knowledge.concierge_context(store, user)}


@router.post("/concierge/knowledge")
def add_knowledge(
    payload: KnowledgePayload,
    user: Optional[Dict[str, Any]] = Depends(get_optional_user),
    store=Depends(get_store),
):
    item = knowledge.clean_item(payload.model_dump())
    user = _require_user(user)
    try:
        row = knowledge.add_item(store, user, item)
    except ManagementError:
        raise
    except Exception as exc:
        logger.error("knowledge_insert_failed", extra={"property_id": item["property_id"], "error": str(exc)[:200]})
        return _error(500, "Failed to add knowledge item", detail=str(exc))
    logger.info("knowledge_item_added", extra={"item_id": row["id"], "property_id": item["property_id"]})
    return {"item": row}


@router.get("/concierge/knowledge")
def list_knowledge(
    propertyId: str, landlord: Dict[str, Any] = Depends(require_landlord), store=Depends(get_store)
):
    return {"items": knowledge.list_items(store, landlord, propertyId)}


@router.delete("/concierge/knowledge/{item_id}")
def delete_knowledge(item_id: str, landlord: Dict[str, Any] = Depends(require_landlord), store=Depends(get_store)):
    knowledge.delete_item(store, landlord, item_id)
    return {"ok": True}


@router.post("/analyze-maintenance")
def analyze_maintenance(
    payload: Dict[str, Any] = Body(...),
    user: Optional[Dict[str, Any]] = Depends(get_optional_user),
    ai=Depends(get_ai),
    settings=Depends(get_settings),
):
    try:
        analysis = analyze_request(
            ai,
            settings.maintenance_model,
            payload.get("description"),
            payload.get("image"),
            subject_id=user["id"] if user else None,
        )
    except (TypeError, ValueError) as exc:
        logger.warning("maintenance_analysis_rejected", extra={"error": str(exc)[:200]})
        return _error(500, "Failed to analyze request")
    return analysis_payload(analysis)
