from __future__ import annotations

from typing import Any, Dict, List, Optional

from concierge.prompts import concierge_messages
from telemetry.logging_utils import get_logger
from telemetry.prompt_filters import detect_prompt_injection

logger = get_logger(__name__)


def load_knowledge(store, property_id: Optional[str]) -> List[Dict[str, Any]]:
    """Knowledge base rows of a property, newest first."""
    if not property_id:
        return []
    return store.select(
        "property_knowledge_base",
        {"property_id": property_id},
        columns="category, topic, content, created_at",
        order="created_at",
        desc=True,
    )


def answer_question(
    ai,
    model: str,
    question: str,
    knowledge_items: List[Dict[str, Any]],
    *,
    property_name: Optional[str] = None,
    user_id: Optional[str] = None,
) -> str:
    injection = detect_prompt_injection(question)
    if injection:
        logger.warning("concierge_injection_flagged", extra={"user_id": user_id, "pattern": injection})
    messages = concierge_messages(question, knowledge_items, property_name, injection_flagged=bool(injection))
    reply = ai.complete(model, messages, component="concierge", subject_id=user_id)
    logger.info(
        "concierge_reply",
        extra={"user_id": user_id, "knowledge_items": len(knowledge_items), "reply_length": len(reply)},
    )
    return reply
