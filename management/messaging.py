"""Two-party conversations, polled by clients with ``since``."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from management.common import get_or_404, index_by_id, now_iso
from management.errors import NotFoundError, PermissionDeniedError, ValidationError
from management.leases import active_lease, lease_context
from telemetry.logging_utils import get_logger

logger = get_logger(__name__)

MAX_MESSAGE_LENGTH = 4000


def _conversations_of(store, user_id: str) -> List[Dict[str, Any]]:
    rows = store.select("conversations", {"participant1_id": user_id}) + store.select(
        "conversations", {"participant2_id": user_id}
    )
    unique = {row["id"]: row for row in rows}
    return sorted(unique.values(), key=lambda c: c.get("updated_at") or c.get("created_at") or "", reverse=True)


def other_participant_id(conversation: Dict[str, Any], user_id: str) -> str:
    if conversation.get("participant1_id") == user_id:
        return conversation.get("participant2_id")
    return conversation.get("participant1_id")


def _participant_conversation(store, user: Dict[str, Any], conversation_id: str) -> Dict[str, Any]:
    convo = get_or_404(store, "conversations", conversation_id, "Conversation")
    if user["id"] not in (convo.get("participant1_id"), convo.get("participant2_id")):
        raise PermissionDeniedError("You are not part of this conversation")
    return convo


def list_conversations(store, user: Dict[str, Any], search: Optional[str] = None) -> List[Dict[str, Any]]:
    convos = _conversations_of(store, user["id"])
    other_ids = list({other_participant_id(c, user["id"]) for c in convos})
    people = index_by_id(store.select("profiles", {"id": other_ids})) if other_ids else {}
    listing_ids = list({c["listing_id"] for c in convos if c.get("listing_id")})
    listings = index_by_id(store.select("property_listings", {"id": listing_ids})) if listing_ids else {}

    term = (search or "").strip().lower()
    result = []
    for convo in convos:
        other_id = other_participant_id(convo, user["id"])
        person = people.get(other_id)
        other = {
            "id": other_id,
            "full_name": (person or {}).get("full_name") or "Unknown User",
            "avatar_url": (person or {}).get("avatar_url"),
            "role": (person or {}).get("role") or "tenant",
        }
        listing = listings.get(convo.get("listing_id"))
        listing_title = listing.get("title") if listing else None
        if term and term not in other["full_name"].lower() and term not in (listing_title or "").lower():
            continue
        last = store.select("messages", {"conversation_id": convo["id"]}, order="created_at", desc=True, limit=1)
        result.append(
            {
                **convo,
                "other_participant": other,
                "listing": {"id": listing["id"], "title": listing_title} if listing else None,
                "last_message": last[0] if last else None,
            }
        )
    return result


def list_messages(
    store, user: Dict[str, Any], conversation_id: str, since: Optional[str] = None
) -> List[Dict[str, Any]]:
    _participant_conversation(store, user, conversation_id)
    messages = store.select("messages", {"conversation_id": conversation_id}, order="created_at")
    if since:
        messages = [m for m in messages if (m.get("created_at") or "") > since]
    return messages


def send_message(store, user: Dict[str, Any], conversation_id: str, content: str) -> Dict[str, Any]:
    _participant_conversation(store, user, conversation_id)
    text = (content or "").strip()
    if not text:
        raise ValidationError("Message cannot be empty")
    if len(text) > MAX_MESSAGE_LENGTH:
        raise ValidationError(f"Message must be at most {MAX_MESSAGE_LENGTH} characters")
    message = store.insert(
        "messages", {"conversation_id": conversation_id, "sender_id": user["id"], "content": text}
    )
    store.update("conversations", {"updated_at": now_iso()}, {"id": conversation_id})
    logger.info("message_sent", extra={"conversation_id": conversation_id, "sender_id": user["id"]})
    return message


def find_or_create_conversation(
    store, user_a: str, user_b: str, listing_id: Optional[str] = None
) -> Dict[str, Any]:
    """Reuse the (a, b, listing) conversation in either participant order, else start one."""
    for first, second in ((user_a, user_b), (user_b, user_a)):
        existing = store.select_one(
            "conversations",
            {"participant1_id": first, "participant2_id": second, "listing_id": listing_id},
        )
        if existing:
            return existing
    stamp = now_iso()
    convo = store.insert(
        "conversations",
        {"participant1_id": user_a, "participant2_id": user_b, "listing_id": listing_id, "updated_at": stamp},
    )
    logger.info("conversation_started", extra={"conversation_id": convo["id"], "listing_id": listing_id})
    return convo


def start_direct_conversation(store, user: Dict[str, Any], other_user_id: str) -> Dict[str, Any]:
    if not other_user_id:
        raise ValidationError("Recipient is required")
    if other_user_id == user["id"]:
        raise ValidationError("You cannot message yourself")
    if not store.select_one("profiles", {"id": other_user_id}):
        raise NotFoundError("User not found")
    return find_or_create_conversation(store, user["id"], other_user_id, None)


def participant_unit(store, user: Dict[str, Any], conversation_id: str) -> Optional[Dict[str, Any]]:
    """Unit and property of the other participant's active lease, when they are a tenant."""
    convo = _participant_conversation(store, user, conversation_id)
    other_id = other_participant_id(convo, user["id"])
    lease = active_lease(store, other_id)
    if not lease:
        return None
    context = lease_context(store, lease)
    return {"unit": context["unit"], "property": context["property"]}
