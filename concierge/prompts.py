from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

from telemetry.prompt_filters import INJECTION_REMINDER

DEFAULT_PROPERTY_NAME = "the property"
EMPTY_KNOWLEDGE = "(no knowledge base entries)"

CONCIERGE_TEMPLATE = (
    "You are I.R.I.S., a helpful and polite AI property concierge for {property_name}.\n\n"
    "Your goal is to provide clear and concise answers to tenant questions.\n"
    "Be friendly but professional. Use a natural, conversational tone, but keep it brief.\n"
    'For example, instead of just the answer, say something like "Hi, the Wi-Fi password is **12345**."\n'
    "Avoid excessive enthusiasm (like multiple emojis) or long introductions.\n"
    "If the answer involves a code or password (like Wi-Fi), bold it using markdown (e.g., **password**).\n"
    "Use ONLY the knowledge base items below. If the answer is not present, politely state you don't know "
    "and suggest contacting the landlord.\n\n"
    "Knowledge Base:\n{knowledge}\n\n"
    "Tenant Question: {question}"
)

MAINTENANCE_TEMPLATE = (
    "You triage maintenance requests for a residential property manager.\n"
    "Read the tenant's description (and photo, if attached) and reply with ONLY a JSON object with keys:\n"
    '  "category": one of "Plumbing", "Electrical", "Security", "HVAC", "Appliance", "Structural", '
    '"Pest Control", "General Maintenance";\n'
    '  "severity": one of "Critical", "High", "Medium", "Low";\n'
    '  "summary": one or two sentences on the risk;\n'
    '  "action": the recommended next step for the landlord;\n'
    '  "estimatedCost": a cost range string such as "$150 - $400";\n'
    '  "confidence": a number between 0 and 1.\n\n'
    "Tenant description: {description}"
)


def build_knowledge_context(items: Iterable[Dict[str, Any]]) -> str:
    return "\n".join(f"- [{item.get('category')}] {item.get('topic')}: {item.get('content')}" for item in items)


def concierge_messages(
    question: str,
    knowledge_items: List[Dict[str, Any]],
    property_name: Optional[str] = None,
    *,
    injection_flagged: bool = False,
) -> List[Dict[str, Any]]:
    prompt = CONCIERGE_TEMPLATE.format(
        property_name=(property_name or "").strip() or DEFAULT_PROPERTY_NAME,
        knowledge=build_knowledge_context(knowledge_items) or EMPTY_KNOWLEDGE,
        question=question,
    )
    messages: List[Dict[str, Any]] = []
    if injection_flagged:
        messages.append({"role": "system", "content": INJECTION_REMINDER})
    messages.append({"role": "user", "content": prompt})
    return messages


def maintenance_messages(description: str, image_data_url: Optional[str] = None) -> List[Dict[str, Any]]:
    text = MAINTENANCE_TEMPLATE.format(description=description)
    if not image_data_url:
        return [{"role": "user", "content": text}]
    return [
        {
            "role": "user",
            "content": [
                {"type": "text", "text": text},
                {"type": "image_url", "image_url": {"url": image_data_url}},
            ],
        }
    ]
