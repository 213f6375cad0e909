"""Maintenance triage: model-backed JSON analysis with a keyword fallback."""

from __future__ import annotations

import json
import re
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, ValidationError

from concierge.prompts import maintenance_messages
from telemetry.logging_utils import get_logger

logger = get_logger(__name__)

SEVERITIES = ("Critical", "High", "Medium", "Low")
SEVERITY_TO_PRIORITY = {"Critical": "critical", "High": "warning", "Medium": "info", "Low": "info"}
FALLBACK_CONFIDENCE = 0.95
_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)

# (keywords, category, severity, summary, action, cost), checked in order.
KEYWORD_RULES = [
    (
        ("leak", "water", "drip", "plumbing"),
        "Plumbing",
        "High",
        "Detected potential water damage risk. Leaks can lead to structural damage and mold if not addressed immediately.",
        "Shut off water supply if possible. Dispatch a licensed plumber immediately to locate and seal the leak.",
        "$150 - $400",
    ),
    (
        ("smoke", "fire", "spark", "electric"),
        "Electrical",
        "Critical",
        "Potential fire hazard reported. Electrical issues represent a significant safety risk to tenants and property.",
        "Advise tenant to turn off main breaker if safe. Dispatch emergency electrician immediately.",
        "$200 - $600",
    ),
    (
        ("lock", "door", "key"),
        "Security",
        "High",
        "Property security may be compromised. Unsecured entry points create liability and safety concerns.",
        "Dispatch locksmith to repair or replace the lock mechanism.",
        "$100 - $250",
    ),
    (
        ("ac", "heat", "cool"),
        "HVAC",
        "Medium",
        "Climate control system reported malfunctioning. This affects tenant habitability comfort.",
        "Check thermostat settings. Schedule HVAC technician for inspection.",
        "$150 - $500",
    ),
]
DEFAULT_RULE = (
    "General Maintenance",
    "Medium",
    "The tenant has reported a maintenance issue that requires attention.",
    "Schedule a visit to inspect the issue.",
    "$50 - $150",
)


class MaintenanceAnalysis(BaseModel):
    category: str
    severity: str
    summary: str
    action: str
    estimatedCost: str
    confidence: float = Field(ge=0, le=1)
    source: str = "model"

    def priority(self) -> str:
        return SEVERITY_TO_PRIORITY.get(self.severity, "info")


def keyword_triage(description: str) -> MaintenanceAnalysis:
    lowered = description.lower()
    for keywords, category, severity, summary, action, cost in KEYWORD_RULES:
        if any(word in lowered for word in keywords):
            break
    else:
        category, severity, summary, action, cost = DEFAULT_RULE
    return MaintenanceAnalysis(
        category=category,
        severity=severity,
        summary=summary,
        action=action,
        estimatedCost=cost,
        confidence=FALLBACK_CONFIDENCE,
        source="keywords",
    )


def parse_analysis(text: str) -> Optional[MaintenanceAnalysis]:
    """Parse a model reply; None when it is not the expected JSON object."""
    cleaned = _FENCE_RE.sub("", (text or "").strip())
    try:
        data: Any = json.loads(cleaned)
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict):
        return None
    severity = str(data.get("severity") or "").strip().capitalize()
    if severity not in SEVERITIES:
        return None
    data["severity"] = severity
    data["estimatedCost"] = str(data.get("estimatedCost") or "")
    try:
        return MaintenanceAnalysis.model_validate({**data, "source": "model"})
    except ValidationError as exc:
        logger.warning("maintenance_analysis_invalid", extra={"error": str(exc)[:200]})
        return None


def analyze_request(
    ai,
    model: str,
    description: str,
    image_data_url: Optional[str] = None,
    subject_id: Optional[str] = None,
) -> MaintenanceAnalysis:
    """Ask the model for a triage; fall back to keywords when it is unavailable or unparseable."""
    if not isinstance(description, str) or not description.strip():
        raise ValueError("description is required")
    if ai is None:
        return keyword_triage(description)
    try:
        reply = ai.complete(
            model,
            maintenance_messages(description.strip(), image_data_url),
            component="maintenance_analysis",
            subject_id=subject_id,
            json_mode=True,
            temperature=0.0,
        )
    except Exception as exc:  # any provider failure degrades to keyword triage
        logger.warning("maintenance_model_failed", extra={"error": str(exc)[:200]})
        return keyword_triage(description)
    analysis = parse_analysis(reply)
    if analysis is None:
        logger.info("maintenance_model_unparseable", extra={"reply_length": len(reply or "")})
        return keyword_triage(description)
    return analysis


def analysis_payload(analysis: MaintenanceAnalysis) -> Dict[str, Any]:
    return analysis.model_dump(exclude={"source"})
