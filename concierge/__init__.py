"""
AI concierge package.

Wraps the generative-language model behind two features: the I.R.I.S.
tenant concierge grounded on a property's knowledge base, and maintenance
request triage.
"""

from .client import GeminiClient, build_ai_client
from .maintenance import MaintenanceAnalysis, analyze_request, keyword_triage

__all__ = ["GeminiClient", "build_ai_client", "MaintenanceAnalysis", "analyze_request", "keyword_triage"]
