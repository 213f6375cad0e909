from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

from concierge.client import DEFAULT_BASE_URL, DEFAULT_MAX_RETRIES, DEFAULT_MODEL, DEFAULT_TIMEOUT
from management.geocoding import DEFAULT_GEOCODER_URL

load_dotenv()


def _csv_env(name: str, default: str) -> List[str]:
    return [part.strip() for part in os.getenv(name, default).split(",") if part.strip()]


@dataclass
class Settings:
    supabase_url: Optional[str] = field(default_factory=lambda: os.getenv("SUPABASE_URL"))
    supabase_key: Optional[str] = field(default_factory=lambda: os.getenv("SUPABASE_SERVICE_ROLE_KEY"))
    gemini_api_key: Optional[str] = field(default_factory=lambda: os.getenv("GEMINI_API_KEY"))
    gemini_base_url: str = field(default_factory=lambda: os.getenv("GEMINI_BASE_URL", DEFAULT_BASE_URL))
    concierge_model: str = field(default_factory=lambda: os.getenv("CONCIERGE_MODEL", DEFAULT_MODEL))
    maintenance_model: str = field(default_factory=lambda: os.getenv("MAINTENANCE_MODEL", DEFAULT_MODEL))
    cors_origins: List[str] = field(default_factory=lambda: _csv_env("CORS_ORIGINS", "*"))
    geocoder_url: str = field(default_factory=lambda: os.getenv("GEOCODER_URL", DEFAULT_GEOCODER_URL))
    host: str = field(default_factory=lambda: os.getenv("HOST", "0.0.0.0"))
    port: int = field(default_factory=lambda: int(os.getenv("PORT", "8000")))
    ai_timeout: float = field(default_factory=lambda: float(os.getenv("AI_TIMEOUT", str(DEFAULT_TIMEOUT))))
    ai_max_retries: int = field(default_factory=lambda: int(os.getenv("AI_MAX_RETRIES", str(DEFAULT_MAX_RETRIES))))


def get_settings() -> Settings:
    return Settings()
