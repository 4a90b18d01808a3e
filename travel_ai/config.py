"""
Service configuration
Loads settings from environment variables (and a local .env file when present)
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


def _env_timeout(name: str) -> Optional[float]:
    # Unset means the AI call is never timed out.
    raw = (os.getenv(name) or "").strip()
    if not raw or raw.lower() in {"none", "0", "off"}:
        return None
    return float(raw)


@dataclass
class Settings:
    """Application settings loaded from environment"""

    # OpenAI Configuration
    openai_api_key: str = field(default_factory=lambda: os.getenv("OPENAI_API_KEY", ""))
    openai_model: str = field(default_factory=lambda: os.getenv("OPENAI_MODEL", "gpt-4o-mini"))

    # Persistence
    database_url: str = field(
        default_factory=lambda: os.getenv("TRAVEL_AI_DATABASE_URL", "sqlite:///./travel_ai.db")
    )

    # Background generation
    workers: int = field(default_factory=lambda: _env_int("TRAVEL_AI_WORKERS", 4))
    queue_size: int = field(default_factory=lambda: _env_int("TRAVEL_AI_QUEUE_SIZE", 100))
    generation_timeout: Optional[float] = field(
        default_factory=lambda: _env_timeout("TRAVEL_AI_GENERATION_TIMEOUT")
    )
    # drafts idle this long are failed on start; younger ones may belong to another live process
    stale_draft_seconds: float = field(
        default_factory=lambda: float(os.getenv("TRAVEL_AI_STALE_DRAFT_SECONDS") or 900)
    )

    # Pricing
    reference_currency: str = field(
        default_factory=lambda: os.getenv("TRAVEL_AI_REFERENCE_CURRENCY", "USD").upper()
    )
    currency_api_url: str = field(
        default_factory=lambda: os.getenv("CURRENCY_API_URL", "https://api.exchangerate-api.com/v4/latest")
    )
    currency_fallback_url: str = field(
        default_factory=lambda: os.getenv("CURRENCY_FALLBACK_URL", "https://api.fxratesapi.com/latest")
    )
    currency_cache_ttl: int = field(default_factory=lambda: _env_int("CURRENCY_CACHE_TTL", 3600))

    # CORS Configuration
    allowed_origins: str = field(default_factory=lambda: os.getenv("TRAVEL_AI_ALLOWED_ORIGINS") or "*")

    log_level: str = field(default_factory=lambda: os.getenv("TRAVEL_AI_LOG_LEVEL", "INFO").upper())

    @property
    def cors_origins_list(self) -> List[str]:
        """Get CORS origins as a list"""
        origins = [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]
        return origins or ["*"]


# Global settings instance
settings = Settings()
