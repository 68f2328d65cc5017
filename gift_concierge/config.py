from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Settings:
    """Runtime configuration for the catalog, the model endpoint and logging."""
    llm_api_key: str
    llm_base_url: Optional[str]
    llm_model: str
    llm_timeout_seconds: float
    catalog_search_url: str
    catalog_base_url: str
    catalog_timeout_seconds: float
    search_cache_ttl_seconds: float
    log_level: str


def load_settings() -> Settings:
    """Build Settings from environment variables, falling back to defaults.

    Invalid numeric values raise ValueError so a bad deployment fails at startup.
    """
    return Settings(
        llm_api_key=os.getenv("GROQ_API_KEY", ""),
        llm_base_url=os.getenv("LLM_BASE_URL") or None,
        llm_model=os.getenv("LLM_MODEL", "llama-3.1-8b-instant"),
        llm_timeout_seconds=float(os.getenv("LLM_TIMEOUT_SECONDS", "60")),
        catalog_search_url=os.getenv(
            "CATALOG_SEARCH_URL", "https://www.ediblearrangements.com/api/search/"
        ),
        catalog_base_url=os.getenv("CATALOG_BASE_URL", "https://www.ediblearrangements.com/"),
        catalog_timeout_seconds=float(os.getenv("CATALOG_TIMEOUT_SECONDS", "10")),
        search_cache_ttl_seconds=float(os.getenv("SEARCH_CACHE_TTL_SECONDS", "300")),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
