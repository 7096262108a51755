"""
config.py — Environment-based configuration using Pydantic Settings.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="CATALOG_KNOWLEDGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Ontology ─────────────────────────────────────────────────────────
    ontology_sample_cap: int = 40
    ontology_facet_limit: int = 8

    # ── Normalization ────────────────────────────────────────────────────
    normalize_precision: int = 4

    # ── Knowledge Packs ──────────────────────────────────────────────────
    why_reason_limit: int = 3
    why_fallback_limit: int = 2

    # ── Canon ────────────────────────────────────────────────────────────
    canon_max_results: int = 4
    canon_candidate_limit: int = 60

    # ── Feature Flags ────────────────────────────────────────────────────
    enable_vertical_packs: bool = False

    # ── Logging ──────────────────────────────────────────────────────────
    log_level: str = "INFO"
    log_format: str = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    log_file: Optional[str] = None

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid:
            raise ValueError(f"log_level must be one of {valid}")
        return v.upper()

    @field_validator(
        "ontology_sample_cap", "ontology_facet_limit",
        "canon_max_results", "canon_candidate_limit",
    )
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be a positive integer")
        return v


@lru_cache
def get_settings() -> Settings:
    return Settings()


def configure_logging(settings: Optional[Settings] = None) -> None:
    """Install a root handler using the configured level, format and file."""
    settings = settings or get_settings()
    kwargs = {
        "level": getattr(logging, settings.log_level),
        "format": settings.log_format,
    }
    if settings.log_file:
        kwargs["filename"] = settings.log_file
    logging.basicConfig(**kwargs)
