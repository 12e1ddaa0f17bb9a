"""
Homely — Centralized configuration.

Loads all settings from .env and validates them.
This module is the foundation for every other module in the project.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

# Load .env from project root (one level up from homely/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)


class EventGenerationSettings(BaseModel):
    """Value object controlling how far ahead events are materialized."""

    future_horizon_years: int = Field(default=2, ge=0)
    min_future_events_threshold: int = Field(default=6, ge=0)
    max_future_events: int = Field(default=60, ge=1)


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # SQLite
    DATABASE_PATH: str = "data/homely.db"

    # "Today" is evaluated in this zone
    TIMEZONE: str = "UTC"

    # Event generation / refill
    EVENT_FUTURE_HORIZON_YEARS: int = Field(default=2, ge=0)
    EVENT_MIN_FUTURE_THRESHOLD: int = Field(default=6, ge=0)
    EVENT_MAX_FUTURE_EVENTS: int = Field(default=60, ge=1)

    # Plans whose name contains one of these keep an event history
    HISTORY_PLAN_KEYWORDS: list[str] = ["premium", "rodzinny"]

    LOG_LEVEL: str = "INFO"

    @field_validator("HISTORY_PLAN_KEYWORDS", mode="before")
    @classmethod
    def parse_keywords(cls, v: str | list[str]) -> list[str]:
        if isinstance(v, list):
            return [k.strip().lower() for k in v if k.strip()]
        if isinstance(v, str) and v.strip():
            return [k.strip().lower() for k in v.split(",") if k.strip()]
        return []

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def normalize_level(cls, v: str) -> str:
        return str(v).strip().upper() or "INFO"

    def event_generation(self) -> EventGenerationSettings:
        return EventGenerationSettings(
            future_horizon_years=self.EVENT_FUTURE_HORIZON_YEARS,
            min_future_events_threshold=self.EVENT_MIN_FUTURE_THRESHOLD,
            max_future_events=self.EVENT_MAX_FUTURE_EVENTS,
        )


def _load_settings() -> Settings:
    """Load settings from environment, exiting on invalid values."""
    try:
        return Settings(
            DATABASE_PATH=os.getenv("DATABASE_PATH", "data/homely.db"),
            TIMEZONE=os.getenv("TIMEZONE", "UTC"),
            EVENT_FUTURE_HORIZON_YEARS=os.getenv("EVENT_FUTURE_HORIZON_YEARS", "2"),
            EVENT_MIN_FUTURE_THRESHOLD=os.getenv("EVENT_MIN_FUTURE_THRESHOLD", "6"),
            EVENT_MAX_FUTURE_EVENTS=os.getenv("EVENT_MAX_FUTURE_EVENTS", "60"),
            HISTORY_PLAN_KEYWORDS=os.getenv("HISTORY_PLAN_KEYWORDS", "premium,rodzinny"),
            LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO"),
        )
    except ValidationError as exc:
        print(f"ERROR: invalid configuration in .env:\n{exc}", file=sys.stderr)
        sys.exit(1)


# Singleton — imported by all other modules as:
#   from homely.config import settings
settings = _load_settings()
