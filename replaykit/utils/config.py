# replaykit/utils/config.py
from __future__ import annotations

import functools
from enum import Enum
from pathlib import Path
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# ---------- Enums ----------

class BrowserType(str, Enum):
    chromium = "chromium"
    firefox = "firefox"
    webkit = "webkit"


class LogLevel(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


# Kept in sync with replaykit.selectors.strategies.DEFAULT_ORDER
STRATEGY_NAMES = (
    "xpath",
    "id",
    "name",
    "aria",
    "placeholder",
    "data_attributes",
    "css",
    "fuzzy_text",
    "bounding_box",
)


# ---------- Settings ----------

class Settings(BaseSettings):
    """
    Central configuration for capture and replay.

    Values load in this order of precedence:
      1) Environment variables
      2) .env file in project root
      3) Defaults below
    """

    # ---- Logging ----
    LOG_LEVEL: LogLevel = Field(default=LogLevel.INFO)
    LOG_TO_FILE: bool = Field(default=False)
    LOG_FILE: Path = Field(default=Path("./replaykit.log"))
    COLORIZED_OUTPUT: bool = Field(default=True)

    # ---- Capture ----
    BUNDLE_MAX_TEXT_LENGTH: int = Field(default=100, ge=1, le=10000)
    BUNDLE_MAX_CLASSES: int = Field(default=10, ge=0)
    LABEL_MAX_LENGTH: int = Field(default=50, ge=4, le=1000)
    LABEL_STRIP_EMOJI: bool = Field(default=False)
    LABEL_CACHE_SIZE: int = Field(default=512, ge=0)
    CAPTURE_THROTTLE_MS: int = Field(default=100, ge=0)
    CAPTURE_DEBOUNCE_MS: int = Field(default=500, ge=0)
    BOUNDARY_MAX_DEPTH: int = Field(default=8, ge=0, description="Max nested iframe/shadow hops tracked")

    # ---- Finder ----
    FINDER_TIMEOUT_MS: int = Field(default=2000, ge=0)
    FINDER_POLL_INTERVAL_MS: int = Field(default=150, ge=1)
    FINDER_REQUIRE_VISIBLE: bool = Field(default=True)
    FINDER_FUZZY_THRESHOLD: float = Field(default=0.4, ge=0.0, le=1.0)
    FINDER_BBOX_MAX_DISTANCE: float = Field(default=200.0, ge=0.0)
    FINDER_DISABLED_STRATEGIES: List[str] = Field(default_factory=list)
    FINDER_STRATEGY_ORDER: List[str] = Field(default_factory=list, description="Empty = default order")

    # ---- Replay ----
    REPLAY_STRICT_VERIFY: bool = Field(default=False)
    REPLAY_STEP_TIMEOUT_MS: int = Field(default=10000, ge=0, description="0 = no step budget")

    # ---- Browser host ----
    HEADLESS: bool = Field(default=True, description="Run the browser headless")
    BROWSER_TYPE: BrowserType = Field(default=BrowserType.chromium, description="Playwright browser")
    SLOW_MO: int = Field(default=0, ge=0, description="Slow down actions (ms) for debugging")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",  # ignore unknown envs to keep things flexible
    )

    @field_validator("LOG_FILE", mode="before")
    @classmethod
    def _coerce_to_path(cls, v):
        if isinstance(v, Path):
            return v
        return Path(str(v)) if v is not None else v

    @field_validator("LOG_FILE", mode="after")
    @classmethod
    def _absolutize_log_file(cls, v: Path, info):
        return v if v.is_absolute() else Path.cwd() / v

    @field_validator("FINDER_DISABLED_STRATEGIES", "FINDER_STRATEGY_ORDER", mode="after")
    @classmethod
    def _known_strategies(cls, names: List[str]):
        unknown = [n for n in names if n not in STRATEGY_NAMES]
        if unknown:
            raise ValueError(f"unknown strategy name(s): {', '.join(unknown)}")
        return names

    # Convenience: Playwright launch options dict
    def playwright_launch_kwargs(self) -> dict:
        return {
            "headless": self.HEADLESS,
            "slow_mo": self.SLOW_MO,
        }


# --------- Public accessor (memoized) ---------

@functools.lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Load and cache settings once per process.
    Call `get_settings.cache_clear()` if you need to reload after changing env.
    """
    return Settings()
