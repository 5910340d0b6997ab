"""
Configuration

AI engine settings, loaded from the environment and an optional
backend/.env file.
"""

import logging
import os
import pathlib
from dataclasses import dataclass, field, replace
from typing import Dict, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# backend/.env, next to the app folder
DEFAULT_ENV_PATH = pathlib.Path(__file__).parent.parent.parent / ".env"

_TRUE_VALUES = {"true", "1", "yes", "on"}
_FALSE_VALUES = {"false", "0", "no", "off"}


@dataclass
class RankingWeights:
    """Hand-tuned constants used when ranking identification candidates"""
    # Input type agreement (inputs only)
    type_match_bonus: float = 0.50
    type_mismatch_penalty: float = 0.80
    generic_type_bonus: float = 0.20

    # Context match
    context_weight: float = 0.40
    button_text_boost: float = 0.50
    context_sources: Dict[str, float] = field(default_factory=lambda: {
        "test_id": 1.0,
        "label_text": 0.98,
        "inner_text": 0.95,
        "placeholder": 0.92,
        "surrounding_text": 0.85,
        "nearby_headings": 0.80,
        "name": 0.75,
        "aria_label": 0.70,
        "id": 0.65,
        "semantic_context": 0.60,
    })

    # Advanced context
    table_header_match: float = 0.35
    table_operation: float = 0.20
    framework_hint: float = 0.05
    component_library: float = 0.08
    shadow_dom_penalty: float = 0.02
    loading_indicator_penalty: float = 0.15
    iframe_penalty: float = 0.05

    # Text and visibility
    text_weight: float = 0.10
    visibility_bonus: float = 0.05


@dataclass
class AIConfig:
    """Settings shared by every component of one worker"""
    enabled: bool = True
    intelligent_healing_enabled: bool = True
    predictive_healing_enabled: bool = False
    learning_enabled: bool = True
    pattern_matching_enabled: bool = True
    ui_only: bool = True
    confidence_threshold: float = 0.75
    max_healing_attempts: int = 3
    healing_timeout_ms: int = 5000
    cache_ttl_seconds: float = 300.0
    history_max_entries: int = 10000
    ranking: RankingWeights = field(default_factory=RankingWeights)

    def update(self, **overrides) -> "AIConfig":
        """Return a copy with the given fields replaced"""
        return replace(self, **overrides)

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "AIConfig":
        """
        Build a config from AI_* environment variables.

        Args:
            env_file: Optional .env path; defaults to backend/.env

        Returns:
            AIConfig with defaults for anything unset or malformed
        """
        load_dotenv(env_file or DEFAULT_ENV_PATH)
        defaults = cls()

        return cls(
            enabled=_env_bool("AI_ENABLED", defaults.enabled),
            intelligent_healing_enabled=_env_bool(
                "AI_INTELLIGENT_HEALING_ENABLED", defaults.intelligent_healing_enabled
            ),
            predictive_healing_enabled=_env_bool(
                "AI_PREDICTIVE_HEALING_ENABLED", defaults.predictive_healing_enabled
            ),
            learning_enabled=_env_bool("AI_LEARNING_ENABLED", defaults.learning_enabled),
            pattern_matching_enabled=_env_bool(
                "AI_PATTERN_MATCHING_ENABLED", defaults.pattern_matching_enabled
            ),
            ui_only=_env_bool("AI_UI_ONLY", defaults.ui_only),
            confidence_threshold=_env_float("AI_CONFIDENCE_THRESHOLD", defaults.confidence_threshold),
            max_healing_attempts=_env_int("AI_MAX_HEALING_ATTEMPTS", defaults.max_healing_attempts, minimum=1),
            history_max_entries=_env_int("AI_HISTORY_MAX_ENTRIES", defaults.history_max_entries, minimum=1),
        )


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    logger.warning(f"Ignoring {name}={raw!r}: expected a boolean")
    return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Ignoring {name}={raw!r}: expected a number")
        return default


def _env_int(name: str, default: int, minimum: Optional[int] = None) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning(f"Ignoring {name}={raw!r}: expected an integer")
        return default
    if minimum is not None and value < minimum:
        logger.warning(f"Ignoring {name}={raw!r}: must be at least {minimum}")
        return default
    return value
