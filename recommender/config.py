"""
Engine configuration.

Every weight and threshold used by the preference model, scorer and ranker is a
field on EngineConfig. The defaults are hand-tuned values carried over from the
production feed; they can be overridden through RECOMMENDER_* environment
variables (a .env file is honoured) or by constructing EngineConfig directly.
"""

import os
from typing import Dict, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

DEFAULT_ACTION_WEIGHTS: Dict[str, float] = {
    "view": 1.0,
    "like": 3.0,
    "comment": 4.0,
    "share": 5.0,
    "skip": -2.0,
    "follow": 0.0,
    "unfollow": 0.0,
}


class EngineConfig(BaseModel):
    """Tunable parameters for the recommendation engine."""

    # -------------------------------------------------------------------------
    # Event log / preference model
    # -------------------------------------------------------------------------

    # Most recent events kept per user; older ones are dropped FIFO.
    max_events_per_user: int = 1000
    action_weights: Dict[str, float] = Field(default_factory=lambda: dict(DEFAULT_ACTION_WEIGHTS))
    # weight *= exp(-days / decay_days); 30 gives a ~20.8 day half-life.
    decay_days: float = 30.0
    tag_weight_factor: float = 0.5
    # Cap on the completion bonus for view events (watch / duration * 2).
    view_completion_cap: float = 2.0

    # -------------------------------------------------------------------------
    # Exclusions
    # -------------------------------------------------------------------------

    viewed_prune_threshold: int = 100
    viewed_keep_recent: int = 50

    # -------------------------------------------------------------------------
    # Scorer
    # -------------------------------------------------------------------------

    quality_weight: float = 0.25
    popularity_weight: float = 0.2
    freshness_weight: float = 0.15
    category_weight: float = 0.25
    category_strong_threshold: float = 5.0
    category_strong_bonus: float = 1.2
    tag_weight: float = 0.2
    creator_weight: float = 0.15
    creator_strong_threshold: float = 3.0
    creator_strong_bonus: float = 1.3
    duration_fit_weight: float = 0.1
    recent_window_days: float = 7.0
    hour_match_window: int = 2
    hour_match_bonus: float = 1.1
    default_preferred_hour: int = 12

    # -------------------------------------------------------------------------
    # Ranker
    # -------------------------------------------------------------------------

    min_quality_score: float = 3.0
    stale_age_days: float = 365.0
    stale_min_views: int = 1000
    # Upper bound on candidates scored per request; newest items win when it trips.
    max_candidates: int = 5000
    high_confidence_threshold: float = 0.7
    high_confidence_share: float = 0.6
    max_category_share: float = 0.4
    max_creator_share: float = 0.3

    # Light shuffle applied after diversity selection.
    shuffle: bool = True
    shuffle_probability: float = 0.3
    shuffle_fixed_head: int = 2
    shuffle_seed: Optional[int] = None

    @model_validator(mode="after")
    def ratios_in_range(self):
        for name in (
            "high_confidence_share",
            "max_category_share",
            "max_creator_share",
        ):
            value = getattr(self, name)
            if not 0.0 < value <= 1.0:
                raise ValueError(f"{name} must be in (0, 1], got {value}")
        if not 0.0 <= self.shuffle_probability <= 1.0:
            raise ValueError(f"shuffle_probability must be in [0, 1], got {self.shuffle_probability}")
        if self.decay_days <= 0:
            raise ValueError("decay_days must be positive")
        if self.viewed_keep_recent > self.viewed_prune_threshold:
            raise ValueError("viewed_keep_recent cannot exceed viewed_prune_threshold")
        return self

    @classmethod
    def from_env(cls, prefix: str = "RECOMMENDER_") -> "EngineConfig":
        """Build a config from RECOMMENDER_<FIELD> environment variables."""
        load_dotenv()
        values = {}
        for name, field in cls.model_fields.items():
            if name == "action_weights":
                continue
            raw = os.getenv(prefix + name.upper())
            if raw is None or raw == "":
                continue
            if field.annotation is bool:
                values[name] = raw.strip().lower() in ("1", "true", "yes", "on")
            else:
                values[name] = raw
        weights = dict(DEFAULT_ACTION_WEIGHTS)
        for action in weights:
            raw = os.getenv(f"{prefix}WEIGHT_{action.upper()}")
            if raw:
                weights[action] = float(raw)
        values["action_weights"] = weights
        return cls.model_validate(values)


DEFAULT_CONFIG = EngineConfig()


def database_url() -> str:
    load_dotenv()
    return os.getenv("DATABASE_URL", "sqlite:///./recommender.db")
