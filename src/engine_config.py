"""
Engine configuration.

All thresholds are named, overridable values (defaults in constants.py).
Invalid configuration is the only fatal error class in the engine and is
raised at construction time, never per call.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from datetime import timedelta
from enum import Enum
from typing import Optional

from dotenv import load_dotenv

import constants as C


class ConfigurationError(ValueError):
    """Raised when an EngineConfig value is out of its valid domain."""


class LinkPolicy(Enum):
    """How a trade is joined to an emotion record.

    EXPLICIT:  only via TradeRecord.emotion_id.
    PRECEDING: explicit link first; trades without one join the most
                recent emotion record at or before the trade timestamp.
    """
    EXPLICIT = "explicit"
    PRECEDING = "preceding"


@dataclass(frozen=True)
class EngineConfig:
    min_sample: int = C.MIN_SAMPLE
    timing_min_sample: int = C.TIMING_MIN_SAMPLE
    significance_alpha: float = C.SIGNIFICANCE_ALPHA
    correlation_insight_threshold: float = C.CORRELATION_INSIGHT_THRESHOLD
    strong_correlation_threshold: float = C.STRONG_CORRELATION_THRESHOLD
    warning_win_rate: float = C.WARNING_WIN_RATE
    warning_min_count: int = C.WARNING_MIN_COUNT
    trend_delta: float = C.TREND_DELTA
    timing_edge: float = C.TIMING_EDGE
    confidence_full_sample: int = C.CONFIDENCE_FULL_SAMPLE
    volatility_threshold: float = C.VOLATILITY_THRESHOLD
    link_policy: LinkPolicy = LinkPolicy.EXPLICIT
    implicit_link_max_age: Optional[timedelta] = None

    def __post_init__(self):
        if isinstance(self.link_policy, str):
            try:
                object.__setattr__(self, "link_policy", LinkPolicy(self.link_policy.lower()))
            except ValueError:
                raise ConfigurationError(f"unknown link_policy {self.link_policy!r}")
        self.validate()

    def validate(self) -> None:
        # t-test needs n-2 >= 1 degrees of freedom
        if self.min_sample < 3:
            raise ConfigurationError(f"min_sample must be >= 3, got {self.min_sample}")
        if self.timing_min_sample < 1:
            raise ConfigurationError(
                f"timing_min_sample must be >= 1, got {self.timing_min_sample}")
        if self.warning_min_count < 1:
            raise ConfigurationError(
                f"warning_min_count must be >= 1, got {self.warning_min_count}")
        if self.confidence_full_sample < 1:
            raise ConfigurationError(
                f"confidence_full_sample must be >= 1, got {self.confidence_full_sample}")
        if not 0.0 < self.significance_alpha < 1.0:
            raise ConfigurationError(
                f"significance_alpha must be in (0, 1), got {self.significance_alpha}")
        for name in ("correlation_insight_threshold", "strong_correlation_threshold"):
            v = getattr(self, name)
            if not 0.0 <= v <= 1.0:
                raise ConfigurationError(f"{name} must be in [0, 1], got {v}")
        for name in ("warning_win_rate", "trend_delta", "timing_edge"):
            v = getattr(self, name)
            if not 0.0 <= v <= 100.0:
                raise ConfigurationError(f"{name} must be in [0, 100], got {v}")
        if self.volatility_threshold < 0:
            raise ConfigurationError(
                f"volatility_threshold must be >= 0, got {self.volatility_threshold}")
        if self.implicit_link_max_age is not None and self.implicit_link_max_age <= timedelta(0):
            raise ConfigurationError("implicit_link_max_age must be positive")
        if not isinstance(self.link_policy, LinkPolicy):
            raise ConfigurationError(f"unknown link_policy {self.link_policy!r}")

    def with_overrides(self, **overrides) -> "EngineConfig":
        """Return a copy with *overrides* applied (re-validated)."""
        return replace(self, **overrides)

    @classmethod
    def from_env(cls, prefix: str = "PATTERN_") -> "EngineConfig":
        """Build config from ``PATTERN_*`` environment variables.

        PATTERN_MIN_SAMPLE=8 overrides min_sample, and so on.
        PATTERN_IMPLICIT_LINK_MAX_AGE_HOURS sets implicit_link_max_age.
        Unset variables keep their defaults.
        """
        load_dotenv()
        kwargs = {}
        for f in fields(cls):
            if f.name == "implicit_link_max_age":
                raw = os.getenv(f"{prefix}IMPLICIT_LINK_MAX_AGE_HOURS")
                if raw:
                    kwargs[f.name] = timedelta(hours=_parse_number(raw, f.name, float))
                continue
            raw = os.getenv(f"{prefix}{f.name.upper()}")
            if raw is None or raw.strip() == "":
                continue
            if f.name == "link_policy":
                kwargs[f.name] = raw.strip()
            elif f.type == "int":
                kwargs[f.name] = _parse_number(raw, f.name, int)
            else:
                kwargs[f.name] = _parse_number(raw, f.name, float)
        return cls(**kwargs)


def _parse_number(raw: str, name: str, kind):
    try:
        return kind(raw.strip())
    except ValueError:
        raise ConfigurationError(f"{name}: cannot parse {raw!r} as {kind.__name__}")
