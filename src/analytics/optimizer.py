"""Optimal trading conditions.

Emotion levels are ranked by win rate (ties: more trades first, then the
lower level) and split by population into tertiles:

    size    = max(1, round_half_up(n / 3))
    optimal = first ``size`` levels
    avoid   = last ``min(size, n − size)`` levels
    caution = whatever is left in between

Each range is reported as [min level, max level] of its group, so ranges
can overlap when win rate is not monotonic in level.

Composite score (0-100, one decimal):

    0.4 · |r|·100  +  0.3 · optimal win rate  +  0.3 · best timing win rate

with a missing term contributing 0.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from analytics.aggregator import AggregatedSnapshot, win_rate_pct
from constants import (
    DAY_NAMES,
    SCORE_WEIGHT_CORRELATION,
    SCORE_WEIGHT_OPTIMAL_RANGE,
    SCORE_WEIGHT_TIMING,
)
from engine_config import EngineConfig
from records import EmotionLevelStat, MarketTiming, OptimalConditions

log = logging.getLogger("optimizer")


def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def _level_range(group: Sequence[EmotionLevelStat]) -> Optional[Tuple[int, int]]:
    if not group:
        return None
    levels = [s.level for s in group]
    return min(levels), max(levels)


def partition_levels(level_stats: Sequence[EmotionLevelStat]):
    """Split level stats into (optimal, caution, avoid) groups."""
    ranked = sorted(level_stats, key=lambda s: (-s.win_rate, -s.trade_count, s.level))
    n = len(ranked)
    if n == 0:
        return [], [], []
    size = max(1, _round_half_up(n / 3))
    n_avoid = min(size, n - size)
    optimal = ranked[:size]
    caution = ranked[size:n - n_avoid]
    avoid = ranked[n - n_avoid:] if n_avoid else []
    return optimal, caution, avoid


def best_timing(snapshot: AggregatedSnapshot, min_count: int) -> Optional[MarketTiming]:
    eligible = [
        MarketTiming(day, hour, win_rate_pct(int(grp["is_win"].sum()), len(grp)), len(grp))
        for (day, hour), grp in snapshot.by_timing.items()
        if len(grp) >= min_count
    ]
    if not eligible:
        return None
    return min(eligible, key=lambda t: (-t.win_rate, -t.trade_count, t.day_of_week, t.hour))


def _bucket_win_rates(snapshot: AggregatedSnapshot, column: str,
                      min_count: int) -> Dict[int, int]:
    trades = snapshot.trades
    if trades.empty:
        return {}
    out: Dict[int, int] = {}
    for key, grp in trades.groupby(column, sort=True):
        if len(grp) >= min_count:
            out[int(key)] = win_rate_pct(int(grp["is_win"].sum()), len(grp))
    return out


def composite_score(coefficient: Optional[float], optimal_wr: Optional[int],
                    timing_wr: Optional[int]) -> float:
    score = 0.0
    if coefficient is not None:
        score += SCORE_WEIGHT_CORRELATION * abs(coefficient) * 100.0
    if optimal_wr is not None:
        score += SCORE_WEIGHT_OPTIMAL_RANGE * optimal_wr
    if timing_wr is not None:
        score += SCORE_WEIGHT_TIMING * timing_wr
    return round(min(100.0, max(0.0, score)), 1)


def optimize_conditions(level_stats: Sequence[EmotionLevelStat],
                        snapshot: AggregatedSnapshot,
                        coefficient: Optional[float],
                        config: Optional[EngineConfig] = None) -> OptimalConditions:
    config = config or EngineConfig()
    log.info("   Layer 3: optimal conditions…")

    optimal, caution, avoid = partition_levels(level_stats)
    optimal_wr = None
    if optimal:
        optimal_wr = win_rate_pct(sum(s.wins for s in optimal),
                                  sum(s.trade_count for s in optimal))

    timing = best_timing(snapshot, config.timing_min_sample)
    by_day = _bucket_win_rates(snapshot, "day_of_week", config.timing_min_sample)
    by_hour = _bucket_win_rates(snapshot, "hour", config.timing_min_sample)

    conditions = OptimalConditions(
        optimal_emotion_range=_level_range(optimal),
        caution_emotion_range=_level_range(caution),
        avoid_emotion_range=_level_range(avoid),
        best_market_timing=timing,
        overall_score=composite_score(
            coefficient, optimal_wr, timing.win_rate if timing else None),
        optimal_win_rate=optimal_wr,
        day_performance={DAY_NAMES[d]: wr for d, wr in by_day.items()},
        hour_performance=by_hour,
    )
    log.info("   optimal=%s caution=%s avoid=%s timing=%s score=%.1f",
             conditions.optimal_emotion_range, conditions.caution_emotion_range,
             conditions.avoid_emotion_range, timing.label if timing else None,
             conditions.overall_score)
    return conditions


# ─── Readiness ────────────────────────────────────────────────


@dataclass(frozen=True)
class Readiness:
    current_emotion_level: int
    readiness_level: str        # Optimal / Caution / Avoid / Neutral
    should_trade: bool
    risk_level: str             # High / Medium / Low

    def to_dict(self) -> Dict[str, Any]:
        return {
            "currentEmotionLevel": self.current_emotion_level,
            "readinessLevel": self.readiness_level,
            "shouldTrade": self.should_trade,
            "riskLevel": self.risk_level,
        }


def _within(level: int, rng: Optional[Tuple[int, int]]) -> bool:
    return rng is not None and rng[0] <= level <= rng[1]


def assess_readiness(conditions: OptimalConditions, level: int) -> Readiness:
    """Classify a current emotion level against the learned ranges.

    Ranges may overlap, so they are checked optimal → caution → avoid.
    """
    is_optimal = _within(level, conditions.optimal_emotion_range)
    is_caution = _within(level, conditions.caution_emotion_range)
    is_avoid = _within(level, conditions.avoid_emotion_range)

    if is_optimal:
        readiness = "Optimal"
    elif is_caution:
        readiness = "Caution"
    elif is_avoid:
        readiness = "Avoid"
    else:
        readiness = "Neutral"

    if is_avoid:
        risk = "High"
    elif is_caution:
        risk = "Medium"
    else:
        risk = "Low"
    return Readiness(level, readiness, is_optimal, risk)
