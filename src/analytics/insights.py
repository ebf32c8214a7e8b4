"""Insight generation.

Each rule reads the computed layers and emits zero or more Insight records.
Rules are pure: the same layers always give the same insights with the same
ids, and the final list is ordered by priority, then confidence (both
descending), then id.

Rules
-----
  performance_correlation  |r| ≥ threshold and significant
  warning                  per level: count ≥ WARNING_MIN_COUNT, win rate < 40
  warning (volatility)     emotion level std-dev > VOLATILITY_THRESHOLD
  trend                    latest run of ≥2 weeks with the same non-stable direction
  timing                   best timing bucket beats overall win rate by ≥ TIMING_EDGE

When nothing fires a single non-actionable "keep tracking" insight is
returned, so the list is never empty.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from analytics.aggregator import AggregatedSnapshot
from constants import CONFIDENCE_TIER_MAX, CONFIDENCE_TIERS, VOLATILITY_CONFIDENCE
from engine_config import EngineConfig
from records import (
    CorrelationResult,
    Insight,
    InsightKind,
    InsightPriority,
    OptimalConditions,
    TrendDirection,
    TrendPoint,
)

log = logging.getLogger("insights")

KEEP_TRACKING_ID = "keep-tracking"


def tiered_confidence(n: int) -> float:
    """Sample-size confidence: <3 → 30, <5 → 50, <10 → 70, <20 → 85, else 95."""
    for limit, value in CONFIDENCE_TIERS:
        if n < limit:
            return float(value)
    return float(CONFIDENCE_TIER_MAX)


def _clamp(value: float) -> float:
    return max(0.0, min(100.0, float(value)))


def _fmt_range(rng) -> str:
    lo, hi = rng
    return f"{lo}" if lo == hi else f"{lo}-{hi}"


# ─── Rules ────────────────────────────────────────────────────


def correlation_insights(correlation: CorrelationResult, conditions: OptimalConditions,
                         config: EngineConfig) -> List[Insight]:
    r = correlation.coefficient
    if r is None or not correlation.is_statistically_significant:
        return []
    if abs(r) < config.correlation_insight_threshold:
        return []

    sample_factor = min(1.0, correlation.sample_size / config.confidence_full_sample)
    confidence = min(100.0, sample_factor * abs(r) * 100.0)
    priority = (InsightPriority.HIGH if abs(r) >= config.strong_correlation_threshold
                else InsightPriority.MEDIUM)

    direction = "higher" if r > 0 else "lower"
    message = (f"Your results improve at {direction} emotion levels "
               f"(r = {r:+.2f}, {correlation.sample_size} trades).")
    if conditions.optimal_emotion_range and conditions.optimal_win_rate is not None:
        message += (f" You win {conditions.optimal_win_rate}% of trades taken at emotion "
                    f"level {_fmt_range(conditions.optimal_emotion_range)}.")

    return [Insight(
        id="correlation",
        kind=InsightKind.PERFORMANCE_CORRELATION,
        title=f"{correlation.strength} link between emotion and performance",
        message=message,
        confidence=_clamp(confidence),
        priority=priority,
        actionable=True,
    )]


def level_warnings(correlation: CorrelationResult, config: EngineConfig) -> List[Insight]:
    out: List[Insight] = []
    for stat in correlation.per_level_stats:
        if stat.trade_count < config.warning_min_count or stat.win_rate >= config.warning_win_rate:
            continue
        out.append(Insight(
            id=f"warning-level-{stat.level}",
            kind=InsightKind.WARNING,
            title=f"Low win rate at emotion level {stat.level}",
            message=(f"You won {stat.win_rate}% of {stat.trade_count} trades taken at "
                     f"emotion level {stat.level}. Consider sizing down or sitting out "
                     f"when you feel this way."),
            confidence=_clamp(tiered_confidence(stat.trade_count)),
            priority=InsightPriority.HIGH,
            actionable=True,
        ))
    return out


def volatility_warning(snapshot: AggregatedSnapshot, config: EngineConfig) -> List[Insight]:
    profile = snapshot.emotion_profile
    vol = profile.emotion_volatility
    if vol is None or profile.total_checks < config.min_sample:
        return []
    if vol <= config.volatility_threshold:
        return []
    return [Insight(
        id="warning-volatility",
        kind=InsightKind.WARNING,
        title="High emotional volatility",
        message=(f"Your emotion levels swing widely (std dev {vol:.1f} across "
                 f"{profile.total_checks} check-ins). A steadier pre-trade routine "
                 f"may make results more consistent."),
        confidence=float(VOLATILITY_CONFIDENCE),
        priority=InsightPriority.HIGH,
        actionable=True,
    )]


def trend_insights(trends: Sequence[TrendPoint]) -> List[Insight]:
    """Report the most recent run of ≥2 weeks moving the same way."""
    best: Optional[tuple] = None
    i = 0
    while i < len(trends):
        d = trends[i].direction
        if d is None or d is TrendDirection.STABLE:
            i += 1
            continue
        j = i
        while j + 1 < len(trends) and trends[j + 1].direction is d:
            j += 1
        if j - i + 1 >= 2:
            best = (i, j)
        i = j + 1
    if best is None:
        return []

    i, j = best
    run = trends[i:j + 1]
    direction = run[0].direction
    weeks = len(run)
    # i >= 1 here: a week with a direction always has a previous week
    start_wr = trends[i - 1].win_rate
    end_wr = run[-1].win_rate
    verb = "improved" if direction is TrendDirection.IMPROVING else "declined"

    return [Insight(
        id=f"trend-{direction.value}-{run[-1].week_start.isoformat()}",
        kind=InsightKind.TREND,
        title=f"Win rate {direction.value} for {weeks} weeks",
        message=(f"Your win rate has {verb} {weeks} weeks in a row, from "
                 f"{start_wr}% to {end_wr}% (week of {run[-1].week_start.isoformat()})."),
        confidence=_clamp(tiered_confidence(sum(p.trade_count for p in run))),
        priority=InsightPriority.MEDIUM,
        actionable=direction is TrendDirection.DECLINING,
    )]


def timing_insights(conditions: OptimalConditions, snapshot: AggregatedSnapshot,
                    config: EngineConfig) -> List[Insight]:
    timing = conditions.best_market_timing
    overall = snapshot.overall_win_rate
    if timing is None or overall is None:
        return []
    if timing.trade_count < config.timing_min_sample:
        return []
    if timing.win_rate < overall + config.timing_edge:
        return []
    return [Insight(
        id=f"timing-{timing.day_of_week}-{timing.hour:02d}",
        kind=InsightKind.TIMING,
        title=f"Best window: {timing.label}",
        message=(f"You win {timing.win_rate}% of {timing.trade_count} trades on "
                 f"{timing.day_name} at {timing.hour:02d}:00, against {overall}% overall."),
        confidence=_clamp(tiered_confidence(timing.trade_count)),
        priority=InsightPriority.LOW,
        actionable=True,
    )]


def keep_tracking_insight() -> Insight:
    return Insight(
        id=KEEP_TRACKING_ID,
        kind=InsightKind.PERFORMANCE_CORRELATION,
        title="Keep tracking",
        message=("No clear patterns yet. Keep logging emotion check-ins and linking "
                 "them to trades to unlock personalised insights."),
        confidence=0.0,
        priority=InsightPriority.LOW,
        actionable=False,
    )


def sort_insights(insights: Sequence[Insight]) -> List[Insight]:
    return sorted(insights, key=lambda i: (-i.priority.rank, -i.confidence, i.id))


# ─── Entry point ──────────────────────────────────────────────


def generate_insights(correlation: CorrelationResult, trends: Sequence[TrendPoint],
                      conditions: OptimalConditions, snapshot: AggregatedSnapshot,
                      config: Optional[EngineConfig] = None) -> List[Insight]:
    config = config or EngineConfig()
    log.info("   Layer 4: insights…")

    insights: List[Insight] = []
    insights += correlation_insights(correlation, conditions, config)
    insights += level_warnings(correlation, config)
    insights += volatility_warning(snapshot, config)
    insights += trend_insights(trends)
    insights += timing_insights(conditions, snapshot, config)

    if not insights:
        log.info("   no rule fired, returning keep-tracking insight")
        return [keep_tracking_insight()]

    ordered = sort_insights(insights)
    log.info("   %d insights (%s)", len(ordered),
             ", ".join(i.id for i in ordered))
    return ordered
