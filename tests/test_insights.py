"""
Tests for rule-based insight generation and ordering.
"""
import os
import sys
from datetime import date, timedelta
from types import SimpleNamespace

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from analytics.insights import (
    KEEP_TRACKING_ID,
    correlation_insights,
    generate_insights,
    level_warnings,
    sort_insights,
    tiered_confidence,
    timing_insights,
    trend_insights,
    volatility_warning,
)
from engine_config import EngineConfig
from records import (
    CorrelationResult,
    CorrelationStatus,
    EmotionLevelStat,
    EmotionProfile,
    Insight,
    InsightKind,
    InsightPriority,
    MarketTiming,
    OptimalConditions,
    TrendDirection,
    TrendPoint,
)

CFG = EngineConfig()
NO_DATA = SimpleNamespace(emotion_profile=EmotionProfile(), overall_win_rate=None)


def _corr(r, n, significant=True, stats=()):
    return CorrelationResult(coefficient=r, sample_size=n, is_statistically_significant=significant,
                             per_level_stats=tuple(stats), status=CorrelationStatus.OK,
                             strength="Strong" if r is not None and abs(r) >= 0.5 else "Moderate")


def _stat(level, wins, count):
    return EmotionLevelStat(level=level, trade_count=count, wins=wins, losses=count - wins,
                            breakevens=0, win_rate=round(100 * wins / count), average_pnl=None,
                            average_emotion=float(level))


def _point(week, direction, win_rate=50, trades=5):
    return TrendPoint(week_start=date(2024, 1, 1) + timedelta(weeks=week), average_emotion=5.0,
                      win_rate=win_rate, total_pnl=None, direction=direction, trade_count=trades)


def _insight(iid, priority, confidence):
    return Insight(id=iid, kind=InsightKind.WARNING, title=iid, message=iid,
                   confidence=confidence, priority=priority, actionable=True)


# ─── Confidence tiers ─────────────────────────────────────────


class TestTieredConfidence:

    @pytest.mark.parametrize("n,expected", [
        (0, 30), (2, 30), (3, 50), (4, 50), (5, 70), (9, 70), (10, 85), (19, 85), (20, 95), (500, 95),
    ])
    def test_tiers(self, n, expected):
        assert tiered_confidence(n) == expected


# ─── Correlation rule ─────────────────────────────────────────


class TestCorrelationInsight:

    COND = OptimalConditions(optimal_emotion_range=(6, 8), optimal_win_rate=72)

    def test_strong_correlation_high_priority(self):
        [ins] = correlation_insights(_corr(0.6, 10), self.COND, CFG)
        assert ins.kind is InsightKind.PERFORMANCE_CORRELATION
        assert ins.priority is InsightPriority.HIGH
        assert ins.confidence == pytest.approx(30.0)   # min(1, 10/20) * 0.6 * 100
        assert "6-8" in ins.message and "72%" in ins.message

    def test_moderate_correlation_medium_priority(self):
        [ins] = correlation_insights(_corr(-0.35, 40), self.COND, CFG)
        assert ins.priority is InsightPriority.MEDIUM
        assert ins.confidence == pytest.approx(35.0)
        assert "lower" in ins.message

    def test_below_threshold_or_not_significant(self):
        assert correlation_insights(_corr(0.25, 100), self.COND, CFG) == []
        assert correlation_insights(_corr(0.8, 100, significant=False), self.COND, CFG) == []
        assert correlation_insights(_corr(None, 0, significant=False), self.COND, CFG) == []


# ─── Warning rules ────────────────────────────────────────────


class TestLevelWarnings:

    def test_one_warning_per_losing_level(self):
        stats = [_stat(2, 1, 5), _stat(3, 1, 10), _stat(5, 4, 5), _stat(9, 0, 4)]
        warnings = level_warnings(_corr(0.1, 24, stats=stats), CFG)
        assert [w.id for w in warnings] == ["warning-level-2", "warning-level-3"]
        assert all(w.priority is InsightPriority.HIGH for w in warnings)
        assert warnings[0].confidence == 70.0
        assert warnings[1].confidence == 85.0

    def test_forty_percent_is_not_a_warning(self):
        assert level_warnings(_corr(0.1, 5, stats=[_stat(4, 2, 5)]), CFG) == []


class TestVolatilityWarning:

    def test_fires_above_threshold(self):
        snap = SimpleNamespace(emotion_profile=EmotionProfile(emotion_volatility=3.1, total_checks=12))
        [ins] = volatility_warning(snap, CFG)
        assert ins.id == "warning-volatility"
        assert ins.confidence == 85.0
        assert ins.priority is InsightPriority.HIGH

    def test_quiet_when_stable_or_sparse(self):
        stable = SimpleNamespace(emotion_profile=EmotionProfile(emotion_volatility=2.0, total_checks=40))
        sparse = SimpleNamespace(emotion_profile=EmotionProfile(emotion_volatility=4.0, total_checks=4))
        assert volatility_warning(stable, CFG) == []
        assert volatility_warning(sparse, CFG) == []


# ─── Trend rule ───────────────────────────────────────────────


class TestTrendInsight:

    def test_latest_run_wins(self):
        points = [
            _point(0, None, 30),
            _point(1, TrendDirection.IMPROVING, 40),
            _point(2, TrendDirection.IMPROVING, 55),
            _point(3, TrendDirection.STABLE, 55),
            _point(4, TrendDirection.DECLINING, 45),
            _point(5, TrendDirection.DECLINING, 30),
        ]
        [ins] = trend_insights(points)
        assert ins.id == "trend-declining-2024-02-05"
        assert ins.priority is InsightPriority.MEDIUM
        assert "55% to 30%" in ins.message
        assert ins.confidence == 85.0   # 10 trades in the run
        assert ins.actionable

    def test_single_week_is_not_a_run(self):
        points = [_point(0, None), _point(1, TrendDirection.IMPROVING), _point(2, TrendDirection.STABLE)]
        assert trend_insights(points) == []

    def test_gap_breaks_run(self):
        points = [_point(0, None), _point(1, TrendDirection.IMPROVING),
                  _point(3, None), _point(4, TrendDirection.IMPROVING)]
        assert trend_insights(points) == []

    def test_improving_is_informational(self):
        points = [_point(0, None, 20), _point(1, TrendDirection.IMPROVING, 30),
                  _point(2, TrendDirection.IMPROVING, 40)]
        [ins] = trend_insights(points)
        assert not ins.actionable


# ─── Timing rule ──────────────────────────────────────────────


class TestTimingInsight:

    def _cond(self, win_rate, count=5):
        return OptimalConditions(best_market_timing=MarketTiming(2, 10, win_rate, count))

    def test_fires_at_ten_point_edge(self):
        [ins] = timing_insights(self._cond(70), SimpleNamespace(overall_win_rate=60), CFG)
        assert ins.id == "timing-2-10"
        assert ins.priority is InsightPriority.LOW
        assert ins.confidence == 70.0
        assert "Wednesday" in ins.message

    def test_quiet_below_edge(self):
        assert timing_insights(self._cond(69), SimpleNamespace(overall_win_rate=60), CFG) == []

    def test_quiet_without_timing(self):
        assert timing_insights(OptimalConditions(), SimpleNamespace(overall_win_rate=60), CFG) == []


# ─── Ordering & default ───────────────────────────────────────


class TestOrdering:

    def test_priority_then_confidence_then_id(self):
        items = [
            _insight("b", InsightPriority.HIGH, 70),
            _insight("low", InsightPriority.LOW, 99),
            _insight("a", InsightPriority.HIGH, 90),
            _insight("med", InsightPriority.MEDIUM, 95),
            _insight("c", InsightPriority.HIGH, 70),
        ]
        assert [i.id for i in sort_insights(items)] == ["a", "b", "c", "med", "low"]


class TestGenerateInsights:

    def test_default_insight_when_nothing_fires(self):
        insights = generate_insights(CorrelationResult.empty(), [], OptimalConditions(), NO_DATA, CFG)
        assert len(insights) == 1
        assert insights[0].id == KEEP_TRACKING_ID
        assert insights[0].actionable is False

    def test_combined_rules_sorted(self):
        stats = [_stat(2, 1, 10)]
        snap = SimpleNamespace(emotion_profile=EmotionProfile(emotion_volatility=1.0, total_checks=20),
                               overall_win_rate=50)
        cond = OptimalConditions(optimal_emotion_range=(7, 8), optimal_win_rate=80,
                                 best_market_timing=MarketTiming(0, 9, 90, 12))
        insights = generate_insights(_corr(0.7, 30, stats=stats), [], cond, snap, CFG)
        assert [i.id for i in insights] == ["warning-level-2", "correlation", "timing-0-09"]
        assert all(0 <= i.confidence <= 100 for i in insights)
