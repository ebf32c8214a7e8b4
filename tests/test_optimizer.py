"""
Tests for optimal-condition search: tertile partitioning, best timing,
composite score, and readiness assessment.
"""
import os
import sys
from datetime import datetime, timedelta

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from analytics.aggregator import aggregate
from analytics.optimizer import (
    assess_readiness,
    best_timing,
    composite_score,
    optimize_conditions,
    partition_levels,
)
from engine_config import EngineConfig
from records import EmotionLevelStat, OptimalConditions, TradeRecord

MONDAY_9 = datetime(2024, 1, 1, 9, 0)


def _stat(level, win_rate, count=10):
    wins = round(count * win_rate / 100)
    return EmotionLevelStat(level=level, trade_count=count, wins=wins, losses=count - wins,
                            breakevens=0, win_rate=win_rate, average_pnl=None,
                            average_emotion=float(level))


def _trades_at(ts, wins, total, prefix):
    return [TradeRecord(id=f"{prefix}-{i}", timestamp=ts + timedelta(weeks=i), symbol="CL",
                        outcome="win" if i < wins else "loss")
            for i in range(total)]


# ─── Tertiles ─────────────────────────────────────────────────


class TestPartitionLevels:

    def test_three_levels_one_each(self):
        opt, cau, avo = partition_levels([_stat(3, 40), _stat(6, 80), _stat(9, 20)])
        assert [s.level for s in opt] == [6]
        assert [s.level for s in cau] == [3]
        assert [s.level for s in avo] == [9]

    def test_six_levels_two_each(self):
        stats = [_stat(lvl, wr) for lvl, wr in
                 [(1, 10), (2, 30), (3, 50), (4, 70), (5, 90), (6, 60)]]
        opt, cau, avo = partition_levels(stats)
        assert sorted(s.level for s in opt) == [4, 5]
        assert sorted(s.level for s in cau) == [3, 6]
        assert sorted(s.level for s in avo) == [1, 2]

    def test_five_levels_round_half_up(self):
        stats = [_stat(lvl, 100 - 10 * lvl) for lvl in range(1, 6)]
        opt, cau, avo = partition_levels(stats)
        assert [s.level for s in opt] == [1, 2]
        assert [s.level for s in cau] == [3]
        assert [s.level for s in avo] == [4, 5]

    def test_single_level_is_optimal_only(self):
        opt, cau, avo = partition_levels([_stat(5, 50)])
        assert len(opt) == 1 and cau == [] and avo == []

    def test_two_levels(self):
        opt, cau, avo = partition_levels([_stat(2, 30), _stat(8, 70)])
        assert [s.level for s in opt] == [8]
        assert cau == []
        assert [s.level for s in avo] == [2]

    def test_ties_prefer_count_then_level(self):
        stats = [_stat(7, 60, count=5), _stat(4, 60, count=10), _stat(2, 60, count=5)]
        opt, cau, avo = partition_levels(stats)
        assert [s.level for s in opt] == [4]
        assert [s.level for s in cau] == [2]
        assert [s.level for s in avo] == [7]

    def test_empty(self):
        assert partition_levels([]) == ([], [], [])


# ─── Timing ───────────────────────────────────────────────────


class TestBestTiming:

    def test_sample_floor(self):
        trades = (_trades_at(MONDAY_9, 2, 2, "mon")                       # 100% but n=2
                  + _trades_at(MONDAY_9 + timedelta(days=1), 3, 4, "tue"))  # 75%, n=4
        timing = best_timing(aggregate([], trades), min_count=3)
        assert (timing.day_of_week, timing.hour) == (1, 9)
        assert timing.win_rate == 75
        assert timing.label == "Tuesday 09:00"

    def test_tie_breaks_by_count_then_day(self):
        trades = (_trades_at(MONDAY_9 + timedelta(days=2), 3, 3, "wed")
                  + _trades_at(MONDAY_9 + timedelta(days=4), 4, 4, "fri")
                  + _trades_at(MONDAY_9 + timedelta(days=3), 4, 4, "thu"))
        timing = best_timing(aggregate([], trades), min_count=3)
        assert timing.day_name == "Thursday"

    def test_none_when_no_bucket_meets_floor(self):
        assert best_timing(aggregate([], _trades_at(MONDAY_9, 1, 2, "x")), min_count=3) is None


# ─── Score ────────────────────────────────────────────────────


class TestCompositeScore:

    def test_weighted_sum(self):
        assert composite_score(0.5, 80, 70) == pytest.approx(65.0)

    def test_negative_r_uses_magnitude(self):
        assert composite_score(-0.5, 80, 70) == pytest.approx(65.0)

    def test_missing_terms_contribute_zero(self):
        assert composite_score(None, 80, None) == pytest.approx(24.0)
        assert composite_score(None, None, None) == 0.0

    def test_upper_bound(self):
        assert composite_score(1.0, 100, 100) == 100.0

    def test_rounded_to_one_decimal(self):
        assert composite_score(0.333, 0, 0) == 13.3


# ─── optimize_conditions ──────────────────────────────────────


class TestOptimizeConditions:

    def test_ranges_and_performance_maps(self):
        trades = (_trades_at(MONDAY_9, 3, 4, "mon")
                  + _trades_at(MONDAY_9 + timedelta(days=1, hours=5), 1, 4, "tue"))
        snap = aggregate([], trades)
        stats = [_stat(3, 40), _stat(6, 80), _stat(9, 20)]
        cond = optimize_conditions(stats, snap, 0.5, EngineConfig())
        assert cond.optimal_emotion_range == (6, 6)
        assert cond.caution_emotion_range == (3, 3)
        assert cond.avoid_emotion_range == (9, 9)
        assert cond.optimal_win_rate == 80
        assert cond.best_market_timing.win_rate == 75
        assert cond.overall_score == pytest.approx(0.4 * 50 + 0.3 * 80 + 0.3 * 75)
        assert cond.day_performance == {"Monday": 75, "Tuesday": 25}
        assert cond.hour_performance == {9: 75, 14: 25}

    def test_optimal_win_rate_is_pooled(self):
        stats = [_stat(1, 80, count=10), _stat(2, 60, count=30), _stat(3, 10), _stat(4, 5),
                 _stat(5, 0), _stat(6, 0, count=2)]
        cond = optimize_conditions(stats, aggregate([], []), None)
        assert cond.optimal_emotion_range == (1, 2)
        assert cond.optimal_win_rate == 65   # (8 + 18) / 40

    def test_empty(self):
        cond = optimize_conditions([], aggregate([], []), None)
        assert cond.optimal_emotion_range is None
        assert cond.best_market_timing is None
        assert cond.overall_score == 0.0
        out = cond.to_dict()
        assert out["optimalEmotionRange"] is None
        assert out["dayPerformance"] == {}


# ─── Readiness ────────────────────────────────────────────────


class TestAssessReadiness:

    COND = OptimalConditions(
        optimal_emotion_range=(5, 7),
        caution_emotion_range=(3, 4),
        avoid_emotion_range=(1, 2),
    )

    def test_optimal(self):
        r = assess_readiness(self.COND, 6)
        assert (r.readiness_level, r.should_trade, r.risk_level) == ("Optimal", True, "Low")

    def test_caution(self):
        r = assess_readiness(self.COND, 3)
        assert (r.readiness_level, r.should_trade, r.risk_level) == ("Caution", False, "Medium")

    def test_avoid(self):
        r = assess_readiness(self.COND, 1)
        assert (r.readiness_level, r.should_trade, r.risk_level) == ("Avoid", False, "High")

    def test_neutral_outside_all_ranges(self):
        r = assess_readiness(self.COND, 10)
        assert (r.readiness_level, r.should_trade, r.risk_level) == ("Neutral", False, "Low")

    def test_overlap_checks_optimal_first(self):
        cond = OptimalConditions(optimal_emotion_range=(2, 8), avoid_emotion_range=(5, 5))
        r = assess_readiness(cond, 5)
        assert r.readiness_level == "Optimal"
        assert r.risk_level == "High"

    def test_no_ranges(self):
        r = assess_readiness(OptimalConditions(), 5)
        assert r.readiness_level == "Neutral"
        assert r.to_dict()["currentEmotionLevel"] == 5
