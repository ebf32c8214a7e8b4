"""
Tests for the correlation layer mathematical computations.

Covers: per-level statistics, outcome encoding (pnl / binary), Pearson r
bounds, insufficient data / variance handling, and strength labels.
"""
import os
import sys
from datetime import datetime, timedelta

import numpy as np
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from analytics.aggregator import aggregate
from analytics.correlation import (
    compute_correlation,
    correlation_strength,
    encode_outcomes,
    level_stats,
)
from engine_config import EngineConfig
from records import CorrelationStatus, EmotionRecord, TradeRecord

T0 = datetime(2024, 1, 1, 9, 0)


def _snapshot(pairs, pnls=None):
    """Build a snapshot from (level, outcome) pairs, one emotion per trade."""
    emotions, trades = [], []
    for i, (level, outcome) in enumerate(pairs):
        ts = T0 + timedelta(hours=i)
        emotions.append(EmotionRecord(id=f"e{i}", timestamp=ts, level=level))
        pnl = pnls[i] if pnls is not None else None
        trades.append(TradeRecord(id=f"t{i:03d}", timestamp=ts, symbol="ES",
                                  outcome=outcome, pnl=pnl, emotion_id=f"e{i}"))
    return aggregate(emotions, trades)


# ─── Per-level statistics ─────────────────────────────────────


class TestLevelStats:

    def test_level_seven_fifteen_trades(self):
        pairs = [(7, "win")] * 12 + [(7, "loss")] * 3
        stats = level_stats(_snapshot(pairs))
        assert len(stats) == 1
        s = stats[0]
        assert s.level == 7
        assert s.trade_count == 15
        assert s.wins == 12
        assert s.win_rate == 80

    def test_win_rate_matches_definition(self):
        pairs = [(3, "win"), (3, "loss"), (3, "breakeven"), (5, "win"), (5, "win"), (5, "loss")]
        for s in level_stats(_snapshot(pairs)):
            assert s.win_rate == round(100 * s.wins / s.trade_count)
            assert s.wins + s.losses + s.breakevens == s.trade_count

    def test_pnl_statistics(self):
        pairs = [(4, "win"), (4, "loss"), (4, "win")]
        s = level_stats(_snapshot(pairs, pnls=[100.0, -50.0, 50.0]))[0]
        assert s.average_pnl == pytest.approx(100.0 / 3)
        assert s.profit_factor == pytest.approx(3.0)
        assert s.pnl_std_dev == pytest.approx(np.std([100, -50, 50], ddof=1))

    def test_no_losses_means_no_profit_factor(self):
        s = level_stats(_snapshot([(4, "win"), (4, "win")], pnls=[10.0, 20.0]))[0]
        assert s.profit_factor is None

    def test_levels_sorted_ascending(self):
        pairs = [(9, "win"), (2, "loss"), (5, "win")]
        assert [s.level for s in level_stats(_snapshot(pairs))] == [2, 5, 9]


# ─── Encoding ─────────────────────────────────────────────────


class TestEncoding:

    def test_binary_encoding_values(self):
        snap = _snapshot([(2, "win"), (3, "loss"), (4, "breakeven")])
        encoding, x, y = encode_outcomes(snap.linked_trades)
        assert encoding == "binary"
        assert list(x) == [2.0, 3.0, 4.0]
        assert list(y) == [1.0, 0.0, 0.5]

    def test_pnl_preferred_when_present(self):
        snap = _snapshot([(2, "win"), (3, "loss"), (4, "win")], pnls=[10.0, None, 30.0])
        encoding, x, y = encode_outcomes(snap.linked_trades)
        assert encoding == "pnl"
        assert list(x) == [2.0, 4.0]
        assert list(y) == [10.0, 30.0]

    def test_empty(self):
        encoding, x, y = encode_outcomes(_snapshot([]).linked_trades)
        assert encoding is None
        assert len(x) == 0 and len(y) == 0


# ─── Pearson r ────────────────────────────────────────────────


class TestComputeCorrelation:

    def test_perfect_positive_binary(self):
        pairs = [(2, "loss")] * 3 + [(8, "win")] * 3
        result = compute_correlation(_snapshot(pairs))
        assert result.status is CorrelationStatus.OK
        assert result.coefficient == pytest.approx(1.0)
        assert result.sample_size == 6
        assert result.is_statistically_significant
        assert result.strength == "Strong"

    def test_negative_pnl_correlation(self):
        levels = [1, 2, 3, 4, 5, 6, 7, 8]
        pnls = [80.0, 65.0, 70.0, 40.0, 30.0, 35.0, 5.0, -10.0]
        pairs = [(lvl, "win" if p > 0 else "loss") for lvl, p in zip(levels, pnls)]
        result = compute_correlation(_snapshot(pairs, pnls=pnls))
        assert result.encoding == "pnl"
        assert result.coefficient < -0.9
        assert result.p_value < 0.05

    def test_below_min_sample_is_undefined(self):
        pairs = [(2, "loss"), (5, "win"), (8, "win"), (9, "win")]
        result = compute_correlation(_snapshot(pairs))
        assert result.coefficient is None
        assert result.status is CorrelationStatus.INSUFFICIENT_DATA
        assert not result.is_statistically_significant
        assert len(result.per_level_stats) == 4

    def test_zero_variance_in_level(self):
        pairs = [(6, "win"), (6, "loss"), (6, "win"), (6, "loss"), (6, "win")]
        result = compute_correlation(_snapshot(pairs))
        assert result.coefficient is None
        assert result.status is CorrelationStatus.INSUFFICIENT_VARIANCE
        assert result.per_level_stats[0].win_rate == 60

    def test_zero_variance_in_outcome(self):
        pairs = [(lvl, "win") for lvl in (1, 3, 5, 7, 9)]
        result = compute_correlation(_snapshot(pairs))
        assert result.coefficient is None
        assert result.status is CorrelationStatus.INSUFFICIENT_VARIANCE

    def test_coefficient_bounded_on_random_data(self):
        rng = np.random.default_rng(42)
        for _ in range(20):
            levels = rng.integers(1, 11, size=30)
            outcomes = rng.choice(["win", "loss", "breakeven"], size=30)
            result = compute_correlation(_snapshot(list(zip(levels.tolist(), outcomes.tolist()))))
            if result.coefficient is not None:
                assert -1.0 <= result.coefficient <= 1.0

    def test_serialized_never_nan(self):
        result = compute_correlation(_snapshot([]))
        out = result.to_dict()
        assert out["coefficient"] is None
        assert out["sampleSize"] == 0
        assert out["status"] == "insufficient_data"

    def test_min_sample_override(self):
        pairs = [(2, "loss"), (5, "win"), (8, "win")]
        result = compute_correlation(_snapshot(pairs), EngineConfig(min_sample=3))
        assert result.coefficient is not None
        assert not result.is_statistically_significant


class TestStrength:

    @pytest.mark.parametrize("r,label", [
        (None, "None"), (0.05, "None"), (0.1, "Weak"), (-0.29, "Weak"),
        (0.3, "Moderate"), (-0.49, "Moderate"), (0.5, "Strong"), (-1.0, "Strong"),
    ])
    def test_labels(self, r, label):
        assert correlation_strength(r, EngineConfig()) == label
