"""
Tests for the two-tailed t-test significance gate.
"""
import math
import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from analytics.significance import NOT_SIGNIFICANT, critical_t, evaluate_significance
from engine_config import EngineConfig


class TestCriticalT:

    def test_known_table_values(self):
        assert critical_t(1, 0.05) == pytest.approx(12.706, abs=1e-3)
        assert critical_t(10, 0.05) == pytest.approx(2.228, abs=1e-3)
        assert critical_t(18, 0.05) == pytest.approx(2.101, abs=1e-3)

    def test_large_df_approaches_normal(self):
        assert critical_t(1000, 0.05) == pytest.approx(1.96, abs=0.01)

    def test_zero_df_rejected(self):
        with pytest.raises(ValueError):
            critical_t(0, 0.05)


class TestEvaluateSignificance:

    def test_three_samples_never_significant(self):
        assert not evaluate_significance(0.99, 3).is_significant

    def test_three_samples_with_lowered_floor(self):
        # dof = 1: t ≈ 7.0 is still below t_crit ≈ 12.7
        result = evaluate_significance(0.99, 3, EngineConfig(min_sample=3))
        assert result.degrees_of_freedom == 1
        assert not result.is_significant
        assert result.t_statistic == pytest.approx(0.99 * math.sqrt(1 / (1 - 0.99 ** 2)))

    def test_moderate_r_with_twenty_samples(self):
        result = evaluate_significance(0.5, 20)
        assert result.t_statistic == pytest.approx(0.5 * math.sqrt(18 / 0.75))
        assert result.is_significant
        assert result.p_value < 0.05

    def test_weak_r_not_significant(self):
        result = evaluate_significance(0.3, 20)
        assert not result.is_significant
        assert result.p_value > 0.05

    def test_symmetric_for_negative_r(self):
        pos = evaluate_significance(0.5, 20)
        neg = evaluate_significance(-0.5, 20)
        assert neg.is_significant
        assert neg.t_statistic == pytest.approx(-pos.t_statistic)
        assert neg.p_value == pytest.approx(pos.p_value)

    def test_perfect_correlation(self):
        result = evaluate_significance(1.0, 10)
        assert result.is_significant
        assert result.t_statistic is None
        assert result.p_value == 0.0

    def test_undefined_r(self):
        assert evaluate_significance(None, 50) == NOT_SIGNIFICANT

    def test_stricter_alpha(self):
        # p ≈ 0.025 passes at 0.05 but not at 0.01
        assert evaluate_significance(0.5, 20).is_significant
        assert not evaluate_significance(0.5, 20, EngineConfig(significance_alpha=0.01)).is_significant
