"""Significance gate for a Pearson coefficient.

Two-tailed t-test with n-2 degrees of freedom:

    t = r · √((n − 2) / (1 − r²))

Significant when |t| exceeds the Student-t critical value for the
configured alpha (scipy ``t.ppf``).  The gate never alters r itself.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional

from scipy import stats as sp_stats

from engine_config import EngineConfig


@dataclass(frozen=True)
class SignificanceResult:
    is_significant: bool
    t_statistic: Optional[float] = None
    critical_value: Optional[float] = None
    p_value: Optional[float] = None
    degrees_of_freedom: Optional[int] = None


NOT_SIGNIFICANT = SignificanceResult(is_significant=False)


def critical_t(dof: int, alpha: float) -> float:
    """Two-tailed critical |t| at *alpha* for *dof* degrees of freedom."""
    if dof < 1:
        raise ValueError(f"degrees of freedom must be >= 1, got {dof}")
    return float(sp_stats.t.ppf(1.0 - alpha / 2.0, dof))


def evaluate_significance(r: Optional[float], n: int,
                          config: Optional[EngineConfig] = None) -> SignificanceResult:
    config = config or EngineConfig()
    if r is None or n < config.min_sample:
        return NOT_SIGNIFICANT

    dof = n - 2
    crit = critical_t(dof, config.significance_alpha)
    denom = 1.0 - r * r
    if denom <= 0.0:
        # |r| == 1: t is unbounded, report it as absent rather than inf
        return SignificanceResult(True, None, crit, 0.0, dof)

    t_stat = r * math.sqrt(dof / denom)
    p = float(2.0 * sp_stats.t.sf(abs(t_stat), dof))
    return SignificanceResult(abs(t_stat) > crit, t_stat, crit, p, dof)
