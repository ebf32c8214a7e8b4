"""Emotion ↔ outcome correlation layer.

x = linked emotion level, y = outcome encoding:

  * ``pnl``:    when any linked trade carries a pnl, y is the raw pnl and
                 only linked trades with a pnl are paired
  * ``binary``: otherwise win = 1, loss = 0, breakeven = 0.5

r = cov(x, y) / (σx · σy), computed with scipy's pearsonr.  r is None
(never NaN) when n < MIN_SAMPLE or when x or y has zero variance.

Per-level statistics are independent of r: every level with at least one
linked trade gets a row, even when r itself is undefined.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Tuple

import numpy as np
import pandas as pd
from scipy import stats as sp_stats

from analytics.aggregator import AggregatedSnapshot, win_rate_pct
from analytics.significance import evaluate_significance
from constants import OUTCOME_ENCODING, WEAK_CORRELATION_THRESHOLD
from engine_config import EngineConfig
from records import CorrelationResult, CorrelationStatus, EmotionLevelStat

log = logging.getLogger("correlation")


def level_stats(snapshot: AggregatedSnapshot) -> List[EmotionLevelStat]:
    """Win rate / pnl statistics for every non-empty emotion level."""
    stats: List[EmotionLevelStat] = []
    for level, grp in sorted(snapshot.by_level.items()):
        n = len(grp)
        wins = int(grp["is_win"].sum())
        losses = int((grp["outcome"] == "loss").sum())
        pnl = grp["pnl"].dropna()

        avg_pnl = float(pnl.mean()) if len(pnl) else None
        std_pnl = float(pnl.std(ddof=1)) if len(pnl) >= 2 else None
        gross_loss = float(-pnl[pnl < 0].sum())
        profit_factor = float(pnl[pnl > 0].sum()) / gross_loss if gross_loss > 0 else None

        stats.append(EmotionLevelStat(
            level=level,
            trade_count=n,
            wins=wins,
            losses=losses,
            breakevens=n - wins - losses,
            win_rate=win_rate_pct(wins, n),
            average_pnl=avg_pnl,
            average_emotion=float(grp["level"].mean()),
            pnl_std_dev=std_pnl,
            profit_factor=profit_factor,
        ))
    return stats


def encode_outcomes(linked: pd.DataFrame) -> Tuple[Optional[str], np.ndarray, np.ndarray]:
    """Return (encoding, x, y) for the correlation pairs."""
    if linked.empty:
        return None, np.array([]), np.array([])
    with_pnl = linked[linked["pnl"].notna()]
    if not with_pnl.empty:
        return ("pnl",
                with_pnl["level"].to_numpy(dtype=float),
                with_pnl["pnl"].to_numpy(dtype=float))
    return ("binary",
            linked["level"].to_numpy(dtype=float),
            linked["outcome"].map(OUTCOME_ENCODING).to_numpy(dtype=float))


def correlation_strength(r: Optional[float], config: EngineConfig) -> str:
    if r is None:
        return "None"
    a = abs(r)
    if a >= config.strong_correlation_threshold:
        return "Strong"
    if a >= config.correlation_insight_threshold:
        return "Moderate"
    if a >= WEAK_CORRELATION_THRESHOLD:
        return "Weak"
    return "None"


def compute_correlation(snapshot: AggregatedSnapshot,
                        config: Optional[EngineConfig] = None) -> CorrelationResult:
    config = config or EngineConfig()
    log.info("   Layer 1: emotion/outcome correlation…")

    per_level = tuple(level_stats(snapshot))
    encoding, x, y = encode_outcomes(snapshot.linked_trades)
    n = len(x)
    n_linked = len(snapshot.linked_trades)
    if encoding == "pnl" and n < n_linked:
        log.warning("   pnl encoding pairs %d of %d linked trades; %d lack a pnl",
                    n, n_linked, n_linked - n)

    r: Optional[float] = None
    if n < config.min_sample:
        status = CorrelationStatus.INSUFFICIENT_DATA
    elif np.std(x) < 1e-10 or np.std(y) < 1e-10:
        status = CorrelationStatus.INSUFFICIENT_VARIANCE
    else:
        r_raw, _ = sp_stats.pearsonr(x, y)
        r = float(np.clip(r_raw, -1.0, 1.0))
        status = CorrelationStatus.OK

    sig = evaluate_significance(r, n, config)

    if r is None:
        log.info("   r undefined (%s, n=%d, encoding=%s)", status.value, n, encoding)
    else:
        log.info("   r=%+.3f n=%d encoding=%s significant=%s",
                 r, n, encoding, sig.is_significant)

    return CorrelationResult(
        coefficient=r,
        sample_size=n,
        is_statistically_significant=sig.is_significant,
        per_level_stats=per_level,
        status=status,
        encoding=encoding,
        p_value=sig.p_value,
        t_statistic=sig.t_statistic,
        critical_value=sig.critical_value,
        strength=correlation_strength(r, config),
    )
