"""Weekly trend layer.

One TrendPoint per ISO week that has at least one trade.  Direction is the
win-rate delta against the immediately preceding calendar week:

    delta >  +TREND_DELTA  → improving
    delta <  −TREND_DELTA  → declining
    otherwise              → stable

The first week, and any week whose previous calendar week had no trades,
has no baseline and gets direction None.
"""

from __future__ import annotations

import logging
from collections import Counter
from datetime import timedelta
from typing import List, Optional

import numpy as np

from analytics.aggregator import AggregatedSnapshot, win_rate_pct
from engine_config import EngineConfig
from records import TrendDirection, TrendPoint

log = logging.getLogger("trends")

ONE_WEEK = timedelta(days=7)


def classify_direction(delta: float, threshold: float) -> TrendDirection:
    if delta > threshold:
        return TrendDirection.IMPROVING
    if delta < -threshold:
        return TrendDirection.DECLINING
    return TrendDirection.STABLE


def detect_trends(snapshot: AggregatedSnapshot,
                  config: Optional[EngineConfig] = None) -> List[TrendPoint]:
    config = config or EngineConfig()
    log.info("   Layer 2: weekly trends…")

    points: List[TrendPoint] = []
    prev_week, prev_wr = None, None
    for week, grp in sorted(snapshot.by_week.items()):
        n = len(grp)
        wr = win_rate_pct(int(grp["is_win"].sum()), n)
        pnl = grp["pnl"].dropna()

        emo = snapshot.emotions_by_week.get(week)
        if emo is not None and len(emo):
            levels = emo["level"].astype(float).to_numpy()
            avg_emotion: Optional[float] = float(levels.mean())
            volatility: Optional[float] = float(np.std(levels, ddof=0))
            n_emotions = len(levels)
        else:
            avg_emotion, volatility, n_emotions = None, None, 0

        direction, delta = None, None
        if prev_week is not None and week - prev_week == ONE_WEEK:
            delta = wr - prev_wr
            direction = classify_direction(delta, config.trend_delta)

        points.append(TrendPoint(
            week_start=week,
            average_emotion=avg_emotion,
            win_rate=wr,
            total_pnl=float(pnl.sum()) if len(pnl) else None,
            direction=direction,
            trade_count=n,
            emotion_count=n_emotions,
            emotion_volatility=volatility,
            win_rate_delta=delta,
        ))
        prev_week, prev_wr = week, wr

    counts = Counter(p.direction.value for p in points if p.direction is not None)
    log.info("   %d weeks (%s)", len(points),
             ", ".join(f"{k}={v}" for k, v in sorted(counts.items())) or "no comparable weeks")
    return points
