"""Data aggregation layer: record validation, trade→emotion join, bucketing.

Builds the single pandas snapshot every other layer reads from:

  trades:    one row per valid trade; ``level`` is NaN when the trade has
              no resolvable emotion link (still counted in totals/timing)
  emotions:  one row per valid emotion record

and three groupings over it:

  by_level:   linked trades per emotion level 1-10
  by_week:    trades per ISO week (week starts Monday)
  by_timing:  trades per (day-of-week, hour)

Groupings come straight from ``DataFrame.groupby`` so a bucket with zero
records simply does not exist; nothing downstream can divide by zero.

Timezone-aware timestamps are normalised to naive UTC before bucketing.
"""

from __future__ import annotations

import logging
import math
from collections import Counter
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from constants import MAX_LEVEL, MIN_LEVEL
from engine_config import EngineConfig, LinkPolicy
from records import (
    EmotionContext,
    EmotionProfile,
    EmotionRecord,
    TradeOutcome,
    TradeRecord,
    coerce_enum,
)

log = logging.getLogger("aggregator")

TRADE_COLUMNS = [
    "trade_id", "timestamp", "symbol", "outcome", "is_win", "pnl",
    "emotion_id", "level", "link", "week_start", "day_of_week", "hour",
]
EMOTION_COLUMNS = ["emotion_id", "timestamp", "level", "context", "symbol", "week_start"]

# Exclusion reasons (Diagnostics.excluded keys)
EMOTION_BAD_LEVEL = "emotion_level_out_of_range"
EMOTION_BAD_CONTEXT = "emotion_unknown_context"
EMOTION_BAD_TIMESTAMP = "emotion_bad_timestamp"
TRADE_BAD_OUTCOME = "trade_unknown_outcome"
TRADE_BAD_TIMESTAMP = "trade_bad_timestamp"
TRADE_BAD_PNL = "trade_bad_pnl"
OUTSIDE_RANGE = "outside_date_range"


def win_rate_pct(wins: int, count: int) -> int:
    """Win rate as an integer percentage: round(100 * wins / count)."""
    if count <= 0:
        raise ValueError("win rate of an empty bucket is undefined")
    return int(round(100 * wins / count))


def week_start_of(ts: datetime) -> date:
    """Monday of the ISO week containing *ts*."""
    d = ts.date()
    return d - timedelta(days=d.weekday())


@dataclass(frozen=True, eq=False)
class AggregatedSnapshot:
    trades: pd.DataFrame
    emotions: pd.DataFrame
    by_level: Dict[int, pd.DataFrame]
    by_week: Dict[date, pd.DataFrame]
    emotions_by_week: Dict[date, pd.DataFrame]
    by_timing: Dict[Tuple[int, int], pd.DataFrame]
    emotion_profile: EmotionProfile
    excluded: Dict[str, int]
    emotions_received: int
    trades_received: int

    @property
    def linked_trades(self) -> pd.DataFrame:
        return self.trades[self.trades["level"].notna()]

    @property
    def unlinked_count(self) -> int:
        return int(self.trades["level"].isna().sum())

    @property
    def overall_win_rate(self) -> Optional[int]:
        n = len(self.trades)
        if n == 0:
            return None
        return win_rate_pct(int(self.trades["is_win"].sum()), n)


# ─── Validation helpers ───────────────────────────────────────


def _naive_utc(ts: datetime) -> datetime:
    if ts.tzinfo is not None:
        return ts.astimezone(timezone.utc).replace(tzinfo=None)
    return ts


def _as_bound(value, end: bool = False) -> Optional[datetime]:
    """Date-range bound → naive datetime; a bare date covers the whole day."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return _naive_utc(value)
    if isinstance(value, date):
        if end:
            return datetime.combine(value, time.max)
        return datetime.combine(value, time.min)
    raise TypeError(f"date range bound must be date or datetime, got {type(value).__name__}")


def _valid_level(level) -> bool:
    if isinstance(level, bool) or not isinstance(level, (int, np.integer)):
        return False
    return MIN_LEVEL <= int(level) <= MAX_LEVEL


def _valid_pnl(pnl) -> Tuple[bool, Optional[float]]:
    if pnl is None:
        return True, None
    if isinstance(pnl, bool) or not isinstance(pnl, (int, float, Decimal, np.number)):
        return False, None
    try:
        value = float(pnl)
    except (ValueError, OverflowError):
        return False, None
    if not math.isfinite(value):
        return False, None
    return True, value


def _in_range(ts: datetime, start: Optional[datetime], end: Optional[datetime]) -> bool:
    if start is not None and ts < start:
        return False
    if end is not None and ts > end:
        return False
    return True


# ─── Frame builders ───────────────────────────────────────────


def _sorted_emotions(rows: List[Dict]) -> pd.DataFrame:
    if not rows:
        return pd.DataFrame(columns=EMOTION_COLUMNS)
    df = pd.DataFrame(rows, columns=EMOTION_COLUMNS)
    return df.sort_values(["timestamp", "emotion_id"], kind="mergesort").reset_index(drop=True)


def _emotion_frame(emotions: Sequence[EmotionRecord], start, end,
                   excluded: Counter) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Return (in-window emotions, every valid emotion).

    The second frame is the link pool: a trade inside the window may point
    at a check logged just before the window opened.
    """
    rows: List[Dict] = []
    pool: List[Dict] = []
    for rec in emotions:
        if not isinstance(rec.timestamp, datetime):
            excluded[EMOTION_BAD_TIMESTAMP] += 1
            log.debug("Excluded emotion %s: bad timestamp %r", rec.id, rec.timestamp)
            continue
        if not _valid_level(rec.level):
            excluded[EMOTION_BAD_LEVEL] += 1
            log.debug("Excluded emotion %s: level %r out of range", rec.id, rec.level)
            continue
        context = coerce_enum(EmotionContext, rec.context)
        if context is None:
            excluded[EMOTION_BAD_CONTEXT] += 1
            log.debug("Excluded emotion %s: unknown context %r", rec.id, rec.context)
            continue
        ts = _naive_utc(rec.timestamp)
        row = {
            "emotion_id": str(rec.id),
            "timestamp": ts,
            "level": int(rec.level),
            "context": context.value,
            "symbol": rec.symbol,
            "week_start": week_start_of(ts),
        }
        pool.append(row)
        if not _in_range(ts, start, end):
            excluded[OUTSIDE_RANGE] += 1
            continue
        rows.append(row)
    return _sorted_emotions(rows), _sorted_emotions(pool)


def _trade_frame(trades: Sequence[TradeRecord], start, end,
                 excluded: Counter) -> pd.DataFrame:
    rows: List[Dict] = []
    for rec in trades:
        if not isinstance(rec.timestamp, datetime):
            excluded[TRADE_BAD_TIMESTAMP] += 1
            log.debug("Excluded trade %s: bad timestamp %r", rec.id, rec.timestamp)
            continue
        outcome = coerce_enum(TradeOutcome, rec.outcome)
        if outcome is None:
            excluded[TRADE_BAD_OUTCOME] += 1
            log.debug("Excluded trade %s: unknown outcome %r", rec.id, rec.outcome)
            continue
        ok, pnl = _valid_pnl(rec.pnl)
        if not ok:
            excluded[TRADE_BAD_PNL] += 1
            log.debug("Excluded trade %s: bad pnl %r", rec.id, rec.pnl)
            continue
        ts = _naive_utc(rec.timestamp)
        if not _in_range(ts, start, end):
            excluded[OUTSIDE_RANGE] += 1
            continue
        rows.append({
            "trade_id": str(rec.id),
            "timestamp": ts,
            "symbol": rec.symbol,
            "outcome": outcome.value,
            "is_win": outcome is TradeOutcome.WIN,
            "pnl": pnl,
            "emotion_id": str(rec.emotion_id) if rec.emotion_id is not None else None,
            "level": np.nan,
            "link": None,
            "week_start": week_start_of(ts),
            "day_of_week": ts.weekday(),
            "hour": ts.hour,
        })
    if not rows:
        return pd.DataFrame(columns=TRADE_COLUMNS)
    df = pd.DataFrame(rows, columns=TRADE_COLUMNS)
    df["pnl"] = df["pnl"].astype(float)
    df["level"] = df["level"].astype(float)
    return df.sort_values(["timestamp", "trade_id"], kind="mergesort").reset_index(drop=True)


# ─── Join ─────────────────────────────────────────────────────


def _resolve_links(trades: pd.DataFrame, emotions: pd.DataFrame,
                   config: EngineConfig) -> pd.DataFrame:
    """Attach an emotion level to each trade according to the link policy."""
    if trades.empty or emotions.empty:
        return trades

    first_by_id = emotions.drop_duplicates("emotion_id", keep="first")
    level_by_id = dict(zip(first_by_id["emotion_id"], first_by_id["level"]))

    trades = trades.copy()
    trades["level"] = trades["emotion_id"].map(level_by_id).astype(float)
    trades.loc[trades["level"].notna(), "link"] = "explicit"

    if config.link_policy is LinkPolicy.PRECEDING:
        candidates = trades[trades["emotion_id"].isna()]
        if not candidates.empty:
            left = candidates[["timestamp"]].reset_index().rename(columns={"index": "_row"})
            right = emotions[["timestamp", "level"]].rename(columns={"level": "implicit_level"})
            left["timestamp"] = pd.to_datetime(left["timestamp"])
            right = right.assign(timestamp=pd.to_datetime(right["timestamp"]))
            tolerance = (pd.Timedelta(config.implicit_link_max_age)
                         if config.implicit_link_max_age is not None else None)
            merged = pd.merge_asof(
                left.sort_values("timestamp", kind="mergesort"),
                right,
                on="timestamp",
                direction="backward",
                tolerance=tolerance,
            )
            hits = merged[merged["implicit_level"].notna()]
            trades.loc[hits["_row"].values, "level"] = hits["implicit_level"].astype(float).values
            trades.loc[hits["_row"].values, "link"] = "preceding"
            log.debug("Implicitly linked %d/%d unlinked trades", len(hits), len(candidates))
    return trades


# ─── Emotion profile ──────────────────────────────────────────


def _emotion_profile(emotions: pd.DataFrame) -> EmotionProfile:
    if emotions.empty:
        return EmotionProfile()
    levels = emotions["level"].astype(int)
    counts = levels.value_counts()
    top = int(counts.max())
    most_common = int(min(lvl for lvl, c in counts.items() if c == top))
    total = len(levels)
    distribution = tuple(
        (int(lvl), int(counts[lvl]), 100.0 * int(counts[lvl]) / total)
        for lvl in sorted(counts.index)
    )
    return EmotionProfile(
        average_emotion=float(levels.mean()),
        most_common_emotion=most_common,
        emotion_volatility=float(np.std(levels.values, ddof=0)),
        total_checks=total,
        distribution=distribution,
    )


# ─── Entry point ──────────────────────────────────────────────


def aggregate(emotions: Sequence[EmotionRecord], trades: Sequence[TradeRecord],
              config: Optional[EngineConfig] = None,
              start=None, end=None) -> AggregatedSnapshot:
    """Validate, join and bucket one user's snapshot.

    ``start`` / ``end`` are inclusive; a bare ``date`` end covers that whole
    day.  Never raises on bad records; they are excluded and counted.

    The window applies to trades and to the emotion profile/buckets only.
    Links resolve against every valid emotion record, so a check logged
    just before ``start`` still links a trade inside the window.
    """
    config = config or EngineConfig()
    start_dt, end_dt = _as_bound(start), _as_bound(end, end=True)
    emotions = list(emotions or [])
    trades = list(trades or [])
    excluded: Counter = Counter()

    emo_df, link_pool = _emotion_frame(emotions, start_dt, end_dt, excluded)
    trade_df = _trade_frame(trades, start_dt, end_dt, excluded)
    trade_df = _resolve_links(trade_df, link_pool, config)

    linked = trade_df[trade_df["level"].notna()]
    by_level = {int(lvl): grp for lvl, grp in linked.groupby("level", sort=True)}
    by_week = {wk: grp for wk, grp in trade_df.groupby("week_start", sort=True)}
    emotions_by_week = {wk: grp for wk, grp in emo_df.groupby("week_start", sort=True)}
    by_timing = {
        (int(d), int(h)): grp
        for (d, h), grp in trade_df.groupby(["day_of_week", "hour"], sort=True)
    }

    if excluded:
        log.warning(
            "   Excluded %d malformed/out-of-range records: %s",
            sum(excluded.values()),
            ", ".join(f"{k}={v}" for k, v in sorted(excluded.items())),
        )
    log.info(
        "   Aggregated %d trades (%d linked), %d emotion records, "
        "%d levels, %d weeks, %d timing slots",
        len(trade_df), len(linked), len(emo_df),
        len(by_level), len(by_week), len(by_timing),
    )

    return AggregatedSnapshot(
        trades=trade_df,
        emotions=emo_df,
        by_level=by_level,
        by_week=by_week,
        emotions_by_week=emotions_by_week,
        by_timing=by_timing,
        emotion_profile=_emotion_profile(emo_df),
        excluded=dict(excluded),
        emotions_received=len(emotions),
        trades_received=len(trades),
    )
