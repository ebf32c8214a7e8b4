"""
Emotion / trade records and analysis result contracts.

Frozen dataclasses for everything that crosses the engine boundary:
  * inputs:  EmotionRecord, TradeRecord (immutable once created)
  * outputs: CorrelationResult, TrendPoint, OptimalConditions, Insight,
              EmotionProfile, Diagnostics, AnalysisResult

Input records are deliberately NOT validated on construction: rows coming
from storage may carry out-of-range levels or unknown outcomes, and the
aggregator filters those out (counted in Diagnostics) instead of raising.

Every output type has ``to_dict()`` producing the stable camelCase JSON
contract.  Win rates and confidences are 0-100, coefficients -1..1, and
no NaN / Infinity ever reaches a serialized value.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from constants import CONTRACT_VERSION, DAY_NAMES


# ─── Enums ────────────────────────────────────────────────────


class EmotionContext(Enum):
    PRE_TRADE = "pre-trade"
    POST_TRADE = "post-trade"
    MARKET_EVENT = "market-event"


class TradeOutcome(Enum):
    WIN = "win"
    LOSS = "loss"
    BREAKEVEN = "breakeven"


class TrendDirection(Enum):
    IMPROVING = "improving"
    DECLINING = "declining"
    STABLE = "stable"


class CorrelationStatus(Enum):
    OK = "ok"
    INSUFFICIENT_DATA = "insufficient_data"
    INSUFFICIENT_VARIANCE = "insufficient_variance"


class InsightKind(Enum):
    PERFORMANCE_CORRELATION = "performance_correlation"
    WARNING = "warning"
    TREND = "trend"
    TIMING = "timing"


class InsightPriority(Enum):
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"

    @property
    def rank(self) -> int:
        return {"High": 3, "Medium": 2, "Low": 1}[self.value]


def coerce_enum(enum_cls, value):
    """Return the enum member for *value* (member or wire string), else None."""
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        try:
            return enum_cls(value.strip().lower())
        except ValueError:
            return None
    return None


# ─── Input records ────────────────────────────────────────────


@dataclass(frozen=True)
class EmotionRecord:
    """A self-reported emotional state (level 1-10) at a point in time."""
    id: str
    timestamp: datetime
    level: int
    context: Any = EmotionContext.PRE_TRADE   # EmotionContext or wire string
    symbol: Optional[str] = None


@dataclass(frozen=True)
class TradeRecord:
    """A closed trade.  ``emotion_id`` is the explicit link, if any."""
    id: str
    timestamp: datetime
    symbol: str
    outcome: Any                              # TradeOutcome or wire string
    pnl: Optional[Any] = None                 # Decimal / int / float
    emotion_id: Optional[str] = None


# ─── Row conversion (storage / JSON → records) ───────────────


def _pick(row: Dict[str, Any], *keys: str) -> Any:
    for k in keys:
        if k in row and row[k] is not None:
            return row[k]
    return None


def parse_timestamp(value: Any) -> Any:
    """Best-effort datetime parse; unparseable input is returned unchanged."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time.min)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return datetime.fromisoformat(text)
        except ValueError:
            return value
    return value


def _parse_level(value: Any) -> Any:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    return value


def _parse_pnl(value: Any) -> Any:
    if value is None or isinstance(value, (Decimal, int, float)):
        return value
    if isinstance(value, str):
        if not value.strip():
            return None
        try:
            return Decimal(value.strip())
        except InvalidOperation:
            return value
    return value


def emotion_from_row(row: Dict[str, Any]) -> EmotionRecord:
    """Build an EmotionRecord from a DB / JSON row (snake or camel keys)."""
    return EmotionRecord(
        id=str(_pick(row, "id", "emotion_id", "emotionId")),
        timestamp=parse_timestamp(_pick(row, "timestamp", "created_at", "createdAt")),
        level=_parse_level(row.get("level")),
        context=row.get("context") or EmotionContext.PRE_TRADE,
        symbol=row.get("symbol") or None,
    )


def trade_from_row(row: Dict[str, Any]) -> TradeRecord:
    """Build a TradeRecord from a DB / JSON row (snake or camel keys)."""
    link = _pick(row, "emotion_id", "emotion_check_id", "emotionCheckId", "emotionId")
    return TradeRecord(
        id=str(_pick(row, "id", "trade_id", "tradeId")),
        timestamp=parse_timestamp(_pick(row, "timestamp", "entry_time", "entryTime")),
        symbol=str(row.get("symbol") or ""),
        outcome=row.get("outcome"),
        pnl=_parse_pnl(row.get("pnl")),
        emotion_id=str(link) if link is not None else None,
    )


# ─── Serialization helpers ───────────────────────────────────


def _num(value: Optional[float], digits: int = 2) -> Optional[float]:
    """Round a float for JSON; NaN / Infinity become None."""
    if value is None:
        return None
    value = float(value)
    if math.isnan(value) or math.isinf(value):
        return None
    return round(value, digits)


def _range(value: Optional[Tuple[int, int]]) -> Optional[List[int]]:
    return [int(value[0]), int(value[1])] if value else None


# ─── Output contracts ─────────────────────────────────────────


@dataclass(frozen=True)
class EmotionLevelStat:
    level: int
    trade_count: int
    wins: int
    losses: int
    breakevens: int
    win_rate: int
    average_pnl: Optional[float]
    average_emotion: float
    pnl_std_dev: Optional[float] = None
    profit_factor: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "level": self.level,
            "tradeCount": self.trade_count,
            "wins": self.wins,
            "losses": self.losses,
            "breakevens": self.breakevens,
            "winRate": self.win_rate,
            "averagePnl": _num(self.average_pnl),
            "averageEmotion": _num(self.average_emotion),
            "pnlStdDev": _num(self.pnl_std_dev),
            "profitFactor": _num(self.profit_factor),
        }


@dataclass(frozen=True)
class CorrelationResult:
    coefficient: Optional[float]
    sample_size: int
    is_statistically_significant: bool
    per_level_stats: Tuple[EmotionLevelStat, ...] = ()
    status: CorrelationStatus = CorrelationStatus.INSUFFICIENT_DATA
    encoding: Optional[str] = None
    p_value: Optional[float] = None
    t_statistic: Optional[float] = None
    critical_value: Optional[float] = None
    strength: str = "None"

    @classmethod
    def empty(cls) -> "CorrelationResult":
        return cls(coefficient=None, sample_size=0, is_statistically_significant=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "coefficient": _num(self.coefficient, 4),
            "sampleSize": self.sample_size,
            "isStatisticallySignificant": self.is_statistically_significant,
            "perLevelStats": [s.to_dict() for s in self.per_level_stats],
            "status": self.status.value,
            "encoding": self.encoding,
            "pValue": _num(self.p_value, 6),
            "tStatistic": _num(self.t_statistic, 4),
            "criticalValue": _num(self.critical_value, 4),
            "strength": self.strength,
        }


@dataclass(frozen=True)
class TrendPoint:
    week_start: date
    average_emotion: Optional[float]
    win_rate: int
    total_pnl: Optional[float]
    direction: Optional[TrendDirection]
    trade_count: int = 0
    emotion_count: int = 0
    emotion_volatility: Optional[float] = None
    win_rate_delta: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "weekStart": self.week_start.isoformat(),
            "averageEmotion": _num(self.average_emotion),
            "winRate": self.win_rate,
            "totalPnl": _num(self.total_pnl),
            "direction": self.direction.value if self.direction else None,
            "tradeCount": self.trade_count,
            "emotionCount": self.emotion_count,
            "emotionVolatility": _num(self.emotion_volatility),
            "winRateDelta": self.win_rate_delta,
        }


@dataclass(frozen=True)
class MarketTiming:
    day_of_week: int        # 0 = Monday
    hour: int
    win_rate: int
    trade_count: int

    @property
    def day_name(self) -> str:
        return DAY_NAMES[self.day_of_week]

    @property
    def label(self) -> str:
        return f"{self.day_name} {self.hour:02d}:00"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dayOfWeek": self.day_of_week,
            "dayName": self.day_name,
            "hour": self.hour,
            "winRate": self.win_rate,
            "tradeCount": self.trade_count,
        }


@dataclass(frozen=True)
class OptimalConditions:
    optimal_emotion_range: Optional[Tuple[int, int]] = None
    caution_emotion_range: Optional[Tuple[int, int]] = None
    avoid_emotion_range: Optional[Tuple[int, int]] = None
    best_market_timing: Optional[MarketTiming] = None
    overall_score: float = 0.0
    optimal_win_rate: Optional[int] = None
    day_performance: Dict[str, int] = field(default_factory=dict)
    hour_performance: Dict[int, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        timing = self.best_market_timing
        return {
            "optimalEmotionRange": _range(self.optimal_emotion_range),
            "cautionEmotionRange": _range(self.caution_emotion_range),
            "avoidEmotionRange": _range(self.avoid_emotion_range),
            "bestMarketTiming": timing.to_dict() if timing else None,
            "overallScore": _num(self.overall_score, 1),
            "optimalWinRate": self.optimal_win_rate,
            "dayPerformance": dict(self.day_performance),
            "hourPerformance": {str(h): wr for h, wr in sorted(self.hour_performance.items())},
        }


@dataclass(frozen=True)
class Insight:
    id: str
    kind: InsightKind
    title: str
    message: str
    confidence: float
    priority: InsightPriority
    actionable: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "title": self.title,
            "message": self.message,
            "confidence": _num(self.confidence, 1),
            "priority": self.priority.value,
            "actionable": self.actionable,
        }


@dataclass(frozen=True)
class EmotionProfile:
    average_emotion: Optional[float] = None
    most_common_emotion: Optional[int] = None
    emotion_volatility: Optional[float] = None
    total_checks: int = 0
    distribution: Tuple[Tuple[int, int, float], ...] = ()   # (level, count, pct)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "averageEmotion": _num(self.average_emotion),
            "mostCommonEmotion": self.most_common_emotion,
            "emotionVolatility": _num(self.emotion_volatility),
            "totalChecks": self.total_checks,
            "distribution": [
                {"level": lvl, "count": cnt, "percentage": _num(pct)}
                for lvl, cnt, pct in self.distribution
            ],
        }


@dataclass(frozen=True)
class Diagnostics:
    emotions_received: int = 0
    emotions_used: int = 0
    trades_received: int = 0
    trades_used: int = 0
    excluded: Dict[str, int] = field(default_factory=dict)
    unlinked_trades: int = 0
    trades_without_pnl: int = 0
    degraded_reasons: Tuple[str, ...] = ()

    @property
    def analysis_status(self) -> str:
        return "degraded" if self.degraded_reasons else "success"

    @property
    def total_excluded(self) -> int:
        return sum(self.excluded.values())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "emotionsReceived": self.emotions_received,
            "emotionsUsed": self.emotions_used,
            "tradesReceived": self.trades_received,
            "tradesUsed": self.trades_used,
            "excluded": {k: self.excluded[k] for k in sorted(self.excluded)},
            "totalExcluded": self.total_excluded,
            "unlinkedTrades": self.unlinked_trades,
            "tradesWithoutPnl": self.trades_without_pnl,
            "analysisStatus": self.analysis_status,
            "degradedReasons": list(self.degraded_reasons),
        }


@dataclass(frozen=True)
class AnalysisResult:
    correlation: CorrelationResult
    trends: Tuple[TrendPoint, ...]
    optimal_conditions: OptimalConditions
    insights: Tuple[Insight, ...]
    emotion_profile: EmotionProfile
    diagnostics: Diagnostics
    version: str = CONTRACT_VERSION

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "correlation": self.correlation.to_dict(),
            "trends": [t.to_dict() for t in self.trends],
            "optimalConditions": self.optimal_conditions.to_dict(),
            "insights": [i.to_dict() for i in self.insights],
            "emotionProfile": self.emotion_profile.to_dict(),
            "diagnostics": self.diagnostics.to_dict(),
        }
