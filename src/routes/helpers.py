"""
Shared helpers for API routes.
Contains: DB access, period windows, engine wiring, response shaping.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any, Dict, List, Optional, Tuple

import psycopg2
from dotenv import load_dotenv
from psycopg2.extras import RealDictCursor

from db_utils import require_conn_str
from engine_config import EngineConfig
from pattern_engine import PatternAnalysisEngine
from pipeline.snapshot_loader import Snapshot, SnapshotLoader, period_window
from records import AnalysisResult, InsightPriority

load_dotenv()

log = logging.getLogger("api")


# ─── DB helpers ─────────────────────────────────────────────

def _fetch_one(query: str, params: Optional[tuple] = None) -> Optional[Dict[str, Any]]:
    conn = psycopg2.connect(require_conn_str())
    try:
        with conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(query, params or ())
            row = cur.fetchone()
            return dict(row) if row else None
    finally:
        conn.close()


def _load_snapshot(user_id: str, start: Optional[datetime],
                   end: Optional[datetime]) -> Snapshot:
    return SnapshotLoader().load(user_id, start=start, end=end)


# ─── Windows ────────────────────────────────────────────────

def _naive_utc(ts: datetime) -> datetime:
    if ts.tzinfo is not None:
        return ts.astimezone(timezone.utc).replace(tzinfo=None)
    return ts


def _period_window(period: str) -> Tuple[datetime, datetime]:
    return period_window(period)


def _weeks_window(weeks: int) -> Tuple[datetime, datetime]:
    end = datetime.utcnow()
    return end - timedelta(weeks=weeks), end


def _explicit_window(start: Optional[datetime], end: Optional[datetime],
                     default_days: int = 90) -> Tuple[datetime, datetime]:
    end = _naive_utc(end) if end else datetime.utcnow()
    start = _naive_utc(start) if start else end - timedelta(days=default_days)
    if start > end:
        raise ValueError("start_date must not be after end_date")
    return start, end


# ─── Engine ─────────────────────────────────────────────────

@lru_cache(maxsize=1)
def _engine() -> PatternAnalysisEngine:
    return PatternAnalysisEngine(EngineConfig.from_env())


def _analyze_snapshot(snapshot: Snapshot, parallel: bool = False) -> AnalysisResult:
    return _engine().analyze(
        snapshot.emotions, snapshot.trades,
        start=snapshot.start, end=snapshot.end, parallel=parallel,
    )


# ─── Response shaping ──────────────────────────────────────

def _dashboard_summary(result: AnalysisResult) -> Dict[str, Any]:
    trend = result.trends[-1].direction if result.trends else None
    return {
        "totalInsights": len(result.insights),
        "highPriorityInsights": sum(
            1 for i in result.insights if i.priority is InsightPriority.HIGH),
        "correlationStrength": result.correlation.strength,
        "optimizationScore": result.optimal_conditions.overall_score,
        "recentTrendDirection": trend.value if trend else "unknown",
        "analysisStatus": result.diagnostics.analysis_status,
    }


def _top_actionable(result: AnalysisResult, limit: int = 3) -> List[Dict[str, Any]]:
    return [i.to_dict() for i in result.insights if i.actionable][:limit]
