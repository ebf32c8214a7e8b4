"""
FastAPI serving layer for the emotion-performance pattern engine.

Routes only load a snapshot and serialize engine output; all analysis lives
in pattern_engine.py.  Shared utilities live in routes/helpers.py.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from analytics.optimizer import assess_readiness
from constants import CONTRACT_VERSION, MAX_LEVEL, MIN_LEVEL
from pipeline.snapshot_loader import Snapshot
from records import EmotionRecord, TradeRecord
from routes.helpers import (
    _analyze_snapshot, _dashboard_summary, _explicit_window, _fetch_one,
    _load_snapshot, _naive_utc, _period_window, _top_actionable, _weeks_window,
)

log = logging.getLogger("api")


# ─── App setup ─────────────────────────────────────────────

app = FastAPI(title="Trade Pattern API", version="1.0.0")

_origin_env = os.getenv("FRONTEND_ORIGINS", "")
_origins = [o.strip() for o in _origin_env.split(",") if o.strip()] or [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=_origins,
    allow_credentials=False,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)


class EmotionIn(BaseModel):
    id: str
    timestamp: datetime
    level: int
    context: str = "pre-trade"
    symbol: Optional[str] = None


class TradeIn(BaseModel):
    id: str
    timestamp: datetime
    symbol: str
    outcome: str
    pnl: Optional[float] = None
    emotion_id: Optional[str] = None


class AnalyzeRequest(BaseModel):
    emotions: List[EmotionIn] = []
    trades: List[TradeIn] = []
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    parallel: bool = False


def _snapshot_from_request(req: AnalyzeRequest) -> Snapshot:
    return Snapshot(
        emotions=tuple(
            EmotionRecord(id=e.id, timestamp=e.timestamp, level=e.level,
                          context=e.context, symbol=e.symbol)
            for e in req.emotions
        ),
        trades=tuple(
            TradeRecord(id=t.id, timestamp=t.timestamp, symbol=t.symbol,
                        outcome=t.outcome, pnl=t.pnl, emotion_id=t.emotion_id)
            for t in req.trades
        ),
        start=req.start_date,
        end=req.end_date,
        source="request",
    )


# ─── Routes ────────────────────────────────────────────────

@app.get("/")
def root() -> Dict[str, Any]:
    return {"service": "trade-pattern-api", "status": "ok", "version": CONTRACT_VERSION}


@app.get("/health-check")
def health_check() -> JSONResponse:
    try:
        _fetch_one("SELECT 1 AS ok")
        return JSONResponse({"status": "Online", "message": "Online"})
    except Exception as e:
        return JSONResponse(
            status_code=200,
            content={
                "status": "Waking up",
                "message": f"Service starting or DB unavailable: {e}",
            },
        )


@app.post("/api/v1/patterns/analyze")
def analyze_snapshot(req: AnalyzeRequest) -> Dict[str, Any]:
    if req.start_date and req.end_date and _naive_utc(req.start_date) > _naive_utc(req.end_date):
        raise HTTPException(status_code=400, detail="start_date must not be after end_date")
    try:
        result = _analyze_snapshot(_snapshot_from_request(req), parallel=req.parallel)
        return result.to_dict()
    except Exception as e:
        log.exception("Pattern analysis failed")
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/api/v1/patterns/correlation")
def patterns_correlation(
    user_id: str = Query(..., min_length=1),
    period: str = Query(default="30d"),
) -> Dict[str, Any]:
    try:
        start, end = _period_window(period)
        result = _analyze_snapshot(_load_snapshot(user_id, start, end))
        return {
            "period": period,
            "correlation": result.correlation.to_dict(),
            "emotionProfile": result.emotion_profile.to_dict(),
            "diagnostics": result.diagnostics.to_dict(),
        }
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/api/v1/patterns/weekly-trend")
def patterns_weekly_trend(
    user_id: str = Query(..., min_length=1),
    weeks: int = Query(default=8, ge=1, le=52),
) -> Dict[str, Any]:
    try:
        start, end = _weeks_window(weeks)
        result = _analyze_snapshot(_load_snapshot(user_id, start, end))
        return {"weeks": weeks, "trends": [t.to_dict() for t in result.trends]}
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/api/v1/patterns/insights")
def patterns_insights(
    user_id: str = Query(..., min_length=1),
    period: str = Query(default="30d"),
) -> Dict[str, Any]:
    try:
        start, end = _period_window(period)
        result = _analyze_snapshot(_load_snapshot(user_id, start, end))
        return {
            "period": period,
            "insights": [i.to_dict() for i in result.insights],
            "diagnostics": result.diagnostics.to_dict(),
        }
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/api/v1/patterns/optimal-conditions")
def patterns_optimal_conditions(
    user_id: str = Query(..., min_length=1),
    period: str = Query(default="90d"),
) -> Dict[str, Any]:
    try:
        start, end = _period_window(period)
        result = _analyze_snapshot(_load_snapshot(user_id, start, end))
        return {"period": period, "optimalConditions": result.optimal_conditions.to_dict()}
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/api/v1/patterns/emotion-performance")
def patterns_emotion_performance(
    user_id: str = Query(..., min_length=1),
    start_date: Optional[datetime] = Query(default=None),
    end_date: Optional[datetime] = Query(default=None),
) -> Dict[str, Any]:
    try:
        start, end = _explicit_window(start_date, end_date)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    try:
        result = _analyze_snapshot(_load_snapshot(user_id, start, end))
        return {
            "startDate": start.isoformat(),
            "endDate": end.isoformat(),
            "emotionLevels": [s.to_dict() for s in result.correlation.per_level_stats],
        }
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/api/v1/patterns/recommendations")
def patterns_recommendations(
    user_id: str = Query(..., min_length=1),
    current_emotion_level: int = Query(default=5, ge=MIN_LEVEL, le=MAX_LEVEL),
    period: str = Query(default="90d"),
) -> Dict[str, Any]:
    try:
        start, end = _period_window(period)
        result = _analyze_snapshot(_load_snapshot(user_id, start, end))
        conditions = result.optimal_conditions
        readiness = assess_readiness(conditions, current_emotion_level)
        log.info("Recommendations for user %s: level=%d readiness=%s",
                 user_id, current_emotion_level, readiness.readiness_level)
        out = readiness.to_dict()
        out.update({
            "recommendations": _top_actionable(result),
            "optimalConditions": conditions.to_dict(),
            "confidenceScore": conditions.overall_score,
        })
        return out
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/api/v1/patterns/dashboard")
def patterns_dashboard(
    user_id: str = Query(..., min_length=1),
    period: str = Query(default="30d"),
) -> Dict[str, Any]:
    try:
        start, end = _period_window(period)
        result = _analyze_snapshot(_load_snapshot(user_id, start, end), parallel=True)
        out = result.to_dict()
        out["period"] = period
        out["generatedAt"] = datetime.utcnow().isoformat() + "Z"
        out["summary"] = _dashboard_summary(result)
        return out
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))
