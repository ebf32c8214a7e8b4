"""Load one user's emotion checks and trades into engine records.

Two sources:
  * PostgreSQL (psycopg2, RealDictCursor): ``emotion_checks`` and ``trades``
  * a JSON snapshot file: {"emotions": [...], "trades": [...]}

Rows are converted leniently (records.emotion_from_row / trade_from_row);
invalid values survive conversion and are filtered by the aggregator.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List, Optional, Tuple

import psycopg2
from psycopg2.extras import RealDictCursor
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from db_utils import get_conn_str, require_conn_str
from records import EmotionRecord, TradeRecord, emotion_from_row, trade_from_row

log = logging.getLogger("snapshot_loader")

# period → lookback; unknown periods fall back to 30d
PERIOD_DAYS = {"7d": 7, "30d": 30, "90d": 90, "1y": 365}
DEFAULT_PERIOD = "30d"

# in-window checks, plus any check an in-window trade links to
EMOTION_SQL = """
    SELECT id, level, context, timestamp, symbol
    FROM emotion_checks
    WHERE user_id = %s
      AND ((TRUE{where}) OR id IN (
          SELECT emotion_check_id FROM trades
          WHERE user_id = %s AND emotion_check_id IS NOT NULL{trade_where}))
    ORDER BY timestamp, id
"""

TRADE_SQL = """
    SELECT id, symbol, outcome, pnl, emotion_check_id, entry_time
    FROM trades
    WHERE user_id = %s{where}
    ORDER BY entry_time, id
"""


@dataclass(frozen=True)
class Snapshot:
    emotions: Tuple[EmotionRecord, ...]
    trades: Tuple[TradeRecord, ...]
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    source: str = "memory"

    @property
    def size(self) -> int:
        return len(self.emotions) + len(self.trades)


def period_window(period: Optional[str], now: Optional[datetime] = None
                  ) -> Tuple[datetime, datetime]:
    """(start, end) for a ``7d`` / ``30d`` / ``90d`` / ``1y`` period ending now (UTC)."""
    end = now or datetime.utcnow()
    days = PERIOD_DAYS.get((period or "").lower(), PERIOD_DAYS[DEFAULT_PERIOD])
    return end - timedelta(days=days), end


def _sql_bound(value, end: bool = False):
    """A bare date bound covers the whole day, as in the aggregator."""
    if value is None or isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time.max if end else time.min)
    return value


def _range_clause(column: str, start, end) -> Tuple[str, List[Any]]:
    clause, params = "", []
    if start is not None:
        clause += f" AND {column} >= %s"
        params.append(start)
    if end is not None:
        clause += f" AND {column} <= %s"
        params.append(end)
    return clause, params


class SnapshotLoader:
    """Reads a user's snapshot straight from PostgreSQL."""

    def __init__(self, conn_str: Optional[str] = None):
        self.conn_str = conn_str or get_conn_str()

    @staticmethod
    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type(psycopg2.OperationalError),
        reraise=True,
    )
    def _connect(conn_str: str):
        """Open a connection, retrying transient OperationalErrors (1s, 2s…)."""
        return psycopg2.connect(conn_str)

    def _fetch_all(self, cur, sql: str, params: List[Any]) -> List[Dict[str, Any]]:
        cur.execute(sql, tuple(params))
        return [dict(row) for row in cur.fetchall()]

    def load(self, user_id: str, start=None, end=None) -> Snapshot:
        lo, hi = _sql_bound(start), _sql_bound(end, end=True)
        emo_where, emo_params = _range_clause("timestamp", lo, hi)
        trade_where, trade_params = _range_clause("entry_time", lo, hi)
        emotion_sql = EMOTION_SQL.format(where=emo_where, trade_where=trade_where)

        conn = self._connect(require_conn_str(self.conn_str))
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                emotion_rows = self._fetch_all(
                    cur, emotion_sql, [user_id, *emo_params, user_id, *trade_params])
                trade_rows = self._fetch_all(
                    cur, TRADE_SQL.format(where=trade_where), [user_id, *trade_params])
        finally:
            conn.close()

        log.info("Loaded %d emotion checks, %d trades for user %s",
                 len(emotion_rows), len(trade_rows), user_id)
        return Snapshot(
            emotions=tuple(emotion_from_row(r) for r in emotion_rows),
            trades=tuple(trade_from_row(r) for r in trade_rows),
            start=start,
            end=end,
            source="database",
        )


def snapshot_from_payload(payload: Dict[str, Any], source: str = "payload") -> Snapshot:
    """Build a Snapshot from a JSON-shaped dict (camel or snake keys)."""
    emotion_rows = payload.get("emotions") or payload.get("emotionChecks") or []
    trade_rows = payload.get("trades") or []
    return Snapshot(
        emotions=tuple(emotion_from_row(r) for r in emotion_rows),
        trades=tuple(trade_from_row(r) for r in trade_rows),
        source=source,
    )


def load_json_snapshot(path: str) -> Snapshot:
    with open(path, "r", encoding="utf-8") as fh:
        payload = json.load(fh)
    if not isinstance(payload, dict):
        raise ValueError(f"{path}: expected a JSON object with 'emotions' and 'trades'")
    snapshot = snapshot_from_payload(payload, source="file")
    log.info("Loaded %d emotion checks, %d trades from %s",
             len(snapshot.emotions), len(snapshot.trades), path)
    return snapshot
