"""
Emotion-Performance Pattern Engine
==================================
Turns one user's emotion check-ins and closed trades into correlation,
weekly trends, optimal conditions and ranked insights.

Architecture (5 layers):
  Layer 0 (Aggregation)  validate records, join trades to emotion levels,
            bucket by level / ISO week / (day, hour).
  Layer 1 (Correlation)  Pearson r (emotion level vs outcome) with a
            two-tailed t-test gate, per-level win-rate table.
  Layer 2 (Trends)  weekly win rate, emotion mean and direction.
  Layer 3 (Optimizer)  optimal / caution / avoid ranges, best timing
            window, composite readiness score.
  Layer 4 (Insights)  rule-based, ordered by priority then confidence.

Layers 1 and 2 only read the snapshot, so ``parallel=True`` runs them on a
thread pool; the output is identical either way.  The engine performs no
I/O and keeps no state between calls.

Insufficient data is never an exception: the affected section is empty or
None and ``diagnostics.degradedReasons`` says why.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Sequence

from analytics.aggregator import OUTSIDE_RANGE, AggregatedSnapshot, aggregate
from analytics.correlation import compute_correlation
from analytics.insights import generate_insights
from analytics.optimizer import optimize_conditions
from analytics.trends import detect_trends
from engine_config import EngineConfig
from records import (
    AnalysisResult,
    CorrelationResult,
    CorrelationStatus,
    Diagnostics,
    EmotionRecord,
    OptimalConditions,
    TradeRecord,
)

log = logging.getLogger("pattern_engine")


class PatternAnalysisEngine:
    """
    Orchestrates the five analysis layers for a single snapshot.
    Stateless apart from its (immutable) configuration.
    """

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()

    # ─── MAIN ENTRY ───────────────────────────────────────────

    def analyze(self, emotions: Sequence[EmotionRecord], trades: Sequence[TradeRecord],
                start=None, end=None, parallel: bool = False) -> AnalysisResult:
        """
        Run every layer and return the combined result.

        Parameters
        ----------
        emotions, trades : sequences of EmotionRecord / TradeRecord
            Malformed records are excluded and counted, never raised.
        start, end : date or datetime, optional
            Inclusive analysis window.
        parallel : bool
            Compute correlation and trends concurrently.
        """
        log.info("Pattern engine - analyzing %d emotion records, %d trades",
                 len(emotions or []), len(trades or []))

        log.info("   Layer 0: aggregating…")
        snapshot = aggregate(emotions, trades, self.config, start=start, end=end)

        if parallel:
            with ThreadPoolExecutor(max_workers=2, thread_name_prefix="pattern") as pool:
                corr_future = pool.submit(compute_correlation, snapshot, self.config)
                trend_future = pool.submit(detect_trends, snapshot, self.config)
                correlation = corr_future.result()
                trends = trend_future.result()
        else:
            correlation = compute_correlation(snapshot, self.config)
            trends = detect_trends(snapshot, self.config)

        conditions = optimize_conditions(
            correlation.per_level_stats, snapshot, correlation.coefficient, self.config)
        insights = generate_insights(correlation, trends, conditions, snapshot, self.config)

        diagnostics = self._diagnostics(snapshot, correlation, conditions)
        if diagnostics.degraded_reasons:
            log.warning(
                "Pattern analysis status=%s (%s)",
                diagnostics.analysis_status,
                ", ".join(diagnostics.degraded_reasons),
            )

        log.info(
            "\n   COMPUTATION DIGEST (%d trades, %d emotion records)\n"
            "   Layer 0 Aggregation   : %d excluded, %d unlinked trades\n"
            "   Layer 1 Correlation   : r=%s n=%d significant=%s\n"
            "   Layer 2 Trends        : %d weeks\n"
            "   Layer 3 Optimizer     : score=%.1f\n"
            "   Layer 4 Insights      : %d",
            len(snapshot.trades),
            len(snapshot.emotions),
            diagnostics.total_excluded,
            diagnostics.unlinked_trades,
            "n/a" if correlation.coefficient is None else f"{correlation.coefficient:+.3f}",
            correlation.sample_size,
            correlation.is_statistically_significant,
            len(trends),
            conditions.overall_score,
            len(insights),
        )

        return AnalysisResult(
            correlation=correlation,
            trends=tuple(trends),
            optimal_conditions=conditions,
            insights=tuple(insights),
            emotion_profile=snapshot.emotion_profile,
            diagnostics=diagnostics,
        )

    # ─── Diagnostics ──────────────────────────────────────────

    @staticmethod
    def _degraded_reasons(snapshot: AggregatedSnapshot, correlation: CorrelationResult,
                          conditions: OptimalConditions) -> List[str]:
        reasons: List[str] = []
        if snapshot.trades.empty:
            reasons.append("no_trades")
        if snapshot.emotions.empty:
            reasons.append("no_emotions")
        if correlation.status is not CorrelationStatus.OK:
            reasons.append(f"correlation_{correlation.status.value}")
        if not snapshot.trades.empty and not correlation.per_level_stats:
            reasons.append("no_linked_trades")
        if (correlation.encoding == "pnl"
                and correlation.sample_size < len(snapshot.linked_trades)):
            reasons.append("partial_pnl")
        if not snapshot.trades.empty and conditions.best_market_timing is None:
            reasons.append("timing_below_sample_floor")
        if any(k != OUTSIDE_RANGE for k in snapshot.excluded):
            reasons.append("malformed_records_excluded")
        return reasons

    def _diagnostics(self, snapshot: AggregatedSnapshot, correlation: CorrelationResult,
                     conditions: OptimalConditions) -> Diagnostics:
        trades = snapshot.trades
        return Diagnostics(
            emotions_received=snapshot.emotions_received,
            emotions_used=len(snapshot.emotions),
            trades_received=snapshot.trades_received,
            trades_used=len(trades),
            excluded=dict(snapshot.excluded),
            unlinked_trades=snapshot.unlinked_count,
            trades_without_pnl=int(trades["pnl"].isna().sum()) if not trades.empty else 0,
            degraded_reasons=tuple(self._degraded_reasons(snapshot, correlation, conditions)),
        )
