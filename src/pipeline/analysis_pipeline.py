"""Pattern analysis pipeline orchestration with explicit health signaling."""

from __future__ import annotations

import json
import logging
import os
import traceback
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from datetime import date, datetime
from typing import Any, Dict, Optional

from constants import ANALYSIS_TIMEOUT_BASE_SEC, ANALYSIS_TIMEOUT_PER_RECORD_SEC
from engine_config import EngineConfig
from pattern_engine import PatternAnalysisEngine
from pipeline.snapshot_loader import Snapshot, SnapshotLoader, load_json_snapshot
from pipeline.summary_builder import build_concise_summary
from records import AnalysisResult

log = logging.getLogger("analysis_pipeline")


def analysis_timeout(n_records: int) -> float:
    """Overall analysis budget in seconds, proportional to input size."""
    return ANALYSIS_TIMEOUT_BASE_SEC + ANALYSIS_TIMEOUT_PER_RECORD_SEC * max(0, n_records)


class PatternAnalysisPipeline:
    """Load a snapshot, analyze it under a timeout, persist run status."""

    def __init__(self, config: Optional[EngineConfig] = None,
                 loader: Optional[SnapshotLoader] = None,
                 parallel: bool = False):
        self.config = config or EngineConfig.from_env()
        self.engine = PatternAnalysisEngine(self.config)
        self.loader = loader
        self.parallel = parallel
        self.result: Optional[AnalysisResult] = None
        self.summary: str = ""
        self.status: Dict[str, Any] = {}

    def run(self, user_id: Optional[str] = None, snapshot_path: Optional[str] = None,
            start=None, end=None) -> bool:
        """Execute load → analyze and persist machine-readable status."""
        pipeline_status: Dict[str, Any] = {
            "run_date": date.today().isoformat(),
            "run_started_at": datetime.utcnow().isoformat() + "Z",
            "source": "file" if snapshot_path else "database",
            "user_id": user_id,
            "load_ok": False,
            "analysis_ok": False,
            "analysis_status": "unknown",
            "degraded_reasons": [],
        }

        log.info("=" * 60)
        log.info("  PATTERN ANALYSIS STARTED")
        log.info("  Source: %s", snapshot_path or f"database (user {user_id})")
        log.info("=" * 60)

        self.result = None
        self.summary = ""
        try:
            log.info("Step 1/3: Loading snapshot...")
            snapshot = self._load(user_id, snapshot_path, start, end)
            pipeline_status["load_ok"] = True
            pipeline_status["emotions_loaded"] = len(snapshot.emotions)
            pipeline_status["trades_loaded"] = len(snapshot.trades)

            log.info("Step 2/3: Running pattern engine...")
            self.result = self._analyze(snapshot, start, end)
            pipeline_status["analysis_ok"] = True
            diagnostics = self.result.diagnostics
            pipeline_status["analysis_status"] = diagnostics.analysis_status
            pipeline_status["degraded_reasons"] = list(diagnostics.degraded_reasons)
            pipeline_status["insights"] = len(self.result.insights)

            if diagnostics.analysis_status == "degraded":
                log.warning(
                    "Pattern analysis degraded: %s",
                    ", ".join(diagnostics.degraded_reasons) or "no details",
                )

            log.info("Step 3/3: Building summary...")
            self.summary = build_concise_summary(self.result.insights)

        except FutureTimeout:
            pipeline_status["analysis_status"] = "failed"
            pipeline_status["degraded_reasons"] = ["analysis_timeout"]
            log.error("Pattern analysis timed out")
        except Exception as e:
            pipeline_status["analysis_status"] = "failed"
            pipeline_status["degraded_reasons"] = ["pipeline_exception"]
            log.error("Pipeline failed: %s", e)
            traceback.print_exc()
        finally:
            pipeline_status["run_finished_at"] = datetime.utcnow().isoformat() + "Z"
            pipeline_status["overall_status"] = self._overall_status(pipeline_status)
            self._write_pipeline_status_file(pipeline_status)
            self._print_summary(pipeline_status)
            log.info("=" * 60)
            log.info("  PATTERN ANALYSIS COMPLETE (status=%s)", pipeline_status["overall_status"])
            log.info("=" * 60)

        self.status = pipeline_status
        strict_health = os.getenv("STRICT_PIPELINE_HEALTH", "0").strip() == "1"
        if strict_health:
            return pipeline_status["overall_status"] == "success"
        return pipeline_status["overall_status"] != "failed"

    def _load(self, user_id, snapshot_path, start, end) -> Snapshot:
        if snapshot_path:
            return load_json_snapshot(snapshot_path)
        if not user_id:
            raise ValueError("either user_id or snapshot_path is required")
        loader = self.loader or SnapshotLoader()
        return loader.load(user_id, start=start, end=end)

    def _analyze(self, snapshot: Snapshot, start=None, end=None) -> AnalysisResult:
        """Run the engine on a worker thread, bounded by analysis_timeout()."""
        timeout = analysis_timeout(snapshot.size)
        log.info("   analysis timeout %.2fs for %d records", timeout, snapshot.size)
        pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="analysis")
        try:
            future = pool.submit(
                self.engine.analyze,
                snapshot.emotions,
                snapshot.trades,
                start,
                end,
                self.parallel,
            )
            return future.result(timeout=timeout)
        finally:
            pool.shutdown(wait=False)

    @staticmethod
    def _overall_status(status: Dict[str, Any]) -> str:
        if not status.get("load_ok", False):
            return "failed"
        if status.get("analysis_status") == "failed":
            return "failed"
        if not status.get("analysis_ok", False):
            return "failed"
        if status.get("analysis_status") == "degraded":
            return "degraded"
        return "success"

    @staticmethod
    def _write_pipeline_status_file(status: Dict[str, Any]) -> None:
        today = date.today().isoformat()
        default_path = f"pipeline_status_{today}.json"
        path = os.getenv("PIPELINE_STATUS_PATH", default_path)
        try:
            with open(path, "w", encoding="utf-8") as fh:
                json.dump(status, fh, indent=2, ensure_ascii=False)
            log.info("Pipeline status written to %s", path)
        except OSError as e:
            log.warning("Failed to write pipeline status file: %s", e)

    def _print_summary(self, status: Dict[str, Any]):
        """Log execution summary."""
        log.info("ANALYSIS SUMMARY:")
        if status.get("load_ok"):
            log.info("  Emotion checks: %d", status.get("emotions_loaded", 0))
            log.info("  Trades:         %d", status.get("trades_loaded", 0))
        log.info("  Analysis status: %s", status.get("analysis_status"))
        reasons = status.get("degraded_reasons") or []
        if reasons:
            log.info("  Degraded reasons: %s", ", ".join(reasons))
        log.info("  Overall status: %s", status.get("overall_status"))
        if self.summary:
            log.info("DIGEST:\n%s", self.summary)
