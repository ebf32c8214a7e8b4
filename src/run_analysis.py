"""
Trade Pattern Analysis: command-line entry point
=================================================
Analyze one user's emotion check-ins and trades and print the result.

Usage:
    python run_analysis.py --snapshot data.json            # JSON snapshot file
    python run_analysis.py --user 42 --period 90d          # from PostgreSQL
    python run_analysis.py --snapshot data.json --digest   # 3-bullet digest only
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import date
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
log = logging.getLogger("run_analysis")

from engine_config import ConfigurationError, EngineConfig
from pipeline.analysis_pipeline import PatternAnalysisPipeline
from pipeline.snapshot_loader import PERIOD_DAYS, period_window


def _parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected YYYY-MM-DD, got {value!r}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Emotion-performance pattern analysis")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--snapshot", help="Path to a JSON snapshot {emotions, trades}")
    source.add_argument("--user", help="User id to load from PostgreSQL")
    parser.add_argument("--period", choices=sorted(PERIOD_DAYS), default=None,
                        help="Lookback window ending now")
    parser.add_argument("--start", type=_parse_date, help="Inclusive start date (YYYY-MM-DD)")
    parser.add_argument("--end", type=_parse_date, help="Inclusive end date (YYYY-MM-DD)")
    parser.add_argument("--parallel", action="store_true",
                        help="Compute correlation and trends concurrently")
    parser.add_argument("--digest", action="store_true",
                        help="Print the 3-bullet digest instead of full JSON")
    parser.add_argument("--link-policy", choices=["explicit", "preceding"], default=None,
                        help="How trades without an explicit emotion link are joined")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = EngineConfig.from_env()
        if args.link_policy:
            config = config.with_overrides(link_policy=args.link_policy)
    except ConfigurationError as e:
        log.error("Invalid configuration: %s", e)
        return 2

    start, end = args.start, args.end
    if args.period and start is None and end is None:
        start, end = period_window(args.period)
    if start and end and start > end:
        log.error("--start must not be after --end")
        return 2

    pipeline = PatternAnalysisPipeline(config=config, parallel=args.parallel)
    ok = pipeline.run(user_id=args.user, snapshot_path=args.snapshot, start=start, end=end)

    if pipeline.result is not None:
        if args.digest:
            print(pipeline.summary)
        else:
            print(json.dumps(pipeline.result.to_dict(), indent=2, ensure_ascii=False))
    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())
