"""Helpers for building a concise insight digest for notifications and CLI output."""

from __future__ import annotations

from typing import Optional, Sequence

from records import Insight, InsightKind


def _clip(s: str, limit: int = 260) -> str:
    s = s.replace("\n", " ").strip()
    if len(s) <= limit:
        return s
    return s[: limit - 3].rstrip() + "..."


def _bullet(label: str, value: str) -> str:
    prefix = f"- {label}: "
    allowed = max(48, 280 - len(prefix))
    return prefix + _clip(value, allowed)


def _first(insights: Sequence[Insight], used, predicate) -> Optional[Insight]:
    for ins in insights:
        if ins.id not in used and predicate(ins):
            return ins
    return None


def build_concise_summary(insights: Sequence[Insight]) -> str:
    """Create a strict 3-bullet summary from an ordered insight list."""
    actionable = [i for i in (insights or []) if i.actionable]
    if not actionable:
        return (
            "- Key pattern: Not enough linked trades to find a pattern yet.\n"
            "- Watch out: Nothing flagged in this period.\n"
            "- Next step: Log an emotion check before each trade and link it to the trade."
        )

    used = set()
    top = actionable[0]
    used.add(top.id)

    warning = _first(actionable, used, lambda i: i.kind is InsightKind.WARNING)
    if warning:
        used.add(warning.id)
    follow_up = _first(actionable, used, lambda i: True)

    key_pattern = top.message
    watch_out = warning.message if warning else "Nothing flagged in this period."
    next_step = (follow_up.message if follow_up
                 else "Keep logging emotion checks so the next run has more signal.")

    return (
        f"{_bullet('Key pattern', key_pattern)}\n"
        f"{_bullet('Watch out', watch_out)}\n"
        f"{_bullet('Next step', next_step)}"
    )
