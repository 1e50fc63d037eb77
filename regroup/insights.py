"""Plain-language hints shown next to the organization history."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence

from cluster_engine.models import OrganizationActivity


def generate_insights(
    history: Sequence[OrganizationActivity],
    stats: Dict[str, Any],
    now: Optional[datetime] = None,
) -> List[str]:
    now = now or datetime.now(timezone.utc)
    insights: List[str] = []
    total_files = int(stats.get("total_files_organized", 0))
    total_runs = int(stats.get("total_organizations", 0))

    if total_runs == 0:
        insights.append("Ready to organize! Start with hybrid mode for best results.")
        return insights

    if total_files > 100:
        insights.append(
            f"Great job! You've organized {total_files} files across {total_runs} sessions."
        )

    week_ago = now - timedelta(days=7)
    recent = [a for a in history if _aware(a.timestamp) > week_ago]
    if not recent:
        insights.append(
            "It's been a while since your last organization. Consider running a new analysis."
        )

    by_method = {r["method"]: r["organization_count"] for r in stats.get("recent_activities", [])}
    clustering = by_method.get("clustering", 0)
    if clustering > by_method.get("hybrid", 0) and clustering > 2:
        insights.append("Try hybrid mode for even better organization results!")
    return insights


def _aware(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


__all__ = ["generate_insights"]
