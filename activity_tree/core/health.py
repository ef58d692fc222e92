"""
Health Analyzer.

Derives idleness and due-date procrastination metrics from one item's
event history, and attaches them to every item node of a built tree.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional

from activity_tree.core.config import HealthThresholds
from activity_tree.core.store import ActivityTree, Event, HealthIndicator

logger = logging.getLogger(__name__)

ONE_DAY = timedelta(days=1)
STREAK_WINDOW = timedelta(hours=24)


class HealthAnalyzer:
    """
    Compute HealthIndicator values against fixed thresholds.

    Parameters
    ----------
    thresholds : Optional[HealthThresholds]
        Tagging thresholds (defaults when omitted)
    now : Optional[datetime]
        Reference time for idleness; current UTC time when omitted
    """

    def __init__(self, thresholds: Optional[HealthThresholds] = None, now: Optional[datetime] = None):
        if now is not None and now.tzinfo is None:
            raise ValueError("now must be timezone-aware")
        self.thresholds = thresholds or HealthThresholds()
        self.now = now

    def analyze(self, events: Iterable[Event]) -> Optional[HealthIndicator]:
        """
        Analyze one item's events.

        Parameters
        ----------
        events : Iterable[Event]
            The item's own events, in any order

        Returns
        -------
        Optional[HealthIndicator]
            Metrics and tags, or None when there are no events
        """
        ordered = sorted(events, key=lambda e: e.event_date)
        if not ordered:
            return None

        now = self.now or datetime.now(timezone.utc)
        last_activity_days = (now - ordered[-1].event_date) // ONE_DAY

        due_date_changes = 0
        total_postponed_days = 0
        consecutive = 0
        max_consecutive = 0
        last_postpone_at: Optional[datetime] = None

        for event in ordered:
            extra = event.extra_data
            if event.event_type != "updated" or extra is None:
                continue
            if extra.due_date is None or extra.last_due_date is None:
                continue
            if extra.due_date <= extra.last_due_date:
                continue

            due_date_changes += 1
            total_postponed_days += (extra.due_date - extra.last_due_date) // ONE_DAY

            if last_postpone_at is not None and event.event_date - last_postpone_at <= STREAK_WINDOW:
                consecutive += 1
            else:
                consecutive = 1
            max_consecutive = max(max_consecutive, consecutive)
            last_postpone_at = event.event_date

        avg_postpone_days = total_postponed_days / due_date_changes if due_date_changes else 0.0

        status = set()
        if last_activity_days > self.thresholds.idle_days:
            status.add("idle")
        if avg_postpone_days > self.thresholds.long_postpone_days:
            status.add("long_postpones")
        if max_consecutive > self.thresholds.frequent_postpone_streak:
            status.add("frequent_postpones")

        return HealthIndicator(
            last_activity_days=int(last_activity_days),
            due_date_changes=due_date_changes,
            total_postponed_days=int(total_postponed_days),
            avg_postpone_days=float(avg_postpone_days),
            max_consecutive_postpones=max_consecutive,
            health_status=status,
        )

    def attach_health(self, tree: ActivityTree) -> int:
        """
        Attach health to every item node with events, across the whole tree.

        Covers direct project items, section items, sub-items at any depth
        and everything under nested child projects.

        Returns
        -------
        int
            Number of items that received an indicator
        """
        analyzed = 0
        for item in tree.iter_items():
            item.health = self.analyze(item.item_events)
            if item.health is not None:
                analyzed += 1
        logger.debug(f"Attached health indicators to {analyzed} items")
        return analyzed


def analyze_item_health(
    events: List[Event],
    thresholds: Optional[HealthThresholds] = None,
    now: Optional[datetime] = None,
) -> Optional[HealthIndicator]:
    """Analyze an ad hoc event list without building a tree."""
    return HealthAnalyzer(thresholds, now=now).analyze(events)
