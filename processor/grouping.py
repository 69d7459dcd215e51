"""Grouping of normalized events by title."""
import logging
from typing import Dict, Iterable, List, Optional

from processor.models import NO_TITLE, EventGroup, NormalizedEvent

logger = logging.getLogger(__name__)


def group_label(summary: Optional[str]) -> str:
    """Return the display title for a summary."""
    label = (summary or '').strip()
    return label or NO_TITLE


def group_key(summary: Optional[str]) -> str:
    """Return the case-insensitive join key for a summary."""
    return group_label(summary).casefold()


def group_events(events: Iterable[NormalizedEvent]) -> List[EventGroup]:
    """
    Cluster events by case-insensitive, trimmed title.

    Groups are returned in first-seen order of their key, and each group
    keeps its events in input order. Every event lands in exactly one group.

    Args:
        events: Normalized events in discovery order

    Returns:
        List of EventGroup objects
    """
    labels: Dict[str, str] = {}
    members: Dict[str, List[NormalizedEvent]] = {}

    for event in events:
        key = group_key(event.summary)
        if key not in members:
            labels[key] = group_label(event.summary)
            members[key] = []
        members[key].append(event)

    groups = [
        EventGroup(key=key, label=labels[key], events=tuple(grouped))
        for key, grouped in members.items()
    ]

    logger.debug(f"Grouped events into {len(groups)} groups")
    return groups
