"""Group selection state and filtering of chosen events."""
from typing import Iterable, List

from processor.grouping import group_key
from processor.models import EventGroup, NormalizedEvent, SelectionState


def select_all_groups(groups: Iterable[EventGroup]) -> SelectionState:
    """Mark every group as selected. Used right after a fresh grouping pass."""
    return {group.key: True for group in groups}


def clear_all_groups(groups: Iterable[EventGroup]) -> SelectionState:
    """Mark every group as unselected."""
    return {group.key: False for group in groups}


def toggle_group(selection: SelectionState, key: str) -> SelectionState:
    """Return a new selection with ``key`` flipped; an absent key becomes selected."""
    toggled = dict(selection)
    toggled[key] = not selection.get(key, False)
    return toggled


def filter_selected_events(
    events: Iterable[NormalizedEvent],
    selection: SelectionState
) -> List[NormalizedEvent]:
    """
    Project events down to those whose group is selected.

    Args:
        events: Full normalized event collection
        selection: Mapping of group key to selected flag; absent keys
            count as unselected

    Returns:
        Selected events in their original order
    """
    return [
        event for event in events
        if selection.get(group_key(event.summary), False) is True
    ]
