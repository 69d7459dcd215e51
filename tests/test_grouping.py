"""Unit tests for event grouping and selection."""
import pytest

from processor.grouping import group_events, group_key, group_label
from processor.models import NormalizedEvent
from processor.selection import (
    clear_all_groups,
    filter_selected_events,
    select_all_groups,
    toggle_group,
)


def make_event(summary, start_ms=0):
    """Create a timed NormalizedEvent with the given summary."""
    return NormalizedEvent(
        summary=summary,
        description='',
        location='',
        is_all_day=False,
        start_ms=start_ms,
        end_ms=start_ms + 3600000
    )


@pytest.fixture
def events():
    """Mixed collection with case and whitespace variations."""
    return [
        make_event('Standup', 1),
        make_event('Lunch', 2),
        make_event(' standup ', 3),
        make_event('(no title)', 4),
        make_event('STANDUP', 5),
        make_event('', 6),
        make_event('Lunch', 7),
    ]


class TestGroupKeys:
    """Test cases for key and label derivation."""

    def test_label_is_trimmed(self):
        """Test that labels are trimmed summaries."""
        assert group_label('  Board Meeting ') == 'Board Meeting'

    def test_label_defaults_for_blank(self):
        """Test that blank summaries get the default label."""
        assert group_label('') == '(no title)'
        assert group_label('   ') == '(no title)'
        assert group_label(None) == '(no title)'

    def test_key_is_case_insensitive(self):
        """Test that case and surrounding whitespace are ignored."""
        assert group_key('Standup') == group_key(' standup ') == group_key('STANDUP')

    def test_key_uses_unicode_case_folding(self):
        """Test that case folding covers non-ASCII titles."""
        assert group_key('STRASSE') == group_key('Straße')


class TestGroupEvents:
    """Test cases for group_events."""

    def test_case_variants_share_one_group(self, events):
        """Test that title variants join a single group."""
        groups = group_events(events)

        standup = next(g for g in groups if g.key == 'standup')
        assert standup.label == 'Standup'
        assert [e.start_ms for e in standup.events] == [1, 3, 5]

    def test_groups_in_first_seen_order(self, events):
        """Test that groups keep first-seen order of their key."""
        groups = group_events(events)

        assert [g.key for g in groups] == ['standup', 'lunch', '(no title)']

    def test_blank_titles_join_default_group(self, events):
        """Test that empty and default titles share a group."""
        groups = group_events(events)

        untitled = groups[-1]
        assert untitled.label == '(no title)'
        assert [e.start_ms for e in untitled.events] == [4, 6]

    def test_groups_partition_events(self, events):
        """Test that every event lands in exactly one group."""
        groups = group_events(events)

        grouped = [e for g in groups for e in g.events]
        assert len(grouped) == len(events)
        assert set(grouped) == set(events)

    def test_empty_input(self):
        """Test that no events gives no groups."""
        assert group_events([]) == []

    def test_groups_are_immutable(self, events):
        """Test that groups cannot be modified after construction."""
        group = group_events(events)[0]

        assert isinstance(group.events, tuple)
        with pytest.raises(AttributeError):
            group.label = 'Other'


class TestSelection:
    """Test cases for selection state and filtering."""

    def test_select_all_then_filter_returns_everything(self, events):
        """Test that selecting all groups keeps every event in order."""
        selection = select_all_groups(group_events(events))

        assert filter_selected_events(events, selection) == events

    def test_clear_all_then_filter_returns_nothing(self, events):
        """Test that clearing all groups selects nothing."""
        selection = clear_all_groups(group_events(events))

        assert filter_selected_events(events, selection) == []

    def test_fresh_selection_is_all_true(self, events):
        """Test that every group starts out selected."""
        selection = select_all_groups(group_events(events))

        assert selection == {'standup': True, 'lunch': True, '(no title)': True}

    def test_absent_key_is_unselected(self, events):
        """Test that groups missing from the selection are dropped."""
        selected = filter_selected_events(events, {'lunch': True})

        assert [e.start_ms for e in selected] == [2, 7]

    def test_filter_preserves_input_order(self, events):
        """Test that the output follows input order, not group order."""
        selected = filter_selected_events(events, {'standup': True, 'lunch': True})

        assert [e.start_ms for e in selected] == [1, 2, 3, 5, 7]

    def test_toggle_group(self, events):
        """Test that toggling flips one key and returns a new mapping."""
        selection = select_all_groups(group_events(events))

        toggled = toggle_group(selection, 'lunch')

        assert toggled['lunch'] is False
        assert selection['lunch'] is True
        assert toggle_group(toggled, 'lunch')['lunch'] is True

    def test_toggle_absent_key_selects(self):
        """Test that toggling an unknown key selects it."""
        assert toggle_group({}, 'standup') == {'standup': True}
