"""
Tests for the conflict resolver.
"""

import pytest

from slotbooker.domain.conflict_resolver import ConflictResolver, MinuteInterval, SlotOutcome
from slotbooker.domain.models import BookedInterval, Weekday, Window


def _monday(*booked):
    return Window(
        day_of_week=Weekday.MONDAY,
        start_time="09:00",
        end_time="12:00",
        booked_intervals=list(booked),
    )


def _minutes(start, end):
    return MinuteInterval(start=start, end=end)


class TestMinuteInterval:
    """Tests for MinuteInterval."""

    def test_invalid_interval_raises_error(self):
        """Test that an empty or inverted interval is rejected."""
        with pytest.raises(ValueError, match="must be before end minute"):
            MinuteInterval(start=600, end=600)

    @pytest.mark.parametrize(
        "candidate, existing, expected",
        [
            ((540, 600), (570, 630), True),    # end falls inside
            ((570, 630), (540, 600), True),    # start falls inside
            ((540, 720), (600, 660), True),    # contains existing
            ((600, 630), (540, 720), True),    # contained by existing
            ((540, 600), (540, 600), True),    # identical
            ((540, 600), (600, 660), False),   # abuts at end
            ((600, 660), (540, 600), False),   # abuts at start
            ((540, 600), (660, 720), False),   # disjoint
            ((599, 659), (540, 600), True),    # one minute overlap
        ],
    )
    def test_overlaps(self, candidate, existing, expected):
        """Test the three-way overlap check and the shared-endpoint rule."""
        assert _minutes(*candidate).overlaps(_minutes(*existing)) is expected
        # The reduction cStart < eEnd and cEnd > eStart must agree
        assert (candidate[0] < existing[1] and candidate[1] > existing[0]) is expected

    def test_contains(self):
        """Test range containment."""
        assert _minutes(540, 720).contains(_minutes(660, 720))
        assert not _minutes(540, 720).contains(_minutes(690, 750))


class TestConflictResolver:
    """Tests for ConflictResolver."""

    def test_find_window_matches_weekday_and_start(self):
        """Test that the window must be on the weekday and contain the start."""
        resolver = ConflictResolver()
        morning = _monday()
        afternoon = Window(Weekday.MONDAY, "14:00", "17:00")
        windows = [morning, afternoon, Window(Weekday.TUESDAY, "09:00", "12:00")]

        assert resolver.find_window(windows, Weekday.MONDAY, 540) is morning
        assert resolver.find_window(windows, Weekday.MONDAY, 900) is afternoon
        assert resolver.find_window(windows, Weekday.MONDAY, 720) is None
        assert resolver.find_window(windows, Weekday.FRIDAY, 540) is None

    def test_available_in_empty_window(self):
        """Test a candidate in a window with no bookings."""
        check = ConflictResolver().check(_monday(), _minutes(540, 600))

        assert check.outcome is SlotOutcome.AVAILABLE
        assert check.is_available

    def test_conflict_reports_overlapping_intervals(self):
        """Test that conflicting intervals are reported back."""
        booked = BookedInterval("09:00", "10:00", "a")
        check = ConflictResolver().check(_monday(booked), _minutes(570, 630))

        assert check.outcome is SlotOutcome.CONFLICT
        assert check.conflicts == [booked]

    def test_abutting_candidate_is_available(self):
        """Test that sharing an endpoint is not a conflict."""
        window = _monday(BookedInterval("09:00", "10:00", "a"))

        assert ConflictResolver().check(window, _minutes(600, 660)).is_available

    def test_candidate_running_past_window_is_outside(self):
        """Test that the whole candidate must fit inside the window."""
        check = ConflictResolver().check(_monday(), _minutes(690, 750))

        assert check.outcome is SlotOutcome.OUTSIDE_WINDOW

    def test_outside_window_takes_precedence_over_conflict(self):
        """Test that a candidate outside the window is not reported as a conflict."""
        window = _monday(BookedInterval("11:00", "12:00", "a"))

        assert ConflictResolver().check(window, _minutes(690, 750)).outcome is SlotOutcome.OUTSIDE_WINDOW

    def test_excluded_appointment_is_ignored(self):
        """Test that rescheduling does not collide with its own interval."""
        window = _monday(BookedInterval("09:00", "10:00", "a"), BookedInterval("11:00", "12:00", "b"))
        resolver = ConflictResolver()

        assert resolver.check(window, _minutes(570, 630), exclude_appointment_id="a").is_available
        assert not resolver.check(window, _minutes(630, 690), exclude_appointment_id="a").is_available

    def test_open_ranges(self):
        """Test subtracting bookings from a window."""
        window = Window(
            Weekday.MONDAY,
            "09:00",
            "17:00",
            [BookedInterval("14:00", "15:00", "b"), BookedInterval("10:00", "11:00", "a")],
        )

        free = ConflictResolver().open_ranges(window)

        assert free == [_minutes(540, 600), _minutes(660, 840), _minutes(900, 1020)]

    def test_open_ranges_fully_booked(self):
        """Test that a full window has no free range."""
        window = _monday(
            BookedInterval("09:00", "10:00", "a"),
            BookedInterval("10:00", "11:00", "b"),
            BookedInterval("11:00", "12:00", "c"),
        )

        assert ConflictResolver().open_ranges(window) == []
        assert ConflictResolver().open_ranges(window, exclude_appointment_id="b") == [_minutes(600, 660)]

    def test_validate_ledger(self):
        """Test invariant reporting for corrupted ledgers."""
        resolver = ConflictResolver()
        sound = _monday(BookedInterval("09:00", "10:00", "a"), BookedInterval("10:00", "11:00", "b"))
        broken = _monday(BookedInterval("09:00", "10:00", "a"), BookedInterval("09:30", "10:30", "b"))
        outside = _monday(BookedInterval("11:30", "12:30", "c"))

        assert resolver.validate_ledger(sound) == []
        assert resolver.validate_ledger(broken) == ["a overlaps b"]
        assert len(resolver.validate_ledger(outside)) == 1
