"""
Core business logic for deciding whether a candidate interval can be booked.

Pure domain logic without any external dependencies (no store calls, no I/O).
All arithmetic happens on minutes since midnight within a single day.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List, Optional

from .models import BookedInterval, Weekday, Window


@dataclass(frozen=True)
class MinuteInterval:
    """
    Half-open interval [start, end) in minutes since midnight.

    Invariant: start must be before end.
    """
    start: int
    end: int

    def __post_init__(self):
        if self.start >= self.end:
            raise ValueError(f"Start minute {self.start} must be before end minute {self.end}")

    @classmethod
    def of(cls, interval: BookedInterval) -> "MinuteInterval":
        return cls(start=interval.start_minutes, end=interval.end_minutes)

    def duration_minutes(self) -> int:
        return self.end - self.start

    def overlaps(self, other: "MinuteInterval") -> bool:
        """
        Check if this interval shares more than a boundary instant with another.

        Spelled out as the three cases a booking can collide in:
        the start falls inside ``other``, the end falls inside ``other``,
        or this interval swallows ``other`` whole.
        """
        starts_inside = other.start <= self.start < other.end
        ends_inside = other.start < self.end <= other.end
        contains_other = self.start <= other.start and self.end >= other.end
        return starts_inside or ends_inside or contains_other

    def contains(self, other: "MinuteInterval") -> bool:
        return self.start <= other.start and other.end <= self.end


class SlotOutcome(str, Enum):
    AVAILABLE = "available"
    OUTSIDE_WINDOW = "outside_window"
    CONFLICT = "conflict"


@dataclass
class SlotCheck:
    """Result of checking a candidate against one window."""
    outcome: SlotOutcome
    conflicts: List[BookedInterval] = field(default_factory=list)

    @property
    def is_available(self) -> bool:
        return self.outcome is SlotOutcome.AVAILABLE


class ConflictResolver:
    """
    Decides overlap and window containment for candidate bookings.

    Algorithm:
    1. Pick the window for the weekday whose [start, end) holds the start time
    2. Require the whole candidate to fit inside that window
    3. Compare the candidate with every booked interval of the window,
       skipping the interval owned by the appointment being moved
    """

    def find_window(
        self,
        windows: Iterable[Window],
        weekday: Weekday,
        start_minutes: int
    ) -> Optional[Window]:
        """Return the first window on ``weekday`` containing ``start_minutes``."""
        for window in windows:
            if window.day_of_week == weekday and window.contains_minute(start_minutes):
                return window
        return None

    def check(
        self,
        window: Window,
        candidate: MinuteInterval,
        exclude_appointment_id: Optional[str] = None
    ) -> SlotCheck:
        """
        Check a candidate interval against a window and its ledger.

        Args:
            window: The availability window the candidate should land in
            candidate: Interval to book
            exclude_appointment_id: Appointment whose own interval is ignored
                (used when rescheduling)

        Returns:
            SlotCheck with the outcome and any conflicting intervals
        """
        bounds = MinuteInterval(start=window.start_minutes, end=window.end_minutes)
        if not bounds.contains(candidate):
            return SlotCheck(outcome=SlotOutcome.OUTSIDE_WINDOW)

        conflicts = self.find_conflicts(
            candidate,
            window.booked_intervals,
            exclude_appointment_id=exclude_appointment_id
        )
        if conflicts:
            return SlotCheck(outcome=SlotOutcome.CONFLICT, conflicts=conflicts)

        return SlotCheck(outcome=SlotOutcome.AVAILABLE)

    def has_conflict(
        self,
        candidate: MinuteInterval,
        booked: Iterable[BookedInterval],
        exclude_appointment_id: Optional[str] = None
    ) -> bool:
        return bool(self.find_conflicts(candidate, booked, exclude_appointment_id))

    def find_conflicts(
        self,
        candidate: MinuteInterval,
        booked: Iterable[BookedInterval],
        exclude_appointment_id: Optional[str] = None
    ) -> List[BookedInterval]:
        return [
            interval for interval in booked
            if interval.appointment_id != exclude_appointment_id
            and candidate.overlaps(MinuteInterval.of(interval))
        ]

    def open_ranges(
        self,
        window: Window,
        exclude_appointment_id: Optional[str] = None
    ) -> List[MinuteInterval]:
        """
        Subtract the booked intervals from a window, yielding the free ranges.

        Example:
        Window: 09:00 - 17:00
        Booked: [10:00-11:00, 14:00-15:00]
        Result: [09:00-10:00, 11:00-14:00, 15:00-17:00]
        """
        free: List[MinuteInterval] = []
        cursor = window.start_minutes

        busy = sorted(
            (
                MinuteInterval.of(interval) for interval in window.booked_intervals
                if interval.appointment_id != exclude_appointment_id
            ),
            key=lambda interval: interval.start
        )

        for interval in busy:
            clipped_start = max(interval.start, window.start_minutes)
            clipped_end = min(interval.end, window.end_minutes)

            if cursor < clipped_start:
                free.append(MinuteInterval(start=cursor, end=clipped_start))

            cursor = max(cursor, clipped_end)

        if cursor < window.end_minutes:
            free.append(MinuteInterval(start=cursor, end=window.end_minutes))

        return free

    def validate_ledger(self, window: Window) -> List[str]:
        """
        Report violations of the window invariant, empty when the ledger is sound.
        """
        problems: List[str] = []
        bounds = MinuteInterval(start=window.start_minutes, end=window.end_minutes)
        intervals = window.booked_intervals

        for index, interval in enumerate(intervals):
            current = MinuteInterval.of(interval)
            if not bounds.contains(current):
                problems.append(
                    f"{interval.appointment_id} {interval.start_time}-{interval.end_time} "
                    f"lies outside {window.start_time}-{window.end_time}"
                )
            for other in intervals[index + 1:]:
                if current.overlaps(MinuteInterval.of(other)):
                    problems.append(
                        f"{interval.appointment_id} overlaps {other.appointment_id}"
                    )

        return problems
