"""
Domain models for providers, availability windows and appointments.
"""

from __future__ import annotations

import bisect
from dataclasses import dataclass, field, fields
from datetime import date
from enum import Enum
from typing import Any, Dict, List, Optional

import pendulum

from . import time_utils


class Weekday(str, Enum):
    """Symbolic day of week used by recurring availability windows."""

    MONDAY = "MONDAY"
    TUESDAY = "TUESDAY"
    WEDNESDAY = "WEDNESDAY"
    THURSDAY = "THURSDAY"
    FRIDAY = "FRIDAY"
    SATURDAY = "SATURDAY"
    SUNDAY = "SUNDAY"

    @classmethod
    def from_index(cls, index: int) -> "Weekday":
        """0=Monday, 6=Sunday (``date.weekday()`` convention)."""
        return list(cls)[index]

    @classmethod
    def for_date(cls, day: date) -> "Weekday":
        return cls.from_index(day.weekday())


class AppointmentStatus(str, Enum):
    UPCOMING = "UPCOMING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self is not AppointmentStatus.UPCOMING


class Role(str, Enum):
    PROVIDER = "provider"
    REQUESTER = "requester"


@dataclass(frozen=True)
class Identity:
    """
    The resolved caller, handed over by the authentication collaborator.
    """
    user_id: str
    role: Role

    @property
    def is_provider(self) -> bool:
        return self.role is Role.PROVIDER


@dataclass
class BookedInterval:
    """
    A reserved span inside a window, pointing back at its appointment.

    Times are canonical 24-hour "HH:MM" strings.
    """
    start_time: str
    end_time: str
    appointment_id: str

    @property
    def start_minutes(self) -> int:
        return time_utils.parse_to_minutes(self.start_time)

    @property
    def end_minutes(self) -> int:
        return time_utils.parse_to_minutes(self.end_time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "start_time": self.start_time,
            "end_time": self.end_time,
            "appointment_id": self.appointment_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BookedInterval":
        return cls(
            start_time=time_utils.to_24_hour(data["start_time"]),
            end_time=time_utils.to_24_hour(data["end_time"]),
            appointment_id=str(data["appointment_id"]),
        )


@dataclass
class Window:
    """
    A recurring weekly availability span for one day of the week.

    Invariant: booked intervals are pairwise non-overlapping, lie within
    [start_time, end_time) and are kept ordered by start time.
    """
    day_of_week: Weekday
    start_time: str
    end_time: str
    booked_intervals: List[BookedInterval] = field(default_factory=list)

    def __post_init__(self):
        self.day_of_week = Weekday(self.day_of_week)
        self.start_time = time_utils.to_24_hour(self.start_time)
        self.end_time = time_utils.to_24_hour(self.end_time)
        if self.start_minutes >= self.end_minutes:
            raise ValueError(
                f"Window start {self.start_time} must be before end {self.end_time}"
            )

    @property
    def start_minutes(self) -> int:
        return time_utils.parse_to_minutes(self.start_time)

    @property
    def end_minutes(self) -> int:
        return time_utils.parse_to_minutes(self.end_time)

    def contains_minute(self, minutes: int) -> bool:
        return self.start_minutes <= minutes < self.end_minutes

    def find_interval(self, appointment_id: str) -> Optional[BookedInterval]:
        for interval in self.booked_intervals:
            if interval.appointment_id == appointment_id:
                return interval
        return None

    def add_interval(self, interval: BookedInterval) -> None:
        """Insert keeping the list ordered by start time."""
        starts = [booked.start_minutes for booked in self.booked_intervals]
        position = bisect.bisect_right(starts, interval.start_minutes)
        self.booked_intervals.insert(position, interval)

    def remove_interval(self, appointment_id: str) -> Optional[BookedInterval]:
        """Remove and return the interval owned by ``appointment_id``, if any."""
        for index, interval in enumerate(self.booked_intervals):
            if interval.appointment_id == appointment_id:
                return self.booked_intervals.pop(index)
        return None

    def replace_interval(self, appointment_id: str, start_time: str, end_time: str) -> bool:
        """Move an existing interval to new times in place. Returns False if absent."""
        interval = self.find_interval(appointment_id)
        if interval is None:
            return False
        interval.start_time = start_time
        interval.end_time = end_time
        self.booked_intervals.sort(key=lambda booked: booked.start_minutes)
        return True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "day_of_week": self.day_of_week.value,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "booked_intervals": [interval.to_dict() for interval in self.booked_intervals],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Window":
        return cls(
            day_of_week=Weekday(str(data["day_of_week"]).upper()),
            start_time=data["start_time"],
            end_time=data["end_time"],
            booked_intervals=[
                BookedInterval.from_dict(item) for item in data.get("booked_intervals") or []
            ],
        )


@dataclass
class Provider:
    """A provider and their weekly availability ledger."""
    id: str
    name: str
    windows: List[Window] = field(default_factory=list)
    email: str = ""
    specialization: str = ""

    def windows_for(self, weekday: Weekday) -> List[Window]:
        return [window for window in self.windows if window.day_of_week == weekday]

    def window_holding(self, appointment_id: str) -> Optional[Window]:
        """Locate the window whose ledger carries ``appointment_id``."""
        for window in self.windows:
            if window.find_interval(appointment_id) is not None:
                return window
        return None

    def booked_interval_count(self) -> int:
        return sum(len(window.booked_intervals) for window in self.windows)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "specialization": self.specialization,
            "windows": [window.to_dict() for window in self.windows],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Provider":
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            email=data.get("email", ""),
            specialization=data.get("specialization", ""),
            windows=[Window.from_dict(item) for item in data.get("windows") or []],
        )


@dataclass
class Requester:
    id: str
    name: str
    email: str = ""

    def summary(self) -> Dict[str, str]:
        return {"id": self.id, "name": self.name, "email": self.email}

    def to_dict(self) -> Dict[str, Any]:
        return self.summary()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Requester":
        return cls(id=str(data["id"]), name=data.get("name", ""), email=data.get("email", ""))


@dataclass
class Appointment:
    """
    The source of truth for a booking.

    ``time`` is canonical 24-hour "HH:MM"; ``duration_minutes`` is the length
    the ledger interval was computed with.
    """
    id: str
    provider_id: str
    requester_id: str
    date: date
    time: str
    reason: str
    notes: str = ""
    status: AppointmentStatus = AppointmentStatus.UPCOMING
    duration_minutes: int = 60

    @property
    def weekday(self) -> Weekday:
        return Weekday.for_date(self.date)

    @property
    def end_time(self) -> str:
        return time_utils.add_minutes(self.time, self.duration_minutes)

    def sort_key(self):
        return (self.date, time_utils.parse_to_minutes(self.time))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "provider_id": self.provider_id,
            "requester_id": self.requester_id,
            "date": self.date.isoformat(),
            "time": self.time,
            "end_time": self.end_time,
            "duration_minutes": self.duration_minutes,
            "reason": self.reason,
            "notes": self.notes,
            "status": self.status.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Appointment":
        return cls(
            id=str(data["id"]),
            provider_id=str(data["provider_id"]),
            requester_id=str(data["requester_id"]),
            date=pendulum.parse(data["date"]).date(),
            time=time_utils.to_24_hour(data["time"]),
            reason=data.get("reason", ""),
            notes=data.get("notes") or "",
            status=AppointmentStatus(data.get("status", AppointmentStatus.UPCOMING.value)),
            duration_minutes=int(data.get("duration_minutes", 60)),
        )


class _Unset:
    """Marker for a patch field the caller did not supply."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "UNSET"


UNSET: Any = _Unset()


@dataclass(frozen=True)
class AppointmentPatch:
    """
    Partial update of an appointment.

    Fields left as UNSET were not supplied; an empty string for ``notes`` is a
    supplied value that clears the notes.
    """
    status: Any = UNSET
    date: Any = UNSET
    time: Any = UNSET
    notes: Any = UNSET

    def supplied(self, name: str) -> bool:
        return getattr(self, name) is not UNSET

    def is_empty(self) -> bool:
        return not any(self.supplied(f.name) for f in fields(self))


@dataclass(frozen=True)
class AppointmentFilter:
    provider_id: Optional[str] = None
    requester_id: Optional[str] = None

    def matches(self, appointment: Appointment) -> bool:
        if self.provider_id is not None and appointment.provider_id != self.provider_id:
            return False
        if self.requester_id is not None and appointment.requester_id != self.requester_id:
            return False
        return True


@dataclass
class AppointmentBuckets:
    """Appointments partitioned by status, each bucket in ascending date order."""
    upcoming: List[Appointment] = field(default_factory=list)
    completed: List[Appointment] = field(default_factory=list)
    cancelled: List[Appointment] = field(default_factory=list)

    @classmethod
    def partition(cls, appointments: List[Appointment]) -> "AppointmentBuckets":
        buckets = cls()
        targets = {
            AppointmentStatus.UPCOMING: buckets.upcoming,
            AppointmentStatus.COMPLETED: buckets.completed,
            AppointmentStatus.CANCELLED: buckets.cancelled,
        }
        # sorted() is stable, so store order survives for equal keys
        for appointment in sorted(appointments, key=lambda item: item.sort_key()):
            targets[appointment.status].append(appointment)
        return buckets

    def __len__(self) -> int:
        return len(self.upcoming) + len(self.completed) + len(self.cancelled)

    def to_dict(self) -> Dict[str, List[Dict[str, Any]]]:
        return {
            "upcoming": [item.to_dict() for item in self.upcoming],
            "completed": [item.to_dict() for item in self.completed],
            "cancelled": [item.to_dict() for item in self.cancelled],
        }
