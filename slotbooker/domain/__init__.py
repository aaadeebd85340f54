"""
Domain layer - Pure business logic without external dependencies.
"""

from .conflict_resolver import ConflictResolver, MinuteInterval, SlotCheck, SlotOutcome
from .models import (
    UNSET,
    Appointment,
    AppointmentBuckets,
    AppointmentFilter,
    AppointmentPatch,
    AppointmentStatus,
    BookedInterval,
    Identity,
    Provider,
    Requester,
    Role,
    Weekday,
    Window,
)

__all__ = [
    "UNSET",
    "Appointment",
    "AppointmentBuckets",
    "AppointmentFilter",
    "AppointmentPatch",
    "AppointmentStatus",
    "BookedInterval",
    "ConflictResolver",
    "Identity",
    "MinuteInterval",
    "Provider",
    "Requester",
    "Role",
    "SlotCheck",
    "SlotOutcome",
    "Weekday",
    "Window",
]
