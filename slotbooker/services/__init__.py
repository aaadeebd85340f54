"""
Service layer that orchestrates adapters and domain logic.
"""

from .appointment_api import ApiResponse, AppointmentAPI
from .appointment_queries import AppointmentQueryService, OpenSlot, RequesterHistory
from .booking_engine import BookingEngine
from .ports import AppointmentStore, Notifier, ProviderStore, RequesterStore

__all__ = [
    "ApiResponse",
    "AppointmentAPI",
    "AppointmentQueryService",
    "AppointmentStore",
    "BookingEngine",
    "Notifier",
    "OpenSlot",
    "ProviderStore",
    "RequesterHistory",
    "RequesterStore",
]
