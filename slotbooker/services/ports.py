"""
Protocols describing the collaborators the booking engine depends on.

Dependency inversion toward these protocols makes it easy to plug in a real
database-backed store, the JSON file store used by the CLI, or inline stubs in
tests.
"""

from __future__ import annotations

from typing import List, Protocol

from ..domain.models import Appointment, AppointmentFilter, Provider, Requester


class ProviderStore(Protocol):
    """Persistence of provider documents (windows plus booked intervals)."""

    async def get_provider(self, provider_id: str) -> Provider:
        """Return the provider or raise NotFoundError."""

    async def save_provider(self, provider: Provider) -> None:
        """Persist the full provider document or raise StoreError."""


class RequesterStore(Protocol):

    async def get_requester(self, requester_id: str) -> Requester:
        """Return the requester or raise NotFoundError."""


class AppointmentStore(Protocol):

    async def get_appointment(self, appointment_id: str) -> Appointment:
        """Return the appointment or raise NotFoundError."""

    async def save_appointment(self, appointment: Appointment) -> None:
        """Insert or replace the appointment, or raise StoreError."""

    async def find_appointments(self, criteria: AppointmentFilter) -> List[Appointment]:
        """Return matching appointments sorted by date ascending."""

    def new_appointment_id(self) -> str:
        """Allocate an identifier for a new appointment."""


class Notifier(Protocol):
    """Fire-and-forget delivery of push or email messages."""

    async def notify(self, target_id: str, title: str, body: str) -> None:
        """Deliver a message or raise NotificationError."""
