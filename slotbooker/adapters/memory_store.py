"""
In-memory document store implementing the provider, requester and appointment protocols.
"""

import asyncio
import copy
import uuid
from typing import Any, Dict, Iterable, List, Optional

from ..domain.exceptions import NotFoundError, StoreError
from ..domain.models import Appointment, AppointmentFilter, Provider, Requester


class InMemoryStore:
    """
    Keeps every document in dictionaries keyed by id.

    Documents are deep-copied on the way in and out, so a caller mutating a
    loaded provider never changes what other callers read until it is saved,
    the same isolation a real document database gives.
    """

    def __init__(
        self,
        providers: Optional[Iterable[Provider]] = None,
        requesters: Optional[Iterable[Requester]] = None,
        appointments: Optional[Iterable[Appointment]] = None,
        latency: float = 0.0
    ):
        """
        Initialize the store.

        Args:
            providers: Initial provider documents
            requesters: Initial requesters
            appointments: Initial appointment records
            latency: Seconds every call sleeps, to expose interleaving in tests
        """
        self.latency = latency
        self.providers: Dict[str, Provider] = {p.id: copy.deepcopy(p) for p in providers or []}
        self.requesters: Dict[str, Requester] = {r.id: copy.deepcopy(r) for r in requesters or []}
        self.appointments: Dict[str, Appointment] = {
            a.id: copy.deepcopy(a) for a in appointments or []
        }

    async def _pause(self) -> None:
        # Always yield once so concurrent callers interleave at every store call
        await asyncio.sleep(self.latency)

    async def get_provider(self, provider_id: str) -> Provider:
        await self._pause()
        try:
            return copy.deepcopy(self.providers[provider_id])
        except KeyError:
            raise NotFoundError(f"Provider not found: {provider_id}") from None

    async def save_provider(self, provider: Provider) -> None:
        await self._pause()
        self._commit(self.providers, provider.id, provider)

    async def get_requester(self, requester_id: str) -> Requester:
        await self._pause()
        try:
            return copy.deepcopy(self.requesters[requester_id])
        except KeyError:
            raise NotFoundError(f"Requester not found: {requester_id}") from None

    async def get_appointment(self, appointment_id: str) -> Appointment:
        await self._pause()
        try:
            return copy.deepcopy(self.appointments[appointment_id])
        except KeyError:
            raise NotFoundError(f"Appointment not found: {appointment_id}") from None

    async def save_appointment(self, appointment: Appointment) -> None:
        await self._pause()
        self._commit(self.appointments, appointment.id, appointment)

    async def find_appointments(self, criteria: AppointmentFilter) -> List[Appointment]:
        await self._pause()
        matches = [
            copy.deepcopy(appointment)
            for appointment in self.appointments.values()
            if criteria.matches(appointment)
        ]
        return sorted(matches, key=lambda appointment: appointment.sort_key())

    def new_appointment_id(self) -> str:
        return uuid.uuid4().hex

    def add_provider(self, provider: Provider) -> None:
        self._commit(self.providers, provider.id, provider)

    def add_requester(self, requester: Requester) -> None:
        self._commit(self.requesters, requester.id, requester)

    def _commit(self, collection: Dict[str, Any], key: str, document: Any) -> None:
        """Store a copy of ``document``, undoing the change if persisting fails."""
        missing = object()
        previous = collection.get(key, missing)
        collection[key] = copy.deepcopy(document)
        try:
            self._persist()
        except StoreError:
            if previous is missing:
                del collection[key]
            else:
                collection[key] = previous
            raise

    def _persist(self) -> None:
        """Hook for subclasses that write the documents somewhere durable."""
