"""
Read-only views over appointments and provider availability.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import date
from typing import Dict, List, Optional

from pendulum import DateTime

from ..domain import time_utils
from ..domain.conflict_resolver import ConflictResolver, MinuteInterval
from ..domain.exceptions import NotAuthorizedError, StoreUnavailableError
from ..domain.models import (
    AppointmentBuckets,
    AppointmentFilter,
    Identity,
    Requester,
    Weekday,
)
from .ports import AppointmentStore, ProviderStore, RequesterStore


@dataclass
class RequesterHistory:
    """Appointments of one requester together with who they are."""
    requester: Requester
    appointments: AppointmentBuckets

    def to_dict(self) -> Dict[str, object]:
        return {
            "requester": self.requester.summary(),
            "appointments": self.appointments.to_dict(),
        }


@dataclass(frozen=True)
class OpenSlot:
    """A free stretch of a provider's day."""
    date: date
    start_time: str
    end_time: str

    def duration_minutes(self) -> int:
        return time_utils.parse_to_minutes(self.end_time) - time_utils.parse_to_minutes(self.start_time)


class AppointmentQueryService:
    """
    Role-aware listings.

    A requester sees the appointments they booked, a provider the ones booked
    with them. Every listing is partitioned into upcoming / completed /
    cancelled buckets, ascending by date within each bucket.
    """

    def __init__(
        self,
        *,
        providers: ProviderStore,
        requesters: RequesterStore,
        appointments: AppointmentStore,
        timezone: str = "Europe/Berlin",
        store_timeout_seconds: float = 5.0,
        conflict_resolver: Optional[ConflictResolver] = None,
    ) -> None:
        self._providers = providers
        self._requesters = requesters
        self._appointments = appointments
        self._timezone = timezone
        self._timeout = store_timeout_seconds
        self._resolver = conflict_resolver or ConflictResolver()

    async def list_own(self, identity: Identity) -> AppointmentBuckets:
        """List the caller's appointments according to their role."""
        if identity.is_provider:
            criteria = AppointmentFilter(provider_id=identity.user_id)
        else:
            criteria = AppointmentFilter(requester_id=identity.user_id)
        return await self._bucketed(criteria)

    async def list_requester_history(self, identity: Identity, requester_id: str) -> RequesterHistory:
        """A provider's view of one requester: only appointments booked with this provider."""
        if not identity.is_provider:
            raise NotAuthorizedError("Only providers can view a requester's history")

        requester = await self._load_requester(requester_id)
        buckets = await self._bucketed(
            AppointmentFilter(provider_id=identity.user_id, requester_id=requester_id)
        )
        return RequesterHistory(requester=requester, appointments=buckets)

    async def list_requester_appointments(self, identity: Identity, requester_id: str) -> RequesterHistory:
        """Every appointment of a requester across all providers."""
        if not identity.is_provider and identity.user_id != requester_id:
            raise NotAuthorizedError("Requesters can only list their own appointments")

        requester = await self._load_requester(requester_id)
        buckets = await self._bucketed(AppointmentFilter(requester_id=requester_id))
        return RequesterHistory(requester=requester, appointments=buckets)

    async def open_slots(
        self,
        provider_id: str,
        day: date,
        *,
        now: DateTime,
        min_duration_minutes: int = 0,
    ) -> List[OpenSlot]:
        """
        Free ranges of a provider on ``day``, after bookings and the past are removed.

        Ranges shorter than ``min_duration_minutes`` are dropped.
        """
        provider = await self._with_timeout(self._providers.get_provider(provider_id))
        weekday = Weekday.for_date(day)

        today = now.in_timezone(self._timezone)
        if day < today.date():
            return []
        earliest = today.hour * 60 + today.minute + 1 if day == today.date() else 0

        slots: List[OpenSlot] = []
        windows = sorted(provider.windows_for(weekday), key=lambda window: window.start_minutes)
        for window in windows:
            for free in self._resolver.open_ranges(window):
                start = max(free.start, earliest)
                if start >= free.end:
                    continue
                trimmed = MinuteInterval(start=start, end=free.end)
                if trimmed.duration_minutes() < min_duration_minutes:
                    continue
                slots.append(
                    OpenSlot(
                        date=day,
                        start_time=time_utils.format_minutes(trimmed.start),
                        end_time=time_utils.format_minutes(trimmed.end),
                    )
                )
        return slots

    async def _bucketed(self, criteria: AppointmentFilter) -> AppointmentBuckets:
        appointments = await self._with_timeout(self._appointments.find_appointments(criteria))
        return AppointmentBuckets.partition(appointments)

    async def _load_requester(self, requester_id: str) -> Requester:
        return await self._with_timeout(self._requesters.get_requester(requester_id))

    async def _with_timeout(self, awaitable):
        try:
            return await asyncio.wait_for(awaitable, timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            raise StoreUnavailableError("Store timed out while reading appointments") from exc
