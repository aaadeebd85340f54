"""
Application service for booking, rescheduling and cancelling appointments.

The engine coordinates the store adapters and delegates all interval decisions
to the domain-level ``ConflictResolver``. The provider document (windows plus
booked intervals) is the shared mutable resource: every read-check-write on it
runs under a per-provider ``asyncio.Lock``, so two bookings for the same
provider are serialised while unrelated providers never contend.

Appointment and provider documents live in separate stores, so each mutation is
a two-step saga: the second write is retried and, if it keeps failing, the
first write is compensated. Only when compensation fails too does the engine
raise ``LedgerInconsistencyError``.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import date, datetime
from typing import AsyncIterator, Awaitable, Callable, Dict, Optional, Tuple, TypeVar

from pendulum import DateTime

from ..config import BookingConfig
from ..domain import time_utils
from ..domain.conflict_resolver import ConflictResolver, MinuteInterval, SlotOutcome
from ..domain.exceptions import (
    InPastError,
    InvalidPatchError,
    LedgerInconsistencyError,
    NotAuthorizedError,
    ProviderUnavailableError,
    SlotTakenError,
    StoreError,
    StoreUnavailableError,
    TerminalStateError,
)
from ..domain.models import (
    UNSET,
    Appointment,
    AppointmentPatch,
    AppointmentStatus,
    BookedInterval,
    Identity,
    Provider,
    Weekday,
    Window,
)
from .ports import AppointmentStore, Notifier, ProviderStore, RequesterStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

CANCELLED_BODY = (
    "Your appointment was cancelled. You can reschedule it later or contact "
    "your provider for more information. Thank you for your understanding."
)
VOIDED_NOTE = "Booking voided: the provider availability ledger could not be updated."


class BookingEngine:
    """
    Orchestrates create / update against the provider ledger and appointment records.

    Every public operation takes ``now`` explicitly so that future-date checks
    are deterministic.
    """

    def __init__(
        self,
        *,
        providers: ProviderStore,
        requesters: RequesterStore,
        appointments: AppointmentStore,
        notifier: Optional[Notifier] = None,
        config: Optional[BookingConfig] = None,
        timezone: str = "Europe/Berlin",
        conflict_resolver: Optional[ConflictResolver] = None,
    ) -> None:
        self._providers = providers
        self._requesters = requesters
        self._appointments = appointments
        self._notifier = notifier
        self._config = config or BookingConfig()
        self._timezone = timezone
        self._resolver = conflict_resolver or ConflictResolver()
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    @property
    def timezone(self) -> str:
        return self._timezone

    @property
    def default_duration_minutes(self) -> int:
        return self._config.default_duration_minutes

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    async def create(
        self,
        *,
        provider_id: str,
        requester_id: str,
        date: date,
        time: str,
        reason: str,
        now: DateTime,
        duration_minutes: Optional[int] = None,
        notes: str = "",
    ) -> Appointment:
        """
        Book a new appointment.

        Raises:
            NotFoundError: Provider or requester does not exist
            InPastError: The requested start is not strictly after ``now``
            ProviderUnavailableError: No window on that weekday covers the interval
            SlotTakenError: The interval overlaps an existing booking
            StoreError / StoreUnavailableError: A store adapter failed
            LedgerInconsistencyError: The two documents could not be reconciled
        """
        duration = duration_minutes or self._config.default_duration_minutes
        if duration <= 0:
            raise InvalidPatchError("Duration must be a positive number of minutes")

        start_time = time_utils.to_24_hour(time)
        candidate = self._candidate(start_time, duration)

        async with self._lock_for(provider_id):
            provider = await self._call(
                self._providers.get_provider(provider_id), "loading provider"
            )
            await self._call(
                self._requesters.get_requester(requester_id), "loading requester"
            )

            self._ensure_future(date, start_time, now)
            window = self._resolve_window(provider, date, candidate)

            appointment = Appointment(
                id=self._appointments.new_appointment_id(),
                provider_id=provider_id,
                requester_id=requester_id,
                date=date,
                time=start_time,
                reason=reason,
                notes=notes,
                duration_minutes=duration,
            )
            await self._call(
                self._appointments.save_appointment(appointment), "saving appointment"
            )

            window.add_interval(
                BookedInterval(
                    start_time=start_time,
                    end_time=time_utils.format_minutes(candidate.end),
                    appointment_id=appointment.id,
                )
            )
            voided = replace(
                appointment,
                status=AppointmentStatus.CANCELLED,
                notes=_append_note(appointment.notes, VOIDED_NOTE),
            )
            await self._second_write(
                write=lambda: self._providers.save_provider(provider),
                compensate=lambda: self._appointments.save_appointment(voided),
                what="saving provider ledger",
                appointment_id=appointment.id,
                provider_id=provider_id,
            )

        logger.info(
            "Booked appointment %s with provider %s on %s %s-%s",
            appointment.id,
            provider_id,
            date.isoformat(),
            appointment.time,
            appointment.end_time,
        )
        await self._notify(provider_id, "New Appointment", "A new appointment has been scheduled")
        return appointment

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    async def update(
        self,
        appointment_id: str,
        *,
        identity: Identity,
        patch: AppointmentPatch,
        now: DateTime,
    ) -> Appointment:
        """
        Apply a partial update: status change, reschedule and/or notes.

        Raises:
            InvalidPatchError: Empty patch or incompatible combination of fields
            NotFoundError: Appointment does not exist
            NotAuthorizedError: Caller does not own the appointment
            TerminalStateError: Appointment is cancelled, or completed and the
                patch changes more than notes
            InPastError / ProviderUnavailableError / SlotTakenError: Reschedule rejected
        """
        patch = self._normalize_patch(patch)

        # The provider id is needed to pick the lock; ownership never changes
        existing = await self._call(
            self._appointments.get_appointment(appointment_id), "loading appointment"
        )
        self._authorize(existing, identity)

        async with self._lock_for(existing.provider_id):
            appointment = await self._call(
                self._appointments.get_appointment(appointment_id), "loading appointment"
            )
            status_changed = patch.supplied("status") and patch.status is not appointment.status
            new_date = patch.date if patch.supplied("date") else appointment.date
            new_time = patch.time if patch.supplied("time") else appointment.time
            rescheduled = new_date != appointment.date or new_time != appointment.time

            self._ensure_mutable(appointment, status_changed, rescheduled)
            if status_changed and rescheduled:
                raise InvalidPatchError("A status change cannot be combined with a new date or time")

            updated = replace(appointment)
            if patch.supplied("notes"):
                updated.notes = patch.notes

            if status_changed and patch.status is AppointmentStatus.CANCELLED:
                updated.status = AppointmentStatus.CANCELLED
                await self._cancel_in_ledger(appointment, updated)
            elif rescheduled:
                updated.date = new_date
                updated.time = new_time
                await self._reschedule_in_ledger(appointment, updated, now)
            else:
                if status_changed:
                    updated.status = patch.status
                await self._call(
                    self._appointments.save_appointment(updated), "saving appointment"
                )

        title, body = _describe_update(updated, status_changed, rescheduled, patch)
        await self._notify(updated.requester_id, title, body)
        return updated

    async def cancel(self, appointment_id: str, *, identity: Identity, now: DateTime) -> Appointment:
        return await self.update(
            appointment_id,
            identity=identity,
            patch=AppointmentPatch(status=AppointmentStatus.CANCELLED),
            now=now,
        )

    async def complete(self, appointment_id: str, *, identity: Identity, now: DateTime) -> Appointment:
        return await self.update(
            appointment_id,
            identity=identity,
            patch=AppointmentPatch(status=AppointmentStatus.COMPLETED),
            now=now,
        )

    async def reschedule(
        self,
        appointment_id: str,
        *,
        identity: Identity,
        now: DateTime,
        date: Optional[date] = None,
        time: Optional[str] = None,
    ) -> Appointment:
        patch = AppointmentPatch(
            date=UNSET if date is None else date,
            time=UNSET if time is None else time,
        )
        return await self.update(appointment_id, identity=identity, patch=patch, now=now)

    async def add_notes(
        self,
        appointment_id: str,
        notes: str,
        *,
        identity: Identity,
        now: DateTime,
    ) -> Appointment:
        return await self.update(
            appointment_id, identity=identity, patch=AppointmentPatch(notes=notes), now=now
        )

    # ------------------------------------------------------------------
    # Ledger transitions (run inside the provider lock)
    # ------------------------------------------------------------------

    async def _cancel_in_ledger(self, current: Appointment, updated: Appointment) -> None:
        provider = await self._call(
            self._providers.get_provider(current.provider_id), "loading provider"
        )
        snapshot = copy.deepcopy(provider)

        removed = None
        for window in provider.windows_for(current.weekday):
            removed = window.remove_interval(current.id)
            if removed is not None:
                break
        if removed is None:
            holder = provider.window_holding(current.id)
            if holder is not None:
                removed = holder.remove_interval(current.id)

        if removed is None:
            logger.warning(
                "Appointment %s had no booked interval on provider %s",
                current.id,
                current.provider_id,
            )
            await self._call(
                self._appointments.save_appointment(updated), "saving appointment"
            )
        else:
            await self._call(self._providers.save_provider(provider), "saving provider ledger")
            await self._second_write(
                write=lambda: self._appointments.save_appointment(updated),
                compensate=lambda: self._providers.save_provider(snapshot),
                what="saving cancelled appointment",
                appointment_id=current.id,
                provider_id=current.provider_id,
            )

        logger.info("Cancelled appointment %s with provider %s", current.id, current.provider_id)

    async def _reschedule_in_ledger(
        self,
        current: Appointment,
        updated: Appointment,
        now: DateTime,
    ) -> None:
        self._ensure_future(updated.date, updated.time, now)
        candidate = self._candidate(updated.time, updated.duration_minutes)

        provider = await self._call(
            self._providers.get_provider(current.provider_id), "loading provider"
        )
        snapshot = copy.deepcopy(provider)
        target = self._resolve_window(
            provider, updated.date, candidate, exclude_appointment_id=current.id
        )

        end_time = time_utils.format_minutes(candidate.end)
        holder = provider.window_holding(current.id)
        if holder is target:
            target.replace_interval(current.id, updated.time, end_time)
        else:
            if holder is not None:
                holder.remove_interval(current.id)
            target.add_interval(
                BookedInterval(start_time=updated.time, end_time=end_time, appointment_id=current.id)
            )

        await self._call(self._providers.save_provider(provider), "saving provider ledger")
        await self._second_write(
            write=lambda: self._appointments.save_appointment(updated),
            compensate=lambda: self._providers.save_provider(snapshot),
            what="saving rescheduled appointment",
            appointment_id=current.id,
            provider_id=current.provider_id,
        )

        logger.info(
            "Rescheduled appointment %s from %s %s to %s %s",
            current.id,
            current.date.isoformat(),
            current.time,
            updated.date.isoformat(),
            updated.time,
        )

    # ------------------------------------------------------------------
    # Validation helpers
    # ------------------------------------------------------------------

    def _candidate(self, start_time: str, duration: int) -> MinuteInterval:
        start = time_utils.parse_to_minutes(start_time)
        end = time_utils.parse_to_minutes(time_utils.add_minutes(start_time, duration))
        return MinuteInterval(start=start, end=end)

    def _ensure_future(self, day: date, start_time: str, now: DateTime) -> None:
        start = time_utils.combine(day, start_time, self._timezone)
        if start <= now:
            raise InPastError("Appointment date and time must be in the future")

    def _resolve_window(
        self,
        provider: Provider,
        day: date,
        candidate: MinuteInterval,
        exclude_appointment_id: Optional[str] = None,
    ) -> Window:
        weekday = Weekday.for_date(day)
        window = self._resolver.find_window(provider.windows, weekday, candidate.start)
        if window is None:
            raise ProviderUnavailableError(
                f"Provider is not available on {weekday.value.title()} at "
                f"{time_utils.format_minutes(candidate.start)}"
            )

        check = self._resolver.check(window, candidate, exclude_appointment_id=exclude_appointment_id)
        if check.outcome is SlotOutcome.OUTSIDE_WINDOW:
            raise ProviderUnavailableError(
                f"The appointment would run past the availability window "
                f"{window.start_time}-{window.end_time}"
            )
        if check.outcome is SlotOutcome.CONFLICT:
            raise SlotTakenError("This time is already booked")
        return window

    def _normalize_patch(self, patch: AppointmentPatch) -> AppointmentPatch:
        if patch.is_empty():
            raise InvalidPatchError("At least one field is required: status, date, time, or notes")

        status = patch.status
        if patch.supplied("status"):
            try:
                status = AppointmentStatus(str(getattr(status, "value", status)).upper())
            except ValueError as exc:
                raise InvalidPatchError(f"Unknown status: {patch.status}") from exc

        new_time = patch.time
        if patch.supplied("time"):
            new_time = time_utils.to_24_hour(patch.time)

        new_date = patch.date
        if patch.supplied("date"):
            if isinstance(new_date, datetime):
                new_date = new_date.date()
            elif not isinstance(new_date, date):
                raise InvalidPatchError("date must be a calendar date")

        return replace(patch, status=status, date=new_date, time=new_time)

    def _authorize(self, appointment: Appointment, identity: Identity) -> None:
        owner = appointment.provider_id if identity.is_provider else appointment.requester_id
        if owner != identity.user_id:
            raise NotAuthorizedError("Not authorized to modify this appointment")

    def _ensure_mutable(self, appointment: Appointment, status_changed: bool, rescheduled: bool) -> None:
        if appointment.status is AppointmentStatus.CANCELLED:
            raise TerminalStateError("Cannot update a cancelled appointment")

        if appointment.status is AppointmentStatus.COMPLETED and (status_changed or rescheduled):
            raise TerminalStateError("Completed appointments can only be updated with notes")

    # ------------------------------------------------------------------
    # Infrastructure
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _lock_for(self, provider_id: str) -> AsyncIterator[None]:
        """
        Hold the provider's lock for the duration of the block.

        The lock is dropped from the table once no task holds or waits on it,
        so the table only ever contains providers with work in flight.
        """
        lock = self._locks.get(provider_id)
        if lock is None:
            lock = self._locks[provider_id] = asyncio.Lock()
        self._lock_users[provider_id] = self._lock_users.get(provider_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[provider_id] -= 1
            if not self._lock_users[provider_id]:
                del self._lock_users[provider_id]
                del self._locks[provider_id]

    async def _call(self, awaitable: Awaitable[T], what: str) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self._config.store_timeout_seconds)
        except asyncio.TimeoutError as exc:
            raise StoreUnavailableError(f"Store timed out while {what}") from exc

    async def _second_write(
        self,
        *,
        write: Callable[[], Awaitable[None]],
        compensate: Callable[[], Awaitable[None]],
        what: str,
        appointment_id: str,
        provider_id: str,
    ) -> None:
        """
        Finish a two-document write, compensating the first write on failure.

        Raises the last StoreError when compensation succeeded (nothing changed),
        LedgerInconsistencyError when it did not.
        """
        attempts = self._config.ledger_write_attempts
        for attempt in range(1, attempts + 1):
            try:
                await self._call(write(), what)
                return
            except StoreError as exc:
                failure = exc
                logger.warning("Attempt %d/%d %s failed: %s", attempt, attempts, what, exc)

        try:
            await self._call(compensate(), f"compensating after {what}")
        except StoreError as exc:
            logger.error(
                "Ledger inconsistency for appointment %s and provider %s: %s",
                appointment_id,
                provider_id,
                exc,
            )
            raise LedgerInconsistencyError(
                f"Appointment {appointment_id} and provider {provider_id} are out of sync "
                f"after {what} failed",
                appointment_id=appointment_id,
                provider_id=provider_id,
            ) from exc

        logger.warning(
            "Compensated appointment %s after %s failed", appointment_id, what
        )
        raise failure

    async def _notify(self, target_id: str, title: str, body: str) -> None:
        if self._notifier is None:
            return
        try:
            await asyncio.wait_for(
                self._notifier.notify(target_id, title, body),
                timeout=self._config.notification_timeout_seconds,
            )
        except Exception as exc:  # delivery never fails a committed booking
            logger.warning("Notification %r to %s failed: %s", title, target_id, exc)


def _append_note(notes: str, addition: str) -> str:
    return f"{notes}\n{addition}" if notes else addition


def _describe_update(
    appointment: Appointment,
    status_changed: bool,
    rescheduled: bool,
    patch: AppointmentPatch,
) -> Tuple[str, str]:
    """Pick the most specific message: status change > reschedule > notes."""
    if status_changed:
        if appointment.status is AppointmentStatus.CANCELLED:
            return "Appointment Cancelled", CANCELLED_BODY
        return "Appointment Update", f"Your appointment has been {appointment.status.value.lower()}"
    if rescheduled:
        return "Appointment Update", "Your appointment has been rescheduled"
    if patch.supplied("notes"):
        return "Appointment Update", "Your appointment notes have been updated"
    return "Appointment Update", "Your appointment has been updated"
