"""
Role-gated API surface exposed to the host application.

Request bodies are validated with Pydantic; domain errors are mapped onto
stable status codes and error codes so that callers can branch on them.
"""

from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional

from pendulum import DateTime
from pydantic import BaseModel, ValidationError, field_validator

from ..domain import time_utils
from ..domain.exceptions import BookingError, NotAuthorizedError
from ..domain.models import (
    UNSET,
    AppointmentPatch,
    AppointmentStatus,
    Identity,
)
from .appointment_queries import AppointmentQueryService
from .booking_engine import BookingEngine

logger = logging.getLogger(__name__)

MAX_NOTES_LENGTH = 600


class CreateAppointmentRequest(BaseModel):
    provider_id: str
    date: dt.date
    time: str
    reason: str
    notes: Optional[str] = None
    duration_minutes: Optional[int] = None

    @field_validator("provider_id", "reason")
    @classmethod
    def validate_required_text(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("must not be empty")
        return normalized

    @field_validator("time")
    @classmethod
    def validate_time(cls, value: str) -> str:
        if not time_utils.is_valid_time_format(value):
            raise ValueError('Invalid time format. Use format like "2:30 PM" or "14:30"')
        return value.strip()

    @field_validator("duration_minutes")
    @classmethod
    def validate_duration(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and value <= 0:
            raise ValueError("duration_minutes must be greater than zero")
        return value

    @field_validator("notes")
    @classmethod
    def validate_notes(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and len(value) > MAX_NOTES_LENGTH:
            raise ValueError(f"Notes must be {MAX_NOTES_LENGTH} characters or fewer.")
        return value


class UpdateAppointmentRequest(BaseModel):
    """
    Partial update body. Only keys present in the payload are applied.
    """
    status: Optional[AppointmentStatus] = None
    date: Optional[dt.date] = None
    time: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @field_validator("time")
    @classmethod
    def validate_time(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not time_utils.is_valid_time_format(value):
            raise ValueError('Invalid time format. Use format like "2:30 PM" or "14:30"')
        return value

    @field_validator("notes")
    @classmethod
    def validate_notes(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and len(value) > MAX_NOTES_LENGTH:
            raise ValueError(f"Notes must be {MAX_NOTES_LENGTH} characters or fewer.")
        return value

    def to_patch(self) -> AppointmentPatch:
        """Translate into a patch where unsent keys stay UNSET."""
        supplied = {
            name: getattr(self, name)
            for name in self.model_fields_set
            if getattr(self, name) is not None
        }
        return AppointmentPatch(
            status=supplied.get("status", UNSET),
            date=supplied.get("date", UNSET),
            time=supplied.get("time", UNSET),
            notes=supplied.get("notes", UNSET),
        )


@dataclass
class ApiResponse:
    status_code: int
    body: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status_code < 400


class AppointmentAPI:
    """Thin adapter between the host's request handling and the booking core."""

    def __init__(self, engine: BookingEngine, queries: AppointmentQueryService) -> None:
        self._engine = engine
        self._queries = queries

    async def create_appointment(
        self,
        identity: Identity,
        payload: Dict[str, Any],
        *,
        now: DateTime,
    ) -> ApiResponse:
        async def handler() -> ApiResponse:
            if identity.is_provider:
                raise NotAuthorizedError("Only requesters can book appointments")
            request = CreateAppointmentRequest.model_validate(payload)
            appointment = await self._engine.create(
                provider_id=request.provider_id,
                requester_id=identity.user_id,
                date=request.date,
                time=request.time,
                reason=request.reason,
                notes=request.notes or "",
                duration_minutes=request.duration_minutes,
                now=now,
            )
            return ApiResponse(
                201,
                {"message": "Appointment scheduled successfully", "appointment": appointment.to_dict()},
            )

        return await self._handle(handler)

    async def list_appointments(self, identity: Identity) -> ApiResponse:
        async def handler() -> ApiResponse:
            buckets = await self._queries.list_own(identity)
            return ApiResponse(200, buckets.to_dict())

        return await self._handle(handler)

    async def update_appointment(
        self,
        identity: Identity,
        appointment_id: str,
        payload: Dict[str, Any],
        *,
        now: DateTime,
    ) -> ApiResponse:
        async def handler() -> ApiResponse:
            request = UpdateAppointmentRequest.model_validate(payload)
            appointment = await self._engine.update(
                appointment_id,
                identity=identity,
                patch=request.to_patch(),
                now=now,
            )
            return ApiResponse(
                200,
                {"message": "Appointment updated successfully", "appointment": appointment.to_dict()},
            )

        return await self._handle(handler)

    async def requester_history(self, identity: Identity, requester_id: str) -> ApiResponse:
        async def handler() -> ApiResponse:
            history = await self._queries.list_requester_history(identity, requester_id)
            return ApiResponse(200, history.to_dict())

        return await self._handle(handler)

    async def requester_appointments(self, identity: Identity, requester_id: str) -> ApiResponse:
        async def handler() -> ApiResponse:
            history = await self._queries.list_requester_appointments(identity, requester_id)
            return ApiResponse(200, history.to_dict())

        return await self._handle(handler)

    async def _handle(self, handler: Callable[[], Awaitable[ApiResponse]]) -> ApiResponse:
        try:
            return await handler()
        except ValidationError as exc:
            return ApiResponse(
                400,
                {
                    "error": "validation_error",
                    "message": "Request validation failed",
                    "details": exc.errors(include_url=False),
                },
            )
        except BookingError as exc:
            if exc.status_code >= 500:
                logger.error("Request failed with %s: %s", exc.code, exc.message)
            body: Dict[str, Any] = {"error": exc.code, "message": exc.message}
            appointment_id = getattr(exc, "appointment_id", None)
            if appointment_id:
                body["appointment_id"] = appointment_id
                body["provider_id"] = exc.provider_id
            return ApiResponse(exc.status_code, body)
