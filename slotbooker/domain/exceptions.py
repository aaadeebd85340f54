"""
Domain-specific exception hierarchy for the booking engine.

Every error carries a stable ``code`` and an HTTP-like ``status_code`` so that
host surfaces can branch on the kind of failure instead of parsing messages.
"""


class BookingError(Exception):
    """Base class for all application-level errors."""

    code = "booking_error"
    status_code = 400

    def __init__(self, message: str | None = None):
        # Fall back to the first docstring line as a readable default message
        self.message = message or (type(self).__doc__ or "").strip().splitlines()[0]
        super().__init__(self.message)


class NotFoundError(BookingError):
    """A provider, requester or appointment does not exist."""

    code = "not_found"
    status_code = 404


class InPastError(BookingError):
    """The requested date and time is not strictly in the future."""

    code = "in_past"
    status_code = 422


class ProviderUnavailableError(BookingError):
    """No availability window of the provider covers the requested time."""

    code = "provider_unavailable"
    status_code = 409


class SlotTakenError(BookingError):
    """The requested interval overlaps an existing booking."""

    code = "slot_taken"
    status_code = 409


class NotAuthorizedError(BookingError):
    """The caller may not act on this appointment."""

    code = "not_authorized"
    status_code = 403


class TerminalStateError(BookingError):
    """The appointment is cancelled or completed and cannot change this way."""

    code = "terminal_state"
    status_code = 409


class InvalidPatchError(BookingError):
    """The update request is empty or combines incompatible changes."""

    code = "invalid_patch"
    status_code = 400


class InvalidTimeFormatError(BookingError, ValueError):
    """A time-of-day string could not be parsed."""

    code = "invalid_time_format"
    status_code = 400


class OutOfRangeTimeError(BookingError, ValueError):
    """A time-of-day value falls outside a single day."""

    code = "out_of_range_time"
    status_code = 400


class StoreError(BookingError):
    """A store adapter failed to read or write a document."""

    code = "store_error"
    status_code = 502


class StoreUnavailableError(StoreError):
    """A store adapter did not answer within its timeout."""

    code = "store_unavailable"
    status_code = 503


class LedgerInconsistencyError(BookingError):
    """
    The appointment record and the provider ledger disagree.

    Raised when the second half of a two-document write failed and the first
    half could not be compensated either. Needs operator remediation.
    """

    code = "ledger_inconsistency"
    status_code = 500

    def __init__(self, message: str, *, appointment_id: str, provider_id: str):
        super().__init__(message)
        self.appointment_id = appointment_id
        self.provider_id = provider_id


class NotificationError(BookingError):
    """Raised by notifier adapters when a message could not be delivered."""

    code = "notification_error"
    status_code = 502
