from __future__ import annotations


class BookingError(ValueError):
    """Base class for request-level booking failures.

    ``code`` is a stable identifier the HTTP and MCP surfaces report to callers.
    """

    code = "booking_error"


class SlotBlockedError(BookingError):
    code = "slot_blocked"


class SlotFullError(BookingError):
    code = "slot_full"


class InvalidSlotError(BookingError):
    code = "invalid_slot"


class InvalidTransitionError(BookingError):
    code = "invalid_transition"


class PastDateWriteError(BookingError):
    code = "past_date_write"


class DuplicateBookingError(BookingError):
    code = "duplicate_booking"


class BookingNotFoundError(BookingError):
    code = "not_found"


class PermissionDeniedError(BookingError):
    code = "permission_denied"


class BagNumberRequiredError(BookingError):
    code = "bag_number_required"


class ConflictError(BookingError):
    """A concurrent write took the capacity this commit was counting on."""

    code = "conflict"


class BookingStorageError(RuntimeError):
    pass
