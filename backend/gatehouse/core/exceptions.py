"""
Error taxonomy for the booking and visitor pass engine.

Business outcomes the caller can act on (bad input, wrong building, unknown
id, a full slot) are raised as subclasses of GatehouseError and translated
to HTTP responses by a single handler in gatehouse.main. Store failures that
are worth retrying surface as TransientError.

Verification outcomes such as "already verified" or "expired" are NOT
errors; they are returned as PassVerification results.
"""

from typing import Optional


class GatehouseError(Exception):
    status_code: int = 400
    code: str = "error"

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail or self.__class__.__doc__ or self.code
        super().__init__(self.detail)


class ValidationError(GatehouseError):
    """Missing or malformed input."""

    status_code = 400
    code = "validation_error"


class Forbidden(GatehouseError):
    """Access denied."""

    status_code = 403
    code = "forbidden"


class NotFound(GatehouseError):
    """Not found."""

    status_code = 404
    code = "not_found"


class Conflict(GatehouseError):
    """The request conflicts with the current state."""

    status_code = 409
    code = "conflict"


class SlotFull(Conflict):
    code = "slot_full"

    def __init__(self, slot_name: str, date, alternatives: Optional[list[str]] = None):
        self.slot_name = slot_name
        self.date = date
        self.alternatives = alternatives or []
        super().__init__(
            f'All "{slot_name}" slots are booked for {date}. '
            "Please choose another date or time."
        )


class DuplicateBooking(Conflict):
    """You already have a booking for this amenity on this date."""

    code = "duplicate_booking"


class AlreadyCancelled(Conflict):
    """Already cancelled."""

    code = "already_cancelled"


class NotPending(Conflict):
    code = "not_pending"

    def __init__(self, current_status: str):
        self.current_status = current_status
        super().__init__(f"Booking is already {current_status}")


class BookingClosed(Conflict):
    """Rejected bookings cannot be changed."""

    code = "booking_closed"


class PassNotActive(Conflict):
    code = "pass_not_active"

    def __init__(self, current_status: str):
        self.current_status = current_status
        super().__init__(f"Pass is {current_status}")


class DuplicatePassCode(Conflict):
    """A visitor pass with this code already exists."""

    code = "duplicate_pass_code"


class TransientError(GatehouseError):
    """Temporary storage failure, please retry."""

    status_code = 503
    code = "transient_error"
    retry_after_seconds = 1
