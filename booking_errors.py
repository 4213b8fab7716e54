"""
Error types raised while logging in and booking a slot.

Every error carries the step it failed in so the failure log and the
screenshot can be matched to the point in the flow where the run stopped.
"""

from typing import Optional


class ReservationError(Exception):
    """Base class for all errors that end a booking run"""

    def __init__(self, message: str, step: str = "", elapsed: Optional[float] = None,
                 url: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.step = step
        self.elapsed = elapsed
        self.url = url

    def __str__(self) -> str:
        details = []
        if self.step:
            details.append(f"step={self.step}")
        if self.elapsed is not None:
            details.append(f"elapsed={self.elapsed:.1f}s")
        if self.url:
            details.append(f"url={self.url}")
        if not details:
            return self.message
        return f"{self.message} ({', '.join(details)})"


class AuthError(ReservationError):
    """A login step timed out or its element never appeared"""


class BookingError(ReservationError):
    """The booking flow could not be completed"""


class SlotNotFoundError(BookingError):
    """The requested start time was not among the rendered slots"""


class SecretUnavailableError(ReservationError):
    """A credential could not be retrieved from the secret source"""
