from __future__ import annotations

from typing import Mapping


class CourtDeskError(Exception):
    """Base class for errors raised by the booking workflow."""


class InvalidFieldError(CourtDeskError, ValueError):
    pass


class TimeFormatError(CourtDeskError, ValueError):
    """Slot input cannot be normalized. Re-selecting the slot is the only fix."""


class AvailabilityFetchError(CourtDeskError):
    """The availability source failed. Recoverable: the form stays usable."""


class ValidationError(CourtDeskError):
    def __init__(self, errors: Mapping[str, str]) -> None:
        self.errors = dict(errors)
        super().__init__(next(iter(self.errors.values()), "draft is not valid"))


class ConcurrentSubmissionError(CourtDeskError):
    pass


class ReservationConflictError(CourtDeskError):
    """The collaborator rejected the slot as no longer available."""

    def __init__(self, message: str, *, code: str | None = None) -> None:
        self.code = code
        super().__init__(message)


class UnknownSubmissionError(CourtDeskError):
    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)
