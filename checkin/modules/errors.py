"""Exception types shared by the check-in modules."""

from typing import Dict, Optional


class CheckinError(Exception):
    """Base class for application errors."""


class ValidationError(CheckinError):
    """Raised when attendee-supplied input is malformed."""

    def __init__(self, errors: Dict[str, str], message: Optional[str] = None):
        self.errors = dict(errors)
        super().__init__(message or '; '.join(self.errors.values()))


class StoreError(CheckinError):
    """Raised when the participant store cannot read or write a record."""


class NotificationError(CheckinError):
    """Raised when the QR code email could not be delivered."""
