"""
errors.py – Failure taxonomy shared by every admin operation.

Core components (AdminAccount, TwoFactorManager, LoginSession, RecordStore)
raise these exceptions; AdminActions turns them into structured results.
Each class carries a stable ``kind`` string that the UI layer can switch on.
"""

from typing import Dict, Optional


class AdminGateError(Exception):
    """Base class for expected failures."""

    kind = "Error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(AdminGateError):
    """
    Malformed input.

    Attributes
    ----------
    errors : dict
        Maps a form field name (camelCase, as the UI sends it) to the first
        message reported for that field.
    """

    kind = "ValidationError"

    def __init__(self, message: str, errors: Optional[Dict[str, str]] = None) -> None:
        super().__init__(message)
        self.errors: Dict[str, str] = dict(errors or {})

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        return cls(message, {field: message})


class AlreadyExists(AdminGateError):
    kind = "AlreadyExists"


class NotFound(AdminGateError):
    kind = "NotFound"


class InvalidCredentials(AdminGateError):
    """A password, PIN or super-action code did not match."""

    kind = "InvalidCredentials"

    def __init__(self, message: str, attempts_remaining: Optional[int] = None) -> None:
        super().__init__(message)
        self.attempts_remaining = attempts_remaining


class PinLockedError(InvalidCredentials):
    """The last allowed PIN attempt of a login session failed."""

    def __init__(self, message: str = "Too many incorrect PIN attempts. 2FA locked.") -> None:
        super().__init__(message, attempts_remaining=0)


class InvalidState(AdminGateError):
    """The operation is not allowed from the current 2FA or login phase."""

    kind = "InvalidState"


class StorageError(AdminGateError):
    """Reading or writing a data file failed for a reason other than absence."""

    kind = "StorageError"
