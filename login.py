"""
login.py – The multi-step admin login protocol.

A LoginSession belongs to one caller and lives only while that caller is
logging in.  Transitions:

    credentials   --credentials ok, 2FA off-->  authenticated
    credentials   --credentials ok, 2FA on-->   pin_challenge  (attempt_count = 0)
    credentials   --credentials wrong-->        credentials
    pin_challenge --PIN ok-->                   authenticated
    pin_challenge --PIN wrong-->                pin_challenge  (attempt_count += 1)
    pin_challenge --5th wrong PIN-->            locked
    locked        --super action ok-->          credentials    (attempt_count = 0, 2FA off)
    locked        --super action wrong-->       locked

Only the PIN step of this session is locked, never the account: a new
session may check the primary credentials again.
"""

import logging
from enum import Enum
from typing import Optional

from account import AdminAccount
from config import APP_NAME
from errors import InvalidCredentials, InvalidState, PinLockedError
from two_factor import TwoFactorManager

logger = logging.getLogger(APP_NAME)

MAX_PIN_ATTEMPTS = 5


class Phase(str, Enum):
    CREDENTIALS = "credentials"
    PIN_CHALLENGE = "pin_challenge"
    LOCKED = "locked"
    AUTHENTICATED = "authenticated"


class LoginSession:
    """
    One caller's progress through the login protocol.

    Attributes
    ----------
    admin_id : str or None
        The account being logged into, once the credentials matched.
    attempt_count : int
        Failed PIN checks in this session.
    phase : Phase
        Current step.
    """

    def __init__(self, accounts: AdminAccount, two_factor: TwoFactorManager) -> None:
        self.accounts = accounts
        self.two_factor = two_factor
        self.admin_id: Optional[str] = None
        self.attempt_count = 0
        self.phase = Phase.CREDENTIALS

    @property
    def attempts_remaining(self) -> int:
        return max(MAX_PIN_ATTEMPTS - self.attempt_count, 0)

    @property
    def authenticated(self) -> bool:
        return self.phase is Phase.AUTHENTICATED

    def _expect(self, phase: Phase, message: str) -> None:
        if self.phase is not phase:
            raise InvalidState(message)

    def snapshot(self) -> dict:
        return {
            "adminId": self.admin_id,
            "attemptCount": self.attempt_count,
            "phase": self.phase.value,
        }

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def submit_credentials(self, admin_name: str, admin_id: str, email: str, password: str) -> Phase:
        """
        Check the primary credentials and advance to pin_challenge or
        authenticated.  On failure the phase stays credentials.
        """
        self._expect(Phase.CREDENTIALS, "Credentials have already been accepted for this login.")
        self.attempt_count = 0
        record = self.accounts.verify_primary_credentials(admin_name, admin_id, email, password)
        self.admin_id = record.admin_id

        if record.is_2fa_enabled:
            self.phase = Phase.PIN_CHALLENGE
            logger.info("Admin %s passed primary credentials; PIN required", record.admin_id)
        else:
            self.phase = Phase.AUTHENTICATED
            logger.info("Admin %s authenticated", record.admin_id)
        return self.phase

    def submit_pin(self, pin: str) -> Phase:
        """
        Answer the PIN challenge.

        A malformed PIN raises ValidationError and is not counted.  A wrong
        PIN raises InvalidCredentials with the attempts left; the last
        allowed failure raises PinLockedError and locks the session.
        """
        if self.phase is Phase.LOCKED:
            raise InvalidState("PIN entry is locked. Use the Super Action code to continue.")
        self._expect(Phase.PIN_CHALLENGE, "No PIN challenge is pending for this login.")

        if self.two_factor.verify_pin(self.admin_id, pin):
            self.phase = Phase.AUTHENTICATED
            logger.info("Admin %s authenticated with PIN", self.admin_id)
            return self.phase

        self.attempt_count += 1
        if self.attempt_count >= MAX_PIN_ATTEMPTS:
            self.phase = Phase.LOCKED
            logger.warning("PIN entry locked for admin %s after %d failures", self.admin_id, self.attempt_count)
            raise PinLockedError()

        remaining = self.attempts_remaining
        logger.warning("Incorrect PIN for admin %s; %d attempts remaining", self.admin_id, remaining)
        raise InvalidCredentials(f"Incorrect PIN. Attempts remaining: {remaining}", attempts_remaining=remaining)

    def submit_super_action(self, code: str) -> Phase:
        """
        From locked: disable 2FA with the super-action code and return to
        credentials.  A wrong code leaves the session locked.  If 2FA was
        already turned off elsewhere there is nothing left to bypass and the
        session returns to credentials as well.
        """
        self._expect(Phase.LOCKED, "Super Action is only available after PIN entry is locked.")
        try:
            self.two_factor.disable_by_super_action(self.admin_id, code)
        except InvalidState:
            logger.info("2FA for admin %s was already disabled; resetting locked login", self.admin_id)
        else:
            logger.info("Login session for admin %s reset to credentials after super action", self.admin_id)
        self.phase = Phase.CREDENTIALS
        self.attempt_count = 0
        self.admin_id = None
        return self.phase
