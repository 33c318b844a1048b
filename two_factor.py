"""
two_factor.py – PIN-based second factor for the administrator.

TwoFactorManager is a two-state machine over AdminRecord.is_2fa_enabled:

    Disabled --enable-->                  Enabled
    Enabled  --change_pin-->              Enabled
    Enabled  --disable-->                 Disabled   (PIN or password as proof)
    Enabled  --disable_by_super_action--> Disabled   (out-of-band code as proof)

The super-action code is never stored; only its hash lives in config.json
under ``super_action_hash``.  While no hash is configured the bypass always
fails.
"""

import logging
from typing import Callable, Optional, Union

from account import AdminAccount
from config import APP_NAME
from errors import InvalidCredentials, InvalidState
from schemas import (
    AdminRecord,
    ChangePinInput,
    Disable2FAInput,
    Enable2FAInput,
    SuperActionInput,
    VerifyPinInput,
    parse_input,
)

logger = logging.getLogger(APP_NAME)

SuperActionSource = Union[None, str, Callable[[], Optional[str]]]


class TwoFactorManager:
    """
    Enrollment, rotation and removal of the admin's 6-digit PIN.

    Parameters
    ----------
    accounts : AdminAccount
        Owner of the admin record.
    super_action_hash : str, callable or None
        The hashed super-action code, or a callable returning it at call
        time (so a code set while the process runs takes effect).
    """

    def __init__(self, accounts: AdminAccount, super_action_hash: SuperActionSource = None) -> None:
        self.accounts = accounts
        self._super_action_hash = super_action_hash

    def _configured_super_hash(self) -> Optional[str]:
        if callable(self._super_action_hash):
            return self._super_action_hash()
        return self._super_action_hash

    @staticmethod
    def _require_enabled(record: AdminRecord) -> None:
        if not record.is_2fa_enabled:
            raise InvalidState("Two-factor authentication is not enabled.")

    def _disabled(self, record: AdminRecord) -> AdminRecord:
        return record.model_copy(update={"is_2fa_enabled": False, "pin": None})

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def is_enabled(self, admin_id: str) -> bool:
        return self.accounts.find(admin_id).is_2fa_enabled

    def verify_pin(self, admin_id: str, pin: str) -> bool:
        """Check *pin* against the stored PIN (2FA must be enabled)."""
        parse_input(VerifyPinInput, {"pin": pin})
        with self.accounts.locked():
            record = self.accounts.find(admin_id)
            self._require_enabled(record)
            if not self.accounts.check_secret(pin, record.pin):
                return False
            self.accounts.upgrade_secret(record, "pin", pin)
        return True

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def enable(self, admin_id: str, new_pin: str, confirm_new_pin: str) -> None:
        """
        Disabled -> Enabled.

        Raises ValidationError for a malformed or unconfirmed PIN and
        InvalidState when 2FA is already on.
        """
        form = parse_input(Enable2FAInput, {"newPin": new_pin, "confirmNewPin": confirm_new_pin})
        with self.accounts.locked():
            record = self.accounts.find(admin_id)
            if record.is_2fa_enabled:
                raise InvalidState("Two-factor authentication is already enabled.")
            self.accounts.replace(record.model_copy(update={
                "is_2fa_enabled": True,
                "pin": self.accounts.hasher.hash(form.new_pin),
            }))
        logger.info("2FA enabled for admin %s", admin_id)

    def change_pin(self, admin_id: str, current_pin: str, new_pin: str, confirm_new_pin: str) -> None:
        """
        Enabled -> Enabled with a new PIN.

        Raises InvalidCredentials when *current_pin* is wrong.
        """
        form = parse_input(ChangePinInput, {
            "currentPin": current_pin,
            "newPin": new_pin,
            "confirmNewPin": confirm_new_pin,
        })
        with self.accounts.locked():
            record = self.accounts.find(admin_id)
            self._require_enabled(record)
            if not self.accounts.check_secret(form.current_pin, record.pin):
                logger.warning("PIN change refused for admin %s: current PIN mismatch", admin_id)
                raise InvalidCredentials("Incorrect current PIN.")
            self.accounts.replace(record.model_copy(update={
                "pin": self.accounts.hasher.hash(form.new_pin),
            }))
        logger.info("2FA PIN changed for admin %s", admin_id)

    def disable(self, admin_id: str, current_pin_or_password: str) -> None:
        """
        Enabled -> Disabled.  Either the current PIN or the current
        password is accepted as proof.
        """
        form = parse_input(Disable2FAInput, {"currentPinOrPassword": current_pin_or_password})
        secret = form.current_pin_or_password
        with self.accounts.locked():
            record = self.accounts.find(admin_id)
            self._require_enabled(record)
            matches_pin = self.accounts.check_secret(secret, record.pin)
            matches_password = self.accounts.check_secret(secret, record.password)
            if not (matches_pin or matches_password):
                logger.warning("2FA disable refused for admin %s: proof mismatch", admin_id)
                raise InvalidCredentials("Incorrect PIN or password.")
            self.accounts.replace(self._disabled(record))
        logger.info("2FA disabled for admin %s", admin_id)

    def disable_by_super_action(self, admin_id: str, super_action_code: str) -> None:
        """
        Enabled -> Disabled using the out-of-band super-action code.

        Raises InvalidCredentials when the code does not match or no code
        is configured.
        """
        form = parse_input(SuperActionInput, {"code": super_action_code})
        with self.accounts.locked():
            record = self.accounts.find(admin_id)
            self._require_enabled(record)
            stored = self._configured_super_hash()
            if not stored:
                logger.warning("Super action attempted but no super-action code is configured")
                raise InvalidCredentials("Invalid Super Action code.")
            if not self.accounts.hasher.verify(form.code, stored):
                logger.warning("Super action refused for admin %s: code mismatch", admin_id)
                raise InvalidCredentials("Invalid Super Action code.")
            self.accounts.replace(self._disabled(record))
        logger.warning("2FA disabled for admin %s via super action", admin_id)
