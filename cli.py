"""
cli.py – Interactive command-line front end.

This module contains AdminConsole, the top-level class that wires all
subsystems together and drives them from a terminal.

Responsibilities:
  - Create AppConfig, RecordStore, SecretHasher, AdminAccount,
    TwoFactorManager and AdminActions in the correct dependency order.
  - Parse the sub-command and prompt for the values it needs (secrets are
    read without echo).
  - Walk the login protocol: credentials, PIN challenge, and the super
    action once PIN entry is locked.
  - Print every ActionResult: its message and any field errors.

Commands
--------
status, create, login, profile, update-profile, enable-2fa, change-pin,
disable-2fa, set-super-code
"""

import argparse
import getpass
import logging
from typing import Callable, Optional

from account import AdminAccount
from actions import ActionResult, AdminActions
from config import APP_NAME, APP_VERSION, AppConfig
from crypto import SecretHasher
from storage import RecordStore
from two_factor import TwoFactorManager

logger = logging.getLogger(APP_NAME)


class AdminConsole:
    """
    Terminal UI for the admin subsystem.

    Parameters
    ----------
    config : AppConfig or None
        Built from ``--data-dir`` (or the defaults) when omitted.
    prompt, secret_prompt, out : callables
        Replace input(), getpass.getpass() and print() (used by tests).
    """

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        prompt: Callable[[str], str] = input,
        secret_prompt: Callable[[str], str] = getpass.getpass,
        out: Callable[[str], None] = print,
    ) -> None:
        self.config = config
        self.prompt = prompt
        self.secret_prompt = secret_prompt
        self.out = out
        self.actions: Optional[AdminActions] = None

    # ------------------------------------------------------------------
    # Wiring
    # ------------------------------------------------------------------

    def _wire(self, data_dir: Optional[str]) -> None:
        if self.config is None:
            self.config = AppConfig(data_dir)
        cfg = self.config
        self.hasher = SecretHasher(cfg.kdf_iterations)
        self.store = RecordStore(backup_dir=cfg.backup_dir, strict=cfg.strict_store)
        self.accounts = AdminAccount(self.store, cfg.admin_path, self.hasher)
        self.two_factor = TwoFactorManager(self.accounts, lambda: cfg.get("super_action_hash"))
        self.actions = AdminActions(self.accounts, self.two_factor)

    @staticmethod
    def build_parser() -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(prog="admingate", description="Administrator account and 2FA management")
        parser.add_argument("--version", action="version", version=f"%(prog)s {APP_VERSION}")
        parser.add_argument("--data-dir", help="directory holding admin.json and config.json")
        sub = parser.add_subparsers(dest="command", required=True)
        sub.add_parser("status", help="show whether an admin account exists")
        sub.add_parser("create", help="create the admin account")
        sub.add_parser("login", help="log in (credentials, then PIN if 2FA is on)")
        sub.add_parser("profile", help="show the admin profile")
        sub.add_parser("update-profile", help="change name, email or password")
        sub.add_parser("enable-2fa", help="turn on PIN two-factor authentication")
        sub.add_parser("change-pin", help="replace the 2FA PIN")
        sub.add_parser("disable-2fa", help="turn off two-factor authentication")
        sub.add_parser("set-super-code", help="set the emergency super-action code")
        return parser

    def run(self, argv=None) -> int:
        args = self.build_parser().parse_args(argv)
        self._wire(args.data_dir)
        handler = getattr(self, "cmd_" + args.command.replace("-", "_"))
        try:
            return handler()
        except (EOFError, KeyboardInterrupt):
            self.out("\nCancelled.")
            return 1

    # ------------------------------------------------------------------
    # Output helpers
    # ------------------------------------------------------------------

    def _report(self, result: ActionResult) -> int:
        self.out(result.message)
        for field, message in result.errors.items():
            self.out(f"  {field}: {message}")
        return 0 if result.success else 1

    def _ask(self, label: str, default: Optional[str] = None) -> str:
        suffix = f" [{default}]" if default else ""
        value = self.prompt(f"{label}{suffix}: ").strip()
        return value or (default or "")

    # ------------------------------------------------------------------
    # Login flow
    # ------------------------------------------------------------------

    def _authenticate(self) -> Optional[str]:
        """
        Run the full login protocol.

        Returns the admin id once authenticated; None when the login failed
        or ended in a super action (which requires logging in again).
        """
        result = self.actions.verify_primary_credentials({
            "adminName": self._ask("Admin name"),
            "adminId": self._ask("Admin ID"),
            "email": self._ask("Email"),
            "password": self.secret_prompt("Password: "),
        })
        if not result.success:
            self._report(result)
            return None
        if result.data["authenticated"]:
            self.out(result.message)
            return result.data["adminId"]

        session_id = result.data["sessionId"]
        self.out(f"{result.message} Attempts remaining: {result.attempts_remaining}")
        while True:
            pin = self.secret_prompt("PIN: ")
            if not pin:
                self.out("Login cancelled.")
                return None
            result = self.actions.verify_pin_for_login(session_id, pin)
            self._report(result)
            if result.success:
                return result.data["adminId"]
            if result.data and result.data.get("phase") == "locked":
                self._super_action(session_id)
                return None

    def _super_action(self, session_id: str) -> None:
        self.out("PIN entry is locked. Enter the Super Action code to disable 2FA, or leave blank to quit.")
        while True:
            code = self.secret_prompt("Super Action code: ")
            if not code.strip():
                return
            result = self.actions.disable_by_super_action(session_id, code)
            self._report(result)
            if result.success:
                return

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def cmd_status(self) -> int:
        result = self.actions.check_admin_exists()
        if result.success and not result.data["exists"]:
            self.out("No admin account exists yet. Run 'admingate create'.")
            return 0
        return self._report(result)

    def cmd_create(self) -> int:
        return self._report(self.actions.create_account({
            "adminName": self._ask("Admin name"),
            "adminId": self._ask("Admin ID"),
            "email": self._ask("Email"),
            "password": self.secret_prompt("Password: "),
            "confirmPassword": self.secret_prompt("Confirm password: "),
        }))

    def cmd_login(self) -> int:
        return 0 if self._authenticate() else 1

    def cmd_profile(self) -> int:
        result = self.actions.get_profile()
        if not result.success:
            return self._report(result)
        profile = result.data
        self.out(f"Admin name: {profile['adminName']}")
        self.out(f"Admin ID:   {profile['adminId']}")
        self.out(f"Email:      {profile['email']}")
        self.out(f"2FA:        {'enabled' if profile['is2FAEnabled'] else 'disabled'}")
        return 0

    def cmd_update_profile(self) -> int:
        admin_id = self._authenticate()
        if not admin_id:
            return 1
        current = self.actions.get_profile()
        if not current.success:
            return self._report(current)
        payload = {
            "adminName": self._ask("Admin name", current.data["adminName"]),
            "adminId": admin_id,
            "email": self._ask("Email", current.data["email"]),
        }
        if self._ask("Change password? (y/N)").lower() in ("y", "yes"):
            payload["currentPassword"] = self.secret_prompt("Current password: ")
            payload["newPassword"] = self.secret_prompt("New password: ")
            payload["confirmNewPassword"] = self.secret_prompt("Confirm new password: ")
        return self._report(self.actions.update_profile(payload))

    def cmd_enable_2fa(self) -> int:
        admin_id = self._authenticate()
        if not admin_id:
            return 1
        return self._report(self.actions.enable_2fa(admin_id, {
            "newPin": self.secret_prompt("New 6-digit PIN: "),
            "confirmNewPin": self.secret_prompt("Confirm PIN: "),
        }))

    def cmd_change_pin(self) -> int:
        admin_id = self._authenticate()
        if not admin_id:
            return 1
        return self._report(self.actions.change_pin(admin_id, {
            "currentPin": self.secret_prompt("Current PIN: "),
            "newPin": self.secret_prompt("New 6-digit PIN: "),
            "confirmNewPin": self.secret_prompt("Confirm new PIN: "),
        }))

    def cmd_disable_2fa(self) -> int:
        admin_id = self._authenticate()
        if not admin_id:
            return 1
        return self._report(self.actions.disable_2fa(admin_id, {
            "currentPinOrPassword": self.secret_prompt("Current PIN or password: "),
        }))

    def cmd_set_super_code(self) -> int:
        """
        Store the hash of a new super-action code in config.json.

        Once an admin exists the full login (PIN included) comes first, and
        replacing a configured code also needs the current one.
        """
        exists = self.actions.check_admin_exists()
        if not exists.success:
            return self._report(exists)
        if exists.data["exists"] and not self._authenticate():
            return 1
        stored = self.config.get("super_action_hash")
        if stored and not self.hasher.verify(self.secret_prompt("Current Super Action code: "), stored):
            logger.warning("Super Action code change refused: current code mismatch")
            self.out("Incorrect current Super Action code.")
            return 1

        code = self.secret_prompt("New Super Action code: ")
        if not code.strip():
            self.out("Super Action code cannot be empty.")
            return 1
        if self.secret_prompt("Confirm Super Action code: ") != code:
            self.out("Codes did not match.")
            return 1
        self.config.set("super_action_hash", self.hasher.hash(code))
        self.config.save()
        logger.info("Super Action code updated")
        self.out("Super Action code saved. Keep it somewhere safe and offline.")
        return 0
