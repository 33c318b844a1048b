"""
actions.py – Operations exposed to the UI layer.

Every AdminActions method returns an ActionResult and never raises for an
expected failure (bad input, wrong secret, wrong phase, missing account,
storage trouble).  Unexpected exceptions propagate.

Login sessions are held here, keyed by an opaque random session id handed
to the caller after the credentials step.  A session is dropped once it
reaches authenticated, after a successful super action, when it is older
than LOGIN_SESSION_TTL, or when a newer login for the same admin replaces
it.
"""

import logging
import secrets
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from account import AdminAccount
from config import APP_NAME, LOGIN_SESSION_TTL
from errors import AdminGateError, InvalidCredentials, InvalidState, StorageError
from login import LoginSession, Phase
from schemas import (
    ChangePinInput,
    CreateAdminInput,
    Disable2FAInput,
    Enable2FAInput,
    LoginInput,
    UpdateProfileInput,
    parse_input,
)
from two_factor import TwoFactorManager

logger = logging.getLogger(APP_NAME)

STORAGE_FAILURE_MESSAGE = "Could not access admin data. Please ensure the data directory is writable."
SESSION_MISSING_MESSAGE = "Login session not found or expired. Please log in again."


@dataclass
class ActionResult:
    success: bool
    message: str
    data: Optional[Dict[str, Any]] = None
    error_kind: Optional[str] = None
    errors: Dict[str, str] = field(default_factory=dict)
    attempts_remaining: Optional[int] = None

    @classmethod
    def ok(cls, message: str, data: Optional[Dict[str, Any]] = None) -> "ActionResult":
        return cls(success=True, message=message, data=data)

    @classmethod
    def failure(cls, exc: AdminGateError, data: Optional[Dict[str, Any]] = None) -> "ActionResult":
        message = STORAGE_FAILURE_MESSAGE if isinstance(exc, StorageError) else exc.message
        return cls(
            success=False,
            message=message,
            data=data,
            error_kind=exc.kind,
            errors=dict(getattr(exc, "errors", {}) or {}),
            attempts_remaining=getattr(exc, "attempts_remaining", None),
        )

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"success": self.success, "message": self.message}
        if self.data is not None:
            result["data"] = self.data
        if self.error_kind is not None:
            result["errorKind"] = self.error_kind
        if self.errors:
            result["errors"] = self.errors
        if self.attempts_remaining is not None:
            result["attemptsRemaining"] = self.attempts_remaining
        return result


class AdminActions:
    """
    Result-returning facade over AdminAccount, TwoFactorManager and
    LoginSession.

    Parameters
    ----------
    accounts : AdminAccount
    two_factor : TwoFactorManager
    session_ttl : float
        Seconds a pending login survives.
    clock : callable
        Monotonic time source (replaced in tests).
    """

    def __init__(
        self,
        accounts: AdminAccount,
        two_factor: TwoFactorManager,
        session_ttl: float = LOGIN_SESSION_TTL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.accounts = accounts
        self.two_factor = two_factor
        self.session_ttl = session_ttl
        self._clock = clock
        self._sessions: Dict[str, Tuple[LoginSession, float]] = {}
        self._sessions_guard = threading.Lock()
        self._auth_listeners: List[Callable[[str], None]] = []

    # ------------------------------------------------------------------
    # Authentication hook
    # ------------------------------------------------------------------

    def on_authenticated(self, listener: Callable[[str], None]) -> Callable[[str], None]:
        """
        Register *listener*; it receives the admin id whenever a login
        completes.  Session cookie or token issuance attaches here.
        """
        self._auth_listeners.append(listener)
        return listener

    def _authenticated(self, admin_id: str) -> ActionResult:
        for listener in list(self._auth_listeners):
            listener(admin_id)
        return ActionResult.ok(
            "Login successful! Redirecting...",
            {"authenticated": True, "requiresPin": False, "adminId": admin_id},
        )

    # ------------------------------------------------------------------
    # Session bookkeeping
    # ------------------------------------------------------------------

    def _prune(self, now: float) -> None:
        """Drop expired sessions.  Call with the sessions guard held."""
        expired = [sid for sid, (_, opened) in self._sessions.items() if now - opened >= self.session_ttl]
        for sid in expired:
            del self._sessions[sid]
        if expired:
            logger.info("Dropped %d expired login session(s)", len(expired))

    @property
    def pending_logins(self) -> int:
        with self._sessions_guard:
            self._prune(self._clock())
            return len(self._sessions)

    def _open_session(self, session: LoginSession) -> str:
        """Register *session*, replacing any earlier pending login for the same admin."""
        session_id = secrets.token_urlsafe(24)
        now = self._clock()
        with self._sessions_guard:
            self._prune(now)
            stale = [sid for sid, (other, _) in self._sessions.items() if other.admin_id == session.admin_id]
            for sid in stale:
                del self._sessions[sid]
            self._sessions[session_id] = (session, now)
        return session_id

    def _get_session(self, session_id: Optional[str]) -> LoginSession:
        with self._sessions_guard:
            self._prune(self._clock())
            entry = self._sessions.get(session_id) if session_id else None
        if entry is None:
            raise InvalidState(SESSION_MISSING_MESSAGE)
        return entry[0]

    def _close_session(self, session_id: str) -> None:
        with self._sessions_guard:
            self._sessions.pop(session_id, None)

    def login_state(self, session_id: str) -> ActionResult:
        """Current LoginAttemptState of a pending login."""
        try:
            session = self._get_session(session_id)
        except AdminGateError as exc:
            return ActionResult.failure(exc)
        return ActionResult.ok("Login in progress.", session.snapshot())

    # ------------------------------------------------------------------
    # Account
    # ------------------------------------------------------------------

    def check_admin_exists(self) -> ActionResult:
        try:
            exists = self.accounts.exists()
        except AdminGateError as exc:
            return ActionResult.failure(exc, {"exists": False})
        return ActionResult.ok(
            "An admin account exists." if exists else "No admin account exists yet.",
            {"exists": exists},
        )

    def create_account(self, data: Mapping[str, Any]) -> ActionResult:
        try:
            form = parse_input(CreateAdminInput, data)
            record = self.accounts.create(
                form.admin_name, form.admin_id, form.email, form.password, form.confirm_password,
            )
        except AdminGateError as exc:
            return ActionResult.failure(exc)
        return ActionResult.ok(
            "Admin account created successfully. You can now log in.",
            {"adminId": record.admin_id},
        )

    def verify_primary_credentials(self, data: Mapping[str, Any]) -> ActionResult:
        """
        The credentials step of a login.  Returns ``authenticated`` when 2FA
        is off; otherwise ``requiresPin`` and the ``sessionId`` to use for
        the PIN step.
        """
        session = LoginSession(self.accounts, self.two_factor)
        try:
            form = parse_input(LoginInput, data)
            phase = session.submit_credentials(form.admin_name, form.admin_id, form.email, form.password)
        except AdminGateError as exc:
            return ActionResult.failure(exc)

        if phase is Phase.AUTHENTICATED:
            return self._authenticated(session.admin_id)

        session_id = self._open_session(session)
        result = ActionResult.ok(
            "Credentials verified. Please enter your 2FA PIN.",
            {
                "authenticated": False,
                "requiresPin": True,
                "adminId": session.admin_id,
                "sessionId": session_id,
                "phase": session.phase.value,
            },
        )
        result.attempts_remaining = session.attempts_remaining
        return result

    def get_profile(self) -> ActionResult:
        try:
            profile = self.accounts.get_profile()
        except AdminGateError as exc:
            return ActionResult.failure(exc)
        return ActionResult.ok("Profile loaded.", profile.model_dump(by_alias=True))

    def update_profile(self, data: Mapping[str, Any]) -> ActionResult:
        try:
            form = parse_input(UpdateProfileInput, data)
            profile = self.accounts.update_profile(
                form.admin_name,
                form.admin_id,
                form.email,
                form.current_password,
                form.new_password,
                form.confirm_new_password,
            )
        except AdminGateError as exc:
            return ActionResult.failure(exc)
        return ActionResult.ok("Profile updated successfully.", profile.model_dump(by_alias=True))

    # ------------------------------------------------------------------
    # Two-factor management
    # ------------------------------------------------------------------

    def enable_2fa(self, admin_id: str, data: Mapping[str, Any]) -> ActionResult:
        try:
            form = parse_input(Enable2FAInput, data)
            self.two_factor.enable(admin_id, form.new_pin, form.confirm_new_pin)
        except AdminGateError as exc:
            return ActionResult.failure(exc)
        return ActionResult.ok("Two-factor authentication enabled.", {"is2FAEnabled": True})

    def change_pin(self, admin_id: str, data: Mapping[str, Any]) -> ActionResult:
        try:
            form = parse_input(ChangePinInput, data)
            self.two_factor.change_pin(admin_id, form.current_pin, form.new_pin, form.confirm_new_pin)
        except AdminGateError as exc:
            return ActionResult.failure(exc)
        return ActionResult.ok("2FA PIN changed successfully.", {"is2FAEnabled": True})

    def disable_2fa(self, admin_id: str, data: Mapping[str, Any]) -> ActionResult:
        try:
            form = parse_input(Disable2FAInput, data)
            self.two_factor.disable(admin_id, form.current_pin_or_password)
        except AdminGateError as exc:
            return ActionResult.failure(exc)
        return ActionResult.ok("Two-factor authentication disabled.", {"is2FAEnabled": False})

    # ------------------------------------------------------------------
    # Login: PIN challenge and lockout bypass
    # ------------------------------------------------------------------

    def verify_pin_for_login(self, session_id: str, pin: str) -> ActionResult:
        try:
            session = self._get_session(session_id)
        except AdminGateError as exc:
            return ActionResult.failure(exc)

        try:
            session.submit_pin(pin)
        except AdminGateError as exc:
            result = ActionResult.failure(exc, {"phase": session.phase.value})
            if result.attempts_remaining is None and not isinstance(exc, StorageError):
                result.attempts_remaining = session.attempts_remaining
            return result

        self._close_session(session_id)
        result = self._authenticated(session.admin_id)
        result.message = "PIN verified. Login successful!"
        return result

    def disable_by_super_action(self, session_id: str, code: str) -> ActionResult:
        try:
            session = self._get_session(session_id)
            admin_id = session.admin_id
            session.submit_super_action(code)
        except InvalidCredentials as exc:
            return ActionResult.failure(exc, {"phase": Phase.LOCKED.value})
        except AdminGateError as exc:
            return ActionResult.failure(exc)

        self._close_session(session_id)
        return ActionResult.ok(
            "2FA disabled via Super Action. You can now log in.",
            {"phase": Phase.CREDENTIALS.value, "adminId": admin_id, "is2FAEnabled": False},
        )
