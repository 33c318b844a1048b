"""
account.py – The singleton administrator record.

AdminAccount owns admin.json, a collection that holds zero or one
AdminRecord.  It is the only code that creates the record, and every
read-modify-write of it happens under the RecordStore lock for that path.

Operations:
  - exists / create (refused once a record exists)
  - verify_primary_credentials (name, id, email and password must all match)
  - get_profile / update_profile (adminId is immutable; a password change
    needs the current password)

Secrets are stored as SecretHasher hashes.  Values left by the plain-text
predecessor still verify and are re-hashed the first time they match.
"""

import logging
from typing import Callable, List, Optional

from config import APP_NAME
from crypto import SecretHasher
from errors import AlreadyExists, InvalidCredentials, NotFound, StorageError, ValidationError
from schemas import AdminProfile, AdminRecord, CreateAdminInput, LoginInput, UpdateProfileInput, parse_input
from storage import RecordStore

logger = logging.getLogger(APP_NAME)

INVALID_CREDENTIALS_MESSAGE = "Invalid credentials. Please check your details and try again."


class AdminAccount:
    """
    Lifecycle of the single administrator.

    Parameters
    ----------
    store : RecordStore
        Persistence for the admin collection.
    path : str
        Location of admin.json.
    hasher : SecretHasher
        Hashes and verifies the password and PIN.
    """

    def __init__(self, store: RecordStore, path: str, hasher: SecretHasher) -> None:
        self.store = store
        self.path = path
        self.hasher = hasher
        self._listeners: List[Callable[[], None]] = []

    # ------------------------------------------------------------------
    # Single-slot access
    # ------------------------------------------------------------------

    def locked(self):
        """The lock every read-modify-write of the admin record must hold."""
        return self.store.lock(self.path)

    def _read(self) -> Optional[AdminRecord]:
        records = self.store.load(self.path, AdminRecord)
        if len(records) > 1:
            logger.error("%s holds %d admin records; expected at most one", self.path, len(records))
            raise StorageError("Stored admin data is inconsistent.")
        return records[0] if records else None

    def _write(self, record: Optional[AdminRecord]) -> None:
        self.store.save(self.path, [record] if record is not None else [])

    def find(self, admin_id: str) -> AdminRecord:
        """Return the record if *admin_id* names it, else raise NotFound."""
        record = self._read()
        if record is None or record.admin_id != admin_id:
            raise NotFound("Admin account not found.")
        return record

    def replace(self, record: AdminRecord) -> None:
        """Persist *record* and notify change listeners."""
        with self.locked():
            self._write(record)
        self._notify()

    # ------------------------------------------------------------------
    # Change signal
    # ------------------------------------------------------------------

    def on_change(self, listener: Callable[[], None]) -> Callable[[], None]:
        """
        Register *listener* to be called after every successful mutation
        (e.g. to invalidate cached admin-settings pages).
        """
        self._listeners.append(listener)
        return listener

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                logger.exception("Admin change listener %r failed", listener)

    # ------------------------------------------------------------------
    # Secret checks
    # ------------------------------------------------------------------

    def check_secret(self, candidate: Optional[str], stored: Optional[str]) -> bool:
        if not candidate or not stored:
            return False
        return self.hasher.verify(candidate, stored)

    def upgrade_secret(self, record: AdminRecord, field: str, secret: str) -> AdminRecord:
        """
        Re-hash *field* of *record* if it is plain text or uses an old cost.

        The stored value changes but the profile does not, so change
        listeners are not notified.  Call with the record lock held.
        """
        stored = getattr(record, field)
        if stored is None or not self.hasher.needs_rehash(stored):
            return record
        record = record.model_copy(update={field: self.hasher.hash(secret)})
        self._write(record)
        logger.info("Upgraded stored %s hash for admin %s", field, record.admin_id)
        return record

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def exists(self) -> bool:
        return self._read() is not None

    def create(
        self,
        admin_name: str,
        admin_id: str,
        email: str,
        password: str,
        confirm_password: str,
    ) -> AdminRecord:
        """
        Create the administrator.

        Raises
        ------
        ValidationError
            Malformed field or password confirmation mismatch.
        AlreadyExists
            An administrator already exists.
        """
        form = parse_input(CreateAdminInput, {
            "adminName": admin_name,
            "adminId": admin_id,
            "email": email,
            "password": password,
            "confirmPassword": confirm_password,
        })

        with self.locked():
            if self._read() is not None:
                logger.warning("Refused to create a second admin account")
                raise AlreadyExists("An admin account already exists. Cannot create another.")
            record = AdminRecord(
                admin_name=form.admin_name,
                admin_id=form.admin_id,
                email=form.email,
                password=self.hasher.hash(form.password),
                is_2fa_enabled=False,
                pin=None,
            )
            self._write(record)

        logger.info("Admin account %s created", record.admin_id)
        self._notify()
        return record

    def verify_primary_credentials(
        self,
        admin_name: str,
        admin_id: str,
        email: str,
        password: str,
    ) -> AdminRecord:
        """
        Return the record when all four values match it exactly.

        A mismatch on any field, or a missing account, raises the same
        InvalidCredentials so the caller cannot tell which field failed.
        """
        form = parse_input(LoginInput, {
            "adminName": admin_name,
            "adminId": admin_id,
            "email": email,
            "password": password,
        })

        with self.locked():
            record = self._read()
            if record is None:
                logger.warning("Login attempted but no admin account exists")
                raise InvalidCredentials(INVALID_CREDENTIALS_MESSAGE)

            # Always run the password check so timing does not reveal which field failed.
            password_ok = self.check_secret(form.password, record.password)
            identity_ok = (
                record.admin_name == form.admin_name
                and record.admin_id == form.admin_id
                and record.email == form.email
            )
            if not (password_ok and identity_ok):
                logger.warning("Primary credential check failed")
                raise InvalidCredentials(INVALID_CREDENTIALS_MESSAGE)

            record = self.upgrade_secret(record, "password", form.password)

        logger.info("Primary credentials verified for admin %s", record.admin_id)
        return record

    def get_profile(self) -> AdminProfile:
        record = self._read()
        if record is None:
            raise NotFound("Admin account not found.")
        return record.to_profile()

    def update_profile(
        self,
        admin_name: str,
        admin_id: str,
        email: str,
        current_password: Optional[str] = None,
        new_password: Optional[str] = None,
        confirm_new_password: Optional[str] = None,
    ) -> AdminProfile:
        """
        Update name, email and optionally the password.

        *admin_id* is accepted but never applied.  Changing the password
        requires *current_password* to match the stored one.

        Raises
        ------
        ValidationError
            Malformed field, weak new password or confirmation mismatch.
        InvalidCredentials
            *current_password* is wrong.
        NotFound
            No administrator exists.
        """
        form = parse_input(UpdateProfileInput, {
            "adminName": admin_name,
            "adminId": admin_id,
            "email": email,
            "currentPassword": current_password,
            "newPassword": new_password,
            "confirmNewPassword": confirm_new_password,
        })
        problems = form.password_change_errors()
        if problems:
            raise ValidationError("Invalid input. Please check the form details.", problems)

        with self.locked():
            record = self._read()
            if record is None:
                raise NotFound("Admin account not found.")
            if form.admin_id != record.admin_id:
                logger.warning("Ignoring adminId change request; adminId is immutable")

            updates = {"admin_name": form.admin_name, "email": form.email}
            if form.wants_password_change:
                if not self.check_secret(form.current_password, record.password):
                    logger.warning("Password change refused: current password mismatch")
                    raise InvalidCredentials("Incorrect current password.")
                updates["password"] = self.hasher.hash(form.new_password)

            record = record.model_copy(update=updates)
            self._write(record)

        logger.info(
            "Profile updated for admin %s%s",
            record.admin_id,
            " (password changed)" if "password" in updates else "",
        )
        self._notify()
        return record.to_profile()
