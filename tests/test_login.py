"""Tests for the LoginSession state machine."""

import pytest

from conftest import SUPER_CODE
from errors import InvalidCredentials, InvalidState, PinLockedError, ValidationError
from login import MAX_PIN_ATTEMPTS, LoginSession, Phase

CREDENTIALS = ("A", "id1", "a@x.com", "Secret123!")


@pytest.fixture
def session(accounts, two_factor):
    return LoginSession(accounts, two_factor)


def fail_pin(session, times):
    for _ in range(times):
        with pytest.raises(InvalidCredentials):
            session.submit_pin("000000")


def test_max_attempts_is_five():
    assert MAX_PIN_ATTEMPTS == 5


def test_starts_at_credentials(session):
    assert session.snapshot() == {"adminId": None, "attemptCount": 0, "phase": "credentials"}


def test_without_2fa_authenticates_directly(admin, session):
    assert session.submit_credentials(*CREDENTIALS) is Phase.AUTHENTICATED
    assert session.authenticated is True
    assert session.admin_id == "id1"


def test_wrong_credentials_stay_at_credentials(admin, session):
    with pytest.raises(InvalidCredentials):
        session.submit_credentials("A", "id1", "a@x.com", "wrong")
    assert session.phase is Phase.CREDENTIALS
    assert session.submit_credentials(*CREDENTIALS) is Phase.AUTHENTICATED


def test_with_2fa_asks_for_pin(admin_with_pin, session):
    assert session.submit_credentials(*CREDENTIALS) is Phase.PIN_CHALLENGE
    assert session.attempt_count == 0
    assert session.attempts_remaining == MAX_PIN_ATTEMPTS


def test_correct_pin_authenticates(admin_with_pin, session):
    session.submit_credentials(*CREDENTIALS)
    assert session.submit_pin("123456") is Phase.AUTHENTICATED


def test_wrong_pin_reports_remaining_attempts(admin_with_pin, session):
    session.submit_credentials(*CREDENTIALS)
    with pytest.raises(InvalidCredentials) as exc_info:
        session.submit_pin("000000")
    assert exc_info.value.attempts_remaining == 4
    assert session.phase is Phase.PIN_CHALLENGE


def test_lockout_boundary(admin_with_pin, session):
    session.submit_credentials(*CREDENTIALS)
    fail_pin(session, MAX_PIN_ATTEMPTS - 1)
    assert session.phase is Phase.PIN_CHALLENGE
    assert session.attempts_remaining == 1

    with pytest.raises(PinLockedError) as exc_info:
        session.submit_pin("000000")
    assert exc_info.value.attempts_remaining == 0
    assert session.phase is Phase.LOCKED
    assert session.attempt_count == MAX_PIN_ATTEMPTS


def test_correct_pin_after_lockout_is_refused(admin_with_pin, session):
    session.submit_credentials(*CREDENTIALS)
    fail_pin(session, MAX_PIN_ATTEMPTS)
    with pytest.raises(InvalidState):
        session.submit_pin("123456")
    assert session.phase is Phase.LOCKED


def test_malformed_pin_is_not_counted(admin_with_pin, session):
    session.submit_credentials(*CREDENTIALS)
    with pytest.raises(ValidationError):
        session.submit_pin("12")
    assert session.attempt_count == 0


def test_lockout_does_not_lock_the_account(admin_with_pin, session, accounts, two_factor):
    session.submit_credentials(*CREDENTIALS)
    fail_pin(session, MAX_PIN_ATTEMPTS)

    fresh = LoginSession(accounts, two_factor)
    assert fresh.submit_credentials(*CREDENTIALS) is Phase.PIN_CHALLENGE
    assert fresh.attempt_count == 0
    assert fresh.submit_pin("123456") is Phase.AUTHENTICATED


def test_super_action_from_lockout(admin_with_pin, session, two_factor):
    session.submit_credentials(*CREDENTIALS)
    fail_pin(session, MAX_PIN_ATTEMPTS)

    assert session.submit_super_action(SUPER_CODE) is Phase.CREDENTIALS
    assert session.attempt_count == 0
    assert two_factor.is_enabled("id1") is False

    assert session.submit_credentials(*CREDENTIALS) is Phase.AUTHENTICATED


def test_wrong_super_action_stays_locked(admin_with_pin, session, two_factor):
    session.submit_credentials(*CREDENTIALS)
    fail_pin(session, MAX_PIN_ATTEMPTS)
    with pytest.raises(InvalidCredentials):
        session.submit_super_action("guess")
    assert session.phase is Phase.LOCKED
    assert two_factor.is_enabled("id1") is True


def test_locked_session_recovers_when_2fa_was_disabled_elsewhere(admin_with_pin, session, two_factor):
    session.submit_credentials(*CREDENTIALS)
    fail_pin(session, MAX_PIN_ATTEMPTS)
    two_factor.disable("id1", "Secret123!")

    assert session.submit_super_action("anything") is Phase.CREDENTIALS
    assert session.attempt_count == 0
    assert session.submit_credentials(*CREDENTIALS) is Phase.AUTHENTICATED


def test_super_action_requires_lockout(admin_with_pin, session):
    session.submit_credentials(*CREDENTIALS)
    with pytest.raises(InvalidState):
        session.submit_super_action(SUPER_CODE)
    assert session.phase is Phase.PIN_CHALLENGE


def test_steps_out_of_order(admin_with_pin, session):
    with pytest.raises(InvalidState):
        session.submit_pin("123456")
    session.submit_credentials(*CREDENTIALS)
    with pytest.raises(InvalidState):
        session.submit_credentials(*CREDENTIALS)


def test_reference_scenario(admin, accounts, two_factor):
    two_factor.enable("id1", "123456", "123456")

    session = LoginSession(accounts, two_factor)
    assert session.submit_credentials(*CREDENTIALS) is Phase.PIN_CHALLENGE
    fail_pin(session, MAX_PIN_ATTEMPTS)
    assert session.phase is Phase.LOCKED

    session.submit_super_action(SUPER_CODE)
    record = accounts.find("id1")
    assert record.is_2fa_enabled is False
    assert record.pin is None

    fresh = LoginSession(accounts, two_factor)
    assert fresh.submit_credentials(*CREDENTIALS) is Phase.AUTHENTICATED
