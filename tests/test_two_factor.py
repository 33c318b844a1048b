"""Tests for TwoFactorManager."""

import pytest

from conftest import SUPER_CODE
from errors import InvalidCredentials, InvalidState, NotFound, ValidationError
from two_factor import TwoFactorManager


def assert_consistent(accounts):
    record = accounts.find("id1")
    assert record.is_2fa_enabled == (record.pin is not None)
    return record


def test_enable(admin, accounts, two_factor):
    assert two_factor.is_enabled("id1") is False
    two_factor.enable("id1", "123456", "123456")
    record = assert_consistent(accounts)
    assert record.is_2fa_enabled is True
    assert record.pin != "123456"
    assert two_factor.verify_pin("id1", "123456") is True
    assert two_factor.verify_pin("id1", "654321") is False


@pytest.mark.parametrize("new_pin, confirm, bad_field", [
    ("12345", "12345", "newPin"),
    ("1234567", "1234567", "newPin"),
    ("12a456", "12a456", "newPin"),
    ("123456", "123457", "confirmNewPin"),
])
def test_enable_validation(admin, accounts, two_factor, new_pin, confirm, bad_field):
    with pytest.raises(ValidationError) as exc_info:
        two_factor.enable("id1", new_pin, confirm)
    assert bad_field in exc_info.value.errors
    assert assert_consistent(accounts).is_2fa_enabled is False


def test_enable_twice(admin_with_pin, two_factor):
    with pytest.raises(InvalidState):
        two_factor.enable("id1", "111111", "111111")


def test_enable_unknown_admin(admin, two_factor):
    with pytest.raises(NotFound):
        two_factor.enable("nobody", "123456", "123456")


def test_change_pin(admin_with_pin, accounts, two_factor):
    two_factor.change_pin("id1", "123456", "222222", "222222")
    assert_consistent(accounts)
    assert two_factor.verify_pin("id1", "222222") is True
    assert two_factor.verify_pin("id1", "123456") is False


def test_change_pin_wrong_current(admin_with_pin, two_factor):
    with pytest.raises(InvalidCredentials):
        two_factor.change_pin("id1", "000000", "222222", "222222")
    assert two_factor.verify_pin("id1", "123456") is True


def test_change_pin_mismatch(admin_with_pin, two_factor):
    with pytest.raises(ValidationError) as exc_info:
        two_factor.change_pin("id1", "123456", "222222", "333333")
    assert exc_info.value.errors["confirmNewPin"] == "New PINs don't match."


def test_change_pin_when_disabled(admin, two_factor):
    with pytest.raises(InvalidState):
        two_factor.change_pin("id1", "123456", "222222", "222222")


@pytest.mark.parametrize("proof", ["123456", "Secret123!"])
def test_disable_with_pin_or_password(admin_with_pin, accounts, two_factor, proof):
    two_factor.disable("id1", proof)
    record = assert_consistent(accounts)
    assert record.is_2fa_enabled is False
    assert record.pin is None


def test_disable_with_wrong_proof(admin_with_pin, two_factor):
    with pytest.raises(InvalidCredentials):
        two_factor.disable("id1", "999999")
    assert two_factor.is_enabled("id1") is True


def test_disable_requires_proof(admin_with_pin, two_factor):
    with pytest.raises(ValidationError) as exc_info:
        two_factor.disable("id1", "")
    assert "currentPinOrPassword" in exc_info.value.errors


def test_disable_when_disabled(admin, two_factor):
    with pytest.raises(InvalidState):
        two_factor.disable("id1", "Secret123!")


def test_super_action(admin_with_pin, accounts, two_factor):
    two_factor.disable_by_super_action("id1", SUPER_CODE)
    record = assert_consistent(accounts)
    assert record.is_2fa_enabled is False


def test_super_action_wrong_code(admin_with_pin, two_factor):
    with pytest.raises(InvalidCredentials):
        two_factor.disable_by_super_action("id1", "guess")
    assert two_factor.is_enabled("id1") is True


def test_super_action_not_configured(admin_with_pin, accounts):
    manager = TwoFactorManager(accounts, None)
    with pytest.raises(InvalidCredentials):
        manager.disable_by_super_action("id1", SUPER_CODE)
    assert manager.is_enabled("id1") is True


def test_super_action_reads_configured_hash_at_call_time(admin_with_pin, accounts, hasher):
    configured = {}
    manager = TwoFactorManager(accounts, lambda: configured.get("hash"))
    with pytest.raises(InvalidCredentials):
        manager.disable_by_super_action("id1", SUPER_CODE)
    configured["hash"] = hasher.hash(SUPER_CODE)
    manager.disable_by_super_action("id1", SUPER_CODE)
    assert manager.is_enabled("id1") is False


def test_super_action_when_disabled(admin, two_factor):
    with pytest.raises(InvalidState):
        two_factor.disable_by_super_action("id1", SUPER_CODE)


def test_verify_pin_when_disabled(admin, two_factor):
    with pytest.raises(InvalidState):
        two_factor.verify_pin("id1", "123456")


def test_changes_fire_change_signal(admin, accounts, two_factor):
    calls = []
    accounts.on_change(lambda: calls.append(1))
    two_factor.enable("id1", "123456", "123456")
    two_factor.change_pin("id1", "123456", "222222", "222222")
    two_factor.disable("id1", "222222")
    assert len(calls) == 3


def test_legacy_pin_upgrade_is_not_a_profile_change(admin, accounts, two_factor):
    record = accounts.find("id1")
    accounts.replace(record.model_copy(update={"is_2fa_enabled": True, "pin": "123456"}))
    calls = []
    accounts.on_change(lambda: calls.append(1))

    assert two_factor.verify_pin("id1", "123456") is True
    assert accounts.find("id1").pin.startswith("pbkdf2_sha256$")
    assert two_factor.verify_pin("id1", "123456") is True
    assert calls == []
