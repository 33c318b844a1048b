"""Pytest fixtures shared by the AdminGate test suite."""

import pytest

from account import AdminAccount
from actions import AdminActions
from config import AppConfig
from crypto import SecretHasher
from storage import RecordStore
from two_factor import TwoFactorManager

# Keeps PBKDF2 fast enough for unit tests.
TEST_ITERATIONS = 1_000

SUPER_CODE = "break-glass-7731"


@pytest.fixture
def config(tmp_path):
    """AppConfig rooted in a temporary data directory."""
    cfg = AppConfig(str(tmp_path / "data"))
    cfg.set("kdf_iterations", TEST_ITERATIONS)
    return cfg


@pytest.fixture
def hasher():
    return SecretHasher(TEST_ITERATIONS)


@pytest.fixture
def store(config):
    return RecordStore(backup_dir=config.backup_dir)


@pytest.fixture
def accounts(store, config, hasher):
    return AdminAccount(store, config.admin_path, hasher)


@pytest.fixture
def super_hash(hasher):
    return hasher.hash(SUPER_CODE)


@pytest.fixture
def two_factor(accounts, super_hash):
    return TwoFactorManager(accounts, super_hash)


@pytest.fixture
def actions(accounts, two_factor):
    return AdminActions(accounts, two_factor)


@pytest.fixture
def admin(accounts):
    """The administrator from the reference scenarios."""
    return accounts.create("A", "id1", "a@x.com", "Secret123!", "Secret123!")


@pytest.fixture
def admin_with_pin(admin, two_factor):
    two_factor.enable("id1", "123456", "123456")
    return admin
