"""
config.py – Application configuration and constants.

This module defines AppConfig, a central container for:
  - All application-wide constants (PIN length, password rules, lockout limit).
  - The operator configuration (KDF cost, strict storage, super-action hash)
    stored as a JSON file on disk and exposed through a simple dict-like
    interface.
  - OS-appropriate data-directory resolution and logger setup.

No other application module is imported here, so config.py sits at the bottom
of the dependency graph and can be safely imported by any other module.
"""

import json
import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional

import appdirs

# ---------------------------------------------------------------------------
# Application-level constants – these never change at runtime.
# ---------------------------------------------------------------------------

APP_NAME = "AdminGate"

APP_VERSION = "1.0.0"

# Environment variable that relocates every data file (used by tests and
# by deployments that keep state outside the user profile).
DATA_DIR_ENV = "ADMINGATE_DATA_DIR"

# Second-factor PIN is exactly this many decimal digits.
PIN_LENGTH = 6

# Password strength rules applied on account creation and password change.
MIN_PASSWORD_LENGTH = 8
PASSWORD_SPECIALS = '!@#$%^&*(),.?":{}|<>'

# Seconds a login may wait at the PIN step (or locked) before it is dropped.
LOGIN_SESSION_TTL = 600

# PBKDF2 iterations used for newly hashed secrets.
DEFAULT_KDF_ITERATIONS = 390_000

# ---------------------------------------------------------------------------
# Default values written to config.json on first run.
# ---------------------------------------------------------------------------
DEFAULT_CONFIG: dict = {
    # Cost factor for password / PIN / super-action hashing.
    "kdf_iterations": DEFAULT_KDF_ITERATIONS,
    # Refuse to continue (instead of resetting to empty) when admin.json is damaged.
    "strict_store": False,
    # Hash of the out-of-band super-action code; None disables the bypass.
    "super_action_hash": None,
}


class AppConfig:
    """
    Manages application configuration, file paths and logging.

    On instantiation the class:
      1. Resolves the data directory (explicit argument, then the
         ADMINGATE_DATA_DIR environment variable, then the OS default).
      2. Derives all relevant file paths from that directory.
      3. Sets up a rotating log handler.
      4. Loads (or creates) the JSON configuration file.

    Attributes
    ----------
    user_data_dir : str
        Absolute path of the directory that stores all persistent data.
    admin_path : str
        JSON array holding the single administrator record.
    backup_dir : str
        Damaged collections are copied here before being reset.
    config_path : str
        JSON configuration file.
    log_path : str
        Rotating application log.
    data : dict
        The currently loaded configuration values (mutable at runtime).
    logger : logging.Logger
        Shared Python logger for the whole application.
    """

    def __init__(self, data_dir: Optional[str] = None) -> None:
        self.user_data_dir: str = self._get_user_data_dir(data_dir)

        self.admin_path:  str = os.path.join(self.user_data_dir, "admin.json")
        self.backup_dir:  str = os.path.join(self.user_data_dir, "backups")
        self.config_path: str = os.path.join(self.user_data_dir, "config.json")
        self.log_path:    str = os.path.join(self.user_data_dir, "app.log")

        self.logger: logging.Logger = self._setup_logger()

        self.data: dict = self._load()

        self.logger.info("AppConfig initialised; data dir: %s", self.user_data_dir)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _get_user_data_dir(data_dir: Optional[str] = None) -> str:
        """
        Return (and create if necessary) the data directory.

        Resolution order: *data_dir*, the ADMINGATE_DATA_DIR environment
        variable, then appdirs' OS-standard user-data directory.
        """
        path = data_dir or os.getenv(DATA_DIR_ENV) or appdirs.user_data_dir(APP_NAME)
        path = os.path.abspath(os.path.expanduser(path))
        os.makedirs(path, exist_ok=True)
        return path

    def _setup_logger(self) -> logging.Logger:
        """
        Create and configure a rotating file logger for the whole application.

        The log rotates at 2 MB and keeps up to 3 backup files.
        Duplicate handlers are avoided if the logger already exists.
        """
        logger = logging.getLogger(APP_NAME)
        logger.setLevel(logging.DEBUG)

        if not logger.handlers:
            handler = RotatingFileHandler(
                self.log_path,
                maxBytes=2_000_000,
                backupCount=3,
                encoding="utf-8",
                delay=True,
            )
            handler.setFormatter(
                logging.Formatter("%(asctime)s %(levelname)s: %(message)s")
            )
            logger.addHandler(handler)

        return logger

    def _load(self) -> dict:
        """
        Read config.json from disk.

        Missing keys are back-filled from DEFAULT_CONFIG so that settings
        introduced in later versions are always present.
        """
        try:
            if os.path.exists(self.config_path):
                with open(self.config_path, "r", encoding="utf-8") as fh:
                    cfg: dict = json.load(fh)
                if isinstance(cfg, dict):
                    for key, value in DEFAULT_CONFIG.items():
                        cfg.setdefault(key, value)
                    return cfg
                self.logger.error("config.json is not an object; using defaults")
        except (OSError, ValueError):
            self.logger.exception("Failed to load config; using defaults")

        return dict(DEFAULT_CONFIG)

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    def save(self) -> None:
        """Persist the current configuration dictionary to disk as JSON."""
        try:
            with open(self.config_path, "w", encoding="utf-8") as fh:
                json.dump(self.data, fh, indent=2)
            self.logger.info("Config saved")
        except OSError:
            self.logger.exception("Failed to save config")

    def get(self, key: str, default=None):
        """Return a configuration value by key, or *default* if not found."""
        return self.data.get(key, default)

    def set(self, key: str, value) -> None:
        """
        Update a configuration value in memory.

        Call save() afterwards to persist the change to disk.
        """
        self.data[key] = value

    @property
    def kdf_iterations(self) -> int:
        return int(self.get("kdf_iterations", DEFAULT_KDF_ITERATIONS))

    @property
    def strict_store(self) -> bool:
        return bool(self.get("strict_store", False))
