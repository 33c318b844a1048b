"""
main.py – Application entry point.

This file is intentionally minimal.  All logic lives in specialised modules:

  config.py     – AppConfig        : constants, file paths, config I/O, logging
  crypto.py     – SecretHasher     : PBKDF2 hashing and constant-time checks
  storage.py    – RecordStore      : JSON collections with repair and locking
  account.py    – AdminAccount     : the singleton administrator record
  two_factor.py – TwoFactorManager : PIN enroll / rotate / disable / super action
  login.py      – LoginSession     : credentials -> PIN -> lockout protocol
  actions.py    – AdminActions     : result-returning operations for the UI
  cli.py        – AdminConsole     : terminal front end

To run the application:
    python main.py status
    admingate login
"""

import sys

from cli import AdminConsole


def main() -> None:
    """Parse the command line and run the requested command."""
    sys.exit(AdminConsole().run())


if __name__ == "__main__":
    main()
