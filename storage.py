"""
storage.py – File-backed record collections.

This module contains RecordStore, the single class responsible for all
file I/O of JSON record collections:

  - Loading a collection (one JSON array per file) and validating every
    element against a pydantic model.
  - Creating a missing file as an empty collection.
  - Repairing a damaged file: the bad file is copied to the backup folder
    and replaced by an empty array, or, in strict mode, StorageError is raised
    and the file is left untouched.
  - Saving a collection through a temporary companion file that replaces
    the original with os.replace().
  - Handing out one re-entrant lock per file path so read-modify-write
    cycles do not interleave.

Callers only ever see a fully valid collection or an empty one.
"""

import json
import logging
import os
import shutil
import threading
import time
from typing import Dict, List, Optional, Sequence, Type, TypeVar, Union

import pydantic
from pydantic import BaseModel

from config import APP_NAME
from errors import StorageError

logger = logging.getLogger(APP_NAME)

ModelT = TypeVar("ModelT", bound=BaseModel)


class RecordStore:
    """
    Reads and writes JSON record collections.

    Parameters
    ----------
    backup_dir : str or None
        Where damaged files are copied before being reset.  Defaults to a
        ``backups`` folder next to each collection file.
    strict : bool
        Raise StorageError on a damaged collection instead of resetting it.
    """

    _locks: Dict[str, threading.RLock] = {}
    _locks_guard = threading.Lock()

    def __init__(self, backup_dir: Optional[str] = None, strict: bool = False) -> None:
        self.backup_dir = backup_dir
        self.strict = strict

    # ------------------------------------------------------------------
    # Locking
    # ------------------------------------------------------------------

    @classmethod
    def lock(cls, path: str) -> threading.RLock:
        """Return the lock guarding *path* (shared by every RecordStore)."""
        key = os.path.abspath(path)
        with cls._locks_guard:
            if key not in cls._locks:
                cls._locks[key] = threading.RLock()
            return cls._locks[key]

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def load(self, path: str, schema: Type[ModelT]) -> List[ModelT]:
        """
        Return every record stored at *path*, validated against *schema*.

        Missing file: created as ``[]``.  Empty file: ``[]``.
        Damaged file (bad JSON, not an array, invalid element): reset to
        ``[]`` after a backup copy, or StorageError in strict mode.

        Raises
        ------
        StorageError
            On OS errors other than "file does not exist".
        """
        self._ensure_dir(path)
        try:
            with open(path, "r", encoding="utf-8") as fh:
                text = fh.read()
        except FileNotFoundError:
            self._write_json(path, [])
            logger.info("Created empty collection %s", path)
            return []
        except (OSError, UnicodeDecodeError) as exc:
            logger.exception("Failed to read %s", path)
            raise StorageError(f"Could not read data from {os.path.basename(path)}.") from exc

        if not text.strip():
            return []

        try:
            items = json.loads(text)
        except ValueError as exc:
            return self._recover(path, f"invalid JSON ({exc})")

        if not isinstance(items, list):
            return self._recover(path, f"top-level value is {type(items).__name__}, not an array")

        records: List[ModelT] = []
        for index, item in enumerate(items):
            try:
                records.append(schema.model_validate(item))
            except pydantic.ValidationError as exc:
                # Only locations and messages: the input values may be secrets.
                problems = "; ".join(
                    "%s: %s" % (".".join(str(p) for p in err["loc"]) or "record", err["msg"])
                    for err in exc.errors()
                )
                return self._recover(path, f"element {index} failed validation ({problems})")
        return records

    def _recover(self, path: str, reason: str) -> list:
        if self.strict:
            logger.error("Refusing to reset damaged collection %s: %s", path, reason)
            raise StorageError(f"Stored data in {os.path.basename(path)} is damaged.")

        backup = self._backup(path)
        logger.error(
            "Data in %s is unusable (%s); backed up to %s and reset to an empty array",
            path, reason, backup,
        )
        self._write_json(path, [])
        return []

    def _backup(self, path: str) -> Optional[str]:
        """Copy *path* into the backup folder; return the copy's path."""
        backup_dir = self.backup_dir or os.path.join(os.path.dirname(os.path.abspath(path)), "backups")
        stamp = time.strftime("%Y%m%d_%H%M%S")
        dest = os.path.join(backup_dir, f"{os.path.basename(path)}.bak.{stamp}")
        counter = 1
        while os.path.exists(dest):
            dest = os.path.join(backup_dir, f"{os.path.basename(path)}.bak.{stamp}.{counter}")
            counter += 1
        try:
            os.makedirs(backup_dir, exist_ok=True)
            shutil.copy2(path, dest)
        except OSError:
            logger.exception("Failed to back up damaged file %s", path)
            return None
        return dest

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    def save(self, path: str, records: Sequence[Union[BaseModel, dict]]) -> None:
        """
        Overwrite *path* with *records*.

        The JSON is written to ``<path>.tmp`` first and then moved over the
        original, so a crash mid-write leaves the previous file intact.

        Raises
        ------
        StorageError
            If the directory or the file cannot be written.
        """
        payload = [
            r.model_dump(mode="json", by_alias=True) if isinstance(r, BaseModel) else r
            for r in records
        ]
        self._ensure_dir(path)
        self._write_json(path, payload)

    def _write_json(self, path: str, payload: list) -> None:
        tmp = path + ".tmp"
        try:
            with open(tmp, "w", encoding="utf-8") as fh:
                json.dump(payload, fh, indent=2)
                fh.write("\n")
            os.replace(tmp, path)
        except OSError as exc:
            logger.exception("Failed to write %s", path)
            self._silent_remove(tmp)
            raise StorageError(f"Could not save data to {os.path.basename(path)}.") from exc

    # ------------------------------------------------------------------
    # Utilities
    # ------------------------------------------------------------------

    @staticmethod
    def _ensure_dir(path: str) -> None:
        try:
            os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
        except OSError as exc:
            logger.exception("Failed to create directory for %s", path)
            raise StorageError("Could not create the data directory. Please ensure it is writable.") from exc

    @staticmethod
    def _silent_remove(path: str) -> None:
        try:
            if os.path.exists(path):
                os.remove(path)
        except OSError:
            logger.debug("Could not remove %s", path)
