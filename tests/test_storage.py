"""Tests for RecordStore."""

import json
import os

import pytest
from pydantic import BaseModel

from errors import StorageError
from schemas import AdminRecord
from storage import RecordStore


class Item(BaseModel):
    name: str
    qty: int


@pytest.fixture
def path(tmp_path):
    return str(tmp_path / "data" / "items.json")


@pytest.fixture
def backup_dir(tmp_path):
    return str(tmp_path / "backups")


def read_json(path):
    with open(path, "r", encoding="utf-8") as fh:
        return json.load(fh)


def write_text(path, text):
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "w", encoding="utf-8") as fh:
        fh.write(text)


def test_missing_file_is_created_empty(path):
    assert RecordStore().load(path, Item) == []
    assert read_json(path) == []


def test_whitespace_file_is_empty(path):
    write_text(path, "  \n ")
    assert RecordStore().load(path, Item) == []


def test_round_trip(path):
    store = RecordStore()
    items = [Item(name="a", qty=1), Item(name="b", qty=2)]
    store.save(path, items)
    loaded = store.load(path, Item)
    assert loaded == items
    store.save(path, loaded)
    assert store.load(path, Item) == items
    assert not os.path.exists(path + ".tmp")


def test_save_accepts_dicts(path):
    store = RecordStore()
    store.save(path, [{"name": "a", "qty": 1}])
    assert store.load(path, Item) == [Item(name="a", qty=1)]


def test_non_array_is_reset_and_backed_up(path, backup_dir):
    write_text(path, '{"name": "a", "qty": 1}')
    assert RecordStore(backup_dir=backup_dir).load(path, Item) == []
    assert read_json(path) == []
    backups = os.listdir(backup_dir)
    assert len(backups) == 1
    assert backups[0].startswith("items.json.bak.")
    with open(os.path.join(backup_dir, backups[0]), encoding="utf-8") as fh:
        assert json.loads(fh.read()) == {"name": "a", "qty": 1}


def test_invalid_element_resets_whole_collection(path, backup_dir):
    write_text(path, json.dumps([{"name": "a", "qty": 1}, {"name": "b", "qty": "many"}]))
    assert RecordStore(backup_dir=backup_dir).load(path, Item) == []
    assert read_json(path) == []
    assert len(os.listdir(backup_dir)) == 1


def test_invalid_json_is_reset(path, backup_dir):
    write_text(path, '[{"name": "a", "qty": 1},')
    assert RecordStore(backup_dir=backup_dir).load(path, Item) == []
    assert read_json(path) == []


def test_default_backup_dir_is_next_to_file(path):
    write_text(path, "not json")
    RecordStore().load(path, Item)
    assert os.listdir(os.path.join(os.path.dirname(path), "backups"))


def test_strict_mode_refuses_to_reset(path):
    write_text(path, '"oops"')
    with pytest.raises(StorageError):
        RecordStore(strict=True).load(path, Item)
    with open(path, encoding="utf-8") as fh:
        assert fh.read() == '"oops"'


def test_unreadable_path_raises_storage_error(tmp_path):
    directory = tmp_path / "admin.json"
    directory.mkdir()
    with pytest.raises(StorageError):
        RecordStore().load(str(directory), Item)


def test_unwritable_path_raises_storage_error(tmp_path):
    directory = tmp_path / "admin.json"
    directory.mkdir()
    with pytest.raises(StorageError):
        RecordStore().save(str(directory), [])


def test_lock_is_shared_per_path(path, tmp_path):
    assert RecordStore().lock(path) is RecordStore(strict=True).lock(path)
    assert RecordStore().lock(path) is not RecordStore().lock(str(tmp_path / "other.json"))


def test_admin_record_serialises_with_camel_case_keys(path, hasher):
    record = AdminRecord(
        admin_name="A",
        admin_id="id1",
        email="a@x.com",
        password=hasher.hash("Secret123!"),
    )
    RecordStore().save(path, [record])
    stored = read_json(path)[0]
    assert set(stored) == {"adminName", "adminId", "email", "password", "is2FAEnabled", "pin"}
    assert stored["is2FAEnabled"] is False
    assert stored["pin"] is None


def test_admin_record_reads_hashed_pin_key(path):
    write_text(path, json.dumps([{
        "adminName": "A",
        "adminId": "id1",
        "email": "a@x.com",
        "password": "Secret123!",
        "is2FAEnabled": True,
        "hashedPin": "123456",
    }]))
    [record] = RecordStore().load(path, AdminRecord)
    assert record.pin == "123456"
    assert record.is_2fa_enabled is True


def test_admin_record_with_flag_but_no_pin_is_rejected(path):
    write_text(path, json.dumps([{
        "adminName": "A",
        "adminId": "id1",
        "email": "a@x.com",
        "password": "x",
        "is2FAEnabled": True,
        "pin": None,
    }]))
    assert RecordStore().load(path, AdminRecord) == []
