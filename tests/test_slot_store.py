import tempfile
import unittest
from pathlib import Path

import pytest

from pitstop.storage import SlotStore, SlotStoreToSQLite, SlotStoreToYAML, get_slot_store


class SlotStoreContract:
    """YAML / SQLite 共通のスロット操作のテスト"""

    suffix = ".yaml"

    def make_store(self, *, max_bytes: int = 0) -> SlotStore:
        raise NotImplementedError

    def setUp(self) -> None:
        self.temp_file = tempfile.NamedTemporaryFile(delete=False, suffix=self.suffix)  # noqa: SIM115
        self.temp_file.close()
        self.store = self.make_store()

    def tearDown(self) -> None:
        if isinstance(self.store, SlotStoreToSQLite):
            self.store.close()
        Path(self.temp_file.name).unlink(missing_ok=True)

    def test_read_missing_slot(self) -> None:
        r = self.store.read("nothing")
        assert r.is_ok()
        assert r.unwrap() is None

    def test_write_then_read(self) -> None:
        assert self.store.write("k", "値").is_ok()
        assert self.store.read("k").unwrap() == "値"

    def test_overwrite(self) -> None:
        self.store.write("k", "1")
        self.store.write("k", "2")
        assert self.store.read("k").unwrap() == "2"

    def test_remove(self) -> None:
        self.store.write("k", "v")
        assert self.store.remove("k").is_ok()
        assert self.store.read("k").unwrap() is None
        # 存在しないスロットの削除も成功する
        assert self.store.remove("k").is_ok()

    def test_keys_sorted(self) -> None:
        self.store.write("b", "2")
        self.store.write("a", "1")
        assert self.store.keys().unwrap() == ["a", "b"]

    def test_quota_exceeded(self) -> None:
        """容量上限を超える書き込みは Err になり、既存の値は残る"""
        store = self.make_store(max_bytes=20)
        assert store.write("k", "short").is_ok()
        r = store.write("k", "x" * 50)
        assert r.is_err()
        assert "quota" in r.unwrap_err().lower()
        assert store.read("k").unwrap() == "short"
        if isinstance(store, SlotStoreToSQLite):
            store.close()

    def test_overwrite_does_not_count_old_value(self) -> None:
        store = self.make_store(max_bytes=30)
        assert store.write("k", "a" * 20).is_ok()
        assert store.write("k", "b" * 20).is_ok()
        assert store.write("other", "c" * 20).is_err()
        if isinstance(store, SlotStoreToSQLite):
            store.close()


class TestSlotStoreToYAML(SlotStoreContract, unittest.TestCase):
    suffix = ".yaml"

    def make_store(self, *, max_bytes: int = 0) -> SlotStore:
        return SlotStoreToYAML(self.temp_file.name, max_bytes=max_bytes)

    def test_corrupt_file_is_err(self) -> None:
        Path(self.temp_file.name).write_text("slots: [unclosed\n", encoding="utf-8")
        assert self.store.read("k").is_err()
        assert self.store.write("k", "v").is_err()

    def test_malformed_file_is_err(self) -> None:
        Path(self.temp_file.name).write_text("- a\n- b\n", encoding="utf-8")
        r = self.store.read("k")
        assert r.is_err()
        assert "Malformed" in r.unwrap_err()

    def test_file_format(self) -> None:
        self.store.write("guest_name", "Alice")
        text = Path(self.temp_file.name).read_text(encoding="utf-8")
        assert "slots:" in text
        assert "guest_name: Alice" in text


class TestSlotStoreToSQLite(SlotStoreContract, unittest.TestCase):
    suffix = ".db"

    def make_store(self, *, max_bytes: int = 0) -> SlotStore:
        return SlotStoreToSQLite(self.temp_file.name, max_bytes=max_bytes)

    def test_persists_across_connections(self) -> None:
        self.store.write("k", "v")
        self.store.close()
        other = SlotStoreToSQLite(self.temp_file.name, max_bytes=0)
        try:
            assert other.read("k").unwrap() == "v"
        finally:
            other.close()


def test_get_slot_store_by_suffix(tmp_path: Path) -> None:
    assert isinstance(get_slot_store((tmp_path / "s.yaml").as_posix()), SlotStoreToYAML)
    assert isinstance(get_slot_store((tmp_path / "s.yml").as_posix()), SlotStoreToYAML)
    assert isinstance(get_slot_store((tmp_path / "s.db").as_posix()), SlotStoreToSQLite)
    with pytest.raises(ValueError, match="Invalid data path"):
        get_slot_store((tmp_path / "s.txt").as_posix())
