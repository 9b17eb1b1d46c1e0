from pathlib import Path

import yaml  # type: ignore[import-untyped]
from result import Err, Ok, Result

from pitstop.storage.base import SlotStore
from pitstop.util.logger import setup_logger

logger = setup_logger("pitstop", is_stream=True, is_file=True)


class SlotStoreToYAML(SlotStore):
    """YAML ファイル1つに全スロットを保持する実装。

    ファイル形式: {"slots": {<key>: <str>}}
    書き込みのたびにファイル全体を読み直して置き換える。
    """

    def _load_slots(self) -> Result[dict[str, str], str]:
        _path = Path(self.data_path)
        if not _path.exists():
            return Ok({})
        try:
            with _path.open(encoding="utf-8") as f:
                raw = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            _msg = f"Failed to load YAML file: {e}"
            logger.warning(_msg)
            return Err(_msg)
        if not isinstance(raw, dict) or not isinstance(raw.get("slots", {}), dict):
            _msg = f"Malformed slot file: {self.data_path}"
            logger.warning(_msg)
            return Err(_msg)
        return Ok({str(k): str(v) for k, v in (raw.get("slots") or {}).items()})

    def _dump_slots(self, slots: dict[str, str]) -> Result[None, str]:
        _path = Path(self.data_path)
        try:
            with _path.open("w", encoding="utf-8") as f:
                yaml.safe_dump({"slots": slots}, f, allow_unicode=True, sort_keys=True)
        except (OSError, yaml.YAMLError) as e:
            _msg = f"Failed to write YAML file: {e}"
            logger.warning(_msg)
            return Err(_msg)
        return Ok(None)

    def read(self, key: str) -> Result[str | None, str]:
        return self._load_slots().map(lambda slots: slots.get(key))

    def _write(self, key: str, value: str) -> Result[None, str]:
        match self._load_slots():
            case Ok(slots):
                slots[key] = value
                return self._dump_slots(slots)
            case Err(e):
                return Err(e)
            case _:
                return Err("Unexpected error")

    def remove(self, key: str) -> Result[None, str]:
        match self._load_slots():
            case Ok(slots):
                if key not in slots:
                    return Ok(None)
                del slots[key]
                return self._dump_slots(slots)
            case Err(e):
                return Err(e)
            case _:
                return Err("Unexpected error")

    def keys(self) -> Result[list[str], str]:
        return self._load_slots().map(lambda slots: sorted(slots))

    def _used_bytes(self, *, excluding: str) -> Result[int, str]:
        return self._load_slots().map(
            lambda slots: sum(len(k.encode("utf-8")) + len(v.encode("utf-8")) for k, v in slots.items() if k != excluding),
        )
