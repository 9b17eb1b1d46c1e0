from pitstop.storage.base import SlotStore
from pitstop.storage.sqlite3_store import SlotStoreToSQLite
from pitstop.storage.yaml_store import SlotStoreToYAML
from pitstop.util.dirs import env_int, load_env

__all__ = [
    "SlotStore",
    "SlotStoreToSQLite",
    "SlotStoreToYAML",
    "get_slot_store",
]


def get_slot_store(data_path: str | None = None) -> SlotStore:
    env = load_env()
    data_path = data_path or env["DATA_PATH"]
    max_bytes = env_int(env, "STORAGE_MAX_BYTES")
    if data_path.endswith((".yaml", ".yml")):
        return SlotStoreToYAML(data_path, max_bytes=max_bytes)
    if data_path.endswith(".db"):
        return SlotStoreToSQLite(data_path, max_bytes=max_bytes)
    _msg = f"Invalid data path: {data_path}"
    raise ValueError(_msg)
