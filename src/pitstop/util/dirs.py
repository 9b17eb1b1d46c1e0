import os
import re
from pathlib import Path

DEFAULT_HOME = os.environ.get("PS_HOME_DIR", (Path.home() / ".pitstop").as_posix())
DEFAULT_DATA_PATH = (Path(DEFAULT_HOME) / "slots.yaml").as_posix()
DEFAULT_ENV_PATH = (Path(DEFAULT_HOME) / "config.env").as_posix()

DEFAULT_SWEEP_INTERVAL = "60"
DEFAULT_GUEST_TASK_QUOTA = "1"
DEFAULT_GUEST_COMMENT_QUOTA = "3"
DEFAULT_STORAGE_MAX_BYTES = str(5 * 1024 * 1024)

# config.env のキー -> 既定値 (PS_<KEY> 環境変数で上書き可能)
_DEFAULTS: dict[str, str] = {
    "DATA_PATH": DEFAULT_DATA_PATH,
    "MODE": "guest",
    "USER_ID": "",
    "REMOTE_URL": "",
    "REMOTE_KEY": "",
    "ACCESS_TOKEN": "",
    "SWEEP_INTERVAL": DEFAULT_SWEEP_INTERVAL,
    "GUEST_TASK_QUOTA": DEFAULT_GUEST_TASK_QUOTA,
    "GUEST_COMMENT_QUOTA": DEFAULT_GUEST_COMMENT_QUOTA,
    "STORAGE_MAX_BYTES": DEFAULT_STORAGE_MAX_BYTES,
}


def ensure_dirs() -> None:
    _path = Path(DEFAULT_HOME)
    _path.mkdir(parents=True, exist_ok=True)


def load_env(path: str = DEFAULT_ENV_PATH) -> dict[str, str]:
    env: dict[str, str] = {}
    _path = Path(path)
    if _path.exists():
        with _path.open(encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line or line.startswith("#"):
                    continue
                m = re.match(r"([^=]+)=(.*)", line)
                if m:
                    key = m.group(1).strip()
                    val = m.group(2).strip()
                    env[key] = val

    # OS環境変数を上書き優先
    env.update({key: os.environ.get(f"PS_{key}", env.get(key, default)) for key, default in _DEFAULTS.items()})
    return env


def env_int(env: dict[str, str], key: str, *, minimum: int = 0) -> int:
    raw = env.get(key) or _DEFAULTS[key]
    try:
        value = int(raw)
    except ValueError:
        value = int(_DEFAULTS[key])
    return max(minimum, value)


def env_float(env: dict[str, str], key: str, *, minimum: float = 0.0) -> float:
    raw = env.get(key) or _DEFAULTS[key]
    try:
        value = float(raw)
    except ValueError:
        value = float(_DEFAULTS[key])
    return max(minimum, value)
