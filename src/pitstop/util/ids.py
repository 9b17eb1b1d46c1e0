import secrets
import string
import time

GUEST_TASK_PREFIX = "guest-task"
_BASE36 = string.digits + string.ascii_lowercase


def _epoch_ms() -> int:
    return time.time_ns() // 1_000_000


def gen_local_task_id(existing: set[str] | None = None) -> str:
    """時刻ベースのローカルタスクIDを生成する。

    同一ミリ秒に既存IDがある場合は連番サフィックスで衝突を避ける。
    """
    base = f"{GUEST_TASK_PREFIX}-{_epoch_ms()}"
    if not existing or base not in existing:
        return base
    n = 1
    while f"{base}-{n}" in existing:
        n += 1
    return f"{base}-{n}"


def gen_child_id(prefix: str, existing: set[str] | None = None) -> str:
    # sub-task / comment 用 (e.g. "subtask_1712345678901")
    base = f"{prefix}_{_epoch_ms()}"
    if not existing or base not in existing:
        return base
    n = 1
    while f"{base}_{n}" in existing:
        n += 1
    return f"{base}_{n}"


def gen_guest_session_id() -> str:
    suffix = "".join(secrets.choice(_BASE36) for _ in range(9))
    return f"guest_{_epoch_ms()}_{suffix}"
