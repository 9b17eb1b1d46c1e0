import json
from collections.abc import Sequence
from typing import Any, Final

from result import Err, Ok, Result

from pitstop.core.errors import StorageUnavailableError
from pitstop.core.models import GUEST_OWNER, Comment, SubTask, Task
from pitstop.storage.base import SlotStore
from pitstop.util.ids import gen_guest_session_id
from pitstop.util.logger import setup_logger
from pitstop.util.time import now_iso

logger = setup_logger("pitstop", is_stream=True, is_file=True)

TASKS_SLOT: Final = "pitstop_guest_tasks"
GUEST_NAME_SLOT: Final = "guest_name"
SESSION_SLOT: Final = "guest_session"
QUOTA_SLOT: Final = "pitstop_guest_quota"

DEFAULT_GUEST_NAME: Final = "Guest User"
SYSTEM_USER: Final = "system"


def sample_tasks(stamp: str | None = None) -> list[Task]:
    """ゲスト用のサンプルタスク3件 (ongoing/medium, completed/low, ongoing/high)。"""
    ts = stamp or now_iso()
    return [
        Task(
            id="sample_1",
            title="Welcome to PitStop!",
            description="This is your first task. You can edit, complete, or delete it. Click to view details!",
            status="ongoing",
            priority="medium",
            visibility="public",
            created_by=GUEST_OWNER,
            position=0,
            created_at=ts,
            updated_at=ts,
            comments=[
                Comment(id="comment_1", user_id=SYSTEM_USER, content="This is a comment on the task!", created_at=ts, updated_at=ts),
            ],
            sub_tasks=[
                SubTask(
                    id="sub_1",
                    title="Review welcome message",
                    description="Read through the welcome instructions",
                    status="completed",
                    position=0,
                    created_at=ts,
                    updated_at=ts,
                    completed_at=ts,
                ),
                SubTask(
                    id="sub_2",
                    title="Create your first task",
                    description="Click the Create New Task button",
                    position=1,
                    created_at=ts,
                    updated_at=ts,
                ),
            ],
        ),
        Task(
            id="sample_2",
            title="Try creating a new task",
            description='Click the "Create New Task" button to add your own tasks. You can also delete tasks!',
            status="completed",
            priority="low",
            visibility="private",
            created_by=GUEST_OWNER,
            position=1,
            created_at=ts,
            updated_at=ts,
            completed_at=ts,
            comments=[
                Comment(id="comment_2", user_id=SYSTEM_USER, content="Great job completing this task!", created_at=ts, updated_at=ts),
                Comment(id="comment_3", user_id=SYSTEM_USER, content="You can add multiple comments to tasks!", created_at=ts, updated_at=ts),
            ],
        ),
        Task(
            id="sample_3",
            title="Explore the features",
            description="Try the search, filters, and different view modes.",
            status="ongoing",
            priority="high",
            visibility="public",
            created_by=GUEST_OWNER,
            position=2,
            created_at=ts,
            updated_at=ts,
            sub_tasks=[
                SubTask(
                    id="sub_3",
                    title="Test search functionality",
                    description="Use the search bar to find tasks",
                    status="completed",
                    position=0,
                    created_at=ts,
                    updated_at=ts,
                    completed_at=ts,
                ),
                SubTask(
                    id="sub_4",
                    title="Try the status filters",
                    description="Filter tasks by status and priority",
                    position=1,
                    created_at=ts,
                    updated_at=ts,
                ),
            ],
        ),
    ]


class LocalTaskAdapter:
    """ゲストモードのタスク列をスロットに永続化するアダプタ。

    タスク列は JSON 配列として TASKS_SLOT に丸ごと保存する (差分更新はしない)。
    ストレージの失敗は呼び出し元に伝播させない:
      - 読み込み失敗 / 壊れたデータ -> 空の列
      - 書き込み失敗 -> ログを出して破棄 (Err は返すが例外は投げない)
    """

    def __init__(self, slots: SlotStore) -> None:
        self.slots = slots

    # ---- タスク列 ----

    def load_all(self) -> list[Task]:
        try:
            res = self.slots.read(TASKS_SLOT)
        except Exception:
            logger.exception("Storage unavailable while reading %s; fallback to [].", TASKS_SLOT)
            return []
        match res:
            case Ok(None):
                return []
            case Ok(raw):
                return self._decode(raw)
            case Err(e):
                logger.warning("Storage unavailable (%s); fallback to [].", e)
                return []
            case _:
                return []

    def save_all(self, tasks: Sequence[Task]) -> Result[None, StorageUnavailableError]:
        try:
            raw = json.dumps([t.to_dict() for t in tasks], ensure_ascii=False)
            res = self.slots.write(TASKS_SLOT, raw)
        except Exception as e:
            logger.exception("Storage unavailable while writing %s; write dropped.", TASKS_SLOT)
            return Err(StorageUnavailableError(f"Storage unavailable: {e!s}"))
        match res:
            case Err(e):
                logger.warning("Write dropped (%s)", e)
                return Err(StorageUnavailableError(e))
        return Ok(None)

    def seed_if_empty(self) -> list[Task]:
        existing = self.load_all()
        if existing:
            return existing
        tasks = sample_tasks()
        self.save_all(tasks)
        logger.info("Seeded %d sample tasks", len(tasks))
        return tasks

    @staticmethod
    def _decode(raw: str) -> list[Task]:
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Corrupt data in %s; treated as empty.", TASKS_SLOT)
            return []
        if not isinstance(data, list):
            logger.warning("Unexpected data in %s (not a list); treated as empty.", TASKS_SLOT)
            return []
        tasks: list[Task] = []
        for i, item in enumerate(data):
            if not isinstance(item, dict):
                logger.warning("Skipped malformed task entry #%d", i)
                continue
            try:
                tasks.append(Task.from_dict(item))
            except (TypeError, ValueError):
                logger.warning("Skipped malformed task entry #%d", i)
        return tasks

    # ---- ゲストセッション ----

    def start_session(self, name: str | None = None) -> str:
        session_id = gen_guest_session_id()
        self._write_quietly(SESSION_SLOT, session_id)
        self._write_quietly(GUEST_NAME_SLOT, (name or "").strip() or DEFAULT_GUEST_NAME)
        return session_id

    def session_id(self) -> str | None:
        return self._read_quietly(SESSION_SLOT)

    def guest_name(self) -> str:
        return self._read_quietly(GUEST_NAME_SLOT) or DEFAULT_GUEST_NAME

    def end_session(self) -> None:
        """サインアウト相当。セッション・名前・タスク・クォータのスロットを全て消す。"""
        for key in (SESSION_SLOT, GUEST_NAME_SLOT, TASKS_SLOT, QUOTA_SLOT):
            try:
                res = self.slots.remove(key)
            except Exception:
                logger.exception("Failed to remove slot %s", key)
                continue
            if res.is_err():
                logger.warning("Failed to remove slot %s (%s)", key, res.unwrap_err())

    # ---- クォータカウンタ ----

    def load_counters(self) -> dict[str, int]:
        raw = self._read_quietly(QUOTA_SLOT)
        if not raw:
            return {}
        try:
            data: Any = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Corrupt data in %s; counters reset.", QUOTA_SLOT)
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(k): int(v) for k, v in data.items() if isinstance(v, int)}

    def save_counters(self, counters: dict[str, int]) -> None:
        self._write_quietly(QUOTA_SLOT, json.dumps(counters, sort_keys=True))

    # ---- helpers ----

    def _read_quietly(self, key: str) -> str | None:
        try:
            return self.slots.read(key).unwrap_or(None)
        except Exception:
            logger.exception("Storage unavailable while reading %s", key)
            return None

    def _write_quietly(self, key: str, value: str) -> None:
        try:
            res = self.slots.write(key, value)
        except Exception:
            logger.exception("Storage unavailable while writing %s", key)
            return
        if res.is_err():
            logger.warning("Write dropped (%s)", res.unwrap_err())
