from __future__ import annotations

from collections.abc import Callable
from dataclasses import replace
from typing import TYPE_CHECKING, Any, Final, Literal

from result import Err, Ok, Result

from pitstop.core.errors import (
    InvalidDueDateError,
    NotFoundError,
    OpsError,
    QuotaExceededError,
    RemoteError,
    StorageUnavailableError,
    ValidationError,
)
from pitstop.core.filters import TaskPredicate
from pitstop.core.models import (
    GUEST_OWNER,
    SUB_TASK_STATUSES,
    Comment,
    Status,
    SubTask,
    SubTaskStatus,
    Task,
    TaskDraft,
    TaskPatch,
    normalize_tags,
)
from pitstop.core.overdue import changed_ids, has_status_changes, sweep
from pitstop.storage import get_slot_store
from pitstop.storage.local import LocalTaskAdapter
from pitstop.storage.remote import COMMENTS_TABLE, SUB_TASKS_TABLE, TASKS_TABLE, PostgrestTasks, RemoteTasks
from pitstop.util.dirs import env_int, load_env
from pitstop.util.ids import gen_child_id, gen_local_task_id
from pitstop.util.logger import setup_logger
from pitstop.util.time import now_utc, parse_iso, to_iso

if TYPE_CHECKING:
    from datetime import datetime

__all__ = [
    "InvalidDueDateError",
    "Mode",
    "NotFoundError",
    "OpsError",
    "QuotaExceededError",
    "QuotaStatus",
    "RemoteError",
    "StorageUnavailableError",
    "TaskStore",
    "ValidationError",
    "check_due_date",
    "open_store",
]

logger = setup_logger("pitstop", is_stream=True, is_file=True)

Mode = Literal["guest", "authenticated"]
QuotaStatus = Literal["available", "exhausted", "unlimited"]
QuotaKind = Literal["task", "comment"]
Listener = Callable[[list[Task]], None]

DEFAULT_TASK_QUOTA: Final = 1
DEFAULT_COMMENT_QUOTA: Final = 3


# ---- 内部ユーティリティ ----------------------------------------------------


def check_due_date(raw: str | None) -> Result[str | None, InvalidDueDateError]:
    """期限文字列を検証し、UTC の ISO-8601 に正規化する。空なら Ok(None)。"""
    if raw is None or not str(raw).strip():
        return Ok(None)
    match parse_iso(str(raw)):
        case Ok(dt):
            return Ok(to_iso(dt))
        case Err(e):
            return Err(InvalidDueDateError(str(raw), e))
        case _:
            return Err(InvalidDueDateError(str(raw)))


def _accepted_due_date(raw: str | None) -> str | None:
    # 不正な期限はフィールドごと捨てて、残りの変更は続行する
    match check_due_date(raw):
        case Ok(value):
            return value
        case Err(e):
            logger.warning("%s; the due date was dropped", e)
            return None
        case _:
            return None


def _remote_record(task: Task) -> dict[str, Any]:
    return {
        "title": task.title,
        "description": task.description,
        "status": task.status,
        "priority": task.priority,
        "visibility": task.visibility,
        "due_date": task.due_date,
        "created_by": task.created_by,
        "position": task.position,
        "tags": task.tags,
        "created_at": task.created_at,
        "updated_at": task.updated_at,
    }


class TaskStore:
    """タスク操作の窓口 (セッションごとに1つ生成して使い回す)。

    モード (guest / authenticated) は生成時に固定され、後から切り替えられない。
    guest モードのタスクはローカルスロットにだけ保存し、リモートには送らない。

    各操作は同期的に最後まで実行され、成功値か Err(OpsError) を返す。
    想定内の失敗 (未存在 / クォータ超過 / 不正入力 / リモート障害) で例外は投げない。
    """

    def __init__(
        self,
        mode: Mode,
        *,
        local: LocalTaskAdapter | None = None,
        remote: RemoteTasks | None = None,
        user_id: str = GUEST_OWNER,
        task_quota: int | None = DEFAULT_TASK_QUOTA,
        comment_quota: int | None = DEFAULT_COMMENT_QUOTA,
        include_public: bool = False,
        clock: Callable[[], datetime] = now_utc,
    ) -> None:
        if mode == "guest":
            if local is None or remote is not None:
                _msg = "guest mode requires a local adapter and no remote backend"
                raise ValueError(_msg)
            user_id = GUEST_OWNER
        elif mode == "authenticated":
            if remote is None or local is not None:
                _msg = "authenticated mode requires a remote backend and no local adapter"
                raise ValueError(_msg)
            if not user_id or user_id == GUEST_OWNER:
                _msg = f"authenticated mode requires a real user id (got {user_id!r})"
                raise ValueError(_msg)
        else:
            _msg = f"Unknown mode: {mode!r}"
            raise ValueError(_msg)

        self._mode: Mode = mode
        self._local = local
        self._remote = remote
        self._user_id = user_id
        self._quotas: dict[str, int | None] = {"task": task_quota, "comment": comment_quota}
        self._include_public = include_public
        self._clock = clock
        self._tasks: list[Task] = []
        self._counters: dict[str, int] = {}
        self._listeners: list[Listener] = []

    # ---- 生成 ----

    @classmethod
    def guest(
        cls,
        local: LocalTaskAdapter,
        *,
        seed: bool = True,
        task_quota: int | None = DEFAULT_TASK_QUOTA,
        comment_quota: int | None = DEFAULT_COMMENT_QUOTA,
        clock: Callable[[], datetime] = now_utc,
    ) -> TaskStore:
        store = cls("guest", local=local, task_quota=task_quota, comment_quota=comment_quota, clock=clock)
        store._tasks = local.seed_if_empty() if seed else local.load_all()
        store._counters = local.load_counters()
        return store

    @classmethod
    def authenticated(
        cls,
        remote: RemoteTasks,
        user_id: str,
        *,
        include_public: bool = False,
        clock: Callable[[], datetime] = now_utc,
    ) -> TaskStore:
        store = cls("authenticated", remote=remote, user_id=user_id, include_public=include_public, clock=clock)
        if (res := store.refresh()).is_err():
            logger.warning("Initial load failed: %s", res.unwrap_err())
        return store

    # ---- 状態 ----

    @property
    def mode(self) -> Mode:
        return self._mode

    @property
    def is_guest(self) -> bool:
        return self._mode == "guest"

    @property
    def user_id(self) -> str:
        return self._user_id

    def snapshot(self) -> list[Task]:
        return list(self._tasks)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """変更通知を購読する。戻り値を呼ぶと購読解除。"""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self) -> None:
        tasks = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(tasks)
            except Exception:
                logger.exception("Task listener failed")

    def _now(self) -> tuple[datetime, str]:
        now = self._clock()
        return now, to_iso(now)

    def _index_of(self, task_id: str) -> int | None:
        for i, t in enumerate(self._tasks):
            if t.id == task_id:
                return i
        return None

    def _commit(self, tasks: list[Task]) -> None:
        """新しいタスク列を採用し、guest ならスロットへ丸ごと書き込んで通知する。"""
        self._tasks = tasks
        if self._local is not None:
            self._local.save_all(tasks)
        self._notify()

    # ---- クォータ ----

    def quota_status(self, kind: QuotaKind = "task") -> QuotaStatus:
        limit = self._quotas.get(kind)
        if not self.is_guest or limit is None or limit < 0:
            return "unlimited"
        return "exhausted" if self._counters.get(kind, 0) >= limit else "available"

    def quota_remaining(self, kind: QuotaKind = "task") -> int | None:
        limit = self._quotas.get(kind)
        if self.quota_status(kind) == "unlimited" or limit is None:
            return None
        return max(0, limit - self._counters.get(kind, 0))

    @property
    def can_create(self) -> bool:
        return self.quota_status("task") != "exhausted"

    def _check_quota(self, kind: QuotaKind) -> Result[None, OpsError]:
        if self.quota_status(kind) == "exhausted":
            return Err(QuotaExceededError(kind, self._quotas[kind] or 0))
        return Ok(None)

    def _consume_quota(self, kind: QuotaKind) -> None:
        if not self.is_guest or self._local is None:
            return
        self._counters[kind] = self._counters.get(kind, 0) + 1
        self._local.save_counters(self._counters)

    # ---- 一覧取得 / 個別取得 ----

    def list(self, predicate: TaskPredicate | None = None) -> list[Task]:
        if predicate is None:
            return self.snapshot()
        return [t for t in self._tasks if predicate(t)]

    def get(self, task_id: str) -> Result[Task, OpsError]:
        idx = self._index_of(task_id)
        if idx is None:
            return Err(NotFoundError(task_id))
        return Ok(self._tasks[idx])

    def refresh(self) -> Result[list[Task], OpsError]:
        """バックエンドから読み直す。"""
        if self._local is not None:
            self._tasks = self._local.load_all()
            self._counters = self._local.load_counters()
            self._notify()
            return Ok(self.snapshot())
        assert self._remote is not None
        match self._remote.select_tasks(owner_id=self._user_id, include_public=self._include_public):
            case Ok(tasks):
                self._tasks = list(tasks)
                self._notify()
                return Ok(self.snapshot())
            case Err(e):
                return Err(e)
            case _:
                return Err(OpsError("Unexpected error"))

    # ---- 追加 / 更新 / 削除 ----

    def create(self, draft: TaskDraft) -> Result[Task, OpsError]:
        if (res := draft.validate()).is_err():
            return Err(res.unwrap_err())
        if (res := self._check_quota("task")).is_err():
            return Err(res.unwrap_err())

        _, stamp = self._now()
        task = Task(
            id="",
            title=draft.title.strip(),
            description=draft.description,
            status="ongoing",
            priority=draft.priority or "medium",
            visibility=draft.visibility or "private",
            due_date=_accepted_due_date(draft.due_date),
            created_by=self._user_id,
            position=len(self._tasks),
            created_at=stamp,
            updated_at=stamp,
            tags=normalize_tags(draft.tags),
        )

        if self._remote is not None:
            match self._remote.insert(TASKS_TABLE, _remote_record(task)):
                case Ok(row):
                    task = Task.from_dict({**task.to_dict(), **row})
                case Err(e):
                    return Err(e)
        else:
            task.id = gen_local_task_id({t.id for t in self._tasks})
            self._consume_quota("task")

        self._commit([*self._tasks, task])
        logger.info("Task created: %s", task.id)
        return Ok(task)

    def update(self, task_id: str, patch: TaskPatch) -> Result[Task, OpsError]:
        idx = self._index_of(task_id)
        if idx is None:
            return Err(NotFoundError(task_id))
        if (res := patch.validate()).is_err():
            return Err(res.unwrap_err())

        current = self._tasks[idx]
        _, stamp = self._now()
        changes: dict[str, Any] = patch.given()
        if "title" in changes:
            changes["title"] = changes["title"].strip()
        if "due_date" in changes:
            match check_due_date(changes["due_date"]):
                case Ok(value):
                    changes["due_date"] = value
                case Err(e):
                    # 期限だけ却下し、既存の期限は残す
                    logger.warning("%s; the due date was not changed", e)
                    del changes["due_date"]
        if "tags" in changes:
            changes["tags"] = normalize_tags(changes["tags"])
        if "status" in changes and changes["status"] != current.status:
            changes["completed_at"] = stamp if changes["status"] == "completed" else None
        changes["updated_at"] = stamp

        updated = replace(current, **changes)
        if self._remote is not None:
            match self._remote.update(TASKS_TABLE, task_id, changes):
                case Ok(None):
                    return Err(NotFoundError(task_id))
                case Ok(row):
                    updated = Task.from_dict({**updated.to_dict(), **row})
                case Err(e):
                    return Err(e)

        tasks = list(self._tasks)
        tasks[idx] = updated
        self._commit(tasks)
        return Ok(updated)

    def set_status(self, task_id: str, status: Status) -> Result[Task, OpsError]:
        return self.update(task_id, TaskPatch(status=status))

    def delete(self, task_id: str) -> Result[None, OpsError]:
        """タスクを削除する。存在しない id の削除は何もせず成功する。"""
        if self._remote is not None:
            if (res := self._remote.delete(TASKS_TABLE, task_id)).is_err():
                return Err(res.unwrap_err())
        if self._index_of(task_id) is None:
            return Ok(None)
        self._commit([t for t in self._tasks if t.id != task_id])
        logger.info("Task deleted: %s", task_id)
        return Ok(None)

    # ---- 期限切れ検出 ----

    def apply_sweep(self, now: datetime | None = None) -> bool:
        """期限切れの ongoing タスクを delayed にする。変更があったときだけ保存・通知する。"""
        now = now or self._clock()
        before = self._tasks
        after = sweep(before, now)
        if not has_status_changes(before, after):
            return False
        logger.info("Marked as delayed: %s", ", ".join(changed_ids(before, after)))
        self._commit(after)
        return True

    # ---- サブタスク ----

    def _replace_task(self, idx: int, task: Task) -> None:
        tasks = list(self._tasks)
        tasks[idx] = task
        self._commit(tasks)

    def add_sub_task(self, task_id: str, title: str, description: str = "") -> Result[SubTask, OpsError]:
        idx = self._index_of(task_id)
        if idx is None:
            return Err(NotFoundError(task_id))
        if not title or not title.strip():
            return Err(ValidationError("Sub-task title is required"))
        task = self._tasks[idx]
        _, stamp = self._now()
        sub = SubTask(
            id=gen_child_id("subtask", {s.id for s in task.sub_tasks}),
            title=title.strip(),
            description=description,
            position=len(task.sub_tasks),
            created_at=stamp,
            updated_at=stamp,
        )
        if self._remote is not None:
            record = {**sub.to_dict(), "task_id": task_id}
            del record["id"]
            match self._remote.insert(SUB_TASKS_TABLE, record):
                case Ok(row):
                    sub = SubTask.from_dict({**sub.to_dict(), **row})
                case Err(e):
                    return Err(e)
        self._replace_task(idx, replace(task, sub_tasks=[*task.sub_tasks, sub], updated_at=stamp))
        return Ok(sub)

    def set_sub_task_status(self, task_id: str, sub_task_id: str, status: SubTaskStatus) -> Result[SubTask, OpsError]:
        if status not in SUB_TASK_STATUSES:
            return Err(ValidationError(f"Invalid sub-task status: {status!r}"))
        idx = self._index_of(task_id)
        if idx is None:
            return Err(NotFoundError(task_id))
        task = self._tasks[idx]
        pos = next((i for i, s in enumerate(task.sub_tasks) if s.id == sub_task_id), None)
        if pos is None:
            return Err(NotFoundError(sub_task_id, kind="Sub-task"))
        _, stamp = self._now()
        completed_at = stamp if status == "completed" else None
        sub = replace(task.sub_tasks[pos], status=status, updated_at=stamp, completed_at=completed_at)
        if self._remote is not None:
            fields = {"status": status, "updated_at": stamp, "completed_at": completed_at}
            if (res := self._remote.update(SUB_TASKS_TABLE, sub_task_id, fields)).is_err():
                return Err(res.unwrap_err())
        subs = list(task.sub_tasks)
        subs[pos] = sub
        self._replace_task(idx, replace(task, sub_tasks=subs, updated_at=stamp))
        return Ok(sub)

    def delete_sub_task(self, task_id: str, sub_task_id: str) -> Result[None, OpsError]:
        idx = self._index_of(task_id)
        if idx is None:
            return Err(NotFoundError(task_id))
        task = self._tasks[idx]
        if self._remote is not None:
            if (res := self._remote.delete(SUB_TASKS_TABLE, sub_task_id)).is_err():
                return Err(res.unwrap_err())
        if all(s.id != sub_task_id for s in task.sub_tasks):
            return Ok(None)
        _, stamp = self._now()
        subs = [s for s in task.sub_tasks if s.id != sub_task_id]
        self._replace_task(idx, replace(task, sub_tasks=subs, updated_at=stamp))
        return Ok(None)

    # ---- コメント ----

    def add_comment(self, task_id: str, content: str) -> Result[Comment, OpsError]:
        idx = self._index_of(task_id)
        if idx is None:
            return Err(NotFoundError(task_id))
        if not content or not content.strip():
            return Err(ValidationError("Comment must not be empty"))
        if (res := self._check_quota("comment")).is_err():
            return Err(res.unwrap_err())
        task = self._tasks[idx]
        _, stamp = self._now()
        comment = Comment(
            id=gen_child_id("comment", {c.id for c in task.comments}),
            user_id=self._user_id,
            content=content.strip(),
            created_at=stamp,
            updated_at=stamp,
        )
        if self._remote is not None:
            record = {**comment.to_dict(), "task_id": task_id}
            del record["id"]
            match self._remote.insert(COMMENTS_TABLE, record):
                case Ok(row):
                    comment = Comment.from_dict({**comment.to_dict(), **row})
                case Err(e):
                    return Err(e)
        else:
            self._consume_quota("comment")
        self._replace_task(idx, replace(task, comments=[*task.comments, comment], updated_at=stamp))
        return Ok(comment)

    def delete_comment(self, task_id: str, comment_id: str) -> Result[None, OpsError]:
        idx = self._index_of(task_id)
        if idx is None:
            return Err(NotFoundError(task_id))
        task = self._tasks[idx]
        if self._remote is not None:
            if (res := self._remote.delete(COMMENTS_TABLE, comment_id)).is_err():
                return Err(res.unwrap_err())
        if all(c.id != comment_id for c in task.comments):
            return Ok(None)
        _, stamp = self._now()
        comments = [c for c in task.comments if c.id != comment_id]
        self._replace_task(idx, replace(task, comments=comments, updated_at=stamp))
        return Ok(None)


# ---- 設定からの生成 ---------------------------------------------------------


def open_store(
    env: dict[str, str] | None = None,
    *,
    seed: bool = True,
    remote: RemoteTasks | None = None,
) -> TaskStore:
    """設定 (config.env / PS_* 環境変数) に従って TaskStore を1つ作る。

    MODE=authenticated の場合は REMOTE_URL / REMOTE_KEY / USER_ID が必須。
    """
    env = env or load_env()
    mode = env.get("MODE", "guest")
    match mode:
        case "guest":
            return TaskStore.guest(
                LocalTaskAdapter(get_slot_store(env.get("DATA_PATH"))),
                seed=seed,
                task_quota=env_int(env, "GUEST_TASK_QUOTA"),
                comment_quota=env_int(env, "GUEST_COMMENT_QUOTA"),
            )
        case "authenticated":
            user_id = env.get("USER_ID", "")
            if remote is None:
                remote = PostgrestTasks(
                    env.get("REMOTE_URL", ""),
                    env.get("REMOTE_KEY", ""),
                    access_token=env.get("ACCESS_TOKEN") or None,
                )
            return TaskStore.authenticated(remote, user_id)
        case _:
            _msg = f"Invalid mode: {mode} (expected guest or authenticated)"
            raise ValueError(_msg)

