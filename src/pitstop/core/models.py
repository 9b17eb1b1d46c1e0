from dataclasses import asdict, dataclass, field, fields
from datetime import UTC, datetime
from typing import Any, Final, Literal, get_args

from result import Err, Ok, Result

from pitstop.core.errors import ValidationError
from pitstop.util.ids import gen_local_task_id
from pitstop.util.time import now_iso, parse_iso

Status = Literal["ongoing", "completed", "delayed", "cancelled"]
SubTaskStatus = Literal["ongoing", "completed", "cancelled"]
Priority = Literal["low", "medium", "high", "urgent"]
Visibility = Literal["public", "private"]

STATUSES: tuple[str, ...] = get_args(Status)
SUB_TASK_STATUSES: tuple[str, ...] = get_args(SubTaskStatus)
PRIORITIES: tuple[str, ...] = get_args(Priority)
VISIBILITIES: tuple[str, ...] = get_args(Visibility)

GUEST_OWNER: Final = "guest"
MAX_TAGS: Final = 10
UNTITLED: Final = "untitled task"


class _Unset:
    """TaskPatch で「指定なし」を表す番兵。None (値のクリア) と区別するために使う。"""

    _instance: "_Unset | None" = None

    def __new__(cls) -> "_Unset":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Final = _Unset()


def _coerce(value: Any, allowed: tuple[str, ...], default: str) -> str:
    return value if isinstance(value, str) and value in allowed else default


def _opt_str(value: Any) -> str | None:
    # 文字列以外 (壊れたレコード) は None として扱う
    return value if isinstance(value, str) else None


def normalize_tags(tags: Any) -> list[str]:
    # 空白除去 / 空文字除外 / 重複除外 (先勝ち) / 上限 MAX_TAGS
    if not tags:
        return []
    out: list[str] = []
    for tag in tags:
        s = str(tag).strip()
        if s and s not in out:
            out.append(s)
        if len(out) >= MAX_TAGS:
            break
    return out


@dataclass
class SubTask:
    id: str
    title: str
    description: str = ""
    status: SubTaskStatus = "ongoing"
    position: int = 0
    created_at: str = field(default_factory=now_iso)
    updated_at: str = field(default_factory=now_iso)
    completed_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @staticmethod
    def from_dict(d: dict[str, Any]) -> "SubTask":
        return SubTask(
            id=str(d.get("id") or ""),
            title=str(d.get("title") or UNTITLED),
            description=str(d.get("description") or ""),
            status=_coerce(d.get("status"), SUB_TASK_STATUSES, "ongoing"),  # type: ignore[arg-type]
            position=int(d.get("position") or 0),
            created_at=str(d.get("created_at") or now_iso()),
            updated_at=str(d.get("updated_at") or now_iso()),
            completed_at=d.get("completed_at"),
        )


@dataclass
class Comment:
    id: str
    user_id: str
    content: str
    created_at: str = field(default_factory=now_iso)
    updated_at: str = field(default_factory=now_iso)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @staticmethod
    def from_dict(d: dict[str, Any]) -> "Comment":
        return Comment(
            id=str(d.get("id") or ""),
            user_id=str(d.get("user_id") or GUEST_OWNER),
            content=str(d.get("content") or ""),
            created_at=str(d.get("created_at") or now_iso()),
            updated_at=str(d.get("updated_at") or now_iso()),
        )


@dataclass
class Task:
    id: str
    title: str
    created_by: str = GUEST_OWNER
    description: str | None = None
    status: Status = "ongoing"
    priority: Priority = "medium"
    visibility: Visibility = "private"
    due_date: str | None = None
    position: int = 0
    created_at: str = field(default_factory=now_iso)
    updated_at: str = field(default_factory=now_iso)
    completed_at: str | None = None
    tags: list[str] = field(default_factory=list)
    sub_tasks: list[SubTask] = field(default_factory=list)
    comments: list[Comment] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @staticmethod
    def from_dict(d: dict[str, Any]) -> "Task":
        """辞書から Task を復元する。

        必須フィールドが欠けていても補完し、未知の status / priority / visibility は
        既定値に戻す。手で編集されたスロットで sweeper が落ちないようにするため。
        """
        return Task(
            id=str(d.get("id") or gen_local_task_id()),
            title=str(d.get("title") or UNTITLED),
            created_by=str(d.get("created_by") or GUEST_OWNER),
            description=_opt_str(d.get("description")),
            status=_coerce(d.get("status"), STATUSES, "ongoing"),  # type: ignore[arg-type]
            priority=_coerce(d.get("priority"), PRIORITIES, "medium"),  # type: ignore[arg-type]
            visibility=_coerce(d.get("visibility"), VISIBILITIES, "private"),  # type: ignore[arg-type]
            due_date=_opt_str(d.get("due_date")) or None,
            position=int(d.get("position") or 0),
            created_at=str(d.get("created_at") or now_iso()),
            updated_at=str(d.get("updated_at") or now_iso()),
            completed_at=d.get("completed_at"),
            tags=normalize_tags(d.get("tags")),
            sub_tasks=[SubTask.from_dict(s) for s in d.get("sub_tasks") or [] if isinstance(s, dict)],
            comments=[Comment.from_dict(c) for c in d.get("comments") or [] if isinstance(c, dict)],
        )


def is_overdue(task: Task, now: datetime) -> bool:
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    if task.status != "ongoing" or not task.due_date:
        return False
    match parse_iso(task.due_date):
        case Ok(due):
            return bool(due < now)
        case _:
            return False


def progress(task: Task) -> int | None:
    """完了済みサブタスクの割合 (0-100)。サブタスクが無ければ None。"""
    if not task.sub_tasks:
        return None
    done = sum(1 for s in task.sub_tasks if s.status == "completed")
    return round(done * 100 / len(task.sub_tasks))


# ---- 入力 (作成 / 更新) ----------------------------------------------------


def _check_choice(name: str, value: Any, allowed: tuple[str, ...]) -> Result[None, ValidationError]:
    if value is None or value is UNSET or value in allowed:
        return Ok(None)
    _msg = f"Invalid {name}: {value!r} (expected one of {', '.join(allowed)})"
    return Err(ValidationError(_msg))


def _check_unknown_keys(d: dict[str, Any], allowed: set[str], what: str) -> Result[None, ValidationError]:
    unknown = sorted(set(d) - allowed)
    if unknown:
        _msg = f"Unknown {what} fields: {', '.join(unknown)}"
        return Err(ValidationError(_msg))
    return Ok(None)


@dataclass(frozen=True)
class TaskDraft:
    title: str
    description: str | None = None
    priority: Priority | None = None
    visibility: Visibility | None = None
    due_date: str | None = None
    tags: tuple[str, ...] = ()

    def validate(self) -> Result[None, ValidationError]:
        if not self.title or not self.title.strip():
            return Err(ValidationError("Title is required"))
        for name, value, allowed in (
            ("priority", self.priority, PRIORITIES),
            ("visibility", self.visibility, VISIBILITIES),
        ):
            if (res := _check_choice(name, value, allowed)).is_err():
                return res
        return Ok(None)

    @staticmethod
    def from_dict(d: dict[str, Any]) -> Result["TaskDraft", ValidationError]:
        match _check_unknown_keys(d, {f.name for f in fields(TaskDraft)}, "task"):
            case Err(e):
                return Err(e)
        draft = TaskDraft(
            title=str(d.get("title") or ""),
            description=_opt_str(d.get("description")),
            priority=d.get("priority"),
            visibility=d.get("visibility"),
            due_date=d.get("due_date"),
            tags=(d["tags"],) if isinstance(d.get("tags"), str) else tuple(d.get("tags") or ()),
        )
        return draft.validate().map(lambda _: draft)


@dataclass(frozen=True)
class TaskPatch:
    """更新可能なフィールドを列挙したパッチ。UNSET のフィールドは変更しない。

    due_date / description に None を渡すと値をクリアする。
    """

    title: str | _Unset = UNSET
    description: str | None | _Unset = UNSET
    status: Status | _Unset = UNSET
    priority: Priority | _Unset = UNSET
    visibility: Visibility | _Unset = UNSET
    due_date: str | None | _Unset = UNSET
    tags: tuple[str, ...] | list[str] | _Unset = UNSET

    def given(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not UNSET}

    def is_empty(self) -> bool:
        return not self.given()

    def validate(self) -> Result[None, ValidationError]:
        if self.title is not UNSET and (not isinstance(self.title, str) or not self.title.strip()):
            return Err(ValidationError("Title must not be empty"))
        for name, value, allowed in (
            ("status", self.status, STATUSES),
            ("priority", self.priority, PRIORITIES),
            ("visibility", self.visibility, VISIBILITIES),
        ):
            if value is None:
                return Err(ValidationError(f"{name} must not be null"))
            if (res := _check_choice(name, value, allowed)).is_err():
                return res
        return Ok(None)

    @staticmethod
    def from_dict(d: dict[str, Any]) -> Result["TaskPatch", ValidationError]:
        match _check_unknown_keys(d, {f.name for f in fields(TaskPatch)}, "patch"):
            case Err(e):
                return Err(e)
        patch = TaskPatch(**d)
        return patch.validate().map(lambda _: patch)
