from collections.abc import Callable

from pitstop.core.models import PRIORITIES, Task

TaskPredicate = Callable[[Task], bool]

_PRIORITY_RANK = {p: i for i, p in enumerate(PRIORITIES)}


def by_status(*statuses: str) -> TaskPredicate:
    wanted = set(statuses)
    return lambda t: t.status in wanted


def by_priority(*priorities: str) -> TaskPredicate:
    wanted = set(priorities)
    return lambda t: t.priority in wanted


def by_visibility(visibility: str) -> TaskPredicate:
    return lambda t: t.visibility == visibility


def by_tag(tag: str) -> TaskPredicate:
    return lambda t: tag in t.tags


def by_query(query: str) -> TaskPredicate:
    """タイトル / 説明の部分一致 (大文字小文字を区別しない)。"""
    q = query.strip().lower()
    if not q:
        return lambda _t: True
    return lambda t: q in t.title.lower() or q in (t.description or "").lower()


def all_of(*predicates: TaskPredicate) -> TaskPredicate:
    return lambda t: all(p(t) for p in predicates)


def task_sort_key(t: Task) -> tuple[int, str, int, str]:
    # priority 降順 → due_date (無いものは後ろ) → position → id
    due = t.due_date or "9999-12-31T23:59:59"
    return (-_PRIORITY_RANK.get(t.priority, 0), due, t.position, t.id)
