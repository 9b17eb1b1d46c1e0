# ruff: noqa: T201

from pitstop.core.models import Task, progress

_STATUS_MARKS = {"ongoing": "O", "completed": "C", "delayed": "D", "cancelled": "X"}


def format_line(t: Task) -> str:
    mark = _STATUS_MARKS.get(t.status, "?")
    due = f" | due {t.due_date}" if t.due_date else ""
    pct = progress(t)
    extra = f" | {pct}%" if pct is not None else ""
    return f"[{mark}] {t.id} | {t.priority} | {t.status}{due}{extra} | {t.title}"


def print_task(t: Task) -> None:
    print(f"id: {t.id}")
    print(f"title: {t.title}")
    print(f"status: {t.status}  priority: {t.priority}  visibility: {t.visibility}")
    print(f"due: {t.due_date}  completed_at: {t.completed_at}")
    print(f"created_by: {t.created_by}")
    print(f"created_at: {t.created_at}  updated_at: {t.updated_at}")
    if t.description:
        print(f"description: {t.description}")
    if t.tags:
        print(f"tags: {t.tags}")
    if t.sub_tasks:
        print(f"sub_tasks: ({progress(t)}%)")
        for s in t.sub_tasks:
            box = "x" if s.status == "completed" else " "
            print(f"  [{box}] {s.id} {s.title}")
    if t.comments:
        print("comments:")
        for c in t.comments:
            print(f"  - {c.user_id}: {c.content}")
