from pitstop.core.filters import all_of, by_priority, by_query, by_status, by_tag, by_visibility, task_sort_key
from pitstop.core.models import Task

TASKS = [
    Task(id="a", title="Write report", priority="low", status="completed", tags=["work"]),
    Task(id="b", title="Buy milk", description="and BREAD", priority="urgent", visibility="public"),
    Task(id="c", title="Fix bike", priority="urgent", due_date="2025-01-01T00:00:00.000Z", tags=["home"]),
    Task(id="d", title="Call mom", priority="medium", position=1),
]


def test_by_status_and_priority() -> None:
    assert [t.id for t in TASKS if by_status("ongoing")(t)] == ["b", "c", "d"]
    assert [t.id for t in TASKS if by_priority("urgent", "low")(t)] == ["a", "b", "c"]


def test_by_visibility_and_tag() -> None:
    assert [t.id for t in TASKS if by_visibility("public")(t)] == ["b"]
    assert [t.id for t in TASKS if by_tag("home")(t)] == ["c"]


def test_by_query_is_case_insensitive() -> None:
    assert [t.id for t in TASKS if by_query("bread")(t)] == ["b"]
    assert [t.id for t in TASKS if by_query("FIX")(t)] == ["c"]
    assert len([t for t in TASKS if by_query("  ")(t)]) == len(TASKS)


def test_all_of() -> None:
    pred = all_of(by_status("ongoing"), by_priority("urgent"))
    assert [t.id for t in TASKS if pred(t)] == ["b", "c"]


def test_sort_key() -> None:
    """優先度降順、同じ優先度なら期限ありが先"""
    ordered = sorted(TASKS, key=task_sort_key)
    assert [t.id for t in ordered] == ["c", "b", "d", "a"]


def test_by_query_on_corrupt_record() -> None:
    """説明が文字列でないレコードでも検索は落ちない"""
    t = Task.from_dict({"id": "z", "title": "Zebra", "description": 42})
    assert by_query("zeb")(t)
    assert not by_query("42")(t)
