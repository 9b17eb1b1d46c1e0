import contextlib
import io

from pitstop.core.models import Comment, SubTask, Task
from pitstop.io.std_io import format_line, print_task


def test_format_line() -> None:
    t = Task(id="a", title="Title", status="delayed", priority="high", due_date="2025-01-01T00:00:00.000Z")
    assert format_line(t) == "[D] a | high | delayed | due 2025-01-01T00:00:00.000Z | Title"


def test_format_line_with_progress() -> None:
    t = Task(id="a", title="T", sub_tasks=[SubTask(id="1", title="1", status="completed"), SubTask(id="2", title="2")])
    assert "| 50% |" in format_line(t)


def test_print_task() -> None:
    t = Task(
        id="a",
        title="T",
        description="desc",
        tags=["x"],
        sub_tasks=[SubTask(id="s1", title="Step", status="completed")],
        comments=[Comment(id="c1", user_id="guest", content="hello")],
    )
    buf = io.StringIO()
    with contextlib.redirect_stdout(buf):
        print_task(t)
    out = buf.getvalue()
    assert "id: a" in out
    assert "description: desc" in out
    assert "[x] s1 Step" in out
    assert "guest: hello" in out
