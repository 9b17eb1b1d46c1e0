# ruff: noqa: T201

import argparse
import asyncio
import contextlib
import sys

from result import Err, Ok

from pitstop.core.filters import all_of, by_priority, by_query, by_status, by_tag, task_sort_key
from pitstop.core.models import PRIORITIES, STATUSES, VISIBILITIES, TaskDraft, TaskPatch
from pitstop.core.ops import OpsError, TaskStore, open_store
from pitstop.core.sweeper import OverdueSweeper
from pitstop.io.json_io import export_json, import_json
from pitstop.io.std_io import format_line, print_task
from pitstop.storage import get_slot_store
from pitstop.storage.local import LocalTaskAdapter
from pitstop.util.dirs import env_float, load_env
from pitstop.util.logger import setup_logger, setup_mode

logger = setup_logger("pitstop", is_stream=True, is_file=True)


def get_store(*, seed: bool = True) -> TaskStore:
    return open_store(load_env(), seed=seed)


def _report(err: OpsError, action: str) -> int:
    _msg = f"An error occurred while {action}: {err!s}"
    logger.error(_msg)
    print(f"Error: {err!s}")
    return 1


def cmd_guest_start(args: argparse.Namespace) -> int:
    adapter = LocalTaskAdapter(get_slot_store())
    session_id = adapter.start_session(args.name)
    tasks = adapter.seed_if_empty()
    print(f"guest session: {session_id} ({adapter.guest_name()}, {len(tasks)} tasks)")
    return 0


def cmd_guest_end(args: argparse.Namespace) -> int:  # noqa: ARG001
    LocalTaskAdapter(get_slot_store()).end_session()
    print("guest session ended")
    return 0


def cmd_seed(args: argparse.Namespace) -> int:  # noqa: ARG001
    tasks = LocalTaskAdapter(get_slot_store()).seed_if_empty()
    print(f"{len(tasks)} tasks")
    return 0


def cmd_add(args: argparse.Namespace) -> int:
    st = get_store()
    draft = TaskDraft(
        title=args.title,
        description=args.description,
        priority=args.priority,
        visibility=args.visibility,
        due_date=args.due,
        tags=tuple(args.tags or ()),
    )
    match st.create(draft):
        case Ok(t):
            print(t.id)
            return 0
        case Err(e):
            return _report(e, "adding a task")
    return 1


def cmd_list(args: argparse.Namespace) -> int:
    st = get_store()
    predicates = []
    if args.status:
        predicates.append(by_status(*args.status))
    if args.priority:
        predicates.append(by_priority(*args.priority))
    if args.tag:
        predicates.append(by_tag(args.tag))
    if args.query:
        predicates.append(by_query(args.query))
    tasks = st.list(all_of(*predicates) if predicates else None)
    if args.sort:
        tasks.sort(key=task_sort_key)

    for t in tasks:
        if args.details:
            print_task(t)
            print("-" * 76)
            continue
        print(format_line(t))
    return 0


def cmd_show(args: argparse.Namespace) -> int:
    st = get_store()
    match st.get(args.id):
        case Ok(t):
            print_task(t)
            return 0
        case Err(e):
            return _report(e, "showing a task")
    return 1


def cmd_update(args: argparse.Namespace) -> int:
    st = get_store()
    given = {
        "title": args.title,
        "description": args.description,
        "status": args.status,
        "priority": args.priority,
        "visibility": args.visibility,
        "due_date": args.due,
        "tags": args.tags,
    }
    fields = {k: v for k, v in given.items() if v is not None}
    if args.clear_due:
        fields["due_date"] = None
    match TaskPatch.from_dict(fields).and_then(lambda patch: st.update(args.id, patch)):
        case Ok(t):
            print(format_line(t))
            return 0
        case Err(e):
            return _report(e, "updating a task")
    return 1


def cmd_status(args: argparse.Namespace) -> int:
    st = get_store()
    match st.set_status(args.id, args.status):
        case Ok(t):
            print(format_line(t))
            return 0
        case Err(e):
            return _report(e, "changing status")
    return 1


def cmd_rm(args: argparse.Namespace) -> int:
    st = get_store()
    match st.delete(args.id):
        case Ok(None):
            print(f"removed: {args.id}")
            return 0
        case Err(e):
            return _report(e, "removing a task")
    return 1


def cmd_comment(args: argparse.Namespace) -> int:
    st = get_store()
    match st.add_comment(args.id, args.content):
        case Ok(c):
            print(c.id)
            return 0
        case Err(e):
            return _report(e, "adding a comment")
    return 1


def cmd_subtask_add(args: argparse.Namespace) -> int:
    st = get_store()
    match st.add_sub_task(args.id, args.title, args.description or ""):
        case Ok(s):
            print(s.id)
            return 0
        case Err(e):
            return _report(e, "adding a sub-task")
    return 1


def cmd_subtask_done(args: argparse.Namespace) -> int:
    st = get_store()
    match st.set_sub_task_status(args.id, args.sub_id, "completed"):
        case Ok(s):
            print(f"completed: {s.id}")
            return 0
        case Err(e):
            return _report(e, "completing a sub-task")
    return 1


def cmd_quota(args: argparse.Namespace) -> int:  # noqa: ARG001
    st = get_store()
    for kind in ("task", "comment"):
        remaining = st.quota_remaining(kind)  # type: ignore[arg-type]
        left = "" if remaining is None else f" ({remaining} left)"
        print(f"{kind}: {st.quota_status(kind)}{left}")  # type: ignore[arg-type]
    return 0


def cmd_sweep(args: argparse.Namespace) -> int:  # noqa: ARG001
    st = get_store()
    changed = OverdueSweeper(st).tick()
    print("delayed tasks updated" if changed else "no overdue tasks")
    return 0


async def _watch(st: TaskStore, *, interval: float, seconds: float | None) -> None:
    async with OverdueSweeper(st, interval_seconds=interval):
        if seconds is None:
            await asyncio.Event().wait()
        else:
            await asyncio.sleep(seconds)


def cmd_watch(args: argparse.Namespace) -> int:
    env = load_env()
    st = open_store(env)
    interval = args.interval or env_float(env, "SWEEP_INTERVAL", minimum=0.1)

    def _on_change(tasks: list) -> None:
        delayed = sum(1 for t in tasks if t.status == "delayed")
        print(f"{len(tasks)} tasks ({delayed} delayed)")

    unsubscribe = st.subscribe(_on_change)
    try:
        with contextlib.suppress(KeyboardInterrupt):
            asyncio.run(_watch(st, interval=interval, seconds=args.seconds))
    finally:
        unsubscribe()
    return 0


def cmd_export(args: argparse.Namespace) -> int:
    st = get_store(seed=False)
    try:
        export_json(st.list(), args.path)
    except FileExistsError as e:
        print(f"Error: {e!s}")
        return 1
    print(f"exported to {args.path}")
    return 0


def cmd_import(args: argparse.Namespace) -> int:
    st = get_store(seed=False)
    try:
        incoming = import_json(args.path)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: {e!s}")
        return 1
    for t in incoming:
        draft = TaskDraft(
            title=t.title,
            description=t.description,
            priority=t.priority,
            visibility=t.visibility,
            due_date=t.due_date,
            tags=tuple(t.tags),
        )
        # 取り込みも通常の作成と同じくクォータの対象
        match st.create(draft):
            case Ok(created):
                print(f"imported: {t.id} -> {created.id}")
            case Err(e):
                return _report(e, f"importing {t.id}")
    print(f"imported from {args.path}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="pitstop", description="PitStop task store")
    p.add_argument("--debug", action="store_true", help="debug mode")
    sub = p.add_subparsers(dest="cmd", required=True)

    # guest session
    sp = sub.add_parser("guest-start", help="start a guest session (seeds sample tasks)")
    sp.add_argument("--name", help="guest display name")
    sp.set_defaults(func=cmd_guest_start)

    sp = sub.add_parser("guest-end", help="end the guest session and discard its data")
    sp.set_defaults(func=cmd_guest_end)

    sp = sub.add_parser("seed", help="write sample tasks if the guest slot is empty")
    sp.set_defaults(func=cmd_seed)

    # add
    sp = sub.add_parser("add", help="add a task")
    sp.add_argument("title")
    sp.add_argument("--description")
    sp.add_argument("--due", help="due date in ISO format")
    sp.add_argument("--priority", choices=PRIORITIES)
    sp.add_argument("--visibility", choices=VISIBILITIES)
    sp.add_argument("--tags", nargs="*")
    sp.set_defaults(func=cmd_add)

    # list
    sp = sub.add_parser("list", help="list tasks")
    sp.add_argument("--status", nargs="*", choices=STATUSES)
    sp.add_argument("--priority", nargs="*", choices=PRIORITIES)
    sp.add_argument("--tag")
    sp.add_argument("--query")
    sp.add_argument("--sort", action="store_true", help="sort by priority and due date")
    sp.add_argument("--details", action="store_true", help="show detailed information")
    sp.set_defaults(func=cmd_list)

    # show
    sp = sub.add_parser("show", help="show task")
    sp.add_argument("id")
    sp.set_defaults(func=cmd_show)

    # update
    sp = sub.add_parser("update", help="update fields of a task")
    sp.add_argument("id")
    sp.add_argument("--title")
    sp.add_argument("--description")
    sp.add_argument("--status", choices=STATUSES)
    sp.add_argument("--priority", choices=PRIORITIES)
    sp.add_argument("--visibility", choices=VISIBILITIES)
    sp.add_argument("--due", help="due date in ISO format")
    sp.add_argument("--clear-due", action="store_true", help="remove the due date")
    sp.add_argument("--tags", nargs="*")
    sp.set_defaults(func=cmd_update)

    # status
    sp = sub.add_parser("status", help="change status of a task")
    sp.add_argument("id")
    sp.add_argument("status", choices=STATUSES)
    sp.set_defaults(func=cmd_status)

    # rm
    sp = sub.add_parser("rm", help="remove a task")
    sp.add_argument("id")
    sp.set_defaults(func=cmd_rm)

    # comments / sub-tasks
    sp = sub.add_parser("comment", help="add a comment to a task")
    sp.add_argument("id")
    sp.add_argument("content")
    sp.set_defaults(func=cmd_comment)

    sp = sub.add_parser("subtask-add", help="add a sub-task")
    sp.add_argument("id")
    sp.add_argument("title")
    sp.add_argument("--description")
    sp.set_defaults(func=cmd_subtask_add)

    sp = sub.add_parser("subtask-done", help="complete a sub-task")
    sp.add_argument("id")
    sp.add_argument("sub_id")
    sp.set_defaults(func=cmd_subtask_done)

    # quota
    sp = sub.add_parser("quota", help="show guest quota status")
    sp.set_defaults(func=cmd_quota)

    # overdue detection
    sp = sub.add_parser("sweep", help="mark overdue ongoing tasks as delayed (once)")
    sp.set_defaults(func=cmd_sweep)

    sp = sub.add_parser("watch", help="run the overdue sweeper periodically")
    sp.add_argument("--interval", type=float, help="seconds between sweeps")
    sp.add_argument("--seconds", type=float, help="stop after this many seconds")
    sp.set_defaults(func=cmd_watch)

    # export / import
    sp = sub.add_parser("export", help="export to json")
    sp.add_argument("path")
    sp.set_defaults(func=cmd_export)

    sp = sub.add_parser("import", help="import from json")
    sp.add_argument("path")
    sp.set_defaults(func=cmd_import)

    return p


def main(argv: list[str] | None = None) -> int:
    argv = argv if argv is not None else sys.argv[1:]
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_mode(is_debug=args.debug)
    try:
        return args.func(args)  # type: ignore[no-any-return]
    except ValueError as e:
        # 設定の誤り (MODE / DATA_PATH / REMOTE_URL など)
        print(f"Error: {e!s}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
