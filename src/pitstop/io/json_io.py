import json
from collections.abc import Sequence
from pathlib import Path

from pitstop.core.models import Task


def export_json(tasks: Sequence[Task], path: str) -> None:
    data = [t.to_dict() for t in tasks]
    _path = Path(path)
    if _path.exists():
        _msg = f"File already exists: {_path}"
        raise FileExistsError(_msg)
    with _path.open("w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=2)


def import_json(path: str) -> list[Task]:
    _path = Path(path)
    if not _path.exists():
        _msg = f"File not found: {_path}"
        raise FileNotFoundError(_msg)
    with _path.open(encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, list):
        _msg = f"Expected a JSON array of tasks: {_path}"
        raise ValueError(_msg)
    return [Task.from_dict(td) for td in data if isinstance(td, dict)]
