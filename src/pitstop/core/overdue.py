from collections.abc import Sequence
from dataclasses import replace
from datetime import datetime

from pitstop.core.models import Task, is_overdue
from pitstop.util.time import to_iso


def sweep(tasks: Sequence[Task], now: datetime) -> list[Task]:
    """期限切れの ongoing タスクを delayed にした新しい列を返す。

    変更対象のタスクだけコピーを作り、それ以外は同一オブジェクトのまま返す。
    入力の列とタスクは変更しない。
    """
    stamp = to_iso(now)
    return [replace(t, status="delayed", updated_at=stamp) if is_overdue(t, now) else t for t in tasks]


def has_status_changes(before: Sequence[Task], after: Sequence[Task]) -> bool:
    # 位置ごとの比較 (sweep は列の長さと順序を変えない)
    if len(before) != len(after):
        return True
    return any(b.status != a.status for b, a in zip(before, after, strict=True))


def changed_ids(before: Sequence[Task], after: Sequence[Task]) -> list[str]:
    return [a.id for b, a in zip(before, after, strict=False) if b.status != a.status]
