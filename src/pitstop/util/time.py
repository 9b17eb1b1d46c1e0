from datetime import UTC, datetime

from result import Err, Ok, Result

ISO_FMT = "%Y-%m-%dT%H:%M:%S"


def now_utc() -> datetime:
    return datetime.now(UTC)


def to_iso(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def now_iso() -> str:
    return to_iso(now_utc())


def parse_iso(s: str | None) -> Result[datetime, str]:
    """ISO-8601 文字列を UTC aware な datetime に変換する。

    タイムゾーンの無い値は UTC として扱う。日付のみ (YYYY-MM-DD) も受け付ける。
    """
    if not isinstance(s, str):
        return Err("Empty timestamp" if s is None else f"Invalid timestamp: {s!r} (not a string)")
    raw = s.strip()
    if not raw:
        return Err("Empty timestamp")
    try:
        dt = datetime.fromisoformat(raw)
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=UTC)
        return Ok(dt.astimezone(UTC))
    except (TypeError, ValueError, OverflowError) as e:
        return Err(f"Invalid timestamp: {raw!r} ({e!s})")
