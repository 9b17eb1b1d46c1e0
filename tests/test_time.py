import re
from datetime import UTC, datetime, timedelta, timezone

from pitstop.util.time import now_iso, parse_iso, to_iso


def test_to_iso_uses_milliseconds_and_z_suffix() -> None:
    assert to_iso(datetime(2025, 1, 1, tzinfo=UTC)) == "2025-01-01T00:00:00.000Z"


def test_to_iso_treats_naive_as_utc() -> None:
    assert to_iso(datetime(2025, 1, 1, 12, 30)) == "2025-01-01T12:30:00.000Z"


def test_to_iso_converts_offsets_to_utc() -> None:
    jst = timezone(timedelta(hours=9))
    assert to_iso(datetime(2025, 1, 1, 9, 0, tzinfo=jst)) == "2025-01-01T00:00:00.000Z"


def test_now_iso_format() -> None:
    assert re.fullmatch(r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z", now_iso())


def test_parse_iso_accepts_z_suffix() -> None:
    r = parse_iso("2020-01-01T00:00:00Z")
    assert r.is_ok()
    assert r.unwrap() == datetime(2020, 1, 1, tzinfo=UTC)


def test_parse_iso_date_only_and_naive_are_utc() -> None:
    assert parse_iso("2020-01-01").unwrap() == datetime(2020, 1, 1, tzinfo=UTC)
    assert parse_iso("2020-01-01T10:00:00").unwrap().tzinfo is not None


def test_parse_iso_roundtrip_with_to_iso() -> None:
    dt = datetime(2024, 6, 30, 23, 59, 59, 123000, tzinfo=UTC)
    assert parse_iso(to_iso(dt)).unwrap() == dt


def test_parse_iso_rejects_garbage_and_empty() -> None:
    assert parse_iso("not-a-date").is_err()
    assert parse_iso("").is_err()
    assert parse_iso("   ").is_err()
    assert parse_iso(None).is_err()


def test_parse_iso_rejects_non_strings() -> None:
    assert parse_iso(20200101).is_err()  # type: ignore[arg-type]
    assert parse_iso(["2020-01-01"]).is_err()  # type: ignore[arg-type]


def test_parse_iso_out_of_range_offset_is_err() -> None:
    """UTC へ変換すると範囲外になる値は例外ではなく Err"""
    assert parse_iso("0001-01-01T00:00:00+05:00").is_err()
    assert parse_iso("9999-12-31T23:00:00-05:00").is_err()
