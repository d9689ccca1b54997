"""
Tests for lenient date / timestamp parsing.

Covers:
  - explicit offsets and Z
  - UTC / GMT suffixes
  - timezone abbreviations stripped and read as local time
  - calendar date formats
  - garbage -> None (never raises), including values that overflow in UTC
"""

from datetime import date, datetime, timedelta, timezone

import pytest

from testhub.utils.dates import parse_date, parse_datetime


def _local_as_utc(*args):
    return datetime(*args).astimezone().astimezone(timezone.utc)


def test_zulu_timestamp():
    assert parse_datetime("2024-01-15T10:30:00Z") == datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)


def test_explicit_offset_converted_to_utc():
    parsed = parse_datetime("2024-01-15T10:30:00+05:30")
    assert parsed == datetime(2024, 1, 15, 5, 0, tzinfo=timezone.utc)
    assert parsed.utcoffset() == timedelta(0)


@pytest.mark.parametrize("raw", ["2024-01-15 10:30:00 UTC", "2024-01-15T10:30:00 GMT"])
def test_utc_suffix(raw):
    assert parse_datetime(raw) == datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)


def test_abbreviation_is_stripped_and_read_as_local():
    assert parse_datetime("2024-01-15T10:30:00 IST") == _local_as_utc(2024, 1, 15, 10, 30)


def test_java_date_string():
    assert parse_datetime("Mon Jan 15 10:30:00 IST 2024") == _local_as_utc(2024, 1, 15, 10, 30)


def test_naive_datetime_object_is_made_aware():
    parsed = parse_datetime(datetime(2024, 1, 15, 10, 30))
    assert parsed.tzinfo is not None


@pytest.mark.parametrize("raw", [None, "", "   ", "not a date", "2024-13-45"])
def test_unparseable_timestamp_is_none(raw):
    assert parse_datetime(raw) is None


@pytest.mark.parametrize("raw, expected", [
    ("2024-03-01", date(2024, 3, 1)),
    ("2024/03/01", date(2024, 3, 1)),
    ("01.03.2024", date(2024, 3, 1)),
    ("03/01/2024", date(2024, 3, 1)),
    ("2024-03-01T09:00:00Z", date(2024, 3, 1)),
    (datetime(2024, 3, 1, 23, 59), date(2024, 3, 1)),
    (date(2024, 3, 1), date(2024, 3, 1)),
])
def test_parse_date(raw, expected):
    assert parse_date(raw) == expected


@pytest.mark.parametrize("raw", [None, "", "tomorrow", "31.02.2024"])
def test_bad_date_is_none(raw):
    assert parse_date(raw) is None


@pytest.mark.parametrize("raw", [
    "9999-12-31T23:59:59-05:00",
    "0001-01-01T00:00:00+05:00",
    datetime(9999, 12, 31, 23, 59, tzinfo=timezone(timedelta(hours=-5))),
])
def test_timestamp_outside_utc_calendar_is_none(raw):
    assert parse_datetime(raw) is None


def test_out_of_range_datetime_string_is_not_a_date():
    assert parse_date("9999-12-31T23:59:59-05:00") is None
