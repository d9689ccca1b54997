"""
Tests for the column-header normalizer.

Covers:
  - English / Japanese / spacing / casing / separator variants
  - unknown headers pass through unchanged
  - get_value on pre-normalized and raw-header rows
  - normalize_row keeps the first of two synonymous columns
  - import template spellings, per-kind readings of 環境
"""

import pytest

from testhub.services.field_normalizer import (
    CanonicalField,
    KnownField,
    UnknownHeader,
    cell_text,
    get_value,
    normalize,
    normalize_row,
    overrides_for,
)


@pytest.mark.parametrize("header, expected", [
    ("Title", CanonicalField.TITLE),
    ("  TITLE  ", CanonicalField.TITLE),
    ("Test Case Name", CanonicalField.TITLE),
    ("Expected Result", CanonicalField.EXPECTED_RESULT),
    ("expected_result", CanonicalField.EXPECTED_RESULT),
    ("ExpectedResult", CanonicalField.EXPECTED_RESULT),
    ("期待結果", CanonicalField.EXPECTED_RESULT),
    ("test_steps", CanonicalField.TEST_STEPS),
    ("Test-Steps", CanonicalField.TEST_STEPS),
    ("手順", CanonicalField.TEST_STEPS),
    ("対象", CanonicalField.TARGET_TYPE),
    ("target type", CanonicalField.TARGET_TYPE),
    ("Target   Type", CanonicalField.TARGET_TYPE),
    ("Defect ID", CanonicalField.DEFECT_ID),
    ("不具合ID", CanonicalField.DEFECT_ID),
    ("Assigned To", CanonicalField.ASSIGNED_TO),
    ("Due Date", CanonicalField.DUE_DATE),
    ("優先度", CanonicalField.PRIORITY),
])
def test_known_headers_resolve(header, expected):
    assert normalize(header) == KnownField(expected)


def test_full_width_header_is_folded():
    # Full-width Latin letters fold to ASCII under NFKC.
    assert normalize("Ｐｒｉｏｒｉｔｙ") == KnownField(CanonicalField.PRIORITY)


def test_unknown_header_passes_through():
    match = normalize("  Sprint Owner ")
    assert match == UnknownHeader("Sprint Owner")
    assert match.key == "Sprint Owner"


def test_known_field_key_is_canonical_value():
    assert normalize("期待結果").key == "expectedResult"


def test_get_value_direct_canonical_key():
    row = {"title": "Login works", "expectedResult": "Home screen"}
    assert get_value(row, CanonicalField.TITLE) == "Login works"
    assert get_value(row, CanonicalField.EXPECTED_RESULT) == "Home screen"


def test_get_value_scans_raw_headers():
    row = {"テストケース名": "ログイン", "Expected Result": "OK"}
    assert get_value(row, CanonicalField.TITLE) == "ログイン"
    assert get_value(row, CanonicalField.EXPECTED_RESULT) == "OK"


def test_get_value_missing_field_is_none():
    assert get_value({"Title": "x"}, CanonicalField.SEVERITY) is None


def test_normalize_row_rekeys_and_keeps_first_synonym():
    row = {"Title": "First", "Name": "Second", "Custom": 3}
    assert normalize_row(row) == {"title": "First", "Custom": 3}


@pytest.mark.parametrize("value, expected", [
    (None, ""),
    ("  padded  ", "padded"),
    (30.0, "30"),
    (2.5, "2.5"),
    (7, "7"),
])
def test_cell_text(value, expected):
    assert cell_text(value) == expected


F = CanonicalField

# Column spellings used by the test-case and defect import templates.
TESTCASE_TEMPLATE_COLUMNS = [
    ("Test Case Title", F.TITLE), ("testcase title", F.TITLE),
    ("Test Case ID", F.TEST_CASE), ("testcase id", F.TEST_CASE),
    ("Module / Feature", F.MODULE), ("module/feature", F.MODULE), ("feature", F.MODULE),
    ("Preconditions", F.PRECONDITIONS),
    ("Test Steps", F.TEST_STEPS), ("teststeps", F.TEST_STEPS),
    ("Test Data", F.TEST_DATA), ("testdata", F.TEST_DATA),
    ("Expected Result", F.EXPECTED_RESULT), ("expectedresult", F.EXPECTED_RESULT),
    ("Defect ID", F.DEFECT_ID), ("defectid", F.DEFECT_ID), ("defect", F.DEFECT_ID),
    ("Estimated Time (minutes)", F.ESTIMATED_TIME),
    ("Postconditions", F.POSTCONDITIONS),
    ("Test Suites", F.TESTSUITE), ("testsuite", F.TESTSUITE),
    ("Assertion-ID", F.ASSERTION_ID), ("assertionid", F.ASSERTION_ID),
    ("RTC-ID", F.RTC_ID), ("rtc id", F.RTC_ID), ("rtcid", F.RTC_ID),
    ("Flow-ID", F.FLOW_ID), ("flow id", F.FLOW_ID), ("flowid", F.FLOW_ID),
    ("Layer", F.LAYER),
    ("対象", F.TARGET_TYPE), ("対象（API/画面）", F.TARGET_TYPE),
    ("対象（api / 画面）", F.TARGET_TYPE), ("targettype", F.TARGET_TYPE),
    ("根拠", F.EVIDENCE), ("根拠（ドキュメント）", F.EVIDENCE), ("Evidence", F.EVIDENCE),
    ("備考", F.NOTES), ("Notes", F.NOTES),
    ("自動化", F.AUTOMATION), ("Automation", F.AUTOMATION), ("isAutomated", F.AUTOMATION),
    ("環境", F.PLATFORMS), ("環境（iOS / Android / Web）", F.PLATFORMS),
    ("環境（ios / android / web）", F.PLATFORMS), ("Platforms", F.PLATFORMS),
    ("テスト種別", F.TEST_TYPE), ("testType", F.TEST_TYPE),
]

DEFECT_TEMPLATE_COLUMNS = [
    ("Defect Title / Summary", F.TITLE), ("defect title", F.TITLE), ("summary", F.TITLE),
    ("Description", F.DESCRIPTION), ("Severity", F.SEVERITY), ("Priority", F.PRIORITY),
    ("Status", F.STATUS), ("Environment", F.ENVIRONMENT), ("環境", F.ENVIRONMENT),
    ("Reported By", F.REPORTED_BY), ("reportedby", F.REPORTED_BY),
    ("Reported Date", F.REPORTED_DATE), ("reporteddate", F.REPORTED_DATE),
    ("Assigned To", F.ASSIGNED_TO), ("assignedto", F.ASSIGNED_TO),
    ("Due Date", F.DUE_DATE), ("duedate", F.DUE_DATE),
]


@pytest.mark.parametrize("header, expected", TESTCASE_TEMPLATE_COLUMNS)
def test_testcase_template_columns(header, expected):
    assert normalize(header, overrides_for("testcases")) == KnownField(expected)


@pytest.mark.parametrize("header, expected", DEFECT_TEMPLATE_COLUMNS)
def test_defect_template_columns(header, expected):
    assert normalize(header, overrides_for("defects")) == KnownField(expected)


def test_environment_without_kind_is_environment():
    assert normalize("環境") == KnownField(F.ENVIRONMENT)
    assert overrides_for(None) is None


def test_parenthesised_hint_on_unknown_base_still_unknown():
    assert normalize("Sprint Owner (backup)") == UnknownHeader("Sprint Owner (backup)")


def test_get_value_and_normalize_row_honour_overrides():
    row = {"タイトル": "A", "環境": "iOS"}
    overrides = overrides_for("testcases")
    assert get_value(row, F.PLATFORMS, overrides) == "iOS"
    assert get_value(row, F.PLATFORMS) is None
    assert normalize_row(row, overrides) == {"title": "A", "platforms": "iOS"}
