"""
Tests for layer / target type / test type / automation / platforms normalization.

Covers:
  - English and Japanese synonyms
  - blank -> None, unrecognized -> UNKNOWN
  - platform splitting on mixed separators with de-duplication
  - Web(SP) and "Native" platform labels
"""

import pytest

from testhub.services.attribute_normalizer import (
    UNKNOWN,
    normalize_automation,
    normalize_layer,
    normalize_platforms,
    normalize_target_type,
    normalize_test_type,
)


@pytest.mark.parametrize("raw, expected", [
    ("smoke", "SMOKE"),
    ("  Core ", "CORE"),
    ("拡張", "EXTENDED"),
    ("sanity", UNKNOWN),
    ("", None),
    (None, None),
])
def test_normalize_layer(raw, expected):
    assert normalize_layer(raw) == expected


@pytest.mark.parametrize("raw, expected", [
    ("API", "API"),
    ("画面", "SCREEN"),
    ("ui", "SCREEN"),
    ("batch", UNKNOWN),
    ("   ", None),
])
def test_normalize_target_type(raw, expected):
    assert normalize_target_type(raw) == expected


@pytest.mark.parametrize("raw, expected", [
    ("正常系", "NORMAL"),
    ("Negative", "ABNORMAL"),
    ("Non-Functional", "NON_FUNCTIONAL"),
    ("state transition", "STATE_TRANSITION"),
    ("データ整合性確認", "DATA_INTEGRITY"),
    ("exploratory", UNKNOWN),
    (None, None),
])
def test_normalize_test_type(raw, expected):
    assert normalize_test_type(raw) == expected


def test_platforms_mixed_separators():
    assert normalize_platforms("iOS / Android，web") == ["IOS", "ANDROID", "WEB"]


def test_platforms_deduplicate_and_drop_unknown():
    assert normalize_platforms("iPhone, iPad, Symbian") == ["IOS"]


def test_platforms_blank():
    assert normalize_platforms(None) == []
    assert normalize_platforms("") == []


@pytest.mark.parametrize("raw, expected", [
    ("Web(SP)", ["WEB_SP"]),
    ("Web (SP) / Web", ["WEB_SP", "WEB"]),
    ("Ｗｅｂ（ＳＰ）、iOS Native", ["WEB_SP", "IOS"]),
    ("Android Native / iOS Native", ["ANDROID", "IOS"]),
])
def test_platforms_original_vocabulary(raw, expected):
    assert normalize_platforms(raw) == expected


@pytest.mark.parametrize("raw, expected", [
    ("自動化済", "AUTOMATED"),
    ("Yes", "AUTOMATED"),
    (True, "AUTOMATED"),
    (1.0, "AUTOMATED"),
    ("自動化対象", "CANDIDATE"),
    ("planned", "CANDIDATE"),
    ("自動化対象外", "NOT_APPLICABLE"),
    (False, "NOT_APPLICABLE"),
    ("検討中", "UNDER_REVIEW"),
    ("maybe later", UNKNOWN),
    ("", None),
    (None, None),
])
def test_normalize_automation(raw, expected):
    assert normalize_automation(raw) == expected
