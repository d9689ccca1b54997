"""Normalization of auxiliary test-case classifications.

layer, target type, test type and automation status are soft enumerations:
an unrecognized value is stored as ``UNKNOWN`` instead of failing the row.
Platforms is a set-valued column ("iOS / Android", "Web(SP)，iOS Native")
reduced to recognized tokens; qualifiers such as "Native" are dropped.
"""

import re
import unicodedata

UNKNOWN = "UNKNOWN"

LAYER_SYNONYMS = {
    "smoke": "SMOKE", "スモーク": "SMOKE",
    "core": "CORE", "コア": "CORE", "基本": "CORE",
    "extended": "EXTENDED", "extend": "EXTENDED", "拡張": "EXTENDED",
    "unknown": UNKNOWN,
}

TARGET_TYPE_SYNONYMS = {
    "api": "API", "backend": "API", "サーバー": "API",
    "screen": "SCREEN", "ui": "SCREEN", "gui": "SCREEN", "画面": "SCREEN",
    "unknown": UNKNOWN,
}

TEST_TYPE_SYNONYMS = {
    "normal": "NORMAL", "positive": "NORMAL", "正常系": "NORMAL", "正常": "NORMAL",
    "abnormal": "ABNORMAL", "negative": "ABNORMAL", "異常系": "ABNORMAL", "異常": "ABNORMAL",
    "non functional": "NON_FUNCTIONAL", "non_functional": "NON_FUNCTIONAL",
    "nonfunctional": "NON_FUNCTIONAL", "非機能": "NON_FUNCTIONAL",
    "initial check": "INITIAL_CHECK", "initial_check": "INITIAL_CHECK", "初期確認": "INITIAL_CHECK",
    "data integrity": "DATA_INTEGRITY", "data_integrity": "DATA_INTEGRITY",
    "データ整合性確認": "DATA_INTEGRITY",
    "state transition": "STATE_TRANSITION", "state_transition": "STATE_TRANSITION",
    "状態遷移確認": "STATE_TRANSITION",
    "operation": "OPERATION", "運用確認": "OPERATION",
    "failure": "FAILURE", "障害時確認": "FAILURE",
    "regression": "REGRESSION", "回帰": "REGRESSION",
    "unknown": UNKNOWN,
}

PLATFORM_SYNONYMS = {
    "ios": "IOS", "iphone": "IOS", "ipad": "IOS",
    "android": "ANDROID",
    "web": "WEB", "pc": "WEB", "browser": "WEB",
    "web_sp": "WEB_SP", "websp": "WEB_SP", "sp": "WEB_SP", "スマホ": "WEB_SP",
}

AUTOMATION_SYNONYMS = {
    "automated": "AUTOMATED", "yes": "AUTOMATED", "y": "AUTOMATED", "true": "AUTOMATED",
    "1": "AUTOMATED", "済": "AUTOMATED", "自動化済": "AUTOMATED", "自動化あり": "AUTOMATED",
    "candidate": "CANDIDATE", "planned": "CANDIDATE", "自動化対象": "CANDIDATE",
    "自動化予定": "CANDIDATE", "予定": "CANDIDATE",
    "not applicable": "NOT_APPLICABLE", "no": "NOT_APPLICABLE", "n": "NOT_APPLICABLE",
    "false": "NOT_APPLICABLE", "0": "NOT_APPLICABLE", "manual": "NOT_APPLICABLE",
    "自動化対象外": "NOT_APPLICABLE", "自動化なし": "NOT_APPLICABLE", "対象外": "NOT_APPLICABLE",
    "under review": "UNDER_REVIEW", "review": "UNDER_REVIEW", "tbd": "UNDER_REVIEW",
    "検討中": "UNDER_REVIEW",
    "unknown": UNKNOWN,
}

# "Web(SP)" / "Web (SP)" / "Ｗｅｂ（ＳＰ）" collapse to one token before splitting.
_WEB_SP = re.compile(r"web\s*\(\s*sp\s*\)", re.IGNORECASE)

# "/", ",", full-width comma, ideographic comma, or whitespace.
_PLATFORM_SPLIT = re.compile(r"[/,，、\s]+")


def _fold(value) -> str:
    text = unicodedata.normalize("NFKC", str(value))
    return " ".join(text.split()).lower()


def _lookup(value, table: dict[str, str]) -> str | None:
    if value is None or not str(value).strip():
        return None
    folded = _fold(value)
    return table.get(folded) or table.get(folded.replace("-", " ")) or UNKNOWN


def normalize_layer(value) -> str | None:
    return _lookup(value, LAYER_SYNONYMS)


def normalize_target_type(value) -> str | None:
    return _lookup(value, TARGET_TYPE_SYNONYMS)


def normalize_test_type(value) -> str | None:
    return _lookup(value, TEST_TYPE_SYNONYMS)


def normalize_automation(value) -> str | None:
    if isinstance(value, bool):
        value = "true" if value else "false"
    elif isinstance(value, float) and value.is_integer():
        value = int(value)
    return _lookup(value, AUTOMATION_SYNONYMS)


def normalize_platforms(value) -> list[str]:
    """Split a platforms cell, keep recognized tokens, drop duplicates (order kept)."""
    if value is None:
        return []
    text = _WEB_SP.sub("web_sp", unicodedata.normalize("NFKC", str(value)))
    platforms: list[str] = []
    for token in _PLATFORM_SPLIT.split(text):
        platform = PLATFORM_SYNONYMS.get(token.strip().lower())
        if platform and platform not in platforms:
            platforms.append(platform)
    return platforms
