"""
Field Normalizer — maps spreadsheet column headers to canonical field keys.

Export formats differ by tool and locale: "Expected Result", "expected_result",
"ExpectedResult" and "期待結果" all mean the same column. Every header is
folded (NFKC, trim, lower-case, collapsed whitespace) and looked up in a
static synonym table, first as written and then in a compact form with
separators and parenthesised hints removed ("対象（API / 画面）" -> "対象").
Headers with no entry pass through unchanged so custom columns stay
addressable. A few headers read differently per import kind, see
``KIND_OVERRIDES``.

    normalize("期待結果")        -> KnownField(CanonicalField.EXPECTED_RESULT)
    normalize("Sprint Owner")   -> UnknownHeader("Sprint Owner")
    get_value(row, CanonicalField.TITLE)
"""

import re
import unicodedata
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType

# An ImportRow as delivered by the upstream CSV/XLSX parser.
ImportRow = dict[str, str | int | float | None]


class CanonicalField(str, Enum):
    TITLE = "title"
    DESCRIPTION = "description"
    EXPECTED_RESULT = "expectedResult"
    PRIORITY = "priority"
    STATUS = "status"
    ESTIMATED_TIME = "estimatedTime"
    PRECONDITIONS = "preconditions"
    POSTCONDITIONS = "postconditions"
    MODULE = "module"
    TESTSUITE = "testsuite"
    TEST_STEPS = "testSteps"
    TEST_DATA = "testData"
    ASSERTION_ID = "assertionId"
    RTC_ID = "rtcId"
    FLOW_ID = "flowId"
    DEFECT_ID = "defectId"
    SEVERITY = "severity"
    ENVIRONMENT = "environment"
    ASSIGNED_TO = "assignedTo"
    REPORTED_BY = "reportedBy"
    REPORTED_DATE = "reportedDate"
    DUE_DATE = "dueDate"
    TEST_CASE = "testCase"
    LAYER = "layer"
    TARGET_TYPE = "targetType"
    PLATFORMS = "platforms"
    TEST_TYPE = "testType"
    EVIDENCE = "evidence"
    AUTOMATION = "isAutomated"
    NOTES = "notes"


@dataclass(frozen=True)
class KnownField:
    field: CanonicalField

    @property
    def key(self) -> str:
        return self.field.value


@dataclass(frozen=True)
class UnknownHeader:
    name: str

    @property
    def key(self) -> str:
        return self.name


HeaderMatch = KnownField | UnknownHeader


# ── Synonym table ────────────────────────────────────────────────────────────
# Keys are folded spellings; the canonical key itself is added automatically.

_SYNONYMS: dict[CanonicalField, tuple[str, ...]] = {
    CanonicalField.TITLE: (
        "title", "name", "test case title", "testcase title", "test case name", "summary",
        "defect title", "defect title / summary", "bug title",
        "タイトル", "テストケース名", "件名", "項目名",
    ),
    CanonicalField.DESCRIPTION: ("description", "details", "説明", "概要", "詳細"),
    CanonicalField.EXPECTED_RESULT: (
        "expected result", "expected results", "expected", "expected outcome",
        "期待結果", "期待値", "期待する結果",
    ),
    CanonicalField.PRIORITY: ("priority", "優先度", "優先順位"),
    CanonicalField.STATUS: ("status", "state", "ステータス", "状態"),
    CanonicalField.ESTIMATED_TIME: (
        "estimated time", "estimated time (minutes)", "estimate", "estimated minutes",
        "見積時間", "想定時間",
    ),
    CanonicalField.PRECONDITIONS: ("preconditions", "precondition", "前提条件"),
    CanonicalField.POSTCONDITIONS: ("postconditions", "postcondition", "事後条件"),
    CanonicalField.MODULE: (
        "module", "component", "feature", "module / feature", "module/feature",
        "モジュール", "機能",
    ),
    CanonicalField.TESTSUITE: (
        "test suites", "test suite", "testsuite", "suite", "テストスイート", "スイート",
    ),
    CanonicalField.TEST_STEPS: (
        "test steps", "steps", "step", "procedure", "手順", "テスト手順", "操作手順",
    ),
    CanonicalField.TEST_DATA: ("test data", "input data", "テストデータ", "入力データ"),
    CanonicalField.ASSERTION_ID: ("assertion id", "assertion", "アサーションid", "確認id"),
    CanonicalField.RTC_ID: ("rtc id", "rtc-id"),
    CanonicalField.FLOW_ID: ("flow id", "flow-id", "フローid"),
    CanonicalField.DEFECT_ID: (
        "defect id", "defect ids", "defect", "defects", "bug id", "linked defects",
        "不具合id", "欠陥id", "バグid", "関連不具合",
    ),
    CanonicalField.SEVERITY: ("severity", "重要度", "深刻度"),
    CanonicalField.ENVIRONMENT: ("environment", "env", "環境", "実行環境"),
    CanonicalField.ASSIGNED_TO: ("assigned to", "assignee", "owner", "担当者", "担当"),
    CanonicalField.REPORTED_BY: ("reported by", "reporter", "created by", "報告者", "起票者"),
    CanonicalField.REPORTED_DATE: (
        "reported date", "reported on", "reported at", "created date", "報告日", "起票日",
    ),
    CanonicalField.DUE_DATE: ("due date", "due", "deadline", "期限", "期日", "対応期限"),
    CanonicalField.TEST_CASE: (
        "test case", "testcase", "linked test cases", "test case id", "testcase id",
        "関連テストケース",
    ),
    CanonicalField.LAYER: ("layer", "test layer", "レイヤー", "層", "テストレイヤー"),
    CanonicalField.TARGET_TYPE: (
        "target type", "target", "対象", "対象(api/画面)", "対象(api / 画面)",
        "対象種別", "テスト対象",
    ),
    CanonicalField.PLATFORMS: (
        "platforms", "platform", "device", "devices", "os",
        "環境(ios / android / web)", "環境(ios/android/web)",
        "プラットフォーム", "端末", "対応端末",
    ),
    CanonicalField.TEST_TYPE: (
        "test type", "type", "category", "テスト種別", "テストタイプ", "観点",
    ),
    CanonicalField.EVIDENCE: ("evidence", "根拠", "根拠(ドキュメント)", "エビデンス", "source document"),
    CanonicalField.AUTOMATION: ("automation", "automated", "is automated", "自動化", "自動化状況"),
    CanonicalField.NOTES: ("notes", "note", "remarks", "comment", "備考", "メモ"),
}

# Headers whose meaning depends on what is being imported. In a test-case
# sheet a bare "環境" column lists target platforms, in a defect sheet it is
# the environment the bug was found in.
KIND_OVERRIDES: dict[str, dict[str, CanonicalField]] = {
    "testcases": {"環境": CanonicalField.PLATFORMS},
    "defects": {},
}

# Compact form: parenthesised hints dropped, separators removed.
_COMPACT_HINT = re.compile(r"\([^)]*\)")
_COMPACT_STRIP = re.compile(r"[\s_\-/・]+")


def fold_header(header: str) -> str:
    """NFKC-fold, trim, lower-case and collapse inner whitespace."""
    text = unicodedata.normalize("NFKC", str(header))
    return " ".join(text.split()).lower()


def _compact(folded: str) -> str:
    return _COMPACT_STRIP.sub("", _COMPACT_HINT.sub("", folded))


def _build_lookup(synonyms) -> MappingProxyType:
    table: dict[str, CanonicalField] = {}
    for field, spellings in synonyms:
        for spelling in spellings:
            folded = fold_header(spelling)
            table.setdefault(folded, field)
            compact = _compact(folded)
            if compact:
                table.setdefault(compact, field)
    return MappingProxyType(table)


HEADER_LOOKUP = _build_lookup((f, (f.value, *s)) for f, s in _SYNONYMS.items())

_KIND_LOOKUPS = {
    kind: _build_lookup((f, (h,)) for h, f in table.items())
    for kind, table in KIND_OVERRIDES.items()
}


def overrides_for(kind: str | None) -> MappingProxyType | None:
    """Header overrides for an import kind, or None for the shared table only."""
    return _KIND_LOOKUPS.get(kind) if kind else None


def normalize(header: str, overrides=None) -> HeaderMatch:
    """Resolve a raw column header to a canonical field, or pass it through.

    ``overrides`` (see ``overrides_for``) is consulted before the shared table.
    """
    folded = fold_header(header)
    compact = _compact(folded)
    for table in (overrides, HEADER_LOOKUP):
        if not table:
            continue
        field = table.get(folded) or table.get(compact)
        if field is not None:
            return KnownField(field)
    return UnknownHeader(str(header).strip())


def get_value(row: ImportRow, field: CanonicalField, overrides=None):
    """Return the cell for ``field`` from a pre-normalized or raw-header row."""
    if field.value in row:
        return row[field.value]
    wanted = KnownField(field)
    for key, value in row.items():
        if normalize(key, overrides) == wanted:
            return value
    return None


def normalize_row(row: ImportRow, overrides=None) -> ImportRow:
    """Re-key a raw-header row by canonical keys (first occurrence wins)."""
    result: ImportRow = {}
    for key, value in row.items():
        result.setdefault(normalize(key, overrides).key, value)
    return result


def cell_text(value) -> str:
    """Render a spreadsheet cell as trimmed text; integral floats lose their ``.0``."""
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()
