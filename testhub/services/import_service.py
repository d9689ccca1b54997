"""
Row Import Service — spreadsheet test cases and defects into a project.

Pipeline per call:
  1. Pre-check: kind is known, project exists (the only batch-level failures)
  2. Load a batch context once: existing titles and display ids, modules,
     suites, defects / test cases, dropdown enumerations, project members
  3. Process rows strictly in order. Each row is its own transaction:
     committed on success, rolled back on failure. Snapshot entries a failed
     row added (new modules / suites) are discarded with it.

Every row ends up in exactly one bucket:
  - imported: entity created, display id allocated
  - skipped:  title already exists in the project (or earlier in the batch)
  - errors:   any exception, recorded with row number, title and message

Row numbers are 1-based with the header on row 1, so the first data row is 2.
Rows parsed from a file keep their source row number even when blank rows
before them were dropped.
"""

import logging
import re
from dataclasses import asdict, dataclass, field

from testhub.core.exceptions import ValidationError
from testhub.models import db
from testhub.models.testing import Defect, Module, TestCase, TestSuite
from testhub.services import attribute_normalizer
from testhub.services.defect_service import create_defect, defect_prefix
from testhub.services.dropdown_service import EnumerationSet, load_enumeration
from testhub.services.field_normalizer import (
    CanonicalField,
    ImportRow,
    cell_text,
    get_value,
    normalize_row,
    overrides_for,
)
from testhub.services.project_service import MemberDirectory, get_project
from testhub.services.sequential_id import SequentialIdAllocator
from testhub.services.step_parser import parse_steps
from testhub.services.testcase_service import create_test_case, testcase_prefix
from testhub.utils.dates import parse_date, parse_datetime

logger = logging.getLogger(__name__)

IMPORT_KINDS = ("testcases", "defects")

_REF_SPLIT = re.compile(r"[,;，；]")
_LEADING_INT = re.compile(r"^\s*(\d+)")


# ═══════════════════════════════════════════════════════════════
# Result
# ═══════════════════════════════════════════════════════════════

@dataclass
class ImportResult:
    success_count: int = 0
    failed_count: int = 0
    skipped_count: int = 0
    errors: list[dict] = field(default_factory=list)
    skipped: list[dict] = field(default_factory=list)
    imported: list[dict] = field(default_factory=list)
    warnings: list[dict] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.success_count + self.failed_count + self.skipped_count

    def add_success(self, display_id: str, title: str) -> None:
        self.success_count += 1
        self.imported.append({"display_id": display_id, "title": title})

    def add_failure(self, row: int, title: str, error: str) -> None:
        self.failed_count += 1
        self.errors.append({"row": row, "title": title, "error": error})

    def add_skip(self, row: int, title: str, reason: str) -> None:
        self.skipped_count += 1
        self.skipped.append({"row": row, "title": title, "reason": reason})

    def to_dict(self) -> dict:
        return asdict(self)


# ═══════════════════════════════════════════════════════════════
# Batch context
# ═══════════════════════════════════════════════════════════════

@dataclass
class _BatchContext:
    """Request-scoped state shared by every row of one import call."""

    project_id: int
    actor_id: int | None
    allocator: SequentialIdAllocator
    # casefolded title -> display id, for existing and just-imported entities
    titles: dict[str, str] = field(default_factory=dict)
    _row_warnings: list[dict] = field(default_factory=list)

    def warn(self, row: int, title: str, message: str) -> None:
        logger.warning("Row %d (%s): %s", row, title, message,
                       extra={"project_id": self.project_id, "row": row})
        self._row_warnings.append({"row": row, "title": title, "warning": message})

    def duplicate_of(self, title: str) -> str | None:
        return self.titles.get(title.casefold())

    def commit_row(self, result: ImportResult, display_id: str, title: str) -> None:
        self.titles[title.casefold()] = display_id
        result.warnings.extend(self._row_warnings)
        self._row_warnings.clear()

    def discard_row(self) -> None:
        self._row_warnings.clear()


@dataclass
class TestCaseBatch(_BatchContext):
    priorities: EnumerationSet | None = None
    statuses: EnumerationSet | None = None
    # casefolded name -> storage id
    modules: dict[str, int] = field(default_factory=dict)
    suites: dict[str, int] = field(default_factory=dict)
    # upper-cased defect display id -> storage id
    defects: dict[str, int] = field(default_factory=dict)
    _row_created: list[tuple[dict, str]] = field(default_factory=list)

    def _resolve_or_create(self, snapshot: dict, model, name) -> int | None:
        name = cell_text(name)
        if not name:
            return None
        key = name.casefold()
        if key not in snapshot:
            entity = model(project_id=self.project_id, name=name)
            db.session.add(entity)
            db.session.flush()
            snapshot[key] = entity.id
            self._row_created.append((snapshot, key))
            logger.info("Created %s '%s' during import", model.__name__, name,
                        extra={"project_id": self.project_id})
        return snapshot[key]

    def module_id(self, name) -> int | None:
        return self._resolve_or_create(self.modules, Module, name)

    def suite_id(self, name) -> int | None:
        return self._resolve_or_create(self.suites, TestSuite, name)

    def commit_row(self, result, display_id, title):
        super().commit_row(result, display_id, title)
        self._row_created.clear()

    def discard_row(self):
        super().discard_row()
        for snapshot, key in self._row_created:
            snapshot.pop(key, None)
        self._row_created.clear()


@dataclass
class DefectBatch(_BatchContext):
    severities: EnumerationSet | None = None
    priorities: EnumerationSet | None = None
    statuses: EnumerationSet | None = None
    environments: EnumerationSet | None = None
    members: MemberDirectory | None = None
    # upper-cased display id / casefolded title -> test case storage id
    case_ids: dict[str, int] = field(default_factory=dict)
    case_titles: dict[str, int] = field(default_factory=dict)


# ═══════════════════════════════════════════════════════════════
# Shared helpers
# ═══════════════════════════════════════════════════════════════

def _text(row: ImportRow, canonical: CanonicalField) -> str:
    return cell_text(get_value(row, canonical))


def _optional_text(row: ImportRow, canonical: CanonicalField) -> str | None:
    return _text(row, canonical) or None


def _split_refs(value) -> list[str]:
    refs = []
    for part in _REF_SPLIT.split(cell_text(value)):
        ref = part.strip()
        if ref and ref not in refs:
            refs.append(ref)
    return refs


def _positive_int(value) -> int | None:
    match = _LEADING_INT.match(cell_text(value))
    if not match:
        return None
    number = int(match.group(1))
    return number if number > 0 else None


def _error_message(exc: Exception) -> str:
    if isinstance(exc, ValidationError):
        return exc.message
    return str(exc) or exc.__class__.__name__


# ═══════════════════════════════════════════════════════════════
# Test cases
# ═══════════════════════════════════════════════════════════════

def _testcase_title(row: ImportRow) -> str:
    title = _text(row, CanonicalField.TITLE) or _text(row, CanonicalField.ASSERTION_ID)
    if not title:
        raise ValidationError("Title is required")
    return title


def _load_testcase_batch(project_id, actor_id) -> TestCaseBatch:
    cases = db.session.query(TestCase.tc_id, TestCase.title).filter(
        TestCase.project_id == project_id,
    ).order_by(TestCase.id).all()
    titles: dict[str, str] = {}
    for tc_id, title in cases:
        titles.setdefault(title.casefold(), tc_id)

    return TestCaseBatch(
        project_id=project_id,
        actor_id=actor_id,
        allocator=SequentialIdAllocator(testcase_prefix(), (c.tc_id for c in cases)),
        titles=titles,
        priorities=load_enumeration("TestCase", "priority", project_id),
        statuses=load_enumeration("TestCase", "status", project_id),
        modules={
            m.name.casefold(): m.id
            for m in Module.query.filter_by(project_id=project_id).order_by(Module.id.desc())
        },
        suites={
            s.name.casefold(): s.id
            for s in TestSuite.query.filter_by(project_id=project_id).order_by(TestSuite.id.desc())
        },
        defects={
            d.defect_id.upper(): d.id
            for d in db.session.query(Defect.id, Defect.defect_id).filter(Defect.project_id == project_id)
        },
    )


def _import_testcase_row(batch: TestCaseBatch, row_number: int, row: ImportRow, title: str) -> str:
    module_id = batch.module_id(get_value(row, CanonicalField.MODULE))
    suite_id = batch.suite_id(get_value(row, CanonicalField.TESTSUITE))

    priority = batch.priorities.resolve(get_value(row, CanonicalField.PRIORITY), "MEDIUM", "priority")
    status = batch.statuses.resolve(get_value(row, CanonicalField.STATUS), "ACTIVE", "status")

    parsed = parse_steps(
        get_value(row, CanonicalField.TEST_STEPS),
        get_value(row, CanonicalField.EXPECTED_RESULT),
    )

    defect_ids, pending = [], []
    for ref in _split_refs(get_value(row, CanonicalField.DEFECT_ID)):
        defect_id = batch.defects.get(ref.upper())
        if defect_id is not None:
            defect_ids.append(defect_id)
        else:
            pending.append(ref)

    test_case = create_test_case(batch.project_id, {
        "title": title,
        "description": _optional_text(row, CanonicalField.DESCRIPTION),
        "assertion_id": _optional_text(row, CanonicalField.ASSERTION_ID),
        "rtc_id": _optional_text(row, CanonicalField.RTC_ID),
        "flow_id": _optional_text(row, CanonicalField.FLOW_ID),
        "expected_result": parsed.expected_result,
        "preconditions": _optional_text(row, CanonicalField.PRECONDITIONS),
        "postconditions": _optional_text(row, CanonicalField.POSTCONDITIONS),
        "test_data": _optional_text(row, CanonicalField.TEST_DATA),
        "estimated_time": _positive_int(get_value(row, CanonicalField.ESTIMATED_TIME)),
        "evidence": _optional_text(row, CanonicalField.EVIDENCE),
        "notes": _optional_text(row, CanonicalField.NOTES),
        "priority": priority,
        "status": status,
        "layer": attribute_normalizer.normalize_layer(get_value(row, CanonicalField.LAYER)),
        "target_type": attribute_normalizer.normalize_target_type(
            get_value(row, CanonicalField.TARGET_TYPE)),
        "test_type": attribute_normalizer.normalize_test_type(get_value(row, CanonicalField.TEST_TYPE)),
        "platforms": attribute_normalizer.normalize_platforms(
            get_value(row, CanonicalField.PLATFORMS)) or None,
        "automation": attribute_normalizer.normalize_automation(get_value(row, CanonicalField.AUTOMATION)),
        "module_id": module_id,
        "suite_id": suite_id,
        "created_by_id": batch.actor_id,
        "steps": parsed.steps,
        "defect_ids": defect_ids,
        "pending_defect_refs": pending,
    }, allocator=batch.allocator)

    if pending:
        logger.info("Row %d: defect refs kept pending: %s", row_number, ", ".join(pending),
                    extra={"project_id": batch.project_id, "row": row_number})
    return test_case.tc_id


# ═══════════════════════════════════════════════════════════════
# Defects
# ═══════════════════════════════════════════════════════════════

def _defect_title(row: ImportRow) -> str:
    title = _text(row, CanonicalField.TITLE)
    if not title:
        raise ValidationError("Title is required")
    return title


def _load_defect_batch(project_id, actor_id) -> DefectBatch:
    defects = db.session.query(Defect.defect_id, Defect.title).filter(
        Defect.project_id == project_id,
    ).order_by(Defect.id).all()
    titles: dict[str, str] = {}
    for defect_id, title in defects:
        titles.setdefault(title.casefold(), defect_id)

    case_ids, case_titles = {}, {}
    for case in db.session.query(TestCase.id, TestCase.tc_id, TestCase.title).filter(
        TestCase.project_id == project_id,
    ).order_by(TestCase.id):
        case_ids[case.tc_id.upper()] = case.id
        case_titles.setdefault(case.title.casefold(), case.id)

    return DefectBatch(
        project_id=project_id,
        actor_id=actor_id,
        allocator=SequentialIdAllocator(defect_prefix(), (d.defect_id for d in defects)),
        titles=titles,
        severities=load_enumeration("Defect", "severity", project_id),
        priorities=load_enumeration("Defect", "priority", project_id),
        statuses=load_enumeration("Defect", "status", project_id),
        environments=load_enumeration("Defect", "environment", project_id),
        members=MemberDirectory.for_project(project_id),
        case_ids=case_ids,
        case_titles=case_titles,
    )


def _import_defect_row(batch: DefectBatch, row_number: int, row: ImportRow, title: str) -> str:
    severity = batch.severities.resolve(get_value(row, CanonicalField.SEVERITY), "MEDIUM", "severity")
    priority = batch.priorities.resolve(get_value(row, CanonicalField.PRIORITY), "MEDIUM", "priority")
    status = batch.statuses.resolve(get_value(row, CanonicalField.STATUS), "NEW", "status")
    environment = batch.environments.resolve(
        get_value(row, CanonicalField.ENVIRONMENT), None, "environment")

    assignee_raw = _text(row, CanonicalField.ASSIGNED_TO)
    assigned_to_id = None
    if assignee_raw:
        assignee = batch.members.resolve(assignee_raw)
        if assignee is None:
            raise ValidationError(
                f"Assignee not found in project members: {assignee_raw}",
                details={"assignedTo": assignee_raw},
            )
        assigned_to_id = assignee.id

    reporter_raw = _text(row, CanonicalField.REPORTED_BY)
    reported_by_id = batch.actor_id
    if reporter_raw:
        reporter = batch.members.resolve(reporter_raw)
        if reporter is not None:
            reported_by_id = reporter.id
        else:
            batch.warn(row_number, title,
                       f"Reporter not found in project members: {reporter_raw}. Using the importing user.")

    reported_raw = get_value(row, CanonicalField.REPORTED_DATE)
    reported_at = parse_datetime(reported_raw)
    if reported_at is None and cell_text(reported_raw):
        batch.warn(row_number, title, f"Invalid reported date ignored: {cell_text(reported_raw)}")

    due_raw = get_value(row, CanonicalField.DUE_DATE)
    due_date = parse_date(due_raw)
    if due_date is None and cell_text(due_raw):
        batch.warn(row_number, title, f"Invalid due date ignored: {cell_text(due_raw)}")

    test_case_ids = []
    for ref in _split_refs(get_value(row, CanonicalField.TEST_CASE)):
        case_id = batch.case_ids.get(ref.upper()) or batch.case_titles.get(ref.casefold())
        if case_id is None:
            batch.warn(row_number, title,
                       f'Test case "{ref}" not found in project. Defect created without this link.')
        elif case_id not in test_case_ids:
            test_case_ids.append(case_id)

    defect = create_defect(batch.project_id, {
        "title": title,
        "description": _optional_text(row, CanonicalField.DESCRIPTION),
        "severity": severity,
        "priority": priority,
        "status": status,
        "environment": environment,
        "assigned_to_id": assigned_to_id,
        "reported_by_id": reported_by_id,
        "created_by_id": batch.actor_id,
        "reported_at": reported_at,
        "due_date": due_date,
        "test_case_ids": test_case_ids,
    }, allocator=batch.allocator)
    return defect.defect_id


# ═══════════════════════════════════════════════════════════════
# Entry point
# ═══════════════════════════════════════════════════════════════

_IMPORTERS = {
    "testcases": (_testcase_title, _load_testcase_batch, _import_testcase_row),
    "defects": (_defect_title, _load_defect_batch, _import_defect_row),
}


def import_rows(
    kind: str,
    project_id: int,
    actor_id: int | None,
    rows: list[ImportRow],
    row_numbers=None,
) -> ImportResult:
    """
    Import spreadsheet rows of ``kind`` ("testcases" or "defects") into a project.

    ``row_numbers`` gives the source row of each entry in ``rows``; when
    omitted it is taken from ``rows.row_numbers`` (``file_parser.ParsedRows``)
    or assumed contiguous from row 2.

    Raises:
        ValidationError: unknown kind, or ``row_numbers`` of the wrong length.
        NotFoundError: the project does not exist (checked before any row).

    Returns an ImportResult; row-level problems never raise.
    """
    if kind not in _IMPORTERS:
        raise ValidationError(
            f"Invalid import type: {kind}. Valid values are: {', '.join(IMPORT_KINDS)}",
            details={"kind": kind},
        )
    if row_numbers is None:
        row_numbers = getattr(rows, "row_numbers", None) or range(2, len(rows) + 2)
    if len(row_numbers) != len(rows):
        raise ValidationError(
            f"Got {len(row_numbers)} row numbers for {len(rows)} rows",
            details={"row_numbers": len(row_numbers), "rows": len(rows)},
        )
    get_project(project_id)

    title_of, load_batch, import_row = _IMPORTERS[kind]
    overrides = overrides_for(kind)
    batch = load_batch(project_id, actor_id)
    result = ImportResult()

    for row_number, raw in zip(row_numbers, rows):
        row = normalize_row(raw, overrides)
        title = None
        try:
            title = title_of(row)
            existing = batch.duplicate_of(title)
            if existing:
                result.add_skip(row_number, title, f"Already exists ({existing})")
                continue
            display_id = import_row(batch, row_number, row, title)
            db.session.commit()
        except Exception as exc:
            db.session.rollback()
            batch.discard_row()
            message = _error_message(exc)
            logger.warning("Import row %d failed: %s", row_number, message,
                           extra={"project_id": project_id, "import_kind": kind, "row": row_number})
            result.add_failure(row_number, title or _text(row, CanonicalField.TITLE) or "N/A", message)
            continue

        batch.commit_row(result, display_id, title)
        result.add_success(display_id, title)

    logger.info(
        "Import %s finished: %d imported, %d skipped, %d failed",
        kind, result.success_count, result.skipped_count, result.failed_count,
        extra={"project_id": project_id, "import_kind": kind},
    )
    return result
