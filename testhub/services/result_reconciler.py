"""
Result Reconciler — merges parsed TestNG executions into a test run.

For each non-configuration execution:
  1. match the method name to a test case display id, verbatim first, then
     with underscores rewritten to hyphens (``TC_7`` -> ``TC-7``)
  2. map the raw status: TestNG vocabulary, then the project's TestResult
     status options, then the built-in fallback list
  3. upsert the TestResult for (test run, test case)

Each execution lands in exactly one bucket: imported, skipped (no matching
test case) or errors (unknown status, persistence failure). Configuration
methods (``is-config="true"``) are dropped before counting.

Batch-level failures are limited to a missing test run / project and an
unreadable XML document.
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone

from testhub.core.exceptions import ValidationError
from testhub.models import db
from testhub.models.testing import TestCase, TestResult
from testhub.services.dropdown_service import EnumerationSet, load_enumeration
from testhub.services.project_service import get_project
from testhub.services.testng_parser import ParsedTestExecution, parse_testng_xml
from testhub.services.testrun_service import create_test_run, get_test_run

logger = logging.getLogger(__name__)

TESTNG_STATUS_MAP = {
    "PASS": "PASSED",
    "FAIL": "FAILED",
    "SKIP": "SKIPPED",
    "SKIPPED": "SKIPPED",
}

FALLBACK_STATUSES = ("PASSED", "FAILED", "SKIPPED", "BLOCKED", "RETEST")


# ═══════════════════════════════════════════════════════════════
# Result
# ═══════════════════════════════════════════════════════════════

@dataclass
class ReconcileResult:
    success_count: int = 0
    failed_count: int = 0
    skipped_count: int = 0
    errors: list[dict] = field(default_factory=list)
    skipped: list[dict] = field(default_factory=list)
    imported: list[dict] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.success_count + self.failed_count + self.skipped_count

    def to_dict(self) -> dict:
        return asdict(self)


# ═══════════════════════════════════════════════════════════════
# Matching & status mapping
# ═══════════════════════════════════════════════════════════════

def _normalize_identifier(name: str) -> str:
    return name.strip().replace("_", "-").upper()


class CaseIndex:
    """Display id -> test case id for one project, with the normalized variant."""

    def __init__(self, cases):
        self._verbatim: dict[str, int] = {}
        self._normalized: dict[str, tuple[int, str]] = {}
        self._display: dict[int, str] = {}
        for case_id, tc_id in cases:
            self._display[case_id] = tc_id
            self._verbatim.setdefault(tc_id, case_id)
            self._normalized.setdefault(_normalize_identifier(tc_id), (case_id, tc_id))

    @classmethod
    def for_project(cls, project_id: int) -> "CaseIndex":
        rows = (
            db.session.query(TestCase.id, TestCase.tc_id)
            .filter(TestCase.project_id == project_id)
            .order_by(TestCase.id)
            .all()
        )
        return cls(rows)

    def lookup(self, method_name: str) -> tuple[int, str] | None:
        """Return (test case id, display id) or None."""
        case_id = self._verbatim.get(method_name)
        if case_id is not None:
            return case_id, self._display[case_id]
        return self._normalized.get(_normalize_identifier(method_name))


class StatusVocabulary:
    """TestNG statuses, then project result statuses, then FALLBACK_STATUSES."""

    def __init__(self, project_statuses: EnumerationSet):
        self.project_statuses = project_statuses

    @classmethod
    def for_project(cls, project_id: int) -> "StatusVocabulary":
        return cls(load_enumeration("TestResult", "status", project_id))

    def accepted(self) -> list[str]:
        values = []
        for value in (*TESTNG_STATUS_MAP, *self.project_statuses.values, *FALLBACK_STATUSES):
            if value not in values:
                values.append(value)
        return values

    def map(self, raw: str) -> str | None:
        key = (raw or "").strip().upper()
        if not key:
            return None
        if key in TESTNG_STATUS_MAP:
            return TESTNG_STATUS_MAP[key]
        value = self.project_statuses.match(key)
        if value is not None:
            return value
        return key if key in FALLBACK_STATUSES else None


def _duration_seconds(duration_ms: int | None) -> int | None:
    if duration_ms is None:
        return None
    return (duration_ms + 500) // 1000


def _upsert_result(test_run_id, test_case_id, status, execution: ParsedTestExecution, actor_id):
    executed_at = execution.started_at or datetime.now(timezone.utc)
    result = TestResult.query.filter_by(test_run_id=test_run_id, test_case_id=test_case_id).first()
    if result is None:
        result = TestResult(test_run_id=test_run_id, test_case_id=test_case_id)
        db.session.add(result)
    result.status = status
    result.duration = _duration_seconds(execution.duration_ms)
    result.executed_at = executed_at
    result.executed_by_id = actor_id
    result.error_message = execution.error_message
    db.session.flush()
    return result


# ═══════════════════════════════════════════════════════════════
# Reconciliation
# ═══════════════════════════════════════════════════════════════

def reconcile(executions, test_run_id, project_id, actor_id) -> ReconcileResult:
    """Upsert results for ``executions`` into a run. Never raises for a single execution."""
    cases = CaseIndex.for_project(project_id)
    vocabulary = StatusVocabulary.for_project(project_id)
    result = ReconcileResult()

    for execution in executions:
        if execution.is_config:
            continue
        name = execution.method_name
        status = vocabulary.map(execution.status)

        match = cases.lookup(name)
        if match is None:
            reason = f"No matching test case found for '{name}'"
            if status is None:
                reason += f" (status '{execution.status}' would also be invalid)"
            result.skipped_count += 1
            result.skipped.append({"method_name": name, "reason": reason})
            continue
        test_case_id, display_id = match

        if status is None:
            result.failed_count += 1
            result.errors.append({
                "method_name": name,
                "error": f"Invalid status: {execution.status}. "
                         f"Valid values are: {', '.join(vocabulary.accepted())}",
            })
            continue

        try:
            _upsert_result(test_run_id, test_case_id, status, execution, actor_id)
            db.session.commit()
        except Exception as exc:
            db.session.rollback()
            logger.warning("Result for %s not saved: %s", name, exc,
                           extra={"test_run_id": test_run_id, "method_name": name})
            result.failed_count += 1
            result.errors.append({"method_name": name, "error": str(exc)})
            continue

        result.success_count += 1
        result.imported.append({"method_name": name, "display_id": display_id, "status": status})

    logger.info(
        "Reconciled %d executions: %d imported, %d skipped, %d failed",
        result.total, result.success_count, result.skipped_count, result.failed_count,
        extra={"project_id": project_id, "test_run_id": test_run_id},
    )
    return result


def import_testng_results(test_run_id, xml_content, actor_id) -> ReconcileResult:
    """Parse a TestNG report and reconcile it into an existing run.

    Raises:
        NotFoundError: the run does not exist.
        XmlFormatError: the content is not a readable XML document.
    """
    run = get_test_run(test_run_id)
    report = parse_testng_xml(xml_content)
    return reconcile(report.test_methods, run.id, run.project_id, actor_id)


def _match_summary(executions, project_id) -> dict:
    cases = CaseIndex.for_project(project_id)
    unmatched = [e.method_name for e in executions if cases.lookup(e.method_name) is None]
    return {
        "total": len(executions),
        "matched": len(executions) - len(unmatched),
        "unmatched": unmatched,
    }


def check_xml_matches(xml_content, project_id) -> dict:
    """Dry run: how many non-configuration executions match an existing test case."""
    get_project(project_id)
    return _match_summary(parse_testng_xml(xml_content).executions, project_id)


def default_run_name(filename: str | None = None, today=None) -> str:
    """``<file name without .xml>_<YYYY-MM-DD>``, or ``TestRun_<YYYY-MM-DD>``."""
    today = today or datetime.now(timezone.utc).date()
    stem = (filename or "").strip()
    if stem.lower().endswith(".xml"):
        stem = stem[:-4]
    return f"{stem or 'TestRun'}_{today.isoformat()}"


def import_xml_as_new_run(project_id, actor_id, xml_content, environment, filename=None, name=None):
    """Create a completed automation run from a TestNG report and reconcile into it.

    Refuses (ValidationError) when no execution matches an existing test case,
    so an unrelated file never leaves an empty run behind.

    Returns (TestRun, ReconcileResult).
    """
    get_project(project_id)
    report = parse_testng_xml(xml_content)
    check = _match_summary(report.executions, project_id)
    if check["matched"] == 0:
        raise ValidationError(
            f"No matching items found. The file contains {check['total']} item(s), "
            "but none match existing records.",
            details={"unmatched": check["unmatched"]},
        )

    run = create_test_run(
        project_id,
        name or default_run_name(filename),
        actor_id=actor_id,
        environment=environment,
        status="COMPLETED",
        execution_type="AUTOMATION",
    )
    db.session.commit()

    return run, reconcile(report.test_methods, run.id, project_id, actor_id)
