"""Test run service — run creation, lookup and per-status statistics.

Transaction policy: methods use flush() for ID generation, never commit().
"""
import logging

from testhub.core.exceptions import NotFoundError, ValidationError
from testhub.models import db
from testhub.models.testing import TestResult, TestRun
from testhub.services.dropdown_service import load_enumeration
from testhub.services.project_service import get_project

logger = logging.getLogger(__name__)

EXECUTION_TYPES = ("MANUAL", "AUTOMATION")

# Status buckets reported by get_run_stats; other statuses only count in total.
_STAT_KEYS = {
    "PASSED": "passed",
    "FAILED": "failed",
    "BLOCKED": "blocked",
    "SKIPPED": "skipped",
    "RETEST": "retest",
}


def get_test_run(test_run_id: int) -> TestRun:
    run = db.session.get(TestRun, test_run_id)
    if run is None:
        raise NotFoundError(resource="TestRun", resource_id=test_run_id)
    return run


def create_test_run(
    project_id: int,
    name: str,
    *,
    actor_id: int | None = None,
    environment: str | None = None,
    status: str | None = None,
    execution_type: str = "MANUAL",
    description: str | None = None,
) -> TestRun:
    """Create a test run. Environment and status are checked against the dropdown options."""
    get_project(project_id)
    name = str(name or "").strip()
    if not name:
        raise ValidationError("Test run name is required", details={"name": "required"})
    execution_type = (execution_type or "MANUAL").strip().upper()
    if execution_type not in EXECUTION_TYPES:
        raise ValidationError(
            f"Invalid execution type: {execution_type}. Valid values are: {', '.join(EXECUTION_TYPES)}",
            details={"execution_type": execution_type},
        )

    environment = load_enumeration("TestRun", "environment", project_id).resolve(
        environment, None, "environment")
    status = load_enumeration("TestRun", "status", project_id).resolve(status, "PLANNED", "status")

    run = TestRun(
        project_id=project_id,
        name=name,
        description=description,
        environment=environment,
        status=status,
        execution_type=execution_type,
        created_by_id=actor_id,
    )
    db.session.add(run)
    db.session.flush()
    logger.info("Created test run %s '%s'", run.id, run.name, extra={"project_id": project_id})
    return run


def get_run_stats(test_run_id: int) -> dict:
    """Count results per status: passed, failed, blocked, skipped, retest and total."""
    get_test_run(test_run_id)
    rows = (
        db.session.query(TestResult.status, db.func.count(TestResult.id))
        .filter(TestResult.test_run_id == test_run_id)
        .group_by(TestResult.status)
        .all()
    )
    stats = {key: 0 for key in _STAT_KEYS.values()}
    stats["total"] = 0
    for status, count in rows:
        stats["total"] += count
        key = _STAT_KEYS.get((status or "").upper())
        if key:
            stats[key] += count
    return stats
