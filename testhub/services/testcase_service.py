"""Test case service — creation of a case together with its steps and links.

Transaction policy: methods use flush() for ID generation, never commit().
Caller is responsible for db.session.commit().

A case, its steps, suite memberships and defect links are written inside
one savepoint: either all of them exist afterwards or none do.
"""
import logging

from flask import current_app

from testhub.models import db
from testhub.models.testing import Defect, TestCase, TestCaseSuite, TestStep
from testhub.services.defect_service import link_test_case
from testhub.services.sequential_id import (
    SequentialIdAllocator,
    create_with_unique_id,
    next_sequential_id,
)

logger = logging.getLogger(__name__)

_CASE_FIELDS = (
    "title", "description", "assertion_id", "rtc_id", "flow_id", "expected_result",
    "preconditions", "postconditions", "test_data", "estimated_time", "evidence", "notes",
    "priority", "status", "layer", "target_type", "test_type", "automation",
    "platforms", "module_id", "suite_id", "created_by_id",
)


def testcase_prefix() -> str:
    return current_app.config.get("TESTCASE_ID_PREFIX", "TC")


def _step_value(step, key):
    if isinstance(step, dict):
        return step.get(key)
    return getattr(step, key, None)


def existing_testcase_ids(project_id: int) -> list[str]:
    return [
        row.tc_id
        for row in db.session.query(TestCase.tc_id).filter(TestCase.project_id == project_id)
    ]


def find_by_title(project_id: int, title: str) -> TestCase | None:
    """Case-insensitive exact title match within the project."""
    return (
        TestCase.query
        .filter(TestCase.project_id == project_id,
                db.func.lower(TestCase.title) == title.strip().lower())
        .order_by(TestCase.id)
        .first()
    )


def create_test_case(project_id, data, allocator: SequentialIdAllocator | None = None):
    """Create a test case with steps, suite links and defect links.

    Args:
        project_id: Owning project.
        data: Column values (see _CASE_FIELDS) plus:
              steps: iterable of objects or dicts with step_no/action/expected_result
              suite_ids: extra suites to link (suite_id is always linked)
              defect_ids: storage ids of existing defects to link
              pending_defect_refs: defect display ids that do not exist yet
        allocator: Batch allocator to draw display ids from. When omitted the
                   project's ids are re-read on every attempt.

    Returns the new TestCase instance (uncommitted; the caller commits).
    """
    prefix = testcase_prefix()
    if allocator is not None:
        next_id = allocator.next
    else:
        def next_id():
            return next_sequential_id(existing_testcase_ids(project_id), prefix)

    suite_ids = []
    for suite_id in [data.get("suite_id"), *(data.get("suite_ids") or [])]:
        if suite_id is not None and suite_id not in suite_ids:
            suite_ids.append(suite_id)
    pending = [ref for ref in (data.get("pending_defect_refs") or []) if ref]

    def _create(display_id):
        test_case = TestCase(
            project_id=project_id,
            tc_id=display_id,
            pending_defect_refs=", ".join(pending) or None,
            **{k: data.get(k) for k in _CASE_FIELDS if data.get(k) is not None},
        )
        db.session.add(test_case)
        db.session.flush()

        for position, step in enumerate(data.get("steps") or [], start=1):
            db.session.add(TestStep(
                test_case_id=test_case.id,
                step_no=_step_value(step, "step_no") or position,
                action=_step_value(step, "action") or "",
                expected_result=_step_value(step, "expected_result") or "",
            ))

        for suite_id in suite_ids:
            db.session.add(TestCaseSuite(test_case_id=test_case.id, suite_id=suite_id))

        for defect_id in data.get("defect_ids") or []:
            defect = db.session.get(Defect, defect_id)
            if defect is not None:
                link_test_case(test_case, defect)

        db.session.flush()
        return test_case

    test_case = create_with_unique_id("TestCase", next_id, _create)
    logger.debug("Created test case %s in project %s", test_case.tc_id, project_id)
    return test_case
