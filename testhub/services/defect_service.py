"""Defect service — creation with display-id allocation and test-case auto-linking.

Transaction policy: methods use flush() for ID generation, never commit().
Caller (CLI command or importer) is responsible for db.session.commit().

Auto-linking: test cases imported before a defect existed keep the defect's
display id in ``TestCase.pending_defect_refs``. Creating the defect links
every such case and removes the id from its pending list.
"""
import logging

from flask import current_app

from testhub.core.exceptions import NotFoundError
from testhub.models import db
from testhub.models.testing import Defect, TestCase, TestCaseDefect
from testhub.services.sequential_id import (
    SequentialIdAllocator,
    create_with_unique_id,
    next_sequential_id,
)

logger = logging.getLogger(__name__)


def defect_prefix() -> str:
    return current_app.config.get("DEFECT_ID_PREFIX", "DEF")


def existing_defect_ids(project_id: int) -> list[str]:
    return [
        row.defect_id
        for row in db.session.query(Defect.defect_id).filter(Defect.project_id == project_id)
    ]


def find_defect(project_id: int, display_id: str) -> Defect | None:
    """Case-insensitive lookup of a defect by display id."""
    return (
        Defect.query
        .filter(Defect.project_id == project_id,
                db.func.upper(Defect.defect_id) == display_id.strip().upper())
        .first()
    )


def link_test_case(test_case: TestCase, defect: Defect) -> bool:
    """Link a case to a defect. Returns False when the link already exists."""
    if any(link.defect_id == defect.id for link in test_case.defect_links):
        return False
    link = TestCaseDefect(test_case_id=test_case.id, defect_id=defect.id)
    db.session.add(link)
    test_case.defect_links.append(link)
    return True


def _resolve_pending_links(defect: Defect) -> list[TestCase]:
    """Link cases whose pending refs name this defect and drop the ref from them."""
    wanted = defect.defect_id.upper()
    linked = []
    candidates = TestCase.query.filter(
        TestCase.project_id == defect.project_id,
        TestCase.pending_defect_refs.isnot(None),
    ).all()
    for test_case in candidates:
        refs = test_case.pending_defect_list
        remaining = [ref for ref in refs if ref.upper() != wanted]
        if len(remaining) == len(refs):
            continue
        link_test_case(test_case, defect)
        test_case.pending_defect_refs = ", ".join(remaining) or None
        linked.append(test_case)
    return linked


def create_defect(project_id, data, allocator: SequentialIdAllocator | None = None):
    """Create a defect, link requested test cases and resolve pending references.

    Args:
        project_id: Owning project.
        data: Field values. Keys: title (required), description, severity,
              priority, status, environment, assigned_to_id, reported_by_id,
              created_by_id, reported_at, due_date, test_run_id,
              test_case_ids (storage ids of cases to link).
        allocator: Batch allocator to draw display ids from. When omitted the
                   project's ids are re-read on every attempt.

    Returns the new Defect instance (uncommitted — caller must commit).
    """
    prefix = defect_prefix()
    if allocator is not None:
        next_id = allocator.next
    else:
        def next_id():
            return next_sequential_id(existing_defect_ids(project_id), prefix)

    test_case_ids = list(data.get("test_case_ids") or [])

    def _create(display_id):
        defect = Defect(
            project_id=project_id,
            defect_id=display_id,
            title=data["title"],
            description=data.get("description"),
            severity=data.get("severity") or "MEDIUM",
            priority=data.get("priority") or "MEDIUM",
            status=data.get("status") or "NEW",
            environment=data.get("environment"),
            assigned_to_id=data.get("assigned_to_id"),
            reported_by_id=data.get("reported_by_id"),
            created_by_id=data.get("created_by_id"),
            reported_at=data.get("reported_at"),
            due_date=data.get("due_date"),
            test_run_id=data.get("test_run_id"),
        )
        db.session.add(defect)
        db.session.flush()

        for test_case_id in test_case_ids:
            test_case = db.session.get(TestCase, test_case_id)
            if test_case is None or test_case.project_id != project_id:
                raise NotFoundError(resource="TestCase", resource_id=test_case_id, project_id=project_id)
            link_test_case(test_case, defect)

        auto_linked = _resolve_pending_links(defect)
        db.session.flush()
        if auto_linked:
            logger.info(
                "Defect %s auto-linked to %d test case(s) with pending references",
                defect.defect_id, len(auto_linked),
                extra={"project_id": project_id},
            )
        return defect

    return create_with_unique_id("Defect", next_id, _create)
