"""
Tests for sequential display-id allocation.

Covers:
  - trailing number extraction
  - allocator continues above the highest existing number
  - ids handed out or reserved are never reused
  - create_with_unique_id retries on a unique violation
  - exhausted retries -> ConflictError
  - other integrity errors propagate unchanged
"""

import pytest
from sqlalchemy.exc import IntegrityError

from testhub.core.exceptions import ConflictError
from testhub.models import db
from testhub.models.testing import TestCase
from testhub.services.sequential_id import (
    SequentialIdAllocator,
    create_with_unique_id,
    next_sequential_id,
    trailing_number,
)


@pytest.mark.parametrize("display_id, expected", [
    ("TC-12", 12),
    ("DEF-007", 7),
    ("legacy 42", 42),
    ("TC-", None),
    (None, None),
])
def test_trailing_number(display_id, expected):
    assert trailing_number(display_id) == expected


def test_allocator_continues_above_highest():
    allocator = SequentialIdAllocator("TC", ["TC-5", "tc-2", None, "imported"])
    assert allocator.next() == "TC-6"
    assert allocator.next() == "TC-7"


def test_allocator_skips_taken_ids():
    allocator = SequentialIdAllocator("TC", ["TC-1"])
    allocator.reserve("TC-3")
    assert "tc-3" in allocator
    assert allocator.next() == "TC-4"


def test_allocator_never_repeats_within_batch():
    allocator = SequentialIdAllocator("DEF")
    drawn = [allocator.next() for _ in range(5)]
    assert drawn == ["DEF-1", "DEF-2", "DEF-3", "DEF-4", "DEF-5"]
    assert len(set(drawn)) == 5


def test_next_sequential_id():
    assert next_sequential_id([], "TC") == "TC-1"
    assert next_sequential_id(["TC-9", "TC-10"], "TC") == "TC-11"


# ── create_with_unique_id ────────────────────────────────────────────────────


def _add_case(project_id, tc_id):
    case = TestCase(project_id=project_id, tc_id=tc_id, title=f"Case {tc_id}")
    db.session.add(case)
    db.session.flush()
    return case


def test_create_retries_after_collision(project):
    _add_case(project.id, "TC-1")
    db.session.commit()

    candidates = iter(["TC-1", "TC-2"])
    case = create_with_unique_id(
        "TestCase", lambda: next(candidates), lambda tc_id: _add_case(project.id, tc_id),
    )
    db.session.commit()

    assert case.tc_id == "TC-2"
    assert TestCase.query.filter_by(project_id=project.id).count() == 2


def test_create_gives_up_with_conflict(project):
    _add_case(project.id, "TC-1")
    db.session.commit()

    with pytest.raises(ConflictError) as exc_info:
        create_with_unique_id("TestCase", lambda: "TC-1", lambda tc_id: _add_case(project.id, tc_id))
    assert "TC-1" in str(exc_info.value)
    db.session.rollback()
    assert TestCase.query.count() == 1


def test_non_unique_integrity_error_propagates(project):
    calls = []

    def create(tc_id):
        calls.append(tc_id)
        raise IntegrityError("INSERT", {}, Exception("FOREIGN KEY constraint failed"))

    with pytest.raises(IntegrityError):
        create_with_unique_id("TestCase", lambda: "TC-1", create)
    assert calls == ["TC-1"]
