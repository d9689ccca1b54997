"""
Tests for spreadsheet defect import.

Covers:
  - enumeration defaults and label matching (severity, environment)
  - assignee must be a project member; unknown assignee fails the row
  - unknown reporter falls back to the importing user with a warning
  - unreadable or out-of-range dates are dropped with a warning
  - template headers ("Defect Title / Summary", 環境)
  - test-case links by display id or title, unknown refs warned
  - DEF-<n> allocation and duplicate titles
"""

from datetime import date

from testhub.models import db
from testhub.models.testing import Defect, TestCase
from testhub.services.import_service import import_rows


def _defect(project_id, defect_id):
    return Defect.query.filter_by(project_id=project_id, defect_id=defect_id).one()


def _add_case(project_id, tc_id, title):
    db.session.add(TestCase(project_id=project_id, tc_id=tc_id, title=title))
    db.session.commit()


def test_defaults_and_enumerations(project, actor):
    result = import_rows("defects", project.id, actor.id, [
        {"Title": "Crash on login", "Severity": "high", "Environment": "production"},
        {"Title": "Typo on home"},
    ])
    assert [i["display_id"] for i in result.imported] == ["DEF-1", "DEF-2"]

    crash = _defect(project.id, "DEF-1")
    assert crash.severity == "HIGH"
    assert crash.environment == "PRODUCTION"
    assert crash.reported_by_id == actor.id
    assert crash.created_by_id == actor.id

    typo = _defect(project.id, "DEF-2")
    assert (typo.severity, typo.priority, typo.status) == ("MEDIUM", "MEDIUM", "NEW")
    assert typo.environment is None


def test_invalid_environment_fails_row(project, actor):
    result = import_rows("defects", project.id, actor.id, [{"Title": "x", "Env": "Moon"}])
    assert result.errors[0]["error"] == (
        "Invalid environment: Moon. Valid values are: PRODUCTION, STAGING, QA, DEVELOPMENT"
    )


def test_assignee_resolved_by_email_or_name(project, actor, member):
    result = import_rows("defects", project.id, actor.id, [
        {"Title": "A", "Assigned To": "DANA.TESTER@example.com"},
        {"Title": "B", "担当者": "dana tester"},
    ])
    assert result.success_count == 2
    assert _defect(project.id, "DEF-1").assigned_to_id == member.id
    assert _defect(project.id, "DEF-2").assignee.id == member.id


def test_unknown_assignee_fails_row(project, actor, outsider):
    result = import_rows("defects", project.id, actor.id, [
        {"Title": "Not ours", "Assignee": "outsider@example.com"},
    ])
    assert result.success_count == 0
    assert result.errors == [{
        "row": 2,
        "title": "Not ours",
        "error": "Assignee not found in project members: outsider@example.com",
    }]
    assert Defect.query.count() == 0


def test_unknown_reporter_falls_back_with_warning(project, actor, member):
    result = import_rows("defects", project.id, actor.id, [
        {"Title": "A", "Reporter": "Nobody Known"},
        {"Title": "B", "Reported By": "Dana Tester"},
    ])
    assert result.success_count == 2
    assert _defect(project.id, "DEF-1").reported_by_id == actor.id
    assert _defect(project.id, "DEF-2").reported_by_id == member.id
    assert result.warnings == [{
        "row": 2,
        "title": "A",
        "warning": "Reporter not found in project members: Nobody Known. Using the importing user.",
    }]


def test_dates_parsed_and_bad_dates_warned(project, actor):
    result = import_rows("defects", project.id, actor.id, [
        {"Title": "A", "Reported Date": "2024-01-15T10:30:00Z", "Due Date": "01.03.2024"},
        {"Title": "B", "Reported Date": "last week", "Due Date": "soon"},
    ])
    assert result.success_count == 2

    first = _defect(project.id, "DEF-1")
    assert first.reported_at.date() == date(2024, 1, 15)
    assert first.due_date == date(2024, 3, 1)

    second = _defect(project.id, "DEF-2")
    assert second.reported_at is None
    assert second.due_date is None
    assert [w["warning"] for w in result.warnings] == [
        "Invalid reported date ignored: last week",
        "Invalid due date ignored: soon",
    ]


def test_test_case_links_by_id_and_title(project, actor):
    _add_case(project.id, "TC-1", "Login works")
    _add_case(project.id, "TC-2", "Logout works")

    result = import_rows("defects", project.id, actor.id, [
        {"Title": "Session bug", "Test Case": "tc-1, logout works; TC-99"},
    ])
    assert result.success_count == 1
    assert result.warnings == [{
        "row": 2,
        "title": "Session bug",
        "warning": 'Test case "TC-99" not found in project. Defect created without this link.',
    }]
    defect = _defect(project.id, "DEF-1")
    assert sorted(defect.to_dict()["test_case_ids"]) == ["TC-1", "TC-2"]


def test_same_case_referenced_twice_linked_once(project, actor):
    _add_case(project.id, "TC-1", "Login works")
    import_rows("defects", project.id, actor.id, [{"Title": "Dup", "Test Case": "TC-1, Login works"}])
    assert len(_defect(project.id, "DEF-1").case_links) == 1


def test_duplicate_defect_title_skipped(project, actor):
    import_rows("defects", project.id, actor.id, [{"Title": "Crash"}])
    result = import_rows("defects", project.id, actor.id, [{"Title": "crash"}, {"Title": "Hang"}])
    assert result.skipped == [{"row": 2, "title": "crash", "reason": "Already exists (DEF-1)"}]
    assert result.imported == [{"display_id": "DEF-2", "title": "Hang"}]


def test_missing_title(project, actor):
    result = import_rows("defects", project.id, actor.id, [{"Severity": "LOW"}])
    assert result.errors[0]["error"] == "Title is required"
    assert result.errors[0]["title"] == "N/A"


def test_out_of_range_reported_date_is_warned_not_failed(project, actor):
    result = import_rows("defects", project.id, actor.id, [
        {"Title": "Overflow", "Reported Date": "9999-12-31T23:59:59-05:00"},
    ])
    assert result.success_count == 1
    assert result.failed_count == 0
    assert _defect(project.id, "DEF-1").reported_at is None
    assert [w["warning"] for w in result.warnings] == [
        "Invalid reported date ignored: 9999-12-31T23:59:59-05:00",
    ]


def test_template_title_headers(project, actor):
    result = import_rows("defects", project.id, actor.id, [
        {"Defect Title / Summary": "Crash on login"},
        {"Defect Title": "Blank settings page"},
    ])
    assert result.errors == []
    assert [i["title"] for i in result.imported] == ["Crash on login", "Blank settings page"]


def test_japanese_environment_column_is_defect_environment(project, actor):
    result = import_rows("defects", project.id, actor.id, [{"タイトル": "遅い", "環境": "Staging"}])
    assert result.success_count == 1
    assert _defect(project.id, "DEF-1").environment == "STAGING"
