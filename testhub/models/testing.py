"""
Test Hub Ingestion
Testing domain models.

Models:
    - Module:         functional area a test case belongs to (per project)
    - TestSuite:      named grouping of test cases (per project)
    - TestCase:       individual test case, display id ``TC-<n>``
    - TestCaseSuite:  junction table for case ↔ suite N:M relationship
    - TestStep:       atomic step within a test case
    - Defect:         defect/bug, display id ``DEF-<n>``
    - TestCaseDefect: junction table for case ↔ defect N:M relationship
    - TestRun:        one execution pass (manual or automation) in an environment
    - TestResult:     outcome of one test case within a run

Architecture ref:
    Project ──1:N──▶ Module / Test Suite / Test Case / Defect / Test Run
    Test Suite ──N:M──▶ Test Case ──1:N──▶ Test Step
    Test Case ──N:M──▶ Defect
    Test Run ──1:N──▶ Test Result ◀──N:1── Test Case

Display ids are unique per project; the database constraint is the final
arbiter when concurrent imports race for the same id.
"""

from datetime import datetime, timezone

from testhub.models import db


# ═════════════════════════════════════════════════════════════════════════════
# MODULE / TEST SUITE
# ═════════════════════════════════════════════════════════════════════════════

class Module(db.Model):
    __tablename__ = "modules"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "name": self.name,
            "description": self.description,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Module {self.id}: {self.name}>"


class TestSuite(db.Model):
    """Grouping of test cases (smoke pack, regression set, feature suite)."""

    __tablename__ = "test_suites"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    case_links = db.relationship(
        "TestCaseSuite", backref="suite", lazy="dynamic",
        cascade="all, delete-orphan",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "name": self.name,
            "description": self.description,
            "case_count": self.case_links.count(),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<TestSuite {self.id}: {self.name}>"


# ═════════════════════════════════════════════════════════════════════════════
# TEST CASE
# ═════════════════════════════════════════════════════════════════════════════

class TestCase(db.Model):
    """
    Individual test case in the project catalog.

    ``tc_id`` is the human-readable display id (``TC-12``); ``id`` is the
    storage key. Priority and status hold values from the project's dropdown
    options; layer, target type and test type are normalized upper-case
    tokens or ``UNKNOWN``.
    """

    __tablename__ = "test_cases"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    module_id = db.Column(
        db.Integer, db.ForeignKey("modules.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )
    suite_id = db.Column(
        db.Integer, db.ForeignKey("test_suites.id", ondelete="SET NULL"),
        nullable=True, index=True, comment="Primary suite (also linked via test_case_suites)",
    )

    # ── Identification
    tc_id = db.Column(db.String(50), nullable=False, comment="Display id, e.g. TC-12")
    title = db.Column(db.String(500), nullable=False)
    description = db.Column(db.Text, nullable=True)
    assertion_id = db.Column(db.String(100), nullable=True, comment="External assertion / requirement reference")
    rtc_id = db.Column(db.String(100), nullable=True, comment="Requirement tracker reference (RTC-ID)")
    flow_id = db.Column(db.String(100), nullable=True, comment="Business flow reference (Flow-ID)")

    # ── Test details
    expected_result = db.Column(
        db.Text, nullable=True,
        comment="Case-level expected result; null when results live on the steps",
    )
    preconditions = db.Column(db.Text, nullable=True)
    postconditions = db.Column(db.Text, nullable=True)
    test_data = db.Column(db.Text, nullable=True, comment="Input values used by the steps")
    estimated_time = db.Column(db.Integer, nullable=True, comment="Estimated minutes")
    evidence = db.Column(db.Text, nullable=True, comment="Source document the case is derived from")
    notes = db.Column(db.Text, nullable=True)

    # ── Classification
    priority = db.Column(db.String(30), nullable=False, default="MEDIUM")
    status = db.Column(db.String(30), nullable=False, default="ACTIVE")
    layer = db.Column(db.String(30), nullable=True, comment="SMOKE | CORE | EXTENDED | UNKNOWN")
    target_type = db.Column(db.String(30), nullable=True, comment="API | SCREEN | UNKNOWN")
    test_type = db.Column(
        db.String(30), nullable=True,
        comment="NORMAL | ABNORMAL | NON_FUNCTIONAL | ... | UNKNOWN",
    )
    platforms = db.Column(db.JSON, nullable=True, comment='IOS | ANDROID | WEB | WEB_SP, e.g. ["IOS", "WEB_SP"]')
    automation = db.Column(
        db.String(30), nullable=True,
        comment="AUTOMATED | CANDIDATE | NOT_APPLICABLE | UNDER_REVIEW | UNKNOWN",
    )

    # ── Defect references not yet resolvable to a Defect row
    pending_defect_refs = db.Column(
        db.Text, nullable=True,
        comment="Comma-separated defect ids imported before the defect existed",
    )

    # ── Audit
    created_by_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    created_at = db.Column(
        db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.UniqueConstraint("project_id", "tc_id", name="uq_test_case_display_id"),
    )

    # ── Relationships
    module = db.relationship("Module", foreign_keys=[module_id])
    steps = db.relationship(
        "TestStep", backref="test_case", lazy="select",
        cascade="all, delete-orphan", order_by="TestStep.step_no",
    )
    suite_links = db.relationship(
        "TestCaseSuite", backref="test_case", lazy="select",
        cascade="all, delete-orphan",
    )
    defect_links = db.relationship(
        "TestCaseDefect", backref="test_case", lazy="select",
        cascade="all, delete-orphan",
    )
    results = db.relationship(
        "TestResult", backref="test_case", lazy="dynamic",
        cascade="all, delete-orphan",
    )

    @property
    def pending_defect_list(self):
        if not self.pending_defect_refs:
            return []
        return [ref.strip() for ref in self.pending_defect_refs.split(",") if ref.strip()]

    def to_dict(self, include_steps=False):
        result = {
            "id": self.id,
            "project_id": self.project_id,
            "tc_id": self.tc_id,
            "title": self.title,
            "description": self.description,
            "assertion_id": self.assertion_id,
            "rtc_id": self.rtc_id,
            "flow_id": self.flow_id,
            "expected_result": self.expected_result,
            "preconditions": self.preconditions,
            "postconditions": self.postconditions,
            "test_data": self.test_data,
            "estimated_time": self.estimated_time,
            "notes": self.notes,
            "evidence": self.evidence,
            "priority": self.priority,
            "status": self.status,
            "layer": self.layer,
            "target_type": self.target_type,
            "test_type": self.test_type,
            "platforms": self.platforms or [],
            "automation": self.automation,
            "module_id": self.module_id,
            "suite_id": self.suite_id,
            "suite_ids": [link.suite_id for link in self.suite_links],
            "defect_ids": [link.defect.defect_id for link in self.defect_links],
            "pending_defect_refs": self.pending_defect_list,
            "created_by_id": self.created_by_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_steps:
            result["steps"] = [s.to_dict() for s in self.steps]
        return result

    def __repr__(self):
        return f"<TestCase {self.id}: {self.tc_id or self.title[:30]}>"


class TestCaseSuite(db.Model):
    __tablename__ = "test_case_suites"

    id = db.Column(db.Integer, primary_key=True)
    test_case_id = db.Column(
        db.Integer, db.ForeignKey("test_cases.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    suite_id = db.Column(
        db.Integer, db.ForeignKey("test_suites.id", ondelete="CASCADE"), nullable=False, index=True,
    )

    __table_args__ = (
        db.UniqueConstraint("test_case_id", "suite_id", name="uq_test_case_suite"),
    )

    def __repr__(self):
        return f"<TestCaseSuite case#{self.test_case_id} suite#{self.suite_id}>"


class TestStep(db.Model):
    """Atomic step within a test case. Either side may be empty text, never missing."""

    __tablename__ = "test_steps"

    id = db.Column(db.Integer, primary_key=True)
    test_case_id = db.Column(
        db.Integer, db.ForeignKey("test_cases.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )

    step_no = db.Column(db.Integer, nullable=False, comment="Step number as written in the source")
    action = db.Column(db.Text, nullable=False, default="", comment="Action to perform")
    expected_result = db.Column(db.Text, nullable=False, default="", comment="Expected outcome")

    def to_dict(self):
        return {
            "id": self.id,
            "test_case_id": self.test_case_id,
            "step_no": self.step_no,
            "action": self.action,
            "expected_result": self.expected_result,
        }

    def __repr__(self):
        return f"<TestStep {self.id}: case#{self.test_case_id} step#{self.step_no}>"


# ═════════════════════════════════════════════════════════════════════════════
# DEFECT
# ═════════════════════════════════════════════════════════════════════════════

class Defect(db.Model):
    """
    Defect / bug raised during testing.

    Severity, priority, status and environment hold values from the
    project's dropdown options. Linked to test cases through TestCaseDefect.
    """

    __tablename__ = "defects"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    test_run_id = db.Column(
        db.Integer, db.ForeignKey("test_runs.id", ondelete="SET NULL"),
        nullable=True, comment="Run in which the defect was found",
    )

    # ── Identification
    defect_id = db.Column(db.String(50), nullable=False, comment="Display id, e.g. DEF-3")
    title = db.Column(db.String(500), nullable=False)
    description = db.Column(db.Text, nullable=True)

    # ── Classification
    severity = db.Column(db.String(30), nullable=False, default="MEDIUM")
    priority = db.Column(db.String(30), nullable=False, default="MEDIUM")
    status = db.Column(db.String(30), nullable=False, default="NEW")
    environment = db.Column(db.String(50), nullable=True)

    # ── People & dates
    assigned_to_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    reported_by_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    created_by_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    reported_at = db.Column(db.DateTime(timezone=True), nullable=True)
    due_date = db.Column(db.Date, nullable=True)

    # ── Audit
    created_at = db.Column(
        db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.UniqueConstraint("project_id", "defect_id", name="uq_defect_display_id"),
    )

    # ── Relationships
    assignee = db.relationship("User", foreign_keys=[assigned_to_id])
    reporter = db.relationship("User", foreign_keys=[reported_by_id])
    case_links = db.relationship(
        "TestCaseDefect", backref="defect", lazy="select",
        cascade="all, delete-orphan",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "test_run_id": self.test_run_id,
            "defect_id": self.defect_id,
            "title": self.title,
            "description": self.description,
            "severity": self.severity,
            "priority": self.priority,
            "status": self.status,
            "environment": self.environment,
            "assigned_to_id": self.assigned_to_id,
            "reported_by_id": self.reported_by_id,
            "created_by_id": self.created_by_id,
            "reported_at": self.reported_at.isoformat() if self.reported_at else None,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "test_case_ids": [link.test_case.tc_id for link in self.case_links],
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Defect {self.id}: {self.defect_id} [{self.severity}] {self.status}>"


class TestCaseDefect(db.Model):
    __tablename__ = "test_case_defects"

    id = db.Column(db.Integer, primary_key=True)
    test_case_id = db.Column(
        db.Integer, db.ForeignKey("test_cases.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    defect_id = db.Column(
        db.Integer, db.ForeignKey("defects.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    created_at = db.Column(
        db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.UniqueConstraint("test_case_id", "defect_id", name="uq_test_case_defect"),
    )

    def __repr__(self):
        return f"<TestCaseDefect case#{self.test_case_id} defect#{self.defect_id}>"


# ═════════════════════════════════════════════════════════════════════════════
# TEST RUN / TEST RESULT
# ═════════════════════════════════════════════════════════════════════════════

class TestRun(db.Model):
    """
    One execution pass over a set of test cases.

    Automation runs created from a TestNG upload start as COMPLETED.
    Lifecycle: PLANNED → IN_PROGRESS → COMPLETED / CANCELLED
    """

    __tablename__ = "test_runs"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    name = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, nullable=True)
    environment = db.Column(db.String(50), nullable=True)
    status = db.Column(
        db.String(30), nullable=False, default="PLANNED",
        comment="PLANNED | IN_PROGRESS | COMPLETED | CANCELLED",
    )
    execution_type = db.Column(
        db.String(20), nullable=False, default="MANUAL",
        comment="MANUAL | AUTOMATION",
    )
    created_by_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    created_at = db.Column(
        db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    results = db.relationship(
        "TestResult", backref="test_run", lazy="dynamic",
        cascade="all, delete-orphan",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "name": self.name,
            "description": self.description,
            "environment": self.environment,
            "status": self.status,
            "execution_type": self.execution_type,
            "created_by_id": self.created_by_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<TestRun {self.id}: {self.name} [{self.execution_type}] {self.status}>"


class TestResult(db.Model):
    """Outcome of one test case in one run. At most one row per (run, case)."""

    __tablename__ = "test_results"

    id = db.Column(db.Integer, primary_key=True)
    test_run_id = db.Column(
        db.Integer, db.ForeignKey("test_runs.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    test_case_id = db.Column(
        db.Integer, db.ForeignKey("test_cases.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    status = db.Column(
        db.String(30), nullable=False,
        comment="PASSED | FAILED | BLOCKED | SKIPPED | RETEST or a project status",
    )
    duration = db.Column(db.Integer, nullable=True, comment="Duration in seconds")
    comment = db.Column(db.Text, nullable=True)
    error_message = db.Column(db.Text, nullable=True)
    executed_by_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    executed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.UniqueConstraint("test_run_id", "test_case_id", name="uq_test_result_run_case"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "test_run_id": self.test_run_id,
            "test_case_id": self.test_case_id,
            "status": self.status,
            "duration": self.duration,
            "comment": self.comment,
            "error_message": self.error_message,
            "executed_by_id": self.executed_by_id,
            "executed_at": self.executed_at.isoformat() if self.executed_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<TestResult {self.id}: run#{self.test_run_id} case#{self.test_case_id} → {self.status}>"
