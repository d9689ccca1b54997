"""
Test Hub Ingestion
Configurable dropdown options.

Each (entity, field) pair owns an ordered list of ``{value, label}`` options.
Rows with ``project_id = NULL`` are global; a project that defines its own
options for a pair replaces the global list for that pair.
"""

from datetime import datetime, timezone

from testhub.models import db


# ── Built-in option sets ─────────────────────────────────────────────────
# (entity, field) -> [(value, label), ...] in display order.

DEFAULT_OPTIONS = {
    ("TestCase", "priority"): [
        ("CRITICAL", "CRITICAL"), ("HIGH", "HIGH"), ("MEDIUM", "MEDIUM"), ("LOW", "LOW"),
    ],
    ("TestCase", "status"): [
        ("ACTIVE", "ACTIVE"), ("DEPRECATED", "DEPRECATED"), ("DRAFT", "DRAFT"),
    ],
    ("TestCase", "layer"): [
        ("SMOKE", "SMOKE"), ("CORE", "CORE"), ("EXTENDED", "EXTENDED"),
    ],
    ("TestCase", "testType"): [
        ("NORMAL", "正常系"),
        ("ABNORMAL", "異常系"),
        ("NON_FUNCTIONAL", "非機能"),
        ("INITIAL_CHECK", "初期確認"),
        ("DATA_INTEGRITY", "データ整合性確認"),
        ("STATE_TRANSITION", "状態遷移確認"),
        ("OPERATION", "運用確認"),
        ("FAILURE", "障害時確認"),
        ("REGRESSION", "回帰"),
    ],
    ("TestCase", "targetType"): [
        ("API", "API"), ("SCREEN", "画面"),
    ],
    ("TestRun", "status"): [
        ("PLANNED", "PLANNED"), ("IN_PROGRESS", "IN PROGRESS"),
        ("COMPLETED", "COMPLETED"), ("CANCELLED", "CANCELLED"),
    ],
    ("TestRun", "environment"): [
        ("PRODUCTION", "Production"), ("STAGING", "Staging"),
        ("QA", "QA"), ("DEVELOPMENT", "Development"),
    ],
    ("TestResult", "status"): [
        ("PASSED", "PASSED"), ("FAILED", "FAILED"), ("BLOCKED", "BLOCKED"),
        ("SKIPPED", "SKIPPED"), ("RETEST", "RETEST"),
    ],
    ("Defect", "severity"): [
        ("CRITICAL", "CRITICAL"), ("HIGH", "HIGH"), ("MEDIUM", "MEDIUM"), ("LOW", "LOW"),
    ],
    ("Defect", "priority"): [
        ("CRITICAL", "CRITICAL"), ("HIGH", "HIGH"), ("MEDIUM", "MEDIUM"), ("LOW", "LOW"),
    ],
    ("Defect", "status"): [
        ("NEW", "NEW"), ("IN_PROGRESS", "IN PROGRESS"), ("FIXED", "FIXED"),
        ("TESTED", "TESTED"), ("CLOSED", "CLOSED"),
    ],
    ("Defect", "environment"): [
        ("PRODUCTION", "Production"), ("STAGING", "Staging"),
        ("QA", "QA"), ("DEVELOPMENT", "Development"),
    ],
}


class DropdownOption(db.Model):
    __tablename__ = "dropdown_options"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=True, index=True, comment="NULL = global option",
    )
    entity = db.Column(db.String(50), nullable=False, comment="TestCase | Defect | TestRun | TestResult")
    field = db.Column(db.String(50), nullable=False)
    value = db.Column(db.String(100), nullable=False)
    label = db.Column(db.String(200), nullable=False)
    order = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(
        db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.UniqueConstraint("project_id", "entity", "field", "value", name="uq_dropdown_option"),
        db.Index("ix_dropdown_options_entity_field", "entity", "field"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "entity": self.entity,
            "field": self.field,
            "value": self.value,
            "label": self.label,
            "order": self.order,
            "is_active": self.is_active,
        }

    def __repr__(self):
        return f"<DropdownOption {self.entity}.{self.field}={self.value}>"
