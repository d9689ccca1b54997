"""Project lookup, membership and the member directory used by row imports."""

from __future__ import annotations

import logging

from email_validator import EmailNotValidError, validate_email

from testhub.core.exceptions import NotFoundError, ValidationError
from testhub.models import db
from testhub.models.auth import User
from testhub.models.project import Project, ProjectMember

logger = logging.getLogger(__name__)


def get_project(project_id: int) -> Project:
    """Return the project or raise NotFoundError."""
    project = db.session.get(Project, project_id)
    if project is None:
        raise NotFoundError(resource="Project", resource_id=project_id)
    return project


def create_project(*, key: str, name: str, description: str | None = None) -> Project:
    """Create a project. Key is upper-cased and must be unique."""
    key = str(key or "").strip().upper()
    name = str(name or "").strip()
    if not key:
        raise ValidationError("Project key is required", details={"key": "required"})
    if not name:
        raise ValidationError("Project name is required", details={"name": "required"})
    if Project.query.filter_by(key=key).first():
        raise ValidationError(f"Project key already exists: {key}", details={"key": key})

    project = Project(key=key, name=name, description=description)
    db.session.add(project)
    db.session.flush()
    return project


def add_member(project_id: int, user_id: int, role_in_project: str | None = None) -> ProjectMember:
    """Add a user to a project; returns the existing membership when already a member."""
    get_project(project_id)
    member = ProjectMember.query.filter_by(project_id=project_id, user_id=user_id).first()
    if member:
        return member
    if db.session.get(User, user_id) is None:
        raise NotFoundError(resource="User", resource_id=user_id)
    member = ProjectMember(project_id=project_id, user_id=user_id, role_in_project=role_in_project)
    db.session.add(member)
    db.session.flush()
    return member


def normalize_email(value) -> str | None:
    """Return the normalized, case-folded address, or None when ``value`` is not an e-mail."""
    text = str(value or "").strip()
    if "@" not in text:
        return None
    try:
        return validate_email(text, check_deliverability=False).normalized.casefold()
    except EmailNotValidError:
        return None


class MemberDirectory:
    """
    Project members indexed by e-mail and display name, loaded once per batch.

    ``resolve`` accepts either form, case-insensitively. Names shared by
    several members are ambiguous and do not resolve.
    """

    def __init__(self, users: list[User]):
        self._by_email: dict[str, User] = {}
        self._by_name: dict[str, User | None] = {}
        for user in users:
            email = normalize_email(user.email) or (user.email or "").strip().casefold()
            if email:
                self._by_email[email] = user
            name = (user.full_name or "").strip().casefold()
            if name:
                # None marks an ambiguous name.
                self._by_name[name] = None if name in self._by_name else user

    @classmethod
    def for_project(cls, project_id: int) -> MemberDirectory:
        users = (
            User.query
            .join(ProjectMember, ProjectMember.user_id == User.id)
            .filter(ProjectMember.project_id == project_id)
            .all()
        )
        return cls(users)

    def __len__(self):
        return len(self._by_email)

    def resolve(self, raw) -> User | None:
        text = str(raw or "").strip()
        if not text:
            return None
        email = normalize_email(text)
        if email:
            return self._by_email.get(email)
        return self._by_name.get(text.casefold())
