"""
pytest fixtures for the ingestion tests.

Every test runs inside an application context against in-memory SQLite.
Tables are rebuilt after each test and the default dropdown options are
seeded before it, so tests can rely on the stock priorities, statuses and
severities.
"""

import pytest

from testhub import create_app
from testhub.models import db as _db
from testhub.models.auth import User
from testhub.models.project import Project, ProjectMember
from testhub.services.dropdown_service import seed_default_options


@pytest.fixture(scope="session")
def app():
    application = create_app("testing")
    with application.app_context():
        _db.create_all()
    yield application
    with application.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app):
    with app.app_context():
        seed_default_options()
        _db.session.commit()
        yield _db.session
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


def _user(email, full_name, project=None, role=None):
    user = User(email=email, full_name=full_name)
    _db.session.add(user)
    _db.session.flush()
    if project is not None:
        _db.session.add(ProjectMember(project_id=project.id, user_id=user.id, role_in_project=role))
    _db.session.commit()
    return user


@pytest.fixture()
def project():
    proj = Project(key="MOBILE", name="Mobile App")
    _db.session.add(proj)
    _db.session.commit()
    return proj


@pytest.fixture()
def actor(project):
    """Importing user; lead on ``project``."""
    return _user("importer@example.com", "Imogen Porter", project, "lead")


@pytest.fixture()
def member(project):
    # mixed-case e-mail on purpose: lookups are case-insensitive
    return _user("Dana.Tester@Example.com", "Dana Tester", project, "tester")


@pytest.fixture()
def outsider():
    """Exists, but belongs to no project."""
    return _user("outsider@example.com", "Owen Outsider")
