"""
Test Hub Ingestion
Flask Application Factory.

Usage:
    from testhub import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config

CLI (``flask --app wsgi <command>``):
    seed-dropdown-options
    create-project KEY NAME
    import-rows {testcases|defects} FILE --project-id N [--actor-id N]
    import-testng FILE (--run-id N | --project-id N) [--actor-id N] [--environment E]
"""

import json
import logging
import os

import click
from flask import Flask
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine, event as _sa_event

from testhub.config import config
from testhub.core.exceptions import ConflictError, NotFoundError, ValidationError
from testhub.core.logging_config import configure_logging
from testhub.models import db

logger = logging.getLogger(__name__)


# ── SQLite FK enforcement + SAVEPOINT support (global engine events) ─────
# pysqlite's own transaction handling breaks nested transactions, so it is
# switched off on connect and BEGIN is emitted explicitly.
@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _configure_sqlite(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        dbapi_conn.isolation_level = None
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


@_sa_event.listens_for(_sa_engine.Engine, "begin")
def _sqlite_begin(conn):
    if conn.dialect.name == "sqlite":
        conn.exec_driver_sql("BEGIN")


migrate = Migrate()


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name]())

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)

    # ── Import all models so Alembic can detect them ─────────────────────
    from testhub.models import auth as _auth_models          # noqa: F401
    from testhub.models import project as _project_models    # noqa: F401
    from testhub.models import testing as _testing_models    # noqa: F401
    from testhub.models import dropdown as _dropdown_models  # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    if app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite:///") and ":memory:" not in app.config[
        "SQLALCHEMY_DATABASE_URI"
    ]:
        os.makedirs(app.instance_path, exist_ok=True)
    with app.app_context():
        try:
            db.create_all()
            app.logger.info("db.create_all() completed successfully")
        except Exception as e:
            app.logger.warning("db.create_all() failed: %s", e)

    register_cli(app)
    return app


# ═════════════════════════════════════════════════════════════════════════════
# CLI commands
# ═════════════════════════════════════════════════════════════════════════════

def _echo_json(payload):
    click.echo(json.dumps(payload, ensure_ascii=False, indent=2, default=str))


def register_cli(app):
    @app.cli.command("seed-dropdown-options")
    def seed_dropdown_options_cmd():
        """Seed the built-in dropdown options (priority, status, severity, ...)."""
        from testhub.services.dropdown_service import seed_default_options
        count = seed_default_options()
        db.session.commit()
        click.echo(f"Seeded {count} new dropdown options.")

    @app.cli.command("create-project")
    @click.argument("key")
    @click.argument("name")
    @click.option("--description", default=None)
    def create_project_cmd(key, name, description):
        """Create a project."""
        from testhub.services.project_service import create_project
        try:
            project = create_project(key=key, name=name, description=description)
        except ValidationError as exc:
            raise click.ClickException(exc.message) from exc
        db.session.commit()
        _echo_json(project.to_dict())

    @app.cli.command("import-rows")
    @click.argument("kind", type=click.Choice(["testcases", "defects"]))
    @click.argument("file", type=click.Path(exists=True, dir_okay=False))
    @click.option("--project-id", type=int, required=True)
    @click.option("--actor-id", type=int, default=None, help="User recorded as creator / reporter")
    def import_rows_cmd(kind, file, project_id, actor_id):
        """Import test cases or defects from a CSV / XLSX file."""
        from testhub.services.file_parser import parse_file
        from testhub.services.import_service import import_rows
        with open(file, "rb") as fh:
            data = fh.read()
        try:
            rows = parse_file(os.path.basename(file), data)
            result = import_rows(kind, project_id, actor_id, rows, row_numbers=rows.row_numbers)
        except (NotFoundError, ValidationError) as exc:
            raise click.ClickException(str(exc)) from exc
        _echo_json(result.to_dict())

    @app.cli.command("import-testng")
    @click.argument("file", type=click.Path(exists=True, dir_okay=False))
    @click.option("--run-id", type=int, default=None, help="Existing test run to update")
    @click.option("--project-id", type=int, default=None, help="Create a new automation run in this project")
    @click.option("--actor-id", type=int, default=None)
    @click.option("--environment", default=None)
    @click.option("--name", default=None, help="Name of the new run (default: <file>_<date>)")
    def import_testng_cmd(file, run_id, project_id, actor_id, environment, name):
        """Import TestNG results into an existing or a new test run."""
        from testhub.services import result_reconciler
        if (run_id is None) == (project_id is None):
            raise click.UsageError("Pass exactly one of --run-id or --project-id")
        with open(file, encoding="utf-8") as fh:
            xml_content = fh.read()
        try:
            if run_id is not None:
                result = result_reconciler.import_testng_results(run_id, xml_content, actor_id)
                payload = result.to_dict()
            else:
                run, result = result_reconciler.import_xml_as_new_run(
                    project_id, actor_id, xml_content, environment,
                    filename=os.path.basename(file), name=name,
                )
                payload = {"test_run": run.to_dict(), **result.to_dict()}
        except (NotFoundError, ValidationError, ConflictError) as exc:
            raise click.ClickException(str(exc)) from exc
        _echo_json(payload)
