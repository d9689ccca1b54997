"""
Flask CLI / Flask-Migrate entry point.

Usage:
    flask --app wsgi seed-dropdown-options
    flask --app wsgi import-rows testcases cases.xlsx --project-id 1 --actor-id 1
    flask --app wsgi import-testng testng-results.xml --run-id 4

    flask --app wsgi db init       # first time only (creates migrations/)
    flask --app wsgi db migrate -m "description"
    flask --app wsgi db upgrade
"""

from testhub import create_app

app = create_app()
