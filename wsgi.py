"""
Flask-Migrate / Alembic entry point.

Usage:
    flask db init       # first time only (creates migrations/ env files)
    flask db migrate -m "description"
    flask db upgrade
"""

from docflow import create_app

app = create_app()
