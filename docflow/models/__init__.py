"""
Document Routing Core — persistence models.

All models share the single Flask-SQLAlchemy ``db`` instance defined here;
model modules are imported by ``create_app`` so Alembic sees every table.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
