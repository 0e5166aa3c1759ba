"""
Depot M&R Workflow Engine
Shared SQLAlchemy instance.

Every model module imports ``db`` from here so that ``db.create_all()``
and Alembic autogenerate see a single metadata object.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
