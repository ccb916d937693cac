"""
Role Clarity Platform
Database models package.

All models share the single ``db`` instance defined here so that
``db.create_all()`` sees every table once the modules are imported.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
