"""
Squads Virtuais
SQLAlchemy models package.

Every model module imports the shared ``db`` instance from here:
    from squads_virtuais.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
