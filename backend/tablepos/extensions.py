# Overview: Shared Flask extension instances (ORM session, Alembic migrations).

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

db = SQLAlchemy()

# Batch mode so autogenerated ALTERs also work on SQLite
migrate = Migrate(render_as_batch=True, compare_type=True)
