# Overview: Shared Flask extension instances; bound to the app in create_app().

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

# One scoped session per app context; services commit on it directly
db = SQLAlchemy()

# Alembic migrations through "flask db ..."
migrate = Migrate()
