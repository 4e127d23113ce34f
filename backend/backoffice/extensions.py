# Overview: Unbound extension singletons; create_app() attaches them to the app.

from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
migrate = Migrate(render_as_batch=True)
