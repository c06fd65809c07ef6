"""
Flask Extensions Initialization

This module initializes Flask extensions that are shared across the application.
"""
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

# Local durable store
db = SQLAlchemy()

# Flask-Migrate instance
migrate = Migrate()
