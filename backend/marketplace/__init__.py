# backend/marketplace/__init__.py
from flask import Flask

from .config import Config
from .extensions import db, migrate


def create_app(config_object=None) -> Flask:
    """Application factory; `config_object` defaults to Config (TestConfig in tests)."""
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_object or Config)

    # Services log through current_app.logger
    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    from .cli import register_commands
    register_commands(app)

    @app.shell_context_processor
    def shell_context():
        return {
            "db": db,
            "Category": models.Category,
            "Vendor": models.Vendor,
            "Order": models.Order,
            "Product": models.Product,
        }

    app.logger.debug("Marketplace app created (database %s)", app.config.get("SQLALCHEMY_DATABASE_URI"))
    return app
