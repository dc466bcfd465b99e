# backend/tablepos/__init__.py
import atexit

from flask import Flask

from .config import Config
from .extensions import db, migrate


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Per-app rate limiter, token store, adapters and workers
    from .components import EXTENSION_KEY, build_components, shutdown_workers
    components = build_components(app)
    app.extensions[EXTENSION_KEY] = components

    # Register blueprints
    from .routes.system import system_bp
    from .routes.orders import orders_bp
    from .routes.payments import payments_bp
    from .routes.inventory import inventory_bp
    from .routes.customer import customer_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(customer_bp)

    # Errors raised outside a route's own handling (e.g. decorators)
    from .errors import TablePosError, error_response

    @app.errorhandler(TablePosError)
    def handle_tablepos_error(exc):
        return error_response(exc)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    if app.config.get("BACKGROUND_WORKERS_ENABLED") and not app.config.get("TESTING"):
        components.start_workers()
        atexit.register(shutdown_workers, app)

    return app
