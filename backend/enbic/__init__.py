# backend/enbic/__init__.py
import logging
import os

from flask import Flask

from .config import Config
from .extensions import db, migrate


MIGRATIONS_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "migrations")


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    if not app.config.get("UPLOAD_FOLDER"):
        app.config["UPLOAD_FOLDER"] = os.path.join(app.instance_path, "uploads")
    os.makedirs(app.config["UPLOAD_FOLDER"], exist_ok=True)

    app.logger.setLevel(getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO))
    logging.getLogger("enbic").setLevel(app.logger.level)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db, directory=MIGRATIONS_DIR)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    from .errors import register_error_handlers
    register_error_handlers(app)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.users import users_bp
    from .routes.states import states_bp
    from .routes.arns import arns_bp
    from .routes.delivery import delivery_bp
    from .routes.dispatch import dispatch_bp
    from .routes.inventory import inventory_bp
    from .routes.reminders import reminders_bp
    from .routes.reports import reports_bp
    from .routes.settings import settings_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(states_bp)
    app.register_blueprint(arns_bp)
    app.register_blueprint(delivery_bp)
    app.register_blueprint(dispatch_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(reminders_bp)
    app.register_blueprint(reports_bp)
    app.register_blueprint(settings_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    if app.config.get("REMINDER_SCHEDULER_ENABLED") and not app.config.get("TESTING"):
        from .scheduler import ReminderScheduler
        scheduler = ReminderScheduler(app)
        app.extensions["enbic_scheduler"] = scheduler
        scheduler.start()

    return app
