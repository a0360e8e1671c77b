"""
OTI Tracker
Flask Application Factory.

Usage:
    from app import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

import click
from flask import Flask, request
from flask_cors import CORS
from flask_migrate import Migrate

from app.config import config
from app.models import db
from app.middleware.logging_config import configure_logging
from app.middleware.timing import init_request_timing

logger = logging.getLogger(__name__)

migrate = Migrate()


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    config_class = config[config_name]
    # ProductionConfig validates required env vars on instantiation
    app.config.from_object(config_class() if config_name == "production" else config_class)

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Request timing middleware ────────────────────────────────────────
    init_request_timing(app)

    # ── Request guards (input length) ────────────────────────────────────
    app.config.setdefault("MAX_CONTENT_LENGTH", 2 * 1024 * 1024)  # 2 MB

    # ── Import models so Alembic can detect them ─────────────────────────
    from app.models import document as _document_models  # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    if app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite:///") and \
            ":memory:" not in app.config["SQLALCHEMY_DATABASE_URI"]:
        os.makedirs(app.instance_path, exist_ok=True)
    with app.app_context():
        db.create_all()
        app.logger.debug("db.create_all() completed")

    # ── Services ─────────────────────────────────────────────────────────
    from app.services.registry import get_services, init_services
    init_services(app)

    # ── Blueprints ───────────────────────────────────────────────────────
    from app.blueprints.building_block_bp import building_block_bp
    from app.blueprints.workflow_template_bp import workflow_template_bp
    from app.blueprints.oti_bp import oti_bp

    app.register_blueprint(building_block_bp)
    app.register_blueprint(workflow_template_bp)
    app.register_blueprint(oti_bp)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("seed-catalog")
    def seed_catalog_cmd():
        """Seed default teams, OTI types, priorities and starter building blocks."""
        written = get_services().reference.seed()
        click.echo(f"Seeded: {written}")

    @app.cli.command("restore-collection")
    @click.argument("key")
    def restore_collection_cmd(key):
        """Swap the newest backup of KEY back in (e.g. otis, buildingBlocks)."""
        if get_services().repository.restore_latest_backup(key):
            click.echo(f"Restored {key} from its latest backup.")
        else:
            click.echo(f"Nothing restored for {key}.")

    # ── Health check ─────────────────────────────────────────────────────
    @app.route("/api/v1/health")
    def health():
        return {"status": "ok", "app": "OTI Tracker"}

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        return {"error": "Not found", "code": "ERR_NOT_FOUND", "path": request.path}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return {"error": "Internal server error", "code": "ERR_INTERNAL"}, 500

    return app
