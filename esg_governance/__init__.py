"""
ESG Governance Core
Flask application factory.

    from esg_governance import create_app
    app = create_app()           # APP_ENV, else "development"
    app = create_app("testing")

A custom ``GovernanceStore`` can be handed in as ``store``; otherwise the
SQLAlchemy-backed store is bound to the app.
"""

import logging
import os

from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate

from esg_governance.blueprints import register_blueprints
from esg_governance.config import config
from esg_governance.core.exceptions import NotFoundError, ValidationError
from esg_governance.middleware.logging_config import configure_logging
from esg_governance.middleware.rate_limiter import init_rate_limits
from esg_governance.models import db
from esg_governance.repositories import init_store
from esg_governance.utils.errors import E, api_error

logger = logging.getLogger(__name__)

migrate = Migrate()
# Limits are attached per blueprint in init_rate_limits
limiter = Limiter(key_func=get_remote_address, default_limits=[])


def create_app(config_name=None, store=None):
    config_name = config_name or os.getenv("APP_ENV", "development")
    if config_name == "production" and not os.getenv("SECRET_KEY"):
        raise RuntimeError("SECRET_KEY environment variable must be set in production")

    app = Flask(__name__)
    app.config.from_object(config[config_name])

    configure_logging(app)

    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    origins = [o.strip() for o in app.config.get("CORS_ORIGINS", "*").split(",") if o.strip()]
    if origins:
        CORS(app, origins="*" if origins == ["*"] else origins)

    init_store(app, store)

    # Model modules must be imported before create_all / flask db migrate
    from esg_governance.models import audit, auth, reporting  # noqa: F401

    with app.app_context():
        db.create_all()
        if app.config.get("SEED_PREDEFINED_ROLES"):
            from esg_governance.services.role_service import seed_predefined_roles
            seed_predefined_roles()

    register_blueprints(app)
    _register_cli(app)
    _register_error_handlers(app)

    @app.route("/api/v1/health")
    def health():
        return {"status": "ok", "app": "ESG Governance Core"}

    init_rate_limits(app, limiter)
    return app


def _register_cli(app):
    @app.cli.command("seed-governance")
    def seed_governance_cmd():
        """Seed the predefined roles and the sample users."""
        from esg_governance.services.role_service import seed_predefined_roles
        from esg_governance.services.user_service import seed_sample_users

        roles = seed_predefined_roles()
        users = seed_sample_users()
        logger.info("Seeded %s roles and %s users", roles, users)


def _register_error_handlers(app):
    @app.errorhandler(NotFoundError)
    def handle_not_found(e):
        return api_error(E.NOT_FOUND, str(e))

    @app.errorhandler(ValidationError)
    def handle_validation(e):
        return api_error(E.VALIDATION_INVALID, str(e), details=e.details)

    @app.errorhandler(404)
    def not_found(e):
        return {"error": "Not found", "path": request.path}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "retry_after": e.description}, 429

    @app.errorhandler(500)
    def server_error(e):
        logger.error("Unhandled error: %s", e, exc_info=True)
        return api_error(E.INTERNAL, "Internal server error")
