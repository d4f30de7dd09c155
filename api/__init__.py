from flask import Flask
from flasgger import Swagger
from flask_cors import CORS
import logging

from .config import get_config
from .errors import register_error_handlers
from .commands import register_commands
from utils.rate_limit import RateLimiter
from models import storage  # DBStorage singleton (scoped_session)

# Minimal Swagger config: exposes /swagger.json and UI at /apidocs
SWAGGER_TEMPLATE = {
    "swagger": "2.0",
    "info": {
        "title": "Admin Auth API",
        "version": "1.0.0",
        "description": "Login, refresh-token rotation with reuse detection, and logout for the admin application.",
    },
    "basePath": "/",
    "schemes": ["http", "https"],
    "securityDefinitions": {
        "Bearer": {
            "type": "apiKey",
            "name": "Authorization",
            "in": "header",
            "description": "Enter the access token with the `Bearer ` prefix, e.g. \"Bearer abcde12345\"."
        }
    }
}

SWAGGER_CONFIG = {
    "headers": [],
    "specs": [
        {
            "endpoint": "apispec_1",
            "route": "/swagger.json",
            "rule_filter": lambda rule: True,   # include all endpoints
            "model_filter": lambda tag: True,   # include all models
        }
    ],
    "static_url_path": "/flasgger_static",
    "swagger_ui": True,
    "specs_route": "/apidocs/",
}

logger = logging.getLogger(__name__)


def _check_token_secrets(app: Flask) -> None:
    if app.config["JWT_ACCESS_SECRET"] != app.config["JWT_REFRESH_SECRET"]:
        return
    if app.config.get("APP_ENV", "dev").lower() in ("prod", "production"):
        raise RuntimeError("JWT_ACCESS_SECRET and JWT_REFRESH_SECRET must be different")
    logger.warning("JWT_ACCESS_SECRET and JWT_REFRESH_SECRET are identical; set distinct values")


def create_app(config_name: str | None = None) -> Flask:
    """
    Application factory: creates and configures the Flask app.
    Tests build an isolated app per case with create_app("test").
    """
    app = Flask(__name__)

    # Load configuration (reads .env via get_config)
    app.config.from_object(get_config(config_name))

    logging.basicConfig(
        level=app.config.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    _check_token_secrets(app)

    if app.config.get("RATE_LIMIT_ENABLED", True):
        app.extensions["login_rate_limiter"] = RateLimiter(
            app.config["LOGIN_RATE_LIMIT"], app.config["LOGIN_RATE_LIMIT_WINDOW"]
        )

    # Cross-Origin Resource Sharing: enable for dev, configurable for prod
    CORS(app, resources={r"/*": {"origins": app.config.get("CORS_ORIGINS", "*")}})

    # Swagger UI and JSON
    Swagger(app, template=SWAGGER_TEMPLATE, config=SWAGGER_CONFIG)

    # Register global error handlers that return the uniform error envelope
    register_error_handlers(app)
    register_commands(app)

    from .health import bp as health_bp
    from .auth import bp as auth_bp

    app.register_blueprint(health_bp, url_prefix="/api/v1")
    # registration prefix replaces the blueprint's own "/auth"
    app.register_blueprint(auth_bp, url_prefix="/api/v1/auth")

    # Ensure the DB session is removed at the end of each request/app context
    # This calls scoped_session.remove(), preventing connection leaks
    @app.teardown_appcontext
    def remove_session(exception=None):
        storage.close()

    @app.route("/")
    def root():
        return {
            "message": "Welcome to Admin Auth API",
            "docs": "/apidocs/",
            "health": "/api/v1/health",
        }, 200

    return app
