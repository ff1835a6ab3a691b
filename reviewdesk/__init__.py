import os
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from flask import Flask, request, session, jsonify
from .extensions import db, migrate, login_manager, csrf, mail, babel
from .config import Config
from .models.user import User

# Blueprints
from .blueprints.errors import errors_bp
from .blueprints.auth import auth_bp
from .blueprints.deliverables import deliverables_bp
from .blueprints.approvals import approvals_bp


# Optional: Sentry
def _init_sentry(app):
    dsn = app.config.get("SENTRY_DSN")
    if not dsn:
        return
    try:
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration
        from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

        sentry_sdk.init(
            dsn=dsn,
            integrations=[FlaskIntegration(), SqlalchemyIntegration()],
            traces_sample_rate=app.config.get("SENTRY_TRACES_SAMPLE_RATE", 0.0),
            environment=os.getenv("ENV", "development"),
            release=app.config.get("APP_VERSION") or os.getenv("GIT_COMMIT", None),
            send_default_pii=False,
        )
        app.logger.info("Sentry initialized.")
    except Exception as e:
        app.logger.warning(f"Sentry init failed: {e}")

def _init_logging(app):
    # Base level
    level_name = app.config.get("LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    app.logger.setLevel(level)

    # Ensure log dir exists
    log_dir = Path(app.config.get("LOG_DIR", "logs"))
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / app.config.get("LOG_FILENAME", "reviewdesk.log")

    # Formatter: text or JSON
    if app.config.get("LOG_JSON", False):
        import json_log_formatter
        formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("[%(asctime)s] %(levelname)s in %(module)s: %(message)s")

    # factory may run more than once per process (tests)
    for h in list(app.logger.handlers):
        if getattr(h, "_reviewdesk", False):
            app.logger.removeHandler(h)
            h.close()

    # Rotating file handler (5MB x 5)
    file_handler = RotatingFileHandler(
        log_path, maxBytes=5_000_000, backupCount=5, encoding="utf-8"
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(formatter)
    file_handler._reviewdesk = True
    app.logger.addHandler(file_handler)

    # Stream to stdout as well (useful on dev/heroku/docker)
    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(level)
    stream_handler.setFormatter(formatter)
    stream_handler._reviewdesk = True
    app.logger.addHandler(stream_handler)

    app.logger.info("Logging initialized.")

def create_app(config_object=None):
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_object or Config)

    app.config.setdefault("SECRET_KEY", "change-me")
    app.config.setdefault("SQLALCHEMY_TRACK_MODIFICATIONS", False)
    app.config.setdefault("BABEL_DEFAULT_LOCALE", "en")
    app.config.setdefault("BABEL_DEFAULT_TIMEZONE", "UTC")
    app.config.setdefault("LANGUAGES", ["en"])

    if not app.config.get("TESTING"):
        app.config.from_pyfile("config.py", silent=True)
        Path(app.instance_path).mkdir(parents=True, exist_ok=True)

    # Extensions
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    csrf.init_app(app)
    mail.init_app(app)

    # ---- Babel init (locale from session/Accept-Language) ----
    def _select_locale():
        return (
            session.get("lang")
            or request.accept_languages.best_match(app.config.get("LANGUAGES", ["en"]))
            or "en"
        )
    babel.init_app(app, locale_selector=_select_locale)

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    # Logging must come before blueprints so errors during register are captured
    _init_logging(app)
    _init_sentry(app)

    # Blueprints
    app.register_blueprint(errors_bp)  # error handlers
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(deliverables_bp, url_prefix="/deliverables")
    app.register_blueprint(approvals_bp, url_prefix="/approvals")

    @app.get("/health")
    def health():
        return jsonify({"ok": True, "version": app.config.get("APP_VERSION")})

    return app
