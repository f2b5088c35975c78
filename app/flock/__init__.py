import logging
import os
import uuid
from datetime import date, timedelta

from dotenv import load_dotenv
from flask import Flask, g, jsonify, render_template, request, session
from werkzeug.exceptions import HTTPException

from app.flock.auth import bp as auth_bp, load_current_user
from app.flock.config import load_config
from app.flock.db import init_db, teardown_db_session
from app.flock.errors import ApiError, NotFound
from app.flock.routes import bp as routes_bp
from app.flock.modules.ai.api import bp as ai_bp
from app.flock.modules.analytics.api import bp as analytics_bp
from app.flock.modules.announcements.api import bp as announcements_bp
from app.flock.modules.attendance.api import bp as attendance_bp
from app.flock.modules.bulletins.api import bp as bulletins_bp
from app.flock.modules.donations.api import bp as donations_bp
from app.flock.modules.events.api import bp as events_bp
from app.flock.modules.groups.api import bp as groups_bp
from app.flock.modules.org.api import bp as org_bp
from app.flock.modules.people.api import bp as people_bp
from app.flock.modules.preach.api import bp as preach_bp
from app.flock.modules.prayers.api import bp as prayers_bp
from app.flock.modules.sermon_helper.api import bp as sermon_helper_bp
from app.flock.modules.sermons.api import bp as sermons_bp
from app.flock.modules.songs.api import bp as songs_bp
from app.flock.modules.tenants.api import bp as tenants_bp

API_BLUEPRINTS = (
    tenants_bp,
    org_bp,
    people_bp,
    groups_bp,
    prayers_bp,
    donations_bp,
    attendance_bp,
    songs_bp,
    sermons_bp,
    sermon_helper_bp,
    announcements_bp,
    events_bp,
    bulletins_bp,
    preach_bp,
    analytics_bp,
    ai_bp,
)

_SKIP_USER_PREFIXES = ("/static/", "/health", "/healthz")


def _check_production_config(app: Flask) -> None:
    env = (app.config.get("ENV") or "").strip().lower()
    if env not in ("prod", "production"):
        return
    if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
        raise RuntimeError("DATABASE_URL is required in production.")
    if str(app.config["DATABASE_URL"]).startswith("sqlite"):
        raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
    if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
        raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")
    if not app.config.get("APP_ENCRYPTION_KEY"):
        app.logger.warning("APP_ENCRYPTION_KEY is not set; tenants cannot store AI provider keys.")


def _check_storage_config(app: Flask) -> None:
    if app.config.get("STORAGE_BACKEND") != "s3":
        return
    missing = [k for k in ("S3_ENDPOINT", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY") if not app.config.get(k)]
    if missing:
        app.logger.error("STORAGE CONFIG ERROR: Missing required S3 env vars: %s", ", ".join(missing))


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(ApiError)
    def _api_error(e: ApiError):  # type: ignore[no-redef]
        if e.status >= 500:
            app.logger.error("API error %s (request_id=%s): %s", e.code, getattr(g, "request_id", None), e.message)
        return jsonify(e.to_dict()), e.status

    @app.errorhandler(404)
    def _err_404(e):  # type: ignore[no-redef]
        if request.path.startswith("/api/"):
            return jsonify(NotFound("Not found").to_dict()), 404
        return render_template("errors/404.html"), 404

    @app.errorhandler(405)
    def _err_405(e):  # type: ignore[no-redef]
        return jsonify({"error": {"code": "METHOD_NOT_ALLOWED", "message": "Method not allowed"}}), 405

    @app.errorhandler(413)
    def _err_413(e):  # type: ignore[no-redef]
        return jsonify({"error": {"code": "PAYLOAD_TOO_LARGE", "message": "Request body too large"}}), 413

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        return jsonify(ApiError("Internal server error").to_dict()), 500

    @app.errorhandler(Exception)
    def _unhandled(e: Exception):  # type: ignore[no-redef]
        if isinstance(e, HTTPException):
            return e
        app.logger.exception("Unhandled exception (request_id=%s)", getattr(g, "request_id", None))
        return jsonify(ApiError("Internal server error").to_dict()), 500


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__, template_folder="templates")
    app.config.from_mapping(load_config())
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=8)
    app.config["SESSION_REFRESH_EACH_REQUEST"] = True

    from app.flock.security import apply_cors_headers, csrf_exempt, ensure_csrf_token, validate_csrf

    @app.template_filter("dateformat")
    def _dateformat_filter(value, format: str = "%Y-%m-%d") -> str:
        if value is None:
            return ""
        if isinstance(value, str):
            try:
                value = date.fromisoformat(value[:10])
            except ValueError:
                return value
        return value.strftime(format)

    @app.before_request
    def _assign_request_id():
        g.request_id = request.headers.get("X-Request-Id") or uuid.uuid4().hex

    @app.before_request
    def _csrf_guard():
        if csrf_exempt(request.path):
            return None
        if request.method == "OPTIONS":
            return None
        ensure_csrf_token()
        session.permanent = True
        if request.method in ("POST", "PUT", "PATCH", "DELETE"):
            if (request.endpoint or "").startswith("auth."):
                return None
            if not validate_csrf(request):
                return jsonify({"error": {"code": "CSRF_INVALID", "message": "CSRF token missing or invalid."}}), 400
        return None

    _check_production_config(app)
    init_db(app)

    def _dispose_engine_on_fork() -> None:
        if hasattr(os, "register_at_fork"):
            def _after_fork_child():
                engine = app.extensions.get("sqlalchemy_engine")
                if engine:
                    engine.dispose()

            os.register_at_fork(after_in_child=_after_fork_child)

    _dispose_engine_on_fork()
    _check_storage_config(app)

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/auth")
    for bp in API_BLUEPRINTS:
        app.register_blueprint(bp, url_prefix="/api")

    def _load_user_wrapper():
        if request.path.startswith(_SKIP_USER_PREFIXES):
            g.current_user = None
            g.tenant_id = None
            return None
        return load_current_user()

    app.before_request(_load_user_wrapper)
    app.teardown_appcontext(teardown_db_session)

    @app.after_request
    def _cors(resp):  # type: ignore[no-redef]
        if request.path.startswith("/api/"):
            return apply_cors_headers(request, resp, app.config.get("CORS_ALLOWED_ORIGINS") or ())
        return resp

    _register_error_handlers(app)

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")
    return app
