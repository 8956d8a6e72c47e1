import logging
import os
from datetime import timedelta

from flask import Flask, flash, g, jsonify, redirect, render_template, request, session, url_for
from dotenv import load_dotenv
from sqlalchemy.exc import OperationalError

from app.feedback.config import load_config
from app.feedback.db import init_db, teardown_db_session
from app.feedback.errors import FeedbackError, StoreUnavailable, ValidationError
from app.feedback.routes import bp as routes_bp
from app.feedback.auth import bp as auth_bp, load_current_user
from app.feedback.modules.boards.public import bp as boards_bp
from app.feedback.modules.boards.admin import bp as boards_admin_bp
from app.feedback.modules.roadmap.public import bp as roadmap_bp
from app.feedback.modules.roadmap.admin import bp as roadmap_admin_bp

STORE_RETRY_AFTER_SECONDS = 5


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__, template_folder="templates", static_folder="static")
    app.config.from_mapping(load_config())
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=8)
    app.config["SESSION_REFRESH_EACH_REQUEST"] = True

    level = app.config.get("LOG_LEVEL") or "INFO"
    app.logger.setLevel(level)
    logging.getLogger("app.feedback").setLevel(level)

    from app.feedback.access import wants_json
    from app.feedback.security import ensure_csrf_token, validate_csrf

    @app.context_processor
    def _inject_csrf() -> dict:
        return {"csrf_token": ensure_csrf_token()}

    @app.context_processor
    def _inject_identity() -> dict:
        return {"current_user": getattr(g, "current_user", None), "identity": getattr(g, "identity", None)}

    @app.template_filter("dateformat")
    def _dateformat_filter(value, format: str = "%Y-%m-%d") -> str:
        if value is None:
            return "-"
        if hasattr(value, "strftime"):
            return value.strftime(format)
        return str(value)

    @app.before_request
    def _csrf_guard():
        if request.path.startswith(("/static/", "/health", "/healthz")):
            return None
        ensure_csrf_token()
        session.permanent = True
        if request.method in ("POST", "PUT", "PATCH", "DELETE"):
            # Login/register/reset forms are posted before a session exists.
            if (request.endpoint or "").startswith("auth."):
                return None
            if not validate_csrf(request):
                if wants_json():
                    return jsonify({"error": "CSRF token missing or invalid."}), 400
                return render_template("errors/400.html", message="CSRF token missing or invalid."), 400

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")

    init_db(app)

    if hasattr(os, "register_at_fork"):
        def _after_fork_child():
            engine = app.extensions.get("sqlalchemy_engine")
            if engine:
                engine.dispose()
                app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

        os.register_at_fork(after_in_child=_after_fork_child)

    # Storage health check (fail loudly on misconfiguration)
    if app.config.get("STORAGE_BACKEND") == "s3":
        missing_s3 = [k for k in ("S3_ENDPOINT", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY") if not app.config.get(k)]
        if missing_s3:
            app.logger.error("STORAGE CONFIG ERROR: Missing required S3 env vars: %s", ", ".join(missing_s3))

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(boards_bp, url_prefix="/boards")
    app.register_blueprint(roadmap_bp, url_prefix="/boards")
    app.register_blueprint(boards_admin_bp, url_prefix="/manage/boards")
    app.register_blueprint(roadmap_admin_bp, url_prefix="/manage/boards")

    app.before_request(load_current_user)
    app.teardown_appcontext(teardown_db_session)

    @app.errorhandler(FeedbackError)
    def _err_feedback(e: FeedbackError):  # type: ignore[no-redef]
        status = e.status_code
        if status >= 500:
            app.logger.warning("%s (request_id=%s): %s", e.__class__.__name__, getattr(g, "request_id", None), e.message)
        headers = {"Retry-After": str(STORE_RETRY_AFTER_SECONDS)} if isinstance(e, StoreUnavailable) else {}
        if wants_json():
            body = {"error": e.message}
            if isinstance(e, ValidationError):
                body["errors"] = e.errors
            return jsonify(body), status, headers
        template = f"errors/{status}.html" if status in (400, 403, 404, 503) else "errors/500.html"
        return render_template(template, message=e.message), status, headers

    @app.errorhandler(OperationalError)
    def _err_store(e):  # type: ignore[no-redef]
        s = getattr(g, "db_session", None)
        if s is not None:
            s.rollback()
        return _err_feedback(StoreUnavailable("The data store is temporarily unavailable. Please retry."))

    @app.errorhandler(404)
    def _err_404(e):  # type: ignore[no-redef]
        if wants_json():
            return jsonify({"error": "Not found."}), 404
        return render_template("errors/404.html", message="Page not found."), 404

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        if wants_json():
            return jsonify({"error": "Internal server error."}), 500
        return render_template("errors/500.html"), 500

    @app.errorhandler(413)
    def _err_413(e):  # type: ignore[no-redef]
        flash("File too large. Maximum size is 5MB.", "danger")
        referrer = request.referrer
        if referrer and referrer.startswith(request.host_url):
            return redirect(referrer), 302
        return redirect(url_for("boards_admin.list_boards")), 302

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
