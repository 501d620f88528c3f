import logging
import os
from datetime import timedelta

from flask import Flask, g, jsonify, request, session
from dotenv import load_dotenv

from app.policysignoff.clock import Clock, SystemClock
from app.policysignoff.config import load_config
from app.policysignoff.db import init_db, teardown_db_session
from app.policysignoff.errors import register_error_handlers
from app.policysignoff.routes import bp as routes_bp
from app.policysignoff.auth import bp as auth_bp, load_current_user
from app.policysignoff.modules.policies.api import bp as policies_bp


def create_app(*, clock: Clock | None = None) -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=8)
    app.config["SESSION_REFRESH_EACH_REQUEST"] = True

    logging.basicConfig(
        level=getattr(logging, app.config["LOG_LEVEL"], logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app.logger.setLevel(getattr(logging, app.config["LOG_LEVEL"], logging.INFO))

    app.extensions["clock"] = clock or SystemClock()

    from app.policysignoff.security import ensure_csrf_token, validate_csrf

    @app.before_request
    def _csrf_guard():
        if request.path.startswith(("/health", "/healthz")):
            return None
        session.permanent = True
        if request.method in ("POST", "PUT", "PATCH", "DELETE"):
            # Session bootstrap endpoints (login/register/logout) pass through.
            if (request.endpoint or "").startswith("auth."):
                return None
            # Anonymous requests are rejected with 401 by the view itself.
            if not getattr(g, "current_user", None):
                return None
            if not validate_csrf(request):
                return jsonify({"message": "CSRF token missing or invalid."}), 400
        else:
            ensure_csrf_token()
        return None

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

    def _dispose_engine_on_fork() -> None:
        if hasattr(os, "register_at_fork"):
            def _after_fork_child():
                engine = app.extensions.get("sqlalchemy_engine")
                if engine:
                    engine.dispose()
                    app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

            os.register_at_fork(after_in_child=_after_fork_child)

    _dispose_engine_on_fork()

    # Storage health check (fail loudly on misconfiguration)
    if env not in ("test", "testing"):
        from app.policysignoff.storage import missing_storage_config, storage_from_config

        missing_s3 = missing_storage_config(app.config)
        if missing_s3:
            app.logger.error("STORAGE CONFIG ERROR: Missing required S3 env vars: %s", ", ".join(missing_s3))
        else:
            try:
                storage_from_config(app.config).check()
                app.logger.info("Storage health check PASSED: S3 bucket '%s' accessible", app.config["S3_BUCKET"])
            except Exception as e:
                app.logger.error("STORAGE CONFIG ERROR: Cannot access S3 bucket: %s", e)

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(policies_bp, url_prefix="/api")

    def _load_user_wrapper():
        if request.path.startswith(("/health", "/healthz")):
            g.current_user = None
            return None
        return load_current_user()

    # Runs before the CSRF guard so rejected requests still carry a request_id.
    app.before_request_funcs.setdefault(None, []).insert(0, _load_user_wrapper)
    app.teardown_appcontext(teardown_db_session)

    register_error_handlers(app)

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
