from __future__ import annotations

import re
import uuid
from collections import defaultdict
from collections.abc import Callable
from datetime import datetime, timedelta
from functools import wraps
from typing import Any

from flask import Blueprint, current_app, g, jsonify, request, session
from sqlalchemy.exc import IntegrityError
from werkzeug.security import check_password_hash, generate_password_hash

from app.policysignoff.audit import record_event, user_event
from app.policysignoff.db import db_session
from app.policysignoff.errors import FieldError, TooManyRequests, Unauthenticated, ValidationFailed
from app.policysignoff.models import User
from app.policysignoff.security import CSRF_COOKIE_NAME, ensure_csrf_token
from app.policysignoff.utils import utcnow

bp = Blueprint("auth", __name__)
_LOGIN_RATE_LIMIT = 5
_LOGIN_RATE_WINDOW = 300  # seconds
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
PASSWORD_MIN_LENGTH = 8
EMAIL_MAX_LENGTH = 320


def _login_attempts() -> dict[str, list[datetime]]:
    return current_app.extensions.setdefault("login_attempts", defaultdict(list))


def _check_rate_limit(ip: str) -> bool:
    attempts = _login_attempts()
    cutoff = utcnow() - timedelta(seconds=_LOGIN_RATE_WINDOW)
    attempts[ip] = [t for t in attempts[ip] if t > cutoff]
    return len(attempts[ip]) >= _LOGIN_RATE_LIMIT


def _record_attempt(ip: str) -> None:
    _login_attempts()[ip].append(utcnow())


def load_current_user() -> None:
    """
    Loads g.current_user from the signed session cookie.
    Also assigns a simple per-request request_id (for audit/log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    if request.path.startswith(("/static/", "/health", "/healthz")):
        g.current_user = None
        return

    user_id = session.get("user_id")
    if not user_id:
        g.current_user = None
        return

    s = db_session()
    user = s.get(User, int(user_id))
    if not user:
        session.pop("user_id", None)
        g.current_user = None
        return
    g.current_user = user


def current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise Unauthenticated()
    return u


def require_login(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        if not getattr(g, "current_user", None):
            raise Unauthenticated()
        return fn(*args, **kwargs)

    return wrapped


def _json_body() -> dict[str, Any]:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _text(payload: dict[str, Any], key: str) -> str:
    value = payload.get(key)
    return value.strip() if isinstance(value, str) else ""


def validate_registration(s, payload: dict[str, Any]) -> list[FieldError]:
    errs: list[FieldError] = []
    name = _text(payload, "name")
    if not name:
        errs.append(FieldError("name", "The name field is required."))
    elif len(name) > 255:
        errs.append(FieldError("name", "The name field must not be greater than 255 characters."))

    email = _text(payload, "email").lower()
    if not email:
        errs.append(FieldError("email", "The email field is required."))
    elif len(email) > EMAIL_MAX_LENGTH:
        errs.append(FieldError("email", f"The email field must not be greater than {EMAIL_MAX_LENGTH} characters."))
    elif not _EMAIL_RE.match(email):
        errs.append(FieldError("email", "The email field must be a valid email address."))
    elif s.query(User).filter(User.email == email).one_or_none():
        errs.append(FieldError("email", "The email has already been taken."))

    password = payload.get("password") if isinstance(payload.get("password"), str) else ""
    if not password:
        errs.append(FieldError("password", "The password field is required."))
    elif len(password) < PASSWORD_MIN_LENGTH:
        errs.append(FieldError("password", f"The password field must be at least {PASSWORD_MIN_LENGTH} characters."))
    elif password != payload.get("password_confirmation"):
        errs.append(FieldError("password", "The password field confirmation does not match."))
    return errs


@bp.get("/csrf-cookie")
def csrf_cookie():
    token = ensure_csrf_token()
    resp = jsonify({"csrf_token": token})
    # Readable by the SPA so it can echo it back in X-XSRF-TOKEN.
    resp.set_cookie(
        CSRF_COOKIE_NAME,
        token,
        samesite="Lax",
        secure=bool(current_app.config.get("SESSION_COOKIE_SECURE")),
        httponly=False,
    )
    return resp


@bp.post("/register")
def register():
    s = db_session()
    payload = _json_body()
    errs = validate_registration(s, payload)
    if errs:
        raise ValidationFailed(errs)

    user = User(
        name=_text(payload, "name"),
        email=_text(payload, "email").lower(),
        password_hash=generate_password_hash(payload["password"]),
    )
    s.add(user)
    try:
        s.flush()
    except IntegrityError:
        # Lost a race with another registration for the same email.
        s.rollback()
        raise ValidationFailed([FieldError("email", "The email has already been taken.")]) from None

    user_event(s, user, action="register")
    s.commit()

    session.clear()
    session["user_id"] = user.id
    ensure_csrf_token()
    return jsonify(user.to_dict()), 201


@bp.post("/login")
def login():
    payload = _json_body()
    email = _text(payload, "email").lower()
    password = payload.get("password") if isinstance(payload.get("password"), str) else ""
    ip = request.remote_addr or "unknown"

    if _check_rate_limit(ip):
        raise TooManyRequests()

    _record_attempt(ip)

    try:
        s = db_session()
        user = s.query(User).filter(User.email == email).one_or_none()
        if not user or not check_password_hash(user.password_hash, password):
            record_event(
                s,
                actor=None,
                action="auth.login_failed",
                entity_type="User",
                entity_id=email,
                reason="Invalid credentials",
                metadata={"email": email},
            )
            s.commit()
            raise ValidationFailed([FieldError("email", "These credentials do not match our records.")])

        session.clear()
        session["user_id"] = user.id
        ensure_csrf_token()
        _login_attempts()[ip].clear()
        user_event(s, user, action="login")
        s.commit()
        return jsonify(user.to_dict())
    except ValidationFailed:
        raise
    except Exception:
        current_app.logger.exception("Login POST crashed (email=%s request_id=%s)", email, getattr(g, "request_id", None))
        raise


@bp.post("/logout")
def logout():
    s = db_session()
    user = getattr(g, "current_user", None)
    if user:
        user_event(s, user, action="logout")
        s.commit()
    session.clear()
    return "", 204


@bp.get("/user")
@require_login
def me():
    return jsonify(current_user().to_dict())
