import secrets
from flask import session, Request

CSRF_COOKIE_NAME = "XSRF-TOKEN"
CSRF_HEADERS = ("X-CSRF-Token", "X-XSRF-TOKEN")


def ensure_csrf_token() -> str:
    """Ensure a CSRF token exists in the session and return it."""
    token = session.get("csrf_token")
    if not token:
        token = secrets.token_urlsafe(32)
        session["csrf_token"] = token
    return token


def validate_csrf(req: Request) -> bool:
    """Validate CSRF token from header or JSON body."""
    token = None
    for header in CSRF_HEADERS:
        token = req.headers.get(header)
        if token:
            break

    if not token and req.is_json:
        json_data = req.get_json(silent=True)
        if isinstance(json_data, dict):
            token = json_data.get("csrf_token")

    expected = session.get("csrf_token")
    return bool(token and expected and secrets.compare_digest(str(token), str(expected)))
