import secrets

from flask import Request, Response, session

CSRF_SESSION_KEY = "csrf_token"
CSRF_HEADER = "X-CSRF-Token"

# login, public bulletin views and unauthenticated lookups carry no session token
CSRF_EXEMPT_PREFIXES = ("/static/", "/health", "/healthz", "/auth/", "/b/", "/api/public/")

CORS_ALLOW_HEADERS = ", ".join(("Content-Type", CSRF_HEADER, "X-Tenant-Id"))
CORS_ALLOW_METHODS = ", ".join(("GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"))


def ensure_csrf_token() -> str:
    token = session.get(CSRF_SESSION_KEY)
    if token:
        return token
    session[CSRF_SESSION_KEY] = token = secrets.token_urlsafe(32)
    return token


def _submitted_token(req: Request) -> str | None:
    if req.headers.get(CSRF_HEADER):
        return req.headers[CSRF_HEADER]
    if req.form.get(CSRF_SESSION_KEY):
        return req.form[CSRF_SESSION_KEY]
    body = req.get_json(silent=True) if req.is_json else None
    if isinstance(body, dict) and body.get(CSRF_SESSION_KEY):
        return str(body[CSRF_SESSION_KEY])
    return None


def validate_csrf(req: Request) -> bool:
    """True when the submitted token (header, form field or JSON key) matches the session's."""
    submitted = _submitted_token(req)
    expected = session.get(CSRF_SESSION_KEY)
    if not submitted or not expected:
        return False
    return secrets.compare_digest(str(submitted), str(expected))


def csrf_exempt(path: str) -> bool:
    return path.startswith(CSRF_EXEMPT_PREFIXES)


def apply_cors_headers(req: Request, resp: Response, allowed_origins: tuple[str, ...]) -> Response:
    """Credentialed CORS for origins listed in CORS_ALLOWED_ORIGINS; others get no headers."""
    origin = req.headers.get("Origin")
    if origin and origin in allowed_origins:
        resp.headers.update(
            {
                "Access-Control-Allow-Origin": origin,
                "Access-Control-Allow-Credentials": "true",
                "Access-Control-Allow-Headers": CORS_ALLOW_HEADERS,
                "Access-Control-Allow-Methods": CORS_ALLOW_METHODS,
            }
        )
        resp.headers.add("Vary", "Origin")
    return resp
