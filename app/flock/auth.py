from __future__ import annotations

import time
import uuid
from collections import defaultdict, deque

from flask import Blueprint, current_app, g, jsonify, request, session
from werkzeug.security import check_password_hash

from app.flock.audit import record_event
from app.flock.db import bind_tenant, db_session
from app.flock.errors import ApiError, BadRequest, unauthorized
from app.flock.models import Tenant, User
from app.flock.security import ensure_csrf_token

bp = Blueprint("auth", __name__)

TENANT_HEADER = "X-Tenant-Id"
_UNAUTHENTICATED_PREFIXES = ("/static/", "/health", "/healthz")


class LoginThrottle:
    """Sliding-window count of login attempts per client address (per process)."""

    def __init__(self, limit: int = 5, window_seconds: int = 300) -> None:
        self.limit = limit
        self.window_seconds = window_seconds
        self._attempts: dict[str, deque[float]] = defaultdict(deque)

    def _prune(self, key: str, now: float) -> deque[float]:
        attempts = self._attempts[key]
        while attempts and attempts[0] <= now - self.window_seconds:
            attempts.popleft()
        return attempts

    def blocked(self, key: str) -> bool:
        return len(self._prune(key, time.monotonic())) >= self.limit

    def hit(self, key: str) -> None:
        self._attempts[key].append(time.monotonic())

    def forget(self, key: str) -> None:
        self._attempts.pop(key, None)

    def reset(self) -> None:
        self._attempts.clear()


login_throttle = LoginThrottle()


def resolve_tenant_id(user: User | None, header_tenant: str | None) -> str | None:
    """
    The user's own tenant always wins. The header is only honoured for
    users without a tenant (platform staff).
    """
    header_tenant = (header_tenant or "").strip() or None
    if user is not None and user.tenant_id:
        if header_tenant and header_tenant != user.tenant_id:
            current_app.logger.warning(
                "Tenant header mismatch ignored: user=%s user_tenant=%s header_tenant=%s request_id=%s",
                user.id,
                user.tenant_id,
                header_tenant,
                getattr(g, "request_id", None),
            )
        return user.tenant_id
    return header_tenant


def _session_user() -> User | None:
    raw_id = session.get("user_id")
    if not raw_id:
        return None
    user = db_session().get(User, int(raw_id))
    if user is None or not user.is_active:
        session.pop("user_id", None)
        return None
    return user


def load_current_user() -> None:
    """
    before_request hook: tags the request with a request_id, then resolves
    g.current_user from the session cookie and g.tenant_id for that user.
    """
    g.request_id = getattr(g, "request_id", None) or uuid.uuid4().hex
    g.current_user = None
    g.tenant_id = None
    if request.path.startswith(_UNAUTHENTICATED_PREFIXES):
        return

    try:
        user = _session_user()
    except Exception as e:
        current_app.logger.error("Session user lookup failed, signing out: %s", e)
        session.pop("user_id", None)
        return
    if user is None:
        return

    g.current_user = user
    g.tenant_id = resolve_tenant_id(user, request.headers.get(TENANT_HEADER))
    if g.tenant_id:
        bind_tenant(db_session(), g.tenant_id)


def current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise unauthorized()
    return u


def current_tenant_id() -> str:
    tid = getattr(g, "tenant_id", None)
    if not tid:
        raise BadRequest("Tenant context required")
    return tid


def serialize_user(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "display_name": user.display_name,
        "tenant_id": user.tenant_id,
        "roles": user.role_keys,
    }


@bp.get("/csrf")
def csrf():
    return jsonify({"csrf_token": ensure_csrf_token()})


@bp.post("/login")
def login_post():
    payload = request.get_json(silent=True) or request.form
    email = (payload.get("email") or "").strip().lower()
    password = payload.get("password") or ""
    ip = request.remote_addr or "unknown"

    if login_throttle.blocked(ip):
        current_app.logger.warning("Login rate limit hit ip=%s email=%s", ip, email)
        return jsonify({"error": {"code": "TOO_MANY_REQUESTS", "message": "Too many login attempts. Please wait 5 minutes."}}), 429

    login_throttle.hit(ip)

    try:
        s = db_session()
        user = s.query(User).filter(User.email == email).one_or_none()
        if not user or not user.is_active or not check_password_hash(user.password_hash, password):
            current_app.logger.warning("Login failed email=%s ip=%s", email, ip)
            record_event(
                s,
                actor=None,
                action="auth.login_failed",
                entity_type="User",
                entity_id=email,
                reason="Invalid credentials",
                metadata={"email": email},
                tenant_id=user.tenant_id if user else None,
            )
            s.commit()
            raise unauthorized("Invalid credentials")

        if user.tenant_id:
            tenant = s.get(Tenant, user.tenant_id)
            if tenant is None or tenant.deleted_at is not None or tenant.status != "active":
                raise unauthorized("Organization is not active")

        session["user_id"] = user.id
        session.permanent = True
        login_throttle.forget(ip)
        record_event(s, actor=user, action="auth.login", entity_type="User", entity_id=str(user.id))
        s.commit()
        return jsonify({"user": serialize_user(user), "csrf_token": ensure_csrf_token()})
    except ApiError:
        raise
    except Exception:
        current_app.logger.exception("Login POST failed (email=%s request_id=%s)", email, getattr(g, "request_id", None))
        raise


@bp.post("/logout")
def logout():
    s = db_session()
    user = getattr(g, "current_user", None)
    if user:
        record_event(s, actor=user, action="auth.logout", entity_type="User", entity_id=str(user.id))
        s.commit()
    session.pop("user_id", None)
    return jsonify({"success": True})


@bp.get("/me")
def me():
    user = current_user()
    return jsonify({"user": serialize_user(user), "tenant_id": getattr(g, "tenant_id", None)})
