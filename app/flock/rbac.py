from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import current_app, g, has_request_context

from app.flock.errors import BadRequest, Forbidden, unauthorized
from app.flock.models import User


def permission_keys(user: User | None) -> frozenset[str]:
    """Union of the permission keys granted by the user's roles (cached per request)."""
    if not user or not user.is_active:
        return frozenset()
    cache: dict[int, frozenset[str]] | None = None
    if has_request_context():
        cache = g.setdefault("permission_cache", {})
        if user.id in cache:
            return cache[user.id]
    keys = frozenset(p.key for role in user.roles for p in role.permissions)
    if cache is not None:
        cache[user.id] = keys
    return keys


def user_has_permission(user: User | None, permission_key: str) -> bool:
    return permission_key in permission_keys(user)


def require_permission(
    permission_key: str, *, tenant_required: bool = True
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    401 without a session, 400 when a tenant is needed but none resolved,
    403 when the user's roles lack `permission_key`.
    """

    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            user: User | None = getattr(g, "current_user", None)
            if not user or not user.is_active:
                raise unauthorized()
            if tenant_required and not getattr(g, "tenant_id", None):
                raise BadRequest("Tenant context required")
            if not user_has_permission(user, permission_key):
                current_app.logger.warning(
                    "Forbidden: missing_permission=%s user=%s tenant=%s request_id=%s",
                    permission_key,
                    user.id,
                    getattr(g, "tenant_id", None),
                    getattr(g, "request_id", None),
                )
                raise Forbidden("Insufficient permissions")
            return fn(*args, **kwargs)

        return wrapped

    return decorator
