import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from werkzeug.security import generate_password_hash

# allow `python scripts/init_db.py` from a checkout
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.flock.constants import PERMISSIONS, ROLE_NAMES, ROLE_PERMISSIONS
from app.flock.models import Permission, Role, Tenant, User
from app.flock.modules.ai.plans import apply_plan_defaults_to_tenant


@contextmanager
def _session_scope(database_url: str) -> Iterator[Session]:
    engine = create_engine(database_url)
    try:
        # begin() commits on clean exit and rolls back on error
        with sessionmaker(bind=engine, autoflush=False, expire_on_commit=False).begin() as s:
            yield s
    finally:
        engine.dispose()


def seed_roles(s: Session) -> dict[str, Role]:
    """Create any missing permissions and roles and grant each role its permissions."""
    perms: dict[str, Permission] = {p.key: p for p in s.query(Permission).all()}
    for key, name in PERMISSIONS.items():
        if key not in perms:
            perms[key] = Permission(key=key, name=name)
            s.add(perms[key])

    roles: dict[str, Role] = {r.key: r for r in s.query(Role).all()}
    for key, name in ROLE_NAMES.items():
        role = roles.get(key)
        if role is None:
            role = Role(key=key, name=name)
            s.add(role)
            roles[key] = role
        for perm_key in ROLE_PERMISSIONS.get(key, ()):
            if perms[perm_key] not in role.permissions:
                role.permissions.append(perms[perm_key])
    s.flush()
    return roles


def seed_tenant(s: Session, slug: str, name: str, email: str) -> Tenant:
    tenant = s.query(Tenant).filter(Tenant.slug == slug).one_or_none()
    if tenant is None:
        now = datetime.utcnow()
        tenant = Tenant(slug=slug, name=name, primary_email=email, created_at=now, updated_at=now)
        s.add(tenant)
        s.flush()
        apply_plan_defaults_to_tenant(s, tenant.id)
    return tenant


def seed_admin(s: Session, tenant: Tenant, admin_role: Role, email: str, password: str) -> User:
    """Existing users keep their password; only the admin role is (re)granted."""
    user = s.query(User).filter(User.email == email).one_or_none()
    if user is None:
        user = User(
            email=email,
            password_hash=generate_password_hash(password),
            display_name="Administrator",
            tenant_id=tenant.id,
            is_active=True,
        )
        s.add(user)
    if admin_role not in user.roles:
        user.roles.append(admin_role)
    return user


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed permissions and roles, the default church and its admin user.

    Safe to re-run on every release. Reads ADMIN_EMAIL, ADMIN_PASSWORD,
    TENANT_SLUG and TENANT_NAME from the environment.
    """
    admin_email = (os.environ.get("ADMIN_EMAIL") or "admin@example.org").strip().lower()
    tenant_slug = (os.environ.get("TENANT_SLUG") or "default").strip().lower()
    tenant_name = (os.environ.get("TENANT_NAME") or "My Church").strip()
    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///flock.db").strip()

    # plain engine: release runs this before any app is created
    with _session_scope(db_url) as s:
        roles = seed_roles(s)
        tenant = seed_tenant(s, tenant_slug, tenant_name, admin_email)
        seed_admin(s, tenant, roles["admin"], admin_email, os.environ.get("ADMIN_PASSWORD") or "change-me")

    print(f"Seeded roles, tenant {tenant_slug!r} and admin {admin_email} (password from ADMIN_PASSWORD).")


if __name__ == "__main__":
    seed_only()
