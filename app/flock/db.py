"""
Engine and session plumbing.

Every session may carry a tenant in `session.info["tenant_id"]`; on
Postgres each transaction publishes it as `app.tenant_id` for the
row-level security policies created by the initial migration.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from collections.abc import Generator

from flask import Flask, current_app, g
from sqlalchemy import create_engine, event, text
from sqlalchemy.orm import Session, sessionmaker

logger = logging.getLogger(__name__)

_SET_TENANT_SQL = text("SELECT set_config('app.tenant_id', :tid, true)")


def _apply_tenant_setting(connection, tenant_id: str | None) -> None:
    # transaction-local; pooled connections never keep a tenant
    if tenant_id and connection.dialect.name == "postgresql":
        connection.execute(_SET_TENANT_SQL, {"tid": str(tenant_id)})


def _engine_options(db_url: str) -> dict[str, object]:
    if db_url.startswith("postgres"):
        return {
            "pool_pre_ping": True,
            "pool_recycle": 1800,
            "pool_size": 5,
            "max_overflow": 10,
            "pool_timeout": 30,
        }
    if db_url.startswith("sqlite"):
        # the dev server and test client use the connection from several threads
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True}


def init_db(app: Flask) -> None:
    db_url = app.config["DATABASE_URL"]
    engine = create_engine(db_url, **_engine_options(db_url))
    sm = sessionmaker(bind=engine, class_=Session, autoflush=False, expire_on_commit=False)

    @event.listens_for(sm, "after_begin")
    def _set_tenant_context(session, transaction, connection):  # type: ignore[no-redef]
        _apply_tenant_setting(connection, session.info.get("tenant_id"))

    app.extensions["sqlalchemy_engine"] = engine
    app.extensions["sqlalchemy_sessionmaker"] = sm
    logger.info("Database engine ready (dialect=%s)", engine.dialect.name)


def bind_tenant(s: Session, tenant_id: str | None) -> Session:
    """Attach (or clear) the tenant; applies immediately when a transaction is open."""
    s.info["tenant_id"] = tenant_id
    if s.in_transaction():
        _apply_tenant_setting(s.connection(), tenant_id)
    return s


def db_session(app: Flask | None = None) -> Session:
    """
    Request-scoped session, bound to the tenant resolved for the request.
    """
    s: Session | None = getattr(g, "db_session", None)
    if s is None:
        sm = (app or current_app).extensions["sqlalchemy_sessionmaker"]
        s = sm()
        tenant_id = getattr(g, "tenant_id", None)
        if tenant_id:
            bind_tenant(s, tenant_id)
        g.db_session = s
    return s


def teardown_db_session(_exc: BaseException | None) -> None:
    s: Session | None = g.pop("db_session", None)
    if s is not None:
        s.close()


@contextmanager
def session_scope(app: Flask, tenant_id: str | None = None) -> Generator[Session, None, None]:
    """
    Session for scripts and tests; commits on success, rolls back on error.
    """
    s: Session = app.extensions["sqlalchemy_sessionmaker"]()
    if tenant_id:
        bind_tenant(s, tenant_id)
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()
