from flask import Blueprint, render_template

from app.flock.db import db_session
from app.flock.modules.bulletins.service import get_by_public_token

bp = Blueprint("routes", __name__)


@bp.get("/health")
def health():
    """Health check endpoint. Returns JSON."""
    return {"ok": True}


@bp.get("/healthz")
def healthz():
    """Fast liveness check. No DB access."""
    return "ok", 200


@bp.get("/b/<token>")
def public_bulletin(token: str):
    s = db_session()
    data = get_by_public_token(s, token)
    return render_template("public/bulletin.html", **data)
