from flask import Blueprint, render_template

from app.feedback.db import db_session
from app.feedback.modules.boards.service import list_public_boards

bp = Blueprint("routes", __name__)


@bp.get("/")
def index():
    boards = list_public_boards(db_session())
    return render_template("public/index.html", boards=boards)


@bp.get("/health")
def health():
    """Health check endpoint. Returns JSON."""
    return {"ok": True}


@bp.get("/healthz")
def healthz():
    """
    Fast health check for k8s/DO probes. No DB access, minimal overhead.
    """
    return "ok", 200
