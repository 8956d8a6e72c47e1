from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import g, redirect, request, url_for

from app.feedback.identity import Identity
from app.feedback.models import User


def current_identity() -> Identity:
    identity: Identity | None = getattr(g, "identity", None)
    if identity is None:
        # before_request hook should prevent this.
        raise RuntimeError("No identity resolved for this request")
    return identity


def current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        # login_required should prevent this.
        raise RuntimeError("No current user")
    return u


def login_required(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        user: User | None = getattr(g, "current_user", None)
        # Unauthenticated → redirect to login.
        if not user or not user.is_active:
            nxt = request.full_path or request.path
            # Avoid trailing '?' from full_path when there is no query string.
            if nxt.endswith("?"):
                nxt = nxt[:-1]
            return redirect(url_for("auth.login_get", next=nxt))
        return fn(*args, **kwargs)

    return wrapped


def wants_json() -> bool:
    """API callers: JSON body, .json or /vote path, XHR, or an Accept header preferring JSON."""
    if request.is_json or request.path.endswith((".json", "/vote")):
        return True
    if request.headers.get("X-Requested-With") == "XMLHttpRequest":
        return True
    best = request.accept_mimetypes.best_match(["application/json", "text/html"])
    return best == "application/json" and request.accept_mimetypes[best] > request.accept_mimetypes["text/html"]
