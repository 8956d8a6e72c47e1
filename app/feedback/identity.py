"""
Who is asking: an authenticated account or an anonymous browser session.

Every core call (policy, vote ledger, ranking) takes an Identity explicitly;
nothing below the HTTP layer reads ``g.current_user``.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

ACCOUNT = "account"
ANONYMOUS = "anonymous"


@dataclass(frozen=True)
class Identity:
    kind: str
    account_id: int | None = None
    session_id: str | None = None

    def __post_init__(self) -> None:
        if self.kind == ACCOUNT:
            if self.account_id is None or self.session_id is not None:
                raise ValueError("account identity needs account_id and no session_id")
        elif self.kind == ANONYMOUS:
            if not self.session_id or self.account_id is not None:
                raise ValueError("anonymous identity needs session_id and no account_id")
        else:
            raise ValueError(f"Unknown identity kind: {self.kind!r}")

    @classmethod
    def account(cls, account_id: int) -> "Identity":
        return cls(kind=ACCOUNT, account_id=account_id)

    @classmethod
    def anonymous(cls, session_id: str) -> "Identity":
        return cls(kind=ANONYMOUS, session_id=session_id)

    @property
    def is_account(self) -> bool:
        return self.kind == ACCOUNT

    @property
    def is_anonymous(self) -> bool:
        return self.kind == ANONYMOUS


def resolve_identity(user: Any | None, visitor_id: str) -> Identity:
    """
    Account identity for an active logged-in user, otherwise the visitor's
    session identity. ``visitor_id`` comes from the session transport
    (``security.ensure_visitor_id``), so an anonymous identity is always
    constructible.
    """
    if user is not None and getattr(user, "is_active", False):
        return Identity.account(user.id)
    return Identity.anonymous(visitor_id)
