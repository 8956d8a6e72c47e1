"""
Vote ledger.

INVARIANTS:
- At most one live vote per (identity, suggestion). The partial unique indexes on
  ``votes`` are the authority; the existence check below is only a fast path.
- Every accepted toggle moves ``Suggestion.vote_count`` by exactly one, in the
  same store transaction as the ledger row change (see apply_delta).

RACES:
- Two identities voting at once: both inserts succeed, both increments are
  atomic SQL updates, so neither is lost.
- One identity double-clicking: the second insert trips the unique index inside
  a SAVEPOINT, raises Conflict, and is reported as the state the first request
  produced. The counter is not touched a second time.
- Two concurrent un-votes: the delete is by filter; whichever removes zero rows
  applies no delta.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError

from app.feedback.errors import Conflict
from app.feedback.identity import Identity
from app.feedback.modules.suggestions.service import apply_delta, current_count
from app.feedback.modules.voting.models import VOTER_ACCOUNT, VOTER_SESSION, Vote

if TYPE_CHECKING:
    from collections.abc import Iterable
    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToggleResult:
    voted: bool
    vote_count: int

    def to_dict(self) -> dict:
        return {"voted": self.voted, "voteCount": self.vote_count}


def _voter_filter(identity: Identity):
    """Uniqueness key for the identity's namespace."""
    if identity.is_account:
        return (Vote.voter_kind == VOTER_ACCOUNT, Vote.user_id == identity.account_id)
    return (Vote.voter_kind == VOTER_SESSION, Vote.session_id == identity.session_id)


def find_vote(s: "Session", identity: Identity, suggestion_id: int) -> Vote | None:
    return s.execute(
        select(Vote).where(Vote.suggestion_id == suggestion_id, *_voter_filter(identity))
    ).scalar_one_or_none()


def _insert_vote(s: "Session", identity: Identity, suggestion_id: int, now: datetime) -> Vote:
    vote = Vote(
        suggestion_id=suggestion_id,
        voter_kind=VOTER_ACCOUNT if identity.is_account else VOTER_SESSION,
        user_id=identity.account_id,
        session_id=identity.session_id,
        created_at=now,
    )
    try:
        # SAVEPOINT so a lost race does not roll back the caller's transaction.
        with s.begin_nested():
            s.add(vote)
            s.flush()  # force unique index check now
    except IntegrityError as e:
        raise Conflict(f"Duplicate vote for suggestion {suggestion_id}") from e
    return vote


def _delete_vote(s: "Session", identity: Identity, suggestion_id: int) -> int:
    return s.execute(
        delete(Vote)
        .where(Vote.suggestion_id == suggestion_id, *_voter_filter(identity))
        .execution_options(synchronize_session="fetch")
    ).rowcount


def toggle_vote(
    s: "Session",
    identity: Identity,
    suggestion_id: int,
    *,
    now: datetime | None = None,
) -> ToggleResult:
    """
    Cast or withdraw ``identity``'s vote on a suggestion.

    The caller must already have passed ``policy.require_vote`` for the
    suggestion's board, and commits the session afterwards. Raises NotFound if
    the suggestion does not exist; never raises Conflict.
    """
    now = now or datetime.utcnow()
    current_count(s, suggestion_id)  # NotFound before touching the ledger

    if find_vote(s, identity, suggestion_id) is not None:
        removed = _delete_vote(s, identity, suggestion_id)
        count = apply_delta(s, suggestion_id, -removed)
        logger.debug("Vote removed suggestion=%s kind=%s removed=%s count=%s", suggestion_id, identity.kind, removed, count)
        return ToggleResult(voted=False, vote_count=count)

    try:
        _insert_vote(s, identity, suggestion_id, now)
    except Conflict:
        # Lost a double-submit race; the winner already applied the increment.
        count = current_count(s, suggestion_id)
        logger.info("Vote conflict treated as no-op suggestion=%s kind=%s count=%s", suggestion_id, identity.kind, count)
        return ToggleResult(voted=find_vote(s, identity, suggestion_id) is not None, vote_count=count)

    count = apply_delta(s, suggestion_id, 1)
    logger.debug("Vote added suggestion=%s kind=%s count=%s", suggestion_id, identity.kind, count)
    return ToggleResult(voted=True, vote_count=count)


def has_voted(s: "Session", identity: Identity, suggestion_ids: "Iterable[int]") -> set[int]:
    """Which of ``suggestion_ids`` the identity has a live vote on. One query."""
    ids = list(suggestion_ids)
    if not ids:
        return set()
    rows = s.execute(
        select(Vote.suggestion_id).where(Vote.suggestion_id.in_(ids), *_voter_filter(identity))
    ).scalars()
    return set(rows)


def live_vote_count(s: "Session", suggestion_id: int) -> int:
    """Count ledger rows directly (used by correction tooling and tests)."""
    return s.execute(select(func.count(Vote.id)).where(Vote.suggestion_id == suggestion_id)).scalar_one()


def delete_votes_for_suggestions(s: "Session", suggestion_ids: list[int]) -> int:
    if not suggestion_ids:
        return 0
    return s.execute(
        delete(Vote)
        .where(Vote.suggestion_id.in_(suggestion_ids))
        .execution_options(synchronize_session=False)
    ).rowcount
