"""
Re-derive Suggestion.vote_count from the votes table.

Counters are only ever corrected by recounting the ledger, never by editing
them directly. Safe to run at any time; each run is a single transaction.

Usage:
  python scripts/recount_votes.py --all
  python scripts/recount_votes.py --board 12 --dry-run
  python scripts/recount_votes.py --suggestion 345
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.feedback.audit import record_event
from app.feedback.modules.suggestions.service import recount_votes
from scripts._db_utils import resolve_database_url, script_session


def run(*, board_id: int | None, suggestion_id: int | None, dry_run: bool, database_url: str | None = None) -> list[tuple[int, int, int]]:
    with script_session(resolve_database_url(database_url)) as s:
        drifted = recount_votes(s, board_id=board_id, suggestion_id=suggestion_id, dry_run=dry_run)
        if drifted and not dry_run:
            record_event(
                s,
                actor=None,
                action="suggestion.recount",
                entity_type="Board" if board_id is not None else "Suggestion",
                entity_id=board_id if board_id is not None else suggestion_id,
                reason="scripts/recount_votes.py",
                metadata={"corrected": [{"suggestion_id": sid, "stored": old, "live": new} for sid, old, new in drifted]},
            )
    return drifted


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Recount suggestion vote counters from the votes table.")
    scope = parser.add_mutually_exclusive_group(required=True)
    scope.add_argument("--board", type=int, help="Only suggestions on this board")
    scope.add_argument("--suggestion", type=int, help="Only this suggestion")
    scope.add_argument("--all", action="store_true", help="Every suggestion")
    parser.add_argument("--dry-run", action="store_true", help="Report drift without fixing it")
    args = parser.parse_args(argv)

    drifted = run(board_id=args.board, suggestion_id=args.suggestion, dry_run=args.dry_run)
    for sid, stored, live in drifted:
        print(f"suggestion={sid} stored={stored} live={live}", flush=True)
    verb = "would fix" if args.dry_run else "fixed"
    print(f"{len(drifted)} counter(s) {verb}.", flush=True)
    return 0


if __name__ == "__main__":
    sys.exit(main())
