import os
import sys
from pathlib import Path

from werkzeug.security import generate_password_hash

# Ensure repo root is on sys.path when running as a script (Windows-friendly).
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.feedback.identity import Identity
from app.feedback.models import User
from app.feedback.modules.boards.models import Board
from app.feedback.modules.boards.service import create_board
from app.feedback.modules.suggestions.service import create_suggestion
from scripts._db_utils import resolve_database_url, script_session

DEMO_SUGGESTIONS = (
    {"title": "Dark mode", "description": "A dark colour scheme for late-night use.", "category": "feature"},
    {"title": "Export to CSV", "description": "Download the suggestion list as a spreadsheet.", "category": "improvement"},
)


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed the owner account and a demo board in an idempotent way.
    Does NOT overwrite an existing owner's password, and only creates the demo
    board when the owner has no boards yet.
    """
    admin_email = (os.environ.get("ADMIN_EMAIL") or "owner@example.com").strip().lower()
    admin_username = (os.environ.get("ADMIN_USERNAME") or "owner").strip()
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me"
    seed_demo = (os.environ.get("SEED_DEMO_BOARD") or "1").strip() not in ("0", "false", "no")

    db_url = resolve_database_url(database_url)

    with script_session(db_url) as s:
        user = s.query(User).filter(User.email == admin_email).one_or_none()
        if not user:
            user = User(
                username=admin_username,
                email=admin_email,
                first_name="Board",
                last_name="Owner",
                password_hash=generate_password_hash(admin_password),
                is_active=True,
            )
            s.add(user)
            s.flush()

        has_board = s.query(Board.id).filter(Board.owner_user_id == user.id).first() is not None
        if seed_demo and not has_board:
            board = create_board(
                s,
                {
                    "name": "Product feedback",
                    "description": "Tell us what to build next.",
                    "is_public": True,
                    "allow_anonymous_votes": True,
                    "allow_public_submissions": True,
                    "roadmap_enabled": True,
                },
                user,
            )
            for payload in DEMO_SUGGESTIONS:
                create_suggestion(s, board, Identity.account(user.id), payload)
            print(f"Created demo board id={board.id}")

    print("Initialized database (seed_only).")
    print(f"Owner email: {admin_email}")
    print("Owner password: (from ADMIN_PASSWORD)")


def main() -> None:
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
