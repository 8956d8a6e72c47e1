"""
Central constants for the feedback board application.
"""
from __future__ import annotations

# Suggestion workflow
SUGGESTION_STATUSES = ("pending", "in-progress", "completed", "rejected")
DEFAULT_SUGGESTION_STATUS = "pending"

# Roadmap items
ROADMAP_STATUSES = ("planned", "in-progress", "completed", "cancelled")
ROADMAP_PRIORITIES = ("low", "medium", "high")
ROADMAP_TYPES = ("feature", "improvement", "bug-fix", "announcement")

# Categories every board gets unless the owner turns them off
DEFAULT_CATEGORIES = (
    {"name": "bug", "color": "#ef4444"},
    {"name": "feature", "color": "#3b82f6"},
    {"name": "improvement", "color": "#10b981"},
    {"name": "other", "color": "#6b7280"},
)

# Ranking
RANK_MODES = ("new", "top", "trending")
DEFAULT_TRENDING_WINDOW_DAYS = 14

# Field limits
TITLE_MAX = 200
DESCRIPTION_MAX = 5000
ROADMAP_DESCRIPTION_MAX = 2000
COMMENT_MAX = 1000
PASSWORD_MIN = 6

# Logo uploads
LOGO_CONTENT_TYPES = frozenset({"image/jpeg", "image/png", "image/gif", "image/webp"})
