"""
Roadmap: owner-curated plan items, optionally promoted from suggestions.
"""
