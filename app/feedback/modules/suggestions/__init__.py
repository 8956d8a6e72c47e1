"""
Suggestions: the items visitors submit to a board, their comments, and the
single authoritative vote counter.
"""
