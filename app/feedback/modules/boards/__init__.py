"""
Boards: owner-managed feedback boards and the rules for who may see and use them.

- Owner is fixed at creation; only the owner edits flags, colours and categories.
- Deleting a board removes its suggestions (and their votes), roadmap items and
  custom categories, in that order.
"""
