"""Read-only checks applied to model-generated SQL before it reaches the store."""

from __future__ import annotations

import sqlparse
from sqlparse.sql import Comment
from sqlparse.tokens import Comment as CommentToken

from insight_chat.errors import ValidationError

READ_KEYWORD = "select"

DENYLIST: tuple[str, ...] = (
    "insert",
    "update",
    "delete",
    "drop",
    "alter",
    "truncate",
    "create",
    "grant",
    "revoke",
)


def check_read_only(query: str) -> str:
    """Accept iff the query starts with SELECT and contains no denylisted keyword.

    Matching is case-insensitive substring matching over the whole text, so a
    literal such as ``'recreate'`` is rejected too. Returns the trimmed query.
    """
    normalized = query.strip().lower()
    if not normalized.startswith(READ_KEYWORD):
        raise ValidationError("Only SELECT queries are allowed")
    for keyword in DENYLIST:
        if keyword in normalized:
            raise ValidationError(f"Only SELECT queries are allowed (found '{keyword}')")
    return query.strip()


def _has_comment(token) -> bool:
    if isinstance(token, Comment) or token.ttype in CommentToken:
        return True
    return any(_has_comment(sub) for sub in getattr(token, "tokens", []))


def check_single_select(query: str) -> str:
    """Parsed-statement check: exactly one SELECT statement and no comments."""
    candidate = query.strip().rstrip(";").strip()
    if not candidate:
        raise ValidationError("Empty SQL")

    statements = [s for s in sqlparse.parse(candidate) if str(s).strip()]
    if len(statements) != 1:
        raise ValidationError(f"Expected 1 statement, got {len(statements)}")

    statement = statements[0]
    statement_type = statement.get_type()
    if statement_type != "SELECT":
        raise ValidationError(f"Only SELECT statements allowed, got: {statement_type}")
    if _has_comment(statement):
        raise ValidationError("Comments are not allowed in generated SQL")
    return candidate
