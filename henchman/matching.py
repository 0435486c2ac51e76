"""
Identity matching.

Resolves a free-text name (and optional email) from a meeting to a user
known to an external provider. Pure function, candidate order decides ties.
"""

from __future__ import annotations

from typing import Sequence

from henchman.models import ProviderUser

# Queries up to this many words may also match candidates whose full
# name is contained in the query ("alex kim" -> "Kim").
SHORT_QUERY_WORDS = 2


def _norm(value: str | None) -> str:
    return (value or "").strip().lower()


def _local_part(email: str | None) -> str:
    return _norm(email).split("@")[0]


def match_user(
    name: str | None,
    email: str | None,
    candidates: Sequence[ProviderUser],
) -> ProviderUser | None:
    """Return the best candidate for ``name``/``email`` or None.

    Tiers, first match wins:
      1. exact email
      2. exact full name, or email local-part equal to the name
      3. candidate name starts with or contains the query, one pass
         in candidate order (short queries also match the other way round)
    """
    query = _norm(name)
    wanted_email = _norm(email)

    if not query and not wanted_email:
        return None

    if wanted_email:
        for user in candidates:
            if user.email and _norm(user.email) == wanted_email:
                return user

    if not query:
        return None

    for user in candidates:
        if _norm(user.name) == query or (user.email and _local_part(user.email) == query):
            return user

    for user in candidates:
        candidate = _norm(user.name)
        if candidate.startswith(query) or query in candidate:
            return user

    if len(query.split()) <= SHORT_QUERY_WORDS:
        for user in candidates:
            candidate = _norm(user.name)
            if candidate and candidate in query:
                return user

    return None
