"""Distinguished name helpers."""

from __future__ import annotations


def sorted_dn(dn: str) -> str:
    """Return a canonical form of a ``/``-separated distinguished name.

    Components are sorted with plain string ordering, duplicates dropped, and
    the result rejoined with ``/``. The empty component produced by a leading
    slash sorts first, so the canonical form keeps a single leading ``/``::

        >>> sorted_dn("/DC=ch/DC=cern/OU=Users/CN=user")
        '/CN=user/DC=cern/DC=ch/OU=Users'

    Comparison is case-sensitive and the function is idempotent.
    """
    if not dn:
        return ""
    parts: list[str] = []
    for part in sorted(dn.split("/")):
        if part not in parts:
            parts.append(part)
    # at most one empty component survives dedup, so no "//" can appear
    return "/".join(parts)
