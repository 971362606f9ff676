"""Role/group/site matching over ``cms-authz-*`` headers."""

from __future__ import annotations

from cmsauth.headers import HeaderSet, normalize_headers
from cmsauth.types import HeaderInput

AUTHZ_PREFIX = "cms-authz"


def authorize(headers: HeaderInput | HeaderSet, role: str, group: str, site: str) -> bool:
    """Return True when some ``cms-authz`` header grants ``role`` for ``group`` or ``site``.

    Matching is deliberately loose and kept that way for deployed gateways:

    * a header is a candidate when its name starts with ``cms-authz`` and
      contains ``role`` anywhere, so role ``admin`` also matches
      ``cms-authz-administrative``;
    * every value of a candidate is checked, and a value matches when it
      contains ``group`` *or* ``site`` (case-insensitive substrings).

    An empty ``group`` or ``site`` is a substring of every value, so passing
    ``site=""`` authorizes any candidate header. Callers that want to skip the
    site check must pass a token that can never match, not an empty string.
    """
    normalized = normalize_headers(headers)
    role = role.lower()
    group = group.lower()
    site = site.lower()
    for key in normalized:
        if not key.startswith(AUTHZ_PREFIX) or role not in key:
            continue
        for value in normalized.values_of(key):
            value = value.lower()
            if group in value or site in value:
                return True
    return False
