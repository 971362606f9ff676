"""Exceptions raised by cmsauth loaders and indexers."""

from __future__ import annotations


class CMSAuthError(Exception):
    """Base class for cmsauth errors."""


class UnsupportedKeyPolicy(CMSAuthError, ValueError):
    def __init__(self, key: object):
        super().__init__(f"provided key={key} is not supported")
        self.key = key


class SourceUnavailable(CMSAuthError, OSError):
    """A file or URL backing an identity directory or key could not be read."""


class IdentityDecodeError(CMSAuthError, ValueError):
    """Identity record JSON could not be decoded into records."""
