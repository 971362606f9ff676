"""CMS trust-header HMAC protocol.

A front-end gateway authenticates the user, places ``cms-authn-*`` and
``cms-authz-*`` headers on the proxied request, and signs them into
``cms-authn-hmac``. Backends recompute the signature with the shared key to
decide whether the trust headers can be believed.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
from pathlib import Path

from cmsauth.authz import authorize
from cmsauth.headers import HeaderSet, normalize_headers
from cmsauth.types import AuthnResult, HeaderInput, SignerMode

logger = logging.getLogger(__name__)

AUTH_STATUS_HEADER = "cms-auth-status"
HMAC_HEADER = "cms-authn-hmac"
AUTHN_PREFIX = "cms-authn"
AUTHZ_PREFIX = "cms-authz"

DEFAULT_ALGORITHM = "sha1"
SUPPORTED_ALGORITHMS = ("sha1", "sha256")

REASON_MISSING_AUTH_STATUS = "missing cms-auth-status header"
REASON_SIGNATURE_MISMATCH = "hmac signature mismatch"


def is_trust_header(name: str) -> bool:
    key = name.lower()
    return (key.startswith(AUTHN_PREFIX) or key.startswith(AUTHZ_PREFIX)) and key != HMAC_HEADER


def _encode(text: str) -> bytes:
    # lone surrogates from surrogateescape-decoded WSGI environs must not raise
    return text.encode("utf-8", "surrogatepass")


def _byte_len(text: str) -> int:
    return len(_encode(text))


def canonical_string(headers: HeaderInput | HeaderSet) -> str:
    """Build the signing string for the trust headers in ``headers``.

    Per header, in lower-cased name order, the prefix gets ``h<len(name)>v<len(value)>``
    (UTF-8 byte lengths in hex) and the suffix gets ``name + value``. The result is
    ``prefix + "#" + suffix``. Encoding every length up front keeps two header
    sets from colliding by shifting a boundary between adjacent name/value
    pairs. Only the first value of each header is signed.
    """
    normalized = normalize_headers(headers)
    prefix: list[str] = []
    suffix: list[str] = []
    for key in sorted(name for name in normalized if is_trust_header(name)):
        value = normalized.first(key) or ""
        prefix.append(f"h{_byte_len(key):x}v{_byte_len(value):x}")
        suffix.append(f"{key}{value}")
    return "".join(prefix) + "#" + "".join(suffix)


class HmacSigner:
    """Signs canonical strings with HMAC, or with a bare hash when unkeyed.

    ``SignerMode.UNKEYED`` is the degraded mode used when no key material is
    available: anybody can compute the digest, so it only detects accidental
    corruption, not forgery.
    """

    def __init__(self, key: bytes = b"", algorithm: str = DEFAULT_ALGORITHM):
        algorithm = algorithm.lower()
        if algorithm not in SUPPORTED_ALGORITHMS:
            raise ValueError(f"Unsupported hmac algorithm: {algorithm}")
        self._key = bytes(key)
        self.algorithm = algorithm
        self.mode = SignerMode.KEYED if self._key else SignerMode.UNKEYED

    @classmethod
    def from_key_file(cls, path: str | Path, algorithm: str = DEFAULT_ALGORITHM) -> HmacSigner:
        return cls(Path(path).read_bytes(), algorithm=algorithm)

    def sign(self, canonical: str) -> str:
        data = _encode(canonical)
        if self.mode is SignerMode.KEYED:
            return hmac.new(self._key, data, self.algorithm).hexdigest()
        return hashlib.new(self.algorithm, data).hexdigest()

    def verify(self, canonical: str, digest: str) -> bool:
        return hmac.compare_digest(self.sign(canonical).encode("ascii"), _encode(digest))


def sign_headers(headers: HeaderInput | HeaderSet, signer: HmacSigner) -> dict[str, list[str]]:
    """Return a copy of ``headers`` stamped with ``cms-authn-hmac``."""
    normalized = normalize_headers(headers)
    out = normalized.to_dict()
    out[HMAC_HEADER] = [signer.sign(canonical_string(normalized))]
    return out


def _derived_headers(headers: HeaderSet) -> dict[str, list[str]]:
    derived: dict[str, list[str]] = {}
    for key in headers:
        if key.startswith(f"{AUTHN_PREFIX}-") and key != HMAC_HEADER:
            derived[key[len(AUTHN_PREFIX) + 1:]] = headers.values_of(key)
    return derived


def verify_authn(headers: HeaderInput | HeaderSet, signer: HmacSigner) -> AuthnResult:
    normalized = normalize_headers(headers)
    if AUTH_STATUS_HEADER not in normalized:
        return AuthnResult(valid=False, reason=REASON_MISSING_AUTH_STATUS)

    status = normalized.values_of(AUTH_STATUS_HEADER)
    if status == ["NONE"]:
        # authentication is optional for this request
        return AuthnResult(valid=True)

    supplied = normalized.first(HMAC_HEADER) or ""
    if not signer.verify(canonical_string(normalized), supplied):
        logger.debug("cms-authn-hmac mismatch for headers %s", sorted(normalized))
        return AuthnResult(valid=False, reason=REASON_SIGNATURE_MISMATCH)

    return AuthnResult(valid=True, derived_headers=_derived_headers(normalized))


class CMSAuth:
    """Backend side of the trust-header handshake.

    With an empty ``key_file`` authentication is switched off altogether and
    :meth:`check_authn_authz` accepts every request. A configured but
    unreadable key file keeps authentication on with the unkeyed signer.
    Subclasses override :meth:`check_authorization` to add a policy.
    """

    def __init__(
        self,
        key_file: str | Path = "",
        *,
        key: bytes | None = None,
        algorithm: str = DEFAULT_ALGORITHM,
    ):
        self.key_file = str(key_file) if key_file else ""
        if key is not None:
            self.key_file = self.key_file or "<memory>"
        else:
            key = self._read_key()
        self.signer = HmacSigner(key, algorithm=algorithm)
        if self.enabled and self.signer.mode is SignerMode.UNKEYED:
            logger.warning("CMSAuth: empty key material, using unkeyed %s digest", self.signer.algorithm)

    def _read_key(self) -> bytes:
        key = b""
        if self.key_file:
            try:
                key = Path(self.key_file).read_bytes()
            except OSError as error:
                logger.error("CMSAuth, unable to read %s, error %s", self.key_file, error)
        else:
            logger.warning("CMSAuth: no key file configured, authentication is disabled")
        return key

    @classmethod
    def from_key(cls, key: bytes, *, algorithm: str = DEFAULT_ALGORITHM) -> CMSAuth:
        return cls(key=key, algorithm=algorithm)

    @property
    def enabled(self) -> bool:
        return bool(self.key_file)

    def authenticate(self, headers: HeaderInput | HeaderSet) -> AuthnResult:
        return verify_authn(headers, self.signer)

    def check_authorization(self, headers: HeaderSet) -> bool:
        return True

    def check_authn_authz(self, headers: HeaderInput | HeaderSet) -> bool:
        if not self.enabled:
            return True
        normalized = normalize_headers(headers)
        result = self.authenticate(normalized)
        if not result.valid:
            return False
        return self.check_authorization(HeaderSet({**normalized.to_dict(), **result.derived_headers}))

    def sign(self, headers: HeaderInput | HeaderSet) -> dict[str, list[str]]:
        return sign_headers(headers, self.signer)

    def get_hmac(self, headers: HeaderInput | HeaderSet) -> str:
        return self.signer.sign(canonical_string(headers))

    def check_cms_authz(self, headers: HeaderInput | HeaderSet, role: str, group: str, site: str) -> bool:
        return authorize(headers, role, group, site)
