"""cmsauth: CMS trust-header HMAC handshake and identity directory indexing."""

from cmsauth.authz import authorize
from cmsauth.certs import CertBundle, CertCache, locate_user_certs
from cmsauth.config import AuthSettings
from cmsauth.directory import (
    IdentityDirectory,
    build_directory,
    decode_records,
    fetch_directory,
    parse_directory_file,
    resolve_key_policy,
)
from cmsauth.dn import sorted_dn
from cmsauth.errors import (
    CMSAuthError,
    IdentityDecodeError,
    SourceUnavailable,
    UnsupportedKeyPolicy,
)
from cmsauth.headers import HeaderSet, normalize_headers
from cmsauth.hmac_auth import (
    REASON_MISSING_AUTH_STATUS,
    REASON_SIGNATURE_MISMATCH,
    CMSAuth,
    HmacSigner,
    canonical_string,
    sign_headers,
    verify_authn,
)
from cmsauth.types import AuthnResult, IdentityRecord, KeyPolicy, SignerMode

__all__ = [
    "REASON_MISSING_AUTH_STATUS",
    "REASON_SIGNATURE_MISMATCH",
    "AuthSettings",
    "AuthnResult",
    "CMSAuth",
    "CMSAuthError",
    "CertBundle",
    "CertCache",
    "HeaderSet",
    "HmacSigner",
    "IdentityDecodeError",
    "IdentityDirectory",
    "IdentityRecord",
    "KeyPolicy",
    "SignerMode",
    "SourceUnavailable",
    "UnsupportedKeyPolicy",
    "authorize",
    "build_directory",
    "canonical_string",
    "decode_records",
    "fetch_directory",
    "locate_user_certs",
    "normalize_headers",
    "parse_directory_file",
    "resolve_key_policy",
    "sign_headers",
    "sorted_dn",
    "verify_authn",
]

__version__ = "0.1.0"
