"""Client certificate discovery and a refreshable certificate cache."""

from __future__ import annotations

import logging
import os
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from cryptography import x509

from cmsauth.errors import SourceUnavailable

logger = logging.getLogger(__name__)

DEFAULT_RENEW_INTERVAL_SECONDS = 600.0
DEFAULT_FALLBACK_SECONDS = 600.0


@dataclass(frozen=True)
class CertBundle:
    """Paths usable as ``(cert, key)`` by an HTTP client plus the certificate expiry."""

    cert_file: str
    key_file: str
    not_after: datetime

    @property
    def cert(self) -> tuple[str, str]:
        return (self.cert_file, self.key_file)


def certificate_not_after(pem: bytes) -> datetime:
    cert = x509.load_pem_x509_certificate(pem)
    return cert.not_valid_after_utc


def locate_user_certs(environ: Optional[dict[str, str]] = None) -> CertBundle | None:
    """Find the user's X509 proxy or cert/key pair.

    Lookup order: ``/tmp/x509up_u<uid>`` when present, ``X509_USER_PROXY``,
    then ``X509_USER_CERT``/``X509_USER_KEY``. Returns None when the user has
    neither a proxy nor a key.
    """
    env = os.environ if environ is None else environ
    proxy = env.get("X509_USER_PROXY", "")
    user_key = env.get("X509_USER_KEY", "")
    user_cert = env.get("X509_USER_CERT", "")

    if hasattr(os, "getuid"):
        default_proxy = Path(f"/tmp/x509up_u{os.getuid()}")
        if default_proxy.exists():
            proxy = str(default_proxy)

    if not proxy and not user_key:
        return None

    # a proxy file holds the certificate and its key in one PEM
    cert_file, key_file = (proxy, proxy) if proxy else (user_cert, user_key)
    try:
        not_after = certificate_not_after(Path(cert_file).read_bytes())
    except (OSError, ValueError) as error:
        raise SourceUnavailable(f"failed to parse X509 certificate {cert_file}: {error}") from error
    logger.debug("using X509 cert=%s key=%s", cert_file, key_file)
    return CertBundle(cert_file=cert_file, key_file=key_file, not_after=not_after)


class CertCache:
    """Holds the current certificates and reloads them once ``renew_interval`` has passed.

    Refreshes run one at a time. If a reload fails while certificates are
    cached, the cached ones stay in use and the next attempt is pushed out by
    ``fallback_seconds``, provided they remain valid that long.
    """

    def __init__(
        self,
        loader: Callable[[], CertBundle | None] = locate_user_certs,
        *,
        renew_interval: float = DEFAULT_RENEW_INTERVAL_SECONDS,
        fallback_seconds: float = DEFAULT_FALLBACK_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self._loader = loader
        self._renew_interval = renew_interval
        self._fallback_seconds = fallback_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._bundle: CertBundle | None = None
        self._loaded = False
        self._stamp = 0.0

    def get(self) -> CertBundle | None:
        with self._lock:
            now = self._clock()
            if self._loaded and now - self._stamp <= self._renew_interval:
                return self._bundle
            self._stamp = now
            logger.info("reading certificates, renew interval %ss", self._renew_interval)
            try:
                bundle = self._loader()
            except Exception as error:  # noqa: BLE001
                if self._bundle is None:
                    if isinstance(error, SourceUnavailable):
                        raise
                    raise SourceUnavailable(f"certificate loader failed: {error}") from error
                retry_at = now + self._fallback_seconds
                if self._bundle.not_after.timestamp() > retry_at:
                    self._stamp = retry_at
                logger.warning("certificate refresh failed, keeping cached certificates: %s", error)
                return self._bundle
            self._bundle = bundle
            self._loaded = True
            return self._bundle
