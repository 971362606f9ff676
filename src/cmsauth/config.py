"""Environment-driven settings for services embedding cmsauth."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from cmsauth.certs import DEFAULT_RENEW_INTERVAL_SECONDS, CertCache
from cmsauth.hmac_auth import DEFAULT_ALGORITHM, CMSAuth
from cmsauth.transport import DEFAULT_TIMEOUT_SECONDS, read_token


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


@dataclass(frozen=True)
class AuthSettings:
    key_file: str = ""
    algorithm: str = DEFAULT_ALGORITHM
    token: str = ""
    timeout: float = DEFAULT_TIMEOUT_SECONDS
    certs_renew_interval: float = DEFAULT_RENEW_INTERVAL_SECONDS
    verbose: int = 0

    @classmethod
    def from_env(
        cls,
        key_file: str | None = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> AuthSettings:
        env = os.environ if environ is None else environ
        timeout = _env_float(env, "CMSAUTH_TIMEOUT", 0.0)
        return cls(
            key_file=key_file if key_file is not None else env.get("CMSAUTH_KEY_FILE", ""),
            algorithm=env.get("CMSAUTH_HMAC_ALGORITHM") or DEFAULT_ALGORITHM,
            token=read_token(env.get("CMSAUTH_TOKEN", "")),
            timeout=timeout if timeout > 0 else DEFAULT_TIMEOUT_SECONDS,
            certs_renew_interval=_env_float(
                env, "CMSAUTH_CERTS_RENEW_INTERVAL", DEFAULT_RENEW_INTERVAL_SECONDS
            ),
            verbose=int(_env_float(env, "CMSAUTH_VERBOSE", 0)),
        )

    def build_auth(self) -> CMSAuth:
        return CMSAuth(self.key_file, algorithm=self.algorithm)

    def build_cert_cache(self) -> CertCache:
        return CertCache(renew_interval=self.certs_renew_interval)
