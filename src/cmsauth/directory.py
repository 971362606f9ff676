"""Identity directory: index external identity records by login, ID, name or DN."""

from __future__ import annotations

import http.client
import json
import logging
from collections.abc import Iterable
from dataclasses import replace
from pathlib import Path
from typing import Any, Callable

from cmsauth.certs import CertCache
from cmsauth.dn import sorted_dn
from cmsauth.errors import IdentityDecodeError, SourceUnavailable, UnsupportedKeyPolicy
from cmsauth.transport import DEFAULT_TIMEOUT_SECONDS, Opener, fetch_json_bytes
from cmsauth.types import IdentityRecord, KeyPolicy

logger = logging.getLogger(__name__)

IdentityDirectory = dict[str, IdentityRecord]
Fetcher = Callable[[str], bytes]

_KEY_ALIASES = {
    "sorteddn": KeyPolicy.SORTED_DN,
    "normalized_dn": KeyPolicy.SORTED_DN,
}


def resolve_key_policy(key: KeyPolicy | str) -> KeyPolicy:
    if isinstance(key, KeyPolicy):
        return key
    token = str(key).strip().lower()
    if token in _KEY_ALIASES:
        return _KEY_ALIASES[token]
    try:
        return KeyPolicy(token)
    except ValueError:
        raise UnsupportedKeyPolicy(key) from None


def record_key(record: IdentityRecord, policy: KeyPolicy) -> str:
    if policy is KeyPolicy.LOGIN:
        return record.login
    if policy is KeyPolicy.ID:
        return str(record.id)
    if policy is KeyPolicy.NAME:
        return record.name
    if policy is KeyPolicy.DN:
        return record.dn
    return sorted_dn(record.dn)


def build_directory(
    entries: Iterable[IdentityRecord],
    key_policy: KeyPolicy | str = KeyPolicy.LOGIN,
    verbose: bool = False,
) -> IdentityDirectory:
    """Index ``entries`` by ``key_policy``.

    When several entries share a key, the first one survives: its scalar
    fields are kept and the DN of every later entry is appended to its
    ``dns``. New entries are stored with their own DN appended to ``dns``.
    Input records are left untouched.
    """
    policy = resolve_key_policy(key_policy)
    directory: IdentityDirectory = {}
    for entry in entries:
        key = record_key(entry, policy)
        survivor = directory.get(key)
        if survivor is not None:
            survivor.dns.append(entry.dn)
            logger.log(
                logging.INFO if verbose else logging.DEBUG,
                "Found duplicate identity record for key %r\n%s\n%s",
                key,
                entry.describe(),
                survivor.describe(),
            )
            continue
        record = replace(entry, dns=[*entry.dns, entry.dn], roles=dict(entry.roles))
        if policy is KeyPolicy.SORTED_DN:
            record.sorted_dn = key
        directory[key] = record
    return directory


def _require_str(raw: dict[str, Any], name: str, index: int) -> str:
    value = raw.get(name, "")
    if value is None:
        return ""
    if not isinstance(value, str):
        raise IdentityDecodeError(f"record {index}: {name} must be a string")
    return value


def decode_record(raw: Any, index: int = 0) -> IdentityRecord:
    if not isinstance(raw, dict):
        raise IdentityDecodeError(f"record {index}: expected an object, got {type(raw).__name__}")

    dns = raw.get("DNs") or []
    if not isinstance(dns, list) or not all(isinstance(dn, str) for dn in dns):
        raise IdentityDecodeError(f"record {index}: DNs must be a list of strings")

    raw_id = raw.get("ID", 0)
    if raw_id is None:
        raw_id = 0
    if isinstance(raw_id, bool) or not isinstance(raw_id, int):
        raise IdentityDecodeError(f"record {index}: ID must be an integer")

    roles_raw = raw.get("ROLES") or {}
    if not isinstance(roles_raw, dict):
        raise IdentityDecodeError(f"record {index}: ROLES must be an object")
    roles: dict[str, list[str]] = {}
    for role, tokens in roles_raw.items():
        if not isinstance(tokens, list):
            raise IdentityDecodeError(f"record {index}: ROLES[{role}] must be a list")
        roles[str(role)] = [str(token) for token in tokens]

    return IdentityRecord(
        dn=_require_str(raw, "DN", index),
        dns=list(dns),
        id=raw_id,
        login=_require_str(raw, "LOGIN", index),
        name=_require_str(raw, "NAME", index),
        roles=roles,
    )


def decode_records(payload: bytes | str) -> list[IdentityRecord]:
    try:
        raw = json.loads(payload)
    except (ValueError, UnicodeDecodeError) as error:
        raise IdentityDecodeError(f"Failed to parse identity records: {error}") from error
    if not isinstance(raw, list):
        raise IdentityDecodeError("Identity records must be a JSON list")
    return [decode_record(item, index) for index, item in enumerate(raw)]


def parse_directory_file(
    path: str | Path,
    key_policy: KeyPolicy | str = KeyPolicy.LOGIN,
    verbose: bool = False,
) -> IdentityDirectory:
    """Load a directory from a local JSON file. A missing file yields an empty directory."""
    policy = resolve_key_policy(key_policy)
    source = Path(path)
    if not source.exists():
        logger.info("identity file %s does not exist, directory is empty", source)
        return {}
    try:
        payload = source.read_bytes()
    except OSError as error:
        raise SourceUnavailable(f"Unable to read identity file {source}: {error}") from error
    return build_directory(decode_records(payload), policy, verbose=verbose)


def fetch_directory(
    url: str,
    key_policy: KeyPolicy | str = KeyPolicy.DN,
    *,
    fetcher: Fetcher | None = None,
    token: str | None = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    cert_cache: CertCache | None = None,
    opener: Opener | None = None,
    verbose: bool = False,
) -> IdentityDirectory:
    """Download identity records from ``url`` and index them."""
    policy = resolve_key_policy(key_policy)
    if fetcher is not None:
        try:
            payload = fetcher(url)
        except SourceUnavailable:
            raise
        except (OSError, http.client.HTTPException) as error:
            raise SourceUnavailable(f"Unable to fetch {url}: {error}") from error
    else:
        payload = fetch_json_bytes(
            url, token=token, timeout=timeout, cert_cache=cert_cache, opener=opener
        )
    records = decode_records(payload)
    if verbose:
        logger.info("obtained %d identity records from %s", len(records), url)
    return build_directory(records, policy, verbose=verbose)
