from __future__ import annotations

import http.client
import io
import json
import ssl
import urllib.error
from datetime import datetime, timezone

import pytest

from cmsauth.certs import CertBundle, CertCache
from cmsauth.cli import main
from cmsauth.directory import fetch_directory
from cmsauth.errors import SourceUnavailable
from cmsauth.transport import RetryPolicy, fetch_json_bytes, read_token

NOT_AFTER = datetime(2031, 6, 1, tzinfo=timezone.utc)


class _Response(io.BytesIO):
    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False


def _unavailable(request) -> urllib.error.HTTPError:
    return urllib.error.HTTPError(request.full_url, 503, "unavailable", {}, None)


def test_retry_policy_retries_only_transient_errors() -> None:
    policy = RetryPolicy()
    assert policy.should_retry(urllib.error.HTTPError("u", 429, "slow down", {}, None)) is True
    assert policy.should_retry(urllib.error.HTTPError("u", 504, "timeout", {}, None)) is True
    assert policy.should_retry(urllib.error.HTTPError("u", 404, "not found", {}, None)) is False
    assert policy.should_retry(urllib.error.URLError("connection refused")) is True
    assert policy.should_retry(http.client.IncompleteRead(b"")) is False


def test_retry_policy_delays_double_up_to_ceiling() -> None:
    policy = RetryPolicy(attempts=5, base_delay_seconds=0.5, max_delay_seconds=1.5, jitter_ratio=0)
    assert list(policy.delays()) == [0.5, 1.0, 1.5, 1.5]
    assert list(RetryPolicy(attempts=1).delays()) == []


def test_fetch_json_bytes_sends_accept_and_token() -> None:
    captured: dict[str, object] = {}

    def opener(request, timeout):
        captured["accept"] = request.get_header("Accept")
        captured["authorization"] = request.get_header("Authorization")
        captured["timeout"] = timeout
        return _Response(b"[]")

    body = fetch_json_bytes("https://cric.local/api", token="abc", timeout=5, opener=opener)

    assert body == b"[]"
    assert captured == {"accept": "application/json", "authorization": "Bearer abc", "timeout": 5}


def test_fetch_json_bytes_retries_unavailable() -> None:
    calls = {"count": 0}
    pauses: list[float] = []

    def opener(request, timeout):
        calls["count"] += 1
        if calls["count"] < 3:
            raise _unavailable(request)
        return _Response(b"[1]")

    body = fetch_json_bytes(
        "https://cric.local/api",
        opener=opener,
        retry=RetryPolicy(attempts=3, jitter_ratio=0),
        sleep=pauses.append,
    )

    assert body == b"[1]"
    assert calls["count"] == 3
    assert pauses == [0.1, 0.2]


def test_fetch_json_bytes_gives_up_after_attempts() -> None:
    calls = {"count": 0}

    def opener(request, timeout):
        calls["count"] += 1
        raise _unavailable(request)

    with pytest.raises(SourceUnavailable):
        fetch_json_bytes("https://cric.local/api", opener=opener, sleep=lambda _: None)
    assert calls["count"] == 3


def test_fetch_json_bytes_does_not_retry_client_errors() -> None:
    calls = {"count": 0}

    def opener(request, timeout):
        calls["count"] += 1
        raise urllib.error.HTTPError(request.full_url, 404, "not found", {}, None)

    with pytest.raises(SourceUnavailable):
        fetch_json_bytes("https://cric.local/api", opener=opener, sleep=lambda _: None)
    assert calls["count"] == 1


def test_fetch_json_bytes_wraps_truncated_reads() -> None:
    def opener(request, timeout):
        raise http.client.IncompleteRead(b"[{")

    with pytest.raises(SourceUnavailable):
        fetch_json_bytes("https://cric.local/api", opener=opener)


def test_fetch_json_bytes_rejects_malformed_url() -> None:
    with pytest.raises(SourceUnavailable) as excinfo:
        fetch_json_bytes("not-a-url")
    assert isinstance(excinfo.value.__cause__, ValueError)


def test_fetch_json_bytes_presents_client_certificate(tmp_path, self_signed_pem) -> None:
    cert_pem, key_pem = self_signed_pem(NOT_AFTER)
    (tmp_path / "usercert.pem").write_bytes(cert_pem)
    (tmp_path / "userkey.pem").write_bytes(key_pem)
    bundle = CertBundle(str(tmp_path / "usercert.pem"), str(tmp_path / "userkey.pem"), NOT_AFTER)
    captured: dict[str, object] = {}

    def opener(request, **kwargs):
        captured.update(kwargs)
        captured["authorization"] = request.get_header("Authorization")
        return _Response(b"[]")

    fetch_json_bytes("https://cric.local/api", opener=opener, cert_cache=CertCache(lambda: bundle))

    assert isinstance(captured["context"], ssl.SSLContext)
    assert captured["authorization"] is None


def test_fetch_json_bytes_token_skips_client_certificate() -> None:
    def loader() -> CertBundle:
        raise AssertionError("certificates must not be read when a token is set")

    captured: dict[str, object] = {}

    def opener(request, **kwargs):
        captured.update(kwargs)
        return _Response(b"[]")

    fetch_json_bytes("https://cric.local/api", token="abc", opener=opener, cert_cache=CertCache(loader))
    assert "context" not in captured


def test_fetch_json_bytes_unusable_certificate(tmp_path) -> None:
    junk = tmp_path / "junk.pem"
    junk.write_text("not a certificate", encoding="utf-8")
    for cert_file in (junk, tmp_path / "missing.pem"):
        bundle = CertBundle(str(cert_file), str(cert_file), NOT_AFTER)
        with pytest.raises(SourceUnavailable):
            fetch_json_bytes(
                "https://cric.local/api",
                opener=lambda request, **kwargs: _Response(b"[]"),
                cert_cache=CertCache(lambda: bundle),
            )


def test_fetch_directory_over_url(tmp_path, self_signed_pem) -> None:
    cert_pem, key_pem = self_signed_pem(NOT_AFTER)
    proxy = tmp_path / "x509up"
    proxy.write_bytes(cert_pem + key_pem)
    bundle = CertBundle(str(proxy), str(proxy), NOT_AFTER)
    records = [
        {"DN": "/DC=ch/CN=user", "ID": 1, "LOGIN": "user", "NAME": "User", "ROLES": {}},
        {"DN": "/CN=user/DC=ch/CN=proxy", "ID": 1, "LOGIN": "user", "NAME": "User", "ROLES": {}},
    ]
    seen: list[str] = []

    def opener(request, **kwargs):
        seen.append(request.full_url)
        assert isinstance(kwargs["context"], ssl.SSLContext)
        return _Response(json.dumps(records).encode("utf-8"))

    directory = fetch_directory(
        "https://cric.local/api/people",
        "login",
        cert_cache=CertCache(lambda: bundle),
        opener=opener,
    )

    assert seen == ["https://cric.local/api/people"]
    assert directory["user"].dns == ["/DC=ch/CN=user", "/CN=user/DC=ch/CN=proxy"]


def test_fetch_directory_malformed_url() -> None:
    with pytest.raises(SourceUnavailable):
        fetch_directory("not-a-url", "login")


def test_cli_directory_malformed_url(monkeypatch, capsys) -> None:
    monkeypatch.setenv("CMSAUTH_TOKEN", "abc")

    exit_code = main(["directory", "--url", "not-a-url"])

    assert exit_code == 2
    assert "not-a-url" in capsys.readouterr().err


def test_read_token(tmp_path) -> None:
    token_file = tmp_path / "token"
    token_file.write_text("abc\ndef\n", encoding="utf-8")
    assert read_token(str(token_file)) == "abcdef"
    assert read_token("literal-token") == "literal-token"
    assert read_token("") == ""
