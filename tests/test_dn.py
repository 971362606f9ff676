from __future__ import annotations

from cmsauth.dn import sorted_dn


def test_sorted_dn_orders_components() -> None:
    dn = "/DC=ch/DC=cern/OU=Organic Units/OU=Users/CN=user/CN=123/CN=First Last"
    expect = "/CN=123/CN=First Last/CN=user/DC=cern/DC=ch/OU=Organic Units/OU=Users"
    assert sorted_dn(dn) == expect


def test_sorted_dn_is_idempotent() -> None:
    samples = [
        "",
        "/",
        "//",
        "CN=a",
        "CN=b/CN=a/",
        "/DC=ch//DC=cern/CN=user",
        "/CN=user/CN=user/DC=ch",
        "/DC=ch/DC=cern/OU=Organic Units/OU=Users/CN=user/CN=123/CN=First Last",
    ]
    for dn in samples:
        once = sorted_dn(dn)
        assert sorted_dn(once) == once
        assert "//" not in once


def test_sorted_dn_drops_duplicates_and_empty_segments() -> None:
    assert sorted_dn("/CN=user/DC=ch/CN=user") == "/CN=user/DC=ch"
    assert sorted_dn("/DC=ch//CN=user") == "/CN=user/DC=ch"
    assert sorted_dn("") == ""


def test_sorted_dn_is_case_sensitive() -> None:
    assert sorted_dn("/cn=b/CN=a") == "/CN=a/cn=b"
    assert sorted_dn("/CN=user") != sorted_dn("/cn=user")


def test_structurally_equal_dns_share_canonical_form() -> None:
    assert sorted_dn("/DC=ch/CN=user/DC=cern") == sorted_dn("/CN=user/DC=cern/DC=ch")
