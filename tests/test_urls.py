"""Tests for URL canonicalization and origin checks."""

import pytest

from crawler.urls import normalize_url, origin_of, same_origin, site_root, url_path


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("https://Example.COM/a?b=2&a=1#frag", "https://example.com/a?a=1&b=2"),
        ("http://example.com:80/x", "http://example.com/x"),
        ("https://example.com:443", "https://example.com/"),
        ("https://example.com:8443/x", "https://example.com:8443/x"),
        ("  https://example.com/path  ", "https://example.com/path"),
        ("HTTPS://example.com", "https://example.com/"),
    ],
)
def test_normalize_url(raw, expected):
    assert normalize_url(raw) == expected


def test_normalize_keeps_path_case_and_trailing_slash():
    assert normalize_url("https://example.com/About/") == "https://example.com/About/"
    assert normalize_url("https://example.com/About") == "https://example.com/About"


def test_normalize_is_idempotent():
    for raw in [
        "https://Example.com:443/a/b?z=1&a=&a=2#x",
        "http://[::1]:8080/",
        "mailto:someone@example.com",
        "not a url",
        "https://user:pw@Example.com/",
    ]:
        once = normalize_url(raw)
        assert normalize_url(once) == once


def test_normalize_repeated_keys_keep_order():
    assert normalize_url("https://example.com/?b=1&a=2&a=1") == "https://example.com/?a=2&a=1&b=1"


def test_normalize_leaves_non_http_untouched():
    assert normalize_url("mailto:x@example.com") == "mailto:x@example.com"
    assert normalize_url("javascript:void(0)") == "javascript:void(0)"
    assert normalize_url("ftp://Example.com/file") == "ftp://Example.com/file"


def test_normalize_malformed_port_returned_trimmed():
    assert normalize_url(" http://example.com:notaport/ ") == "http://example.com:notaport/"


def test_origin_of():
    assert origin_of("https://Example.com/x") == ("https", "example.com", 443)
    assert origin_of("http://example.com:8080") == ("http", "example.com", 8080)
    assert origin_of("mailto:x@example.com") is None
    assert origin_of("http://example.com:bad/") is None


def test_same_origin():
    assert same_origin("https://example.com/a", "https://EXAMPLE.com:443/b")
    assert not same_origin("https://example.com/", "http://example.com/")
    assert not same_origin("https://example.com/", "https://sub.example.com/")
    assert not same_origin("https://example.com/", "https://example.com:8443/")


def test_same_origin_fails_closed():
    assert not same_origin("garbage", "garbage")
    assert not same_origin("https://example.com/", "http://example.com:bad/")


def test_site_root_and_path():
    assert site_root("https://Example.com:443/a/b?x=1") == "https://example.com"
    assert site_root("http://example.com:8080/") == "http://example.com:8080"
    assert url_path("https://example.com") == "/"
    assert url_path("https://example.com/private/page?x=1") == "/private/page"
