"""Tests for resource-key normalisation and origin checks."""

from __future__ import annotations

import pytest

from cachegen.keys import is_same_origin, resolve_key, scheme_of

SCOPE = "https://app.example.com/"


class TestResolveKey:
    @pytest.mark.parametrize(
        "key, expected",
        [
            ("./", "https://app.example.com/"),
            ("./index.html", "https://app.example.com/index.html"),
            ("icon-192.png", "https://app.example.com/icon-192.png"),
            ("/manifest.json", "https://app.example.com/manifest.json"),
        ],
    )
    def test_relative_keys(self, key: str, expected: str) -> None:
        assert resolve_key(SCOPE, key) == expected

    def test_nested_scope(self) -> None:
        assert resolve_key("https://example.com/app/", "./index.html") == (
            "https://example.com/app/index.html"
        )

    def test_fragment_dropped(self) -> None:
        assert resolve_key(SCOPE, "./index.html#top") == SCOPE + "index.html"

    def test_query_kept(self) -> None:
        assert resolve_key(SCOPE, "./app.js?v=2") == SCOPE + "app.js?v=2"

    def test_absolute_key_unchanged(self) -> None:
        url = "https://cdn.example.net/lib.js"
        assert resolve_key(SCOPE, url) == url

    def test_relative_and_absolute_agree(self) -> None:
        assert resolve_key(SCOPE, "./index.html") == resolve_key(
            SCOPE, SCOPE + "index.html"
        )

    def test_unparseable_key(self) -> None:
        assert resolve_key(SCOPE, "./bad\npath") is None


class TestOrigins:
    @pytest.mark.parametrize(
        "url, scheme",
        [
            ("https://app.example.com/", "https"),
            ("HTTP://app.example.com/", "http"),
            ("chrome-extension://abc/page.html", "chrome-extension"),
            ("data:text/plain,hi", "data"),
            ("no-scheme", ""),
        ],
    )
    def test_scheme_of(self, url: str, scheme: str) -> None:
        assert scheme_of(url) == scheme

    def test_same_origin(self) -> None:
        assert is_same_origin(SCOPE + "deep/path?q=1", SCOPE)

    def test_default_port_is_same_origin(self) -> None:
        assert is_same_origin("https://app.example.com:443/x", SCOPE)

    @pytest.mark.parametrize(
        "url",
        [
            "http://app.example.com/",
            "https://cdn.example.com/",
            "https://app.example.com:8443/",
        ],
    )
    def test_different_origin(self, url: str) -> None:
        assert not is_same_origin(url, SCOPE)
