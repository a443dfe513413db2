"""Resource-key normalisation against the configured scope.

Manifest entries are usually written relative to the application
(``./``, ``./index.html``) while live requests arrive as absolute URLs. Both
are resolved against the scope URL with :meth:`httpx.URL.join` so that the
same resource always maps to the same store key. Fragments never reach the
origin and are dropped.
"""

from __future__ import annotations

from typing import Optional

import httpx

_DEFAULT_PORTS = {"http": 80, "https": 443}


def resolve_key(scope: str, key: str) -> Optional[str]:
    """Resolve *key* against *scope* and return the absolute store key.

    Args:
        scope: Absolute base URL (see :attr:`~cachegen.models.GlobalConfig.scope`).
        key: A relative or absolute resource locator.

    Returns:
        The absolute URL without fragment, or ``None`` if *key* is not a
        parseable URL.
    """
    try:
        url = httpx.URL(scope).join(key)
    except (httpx.InvalidURL, TypeError, ValueError):
        return None
    return str(url).split("#", 1)[0]


def scheme_of(url: str) -> str:
    """Return the lower-cased scheme of an absolute URL (``""`` if none)."""
    head, sep, _ = url.partition(":")
    return head.lower() if sep else ""


def origin_of(url: str) -> tuple[str, str, Optional[int]]:
    """Return the ``(scheme, host, port)`` origin tuple of *url*."""
    parsed = httpx.URL(url)
    port = parsed.port or _DEFAULT_PORTS.get(parsed.scheme)
    return parsed.scheme, parsed.host, port


def is_same_origin(url: str, scope: str) -> bool:
    """Whether *url* shares scheme, host and port with *scope*."""
    try:
        return origin_of(url) == origin_of(scope)
    except httpx.InvalidURL:
        return False
