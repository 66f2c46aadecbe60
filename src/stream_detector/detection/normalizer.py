"""Canonicalizes raw candidate strings into comparison-stable URLs."""

from __future__ import annotations

import re
from typing import Optional
from urllib.parse import urljoin, urlsplit, urlunsplit

DEFAULT_PORTS = {"http": 80, "https": 443}
UNRESERVED = frozenset("ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-._~")

_AUTHORITY_PREFIX = re.compile(r"^(?:[A-Za-z][A-Za-z0-9+.\-]*:)?//[^/?#]*")
_DUPLICATE_SLASHES = re.compile(r"/{2,}")
_PERCENT_ESCAPE = re.compile(r"%([0-9A-Fa-f]{2})")


def _collapse_slashes(value: str) -> str:
    prefix_match = _AUTHORITY_PREFIX.match(value)
    prefix = prefix_match.group(0) if prefix_match else ""
    rest = value[len(prefix):]

    cut = len(rest)
    for marker in ("?", "#"):
        index = rest.find(marker)
        if index != -1:
            cut = min(cut, index)

    path = _DUPLICATE_SLASHES.sub("/", rest[:cut])
    return prefix + path + rest[cut:]


def _normalize_escape(match: re.Match[str]) -> str:
    char = chr(int(match.group(1), 16))
    if char in UNRESERVED:
        return char
    return "%" + match.group(1).upper()


def _format_host(hostname: str) -> str:
    if ":" in hostname:
        return f"[{hostname}]"
    return hostname


def clean_candidate(raw: str) -> str:
    """Applies the textual clean-up steps that never need parsing."""

    value = raw.strip()
    value = value.replace("\\/", "/").replace("\\", "/")
    return _collapse_slashes(value)


def normalize_url(raw: str, base_url: Optional[str] = None) -> str:
    """Returns the canonical absolute form of ``raw``.

    When the value cannot be parsed into an absolute URL the cleaned string is
    returned instead, so callers can still run a regex based match on it.
    """

    if not isinstance(raw, str):
        return raw
    cleaned = clean_candidate(raw)
    if not cleaned:
        return cleaned

    try:
        joined = urljoin(base_url, cleaned) if base_url else cleaned
        parts = urlsplit(joined)
        if not parts.scheme or not parts.netloc or parts.hostname is None:
            return cleaned

        scheme = parts.scheme.lower()
        port = parts.port
        netloc = _format_host(parts.hostname.lower())
        if port is not None and DEFAULT_PORTS.get(scheme) != port:
            netloc = f"{netloc}:{port}"
        if parts.username is not None:
            userinfo = parts.username
            if parts.password is not None:
                userinfo = f"{userinfo}:{parts.password}"
            netloc = f"{userinfo}@{netloc}"

        path = _PERCENT_ESCAPE.sub(_normalize_escape, parts.path)
        return urlunsplit((scheme, netloc, path, parts.query, ""))
    except ValueError:
        return cleaned
