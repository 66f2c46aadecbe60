"""Holds the active resource pattern and the caches derived from it."""

from __future__ import annotations

import logging
import re
from typing import Callable, Dict, List, Pattern, Tuple

from ..core.config import DEFAULT_PATTERN

logger = logging.getLogger(__name__)

# Characters that terminate a URL embedded in free text
_STOP_CHARS = r"\s'\"<>()\[\]{},"

MEDIA_MIME_TYPES: Dict[str, Tuple[str, ...]] = {
    "m3u8": ("application/x-mpegurl", "application/vnd.apple.mpegurl", "audio/mpegurl"),
    "flv": ("video/x-flv", "application/x-flv", "flv-application/octet-stream"),
    "mp4": ("video/mp4", "application/mp4"),
    "mpd": ("application/dash+xml",),
}

_SAFE_ATTRIBUTE_TOKEN = re.compile(r"[A-Za-z0-9_-]+")


class PatternRegistry:
    """Single source of truth for the resource pattern token.

    Every regex, literal and selector built from the pattern lives in one
    cache that is dropped as soon as the pattern changes. Components that keep
    their own pattern-dependent state subscribe with ``add_listener``.
    """

    def __init__(self, pattern: str = DEFAULT_PATTERN) -> None:
        self._pattern = pattern or DEFAULT_PATTERN
        self._derived: Dict[str, object] = {}
        self._listeners: List[Callable[[str], None]] = []

    @property
    def pattern(self) -> str:
        return self._pattern

    def set_pattern(self, new_pattern: object) -> bool:
        """Replaces the pattern; returns ``True`` when it actually changed."""

        if not isinstance(new_pattern, str) or not new_pattern.strip():
            return False
        new_pattern = new_pattern.strip()
        if new_pattern == self._pattern:
            return False

        logger.debug("Resource pattern changed from %s to %s", self._pattern, new_pattern)
        self._pattern = new_pattern
        self.clear_caches()
        for listener in list(self._listeners):
            listener(new_pattern)
        return True

    def add_listener(self, listener: Callable[[str], None]) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Callable[[str], None]) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def clear_caches(self) -> None:
        self._derived.clear()

    @property
    def cache_size(self) -> int:
        return len(self._derived)

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------
    @property
    def literal(self) -> str:
        return "." + self._pattern

    def contains_literal(self, text: str) -> bool:
        return self.literal in text

    def matches(self, url: str) -> bool:
        return bool(self.match_regex().search(url))

    def match_regex(self) -> Pattern[str]:
        cached = self._derived.get("match")
        if cached is None:
            cached = re.compile(rf"\.{re.escape(self._pattern)}(?:[?#&]|$)")
            self._derived["match"] = cached
        return cached  # type: ignore[return-value]

    def extraction_regex(self) -> Pattern[str]:
        cached = self._derived.get("extract")
        if cached is None:
            token = re.escape(self._pattern)
            cached = re.compile(
                rf"[^{_STOP_CHARS}]+\.{token}(?![A-Za-z0-9_])(?:[?#][^{_STOP_CHARS}]*)?"
            )
            self._derived["extract"] = cached
        return cached  # type: ignore[return-value]

    def selector(self) -> str:
        cached = self._derived.get("selector")
        if cached is None:
            token = self._pattern.replace('"', "")
            parts = [
                "video",
                "audio",
                "source",
                '[class*="video"]',
                '[class*="player"]',
                f'[class*="{token}"]',
                "a[href]",
                f'[data-src*="{token}"]',
                "[data-src]",
                "[data-url]",
            ]
            if _SAFE_ATTRIBUTE_TOKEN.fullmatch(token):
                parts.append(f"[data-{token}]")
            cached = ", ".join(parts)
            self._derived["selector"] = cached
        return cached  # type: ignore[return-value]

    def media_mime_types(self) -> Tuple[str, ...]:
        return MEDIA_MIME_TYPES.get(self._pattern.lower(), ())
