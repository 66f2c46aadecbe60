"""Turns candidate strings, free text and JSON payloads into URL reports."""

from __future__ import annotations

import base64
import binascii
import json
import logging
from collections import deque
from itertools import islice
from typing import Any, Callable, Deque, Optional, Tuple

from ..core.config import DetectorConfig
from ..core.errors import ErrorSink
from ..core.models import JSON_PATH, Candidate, ErrorKind
from ..core.report import Reporter
from .dedup import SeenUrlCache
from .normalizer import normalize_url
from .patterns import PatternRegistry

logger = logging.getLogger(__name__)

_EMBEDDED_MARKERS = (" ", "\t", "\n", "\r", '"', "'", "<", ">")


def _is_embedded(value: str) -> bool:
    return any(marker in value for marker in _EMBEDDED_MARKERS)


def _child_path(path: str, key: Any, *, index: bool) -> str:
    if index:
        return f"{path}[{key}]"
    return f"{path}.{key}" if path else str(key)


class ContentExtractor:
    """Normalizes, deduplicates and reports every candidate it is handed."""

    def __init__(
        self,
        *,
        registry: PatternRegistry,
        seen: SeenUrlCache,
        reporter: Reporter,
        errors: ErrorSink,
        config: DetectorConfig,
        location: Callable[[], Optional[str]],
    ) -> None:
        self._registry = registry
        self._seen = seen
        self._reporter = reporter
        self._errors = errors
        self._config = config
        self._location = location

    # ------------------------------------------------------------------
    # Candidates
    # ------------------------------------------------------------------
    def submit(
        self,
        value: Any,
        source: str,
        base_url: Optional[str] = None,
        *,
        depth: int = 0,
    ) -> bool:
        """Routes one candidate; returns ``True`` when it produced a report."""

        if not isinstance(value, str) or not value.strip():
            return False
        if depth > self._config.base64_max_depth:
            return False

        if "base64," in value:
            return self._submit_base64(value, source, base_url, depth)
        if _is_embedded(value.strip()):
            if not self._registry.contains_literal(value):
                return False
            return self.extract_text(value, source, base_url, depth=depth) > 0

        normalized = normalize_url(value, base_url or self._location())
        if not self._registry.matches(normalized):
            return False
        return self._emit(normalized, source)

    def submit_candidate(self, candidate: Candidate) -> bool:
        return self.submit(candidate.value, candidate.source, candidate.base_url)

    def _emit(self, url: str, source: str) -> bool:
        if not self._seen.check_and_add(url):
            return False
        logger.info("Detected %s (%s)", url, source)
        self._reporter.report_url(url, source)
        return True

    def _submit_base64(self, value: str, source: str, base_url: Optional[str], depth: int) -> bool:
        encoded = value.split("base64,", 1)[1].strip()
        try:
            padded = encoded + "=" * (-len(encoded) % 4)
            decoded = base64.b64decode(padded, validate=False).decode("utf-8", errors="ignore")
        except (binascii.Error, ValueError) as exc:
            self._errors.record(ErrorKind.PARSE, f"base64:{source}", exc)
            return False
        return self.extract_text(decoded, f"{source}:base64", base_url, depth=depth + 1) > 0

    # ------------------------------------------------------------------
    # Free text
    # ------------------------------------------------------------------
    def extract_text(
        self,
        text: Any,
        source: str,
        base_url: Optional[str] = None,
        *,
        depth: int = 0,
    ) -> int:
        """Reports every pattern-shaped URL in ``text``; returns the count."""

        if not isinstance(text, str) or not self._registry.contains_literal(text):
            return 0

        reported = 0
        for match in self._registry.extraction_regex().finditer(text):
            if self.submit(match.group(0), source, base_url, depth=depth):
                reported += 1
        return reported

    # ------------------------------------------------------------------
    # JSON payloads
    # ------------------------------------------------------------------
    def extract_json(self, payload: Any, source: str, base_url: Optional[str] = None) -> int:
        """Breadth-first search of a JSON document for pattern strings.

        The walk is bounded by ``json_max_depth`` (deeper values are skipped),
        ``json_max_keys`` (members expanded per container) and
        ``json_max_queue`` (total values ever queued; once reached, values
        already queued are still checked but nothing new is expanded).
        """

        if isinstance(payload, (bytes, bytearray)):
            payload = payload.decode("utf-8", errors="replace")
        if not isinstance(payload, str):
            return 0
        try:
            data = json.loads(payload)
        except ValueError as exc:
            self._errors.record(ErrorKind.PARSE, f"json:{source}", exc)
            return 0

        max_depth = self._config.json_max_depth
        max_queue = self._config.json_max_queue
        max_keys = self._config.json_max_keys

        queue: Deque[Tuple[Any, str, int]] = deque([(data, "", 0)])
        queued = 1
        reported = 0
        truncated = False

        while queue:
            value, path, depth = queue.popleft()
            if depth > max_depth:
                continue

            if isinstance(value, str):
                if self._registry.contains_literal(value):
                    tag = f"{JSON_PATH}:{path}" if path else JSON_PATH
                    if self.submit(value, tag, base_url):
                        reported += 1
                continue

            if truncated:
                continue
            if isinstance(value, dict):
                children = (
                    (child, _child_path(path, key, index=False))
                    for key, child in islice(value.items(), max_keys)
                )
            elif isinstance(value, list):
                children = (
                    (child, _child_path(path, position, index=True))
                    for position, child in enumerate(islice(value, max_keys))
                )
            else:
                continue

            for child, child_path in children:
                if queued >= max_queue:
                    logger.debug("JSON walk for %s stopped queueing after %d values", source, queued)
                    truncated = True
                    break
                queue.append((child, child_path, depth + 1))
                queued += 1

        return reported
