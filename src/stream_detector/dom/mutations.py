"""Coalesces document mutations into one debounced processing pass."""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Optional, Tuple, Union

from bs4.element import Tag

from ..context import DetectionContext
from ..core.models import ATTRIBUTE_CHANGE, MUTATION_STRING, ErrorKind
from ..page.document import MutationObserverHandle, MutationRecord, attribute_text, is_media_element
from .scanner import DomScanner

logger = logging.getLogger(__name__)

FAST_PATH_ATTRIBUTES = frozenset({"src", "data-src", "href"})
KNOWN_PLAYER_MARKERS = (
    "player",
    "video-js",
    "jwplayer",
    "html5-video-player",
    "video-player",
    "video_player",
    "media-player",
    "flowplayer",
    "vjs-player",
    "mejs-player",
)

PendingItem = Union[str, Tag]


def _looks_like_player(node: Tag) -> bool:
    classes = (attribute_text(node.get("class")) or "").lower()
    element_id = (attribute_text(node.get("id")) or "").lower()
    return any(marker in classes for marker in KNOWN_PLAYER_MARKERS) or "player" in element_id


class MutationBatcher:
    """Stages mutation values and drains them once per debounce window."""

    def __init__(self, context: DetectionContext, scanner: DomScanner) -> None:
        self.context = context
        self.scanner = scanner
        self._observer: Optional[MutationObserverHandle] = None
        self._pending: Dict[Tuple[str, object], PendingItem] = {}
        self._timer: Optional[asyncio.TimerHandle] = None

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def timer_active(self) -> bool:
        return self._timer is not None

    def install(self) -> bool:
        if self._observer is not None:
            return True
        try:
            self._observer = self.context.document.observe(self.on_mutations)
        except Exception as exc:
            self.context.errors.record(ErrorKind.OBSERVER, "observer:install", exc, critical=True)
            return False
        return True

    def on_mutations(self, records: List[MutationRecord]) -> None:
        if not self.context.active:
            return
        with self.context.errors.contain(ErrorKind.OBSERVER, "observer:batch"):
            new_media: List[Tag] = []
            for record in records:
                if record.type == "childList":
                    for node in record.added_nodes:
                        if not isinstance(node, Tag):
                            continue
                        if is_media_element(node):
                            new_media.append(node)
                        self._stage_element(node)
                elif record.type == "attributes" and record.attribute_name:
                    self._stage_attribute_change(record.target, record.attribute_name)

            for element in new_media:
                self.scanner.scan_media_element(element)

    def _stage_element(self, node: Tag) -> None:
        for value in node.attrs.values():
            self.stage(attribute_text(value))
        if _looks_like_player(node) or node.find(True) is not None:
            self.stage(node.parent if isinstance(node.parent, Tag) else node)

    def _stage_attribute_change(self, target: Tag, name: str) -> None:
        value = attribute_text(target.get(name))
        if not value:
            return
        if name in FAST_PATH_ATTRIBUTES and self.context.registry.contains_literal(value):
            self.context.extractor.submit(value, ATTRIBUTE_CHANGE)
            return
        self.stage(value)

    def stage(self, item: Optional[PendingItem]) -> None:
        if item is None or (isinstance(item, str) and not item):
            return
        if isinstance(item, str):
            key: Tuple[str, object] = ("string", item)
        else:
            key = ("root", id(item))
        self._pending.setdefault(key, item)
        if self._timer is None:
            self._timer = self.context.call_later(self.context.config.debounce_delay, self._drain)

    def _drain(self) -> None:
        self._timer = None
        items = list(self._pending.values())
        self._pending.clear()
        if not self.context.active:
            return

        strings = [item for item in items if isinstance(item, str)]
        roots = [item for item in items if not isinstance(item, str)]
        logger.debug("Draining %d staged values and %d subtree roots", len(strings), len(roots))
        with self.context.errors.contain(ErrorKind.OBSERVER, "observer:drain"):
            for value in strings:
                self.context.extractor.submit(value, MUTATION_STRING)
            for root in roots:
                self.scanner.scan(root)

    def cancel(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._pending.clear()

    def disconnect(self) -> None:
        self.cancel()
        if self._observer is not None:
            self._observer.disconnect()
            self._observer = None
