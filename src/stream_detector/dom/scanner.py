"""Selector-driven inspection of document elements."""

from __future__ import annotations

import logging
from typing import List, Optional

from bs4.element import Tag

from ..context import DetectionContext
from ..core.models import (
    ANCHOR,
    DATA_ATTRIBUTE,
    DOM_ATTRIBUTE,
    MEDIA_ELEMENT,
    MEDIA_SRC_SETTER,
    SCRIPT_TEXT,
    ErrorKind,
)
from ..page.document import attribute_text, is_media_element
from .state import ScanPhase, ScanState

logger = logging.getLogger(__name__)


class DomScanner:
    """Runs one Selecting -> Filtering -> Inspecting pass per call."""

    def __init__(self, context: DetectionContext) -> None:
        self.context = context
        self.state = ScanState()
        self._scripts_pending = False
        context.registry.add_listener(self._on_pattern_change)

    @property
    def phase(self) -> ScanPhase:
        return self.state.phase

    def scan(self, root: Optional[Tag] = None, *, force_full: bool = False) -> int:
        """Scans ``root`` (the whole document when ``None``).

        Returns the number of elements inspected. Re-entrant calls made while
        a pass is running are ignored.
        """

        if self.state.phase is not ScanPhase.IDLE:
            return 0

        now = self.context.clock()
        self._track_generation()
        last = self.state.last_full_scan
        full = force_full or last is None or now - last >= self.context.config.full_scan_interval
        if full:
            self.state.last_full_scan = now
            self.state.full_scans += 1
            self.state.inspected.clear()
            self._prune_attribute_scans(now)
        else:
            self.state.partial_scans += 1

        inspected = 0
        try:
            self.state.phase = ScanPhase.SELECTING
            selection = self._select(root, now)

            self.state.phase = ScanPhase.FILTERING
            fresh = [handle for handle in selection if handle not in self.state.inspected]

            self.state.phase = ScanPhase.INSPECTING
            for handle in fresh:
                element = self.context.document.element(handle)
                if element is None:
                    continue
                self.state.inspected.add(handle)
                self._inspect(element, now)
                inspected += 1

            if full:
                inspected += self._scan_data_attributes(root)
                self._schedule_script_scan()
        finally:
            self.state.phase = ScanPhase.IDLE

        if full:
            logger.debug("Full scan inspected %d elements", inspected)
        return inspected

    # ------------------------------------------------------------------
    # Selecting
    # ------------------------------------------------------------------
    def _select(self, root: Optional[Tag], now: float) -> List[int]:
        document = self.context.document
        selector = self.context.registry.selector()
        if root is not None and root is not document.soup:
            return [document.handle_of(element) for element in document.select(selector, root)]

        state = self.state
        ttl = self.context.config.selector_cache_ttl
        if state.cached_at is not None and now - state.cached_at < ttl:
            return list(state.cached_selection)

        selection = [document.handle_of(element) for element in document.select(selector)]
        state.cached_selection = selection
        state.cached_at = now
        return list(selection)

    def _track_generation(self) -> None:
        generation = self.context.document.generation
        if self.state.generation != generation:
            if self.state.generation is not None:
                logger.debug("Document rebuilt; dropping state for %d elements", len(self.state.attribute_scans))
            self.state.forget_elements()
            self.state.generation = generation

    def _prune_attribute_scans(self, now: float) -> None:
        throttle = self.context.config.attribute_throttle
        scans = self.state.attribute_scans
        for handle in [handle for handle, last in scans.items() if now - last >= throttle]:
            del scans[handle]

    def clear_caches(self) -> None:
        self.state.invalidate_selection()

    def _on_pattern_change(self, _pattern: str) -> None:
        self.clear_caches()
        self.state.inspected.clear()

    # ------------------------------------------------------------------
    # Inspecting
    # ------------------------------------------------------------------
    def _inspect(self, element: Tag, now: float) -> None:
        self._scan_attributes(element, now)
        if is_media_element(element):
            self.scan_media_element(element)
        elif element.name == "source":
            self._submit(attribute_text(element.get("src")), MEDIA_ELEMENT)
        elif element.name == "a":
            self._submit(attribute_text(element.get("href")), ANCHOR)

    def _scan_attributes(self, element: Tag, now: float) -> None:
        handle = self.context.document.handle_of(element)
        last = self.state.attribute_scans.get(handle)
        if last is not None and now - last < self.context.config.attribute_throttle:
            return
        self.state.attribute_scans[handle] = now
        for name, value in list(element.attrs.items()):
            self._submit(attribute_text(value), f"{DOM_ATTRIBUTE}:{name}")

    def scan_media_element(self, element: Tag) -> None:
        """Checks ``src``, ``currentSrc`` and child sources, then hooks ``src``."""

        document = self.context.document
        self._track_generation()
        with self.context.errors.contain(ErrorKind.OBSERVER, "scan:media"):
            self._submit(attribute_text(element.get("src")), MEDIA_ELEMENT)
            self._submit(document.current_src(element), MEDIA_ELEMENT)
            for source in element.find_all("source"):
                self._submit(attribute_text(source.get("src")), MEDIA_ELEMENT)

            handle = document.handle_of(element)
            if handle not in self.state.src_hooked:
                self.state.src_hooked.add(handle)
                document.add_src_hook(element, self._on_src_assigned)

    def _on_src_assigned(self, value: str) -> None:
        if self.context.active:
            self._submit(value, MEDIA_SRC_SETTER)

    def _scan_data_attributes(self, root: Optional[Tag]) -> int:
        document = self.context.document
        inspected = 0
        for element in document.iter_elements(root):
            handle = document.handle_of(element)
            if handle in self.state.inspected:
                continue
            data_attrs = [(name, value) for name, value in element.attrs.items() if name.startswith("data-")]
            if not data_attrs:
                continue
            self.state.inspected.add(handle)
            inspected += 1
            for _name, value in data_attrs:
                self._submit(attribute_text(value), DATA_ATTRIBUTE)
        return inspected

    def _schedule_script_scan(self) -> None:
        if self._scripts_pending:
            return
        if self.context.call_soon(self._scan_inline_scripts) is not None:
            self._scripts_pending = True

    def _scan_inline_scripts(self) -> None:
        self._scripts_pending = False
        if not self.context.active:
            return
        with self.context.errors.contain(ErrorKind.OBSERVER, "scan:scripts"):
            for script in self.context.document.inline_scripts():
                text = script.string or script.get_text()
                if text:
                    self.context.extractor.extract_text(text, SCRIPT_TEXT)

    def _submit(self, value: Optional[str], source: str) -> None:
        if value:
            self.context.extractor.submit(value, source)

    def reset(self) -> None:
        document = self.context.document
        if self.state.generation == document.generation:
            for handle in self.state.src_hooked:
                element = document.element(handle)
                if element is not None:
                    document.remove_src_hook(element, self._on_src_assigned)
        self.state.reset()
        self._scripts_pending = False
