"""Lifecycle owner that wires every detector component together."""

from __future__ import annotations

import asyncio
import enum
import logging
import time
from typing import Callable, List, Optional

from bs4.element import Tag

from .context import DetectionContext
from .core.config import DetectorConfig
from .core.errors import ErrorSink
from .core.models import PAGE_LOCATION, ErrorKind
from .core.report import CallbackChannel, ReportChannel, Reporter
from .detection.dedup import SeenUrlCache
from .detection.extractor import ContentExtractor
from .detection.patterns import PatternRegistry
from .dom.mutations import MutationBatcher
from .dom.scanner import DomScanner
from .network.interceptors import (
    FetchInterceptor,
    Interceptor,
    MediaSourceInterceptor,
    RequestInterceptor,
)
from .network.surfaces import FetchSurface, MediaSourceSurface, RequestSurface
from .page.document import MEDIA_TAGS, Document, is_media_element
from .scheduler import ScanScheduler

logger = logging.getLogger(__name__)


class DetectorState(enum.Enum):
    UNINITIALIZED = "uninitialized"
    ACTIVE = "active"
    DISPOSED = "disposed"


class MediaDetector:
    """Detects media resource URLs in one monitored document.

    ``initialize()`` installs the interceptors and the mutation observer,
    runs a full scan, starts the scheduler and tests the page URL itself.
    ``dispose()`` undoes all of it; both are idempotent. A disposed detector
    can be initialized again.
    """

    def __init__(
        self,
        document: Document,
        channel: ReportChannel | Callable,
        *,
        config: Optional[DetectorConfig] = None,
        request_surface: Optional[RequestSurface] = None,
        fetch_surface: Optional[FetchSurface] = None,
        media_source_surface: Optional[MediaSourceSurface] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config or DetectorConfig()
        if not hasattr(channel, "post_message"):
            channel = CallbackChannel(channel)  # type: ignore[arg-type]
        reporter = Reporter(channel)  # type: ignore[arg-type]
        errors = ErrorSink(reporter)
        registry = PatternRegistry(self.config.pattern)
        seen = SeenUrlCache(self.config.dedup_capacity)
        extractor = ContentExtractor(
            registry=registry,
            seen=seen,
            reporter=reporter,
            errors=errors,
            config=self.config,
            location=lambda: document.url,
        )
        self.context = DetectionContext(
            config=self.config,
            document=document,
            registry=registry,
            seen=seen,
            reporter=reporter,
            errors=errors,
            extractor=extractor,
            loop=loop,
            clock=clock,
        )
        self.state = DetectorState.UNINITIALIZED
        self.scanner = DomScanner(self.context)
        self.batcher = MutationBatcher(self.context, self.scanner)
        self.scheduler = ScanScheduler(self.context, self._scheduled_scan, lambda: document.hidden)
        self.interceptors: List[Interceptor] = []
        if request_surface is not None:
            self.interceptors.append(RequestInterceptor(self.context, request_surface))
        if fetch_surface is not None:
            self.interceptors.append(FetchInterceptor(self.context, fetch_surface))
        if media_source_surface is not None:
            self.interceptors.append(MediaSourceInterceptor(self.context, media_source_surface))

    # ------------------------------------------------------------------
    # Convenience accessors
    # ------------------------------------------------------------------
    @property
    def document(self) -> Document:
        return self.context.document

    @property
    def is_active(self) -> bool:
        return self.state is DetectorState.ACTIVE

    @property
    def pattern(self) -> str:
        return self.context.registry.pattern

    @property
    def seen(self) -> SeenUrlCache:
        return self.context.seen

    @property
    def extractor(self) -> ContentExtractor:
        return self.context.extractor

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def initialize(self) -> bool:
        """Moves to ``ACTIVE``; returns ``False`` when already active."""

        if self.state is DetectorState.ACTIVE:
            return False
        if self.context.loop is None:
            self.context.loop = asyncio.get_running_loop()

        self.context.active = True
        self.state = DetectorState.ACTIVE

        for interceptor in self.interceptors:
            interceptor.install()
        self.batcher.install()
        self.document.on_location_change(self._on_location_change)

        self.manual_scan(full=True)
        self.scheduler.start()
        self.context.extractor.submit(self.document.url, PAGE_LOCATION)
        logger.debug("Detector active for %s with pattern %s", self.document.url, self.pattern)
        return True

    def dispose(self) -> None:
        if self.state is not DetectorState.ACTIVE:
            return
        self.context.active = False
        self.state = DetectorState.DISPOSED

        self.batcher.disconnect()
        self.scheduler.stop()
        self.document.remove_location_listener(self._on_location_change)
        for interceptor in self.interceptors:
            interceptor.uninstall()

        self.context.seen.clear()
        self.context.registry.clear_caches()
        self.scanner.reset()
        logger.debug("Detector disposed for %s", self.document.url)

    # ------------------------------------------------------------------
    # Inbound controls
    # ------------------------------------------------------------------
    def set_pattern(self, pattern: str) -> bool:
        return self.context.registry.set_pattern(pattern)

    def manual_scan(self, root: Optional[Tag] = None, *, full: bool = False) -> int:
        """Scans ``root`` (or the document) outside the scheduler cadence."""

        if not self.is_active:
            return 0
        with self.context.errors.contain(ErrorKind.OBSERVER, "scan:manual"):
            return self.scanner.scan(root, force_full=full)
        return 0

    def scan_media_elements(self, root: Optional[Tag] = None) -> int:
        """Checks only the media elements under ``root``; returns how many."""

        if not self.is_active:
            return 0
        if root is None:
            elements = self.document.media_elements()
        else:
            elements = list(root.find_all(list(MEDIA_TAGS)))
            if is_media_element(root):
                elements.insert(0, root)
        for element in elements:
            self.scanner.scan_media_element(element)
        return len(elements)

    def _scheduled_scan(self) -> None:
        self.scanner.scan()

    def _on_location_change(self, url: str) -> None:
        if not self.is_active:
            return
        self.context.extractor.submit(url, PAGE_LOCATION)
        self.manual_scan(full=True)
