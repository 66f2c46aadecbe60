"""Objects shared by every component of one detector instance."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Coroutine, Optional

from .core.config import DetectorConfig
from .core.errors import ErrorSink
from .core.report import Reporter
from .detection.dedup import SeenUrlCache
from .detection.extractor import ContentExtractor
from .detection.patterns import PatternRegistry
from .page.document import Document


@dataclass(slots=True)
class DetectionContext:
    """Lifecycle-scoped state owned by a single ``MediaDetector``."""

    config: DetectorConfig
    document: Document
    registry: PatternRegistry
    seen: SeenUrlCache
    reporter: Reporter
    errors: ErrorSink
    extractor: ContentExtractor
    loop: Optional[asyncio.AbstractEventLoop] = None
    active: bool = False
    clock: Callable[[], float] = field(default=time.monotonic)

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> Optional[asyncio.TimerHandle]:
        if self.loop is None:
            return None
        return self.loop.call_later(delay, callback, *args)

    def call_soon(self, callback: Callable[..., Any], *args: Any) -> Optional[asyncio.Handle]:
        if self.loop is None:
            return None
        return self.loop.call_soon(callback, *args)

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> Optional[asyncio.Task]:
        if self.loop is None:
            coro.close()
            return None
        return self.loop.create_task(coro)
