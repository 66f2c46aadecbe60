"""Recurring whole-document scan loop with visibility-aware backoff."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from .context import DetectionContext
from .core.models import ErrorKind

logger = logging.getLogger(__name__)


class ScanScheduler:
    """Owns a single timer handle that is re-armed every time it fires."""

    def __init__(
        self,
        context: DetectionContext,
        tick: Callable[[], object],
        is_hidden: Callable[[], bool],
    ) -> None:
        self.context = context
        self._tick = tick
        self._is_hidden = is_hidden
        self._handle: Optional[asyncio.TimerHandle] = None
        self.current_interval = context.config.scan_interval
        self.ticks = 0

    @property
    def running(self) -> bool:
        return self._handle is not None

    def start(self) -> None:
        if self._handle is not None:
            return
        self.current_interval = self.context.config.scan_interval
        self._arm(self.current_interval)

    def stop(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _arm(self, delay: float) -> None:
        self._handle = self.context.call_later(delay, self._fire)

    def _fire(self) -> None:
        self._handle = None
        if not self.context.active:
            return

        self.ticks += 1
        with self.context.errors.contain(ErrorKind.SCHEDULER, "scheduler:tick"):
            self._tick()

        base = self.context.config.scan_interval
        previous = self.current_interval
        if self._is_hidden():
            self.current_interval = min(self.current_interval * 2, max(self.context.config.max_hidden_interval, base))
        else:
            self.current_interval = base
        if self.current_interval != previous:
            logger.debug("Scan interval now %.2fs", self.current_interval)
        self._arm(self.current_interval)
