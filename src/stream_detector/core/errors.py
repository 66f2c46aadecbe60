"""Error taxonomy and the containment helper used at component boundaries."""

from __future__ import annotations

import logging
from collections import deque
from contextlib import contextmanager
from typing import Deque, Iterator, Optional

from .models import ErrorKind, ErrorRecord
from .report import Reporter

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 100


class DetectorError(Exception):
    """Base class for detector failures."""


class InterceptorInstallError(DetectorError):
    """Raised by a surface that cannot hook its primitive."""


class ErrorSink:
    """Logs failures and forwards the critical ones to the report channel."""

    def __init__(self, reporter: Reporter) -> None:
        self._reporter = reporter
        self.history: Deque[ErrorRecord] = deque(maxlen=HISTORY_LIMIT)

    def record(
        self,
        kind: ErrorKind,
        context: str,
        error: BaseException | str,
        *,
        critical: bool = False,
    ) -> ErrorRecord:
        entry = ErrorRecord(kind=kind, context=context, error=str(error), critical=critical)
        self.history.append(entry)
        if critical:
            logger.warning("%s failure in %s: %s", kind.value, context, entry.error)
            self._reporter.report_error(entry)
        else:
            logger.debug(
                "%s failure in %s: %s",
                kind.value,
                context,
                entry.error,
                exc_info=isinstance(error, BaseException),
            )
        return entry

    @contextmanager
    def contain(self, kind: ErrorKind, context: str, *, critical: bool = False) -> Iterator[None]:
        try:
            yield
        except Exception as exc:
            self.record(kind, context, exc, critical=critical)

    def last(self, kind: Optional[ErrorKind] = None) -> Optional[ErrorRecord]:
        for entry in reversed(self.history):
            if kind is None or entry.kind is kind:
                return entry
        return None
