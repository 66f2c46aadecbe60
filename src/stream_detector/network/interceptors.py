"""Hook logic for request, fetch and media-source traffic.

Every hook runs inside ``ErrorSink.contain`` so a failure here is recorded
and the intercepted call continues untouched.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Dict, Generic, Optional, Set, TypeVar
from urllib.parse import urlsplit

from ..context import DetectionContext
from ..core.models import (
    MEDIA_SOURCE,
    MEDIA_SOURCE_ELEMENT,
    NETWORK_BODY,
    NETWORK_REQUEST,
    NETWORK_RESPONSE,
    ErrorKind,
)
from ..page.document import attribute_text
from .surfaces import (
    CompletedResponse,
    FetchSurface,
    MediaSourceSurface,
    RequestSurface,
    SyntheticResponse,
    is_json,
    is_textual,
)

logger = logging.getLogger(__name__)

SurfaceT = TypeVar("SurfaceT", RequestSurface, FetchSurface, MediaSourceSurface)

# Requests opened but never completed are forgotten oldest first past this size
MAX_PENDING_REQUESTS = 256


def is_direct_media_url(url: str, pattern: str) -> bool:
    """``True`` when the path component ends exactly in ``.pattern``."""

    if not isinstance(url, str) or not url:
        return False
    suffix = "." + pattern
    try:
        parts = urlsplit(url.strip())
    except ValueError:
        return bool(re.search(rf"\.{re.escape(pattern)}(?:[?#]|$)", url))
    if not (parts.netloc or parts.path.startswith("/")):
        return False
    return parts.path.endswith(suffix)


def _manifest_content_type(pattern: str) -> str:
    if pattern.lower() == "m3u8":
        return "application/vnd.apple.mpegurl"
    return "text/plain"


class Interceptor(Generic[SurfaceT]):
    """Binds hook logic to one interceptable surface."""

    name = "interceptor"

    def __init__(self, context: DetectionContext, surface: SurfaceT) -> None:
        self.context = context
        self.surface = surface
        self.installed = False
        self._body_reads: Set[asyncio.Task] = set()

    def install(self) -> bool:
        if self.installed:
            return True
        try:
            self.surface.install(self)  # type: ignore[arg-type]
        except Exception as exc:
            self.context.errors.record(
                ErrorKind.INTERCEPTION, f"install:{self.name}", exc, critical=True
            )
            return False
        self.installed = True
        return True

    def uninstall(self) -> None:
        if not self.installed:
            return
        self.installed = False
        for task in list(self._body_reads):
            task.cancel()
        self._body_reads.clear()
        with self.context.errors.contain(ErrorKind.INTERCEPTION, f"uninstall:{self.name}"):
            self.surface.uninstall()

    def _short_circuit(self, url: str) -> Optional[SyntheticResponse]:
        if not self.context.config.short_circuit_direct_media:
            return None
        logger.debug("Short-circuiting direct media request %s", url)
        return SyntheticResponse(url=url, content_type=_manifest_content_type(self.context.registry.pattern))

    def _inspect_body(self, response: CompletedResponse) -> None:
        if not is_textual(response.content_type):
            return
        task = self.context.spawn(self._read_body(response))
        if task is not None:
            self._body_reads.add(task)
            task.add_done_callback(self._body_reads.discard)

    async def _read_body(self, response: CompletedResponse) -> None:
        try:
            text = await response.read_text()
        except Exception as exc:
            self.context.errors.record(ErrorKind.INTERCEPTION, f"{self.name}:body", exc)
            return
        if not self.context.active:
            return
        extractor = self.context.extractor
        with self.context.errors.contain(ErrorKind.PARSE, f"{self.name}:body"):
            if is_json(response.content_type):
                extractor.extract_json(text, NETWORK_BODY, response.url)
            else:
                extractor.extract_text(text, NETWORK_BODY, response.url)


@dataclass(slots=True)
class _PendingRequest:
    method: str
    url: str
    direct: bool


class RequestInterceptor(Interceptor[RequestSurface]):
    """Open/send style requests (the XHR equivalent)."""

    name = "request"

    def __init__(self, context: DetectionContext, surface: RequestSurface) -> None:
        super().__init__(context, surface)
        self._pending: Dict[int, _PendingRequest] = {}

    def on_open(self, request_id: int, method: str, url: str) -> None:
        with self.context.errors.contain(ErrorKind.INTERCEPTION, "request:open"):
            direct = is_direct_media_url(url, self.context.registry.pattern)
            self._pending[request_id] = _PendingRequest(method=method, url=url, direct=direct)
            while len(self._pending) > MAX_PENDING_REQUESTS:
                del self._pending[next(iter(self._pending))]
            if direct:
                self.context.extractor.submit(url, NETWORK_REQUEST)

    def on_send(self, request_id: int) -> Optional[SyntheticResponse]:
        with self.context.errors.contain(ErrorKind.INTERCEPTION, "request:send"):
            pending = self._pending.get(request_id)
            if pending is None:
                return None
            if pending.direct:
                synthetic = self._short_circuit(pending.url)
                if synthetic is not None:
                    self._pending.pop(request_id, None)
                    return synthetic
            self.context.extractor.submit(pending.url, NETWORK_REQUEST)
        return None

    def on_load(self, request_id: int, response: CompletedResponse) -> None:
        with self.context.errors.contain(ErrorKind.INTERCEPTION, "request:load"):
            self._pending.pop(request_id, None)
            if not self.context.active:
                return
            if response.url:
                self.context.extractor.submit(response.url, NETWORK_RESPONSE)
            self._inspect_body(response)

    def on_error(self, request_id: int) -> None:
        self._pending.pop(request_id, None)

    def uninstall(self) -> None:
        super().uninstall()
        self._pending.clear()


class FetchInterceptor(Interceptor[FetchSurface]):
    """Promise-returning fetches."""

    name = "fetch"

    def before_fetch(self, url: str) -> Optional[SyntheticResponse]:
        with self.context.errors.contain(ErrorKind.INTERCEPTION, "fetch:before"):
            self.context.extractor.submit(url, NETWORK_REQUEST)
            if is_direct_media_url(url, self.context.registry.pattern):
                return self._short_circuit(url)
        return None

    def after_fetch(self, response: CompletedResponse) -> None:
        with self.context.errors.contain(ErrorKind.INTERCEPTION, "fetch:after"):
            if not self.context.active:
                return
            if response.url:
                self.context.extractor.submit(response.url, NETWORK_RESPONSE)
            self._inspect_body(response)


class MediaSourceInterceptor(Interceptor[MediaSourceSurface]):
    """Source-buffer attachment and object URLs created for media sources."""

    name = "media-source"

    def on_source_buffer(self, mime_type: str, source_url: Optional[str]) -> None:
        with self.context.errors.contain(ErrorKind.INTERCEPTION, "media-source:buffer"):
            if not source_url:
                return
            lowered = (mime_type or "").lower()
            if any(allowed in lowered for allowed in self.context.registry.media_mime_types()):
                self.context.extractor.submit(source_url, MEDIA_SOURCE)

    def on_object_url(self, object_url: str, is_media_source: bool) -> None:
        with self.context.errors.contain(ErrorKind.INTERCEPTION, "media-source:object-url"):
            if not is_media_source:
                return
            self.context.call_later(
                self.context.config.media_source_probe_delay,
                self._watch_elements,
                object_url,
            )

    def _watch_elements(self, object_url: str) -> None:
        if not self.context.active:
            return
        document = self.context.document
        with self.context.errors.contain(ErrorKind.INTERCEPTION, "media-source:watch"):
            for element in document.media_elements():
                if attribute_text(element.get("src")) == object_url:
                    document.add_metadata_listener(element, self._on_metadata)

    def _on_metadata(self, element) -> None:
        if not self.context.active:
            return
        with self.context.errors.contain(ErrorKind.INTERCEPTION, "media-source:metadata"):
            document = self.context.document
            if document.media_state(element).duration > 0:
                self.context.extractor.submit(document.current_src(element), MEDIA_SOURCE_ELEMENT)

