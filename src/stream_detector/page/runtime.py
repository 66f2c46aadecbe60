"""Request-issuing primitives of an in-process page.

``PageRuntime`` plays the role of the page's global scope: it issues
open/send requests and fetches through a pluggable async transport and hands
out media-source objects and object URLs. Each primitive consults a hook slot,
which is the surface an interceptor installs into.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Generic, List, Optional, TypeVar
from urllib.parse import urlsplit

from ..network.surfaces import (
    CompletedResponse,
    FetchHooks,
    MediaSourceHooks,
    RequestHooks,
    SyntheticResponse,
)
from .document import Document

logger = logging.getLogger(__name__)

HooksT = TypeVar("HooksT", RequestHooks, FetchHooks, MediaSourceHooks)


@dataclass(slots=True)
class HttpResponse:
    url: str
    status: int = 200
    content_type: str = ""
    body: str = ""
    headers: Dict[str, str] = field(default_factory=dict)
    synthetic: bool = False

    @classmethod
    def from_synthetic(cls, synthetic: SyntheticResponse) -> "HttpResponse":
        return cls(
            url=synthetic.url,
            status=synthetic.status,
            content_type=synthetic.content_type,
            body=synthetic.body,
            synthetic=True,
        )

    def as_completed(self) -> CompletedResponse:
        body = self.body

        async def read_text() -> str:
            return body

        return CompletedResponse(
            url=self.url,
            status=self.status,
            content_type=self.content_type,
            read_text=read_text,
            headers=dict(self.headers),
        )


Transport = Callable[[str, str], Awaitable[HttpResponse]]


class HookSlot(Generic[HooksT]):
    """Installable surface for one primitive of the runtime."""

    def __init__(self, name: str) -> None:
        self.name = name
        self.hooks: Optional[HooksT] = None

    def install(self, hooks: HooksT) -> None:
        self.hooks = hooks

    def uninstall(self) -> None:
        self.hooks = None

    def call(self, method: str, *args: Any) -> Any:
        hooks = self.hooks
        if hooks is None:
            return None
        try:
            return getattr(hooks, method)(*args)
        except Exception:
            logger.debug("%s hook %s failed; continuing unhooked", self.name, method, exc_info=True)
            return None


class PageRequest:
    """Callback-style request: ``open`` on creation, then ``send``."""

    def __init__(self, runtime: "PageRuntime", request_id: int, method: str, url: str) -> None:
        self._runtime = runtime
        self.request_id = request_id
        self.method = method
        self.url = url
        self.response: Optional[HttpResponse] = None
        self.error: Optional[BaseException] = None
        self._listeners: List[Callable[["PageRequest"], None]] = []
        self._task: Optional[asyncio.Task] = None

    def add_load_listener(self, listener: Callable[["PageRequest"], None]) -> None:
        self._listeners.append(listener)

    def send(self) -> asyncio.Task:
        synthetic = self._runtime.request_surface.call("on_send", self.request_id)
        self._task = asyncio.get_running_loop().create_task(self._complete(synthetic))
        return self._task

    async def _complete(self, synthetic: Optional[SyntheticResponse]) -> None:
        if synthetic is not None:
            self.response = HttpResponse.from_synthetic(synthetic)
        else:
            try:
                self.response = await self._runtime.transport(self.method, self.url)
            except Exception as exc:
                self.error = exc
                self._runtime.request_surface.call("on_error", self.request_id)
                return
            self._runtime.request_surface.call("on_load", self.request_id, self.response.as_completed())
        for listener in list(self._listeners):
            listener(self)

    @property
    def response_text(self) -> str:
        return self.response.body if self.response else ""


class MediaSource:
    def __init__(self, runtime: "PageRuntime", url: Optional[str] = None) -> None:
        self._runtime = runtime
        self.url = url
        self.source_buffers: List[str] = []

    def add_source_buffer(self, mime_type: str) -> int:
        self._runtime.media_source_surface.call("on_source_buffer", mime_type, self.url)
        self.source_buffers.append(mime_type)
        return len(self.source_buffers) - 1


class PageRuntime:
    """Global scope of an in-process page."""

    def __init__(self, document: Document, transport: Transport) -> None:
        self.document = document
        self.transport = transport
        self.request_surface: HookSlot[RequestHooks] = HookSlot("request")
        self.fetch_surface: HookSlot[FetchHooks] = HookSlot("fetch")
        self.media_source_surface: HookSlot[MediaSourceHooks] = HookSlot("media-source")
        self._next_request_id = 1
        self.object_urls: Dict[str, object] = {}

    def open_request(self, method: str, url: str) -> PageRequest:
        request_id = self._next_request_id
        self._next_request_id += 1
        self.request_surface.call("on_open", request_id, method, url)
        return PageRequest(self, request_id, method, url)

    async def fetch(self, url: str, method: str = "GET") -> HttpResponse:
        synthetic = self.fetch_surface.call("before_fetch", url)
        if synthetic is not None:
            return HttpResponse.from_synthetic(synthetic)
        response = await self.transport(method, url)
        self.fetch_surface.call("after_fetch", response.as_completed())
        return response

    def create_media_source(self, url: Optional[str] = None) -> MediaSource:
        return MediaSource(self, url)

    def create_object_url(self, obj: object) -> str:
        parts = urlsplit(self.document.url)
        origin = f"{parts.scheme}://{parts.netloc}" if parts.netloc else "null"
        object_url = f"blob:{origin}/{uuid.uuid4()}"
        self.object_urls[object_url] = obj
        self.media_source_surface.call("on_object_url", object_url, isinstance(obj, MediaSource))
        return object_url
