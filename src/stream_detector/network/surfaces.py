"""Capability interfaces for every request-issuing surface the detector hooks.

A surface owns the primitive (an in-process runtime, a browser page, a test
fake) and calls back into whichever hooks are installed. With no hooks
installed a surface must behave exactly as the unwrapped primitive.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, Optional, Protocol

TEXTUAL_CONTENT_TYPES = (
    "application/json",
    "text/json",
    "+json",
    "text/plain",
    "mpegurl",
    "application/dash+xml",
)


def is_textual(content_type: Optional[str]) -> bool:
    lowered = (content_type or "").lower()
    return any(marker in lowered for marker in TEXTUAL_CONTENT_TYPES)


def is_json(content_type: Optional[str]) -> bool:
    lowered = (content_type or "").lower()
    return "json" in lowered


@dataclass(frozen=True, slots=True)
class SyntheticResponse:
    """Stand-in completion for a short-circuited request."""

    url: str
    status: int = 200
    body: str = ""
    content_type: str = "text/plain"


@dataclass(slots=True)
class CompletedResponse:
    """A finished response as seen by the interceptors.

    ``read_text`` returns the body without consuming the caller's copy.
    """

    url: str
    status: int
    content_type: str
    read_text: Callable[[], Awaitable[str]]
    headers: Dict[str, str] = field(default_factory=dict)


class RequestHooks(Protocol):
    """Open/send/load lifecycle of callback-style requests."""

    def on_open(self, request_id: int, method: str, url: str) -> None:
        ...

    def on_send(self, request_id: int) -> Optional[SyntheticResponse]:
        ...

    def on_load(self, request_id: int, response: CompletedResponse) -> None:
        ...

    def on_error(self, request_id: int) -> None:
        ...


class FetchHooks(Protocol):
    """Before/after hooks for promise-returning fetches."""

    def before_fetch(self, url: str) -> Optional[SyntheticResponse]:
        ...

    def after_fetch(self, response: CompletedResponse) -> None:
        ...


class MediaSourceHooks(Protocol):
    def on_source_buffer(self, mime_type: str, source_url: Optional[str]) -> None:
        ...

    def on_object_url(self, object_url: str, is_media_source: bool) -> None:
        ...


class RequestSurface(Protocol):
    def install(self, hooks: RequestHooks) -> None:
        ...

    def uninstall(self) -> None:
        ...


class FetchSurface(Protocol):
    def install(self, hooks: FetchHooks) -> None:
        ...

    def uninstall(self) -> None:
        ...


class MediaSourceSurface(Protocol):
    def install(self, hooks: MediaSourceHooks) -> None:
        ...

    def uninstall(self) -> None:
        ...
