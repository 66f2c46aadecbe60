"""In-process model of the monitored document, backed by BeautifulSoup."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence

from bs4 import BeautifulSoup
from bs4.element import Tag

MEDIA_TAGS = frozenset({"video", "audio"})

MutationCallback = Callable[[List["MutationRecord"]], None]
SrcHook = Callable[[str], None]
MetadataListener = Callable[[Tag], None]


def attribute_text(value: Any) -> Optional[str]:
    """Flattens bs4 attribute values (``class`` is a list) into one string."""

    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        return " ".join(str(item) for item in value)
    return str(value)


def is_media_element(node: Any) -> bool:
    return isinstance(node, Tag) and (node.name or "").lower() in MEDIA_TAGS


@dataclass(slots=True)
class MutationRecord:
    type: str
    target: Tag
    attribute_name: Optional[str] = None
    added_nodes: Sequence[Tag] = ()


@dataclass(slots=True)
class MediaState:
    """Runtime properties of a media element that markup does not carry."""

    src_hooks: List[SrcHook] = field(default_factory=list)
    metadata_listeners: List[MetadataListener] = field(default_factory=list)
    current_src: Optional[str] = None
    duration: float = 0.0


class MutationObserverHandle:
    def __init__(self, document: "Document", callback: MutationCallback) -> None:
        self._document = document
        self.callback = callback
        self.connected = True

    def disconnect(self) -> None:
        if self.connected:
            self.connected = False
            self._document._observers.remove(self)


class Document:
    """Element tree, mutation notifications, location and visibility.

    Elements are plain ``bs4`` tags. Identity is tracked through an arena of
    integer handles because tags compare by content, not identity.
    """

    def __init__(self, html: str = "", url: str = "about:blank") -> None:
        self.soup = BeautifulSoup(html or "<html><head></head><body></body></html>", "html.parser")
        self.url = url
        self.hidden = False
        self.generation = 0
        self._handles: Dict[int, int] = {}
        self._arena: Dict[int, Tag] = {}
        self._next_handle = 1
        self._media: Dict[int, MediaState] = {}
        self._observers: List[MutationObserverHandle] = []
        self._pending: List[MutationRecord] = []
        self._delivery_scheduled = False
        self._location_listeners: List[Callable[[str], None]] = []

    # ------------------------------------------------------------------
    # Element identity
    # ------------------------------------------------------------------
    def handle_of(self, element: Tag) -> int:
        key = id(element)
        handle = self._handles.get(key)
        if handle is None:
            handle = self._next_handle
            self._next_handle += 1
            self._handles[key] = handle
            self._arena[handle] = element
        return handle

    def element(self, handle: int) -> Optional[Tag]:
        return self._arena.get(handle)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    @property
    def root(self) -> Tag:
        return self.soup.find("html") or self.soup

    def select(self, selector: str, root: Optional[Tag] = None) -> List[Tag]:
        return list((root or self.soup).select(selector))

    def iter_elements(self, root: Optional[Tag] = None) -> Iterator[Tag]:
        scope = root or self.soup
        if isinstance(scope, Tag) and scope is not self.soup:
            yield scope
        yield from scope.find_all(True)

    def media_elements(self) -> List[Tag]:
        return self.soup.find_all(list(MEDIA_TAGS))

    def inline_scripts(self) -> List[Tag]:
        return [script for script in self.soup.find_all("script") if not script.get("src")]

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def observe(self, callback: MutationCallback) -> MutationObserverHandle:
        handle = MutationObserverHandle(self, callback)
        self._observers.append(handle)
        return handle

    def set_attribute(self, element: Tag, name: str, value: str) -> None:
        element[name] = value
        self._queue(MutationRecord(type="attributes", target=element, attribute_name=name))

    def append_html(self, parent: Optional[Tag], html: str) -> List[Tag]:
        """Parses ``html`` and appends its top-level elements to ``parent``."""

        target = parent or self.soup.body or self.root
        fragment = BeautifulSoup(html, "html.parser")
        added = [node for node in list(fragment.contents) if isinstance(node, Tag)]
        for node in added:
            target.append(node.extract())
        if added:
            self._queue(MutationRecord(type="childList", target=target, added_nodes=tuple(added)))
        return added

    def load_html(self, html: str, url: Optional[str] = None) -> None:
        """Replaces the whole tree, as a navigation or full re-sync would."""

        self.soup = BeautifulSoup(html or "", "html.parser")
        self._handles.clear()
        self._arena.clear()
        self._media.clear()
        self.generation += 1
        if url:
            self.url = url
        new_root = self.root
        if isinstance(new_root, Tag) and new_root is not self.soup:
            self._queue(MutationRecord(type="childList", target=self.soup, added_nodes=(new_root,)))

    def record_external_attribute(self, tag_name: str, name: str, value: str) -> Tag:
        """Queues an attribute change reported by a page outside this process."""

        element = self.soup.new_tag(tag_name or "div")
        element[name] = value
        self._queue(MutationRecord(type="attributes", target=element, attribute_name=name))
        return element

    def _queue(self, record: MutationRecord) -> None:
        if not self._observers:
            return
        self._pending.append(record)
        if self._delivery_scheduled:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._deliver()
            return
        self._delivery_scheduled = True
        loop.call_soon(self._deliver)

    def _deliver(self) -> None:
        self._delivery_scheduled = False
        records, self._pending = self._pending, []
        if not records:
            return
        for observer in list(self._observers):
            if observer.connected:
                observer.callback(list(records))

    # ------------------------------------------------------------------
    # Media elements
    # ------------------------------------------------------------------
    def media_state(self, element: Tag) -> MediaState:
        handle = self.handle_of(element)
        state = self._media.get(handle)
        if state is None:
            state = MediaState()
            self._media[handle] = state
        return state

    def current_src(self, element: Tag) -> Optional[str]:
        state = self._media.get(self.handle_of(element))
        if state and state.current_src:
            return state.current_src
        src = attribute_text(element.get("src"))
        if src:
            return src
        source = element.find("source", src=True)
        return attribute_text(source.get("src")) if source else None

    def add_src_hook(self, element: Tag, hook: SrcHook) -> None:
        self.media_state(element).src_hooks.append(hook)

    def remove_src_hook(self, element: Tag, hook: SrcHook) -> None:
        hooks = self.media_state(element).src_hooks
        if hook in hooks:
            hooks.remove(hook)

    def set_media_src(self, element: Tag, value: str) -> None:
        """Assigns ``element.src`` the way page script would."""

        state = self.media_state(element)
        for hook in list(state.src_hooks):
            hook(value)
        state.current_src = value
        self.set_attribute(element, "src", value)

    def add_metadata_listener(self, element: Tag, listener: MetadataListener) -> None:
        self.media_state(element).metadata_listeners.append(listener)

    def fire_loaded_metadata(self, element: Tag, duration: float) -> None:
        state = self.media_state(element)
        state.duration = duration
        listeners, state.metadata_listeners = state.metadata_listeners, []
        for listener in listeners:
            listener(element)

    # ------------------------------------------------------------------
    # Location and visibility
    # ------------------------------------------------------------------
    def on_location_change(self, listener: Callable[[str], None]) -> None:
        self._location_listeners.append(listener)

    def remove_location_listener(self, listener: Callable[[str], None]) -> None:
        if listener in self._location_listeners:
            self._location_listeners.remove(listener)

    def navigate(self, url: str) -> None:
        """History or hash navigation: the URL changes, the tree stays."""

        if url == self.url:
            return
        self.url = url
        for listener in list(self._location_listeners):
            listener(url)

    def set_hidden(self, hidden: bool) -> None:
        self.hidden = hidden
