"""Connects a live Playwright page to the detector's surfaces and document."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

from playwright.async_api import Frame, Page, Request, Response, Route, async_playwright
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from ..core.config import RunConfig
from ..core.report import ReportChannel
from ..detector import MediaDetector
from ..network.surfaces import CompletedResponse, FetchHooks, MediaSourceHooks, RequestHooks
from ..page.document import Document, attribute_text
from ..page.runtime import HookSlot

logger = logging.getLogger(__name__)

BRIDGE_BINDING = "__streamDetectorEvent"
SYNC_INTERVAL = 1.0
NAVIGATION_TIMEOUT_MS = 15000

BRIDGE_SCRIPT = """
(() => {
  if (window.__streamDetectorBridge) return;
  window.__streamDetectorBridge = true;
  const post = (event) => {
    try { window.__streamDetectorEvent(event); } catch (e) {}
  };

  if (window.MediaSource) {
    const addSourceBuffer = MediaSource.prototype.addSourceBuffer;
    MediaSource.prototype.addSourceBuffer = function (mimeType) {
      post({ kind: 'source-buffer', mimeType: String(mimeType), url: this.url || null });
      return addSourceBuffer.call(this, mimeType);
    };
  }

  if (window.URL && URL.createObjectURL) {
    const createObjectURL = URL.createObjectURL;
    URL.createObjectURL = function (obj) {
      const url = createObjectURL.call(this, obj);
      const isMediaSource = !!(window.MediaSource && obj instanceof MediaSource);
      post({ kind: 'object-url', url: url, mediaSource: isMediaSource });
      return url;
    };
  }

  document.addEventListener('loadedmetadata', (event) => {
    const el = event.target;
    if (el && el.duration > 0) {
      post({ kind: 'metadata', src: el.getAttribute('src') || el.currentSrc, duration: el.duration });
    }
  }, true);

  document.addEventListener('visibilitychange', () => {
    post({ kind: 'visibility', hidden: document.hidden });
  });

  new MutationObserver((records) => {
    for (const record of records) {
      if (record.type !== 'attributes' || !record.target.getAttribute) continue;
      const value = record.target.getAttribute(record.attributeName);
      if (value) {
        post({
          kind: 'attribute',
          tag: record.target.tagName.toLowerCase(),
          name: record.attributeName,
          value: value,
        });
      }
    }
  }).observe(document, { attributes: true, subtree: true });
})();
"""


class PlaywrightBridge:
    """Exposes a Playwright page as the three interceptable surfaces.

    ``xhr`` resources are routed to the request surface and ``fetch``
    resources to the fetch surface. Everything else falls through untouched.
    """

    def __init__(self, page: Page, document: Document) -> None:
        self.page = page
        self.document = document
        self.request_surface: HookSlot[RequestHooks] = HookSlot("request")
        self.fetch_surface: HookSlot[FetchHooks] = HookSlot("fetch")
        self.media_source_surface: HookSlot[MediaSourceHooks] = HookSlot("media-source")
        self._request_ids: Dict[int, int] = {}
        self._next_request_id = 1
        self._attached = False

    async def attach(self) -> None:
        if self._attached:
            return
        await self.page.expose_binding(BRIDGE_BINDING, self.handle_page_event)
        await self.page.add_init_script(BRIDGE_SCRIPT)
        await self.page.route("**/*", self.handle_route)
        self.page.on("response", self.handle_response)
        self.page.on("requestfailed", self.handle_request_failed)
        self.page.on("framenavigated", self.handle_navigation)
        self._attached = True

    async def detach(self) -> None:
        if not self._attached:
            return
        self._attached = False
        self.page.remove_listener("response", self.handle_response)
        self.page.remove_listener("requestfailed", self.handle_request_failed)
        self.page.remove_listener("framenavigated", self.handle_navigation)
        try:
            await self.page.unroute("**/*", self.handle_route)
        except PlaywrightError:
            logger.debug("Route removal failed; page already closed", exc_info=True)

    # ------------------------------------------------------------------
    # Network
    # ------------------------------------------------------------------
    def _request_id(self, request: Request) -> int:
        key = id(request)
        request_id = self._request_ids.get(key)
        if request_id is None:
            request_id = self._next_request_id
            self._next_request_id += 1
            self._request_ids[key] = request_id
        return request_id

    async def handle_route(self, route: Route) -> None:
        request = route.request
        synthetic = None
        if request.resource_type == "xhr":
            request_id = self._request_id(request)
            self.request_surface.call("on_open", request_id, request.method, request.url)
            synthetic = self.request_surface.call("on_send", request_id)
        elif request.resource_type == "fetch":
            synthetic = self.fetch_surface.call("before_fetch", request.url)

        if synthetic is not None:
            self._request_ids.pop(id(request), None)
            await route.fulfill(
                status=synthetic.status,
                body=synthetic.body,
                content_type=synthetic.content_type,
            )
            return
        await route.fallback()

    def handle_response(self, response: Response) -> None:
        request = response.request
        if request.resource_type not in {"xhr", "fetch"}:
            return
        completed = CompletedResponse(
            url=response.url,
            status=response.status,
            content_type=response.headers.get("content-type", ""),
            read_text=response.text,
            headers=dict(response.headers),
        )
        if request.resource_type == "xhr":
            request_id = self._request_ids.pop(id(request), None)
            if request_id is not None:
                self.request_surface.call("on_load", request_id, completed)
        else:
            self.fetch_surface.call("after_fetch", completed)

    def handle_request_failed(self, request: Request) -> None:
        request_id = self._request_ids.pop(id(request), None)
        if request_id is not None:
            self.request_surface.call("on_error", request_id)

    # ------------------------------------------------------------------
    # Page events
    # ------------------------------------------------------------------
    def handle_page_event(self, _source: Any, event: Optional[Dict[str, Any]]) -> None:
        if not isinstance(event, dict):
            return
        kind = event.get("kind")
        if kind == "source-buffer":
            self.media_source_surface.call("on_source_buffer", str(event.get("mimeType") or ""), event.get("url"))
        elif kind == "object-url":
            self.media_source_surface.call("on_object_url", str(event.get("url") or ""), bool(event.get("mediaSource")))
        elif kind == "attribute":
            self.document.record_external_attribute(
                str(event.get("tag") or "div"), str(event.get("name") or ""), str(event.get("value") or "")
            )
        elif kind == "visibility":
            self.document.set_hidden(bool(event.get("hidden")))
        elif kind == "metadata":
            self._mirror_metadata(str(event.get("src") or ""), float(event.get("duration") or 0))

    def _mirror_metadata(self, src: str, duration: float) -> None:
        if not src:
            return
        for element in self.document.media_elements():
            if attribute_text(element.get("src")) == src or self.document.current_src(element) == src:
                self.document.fire_loaded_metadata(element, duration)

    def handle_navigation(self, frame: Frame) -> None:
        if frame == self.page.main_frame:
            self.document.navigate(frame.url)

    async def sync_document(self) -> None:
        """Mirrors the page's current markup into the in-process document."""

        try:
            html = await self.page.content()
        except PlaywrightError:
            logger.debug("Could not read page content", exc_info=True)
            return
        self.document.load_html(html, url=self.page.url)


async def run_browser_detection(config: RunConfig, channel: ReportChannel) -> None:
    """Opens ``config.target_url`` in Chromium and detects for ``config.duration``."""

    async with async_playwright() as playwright:
        browser = await playwright.chromium.launch(headless=config.headless)
        context = await browser.new_context()
        page = await context.new_page()

        document = Document(url=config.target_url)
        bridge = PlaywrightBridge(page, document)
        await bridge.attach()
        detector = MediaDetector(
            document,
            channel,
            config=config.detector,
            request_surface=bridge.request_surface,
            fetch_surface=bridge.fetch_surface,
            media_source_surface=bridge.media_source_surface,
        )
        detector.initialize()

        try:
            try:
                await page.goto(config.target_url, wait_until="domcontentloaded", timeout=NAVIGATION_TIMEOUT_MS)
            except PlaywrightTimeoutError:
                logger.debug("Navigation timed out; scanning what loaded", exc_info=True)

            loop = asyncio.get_running_loop()
            deadline = loop.time() + config.duration
            while True:
                await bridge.sync_document()
                remaining = deadline - loop.time()
                if remaining <= 0:
                    break
                await asyncio.sleep(min(SYNC_INTERVAL, remaining))
        finally:
            detector.dispose()
            await bridge.detach()
            await browser.close()
