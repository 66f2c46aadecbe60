"""Static mode: fetch a page with ``requests`` and run the detector on it."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import requests

from ..core.config import DetectorConfig
from ..core.models import PAGE_SOURCE
from ..core.report import ReportChannel
from ..detector import MediaDetector
from ..page.document import Document
from ..page.runtime import HttpResponse, PageRuntime

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10
DEFAULT_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/131.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/json;q=0.9,*/*;q=0.8",
}


class RequestsTransport:
    """Async transport that runs blocking ``requests`` calls in an executor."""

    def __init__(self, session: Optional[requests.Session] = None, timeout: int = DEFAULT_TIMEOUT) -> None:
        self.session = session or requests.Session()
        self.session.headers.update(DEFAULT_HEADERS)
        self.timeout = timeout

    async def __call__(self, method: str, url: str) -> HttpResponse:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._perform, method, url)

    def _perform(self, method: str, url: str) -> HttpResponse:
        response = self.session.request(method, url, timeout=self.timeout, allow_redirects=True)
        return HttpResponse(
            url=response.url,
            status=response.status_code,
            content_type=response.headers.get("Content-Type", ""),
            body=response.text,
            headers=dict(response.headers),
        )

    def close(self) -> None:
        self.session.close()


async def run_static_detection(
    target_url: str,
    channel: ReportChannel,
    config: DetectorConfig,
    *,
    duration: float = 0.0,
    transport: Optional[RequestsTransport] = None,
) -> MediaDetector:
    """Fetches ``target_url`` through the page runtime and scans the result.

    The fetch itself goes through the fetch interceptor, so the page URL and a
    textual body are inspected the same way page traffic would be.
    """

    transport = transport or RequestsTransport()
    document = Document(url=target_url)
    runtime = PageRuntime(document, transport)
    detector = MediaDetector(
        document,
        channel,
        config=config,
        request_surface=runtime.request_surface,
        fetch_surface=runtime.fetch_surface,
        media_source_surface=runtime.media_source_surface,
    )
    detector.initialize()
    try:
        try:
            response = await runtime.fetch(target_url)
        except requests.RequestException as exc:
            logger.warning("Could not fetch %s: %s", target_url, exc)
            return detector

        if response.status >= 400:
            logger.warning("%s answered with status %s", response.url, response.status)
        document.load_html(response.body, url=response.url)
        detector.context.extractor.extract_text(response.body, PAGE_SOURCE, response.url)
        detector.manual_scan(full=True)

        # Let the deferred script pass and the mutation debounce run.
        await asyncio.sleep(max(duration, config.debounce_delay * 2))
        return detector
    finally:
        detector.dispose()
        transport.close()
