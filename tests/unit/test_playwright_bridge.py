import json

from stream_detector.browser.playwright_bridge import BRIDGE_BINDING, PlaywrightBridge  # type: ignore[import]

from tests.helpers.builders import FAST_TIMERS, run, settle
from tests.helpers.detector_imports import CollectingChannel, DetectorConfig, Document, MediaDetector


class FakeRequest:
    def __init__(self, url, resource_type, method="GET"):
        self.url = url
        self.resource_type = resource_type
        self.method = method


class FakeRoute:
    def __init__(self, request):
        self.request = request
        self.fulfilled = None
        self.fell_back = False

    async def fulfill(self, **kwargs):
        self.fulfilled = kwargs

    async def fallback(self):
        self.fell_back = True


class FakeResponse:
    def __init__(self, request, body, content_type):
        self.request = request
        self.url = request.url
        self.status = 200
        self.headers = {"content-type": content_type}
        self._body = body

    async def text(self):
        return self._body


class FakePage:
    def __init__(self, html="<html><body></body></html>", url="https://site.example/watch"):
        self.html = html
        self.url = url
        self.main_frame = object()
        self.bindings = {}
        self.init_scripts = []
        self.routes = []
        self.listeners = {}

    async def expose_binding(self, name, callback):
        self.bindings[name] = callback

    async def add_init_script(self, script):
        self.init_scripts.append(script)

    async def route(self, pattern, handler):
        self.routes.append((pattern, handler))

    async def unroute(self, pattern, handler):
        self.routes.remove((pattern, handler))

    def on(self, event, handler):
        self.listeners.setdefault(event, []).append(handler)

    def remove_listener(self, event, handler):
        self.listeners[event].remove(handler)

    async def content(self):
        return self.html


class FakeFrame:
    def __init__(self, url):
        self.url = url


def _build(page):
    document = Document(url=page.url)
    bridge = PlaywrightBridge(page, document)
    channel = CollectingChannel()
    detector = MediaDetector(
        document,
        channel,
        config=DetectorConfig(**FAST_TIMERS),
        request_surface=bridge.request_surface,
        fetch_surface=bridge.fetch_surface,
        media_source_surface=bridge.media_source_surface,
    )
    return bridge, detector, channel


def test_attach_and_detach_register_page_hooks():
    page = FakePage()

    async def scenario():
        bridge, _, _ = _build(page)
        await bridge.attach()
        await bridge.attach()
        attached = (dict(page.bindings), list(page.init_scripts), list(page.routes), dict(page.listeners))
        await bridge.detach()
        return attached

    bindings, scripts, routes, listeners = run(scenario)

    assert list(bindings) == [BRIDGE_BINDING]
    assert len(scripts) == 1 and "addSourceBuffer" in scripts[0]
    assert [pattern for pattern, _ in routes] == ["**/*"]
    assert set(listeners) == {"response", "requestfailed", "framenavigated"}
    assert page.routes == []
    assert all(not handlers for handlers in page.listeners.values())


def test_direct_media_xhr_is_fulfilled_and_other_traffic_falls_through():
    page = FakePage()

    async def scenario():
        bridge, detector, channel = _build(page)
        await bridge.attach()
        detector.initialize()
        media = FakeRoute(FakeRequest("https://cdn.example/live/index.m3u8", "xhr"))
        script = FakeRoute(FakeRequest("https://cdn.example/app.js", "script"))
        api = FakeRoute(FakeRequest("https://api.example/list", "fetch"))
        for route in (media, script, api):
            await bridge.handle_route(route)
        detector.dispose()
        return channel, media, script, api

    channel, media, script, api = run(scenario)

    assert media.fulfilled == {
        "status": 200,
        "body": "",
        "content_type": "application/vnd.apple.mpegurl",
    }
    assert media.fell_back is False
    assert script.fell_back is True and script.fulfilled is None
    assert api.fell_back is True
    assert channel.urls == ["https://cdn.example/live/index.m3u8"]
    assert channel.messages[0]["details"]["source"] == "network-request"


def test_uninstalled_bridge_passes_everything_through():
    page = FakePage()

    async def scenario():
        bridge, _, _ = _build(page)
        route = FakeRoute(FakeRequest("https://cdn.example/live/index.m3u8", "fetch"))
        await bridge.handle_route(route)
        return route

    route = run(scenario)

    assert route.fell_back is True
    assert route.fulfilled is None


def test_fetch_response_body_is_inspected():
    page = FakePage()
    request = FakeRequest("https://api.example/player", "fetch")
    body = json.dumps({"playlist": {"hls": "/streams/ep1.m3u8"}})

    async def scenario():
        bridge, detector, channel = _build(page)
        await bridge.attach()
        detector.initialize()
        await bridge.handle_route(FakeRoute(request))
        bridge.handle_response(FakeResponse(request, body, "application/json"))
        await settle()
        detector.dispose()
        return channel

    channel = run(scenario)

    assert channel.urls == ["https://api.example/streams/ep1.m3u8"]
    assert channel.messages[0]["details"]["source"] == "json-path:playlist.hls"


def test_page_events_reach_media_source_document_and_visibility():
    page = FakePage()

    async def scenario():
        bridge, detector, channel = _build(page)
        await bridge.attach()
        detector.initialize()
        bridge.handle_page_event(
            None,
            {"kind": "source-buffer", "mimeType": "application/x-mpegURL", "url": "https://cdn.example/mse.m3u8"},
        )
        bridge.handle_page_event(None, {"kind": "attribute", "tag": "video", "name": "src", "value": "/vod/attr.m3u8"})
        bridge.handle_page_event(None, {"kind": "visibility", "hidden": True})
        bridge.handle_page_event(None, "not-an-event")
        await settle()
        hidden = detector.document.hidden
        detector.dispose()
        return channel, hidden

    channel, hidden = run(scenario)

    assert hidden is True
    assert channel.urls == ["https://cdn.example/mse.m3u8", "https://site.example/vod/attr.m3u8"]
    assert [message["details"]["source"] for message in channel.messages] == ["media-source", "attribute-change"]


def test_sync_and_navigation_feed_the_document():
    page = FakePage(html='<html><body><video src="https://cdn.example/synced.m3u8"></video></body></html>')

    async def scenario():
        bridge, detector, channel = _build(page)
        await bridge.attach()
        detector.initialize()
        await bridge.sync_document()
        await settle()
        bridge.handle_navigation(FakeFrame("https://site.example/other/live.m3u8"))
        page.main_frame = FakeFrame("https://site.example/next.m3u8")
        bridge.handle_navigation(page.main_frame)
        detector.dispose()
        return channel

    channel = run(scenario)

    assert channel.urls == ["https://cdn.example/synced.m3u8", "https://site.example/next.m3u8"]

def test_failed_xhr_is_released_by_bridge_and_interceptor():
    page = FakePage()
    request = FakeRequest("https://api.example/broken", "xhr")

    async def scenario():
        bridge, detector, _ = _build(page)
        await bridge.attach()
        detector.initialize()
        await bridge.handle_route(FakeRoute(request))
        interceptor = detector.interceptors[0]
        before = len(interceptor._pending)
        bridge.handle_request_failed(request)
        after = (len(interceptor._pending), len(bridge._request_ids))
        detector.dispose()
        return before, after

    before, after = run(scenario)

    assert before == 1
    assert after == (0, 0)
