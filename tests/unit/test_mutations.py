import asyncio

from tests.helpers.builders import build_detector, run, settle
from tests.helpers.detector_imports import ErrorKind


def test_src_attribute_change_resolves_against_page():
    async def scenario():
        detector, _, channel = build_detector(
            '<html><body><div class="player"><video id="main"></video></div></body></html>',
            url="https://a.b/",
        )
        detector.initialize()
        video = detector.document.select("video")[0]
        detector.document.set_attribute(video, "src", "/vod/x.m3u8")
        await settle()
        detector.dispose()
        return channel

    channel = run(scenario)

    assert channel.urls == ["https://a.b/vod/x.m3u8"]
    assert channel.messages[0]["details"]["source"] == "attribute-change"


def test_added_player_subtree_is_rescanned_after_debounce():
    async def scenario():
        detector, _, channel = build_detector("<html><body><main></main></body></html>")
        detector.initialize()
        main = detector.document.select("main")[0]
        detector.document.append_html(
            main,
            '<div class="video-js"><span data-src="https://cdn.example/p/stream.m3u8"></span></div>',
        )
        await asyncio.sleep(0)
        staged = detector.batcher.pending_count
        timer_armed = detector.batcher.timer_active
        await settle()
        drained = detector.batcher.pending_count
        detector.dispose()
        return channel, staged, timer_armed, drained

    channel, staged, timer_armed, drained = run(scenario)

    assert staged == 2
    assert timer_armed is True
    assert drained == 0
    assert channel.urls == ["https://cdn.example/p/stream.m3u8"]
    assert channel.messages[0]["details"]["source"] == "dom-attribute:data-src"


def test_staging_deduplicates_and_uses_a_single_timer():
    async def scenario():
        detector, _, channel = build_detector()
        detector.initialize()
        batcher = detector.batcher
        batcher.stage("https://cdn.example/a.m3u8")
        first_timer = batcher._timer
        batcher.stage("https://cdn.example/a.m3u8")
        batcher.stage("https://cdn.example/b.m3u8")
        same_timer = batcher._timer is first_timer
        pending = batcher.pending_count
        await settle()
        detector.dispose()
        return channel, same_timer, pending

    channel, same_timer, pending = run(scenario)

    assert same_timer is True
    assert pending == 2
    assert channel.urls == ["https://cdn.example/a.m3u8", "https://cdn.example/b.m3u8"]
    assert {message["details"]["source"] for message in channel.messages} == {"mutation"}


def test_dispose_cancels_pending_debounce():
    async def scenario():
        detector, _, channel = build_detector("<html><body><video></video></body></html>")
        detector.initialize()
        video = detector.document.select("video")[0]
        detector.document.set_attribute(video, "data-config", "https://cdn.example/late.m3u8")
        await asyncio.sleep(0)
        armed = detector.batcher.timer_active
        detector.dispose()
        cancelled = not detector.batcher.timer_active
        await settle()
        return channel, armed, cancelled

    channel, armed, cancelled = run(scenario)

    assert armed is True
    assert cancelled is True
    assert channel.urls == []


def test_observer_failure_is_contained_and_observer_keeps_running(monkeypatch):
    async def scenario():
        detector, _, channel = build_detector("<html><body></body></html>", url="https://a.b/")
        detector.initialize()

        def explode(_element):
            raise RuntimeError("scan exploded")

        monkeypatch.setattr(detector.scanner, "scan_media_element", explode)
        (video,) = detector.document.append_html(None, "<video></video>")
        await settle()
        record = detector.context.errors.last(ErrorKind.OBSERVER)

        detector.document.set_attribute(video, "src", "/after/failure.m3u8")
        await settle()
        detector.dispose()
        return channel, record

    channel, record = run(scenario)

    assert record is not None and record.context == "observer:batch"
    assert channel.errors == []
    assert channel.urls == ["https://a.b/after/failure.m3u8"]
