from tests.helpers.builders import build_detector, run, settle
from tests.helpers.detector_imports import DetectorState, Document, MediaDetector


def test_initialize_reports_matching_page_location_once():
    async def scenario():
        detector, _, channel = build_detector(url="https://cdn.example/live/master.m3u8")
        first = detector.initialize()
        second = detector.initialize()
        state = detector.state
        detector.dispose()
        return channel, first, second, state

    channel, first, second, state = run(scenario)

    assert (first, second) == (True, False)
    assert state is DetectorState.ACTIVE
    assert channel.urls == ["https://cdn.example/live/master.m3u8"]
    assert channel.messages[0]["details"]["source"] == "page-location"


def test_dispose_is_idempotent_and_releases_everything():
    async def scenario():
        detector, runtime, _ = build_detector('<html><body><a href="/a.m3u8">a</a></body></html>')
        detector.initialize()
        detector.dispose()
        detector.dispose()
        return detector, runtime

    detector, runtime = run(scenario)

    assert detector.state is DetectorState.DISPOSED
    assert not detector.is_active
    assert detector.seen.size == 0
    assert detector.context.registry.cache_size == 0
    assert not detector.scanner.state.inspected
    assert runtime.request_surface.hooks is None
    assert runtime.fetch_surface.hooks is None
    assert runtime.media_source_surface.hooks is None
    assert detector.manual_scan(full=True) == 0


def test_reinitialize_after_dispose_reports_again():
    async def scenario():
        detector, _, channel = build_detector('<html><body><a href="/a.m3u8">a</a></body></html>')
        detector.initialize()
        detector.dispose()
        detector.initialize()
        detector.dispose()
        return channel

    channel = run(scenario)

    assert channel.urls == ["https://site.example/a.m3u8", "https://site.example/a.m3u8"]


def test_independent_instances_do_not_share_state():
    async def scenario():
        left, _, left_channel = build_detector('<html><body><a href="/shared.m3u8">x</a></body></html>')
        right, _, right_channel = build_detector('<html><body><a href="/shared.m3u8">x</a></body></html>')
        left.initialize()
        right.initialize()
        left.dispose()
        right.dispose()
        return left_channel, right_channel

    left_channel, right_channel = run(scenario)

    assert left_channel.urls == ["https://site.example/shared.m3u8"]
    assert right_channel.urls == ["https://site.example/shared.m3u8"]


def test_pattern_change_switches_what_is_reported():
    async def scenario():
        detector, _, channel = build_detector('<html><body><a href="/movie.mpd">dash</a></body></html>')
        detector.initialize()
        before = list(channel.urls)
        changed = detector.set_pattern("mpd")
        detector.manual_scan(full=True)
        detector.extractor.submit("https://cdn.example/old.m3u8", "script-text")
        detector.dispose()
        return channel, before, changed, detector.pattern

    channel, before, changed, pattern = run(scenario)

    assert before == []
    assert changed is True
    assert pattern == "mpd"
    assert channel.urls == ["https://site.example/movie.mpd"]


def test_navigation_tests_new_location_and_rescans():
    async def scenario():
        detector, _, channel = build_detector("<html><body></body></html>")
        detector.initialize()
        full_scans = detector.scanner.state.full_scans
        detector.document.navigate("https://site.example/live/channel.m3u8")
        rescanned = detector.scanner.state.full_scans - full_scans
        detector.dispose()
        return channel, rescanned

    channel, rescanned = run(scenario)

    assert channel.urls == ["https://site.example/live/channel.m3u8"]
    assert channel.messages[0]["details"]["source"] == "page-location"
    assert rescanned == 1


def test_scan_media_elements_checks_only_media():
    async def scenario():
        detector, _, channel = build_detector("<html><body><div id='box'></div></body></html>")
        detector.initialize()
        box = detector.document.soup.find(id="box")
        box.append(detector.document.soup.new_tag("video", src="https://cdn.example/late.m3u8"))
        box.append(detector.document.soup.new_tag("a", href="https://cdn.example/ignored.m3u8"))
        count = detector.scan_media_elements(box)
        detector.dispose()
        return channel, count

    channel, count = run(scenario)

    assert count == 1
    assert channel.urls == ["https://cdn.example/late.m3u8"]
    assert channel.messages[0]["details"]["source"] == "media-element"


def test_plain_callable_is_accepted_as_channel():
    messages = []

    async def scenario():
        detector = MediaDetector(
            Document('<video src="https://cdn.example/cb.m3u8"></video>', url="https://site.example/"),
            messages.append,
        )
        detector.initialize()
        await settle(0)
        detector.dispose()

    run(scenario)

    assert [message["details"]["url"] for message in messages] == ["https://cdn.example/cb.m3u8"]


def test_manual_scan_requires_active_detector():
    detector, _, channel = build_detector('<body><a href="/a.m3u8">a</a></body>')

    assert detector.manual_scan(full=True) == 0
    assert channel.messages == []
