import base64
import json

from tests.helpers.builders import PAGE_URL, build_extractor
from tests.helpers.detector_imports import Candidate, ErrorKind


def test_equivalent_candidates_are_reported_once():
    extractor, channel, _ = build_extractor()

    for raw in [
        "https://cdn.example/a.m3u8",
        "HTTPS://CDN.EXAMPLE/a.m3u8#t=10",
        "//cdn.example/a.m3u8",
        "https://cdn.example:443//a.m3u8",
    ]:
        extractor.submit(raw, "dom-attribute:src")

    assert channel.urls == ["https://cdn.example/a.m3u8"]
    assert channel.messages[0]["details"]["source"] == "dom-attribute:src"
    assert channel.messages[0]["message"] == "Media resource detected"


def test_relative_candidate_uses_document_location():
    extractor, channel, _ = build_extractor()

    assert extractor.submit("/live/a.m3u8", "anchor") is True

    assert channel.urls == ["https://site.example/live/a.m3u8"]
    assert PAGE_URL.startswith("https://site.example/")


def test_non_matching_and_empty_candidates_are_ignored():
    extractor, channel, _ = build_extractor()

    assert extractor.submit("https://cdn.example/a.mp4", "anchor") is False
    assert extractor.submit("", "anchor") is False
    assert extractor.submit(None, "anchor") is False
    assert channel.messages == []


def test_script_text_extraction_handles_escaped_slashes():
    extractor, channel, _ = build_extractor()
    script = 'var cfg = {"file":"https:\\/\\/cdn.example\\/v\\/index.m3u8?t=1", "poster": "p.jpg"};'

    assert extractor.extract_text(script, "script-text") == 1

    assert channel.urls == ["https://cdn.example/v/index.m3u8?t=1"]


def test_embedded_candidate_goes_through_text_extraction():
    extractor, channel, _ = build_extractor()

    extractor.submit('{"src": "https://cdn.example/e.m3u8", "autoplay": true}', "dom-attribute:data-config")

    assert channel.urls == ["https://cdn.example/e.m3u8"]


def test_base64_payload_is_decoded_and_scanned():
    extractor, channel, _ = build_extractor()
    playlist = "#EXTM3U\n#EXT-X-STREAM-INF:BANDWIDTH=800000\nhttps://cdn.example/b64/low.m3u8\n"
    value = "data:application/x-mpegurl;base64," + base64.b64encode(playlist.encode()).decode().rstrip("=")

    assert extractor.submit(value, "dom-attribute:data-src") is True

    assert channel.urls == ["https://cdn.example/b64/low.m3u8"]
    assert channel.messages[0]["details"]["source"] == "dom-attribute:data-src:base64"


def test_deeply_nested_json_is_bounded_and_shallow_match_found():
    extractor, channel, _ = build_extractor()
    deep = "https://cdn.example/too-deep.m3u8"
    for _ in range(50):
        deep = {"next": deep}
    payload = {"a": {"b": {"c": {"d": {"stream": "https://cdn.example/depth5.m3u8"}}}}, "deep": deep}

    assert extractor.extract_json(json.dumps(payload), "network-body") == 1

    assert channel.urls == ["https://cdn.example/depth5.m3u8"]
    assert channel.messages[0]["details"]["source"] == "json-path:a.b.c.d.stream"


def test_json_relative_entries_resolve_against_response_url():
    extractor, channel, _ = build_extractor()
    payload = json.dumps({"items": [{"title": "x"}, {"hls": "x.m3u8"}]})

    extractor.extract_json(payload, "network-body", "https://api.example/v1/list")

    assert channel.urls == ["https://api.example/v1/x.m3u8"]
    assert channel.messages[0]["details"]["source"] == "json-path:items[1].hls"


def test_json_queue_bound_stops_expansion():
    extractor, channel, _ = build_extractor(json_max_queue=5)
    payload = json.dumps({"list": [f"https://cdn.example/{index}.m3u8" for index in range(10)]})

    assert extractor.extract_json(payload, "network-body") == 3

    assert channel.urls == [f"https://cdn.example/{index}.m3u8" for index in range(3)]


def test_json_key_bound_limits_members_per_container():
    extractor, channel, _ = build_extractor(json_max_keys=2)
    payload = json.dumps([f"https://cdn.example/{index}.m3u8" for index in range(5)])

    extractor.extract_json(payload, "network-body")

    assert len(channel.urls) == 2


def test_malformed_json_is_a_non_critical_parse_failure():
    extractor, channel, errors = build_extractor()

    assert extractor.extract_json("{not json", "network-body") == 0

    record = errors.last(ErrorKind.PARSE)
    assert record is not None
    assert record.context == "json:network-body"
    assert record.critical is False
    assert channel.errors == []


def test_candidate_base_url_overrides_document_location():
    extractor, channel, _ = build_extractor()

    extractor.submit_candidate(Candidate("chunks/720p.m3u8", "network-body", "https://cdn.example/hls/master.m3u8"))

    assert channel.urls == ["https://cdn.example/hls/chunks/720p.m3u8"]


def test_text_extraction_reports_full_url_when_pattern_repeats_inside_it():
    extractor, channel, _ = build_extractor()

    assert extractor.extract_text('see "https://cdn.example/live.m3u8-proxy/index.m3u8" now', "script-text") == 1

    assert channel.urls == ["https://cdn.example/live.m3u8-proxy/index.m3u8"]


def test_plain_candidate_with_comma_in_query_is_kept_whole():
    extractor, channel, _ = build_extractor()

    assert extractor.submit("https://cdn.example/a.m3u8?codecs=avc1,mp4a", "dom-attribute:src") is True

    assert channel.urls == ["https://cdn.example/a.m3u8?codecs=avc1,mp4a"]
