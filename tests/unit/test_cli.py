import json

import stream_detector.cli as cli  # type: ignore[import]
import stream_detector.core.config as config_module  # type: ignore[import]


def test_cli_prints_detections_and_saves_report(monkeypatch, tmp_path, capsys):
    monkeypatch.setattr(config_module, "load_dotenv", lambda *_args, **_kwargs: False)
    seen_configs = []

    async def fake_detection(config, channel):
        seen_configs.append(config)
        channel.post_message(
            {
                "type": "url",
                "message": "Media resource detected",
                "details": {"url": "https://cdn.example/a.mpd", "source": "network-request"},
            }
        )

    monkeypatch.setattr(cli, "run_detection", fake_detection)
    report_path = tmp_path / "out.json"

    report = cli.run_cli(
        ["-u", "https://site.example/", "--pattern", "mpd", "--static", "--duration", "2", "--report", str(report_path), "--no-short-circuit"]
    )

    (config,) = seen_configs
    assert config.static is True
    assert config.duration == 2.0
    assert config.detector.pattern == "mpd"
    assert config.detector.short_circuit_direct_media is False

    output = capsys.readouterr().out
    assert "[+] https://cdn.example/a.mpd (network-request)" in output
    assert report.urls == ["https://cdn.example/a.mpd"]
    saved = json.loads(report_path.read_text(encoding="utf-8"))
    assert saved["pattern"] == "mpd"
    assert saved["detections"] == [{"url": "https://cdn.example/a.mpd", "source": "network-request"}]


def test_cli_reports_when_nothing_found(monkeypatch, tmp_path, capsys):
    monkeypatch.setattr(config_module, "load_dotenv", lambda *_args, **_kwargs: False)

    async def fake_detection(config, channel):
        channel.post_message(
            {
                "type": "error",
                "message": "interception failure",
                "details": {"context": "install:fetch", "error": "denied"},
            }
        )

    monkeypatch.setattr(cli, "run_detection", fake_detection)

    report = cli.run_cli(["-u", "https://site.example/", "--report", str(tmp_path / "empty.json")])

    output = capsys.readouterr().out
    assert "[!] interception failure :: install:fetch: denied" in output
    assert "[-] No media URLs detected." in output
    assert report.errors == [{"context": "install:fetch", "error": "denied"}]
