"""Command line interface for the stream detector."""

from __future__ import annotations

import argparse
import asyncio
import logging
from typing import Optional, Sequence

from .core.config import RunConfig, load_configuration
from .core.models import ReportMessage
from .core.report import DetectionReport


def parse_arguments(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Media stream URL detector")
    parser.add_argument("-u", "--url", required=True, help="Page to monitor")
    parser.add_argument("--pattern", help="Target extension without the dot (default: m3u8)")
    parser.add_argument("--duration", type=float, help="Seconds to keep monitoring the page")
    parser.add_argument("--static", action="store_true", help="Fetch the page with requests instead of a browser")
    parser.add_argument("--report", default="stream_report.json", help="Output report file")
    parser.add_argument(
        "--no-short-circuit",
        action="store_true",
        help="Let direct media requests reach the network",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


class ConsoleReportChannel:
    """Prints each message and keeps it for the saved report."""

    def __init__(self, report: DetectionReport) -> None:
        self.report = report

    def post_message(self, payload: ReportMessage) -> None:
        self.report.record(payload)
        details = payload["details"]
        if payload["type"] == "url":
            print(f"[+] {details['url']} ({details['source']})")  # type: ignore[typeddict-item]
        else:
            print(f"[!] {payload['message']} :: {details['context']}: {details['error']}")  # type: ignore[typeddict-item]


async def run_detection(config: RunConfig, channel: ConsoleReportChannel) -> None:
    if config.static:
        from .browser.static_page import run_static_detection

        await run_static_detection(
            config.target_url,
            channel,
            config.detector,
            duration=config.duration,
        )
        return

    from .browser.playwright_bridge import run_browser_detection

    await run_browser_detection(config, channel)


def run_cli(argv: Optional[Sequence[str]] = None) -> DetectionReport:
    args = parse_arguments(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    config = load_configuration(
        args.url,
        args.report,
        pattern=args.pattern,
        duration=args.duration,
        static=args.static,
        short_circuit=False if args.no_short_circuit else None,
    )

    report = DetectionReport(page_url=config.target_url, pattern=config.detector.pattern)
    channel = ConsoleReportChannel(report)

    mode = "static fetch" if config.static else "browser"
    print(f"[*] Monitoring {config.target_url} for .{config.detector.pattern} ({mode}, {config.duration:g}s)")
    asyncio.run(run_detection(config, channel))

    if report.detections:
        print(f"[+] {len(report.detections)} media URL(s) detected.")
    else:
        print("[-] No media URLs detected.")
    report.save(config.report_path)
    print(f"[+] Report saved to {config.report_path}")
    return report


def main() -> None:
    run_cli()


if __name__ == "__main__":
    main()
