"""Report channel adapters and the persisted detection report."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Protocol

from .models import ErrorRecord, ReportMessage

logger = logging.getLogger(__name__)


class ReportChannel(Protocol):
    """Outbound sink receiving detection and error notifications."""

    def post_message(self, payload: ReportMessage) -> None:
        ...


@dataclass
class CallbackChannel:
    """Adapts any single-argument callable to a ``ReportChannel``."""

    callback: Callable[[ReportMessage], None]

    def post_message(self, payload: ReportMessage) -> None:
        self.callback(payload)


@dataclass
class CollectingChannel:
    """Keeps every posted message in memory."""

    messages: List[ReportMessage] = field(default_factory=list)

    def post_message(self, payload: ReportMessage) -> None:
        self.messages.append(payload)

    @property
    def urls(self) -> List[str]:
        return [m["details"]["url"] for m in self.messages if m["type"] == "url"]  # type: ignore[typeddict-item]

    @property
    def errors(self) -> List[ReportMessage]:
        return [m for m in self.messages if m["type"] == "error"]


class Reporter:
    """Formats payloads and shields the detector from channel failures."""

    def __init__(self, channel: ReportChannel) -> None:
        self._channel = channel

    def report_url(self, url: str, source: str) -> None:
        self._post(
            {
                "type": "url",
                "message": "Media resource detected",
                "details": {"url": url, "source": source},
            }
        )

    def report_error(self, record: ErrorRecord) -> None:
        self._post(
            {
                "type": "error",
                "message": f"{record.kind.value} failure",
                "details": {"context": record.context, "error": record.error},
            }
        )

    def _post(self, payload: ReportMessage) -> None:
        try:
            self._channel.post_message(payload)
        except Exception:
            logger.debug("Report channel rejected %s message", payload["type"], exc_info=True)


@dataclass
class DetectionReport:
    """Structured result of a detection run."""

    page_url: str = ""
    pattern: str = ""
    detections: List[Dict[str, str]] = field(default_factory=list)
    errors: List[Dict[str, str]] = field(default_factory=list)

    def record(self, payload: ReportMessage) -> None:
        details: Dict[str, Any] = dict(payload["details"])
        if payload["type"] == "url":
            self.detections.append({"url": details["url"], "source": details["source"]})
        else:
            self.errors.append({"context": details["context"], "error": details["error"]})

    @property
    def urls(self) -> List[str]:
        return [entry["url"] for entry in self.detections]

    def to_json(self) -> str:
        data = {
            "page_url": self.page_url,
            "pattern": self.pattern,
            "detections": self.detections,
            "errors": self.errors,
        }
        return json.dumps(data, indent=4)

    def save(self, path: Path) -> None:
        path.write_text(self.to_json(), encoding="utf-8")

    @classmethod
    def load(cls, path: Path) -> "DetectionReport":
        raw = json.loads(path.read_text(encoding="utf-8"))
        return cls(
            page_url=raw.get("page_url", ""),
            pattern=raw.get("pattern", ""),
            detections=list(raw.get("detections", [])),
            errors=list(raw.get("errors", [])),
        )
