"""Configuration loading for the detector and the command line runner."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

DEFAULT_PATTERN = "m3u8"
TRUTHY_VALUES = {"1", "true", "yes", "on"}
DEFAULT_DURATION = 15.0

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class DetectorConfig:
    """Tunable bounds and intervals used by every detector component."""

    pattern: str = DEFAULT_PATTERN
    dedup_capacity: int = 1000
    json_max_depth: int = 10
    json_max_queue: int = 1000
    json_max_keys: int = 100
    base64_max_depth: int = 3
    selector_cache_ttl: float = 2.0
    attribute_throttle: float = 1.0
    full_scan_interval: float = 5.0
    debounce_delay: float = 0.1
    scan_interval: float = 1.0
    max_hidden_interval: float = 16.0
    media_source_probe_delay: float = 0.1
    short_circuit_direct_media: bool = True


@dataclass(slots=True)
class RunConfig:
    """Holds runtime options for a single detection run."""

    target_url: str
    report_path: Path
    headless: bool = True
    duration: float = DEFAULT_DURATION
    static: bool = False
    detector: DetectorConfig = field(default_factory=DetectorConfig)


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in TRUTHY_VALUES


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r; using %s", name, raw, default)
        return default


def load_configuration(
    target_url: str,
    report_name: str = "stream_report.json",
    *,
    pattern: Optional[str] = None,
    duration: Optional[float] = None,
    static: bool = False,
    short_circuit: Optional[bool] = None,
) -> RunConfig:
    """Builds a ``RunConfig`` from CLI input and environment variables."""

    load_dotenv()  # Loads .env values if present

    detector = DetectorConfig(
        pattern=pattern or os.getenv("STREAM_PATTERN") or DEFAULT_PATTERN,
    )
    if short_circuit is not None:
        detector.short_circuit_direct_media = short_circuit
    else:
        detector.short_circuit_direct_media = _env_flag("SHORT_CIRCUIT_MEDIA", True)

    duration_value = duration if duration is not None else _env_float("SCAN_DURATION", DEFAULT_DURATION)

    return RunConfig(
        target_url=target_url.strip(),
        report_path=Path(report_name).resolve(),
        headless=_env_flag("HEADLESS", True),
        duration=duration_value,
        static=static,
        detector=detector,
    )
