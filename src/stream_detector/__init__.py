"""Streaming media URL detection for monitored web pages."""

from .core.config import DEFAULT_PATTERN, DetectorConfig
from .detector import DetectorState, MediaDetector

__all__ = ["DEFAULT_PATTERN", "DetectorConfig", "DetectorState", "MediaDetector"]
