"""Shared data structures passed between detector components."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Literal, Optional, TypedDict

# Discovery source tags
NETWORK_REQUEST = "network-request"
NETWORK_RESPONSE = "network-response"
NETWORK_BODY = "network-body"
MEDIA_SOURCE = "media-source"
MEDIA_SOURCE_ELEMENT = "media-source:element"
DOM_ATTRIBUTE = "dom-attribute"
DATA_ATTRIBUTE = "data-attribute"
MEDIA_ELEMENT = "media-element"
MEDIA_SRC_SETTER = "media-element:src-setter"
ANCHOR = "anchor"
SCRIPT_TEXT = "script-text"
JSON_PATH = "json-path"
MUTATION_STRING = "mutation"
ATTRIBUTE_CHANGE = "attribute-change"
PAGE_LOCATION = "page-location"
PAGE_SOURCE = "page-source"


class ErrorKind(str, Enum):
    PARSE = "parse"
    INTERCEPTION = "interception"
    OBSERVER = "observer"
    SCHEDULER = "scheduler"


@dataclass(frozen=True, slots=True)
class Candidate:
    """An unverified string suspected of being a target resource URL."""

    value: str
    source: str
    base_url: Optional[str] = None


@dataclass(frozen=True, slots=True)
class ErrorRecord:
    kind: ErrorKind
    context: str
    error: str
    critical: bool = False


class UrlDetails(TypedDict):
    url: str
    source: str


class ErrorDetails(TypedDict):
    context: str
    error: str


class ReportMessage(TypedDict):
    """Structured payload posted to the report channel."""

    type: Literal["url", "error"]
    message: str
    details: UrlDetails | ErrorDetails
