from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Dict, List, Optional


class ScanPhase(enum.Enum):
    IDLE = "idle"
    SELECTING = "selecting"
    FILTERING = "filtering"
    INSPECTING = "inspecting"


@dataclass(slots=True)
class ScanState:
    """Mutable bookkeeping for the DOM scanner.

    Elements are referenced by document handles. The membership set is
    dropped at the start of every full scan and every handle-keyed entry is
    dropped once the document tree is rebuilt.
    """

    inspected: set[int] = field(default_factory=set)
    attribute_scans: Dict[int, float] = field(default_factory=dict)
    src_hooked: set[int] = field(default_factory=set)
    generation: Optional[int] = None
    last_full_scan: Optional[float] = None
    full_scans: int = 0
    partial_scans: int = 0
    phase: ScanPhase = ScanPhase.IDLE
    cached_selection: List[int] = field(default_factory=list)
    cached_at: Optional[float] = None

    def invalidate_selection(self) -> None:
        self.cached_selection = []
        self.cached_at = None

    def forget_elements(self) -> None:
        self.inspected.clear()
        self.attribute_scans.clear()
        self.src_hooked.clear()
        self.invalidate_selection()

    def reset(self) -> None:
        self.forget_elements()
        self.generation = None
        self.last_full_scan = None
        self.full_scans = 0
        self.partial_scans = 0
        self.phase = ScanPhase.IDLE
