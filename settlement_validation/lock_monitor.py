"""Observation of the settlement lock through the dashboard activity panel.

The panel is re-rendered from ``/api/settlements/stats`` on every refresh. The
monitor is started for one observation window, fed the panel text on every
poll tick and stopped to produce a summary. Holder detection is a text proxy:
it counts holder markers in the rendered panel, so a change in the panel's
wording has to be mirrored in :class:`LockMarkers`.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LockMarkers:
    active: Tuple[str, ...] = ("Redis Lock Active", "Redis Lock Recently Active")
    released: Tuple[str, ...] = ("No Lock Held",)
    holder: str = "Holder:"


@dataclass(frozen=True)
class LockObservation:
    observations: int
    saw_active: bool
    saw_released: bool
    max_holders: int
    multi_holder_samples: Tuple[str, ...] = ()
    duration: float = 0.0

    @property
    def complete(self) -> bool:
        return self.saw_active and self.saw_released


def count_holders(text: str, marker: str = LockMarkers.holder) -> int:
    return text.count(marker)


@dataclass
class _Window:
    started_at: float
    observations: int = 0
    saw_active: bool = False
    saw_released: bool = False
    max_holders: int = 0
    multi_holder_samples: List[str] = field(default_factory=list)


class LockActivityMonitor:
    """Start/stop lifecycle around one lock observation window."""

    def __init__(self, markers: LockMarkers = LockMarkers(), clock: Callable[[], float] = time.monotonic) -> None:
        self.markers = markers
        self._clock = clock
        self._window: Optional[_Window] = None
        self._last_active_at: Optional[float] = None

    @property
    def running(self) -> bool:
        return self._window is not None

    def start(self) -> None:
        if self._window is not None:
            raise RuntimeError("Lock monitor already started")
        self._window = _Window(started_at=self._clock())
        self._last_active_at = None
        logger.debug("Lock monitor started")

    def _require_window(self) -> _Window:
        if self._window is None:
            raise RuntimeError("Lock monitor is not running; call start() first")
        return self._window

    def observe(self, panel_text: str) -> int:
        """Record one rendering of the activity panel. Returns the holder count."""
        window = self._require_window()
        window.observations += 1
        holders = count_holders(panel_text, self.markers.holder)
        window.max_holders = max(window.max_holders, holders)
        if holders > 1:
            window.multi_holder_samples.append(panel_text)
        if any(marker in panel_text for marker in self.markers.active):
            window.saw_active = True
            self._last_active_at = self._clock()
        if any(marker in panel_text for marker in self.markers.released):
            window.saw_released = True
        return holders

    @property
    def complete(self) -> bool:
        window = self._require_window()
        return window.saw_active and window.saw_released

    def recently_active(self, within: float) -> bool:
        """True when an active lock was observed in the last ``within`` seconds."""
        if self._last_active_at is None:
            return False
        return self._clock() - self._last_active_at <= within

    def stop(self) -> LockObservation:
        window = self._require_window()
        self._window = None
        observation = LockObservation(
            observations=window.observations,
            saw_active=window.saw_active,
            saw_released=window.saw_released,
            max_holders=window.max_holders,
            multi_holder_samples=tuple(window.multi_holder_samples),
            duration=self._clock() - window.started_at,
        )
        logger.debug("Lock monitor stopped: %s", observation)
        return observation
