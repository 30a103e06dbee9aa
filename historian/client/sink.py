"""
Update sink
Forwards progress and metrics to the display layer.

The display is any object with ``update_progress(percent)`` and
``update_metrics(json_document)``. It is held weakly: once the host tears it
down (garbage-collected, detached, or ``is_disposed()`` returning True) the
sink silently drops updates. Marshaling onto the UI thread is the display's
job.
"""

import json
import logging
import math
import weakref
from typing import Any, Mapping, Optional

logger = logging.getLogger(__name__)


def clamp_percent(percent: Any) -> Optional[float]:
    """Clamp to [0, 100]; None for values that are not real numbers"""
    if isinstance(percent, bool):
        return None
    try:
        value = float(percent)
    except (TypeError, ValueError):
        return None
    if math.isnan(value):
        return None
    return max(0.0, min(100.0, value))


class UpdateSink:
    """Receives channel events and pushes them to a display"""

    def __init__(self, display: Any = None):
        self._display_ref = None
        if display is not None:
            self.attach(display)

    def attach(self, display: Any) -> None:
        try:
            self._display_ref = weakref.ref(display)
        except TypeError:
            # Objects without __weakref__ slots are held strongly
            self._display_ref = lambda: display

    def detach(self) -> None:
        self._display_ref = None

    @property
    def display(self) -> Any:
        """The live display, or None when it has been torn down"""
        if self._display_ref is None:
            return None
        display = self._display_ref()
        if display is None:
            return None
        is_disposed = getattr(display, "is_disposed", None)
        if callable(is_disposed) and is_disposed():
            return None
        return display

    def on_progress(self, percent: float) -> None:
        value = clamp_percent(percent)
        if value is None:
            logger.warning(f"Dropping invalid progress value {percent!r}")
            return
        if value != percent:
            logger.warning(f"Progress {percent!r} outside [0, 100], clamped to {value}")

        display = self.display
        if display is None:
            return
        self._forward(display, "update_progress", value)

    def on_metrics(self, document: Mapping[str, Any]) -> None:
        display = self.display
        if display is None:
            return
        try:
            json_document = json.dumps(document, allow_nan=False)
        except ValueError as e:
            logger.warning(f"Dropping metrics that cannot be sent as JSON: {e}")
            return
        self._forward(display, "update_metrics", json_document)

    def _forward(self, display: Any, method: str, value: Any) -> None:
        """Hosts may signal teardown by raising; treat that as a detached display"""
        try:
            getattr(display, method)(value)
        except Exception as e:
            logger.warning(f"Display failed in {method} ({e}); detaching it")
            self.detach()


class ConsoleDisplay:
    """Minimal display for terminals; prints each update on its own line"""

    def __init__(self, stream=None):
        self.stream = stream
        self.last_progress: Optional[float] = None

    def update_progress(self, percent: float) -> None:
        self.last_progress = percent
        print(f"Analysis progress: {percent:.0f}%", file=self.stream, flush=True)

    def update_metrics(self, json_document: str) -> None:
        print(f"Metrics: {json_document}", file=self.stream, flush=True)
