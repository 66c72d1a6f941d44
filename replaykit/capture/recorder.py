# replaykit/capture/recorder.py
from __future__ import annotations

"""Capture session
------------------
Turns host interaction notifications into Steps.

- Click-class notifications are throttled per event kind: inside the window
  extra events are dropped, never queued.
- Text entry is debounced per node: each keystroke restarts the node's timer and
  only the final value becomes a step once input has been quiet for the window.
- `stop()` flushes every pending debounce synchronously so no trailing edit is lost.

The host serializes notifications. Bundles and labels are always built on the
notifying thread, when the notification arrives; a debounce timer only
publishes a step that is already built. With SystemClock that timer fires on
its own thread, so `on_step` may run there and the step list is guarded by a lock.
"""

import itertools
import threading
from typing import Callable, Dict, Hashable, List, Optional, Tuple

from replaykit.capture.bundle import BundleBuilder
from replaykit.core.models import EventKind, LocatorBundle, Step
from replaykit.detection.boundaries import BoundaryIndex, KnownScope
from replaykit.dom.protocols import Clock, DocumentAccessor, Node, NodeInspector, TimerHandle
from replaykit.selectors.paths import build_xpath
from replaykit.utils.config import get_settings
from replaykit.utils.logger import get_logger
from replaykit.utils.timing import SystemClock

_DISCRETE_INPUT_TYPES = ("checkbox", "radio")


# ---------- Rate limiting ----------


class Throttler:
    """At most one accepted event per key per window."""

    def __init__(self, clock: Clock, window_ms: float) -> None:
        self.clock = clock
        self.window_ms = window_ms
        self._last: Dict[Hashable, float] = {}
        self._lock = threading.Lock()

    def accept(self, key: Hashable) -> bool:
        now = self.clock.now_ms()
        with self._lock:
            last = self._last.get(key)
            if last is not None and now - last < self.window_ms:
                return False
            self._last[key] = now
            return True

    def reset(self) -> None:
        with self._lock:
            self._last.clear()


class Debouncer:
    """Per-key trailing-edge debounce on top of Clock.call_later."""

    def __init__(self, clock: Clock, window_ms: float) -> None:
        self.clock = clock
        self.window_ms = window_ms
        self._pending: Dict[Hashable, Tuple[TimerHandle, Callable[[], None]]] = {}
        self._lock = threading.Lock()

    def submit(self, key: Hashable, callback: Callable[[], None]) -> None:
        with self._lock:
            previous = self._pending.pop(key, None)
            if previous is not None:
                previous[0].cancel()
            handle = self.clock.call_later(self.window_ms, lambda: self._fire(key))
            self._pending[key] = (handle, callback)

    def _fire(self, key: Hashable) -> None:
        with self._lock:
            entry = self._pending.pop(key, None)
        if entry is not None:
            entry[1]()

    def flush(self, key: Optional[Hashable] = None) -> int:
        """Run pending callbacks now (one key or all). Returns how many ran."""
        with self._lock:
            keys = list(self._pending) if key is None else [key]
            entries = [self._pending.pop(k) for k in keys if k in self._pending]
        for handle, callback in entries:
            handle.cancel()
            callback()
        return len(entries)

    def cancel_all(self) -> None:
        with self._lock:
            for handle, _ in self._pending.values():
                handle.cancel()
            self._pending.clear()

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._pending)


# ---------- Session ----------


class CaptureSession:
    def __init__(
        self,
        accessor: DocumentAccessor,
        inspector: NodeInspector,
        *,
        clock: Optional[Clock] = None,
        builder: Optional[BundleBuilder] = None,
        throttle_ms: Optional[float] = None,
        debounce_ms: Optional[float] = None,
        on_step: Optional[Callable[[Step], None]] = None,
        attach: Optional[Callable[[KnownScope], None]] = None,
    ) -> None:
        settings = get_settings()
        self.accessor = accessor
        self.inspector = inspector
        self.clock = clock or SystemClock()
        self.builder = builder or BundleBuilder(accessor, inspector)
        self.throttler = Throttler(self.clock, settings.CAPTURE_THROTTLE_MS if throttle_ms is None else throttle_ms)
        self.debouncer = Debouncer(self.clock, settings.CAPTURE_DEBOUNCE_MS if debounce_ms is None else debounce_ms)
        self.on_step = on_step
        self.attach = attach
        self.log = get_logger(__name__)

        self.steps: List[Step] = []
        self._seq = itertools.count(1)
        self._lock = threading.Lock()
        self._index: Optional[BoundaryIndex] = None
        self.active = False

    # -------------- Lifecycle --------------

    def start(self) -> "CaptureSession":
        self.active = True
        if self.attach is not None:
            self._index = BoundaryIndex(self.accessor, self.inspector, on_scope=self.attach).start()
        self.log.info("capture started")
        return self

    def stop(self) -> List[Step]:
        flushed = self.debouncer.flush()
        if self._index is not None:
            self._index.stop()
            self._index = None
        self.active = False
        self.log.info(f"capture stopped: {len(self.steps)} step(s), {flushed} flushed on stop")
        return list(self.steps)

    def __enter__(self) -> "CaptureSession":
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    # -------------- Notifications --------------

    def record_click(self, node: Node, x: Optional[float] = None, y: Optional[float] = None) -> Optional[Step]:
        if not self.active:
            return None
        if not self.throttler.accept(EventKind.click):
            self.log.debug("click dropped by throttle")
            return None
        return self._emit(EventKind.click, node, x=x, y=y)

    def record_input(self, node: Node, value: Optional[str] = None) -> None:
        """Text entry is debounced; checkbox/radio/select changes are recorded immediately."""
        if not self.active:
            return
        if value is None:
            value = self._current_value(node)
        if self._is_discrete(node):
            self.debouncer.flush(self._node_key(node))
            self._emit(EventKind.input, node, value=value)
            return
        # built now, published when typing goes quiet
        self.debouncer.submit(self._node_key(node), self._prepare(EventKind.input, node, value=value))

    def record_keydown(self, node: Node, key: str) -> Optional[Step]:
        if not self.active or key != "Enter":
            return None
        # the pending text must precede the submit
        self.debouncer.flush(self._node_key(node))
        if not self.throttler.accept(EventKind.enter):
            self.log.debug("enter dropped by throttle")
            return None
        return self._emit(EventKind.enter, node)

    def record_navigation(self, url: str) -> Optional[Step]:
        if not self.active:
            return None
        self.debouncer.flush()
        bundle = LocatorBundle(tag="html", xpath="/html", page_url=url)
        return self._append(
            lambda step_id: Step(id=step_id, label=f"Navigate To {url}", event=EventKind.navigate, bundle=bundle, value=url)
        )

    # -------------- Internals --------------

    def _next_id(self) -> str:
        return f"step-{next(self._seq)}"

    def _prepare(
        self,
        kind: EventKind,
        node: Node,
        *,
        value: Optional[str] = None,
        x: Optional[float] = None,
        y: Optional[float] = None,
    ) -> Callable[[], Step]:
        """Build bundle and label from the live node; the returned callable only records the step."""
        report = self.builder.build_with_report(node)
        for warning in report.warnings:
            self.log.debug(f"{report.label}: {warning}")
        return lambda: self._append(
            lambda step_id: Step(
                id=step_id, label=report.label, event=kind, bundle=report.bundle, value=value, x=x, y=y
            )
        )

    def _emit(
        self,
        kind: EventKind,
        node: Node,
        *,
        value: Optional[str] = None,
        x: Optional[float] = None,
        y: Optional[float] = None,
    ) -> Step:
        return self._prepare(kind, node, value=value, x=x, y=y)()

    def _append(self, make: Callable[[str], Step]) -> Step:
        with self._lock:
            step = make(self._next_id())
            self.steps.append(step)
        self.log.debug(f"captured {step.event.value} '{step.label}' ({step.id})")
        if self.on_step is not None:
            self.on_step(step)
        return step

    def _node_key(self, node: Node) -> Hashable:
        try:
            chain = tuple(
                build_xpath(self.accessor, self.inspector, host) for _, host in self.accessor.boundary_hosts(node)
            )
            return chain, build_xpath(self.accessor, self.inspector, node)
        except Exception as e:
            self.log.debug(f"node key fell back to identity: {e!r}")
            return ("node", id(node))

    def _is_discrete(self, node: Node) -> bool:
        try:
            tag = self.inspector.tag_name(node).lower()
            kind = self.inspector.attributes(node).get("type", "").lower()
        except Exception:
            return False
        return tag == "select" or (tag == "input" and kind in _DISCRETE_INPUT_TYPES)

    def _current_value(self, node: Node) -> str:
        kind = self.inspector.attributes(node).get("type", "").lower()
        if self.inspector.tag_name(node).lower() == "input" and kind in _DISCRETE_INPUT_TYPES:
            return "true" if self.inspector.property(node, "checked") else "false"
        value = self.inspector.property(node, "value")
        return "" if value is None else str(value)


__all__ = ["Throttler", "Debouncer", "CaptureSession"]
