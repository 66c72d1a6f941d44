# replaykit/detection/boundaries.py
from __future__ import annotations

"""Boundary index
-----------------
Tracks every iframe content document and shadow root reachable from the page
root. The initial scan is bounded by depth; afterwards the index only grows
from the host's mutation notifications (no periodic tree walks).
"""

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from replaykit.dom.protocols import DocumentAccessor, Node, NodeInspector, Scope
from replaykit.utils.config import get_settings
from replaykit.utils.logger import get_logger

_FRAME_TAGS = ("iframe", "frame")


def hosts_in_scope(accessor: DocumentAccessor, inspector: NodeInspector, scope: Scope, kind: str) -> List[Node]:
    """Iframe hosts (kind="iframe") or shadow hosts directly inside `scope`, in document order."""
    if kind == "iframe":
        nodes = accessor.query("iframe", scope)
    else:
        nodes = [n for n in accessor.query("*", scope) if inspector.tag_name(n).lower() not in _FRAME_TAGS]
    return [n for n in nodes if accessor.enter(n) is not None]


@dataclass
class KnownScope:
    scope: Scope
    kind: str  # "document" | "iframe" | "shadow"
    depth: int
    host: Optional[Node] = None


class BoundaryIndex:
    def __init__(
        self,
        accessor: DocumentAccessor,
        inspector: NodeInspector,
        *,
        max_depth: Optional[int] = None,
        on_scope: Optional[Callable[[KnownScope], None]] = None,
    ) -> None:
        self.accessor = accessor
        self.inspector = inspector
        self.max_depth = get_settings().BOUNDARY_MAX_DEPTH if max_depth is None else max_depth
        self.on_scope = on_scope
        self.log = get_logger(__name__)
        self._known: List[KnownScope] = []
        self._by_id: Dict[int, KnownScope] = {}
        self._unsubscribe: List[Callable[[], None]] = []

    # -------------- Public API --------------

    def start(self) -> "BoundaryIndex":
        if not self._known:
            self._track(KnownScope(scope=self.accessor.root(), kind="document", depth=0))
        return self

    def stop(self) -> None:
        for unsubscribe in self._unsubscribe:
            unsubscribe()
        self._unsubscribe.clear()

    def __enter__(self) -> "BoundaryIndex":
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    @property
    def scopes(self) -> List[KnownScope]:
        return list(self._known)

    def __len__(self) -> int:
        return len(self._known)

    # -------------- Internals --------------

    def _track(self, known: KnownScope) -> None:
        if id(known.scope) in self._by_id:
            return
        self._known.append(known)
        self._by_id[id(known.scope)] = known
        self.log.debug(f"tracking {known.kind} scope at depth {known.depth}")
        if self.on_scope is not None:
            self.on_scope(known)

        self._unsubscribe.append(self.accessor.observe(known.scope, self._on_mutation(known)))
        self._scan(self.inspector.children(known.scope), known.depth)

    def _on_mutation(self, known: KnownScope):
        def handle(added, removed) -> None:
            if added:
                self._scan(list(added), known.depth)
        return handle

    def _scan(self, roots: List[Node], depth: int) -> None:
        stack = list(reversed(roots))
        while stack:
            node = stack.pop()
            inner = self.accessor.enter(node)
            if inner is not None:
                if depth + 1 > self.max_depth:
                    self.log.debug(f"boundary below depth {self.max_depth} ignored")
                else:
                    kind = "iframe" if self.inspector.tag_name(node).lower() in _FRAME_TAGS else "shadow"
                    self._track(KnownScope(scope=inner, kind=kind, depth=depth + 1, host=node))
            stack.extend(reversed(self.inspector.children(node)))


__all__ = ["BoundaryIndex", "KnownScope", "hosts_in_scope"]
