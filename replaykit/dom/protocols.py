# replaykit/dom/protocols.py
from __future__ import annotations

"""Host capabilities
--------------------
The capture/resolve/act engine never touches a browser directly. A hosting
environment hands it objects satisfying these protocols; node handles and scope
handles are opaque to the engine. A scope is the document, an iframe's content
document, or a shadow root, and is itself a valid argument wherever a node is
expected for children/query purposes.
"""

import threading
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Sequence, Tuple, runtime_checkable

from replaykit.core.models import Rect

Node = Any
Scope = Any

# (added nodes, removed nodes) under the observed scope
MutationCallback = Callable[[Sequence[Node], Sequence[Node]], None]


@runtime_checkable
class TimerHandle(Protocol):
    cancelled: bool

    def cancel(self) -> None: ...


@runtime_checkable
class Clock(Protocol):
    def now_ms(self) -> float: ...

    def sleep_ms(self, ms: float, cancel: Optional[threading.Event] = None) -> bool:
        """Sleep; return False if `cancel` was set before or during the wait."""
        ...

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TimerHandle: ...


@runtime_checkable
class DocumentAccessor(Protocol):
    def root(self) -> Scope: ...

    def page_url(self) -> str: ...

    def query(self, selector: str, scope: Optional[Scope] = None, *, xpath: bool = False) -> List[Node]:
        """CSS (or XPath when `xpath=True`) query inside one scope, in document order.
        Does not pierce nested iframes or shadow roots."""
        ...

    def scope_of(self, node: Node) -> Scope: ...

    def boundary_hosts(self, node: Node) -> List[Tuple[str, Node]]:
        """Outermost-first ("iframe" | "shadow", host node) hops enclosing `node`."""
        ...

    def enter(self, host: Node) -> Optional[Scope]:
        """Content document of an iframe host or shadow root of a shadow host."""
        ...

    def observe(self, scope: Scope, callback: MutationCallback) -> Callable[[], None]:
        """Subscribe to structural mutations under `scope`; returns an unsubscribe function."""
        ...


@runtime_checkable
class NodeInspector(Protocol):
    def tag_name(self, node: Node) -> str: ...

    def attributes(self, node: Node) -> Dict[str, str]: ...

    def class_list(self, node: Node) -> List[str]: ...

    def parent(self, node: Node) -> Optional[Node]:
        """Parent element, or None when the parent is the scope root."""
        ...

    def children(self, node: Node) -> List[Node]:
        """Element children of a node or scope, in document order."""
        ...

    def computed_style(self, node: Node) -> Mapping[str, str]:
        """At least `display`, `visibility` and `opacity`."""
        ...

    def bounding_rect(self, node: Node) -> Rect: ...

    def text_content(self, node: Node, exclude: Optional[Node] = None) -> str:
        """Text with hidden descendant subtrees (and `exclude`'s subtree) left out."""
        ...

    def property(self, node: Node, name: str) -> Any:
        """Live DOM property such as `value`, `checked` or `disabled`."""
        ...

    def resolve_idrefs(self, node: Node, ids: Sequence[str]) -> List[Node]:
        """Nodes referenced by an id list (aria-labelledby style), in list order."""
        ...

    def same_node(self, a: Node, b: Node) -> bool: ...


@runtime_checkable
class EventDispatcher(Protocol):
    def dispatch(
        self,
        node: Node,
        event_type: str,
        *,
        x: Optional[float] = None,
        y: Optional[float] = None,
        key: Optional[str] = None,
        modifiers: Sequence[str] = (),
    ) -> bool:
        """Dispatch a synthetic event; return False if a handler prevented its default.
        Raises ActionRejected if the host refuses the interaction."""
        ...

    def set_controlled_value(self, node: Node, value: Any, *, prop: str = "value") -> None:
        """Write value/checked/selected through a channel framework observers still see."""
        ...

    def navigate(self, url: str) -> None: ...


__all__ = [
    "Node",
    "Scope",
    "MutationCallback",
    "TimerHandle",
    "Clock",
    "DocumentAccessor",
    "NodeInspector",
    "EventDispatcher",
]
