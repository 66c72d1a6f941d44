# replaykit/dom/snapshot.py
from __future__ import annotations

"""Snapshot host
----------------
An in-memory document built from static HTML with BeautifulSoup. It implements
DocumentAccessor, NodeInspector and EventDispatcher so capture and replay can
run offline (tests, the CLI) without a browser.

Boundaries:
- `<iframe srcdoc="...">` content is parsed as a separate nested document.
- `<template shadowrootmode="open">` is detached and becomes its host's shadow root.

Layout is not computed. Each element gets a synthetic rect derived from its
document position unless an explicit rect was supplied through `layout`
(css selector -> Rect) or `set_rect()`. Hidden elements get a zero rect.
"""

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from bs4 import BeautifulSoup, NavigableString, Tag
from bs4.element import PreformattedString

from replaykit.core.errors import ActionRejected
from replaykit.core.models import Rect
from replaykit.detection.visibility import NON_TEXT_TAGS, is_hidden_style
from replaykit.dom.protocols import MutationCallback
from replaykit.selectors.paths import evaluate_xpath
from replaykit.utils.logger import get_logger

log = get_logger(__name__)

RectLike = Union[Rect, Tuple[float, float, float, float]]

_ROW_HEIGHT = 20.0
_ROW_WIDTH = 100.0
_FORM_CONTROLS = frozenset({"input", "select", "textarea", "button", "option", "fieldset"})


# ---------- Handles ----------


class SnapshotNode:
    """Stable handle around one bs4 Tag. One handle per tag per document."""
    __slots__ = ("tag",)

    def __init__(self, tag: Tag) -> None:
        self.tag = tag

    def __repr__(self) -> str:
        ident = self.tag.get("id")
        return f"<SnapshotNode {self.tag.name}{'#' + ident if ident else ''}>"


@dataclass(eq=False)
class SnapshotScope:
    """A document, iframe content document or shadow root."""
    tag: Tag
    kind: str = "document"
    host: Optional[SnapshotNode] = None
    url: str = "about:blank"

    def __repr__(self) -> str:
        return f"<SnapshotScope {self.kind} host={self.host!r}>"


@dataclass
class DomEvent:
    type: str
    target: SnapshotNode
    x: Optional[float] = None
    y: Optional[float] = None
    key: Optional[str] = None
    modifiers: Tuple[str, ...] = ()
    default_prevented: bool = False

    def prevent_default(self) -> None:
        self.default_prevented = True


Listener = Callable[[DomEvent], None]


# ---------- Helpers ----------


def parse_inline_style(raw: Optional[str]) -> Dict[str, str]:
    out: Dict[str, str] = {}
    for part in (raw or "").split(";"):
        if ":" not in part:
            continue
        k, v = part.split(":", 1)
        out[k.strip().lower()] = v.strip().lower()
    return out


def _attr_str(value: Any) -> str:
    # bs4 keeps multi-valued attributes (class, rel...) as lists
    if isinstance(value, (list, tuple)):
        return " ".join(value)
    return "" if value is None else str(value)


def _as_rect(value: RectLike) -> Rect:
    if isinstance(value, Rect):
        return value
    x, y, w, h = value
    return Rect(x=x, y=y, width=w, height=h)


def _is_shadow_template(tag: Tag) -> bool:
    return tag.name == "template" and (tag.has_attr("shadowrootmode") or tag.has_attr("shadowroot"))


# ---------- Document ----------


class SnapshotDocument:
    def __init__(
        self,
        html: str,
        *,
        url: str = "about:blank",
        layout: Optional[Mapping[str, RectLike]] = None,
    ) -> None:
        self._url = url
        self._nodes: Dict[int, SnapshotNode] = {}
        self._scopes: Dict[int, SnapshotScope] = {}
        self._hosted: Dict[int, SnapshotScope] = {}
        self._props: Dict[int, Dict[str, Any]] = {}
        self._rects: Dict[int, Rect] = {}
        self._listeners: Dict[Tuple[int, str], List[Listener]] = {}
        self._observers: List[Tuple[SnapshotScope, MutationCallback]] = []

        self.events: List[DomEvent] = []
        self.navigations: List[str] = []
        self.active_element: Optional[SnapshotNode] = None

        soup = BeautifulSoup(html, "html.parser")
        self._root = SnapshotScope(tag=soup, kind="document", url=url)
        self._scopes[id(soup)] = self._root
        self._mount_boundaries(soup)

        for selector, rect in (layout or {}).items():
            for node in self.query(selector):
                self.set_rect(node, rect)

    @classmethod
    def from_file(cls, path: Union[str, Path], **kwargs) -> "SnapshotDocument":
        p = Path(path)
        kwargs.setdefault("url", p.resolve().as_uri())
        return cls(p.read_text(encoding="utf-8"), **kwargs)

    # ---------- internal ----------

    def _wrap(self, tag: Tag) -> SnapshotNode:
        node = self._nodes.get(id(tag))
        if node is None:
            node = SnapshotNode(tag)
            self._nodes[id(tag)] = node
        return node

    def _register_scope(self, scope: SnapshotScope) -> SnapshotScope:
        self._scopes[id(scope.tag)] = scope
        if scope.host is not None:
            self._hosted[id(scope.host.tag)] = scope
        return scope

    def _mount_boundaries(self, container: Tag) -> List[SnapshotScope]:
        """Detach declarative shadow roots and parse iframe srcdoc content under `container`."""
        mounted: List[SnapshotScope] = []
        while True:
            tpl = container.find(_is_shadow_template)
            if tpl is None:
                break
            host = tpl.parent
            tpl.extract()
            if host is None or not isinstance(host, Tag):
                continue
            scope = self._register_scope(SnapshotScope(tag=tpl, kind="shadow", host=self._wrap(host), url=self._url))
            mounted.append(scope)
            mounted.extend(self._mount_boundaries(tpl))

        for frame in container.find_all("iframe"):
            if id(frame) in self._hosted:
                continue
            inner = BeautifulSoup(_attr_str(frame.get("srcdoc")), "html.parser")
            scope = self._register_scope(
                SnapshotScope(tag=inner, kind="iframe", host=self._wrap(frame), url=_attr_str(frame.get("src")) or "about:srcdoc")
            )
            mounted.append(scope)
            mounted.extend(self._mount_boundaries(inner))
        return mounted

    def _scope_for_tag(self, tag: Tag) -> Optional[SnapshotScope]:
        current: Optional[Tag] = tag
        while current is not None:
            scope = self._scopes.get(id(current))
            if scope is not None and current is not tag:
                return scope
            current = current.parent
        return None

    def _notify(self, scope: SnapshotScope, added: Sequence[SnapshotNode], removed: Sequence[SnapshotNode]) -> None:
        for observed, callback in list(self._observers):
            if observed is scope:
                callback(added, removed)

    def _own_hidden(self, tag: Tag) -> bool:
        if tag.name in NON_TEXT_TAGS or tag.has_attr("hidden"):
            return True
        if tag.name == "input" and _attr_str(tag.get("type")).lower() == "hidden":
            return True
        style = parse_inline_style(_attr_str(tag.get("style")))
        return style.get("display") == "none" or is_hidden_style({"opacity": style.get("opacity", "1")})

    def _hidden_in_tree(self, node: SnapshotNode) -> bool:
        current: Optional[Tag] = node.tag
        while current is not None and id(current) not in self._scopes:
            if self._own_hidden(current):
                return True
            current = current.parent
        if current is None:
            return True  # detached
        scope = self._scopes[id(current)]
        return scope.host is not None and self._hidden_in_tree(scope.host)

    def _is_disabled(self, node: SnapshotNode) -> bool:
        if node.tag.name not in _FORM_CONTROLS:
            return False
        props = self._props.get(id(node.tag), {})
        if "disabled" in props:
            return bool(props["disabled"])
        return node.tag.has_attr("disabled")

    def _is_connected(self, node: SnapshotNode) -> bool:
        return self._scope_for_tag(node.tag) is not None

    # ---------- DocumentAccessor ----------

    def root(self) -> SnapshotScope:
        return self._root

    def page_url(self) -> str:
        return self._url

    def query(self, selector: str, scope: Optional[SnapshotScope] = None, *, xpath: bool = False) -> List[SnapshotNode]:
        scope = scope or self._root
        if xpath:
            return evaluate_xpath(selector, scope, self, self)
        return [self._wrap(t) for t in scope.tag.select(selector)]

    def scope_of(self, node: SnapshotNode) -> SnapshotScope:
        scope = self._scope_for_tag(node.tag)
        return scope if scope is not None else self._root

    def boundary_hosts(self, node: SnapshotNode) -> List[Tuple[str, SnapshotNode]]:
        hops: List[Tuple[str, SnapshotNode]] = []
        scope = self.scope_of(node)
        while scope.host is not None:
            hops.append((scope.kind, scope.host))
            scope = self.scope_of(scope.host)
        hops.reverse()
        return hops

    def enter(self, host: SnapshotNode) -> Optional[SnapshotScope]:
        return self._hosted.get(id(host.tag))

    def observe(self, scope: SnapshotScope, callback: MutationCallback) -> Callable[[], None]:
        entry = (scope, callback)
        self._observers.append(entry)

        def unsubscribe() -> None:
            if entry in self._observers:
                self._observers.remove(entry)

        return unsubscribe

    # ---------- NodeInspector ----------

    def tag_name(self, node: SnapshotNode) -> str:
        return node.tag.name or ""

    def attributes(self, node: SnapshotNode) -> Dict[str, str]:
        return {k: _attr_str(v) for k, v in node.tag.attrs.items()}

    def class_list(self, node: SnapshotNode) -> List[str]:
        value = node.tag.get("class") or []
        return list(value) if isinstance(value, (list, tuple)) else _attr_str(value).split()

    def parent(self, node: SnapshotNode) -> Optional[SnapshotNode]:
        p = node.tag.parent
        if p is None or id(p) in self._scopes:
            return None
        return self._wrap(p)

    def children(self, node: Union[SnapshotNode, SnapshotScope]) -> List[SnapshotNode]:
        return [self._wrap(c) for c in node.tag.children if isinstance(c, Tag)]

    def computed_style(self, node: SnapshotNode) -> Mapping[str, str]:
        own = parse_inline_style(_attr_str(node.tag.get("style")))
        display = "none" if node.tag.has_attr("hidden") else own.get("display", "block")
        visibility = own.get("visibility")
        current = node.tag.parent
        while visibility is None and current is not None and id(current) not in self._scopes:
            visibility = parse_inline_style(_attr_str(current.get("style"))).get("visibility")
            current = current.parent
        return {
            "display": display,
            "visibility": visibility or "visible",
            "opacity": own.get("opacity", "1"),
        }

    def bounding_rect(self, node: SnapshotNode) -> Rect:
        if self._hidden_in_tree(node):
            return Rect()
        explicit = self._rects.get(id(node.tag))
        if explicit is not None:
            return explicit
        scope = self.scope_of(node)
        for i, t in enumerate(scope.tag.find_all(True)):
            if t is node.tag:
                return Rect(x=0.0, y=i * _ROW_HEIGHT, width=_ROW_WIDTH, height=_ROW_HEIGHT)
        return Rect()

    def text_content(self, node: SnapshotNode, exclude: Optional[SnapshotNode] = None) -> str:
        parts: List[str] = []
        skip = exclude.tag if exclude is not None else None

        def walk(tag: Tag) -> None:
            for child in tag.children:
                if isinstance(child, Tag):
                    if child is skip or self._own_hidden(child):
                        continue
                    walk(child)
                elif isinstance(child, NavigableString) and not isinstance(child, PreformattedString):
                    parts.append(str(child))

        walk(node.tag)
        return " ".join(" ".join(parts).split())

    def property(self, node: SnapshotNode, name: str) -> Any:
        tag = node.tag
        props = self._props.get(id(tag), {})
        if name in props:
            return props[name]
        if name == "value":
            if tag.name == "textarea":
                return tag.get_text()
            if tag.name == "select":
                options = tag.find_all("option")
                chosen = next((o for o in options if o.has_attr("selected")), options[0] if options else None)
                if chosen is None:
                    return ""
                return _attr_str(chosen.get("value")) if chosen.has_attr("value") else chosen.get_text(strip=True)
            return _attr_str(tag.get("value"))
        if name in ("checked", "disabled", "readonly", "selected"):
            return tag.has_attr(name)
        if name == "type":
            return _attr_str(tag.get("type")).lower() or ("text" if tag.name == "input" else "")
        if name == "textContent":
            return self.text_content(node)
        return tag.get(name)

    def resolve_idrefs(self, node: SnapshotNode, ids: Sequence[str]) -> List[SnapshotNode]:
        scope = self.scope_of(node)
        out: List[SnapshotNode] = []
        for ident in ids:
            hit = scope.tag.find(attrs={"id": ident})
            if hit is not None:
                out.append(self._wrap(hit))
        return out

    def same_node(self, a: Any, b: Any) -> bool:
        return a is b or (getattr(a, "tag", None) is not None and getattr(a, "tag", None) is getattr(b, "tag", None))

    # ---------- EventDispatcher ----------

    def add_listener(self, node: Union[SnapshotNode, SnapshotScope], event_type: str, listener: Listener) -> None:
        self._listeners.setdefault((id(node.tag), event_type), []).append(listener)

    def dispatch(
        self,
        node: SnapshotNode,
        event_type: str,
        *,
        x: Optional[float] = None,
        y: Optional[float] = None,
        key: Optional[str] = None,
        modifiers: Sequence[str] = (),
    ) -> bool:
        if not self._is_connected(node):
            raise ActionRejected(f"{event_type} on detached <{node.tag.name}>")
        if self._is_disabled(node):
            raise ActionRejected(f"{event_type} on disabled <{node.tag.name}>")

        event = DomEvent(type=event_type, target=node, x=x, y=y, key=key, modifiers=tuple(modifiers))
        self.events.append(event)
        self._propagate(node.tag, event)

        if not event.default_prevented:
            self._default_action(node, event)
        return not event.default_prevented

    def _propagate(self, tag: Tag, event: DomEvent) -> None:
        current: Optional[Tag] = tag
        while current is not None:
            for listener in self._listeners.get((id(current), event.type), []):
                listener(event)
            current = current.parent

    def _default_action(self, node: SnapshotNode, event: DomEvent) -> None:
        tag = node.tag
        if event.type == "focus":
            self.active_element = node
        elif event.type == "blur":
            if self.active_element is node:
                self.active_element = None
        elif event.type == "click" and tag.name == "input":
            kind = self.property(node, "type")
            if kind == "checkbox":
                self._props.setdefault(id(tag), {})["checked"] = not self.property(node, "checked")
            elif kind == "radio":
                self._props.setdefault(id(tag), {})["checked"] = True
        elif event.type == "keydown" and event.key == "Enter" and tag.name != "textarea":
            form = tag.find_parent("form")
            if form is not None:
                submit = DomEvent(type="submit", target=self._wrap(form))
                self.events.append(submit)
                self._propagate(form, submit)

    def set_controlled_value(self, node: SnapshotNode, value: Any, *, prop: str = "value") -> None:
        if not self._is_connected(node):
            raise ActionRejected(f"value write on detached <{node.tag.name}>")
        if self._is_disabled(node):
            raise ActionRejected(f"value write on disabled <{node.tag.name}>")
        props = self._props.setdefault(id(node.tag), {})
        if prop == "value":
            if node.tag.has_attr("readonly"):
                raise ActionRejected(f"value write on read-only <{node.tag.name}>")
            value = "" if value is None else str(value)
            if node.tag.name == "select":
                # like a browser: a value no option carries leaves nothing selected
                values = [
                    _attr_str(o.get("value")) if o.has_attr("value") else o.get_text(strip=True)
                    for o in node.tag.find_all("option")
                ]
                if value not in values:
                    value = ""
        elif prop == "checked":
            value = bool(value)
        props[prop] = value
        log.debug(f"set {prop} on {node!r}")

    def navigate(self, url: str) -> None:
        self.navigations.append(url)
        self._url = url
        self._root.url = url

    # ---------- test/host helpers ----------

    def set_rect(self, node: SnapshotNode, rect: RectLike) -> None:
        self._rects[id(node.tag)] = _as_rect(rect)

    def set_attribute(self, node: SnapshotNode, name: str, value: Optional[str]) -> None:
        if value is None:
            node.tag.attrs.pop(name, None)
        else:
            node.tag[name] = value.split() if name == "class" else value

    def insert_html(self, parent: Union[SnapshotNode, SnapshotScope], html: str) -> List[SnapshotNode]:
        """Append parsed markup under `parent` and notify observers of its scope."""
        fragment = BeautifulSoup(html, "html.parser")
        new_tags = [c for c in list(fragment.contents) if isinstance(c, Tag)]
        for t in list(fragment.contents):
            parent.tag.append(t.extract())
        self._mount_boundaries(parent.tag)

        scope = parent if isinstance(parent, SnapshotScope) else self.scope_of(parent)
        added = [self._wrap(t) for t in new_tags if t.parent is not None]
        self._notify(scope, added, [])
        return added

    def remove(self, node: SnapshotNode) -> None:
        scope = self.scope_of(node)
        node.tag.extract()
        self._notify(scope, [], [node])

    def event_types(self, node: Optional[SnapshotNode] = None) -> List[str]:
        return [e.type for e in self.events if node is None or e.target is node]


__all__ = [
    "SnapshotNode",
    "SnapshotScope",
    "SnapshotDocument",
    "DomEvent",
    "parse_inline_style",
]
