# replaykit/dom/playwright_host.py
from __future__ import annotations

"""Playwright host
------------------
Live-page implementation of DocumentAccessor, NodeInspector and EventDispatcher
over Playwright's sync API. Node handles are ElementHandles; scopes are
`PlaywrightScope` records (a frame, optionally narrowed to a shadow root).

Queries run in page JS against one root so they never pierce nested shadow roots
or iframes (Playwright's own css engine pierces open shadow roots).
"""

import itertools
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from playwright.sync_api import ElementHandle, Frame, JSHandle, Page, sync_playwright

from replaykit.core.errors import ActionRejected
from replaykit.core.models import Rect
from replaykit.dom.protocols import MutationCallback
from replaykit.utils.config import Settings, get_settings
from replaykit.utils.logger import get_logger

log = get_logger(__name__)

BINDING_NAME = "__replaykitMutation"


# ---------- Page scripts ----------

JS_QUERY = """
([root, selector]) => Array.from((root || document).querySelectorAll(selector))
"""

JS_XPATH = """
([root, expr]) => {
  const ctx = root || document;
  const doc = ctx.ownerDocument || ctx;
  const snap = doc.evaluate(expr, ctx, null, XPathResult.ORDERED_NODE_SNAPSHOT_TYPE, null);
  const out = [];
  for (let i = 0; i < snap.snapshotLength; i++) {
    const n = snap.snapshotItem(i);
    if (n && n.nodeType === 1) out.push(n);
  }
  return out;
}
"""

JS_CHILDREN = "(root) => Array.from((root || document).children)"
JS_TAG = "(el) => el.tagName.toLowerCase()"
JS_ATTRIBUTES = "(el) => Object.fromEntries(Array.from(el.attributes).map(a => [a.name, a.value]))"
JS_CLASSES = "(el) => Array.from(el.classList)"
JS_PARENT = "(el) => el.parentElement"
JS_ROOT_NODE = "(el) => el.getRootNode()"
JS_IS_DOCUMENT = "(r) => r.nodeType === 9"
JS_SHADOW_HOST = "(r) => r.host"
JS_SHADOW_ROOT = "(el) => el.shadowRoot"
JS_SAME = "(a, b) => a === b"
JS_PROPERTY = "(el, name) => el[name]"

JS_STYLE = """
(el) => {
  const s = getComputedStyle(el);
  return { display: s.display, visibility: s.visibility, opacity: s.opacity };
}
"""

JS_TEXT = """
(el, exclude) => {
  const skip = new Set(["SCRIPT", "STYLE", "TEMPLATE", "NOSCRIPT"]);
  const hidden = (n) => {
    if (n.hidden) return true;
    const s = getComputedStyle(n);
    return s.display === "none" || parseFloat(s.opacity) === 0;
  };
  const parts = [];
  const walk = (n) => {
    for (const c of n.childNodes) {
      if (c.nodeType === 3) parts.push(c.nodeValue);
      else if (c.nodeType === 1 && c !== exclude && !skip.has(c.tagName) && !hidden(c)) walk(c);
    }
  };
  walk(el);
  return parts.join(" ").replace(/\\s+/g, " ").trim();
}
"""

JS_IDREFS = """
(el, ids) => {
  const root = el.getRootNode();
  return ids.map(i => root.getElementById ? root.getElementById(i) : document.getElementById(i)).filter(Boolean);
}
"""

JS_DISPATCH = """
(el, [type, x, y, key, mods]) => {
  if (type === "focus") { el.focus(); return true; }
  if (type === "blur") { el.blur(); return true; }
  const base = { bubbles: true, cancelable: true, composed: true,
                 ctrlKey: mods.includes("Control"), shiftKey: mods.includes("Shift"),
                 altKey: mods.includes("Alt"), metaKey: mods.includes("Meta") };
  let ev;
  if (type.startsWith("pointer")) {
    ev = new PointerEvent(type, { ...base, clientX: x ?? 0, clientY: y ?? 0, pointerType: "mouse", isPrimary: true,
                                  bubbles: type !== "pointerenter" });
  } else if (type === "click" || type.startsWith("mouse")) {
    ev = new MouseEvent(type, { ...base, clientX: x ?? 0, clientY: y ?? 0, button: 0 });
  } else if (type.startsWith("key")) {
    ev = new KeyboardEvent(type, { ...base, key: key || "", code: key || "" });
  } else if (type === "input") {
    ev = new InputEvent(type, base);
  } else {
    ev = new Event(type, base);
  }
  const ok = el.dispatchEvent(ev);
  if (ok && type === "keydown" && key === "Enter" && el.form && el.tagName !== "TEXTAREA") {
    el.form.requestSubmit ? el.form.requestSubmit() : el.form.submit();
  }
  return ok;
}
"""

JS_SET_VALUE = """
(el, [prop, value]) => {
  let proto = Object.getPrototypeOf(el);
  while (proto) {
    const desc = Object.getOwnPropertyDescriptor(proto, prop);
    if (desc && desc.set) { desc.set.call(el, value); return true; }
    proto = Object.getPrototypeOf(proto);
  }
  el[prop] = value;
  return false;
}
"""

JS_STATE = "(el) => ({ disabled: !!el.disabled, readonly: !!el.readOnly, connected: el.isConnected })"

JS_OBSERVE = """
([root, binding, token]) => {
  const target = root || document;
  const mo = new MutationObserver((records) => {
    const added = [], removed = [];
    for (const r of records) {
      r.addedNodes.forEach(n => n.nodeType === 1 && added.push(n));
      r.removedNodes.forEach(n => n.nodeType === 1 && removed.push(n));
    }
    if (added.length || removed.length) window[binding]({ token, added, removed });
  });
  mo.observe(target, { childList: true, subtree: true });
  (window.__replaykitObservers = window.__replaykitObservers || {})[token] = mo;
}
"""

JS_DISCONNECT = """
(token) => {
  const mo = (window.__replaykitObservers || {})[token];
  if (mo) { mo.disconnect(); delete window.__replaykitObservers[token]; }
}
"""


# ---------- Scopes ----------


@dataclass(eq=False)
class PlaywrightScope:
    frame: Frame
    root: Optional[ElementHandle] = None  # shadow root; None = the frame's document
    kind: str = "document"
    host: Optional[ElementHandle] = None


def _elements(array: JSHandle) -> List[ElementHandle]:
    """JS array handle -> ElementHandles, in index order."""
    props = array.get_properties()
    items: List[Tuple[int, ElementHandle]] = []
    for k, v in props.items():
        el = v.as_element()
        if k.isdigit() and el is not None:
            items.append((int(k), el))
    return [el for _, el in sorted(items, key=lambda kv: kv[0])]


# ---------- Host ----------


class PlaywrightHost:
    def __init__(self, page: Page) -> None:
        self.page = page
        self._callbacks: Dict[int, Tuple[PlaywrightScope, MutationCallback]] = {}
        self._tokens = itertools.count(1)
        self._binding_ready = False

    # ---------- DocumentAccessor ----------

    def root(self) -> PlaywrightScope:
        return PlaywrightScope(frame=self.page.main_frame)

    def page_url(self) -> str:
        return self.page.url

    def query(self, selector: str, scope: Optional[PlaywrightScope] = None, *, xpath: bool = False) -> List[ElementHandle]:
        scope = scope or self.root()
        script = JS_XPATH if xpath else JS_QUERY
        return _elements(scope.frame.evaluate_handle(script, [scope.root, selector]))

    def scope_of(self, node: ElementHandle) -> PlaywrightScope:
        root = node.evaluate_handle(JS_ROOT_NODE)
        frame = node.owner_frame() or self.page.main_frame
        if root.evaluate(JS_IS_DOCUMENT):
            if frame == self.page.main_frame:
                return PlaywrightScope(frame=frame)
            return PlaywrightScope(frame=frame, kind="iframe", host=frame.frame_element())
        host = root.evaluate_handle(JS_SHADOW_HOST).as_element()
        return PlaywrightScope(frame=frame, root=root.as_element(), kind="shadow", host=host)

    def boundary_hosts(self, node: ElementHandle) -> List[Tuple[str, ElementHandle]]:
        hops: List[Tuple[str, ElementHandle]] = []
        current = node
        while True:
            scope = self.scope_of(current)
            if scope.host is None:
                break
            hops.append((scope.kind, scope.host))
            current = scope.host
        hops.reverse()
        return hops

    def enter(self, host: ElementHandle) -> Optional[PlaywrightScope]:
        if self.tag_name(host) in ("iframe", "frame"):
            frame = host.content_frame()
            return PlaywrightScope(frame=frame, kind="iframe", host=host) if frame is not None else None
        shadow = host.evaluate_handle(JS_SHADOW_ROOT).as_element()
        if shadow is None:
            return None
        return PlaywrightScope(frame=host.owner_frame() or self.page.main_frame, root=shadow, kind="shadow", host=host)

    def observe(self, scope: PlaywrightScope, callback: MutationCallback) -> Callable[[], None]:
        self._ensure_binding()
        token = next(self._tokens)
        self._callbacks[token] = (scope, callback)
        scope.frame.evaluate(JS_OBSERVE, [scope.root, BINDING_NAME, token])

        def unsubscribe() -> None:
            if self._callbacks.pop(token, None) is not None:
                try:
                    scope.frame.evaluate(JS_DISCONNECT, token)
                except Exception as e:
                    log.debug(f"observer {token} disconnect failed: {e!r}")

        return unsubscribe

    def _ensure_binding(self) -> None:
        if self._binding_ready:
            return
        self.page.expose_binding(BINDING_NAME, self._on_mutation, handle=True)
        self._binding_ready = True

    def _on_mutation(self, source: Any, payload: JSHandle) -> None:
        token = payload.get_property("token").json_value()
        entry = self._callbacks.get(token)
        if entry is None:
            return
        added = _elements(payload.get_property("added"))
        removed = _elements(payload.get_property("removed"))
        entry[1](added, removed)

    # ---------- NodeInspector ----------

    def tag_name(self, node: ElementHandle) -> str:
        return node.evaluate(JS_TAG)

    def attributes(self, node: ElementHandle) -> Dict[str, str]:
        return dict(node.evaluate(JS_ATTRIBUTES) or {})

    def class_list(self, node: ElementHandle) -> List[str]:
        return list(node.evaluate(JS_CLASSES) or [])

    def parent(self, node: ElementHandle) -> Optional[ElementHandle]:
        return node.evaluate_handle(JS_PARENT).as_element()

    def children(self, node: Any) -> List[ElementHandle]:
        if isinstance(node, PlaywrightScope):
            return _elements(node.frame.evaluate_handle(JS_CHILDREN, node.root))
        return _elements(node.evaluate_handle(JS_CHILDREN))

    def computed_style(self, node: ElementHandle) -> Mapping[str, str]:
        return node.evaluate(JS_STYLE)

    def bounding_rect(self, node: ElementHandle) -> Rect:
        box = node.bounding_box()
        if not box:
            return Rect()
        return Rect(x=box["x"], y=box["y"], width=box["width"], height=box["height"])

    def text_content(self, node: ElementHandle, exclude: Optional[ElementHandle] = None) -> str:
        return node.evaluate(JS_TEXT, exclude) or ""

    def property(self, node: ElementHandle, name: str) -> Any:
        return node.evaluate(JS_PROPERTY, name)

    def resolve_idrefs(self, node: ElementHandle, ids: Sequence[str]) -> List[ElementHandle]:
        return _elements(node.evaluate_handle(JS_IDREFS, list(ids)))

    def same_node(self, a: ElementHandle, b: ElementHandle) -> bool:
        if a is b:
            return True
        return bool(a.evaluate(JS_SAME, b))

    # ---------- EventDispatcher ----------

    def _guard(self, node: ElementHandle, what: str, *, value_write: bool = False) -> None:
        state = node.evaluate(JS_STATE) or {}
        if not state.get("connected", True):
            raise ActionRejected(f"{what} on a detached element")
        if state.get("disabled"):
            raise ActionRejected(f"{what} on a disabled element")
        if value_write and state.get("readonly"):
            raise ActionRejected(f"{what} on a read-only element")

    def dispatch(
        self,
        node: ElementHandle,
        event_type: str,
        *,
        x: Optional[float] = None,
        y: Optional[float] = None,
        key: Optional[str] = None,
        modifiers: Sequence[str] = (),
    ) -> bool:
        self._guard(node, event_type)
        return bool(node.evaluate(JS_DISPATCH, [event_type, x, y, key, list(modifiers)]))

    def set_controlled_value(self, node: ElementHandle, value: Any, *, prop: str = "value") -> None:
        self._guard(node, f"{prop} write", value_write=(prop == "value"))
        node.evaluate(JS_SET_VALUE, [prop, value])

    def navigate(self, url: str) -> None:
        self.page.goto(url, wait_until="domcontentloaded")


# ---------- Browser lifecycle ----------


@contextmanager
def open_page(url: Optional[str] = None, settings: Optional[Settings] = None) -> Iterator[PlaywrightHost]:
    """Launch the configured browser, optionally open `url`, and yield a host for its page."""
    s = settings or get_settings()
    with sync_playwright() as p:
        browser_type = getattr(p, s.BROWSER_TYPE.value)
        browser = browser_type.launch(**s.playwright_launch_kwargs())
        try:
            page = browser.new_page()
            if url:
                page.goto(url, wait_until="domcontentloaded")
            yield PlaywrightHost(page)
        finally:
            browser.close()


__all__ = ["PlaywrightHost", "PlaywrightScope", "open_page"]
