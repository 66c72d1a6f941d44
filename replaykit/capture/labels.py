# replaykit/capture/labels.py
from __future__ import annotations

"""Label detection
------------------
Turns a node into one short human-readable label, e.g. for step titles.

The heuristics are plain functions run in priority order; the first one that
yields a non-empty sanitized candidate wins. A heuristic that raises counts as
"no candidate". Password controls are always labelled "Password".

On form fields a generic word ("Input", "Select"...) is held back until every
heuristic and the contextual fallback have had their turn. UI kits that render
labels away from the control (Bootstrap, Material UI, Google Forms) are matched
by class patterns in FRAMEWORK_PATTERNS.
"""

import re
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Callable, Dict, FrozenSet, Hashable, List, Optional, Sequence, Tuple

from replaykit.dom.protocols import DocumentAccessor, Node, NodeInspector
from replaykit.selectors.paths import css_string
from replaykit.utils.config import get_settings
from replaykit.utils.logger import get_logger

log = get_logger(__name__)

BUTTON_INPUT_TYPES = frozenset({"button", "submit", "reset", "image"})
TEXT_INPUT_TYPES = frozenset({"", "text", "email", "search", "tel", "url", "number", "password", "date", "datetime-local", "month", "week", "time"})
NAME_PREFIXES = frozenset({"btn", "button", "input", "txt", "ddl", "chk", "lbl", "sel", "cb", "rb", "fld", "field"})
DATA_LABEL_ATTRIBUTES = ("data-label", "data-title", "data-name")
GENERIC_LABELS = frozenset({
    "input", "field", "text", "value", "enter", "type", "select", "choose",
    "click", "button", "submit", "form", "required",
})

_WS = re.compile(r"\s+")
_INVISIBLE = re.compile(r"[\u0000-\u0008\u000e-\u001f\u007f-\u0084\u0086-\u009f\u00ad\u200b-\u200f\u202a-\u202e\u2060-\u2064\ufeff]")
_EMOJI = re.compile(
    "["
    "\U0001F000-\U0001FAFF"
    "\u2600-\u27bf"
    "\u2b00-\u2bff"
    "\ufe0f"
    "]+"
)
_NUMERIC = re.compile(r"^[\d\s.,:;/#%+\-()]+$")
_EDGE_PUNCT = ":;,.*|•·-–—!?\"'`~_=>< "


# ---------- Sanitization ----------


def sanitize_label(raw: Optional[str], max_length: int = 50, strip_emoji: bool = False) -> str:
    if not raw:
        return ""
    # strip invisibles before collapsing whitespace
    text = _INVISIBLE.sub("", str(raw))
    text = _WS.sub(" ", text.strip())
    text = text.strip(_EDGE_PUNCT)
    if strip_emoji:
        text = _WS.sub(" ", _EMOJI.sub("", text)).strip(_EDGE_PUNCT)
    if not text:
        return ""
    if len(text) > max_length:
        text = text[: max(1, max_length - 3)].rstrip() + "..."
    return " ".join(w[:1].upper() + w[1:] for w in text.split(" "))


def humanize_identifier(value: Optional[str]) -> str:
    """'btnSubmitOrder' -> 'submit order', 'first_name' -> 'first name'."""
    if not value:
        return ""
    s = re.sub(r"([a-z0-9])([A-Z])", r"\1 \2", value)
    s = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1 \2", s)
    words = [w for w in re.split(r"[\s_\-.\[\]]+", s) if w]
    if len(words) > 1 and words[0].lower() in NAME_PREFIXES:
        words = words[1:]
    return " ".join(w.lower() for w in words)


def is_numeric_label(value: str) -> bool:
    return bool(_NUMERIC.match(value)) and any(ch.isdigit() for ch in value)


def is_generic_label(value: str) -> bool:
    return value.strip().lower() in GENERIC_LABELS


# ---------- Context ----------


@dataclass
class LabelContext:
    node: Node
    accessor: DocumentAccessor
    inspector: NodeInspector
    attrs: Dict[str, str] = field(default_factory=dict)
    tag: str = ""
    input_type: str = ""

    @classmethod
    def of(cls, node: Node, accessor: DocumentAccessor, inspector: NodeInspector) -> "LabelContext":
        attrs = inspector.attributes(node)
        return cls(
            node=node,
            accessor=accessor,
            inspector=inspector,
            attrs=attrs,
            tag=inspector.tag_name(node).lower(),
            input_type=attrs.get("type", "").strip().lower(),
        )

    @property
    def is_button_like(self) -> bool:
        return self.tag == "button" or (self.tag == "input" and self.input_type in BUTTON_INPUT_TYPES)

    @property
    def is_form_field(self) -> bool:
        if self.tag in ("select", "textarea"):
            return True
        return self.tag == "input" and not self.is_button_like and self.input_type != "hidden"

    def siblings(self) -> List[Node]:
        parent = self.inspector.parent(self.node)
        if parent is not None:
            return self.inspector.children(parent)
        return self.inspector.children(self.accessor.scope_of(self.node))

    def ancestors(self):
        current = self.inspector.parent(self.node)
        while current is not None:
            yield current
            current = self.inspector.parent(current)


Heuristic = Callable[[LabelContext], Optional[str]]


# ---------- Heuristics (priority order) ----------


def from_aria_label(ctx: LabelContext) -> Optional[str]:
    return ctx.attrs.get("aria-label")


def from_aria_labelledby(ctx: LabelContext) -> Optional[str]:
    ids = ctx.attrs.get("aria-labelledby", "").split()
    if not ids:
        return None
    refs = ctx.inspector.resolve_idrefs(ctx.node, ids)
    return " ".join(ctx.inspector.text_content(r) for r in refs)


def from_label_element(ctx: LabelContext) -> Optional[str]:
    node_id = ctx.attrs.get("id")
    if node_id:
        scope = ctx.accessor.scope_of(ctx.node)
        for label in ctx.accessor.query(f"label[for={css_string(node_id)}]", scope):
            text = ctx.inspector.text_content(label, exclude=ctx.node)
            if text.strip():
                return text
    for anc in ctx.ancestors():
        if ctx.inspector.tag_name(anc).lower() == "label":
            return ctx.inspector.text_content(anc, exclude=ctx.node)
    return None


def from_placeholder(ctx: LabelContext) -> Optional[str]:
    return ctx.attrs.get("placeholder")


def from_title(ctx: LabelContext) -> Optional[str]:
    return ctx.attrs.get("title")


def from_alt(ctx: LabelContext) -> Optional[str]:
    return ctx.attrs.get("alt")


def from_name(ctx: LabelContext) -> Optional[str]:
    return humanize_identifier(ctx.attrs.get("name"))


def from_visible_text(ctx: LabelContext) -> Optional[str]:
    if ctx.tag in ("input", "select", "textarea"):
        return None
    return ctx.inspector.text_content(ctx.node)


def from_button_value(ctx: LabelContext) -> Optional[str]:
    if ctx.tag == "input" and ctx.is_button_like:
        return ctx.attrs.get("value")
    return None


def from_nested_media(ctx: LabelContext) -> Optional[str]:
    stack = list(reversed(ctx.inspector.children(ctx.node)))
    while stack:
        node = stack.pop()
        tag = ctx.inspector.tag_name(node).lower()
        if tag == "img":
            alt = ctx.inspector.attributes(node).get("alt")
            if alt and alt.strip():
                return alt
        elif tag == "title":
            # <svg><title>..</title></svg>
            text = ctx.inspector.text_content(node)
            if text.strip():
                return text
        stack.extend(reversed(ctx.inspector.children(node)))
    return None


def _column_header(ctx: LabelContext, cell: Node) -> Optional[str]:
    row = ctx.inspector.parent(cell)
    if row is None:
        return None
    cells = [c for c in ctx.inspector.children(row) if ctx.inspector.tag_name(c).lower() in ("td", "th")]
    column = next((i for i, c in enumerate(cells) if ctx.inspector.same_node(c, cell)), None)
    if column is None:
        return None

    table = row
    while table is not None and ctx.inspector.tag_name(table).lower() != "table":
        table = ctx.inspector.parent(table)
    if table is None:
        return None

    for header in ctx.accessor.query("tr", ctx.accessor.scope_of(cell)):
        heads = [c for c in ctx.inspector.children(header) if ctx.inspector.tag_name(c).lower() == "th"]
        if heads and column < len(heads):
            # header row must belong to the same table
            owner = ctx.inspector.parent(header)
            while owner is not None and ctx.inspector.tag_name(owner).lower() != "table":
                owner = ctx.inspector.parent(owner)
            if owner is not None and ctx.inspector.same_node(owner, table):
                return ctx.inspector.text_content(heads[column])

    if column > 0:
        return ctx.inspector.text_content(cells[column - 1])
    return None


def from_nearby_text(ctx: LabelContext) -> Optional[str]:
    siblings = ctx.siblings()
    index = next((i for i, s in enumerate(siblings) if ctx.inspector.same_node(s, ctx.node)), -1)
    for sib in reversed(siblings[:index] if index > 0 else []):
        if ctx.inspector.tag_name(sib).lower() in ("input", "select", "textarea", "button"):
            break
        text = ctx.inspector.text_content(sib)
        if text.strip():
            return text

    for anc in ctx.ancestors():
        if ctx.inspector.tag_name(anc).lower() in ("td", "th"):
            return _column_header(ctx, anc)

    parent = ctx.inspector.parent(ctx.node)
    if parent is not None and len(ctx.inspector.children(parent)) <= 3:
        text = ctx.inspector.text_content(parent, exclude=ctx.node)
        if text.strip():
            return text
    return None


@dataclass(frozen=True)
class FrameworkPattern:
    """
    Where a UI kit puts a control's label: the nearest ancestor carrying one of
    `containers` (classes) or `container_attrs`, then the first element inside it
    carrying one of `labels`. `label_tag` instead matches a direct child by tag.
    """
    framework: str
    containers: FrozenSet[str] = frozenset()
    labels: FrozenSet[str] = frozenset()
    label_tag: Optional[str] = None
    container_attrs: Tuple[str, ...] = ()

    def holds(self, inspector: NodeInspector, node: Node) -> bool:
        if self.containers.intersection(inspector.class_list(node)):
            return True
        attrs = inspector.attributes(node) if self.container_attrs else {}
        return any(a in attrs for a in self.container_attrs)


# most specific first: an option label beats its question title
FRAMEWORK_PATTERNS: Tuple[FrameworkPattern, ...] = (
    FrameworkPattern(
        "google_forms",
        containers=frozenset({"docssharedWizToggleLabeledContainer"}),
        labels=frozenset({"docssharedWizToggleLabeledLabelText", "exportLabel"}),
    ),
    FrameworkPattern(
        "google_forms",
        containers=frozenset({
            "freebirdFormviewerViewItemsItemItem",
            "freebirdFormviewerViewNumberedItemContainer",
            "freebirdFormviewerComponentsQuestionBaseRoot",
        }),
        labels=frozenset({
            "freebirdFormviewerComponentsQuestionBaseTitle",
            "freebirdFormviewerViewItemsItemItemTitle",
            "exportItemTitle",
        }),
        container_attrs=("data-item-id",),
    ),
    FrameworkPattern(
        "material_ui",
        containers=frozenset({"MuiFormControlLabel-root"}),
        labels=frozenset({"MuiFormControlLabel-label", "MuiTypography-root"}),
    ),
    FrameworkPattern(
        "material_ui",
        containers=frozenset({"MuiFormControl-root", "MuiTextField-root"}),
        labels=frozenset({"MuiInputLabel-root", "MuiFormLabel-root"}),
    ),
    FrameworkPattern("bootstrap", containers=frozenset({"form-floating"}), label_tag="label"),
    FrameworkPattern(
        "bootstrap",
        containers=frozenset({"form-check", "custom-control"}),
        labels=frozenset({"form-check-label", "custom-control-label"}),
    ),
    FrameworkPattern(
        "bootstrap",
        containers=frozenset({"input-group"}),
        labels=frozenset({"input-group-text"}),
    ),
    FrameworkPattern(
        "bootstrap",
        containers=frozenset({"mb-2", "mb-3", "mb-4", "form-group", "form-row", "row"}),
        labels=frozenset({"form-label", "col-form-label", "control-label"}),
    ),
)


def _framework_label_node(ctx: LabelContext, container: Node, pattern: FrameworkPattern) -> Optional[Node]:
    inspector = ctx.inspector
    if pattern.label_tag is not None:
        return next(
            (c for c in inspector.children(container)
             if inspector.tag_name(c).lower() == pattern.label_tag and not inspector.same_node(c, ctx.node)),
            None,
        )
    stack = list(reversed(inspector.children(container)))
    while stack:
        node = stack.pop()
        if inspector.same_node(node, ctx.node):
            continue
        if pattern.labels.intersection(inspector.class_list(node)):
            return node
        stack.extend(reversed(inspector.children(node)))
    return None


def from_framework_label(ctx: LabelContext) -> Optional[str]:
    ancestors = list(ctx.ancestors())
    for pattern in FRAMEWORK_PATTERNS:
        container = next((a for a in ancestors if pattern.holds(ctx.inspector, a)), None)
        if container is None:
            continue
        label = _framework_label_node(ctx, container, pattern)
        if label is None:
            continue
        text = ctx.inspector.text_content(label, exclude=ctx.node)
        if text.strip():
            log.debug(f"{pattern.framework} label pattern matched")
            return text
    return None


def from_data_label(ctx: LabelContext) -> Optional[str]:
    for attr in DATA_LABEL_ATTRIBUTES:
        if ctx.attrs.get(attr):
            return ctx.attrs[attr]
    return None


DEFAULT_HEURISTICS: Tuple[Tuple[str, Heuristic], ...] = (
    ("aria_label", from_aria_label),
    ("aria_labelledby", from_aria_labelledby),
    ("label_element", from_label_element),
    ("placeholder", from_placeholder),
    ("title", from_title),
    ("alt", from_alt),
    ("name", from_name),
    ("visible_text", from_visible_text),
    ("button_value", from_button_value),
    ("nested_media", from_nested_media),
    ("framework_label", from_framework_label),
    ("nearby_text", from_nearby_text),
    ("data_label", from_data_label),
)


# ---------- Fallbacks ----------


def contextual_label(ctx: LabelContext) -> Optional[str]:
    for anc in ctx.ancestors():
        attrs = ctx.inspector.attributes(anc)
        for attr in ("aria-label", "title"):
            if attrs.get(attr):
                return attrs[attr]
        if ctx.inspector.tag_name(anc).lower() == "fieldset":
            for child in ctx.inspector.children(anc):
                if ctx.inspector.tag_name(child).lower() == "legend":
                    return ctx.inspector.text_content(child)
    return None


def synthetic_label(ctx: LabelContext) -> str:
    if ctx.tag == "select":
        return "Dropdown"
    if ctx.tag == "textarea":
        return "Text Area"
    if ctx.is_button_like:
        return "Button"
    if ctx.tag == "a":
        return "Link"
    if ctx.tag == "input":
        if ctx.input_type == "checkbox":
            return "Checkbox"
        if ctx.input_type == "radio":
            return "Radio Button"
        if ctx.input_type in TEXT_INPUT_TYPES:
            return "Text Input"
    return "Element"


# ---------- Cache ----------


Fingerprint = Tuple[str, Tuple[Tuple[str, str], ...]]


class LabelCache:
    """
    Bounded LRU keyed by a stable node path (boundary chain + xpath).
    Entries carry a fingerprint of the node; a mismatch on read expires the entry,
    so a different element now living at the same path is never served a stale label.
    """

    def __init__(self, max_size: int = 512) -> None:
        self.max_size = max_size
        self._entries: "OrderedDict[Hashable, Tuple[Fingerprint, str]]" = OrderedDict()

    @staticmethod
    def fingerprint(tag: str, attrs: Dict[str, str]) -> Fingerprint:
        return tag, tuple(sorted(attrs.items()))

    def get(self, key: Hashable, fingerprint: Fingerprint) -> Optional[str]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry[0] != fingerprint:
            del self._entries[key]
            return None
        self._entries.move_to_end(key)
        return entry[1]

    def put(self, key: Hashable, fingerprint: Fingerprint, label: str) -> None:
        if self.max_size <= 0:
            return
        self._entries[key] = (fingerprint, label)
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_size:
            self._entries.popitem(last=False)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


# ---------- Engine ----------


class LabelDetectionEngine:
    def __init__(
        self,
        accessor: DocumentAccessor,
        inspector: NodeInspector,
        *,
        heuristics: Sequence[Tuple[str, Heuristic]] = DEFAULT_HEURISTICS,
        max_length: Optional[int] = None,
        strip_emoji: Optional[bool] = None,
        cache: Optional[LabelCache] = None,
    ) -> None:
        settings = get_settings()
        self.accessor = accessor
        self.inspector = inspector
        self.heuristics = tuple(heuristics)
        self.max_length = settings.LABEL_MAX_LENGTH if max_length is None else max_length
        self.strip_emoji = settings.LABEL_STRIP_EMOJI if strip_emoji is None else strip_emoji
        self.cache = cache if cache is not None else LabelCache(settings.LABEL_CACHE_SIZE)

    def sanitize(self, raw: Optional[str]) -> str:
        return sanitize_label(raw, self.max_length, self.strip_emoji)

    def detect(self, node: Node, *, cache_key: Optional[Hashable] = None) -> str:
        try:
            ctx = LabelContext.of(node, self.accessor, self.inspector)
        except Exception as e:
            log.debug(f"label context failed: {e!r}")
            return "Element"

        if ctx.tag == "input" and ctx.input_type == "password":
            return "Password"

        fingerprint = LabelCache.fingerprint(ctx.tag, ctx.attrs)
        if cache_key is not None:
            cached = self.cache.get(cache_key, fingerprint)
            if cached is not None:
                return cached

        label = self._run(ctx)
        if cache_key is not None:
            self.cache.put(cache_key, fingerprint, label)
        return label

    def _run(self, ctx: LabelContext) -> str:
        # a generic word on a form field ("Enter", "Select") only wins when nothing better turns up
        generic: Optional[str] = None
        for name, heuristic in self.heuristics:
            try:
                candidate = self.sanitize(heuristic(ctx))
            except Exception as e:
                log.debug(f"label heuristic {name} failed: {e!r}")
                continue
            if not candidate:
                continue
            if is_numeric_label(candidate):
                log.debug(f"label heuristic {name} gave numeric candidate; using context")
                break
            if name != "aria_label" and ctx.is_form_field and is_generic_label(candidate):
                log.debug(f"label heuristic {name} gave generic candidate '{candidate}'")
                generic = generic or candidate
                continue
            return candidate

        try:
            contextual = self.sanitize(contextual_label(ctx))
        except Exception as e:
            log.debug(f"contextual label failed: {e!r}")
            contextual = ""
        if contextual and not is_numeric_label(contextual):
            return contextual
        return generic or synthetic_label(ctx)


__all__ = [
    "LabelDetectionEngine",
    "LabelContext",
    "LabelCache",
    "DEFAULT_HEURISTICS",
    "FRAMEWORK_PATTERNS",
    "FrameworkPattern",
    "sanitize_label",
    "humanize_identifier",
    "is_numeric_label",
    "is_generic_label",
    "contextual_label",
    "synthetic_label",
]
