# replaykit/selectors/strategies.py
from __future__ import annotations

"""Locator strategies
---------------------
Each strategy is a plain record: a name, a fixed confidence ceiling and a
`collect` function (context -> scored candidates, document order). The registry
keeps them in priority order; reordering/disabling is configuration, not code.

Scores only rank candidates *within* one strategy. Confidence annotates the
winning strategy and is never compared across strategies.
"""

import math
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from replaykit.core.models import LocatorBundle
from replaykit.dom.protocols import DocumentAccessor, Node, NodeInspector, Scope
from replaykit.selectors.paths import css_escape, css_string, evaluate_xpath, stable_classes
from replaykit.utils.logger import get_logger

log = get_logger(__name__)

Scored = Tuple[Node, float]

TEST_ID_ATTRIBUTES = ("data-testid", "data-test-id", "data-test", "data-cy", "data-qa")


@dataclass(frozen=True)
class StrategyContext:
    bundle: LocatorBundle
    scope: Scope
    accessor: DocumentAccessor
    inspector: NodeInspector
    fuzzy_threshold: float = 0.4
    bbox_max_distance: float = 200.0

    def query(self, selector: str) -> List[Node]:
        return self.accessor.query(selector, self.scope)


@dataclass(frozen=True)
class Strategy:
    name: str
    confidence: float
    collect: Callable[[StrategyContext], List[Scored]]


# ---------- Text similarity ----------


def normalize_text(value: Optional[str]) -> str:
    return " ".join((value or "").lower().split())


def _dice(a: Set[str], b: Set[str]) -> float:
    if not a or not b:
        return 0.0
    return 2.0 * len(a & b) / (len(a) + len(b))


def _bigrams(value: str) -> Set[str]:
    s = value.replace(" ", "")
    if len(s) < 2:
        return {s} if s else set()
    return {s[i:i + 2] for i in range(len(s) - 1)}


def text_similarity(a: Optional[str], b: Optional[str]) -> float:
    """0..1 similarity; word-level Dice, blended with character bigrams for short strings."""
    a, b = normalize_text(a), normalize_text(b)
    if not a or not b:
        return 0.0
    if a == b:
        return 1.0
    words = _dice(set(a.split()), set(b.split()))
    if min(len(a), len(b)) < 20:
        return 0.6 * words + 0.4 * _dice(_bigrams(a), _bigrams(b))
    return words


# ---------- Tie-break ----------


def affinity(bundle: LocatorBundle, node: Node, inspector: NodeInspector) -> int:
    """Secondary-signal agreement between a live candidate and the captured bundle."""
    try:
        score = 1 if inspector.tag_name(node).lower() == bundle.tag else 0
        score += len(bundle.classes & set(inspector.class_list(node)))
        live = inspector.attributes(node)
        score += sum(1 for k, v in bundle.attributes.items() if live.get(k) == v)
        return score
    except Exception as e:
        log.debug(f"affinity failed: {e!r}")
        return 0


def pick_best(bundle: LocatorBundle, scored: Sequence[Scored], inspector: NodeInspector) -> Optional[Node]:
    """Highest score, then highest affinity, then first in document order."""
    best: Optional[Node] = None
    best_key: Optional[Tuple[float, int]] = None
    for node, score in scored:
        key = (score, affinity(bundle, node, inspector))
        if best_key is None or key > best_key:
            best, best_key = node, key
    return best


# ---------- Strategy implementations ----------


def _flat(nodes: Iterable[Node]) -> List[Scored]:
    return [(n, 0.0) for n in nodes]


def _by_attribute(ctx: StrategyContext, attr: str, value: Optional[str]) -> List[Scored]:
    if not value:
        return []
    return _flat(ctx.query(f"[{attr}={css_string(value)}]"))


def collect_xpath(ctx: StrategyContext) -> List[Scored]:
    b = ctx.bundle
    try:
        nodes = evaluate_xpath(
            b.xpath, ctx.scope, ctx.accessor, ctx.inspector,
            fallback=lambda expr: ctx.accessor.query(expr, ctx.scope, xpath=True),
        )
    except Exception as e:
        log.debug(f"xpath evaluation failed for {b.xpath!r}: {e!r}")
        return []

    out: List[Node] = []
    for node in nodes:
        if ctx.inspector.tag_name(node).lower() != b.tag:
            continue
        live = ctx.inspector.attributes(node)
        # A positional path landing on a different control is a miss
        if b.id and live.get("id") != b.id:
            continue
        if b.name and live.get("name") != b.name:
            continue
        out.append(node)
    return _flat(out)


def collect_id(ctx: StrategyContext) -> List[Scored]:
    return _by_attribute(ctx, "id", ctx.bundle.id)


def collect_name(ctx: StrategyContext) -> List[Scored]:
    return _by_attribute(ctx, "name", ctx.bundle.name)


def collect_aria(ctx: StrategyContext) -> List[Scored]:
    name = ctx.bundle.accessible_name
    if not name:
        return []
    hits = _by_attribute(ctx, "aria-label", name)
    if hits:
        return hits

    wanted = normalize_text(name)
    out: List[Node] = []
    for node in ctx.query("[aria-labelledby]"):
        ids = ctx.inspector.attributes(node).get("aria-labelledby", "").split()
        refs = ctx.inspector.resolve_idrefs(node, ids)
        text = " ".join(ctx.inspector.text_content(r) for r in refs)
        if normalize_text(text) == wanted:
            out.append(node)
    return _flat(out)


def collect_placeholder(ctx: StrategyContext) -> List[Scored]:
    return _by_attribute(ctx, "placeholder", ctx.bundle.placeholder)


def collect_data_attributes(ctx: StrategyContext) -> List[Scored]:
    data = ctx.bundle.data_attributes
    for attr in TEST_ID_ATTRIBUTES:
        if attr in data:
            hits = _by_attribute(ctx, css_escape(attr), data[attr])
            if hits:
                return hits
    if not data:
        return []
    selector = "".join(f"[{css_escape(k)}={css_string(v)}]" for k, v in sorted(data.items()))
    return _flat(ctx.query(selector))


def collect_css(ctx: StrategyContext) -> List[Scored]:
    b = ctx.bundle
    selector = b.css
    if not selector:
        classes = stable_classes(b.classes)
        if not classes:
            return []
        selector = b.tag + "".join(f".{css_escape(c)}" for c in classes)
    try:
        return _flat(ctx.query(selector))
    except Exception as e:
        log.debug(f"css query failed for {selector!r}: {e!r}")
        return []


def _live_text(ctx: StrategyContext, node: Node) -> str:
    if ctx.inspector.tag_name(node).lower() in ("input", "textarea", "select"):
        return str(ctx.inspector.property(node, "value") or "")
    return ctx.inspector.text_content(node)


def collect_fuzzy_text(ctx: StrategyContext) -> List[Scored]:
    b = ctx.bundle
    target = b.text or b.accessible_name
    if not target:
        return []
    out: List[Scored] = []
    for node in ctx.query(b.tag):
        score = text_similarity(target, _live_text(ctx, node))
        if score >= ctx.fuzzy_threshold:
            out.append((node, score))
    return out


def collect_bounding_box(ctx: StrategyContext) -> List[Scored]:
    b = ctx.bundle
    if b.rect is None or b.rect.area <= 0:
        return []
    cx, cy = b.rect.center
    out: List[Scored] = []
    for node in ctx.query(b.tag):
        rect = ctx.inspector.bounding_rect(node)
        if rect.area <= 0:
            continue
        nx, ny = rect.center
        distance = math.hypot(nx - cx, ny - cy)
        if distance <= ctx.bbox_max_distance:
            out.append((node, -distance))
    return out


# ---------- Registry ----------

DEFAULT_STRATEGIES: Tuple[Strategy, ...] = (
    Strategy("xpath", 1.0, collect_xpath),
    Strategy("id", 0.9, collect_id),
    Strategy("name", 0.8, collect_name),
    Strategy("aria", 0.75, collect_aria),
    Strategy("placeholder", 0.7, collect_placeholder),
    Strategy("data_attributes", 0.65, collect_data_attributes),
    Strategy("css", 0.55, collect_css),
    Strategy("fuzzy_text", 0.4, collect_fuzzy_text),
    Strategy("bounding_box", 0.3, collect_bounding_box),
)

DEFAULT_ORDER: Tuple[str, ...] = tuple(s.name for s in DEFAULT_STRATEGIES)


class StrategyRegistry:
    """Ordered, filterable list of strategies."""

    def __init__(
        self,
        strategies: Sequence[Strategy] = DEFAULT_STRATEGIES,
        *,
        order: Optional[Sequence[str]] = None,
        disabled: Iterable[str] = (),
    ) -> None:
        by_name: Dict[str, Strategy] = {s.name: s for s in strategies}
        names = list(order) if order else [s.name for s in strategies]
        unknown = [n for n in names if n not in by_name]
        if unknown:
            raise ValueError(f"unknown strategy name(s): {', '.join(unknown)}")
        # Strategies missing from an explicit order keep their default relative position at the end
        names += [s.name for s in strategies if s.name not in names]
        skip = set(disabled)
        self._strategies: List[Strategy] = [by_name[n] for n in names if n not in skip]

    @classmethod
    def from_settings(cls, settings) -> "StrategyRegistry":
        return cls(order=settings.FINDER_STRATEGY_ORDER, disabled=settings.FINDER_DISABLED_STRATEGIES)

    def __iter__(self):
        return iter(self._strategies)

    def __len__(self) -> int:
        return len(self._strategies)

    @property
    def names(self) -> List[str]:
        return [s.name for s in self._strategies]

    def get(self, name: str) -> Optional[Strategy]:
        return next((s for s in self._strategies if s.name == name), None)


__all__ = [
    "Strategy",
    "StrategyContext",
    "StrategyRegistry",
    "DEFAULT_STRATEGIES",
    "DEFAULT_ORDER",
    "TEST_ID_ATTRIBUTES",
    "normalize_text",
    "text_similarity",
    "affinity",
    "pick_best",
]
