# replaykit/capture/bundle.py
from __future__ import annotations

"""Bundle builder
-----------------
Node (+ its boundary chain) -> LocatorBundle, without side effects.

Every field is extracted independently; a field whose extraction fails is
omitted and logged at DEBUG. The positional XPath always exists (worst case
`//tag`), so building never raises for a live node handle.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar

from replaykit.capture.labels import BUTTON_INPUT_TYPES, LabelDetectionEngine
from replaykit.core.models import BoundaryHop, LocatorBundle, Rect
from replaykit.detection.boundaries import hosts_in_scope
from replaykit.dom.protocols import DocumentAccessor, Node, NodeInspector
from replaykit.selectors.paths import build_css_selector, build_xpath
from replaykit.utils.config import get_settings
from replaykit.utils.logger import get_logger
from replaykit.utils.timing import measure

T = TypeVar("T")

RELEVANT_ATTRIBUTES = (
    "id",
    "name",
    "type",
    "value",
    "placeholder",
    "aria-label",
    "aria-labelledby",
    "data-testid",
    "data-test-id",
    "data-test",
    "data-cy",
    "data-qa",
    "role",
    "href",
    "src",
    "alt",
    "title",
)


@dataclass
class BundleReport:
    bundle: LocatorBundle
    label: str
    quality: float
    warnings: List[str] = field(default_factory=list)


class BundleBuilder:
    def __init__(
        self,
        accessor: DocumentAccessor,
        inspector: NodeInspector,
        *,
        labels: Optional[LabelDetectionEngine] = None,
        max_text_length: Optional[int] = None,
        max_classes: Optional[int] = None,
    ) -> None:
        settings = get_settings()
        self.accessor = accessor
        self.inspector = inspector
        self.labels = labels or LabelDetectionEngine(accessor, inspector)
        self.max_text_length = settings.BUNDLE_MAX_TEXT_LENGTH if max_text_length is None else max_text_length
        self.max_classes = settings.BUNDLE_MAX_CLASSES if max_classes is None else max_classes
        self.log = get_logger(__name__)

    # -------------- Public API --------------

    @measure("bundle build")
    def build(self, node: Node) -> LocatorBundle:
        tag = (self._safe("tag", lambda: self.inspector.tag_name(node)) or "*").lower()
        attrs: Dict[str, str] = self._safe("attributes", lambda: self.inspector.attributes(node)) or {}
        input_type = attrs.get("type", "").lower()

        xpath = self._safe("xpath", lambda: build_xpath(self.accessor, self.inspector, node)) or f"//{tag}"
        classes = self._safe("classes", lambda: self.inspector.class_list(node)) or []

        return LocatorBundle(
            tag=tag,
            id=attrs.get("id"),
            name=attrs.get("name"),
            placeholder=attrs.get("placeholder"),
            title=attrs.get("title"),
            href=attrs.get("href"),
            src=attrs.get("src"),
            role=attrs.get("role"),
            accessible_name=self._safe("accessible_name", lambda: self._accessible_name(node, attrs)),
            text=self._safe("text", lambda: self._text(node, tag, input_type, attrs)),
            classes=frozenset(classes[: self.max_classes]),
            attributes=self._relevant_attributes(attrs, input_type),
            xpath=xpath,
            css=self._safe("css", lambda: build_css_selector(self.accessor, self.inspector, node)),
            rect=self._safe("rect", lambda: self._rect(node)),
            page_url=self._safe("page_url", self.accessor.page_url),
            boundary_chain=self._safe("boundary_chain", lambda: self.boundary_chain(node)) or (),
        )

    def build_with_report(self, node: Node) -> BundleReport:
        """Bundle plus its detected label and a rough 0..1 robustness score."""
        bundle = self.build(node)
        label = self.labels.detect(node, cache_key=(bundle.boundary_chain, bundle.xpath))
        quality, warnings = assess_quality(bundle)
        return BundleReport(bundle=bundle, label=label, quality=quality, warnings=warnings)

    def boundary_chain(self, node: Node) -> Tuple[BoundaryHop, ...]:
        hops: List[BoundaryHop] = []
        for kind, host in self.accessor.boundary_hosts(node):
            attrs = self.inspector.attributes(host)
            hosts = hosts_in_scope(self.accessor, self.inspector, self.accessor.scope_of(host), kind)
            index = next((i for i, h in enumerate(hosts) if self.inspector.same_node(h, host)), 0)
            hops.append(
                BoundaryHop(
                    kind=kind,
                    id=attrs.get("id") or None,
                    name=attrs.get("name") or None,
                    selector=self._safe("hop selector", lambda: build_css_selector(self.accessor, self.inspector, host)),
                    xpath=self._safe("hop xpath", lambda: build_xpath(self.accessor, self.inspector, host)),
                    index=index,
                )
            )
        return tuple(hops)

    # -------------- Field extraction --------------

    def _safe(self, what: str, fn: Callable[[], T]) -> Optional[T]:
        try:
            return fn()
        except Exception as e:
            self.log.debug(f"bundle field '{what}' omitted: {e!r}")
            return None

    def _accessible_name(self, node: Node, attrs: Dict[str, str]) -> Optional[str]:
        direct = attrs.get("aria-label", "").strip()
        if direct:
            return direct
        ids = attrs.get("aria-labelledby", "").split()
        if not ids:
            return None
        refs = self.inspector.resolve_idrefs(node, ids)
        joined = " ".join(t for t in (self.inspector.text_content(r).strip() for r in refs) if t)
        return joined or None

    def _text(self, node: Node, tag: str, input_type: str, attrs: Dict[str, str]) -> Optional[str]:
        if tag == "input":
            raw = attrs.get("value", "") if input_type in BUTTON_INPUT_TYPES else ""
        else:
            raw = self.inspector.text_content(node)
        text = " ".join(raw.split())
        return text[: self.max_text_length] or None

    def _relevant_attributes(self, attrs: Dict[str, str], input_type: str) -> Dict[str, str]:
        out: Dict[str, str] = {}
        for k, v in attrs.items():
            if k in RELEVANT_ATTRIBUTES or k.startswith("data-"):
                out[k] = v
        if input_type == "password":
            out.pop("value", None)
        return out

    def _rect(self, node: Node) -> Optional[Rect]:
        rect = self.inspector.bounding_rect(node)
        return rect if rect.area > 0 else None


# ---------- Quality ----------

_WEIGHTS = (
    ("id", 0.3),
    ("name", 0.15),
    ("text_signal", 0.2),
    ("data", 0.15),
    ("css", 0.1),
    ("rect", 0.1),
)


def assess_quality(bundle: LocatorBundle) -> Tuple[float, List[str]]:
    signals: Dict[str, Any] = {
        "id": bundle.id,
        "name": bundle.name,
        "text_signal": bundle.accessible_name or bundle.placeholder or bundle.text,
        "data": bundle.data_attributes,
        "css": bundle.css,
        "rect": bundle.rect,
    }
    score = sum(weight for key, weight in _WEIGHTS if signals[key])

    warnings: List[str] = []
    if not (bundle.id or bundle.name):
        warnings.append("no id or name; replay relies on weaker strategies")
    if not signals["text_signal"]:
        warnings.append("no accessible name, placeholder or text")
    if not bundle.data_attributes:
        warnings.append("no data attributes")
    return round(min(1.0, score), 3), warnings


__all__ = ["BundleBuilder", "BundleReport", "RELEVANT_ATTRIBUTES", "assess_quality"]
