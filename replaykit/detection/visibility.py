# replaykit/detection/visibility.py
from __future__ import annotations

"""Visibility gate
------------------
A candidate counts as visible when it has a non-zero bounding area and its own
computed style is not display:none / visibility:hidden / opacity:0.
Hosts use `is_hidden_style` when pruning hidden subtrees from text.
"""

from typing import Mapping

from replaykit.dom.protocols import Node, NodeInspector
from replaykit.utils.logger import get_logger

log = get_logger(__name__)

# Never rendered as text
NON_TEXT_TAGS = frozenset({"script", "style", "template", "noscript", "head", "meta", "link"})


def _opacity(raw: str) -> float:
    try:
        return float(raw)
    except (TypeError, ValueError):
        return 1.0


def is_hidden_style(style: Mapping[str, str]) -> bool:
    display = (style.get("display") or "").strip().lower()
    visibility = (style.get("visibility") or "").strip().lower()
    if display == "none":
        return True
    if visibility in ("hidden", "collapse"):
        return True
    return _opacity(style.get("opacity", "1")) <= 0.0


def is_visible(inspector: NodeInspector, node: Node) -> bool:
    try:
        if inspector.bounding_rect(node).area <= 0:
            return False
        return not is_hidden_style(inspector.computed_style(node))
    except Exception as e:
        # Detached/stale handles count as not visible
        log.debug(f"visibility check failed: {e!r}")
        return False


__all__ = ["NON_TEXT_TAGS", "is_hidden_style", "is_visible"]
