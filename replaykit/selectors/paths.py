# replaykit/selectors/paths.py
from __future__ import annotations

"""Structural paths
-------------------
Positional XPath building and a host-independent evaluator for the XPath forms
this package emits, plus best-effort CSS selector synthesis.

Supported XPath forms:
  /html/body/div[2]/input          positional, relative to a scope root
  //*[@id="x"] , //input[@name="q"] single attribute predicate
Anything else is delegated to the host (or rejected when no fallback is given).
"""

import re
from typing import Callable, List, Optional

from replaykit.dom.protocols import DocumentAccessor, Node, NodeInspector, Scope

_POSITIONAL_STEP = re.compile(r"/([A-Za-z][\w\-:]*|\*)(?:\[(\d+)\])?")
_POSITIONAL = re.compile(r"^(?:/(?:[A-Za-z][\w\-:]*|\*)(?:\[\d+\])?)+$")
_ATTR_FORM = re.compile(r"""^//([A-Za-z][\w\-:]*|\*)\[@([\w\-:]+)\s*=\s*(?:"([^"]*)"|'([^']*)')\]$""")

GENERATED_CLASS = re.compile(r"^(css-|sc-|jsx-|_)")
_GENERATED_ID = re.compile(r"(^\d)|(\d{4,})|([:]r\d+[:])")


# ---------- CSS helpers ----------


def css_escape(ident: str) -> str:
    out: List[str] = []
    for i, ch in enumerate(ident):
        if ch.isascii() and (ch.isalnum() or ch in "-_"):
            if i == 0 and ch.isdigit():
                out.append(f"\\{ord(ch):x} ")
            else:
                out.append(ch)
        elif ord(ch) >= 0x80:
            out.append(ch)
        else:
            out.append("\\" + ch)
    return "".join(out)


def css_string(value: str) -> str:
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


def stable_classes(classes, limit: int = 3) -> List[str]:
    return [c for c in sorted(classes) if c and not GENERATED_CLASS.match(c)][:limit]


def looks_generated_id(value: str) -> bool:
    return bool(_GENERATED_ID.search(value))


# ---------- XPath building ----------


def build_xpath(accessor: DocumentAccessor, inspector: NodeInspector, node: Node) -> str:
    """
    Positional path from the node's scope root, e.g. /html/body/div[2]/input.
    An index is emitted only when the parent has several children with the same tag.
    """
    top_level = inspector.children(accessor.scope_of(node))
    parts: List[str] = []
    current: Optional[Node] = node
    while current is not None:
        tag = inspector.tag_name(current).lower()
        parent = inspector.parent(current)
        siblings = inspector.children(parent) if parent is not None else top_level
        same = [s for s in siblings if inspector.tag_name(s).lower() == tag]
        if len(same) > 1:
            index = next((i for i, s in enumerate(same, start=1) if inspector.same_node(s, current)), 1)
            parts.append(f"{tag}[{index}]")
        else:
            parts.append(tag)
        current = parent
    parts.reverse()
    return "/" + "/".join(parts)


# ---------- XPath evaluation ----------


def evaluate_xpath(
    expr: str,
    scope: Scope,
    accessor: DocumentAccessor,
    inspector: NodeInspector,
    fallback: Optional[Callable[[str], List[Node]]] = None,
) -> List[Node]:
    expr = expr.strip()
    if _POSITIONAL.match(expr):
        return _walk_positional(expr, scope, inspector)

    m = _ATTR_FORM.match(expr)
    if m:
        tag, attr = m.group(1), m.group(2)
        value = m.group(3) if m.group(3) is not None else m.group(4)
        tag_sel = "" if tag == "*" else tag.lower()
        return accessor.query(f"{tag_sel}[{attr}={css_string(value)}]", scope)

    if fallback is None:
        raise ValueError(f"unsupported xpath expression: {expr}")
    return fallback(expr)


def _walk_positional(expr: str, scope: Scope, inspector: NodeInspector) -> List[Node]:
    contexts: List[Node] = [scope]
    for m in _POSITIONAL_STEP.finditer(expr):
        tag, idx = m.group(1).lower(), m.group(2)
        nxt: List[Node] = []
        for ctx in contexts:
            kids = inspector.children(ctx)
            if tag != "*":
                kids = [k for k in kids if inspector.tag_name(k).lower() == tag]
            if idx is None:
                nxt.extend(kids)
            else:
                i = int(idx)
                if 1 <= i <= len(kids):
                    nxt.append(kids[i - 1])
        contexts = nxt
        if not contexts:
            break
    return contexts


# ---------- CSS selector synthesis ----------


def build_css_selector(accessor: DocumentAccessor, inspector: NodeInspector, node: Node) -> Optional[str]:
    """
    Best-effort unique selector from id/class combinations inside the node's scope.
    Returns None when nothing plausible is unique.
    """
    scope = accessor.scope_of(node)
    tag = inspector.tag_name(node).lower()
    attrs = inspector.attributes(node)

    def unique(selector: str) -> bool:
        hits = accessor.query(selector, scope)
        return len(hits) == 1 and inspector.same_node(hits[0], node)

    node_id = attrs.get("id")
    if node_id and not looks_generated_id(node_id):
        sel = f"#{css_escape(node_id)}"
        if unique(sel):
            return sel

    classes = stable_classes(inspector.class_list(node))
    if classes:
        sel = tag + "".join(f".{css_escape(c)}" for c in classes)
        if unique(sel):
            return sel

        parent = inspector.parent(node)
        if parent is not None:
            parent_id = inspector.attributes(parent).get("id")
            if parent_id and not looks_generated_id(parent_id):
                scoped = f"#{css_escape(parent_id)} > {sel}"
                if unique(scoped):
                    return scoped
    return None


__all__ = [
    "GENERATED_CLASS",
    "css_escape",
    "css_string",
    "stable_classes",
    "looks_generated_id",
    "build_xpath",
    "evaluate_xpath",
    "build_css_selector",
]
