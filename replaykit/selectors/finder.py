# replaykit/selectors/finder.py
from __future__ import annotations

"""Element finder
-----------------
Resolves a LocatorBundle against the live document:

  Polling -> Resolved | TimedOut

Every poll re-descends the recorded boundary chain, then runs the strategy chain
from the top. The first strategy with at least one visible candidate wins.
Between polls the finder sleeps on the clock; a set cancel event wakes it up
and ends the resolution immediately. There is no best-guess result: absence of
a match is always reported explicitly.
"""

import threading
from dataclasses import dataclass
from typing import List, Optional

from replaykit.core.errors import ElementNotFound, ReplayCancelled
from replaykit.core.models import BoundaryHop, LocatorBundle, ResolutionOutcome, StrategyResult
from replaykit.detection.boundaries import hosts_in_scope
from replaykit.detection.visibility import is_visible
from replaykit.dom.protocols import Clock, DocumentAccessor, Node, NodeInspector, Scope
from replaykit.selectors.paths import css_string, evaluate_xpath
from replaykit.selectors.strategies import StrategyContext, StrategyRegistry, pick_best
from replaykit.utils.config import get_settings
from replaykit.utils.logger import get_logger
from replaykit.utils.timing import SystemClock


@dataclass
class FinderOptions:
    timeout_ms: float = 2000
    poll_interval_ms: float = 150
    require_visible: bool = True
    fuzzy_threshold: float = 0.4
    bbox_max_distance: float = 200.0

    @classmethod
    def from_settings(cls, settings=None) -> "FinderOptions":
        s = settings or get_settings()
        return cls(
            timeout_ms=s.FINDER_TIMEOUT_MS,
            poll_interval_ms=s.FINDER_POLL_INTERVAL_MS,
            require_visible=s.FINDER_REQUIRE_VISIBLE,
            fuzzy_threshold=s.FINDER_FUZZY_THRESHOLD,
            bbox_max_distance=s.FINDER_BBOX_MAX_DISTANCE,
        )


class ElementFinder:
    def __init__(
        self,
        accessor: DocumentAccessor,
        inspector: NodeInspector,
        *,
        registry: Optional[StrategyRegistry] = None,
        options: Optional[FinderOptions] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        settings = get_settings()
        self.accessor = accessor
        self.inspector = inspector
        self.registry = registry or StrategyRegistry.from_settings(settings)
        self.options = options or FinderOptions.from_settings(settings)
        self.clock = clock or SystemClock()
        self.log = get_logger(__name__)

    # -------------- Public API --------------

    def find(
        self,
        bundle: LocatorBundle,
        *,
        timeout_ms: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> ResolutionOutcome:
        """Poll until a strategy matches or the timeout elapses. Never raises for absence."""
        timeout = self.options.timeout_ms if timeout_ms is None else timeout_ms
        start = self.clock.now_ms()
        outcome = ResolutionOutcome()

        while True:
            if cancel is not None and cancel.is_set():
                outcome.cancelled = True
                break

            outcome.attempts += 1
            result = self.attempt(bundle, attempted=outcome.attempted)
            if result is not None:
                outcome.node = result.node
                outcome.strategy = result.strategy
                outcome.confidence = result.confidence
                break

            remaining = timeout - (self.clock.now_ms() - start)
            if remaining <= 0:
                self.log.debug(f"no match for {bundle.tag} {bundle.xpath} after {outcome.attempts} poll(s)")
                break
            if not self.clock.sleep_ms(min(self.options.poll_interval_ms, remaining), cancel):
                outcome.cancelled = True
                break

        outcome.elapsed_ms = self.clock.now_ms() - start
        return outcome

    def resolve(
        self,
        bundle: LocatorBundle,
        *,
        timeout_ms: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> Node:
        """Like find(), but raises ElementNotFound / ReplayCancelled instead of returning absence."""
        outcome = self.find(bundle, timeout_ms=timeout_ms, cancel=cancel)
        if outcome.cancelled:
            raise ReplayCancelled(f"resolution of {bundle.xpath} cancelled")
        if not outcome.found:
            raise ElementNotFound(
                f"no strategy matched {bundle.tag} {bundle.xpath} within {outcome.elapsed_ms:.0f} ms"
            )
        return outcome.node

    def attempt(self, bundle: LocatorBundle, *, attempted: Optional[List[str]] = None) -> Optional[StrategyResult]:
        """One pass over the strategy chain in the current document state."""
        scope = self.descend(bundle)
        ctx = StrategyContext(
            bundle=bundle,
            scope=scope,
            accessor=self.accessor,
            inspector=self.inspector,
            fuzzy_threshold=self.options.fuzzy_threshold,
            bbox_max_distance=self.options.bbox_max_distance,
        )
        for strategy in self.registry:
            if attempted is not None and strategy.name not in attempted:
                attempted.append(strategy.name)
            try:
                scored = strategy.collect(ctx)
            except Exception as e:
                self.log.debug(f"strategy {strategy.name} raised: {e!r}")
                continue
            if self.options.require_visible:
                scored = [(n, s) for n, s in scored if is_visible(self.inspector, n)]
            if not scored:
                self.log.debug(f"strategy {strategy.name}: miss")
                continue

            node = pick_best(bundle, scored, self.inspector)
            self.log.debug(f"strategy {strategy.name}: hit ({len(scored)} candidate(s))")
            return StrategyResult(
                strategy=strategy.name,
                confidence=strategy.confidence,
                node=node,
                candidates=len(scored),
            )
        return None

    # -------------- Boundaries --------------

    def descend(self, bundle: LocatorBundle) -> Scope:
        """Re-enter the recorded iframe/shadow hops; a missing host keeps the enclosing scope."""
        scope = self.accessor.root()
        for depth, hop in enumerate(bundle.boundary_chain):
            host = self._locate_host(scope, hop)
            inner = self.accessor.enter(host) if host is not None else None
            if inner is None:
                self.log.debug(f"boundary hop {depth} ({hop.kind}) not found; searching enclosing scope")
                continue
            scope = inner
        return scope

    def _locate_host(self, scope: Scope, hop: BoundaryHop) -> Optional[Node]:
        tag = "iframe" if hop.kind == "iframe" else ""
        lookups = []
        if hop.id:
            lookups.append(lambda: self.accessor.query(f"{tag}[id={css_string(hop.id)}]", scope))
        if hop.name:
            lookups.append(lambda: self.accessor.query(f"{tag}[name={css_string(hop.name)}]", scope))
        if hop.selector:
            lookups.append(lambda: self.accessor.query(hop.selector, scope))
        if hop.xpath:
            lookups.append(lambda: evaluate_xpath(
                hop.xpath, scope, self.accessor, self.inspector,
                fallback=lambda expr: self.accessor.query(expr, scope, xpath=True),
            ))

        for lookup in lookups:
            try:
                hits = [h for h in lookup() if self.accessor.enter(h) is not None]
            except Exception as e:
                self.log.debug(f"boundary lookup failed: {e!r}")
                continue
            if hits:
                return hits[0]

        try:
            hosts = hosts_in_scope(self.accessor, self.inspector, scope, hop.kind)
        except Exception as e:
            self.log.debug(f"host enumeration failed: {e!r}")
            hosts = []
        if 0 <= hop.index < len(hosts):
            return hosts[hop.index]
        return None


__all__ = ["FinderOptions", "ElementFinder"]
