# replaykit/core/executor.py
from __future__ import annotations

"""Replay action executor
-------------------------
Runs one Step against the live document:

  Idle -> Resolving -> Acting -> Verifying -> Succeeded | Failed

Resolution is delegated to ElementFinder (its poll loop is the only retry).
Every call returns a StepResult; failures carry a classified reason and are
never raised to the caller.
"""

import threading
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from pydantic import ValidationError

from replaykit.core.errors import (
    ActionRejected,
    ElementNotFound,
    InvalidBundle,
    ReplayCancelled,
    ReplayError,
    StepTimeout,
    VerificationFailed,
)
from replaykit.core.models import EventKind, Step, StepResult
from replaykit.dom.protocols import Clock, EventDispatcher, Node, NodeInspector
from replaykit.selectors.finder import ElementFinder
from replaykit.utils.config import get_settings
from replaykit.utils.logger import get_logger, log_with_context
from replaykit.utils.timing import SystemClock

CLICK_SEQUENCE = ("pointerenter", "pointerover", "pointerdown", "pointerup", "click")
AFTER_VALUE_SEQUENCE = ("input", "change", "blur")
TRUTHY_VALUES = frozenset({"true", "on", "1", "yes", "checked"})
_TOGGLE_TYPES = ("checkbox", "radio")


class ExecutorState(str, Enum):
    idle = "idle"
    resolving = "resolving"
    acting = "acting"
    verifying = "verifying"
    succeeded = "succeeded"
    failed = "failed"


def is_truthy(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in TRUTHY_VALUES


# ------------- Interaction sequences -------------


def _do_click(ex: "ReplayActionExecutor", node: Node, step: Step) -> None:
    # Live geometry, not the captured coordinates
    x, y = ex.inspector.bounding_rect(node).center
    for event_type in CLICK_SEQUENCE:
        ex.dispatcher.dispatch(node, event_type, x=x, y=y)


def _do_input(ex: "ReplayActionExecutor", node: Node, step: Step) -> None:
    ex.dispatcher.dispatch(node, "focus")
    if _is_toggle(ex, node):
        ex.dispatcher.set_controlled_value(node, is_truthy(step.value), prop="checked")
    elif ex.inspector.tag_name(node).lower() == "select":
        ex.dispatcher.set_controlled_value(node, ex.option_value_for(node, step.value or ""))
    else:
        ex.dispatcher.set_controlled_value(node, step.value or "")
    for event_type in AFTER_VALUE_SEQUENCE:
        ex.dispatcher.dispatch(node, event_type)


def _do_enter(ex: "ReplayActionExecutor", node: Node, step: Step) -> None:
    if step.value is not None:
        _do_input(ex, node, step)
    ex.dispatcher.dispatch(node, "focus")
    if not ex.dispatcher.dispatch(node, "keydown", key="Enter"):
        ex.log.debug("Enter keydown default prevented by a page handler")
    ex.dispatcher.dispatch(node, "keyup", key="Enter")


_ACTIONS: Dict[EventKind, Callable[["ReplayActionExecutor", Node, Step], None]] = {
    EventKind.click: _do_click,
    EventKind.input: _do_input,
    EventKind.enter: _do_enter,
}


def _is_toggle(ex: "ReplayActionExecutor", node: Node) -> bool:
    if ex.inspector.tag_name(node).lower() != "input":
        return False
    return ex.inspector.attributes(node).get("type", "").lower() in _TOGGLE_TYPES


# ------------- Executor -------------


class ReplayActionExecutor:
    def __init__(
        self,
        finder: ElementFinder,
        dispatcher: EventDispatcher,
        inspector: NodeInspector,
        *,
        clock: Optional[Clock] = None,
        strict_verify: Optional[bool] = None,
        step_timeout_ms: Optional[float] = None,
    ) -> None:
        settings = get_settings()
        self.finder = finder
        self.dispatcher = dispatcher
        self.inspector = inspector
        self.clock = clock or finder.clock or SystemClock()
        self.strict_verify = settings.REPLAY_STRICT_VERIFY if strict_verify is None else strict_verify
        self.step_timeout_ms = settings.REPLAY_STEP_TIMEOUT_MS if step_timeout_ms is None else step_timeout_ms
        self.log = get_logger(__name__)
        self.state = ExecutorState.idle
        self.history: List[ExecutorState] = []

    # -------------- Public API --------------

    def execute(self, step: Union[Step, Mapping[str, Any]], *, cancel: Optional[threading.Event] = None) -> StepResult:
        start = self.clock.now_ms()
        self.state = ExecutorState.idle
        self.history = [ExecutorState.idle]
        if isinstance(step, Step):
            step_id = step.id
        else:
            step_id = str(step.get("id", "?")) if isinstance(step, Mapping) else "?"
        result = StepResult(step_id=step_id, success=False)
        local_log = log_with_context(self.log, step_id=step_id)

        try:
            step = self._coerce(step)
            local_log.info(f"step {step.id} [{step.event.value}] '{step.label}'")
            if step.event == EventKind.navigate:
                self._navigate(step)
            else:
                self._interact(step, result, start, cancel)
            self._enter(ExecutorState.succeeded)
            result.success = True
        except ReplayError as e:
            self._enter(ExecutorState.failed)
            result.reason = e.reason
            result.error = str(e)
        except Exception as e:
            # Host faults while acting count as refused interactions
            self._enter(ExecutorState.failed)
            result.reason = ActionRejected.reason
            result.error = f"{type(e).__name__}: {e}"
            local_log.debug("unexpected host error", exc_info=True)

        result.duration_ms = self.clock.now_ms() - start
        if result.success:
            local_log.info(
                f"step {step_id} succeeded via {result.strategy or 'navigation'} in {result.duration_ms:.0f} ms"
            )
        else:
            local_log.warning(f"step {step_id} failed ({result.reason.value}): {result.error}")
        return result

    # -------------- Phases --------------

    def _coerce(self, step: Union[Step, Mapping[str, Any]]) -> Step:
        if isinstance(step, Step):
            return step
        try:
            return Step.model_validate(step)
        except ValidationError as e:
            raise InvalidBundle(f"invalid step: {e.error_count()} validation error(s): {e.errors()[0]['msg']}") from e

    def _navigate(self, step: Step) -> None:
        url = step.bundle.page_url or step.value
        if not url:
            raise InvalidBundle("navigate step has neither a page URL nor a value")
        self._enter(ExecutorState.acting)
        self.dispatcher.navigate(url)

    def _interact(self, step: Step, result: StepResult, start: float, cancel: Optional[threading.Event]) -> None:
        self._enter(ExecutorState.resolving)
        poll_ms = self.finder.options.timeout_ms
        budget_left = self._budget_left(start)
        budget_bound = budget_left is not None and budget_left < poll_ms
        outcome = self.finder.find(step.bundle, timeout_ms=budget_left if budget_bound else poll_ms, cancel=cancel)
        result.attempts = outcome.attempts
        if outcome.cancelled:
            raise ReplayCancelled(f"step {step.id} cancelled while resolving")
        if not outcome.found and budget_bound:
            raise StepTimeout(
                f"step budget of {self.step_timeout_ms} ms ran out resolving <{step.bundle.tag}> {step.bundle.xpath}"
            )
        if not outcome.found:
            raise ElementNotFound(
                f"no strategy matched <{step.bundle.tag}> {step.bundle.xpath} after {outcome.attempts} poll(s)"
            )
        result.strategy = outcome.strategy
        self._check_budget(start)
        if cancel is not None and cancel.is_set():
            raise ReplayCancelled(f"step {step.id} cancelled before acting")

        self._enter(ExecutorState.acting)
        _ACTIONS[step.event](self, outcome.node, step)
        self._check_budget(start)

        self._enter(ExecutorState.verifying)
        result.verified = self._verify(outcome.node, step)
        if result.verified is False:
            message = f"post-condition not met for step {step.id}"
            if self.strict_verify:
                raise VerificationFailed(message)
            self.log.warning(message)

    def _verify(self, node: Node, step: Step) -> Optional[bool]:
        """None when the event kind has no checkable post-condition."""
        if step.event not in (EventKind.input, EventKind.enter) or step.value is None:
            return None
        if _is_toggle(self, node):
            return bool(self.inspector.property(node, "checked")) == is_truthy(step.value)
        live = self.inspector.property(node, "value")
        live = "" if live is None else str(live)
        if live == step.value:
            return True
        if self.inspector.tag_name(node).lower() == "select":
            return live == self.option_value_for(node, step.value)
        return False

    def option_value_for(self, select: Node, wanted: str) -> str:
        """Value of the option whose value, or else visible text, is `wanted`; `wanted` when none is."""
        options = self._options(select)
        if any(self._option_value(o) == wanted for o in options):
            return wanted
        for option in options:
            if self.inspector.text_content(option).strip() == wanted.strip():
                return self._option_value(option)
        return wanted

    def _options(self, select: Node) -> List[Node]:
        options: List[Node] = []
        for child in self.inspector.children(select):
            tag = self.inspector.tag_name(child).lower()
            if tag == "option":
                options.append(child)
            elif tag == "optgroup":
                options.extend(c for c in self.inspector.children(child) if self.inspector.tag_name(c).lower() == "option")
        return options

    def _option_value(self, option: Node) -> str:
        attrs = self.inspector.attributes(option)
        return attrs["value"] if "value" in attrs else self.inspector.text_content(option).strip()

    # -------------- Internals --------------

    def _enter(self, state: ExecutorState) -> None:
        self.state = state
        self.history.append(state)

    def _budget_left(self, start: float) -> Optional[float]:
        """None when no step budget is configured."""
        if not self.step_timeout_ms:
            return None
        return max(0.0, self.step_timeout_ms - (self.clock.now_ms() - start))

    def _check_budget(self, start: float) -> None:
        if self.step_timeout_ms and self.clock.now_ms() - start > self.step_timeout_ms:
            raise StepTimeout(f"step budget of {self.step_timeout_ms} ms exceeded")


__all__ = ["ReplayActionExecutor", "ExecutorState", "CLICK_SEQUENCE", "AFTER_VALUE_SEQUENCE", "is_truthy"]
