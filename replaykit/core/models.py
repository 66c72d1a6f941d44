# replaykit/core/models.py
from __future__ import annotations

"""Shared data model
--------------------
Pydantic models for what gets captured and stored (bundles, steps) plus the
transient dataclasses produced during one resolution / one step.
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from replaykit.core.errors import FailureReason


# ---------- Geometry / boundaries ----------


class Rect(BaseModel):
    model_config = ConfigDict(frozen=True)

    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0

    @property
    def area(self) -> float:
        return max(0.0, self.width) * max(0.0, self.height)

    @property
    def center(self) -> Tuple[float, float]:
        return self.x + self.width / 2, self.y + self.height / 2


class BoundaryHop(BaseModel):
    """One iframe or shadow-host hop between a scope and the captured node."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["iframe", "shadow"]
    selector: Optional[str] = None
    xpath: Optional[str] = None
    id: Optional[str] = None
    name: Optional[str] = None
    index: int = Field(default=0, ge=0, description="Position among same-kind hosts in the enclosing scope")


# ---------- Locator bundle ----------


class AttributeMap(dict):
    """dict that refuses in-place changes once built."""

    def _read_only(self, *args, **kwargs):
        raise TypeError("bundle attributes are read-only")

    __setitem__ = __delitem__ = _read_only
    clear = pop = popitem = setdefault = update = _read_only
    __ior__ = _read_only

    def __reduce__(self):
        return type(self), (dict(self),)


class LocatorBundle(BaseModel):
    """
    Immutable multi-signal descriptor of a captured element.
    `xpath` is the only field guaranteed to be non-empty.
    """
    model_config = ConfigDict(frozen=True)

    tag: str
    id: Optional[str] = None
    name: Optional[str] = None
    placeholder: Optional[str] = None
    title: Optional[str] = None
    href: Optional[str] = None
    src: Optional[str] = None
    role: Optional[str] = None
    accessible_name: Optional[str] = None
    text: Optional[str] = None
    classes: FrozenSet[str] = Field(default_factory=frozenset)
    attributes: Dict[str, str] = Field(default_factory=AttributeMap)
    xpath: str
    css: Optional[str] = None
    rect: Optional[Rect] = None
    page_url: Optional[str] = None
    boundary_chain: Tuple[BoundaryHop, ...] = ()

    @field_validator("tag")
    @classmethod
    def _tag_lower(cls, v: str) -> str:
        v = v.strip().lower()
        if not v:
            raise ValueError("bundle.tag cannot be empty")
        return v

    @field_validator("xpath")
    @classmethod
    def _xpath_non_empty(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("bundle.xpath cannot be empty")
        return v

    @field_validator("attributes")
    @classmethod
    def _freeze_attributes(cls, v: Dict[str, str]) -> Dict[str, str]:
        return AttributeMap(v)

    @field_validator(
        "id", "name", "placeholder", "title", "href", "src", "role",
        "accessible_name", "text", "css", "page_url",
        mode="before",
    )
    @classmethod
    def _blank_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @property
    def data_attributes(self) -> Dict[str, str]:
        return {k: v for k, v in self.attributes.items() if k.startswith("data-")}


# ---------- Steps ----------


class EventKind(str, Enum):
    click = "click"
    input = "input"
    enter = "enter"
    navigate = "navigate"


class Step(BaseModel):
    id: str
    label: str = ""
    event: EventKind
    bundle: LocatorBundle
    value: Optional[str] = None
    x: Optional[float] = None
    y: Optional[float] = None

    @field_validator("value", mode="before")
    @classmethod
    def _stringify_value(cls, v):
        if isinstance(v, bool):
            return "true" if v else "false"
        if isinstance(v, (int, float)):
            return str(v)
        return v


class Scenario(BaseModel):
    title: str = ""
    steps: List[Step] = Field(default_factory=list)


# ---------- Transient results ----------


@dataclass
class StrategyResult:
    strategy: str
    confidence: float
    node: Any = None
    candidates: int = 0

    @property
    def matched(self) -> bool:
        return self.node is not None


@dataclass
class ResolutionOutcome:
    node: Any = None
    strategy: Optional[str] = None
    confidence: float = 0.0
    elapsed_ms: float = 0.0
    attempts: int = 0
    attempted: List[str] = field(default_factory=list)
    cancelled: bool = False

    @property
    def found(self) -> bool:
        return self.node is not None


@dataclass
class StepResult:
    step_id: str
    success: bool
    duration_ms: float = 0.0
    reason: Optional[FailureReason] = None
    error: Optional[str] = None
    strategy: Optional[str] = None
    attempts: int = 0
    verified: Optional[bool] = None

    @property
    def retryable(self) -> bool:
        return self.reason is not None and self.reason.retryable

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["reason"] = self.reason.value if self.reason else None
        return d


__all__ = [
    "Rect",
    "BoundaryHop",
    "AttributeMap",
    "LocatorBundle",
    "EventKind",
    "Step",
    "Scenario",
    "StrategyResult",
    "ResolutionOutcome",
    "StepResult",
]
