"""Data model definitions"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

MAX_ELEMENT_TEXT = 100


@dataclass
class BoundingBox:
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0
    left: float = 0.0
    top: float = 0.0
    right: float = 0.0
    bottom: float = 0.0

    @property
    def center(self) -> Tuple[float, float]:
        return self.left + self.width / 2, self.top + self.height / 2

    @classmethod
    def from_dict(cls, raw: Optional[Dict[str, Any]]) -> "BoundingBox":
        raw = raw or {}
        left = float(raw.get("left", raw.get("x", 0.0)) or 0.0)
        top = float(raw.get("top", raw.get("y", 0.0)) or 0.0)
        width = float(raw.get("width", 0.0) or 0.0)
        height = float(raw.get("height", 0.0) or 0.0)
        return cls(
            x=float(raw.get("x", left) or 0.0),
            y=float(raw.get("y", top) or 0.0),
            width=width,
            height=height,
            left=left,
            top=top,
            right=float(raw.get("right", left + width) or 0.0),
            bottom=float(raw.get("bottom", top + height) or 0.0),
        )


@dataclass
class ElementDescriptor:
    """One interactive element found by an observation pass.

    ``id`` is only meaningful within the pass that produced it.
    """

    id: int
    tag_name: str
    text: str = ""
    bounding_box: BoundingBox = field(default_factory=BoundingBox)
    attributes: Dict[str, str] = field(default_factory=dict)
    scrollable: bool = False

    def __post_init__(self):
        self.text = (self.text or "")[:MAX_ELEMENT_TEXT]

    @property
    def center(self) -> Tuple[float, float]:
        return self.bounding_box.center

    @classmethod
    def from_dict(cls, raw: Dict[str, Any], fallback_id: int = 0) -> "ElementDescriptor":
        attrs = raw.get("attributes") or {}
        element_id = raw.get("id")
        return cls(
            id=int(element_id) if element_id is not None else fallback_id,
            tag_name=str(raw.get("tagName") or raw.get("tag") or "").lower(),
            text=str(raw.get("text") or ""),
            bounding_box=BoundingBox.from_dict(raw.get("rect") or raw.get("boundingBox")),
            attributes={str(k): str(v) for k, v in attrs.items() if v is not None},
            scrollable=bool(raw.get("scrollable", False)),
        )


def find_element(elements: Optional[List[ElementDescriptor]], element_id: int) -> Optional[ElementDescriptor]:
    return next((el for el in elements or [] if el.id == element_id), None)


@dataclass
class ScreenshotData:
    data: str  # base64 encoded PNG
    width: Optional[int] = None
    height: Optional[int] = None


# Actions ------------------------------------------------------------------


@dataclass
class Click:
    element_id: Optional[int] = None
    x: Optional[float] = None
    y: Optional[float] = None


@dataclass
class Type:
    text: Optional[str] = None
    element_id: Optional[int] = None


@dataclass
class Scroll:
    direction: str = "down"  # up|down
    element_id: Optional[int] = None
    amount: Optional[int] = None
    x: Optional[float] = None
    y: Optional[float] = None


@dataclass
class Wait:
    duration_ms: Optional[int] = None


@dataclass
class Navigate:
    url: str = ""


@dataclass
class Done:
    pass


Action = Union[Click, Type, Scroll, Wait, Navigate, Done]


def describe_action(action: Action) -> str:
    """One-line human readable description used in step history."""
    if isinstance(action, Click):
        if action.element_id is not None:
            return f"Clicked element {action.element_id}"
        return f"Clicked at ({action.x}, {action.y})"
    if isinstance(action, Type):
        if action.element_id is not None:
            return f'Typed "{action.text}" into element {action.element_id}'
        return f'Typed "{action.text}"'
    if isinstance(action, Scroll):
        target = f" element {action.element_id}" if action.element_id is not None else ""
        return f"Scrolled{target} {action.direction}"
    if isinstance(action, Wait):
        return f"Waited {action.duration_ms if action.duration_ms is not None else 2000}ms"
    if isinstance(action, Navigate):
        return f"Navigated to {action.url}"
    if isinstance(action, Done):
        return "Task complete"
    return "Unknown action"


# Decisions ----------------------------------------------------------------


class DecisionKind(str, Enum):
    CLICK = "Click"
    TYPE = "Type"
    SCROLL = "Scroll"
    WAIT = "Wait"
    GO_BACK = "GoBack"
    NAVIGATE = "Navigate"
    ANSWER = "ANSWER"
    RETRY = "retry"

    @classmethod
    def parse(cls, raw: Any) -> Optional["DecisionKind"]:
        if not isinstance(raw, str):
            return None
        key = raw.strip().replace("_", "").replace("-", "").lower()
        for kind in cls:
            if kind.value.lower() == key:
                return kind
        return None


@dataclass
class Decision:
    """Structured output of the decision oracle."""

    kind: Optional[DecisionKind]
    args: List[Any] = field(default_factory=list)
    reasoning: str = ""
    raw_action: Optional[str] = None

    @property
    def is_answer(self) -> bool:
        return self.kind is DecisionKind.ANSWER


# Results ------------------------------------------------------------------


class RunStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class StepResult:
    """Outcome of one agent step"""

    success: bool
    message: str
    error: Optional[str] = None
    reasoning: Optional[str] = None


@dataclass
class AgentResult:
    success: bool
    summary: str
    status: RunStatus
    steps: List[StepResult] = field(default_factory=list)
    error: Optional[str] = None
    exhausted: bool = False


# Intents ------------------------------------------------------------------


@dataclass
class CaptureScreenshot:
    pass


@dataclass
class MarkElements:
    pass


@dataclass
class ClearMarkers:
    pass


@dataclass
class GetElements:
    pass


@dataclass
class ExecuteAction:
    action: Action
    elements: List[ElementDescriptor] = field(default_factory=list)
    cancel: Optional[asyncio.Event] = None


Intent = Union[CaptureScreenshot, MarkElements, ClearMarkers, GetElements, ExecuteAction]


@dataclass
class IntentResult:
    success: bool
    data: Any = None
    error: Optional[str] = None
    exception: Optional[BaseException] = field(default=None, repr=False, compare=False)

    def unwrap(self) -> Any:
        if self.success:
            return self.data
        if self.exception is not None:
            raise self.exception
        raise RuntimeError(self.error or "Unknown error")
