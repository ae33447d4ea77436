"""Host lifecycle events and the active-tab selector."""

from dataclasses import dataclass
from typing import List, Optional, Union


@dataclass(frozen=True)
class ActiveSelector:
    """Names the window/tab intents are routed to."""

    window_id: Optional[int] = None
    tab_id: Optional[int] = None


@dataclass(frozen=True)
class TabActivated:
    tab_id: int
    window_id: int


@dataclass(frozen=True)
class TabUpdated:
    tab_id: int
    url: str


@dataclass(frozen=True)
class TabRemoved:
    tab_id: int
    window_id: Optional[int] = None


@dataclass(frozen=True)
class WindowCreated:
    window_id: int


@dataclass(frozen=True)
class WindowRemoved:
    window_id: int


@dataclass(frozen=True)
class DebuggerDetached:
    tab_id: int
    reason: str = ""


LifecycleEvent = Union[TabActivated, TabUpdated, TabRemoved, WindowCreated, WindowRemoved, DebuggerDetached]


@dataclass
class TabInfo:
    """Host view of a tab."""

    tab_id: int
    window_id: int
    url: str = ""
    active: bool = False


@dataclass
class WindowInfo:
    window_id: int
    focused: bool = False
    tabs: Optional[List[TabInfo]] = None
