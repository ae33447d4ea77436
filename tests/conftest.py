"""In-memory fakes of the host, debugger transport, observer and oracle."""

import asyncio
from typing import Any, Dict, List, Optional, Tuple

import pytest

from voyager.config import AgentConfig, Timings
from voyager.errors import ContentUnresponsive
from voyager.events import TabInfo, WindowInfo
from voyager.models import BoundingBox, Decision, DecisionKind, ElementDescriptor


def make_element(element_id: int, left: float = 0, top: float = 0, width: float = 100, height: float = 30,
                 tag: str = "button", text: str = "", scrollable: bool = False) -> ElementDescriptor:
    box = BoundingBox(x=left, y=top, width=width, height=height, left=left, top=top,
                      right=left + width, bottom=top + height)
    return ElementDescriptor(id=element_id, tag_name=tag, text=text or f"element {element_id}",
                             bounding_box=box, scrollable=scrollable)


class FakeHost:
    """Host registry and debugger transport in one, recording every command."""

    def __init__(self):
        self.windows: Dict[int, List[int]] = {}
        self.urls: Dict[int, str] = {}
        self.focused_window: Optional[int] = None
        self.active: Dict[int, int] = {}
        self.attached: Dict[int, bool] = {}
        self.attach_calls: List[int] = []
        self.detach_calls: List[int] = []
        self.commands: List[Tuple[int, str, Optional[Dict[str, Any]]]] = []
        self.responses: Dict[str, Dict[str, Any]] = {
            "Page.captureScreenshot": {"data": "iVBORw0KGgo="},
            "Page.getLayoutMetrics": {"cssVisualViewport": {"clientWidth": 1280, "clientHeight": 720}},
        }
        self.fail_attach: Optional[Exception] = None
        self.fail_commands: Dict[str, Exception] = {}

    def add_tab(self, window_id: int, tab_id: int, url: str = "https://example.com", active: bool = True) -> None:
        self.windows.setdefault(window_id, []).append(tab_id)
        self.urls[tab_id] = url
        if active:
            self.active[window_id] = tab_id
            self.focused_window = window_id

    def remove_tab(self, tab_id: int) -> None:
        for window_id, tabs in self.windows.items():
            if tab_id in tabs:
                tabs.remove(tab_id)
                if self.active.get(window_id) == tab_id:
                    self.active.pop(window_id)
                    if tabs:
                        self.active[window_id] = tabs[-1]
        self.urls.pop(tab_id, None)
        self.attached.pop(tab_id, None)

    def _window_of(self, tab_id: int) -> Optional[int]:
        return next((w for w, tabs in self.windows.items() if tab_id in tabs), None)

    def _info(self, tab_id: int) -> TabInfo:
        window_id = self._window_of(tab_id)
        return TabInfo(tab_id=tab_id, window_id=window_id, url=self.urls[tab_id],
                       active=self.active.get(window_id) == tab_id)

    # HostRegistry

    async def list_windows(self) -> List[WindowInfo]:
        return [
            WindowInfo(window_id=w, focused=w == self.focused_window, tabs=[self._info(t) for t in tabs])
            for w, tabs in self.windows.items()
        ]

    async def query_active_tab(self) -> Optional[TabInfo]:
        if self.focused_window is None or self.focused_window not in self.active:
            return None
        return self._info(self.active[self.focused_window])

    async def get_tab(self, tab_id: int) -> Optional[TabInfo]:
        if tab_id not in self.urls:
            return None
        return self._info(tab_id)

    # DebuggerTransport

    async def attach(self, tab_id: int, protocol_version: str) -> None:
        self.attach_calls.append(tab_id)
        if self.fail_attach is not None:
            raise self.fail_attach
        self.attached[tab_id] = True

    async def detach(self, tab_id: int) -> None:
        self.detach_calls.append(tab_id)
        self.attached[tab_id] = False

    async def send_command(self, tab_id: int, method: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        self.commands.append((tab_id, method, params))
        if method in self.fail_commands:
            raise self.fail_commands[method]
        return dict(self.responses.get(method, {}))

    def methods(self, tab_id: Optional[int] = None) -> List[str]:
        return [m for t, m, _ in self.commands if tab_id is None or t == tab_id]

    def input_commands(self) -> List[Tuple[str, Dict[str, Any]]]:
        return [(m, p) for _, m, p in self.commands if m.startswith("Input.")]


class FakeObserver:
    """Element observer; every pass renumbers from 0 like the real one."""

    def __init__(self, count: int = 3):
        self.count = count
        self.observe_calls: List[int] = []
        self.clear_calls: List[int] = []
        self.fail_observe = False
        self.hang_clear = False

    async def observe(self, tab_id: int) -> List[ElementDescriptor]:
        self.observe_calls.append(tab_id)
        if self.fail_observe:
            raise ContentUnresponsive(f"Content on tab {tab_id} is not responding")
        return [make_element(i, left=10 * i, top=20 * i) for i in range(self.count)]

    async def clear_markers(self, tab_id: int) -> None:
        self.clear_calls.append(tab_id)
        if self.hang_clear:
            await asyncio.Event().wait()


class ScriptedOracle:
    """Returns the scripted decisions in order, then repeats the last one."""

    def __init__(self, decisions: List[Decision], on_decide=None):
        self.decisions = list(decisions)
        self.calls: List[Dict[str, Any]] = []
        self.on_decide = on_decide
        self.error: Optional[Exception] = None

    async def decide(self, screenshot_b64: str, elements: List[ElementDescriptor], query: str, history: str) -> Decision:
        self.calls.append({"screenshot": screenshot_b64, "elements": elements, "query": query, "history": history})
        if self.on_decide is not None:
            self.on_decide(len(self.calls))
        if self.error is not None:
            raise self.error
        index = min(len(self.calls), len(self.decisions)) - 1
        return self.decisions[index]


def decision(kind: Optional[DecisionKind], *args: Any, reasoning: str = "because") -> Decision:
    return Decision(kind=kind, args=list(args), reasoning=reasoning, raw_action=kind.value if kind else None)


@pytest.fixture
def config() -> AgentConfig:
    return AgentConfig(openai_api_key="test", max_steps=5, select_all_modifier="Control", timings=Timings.instant())


@pytest.fixture
def host() -> FakeHost:
    fake = FakeHost()
    fake.add_tab(1, 101, "https://example.com")
    return fake


@pytest.fixture
def observer() -> FakeObserver:
    return FakeObserver()
