"""Protocol session: turns abstract actions into remote-debugging commands."""

import asyncio
import logging
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .config import AgentConfig
from .errors import ElementNotFound, InvalidArgs, NotConnected, ProtectedTarget, ProtocolError, UnknownAction
from .interfaces import DebuggerTransport, HostRegistry
from .models import (
    Action,
    Click,
    Done,
    ElementDescriptor,
    Navigate,
    ScreenshotData,
    Scroll,
    Type,
    Wait,
    find_element,
)

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "1.3"
DEFAULT_SCROLL_AMOUNT = 300
DEFAULT_SCROLL_POINT = (400, 300)

PROTECTED_PREFIXES = (
    "chrome://",
    "chrome-extension://",
    "chrome-search://",
    "devtools://",
    "edge://",
    "view-source:",
)

# CDP Input.dispatchKeyEvent modifier bits
MODIFIER_BITS = {"Alt": 1, "Control": 2, "Meta": 4, "Shift": 8}
MODIFIER_KEYS = {
    "Alt": ("AltLeft", 18),
    "Control": ("ControlLeft", 17),
    "Meta": ("MetaLeft", 91),
    "Shift": ("ShiftLeft", 16),
}


def is_protected_url(url: Optional[str]) -> bool:
    return (url or "").lower().startswith(PROTECTED_PREFIXES)


class SessionState(str, Enum):
    UNATTACHED = "unattached"
    ATTACHING = "attaching"
    ATTACHED = "attached"


class ProtocolSession:
    """One attach/detach lifecycle against one tab.

    A session is single use: once it has been disconnected (or detached by the
    host) it stays unattached and a new one must be built.
    """

    def __init__(
        self,
        tab_id: int,
        transport: DebuggerTransport,
        registry: HostRegistry,
        config: Optional[AgentConfig] = None,
    ):
        self.tab_id = tab_id
        self.transport = transport
        self.registry = registry
        self.config = config or AgentConfig()
        self.state = SessionState.UNATTACHED
        self._used = False

    @property
    def connected(self) -> bool:
        return self.state is SessionState.ATTACHED

    async def connect(self) -> None:
        if self._used:
            raise NotConnected(f"Session for tab {self.tab_id} was already used; create a new one")
        self._used = True

        info = await self.registry.get_tab(self.tab_id)
        if info is None:
            raise NotConnected(f"Tab {self.tab_id} no longer exists")
        if is_protected_url(info.url):
            raise ProtectedTarget(info.url)

        logger.info(f"Connecting to tab {self.tab_id} ({info.url})")
        self.state = SessionState.ATTACHING
        try:
            await self.transport.attach(self.tab_id, PROTOCOL_VERSION)
            self.state = SessionState.ATTACHED
            await self.send("Page.enable")
        except Exception as exc:
            logger.error(f"Failed to connect to tab {self.tab_id}: {exc}")
            await self.disconnect()
            if isinstance(exc, NotConnected):
                raise
            raise NotConnected(f"Attach to tab {self.tab_id} failed: {exc}") from exc

    async def disconnect(self) -> None:
        """Detach from the tab. Safe to call any number of times."""
        if self.state is SessionState.UNATTACHED:
            return
        self.state = SessionState.UNATTACHED
        try:
            await self.transport.detach(self.tab_id)
            logger.info(f"Disconnected from tab {self.tab_id}")
        except Exception as exc:
            logger.warning(f"Error disconnecting from tab {self.tab_id}: {exc}")

    def mark_detached(self) -> None:
        """The host revoked debugging access; nothing left to detach."""
        self._used = True
        self.state = SessionState.UNATTACHED

    async def send(self, method: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        if not self.connected:
            raise NotConnected(f"CDP session for tab {self.tab_id} not connected")
        return await self.transport.send_command(self.tab_id, method, params) or {}

    # Commands -------------------------------------------------------------

    async def capture_screenshot(self) -> ScreenshotData:
        result = await self.send("Page.captureScreenshot", {"format": "png", "captureBeyondViewport": False})
        width = height = None
        try:
            metrics = await self.send("Page.getLayoutMetrics")
            viewport = metrics.get("cssVisualViewport") or metrics.get("layoutViewport") or {}
            width = int(viewport["clientWidth"]) if "clientWidth" in viewport else None
            height = int(viewport["clientHeight"]) if "clientHeight" in viewport else None
        except NotConnected:
            raise
        except Exception as exc:
            logger.debug(f"Layout metrics unavailable for tab {self.tab_id}: {exc}")
        return ScreenshotData(data=result.get("data", ""), width=width, height=height)

    async def simulate_click(self, x: float, y: float) -> None:
        x, y = round(x), round(y)
        logger.info(f"Simulating click at ({x}, {y})")
        await self.send("Input.dispatchMouseEvent", {"type": "mouseMoved", "x": x, "y": y, "button": "none", "clickCount": 0})
        await self.send("Input.dispatchMouseEvent", {"type": "mousePressed", "x": x, "y": y, "button": "left", "clickCount": 1})
        await self._sleep_ms(self.config.timings.click_settle_ms)
        await self.send("Input.dispatchMouseEvent", {"type": "mouseReleased", "x": x, "y": y, "button": "left", "clickCount": 1})

    async def simulate_type(self, text: str) -> None:
        await self.send("Input.insertText", {"text": text})

    async def select_all(self) -> None:
        modifier = self.config.select_all_modifier
        code, key_code = MODIFIER_KEYS.get(modifier, MODIFIER_KEYS["Control"])
        bits = MODIFIER_BITS.get(modifier, MODIFIER_BITS["Control"])
        await self.send("Input.dispatchKeyEvent", {
            "type": "rawKeyDown", "key": modifier, "code": code, "windowsVirtualKeyCode": key_code, "modifiers": bits,
        })
        await self.send("Input.dispatchKeyEvent", {
            "type": "rawKeyDown", "key": "a", "code": "KeyA", "windowsVirtualKeyCode": 65, "modifiers": bits,
            "commands": ["selectAll"],
        })
        await self.send("Input.dispatchKeyEvent", {
            "type": "keyUp", "key": "a", "code": "KeyA", "windowsVirtualKeyCode": 65, "modifiers": bits,
        })
        await self.send("Input.dispatchKeyEvent", {
            "type": "keyUp", "key": modifier, "code": code, "windowsVirtualKeyCode": key_code, "modifiers": 0,
        })

    async def simulate_scroll(self, direction: str, amount: int, x: float, y: float) -> None:
        delta_y = amount if direction == "down" else -amount
        logger.info(f"Scrolling {direction} by {abs(delta_y)}px at ({x}, {y})")
        await self.send("Input.dispatchMouseEvent", {
            "type": "mouseWheel", "x": round(x), "y": round(y), "deltaX": 0, "deltaY": delta_y,
        })

    # Actions --------------------------------------------------------------

    async def execute_action(
        self,
        action: Action,
        elements: Optional[List[ElementDescriptor]] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> None:
        """Execute one action; raises on failure."""
        logger.info(f"Executing action on tab {self.tab_id}: {action}")
        if isinstance(action, Click):
            await self._click(action, elements)
        elif isinstance(action, Type):
            await self._type(action, elements)
        elif isinstance(action, Scroll):
            await self._scroll(action, elements)
        elif isinstance(action, Wait):
            duration = action.duration_ms if action.duration_ms is not None else self.config.timings.default_wait_ms
            await self._wait(duration, cancel)
        elif isinstance(action, Navigate):
            await self._navigate(action)
        elif isinstance(action, Done):
            logger.info("Task marked as done")
        else:
            raise UnknownAction(action)

    def _element_center(self, element_id: int, elements: Optional[List[ElementDescriptor]]) -> Tuple[float, float]:
        element = find_element(elements, element_id)
        if element is None:
            raise ElementNotFound(element_id)
        return element.center

    async def _click(self, action: Click, elements: Optional[List[ElementDescriptor]]) -> None:
        if action.element_id is not None:
            x, y = self._element_center(action.element_id, elements)
        elif action.x is not None and action.y is not None:
            x, y = action.x, action.y
        else:
            raise InvalidArgs("Click action requires either elementId or x,y coordinates")
        await self.simulate_click(x, y)

    async def _type(self, action: Type, elements: Optional[List[ElementDescriptor]]) -> None:
        if not action.text:
            raise InvalidArgs("Type action requires text")
        if action.element_id is not None:
            x, y = self._element_center(action.element_id, elements)
            await self.simulate_click(x, y)
            await self._sleep_ms(self.config.timings.type_focus_ms)
            await self.select_all()
        await self.simulate_type(action.text)

    async def _scroll(self, action: Scroll, elements: Optional[List[ElementDescriptor]]) -> None:
        if action.direction not in ("up", "down"):
            raise InvalidArgs(f"Scroll direction must be 'up' or 'down', got {action.direction!r}")
        amount = action.amount if action.amount else DEFAULT_SCROLL_AMOUNT
        if action.element_id is not None:
            x, y = self._element_center(action.element_id, elements)
        elif action.x is not None and action.y is not None:
            x, y = action.x, action.y
        else:
            x, y = DEFAULT_SCROLL_POINT
        await self.simulate_scroll(action.direction, amount, x, y)

    async def _wait(self, duration_ms: int, cancel: Optional[asyncio.Event] = None) -> None:
        logger.info(f"Waiting for {duration_ms}ms")
        if cancel is None:
            await self._sleep_ms(duration_ms)
            return
        try:
            await asyncio.wait_for(cancel.wait(), timeout=max(0, duration_ms) / 1000)
            logger.info("Wait interrupted by stop request")
        except asyncio.TimeoutError:
            pass

    async def _navigate(self, action: Navigate) -> None:
        if not action.url:
            raise InvalidArgs("Navigate action requires url")
        result = await self.send("Page.navigate", {"url": action.url})
        error_text = result.get("errorText")
        if error_text:
            raise ProtocolError(f"Navigation to {action.url} failed: {error_text}", method="Page.navigate")
        await self._sleep_ms(self.config.timings.navigate_settle_ms)

    @staticmethod
    async def _sleep_ms(ms: int) -> None:
        await asyncio.sleep(max(0, ms) / 1000)
