"""Session tree: the single authority over windows, tabs and the active tab.

Windows and tabs are held in flat maps keyed by id. Host lifecycle events
arrive through a bounded queue and are applied in arrival order by one
dispatcher; intents are routed to the tab named by the current
``ActiveSelector``.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from .config import AgentConfig
from .context import BrowserContext
from .errors import InvalidArgs, NoActiveTab
from .events import (
    ActiveSelector,
    DebuggerDetached,
    LifecycleEvent,
    TabActivated,
    TabRemoved,
    TabUpdated,
    WindowCreated,
    WindowRemoved,
)
from .interfaces import DebuggerTransport, ElementObserver, HostRegistry
from .models import (
    CaptureScreenshot,
    ClearMarkers,
    ExecuteAction,
    GetElements,
    Intent,
    IntentResult,
    MarkElements,
)
from .tab import TabState

logger = logging.getLogger(__name__)


class SessionTree:
    def __init__(
        self,
        registry: HostRegistry,
        transport: DebuggerTransport,
        observer: ElementObserver,
        config: Optional[AgentConfig] = None,
    ):
        self.registry = registry
        self.transport = transport
        self.observer = observer
        self.config = config or AgentConfig()
        self.contexts: Dict[int, BrowserContext] = {}
        self.tab_windows: Dict[int, int] = {}
        self.active = ActiveSelector()
        self.events: "asyncio.Queue[LifecycleEvent]" = asyncio.Queue(maxsize=self.config.event_queue_size)

    # Arena helpers --------------------------------------------------------

    def _ensure_context(self, window_id: int) -> BrowserContext:
        context = self.contexts.get(window_id)
        if context is None:
            context = BrowserContext(window_id, init_timeout_ms=self.config.timings.tab_init_timeout_ms)
            self.contexts[window_id] = context
        return context

    async def _create_tab(self, context: BrowserContext, tab_id: int, url: str = "") -> TabState:
        logger.info(f"Creating tab {tab_id} in window {context.window_id} ({url})")
        tab = TabState(
            tab_id,
            context,
            url,
            transport=self.transport,
            registry=self.registry,
            observer=self.observer,
            config=self.config,
        )
        self.tab_windows[tab_id] = context.window_id
        return await context.add_tab(tab)

    def find_tab(self, tab_id: int) -> Optional[TabState]:
        window_id = self.tab_windows.get(tab_id)
        if window_id is None:
            return None
        context = self.contexts.get(window_id)
        return context.get_tab(tab_id) if context else None

    def _select(self, window_id: Optional[int], tab_id: Optional[int]) -> None:
        self.active = ActiveSelector(window_id=window_id, tab_id=tab_id)

    # Lifecycle ------------------------------------------------------------

    async def initialize(self) -> None:
        logger.info("Initializing session tree")
        for window in await self.registry.list_windows():
            context = self._ensure_context(window.window_id)
            for info in window.tabs or []:
                if context.get_tab(info.tab_id) is None:
                    await self._create_tab(context, info.tab_id, info.url)
            if window.focused:
                active = next((info for info in window.tabs or [] if info.active), None)
                if active is not None:
                    context.set_active_tab(active.tab_id)
                self._select(window.window_id, active.tab_id if active else None)
        logger.info(f"Initialized {len(self.contexts)} browser contexts")

    async def get_current_tab(self, selector: Optional[ActiveSelector] = None) -> TabState:
        """Resolve the tab intents should go to, creating tree nodes on demand."""
        if selector is not None and selector.tab_id is not None:
            tab = self.find_tab(selector.tab_id)
            if tab is None:
                raise NoActiveTab(f"Tab {selector.tab_id} is not tracked")
            return tab

        info = await self.registry.query_active_tab()
        if info is None:
            raise NoActiveTab()

        context = self._ensure_context(info.window_id)
        tab = context.get_tab(info.tab_id)
        if tab is None:
            tab = await self._create_tab(context, info.tab_id, info.url)
        context.set_active_tab(info.tab_id)
        self._select(info.window_id, info.tab_id)
        return tab

    async def on_tab_activated(self, tab_id: int, window_id: int) -> None:
        logger.info(f"Tab activated: {tab_id} in window {window_id}")
        context = self._ensure_context(window_id)
        if context.get_tab(tab_id) is None:
            info = await self.registry.get_tab(tab_id)
            if info is None:
                logger.warning(f"Activated tab {tab_id} is unknown to the host")
                return
            await self._create_tab(context, tab_id, info.url)
        context.set_active_tab(tab_id)
        self._select(window_id, tab_id)

    async def on_tab_updated(self, tab_id: int, url: str) -> None:
        logger.info(f"Tab updated: {tab_id} -> {url}")
        tab = self.find_tab(tab_id)
        if tab is not None:
            await tab.on_url_changed(url)

    async def on_tab_removed(self, tab_id: int, window_id: Optional[int] = None) -> None:
        window_id = self.tab_windows.pop(tab_id, window_id)
        context = self.contexts.get(window_id) if window_id is not None else None
        if context is None:
            return
        logger.info(f"Tab removed: {tab_id} from window {window_id}")
        await context.remove_tab(tab_id)
        if self.active.tab_id == tab_id:
            self._select(window_id, context.active_tab_id)

    async def on_window_created(self, window_id: int) -> None:
        logger.info(f"Window created: {window_id}")
        self._ensure_context(window_id)

    async def on_window_removed(self, window_id: int) -> None:
        context = self.contexts.pop(window_id, None)
        if context is None:
            return
        logger.info(f"Window removed: {window_id}")
        for tab_id in list(context.tabs):
            self.tab_windows.pop(tab_id, None)
        await context.destroy()

        if self.active.window_id == window_id:
            replacement = next(iter(self.contexts.values()), None)
            if replacement is None:
                self._select(None, None)
            else:
                if replacement.active_tab_id is None and replacement.tabs:
                    replacement.set_active_tab(next(iter(replacement.tabs)))
                self._select(replacement.window_id, replacement.active_tab_id)

    def on_debugger_detached(self, tab_id: int, reason: str = "") -> None:
        logger.info(f"Debugger detached from tab {tab_id} ({reason or 'no reason'})")
        tab = self.find_tab(tab_id)
        if tab is not None:
            tab.on_debugger_detached()

    async def shutdown(self) -> None:
        for window_id in list(self.contexts):
            await self.on_window_removed(window_id)

    # Event channel ----------------------------------------------------------

    async def post(self, event: LifecycleEvent) -> None:
        await self.events.put(event)

    def post_nowait(self, event: LifecycleEvent) -> None:
        try:
            self.events.put_nowait(event)
        except asyncio.QueueFull:
            logger.error(f"Lifecycle event queue full, dropping {event}")

    async def apply(self, event: LifecycleEvent) -> None:
        if isinstance(event, TabActivated):
            await self.on_tab_activated(event.tab_id, event.window_id)
        elif isinstance(event, TabUpdated):
            await self.on_tab_updated(event.tab_id, event.url)
        elif isinstance(event, TabRemoved):
            await self.on_tab_removed(event.tab_id, event.window_id)
        elif isinstance(event, WindowCreated):
            await self.on_window_created(event.window_id)
        elif isinstance(event, WindowRemoved):
            await self.on_window_removed(event.window_id)
        elif isinstance(event, DebuggerDetached):
            self.on_debugger_detached(event.tab_id, event.reason)
        else:
            raise TypeError(f"Unknown lifecycle event: {event!r}")

    async def _apply_logged(self, event: LifecycleEvent) -> None:
        try:
            await self.apply(event)
        except Exception:
            logger.exception(f"Failed to apply lifecycle event {event!r}")

    async def drain(self) -> int:
        """Apply every queued event now; returns how many were applied."""
        applied = 0
        while not self.events.empty():
            event = self.events.get_nowait()
            await self._apply_logged(event)
            self.events.task_done()
            applied += 1
        return applied

    async def run_dispatcher(self) -> None:
        """Consume lifecycle events forever, in arrival order."""
        while True:
            event = await self.events.get()
            await self._apply_logged(event)
            self.events.task_done()

    # Intents --------------------------------------------------------------

    async def dispatch(self, intent: Intent, selector: Optional[ActiveSelector] = None) -> IntentResult:
        name = type(intent).__name__
        logger.debug(f"Handling intent {name}")
        try:
            tab = await self.get_current_tab(selector)
            data = await self._route(tab, intent)
            return IntentResult(success=True, data=data)
        except Exception as exc:
            logger.error(f"Intent {name} failed: {exc}")
            return IntentResult(success=False, error=str(exc) or type(exc).__name__, exception=exc)

    async def _route(self, tab: TabState, intent: Intent) -> Any:
        if isinstance(intent, CaptureScreenshot):
            return await tab.capture_screenshot()
        if isinstance(intent, MarkElements):
            return await tab.mark_elements()
        if isinstance(intent, ClearMarkers):
            return await tab.clear_markers()
        if isinstance(intent, ExecuteAction):
            return await tab.execute_action(intent.action, intent.elements, intent.cancel)
        if isinstance(intent, GetElements):
            return await tab.get_elements()
        raise InvalidArgs(f"Unknown intent: {type(intent).__name__}")
