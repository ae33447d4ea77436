"""Playwright-backed host: windows are browser contexts, tabs are pages.

Implements the registry and debugger transport contracts, and turns Playwright
page/context events into lifecycle events for the session tree.
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from playwright.async_api import Browser, CDPSession, Page
from playwright.async_api import BrowserContext as PlaywrightContext
from playwright.async_api import Error as PlaywrightError

from .errors import NotConnected, ProtocolError
from .events import (
    DebuggerDetached,
    LifecycleEvent,
    TabActivated,
    TabInfo,
    TabRemoved,
    TabUpdated,
    WindowCreated,
    WindowInfo,
    WindowRemoved,
)

logger = logging.getLogger(__name__)

EventSink = Callable[[LifecycleEvent], None]


class PlaywrightHost:
    def __init__(self, browser: Browser):
        self.browser = browser
        self._next_window_id = 1
        self._next_tab_id = 1
        self._contexts: Dict[int, PlaywrightContext] = {}
        self._pages: Dict[int, Page] = {}
        self._page_ids: Dict[Page, int] = {}
        self._tab_window: Dict[int, int] = {}
        self._active_tabs: Dict[int, int] = {}
        self._focused_window: Optional[int] = None
        self._cdp: Dict[int, CDPSession] = {}
        self._sinks: List[EventSink] = []

    def subscribe(self, sink: EventSink) -> None:
        self._sinks.append(sink)

    def _emit(self, event: LifecycleEvent) -> None:
        for sink in self._sinks:
            sink(event)

    # Window/tab management -------------------------------------------------

    def track_context(self, context: PlaywrightContext) -> int:
        window_id = self._next_window_id
        self._next_window_id += 1
        self._contexts[window_id] = context
        self._focused_window = window_id
        context.on("page", lambda page: self._track_page(window_id, page))
        context.on("close", lambda _: self._on_context_closed(window_id))
        self._emit(WindowCreated(window_id))
        for page in context.pages:
            self._track_page(window_id, page)
        return window_id

    def _track_page(self, window_id: int, page: Page) -> int:
        if page in self._page_ids:
            return self._page_ids[page]
        tab_id = self._next_tab_id
        self._next_tab_id += 1
        self._pages[tab_id] = page
        self._page_ids[page] = tab_id
        self._tab_window[tab_id] = window_id
        self._active_tabs[window_id] = tab_id
        self._focused_window = window_id

        # "load", not "framenavigated": commits and same-document navigations are not URL changes here.
        page.on("load", lambda _: self._emit(TabUpdated(tab_id, page.url)))
        page.on("close", lambda _: self._on_page_closed(tab_id))
        logger.info(f"Tracking tab {tab_id} in window {window_id}")
        self._emit(TabActivated(tab_id, window_id))
        return tab_id

    def _on_page_closed(self, tab_id: int) -> None:
        page = self._pages.pop(tab_id, None)
        if page is None:
            return
        self._page_ids.pop(page, None)
        self._cdp.pop(tab_id, None)
        window_id = self._tab_window.pop(tab_id, None)
        if window_id is not None and self._active_tabs.get(window_id) == tab_id:
            remaining = [t for t, w in self._tab_window.items() if w == window_id]
            if remaining:
                self._active_tabs[window_id] = remaining[-1]
            else:
                self._active_tabs.pop(window_id, None)
        self._emit(TabRemoved(tab_id, window_id))

    def _on_context_closed(self, window_id: int) -> None:
        if self._contexts.pop(window_id, None) is None:
            return
        for tab_id in [t for t, w in self._tab_window.items() if w == window_id]:
            page = self._pages.pop(tab_id, None)
            if page is not None:
                self._page_ids.pop(page, None)
            self._tab_window.pop(tab_id, None)
            self._cdp.pop(tab_id, None)
        self._active_tabs.pop(window_id, None)
        if self._focused_window == window_id:
            self._focused_window = next(iter(self._contexts), None)
        self._emit(WindowRemoved(window_id))

    async def open_window(self, **context_options: Any) -> int:
        context = await self.browser.new_context(**context_options)
        return self.track_context(context)

    async def open_tab(self, window_id: int, url: Optional[str] = None) -> int:
        context = self._contexts.get(window_id)
        if context is None:
            raise KeyError(f"Unknown window {window_id}")
        page = await context.new_page()
        tab_id = self._track_page(window_id, page)
        if url:
            await page.goto(url)
        return tab_id

    async def activate_tab(self, tab_id: int) -> None:
        page = self._pages.get(tab_id)
        if page is None:
            raise KeyError(f"Unknown tab {tab_id}")
        window_id = self._tab_window[tab_id]
        await page.bring_to_front()
        self._active_tabs[window_id] = tab_id
        self._focused_window = window_id
        self._emit(TabActivated(tab_id, window_id))

    # Registry ---------------------------------------------------------------

    def _info(self, tab_id: int) -> TabInfo:
        window_id = self._tab_window[tab_id]
        return TabInfo(
            tab_id=tab_id,
            window_id=window_id,
            url=self._pages[tab_id].url,
            active=self._active_tabs.get(window_id) == tab_id,
        )

    async def list_windows(self) -> List[WindowInfo]:
        return [
            WindowInfo(
                window_id=window_id,
                focused=window_id == self._focused_window,
                tabs=[self._info(t) for t, w in self._tab_window.items() if w == window_id],
            )
            for window_id in self._contexts
        ]

    async def query_active_tab(self) -> Optional[TabInfo]:
        if self._focused_window is None:
            return None
        tab_id = self._active_tabs.get(self._focused_window)
        if tab_id is None or tab_id not in self._pages:
            return None
        return self._info(tab_id)

    async def get_tab(self, tab_id: int) -> Optional[TabInfo]:
        if tab_id not in self._pages:
            return None
        return self._info(tab_id)

    def page_for(self, tab_id: int) -> Optional[Page]:
        return self._pages.get(tab_id)

    # Debugger transport -----------------------------------------------------

    async def attach(self, tab_id: int, protocol_version: str) -> None:
        # Playwright negotiates the protocol version itself.
        page = self._pages.get(tab_id)
        if page is None:
            raise NotConnected(f"Tab {tab_id} no longer exists")
        if tab_id in self._cdp:
            raise ProtocolError(f"Another debugger is already attached to tab {tab_id}", method="attach")
        cdp = await page.context.new_cdp_session(page)
        self._cdp[tab_id] = cdp

        def on_detached(params):
            if self._cdp.get(tab_id) is cdp:
                del self._cdp[tab_id]
                self._emit(DebuggerDetached(tab_id, (params or {}).get("reason", "")))

        cdp.on("Inspector.detached", on_detached)
        logger.debug(f"Attached CDP session to tab {tab_id} (protocol {protocol_version})")

    async def detach(self, tab_id: int) -> None:
        cdp = self._cdp.pop(tab_id, None)
        if cdp is None:
            return
        try:
            await cdp.detach()
        except PlaywrightError as exc:
            logger.debug(f"Detach from tab {tab_id} failed: {exc}")

    async def send_command(self, tab_id: int, method: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        cdp = self._cdp.get(tab_id)
        if cdp is None:
            raise NotConnected(f"No debugger attached to tab {tab_id}")
        try:
            return await cdp.send(method, params or {})
        except PlaywrightError as exc:
            raise ProtocolError(f"{method} failed: {exc}", method=method) from exc
