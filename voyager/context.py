"""Browser context: the tabs of one window."""

import asyncio
import logging
from typing import Dict, Optional

from .tab import TabState

logger = logging.getLogger(__name__)


class BrowserContext:
    def __init__(self, window_id: int, init_timeout_ms: int = 5000):
        self.window_id = window_id
        self.tabs: Dict[int, TabState] = {}
        self.active_tab_id: Optional[int] = None
        self.init_timeout_ms = init_timeout_ms
        logger.info(f"Created browser context for window {window_id}")

    def __repr__(self) -> str:
        return f"BrowserContext(window_id={self.window_id}, tabs={sorted(self.tabs)}, active={self.active_tab_id})"

    async def add_tab(self, tab: TabState) -> TabState:
        """Register a tab and initialize it; a failed init is logged, not raised."""
        self.tabs[tab.tab_id] = tab
        try:
            await asyncio.wait_for(tab.initialize(), timeout=self.init_timeout_ms / 1000)
        except asyncio.TimeoutError:
            logger.warning(f"Initializing tab {tab.tab_id} timed out")
        except Exception as exc:
            logger.warning(f"Failed to initialize tab {tab.tab_id}: {exc}")
        return tab

    def get_tab(self, tab_id: int) -> Optional[TabState]:
        return self.tabs.get(tab_id)

    def get_active_tab(self) -> Optional[TabState]:
        if self.active_tab_id is None:
            return None
        return self.tabs.get(self.active_tab_id)

    def set_active_tab(self, tab_id: int) -> None:
        if tab_id not in self.tabs:
            raise KeyError(f"Tab {tab_id} is not part of window {self.window_id}")
        self.active_tab_id = tab_id

    async def remove_tab(self, tab_id: int) -> None:
        tab = self.tabs.pop(tab_id, None)
        if tab is not None:
            await tab.destroy()
        if self.active_tab_id == tab_id:
            self.active_tab_id = next(iter(self.tabs), None)

    async def destroy(self) -> None:
        logger.info(f"Destroying browser context {self.window_id}")
        results = await asyncio.gather(*(tab.destroy() for tab in self.tabs.values()), return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                logger.warning(f"Error destroying tab in window {self.window_id}: {result}")
        self.tabs.clear()
        self.active_tab_id = None
