"""Per-tab state: lazily created protocol session plus cached observation."""

import asyncio
import logging
from typing import TYPE_CHECKING, List, Optional

from .config import AgentConfig
from .errors import NotConnected, ProtectedTarget
from .interfaces import DebuggerTransport, ElementObserver, HostRegistry
from .models import Action, ElementDescriptor, ScreenshotData
from .protocol import ProtocolSession, is_protected_url

if TYPE_CHECKING:
    from .context import BrowserContext

logger = logging.getLogger(__name__)


class TabState:
    def __init__(
        self,
        tab_id: int,
        parent_context: "BrowserContext",
        url: str,
        *,
        transport: DebuggerTransport,
        registry: HostRegistry,
        observer: ElementObserver,
        config: Optional[AgentConfig] = None,
    ):
        self.tab_id = tab_id
        self.parent_context = parent_context
        self.url = url or ""
        self.transport = transport
        self.registry = registry
        self.observer = observer
        self.config = config or AgentConfig()
        self.session: Optional[ProtocolSession] = None
        self.observation: List[ElementDescriptor] = []
        self.initialized = False

    def __repr__(self) -> str:
        return f"TabState(tab_id={self.tab_id}, url={self.url!r}, session={'on' if self.session else 'off'})"

    async def initialize(self) -> None:
        if self.initialized:
            return
        if not self.url:
            info = await self.registry.get_tab(self.tab_id)
            if info is not None:
                self.url = info.url
        self.initialized = True
        logger.info(f"Tab {self.tab_id} initialized ({self.url})")

    async def ensure_session(self) -> ProtocolSession:
        """Return a connected session, reconnecting if the old one went away."""
        if self.session is not None and self.session.connected:
            return self.session

        if self.session is not None:
            await self.session.disconnect()
            self.session = None

        logger.info(f"Creating CDP connection for tab {self.tab_id}")
        session = ProtocolSession(self.tab_id, self.transport, self.registry, self.config)
        self.session = session
        try:
            await session.connect()
        except Exception:
            if self.session is session:
                self.session = None
            raise
        if self.session is not session:
            # Detached or navigated while connecting.
            await session.disconnect()
            raise NotConnected(f"Session for tab {self.tab_id} was invalidated while connecting")
        return session

    async def capture_screenshot(self) -> ScreenshotData:
        session = await self.ensure_session()
        return await session.capture_screenshot()

    async def execute_action(
        self,
        action: Action,
        elements: Optional[List[ElementDescriptor]] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> None:
        session = await self.ensure_session()
        await session.execute_action(action, elements, cancel)

    async def mark_elements(self) -> List[ElementDescriptor]:
        if is_protected_url(self.url):
            raise ProtectedTarget(self.url)
        # Observation ids are tied to the document the session is attached to.
        await self.ensure_session()
        elements = await self.observer.observe(self.tab_id)
        self.observation = list(elements)
        if not self.observation:
            logger.warning(f"No interactive elements found on tab {self.tab_id} ({self.url})")
        return self.observation

    async def get_elements(self) -> List[ElementDescriptor]:
        if not self.observation:
            return await self.mark_elements()
        return self.observation

    async def clear_markers(self) -> None:
        """Best effort; never raises."""
        timeout = self.config.timings.marker_clear_timeout_ms / 1000
        try:
            await asyncio.wait_for(self.observer.clear_markers(self.tab_id), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Clearing markers on tab {self.tab_id} timed out")
        except Exception as exc:
            logger.warning(f"Failed to clear markers on tab {self.tab_id}: {exc}")

    async def on_url_changed(self, new_url: str) -> None:
        logger.info(f"Tab {self.tab_id} URL changed: {self.url} -> {new_url}")
        self.url = new_url or ""
        self.observation = []
        session, self.session = self.session, None
        if session is not None:
            await session.disconnect()

    def on_debugger_detached(self) -> None:
        logger.info(f"Debugger detached from tab {self.tab_id}")
        if self.session is not None:
            self.session.mark_detached()
            self.session = None

    async def destroy(self) -> None:
        logger.info(f"Destroying tab {self.tab_id}")
        session, self.session = self.session, None
        if session is not None:
            await session.disconnect()
        self.observation = []
        self.initialized = False
