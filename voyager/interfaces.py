"""Contracts of the collaborators the control plane talks to."""

from typing import Any, Dict, List, Optional, Protocol

from .events import TabInfo, WindowInfo
from .models import Decision, ElementDescriptor


class HostRegistry(Protocol):
    async def list_windows(self) -> List[WindowInfo]: ...

    async def query_active_tab(self) -> Optional[TabInfo]:
        """Active tab of the focused window, or None."""
        ...

    async def get_tab(self, tab_id: int) -> Optional[TabInfo]: ...


class DebuggerTransport(Protocol):
    async def attach(self, tab_id: int, protocol_version: str) -> None: ...

    async def detach(self, tab_id: int) -> None: ...

    async def send_command(self, tab_id: int, method: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]: ...


class ElementObserver(Protocol):
    async def observe(self, tab_id: int) -> List[ElementDescriptor]:
        """Run a fresh observation pass; ids restart at 0."""
        ...

    async def clear_markers(self, tab_id: int) -> None: ...


class DecisionOracle(Protocol):
    async def decide(
        self,
        screenshot_b64: str,
        elements: List[ElementDescriptor],
        query: str,
        history: str,
    ) -> Decision: ...
