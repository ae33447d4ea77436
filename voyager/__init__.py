"""Voyager: browser automation control plane

Modules:
- models: actions, decisions, intents and results
- events: host lifecycle events
- protocol: remote-debugging session and action execution
- tab / context / tree: the session tree
- perception: element observation
- planner: LLM decision oracle
- memory: step history
- core: the agent loop
- host: Playwright host
"""

from .config import AgentConfig, Timings
from .context import BrowserContext
from .core import AgentLoop, decision_to_action
from .errors import (
    Cancelled,
    ContentUnresponsive,
    ElementNotFound,
    InvalidArgs,
    NoActiveTab,
    NoInteractiveElements,
    NotConnected,
    OracleError,
    ProtectedTarget,
    ProtocolError,
    UnknownAction,
    VoyagerError,
)
from .events import ActiveSelector
from .host import PlaywrightHost
from .memory import Memory
from .models import (
    AgentResult,
    Click,
    Decision,
    DecisionKind,
    Done,
    ElementDescriptor,
    Navigate,
    Scroll,
    StepResult,
    Type,
    Wait,
)
from .perception import Perception
from .planner import Planner
from .protocol import ProtocolSession
from .tab import TabState
from .tree import SessionTree

__all__ = [
    "AgentConfig",
    "Timings",
    "BrowserContext",
    "AgentLoop",
    "decision_to_action",
    "Cancelled",
    "ContentUnresponsive",
    "ElementNotFound",
    "InvalidArgs",
    "NoActiveTab",
    "NoInteractiveElements",
    "NotConnected",
    "OracleError",
    "ProtectedTarget",
    "ProtocolError",
    "UnknownAction",
    "VoyagerError",
    "ActiveSelector",
    "PlaywrightHost",
    "Memory",
    "AgentResult",
    "Click",
    "Decision",
    "DecisionKind",
    "Done",
    "ElementDescriptor",
    "Navigate",
    "Scroll",
    "StepResult",
    "Type",
    "Wait",
    "Perception",
    "Planner",
    "ProtocolSession",
    "TabState",
    "SessionTree",
]
