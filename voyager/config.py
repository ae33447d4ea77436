"""Runtime configuration loaded from the environment (and an optional .env file)."""

import os
import sys
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv


def default_select_all_modifier(platform: Optional[str] = None) -> str:
    """macOS selects all with Cmd+A, everything else with Ctrl+A."""
    platform = platform or sys.platform
    return "Meta" if platform == "darwin" else "Control"


def _env_bool(raw: Optional[str], default: bool = False) -> bool:
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(raw: Optional[str], default: int) -> int:
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


@dataclass
class Timings:
    """All fixed delays of the control plane, in milliseconds."""

    click_settle_ms: int = 50
    type_focus_ms: int = 100
    navigate_settle_ms: int = 3000
    step_pause_ms: int = 2000
    default_wait_ms: int = 2000
    oracle_wait_ms: int = 5000
    retry_wait_ms: int = 1000
    marker_clear_timeout_ms: int = 3000
    content_retry_ms: int = 1000
    tab_init_timeout_ms: int = 5000

    @classmethod
    def instant(cls) -> "Timings":
        # Timeouts stay positive so wait_for() still has room to complete.
        return cls(
            click_settle_ms=0,
            type_focus_ms=0,
            navigate_settle_ms=0,
            step_pause_ms=0,
            default_wait_ms=0,
            oracle_wait_ms=0,
            retry_wait_ms=0,
            marker_clear_timeout_ms=200,
            content_retry_ms=0,
            tab_init_timeout_ms=500,
        )


@dataclass
class AgentConfig:
    openai_api_key: Optional[str] = None
    openai_base_url: Optional[str] = None
    model: str = "gpt-4o"
    max_steps: int = 10
    headless: bool = False
    select_all_modifier: str = field(default_factory=default_select_all_modifier)
    log_level: str = "INFO"
    event_queue_size: int = 256
    timings: Timings = field(default_factory=Timings)

    @staticmethod
    def normalize_modifier(raw: Optional[str]) -> str:
        value = (raw or "").strip().lower()
        if value in {"meta", "cmd", "command"}:
            return "Meta"
        if value in {"control", "ctrl"}:
            return "Control"
        if value == "alt":
            return "Alt"
        if value == "shift":
            return "Shift"
        return default_select_all_modifier()

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> "AgentConfig":
        load_dotenv(dotenv_path)
        modifier_raw = os.environ.get("VOYAGER_SELECT_ALL_MODIFIER")
        return cls(
            openai_api_key=os.environ.get("OPENAI_API_KEY") or None,
            openai_base_url=os.environ.get("OPENAI_BASE_URL") or None,
            model=os.environ.get("OPENAI_MODEL", "gpt-4o"),
            max_steps=max(1, _env_int(os.environ.get("VOYAGER_MAX_STEPS"), 10)),
            headless=_env_bool(os.environ.get("VOYAGER_HEADLESS")),
            select_all_modifier=(
                cls.normalize_modifier(modifier_raw) if modifier_raw else default_select_all_modifier()
            ),
            log_level=os.environ.get("VOYAGER_LOG_LEVEL", "INFO").upper(),
            event_queue_size=max(1, _env_int(os.environ.get("VOYAGER_EVENT_QUEUE_SIZE"), 256)),
        )
