"""Agent loop: capture -> observe -> decide -> act, repeated."""

import asyncio
import logging
from typing import Callable, List, Optional

from .config import AgentConfig
from .errors import Cancelled, NoInteractiveElements, OracleError, VoyagerError
from .interfaces import DecisionOracle
from .memory import Memory
from .models import (
    Action,
    AgentResult,
    CaptureScreenshot,
    ClearMarkers,
    Click,
    Decision,
    DecisionKind,
    Done,
    ElementDescriptor,
    ExecuteAction,
    MarkElements,
    Navigate,
    RunStatus,
    Scroll,
    StepResult,
    Type,
    Wait,
    describe_action,
)
from .tree import SessionTree

logger = logging.getLogger(__name__)


def _as_int(value) -> Optional[int]:
    try:
        return int(str(value).strip().strip("[]"))
    except (TypeError, ValueError):
        return None


def decision_to_action(decision: Decision, config: Optional[AgentConfig] = None) -> Action:
    """Map an oracle decision to an action.

    Total: anything malformed maps to Done. ANSWER is handled by the loop
    before mapping and also maps to Done here.
    """
    timings = (config or AgentConfig()).timings
    kind, args = decision.kind, decision.args or []

    if kind is DecisionKind.CLICK:
        element_id = _as_int(args[0]) if args else None
        if element_id is not None:
            return Click(element_id=element_id)
    elif kind is DecisionKind.TYPE:
        element_id = _as_int(args[0]) if len(args) >= 2 else None
        text = args[1] if len(args) >= 2 else None
        if element_id is not None and text is not None and str(text) != "":
            return Type(text=str(text), element_id=element_id)
    elif kind is DecisionKind.SCROLL:
        direction = str(args[1]).strip().lower() if len(args) >= 2 else ""
        if direction in ("up", "down"):
            return Scroll(direction=direction, element_id=_as_int(args[0]))
    elif kind is DecisionKind.WAIT:
        return Wait(duration_ms=timings.oracle_wait_ms)
    elif kind is DecisionKind.NAVIGATE:
        url = str(args[0]).strip() if args and args[0] else ""
        if url:
            return Navigate(url=url)
    elif kind is DecisionKind.RETRY:
        return Wait(duration_ms=timings.retry_wait_ms)
    return Done()


class AgentLoop:
    """Perception-action loop over the session tree.

    Runs against one tab must not overlap; callers serialize them.
    """

    def __init__(
        self,
        tree: SessionTree,
        oracle: DecisionOracle,
        config: Optional[AgentConfig] = None,
        on_progress: Optional[Callable[[str], None]] = None,
    ):
        self.tree = tree
        self.oracle = oracle
        self.config = config or AgentConfig()
        self.max_steps = self.config.max_steps
        self.on_progress = on_progress
        self.memory = Memory()
        self.status = RunStatus.IDLE
        self.current_step = 0
        self._stop = asyncio.Event()

    @property
    def is_running(self) -> bool:
        return self.status is RunStatus.RUNNING

    def progress(self) -> dict:
        return {"current_step": self.current_step, "max_steps": self.max_steps}

    def stop(self) -> None:
        """Request a cooperative stop, honoured at the top of the next cycle."""
        if self.is_running:
            logger.info("Stopping agent execution")
            self._stop.set()

    def _report(self, message: str) -> None:
        logger.info(message)
        if self.on_progress is not None:
            try:
                self.on_progress(message)
            except Exception as exc:
                logger.warning(f"Progress callback failed: {exc}")

    async def run(self, query: str) -> AgentResult:
        logger.info(f"Starting agent with query: {query}")
        steps: List[StepResult] = []
        self.memory.reset()
        self.current_step = 0
        self.status = RunStatus.RUNNING
        self._stop.clear()
        finished = False

        try:
            while self.current_step < self.max_steps:
                if self._stop.is_set():
                    break
                self.current_step += 1
                prefix = f"[{self.current_step}/{self.max_steps}]"

                try:
                    self._report(f"{prefix} Capturing screenshot...")
                    screenshot = (await self.tree.dispatch(CaptureScreenshot())).unwrap()

                    self._report(f"{prefix} Finding interactive elements...")
                    elements: List[ElementDescriptor] = (await self.tree.dispatch(MarkElements())).unwrap()
                except VoyagerError as exc:
                    if not exc.retryable:
                        raise
                    # Session dropped or page busy mid-navigation; try again next step.
                    logger.warning(f"Step {self.current_step} observation failed: {exc}")
                    result = StepResult(success=False, message="Observation failed", error=str(exc))
                    steps.append(result)
                    self.memory.record(self.current_step, result)
                    await asyncio.sleep(self.config.timings.step_pause_ms / 1000)
                    continue

                if not elements:
                    raise NoInteractiveElements()

                self._report(f"{prefix} Asking for the next action...")
                try:
                    decision = await self.oracle.decide(
                        screenshot.data, elements, query, self.memory.format_history()
                    )
                except OracleError:
                    raise
                except Exception as exc:
                    raise OracleError(str(exc)) from exc
                logger.info(f"Step {self.current_step} reasoning: {decision.reasoning}")

                if decision.is_answer:
                    steps.append(StepResult(success=True, message=f"Answer: {decision.reasoning}", reasoning=decision.reasoning))
                    finished = True
                    self._report("Task completed")
                    break

                action = decision_to_action(decision, self.config)
                self._report(f"{prefix} {describe_action(action)}...")
                result = await self._execute(action, elements)
                result.reasoning = decision.reasoning
                steps.append(result)
                self.memory.record(self.current_step, result)

                if isinstance(action, Done):
                    finished = True
                    self._report("Task completed")
                    break
                await self._clear_markers()
                await asyncio.sleep(self.config.timings.step_pause_ms / 1000)

            await self._clear_markers()

            if self._stop.is_set():
                self.status = RunStatus.CANCELLED
                return AgentResult(
                    success=False,
                    summary=f"Stopped by user at step {self.current_step}.",
                    status=self.status,
                    steps=steps,
                    error=str(Cancelled()),
                )

            succeeded = any(step.success for step in steps)
            self.status = RunStatus.SUCCEEDED if succeeded else RunStatus.FAILED
            summary = "\n".join(f"{i}. {step.message}" for i, step in enumerate(steps, 1)) or "No actions were performed."
            return AgentResult(
                success=succeeded,
                summary=summary,
                status=self.status,
                steps=steps,
                error=next((step.error for step in steps if not step.success), None),
                exhausted=not finished and self.current_step >= self.max_steps,
            )
        except Exception as exc:
            logger.exception("Agent execution failed")
            await self._clear_markers()
            self.status = RunStatus.FAILED
            return AgentResult(
                success=False,
                summary=f"Agent execution failed: {exc}",
                status=self.status,
                steps=steps,
                error=str(exc) or type(exc).__name__,
            )
        finally:
            self._stop.clear()

    async def _execute(self, action: Action, elements: List[ElementDescriptor]) -> StepResult:
        intent = ExecuteAction(action=action, elements=elements, cancel=self._stop)
        result = await self.tree.dispatch(intent)
        if not result.success:
            return StepResult(success=False, message=f"Action failed: {describe_action(action)}", error=result.error)
        return StepResult(success=True, message=describe_action(action))

    async def _clear_markers(self) -> None:
        try:
            await self.tree.dispatch(ClearMarkers())
        except Exception as exc:
            logger.warning(f"Failed to clear markers: {exc}")
