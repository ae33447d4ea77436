"""Memory: textual history of the steps taken during one run"""

from dataclasses import dataclass
from typing import List

from .models import StepResult

HISTORY_HEADER = "Previous action observations:"


@dataclass
class MemoryRecord:
    step_num: int
    message: str
    success: bool


class Memory:
    """Scratchpad handed to the oracle; lives for the duration of one run."""

    def __init__(self):
        self.history: List[MemoryRecord] = []

    def record(self, step_num: int, result: StepResult):
        self.history.append(MemoryRecord(step_num=step_num, message=result.message, success=result.success))

    def reset(self):
        self.history = []

    def format_history(self) -> str:
        if not self.history:
            return ""
        lines = [HISTORY_HEADER, ""]
        for rec in self.history:
            status = "" if rec.success else " (failed)"
            lines.append(f"{rec.step_num}. {rec.message}{status}")
        return "\n".join(lines)
