"""Planner: asks the LLM for the next step"""

import json
import logging
from typing import Any, List, Optional

from openai import AsyncOpenAI

from .config import AgentConfig
from .errors import OracleError
from .models import Decision, DecisionKind, ElementDescriptor
from .perception import format_elements

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a web automation assistant. Analyze the screenshot and the user request "
    "to determine the next action.\n\n"
    "Available actions:\n"
    "- Click [number] - Click on the element with that number\n"
    "- Type [number, text] - Type text into the element\n"
    "- Scroll [WINDOW|number, up|down] - Scroll the window or an element\n"
    "- Wait - Wait 5 seconds\n"
    "- GoBack - Go back one page\n"
    "- Navigate [url] - Navigate to the URL\n"
    "- ANSWER - The task is complete; put the answer in reasoning\n"
    "- retry - Retry if there was an error\n\n"
    "Always respond with a JSON object with the fields \"action\", \"args\" and \"reasoning\"."
)


def parse_decision(output: Optional[str]) -> Decision:
    """Parse the oracle's JSON reply. Malformed replies yield ``kind=None``."""
    try:
        data = json.loads(output or "")
    except json.JSONDecodeError as e:
        logger.warning(f"Failed to parse decision JSON: {e}; raw output: {output!r}")
        return Decision(kind=None, reasoning=output or "")
    if not isinstance(data, dict):
        return Decision(kind=None, reasoning=str(data))

    raw_action = data.get("action")
    args: Any = data.get("args")
    if args is None:
        args = []
    elif not isinstance(args, list):
        args = [args]
    return Decision(
        kind=DecisionKind.parse(raw_action),
        args=args,
        reasoning=str(data.get("reasoning") or ""),
        raw_action=raw_action if isinstance(raw_action, str) else None,
    )


class Planner:
    """Decision oracle backed by an OpenAI-compatible multimodal chat model."""

    def __init__(self, client: Optional[AsyncOpenAI], model: str, temperature: float = 0.1, max_tokens: int = 1024):
        self.client = client
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens

    @classmethod
    def from_config(cls, config: AgentConfig) -> "Planner":
        client = None
        if config.openai_api_key:
            client = AsyncOpenAI(api_key=config.openai_api_key, base_url=config.openai_base_url)
        return cls(client, config.model)

    def set_api_key(self, api_key: str, base_url: Optional[str] = None):
        self.client = AsyncOpenAI(api_key=api_key, base_url=base_url)
        logger.info("API key configured")

    @property
    def ready(self) -> bool:
        return self.client is not None

    async def decide(
        self,
        screenshot_b64: str,
        elements: List[ElementDescriptor],
        query: str,
        history: str,
    ) -> Decision:
        if self.client is None:
            raise OracleError("API key not set. Please configure OPENAI_API_KEY first.")

        user_prompt = (
            f"User Request: {query}\n\n"
            f"{format_elements(elements)}\n\n"
            f"Previous actions:\n{history or 'No previous actions'}\n\n"
            "Based on the screenshot and available elements, determine the next action to take."
        )
        logger.debug(f"Asking {self.model} with {len(elements)} elements")

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                response_format={"type": "json_object"},
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": user_prompt},
                            {"type": "image_url", "image_url": {"url": f"data:image/png;base64,{screenshot_b64}"}},
                        ],
                    },
                ],
            )
        except Exception as e:
            raise OracleError(f"Decision request failed: {e}") from e

        output = response.choices[0].message.content if response.choices else None
        decision = parse_decision(output)
        logger.info(f"Decision: {decision.raw_action} {decision.args} - {decision.reasoning}")
        return decision
