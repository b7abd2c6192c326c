"""Token-streaming inference backends.

Generation jobs only see the ``InferenceBackend`` protocol: one call taking
instructions, the user input and an optional JSON schema hint, returning a
finite async generator of text tokens. Callers close it when they stop early.
``PydanticAIBackend`` implements it over a pydantic-ai ``Agent``.
"""

from __future__ import annotations

import json
from collections.abc import AsyncGenerator, Mapping
from typing import Any, Protocol

from pydantic_ai import Agent
from pydantic_ai.models import Model

from services.generation.exceptions import BackendStreamError


class InferenceBackend(Protocol):
    """Opaque token producer consumed by generation jobs."""

    def stream(
        self,
        instructions: str,
        input: str,
        shape_hint: Mapping[str, Any] | None = None,
    ) -> AsyncGenerator[str, None]:
        """Yield text tokens; raise on transport or model failure."""
        ...


def render_shape_hint(input: str, shape_hint: Mapping[str, Any] | None) -> str:
    if not shape_hint:
        return input
    schema = json.dumps(shape_hint, indent=2, ensure_ascii=False)
    return f"{input}\n\n## JSON SCHEMA TO FOLLOW:\n{schema}"


class PydanticAIBackend:
    """Stream plain-text deltas from a pydantic-ai model.

    One agent is built per distinct instruction string and reused for every
    request that shares it.
    """

    def __init__(self, model: Model | str) -> None:
        self._model = model
        self._agents: dict[str, Agent[None, str]] = {}

    def _agent_for(self, instructions: str) -> Agent[None, str]:
        agent = self._agents.get(instructions)
        if agent is None:
            agent = Agent(self._model, instructions=instructions, output_type=str)
            self._agents[instructions] = agent
        return agent

    async def stream(
        self,
        instructions: str,
        input: str,
        shape_hint: Mapping[str, Any] | None = None,
    ) -> AsyncGenerator[str, None]:
        agent = self._agent_for(instructions)
        prompt = render_shape_hint(input, shape_hint)
        try:
            async with agent.run_stream(prompt) as result:
                async for delta in result.stream_text(delta=True, debounce_by=None):
                    if delta:
                        yield delta
        except Exception as exc:
            raise BackendStreamError(f"{exc.__class__.__name__}: {exc}") from exc
