"""
Synthesis: combining agent outputs into one deliverable.
"""

import logging
from typing import AsyncGenerator

from ensemble.agent.events import AgentEvent, SynthesisEvent
from ensemble.config.schema import SynthesisConfig
from ensemble.exceptions import SynthesisError
from ensemble.interfaces import LLMClientProtocol
from ensemble.llm.models import StreamEventType
from ensemble.prompts.builder import SYNTHESIS_PROMPT, build_synthesis_message
from ensemble.team.models import AgentSpec, EnvironmentSpec
from ensemble.types import MessageDict

logger = logging.getLogger(__name__)


class Synthesizer:
    """
    Integrates the outputs of a finished run.

    With more than one output, a dedicated completion integrates them and
    its text streams as ``synthesis`` events. A single output is forwarded
    verbatim as one ``synthesis`` event without any completion.

    Parameters
    ----------
    client : LLMClientProtocol
        Completion service.
    config : SynthesisConfig
        Completion limits.
    """

    def __init__(self, client: LLMClientProtocol, config: SynthesisConfig) -> None:
        self.client: LLMClientProtocol = client
        self.config: SynthesisConfig = config
        self.result: str = ""

    async def synthesize(
        self,
        spec: EnvironmentSpec,
        outputs: list[tuple[AgentSpec, str]],
        user_prompt: str | None = None,
    ) -> AsyncGenerator[AgentEvent, None]:
        """
        Stream the combined deliverable.

        Parameters
        ----------
        spec : EnvironmentSpec
            The team.
        outputs : list[tuple[AgentSpec, str]]
            Each completed agent with its output, in spec order.
        user_prompt : str | None, optional
            Task text overriding the team spec objective.

        Yields
        ------
        AgentEvent
            ``synthesis`` events.

        Raises
        ------
        SynthesisError
            If the synthesis completion fails.
        """
        self.result = ""

        if not outputs:
            logger.debug("Nothing to synthesize")
            return

        if len(outputs) == 1:
            logger.debug("Single agent output, forwarding without synthesis call")
            self.result = outputs[0][1]
            yield SynthesisEvent(content=self.result)
            return

        logger.debug(f"Synthesizing {len(outputs)} agent outputs")
        messages: list[MessageDict] = [
            {"role": "system", "content": SYNTHESIS_PROMPT},
            {"role": "user", "content": build_synthesis_message(spec, outputs, user_prompt)},
        ]

        async for event in self.client.chat_completion(
            messages,
            max_tokens=self.config.max_tokens,
            thinking_budget=self.config.thinking_budget,
        ):
            if event.type == StreamEventType.TEXT_DELTA and event.text_delta:
                self.result += event.text_delta.content
                yield SynthesisEvent(content=event.text_delta.content)
            elif event.type == StreamEventType.ERROR:
                raise SynthesisError(f"Synthesis failed: {event.error or 'unknown error'}")
