"""
Basic usage example for Ensemble.

Designs a team for a task, runs it and prints the synthesized deliverable.
Requires ``API_KEY`` (and optionally ``BASE_URL``) in the environment.
"""

import asyncio

from dotenv import load_dotenv

from ensemble.agent.events import AgentEventType
from ensemble.agent.orchestrator import Orchestrator
from ensemble.config.loader import load_configuration
from ensemble.team.models import BucketItem


async def main() -> None:
    config = load_configuration()
    bucket = [
        BucketItem(category="skill", label="research", content="Gather facts before writing."),
        BucketItem(category="rule", label="cite sources"),
    ]

    async with Orchestrator(config) as orchestrator:
        spec = None
        async for event in orchestrator.design("Write a short brief on tidal energy", bucket):
            if event.type == AgentEventType.ENV_CREATED:
                spec = event.spec
            elif event.type == AgentEventType.ERROR:
                print(f"Planning failed: {event.message}")

        if spec is None:
            return

        async for event in orchestrator.execute(spec, bucket):
            if event.type == AgentEventType.AGENT_COMPLETE:
                print(f"[{event.agent_id}] done")
            elif event.type == AgentEventType.SYNTHESIS:
                print(event.content, end="")
            elif event.type == AgentEventType.ERROR:
                print(f"Run failed: {event.message}")
        print()


if __name__ == "__main__":
    load_dotenv()
    asyncio.run(main())
