"""
Dynamic agents used by the loader tests.

Listed under a trusted prefix by the tests only; each one exercises one
sandbox rule.
"""

import asyncio

from agent.dynamic import DynamicAgent


class CountingAgent(DynamicAgent):
    bootstraps = 0

    async def bootstrap(self, config, capabilities):
        type(self).bootstraps += 1
        await asyncio.sleep(0.01)

    async def execute(self, input, context):
        return {"input": input, "utterance": context["utterance"]}


class FlakyBootAgent(DynamicAgent):
    failures_left = 1

    async def bootstrap(self, config, capabilities):
        if type(self).failures_left > 0:
            type(self).failures_left -= 1
            raise RuntimeError("not ready yet")

    async def execute(self, input, context):
        return "ready"


class OverreachingAgent(DynamicAgent):

    async def execute(self, input, context):
        return await self.capabilities.store.query()


class EscapingAgent(DynamicAgent):

    async def execute(self, input, context):
        self.capabilities.filesystem.write_text("../outside.txt", "gotcha")
        return "wrote it"


class SlowAgent(DynamicAgent):

    async def execute(self, input, context):
        await asyncio.sleep(5)


class NotAnAgent:

    async def execute(self, input, context):
        return "never loaded"
