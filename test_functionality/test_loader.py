"""
Dynamic agent loading and sandbox tests.

Covers:
- Built-in agents resolve before definitions are consulted
- Capability grant and trusted-module checks run before any import
- Bootstrap failures are not cached; evict forces a reload
- Concurrent resolves of one name bootstrap once
- SandboxedAgent input sanitizing, timeouts and capability errors
- The memory_digest reference plugin end to end
"""

import asyncio
from unittest.mock import patch

import pytest

import sandbox_plugins
from conftest import InMemoryDefinitions
from agent.dynamic import AgentDefinitionSchema, SandboxedAgent
from agent.loader import DynamicAgentLoader
from agent.memory_agent import MemoryAgent
from agent.plugins.memory_digest import DEFINITION as DIGEST_DEFINITION
from agent.registry import AgentRegistry
from agent.sandbox import ScopedFileAccess, build_bundle, sanitize_input
from domain.entities import MemoryRecord
from domain.exceptions import (
    AgentExecutionError,
    AgentLoadError,
    AgentNotFoundError,
    CapabilityError,
)
from domain.models import AgentDefinition, Capability, ChainContext, ResponseKind

ALL_CAPABILITIES = tuple(Capability)


def _definition(name, class_name, capabilities=(), module="sandbox_plugins"):
    return AgentDefinition(
        name=name,
        entrypoint=f"{module}:{class_name}",
        description=f"{class_name} under test",
        declared_capabilities=tuple(capabilities),
    )


def _loader(tmp_path, *definitions, granted=ALL_CAPABILITIES, registry=None,
            store=None, timeout=2.0, max_input_bytes=10 * 1024):
    return DynamicAgentLoader(
        registry or AgentRegistry(),
        InMemoryDefinitions(*definitions),
        granted=granted,
        trusted_modules=("agent.plugins", "sandbox_plugins"),
        data_dir=str(tmp_path / "agents"),
        store=store,
        execution_timeout=timeout,
        max_input_bytes=max_input_bytes,
    )


@pytest.fixture(autouse=True)
def reset_plugin_counters():
    sandbox_plugins.CountingAgent.bootstraps = 0
    sandbox_plugins.FlakyBootAgent.failures_left = 1
    yield


# =============================================================================
# Resolution
# =============================================================================

class TestResolution:

    @pytest.mark.asyncio
    async def test_builtin_wins(self, tmp_path, memory_store):
        registry = AgentRegistry()
        memory = MemoryAgent(memory_store)
        registry.register(memory)
        shadow = _definition("memory", "CountingAgent")
        loader = _loader(tmp_path, shadow, registry=registry)

        assert await loader.resolve("memory") is memory
        assert sandbox_plugins.CountingAgent.bootstraps == 0

    @pytest.mark.asyncio
    async def test_unknown_name(self, tmp_path):
        with pytest.raises(AgentNotFoundError):
            await _loader(tmp_path).resolve("ghost")

    @pytest.mark.asyncio
    async def test_loads_and_caches(self, tmp_path):
        loader = _loader(tmp_path, _definition("counter", "CountingAgent"))

        first = await loader.resolve("counter")
        second = await loader.resolve("counter")

        assert isinstance(first, SandboxedAgent)
        assert first is second
        assert sandbox_plugins.CountingAgent.bootstraps == 1

    @pytest.mark.asyncio
    async def test_evict_forces_reload(self, tmp_path):
        loader = _loader(tmp_path, _definition("counter", "CountingAgent"))
        first = await loader.resolve("counter")

        assert loader.evict("counter")
        assert not loader.evict("counter")
        second = await loader.resolve("counter")

        assert second is not first
        assert sandbox_plugins.CountingAgent.bootstraps == 2

    @pytest.mark.asyncio
    async def test_concurrent_resolve_bootstraps_once(self, tmp_path):
        loader = _loader(tmp_path, _definition("counter", "CountingAgent"))

        agents = await asyncio.gather(*(loader.resolve("counter") for _ in range(5)))

        assert all(a is agents[0] for a in agents)
        assert sandbox_plugins.CountingAgent.bootstraps == 1

    @pytest.mark.asyncio
    async def test_bootstrap_failure_not_cached(self, tmp_path):
        loader = _loader(tmp_path, _definition("flaky", "FlakyBootAgent"))

        with pytest.raises(AgentLoadError, match="Bootstrap failed"):
            await loader.resolve("flaky")

        agent = await loader.resolve("flaky")
        envelope = await agent.execute("execute", {}, ChainContext())
        assert envelope.text == "ready"

    @pytest.mark.asyncio
    async def test_catalog_lists_builtins_and_definitions(self, tmp_path, memory_store):
        registry = AgentRegistry()
        registry.register(MemoryAgent(memory_store))
        loader = _loader(tmp_path, _definition("counter", "CountingAgent"), registry=registry)

        names = [entry["name"] for entry in await loader.catalog()]

        assert names == ["memory", "counter"]


# =============================================================================
# Checks that run before import
# =============================================================================

class TestDefinitionChecks:

    @pytest.mark.asyncio
    async def test_capability_outside_grant_never_imports(self, tmp_path):
        definition = _definition("greedy", "CountingAgent", ["clock", "network"])
        loader = _loader(tmp_path, definition, granted=(Capability.CLOCK,))

        with patch("agent.loader.importlib.import_module") as import_module:
            with pytest.raises(CapabilityError, match="network"):
                await loader.resolve("greedy")

        import_module.assert_not_called()

    @pytest.mark.asyncio
    async def test_granted_capability_can_still_be_withheld(self, tmp_path):
        definition = _definition("fs", "CountingAgent", ["filesystem"])
        loader = _loader(tmp_path, definition, granted=(Capability.CLOCK, Capability.STORE))

        with pytest.raises(CapabilityError):
            await loader.resolve("fs")

    @pytest.mark.asyncio
    async def test_untrusted_module(self, tmp_path):
        definition = AgentDefinition(name="escape", entrypoint="os.path:join")

        with patch("agent.loader.importlib.import_module") as import_module:
            with pytest.raises(AgentLoadError, match="trusted prefix"):
                await _loader(tmp_path, definition).resolve("escape")

        import_module.assert_not_called()

    def test_prefix_match_is_per_segment(self, tmp_path):
        loader = _loader(tmp_path)
        definition = AgentDefinition(name="lookalike", entrypoint="sandbox_plugins_evil:Agent")
        with pytest.raises(AgentLoadError):
            loader.check_definition(definition)

    @pytest.mark.parametrize("name,entrypoint", [
        ("Bad Name", "sandbox_plugins:CountingAgent"),
        ("ok", "sandbox_plugins.CountingAgent"),
        ("ok", "sandbox_plugins:"),
    ])
    def test_malformed_definition(self, tmp_path, name, entrypoint):
        with pytest.raises(AgentLoadError, match="Invalid definition"):
            _loader(tmp_path).check_definition(AgentDefinition(name=name, entrypoint=entrypoint))

    @pytest.mark.asyncio
    async def test_missing_class(self, tmp_path):
        loader = _loader(tmp_path, _definition("missing", "NoSuchAgent"))
        with pytest.raises(AgentLoadError, match="Cannot import"):
            await loader.resolve("missing")

    @pytest.mark.asyncio
    async def test_not_a_dynamic_agent(self, tmp_path):
        loader = _loader(tmp_path, _definition("plain", "NotAnAgent"))
        with pytest.raises(AgentLoadError, match="not a DynamicAgent"):
            await loader.resolve("plain")


# =============================================================================
# Execution inside the sandbox
# =============================================================================

class TestSandboxedExecution:

    @pytest.mark.asyncio
    async def test_privileged_keys_are_stripped(self, tmp_path):
        agent = await _loader(tmp_path, _definition("counter", "CountingAgent")).resolve("counter")

        envelope = await agent.execute(
            "execute",
            {"x": 1, "db": "handle", "api_keys": ["k"], "llm_client": object()},
            ChainContext(utterance="hi there"),
        )

        assert envelope.kind == ResponseKind.DATA
        assert envelope.data["input"] == {"x": 1, "action": "execute"}
        assert envelope.data["utterance"] == "hi there"

    @pytest.mark.asyncio
    async def test_oversized_input(self, tmp_path):
        loader = _loader(tmp_path, _definition("counter", "CountingAgent"), max_input_bytes=64)
        agent = await loader.resolve("counter")

        envelope = await agent.execute("execute", {"blob": "x" * 200}, ChainContext())

        assert envelope.kind == ResponseKind.ERROR
        assert "too large" in envelope.error

    @pytest.mark.asyncio
    async def test_timeout_is_a_failure(self, tmp_path):
        loader = _loader(tmp_path, _definition("slow", "SlowAgent"), timeout=0.05)
        agent = await loader.resolve("slow")

        envelope = await agent.execute("execute", {}, ChainContext())

        assert envelope.error == "Agent 'slow' timed out"

    @pytest.mark.asyncio
    async def test_undeclared_capability_at_runtime(self, tmp_path, memory_store):
        loader = _loader(
            tmp_path, _definition("reach", "OverreachingAgent", ["clock"]), store=memory_store,
        )
        agent = await loader.resolve("reach")

        envelope = await agent.execute("execute", {}, ChainContext())

        assert envelope.kind == ResponseKind.ERROR
        assert "'store' was not granted" in envelope.error

    @pytest.mark.asyncio
    async def test_filesystem_cannot_escape(self, tmp_path):
        loader = _loader(tmp_path, _definition("escaper", "EscapingAgent", ["filesystem"]))
        agent = await loader.resolve("escaper")

        envelope = await agent.execute("execute", {}, ChainContext())

        assert envelope.kind == ResponseKind.ERROR
        assert not (tmp_path / "agents" / "outside.txt").exists()

    @pytest.mark.asyncio
    async def test_memory_digest_plugin(self, tmp_path, memory_store):
        await memory_store.insert(MemoryRecord(source_text="gym locker code 4521", session_id="s1"))
        await memory_store.insert(MemoryRecord(source_text="buy oat milk", session_id="s2"))
        definition = AgentDefinitionSchema.model_validate(DIGEST_DEFINITION).to_definition()
        loader = _loader(tmp_path, definition, store=memory_store)

        agent = await loader.resolve("memory_digest")
        envelope = await agent.execute("execute", {"limit": 5}, ChainContext(session_id="s1"))

        assert envelope.text == "Summarised your last 2 memories."
        digests = list((tmp_path / "agents" / "memory_digest" / "digests").glob("*.md"))
        assert len(digests) == 1
        content = digests[0].read_text()
        assert "- gym locker code 4521" in content
        assert "- buy oat milk" in content

    @pytest.mark.asyncio
    async def test_memory_digest_session_only(self, tmp_path, memory_store):
        await memory_store.insert(MemoryRecord(source_text="other session note", session_id="s2"))
        definition = AgentDefinitionSchema.model_validate(DIGEST_DEFINITION).to_definition()
        agent = await _loader(tmp_path, definition, store=memory_store).resolve("memory_digest")

        envelope = await agent.execute("execute", {"session_only": True}, ChainContext(session_id="s1"))

        assert envelope.text == "There is nothing to summarise yet."


# =============================================================================
# Sandbox primitives
# =============================================================================

class TestSandboxPrimitives:

    def test_sanitize_input(self):
        assert sanitize_input({"q": "x", "secrets": "s", "apiKeys": "k"}) == {"q": "x"}
        with pytest.raises(AgentExecutionError):
            sanitize_input({"q": "x" * 100}, max_bytes=10)

    def test_scoped_file_access(self, tmp_path):
        files = ScopedFileAccess(tmp_path / "scoped")
        files.write_text("notes/a.txt", "hello")

        assert files.read_text("notes/a.txt") == "hello"
        assert files.list_dir("notes") == ["a.txt"]
        assert files.delete("notes/a.txt")
        assert not files.delete("notes/a.txt")
        with pytest.raises(CapabilityError):
            files.read_text("../../etc/passwd")

    def test_bundle_only_builds_granted_providers(self, tmp_path):
        bundle = build_bundle([Capability.CLOCK], data_dir=tmp_path / "never")

        assert bundle.has(Capability.CLOCK)
        assert bundle.clock.iso()
        assert not (tmp_path / "never").exists()
        with pytest.raises(CapabilityError):
            bundle.filesystem

    def test_granted_store_without_provider_raises(self, tmp_path):
        bundle = build_bundle([Capability.STORE], data_dir=tmp_path, store=None)
        with pytest.raises(CapabilityError):
            bundle.store
