"""
agent.sandbox - Capabilities handed to dynamic agents.

A dynamic agent never receives the database, the LLM client or any key. It
gets a CapabilityBundle holding only what its definition declared (and the
sandbox granted); touching anything else raises CapabilityError.

    filesystem  ScopedFileAccess rooted in the agent's own data directory
    paths       PathTools, pure string helpers
    store       the MemoryStorePort
    clock       Clock
    inference   the InferenceServicePort
"""

from __future__ import annotations

import json
import logging
import os.path
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Optional

from domain.exceptions import AgentExecutionError, CapabilityError
from domain.models import Capability
from domain.ports import InferenceServicePort, MemoryStorePort

logger = logging.getLogger(__name__)

# Never forwarded to plugin code, whatever the caller put in the input
_FORBIDDEN_KEYS = {"database", "db", "llm_client", "llmClient", "api_keys", "apiKeys", "secrets"}


def sanitize_input(params: dict[str, Any], max_bytes: int = 10 * 1024) -> dict[str, Any]:
    """Drop privileged keys and enforce the serialized size limit."""
    cleaned = {k: v for k, v in params.items() if k not in _FORBIDDEN_KEYS}
    dropped = set(params) - set(cleaned)
    if dropped:
        logger.warning("Stripped privileged keys from agent input: %s", sorted(dropped))

    size = len(json.dumps(cleaned, default=str).encode("utf-8"))
    if size > max_bytes:
        raise AgentExecutionError(f"Agent input too large ({size} > {max_bytes} bytes)")
    return cleaned


class ScopedFileAccess:
    """File access confined to one directory."""

    def __init__(self, root: Path):
        self._root = root.resolve()
        self._root.mkdir(parents=True, exist_ok=True)

    @property
    def root(self) -> Path:
        return self._root

    def _resolve(self, relative: str) -> Path:
        target = (self._root / relative).resolve()
        try:
            target.relative_to(self._root)
        except ValueError:
            raise CapabilityError(f"Path escapes the agent data directory: {relative}")
        return target

    def read_text(self, relative: str) -> str:
        return self._resolve(relative).read_text(encoding="utf-8")

    def write_text(self, relative: str, content: str) -> None:
        target = self._resolve(relative)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")

    def exists(self, relative: str) -> bool:
        return self._resolve(relative).exists()

    def list_dir(self, relative: str = ".") -> list[str]:
        target = self._resolve(relative)
        if not target.is_dir():
            return []
        return sorted(p.name for p in target.iterdir())

    def delete(self, relative: str) -> bool:
        target = self._resolve(relative)
        if not target.is_file():
            return False
        target.unlink()
        return True


class PathTools:
    """Pure path string helpers; no I/O."""

    @staticmethod
    def join(*parts: str) -> str:
        return os.path.join(*parts)

    @staticmethod
    def basename(path: str) -> str:
        return os.path.basename(path)

    @staticmethod
    def dirname(path: str) -> str:
        return os.path.dirname(path)

    @staticmethod
    def extension(path: str) -> str:
        return os.path.splitext(path)[1]

    @staticmethod
    def normalize(path: str) -> str:
        return os.path.normpath(path)


class Clock:

    def now(self) -> datetime:
        return datetime.now()

    def iso(self) -> str:
        return self.now().isoformat()

    def timestamp(self) -> float:
        return self.now().timestamp()


class CapabilityBundle:
    """Only the granted capabilities; everything else raises on access."""

    def __init__(self, granted: Iterable[Capability], providers: dict[Capability, Any]):
        self._granted = frozenset(granted)
        self._providers = {c: p for c, p in providers.items() if c in self._granted}

    @property
    def granted(self) -> frozenset[Capability]:
        return self._granted

    def has(self, capability: Capability) -> bool:
        return capability in self._granted

    def _require(self, capability: Capability) -> Any:
        if capability not in self._granted or self._providers.get(capability) is None:
            raise CapabilityError(f"Capability '{capability.value}' was not granted")
        return self._providers[capability]

    @property
    def filesystem(self) -> ScopedFileAccess:
        return self._require(Capability.FILESYSTEM)

    @property
    def paths(self) -> PathTools:
        return self._require(Capability.PATHS)

    @property
    def store(self) -> MemoryStorePort:
        return self._require(Capability.STORE)

    @property
    def clock(self) -> Clock:
        return self._require(Capability.CLOCK)

    @property
    def inference(self) -> InferenceServicePort:
        return self._require(Capability.INFERENCE)


def build_bundle(
    granted: Iterable[Capability],
    *,
    data_dir: Path,
    store: Optional[MemoryStorePort] = None,
    inference: Optional[InferenceServicePort] = None,
) -> CapabilityBundle:
    """Construct providers lazily so ungranted ones are never created."""
    granted = frozenset(granted)
    providers: dict[Capability, Any] = {}
    if Capability.FILESYSTEM in granted:
        providers[Capability.FILESYSTEM] = ScopedFileAccess(data_dir)
    if Capability.PATHS in granted:
        providers[Capability.PATHS] = PathTools()
    if Capability.STORE in granted:
        providers[Capability.STORE] = store
    if Capability.CLOCK in granted:
        providers[Capability.CLOCK] = Clock()
    if Capability.INFERENCE in granted:
        providers[Capability.INFERENCE] = inference
    return CapabilityBundle(granted, providers)
