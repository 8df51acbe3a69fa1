"""
Shared FastAPI dependencies.

- get_factory(): the initialized ServiceFactory (set by the app lifespan)
- get_assistant_service(): the shared AssistantService
- get_memory_store(): the memory store behind /memories
- get_notifications(): the hub WebSocket surfaces register with
"""

from __future__ import annotations

from fastapi import Depends

from application.services.assistant import AssistantService
from domain.ports import MemoryStorePort
from factory import ServiceFactory
from infrastructure.notifications.hub import NotificationHub

# Module-level reference set by app lifespan
_factory: ServiceFactory | None = None


def set_factory(factory: ServiceFactory | None) -> None:
    global _factory
    _factory = factory


def get_factory() -> ServiceFactory:
    if _factory is None:
        raise RuntimeError("ServiceFactory not initialized.")
    return _factory


def get_assistant_service(factory: ServiceFactory = Depends(get_factory)) -> AssistantService:
    return factory.create_assistant_service()


def get_memory_store(factory: ServiceFactory = Depends(get_factory)) -> MemoryStorePort:
    return factory.memory_store


def get_notifications() -> NotificationHub:
    return get_factory().notifications
