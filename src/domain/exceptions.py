"""
domain.exceptions - Custom exception hierarchy for the assistant core.

All domain-level errors inherit from DomainError so callers can catch
broad or specific exceptions as needed.
"""


class DomainError(Exception):
    """Base exception for all domain-level errors."""


class InferenceError(DomainError):
    """Raised when the inference service cannot produce text."""


class InferenceUnavailableError(InferenceError):
    """Raised when the inference backend is unreachable or misconfigured."""


class InferenceTimeoutError(InferenceError):
    """Raised when an inference call exceeds its timeout."""


class EmbeddingError(DomainError):
    """Raised when text cannot be embedded."""


class ClassificationError(DomainError):
    """Raised when a classifier cannot produce a usable answer."""


class PlanError(DomainError):
    """Raised when an execution plan is malformed or cannot be built."""


class AgentNotFoundError(DomainError):
    """Raised when no static, cached or registered agent matches a name."""


class AgentLoadError(DomainError):
    """Raised when a dynamic agent definition cannot be loaded."""


class CapabilityError(AgentLoadError):
    """Raised when an agent asks for a capability outside its grant."""


class AgentExecutionError(DomainError):
    """Raised when an agent fails while executing a step."""


class MalformedContentError(DomainError):
    """Raised when content meant as natural language is serialized structure."""


class RepositoryError(DomainError):
    """Raised when a database operation fails."""
