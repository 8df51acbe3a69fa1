"""
infrastructure - Concrete implementations of domain ports.

Contains all vendor-specific code: LangChain model providers, HuggingFace
embeddings, SQLite persistence and the notification hub.
Depends on domain/ only (implements ports). Never imported by application/.
"""
