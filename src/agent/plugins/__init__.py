"""Trusted dynamic agent plugins. Loaded by name through agent.loader."""
