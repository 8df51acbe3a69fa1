"""
agent - Agents the orchestrator can run.

Built-in agents (memory, screen capture, answer, planner), the registry,
and the sandbox that loads trusted dynamic agents with a capability bundle.
Depends on domain/ only; concrete stores and models arrive through ports.
"""
