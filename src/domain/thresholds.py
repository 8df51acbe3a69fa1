"""
domain.thresholds - Tunable routing and staged-search thresholds.

These are opaque, uncalibrated floats. Every one of them lives here instead
of in the code that uses it; infrastructure.config fills them from the
environment.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class RoutingThresholds:
    """Knobs for the intent router and the conversational override."""
    # Structural classifier abstains below these top scores
    abstain_short: float = 0.55
    abstain_default: float = 0.45
    short_utterance_tokens: int = 3
    min_margin: float = 0.05
    # memory_store wins a near-tie with the top intent above this score
    tiebreak_window: float = 0.05
    tiebreak_min_score: float = 0.6

    keyword_confidence: float = 0.6
    fallback_confidence: float = 0.7

    # Below this the orchestrator asks the planner agent for a plan
    planner_confidence: float = 0.5

    classifier_timeout_ms: int = 10_000
    override_timeout_ms: int = 5_000

    # Storage-statement pre-check: 0.7 * max + 0.3 * mean(top 3)
    storage_intent_threshold: float = 0.65


@dataclass(frozen=True)
class SearchThresholds:
    """Staged semantic search: one block per stage."""
    # Stage 1: current exchange
    min_context_chars: int = 40
    context_sample_limit: int = 1200
    context_sample_edge: int = 400
    current_min_similarity: float = 0.18
    current_timeout_ms: int = 10_000
    current_max_tokens: int = 140

    # Stage 2: session
    search_limit: int = 20
    session_min_similarity: float = 0.26
    session_top_sufficient: float = 0.28
    session_avg_sufficient: float = 0.25
    session_timeout_ms: int = 12_000
    session_max_tokens: int = 150

    # Stage 3: cross-session
    cross_min_similarity: float = 0.32
    cross_top_sufficient: float = 0.34
    cross_avg_sufficient: float = 0.30
    cross_timeout_ms: int = 13_000
    cross_max_tokens: int = 160

    temperature: float = 0.2
    snippet_count: int = 3
    snippet_chars: int = 220
    prompt_section_chars: int = 1500
