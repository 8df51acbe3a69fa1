"""
application.context - Session-scoped conversation state.

Owned by the presentation adapters (CLI chat loop, WebSocket clients): the
core only ever reads the immutable ConversationContext it hands out. Two
concurrent sessions get two different SessionContext instances.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional
from uuid import uuid4

from domain.models import ConversationContext, RequestOptions, Utterance


@dataclass
class SessionContext:
    """Per-session context kept by an adapter between requests.

    Attributes:
        session_id:    Stable id used to scope stored memories.
        conversation:  Bounded window of prior turns (replaced, never mutated).
        request_id:    Unique per request, for tracing/logging.
    """
    session_id: str = field(default_factory=lambda: uuid4().hex)
    conversation: ConversationContext = field(default_factory=ConversationContext)
    request_id: str = field(default_factory=lambda: uuid4().hex)

    @classmethod
    def with_window(cls, max_turns: int, session_id: Optional[str] = None) -> SessionContext:
        ctx = cls(conversation=ConversationContext(max_turns=max_turns))
        if session_id:
            ctx.session_id = session_id
        return ctx

    def new_request(self) -> None:
        self.request_id = uuid4().hex

    def utterance(self, text: str, options: Optional[RequestOptions] = None) -> Utterance:
        """Snapshot the current window into an immutable Utterance."""
        return Utterance(
            text=text,
            options=options or RequestOptions(),
            session_id=self.session_id,
            context=self.conversation,
        )

    def record_exchange(self, user_text: str, reply: Optional[str]) -> None:
        conversation = self.conversation.append("user", user_text)
        if reply:
            conversation = conversation.append("assistant", reply)
        self.conversation = conversation
