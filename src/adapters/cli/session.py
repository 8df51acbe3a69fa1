"""
adapters.cli.session - Local CLI session storage.

The CLI keeps one session id in ~/.desk-assistant/session.json so memories
stored by separate `ask` invocations share a session scope.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, asdict, field
from datetime import datetime
from pathlib import Path
from uuid import uuid4

_SESSION_DIR  = Path.home() / ".desk-assistant"
_SESSION_FILE = _SESSION_DIR / "session.json"


@dataclass
class Session:
    session_id: str = field(default_factory=lambda: uuid4().hex)
    created_at: str = field(default_factory=lambda: datetime.now().isoformat())


def load_session() -> Session | None:
    """Return the stored session, or None if there is none (or it is unreadable)."""
    if not _SESSION_FILE.exists():
        return None
    try:
        data = json.loads(_SESSION_FILE.read_text(encoding="utf-8"))
        return Session(**data)
    except (ValueError, TypeError):
        return None


def save_session(session: Session) -> None:
    _SESSION_DIR.mkdir(parents=True, exist_ok=True)
    _SESSION_FILE.write_text(
        json.dumps(asdict(session), indent=2), encoding="utf-8"
    )


def current_session() -> Session:
    """Load the stored session, creating and saving one on first use."""
    session = load_session()
    if session is None:
        session = Session()
        save_session(session)
    return session


def clear_session() -> None:
    if _SESSION_FILE.exists():
        _SESSION_FILE.unlink()
