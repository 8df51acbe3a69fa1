"""
Run the Desk Assistant CLI.

Usage:
    python run_cli.py [COMMAND] [OPTIONS]

Commands:
    ask               One-shot utterance (waits for any background agent result)
    chat              Interactive session
    agents list       Show dynamic agent definitions
    agents register   Register a trusted plugin entrypoint
    memories list     Browse stored memories
    memories delete   Delete a memory by id
    new-session       Start a fresh session (~/.desk-assistant/session.json)
    init              Create the database and register bundled plugins

Examples:
    python run_cli.py ask "I have a dentist appointment tomorrow at 3pm"
    python run_cli.py ask "What did I say about the dentist?"
    python run_cli.py chat

See run_api.py for the environment variables.
"""

import logging
import os
import sys
from pathlib import Path

# Ensure src/ is importable
sys.path.insert(0, str(Path(__file__).parent / "src"))

from adapters.cli.main import app

if __name__ == "__main__":
    logging.basicConfig(
        level=getattr(logging, os.getenv("LOG_LEVEL", "WARNING").upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    app()
