"""
Run the Desk Assistant REST API.

Usage:
    python run_api.py

Environment variables (all optional):
    LLM_PROVIDER          "openai", "groq", or "ollama" (default: ollama)
    LLM_MODEL_OLLAMA      Model name when LLM_PROVIDER=ollama (default: llama3.2)
    LLM_MODEL_OPENAI      Model name when LLM_PROVIDER=openai (default: gpt-4.1-mini)
    LLM_MODEL_GROQ        Model name when LLM_PROVIDER=groq (default: llama-3.3-70b-versatile)
    OPENAI_API_KEY        Required when LLM_PROVIDER=openai
    GROQ_API_KEY          Required when LLM_PROVIDER=groq
    EMBEDDING_MODEL       HuggingFace sentence-transformer for memory search
    DB_PATH               SQLite database file path (default: assistant.db)
    AGENT_DATA_DIR        Root for dynamic agent scratch directories
    SANDBOX_CAPABILITIES  Comma list of capabilities dynamic agents may request
    TRUSTED_AGENT_MODULES Comma list of module prefixes plugins may load from
    LOG_LEVEL             Logging level (default: INFO)
    API_HOST / API_PORT   Bind address (default: 127.0.0.1:8000)
"""

import logging
import os
import sys
from pathlib import Path

# Ensure src/ is importable
sys.path.insert(0, str(Path(__file__).parent / "src"))

import uvicorn

if __name__ == "__main__":
    logging.basicConfig(
        level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    uvicorn.run(
        "adapters.rest.app:app",
        host=os.getenv("API_HOST", "127.0.0.1"),
        port=int(os.getenv("API_PORT", "8000")),
        reload=True,
    )
