from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from langchain_openai import ChatOpenAI
from loguru import logger


# Pick up OPENAI_API_KEY from a local .env before any client is built
_here = Path(__file__).resolve().parents[1]
for _env_path in (_here / ".env", Path.cwd() / ".env"):
    if _env_path.is_file():
        load_dotenv(dotenv_path=str(_env_path), override=False)
        break


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        return default


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return None


@lru_cache(maxsize=8)
def get_chat_model(model: Optional[str] = None, temperature: Optional[float] = None) -> Optional[ChatOpenAI]:
    """Return a cached LangChain ChatOpenAI client using env configuration.

    Env vars:
      - OPENAI_API_KEY (required)
      - OPENAI_MODEL (optional; default: gpt-4o-mini)
      - OPENAI_TEMPERATURE (optional; default: 1)
      - OPENAI_MAX_TOKENS (optional; default: 512)
    """
    api_key = os.getenv("OPENAI_API_KEY")
    if not api_key:
        logger.error("OPENAI_API_KEY not set; cannot initialize OpenAI chat client")
        return None
    mdl = model or os.getenv("OPENAI_MODEL", "gpt-4o-mini")
    if temperature is None:
        temperature = _env_float("OPENAI_TEMPERATURE", 1.0)
    max_tokens = _env_int("OPENAI_MAX_TOKENS", 512)
    logger.debug(f"Initializing OpenAI chat model={mdl} temperature={temperature}")
    kwargs = {"model": mdl, "temperature": temperature, "api_key": api_key}
    if max_tokens:
        kwargs["max_tokens"] = max_tokens
    return ChatOpenAI(**kwargs)


def get_analysis_model() -> Optional[ChatOpenAI]:
    return get_chat_model(temperature=_env_float("OPENAI_ANALYSIS_TEMPERATURE", 0.2))
