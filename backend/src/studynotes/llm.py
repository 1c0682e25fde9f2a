"""LLM client helpers (OpenAI-compatible or Ollama chat models via LangChain)."""
from __future__ import annotations

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Any, Protocol

from langchain_community.cache import SQLiteCache
from langchain_core.globals import set_llm_cache
from langchain_core.messages import BaseMessage
from langchain_core.prompts import ChatPromptTemplate
from langchain_ollama import ChatOllama
from langchain_openai import ChatOpenAI

from .config import CacheSettings, ModelSettings
from .observability import record_tokens

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a precise, school-level tutor and education content writer. Use the provided CONTEXT "
    "(official syllabus excerpts and supporting passages) to create accurate, syllabus-aligned notes. "
    "Do not invent new syllabus topics. Use simple, clear English suitable for Class 9-12 students. "
    "Avoid filler, repetition, or \"I don't know\". If context contradicts, prefer the board syllabus. "
    "Output must be a single JSON object following the given schema."
)


class TextGenerator(Protocol):
    async def generate(self, prompt: str) -> str: ...


class LLMService:
    """Wraps the chat model used to draft topic pages."""

    def __init__(self, settings: ModelSettings) -> None:
        self.timeout = settings.request_timeout_seconds
        if settings.llm_provider == "openai":
            api_key = os.getenv("OPENAI_API_KEY")
            if not api_key:
                raise RuntimeError("OPENAI_API_KEY is not set but llm_provider=openai")
            openai_kwargs: dict[str, Any] = {
                "model": settings.llm_model,
                "temperature": settings.temperature,
                "max_retries": 2,
                "max_tokens": settings.max_output_tokens,
                "timeout": settings.request_timeout_seconds,
                "api_key": api_key,
            }
            if settings.openai_api_base:
                openai_kwargs["base_url"] = settings.openai_api_base

            self.llm = ChatOpenAI(**openai_kwargs)
        else:
            self.llm = ChatOllama(
                model=settings.llm_model,
                base_url=settings.llm_base_url,
                temperature=settings.temperature,
                num_ctx=settings.max_input_tokens,
                num_predict=settings.max_output_tokens,
            )
        self.prompt = ChatPromptTemplate.from_messages([("system", SYSTEM_PROMPT), ("human", "{prompt}")])

    async def generate(self, prompt: str) -> str:
        messages = self.prompt.format_messages(prompt=prompt)
        response = await asyncio.wait_for(self.llm.ainvoke(messages), timeout=self.timeout)
        usage = getattr(response, "usage_metadata", None) or {}
        if usage:
            record_tokens(usage.get("input_tokens", 0), usage.get("output_tokens", 0))
        return message_text(response)


def configure_llm_cache(settings: CacheSettings) -> None:
    if not settings.llm_cache_enabled:
        return
    cache_path: Path = settings.llm_cache_path
    cache_path.parent.mkdir(parents=True, exist_ok=True)
    set_llm_cache(SQLiteCache(database_path=str(cache_path)))
    logger.info("LangChain cache enabled at %s", cache_path)


def message_text(message: BaseMessage) -> str:
    if isinstance(message.content, str):
        return message.content
    # LangChain >=0.2 may return a list of parts
    return "".join(part.get("text", "") if isinstance(part, dict) else str(part) for part in message.content)


def extract_json(content: str) -> dict[str, Any]:
    """Parse a JSON object from a model reply, tolerating code fences and surrounding prose."""

    cleaned = content.strip()
    if cleaned.startswith("```"):
        lines = cleaned.splitlines()
        if lines and lines[0].startswith("```"):
            lines = lines[1:]
        if lines and lines[-1].startswith("```"):
            lines = lines[:-1]
        cleaned = "\n".join(lines).strip()

    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError:
        start, end = cleaned.find("{"), cleaned.rfind("}")
        if start == -1 or end <= start:
            raise ValueError("model reply contains no JSON object") from None
        parsed = json.loads(cleaned[start : end + 1])
    if not isinstance(parsed, dict):
        raise ValueError("model reply is not a JSON object")
    return parsed
