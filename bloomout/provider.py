from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Callable, List, Protocol, Type, TypeVar

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from loguru import logger
from pydantic import BaseModel, ValidationError

from .errors import ProviderError, ProviderFailure
from .llm import get_analysis_model, get_chat_model


SchemaT = TypeVar("SchemaT", bound=BaseModel)


@dataclass
class ChatHandle:
    """Provider-side state of one chat: instruction plus answered exchanges."""

    system_instruction: str
    history: List[BaseMessage] = field(default_factory=list)


class ChatProvider(Protocol):
    def create_session(self, system_instruction: str) -> Any:
        ...

    async def session_send(self, handle: Any, text: str) -> str:
        ...

    async def structured_query(self, prompt: str, schema: Type[SchemaT]) -> SchemaT:
        ...


def _reply_text(result: Any) -> str:
    content = getattr(result, "content", None)
    if isinstance(content, str):
        return content.strip()
    if isinstance(content, list):
        parts = [p.get("text", "") if isinstance(p, dict) else str(p) for p in content]
        return "".join(parts).strip()
    return ""


class LangChainProvider:
    """AI provider capability backed by a LangChain chat model.

    ``llm`` and ``analysis_llm`` may be injected; otherwise the cached
    ChatOpenAI clients from ``bloomout.llm`` are resolved on first use.
    """

    def __init__(
        self,
        llm: Any = None,
        analysis_llm: Any = None,
        chat_factory: Callable[[], Any] = get_chat_model,
        analysis_factory: Callable[[], Any] = get_analysis_model,
    ) -> None:
        self._llm = llm
        self._analysis_llm = analysis_llm
        self._chat_factory = chat_factory
        self._analysis_factory = analysis_factory

    def _chat(self) -> Any:
        if self._llm is None:
            self._llm = self._chat_factory()
        if self._llm is None:
            raise ProviderError("chat model not initialized; set OPENAI_API_KEY (and optionally OPENAI_MODEL)")
        return self._llm

    def _analysis(self) -> Any:
        if self._analysis_llm is None:
            self._analysis_llm = self._analysis_factory()
        if self._analysis_llm is None:
            raise ProviderFailure("analysis model not initialized; set OPENAI_API_KEY")
        return self._analysis_llm

    def create_session(self, system_instruction: str) -> ChatHandle:
        return ChatHandle(system_instruction=system_instruction)

    async def session_send(self, handle: ChatHandle, text: str) -> str:
        llm = self._chat()
        messages: List[BaseMessage] = [SystemMessage(content=handle.system_instruction)]
        messages.extend(handle.history)
        messages.append(HumanMessage(content=text))
        t0 = time.perf_counter()
        try:
            result = await llm.ainvoke(messages)
        except Exception as e:
            logger.error(f"llm_call_failed | kind=chat | {type(e).__name__}: {e}")
            raise ProviderError(str(e)) from e
        dt = time.perf_counter() - t0
        reply = _reply_text(result)
        if not reply:
            logger.error(f"llm_call_failed | kind=chat dt={dt:.2f}s | empty reply")
            raise ProviderError("provider returned an empty reply")
        handle.history.extend([HumanMessage(content=text), AIMessage(content=reply)])
        logger.info(f"llm_call | kind=chat exchanges={len(handle.history) // 2} dt={dt:.2f}s")
        return reply

    async def structured_query(self, prompt: str, schema: Type[SchemaT]) -> SchemaT:
        llm = self._analysis()
        t0 = time.perf_counter()
        try:
            runnable = llm.with_structured_output(schema)
            value = await runnable.ainvoke(prompt)
        except Exception as e:
            logger.error(f"llm_call_failed | kind=structured schema={schema.__name__} | {type(e).__name__}: {e}")
            raise ProviderFailure(str(e)) from e
        dt = time.perf_counter() - t0
        if isinstance(value, dict):
            try:
                value = schema.model_validate(value)
            except ValidationError as e:
                raise ProviderFailure(f"non-conforming {schema.__name__}: {e}") from e
        if not isinstance(value, schema):
            raise ProviderFailure(f"expected {schema.__name__}, got {type(value).__name__}")
        logger.info(f"llm_call | kind=structured schema={schema.__name__} dt={dt:.2f}s")
        return value
