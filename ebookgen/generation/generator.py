"""
Text generators.

The engine only needs `generate(prompt, max_tokens) -> str`; `stream()` is
used when available so partial output can be cached while it arrives.
AnthropicGenerator is the production implementation built on LangChain.
"""

from abc import ABC, abstractmethod
from typing import AsyncIterator, Dict, Optional

from langchain_anthropic import ChatAnthropic
from langchain_core.messages import HumanMessage

from ebookgen.config import config
from ebookgen.errors import GenerationError, GeneratorConfigError


class Generator(ABC):
    """Produces text for a prompt. Fails with GenerationError."""

    @abstractmethod
    async def generate(self, prompt: str, max_tokens: int) -> str:
        ...

    async def stream(self, prompt: str, max_tokens: int) -> AsyncIterator[str]:
        """Yield text pieces as they are produced. Defaults to one piece."""
        yield await self.generate(prompt, max_tokens)


def _message_text(content) -> str:
    """Flatten a LangChain message/chunk content into plain text."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type") == "text":
                parts.append(block.get("text", ""))
        return "".join(parts)
    return ""


class AnthropicGenerator(Generator):
    """
    Generator backed by Claude through langchain-anthropic.

    One ChatAnthropic client is kept per token budget, since max_tokens is
    fixed at construction time.
    """

    def __init__(
        self,
        model_name: Optional[str] = None,
        temperature: Optional[float] = None,
        api_key: Optional[str] = None,
        request_timeout: float = 120.0,
    ):
        self.model_name = model_name or config.MODEL_NAME
        self.temperature = config.TEMPERATURE if temperature is None else temperature
        self.api_key = api_key or config.ANTHROPIC_API_KEY
        self.request_timeout = request_timeout
        self._clients: Dict[int, ChatAnthropic] = {}

    def _llm(self, max_tokens: int) -> ChatAnthropic:
        if not self.api_key:
            raise GeneratorConfigError(
                "ANTHROPIC_API_KEY is not configured. "
                "Set it in your .env file or environment variables."
            )

        if max_tokens not in self._clients:
            self._clients[max_tokens] = ChatAnthropic(
                model=self.model_name,
                temperature=self.temperature,
                max_tokens=max_tokens,
                anthropic_api_key=self.api_key,
                timeout=self.request_timeout,
            )
        return self._clients[max_tokens]

    async def generate(self, prompt: str, max_tokens: int) -> str:
        llm = self._llm(max_tokens)
        try:
            response = await llm.ainvoke([HumanMessage(content=prompt)])
        except Exception as e:
            raise GenerationError(f"Claude request failed: {e}") from e
        return _message_text(response.content)

    async def stream(self, prompt: str, max_tokens: int) -> AsyncIterator[str]:
        llm = self._llm(max_tokens)
        try:
            async for chunk in llm.astream([HumanMessage(content=prompt)]):
                text = _message_text(chunk.content)
                if text:
                    yield text
        except Exception as e:
            raise GenerationError(f"Claude stream failed: {e}") from e
