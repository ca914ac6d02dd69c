"""Streaming text-generation client.

The orchestrator only needs an ordered stream of text tokens for a prompt.
``open_stream`` is awaited before the first token so that connection and
request errors surface during session setup, ahead of any placeholder message.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import AsyncIterator, Protocol, runtime_checkable

from loguru import logger
from openai import AsyncOpenAI

from ..config import LLMConfig


@dataclass(frozen=True)
class GenerationParams:
    """Sampling parameters for one generation."""

    max_new_tokens: int = 2048
    temperature: float = 0.7
    repetition_penalty: float = 1.1

    @classmethod
    def from_config(cls, config: LLMConfig) -> "GenerationParams":
        return cls(
            max_new_tokens=config.max_new_tokens,
            temperature=config.temperature,
            repetition_penalty=config.repetition_penalty,
        )


@runtime_checkable
class StreamingModel(Protocol):
    """A text-generation model yielding tokens in emission order."""

    model_id: str

    async def open_stream(
        self, prompt: str, params: GenerationParams
    ) -> AsyncIterator[str]:
        """Start a generation and return its token stream.

        The returned iterator may raise mid-sequence.
        """
        ...


class OpenAICompatibleModel:
    """Streams completions from an OpenAI-compatible server (TGI, vLLM, ...).

    ``repetition_penalty`` is not part of the OpenAI schema, so it is passed
    through ``extra_body``, which those servers accept.
    """

    def __init__(self, base_url: str, model: str, api_key: str = "not-needed"):
        """
        Args:
            base_url: API base URL, e.g. ``http://localhost:8080/v1``
            model: Model name sent with each request
            api_key: API key (local servers usually ignore it)
        """
        self.model_id = model
        self._client = AsyncOpenAI(base_url=base_url, api_key=api_key)
        logger.debug(f"OpenAI client created (base_url: {base_url}, model: {model})")

    @classmethod
    def from_config(cls, config: LLMConfig) -> "OpenAICompatibleModel":
        return cls(base_url=config.base_url, model=config.model, api_key=config.api_key)

    async def open_stream(
        self, prompt: str, params: GenerationParams
    ) -> AsyncIterator[str]:
        stream = await self._client.completions.create(
            model=self.model_id,
            prompt=prompt,
            max_tokens=params.max_new_tokens,
            temperature=params.temperature,
            stream=True,
            extra_body={"repetition_penalty": params.repetition_penalty},
        )
        logger.debug(f"Generation stream opened (prompt chars={len(prompt)})")
        return self._tokens(stream)

    @staticmethod
    async def _tokens(stream) -> AsyncIterator[str]:
        async for chunk in stream:
            if chunk.choices and chunk.choices[0].text:
                yield chunk.choices[0].text

    async def close(self) -> None:
        await self._client.close()
