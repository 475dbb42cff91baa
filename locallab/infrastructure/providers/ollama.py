import logging
import time
from typing import Any

import openai
from openai import AsyncOpenAI

from ...domain.contracts.embedding import EmbeddingGatewayContract
from ...domain.contracts.generation import (
    GenerationBackendContract,
    GenerationRequest,
    GenerationResponse,
)
from ...domain.errors import BackendError
from ..settings import Settings

logger = logging.getLogger(__name__)

# Ollama ignores the key but the SDK refuses to build a client without one.
OLLAMA_API_KEY = "ollama"


def create_client(settings: Settings) -> AsyncOpenAI:
    return AsyncOpenAI(
        base_url=settings.ollama_base_url.rstrip("/") + "/v1",
        api_key=OLLAMA_API_KEY,
        timeout=float(settings.ollama_timeout_seconds),
        max_retries=settings.ollama_max_retries,
    )


def _describe(error: openai.OpenAIError) -> str:
    if isinstance(error, openai.APIConnectionError):
        return f"Cannot reach Ollama: {error}"
    if isinstance(error, openai.NotFoundError):
        return f"Model not found: {error}"
    return str(error)


class OllamaGenerationBackend(GenerationBackendContract):
    def __init__(self, client: AsyncOpenAI) -> None:
        self.client = client

    async def generate(self, request: GenerationRequest) -> GenerationResponse:
        logger.debug(
            "Generating with %s, prompt length %d", request.model, len(request.prompt)
        )

        messages: list[dict[str, str]] = []
        if request.system_prompt:
            messages.append({"role": "system", "content": request.system_prompt})
        messages.append({"role": "user", "content": request.prompt})

        kwargs: dict[str, Any] = {
            "model": request.model,
            "messages": messages,
            "stream": True,
            "stream_options": {"include_usage": True},
        }
        if request.temperature is not None:
            kwargs["temperature"] = request.temperature
        if request.top_p is not None:
            kwargs["top_p"] = request.top_p
        if request.max_tokens is not None:
            kwargs["max_tokens"] = request.max_tokens

        options = self._ollama_options(request)
        if options:
            kwargs["extra_body"] = {"options": options}

        start_time = time.perf_counter()
        first_token_at: float | None = None
        parts: list[str] = []
        usage = None

        try:
            stream = await self.client.chat.completions.create(**kwargs)
            async for chunk in stream:
                if chunk.usage is not None:
                    usage = chunk.usage
                if not chunk.choices:
                    continue
                content = chunk.choices[0].delta.content
                if content:
                    if first_token_at is None:
                        first_token_at = time.perf_counter()
                    parts.append(content)
        except openai.OpenAIError as e:
            raise BackendError(_describe(e)) from e

        end_time = time.perf_counter()
        duration_ms = int((end_time - start_time) * 1000)

        prompt_tokens = usage.prompt_tokens if usage else None
        completion_tokens = usage.completion_tokens if usage else None

        time_to_first_token_ms = None
        tokens_per_second = None
        if first_token_at is not None:
            time_to_first_token_ms = int((first_token_at - start_time) * 1000)
        if completion_tokens:
            generation_seconds = end_time - (first_token_at or start_time)
            if generation_seconds > 0:
                tokens_per_second = completion_tokens / generation_seconds

        logger.debug(
            "Generation with %s finished in %dms (%s tokens/s)",
            request.model,
            duration_ms,
            f"{tokens_per_second:.1f}" if tokens_per_second else "n/a",
        )

        return GenerationResponse(
            text="".join(parts),
            model=request.model,
            duration_ms=duration_ms,
            tokens_per_second=tokens_per_second,
            time_to_first_token_ms=time_to_first_token_ms,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
        )

    def _ollama_options(self, request: GenerationRequest) -> dict[str, Any]:
        options: dict[str, Any] = {}
        if request.top_k is not None:
            options["top_k"] = request.top_k
        if request.context_window is not None:
            options["num_ctx"] = request.context_window
        return options


class OllamaEmbeddingGateway(EmbeddingGatewayContract):
    def __init__(self, client: AsyncOpenAI) -> None:
        self.client = client

    async def embed(self, model: str, text: str) -> list[float]:
        logger.debug("Embedding %d characters with %s", len(text), model)

        try:
            response = await self.client.embeddings.create(model=model, input=text)
        except openai.OpenAIError as e:
            raise BackendError(_describe(e)) from e

        if not response.data:
            raise BackendError(f"Embedding model {model} returned no vectors")

        return list(response.data[0].embedding)
