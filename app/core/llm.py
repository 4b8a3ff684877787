"""
LLM provider client (OpenAI compatible chat completions)
"""

import math
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional

import openai
from openai import OpenAI

from app.config import settings

logger = logging.getLogger(__name__)


@dataclass
class LLMResult:
    content: str
    model: str
    usage: Dict[str, int] = field(default_factory=dict)
    token_logprobs: Optional[List[float]] = None

    @property
    def confidence(self) -> Optional[float]:
        return compute_confidence(self.token_logprobs)


def compute_confidence(token_logprobs: Optional[List[Optional[float]]]) -> Optional[float]:
    """Geometric mean of token probabilities as a 0-100 score; None when no logprobs are available."""
    if not token_logprobs:
        return None
    values = [lp for lp in token_logprobs if lp is not None and not math.isnan(lp)]
    if not values:
        return None
    score = math.exp(sum(values) / len(values)) * 100
    return min(100.0, max(0.0, score))


def is_model_error(exc: Exception) -> bool:
    """True when the provider rejected the request because of the model name."""
    if isinstance(exc, openai.NotFoundError):
        return True
    if isinstance(exc, openai.APIStatusError):
        if exc.status_code == 404 or getattr(exc, "code", None) == "model_not_found":
            return True
    return "model" in str(exc).lower() and isinstance(exc, openai.OpenAIError)


def _usage_dict(usage: Any) -> Dict[str, int]:
    if usage is None:
        return {}
    return {
        "prompt_tokens": usage.prompt_tokens or 0,
        "completion_tokens": usage.completion_tokens or 0,
        "total_tokens": usage.total_tokens or 0,
    }


class LLMClient:
    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None):
        self.api_key = api_key if api_key is not None else settings.openai_api_key
        self.base_url = base_url if base_url is not None else settings.openai_base_url
        self._client: Optional[OpenAI] = None

    @property
    def client(self) -> OpenAI:
        # Created on first use so the app can boot without a provider key
        if self._client is None:
            self._client = OpenAI(api_key=self.api_key, base_url=self.base_url)
        return self._client

    def complete(
        self,
        messages: List[Dict[str, Any]],
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
        logprobs: bool = False,
    ) -> LLMResult:
        """Single non-streaming chat completion"""
        params: Dict[str, Any] = {
            "model": model or settings.default_model,
            "messages": messages,
            "temperature": temperature,
        }
        if max_tokens:
            params["max_tokens"] = max_tokens
        if logprobs:
            params["logprobs"] = True
            params["top_logprobs"] = 1

        response = self.client.chat.completions.create(**params)
        choice = response.choices[0]
        token_logprobs = None
        if logprobs and choice.logprobs and choice.logprobs.content:
            token_logprobs = [token.logprob for token in choice.logprobs.content]
        return LLMResult(
            content=choice.message.content or "",
            model=response.model or params["model"],
            usage=_usage_dict(response.usage),
            token_logprobs=token_logprobs,
        )

    def complete_with_fallback(
        self,
        messages: List[Dict[str, Any]],
        model: str,
        fallback_model: str,
        **kwargs: Any,
    ) -> LLMResult:
        """Retry once with fallback_model when the provider rejects model"""
        try:
            return self.complete(messages, model=model, **kwargs)
        except Exception as e:
            if model == fallback_model or not is_model_error(e):
                raise
            logger.warning(f"Model \"{model}\" not available, falling back to {fallback_model}")
            return self.complete(messages, model=fallback_model, **kwargs)

    def stream(
        self,
        messages: List[Dict[str, Any]],
        model: Optional[str] = None,
        temperature: float = 0.7,
        fallback_model: Optional[str] = None,
        usage: Optional[Dict[str, int]] = None,
    ) -> Iterator[str]:
        """
        Open a streaming completion and yield text deltas.
        The request is sent before the first yield, so model errors surface on the
        first next() and are retried once with fallback_model. Token usage is
        written into the optional usage dict once the provider reports it.
        """
        model = model or settings.default_model
        try:
            chunks = self._open_stream(messages, model, temperature)
        except Exception as e:
            if not fallback_model or model == fallback_model or not is_model_error(e):
                raise
            logger.warning(f"Model \"{model}\" not available, falling back to {fallback_model}")
            chunks = self._open_stream(messages, fallback_model, temperature)

        for chunk in chunks:
            if getattr(chunk, "usage", None) is not None and usage is not None:
                usage.update(_usage_dict(chunk.usage))
            if not chunk.choices:
                continue
            delta = chunk.choices[0].delta.content
            if delta:
                yield delta

    def _open_stream(self, messages: List[Dict[str, Any]], model: str, temperature: float):
        return self.client.chat.completions.create(
            model=model,
            messages=messages,
            temperature=temperature,
            stream=True,
            stream_options={"include_usage": True},
        )


_llm_client: Optional[LLMClient] = None


def get_llm_client() -> LLMClient:
    global _llm_client
    if _llm_client is None:
        _llm_client = LLMClient()
    return _llm_client
