"""Tests for the LLM client wrapper around the OpenAI SDK."""

import math
from types import SimpleNamespace
from unittest.mock import MagicMock

import httpx
import openai
import pytest

from app.core.llm import LLMClient, compute_confidence, is_model_error


def not_found(message="The model `nope` does not exist"):
    response = httpx.Response(404, request=httpx.Request("POST", "http://llm.test/chat/completions"))
    return openai.NotFoundError(message, response=response, body=None)


def completion(content, logprobs=None, model="gpt-4o-mini"):
    choice_logprobs = None
    if logprobs is not None:
        choice_logprobs = SimpleNamespace(content=[SimpleNamespace(logprob=lp) for lp in logprobs])
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content), logprobs=choice_logprobs)],
        model=model,
        usage=SimpleNamespace(prompt_tokens=7, completion_tokens=3, total_tokens=10),
    )


def chunk(content=None, usage=None):
    choices = [SimpleNamespace(delta=SimpleNamespace(content=content))] if content is not None else []
    return SimpleNamespace(choices=choices, usage=usage)


@pytest.fixture
def llm():
    client = LLMClient(api_key="test-key")
    client._client = MagicMock()
    return client


class TestConfidence:
    def test_geometric_mean_as_percentage(self):
        assert compute_confidence([-0.1, -0.3]) == pytest.approx(math.exp(-0.2) * 100)

    def test_missing_logprobs(self):
        assert compute_confidence(None) is None
        assert compute_confidence([]) is None
        assert compute_confidence([None, float("nan")]) is None

    def test_certain_tokens_score_100(self):
        assert compute_confidence([0.0, 0.0]) == 100.0


class TestModelErrors:
    def test_not_found_is_model_error(self):
        assert is_model_error(not_found())

    def test_other_errors_are_not(self):
        assert not is_model_error(RuntimeError("model exploded"))
        assert not is_model_error(ValueError("bad input"))


class TestComplete:
    def test_returns_content_usage_and_logprobs(self, llm):
        llm.client.chat.completions.create.return_value = completion("Hi", logprobs=[-0.5])

        result = llm.complete([{"role": "user", "content": "Hello"}], logprobs=True)

        kwargs = llm.client.chat.completions.create.call_args.kwargs
        assert kwargs["logprobs"] is True
        assert result.content == "Hi"
        assert result.usage["total_tokens"] == 10
        assert result.confidence == pytest.approx(math.exp(-0.5) * 100)

    def test_fallback_on_unknown_model(self, llm):
        llm.client.chat.completions.create.side_effect = [not_found(), completion("From fallback", model="backup")]

        result = llm.complete_with_fallback([], model="nope", fallback_model="backup")

        models = [c.kwargs["model"] for c in llm.client.chat.completions.create.call_args_list]
        assert models == ["nope", "backup"]
        assert result.content == "From fallback"

    def test_other_failures_are_not_retried(self, llm):
        llm.client.chat.completions.create.side_effect = RuntimeError("timeout")

        with pytest.raises(RuntimeError):
            llm.complete_with_fallback([], model="nope", fallback_model="backup")

        assert llm.client.chat.completions.create.call_count == 1


class TestStream:
    def test_yields_deltas_and_records_usage(self, llm):
        llm.client.chat.completions.create.return_value = iter([
            chunk("Hel"),
            chunk(""),
            chunk("lo"),
            chunk(usage=SimpleNamespace(prompt_tokens=5, completion_tokens=2, total_tokens=7)),
        ])
        usage = {}

        tokens = list(llm.stream([], model="gpt-4o", usage=usage))

        assert tokens == ["Hel", "lo"]
        assert usage == {"prompt_tokens": 5, "completion_tokens": 2, "total_tokens": 7}
        assert llm.client.chat.completions.create.call_args.kwargs["stream"] is True

    def test_stream_falls_back_on_unknown_model(self, llm):
        llm.client.chat.completions.create.side_effect = [not_found(), iter([chunk("ok")])]

        tokens = list(llm.stream([], model="nope", fallback_model="backup"))

        assert tokens == ["ok"]
        assert llm.client.chat.completions.create.call_args.kwargs["model"] == "backup"

    def test_stream_without_fallback_raises(self, llm):
        llm.client.chat.completions.create.side_effect = not_found()

        with pytest.raises(openai.NotFoundError):
            list(llm.stream([], model="nope"))
