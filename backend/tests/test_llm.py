"""Tests for the OpenRouter completion service's retry behaviour."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from types import SimpleNamespace

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import httpx
from openai import APIConnectionError, APIStatusError

from helpers import reply
from workforce.agents import llm
from workforce.agents.llm import OpenRouterCompletion, completion_text

REQUEST = httpx.Request("POST", "https://openrouter.ai/api/v1/chat/completions")


def status_error(code: int) -> APIStatusError:
    return APIStatusError(
        f"HTTP {code}", response=httpx.Response(code, request=REQUEST), body=None
    )


class ScriptedClient:
    """Stands in for AsyncOpenAI; raises the scripted errors, then replies."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.requests = []
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._create))

    async def _create(self, **kwargs):
        self.requests.append(kwargs)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def no_backoff():
    llm.LLM_RETRY_BASE_DELAY_SECONDS = 0


def test_transient_errors_are_retried():
    no_backoff()

    async def scenario():
        client = ScriptedClient(
            APIConnectionError(request=REQUEST), status_error(503), reply("finally")
        )
        service = OpenRouterCompletion(client=client, model="test/model")
        response = await service.complete([{"role": "user", "content": "hi"}])
        assert completion_text(response) == "finally"
        assert len(client.requests) == 3
        assert client.requests[0]["model"] == "test/model"
        assert client.requests[0]["messages"] == [{"role": "user", "content": "hi"}]

    asyncio.run(scenario())
    print("  PASS: transient errors are retried")


def test_gives_up_after_max_retries():
    no_backoff()

    async def scenario():
        client = ScriptedClient(*(status_error(429) for _ in range(llm.LLM_MAX_RETRIES)))
        service = OpenRouterCompletion(client=client)
        try:
            await service.complete([])
        except APIStatusError as e:
            assert e.status_code == 429
        else:
            raise AssertionError("Expected the last APIStatusError to propagate")
        assert len(client.requests) == llm.LLM_MAX_RETRIES

    asyncio.run(scenario())
    print("  PASS: gives up after max retries")


def test_client_errors_are_not_retried():
    async def scenario():
        client = ScriptedClient(status_error(400), reply("unused"))
        service = OpenRouterCompletion(client=client)
        try:
            await service.complete([])
        except APIStatusError as e:
            assert e.status_code == 400
        else:
            raise AssertionError("Expected APIStatusError")
        assert len(client.requests) == 1

    asyncio.run(scenario())
    print("  PASS: client errors are not retried")


def test_completion_text():
    assert completion_text(reply("hello")) == "hello"
    assert completion_text(reply(None)) is None
    assert completion_text(SimpleNamespace(choices=[])) is None
    assert completion_text(None) is None
    print("  PASS: completion_text")


def main():
    tests = [
        ("Transient retry", test_transient_errors_are_retried),
        ("Retry limit", test_gives_up_after_max_retries),
        ("No retry on 4xx", test_client_errors_are_not_retried),
        ("Completion text", test_completion_text),
    ]

    passed = 0
    failed = 0
    for name, test_fn in tests:
        try:
            test_fn()
            passed += 1
        except Exception as e:
            print(f"  FAIL: {name}: {e}")
            failed += 1

    print(f"\n{'='*50}")
    print(f"Results: {passed} passed, {failed} failed, {passed + failed} total")
    if failed:
        sys.exit(1)
    print("All tests passed!")


if __name__ == "__main__":
    main()
