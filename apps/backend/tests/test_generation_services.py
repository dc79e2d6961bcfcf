import json
import sys
import unittest
from pathlib import Path

import httpx
from pydantic import ValidationError

sys.path.append(str(Path(__file__).resolve().parents[1] / "src"))

from prompt_canvas.config import Settings
from prompt_canvas.generation import (
    FailureConfig,
    FailureRule,
    GenerationResult,
    GenerationService,
    MockGenerationService,
    OpenAIGenerationService,
    create_generation_service,
)


def sse_body(*contents: str) -> bytes:
    lines = []
    for content in contents:
        lines.append("data: " + json.dumps({"choices": [{"delta": {"content": content}}]}))
    lines.append("data: {not json")
    lines.append("data: [DONE]")
    return ("\n\n".join(lines) + "\n\n").encode()


class Collector:
    def __init__(self) -> None:
        self.chunks: list[str] = []
        self.completed: str | None = None
        self.error: str | None = None

    def on_chunk(self, chunk: str) -> None:
        self.chunks.append(chunk)

    def on_complete(self, text: str) -> None:
        self.completed = text

    def on_error(self, message: str) -> None:
        self.error = message


class OpenAIGenerationServiceTests(unittest.IsolatedAsyncioTestCase):
    def _service(self, handler) -> OpenAIGenerationService:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return OpenAIGenerationService(api_key="sk-test", http_client=client, model="gpt-test")

    async def test_generate_sends_system_and_user_messages(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"choices": [{"message": {"content": "Bonjour"}}]})

        service = self._service(handler)
        result = await service.generate("Translate to French", "Hello")
        await service.aclose()

        self.assertEqual(result, GenerationResult(text="Bonjour"))
        request = seen[0]
        self.assertEqual(str(request.url), "https://api.openai.com/v1/chat/completions")
        self.assertEqual(request.headers["Authorization"], "Bearer sk-test")
        body = json.loads(request.content)
        self.assertEqual(body["model"], "gpt-test")
        self.assertEqual(
            body["messages"],
            [
                {"role": "system", "content": "Translate to French"},
                {"role": "user", "content": "Hello"},
            ],
        )
        self.assertNotIn("stream", body)

    async def test_http_error_is_reported_not_raised(self):
        service = self._service(lambda request: httpx.Response(500, json={"error": "down"}))
        result = await service.generate("s", "i")

        self.assertFalse(result.ok)
        self.assertEqual(result.error, "API request failed with status 500")

    async def test_malformed_body_is_reported(self):
        service = self._service(lambda request: httpx.Response(200, json={"choices": []}))
        result = await service.generate("s", "i")
        self.assertFalse(result.ok)

    async def test_transport_failure_is_reported(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        result = await self._service(handler).generate("s", "i")
        self.assertEqual(result.error, "connection refused")

    async def test_streaming_emits_deltas_and_skips_malformed_events(self):
        def handler(request: httpx.Request) -> httpx.Response:
            self.assertTrue(json.loads(request.content)["stream"])
            return httpx.Response(200, content=sse_body("Bon", "jour"))

        collector = Collector()
        await self._service(handler).generate_streaming(
            "s", "i", collector.on_chunk, collector.on_complete, collector.on_error
        )

        self.assertEqual(collector.chunks, ["Bon", "jour"])
        self.assertEqual(collector.completed, "Bonjour")
        self.assertIsNone(collector.error)

    async def test_streaming_http_error_calls_on_error(self):
        collector = Collector()
        service = self._service(lambda request: httpx.Response(429))
        await service.generate_streaming("s", "i", collector.on_chunk, collector.on_complete, collector.on_error)

        self.assertEqual(collector.error, "API request failed with status 429")
        self.assertIsNone(collector.completed)


class MockGenerationServiceTests(unittest.IsolatedAsyncioTestCase):
    async def test_echoes_and_records_calls(self):
        service = MockGenerationService(delay_seconds=0)
        result = await service.generate("sys", "in")

        self.assertEqual(result.text, "Response to: in\nWith system prompt: sys")
        self.assertEqual([(c.system_prompt, c.input) for c in service.calls], [("sys", "in")])

    async def test_failure_rules(self):
        failures = FailureConfig(
            rules={
                "always": FailureRule(error_type="rate_limit", message="slow down"),
                "never": FailureRule(error_type="rate_limit", message="slow down", probability=0.0),
            }
        )
        service = MockGenerationService(delay_seconds=0, failure_config=failures)

        self.assertEqual((await service.generate("always", "x")).error, "[rate_limit] slow down")
        self.assertTrue((await service.generate("never", "x")).ok)

    async def test_seeded_failure_config_is_reproducible(self):
        def outcomes(seed: int) -> list[bool]:
            config = FailureConfig(rules={"flaky": FailureRule(probability=0.5)}, seed=seed)
            return [config.failure_for("flaky") is None for _ in range(20)]

        self.assertEqual(outcomes(7), outcomes(7))
        self.assertIn(True, outcomes(7))
        self.assertIn(False, outcomes(7))
        self.assertIsNone(FailureConfig(seed=7).failure_for("flaky"))

    def test_failure_probability_must_be_a_probability(self):
        with self.assertRaises(ValidationError):
            FailureRule(probability=1.5)
        self.assertEqual(FailureRule().error(), "[server_error] Injected failure")

    async def test_default_streaming_falls_back_to_generate(self):
        class PlainService(GenerationService):
            async def generate(self, system_prompt, input):
                return GenerationResult(text="whole")

        collector = Collector()
        await PlainService().generate_streaming(
            "s", "i", collector.on_chunk, collector.on_complete, collector.on_error
        )
        self.assertEqual(collector.chunks, ["whole"])
        self.assertEqual(collector.completed, "whole")


class GenerationFactoryTests(unittest.TestCase):
    def test_mock_is_default(self):
        service = create_generation_service(Settings(generation_mode="mock", mock_delay_seconds=0.5))
        self.assertIsInstance(service, MockGenerationService)
        self.assertEqual(service.delay_seconds, 0.5)

    def test_openai_without_key_falls_back_to_mock(self):
        settings = Settings(generation_mode="openai", openai_api_key=None)
        self.assertIsInstance(create_generation_service(settings), MockGenerationService)

    def test_openai_with_key(self):
        settings = Settings(generation_mode="openai", openai_api_key="sk-test", default_model="gpt-4o")
        service = create_generation_service(settings)
        self.assertIsInstance(service, OpenAIGenerationService)
        self.assertEqual(service.model, "gpt-4o")
