#!/usr/bin/env python3
"""
Tests for the chat-completions client.

HTTP is served by httpx.MockTransport, so no network access is needed.

Usage:
    python3 -m unittest tests.test_llm -v
"""

import asyncio
import json
import os
import sys
import unittest
from unittest.mock import patch

import httpx

_project_root = os.path.join(os.path.dirname(__file__), "..")
sys.path.insert(0, _project_root)

from api import config, llm  # noqa: E402
from api.llm import LLMError  # noqa: E402

_RealAsyncClient = httpx.AsyncClient


def run_async(coro):
    """Helper to run async coroutines in sync test methods."""
    return asyncio.run(coro)


def completion_body(content, usage=None):
    return {
        "id": "chatcmpl-test",
        "choices": [{"index": 0, "message": {"role": "assistant", "content": content}}],
        "usage": usage or {"prompt_tokens": 3, "completion_tokens": 2, "total_tokens": 5},
    }


class MockOpenAI:
    """Records requests and answers them with a canned response."""

    def __init__(self, status_code=200, body=None, text=None):
        self.status_code = status_code
        self.body = body
        self.text = text
        self.requests = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.text is not None:
            return httpx.Response(self.status_code, text=self.text)
        return httpx.Response(self.status_code, json=self.body)

    def patch(self):
        transport = httpx.MockTransport(self.handler)
        return patch(
            "api.llm.httpx.AsyncClient",
            side_effect=lambda **kwargs: _RealAsyncClient(transport=transport, **kwargs),
        )

    @property
    def payload(self):
        return json.loads(self.requests[-1].content)


class TestParseJsonResponse(unittest.TestCase):

    def test_plain_json(self):
        self.assertEqual(llm._parse_json_response('{"summary": "x"}'), {"summary": "x"})

    def test_code_fence(self):
        raw = '```json\n{"criteria": []}\n```'
        self.assertEqual(llm._parse_json_response(raw), {"criteria": []})

    def test_bare_code_fence(self):
        raw = '```\n{"a": 1}\n```\n'
        self.assertEqual(llm._parse_json_response(raw), {"a": 1})

    def test_empty(self):
        self.assertEqual(llm._parse_json_response("   "), {})

    def test_invalid_json(self):
        with self.assertRaises(LLMError):
            llm._parse_json_response("not json at all")

    def test_non_object(self):
        with self.assertRaises(LLMError):
            llm._parse_json_response("[1, 2, 3]")


class TestBuildMessages(unittest.TestCase):

    def test_with_system_prompt(self):
        messages = llm._build_messages("Be brief.", "hello")
        self.assertEqual(
            messages,
            [{"role": "system", "content": "Be brief."}, {"role": "user", "content": "hello"}],
        )

    def test_without_system_prompt(self):
        self.assertEqual(llm._build_messages(None, "hello"), [{"role": "user", "content": "hello"}])

    def test_extract_text_missing_choices(self):
        self.assertEqual(llm._extract_text({}), "")
        self.assertEqual(llm._extract_text({"choices": [{"message": {"content": None}}]}), "")


class TestGenerateCompletion(unittest.TestCase):

    def test_sends_project_settings(self):
        server = MockOpenAI(body=completion_body("  Your order ships tomorrow.\n"))
        with server.patch():
            result = run_async(
                llm.generate_completion("Where is my order?", model="gpt-4o", temperature=0, system_prompt="Be brief.")
            )

        self.assertEqual(result.text, "  Your order ships tomorrow.\n")
        self.assertEqual(result.usage["total_tokens"], 5)

        request = server.requests[0]
        self.assertTrue(str(request.url).endswith("/v1/chat/completions"))
        payload = server.payload
        self.assertEqual(payload["model"], "gpt-4o")
        self.assertEqual(payload["temperature"], 0)
        self.assertEqual(payload["messages"][0], {"role": "system", "content": "Be brief."})
        self.assertEqual(payload["messages"][1], {"role": "user", "content": "Where is my order?"})
        self.assertNotIn("response_format", payload)

    def test_auth_header(self):
        server = MockOpenAI(body=completion_body("hi"))
        with patch.object(config, "OPENAI_API_KEY", "sk-test"), server.patch():
            run_async(llm.generate_completion("hello", model="gpt-4", temperature=0.7))
        self.assertEqual(server.requests[0].headers["authorization"], "Bearer sk-test")

    def test_http_error(self):
        server = MockOpenAI(status_code=429, text="rate limited")
        with server.patch():
            with self.assertRaises(LLMError) as ctx:
                run_async(llm.generate_completion("hello", model="gpt-4", temperature=0.7))
        self.assertIn("429", str(ctx.exception))

    def test_non_dict_usage_is_dropped(self):
        server = MockOpenAI(body={"choices": [{"message": {"content": "hi"}}], "usage": "n/a"})
        with server.patch():
            result = run_async(llm.generate_completion("hello", model="gpt-4", temperature=0.7))
        self.assertEqual(result.text, "hi")
        self.assertEqual(result.usage, {})

    def test_invalid_body(self):
        server = MockOpenAI(text="<html>oops</html>")
        with server.patch():
            with self.assertRaises(LLMError):
                run_async(llm.generate_completion("hello", model="gpt-4", temperature=0.7))


class TestAnalyzeRatingPatterns(unittest.TestCase):

    def test_uses_extraction_settings(self):
        analysis = {"summary": "s", "criteria": [], "key_insights": [], "recommendations": []}
        server = MockOpenAI(body=completion_body(json.dumps(analysis)))
        data = [{"input": "q", "output": "a", "stars": 5, "feedback": None, "tags": None}]

        with server.patch():
            result = run_async(llm.analyze_rating_patterns(data))

        self.assertEqual(result, analysis)
        payload = server.payload
        self.assertEqual(payload["model"], config.EXTRACTION_MODEL)
        self.assertEqual(payload["temperature"], config.EXTRACTION_TEMPERATURE)
        self.assertEqual(payload["response_format"], {"type": "json_object"})
        self.assertEqual(payload["messages"][0]["content"], config.EXTRACTION_SYSTEM_PROMPT)
        self.assertTrue(payload["messages"][1]["content"].startswith("Analyze these 1 rated outputs:\n\n"))

    def test_non_object_body(self):
        server = MockOpenAI(body=["not", "an", "object"])
        with server.patch():
            with self.assertRaises(LLMError) as ctx:
                run_async(llm.analyze_rating_patterns([]))
        self.assertIn("Unexpected completion response shape", str(ctx.exception))

    def test_malformed_choices(self):
        for body in ({"choices": ["text"]}, {"choices": [{"message": "text"}]}, {"choices": "text"}):
            server = MockOpenAI(body=body)
            with server.patch():
                with self.assertRaises(LLMError):
                    run_async(llm.analyze_rating_patterns([]))

    def test_invalid_json_from_model(self):
        server = MockOpenAI(body=completion_body("I think the patterns are..."))
        with server.patch():
            with self.assertRaises(LLMError):
                run_async(llm.analyze_rating_patterns([]))


if __name__ == "__main__":
    unittest.main(verbosity=2)
