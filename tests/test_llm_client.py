"""
Unit tests for the chat client and the LLM intent resolver, using httpx.MockTransport.
Run: python tests/test_llm_client.py
"""

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
	sys.path.insert(0, str(ROOT))

import asyncio
import json

import httpx

from voice_search.config import PipelineConfig
from voice_search.errors import ConfigurationError, DecodingError, TransportError
from voice_search.intent_resolver import IntentPayload, LLMIntentResolver
from voice_search.llm_client import ChatClient
from voice_search.models import MovieSearch, RecommenderSearch, Unknown, Utterance

CONFIG = PipelineConfig(openai_api_key="sk-test", openai_base_url="https://llm.test/v1")


def assert_equal(actual, expected, msg):
	if actual != expected:
		raise AssertionError(f"{msg} | expected={expected}, actual={actual}")


def assert_true(cond, msg):
	if not cond:
		raise AssertionError(msg)


def completion_body(payload, prompt_tokens=120, completion_tokens=30) -> dict:
	content = payload if isinstance(payload, str) else json.dumps(payload)
	return {
		"choices": [{"message": {"role": "assistant", "content": content}}],
		"usage": {
			"prompt_tokens": prompt_tokens,
			"completion_tokens": completion_tokens,
			"total_tokens": prompt_tokens + completion_tokens,
		},
	}


def run_resolver(handler, text: str, config: PipelineConfig = CONFIG):
	"""Resolve one utterance against a mocked endpoint."""
	async def go():
		async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
			resolver = LLMIntentResolver(ChatClient(config, http), config)
			return await resolver.resolve(text)
	return asyncio.run(go())


def test_request_shape():
	seen = []

	def handler(request: httpx.Request) -> httpx.Response:
		seen.append(request)
		return httpx.Response(200, json=completion_body(
			{"intent": "movie_search", "movie_title": "Heat", "recommender": None}
		))

	run_resolver(handler, "that heat movie")
	request = seen[0]
	body = json.loads(request.content)
	assert_equal(str(request.url), "https://llm.test/v1/chat/completions", "endpoint")
	assert_equal(request.headers["Authorization"], "Bearer sk-test", "bearer credential")
	assert_equal(body["response_format"], {"type": "json_object"}, "JSON response requested")
	assert_equal(body["temperature"], CONFIG.resolver_temperature, "resolver temperature")
	assert_equal(body["messages"][0]["role"], "system", "system prompt first")
	assert_equal(body["messages"][1]["content"], 'User utterance: "that heat movie"', "user message")


def test_missing_key_makes_no_request():
	calls = []

	def handler(request: httpx.Request) -> httpx.Response:
		calls.append(request)
		return httpx.Response(200, json=completion_body({}))

	try:
		run_resolver(handler, "anything", PipelineConfig())
		raise AssertionError("expected ConfigurationError")
	except ConfigurationError:
		pass
	assert_equal(calls, [], "no network call without a credential")


def test_non_2xx_carries_status_and_body():
	def handler(request: httpx.Request) -> httpx.Response:
		return httpx.Response(429, text="slow down")

	try:
		run_resolver(handler, "anything")
		raise AssertionError("expected TransportError")
	except TransportError as e:
		assert_equal(e.status_code, 429, "status carried")
		assert_equal(e.body, "slow down", "body carried")
		assert_true("HTTP 429" in str(e), "readable message")


def test_connection_failure():
	def handler(request: httpx.Request) -> httpx.Response:
		raise httpx.ConnectError("refused", request=request)

	try:
		run_resolver(handler, "anything")
		raise AssertionError("expected TransportError")
	except TransportError as e:
		assert_equal(e.status_code, None, "no response received")


def test_malformed_envelope_and_payload():
	def bad_envelope(request: httpx.Request) -> httpx.Response:
		return httpx.Response(200, text="<html>gateway</html>")

	def bad_payload(request: httpx.Request) -> httpx.Response:
		return httpx.Response(200, json=completion_body("not json at all"))

	def missing_key(request: httpx.Request) -> httpx.Response:
		return httpx.Response(200, json=completion_body({"intent": "movie_search", "movie_title": "Heat"}))

	for handler, label in [(bad_envelope, "envelope"), (bad_payload, "payload"), (missing_key, "missing key")]:
		try:
			run_resolver(handler, "anything")
			raise AssertionError(f"expected DecodingError for {label}")
		except DecodingError:
			pass


def test_resolves_recommender_search():
	def handler(request: httpx.Request) -> httpx.Response:
		return httpx.Response(200, json=completion_body(
			{"intent": "recommender_search", "movie_title": "Oppenheimer", "recommender": "hyatt"}
		))

	cmd = run_resolver(handler, "so hyatt was telling me about oppenheimer")
	assert_true(isinstance(cmd, RecommenderSearch), "recommender search")
	assert_equal((cmd.recommender, cmd.movie), ("Hayat", "Oppenheimer"), "recommender normalized")
	assert_equal(cmd.raw.text, "so hyatt was telling me about oppenheimer", "raw utterance kept")


def test_payload_mapping():
	resolver = LLMIntentResolver(ChatClient(CONFIG, None), CONFIG)
	u = Utterance("x")

	def payload(intent, title, recommender):
		return IntentPayload(intent=intent, movie_title=title, recommender=recommender)

	assert_equal(resolver.to_command(payload("movie_search", " Heat ", None), u), MovieSearch("Heat", u), "title trimmed")
	assert_equal(resolver.to_command(payload("recommender_search", "Heat", None), u), MovieSearch("Heat", u), "no recommender -> movie search")
	assert_equal(resolver.to_command(payload("movie_search", None, None), u), Unknown(u), "no title -> unknown")
	assert_equal(resolver.to_command(payload("unknown", "Heat", "Sabrina"), u), Unknown(u), "unknown intent")
	assert_equal(resolver.to_command(payload("something_else", "Heat", None), u), Unknown(u), "unexpected intent")


def main():
	test_request_shape()
	test_missing_key_makes_no_request()
	test_non_2xx_carries_status_and_body()
	test_connection_failure()
	test_malformed_envelope_and_payload()
	test_resolves_recommender_search()
	test_payload_mapping()
	print("All LLM client tests passed")


if __name__ == '__main__':
	main()
