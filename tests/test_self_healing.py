"""
Unit tests for the self-healing pattern analyzer: trigger rule, analysis request, suggestion records.
Run: python tests/test_self_healing.py
"""

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
	sys.path.insert(0, str(ROOT))

import asyncio
import json

import httpx

from voice_search.analytics import VoiceHandlerResult, drain_background
from voice_search.config import PipelineConfig
from voice_search.llm_client import ChatClient
from voice_search.self_healing import SelfHealingAnalyzer, has_action_word, should_analyze

CONFIG = PipelineConfig(openai_api_key="sk-test", openai_base_url="https://llm.test/v1", self_healing_enabled=True)


def assert_equal(actual, expected, msg):
	if actual != expected:
		raise AssertionError(f"{msg} | expected={expected}, actual={actual}")


def assert_true(cond, msg):
	if not cond:
		raise AssertionError(msg)


class ListSink:
	def __init__(self):
		self.records = []

	def record(self, suggestion):
		self.records.append(suggestion)


def analysis_body(payload) -> dict:
	content = payload if isinstance(payload, str) else json.dumps(payload)
	return {
		"choices": [{"message": {"role": "assistant", "content": content}}],
		"usage": {"prompt_tokens": 200, "completion_tokens": 40, "total_tokens": 240},
	}


def run_analyzer(handler, action, config: PipelineConfig = CONFIG):
	"""Run ``action(analyzer)`` against a mocked endpoint and return (result, sink)."""
	sink = ListSink()

	async def go():
		async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
			analyzer = SelfHealingAnalyzer(ChatClient(config, http), config, sink=sink)
			result = action(analyzer)
			if asyncio.iscoroutine(result):
				result = await result
			await drain_background(timeout=1.0)
			return result
	return asyncio.run(go()), sink


def test_action_words():
	assert_true(has_action_word("mark the shark one"), "mark")
	assert_true(has_action_word("I haven’t seen it"), "curly apostrophe normalized")
	assert_true(not has_action_word("the one with the shark"), "plain search")
	assert_true(not has_action_word("Watchmen"), "whole words only")


def test_trigger_rule():
	assert_true(should_analyze("save the shark movie", "unknown", VoiceHandlerResult.PARSE_ERROR), "unknown with action word")
	assert_true(should_analyze("watched jaws", "movie_search", VoiceHandlerResult.SUCCESS), "read as a title search")
	assert_true(should_analyze("add jaws", "unknown", VoiceHandlerResult.SUCCESS, llm_used=True), "rescued by the model")
	assert_true(
		not should_analyze("the one with the shark", "unknown", VoiceHandlerResult.NO_RESULTS),
		"no action word, nothing to learn",
	)
	assert_true(
		not should_analyze("Sabrina likes the list", "recommender_search", VoiceHandlerResult.SUCCESS),
		"understood recommender search",
	)


def test_analysis_is_recorded():
	seen = []

	def handler(request: httpx.Request) -> httpx.Response:
		seen.append(json.loads(request.content))
		return httpx.Response(200, json=analysis_body({
			"intent": "markWatched",
			"confidence": 0.9,
			"reasoning": "speaker saw the movie",
			"suggested_patterns": ["Already Saw", " seen that one "],
		}))

	suggestion, sink = run_analyzer(handler, lambda a: a.analyze("already saw it", "movie_search"))
	assert_equal(suggestion.suggested_intent, "markWatched", "intent kept")
	assert_equal(suggestion.suggested_patterns, ("already saw", "seen that one"), "patterns lowercased and trimmed")
	assert_equal(seen[0]["temperature"], CONFIG.self_healing_temperature, "configured temperature")
	assert_equal(seen[0]["messages"][1]["content"], 'Analyze this failed command: "already saw it"', "user message")

	record = sink.records[0]
	assert_equal(record["suggested_pattern"], "already saw, seen that one", "patterns joined for review")
	assert_equal((record["source"], record["status"]), ("llm", "pending"), "pending review")
	assert_equal(record["original_command_type"], "movie_search", "original command kept")


def test_failed_analysis_still_recorded():
	def handler(request: httpx.Request) -> httpx.Response:
		return httpx.Response(200, json=analysis_body("not json"))

	suggestion, sink = run_analyzer(handler, lambda a: a.analyze("mark it done", "unknown"))
	assert_equal(suggestion.suggested_intent, None, "no intent on failure")
	assert_equal(sink.records[0]["suggested_pattern"], None, "no patterns on failure")
	assert_equal(sink.records[0]["utterance"], "mark it done", "utterance kept for review")


def test_maybe_analyze_runs_in_background():
	calls = []

	def handler(request: httpx.Request) -> httpx.Response:
		calls.append(request)
		return httpx.Response(200, json=analysis_body({"intent": "search", "confidence": 0.5}))

	task, sink = run_analyzer(
		handler, lambda a: a.maybe_analyze("the one with the shark", "unknown", VoiceHandlerResult.NO_RESULTS)
	)
	assert_equal((task, calls), (None, []), "trigger rule not met, no request")

	task, sink = run_analyzer(
		handler, lambda a: a.maybe_analyze("save the shark movie", "unknown", VoiceHandlerResult.PARSE_ERROR)
	)
	assert_true(task is not None and task.done(), "analysis scheduled and finished")
	assert_equal(len(sink.records), 1, "one suggestion recorded")

	calls.clear()
	task, sink = run_analyzer(
		handler,
		lambda a: a.maybe_analyze("save the shark movie", "unknown", VoiceHandlerResult.PARSE_ERROR),
		PipelineConfig(self_healing_enabled=True),
	)
	assert_equal((task, calls, sink.records), (None, [], []), "no credential, nothing scheduled")


def main():
	test_action_words()
	test_trigger_rule()
	test_analysis_is_recorded()
	test_failed_analysis_still_recorded()
	test_maybe_analyze_runs_in_background()
	print("All self-healing tests passed")


if __name__ == '__main__':
	main()
