"""
Unit tests for the budget ledger client and the fail-open budget guard.
Run: python tests/test_budget.py
"""

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
	sys.path.insert(0, str(ROOT))

import asyncio
import json

import httpx

from voice_search.budget import FAIL_OPEN_REASON, BudgetGuard, BudgetLedger, compute_cost_cents
from voice_search.config import PipelineConfig
from voice_search.errors import ConfigurationError, TransportError
from voice_search.models import DiscoveryRequestRecord, ExtractedHints

CONFIG = PipelineConfig(ledger_url="https://ledger.test/", ledger_key="service-key", daily_cap=10.0)


def assert_equal(actual, expected, msg):
	if actual != expected:
		raise AssertionError(f"{msg} | expected={expected}, actual={actual}")


def assert_true(cond, msg):
	if not cond:
		raise AssertionError(msg)


def with_ledger(handler, action, config: PipelineConfig = CONFIG, user_id=None):
	"""Run ``action(ledger)`` against a mocked ledger endpoint."""
	async def go():
		async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
			return await action(BudgetLedger(config, http, user_id=user_id))
	return asyncio.run(go())


class SlowLedger:
	async def can_make_request(self):
		await asyncio.sleep(1.0)

	async def get_status(self):
		await asyncio.sleep(1.0)


def test_compute_cost_cents():
	# 1M prompt tokens at $2.50 plus 1M completion tokens at $10.00 = $12.50
	assert_equal(compute_cost_cents(1_000_000, 1_000_000, 2.50, 10.00), 1250.0, "one million of each")
	assert_equal(compute_cost_cents(0, 0, 2.50, 10.00), 0.0, "no tokens, no cost")
	cents = compute_cost_cents(1200, 400, 2.50, 10.00)
	assert_true(abs(cents - 0.7) < 1e-9, f"small call cost, got {cents}")


def test_rate_limit_converts_cents():
	seen = []

	def handler(request: httpx.Request) -> httpx.Response:
		seen.append(request)
		return httpx.Response(200, json=[{"allowed": False, "reason": "Daily budget exceeded", "spent_cents": 1050, "remaining_cents": 0}])

	check = with_ledger(handler, lambda ledger: ledger.can_make_request())
	assert_true(not check.allowed, "denied by ledger")
	assert_equal(check.reason, "Daily budget exceeded", "reason passed through")
	assert_equal(check.spent, 10.5, "cents -> dollars")
	assert_equal(str(seen[0].url), "https://ledger.test/rest/v1/rpc/can_make_ai_request", "rpc endpoint")
	assert_equal(seen[0].headers["apikey"], "service-key", "api key header")


def test_status_converts_cents():
	def handler(request: httpx.Request) -> httpx.Response:
		return httpx.Response(200, json={
			"spent_today_cents": 250, "budget_cents": 1000, "remaining_cents": 750,
			"requests_today": 12, "tokens_today": 34000, "is_over_budget": False,
			"spend_rate_cents_per_hour": 50,
		})

	status = with_ledger(handler, lambda ledger: ledger.get_status())
	assert_equal((status.spent_today, status.daily_cap, status.remaining), (2.5, 10.0, 7.5), "dollar amounts")
	assert_equal(status.percent_used, 25.0, "percent used")
	assert_equal(status.projected_daily_spend, 12.0, "hourly rate projected over a day")


def test_ledger_errors():
	def handler(request: httpx.Request) -> httpx.Response:
		return httpx.Response(500, text="boom")

	try:
		with_ledger(handler, lambda ledger: ledger.can_make_request())
		raise AssertionError("expected TransportError")
	except TransportError as e:
		assert_equal(e.status_code, 500, "status carried")

	try:
		with_ledger(handler, lambda ledger: ledger.can_make_request(), config=PipelineConfig())
		raise AssertionError("expected ConfigurationError")
	except ConfigurationError:
		pass


def test_record_request_body():
	seen = []

	def handler(request: httpx.Request) -> httpx.Response:
		seen.append(request)
		return httpx.Response(201)

	record = DiscoveryRequestRecord(
		query="80s horror", hints=ExtractedHints(decade=1980, keywords=("horror",)),
		movies_found=3, movies_ingested=0, prompt_tokens=100, completion_tokens=50,
		cost_cents=0.075, response_time_ms=900, status="success",
	)
	with_ledger(handler, lambda ledger: ledger.record_request(record), user_id="user-1")
	body = json.loads(seen[0].content)
	assert_equal(str(seen[0].url), "https://ledger.test/rest/v1/ai_discovery_requests", "table endpoint")
	assert_equal(seen[0].headers["Prefer"], "return=minimal", "no row echoed back")
	assert_equal(body["user_id"], "user-1", "user attached")
	assert_equal(body["status"], "success", "status")
	assert_equal(body["hints"]["keywords"], ["horror"], "hints serialized")
	assert_equal(body["hints"]["actors"], None, "empty hint lists stored as null")


def test_guard_fails_open_on_error():
	def handler(request: httpx.Request) -> httpx.Response:
		return httpx.Response(503, text="unavailable")

	async def check(ledger):
		return await BudgetGuard(ledger, CONFIG).check_rate_limit()

	result = with_ledger(handler, check)
	assert_true(result.allowed, "transport failure is allowed")
	assert_equal(result.reason, FAIL_OPEN_REASON, "fail-open reason")
	assert_equal(result.remaining, CONFIG.daily_cap, "remaining is the configured cap")

	unconfigured = with_ledger(handler, check, config=PipelineConfig())
	assert_true(unconfigured.allowed, "missing ledger configuration is allowed too")


def test_guard_fails_open_on_timeout():
	config = PipelineConfig(ledger_timeout_s=0.05)
	guard = BudgetGuard(SlowLedger(), config)
	result = asyncio.run(guard.check_rate_limit())
	assert_true(result.allowed, "slow ledger is allowed")
	assert_equal(result.reason, FAIL_OPEN_REASON, "fail-open reason")

	status = asyncio.run(guard.status())
	assert_equal(status.daily_cap, config.daily_cap, "status falls back to defaults")
	assert_equal(status.spent_today, 0.0, "nothing spent in the fallback")


def test_guard_passes_denial_through():
	def handler(request: httpx.Request) -> httpx.Response:
		return httpx.Response(200, json={"allowed": False, "reason": "Too many requests per minute"})

	async def check(ledger):
		return await BudgetGuard(ledger, CONFIG).check_rate_limit()

	result = with_ledger(handler, check)
	assert_true(not result.allowed, "authoritative denial")
	assert_equal(result.reason, "Too many requests per minute", "ledger reason")


def main():
	test_compute_cost_cents()
	test_rate_limit_converts_cents()
	test_status_converts_cents()
	test_ledger_errors()
	test_record_request_body()
	test_guard_fails_open_on_error()
	test_guard_fails_open_on_timeout()
	test_guard_passes_denial_through()
	print("All budget tests passed")


if __name__ == '__main__':
	main()
