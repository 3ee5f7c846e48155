"""
Budget ledger client and fail-open budget guard.
The ledger is a remote service that owns all spend counters; this module only reads
snapshots and writes per-request records. Nothing is cached locally.
"""

import asyncio  # bounded waits on the ledger
from typing import Any, Dict, Optional

import httpx  # async HTTP
from pydantic import BaseModel, ValidationError  # RPC response schemas

from loguru import logger  # console logging

from .analytics import fire_and_forget
from .config import PipelineConfig
from .errors import ConfigurationError, DecodingError, TransportError
from .models import BudgetStatus, DiscoveryRequestRecord, RateLimitCheck

FAIL_OPEN_REASON = "Rate limit check failed, allowing request"


def compute_cost_cents(
	prompt_tokens: int,
	completion_tokens: int,
	input_cost_per_million: float,
	output_cost_per_million: float,
) -> float:
	"""Cost of one call in cents from token counts and USD-per-million rates."""
	input_cost = (prompt_tokens / 1_000_000) * input_cost_per_million
	output_cost = (completion_tokens / 1_000_000) * output_cost_per_million
	return (input_cost + output_cost) * 100


# RPC payloads, amounts in cents
class BudgetStatusRow(BaseModel):
	spent_today_cents: float = 0.0
	budget_cents: float = 0.0
	remaining_cents: float = 0.0
	requests_today: int = 0
	tokens_today: int = 0
	is_over_budget: bool = False
	spend_rate_cents_per_hour: float = 0.0
	percent_used: Optional[float] = None


class RateLimitRow(BaseModel):
	allowed: bool
	reason: Optional[str] = None
	spent_cents: float = 0.0
	remaining_cents: float = 0.0
	requests_last_minute: Optional[int] = None


class BudgetLedger:
	"""
	PostgREST-style client: two RPC reads and one table insert.
	Every method raises on failure; the guard decides what a failure means.
	"""

	def __init__(self, config: PipelineConfig, http: httpx.AsyncClient, user_id: Optional[str] = None):
		self.config = config
		self.http = http
		self.user_id = user_id

	def _headers(self) -> Dict[str, str]:
		if not self.config.ledger_url or not self.config.ledger_key:
			raise ConfigurationError("BUDGET_LEDGER_URL / BUDGET_LEDGER_KEY are not configured")
		return {
			"apikey": self.config.ledger_key,
			"Authorization": f"Bearer {self.config.ledger_key}",
			"Content-Type": "application/json",
		}

	async def _post(self, path: str, body: Dict[str, Any], prefer: Optional[str] = None) -> httpx.Response:
		headers = self._headers()
		if prefer:
			headers["Prefer"] = prefer
		url = f"{self.config.ledger_url.rstrip('/')}/rest/v1/{path}"
		try:
			response = await self.http.post(url, json=body, headers=headers, timeout=self.config.ledger_timeout_s)
		except httpx.RequestError as e:
			raise TransportError(None, repr(e)) from e
		if not 200 <= response.status_code < 300:
			raise TransportError(response.status_code, response.text)
		return response

	@staticmethod
	def _first_row(response: httpx.Response) -> Dict[str, Any]:
		try:
			data = response.json()
		except ValueError as e:
			raise DecodingError(f"Ledger returned invalid JSON: {e}") from e
		if isinstance(data, list):  # set-returning functions come back as a list of rows
			if not data:
				raise DecodingError("Ledger returned no rows")
			data = data[0]
		if not isinstance(data, dict):
			raise DecodingError(f"Unexpected ledger payload: {data!r}")
		return data

	async def get_status(self) -> BudgetStatus:
		response = await self._post("rpc/get_ai_budget_status", {})
		try:
			row = BudgetStatusRow.model_validate(self._first_row(response))
		except ValidationError as e:
			raise DecodingError(f"Malformed budget status: {e}") from e
		return BudgetStatus(
			spent_today=row.spent_today_cents / 100.0,
			daily_cap=row.budget_cents / 100.0,
			remaining=row.remaining_cents / 100.0,
			requests_today=row.requests_today,
			tokens_today=row.tokens_today,
			is_over_budget=row.is_over_budget,
			spend_rate_per_hour=row.spend_rate_cents_per_hour / 100.0,
		)

	async def can_make_request(self) -> RateLimitCheck:
		response = await self._post("rpc/can_make_ai_request", {})
		try:
			row = RateLimitRow.model_validate(self._first_row(response))
		except ValidationError as e:
			raise DecodingError(f"Malformed rate limit check: {e}") from e
		return RateLimitCheck(
			allowed=row.allowed,
			reason=row.reason or ("OK" if row.allowed else "Request not allowed"),
			spent=row.spent_cents / 100.0,
			remaining=row.remaining_cents / 100.0,
		)

	async def record_request(self, record: DiscoveryRequestRecord) -> None:
		body = record.to_wire()
		body["user_id"] = self.user_id
		await self._post("ai_discovery_requests", body, prefer="return=minimal")
		logger.debug(f"[Budget] Recorded discovery request status={record.status} cost={record.cost_cents:.4f}c")


class BudgetGuard:
	"""
	Gate in front of the paid discovery call.
	Fail-open: if the ledger cannot be reached the request is allowed, because budget-check
	outages must not block the feature. The remote check is authoritative otherwise.
	"""

	def __init__(self, ledger: BudgetLedger, config: PipelineConfig):
		self.ledger = ledger
		self.config = config

	async def check_rate_limit(self) -> RateLimitCheck:
		try:
			check = await asyncio.wait_for(self.ledger.can_make_request(), timeout=self.config.ledger_timeout_s)
		except Exception as e:
			logger.warning(f"[Budget] Rate limit check failed, failing open: {e!r}")
			return RateLimitCheck(
				allowed=True,
				reason=FAIL_OPEN_REASON,
				spent=0.0,
				remaining=self.config.daily_cap,
			)
		logger.debug(f"[Budget] Rate limit check: allowed={check.allowed} reason='{check.reason}'")
		return check

	async def status(self) -> BudgetStatus:
		try:
			return await asyncio.wait_for(self.ledger.get_status(), timeout=self.config.ledger_timeout_s)
		except Exception as e:
			logger.warning(f"[Budget] Budget status unavailable, returning defaults: {e!r}")
			return BudgetStatus(
				spent_today=0.0,
				daily_cap=self.config.daily_cap,
				remaining=self.config.daily_cap,
				requests_today=0,
				tokens_today=0,
				is_over_budget=False,
				spend_rate_per_hour=0.0,
			)

	def record(self, record: DiscoveryRequestRecord) -> asyncio.Task:
		"""Write the usage record in the background; the caller never waits on the ledger."""
		return fire_and_forget(self.ledger.record_request(record), "budget ledger write")
