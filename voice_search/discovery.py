"""
AI movie discovery.
Budget-gated call to the chat model that turns a descriptive query (plus extracted hints)
into a ranked list of movie suggestions, with per-call cost accounting.
"""

import time  # latency measurement
from typing import List, Optional

from pydantic import BaseModel  # payload schema

from loguru import logger  # console logging

from .budget import BudgetGuard, compute_cost_cents
from .config import PipelineConfig
from .errors import DecodingError, RateLimited, TransportError
from .llm_client import ChatClient, decode_payload
from .models import (
	ConfidenceTier,
	DiscoveryRequestRecord,
	DiscoveryResult,
	DiscoverySuggestion,
	ExtractedHints,
	TokenUsage,
)

MAX_SUGGESTIONS = 25

SYSTEM_PROMPT = """You are a movie database expert. Your job is to identify specific movies based on user queries that may include:
- Actor names (e.g., "the Batman movie with Michael Keaton")
- Director names (e.g., "movies by Christopher Nolan")
- Years or decades (e.g., "that 80s horror movie")
- Plot descriptions (e.g., "the one where they go into dreams")

IMPORTANT RULES:
1. Return ONLY real movies that actually exist
2. Include the TMDB ID if you know it (this is critical for our database)
3. Limit to 25 most relevant results
4. For remake queries, return ALL versions (e.g., all Batman movies with the specified actor)
5. Order by relevance to the query

Respond with ONLY a JSON object in this exact format:
{
  "query_interpretation": "How you understood the query",
  "total_found": <number>,
  "movies": [
    {
      "title": "Movie Title",
      "year": 1989,
      "tmdb_id": 268,
      "confidence": "high" | "medium" | "low",
      "reason": "Why this matches the query"
    }
  ]
}

If you're unsure about a TMDB ID, set it to null - we'll look it up.
If no movies match, return an empty movies array."""


class SuggestionPayload(BaseModel):
	title: str
	year: Optional[int] = None
	tmdb_id: Optional[int] = None
	confidence: Optional[str] = None
	reason: Optional[str] = None


class DiscoveryPayload(BaseModel):
	query_interpretation: Optional[str] = None
	total_found: Optional[int] = None
	movies: List[SuggestionPayload]


def build_user_prompt(query: str, hints: Optional[ExtractedHints] = None) -> str:
	"""User message: the query plus whatever hints were extracted from it."""
	prompt = f'Find movies matching: "{query}"'
	if hints is None:
		return prompt

	parts: List[str] = []
	if hints.actors:
		parts.append(f"Actor(s): {', '.join(hints.actors)}")
	if hints.director:
		parts.append(f"Director: {hints.director}")
	if hints.author:
		parts.append(f"Author: {hints.author}")
	if hints.year is not None:
		parts.append(f"Year: {hints.year}")
	if hints.decade is not None:
		parts.append(f"Decade: {hints.decade}s")
	if hints.keywords:
		parts.append(f"Keywords: {', '.join(hints.keywords)}")
	if hints.title_likely:
		parts.append(f"Likely title: {hints.title_likely}")

	if parts:
		prompt += "\n\nExtracted hints:\n" + "\n".join(parts)
	return prompt


class DiscoveryOrchestrator:
	"""
	discover(query, hints) order of operations:
	credential check -> budget guard -> chat call -> cost -> background ledger record -> result.
	ConfigurationError, RateLimited, TransportError and DecodingError reach the caller unchanged.
	"""

	def __init__(self, client: ChatClient, guard: BudgetGuard, config: PipelineConfig):
		self.client = client
		self.guard = guard
		self.config = config

	async def discover(self, query: str, hints: Optional[ExtractedHints] = None) -> DiscoveryResult:
		self.client.require_credential()

		check = await self.guard.check_rate_limit()
		if not check.allowed:
			logger.warning(f"[Discovery] Rate limited: {check.reason}")
			self.guard.record(self._record(query, hints, status="rate_limited", error_message=check.reason))
			raise RateLimited(check.reason)

		logger.info(f"[Discovery] Query: '{query}' | hints={hints.has_any_hints if hints else False}")
		start = time.time()
		try:
			completion = await self.client.complete(
				messages=[
					{"role": "system", "content": SYSTEM_PROMPT},
					{"role": "user", "content": build_user_prompt(query, hints)},
				],
				temperature=self.config.discovery_temperature,
				max_tokens=self.config.discovery_max_tokens,
			)
		except (TransportError, DecodingError) as e:
			latency_ms = int((time.time() - start) * 1000)
			self.guard.record(self._record(query, hints, status="error", error_message=str(e), latency_ms=latency_ms))
			raise

		usage = completion.usage
		cost_cents = compute_cost_cents(
			usage.prompt_tokens,
			usage.completion_tokens,
			self.config.input_cost_per_million,
			self.config.output_cost_per_million,
		)
		logger.info(
			f"[Discovery] Tokens: {usage.prompt_tokens} in, {usage.completion_tokens} out | "
			f"cost ${cost_cents / 100:.4f} | {completion.latency_ms} ms"
		)

		try:
			payload = decode_payload(completion.content, DiscoveryPayload)
		except DecodingError as e:
			self.guard.record(self._record(
				query, hints, status="error", error_message=str(e),
				usage=usage, cost_cents=cost_cents, latency_ms=completion.latency_ms,
			))
			raise

		suggestions = [
			DiscoverySuggestion(
				title=m.title.strip(),
				year=m.year,
				tmdb_id=m.tmdb_id,
				confidence=ConfidenceTier.parse(m.confidence),
				reason=m.reason,
			)
			for m in payload.movies
			if m.title and m.title.strip()
		][:MAX_SUGGESTIONS]
		logger.info(f"[Discovery] Found {len(suggestions)} movies")

		self.guard.record(self._record(
			query, hints, status="success", movies_found=len(suggestions),
			usage=usage, cost_cents=cost_cents, latency_ms=completion.latency_ms,
		))
		return DiscoveryResult(
			suggestions=suggestions,
			interpretation=payload.query_interpretation,
			total_found=payload.total_found,
			usage=usage,
			cost_cents=cost_cents,
			latency_ms=completion.latency_ms,
		)

	@staticmethod
	def _record(
		query: str,
		hints: Optional[ExtractedHints],
		status: str,
		error_message: Optional[str] = None,
		movies_found: int = 0,
		usage: Optional[TokenUsage] = None,
		cost_cents: float = 0.0,
		latency_ms: int = 0,
	) -> DiscoveryRequestRecord:
		return DiscoveryRequestRecord(
			query=query,
			hints=hints,
			movies_found=movies_found,
			movies_ingested=0,  # catalog ingestion happens downstream
			prompt_tokens=usage.prompt_tokens if usage else 0,
			completion_tokens=usage.completion_tokens if usage else 0,
			cost_cents=cost_cents,
			response_time_ms=latency_ms,
			status=status,
			error_message=error_message,
		)
