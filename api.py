"""
FastAPI server exposing the voice search pipeline.
Endpoints:
- GET /health: basic health check
- POST /resolve: classify, extract hints and resolve an utterance to a command (no discovery)
- POST /discover: budget-gated AI discovery for a descriptive query
- GET /budget: today's AI spend snapshot from the budget ledger

Startup builds one shared httpx.AsyncClient and wires every component around it.
"""

# Import standard libraries for timing
import time  # measure startup and request latencies
from typing import Any, Dict, List, Optional  # precise typing for clarity

# Import FastAPI for building the web API and Pydantic for request/response models
import httpx  # shared async HTTP client
from fastapi import FastAPI, HTTPException  # FastAPI primitives
from pydantic import BaseModel, Field  # request/response schema definitions

# Import our internal modules
from voice_search.analytics import drain_background  # flush background ledger writes
from voice_search.config import load_config  # environment-driven settings
from voice_search.errors import ConfigurationError, DecodingError, RateLimited, TransportError
from voice_search.models import ExtractedHints, command_to_dict
from voice_search.router import VoiceSearchPipeline, build_pipeline  # pipeline wiring

# Import loguru for simple, structured console logging
from loguru import logger  # convenient console logger

# Instantiate the FastAPI application with metadata
app = FastAPI(title="Voice Search API", version="1.0.0")  # web app

# Globals that hold the pipeline, its HTTP client and measured startup time
PIPELINE: Optional[VoiceSearchPipeline] = None  # initialized on startup
HTTP_CLIENT: Optional[httpx.AsyncClient] = None  # shared connection pool
STARTUP_TIME_S: float = 0.0  # how long startup took


class ResolveRequest(BaseModel):
	utterance: str = Field(..., min_length=1, description="Finalized voice transcript")


class ExtractedHintsIn(BaseModel):
	"""Wire-form hints supplied by the caller; malformed values are rejected with 422."""
	title_likely: Optional[str] = None
	year: Optional[int] = Field(None, ge=1900, le=2030)
	decade: Optional[int] = Field(None, ge=1900, le=2030)
	actors: Optional[List[str]] = None
	director: Optional[str] = None
	author: Optional[str] = None
	keywords: Optional[List[str]] = None
	plot_clues: Optional[List[str]] = None
	is_remake_hint: Optional[bool] = None

	def to_hints(self) -> ExtractedHints:
		return ExtractedHints.from_wire(self.model_dump())


class DiscoverRequest(BaseModel):
	query: str = Field(..., min_length=1, description="Descriptive movie query")
	hints: Optional[ExtractedHintsIn] = None  # extracted from the query when absent


class ClassificationOut(BaseModel):
	intent: str  # direct | fuzzy | action_only | import
	confidence: float  # 0..1
	evidence: List[str]  # cues behind the decision


class CommandOut(BaseModel):
	type: str  # recommender_search | movie_search | unknown
	movie_title: Optional[str] = None
	recommender: Optional[str] = None
	raw: str


class ResolveResponse(BaseModel):
	utterance: str
	classification: ClassificationOut
	hints: Dict[str, Any]
	parsed_command: Optional[CommandOut] = None
	final_command: Optional[CommandOut] = None
	action: Optional[str] = None  # action kind on the action route
	llm_used: bool
	llm_error: Optional[str] = None
	route: str
	elapsed_ms: float


class SuggestionOut(BaseModel):
	title: str
	year: Optional[int] = None
	tmdb_id: Optional[int] = None
	confidence: str  # high | medium | low
	reason: Optional[str] = None


class DiscoverResponse(BaseModel):
	query: str
	interpretation: Optional[str] = None
	total_found: Optional[int] = None
	suggestions: List[SuggestionOut]
	prompt_tokens: int
	completion_tokens: int
	cost_cents: float
	latency_ms: int


class BudgetOut(BaseModel):
	spent_today: float  # dollars
	daily_cap: float
	remaining: float
	requests_today: int
	tokens_today: int
	is_over_budget: bool
	spend_rate_per_hour: float
	projected_daily_spend: float
	percent_used: float


def _require_pipeline() -> VoiceSearchPipeline:
	if PIPELINE is None:  # pipeline must be ready to serve
		logger.warning("[API] Request received but pipeline not initialized")
		raise HTTPException(status_code=503, detail="Pipeline not initialized")
	return PIPELINE


@app.on_event("startup")
async def startup_event():
	"""Load configuration and build the pipeline around one HTTP client."""
	global PIPELINE, HTTP_CLIENT, STARTUP_TIME_S  # refer to module-level globals
	start = time.time()  # start timer for startup latency
	logger.info("[API] Startup: loading configuration and wiring pipeline...")

	config = load_config()
	HTTP_CLIENT = httpx.AsyncClient()
	PIPELINE = build_pipeline(config, HTTP_CLIENT)

	STARTUP_TIME_S = time.time() - start
	mode = "LLM enabled" if config.has_credential else "LLM disabled (no OPENAI_API_KEY)"
	logger.info(f"[API] Startup complete in {STARTUP_TIME_S:.2f}s. {mode}.")


@app.on_event("shutdown")
async def shutdown_event():
	"""Let pending ledger writes finish, then close the shared client."""
	global HTTP_CLIENT
	await drain_background(timeout=5.0)
	if HTTP_CLIENT is not None:
		await HTTP_CLIENT.aclose()
		HTTP_CLIENT = None
	logger.info("[API] Shutdown complete")


@app.get("/health")
async def health():
	"""Return minimal health info for liveness/readiness probes."""
	return {
		"status": "ok",
		"pipeline_ready": PIPELINE is not None,
		"llm_configured": bool(PIPELINE and PIPELINE.resolver and PIPELINE.resolver.client.is_configured),
		"startup_seconds": round(STARTUP_TIME_S, 2),
	}


@app.post("/resolve", response_model=ResolveResponse)
async def resolve(body: ResolveRequest):
	"""Resolve an utterance to a command without running discovery."""
	pipeline = _require_pipeline()
	start = time.time()
	logger.debug(f"[API] /resolve utterance='{body.utterance}'")

	outcome = await pipeline.handle(body.utterance, run_discovery=False)
	elapsed_ms = (time.time() - start) * 1000
	logger.info(f"[API] /resolve route={outcome.route} in {elapsed_ms:.2f} ms")

	c = outcome.classification
	return ResolveResponse(
		utterance=outcome.utterance.text,
		classification=ClassificationOut(intent=c.intent.value, confidence=c.confidence, evidence=list(c.evidence)),
		hints=outcome.hints.to_wire(),
		parsed_command=CommandOut(**command_to_dict(outcome.parsed_command)) if outcome.parsed_command else None,
		final_command=CommandOut(**command_to_dict(outcome.final_command)) if outcome.final_command else None,
		action=outcome.action.kind if outcome.action else None,
		llm_used=outcome.llm_used,
		llm_error=outcome.llm_error,
		route=outcome.route,
		elapsed_ms=round(elapsed_ms, 2),
	)


@app.post("/discover", response_model=DiscoverResponse)
async def discover(body: DiscoverRequest):
	"""Run budget-gated AI discovery; errors map to distinct HTTP statuses."""
	pipeline = _require_pipeline()
	if pipeline.discovery is None:
		raise HTTPException(status_code=503, detail="Discovery not configured")

	hints = body.hints.to_hints() if body.hints is not None else pipeline.extractor.extract(body.query)
	try:
		result = await pipeline.discovery.discover(body.query, hints if hints.has_any_hints else None)
	except RateLimited as e:
		raise HTTPException(status_code=429, detail=e.reason)
	except ConfigurationError as e:
		raise HTTPException(status_code=503, detail=str(e))
	except (TransportError, DecodingError) as e:
		logger.warning(f"[API] /discover upstream failure: {e}")
		raise HTTPException(status_code=502, detail=str(e))

	logger.info(f"[API] /discover served {len(result.suggestions)} suggestions in {result.latency_ms} ms")
	return DiscoverResponse(
		query=body.query,
		interpretation=result.interpretation,
		total_found=result.total_found,
		suggestions=[
			SuggestionOut(
				title=s.title,
				year=s.year,
				tmdb_id=s.tmdb_id,
				confidence=s.confidence.value,
				reason=s.reason,
			)
			for s in result.suggestions
		],
		prompt_tokens=result.usage.prompt_tokens,
		completion_tokens=result.usage.completion_tokens,
		cost_cents=round(result.cost_cents, 4),
		latency_ms=result.latency_ms,
	)


@app.get("/budget", response_model=BudgetOut)
async def budget():
	"""Today's spend snapshot; falls back to defaults when the ledger is unreachable."""
	pipeline = _require_pipeline()
	if pipeline.discovery is None:
		raise HTTPException(status_code=503, detail="Discovery not configured")
	status = await pipeline.discovery.guard.status()
	return BudgetOut(
		spent_today=status.spent_today,
		daily_cap=status.daily_cap,
		remaining=status.remaining,
		requests_today=status.requests_today,
		tokens_today=status.tokens_today,
		is_over_budget=status.is_over_budget,
		spend_rate_per_hour=status.spend_rate_per_hour,
		projected_daily_spend=status.projected_daily_spend,
		percent_used=round(status.percent_used, 2),
	)
