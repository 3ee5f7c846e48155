"""
Voice search routing.
VoiceSearchPipeline runs one utterance through classification, parsing, the LLM fallback and
budget-gated discovery. SearchCoordinator makes sure only the newest search can publish results.
"""

import asyncio  # task cancellation for superseded searches
import inspect  # executor may be sync or async
import time  # duplicate-transcript window
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Union

import httpx  # shared HTTP client for the factory

from loguru import logger  # console logging

from .analytics import VoiceEventLogger, VoiceHandlerResult, build_voice_event, result_for_count
from .budget import BudgetGuard, BudgetLedger
from .command_parser import CommandParser
from .config import PipelineConfig
from .discovery import DiscoveryOrchestrator
from .errors import RateLimited, VoiceSearchError
from .hint_extractor import HintExtractor
from .intent_classifier import IntentClassifier
from .intent_resolver import LLMIntentResolver
from .llm_client import ChatClient
from .models import (
	ActionRequest,
	Command,
	DiscoveryResult,
	ExtractedHints,
	IntentClassification,
	SearchIntent,
	Utterance,
)
from .recommender_normalizer import RecommenderNormalizer
from .self_healing import SelfHealingAnalyzer


@dataclass(frozen=True)
class RoutingOutcome:
	"""Everything the pipeline decided for one utterance."""
	utterance: Utterance
	classification: IntentClassification
	hints: ExtractedHints
	parsed_command: Optional[Command] = None  # None on the action route
	final_command: Optional[Command] = None
	action: Optional[ActionRequest] = None
	llm_used: bool = False
	llm_error: Optional[str] = None
	discovery: Optional[DiscoveryResult] = None
	discovery_error: Optional[str] = None
	handler_result: VoiceHandlerResult = VoiceHandlerResult.SUCCESS

	@property
	def route(self) -> str:
		if self.action is not None or self.classification.intent == SearchIntent.ACTION_ONLY:
			return "action"
		if self.discovery is not None or self.discovery_error is not None:
			return "discovery"
		if self.final_command is not None and self.final_command.is_valid:
			return "command"
		return "unresolved"


class VoiceSearchPipeline:
	"""
	recognized action or action intent -> action route (executor, no LLM)
	otherwise -> parse -> LLM fallback once if Unknown -> discovery if fuzzy or still Unknown
	Resolver and discovery failures are recorded on the outcome; the pipeline never retries.
	"""

	def __init__(
		self,
		parser: CommandParser,
		classifier: IntentClassifier,
		extractor: HintExtractor,
		resolver: Optional[LLMIntentResolver] = None,
		discovery: Optional[DiscoveryOrchestrator] = None,
		executor: Any = None,
		analytics: Optional[VoiceEventLogger] = None,
		healer: Optional[SelfHealingAnalyzer] = None,
	):
		self.parser = parser
		self.classifier = classifier
		self.extractor = extractor
		self.resolver = resolver
		self.discovery = discovery
		self.executor = executor
		self.analytics = analytics
		self.healer = healer

	async def handle(
		self,
		text: Union[str, Utterance],
		run_discovery: bool = True,
		is_current: Optional[Callable[[], bool]] = None,
	) -> RoutingOutcome:
		"""
		Route one utterance. ``is_current`` is asked before anything is reported; a search that
		has been superseded by then still returns its outcome but logs no analytics event.
		"""
		utterance = Utterance.of(text)
		classification = self.classifier.classify(utterance)
		hints = self.extractor.extract(utterance)
		logger.info(
			f"[Router] '{utterance.text}' -> {classification.intent.value} ({classification.confidence:.2f})"
		)

		# The parser knows more action phrasings than the classifier lexicon
		action = self.parser.parse_action(utterance)
		if action is not None or classification.intent == SearchIntent.ACTION_ONLY:
			return await self._handle_action(utterance, classification, hints, action, is_current)

		parsed = self.parser.parse(utterance)
		final = parsed
		llm_used = False
		llm_error = None
		if not parsed.is_valid and self.resolver is not None:
			llm_used = True
			try:
				final = await self.resolver.resolve(utterance)
			except VoiceSearchError as e:
				llm_error = str(e)
				logger.warning(f"[Router] LLM fallback failed, keeping Unknown: {e}")

		discovery = None
		discovery_error = None
		rate_limited = False
		wants_discovery = classification.intent == SearchIntent.FUZZY or not final.is_valid
		if wants_discovery and run_discovery and self.discovery is not None:
			try:
				discovery = await self.discovery.discover(utterance.text, hints if hints.has_any_hints else None)
			except RateLimited as e:
				rate_limited = True
				discovery_error = str(e)
				logger.warning(f"[Router] Discovery rate limited: {e.reason}")
			except VoiceSearchError as e:
				discovery_error = str(e)
				logger.warning(f"[Router] Discovery failed: {e}")

		if discovery is not None:
			handler_result = result_for_count(len(discovery.suggestions))
		elif rate_limited:
			handler_result = VoiceHandlerResult.RATE_LIMITED
		elif discovery_error is not None:
			handler_result = VoiceHandlerResult.NETWORK_ERROR
		elif final.is_valid:
			handler_result = VoiceHandlerResult.SUCCESS
		else:
			handler_result = VoiceHandlerResult.PARSE_ERROR

		outcome = RoutingOutcome(
			utterance=utterance,
			classification=classification,
			hints=hints,
			parsed_command=parsed,
			final_command=final,
			llm_used=llm_used,
			llm_error=llm_error,
			discovery=discovery,
			discovery_error=discovery_error,
			handler_result=handler_result,
		)
		logger.info(f"[Router] Route={outcome.route} command={final.kind} result={handler_result.value}")
		self._report(outcome, is_current)
		return outcome

	async def _handle_action(
		self,
		utterance: Utterance,
		classification: IntentClassification,
		hints: ExtractedHints,
		action: Optional[ActionRequest],
		is_current: Optional[Callable[[], bool]] = None,
	) -> RoutingOutcome:
		if action is None:
			# sounds like an action but no rule could read it
			logger.warning(f"[Router] Action route: could not parse an action from '{utterance.text}'")
			handler_result = VoiceHandlerResult.PARSE_ERROR
		else:
			logger.info(f"[Router] Action route: {action.kind}")
			if self.executor is not None:
				result = self.executor.execute(action, utterance)
				if inspect.isawaitable(result):
					await result
			handler_result = VoiceHandlerResult.SUCCESS
		outcome = RoutingOutcome(
			utterance=utterance,
			classification=classification,
			hints=hints,
			action=action,
			handler_result=handler_result,
		)
		self._report(outcome, is_current)
		return outcome

	def _report(self, outcome: RoutingOutcome, is_current: Optional[Callable[[], bool]]) -> None:
		if is_current is not None and not is_current():
			logger.debug(f"[Router] Superseded search, not reporting '{outcome.utterance.text}'")
			return
		self._log(outcome)
		if self.healer is not None and outcome.action is None:
			command = outcome.parsed_command
			self.healer.maybe_analyze(
				outcome.utterance.text,
				command.kind if command is not None else "unknown",
				outcome.handler_result,
				llm_used=outcome.llm_used and outcome.final_command is not None and outcome.final_command.is_valid,
			)

	def _log(self, outcome: RoutingOutcome) -> None:
		if self.analytics is None:
			return
		try:
			event = build_voice_event(
				utterance=outcome.utterance.text,
				parsed_command=outcome.parsed_command,
				final_command=outcome.final_command,
				llm_used=outcome.llm_used,
				classification=outcome.classification,
				hints=outcome.hints,
				llm_error=outcome.llm_error,
				handler_result=outcome.handler_result,
				result_count=len(outcome.discovery.suggestions) if outcome.discovery else None,
				error_message=outcome.discovery_error,
				action=outcome.action.kind if outcome.action else None,
			)
			self.analytics.log(event)
		except Exception as e:
			logger.warning(f"[Router] Analytics logging failed: {e!r}")


class TranscriptDeduper:
	"""
	Remembers recently handled transcripts so the same finalized text delivered twice
	(recognizer retries, double callbacks) is only searched once inside the window.
	"""

	def __init__(self, window_s: float = 10.0, clock: Callable[[], float] = time.monotonic):
		self.window_s = window_s
		self.clock = clock
		self._seen: Dict[str, float] = {}  # normalized text -> first seen

	@staticmethod
	def normalize(text: str) -> str:
		return " ".join(text.split()).lower()

	def is_duplicate(self, text: str) -> bool:
		"""True when the text was seen inside the window; otherwise remember it and return False."""
		now = self.clock()
		self._seen = {k: t for k, t in self._seen.items() if now - t < self.window_s}
		key = self.normalize(text)
		if key in self._seen:
			return True
		self._seen[key] = now
		return False


class SearchCoordinator:
	"""
	Latest-wins search runner. Submitting a new utterance cancels the in-flight search, and a
	generation check gates publishing and analytics so a superseded search never reports, even if
	its task ignores cancellation and returns anyway. Duplicate transcripts are skipped entirely.
	"""

	def __init__(
		self,
		pipeline: VoiceSearchPipeline,
		on_result: Optional[Callable[[RoutingOutcome], None]] = None,
		deduper: Optional[TranscriptDeduper] = None,
	):
		self.pipeline = pipeline
		self.on_result = on_result
		self.deduper = deduper
		self.latest: Optional[RoutingOutcome] = None  # last published outcome
		self._generation = 0
		self._task: Optional[asyncio.Task] = None

	@property
	def generation(self) -> int:
		return self._generation

	def submit(self, text: Union[str, Utterance]) -> Optional[asyncio.Task]:
		"""Start a search for ``text``; None when it duplicates a recent transcript."""
		utterance = Utterance.of(text)
		if self.deduper is not None and self.deduper.is_duplicate(utterance.text):
			logger.warning(f"[Router] Skipping duplicate transcript: '{utterance.text}'")
			return None
		self.cancel()
		self._generation += 1
		self._task = asyncio.ensure_future(self._run(self._generation, utterance))
		return self._task

	def cancel(self) -> None:
		if self._task is not None and not self._task.done():
			logger.debug(f"[Router] Cancelling search generation {self._generation}")
			self._task.cancel()
		self._task = None

	async def _run(self, generation: int, utterance: Utterance) -> Optional[RoutingOutcome]:
		outcome = await self.pipeline.handle(utterance, is_current=lambda: generation == self._generation)
		if generation != self._generation:
			logger.debug(f"[Router] Dropping stale result of generation {generation}")
			return None
		self.latest = outcome
		if self.on_result is not None:
			self.on_result(outcome)
		return outcome


def build_pipeline(
	config: PipelineConfig,
	http: httpx.AsyncClient,
	executor: Any = None,
	analytics_sink: Any = None,
	user_id: Optional[str] = None,
	suggestion_sink: Any = None,
) -> VoiceSearchPipeline:
	"""Wire every component around one shared HTTP client."""
	normalizer = RecommenderNormalizer()
	client = ChatClient(config, http)
	guard = BudgetGuard(BudgetLedger(config, http, user_id=user_id), config)
	healer = SelfHealingAnalyzer(client, config, sink=suggestion_sink) if config.self_healing_enabled else None
	return VoiceSearchPipeline(
		parser=CommandParser(normalizer),
		classifier=IntentClassifier(config.thresholds),
		extractor=HintExtractor(),
		resolver=LLMIntentResolver(client, config, normalizer),
		discovery=DiscoveryOrchestrator(client, guard, config),
		executor=executor,
		analytics=VoiceEventLogger(analytics_sink),
		healer=healer,
	)


def build_coordinator(
	config: PipelineConfig,
	pipeline: VoiceSearchPipeline,
	on_result: Optional[Callable[[RoutingOutcome], None]] = None,
) -> SearchCoordinator:
	"""Latest-wins coordinator with the configured duplicate-transcript window."""
	return SearchCoordinator(pipeline, on_result=on_result, deduper=TranscriptDeduper(config.dedupe_window_s))
