"""
Self-healing pattern analysis.
When an utterance that sounds like an action was misunderstood, or only made sense after the
language model stepped in, ask the model what the speaker meant and which phrases should trigger
that intent next time. Suggestions are logged and handed to a sink for review; nothing here
changes the parser at runtime.
"""

import inspect  # sinks may be sync or async
import re
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field  # analysis payload schema

from loguru import logger  # console logging

from .analytics import VoiceHandlerResult, fire_and_forget
from .config import PipelineConfig
from .errors import VoiceSearchError
from .llm_client import ChatClient, decode_payload

# Words that suggest the speaker wanted to do something rather than search
ACTION_WORDS: List[str] = [
	"watch", "watched", "add", "remove", "mark", "list", "delete", "save",
	"seen", "unwatched", "didn't", "haven't",
]
_ACTION_WORD_RES = [re.compile(r"(?<!\w)" + re.escape(w) + r"(?!\w)") for w in ACTION_WORDS]

SYSTEM_PROMPT = """You are analyzing a voice command that a movie recommendation app did not understand.

Respond with ONLY a single JSON object, no prose, using this exact format:
{
  "intent": "markWatched" | "markUnwatched" | "addToWatchlist" | "removeFromWatchlist" | "search" | "unknown",
  "confidence": 0.0-1.0,
  "reasoning": "brief explanation",
  "suggested_patterns": ["pattern1", "pattern2"]
}

Intent rules:
- "markWatched": mark a movie as watched (e.g., "mark as watched", "I watched this", "seen it")
- "markUnwatched": mark a movie as unwatched (e.g., "mark as unwatched", "haven't seen", "not watched")
- "addToWatchlist": add a movie to a list (e.g., "add to list", "save this", "put in my list")
- "removeFromWatchlist": remove a movie from a list (e.g., "remove from list", "take out")
- "search": search for a movie (e.g., "find", "look for", "search for")
- "unknown": cannot determine intent

Suggested patterns are short lowercase phrases that should trigger this intent in the future."""


class PatternAnalysis(BaseModel):
	intent: str
	confidence: float = Field(..., ge=0.0, le=1.0)
	reasoning: str = ""
	suggested_patterns: List[str] = Field(default_factory=list)


@dataclass(frozen=True)
class PatternSuggestion:
	"""One reviewable suggestion; intent and patterns are None when the analysis failed."""
	utterance: str
	original_command_type: str
	suggested_intent: Optional[str] = None
	suggested_patterns: tuple = ()
	confidence: Optional[float] = None
	source: str = "llm"
	status: str = "pending"  # reviewed by a person before any pattern is adopted

	def to_wire(self) -> Dict[str, Any]:
		return {
			"ts": time.time(),
			"utterance": self.utterance,
			"original_command_type": self.original_command_type,
			"suggested_intent": self.suggested_intent,
			"suggested_pattern": ", ".join(self.suggested_patterns) or None,
			"confidence": self.confidence,
			"source": self.source,
			"status": self.status,
		}


def has_action_word(text: str) -> bool:
	lower = text.replace("’", "'").lower()
	return any(p.search(lower) for p in _ACTION_WORD_RES)


def should_analyze(
	utterance: str,
	command_type: str,
	handler_result: Optional[VoiceHandlerResult],
	llm_used: bool = False,
) -> bool:
	"""
	Analyze only utterances that sound like an action and still went the search way:
	nothing understood, nothing found, read as a title search, or rescued by the language model.
	"""
	if not has_action_word(utterance):
		return False
	return (
		handler_result in (VoiceHandlerResult.PARSE_ERROR, VoiceHandlerResult.NO_RESULTS)
		or command_type in ("movie_search", "unknown")
		or llm_used
	)


class SelfHealingAnalyzer:
	"""Background analysis of misunderstood utterances; every failure is logged, never raised to the caller."""

	def __init__(self, client: ChatClient, config: PipelineConfig, sink: Any = None):
		self.client = client
		self.config = config
		self.sink = sink

	def maybe_analyze(
		self,
		utterance: str,
		command_type: str,
		handler_result: Optional[VoiceHandlerResult],
		llm_used: bool = False,
	):
		"""Schedule an analysis when the trigger rule fires. Returns the background task or None."""
		if not should_analyze(utterance, command_type, handler_result, llm_used):
			return None
		if not self.client.is_configured:
			logger.debug("[SelfHealing] No language model configured, skipping analysis")
			return None
		logger.info(f"[SelfHealing] Triggering analysis for '{utterance}' ({command_type})")
		return fire_and_forget(self.analyze(utterance, command_type), "pattern analysis")

	async def analyze(self, utterance: str, command_type: str) -> PatternSuggestion:
		try:
			completion = await self.client.complete(
				messages=[
					{"role": "system", "content": SYSTEM_PROMPT},
					{"role": "user", "content": f'Analyze this failed command: "{utterance}"'},
				],
				temperature=self.config.self_healing_temperature,
			)
			analysis = decode_payload(completion.content, PatternAnalysis)
			suggestion = PatternSuggestion(
				utterance=utterance,
				original_command_type=command_type,
				suggested_intent=analysis.intent,
				suggested_patterns=tuple(p.strip().lower() for p in analysis.suggested_patterns if p.strip()),
				confidence=analysis.confidence,
			)
			logger.info(
				f"[SelfHealing] '{utterance}' -> {analysis.intent} ({analysis.confidence:.2f}), "
				f"patterns={list(suggestion.suggested_patterns)}"
			)
		except VoiceSearchError as e:
			# still recorded so the utterance shows up for review
			logger.warning(f"[SelfHealing] Analysis failed: {e}")
			suggestion = PatternSuggestion(utterance=utterance, original_command_type=command_type)

		await self._record(suggestion)
		return suggestion

	async def _record(self, suggestion: PatternSuggestion) -> None:
		if self.sink is None:
			return
		result = self.sink.record(suggestion.to_wire())
		if inspect.isawaitable(result):
			await result
		logger.debug("[SelfHealing] Suggestion recorded")
