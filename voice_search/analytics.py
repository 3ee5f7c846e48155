"""
Voice analytics events and fire-and-forget background work.
Events are handed to an opaque sink; a failing sink never affects the caller.
"""

import asyncio  # background tasks
import inspect  # sinks may be sync or async
import time  # event timestamps
from enum import Enum
from functools import partial
from typing import Any, Awaitable, Dict, Optional, Set

from loguru import logger  # console logging

from .models import Command, IntentClassification, ExtractedHints

# Strong references so pending background tasks are not garbage collected mid-flight
_BACKGROUND_TASKS: Set[asyncio.Task] = set()


def fire_and_forget(awaitable: Awaitable[Any], label: str) -> asyncio.Task:
	"""Schedule work on the running loop without awaiting it; failures are logged and absorbed."""
	task = asyncio.ensure_future(awaitable)
	_BACKGROUND_TASKS.add(task)
	task.add_done_callback(partial(_on_background_done, label))
	return task


def _on_background_done(label: str, task: asyncio.Task) -> None:
	_BACKGROUND_TASKS.discard(task)
	if task.cancelled():
		logger.debug(f"[Background] {label} cancelled")
		return
	exc = task.exception()
	if exc is not None:
		logger.warning(f"[Background] {label} failed: {exc!r}")


async def drain_background(timeout: Optional[float] = None) -> None:
	"""Wait for pending background work, e.g. on shutdown."""
	pending = [t for t in _BACKGROUND_TASKS if not t.done()]
	if not pending:
		return
	await asyncio.wait(pending, timeout=timeout)


class VoiceHandlerResult(str, Enum):
	SUCCESS = "success"
	NO_RESULTS = "no_results"
	AMBIGUOUS = "ambiguous"  # too many results to pick one
	NETWORK_ERROR = "network_error"
	PARSE_ERROR = "parse_error"  # parser and LLM both failed
	RATE_LIMITED = "rate_limited"


AMBIGUOUS_RESULT_COUNT = 10


def result_for_count(result_count: int, error: Optional[BaseException] = None) -> VoiceHandlerResult:
	if error is not None:
		return VoiceHandlerResult.NETWORK_ERROR
	if result_count == 0:
		return VoiceHandlerResult.NO_RESULTS
	if result_count >= AMBIGUOUS_RESULT_COUNT:
		return VoiceHandlerResult.AMBIGUOUS
	return VoiceHandlerResult.SUCCESS


def _command_fields(prefix: str, command: Optional[Command]) -> Dict[str, Any]:
	return {
		f"{prefix}_type": command.kind if command is not None else None,
		f"{prefix}_movie_title": command.movie_title if command is not None else None,
		f"{prefix}_recommender": command.recommender if command is not None else None,
	}


def build_voice_event(
	*,
	utterance: str,
	parsed_command: Optional[Command],
	final_command: Optional[Command],
	llm_used: bool,
	classification: Optional[IntentClassification] = None,
	hints: Optional[ExtractedHints] = None,
	llm_error: Optional[str] = None,
	handler_result: Optional[VoiceHandlerResult] = None,
	result_count: Optional[int] = None,
	error_message: Optional[str] = None,
	action: Optional[str] = None,
) -> Dict[str, Any]:
	event: Dict[str, Any] = {
		"ts": time.time(),
		"utterance": utterance,
		"llm_used": llm_used,
		"llm_error": llm_error,
		"search_intent": classification.intent.value if classification else None,
		"intent_confidence": classification.confidence if classification else None,
		"extracted_hints": hints.to_wire(omit_empty=True) if hints is not None and hints.has_any_hints else None,
		"handler_result": handler_result.value if handler_result else None,
		"result_count": result_count,
		"error_message": error_message,
		"action": action,
	}
	event.update(_command_fields("parsed_command", parsed_command))
	event.update(_command_fields("final_command", final_command))
	return event


class VoiceEventLogger:
	"""Dispatches voice analytics events to ``sink.record(event)`` without blocking."""

	def __init__(self, sink: Any = None):
		self.sink = sink

	def log(self, event: Dict[str, Any]) -> Optional[asyncio.Task]:
		if self.sink is None:
			logger.debug(f"[Analytics] No sink configured, event dropped: {event.get('handler_result')}")
			return None
		return fire_and_forget(self._deliver(event), "voice analytics event")

	def log_search_result(self, query: str, result_count: int, error: Optional[BaseException] = None) -> Optional[asyncio.Task]:
		"""Record how a search triggered by voice ended."""
		handler_result = result_for_count(result_count, error)
		logger.info(f"[Analytics] Search result: {handler_result.value} ({result_count} results)")
		return self.log(
			{
				"ts": time.time(),
				"utterance": query,
				"final_command_type": "search_result",
				"handler_result": handler_result.value,
				"result_count": result_count,
				"error_message": str(error) if error is not None else None,
			}
		)

	async def _deliver(self, event: Dict[str, Any]) -> None:
		result = self.sink.record(event)
		if inspect.isawaitable(result):
			await result
		logger.debug("[Analytics] Event recorded")
