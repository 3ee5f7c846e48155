"""
Configuration loader for the voice search pipeline.
Reads environment variables into a frozen PipelineConfig with safe defaults.
"""

import os  # default environment source
from dataclasses import dataclass, field  # immutable settings records
from typing import Mapping, Optional

# Default values, grouped by the component that consumes them
DEFAULT_MODEL = "gpt-4o"
DEFAULT_OPENAI_BASE_URL = "https://api.openai.com/v1"
DEFAULT_REQUEST_TIMEOUT_S = 30.0
DEFAULT_LEDGER_TIMEOUT_S = 5.0
DEFAULT_RESOLVER_TEMPERATURE = 0.3
DEFAULT_DISCOVERY_TEMPERATURE = 0.3
DEFAULT_DISCOVERY_MAX_TOKENS = 2500
DEFAULT_INPUT_COST_PER_MILLION = 2.50  # USD per 1M prompt tokens
DEFAULT_OUTPUT_COST_PER_MILLION = 10.00  # USD per 1M completion tokens
DEFAULT_DAILY_CAP = 10.0  # USD, only used for the fail-open status snapshot
DEFAULT_DEDUPE_WINDOW_S = 10.0  # identical transcripts inside this window are skipped
DEFAULT_SELF_HEALING_TEMPERATURE = 0.3


@dataclass(frozen=True)
class ClassifierThresholds:
	"""Tunable cutoffs for the fuzzy-vs-direct decision."""
	plot_density: float = 0.2  # fraction of plot-descriptor tokens
	plot_min_words: int = 5  # density rule needs more words than this
	long_utterance_words: int = 12  # longer than this without a title-like cue is fuzzy
	short_title_words: int = 5  # up to this many words counts as title-like


@dataclass(frozen=True)
class SpeechTimings:
	"""Timings for the capture state machine, in seconds."""
	final_wait_s: float = 0.8  # how long stop waits for a final transcript
	settle_s: float = 0.5  # pause in Processing before returning to Idle
	grace_period_s: float = 3.0  # silence watchdog ignores the start of a session
	silence_timeout_s: float = 5.0  # no transcript activity for this long stops the session
	min_recording_s: float = 2.0  # never auto-stop a session shorter than this


@dataclass(frozen=True)
class PipelineConfig:
	openai_api_key: Optional[str] = None
	openai_base_url: str = DEFAULT_OPENAI_BASE_URL
	model: str = DEFAULT_MODEL
	request_timeout_s: float = DEFAULT_REQUEST_TIMEOUT_S
	resolver_temperature: float = DEFAULT_RESOLVER_TEMPERATURE
	discovery_temperature: float = DEFAULT_DISCOVERY_TEMPERATURE
	discovery_max_tokens: int = DEFAULT_DISCOVERY_MAX_TOKENS
	input_cost_per_million: float = DEFAULT_INPUT_COST_PER_MILLION
	output_cost_per_million: float = DEFAULT_OUTPUT_COST_PER_MILLION
	ledger_url: Optional[str] = None
	ledger_key: Optional[str] = None
	ledger_timeout_s: float = DEFAULT_LEDGER_TIMEOUT_S
	daily_cap: float = DEFAULT_DAILY_CAP
	dedupe_window_s: float = DEFAULT_DEDUPE_WINDOW_S
	self_healing_enabled: bool = False  # analyze misunderstood utterances in the background
	self_healing_temperature: float = DEFAULT_SELF_HEALING_TEMPERATURE
	thresholds: ClassifierThresholds = field(default_factory=ClassifierThresholds)
	speech: SpeechTimings = field(default_factory=SpeechTimings)

	@property
	def has_credential(self) -> bool:
		return bool(self.openai_api_key and self.openai_api_key.strip())


def _parse_float(value: Optional[str], default: float) -> float:
	if value is None:
		return default
	try:
		return float(value)
	except (TypeError, ValueError):
		return default


def _parse_int(value: Optional[str], default: int) -> int:
	if value is None:
		return default
	try:
		return int(value)
	except (TypeError, ValueError):
		return default


def _parse_bool(value: Optional[str], default: bool) -> bool:
	if value is None:
		return default
	lowered = value.strip().lower()
	if lowered in ("1", "true", "yes", "on"):
		return True
	if lowered in ("0", "false", "no", "off"):
		return False
	return default


def _parse_str(value: Optional[str]) -> Optional[str]:
	if value is None or not value.strip():
		return None
	return value.strip()


def load_config(env: Optional[Mapping[str, str]] = None) -> PipelineConfig:
	"""
	Load configuration from environment variables.
	``env`` may be any mapping, which keeps tests independent of the real environment.
	Malformed numbers silently fall back to their defaults.
	"""
	environment = env if env is not None else os.environ

	thresholds = ClassifierThresholds(
		plot_density=_parse_float(environment.get("VOICE_SEARCH_PLOT_DENSITY"), ClassifierThresholds.plot_density),
		plot_min_words=_parse_int(environment.get("VOICE_SEARCH_PLOT_MIN_WORDS"), ClassifierThresholds.plot_min_words),
		long_utterance_words=_parse_int(environment.get("VOICE_SEARCH_LONG_WORDS"), ClassifierThresholds.long_utterance_words),
		short_title_words=_parse_int(environment.get("VOICE_SEARCH_SHORT_TITLE_WORDS"), ClassifierThresholds.short_title_words),
	)
	speech = SpeechTimings(
		final_wait_s=_parse_float(environment.get("VOICE_SEARCH_FINAL_WAIT_S"), SpeechTimings.final_wait_s),
		settle_s=_parse_float(environment.get("VOICE_SEARCH_SETTLE_S"), SpeechTimings.settle_s),
		grace_period_s=_parse_float(environment.get("VOICE_SEARCH_GRACE_S"), SpeechTimings.grace_period_s),
		silence_timeout_s=_parse_float(environment.get("VOICE_SEARCH_SILENCE_S"), SpeechTimings.silence_timeout_s),
		min_recording_s=_parse_float(environment.get("VOICE_SEARCH_MIN_RECORDING_S"), SpeechTimings.min_recording_s),
	)

	return PipelineConfig(
		openai_api_key=_parse_str(environment.get("OPENAI_API_KEY")),
		openai_base_url=(environment.get("OPENAI_BASE_URL") or DEFAULT_OPENAI_BASE_URL).rstrip("/"),
		model=environment.get("VOICE_SEARCH_MODEL") or DEFAULT_MODEL,
		request_timeout_s=_parse_float(environment.get("VOICE_SEARCH_TIMEOUT_S"), DEFAULT_REQUEST_TIMEOUT_S),
		resolver_temperature=_parse_float(environment.get("VOICE_SEARCH_RESOLVER_TEMPERATURE"), DEFAULT_RESOLVER_TEMPERATURE),
		discovery_temperature=_parse_float(environment.get("VOICE_SEARCH_DISCOVERY_TEMPERATURE"), DEFAULT_DISCOVERY_TEMPERATURE),
		discovery_max_tokens=_parse_int(environment.get("VOICE_SEARCH_DISCOVERY_MAX_TOKENS"), DEFAULT_DISCOVERY_MAX_TOKENS),
		input_cost_per_million=_parse_float(environment.get("VOICE_SEARCH_INPUT_COST_PER_MILLION"), DEFAULT_INPUT_COST_PER_MILLION),
		output_cost_per_million=_parse_float(environment.get("VOICE_SEARCH_OUTPUT_COST_PER_MILLION"), DEFAULT_OUTPUT_COST_PER_MILLION),
		ledger_url=_parse_str(environment.get("BUDGET_LEDGER_URL")),
		ledger_key=_parse_str(environment.get("BUDGET_LEDGER_KEY")),
		ledger_timeout_s=_parse_float(environment.get("BUDGET_LEDGER_TIMEOUT_S"), DEFAULT_LEDGER_TIMEOUT_S),
		daily_cap=_parse_float(environment.get("VOICE_SEARCH_DAILY_CAP"), DEFAULT_DAILY_CAP),
		dedupe_window_s=_parse_float(environment.get("VOICE_SEARCH_DEDUPE_WINDOW_S"), DEFAULT_DEDUPE_WINDOW_S),
		self_healing_enabled=_parse_bool(environment.get("VOICE_SEARCH_SELF_HEALING"), False),
		self_healing_temperature=_parse_float(environment.get("VOICE_SEARCH_SELF_HEALING_TEMPERATURE"), DEFAULT_SELF_HEALING_TEMPERATURE),
		thresholds=thresholds,
		speech=speech,
	)
