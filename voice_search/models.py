"""
Data models for the voice search pipeline.
Defines the values passed between capture, parsing, classification, hint extraction and discovery.
"""

# Import dataclass to define simple "record-like" classes without boilerplate
from dataclasses import dataclass, field  # auto-generates __init__, __repr__, etc.
from enum import Enum  # closed sets of named cases
import time  # arrival timestamps
# Import typing helpers for precise and self-documenting types
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union


@dataclass(frozen=True)
class Utterance:
	"""
	One finalized voice input. Never mutated; everything downstream is re-derived from ``text``.
	The arrival timestamp is excluded from equality so parsing stays structurally deterministic.
	"""
	text: str  # transcript exactly as recognized
	received_at: float = field(default_factory=time.time, compare=False)  # epoch seconds

	@classmethod
	def of(cls, value: Union[str, "Utterance"]) -> "Utterance":
		"""Wrap a plain string, pass an Utterance through unchanged."""
		if isinstance(value, Utterance):
			return value
		return cls(text=value)


def _require_text(value: str, name: str) -> None:
	if not value or value != value.strip():
		raise ValueError(f"{name} must be a non-empty trimmed string, got {value!r}")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RecommenderSearch:
	"""Somebody (a person or a publication) recommended a specific movie."""
	recommender: str
	movie: str
	raw: Utterance

	kind = "recommender_search"
	is_valid = True

	def __post_init__(self):
		_require_text(self.recommender, "recommender")
		_require_text(self.movie, "movie")

	@property
	def movie_title(self) -> Optional[str]:
		return self.movie


@dataclass(frozen=True)
class MovieSearch:
	"""Search for a movie by (probable) title."""
	query: str
	raw: Utterance

	kind = "movie_search"
	is_valid = True
	recommender = None

	def __post_init__(self):
		_require_text(self.query, "query")

	@property
	def movie_title(self) -> Optional[str]:
		return self.query


@dataclass(frozen=True)
class Unknown:
	"""No command could be resolved; the only variant that is not routable."""
	raw: Utterance

	kind = "unknown"
	is_valid = False
	recommender = None
	movie_title = None


Command = Union[RecommenderSearch, MovieSearch, Unknown]


@dataclass(frozen=True)
class CreateWatchlist:
	"""Action: create a new list with the given name."""
	list_name: str
	raw: Utterance

	kind = "create_watchlist"


@dataclass(frozen=True)
class MarkWatched:
	"""Action: flag the movie in context as watched (True) or unwatched (False)."""
	watched: bool
	raw: Utterance

	kind = "mark_watched"


@dataclass(frozen=True)
class AddToList:
	"""Action: add the movie in context to an existing list, matched by name."""
	list_name: str
	raw: Utterance

	kind = "add_to_list"


@dataclass(frozen=True)
class SortList:
	"""Action: re-sort the list on screen, e.g. "Year Oldest First" or "Tasty Score"."""
	sort_by: str
	raw: Utterance

	kind = "sort_list"


ActionRequest = Union[CreateWatchlist, MarkWatched, AddToList, SortList]


def command_to_dict(command: Command) -> Dict[str, Any]:
	"""Flat representation used by analytics events and the HTTP API."""
	return {
		"type": command.kind,
		"movie_title": command.movie_title,
		"recommender": command.recommender,
		"raw": command.raw.text,
	}


# ---------------------------------------------------------------------------
# Intent classification
# ---------------------------------------------------------------------------

class SearchIntent(str, Enum):
	DIRECT = "direct"  # user knows the title
	FUZZY = "fuzzy"  # user describes a movie they can't name
	ACTION_ONLY = "action_only"  # command such as "mark watched", no search needed
	IMPORT = "import"  # pasting results from an external assistant


@dataclass(frozen=True)
class IntentClassification:
	"""Classified intent plus a reproducible confidence score in [0, 1]."""
	intent: SearchIntent
	confidence: float
	evidence: Tuple[str, ...] = ()  # cues that decided the category, for diagnostics

	def __post_init__(self):
		if not 0.0 <= self.confidence <= 1.0:
			raise ValueError(f"confidence must be within [0, 1], got {self.confidence}")


# ---------------------------------------------------------------------------
# Hints
# ---------------------------------------------------------------------------

def _as_tuple(values: Optional[Iterable[str]]) -> Tuple[str, ...]:
	if not values:
		return ()
	if isinstance(values, str):
		return (values,)  # a lone name, not a sequence of characters
	return tuple(str(v) for v in values)


@dataclass(frozen=True)
class ExtractedHints:
	"""
	Secondary descriptive signals pulled out of an utterance.
	Every field is independently optional; an all-empty record means "no signal extracted".
	"""
	title_likely: Optional[str] = None
	year: Optional[int] = None  # 1900..2030
	decade: Optional[int] = None  # canonical decade start, e.g. 1980
	actors: Tuple[str, ...] = ()  # display names, unique case-insensitively
	director: Optional[str] = None
	author: Optional[str] = None  # book author for adaptations
	keywords: Tuple[str, ...] = ()  # genre labels
	plot_clues: Tuple[str, ...] = ()  # short phrases around plot verbs
	is_remake_hint: bool = False

	@property
	def has_any_hints(self) -> bool:
		return (
			self.title_likely is not None
			or self.year is not None
			or self.decade is not None
			or bool(self.actors)
			or self.director is not None
			or self.author is not None
			or bool(self.keywords)
			or bool(self.plot_clues)
			or self.is_remake_hint
		)

	def to_wire(self, omit_empty: bool = False) -> Dict[str, Any]:
		"""
		Snake_case JSON shape shared by the ledger and the HTTP API.
		With ``omit_empty`` the empty lists and a false remake flag are sent as null,
		which is how the usage ledger stores them.
		"""
		def seq(values: Tuple[str, ...]) -> Optional[List[str]]:
			if omit_empty and not values:
				return None
			return list(values)

		return {
			"title_likely": self.title_likely,
			"year": self.year,
			"decade": self.decade,
			"actors": seq(self.actors),
			"director": self.director,
			"author": self.author,
			"keywords": seq(self.keywords),
			"plot_clues": seq(self.plot_clues),
			"is_remake_hint": (self.is_remake_hint or None) if omit_empty else self.is_remake_hint,
		}

	@classmethod
	def from_wire(cls, data: Dict[str, Any]) -> "ExtractedHints":
		"""Inverse of :meth:`to_wire`; missing keys, nulls and empty lists all read back as empty."""
		year = data.get("year")
		decade = data.get("decade")
		return cls(
			title_likely=data.get("title_likely"),
			year=int(year) if year is not None else None,
			decade=int(decade) if decade is not None else None,
			actors=_as_tuple(data.get("actors")),
			director=data.get("director"),
			author=data.get("author"),
			keywords=_as_tuple(data.get("keywords")),
			plot_clues=_as_tuple(data.get("plot_clues")),
			is_remake_hint=bool(data.get("is_remake_hint") or False),
		)


# ---------------------------------------------------------------------------
# Budget ledger
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class BudgetStatus:
	"""Snapshot of today's AI spend, in dollars. Informational only, never enforced locally."""
	spent_today: float
	daily_cap: float
	remaining: float
	requests_today: int
	tokens_today: int
	is_over_budget: bool
	spend_rate_per_hour: float

	@property
	def projected_daily_spend(self) -> float:
		return self.spend_rate_per_hour * 24.0

	@property
	def percent_used(self) -> float:
		if self.daily_cap <= 0:
			return 0.0
		return (self.spent_today / self.daily_cap) * 100.0


@dataclass(frozen=True)
class RateLimitCheck:
	"""Authoritative decision from the ledger on whether one more AI request may run."""
	allowed: bool
	reason: str
	spent: float  # dollars
	remaining: float  # dollars


@dataclass(frozen=True)
class DiscoveryRequestRecord:
	"""One completed (or refused) discovery call, written to the usage ledger."""
	query: str
	hints: Optional[ExtractedHints]
	movies_found: int
	movies_ingested: int
	prompt_tokens: int
	completion_tokens: int
	cost_cents: float
	response_time_ms: int
	status: str  # success | error | rate_limited
	error_message: Optional[str] = None

	def to_wire(self) -> Dict[str, Any]:
		return {
			"query": self.query,
			"hints": self.hints.to_wire(omit_empty=True) if self.hints is not None else None,
			"movies_found": self.movies_found,
			"movies_ingested": self.movies_ingested,
			"prompt_tokens": self.prompt_tokens,
			"completion_tokens": self.completion_tokens,
			"cost_cents": self.cost_cents,
			"response_time_ms": self.response_time_ms,
			"status": self.status,
			"error_message": self.error_message,
		}


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------

class ConfidenceTier(str, Enum):
	HIGH = "high"
	MEDIUM = "medium"
	LOW = "low"

	@classmethod
	def parse(cls, value: Optional[str]) -> "ConfidenceTier":
		"""Lenient mapping; anything unrecognized counts as low confidence."""
		try:
			return cls((value or "").strip().lower())
		except ValueError:
			return cls.LOW


@dataclass(frozen=True)
class DiscoverySuggestion:
	title: str
	year: Optional[int]
	tmdb_id: Optional[int]  # catalog identifier when the model knows it
	confidence: ConfidenceTier
	reason: Optional[str]  # why this movie matches the query


@dataclass(frozen=True)
class TokenUsage:
	prompt_tokens: int
	completion_tokens: int
	total_tokens: int


@dataclass(frozen=True)
class DiscoveryResult:
	"""Parsed suggestions plus the accounting for the call that produced them."""
	suggestions: List[DiscoverySuggestion]
	interpretation: Optional[str]  # how the model understood the query
	total_found: Optional[int]
	usage: TokenUsage
	cost_cents: float
	latency_ms: int


# ---------------------------------------------------------------------------
# Speech capture
# ---------------------------------------------------------------------------

class SpeechPhase(str, Enum):
	IDLE = "idle"
	REQUESTING_PERMISSION = "requesting_permission"
	LISTENING = "listening"
	PROCESSING = "processing"
	ERROR = "error"


@dataclass(frozen=True)
class SpeechSessionState:
	phase: SpeechPhase
	message: Optional[str] = None  # only set for ERROR

	@classmethod
	def error(cls, message: str) -> "SpeechSessionState":
		return cls(SpeechPhase.ERROR, message)


@dataclass(frozen=True)
class RecognitionEvent:
	"""One callback from the speech engine, tagged with the session that produced it."""
	session_id: int
	text: str = ""
	is_final: bool = False
	error: Optional[str] = None
	is_cancellation: bool = False  # engine error caused by our own stop/cancel
