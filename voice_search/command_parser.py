"""
Command parsing module.
Deterministic, ordered pattern rules that turn an utterance into a structured command.
No rule matching is a normal outcome (Unknown), which lets the caller fall back to the LLM resolver.
"""

import re  # ordered pattern rules
from typing import List, Optional, Pattern, Tuple, Union

from loguru import logger  # console logging

from .models import (
	ActionRequest,
	AddToList,
	Command,
	CreateWatchlist,
	MarkWatched,
	MovieSearch,
	RecommenderSearch,
	SortList,
	Unknown,
	Utterance,
)
from .recommender_normalizer import RecommenderNormalizer  # fixes misheard recommender names


def _compile(pattern: str) -> Pattern:
	return re.compile(pattern, re.IGNORECASE)


def _phrase(phrase: str) -> Pattern:
	# whole-phrase match so "unwatched" never satisfies "watched"
	return re.compile(r"(?<!\w)" + re.escape(phrase) + r"(?!\w)")


class CommandParser:
	"""
	Parses an utterance into RecommenderSearch, MovieSearch or Unknown.
	Rules are tried in order and the first match wins:
	1) "<who> recommends|suggested|said to watch|likes <movie>" and "<movie> recommended by <who>"
	2) "find|search for|look up <movie>"
	3) "recommend(s) (the) movie <movie>" with nobody named before it
	4) "(the) movie <movie>"
	5) "add <movie> (to my watchlist)"
	"""

	# (pattern, recommender group, movie group)
	RECOMMENDER_PATTERNS: List[Tuple[Pattern, int, int]] = [
		(_compile(r"^(.+?)\s+recommends\s+(.+)$"), 1, 2),
		(_compile(r"^(.+?)\s+recommend\s+(.+)$"), 1, 2),
		(_compile(r"^(.+?)\s+suggested\s+(.+)$"), 1, 2),
		(_compile(r"^(.+?)\s+said\s+to\s+watch\s+(.+)$"), 1, 2),
		(_compile(r"^(.+?)\s+likes\s+(.+)$"), 1, 2),
		(_compile(r"^(.+?)\s+liked\s+(.+)$"), 1, 2),
		(_compile(r"^(.+?)\s+recommended\s+by\s+(.+)$"), 2, 1),  # reverse order
	]

	SEARCH_PATTERNS: List[Pattern] = [
		_compile(r"^find\s+(.+)$"),
		_compile(r"^search\s+for\s+(.+)$"),
		_compile(r"^look\s+up\s+(.+)$"),
	]

	RECOMMEND_MOVIE_PATTERN = _compile(r"^(?:.*?\s)?recommends?\s+(?:the\s+)?movie\s+(.+)$")

	MOVIE_PREFIX_PATTERNS: List[Pattern] = [
		_compile(r"^the\s+movie\s+(.+)$"),
		_compile(r"^movie\s+(.+)$"),
	]

	ADD_PATTERN = _compile(r"\badd\s+(.+)$")

	RE_LEADING_MOVIE = _compile(r"^(?:the\s+)?movie\s+")
	RE_WATCHLIST_SUFFIX = _compile(r"\s*\bto\s+my\s+watch\s?list$")

	# Subjects that are the speaker, not a recommender ("I recommend", "trying to recommend")
	NON_RECOMMENDERS = {"i", "we", "you", "they", "someone", "somebody", "me"}

	# Titles that point at the movie on screen rather than naming one
	CONTEXT_TITLES = {"this", "it", "that", "this movie", "that movie", "this one", "that one"}

	# Create-list phrases, most specific first
	CREATE_LIST_PHRASES: List[str] = [
		"create a new list called",
		"create a new watchlist called",
		"create a list called",
		"make a new list called",
		"make a list called",
		"new list called",
		"create a new list named",
		"create a list named",
		"make a new list named",
		"make a list named",
		"new list named",
	]

	# "add this to <list>" phrases, longest first so "my" never ends up in the list name
	ADD_TO_LIST_PHRASES: List[str] = [
		"add this movie to my",
		"add this to my",
		"put this movie in my",
		"put this in my",
		"add this movie to",
		"add this to",
		"put this movie in",
		"put this in",
	]
	RE_LIST_SUFFIX = _compile(r"\s+list$")
	GENERIC_LIST_NAMES = {"", "list", "watchlist", "watch list"}
	DEFAULT_LIST_NAME = "Watchlist"

	# (trigger words, sort key, [(direction words, direction)]), first matching key wins
	SORT_KEYS: List[Tuple[List[str], str, List[Tuple[List[str], str]]]] = [
		(["year"], "Year", [(["oldest", "earliest"], "Oldest First"), (["newest", "latest"], "Newest First")]),
		(["genre"], "Genre", []),
		(["title", "alphabetical", "alphabetically"], "Title", []),
		(["rating", "ratings"], "Tasty Score", [(["highest", "best"], "Highest"), (["lowest", "worst"], "Lowest")]),
		(["tasty score", "tasty"], "Tasty Score", [(["highest", "best"], "Highest")]),
		(["ai score", "ai"], "AI Score", [(["highest", "best"], "Highest")]),
		(["watched"], "Watched", []),
	]
	RE_SORT = _compile(r"\bsort(?:ed|ing)?\b")

	# Checked before WATCHED_PHRASES so "haven't watched it" never reads as watched
	UNWATCHED_PHRASES: List[str] = [
		"mark as unwatched",
		"mark this as unwatched",
		"mark it as unwatched",
		"mark unwatched",
		"haven't watched",
		"havent watched",
		"not watched",
		"didn't watch",
		"didnt watch",
		"did not watch",
		"haven't seen",
		"havent seen",
		"not seen",
		"unwatched",
		"unwatch",
	]

	WATCHED_PHRASES: List[str] = [
		"mark as watched",
		"mark this as watched",
		"mark it as watched",
		"mark has watched",  # "as" misheard as "has"
		"marked has watched",
		"mark it has watched",
		"i watched this",
		"i've watched this",
		"already watched",
		"already seen this",
		"i've seen this",
		"i saw this",
		"seen it",
		"watched it",
		"mark watched",
	]

	def __init__(self, normalizer: Optional[RecommenderNormalizer] = None):
		self.normalizer = normalizer or RecommenderNormalizer()
		self._unwatched = [_phrase(p) for p in self.UNWATCHED_PHRASES]
		self._watched = [_phrase(p) for p in self.WATCHED_PHRASES]

	def parse(self, text: Union[str, Utterance]) -> Command:
		"""Main entry: resolve an utterance to a Command. Total and deterministic."""
		utterance = Utterance.of(text)
		collapsed = " ".join(utterance.text.split())  # trim and collapse whitespace
		logger.debug(f"[Parser] Input: '{utterance.text}' -> normalized: '{collapsed}'")
		if not collapsed:
			return Unknown(raw=utterance)

		# 1) Recommender phrasing
		for pattern, rec_idx, movie_idx in self.RECOMMENDER_PATTERNS:
			m = pattern.match(collapsed)
			if not m:
				continue
			raw_recommender = self._clean(m.group(rec_idx))
			movie = self._clean_title(self.RE_LEADING_MOVIE.sub("", self._clean(m.group(movie_idx))))
			if self._is_recommender(raw_recommender) and movie:
				recommender = self.normalizer.normalize(raw_recommender)
				logger.debug(f"[Parser] Recommender rule matched: recommender='{recommender}' movie='{movie}'")
				return RecommenderSearch(recommender=recommender, movie=movie, raw=utterance)
			logger.debug(f"[Parser] Recommender rule skipped, subject '{raw_recommender}' is not a recommender")
			break

		# 2) Explicit search verbs
		for pattern in self.SEARCH_PATTERNS:
			m = pattern.match(collapsed)
			if m:
				return self._movie_search(m.group(1), utterance, "search verb")

		# 3) "recommend the movie X" without a recommender
		m = self.RECOMMEND_MOVIE_PATTERN.match(collapsed)
		if m:
			return self._movie_search(m.group(1), utterance, "recommend movie")

		# 4) "the movie X"
		for pattern in self.MOVIE_PREFIX_PATTERNS:
			m = pattern.match(collapsed)
			if m:
				return self._movie_search(m.group(1), utterance, "movie prefix")

		# 5) "add X to my watchlist"
		m = self.ADD_PATTERN.search(collapsed)
		if m:
			return self._movie_search(m.group(1), utterance, "add")

		logger.debug("[Parser] No rule matched -> Unknown")
		return Unknown(raw=utterance)

	def parse_action(self, text: Union[str, Utterance]) -> Optional[ActionRequest]:
		"""
		Recognize non-search commands, checked in this order: create a list, add the movie in context
		to a list, sort the list on screen, mark unwatched, mark watched. None if not an action.
		"""
		utterance = Utterance.of(text)
		collapsed = " ".join(utterance.text.replace("’", "'").split())
		lower = collapsed.lower()

		for phrase in self.CREATE_LIST_PHRASES:
			idx = lower.find(phrase)
			if idx < 0:
				continue
			name = collapsed[idx + len(phrase):].strip().strip(".,!?").strip()
			if name:
				logger.debug(f"[Parser] Create list action: '{name}'")
				return CreateWatchlist(list_name=name, raw=utterance)

		for phrase in self.ADD_TO_LIST_PHRASES:
			m = _phrase(phrase).search(lower)
			if not m:
				continue
			name = re.split(r"[.,!?;]", collapsed[m.end():], maxsplit=1)[0].strip()
			name = self.RE_LIST_SUFFIX.sub("", name).strip()
			if name.lower() in self.GENERIC_LIST_NAMES:
				name = self.DEFAULT_LIST_NAME
			logger.debug(f"[Parser] Add to list action: '{name}'")
			return AddToList(list_name=name, raw=utterance)

		if self.RE_SORT.search(lower):
			sort_by = self._sort_by(lower)
			if sort_by:
				logger.debug(f"[Parser] Sort action: '{sort_by}'")
				return SortList(sort_by=sort_by, raw=utterance)

		if any(p.search(lower) for p in self._unwatched):
			logger.debug("[Parser] Mark unwatched action")
			return MarkWatched(watched=False, raw=utterance)
		if any(p.search(lower) for p in self._watched):
			logger.debug("[Parser] Mark watched action")
			return MarkWatched(watched=True, raw=utterance)
		return None

	def _sort_by(self, lower: str) -> Optional[str]:
		def said(words: List[str]) -> bool:
			return any(_phrase(w).search(lower) for w in words)

		for triggers, key, directions in self.SORT_KEYS:
			if not said(triggers):
				continue
			if key == "Tasty Score" and said(["ai"]):
				key = "AI Score"  # "sort by AI rating"
			for words, direction in directions:
				if said(words):
					return f"{key} {direction}"
			return key
		return None

	def _movie_search(self, captured: str, utterance: Utterance, rule: str) -> Command:
		title = self._clean_title(self._clean(captured))
		if not title or title.lower() in self.CONTEXT_TITLES:
			logger.debug(f"[Parser] Rule '{rule}' captured no usable title -> Unknown")
			return Unknown(raw=utterance)
		logger.debug(f"[Parser] Rule '{rule}' matched: query='{title}'")
		return MovieSearch(query=title, raw=utterance)

	def _clean_title(self, value: str) -> str:
		return self._clean(self.RE_WATCHLIST_SUFFIX.sub("", value))

	def _is_recommender(self, value: str) -> bool:
		lowered = value.lower()
		if not lowered or lowered in self.NON_RECOMMENDERS:
			return False
		return not lowered.endswith(" to")  # "trying to", "want to"

	@staticmethod
	def _clean(value: str) -> str:
		# drop sentence punctuation the recognizer appends; keep "!" and anything embedded
		return value.strip().rstrip(".,?").strip()
