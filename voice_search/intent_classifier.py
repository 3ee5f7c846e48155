"""
Search intent classification.
Tags an utterance as direct, fuzzy, action-only or import, with a reproducible confidence score.
Pure lexicon and counting heuristics; no external calls.
"""

import re  # word-bounded lexicon matching
import string  # punctuation trimming for tokens
from typing import List, Optional, Pattern, Set, Tuple, Union

from loguru import logger  # console logging

from .config import ClassifierThresholds  # tunable cutoffs
from .models import IntentClassification, SearchIntent, Utterance


def _compile_phrases(phrases: List[str]) -> List[Tuple[str, Pattern]]:
	return [(p, re.compile(r"(?<!\w)" + re.escape(p) + r"(?!\w)")) for p in phrases]


class IntentClassifier:
	"""
	Priority order, first match wins:
	1) action lexicon -> action_only
	2) import lexicon -> import
	3) fuzzy lexicon -> fuzzy
	4) plot-descriptor density -> fuzzy
	5) long utterance without a title-like cue -> fuzzy
	6) direct
	"""

	# Phrases a user says when describing a movie they can't name
	FUZZY_PHRASES: List[str] = [
		"can't remember", "cant remember", "don't remember", "dont remember",
		"forgot the name", "forget the name",
		"what's that movie", "whats that movie", "what is that movie",
		"the one where", "the one with",
		"the movie where", "the movie with", "the film where", "the film with",
		"it's about", "its about", "something about", "a movie about", "a film about",
		"i think it's called", "i think its called", "might be called",
		"do you know the movie", "help me find", "trying to find", "looking for a movie",
	]

	# Plot vocabulary; a high share of these means the user is describing, not naming
	PLOT_DESCRIPTOR_WORDS: Set[str] = {
		"stranded", "trapped", "discovers", "finds", "escapes", "fights",
		"falls", "meets", "travels", "journey", "quest", "searches",
		"haunted", "possessed", "cursed", "infected", "transforms",
		"betrayed", "revenge", "kidnapped", "lost", "hidden", "secret",
		"alien", "monster", "killer", "ghost", "zombie", "vampire",
		"robot", "spaceship", "island", "jungle", "desert", "ocean",
		"war", "heist", "robbery", "murder", "mystery", "conspiracy",
	}

	ACTION_PHRASES: List[str] = [
		"mark as watched", "mark watched", "mark as unwatched", "mark unwatched",
		"mark this as watched", "mark it as watched", "mark this as unwatched", "mark it as unwatched",
		"mark has watched", "mark it has watched",
		"i watched", "i've watched", "ive watched", "already watched",
		"haven't watched", "havent watched", "haven't seen", "havent seen",
		"add to", "add this to", "add this movie to", "put this in", "put this movie in",
		"remove from",
		"create list", "create a list", "create a new list", "create a new watchlist",
		"new list", "new watchlist", "make a list", "make a new list",
		"sort by", "sort this",
	]

	IMPORT_PHRASES: List[str] = [
		"paste", "pasted", "pasting",
		"import", "imported", "importing",
		"from chatgpt", "from gpt",
		"copied", "clipboard",
	]

	DIRECT_SEARCH_PHRASES: List[str] = [
		"find", "search for", "search", "look up", "the movie", "the film", "show me",
	]

	RE_YEAR = re.compile(r"\b(?:19|20)\d{2}\b")  # a year suggests a specific movie

	def __init__(self, thresholds: Optional[ClassifierThresholds] = None):
		self.thresholds = thresholds or ClassifierThresholds()
		self._fuzzy = _compile_phrases(self.FUZZY_PHRASES)
		self._action = _compile_phrases(self.ACTION_PHRASES)
		self._import = _compile_phrases(self.IMPORT_PHRASES)
		self._direct = _compile_phrases(self.DIRECT_SEARCH_PHRASES)

	def classify(self, text: Union[str, Utterance]) -> IntentClassification:
		"""Main entry: classify an utterance and attach the evidence behind the decision."""
		lower = self._normalize(Utterance.of(text).text)
		tokens = self._tokens(lower)

		action_hits = self._matches(self._action, lower)
		if action_hits:
			return self._result(SearchIntent.ACTION_ONLY, lower, tokens, [f"action:{p}" for p in action_hits])

		import_hits = self._matches(self._import, lower)
		if import_hits:
			return self._result(SearchIntent.IMPORT, lower, tokens, [f"import:{p}" for p in import_hits])

		fuzzy_hits = self._matches(self._fuzzy, lower)
		if fuzzy_hits:
			return self._result(SearchIntent.FUZZY, lower, tokens, [f"fuzzy:{p}" for p in fuzzy_hits])

		word_count = len(tokens)
		plot_words = self._plot_words(tokens)
		if word_count > self.thresholds.plot_min_words and len(plot_words) / word_count > self.thresholds.plot_density:
			evidence = [f"plot_density:{len(plot_words)}/{word_count}"] + [f"plot:{w}" for w in plot_words]
			return self._result(SearchIntent.FUZZY, lower, tokens, evidence)

		if word_count > self.thresholds.long_utterance_words and not self.has_title_pattern(lower):
			return self._result(SearchIntent.FUZZY, lower, tokens, [f"long_utterance:{word_count}"])

		return self._result(SearchIntent.DIRECT, lower, tokens, [f"words:{word_count}"])

	def estimate_confidence(self, text: Union[str, Utterance], intent: SearchIntent) -> float:
		"""Confidence for a given category; stronger evidence scores higher, never random."""
		lower = self._normalize(Utterance.of(text).text)
		return self._confidence(intent, lower, self._tokens(lower))

	def has_title_pattern(self, lower: str) -> bool:
		"""True when the utterance looks like it names a specific movie."""
		if len(self._tokens(lower)) <= self.thresholds.short_title_words:
			return True
		if self._matches(self._direct, lower):
			return True
		if self.RE_YEAR.search(lower):
			return True
		if " with " in lower:
			return True
		return " recommends " in lower or " recommended by " in lower

	def _result(self, intent: SearchIntent, lower: str, tokens: List[str], evidence: List[str]) -> IntentClassification:
		confidence = self._confidence(intent, lower, tokens)
		logger.debug(f"[Classifier] '{lower}' -> {intent.value} ({confidence:.2f}) evidence={evidence}")
		return IntentClassification(intent=intent, confidence=confidence, evidence=tuple(evidence))

	def _confidence(self, intent: SearchIntent, lower: str, tokens: List[str]) -> float:
		word_count = len(tokens)

		if intent == SearchIntent.ACTION_ONLY:
			return 0.95 if self._matches(self._action, lower) else 0.70

		if intent == SearchIntent.IMPORT:
			return 0.90 if self._matches(self._import, lower) else 0.70

		if intent == SearchIntent.FUZZY:
			indicators = len(self._matches(self._fuzzy, lower))
			plot_count = len(self._plot_words(tokens))
			if indicators >= 2:
				return 0.90
			if indicators == 1 and plot_count >= 2:
				return 0.85
			if indicators == 1:
				return 0.75
			if plot_count >= 3:
				return 0.70
			if word_count > self.thresholds.long_utterance_words:
				return 0.60  # long but no clear indicators
			return 0.50

		# direct: the more title-like, the more confident
		if word_count <= 3:
			return 0.90
		if word_count <= self.thresholds.short_title_words:
			return 0.85
		if self.has_title_pattern(lower):
			return 0.80
		return 0.65

	def _plot_words(self, tokens: List[str]) -> List[str]:
		return [t for t in tokens if t in self.PLOT_DESCRIPTOR_WORDS]

	@staticmethod
	def _matches(phrases: List[Tuple[str, Pattern]], lower: str) -> List[str]:
		return [phrase for phrase, pattern in phrases if pattern.search(lower)]

	@staticmethod
	def _normalize(text: str) -> str:
		return " ".join(text.replace("’", "'").lower().split())

	@staticmethod
	def _tokens(lower: str) -> List[str]:
		tokens = [t.strip(string.punctuation) for t in lower.split()]
		return [t for t in tokens if t]
