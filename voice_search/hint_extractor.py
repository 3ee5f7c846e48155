"""
Hint extraction module.
Pulls secondary descriptive signals (people, year/decade, genres, plot fragments, remake flag,
likely title) out of an utterance to enrich fuzzy AI discovery.
Every sub-extractor runs independently and returns empty rather than failing.
"""

import re  # pattern rules for names, years and decades
import string  # punctuation trimming for tokens
from typing import Dict, List, Optional, Pattern, Set, Tuple, Union

from rapidfuzz import process, fuzz  # fuzzy matching for misheard director names

from loguru import logger  # console logging

from .models import ExtractedHints, Utterance


def _compile(pattern: str) -> Pattern:
	return re.compile(pattern, re.IGNORECASE)


# Up to three / four tokens per captured name
_NAME3 = r"(\w+(?:\s+\w+){0,2})"
_NAME4 = r"(\w+(?:\s+\w+){0,3})"
_NAME_MULTI = r"(\w+(?:\s+\w+){1,3})"


class HintExtractor:
	"""
	Extracts ExtractedHints from raw utterance text.
	Patterns run on the original text (case-insensitive) so capitalization from the
	recognizer can help tell names apart from ordinary words.
	"""

	# (pattern, strict) - strict captures must look like a name, not just any words
	ACTOR_PATTERNS: List[Tuple[Pattern, bool]] = [
		(_compile(r"\bwith\s+" + _NAME3), True),
		(_compile(r"\bstarring\s+" + _NAME3), False),
		(_compile(r"\bstars\s+" + _NAME3), True),
		(_compile(r"\bhas\s+" + _NAME3 + r"\s+in\s+it\b"), True),
		(_compile(_NAME3 + r"\s+is\s+in\s+it\b"), True),
		(_compile(_NAME3 + r"\s+plays\b"), True),
		(_compile(_NAME3 + r"\s+was\s+in\b"), True),
		(_compile(r"\bactor\s+" + _NAME3), False),
	]

	DIRECTOR_PATTERNS: List[Tuple[Pattern, bool]] = [
		(_compile(r"\bdirected\s+by\s+" + _NAME4), False),
		(_compile(r"\bby\s+director\s+" + _NAME4), False),
		(_compile(_NAME4 + r"\s+directed\b(?!\s+by)"), True),
		(_compile(r"\ba\s+" + _NAME4 + r"\s+(?:film|movie)\b"), True),  # needs a known director token
	]

	AUTHOR_PATTERNS: List[Pattern] = [
		_compile(r"\bby\s+(?:the\s+)?author\s+" + _NAME_MULTI),
		_compile(r"\bthe\s+author\s+" + _NAME_MULTI),
		_compile(r"\bbased\s+on\s+(?:the\s+|a\s+)?books?\s+by\s+(?:the\s+)?(?:author\s+)?" + _NAME_MULTI),
		_compile(r"\bbooks?\s+by\s+(?:the\s+)?(?:author\s+)?" + _NAME_MULTI),
		_compile(r"\bnovels?\s+by\s+(?:the\s+)?(?:author\s+)?" + _NAME_MULTI),
	]
	RE_BOOK_CONTEXT = _compile(r"\b(?:books?|novels?|based\s+on)\b")
	RE_WRITTEN_BY = _compile(r"\bwritten\s+by\s+" + _NAME3)  # screenwriters unless a book is mentioned

	# Words that are never part of a person's name at the edges of a capture
	NAME_STOPWORDS: Set[str] = {
		"a", "an", "the", "and", "or", "of", "in", "on", "at", "to", "for", "from", "by",
		"with", "about", "that", "this", "it", "its", "is", "was", "who", "where", "which",
		"movie", "film", "one", "some", "like", "as", "plays", "played", "starring", "stars",
		"i", "me", "my", "he", "she", "they", "his", "her", "their", "someone", "somebody",
		"guy", "girl", "man", "woman", "person", "kid", "character", "also", "maybe", "think",
	}

	# Actor vocabulary, split so a lone first name ("tom", "will") never counts as an actor
	ACTOR_FIRST_NAMES: Set[str] = {
		"leonardo", "brad", "tom", "denzel", "morgan", "meryl", "jennifer", "natalie",
		"matt", "ben", "george", "scarlett", "julia", "sandra", "keanu", "will", "dwayne",
		"robert", "chris", "adam", "timothee", "florence", "oscar",
	}
	ACTOR_SURNAMES: Set[str] = {
		"dicaprio", "pitt", "cruise", "hanks", "washington", "freeman", "streep", "lawrence",
		"portman", "damon", "affleck", "clooney", "johansson", "roberts", "bullock", "reeves",
		"smith", "johnson", "downey", "hemsworth", "pratt", "evans", "driver", "chalamet",
		"zendaya", "pugh", "isaac",
	}
	# Surnames that are also everyday words; only trusted after a known first name
	COMMON_WORD_SURNAMES: Set[str] = {
		"cruise", "washington", "freeman", "lawrence", "roberts", "smith", "johnson",
		"evans", "driver", "isaac", "damon",
	}
	SOLO_FIRST_NAMES: Set[str] = {"keanu", "denzel", "meryl", "timothee"}
	MULTIWORD_ACTORS: Dict[str, str] = {
		"oscar isaac": "Oscar Isaac",
		"the rock": "The Rock",
	}

	# Director vocabulary -> display name; multi-word entries are checked first
	KNOWN_DIRECTORS: Dict[str, str] = {
		"guillermo del toro": "Guillermo Del Toro",
		"del toro": "Guillermo Del Toro",
		"paul thomas anderson": "Paul Thomas Anderson",
		"wes anderson": "Wes Anderson",
		"ridley scott": "Ridley Scott",
		"george lucas": "George Lucas",
		"peter jackson": "Peter Jackson",
		"michael bay": "Michael Bay",
		"zack snyder": "Zack Snyder",
		"james wan": "James Wan",
		"james gunn": "James Gunn",
		"james cameron": "James Cameron",
		"coen brothers": "Coen Brothers",
		"the coens": "Coen Brothers",
		"spielberg": "Steven Spielberg",
		"scorsese": "Martin Scorsese",
		"tarantino": "Quentin Tarantino",
		"kubrick": "Stanley Kubrick",
		"hitchcock": "Alfred Hitchcock",
		"nolan": "Christopher Nolan",
		"fincher": "David Fincher",
		"coppola": "Francis Ford Coppola",
		"villeneuve": "Denis Villeneuve",
		"zemeckis": "Robert Zemeckis",
		"peele": "Jordan Peele",
		"gerwig": "Greta Gerwig",
		"coogler": "Ryan Coogler",
		"waititi": "Taika Waititi",
		"mangold": "James Mangold",
	}

	GENRE_KEYWORDS: Dict[str, List[str]] = {
		"horror": ["scary", "horror", "terrifying", "haunted", "possessed", "demon", "ghost", "zombie", "vampire", "slasher"],
		"comedy": ["funny", "comedy", "hilarious", "laughing", "comedic", "humor"],
		"action": ["action", "explosions", "chase", "fight", "battles", "stunts"],
		"drama": ["drama", "emotional", "moving", "touching", "serious"],
		"romance": ["romance", "romantic", "love story", "love", "relationship"],
		"sci-fi": ["sci-fi", "science fiction", "space", "alien", "futuristic", "robot", "spaceship"],
		"thriller": ["thriller", "suspense", "tense", "edge of seat", "twist"],
		"mystery": ["mystery", "detective", "whodunit", "clues", "investigation"],
	}

	REMAKE_INDICATORS: List[str] = [
		"remake", "reboot", "new version", "modern version", "not the original",
		"the new one", "recent one", "the newer", "updated version",
	]

	PLOT_ACTION_WORDS: Set[str] = {
		"escapes", "discovers", "finds", "travels", "fights", "falls",
		"meets", "saves", "kills", "dies", "transforms", "becomes",
		"hunts", "chases", "investigates", "solves", "steals", "robs",
		"kidnaps", "rescues", "betrays", "reveals", "hides", "runs",
	}

	TITLE_PATTERNS: List[Pattern] = [
		_compile(r"\bthe\s+movie\s+(.+)$"),
		_compile(r"\bfind\s+(.+)$"),
		_compile(r"\bsearch\s+for\s+(.+)$"),
		_compile(r"\bsearch\s+(.+)$"),
		_compile(r"\blook\s+up\s+(.+)$"),
	]

	RE_YEAR = re.compile(r"\b(19\d{2}|20[0-2]\d|2030)\b")
	# plural decade markers only: 80s, '80s, 80's, 1980s, 2000s
	RE_DECADE = re.compile(r"(?<!\w)'?(19|20)?(\d)0'?s\b", re.IGNORECASE)
	RE_DECADE_WORD = _compile(r"\b(fifties|sixties|seventies|eighties|nineties|twenty\s+tens)\b")
	DECADE_WORDS: Dict[str, int] = {
		"fifties": 1950, "sixties": 1960, "seventies": 1970, "eighties": 1980,
		"nineties": 1990, "twenty tens": 2010,
	}

	def __init__(self, director_fuzzy_cutoff: float = 88.0):
		self.director_fuzzy_cutoff = director_fuzzy_cutoff
		self._director_phrases = sorted(
			[k for k in self.KNOWN_DIRECTORS if " " in k], key=len, reverse=True
		)
		self._director_tokens = [k for k in self.KNOWN_DIRECTORS if " " not in k]
		self._director_vocab: Set[str] = set()
		for key in self.KNOWN_DIRECTORS:
			self._director_vocab.update(w for w in key.split() if w not in self.NAME_STOPWORDS)
		self._actor_vocab = self.ACTOR_FIRST_NAMES | self.ACTOR_SURNAMES
		self._genre_patterns = [
			(genre, [re.compile(r"(?<!\w)" + re.escape(k)) for k in keywords])
			for genre, keywords in self.GENRE_KEYWORDS.items()
		]
		self._remake_patterns = [re.compile(r"(?<!\w)" + re.escape(p) + r"(?!\w)") for p in self.REMAKE_INDICATORS]

	def extract(self, text: Union[str, Utterance]) -> ExtractedHints:
		"""Main entry: run every sub-extractor on the utterance."""
		original = " ".join(Utterance.of(text).text.replace("’", "'").split())
		lower = original.lower()
		tokens = self._tokens(lower)

		hints = ExtractedHints(
			title_likely=self._extract_likely_title(original),
			year=self._extract_year(lower),
			decade=self._extract_decade(lower),
			actors=tuple(self._extract_actors(original, tokens)),
			director=self._extract_director(original, lower, tokens),
			author=self._extract_author(original),
			keywords=tuple(self._extract_keywords(lower)),
			plot_clues=tuple(self._extract_plot_clues(tokens)),
			is_remake_hint=self._check_remake(lower),
		)
		logger.debug(f"[Hints] '{original}' -> {hints}")
		return hints

	def _extract_year(self, lower: str) -> Optional[int]:
		m = self.RE_YEAR.search(lower)
		return int(m.group(1)) if m else None

	def _extract_decade(self, lower: str) -> Optional[int]:
		candidates: List[Tuple[int, int]] = []  # (position, decade)
		m = self.RE_DECADE.search(lower)
		if m:
			century, digit = m.group(1), int(m.group(2))
			if century:
				base = int(century) * 100
			else:
				base = 1900 if digit >= 3 else 2000  # 30s-90s -> 1900s, 00s-20s -> 2000s
			candidates.append((m.start(), base + digit * 10))
		w = self.RE_DECADE_WORD.search(lower)
		if w:
			candidates.append((w.start(), self.DECADE_WORDS[" ".join(w.group(1).split())]))
		if not candidates:
			return None
		return min(candidates)[1]  # first marker in the utterance wins

	def _extract_actors(self, original: str, tokens: List[str]) -> List[str]:
		actors: List[str] = []

		# 1) Phrase patterns, all occurrences
		for pattern, strict in self.ACTOR_PATTERNS:
			for m in pattern.finditer(original):
				name = self._clean_name(m.group(1), strict, self._actor_vocab)
				if name:
					self._add_unique(actors, name)

		# 2) Known multi-word actors
		lower = original.lower()
		for phrase, display in self.MULTIWORD_ACTORS.items():
			if re.search(r"\b" + re.escape(phrase) + r"\b", lower):
				self._add_unique(actors, display)

		# 3) Vocabulary scan, assembling "first last" from adjacent tokens
		for i, tok in enumerate(tokens):
			name = None
			if tok in self.ACTOR_SURNAMES:
				if i > 0 and tokens[i - 1] in self.ACTOR_FIRST_NAMES:
					name = f"{tokens[i - 1]} {tok}"
				elif tok not in self.COMMON_WORD_SURNAMES:
					name = tok
			elif tok in self.SOLO_FIRST_NAMES and not (i + 1 < len(tokens) and tokens[i + 1] in self.ACTOR_SURNAMES):
				name = tok
			if name:
				self._add_unique(actors, self._title(name.split()))

		if actors:
			logger.debug(f"[Hints] Actors: {actors}")
		return actors

	def _extract_director(self, original: str, lower: str, tokens: List[str]) -> Optional[str]:
		# 1) Phrase patterns, first match wins
		for pattern, strict in self.DIRECTOR_PATTERNS:
			m = pattern.search(original)
			if not m:
				continue
			name = self._clean_name(m.group(1), strict, self._director_vocab)
			if not name:
				continue
			if strict and not any(w in self._director_vocab for w in name.lower().split()):
				continue  # "a scary movie" is not a director
			for phrase in self._director_phrases:
				if re.search(r"\b" + re.escape(phrase) + r"\b", name.lower()):
					return self.KNOWN_DIRECTORS[phrase]
			display = self.KNOWN_DIRECTORS.get(name.lower())
			logger.debug(f"[Hints] Director pattern matched: '{name}'")
			return display if display and " " not in name else name

		# 2) Multi-word vocabulary entries
		for phrase in self._director_phrases:
			if re.search(r"\b" + re.escape(phrase) + r"\b", lower):
				return self.KNOWN_DIRECTORS[phrase]

		# 3) Distinctive single surnames, then a close misspelling of one
		for tok in tokens:
			if tok in self.KNOWN_DIRECTORS:
				return self.KNOWN_DIRECTORS[tok]
		for tok in tokens:
			if len(tok) < 7:
				continue
			match = process.extractOne(tok, self._director_tokens, scorer=fuzz.ratio, score_cutoff=self.director_fuzzy_cutoff)
			if match:
				logger.debug(f"[Hints] Director fuzzy match: '{tok}' -> '{match[0]}' ({match[1]:.1f})")
				return self.KNOWN_DIRECTORS[match[0]]
		return None

	def _extract_author(self, original: str) -> Optional[str]:
		for pattern in self.AUTHOR_PATTERNS:
			m = pattern.search(original)
			if m:
				name = self._clean_name(m.group(1), False, set())
				if name:
					return name

		# "written by" usually means a screenwriter unless a book or novel is mentioned
		if self.RE_BOOK_CONTEXT.search(original):
			m = self.RE_WRITTEN_BY.search(original)
			if m:
				return self._clean_name(m.group(1), False, set())
		return None

	def _extract_keywords(self, lower: str) -> List[str]:
		keywords: List[str] = []
		for genre, patterns in self._genre_patterns:
			if any(p.search(lower) for p in patterns):
				keywords.append(genre)
		return keywords

	def _extract_plot_clues(self, tokens: List[str]) -> List[str]:
		clues: List[str] = []
		for i, tok in enumerate(tokens):
			if tok not in self.PLOT_ACTION_WORDS:
				continue
			clue = " ".join(tokens[max(0, i - 2):min(len(tokens), i + 3)])  # two words either side
			if clue not in clues:
				clues.append(clue)
		return clues

	def _check_remake(self, lower: str) -> bool:
		return any(p.search(lower) for p in self._remake_patterns)

	def _extract_likely_title(self, original: str) -> Optional[str]:
		if not original:
			return None
		if len(original.split()) <= 4:
			return original  # short utterances are usually just the title
		for pattern in self.TITLE_PATTERNS:
			m = pattern.search(original)
			if m:
				title = m.group(1).strip().rstrip(".,?").strip()
				if title and len(title.split()) <= 6:
					return title
		return None

	def _clean_name(self, captured: str, strict: bool, vocab: Set[str]) -> Optional[str]:
		"""
		Trim function words (and, when strict, anything not name-like) from the front of a capture,
		stop at the first function word or number after the name starts ("Nolan about dreams",
		"Nolan in 2010"), then title-case each word. Returns None when nothing name-like remains.
		"""
		words = captured.split()

		def drop(word: str) -> bool:
			low = word.lower()
			if low in self.NAME_STOPWORDS:
				return True
			return strict and not (word[:1].isupper() or low in vocab)

		while words and drop(words[0]):
			words.pop(0)
		for i, word in enumerate(words):
			if word.lower() in self.NAME_STOPWORDS or any(c.isdigit() for c in word):
				words = words[:i]
				break
		while words and drop(words[-1]):
			words.pop()
		if not words:
			return None
		name = self._title(words)
		return name if len(name) > 2 else None

	@staticmethod
	def _add_unique(names: List[str], name: str) -> None:
		"""Case-insensitive dedupe; a longer name replaces a shorter one it contains."""
		low = name.lower()
		for i, existing in enumerate(names):
			ex = existing.lower()
			if low == ex or re.search(r"\b" + re.escape(low) + r"\b", ex):
				return
			if re.search(r"\b" + re.escape(ex) + r"\b", low):
				names[i] = name
				return
		names.append(name)

	@staticmethod
	def _title(words: List[str]) -> str:
		return " ".join(w[:1].upper() + w[1:].lower() for w in words)

	@staticmethod
	def _tokens(lower: str) -> List[str]:
		tokens = [t.strip(string.punctuation) for t in lower.split()]
		return [t for t in tokens if t]
