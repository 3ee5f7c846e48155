"""
Recommender name normalization.
Speech recognition regularly mishears the names of the people whose picks we track
("Keo" comes back as "ceo" or "kayo"). This module maps those variants back to the
canonical name and otherwise just tidies the capitalization.
"""

import re  # word-bounded variant lookup
from typing import Dict, List, Optional, Tuple

from rapidfuzz import process, fuzz  # fuzzy matching for unseen mishearings

from loguru import logger  # console logging


class RecommenderNormalizer:
	"""
	Resolves a spoken recommender name to its canonical form.
	Lookup order: whole-word match against a variant table, then a fuzzy match
	against the same table, then capitalization of the raw name.
	"""

	# Canonical name -> lowercase variants produced by speech recognition
	KNOWN_RECOMMENDERS: Dict[str, List[str]] = {
		"Keo": [
			"keo", "kio", "geo", "ceo", "theo", "leo", "keyo", "kyro",
			"cairo", "keyhole", "kayo", "ko", "key oh",
		],
		"Kailan": [
			"kailan", "kaylan", "kailyn", "cailin", "caitlin", "kalen", "kaylen",
			"kylan", "kaylon", "kai lan", "island", "highland", "kyle and", "kyle in",
		],
		"Hayat": [
			"hayat", "hyatt", "high at", "hi at", "ayat", "hey yacht", "hi yacht",
		],
	}

	def __init__(self, known_recommenders: Optional[Dict[str, List[str]]] = None, fuzzy_cutoff: float = 90.0):
		table = known_recommenders if known_recommenders is not None else self.KNOWN_RECOMMENDERS
		self.fuzzy_cutoff = fuzzy_cutoff

		# Flatten to (variant, canonical); longer variants first so "kyle and" wins over shorter ones
		pairs: List[Tuple[str, str]] = []
		for canonical, variants in table.items():
			pairs.append((canonical.lower(), canonical))
			for v in variants:
				pairs.append((v.lower(), canonical))
		pairs.sort(key=lambda p: len(p[0]), reverse=True)

		self._variant_to_canonical: Dict[str, str] = {}
		for variant, canonical in pairs:
			self._variant_to_canonical.setdefault(variant, canonical)
		self._patterns = [
			(re.compile(r"\b" + re.escape(variant) + r"\b"), canonical)
			for variant, canonical in self._variant_to_canonical.items()
		]
		self._variant_list = list(self._variant_to_canonical.keys())

	def normalize(self, name: str) -> str:
		"""Return the canonical recommender name for a raw spoken name."""
		cleaned = " ".join(name.split())
		if not cleaned:
			return cleaned
		lowered = cleaned.lower()

		# 1) Known variant appearing as a whole word or phrase
		for pattern, canonical in self._patterns:
			if pattern.search(lowered):
				logger.debug(f"[Normalizer] '{cleaned}' -> '{canonical}' (variant)")
				return canonical

		# 2) Close misspelling of a known variant
		match = process.extractOne(lowered, self._variant_list, scorer=fuzz.ratio, score_cutoff=self.fuzzy_cutoff)
		if match:
			canonical = self._variant_to_canonical[match[0]]
			logger.debug(f"[Normalizer] '{cleaned}' -> '{canonical}' (fuzzy {match[1]:.1f})")
			return canonical

		# 3) Unknown recommender: keep deliberate casing, otherwise capitalize each word
		if cleaned != lowered:
			return cleaned
		return " ".join(word[:1].upper() + word[1:] for word in cleaned.split(" "))
