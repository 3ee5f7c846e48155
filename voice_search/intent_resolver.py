"""
LLM intent resolver.
Fallback for utterances the deterministic parser could not resolve: asks the chat model for
{intent, movie_title, recommender} and maps the answer back onto a Command.
"""

from typing import Optional, Union

from pydantic import BaseModel  # payload schema

from loguru import logger  # console logging

from .config import PipelineConfig
from .llm_client import ChatClient, decode_payload
from .models import Command, MovieSearch, RecommenderSearch, Unknown, Utterance
from .recommender_normalizer import RecommenderNormalizer

SYSTEM_PROMPT = """You are an intent classifier for a movie recommendation app.

Your job is to analyze user voice utterances and extract:
1. The movie title (if mentioned)
2. The recommender name/publication (if mentioned)
3. The intent type

Respond with ONLY a single JSON object, no prose, using this exact format:
{
  "intent": "recommender_search" | "movie_search" | "unknown",
  "movie_title": "<movie title or null>",
  "recommender": "<name of person or publication or null>"
}

Intent rules:
- "recommender_search": User mentions both a recommender AND a movie (e.g., "Sabrina recommends Baby Girl", "The Wall Street Journal recommends Baby Girl")
- "movie_search": User mentions only a movie title (e.g., "The Devil Wears Prada", "the movie The Devil Wears Prada")
- "unknown": Cannot determine intent or movie title

Examples:
- "Sabrina recommends Baby Girl" -> {"intent": "recommender_search", "movie_title": "Baby Girl", "recommender": "Sabrina"}
- "The Wall Street Journal recommends Baby Girl" -> {"intent": "recommender_search", "movie_title": "Baby Girl", "recommender": "The Wall Street Journal"}
- "The Devil Wears Prada" -> {"intent": "movie_search", "movie_title": "The Devil Wears Prada", "recommender": null}
- "the movie The Devil Wears Prada" -> {"intent": "movie_search", "movie_title": "The Devil Wears Prada", "recommender": null}"""


class IntentPayload(BaseModel):
	# all three keys must be present; values may be null
	intent: Optional[str]
	movie_title: Optional[str]
	recommender: Optional[str]


def _clean(value: Optional[str]) -> Optional[str]:
	if value is None:
		return None
	cleaned = " ".join(value.split())
	return cleaned or None


class LLMIntentResolver:
	"""Single-attempt resolver; ConfigurationError, TransportError and DecodingError propagate."""

	def __init__(self, client: ChatClient, config: PipelineConfig, normalizer: Optional[RecommenderNormalizer] = None):
		self.client = client
		self.config = config
		self.normalizer = normalizer or RecommenderNormalizer()

	async def resolve(self, text: Union[str, Utterance]) -> Command:
		utterance = Utterance.of(text)
		logger.info(f"[Resolver] Resolving '{utterance.text}' with the language model")

		completion = await self.client.complete(
			messages=[
				{"role": "system", "content": SYSTEM_PROMPT},
				{"role": "user", "content": f'User utterance: "{utterance.text}"'},
			],
			temperature=self.config.resolver_temperature,
		)
		payload = decode_payload(completion.content, IntentPayload)
		command = self.to_command(payload, utterance)
		logger.info(f"[Resolver] intent={payload.intent} -> {command.kind}")
		return command

	def to_command(self, payload: IntentPayload, utterance: Utterance) -> Command:
		intent = (payload.intent or "").strip().lower()
		title = _clean(payload.movie_title)
		recommender = _clean(payload.recommender)

		if intent == "recommender_search" and title and recommender:
			return RecommenderSearch(recommender=self.normalizer.normalize(recommender), movie=title, raw=utterance)
		if intent in ("recommender_search", "movie_search") and title:
			return MovieSearch(query=title, raw=utterance)
		return Unknown(raw=utterance)
