"""
Language-model chat client.
One shared, injected client for the chat completions endpoint: credential check, timeout,
status handling and envelope decoding live here so the resolver and discovery stay small.
"""

import time  # latency measurement
from dataclasses import dataclass
from typing import Dict, List, Optional, Type, TypeVar

import httpx  # async HTTP
from pydantic import BaseModel, ValidationError  # envelope and payload schemas

from loguru import logger  # console logging

from .config import PipelineConfig
from .errors import ConfigurationError, DecodingError, TransportError
from .models import TokenUsage

PayloadT = TypeVar("PayloadT", bound=BaseModel)


# Response envelope of the chat completions endpoint
class ChatMessage(BaseModel):
	role: Optional[str] = None
	content: Optional[str] = None


class ChatChoice(BaseModel):
	message: ChatMessage


class ChatUsage(BaseModel):
	prompt_tokens: int = 0
	completion_tokens: int = 0
	total_tokens: int = 0


class ChatEnvelope(BaseModel):
	choices: List[ChatChoice]
	usage: Optional[ChatUsage] = None


@dataclass(frozen=True)
class ChatCompletion:
	content: str  # the model's JSON text, not yet decoded
	usage: TokenUsage
	latency_ms: int


def decode_payload(content: str, schema: Type[PayloadT]) -> PayloadT:
	"""Parse the model's JSON text against a prompt-specific schema."""
	try:
		return schema.model_validate_json(content)
	except ValidationError as e:
		raise DecodingError(f"Model payload does not match {schema.__name__}: {e}") from e


class ChatClient:
	"""
	Thin wrapper over ``POST {base_url}/chat/completions``.
	The httpx.AsyncClient is passed in so one connection pool is shared and tests can
	substitute an httpx.MockTransport.
	"""

	def __init__(self, config: PipelineConfig, http: httpx.AsyncClient):
		self.config = config
		self.http = http

	@property
	def is_configured(self) -> bool:
		return self.config.has_credential

	def require_credential(self) -> None:
		if not self.is_configured:
			raise ConfigurationError("OPENAI_API_KEY is not configured")

	async def complete(
		self,
		messages: List[Dict[str, str]],
		temperature: float,
		max_tokens: Optional[int] = None,
	) -> ChatCompletion:
		"""Single attempt; callers own any retry policy."""
		self.require_credential()

		body = {
			"model": self.config.model,
			"messages": messages,
			"response_format": {"type": "json_object"},
			"temperature": temperature,
		}
		if max_tokens is not None:
			body["max_tokens"] = max_tokens
		headers = {
			"Authorization": f"Bearer {self.config.openai_api_key}",
			"Content-Type": "application/json",
		}
		url = f"{self.config.openai_base_url}/chat/completions"

		start = time.time()
		logger.debug(f"[LLM] POST {url} model={self.config.model} messages={len(messages)}")
		try:
			response = await self.http.post(url, json=body, headers=headers, timeout=self.config.request_timeout_s)
		except httpx.RequestError as e:
			logger.warning(f"[LLM] Request failed: {e!r}")
			raise TransportError(None, repr(e)) from e
		latency_ms = int((time.time() - start) * 1000)

		if not 200 <= response.status_code < 300:
			logger.warning(f"[LLM] HTTP {response.status_code} after {latency_ms} ms")
			raise TransportError(response.status_code, response.text)

		try:
			envelope = ChatEnvelope.model_validate_json(response.content)
		except ValidationError as e:
			raise DecodingError(f"Malformed chat completion envelope: {e}") from e
		if not envelope.choices or not envelope.choices[0].message.content:
			raise DecodingError("Chat completion has no message content")

		usage = envelope.usage or ChatUsage()
		logger.info(
			f"[LLM] Completion in {latency_ms} ms | tokens prompt={usage.prompt_tokens} completion={usage.completion_tokens}"
		)
		return ChatCompletion(
			content=envelope.choices[0].message.content,
			usage=TokenUsage(
				prompt_tokens=usage.prompt_tokens,
				completion_tokens=usage.completion_tokens,
				total_tokens=usage.total_tokens or usage.prompt_tokens + usage.completion_tokens,
			),
			latency_ms=latency_ms,
		)
