"""
Error taxonomy for the voice search pipeline.
Each failure class is a distinct type so callers can tell them apart.
"""

from typing import Optional


class VoiceSearchError(Exception):
	"""Base class for every pipeline failure."""


class PermissionDenied(VoiceSearchError):
	"""Microphone or speech-recognition permission was refused."""


class EngineFailure(VoiceSearchError):
	"""Speech engine unavailable, audio device failed, or a genuine recognition error."""


class ConfigurationError(VoiceSearchError):
	"""A required credential or setting is missing; raised before any network call."""


class TransportError(VoiceSearchError):
	"""
	Non-2xx response from a remote endpoint, or a connection failure / timeout.
	``status_code`` is None when no HTTP response was received at all.
	"""

	def __init__(self, status_code: Optional[int], body: str = ""):
		self.status_code = status_code
		self.body = body
		if status_code is None:
			message = f"Request failed without a response: {body}"
		else:
			message = f"HTTP {status_code}: {body[:500]}"  # keep messages readable
		super().__init__(message)


class DecodingError(VoiceSearchError):
	"""Malformed JSON at the envelope level or the model-payload level."""


class RateLimited(VoiceSearchError):
	"""The budget guard denied an AI request."""

	def __init__(self, reason: str):
		self.reason = reason
		super().__init__(reason)
