"""
Speech capture state machine.
Drives the permission -> listening -> processing -> idle lifecycle over a duck-typed speech
platform. Engine callbacks may arrive on foreign threads; they are posted into an asyncio
queue and consumed serially, tagged with a session id so anything late is discarded.

Platform interfaces:
- permissions: request_speech_recognition(), request_microphone() -> bool (sync or async)
- audio_input: start(on_samples), stop()
- engine: is_available, begin(session_id, emit) -> request with append(samples), end_audio(), cancel()
"""

import asyncio  # event queue, timers
import inspect  # permission calls may be sync or async
import time  # monotonic clock for the silence watchdog
from typing import Any, Callable, Optional

from loguru import logger  # console logging

from .analytics import fire_and_forget
from .config import SpeechTimings
from .errors import EngineFailure, PermissionDenied
from .models import RecognitionEvent, SpeechPhase, SpeechSessionState, Utterance


async def _resolve(value: Any) -> Any:
	if inspect.isawaitable(value):
		return await value
	return value


class SpeechCaptureMachine:
	"""
	Single-writer state machine for one capture session at a time.
	``state`` is only ever changed by this class; UI code observes it through ``on_state``.
	"""

	def __init__(
		self,
		permissions: Any,
		audio_input: Any,
		engine: Any,
		timings: Optional[SpeechTimings] = None,
		on_partial: Optional[Callable[[str], None]] = None,
		on_final: Optional[Callable[[Utterance], None]] = None,
		on_state: Optional[Callable[[SpeechSessionState], None]] = None,
		clock: Callable[[], float] = time.monotonic,
	):
		self.permissions = permissions
		self.audio_input = audio_input
		self.engine = engine
		self.timings = timings or SpeechTimings()
		self.on_partial = on_partial
		self.on_final = on_final
		self.on_state = on_state
		self.clock = clock

		self.state = SpeechSessionState(SpeechPhase.IDLE)
		self.transcript = ""  # latest partial (or final) text of the live session
		self._session_id = 0  # bumped whenever a session starts or is torn down
		self._permissions_granted = False
		self._loop: Optional[asyncio.AbstractEventLoop] = None
		self._queue: Optional[asyncio.Queue] = None
		self._request: Any = None
		self._audio_running = False
		self._consumer: Optional[asyncio.Task] = None
		self._watchdog: Optional[asyncio.Task] = None
		self._stop_task: Optional[asyncio.Task] = None
		self._final_text: Optional[str] = None
		self._final_event: Optional[asyncio.Event] = None
		self._stopping = False
		self._started_at = 0.0
		self._last_activity = 0.0

	@property
	def phase(self) -> SpeechPhase:
		return self.state.phase

	# ------------------------------------------------------------------
	# Start
	# ------------------------------------------------------------------

	async def start_listening(self) -> None:
		"""Request permissions if needed, open the engine request and start audio. No-op while active."""
		if self.phase in (SpeechPhase.LISTENING, SpeechPhase.REQUESTING_PERMISSION):
			logger.debug(f"[Speech] start ignored, already {self.phase.value}")
			return
		if self.phase == SpeechPhase.PROCESSING and self._stop_task is not None:
			logger.debug("[Speech] start waiting for pending stop")
			await asyncio.shield(self._stop_task)
			if self.phase in (SpeechPhase.LISTENING, SpeechPhase.REQUESTING_PERMISSION):
				return

		self._session_id += 1
		token = self._session_id
		self._loop = asyncio.get_running_loop()
		self._set_state(SpeechSessionState(SpeechPhase.REQUESTING_PERMISSION))

		if not self._permissions_granted:
			try:
				speech_ok = bool(await _resolve(self.permissions.request_speech_recognition()))
				mic_ok = speech_ok and bool(await _resolve(self.permissions.request_microphone()))
			except Exception as e:
				if token == self._session_id:
					self._set_state(SpeechSessionState.error(f"Permission request failed: {e}"))
				raise EngineFailure(f"Permission request failed: {e}") from e
			if token != self._session_id:
				logger.debug("[Speech] start abandoned while requesting permission")
				return
			if not speech_ok:
				self._set_state(SpeechSessionState.error("Speech recognition not authorized"))
				raise PermissionDenied("Speech recognition not authorized")
			if not mic_ok:
				self._set_state(SpeechSessionState.error("Microphone access not authorized"))
				raise PermissionDenied("Microphone access not authorized")
			self._permissions_granted = True

		if not getattr(self.engine, "is_available", False):
			self._set_state(SpeechSessionState.error("Speech recognizer is not available"))
			raise EngineFailure("Speech recognizer is not available")

		self.transcript = ""
		self._final_text = None
		self._final_event = asyncio.Event()
		self._stopping = False
		self._queue = asyncio.Queue()
		try:
			self._request = self.engine.begin(token, self._emit)
			request = self._request
			# the audio callback only appends samples; nothing else runs on that path
			self.audio_input.start(request.append)
			self._audio_running = True
		except Exception as e:
			logger.warning(f"[Speech] Audio/engine start failed: {e!r}")
			self._close_session()
			self._set_state(SpeechSessionState.error(f"Audio engine error: {e}"))
			raise EngineFailure(f"Audio engine error: {e}") from e

		now = self.clock()
		self._started_at = now
		self._last_activity = now
		self._consumer = asyncio.ensure_future(self._consume(token, self._queue))
		if self.timings.silence_timeout_s > 0:
			self._watchdog = asyncio.ensure_future(self._watch_silence(token))
		self._set_state(SpeechSessionState(SpeechPhase.LISTENING))
		logger.info(f"[Speech] Listening (session {token})")

	# ------------------------------------------------------------------
	# Engine events
	# ------------------------------------------------------------------

	def _emit(self, event: RecognitionEvent) -> None:
		"""Engine callback, safe from any thread."""
		loop, queue = self._loop, self._queue
		if loop is None or queue is None or event.session_id != self._session_id:
			return  # stale session
		try:
			loop.call_soon_threadsafe(queue.put_nowait, event)
		except RuntimeError:
			pass  # loop already closed

	async def _consume(self, token: int, queue: asyncio.Queue) -> None:
		while token == self._session_id:
			event = await queue.get()
			if token != self._session_id or event.session_id != token:
				continue
			self._handle(event)

	def _handle(self, event: RecognitionEvent) -> None:
		if event.error is not None:
			if event.is_cancellation or self._stopping:
				logger.debug(f"[Speech] Ignoring cancellation error: {event.error}")
				return
			logger.warning(f"[Speech] Recognition error: {event.error}")
			self._close_session()
			self._set_state(SpeechSessionState.error(event.error))
			return

		if event.text:
			self.transcript = event.text
			self._last_activity = self.clock()
		if event.is_final:
			self._final_text = event.text
			if self._final_event is not None:
				self._final_event.set()
			logger.debug(f"[Speech] Final transcript: '{event.text}'")
		elif event.text:
			self._notify(self.on_partial, event.text)

	def _drain(self, token: int) -> None:
		"""Handle events already queued so nothing that arrived before the stop is lost."""
		queue = self._queue
		while queue is not None and not queue.empty() and token == self._session_id:
			event = queue.get_nowait()
			if event.session_id == token:
				self._handle(event)

	# ------------------------------------------------------------------
	# Stop / cancel
	# ------------------------------------------------------------------

	async def stop_listening(self, reason: str = "user") -> Optional[Utterance]:
		"""
		End the session and return the finalized utterance (None if nothing was heard).
		Leaves Listening immediately; concurrent callers share the same in-flight stop.
		"""
		if self.phase == SpeechPhase.REQUESTING_PERMISSION:
			logger.info("[Speech] Stop during permission request, cancelling start")
			self._session_id += 1
			self._set_state(SpeechSessionState(SpeechPhase.IDLE))
			return None
		if self.phase == SpeechPhase.PROCESSING and self._stop_task is not None:
			return await asyncio.shield(self._stop_task)
		if self.phase != SpeechPhase.LISTENING:
			return None

		logger.info(f"[Speech] Stopping (reason={reason})")
		self._stopping = True
		self._set_state(SpeechSessionState(SpeechPhase.PROCESSING))
		self._stop_task = asyncio.ensure_future(self._run_stop(self._session_id))
		return await asyncio.shield(self._stop_task)

	async def _run_stop(self, token: int) -> Optional[Utterance]:
		request = self._request
		if request is not None:
			try:
				request.end_audio()  # flush buffered audio
			except Exception as e:
				logger.warning(f"[Speech] end_audio failed: {e!r}")
		self._stop_audio()

		await asyncio.sleep(0)  # let already-posted engine callbacks land in the queue
		if self._final_text is None and self._final_event is not None and token == self._session_id:
			try:
				await asyncio.wait_for(self._final_event.wait(), timeout=self.timings.final_wait_s)
			except asyncio.TimeoutError:
				logger.debug("[Speech] No final transcript, using latest partial")
		if token != self._session_id:
			return None  # cancelled while waiting
		self._drain(token)

		text = (self._final_text if self._final_text is not None else self.transcript).strip()
		self._close_session()
		utterance = Utterance(text=text) if text else None
		if utterance is not None:
			logger.info(f"[Speech] Final utterance: '{utterance.text}'")
			self._notify(self.on_final, utterance)

		if self.timings.settle_s > 0:
			await asyncio.sleep(self.timings.settle_s)
		if self._stop_task is asyncio.current_task():
			self._stop_task = None
			self._set_state(SpeechSessionState(SpeechPhase.IDLE))
		return utterance

	def cancel(self) -> None:
		"""Tear down without routing any transcript. Synchronous so a vanishing UI can call it."""
		if self.phase == SpeechPhase.IDLE and self._request is None:
			return
		logger.info("[Speech] Cancelled")
		self._close_session()
		self._stop_task = None
		self._set_state(SpeechSessionState(SpeechPhase.IDLE))

	def _close_session(self) -> None:
		self._session_id += 1  # late callbacks for the old session are now stale
		self._stopping = True
		request, self._request = self._request, None
		if request is not None:
			try:
				request.cancel()
			except Exception as e:
				logger.warning(f"[Speech] Request cancel failed: {e!r}")
		self._stop_audio()
		try:
			current = asyncio.current_task()
		except RuntimeError:
			current = None  # called outside the event loop
		for task in (self._consumer, self._watchdog):
			if task is not None and task is not current and not task.done():
				task.cancel()
		self._consumer = None
		self._watchdog = None
		self._queue = None

	def _stop_audio(self) -> None:
		if not self._audio_running:
			return
		self._audio_running = False
		try:
			self.audio_input.stop()
		except Exception as e:
			logger.warning(f"[Speech] Audio stop failed: {e!r}")

	# ------------------------------------------------------------------
	# Silence watchdog
	# ------------------------------------------------------------------

	async def _watch_silence(self, token: int) -> None:
		t = self.timings
		interval = min(0.25, t.silence_timeout_s / 4)
		while token == self._session_id and self.phase == SpeechPhase.LISTENING:
			await asyncio.sleep(interval)
			if token != self._session_id or self.phase != SpeechPhase.LISTENING:
				return
			now = self.clock()
			elapsed = now - self._started_at
			if elapsed < t.grace_period_s or elapsed < t.min_recording_s:
				continue
			if now - self._last_activity >= t.silence_timeout_s:
				logger.info(f"[Speech] Auto-stopping after {t.silence_timeout_s}s of silence")
				fire_and_forget(self.stop_listening("silence_timeout"), "silence auto-stop")
				return

	# ------------------------------------------------------------------

	def _set_state(self, state: SpeechSessionState) -> None:
		if state == self.state:
			return
		logger.debug(f"[Speech] {self.state.phase.value} -> {state.phase.value}")
		self.state = state
		self._notify(self.on_state, state)

	@staticmethod
	def _notify(callback: Optional[Callable[[Any], None]], value: Any) -> None:
		if callback is None:
			return
		try:
			callback(value)
		except Exception:
			logger.exception("[Speech] Listener callback failed")
