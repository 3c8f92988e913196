"""Playback state machine driving a speech-output port segment by segment.

States: IDLE → SPEAKING ⇄ PAUSED → STOPPED, plus FAILED when a segment cannot
be voiced even with the fallback config. Every transition emits exactly one
PlaybackEvent to subscribers.

The controller never blocks. It issues an utterance to the port and waits for
the port to report back through `utterance_finished()`, `voice_unavailable()`
or `interrupted()`. Each utterance carries a generation token; signals bearing
any other token are stale and dropped.
"""

import abc
import logging
import threading
from dataclasses import dataclass
from typing import Callable

from storycast.errors import InvalidScript, OUT_OF_RANGE_SKIP, STALE_COMPLETION
from storycast.models import (
    EventKind,
    PlaybackEvent,
    PlaybackState,
    Segment,
    State,
    VoiceConfig,
    VoiceProfile,
)

logger = logging.getLogger(__name__)

Listener = Callable[[PlaybackEvent], None]


class SpeechPort(abc.ABC):
    """Text-to-speech capability consumed by the controller.

    Implementations must report the outcome of `speak()` asynchronously, after
    `speak()` has returned, by calling back into the connected controller.
    """

    controller: "PlaybackController | None" = None

    def connect(self, controller: "PlaybackController | None") -> None:
        self.controller = controller

    @abc.abstractmethod
    def list_voices(self) -> list[VoiceProfile]:
        ...

    @abc.abstractmethod
    def speak(self, text: str, config: VoiceConfig, token: int) -> None:
        """Begin synthesizing `text`; the outcome is signalled later under `token`."""

    @abc.abstractmethod
    def cancel(self, token: int) -> None:
        """Abandon the utterance issued under `token`, if still in flight."""


@dataclass(frozen=True)
class CommandResult:
    accepted: bool
    reason: str | None = None

    def __bool__(self):
        return self.accepted


ACCEPTED = CommandResult(True)


class PlaybackController:
    """One playback session over a segment sequence.

    Owns its PlaybackState; construct one controller per story. Use as a
    context manager to guarantee the port is released.
    """

    def __init__(self, port: SpeechPort, narrator: VoiceConfig, fallback: VoiceConfig):
        self.port = port
        self.narrator = narrator
        self.fallback = fallback
        self._listeners: list[Listener] = []
        self._lock = threading.RLock()
        self._segments: list[Segment] = []
        self._voices: dict[str, VoiceConfig] = {}
        self._state = State.IDLE
        self._index: int | None = None
        self._progress = 0.0
        self._generation = 0
        self._in_flight: int | None = None
        self._using_fallback = False
        port.connect(self)

    # --- context management ---

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def close(self) -> None:
        """Stop any active playback and detach from the port."""
        with self._lock:
            if self._state in (State.SPEAKING, State.PAUSED):
                self.stop()
            if self.port.controller is self:
                self.port.connect(None)
            self._listeners.clear()

    # --- observation ---

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register for playback events. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    @property
    def state(self) -> PlaybackState:
        return PlaybackState(state=self._state, index=self._index, progress=self._progress)

    @property
    def segments(self) -> list[Segment]:
        return list(self._segments)

    @property
    def generation(self) -> int:
        """Token of the most recently issued utterance."""
        return self._generation

    def _emit(self, kind: EventKind, reason: str | None = None) -> None:
        event = PlaybackEvent(kind=kind, state=self._state, index=self._index, reason=reason)
        logger.debug("Event %s state=%s index=%s", kind.value, self._state.value, self._index)
        for listener in list(self._listeners):
            listener(event)

    # --- commands ---

    def play(self, segments: list[Segment], voices: dict[str, VoiceConfig]) -> CommandResult:
        """Start speaking from the first segment."""
        with self._lock:
            if self._state not in (State.IDLE, State.STOPPED):
                return self._reject("busy")
            _check_script(segments, voices)
            self._segments = list(segments)
            self._voices = dict(voices)
            logger.info("Playing %d segments", len(self._segments))
            self._start(0)
            return ACCEPTED

    def pause(self) -> CommandResult:
        with self._lock:
            if self._state is not State.SPEAKING:
                return self._reject("not_speaking")
            self._cancel_in_flight()
            self._state = State.PAUSED
            self._emit(EventKind.PAUSED)
            return ACCEPTED

    def resume(self) -> CommandResult:
        """Restart the paused segment from its beginning."""
        with self._lock:
            if self._state is not State.PAUSED:
                return self._reject("not_paused")
            self._start(self._index, keep_fallback=True)
            return ACCEPTED

    def stop(self) -> CommandResult:
        with self._lock:
            if self._state not in (State.SPEAKING, State.PAUSED):
                return self._reject("not_playing")
            self._cancel_in_flight()
            self._state = State.STOPPED
            self._index = None
            self._progress = 0.0
            self._emit(EventKind.STOPPED)
            return ACCEPTED

    def skip(self, target: int) -> CommandResult:
        with self._lock:
            if self._state not in (State.SPEAKING, State.PAUSED):
                return self._reject("not_playing")
            if not 0 <= target < len(self._segments):
                return self._reject(OUT_OF_RANGE_SKIP)
            self._cancel_in_flight()
            self._start(target)
            return ACCEPTED

    def reset(self) -> CommandResult:
        """Return a stopped controller to IDLE."""
        with self._lock:
            if self._state is not State.STOPPED:
                return self._reject("not_stopped")
            self._segments = []
            self._voices = {}
            self._state = State.IDLE
            self._emit(EventKind.RESET)
            return ACCEPTED

    def override_voice(self, character_id: str, config: VoiceConfig) -> CommandResult:
        """Swap one character's voice for the rest of this session.

        If that character is speaking right now, the utterance restarts with
        the new config so no segment is voiced with a half-applied change.
        """
        with self._lock:
            if character_id not in self._voices:
                return self._reject("unknown_character")
            self._voices[character_id] = config
            current = self._current_segment()
            if self._state is State.SPEAKING and current is not None and current.speaker == character_id:
                self._cancel_in_flight()
                self._start(self._index)
            return ACCEPTED

    # --- port signals ---

    def utterance_finished(self, token: int) -> None:
        with self._lock:
            if not self._is_current(token):
                return
            self._in_flight = None
            self._advance()

    def voice_unavailable(self, token: int, reason: str = "") -> None:
        """The port could not realize the requested voice."""
        with self._lock:
            if not self._is_current(token):
                return
            self._in_flight = None
            if not self._using_fallback:
                logger.warning("Voice failed on segment %d, retrying with %s: %s",
                               self._index, self.fallback.voice_id, reason)
                self._using_fallback = True
                token = self._prepare()
                self._emit(EventKind.VOICE_SUBSTITUTED, reason=reason or None)
                self._dispatch(token, self._segments[self._index], self.fallback)
                return

            logger.error("Fallback voice failed on segment %d: %s", self._index, reason)
            self._state = State.FAILED
            self._emit(EventKind.SEGMENT_FAILED, reason=reason or None)
            self._advance()

    def interrupted(self, token: int | None = None) -> None:
        """The host reclaimed the audio output; settle into PAUSED."""
        with self._lock:
            if self._state is not State.SPEAKING:
                logger.debug("Ignoring interruption in state %s", self._state.value)
                return
            if token is not None and not self._is_current(token):
                return
            self._cancel_in_flight()
            self._state = State.PAUSED
            self._emit(EventKind.INTERRUPTED, reason="interrupted")

    # --- internals ---

    def _reject(self, reason: str) -> CommandResult:
        logger.warning("Rejected command in state %s: %s", self._state.value, reason)
        return CommandResult(False, reason)

    def _is_current(self, token: int) -> bool:
        if self._in_flight is None or token != self._in_flight:
            logger.debug("Discarding signal for token %s (%s)", token, STALE_COMPLETION)
            return False
        return True

    def _current_segment(self) -> Segment | None:
        if self._index is None:
            return None
        return self._segments[self._index]

    def _config_for(self, segment: Segment) -> VoiceConfig:
        if segment.is_narration:
            return self.narrator
        return self._voices[segment.speaker]

    def _start(self, index: int, keep_fallback: bool = False) -> None:
        self._index = index
        self._progress = index / len(self._segments)
        self._state = State.SPEAKING
        if not keep_fallback:
            self._using_fallback = False
        segment = self._segments[index]
        config = self.fallback if self._using_fallback else self._config_for(segment)
        token = self._prepare()
        self._emit(EventKind.SEGMENT_STARTED)
        self._dispatch(token, segment, config)

    def _prepare(self) -> int:
        self._generation += 1
        self._in_flight = self._generation
        return self._generation

    def _dispatch(self, token: int, segment: Segment, config: VoiceConfig) -> None:
        # A listener may have stopped, paused or moved playback during the emit.
        if self._in_flight != token or self._state is not State.SPEAKING:
            logger.debug("Utterance %d superseded before dispatch", token)
            return
        self.port.speak(segment.text, config, token)

    def _cancel_in_flight(self) -> None:
        if self._in_flight is not None:
            self.port.cancel(self._in_flight)
            self._in_flight = None

    def _advance(self) -> None:
        next_index = self._index + 1
        if next_index < len(self._segments):
            self._start(next_index)
            return
        self._state = State.STOPPED
        self._index = None
        self._progress = 1.0
        logger.info("Playback finished")
        self._emit(EventKind.PLAYBACK_FINISHED)


def _check_script(segments: list[Segment], voices: dict[str, VoiceConfig]) -> None:
    if not segments:
        raise InvalidScript("No segments to play")
    for position, segment in enumerate(segments):
        if segment.index != position:
            raise InvalidScript(f"Segment at position {position} has index {segment.index}")
        if not segment.text.strip():
            raise InvalidScript(f"Segment {position} has no text")
        if segment.speaker is not None and segment.speaker not in voices:
            raise InvalidScript(f"Segment {position} speaker {segment.speaker!r} has no voice")
