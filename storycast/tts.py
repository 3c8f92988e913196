"""TTS generation via edge-tts with retry logic, and the file-rendering speech port."""

import asyncio
import hashlib
import logging
import os
import time
from collections import deque
from dataclasses import dataclass

import edge_tts

from storycast.constants import TTS_RETRY_COUNT, TTS_RETRY_BASE_DELAY
from storycast.errors import VoiceUnavailable
from storycast.models import VoiceConfig
from storycast.player import SpeechPort
from storycast.voices import VoicePool

logger = logging.getLogger(__name__)


def generate_single(
    text: str,
    voice: str,
    output_path: str,
    rate: str = "+0%",
    pitch: str = "+0Hz",
    volume: str = "+0%",
) -> None:
    """Generate a single TTS clip with retry logic.

    Sync wrapper around edge_tts.Communicate(). Retries on any error or a
    0-byte output file, with exponential backoff between attempts.
    """
    last_error = None
    for attempt in range(TTS_RETRY_COUNT):
        try:
            communicate = edge_tts.Communicate(text, voice, rate=rate, pitch=pitch, volume=volume)
            asyncio.run(communicate.save(output_path))

            if os.path.exists(output_path) and os.path.getsize(output_path) > 0:
                return

            last_error = Exception(f"TTS produced 0-byte file for: {text[:50]}...")
        except Exception as e:
            last_error = e

        logger.debug("TTS attempt %d/%d failed for %s: %s",
                     attempt + 1, TTS_RETRY_COUNT, voice, last_error)
        if attempt < TTS_RETRY_COUNT - 1:
            time.sleep(TTS_RETRY_BASE_DELAY * (2 ** attempt))

    raise last_error


def synthesize(text: str, config: VoiceConfig, output_path: str) -> None:
    """Render `text` with a voice config's voice and prosody.

    Raises VoiceUnavailable once retries are exhausted.
    """
    try:
        generate_single(
            text, config.voice_id, output_path,
            rate=config.edge_rate(),
            pitch=config.edge_pitch(),
            volume=config.edge_volume(),
        )
    except Exception as e:
        raise VoiceUnavailable(config.voice_id, str(e)) from e


def utterance_filename(text: str, config: VoiceConfig) -> str:
    """Content-addressed clip name, so unchanged utterances are reused."""
    key = "|".join([text, config.voice_id, config.edge_rate(), config.edge_pitch(), config.edge_volume()])
    digest = hashlib.sha256(key.encode()).hexdigest()[:16]
    return f"{config.voice_id}_{digest}.mp3"


@dataclass
class Utterance:
    token: int
    text: str
    config: VoiceConfig
    path: str = ""
    index: int | None = None  # segment index, set once rendered


class EdgeSpeechPort(SpeechPort):
    """Speech port that renders each utterance to an MP3 file.

    `speak()` only queues the request; `drain()` synthesizes queued
    utterances in order and reports each outcome to the connected controller.
    Clips already on disk are reused.
    """

    def __init__(self, output_dir: str, pool: VoicePool | None = None):
        self.output_dir = output_dir
        self.pool = pool if pool is not None else VoicePool.default()
        self.pending: deque[Utterance] = deque()
        self.rendered: list[Utterance] = []
        os.makedirs(output_dir, exist_ok=True)

    def list_voices(self):
        return list(self.pool)

    def speak(self, text, config, token):
        self.pending.append(Utterance(token=token, text=text, config=config))

    def cancel(self, token):
        self.pending = deque(u for u in self.pending if u.token != token)

    def drain(self) -> list[Utterance]:
        """Process queued utterances until the controller stops issuing them."""
        while self.pending:
            utterance = self.pending.popleft()
            utterance.path = os.path.join(self.output_dir, utterance_filename(utterance.text, utterance.config))

            if os.path.exists(utterance.path) and os.path.getsize(utterance.path) > 0:
                logger.info("[skip] %s already rendered", os.path.basename(utterance.path))
            else:
                try:
                    synthesize(utterance.text, utterance.config, utterance.path)
                except VoiceUnavailable as e:
                    logger.warning("%s", e)
                    if self.controller is not None:
                        self.controller.voice_unavailable(utterance.token, e.reason)
                    continue

            if self.controller is not None:
                utterance.index = self.controller.state.index
            self.rendered.append(utterance)
            if self.controller is not None:
                self.controller.utterance_finished(utterance.token)
        return self.rendered
