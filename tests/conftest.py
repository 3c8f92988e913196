"""Shared fixtures for storycast tests."""

import pytest

from storycast.models import AgeRange, CharacterDescriptor, Gender, Segment, VoiceConfig
from storycast.player import PlaybackController, SpeechPort
from storycast.voices import VoicePool, fallback_config, narrator_config


class RecordingPort(SpeechPort):
    """Speech port that records requests; tests deliver the signals by hand."""

    def __init__(self):
        self.spoken = []     # (token, text, voice id)
        self.cancelled = []

    def list_voices(self):
        return list(VoicePool.default())

    def speak(self, text, config, token):
        self.spoken.append((token, text, config.voice_id))

    def cancel(self, token):
        self.cancelled.append(token)

    @property
    def last_token(self):
        return self.spoken[-1][0]

    def finish(self):
        self.controller.utterance_finished(self.last_token)

    def fail(self, reason="no audio"):
        self.controller.voice_unavailable(self.last_token, reason)


@pytest.fixture
def pool():
    return VoicePool.default()


@pytest.fixture
def characters():
    return [
        CharacterDescriptor(id="alice", name="Alice", gender=Gender.FEMALE, age=AgeRange.ADULT),
        CharacterDescriptor(id="bob", name="Bob", gender=Gender.MALE, age=AgeRange.TEENAGER),
    ]


@pytest.fixture
def sample_segments():
    return [
        Segment(index=0, speaker="alice", text="Hello there."),
        Segment(index=1, speaker="bob", text="Hi Alice!"),
        Segment(index=2, speaker=None, text="They walked away."),
    ]


@pytest.fixture
def voice_map(pool):
    return {
        "alice": VoiceConfig(profile=pool.get("en-US-AriaNeural")),
        "bob": VoiceConfig(profile=pool.get("en-US-DavisNeural")),
    }


@pytest.fixture
def make_port():
    return RecordingPort


@pytest.fixture
def port():
    return RecordingPort()


@pytest.fixture
def controller(port, pool):
    ctl = PlaybackController(port, narrator_config(pool), fallback_config(pool))
    ctl.events = []
    ctl.subscribe(ctl.events.append)
    return ctl
