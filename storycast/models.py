"""Data models for story segmentation, voice casting, and playback."""

import re
from dataclasses import dataclass
from enum import Enum

from storycast.constants import (
    RATE_MIN, RATE_MAX,
    PITCH_MIN, PITCH_MAX,
    VOLUME_MIN, VOLUME_MAX,
    DEFAULT_RATE, DEFAULT_PITCH, DEFAULT_VOLUME,
    PITCH_HZ_PER_UNIT,
)


class Gender(Enum):
    FEMALE = "female"
    MALE = "male"
    NEUTRAL = "neutral"
    UNSPECIFIED = "unspecified"

    @classmethod
    def parse(cls, value: str | None) -> "Gender":
        """Map a free-form gender string to a category; unknown → UNSPECIFIED."""
        if not value:
            return cls.UNSPECIFIED
        value = value.strip().lower()
        aliases = {
            "f": cls.FEMALE, "woman": cls.FEMALE, "girl": cls.FEMALE,
            "m": cls.MALE, "man": cls.MALE, "boy": cls.MALE,
            "nonbinary": cls.NEUTRAL, "non-binary": cls.NEUTRAL,
        }
        if value in aliases:
            return aliases[value]
        for member in cls:
            if member.value == value:
                return member
        return cls.UNSPECIFIED


class AgeRange(Enum):
    CHILD = "child"
    TEENAGER = "teenager"
    ADULT = "adult"
    ELDERLY = "elderly"
    UNSPECIFIED = "unspecified"

    @classmethod
    def parse(cls, value: str | None) -> "AgeRange":
        if not value:
            return cls.UNSPECIFIED
        value = value.strip().lower()
        aliases = {"kid": cls.CHILD, "teen": cls.TEENAGER, "young adult": cls.TEENAGER,
                   "old": cls.ELDERLY, "senior": cls.ELDERLY, "middle-aged": cls.ADULT}
        if value in aliases:
            return aliases[value]
        for member in cls:
            if member.value == value:
                return member
        return cls.UNSPECIFIED


class QualityTier(Enum):
    STANDARD = 1
    NEURAL = 2
    PREMIUM = 3


@dataclass(frozen=True)
class Tag:
    """A free-text attribute that may be absent."""
    value: str = ""
    present: bool = False

    @classmethod
    def of(cls, value: str | None) -> "Tag":
        if value is None or not value.strip():
            return cls()
        return cls(value=value.strip(), present=True)

    def __str__(self):
        return self.value if self.present else ""


ABSENT = Tag()


@dataclass(frozen=True)
class CharacterDescriptor:
    id: str
    name: str
    gender: Gender = Gender.UNSPECIFIED
    age: AgeRange = AgeRange.UNSPECIFIED
    accent: Tag = ABSENT
    personality: Tag = ABSENT


@dataclass(frozen=True)
class VoiceProfile:
    id: str              # platform voice short name, e.g. "en-US-AriaNeural"
    language: str        # BCP-47 tag, e.g. "en-US"
    gender: Gender
    quality: QualityTier = QualityTier.NEURAL


def _check_bounds(name: str, value: float, low: float, high: float) -> None:
    if not low <= value <= high:
        raise ValueError(f"{name} {value} outside [{low}, {high}]")


def _signed_percent(value: float) -> str:
    pct = round((value - 1.0) * 100)
    return f"{pct:+d}%"


@dataclass(frozen=True)
class VoiceConfig:
    profile: VoiceProfile
    rate: float = DEFAULT_RATE
    pitch: float = DEFAULT_PITCH
    volume: float = DEFAULT_VOLUME

    def __post_init__(self):
        _check_bounds("rate", self.rate, RATE_MIN, RATE_MAX)
        _check_bounds("pitch", self.pitch, PITCH_MIN, PITCH_MAX)
        _check_bounds("volume", self.volume, VOLUME_MIN, VOLUME_MAX)

    @property
    def voice_id(self) -> str:
        return self.profile.id

    # edge-tts prosody strings
    def edge_rate(self) -> str:
        return _signed_percent(self.rate)

    def edge_pitch(self) -> str:
        hz = round((self.pitch - 1.0) * PITCH_HZ_PER_UNIT)
        return f"{hz:+d}Hz"

    def edge_volume(self) -> str:
        return _signed_percent(self.volume)


@dataclass(frozen=True)
class Segment:
    index: int
    speaker: str | None  # character id, None for narration
    text: str

    @property
    def is_narration(self) -> bool:
        return self.speaker is None


@dataclass(frozen=True)
class AnnotatedLine:
    speaker: str | None  # speaker name as written by the annotator, None for narration
    text: str


@dataclass(frozen=True)
class DegradedAssignment:
    character_id: str
    voice_id: str
    shared_with: str | None  # character that last held the voice, None if it was reserved


class State(Enum):
    IDLE = "idle"
    SPEAKING = "speaking"
    PAUSED = "paused"
    STOPPED = "stopped"
    FAILED = "failed"


class EventKind(Enum):
    SEGMENT_STARTED = "segment_started"
    PAUSED = "paused"
    INTERRUPTED = "interrupted"
    STOPPED = "stopped"
    PLAYBACK_FINISHED = "playback_finished"
    VOICE_SUBSTITUTED = "voice_substituted"
    SEGMENT_FAILED = "segment_failed"
    RESET = "reset"


@dataclass(frozen=True)
class PlaybackState:
    state: State = State.IDLE
    index: int | None = None
    progress: float = 0.0


@dataclass(frozen=True)
class PlaybackEvent:
    kind: EventKind
    state: State
    index: int | None = None
    reason: str | None = None


def slugify(name: str) -> str:
    """Convert a display name to an identifier: "Old Man" → "old_man"."""
    return re.sub(r"[^a-zA-Z0-9]+", "_", name).strip("_").lower()
