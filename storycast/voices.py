"""Voice pool inventory and character voice assignment."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable

import edge_tts

from storycast.constants import (
    BASELINE_PARAMETERS,
    DEFAULT_RATE, DEFAULT_PITCH, DEFAULT_VOLUME,
    NARRATOR_VOICE,
    FALLBACK_VOICE,
)
from storycast.errors import PoolExhausted
from storycast.models import (
    AgeRange,
    CharacterDescriptor,
    DegradedAssignment,
    Gender,
    QualityTier,
    VoiceConfig,
    VoiceProfile,
)

logger = logging.getLogger(__name__)

# Hardcoded English catalog (avoids network call at startup)
_DEFAULT_CATALOG = [
    ("en-US-AriaNeural", "en-US", Gender.FEMALE, QualityTier.PREMIUM),
    ("en-US-DavisNeural", "en-US", Gender.MALE, QualityTier.NEURAL),
    ("en-US-TonyNeural", "en-US", Gender.MALE, QualityTier.NEURAL),
    ("en-US-JennyNeural", "en-US", Gender.FEMALE, QualityTier.PREMIUM),
    ("en-US-SaraNeural", "en-US", Gender.FEMALE, QualityTier.NEURAL),
    ("en-GB-SoniaNeural", "en-GB", Gender.FEMALE, QualityTier.NEURAL),
    ("en-GB-ThomasNeural", "en-GB", Gender.MALE, QualityTier.NEURAL),
    ("en-AU-NatashaNeural", "en-AU", Gender.FEMALE, QualityTier.NEURAL),
    ("en-AU-WilliamNeural", "en-AU", Gender.MALE, QualityTier.NEURAL),
    ("en-CA-ClaraNeural", "en-CA", Gender.FEMALE, QualityTier.NEURAL),
    ("en-CA-LiamNeural", "en-CA", Gender.MALE, QualityTier.NEURAL),
    ("en-IN-NeerjaNeural", "en-IN", Gender.FEMALE, QualityTier.NEURAL),
    ("en-IN-PrabhatNeural", "en-IN", Gender.MALE, QualityTier.NEURAL),
    ("en-IE-EmilyNeural", "en-IE", Gender.FEMALE, QualityTier.NEURAL),
    ("en-US-GuyNeural", "en-US", Gender.MALE, QualityTier.PREMIUM),
    ("en-US-RogerNeural", "en-US", Gender.MALE, QualityTier.PREMIUM),
]


class VoicePool:
    """Ordered, read-only catalog of synthesis voices.

    Pool order is significant: it is the tie-breaker for assignment.
    """

    def __init__(self, profiles: Iterable[VoiceProfile]):
        self._profiles = tuple(profiles)
        self._by_id = {p.id: p for p in self._profiles}

    @classmethod
    def default(cls) -> "VoicePool":
        return cls(VoiceProfile(id=vid, language=lang, gender=gender, quality=quality)
                   for vid, lang, gender, quality in _DEFAULT_CATALOG)

    @classmethod
    def from_edge_voices(cls, records: list[dict]) -> "VoicePool":
        """Build a pool from `edge_tts.list_voices()` records.

        Multilingual voices are rated PREMIUM, everything else NEURAL.
        """
        profiles = []
        for record in records:
            short_name = record.get("ShortName")
            if not short_name:
                continue
            quality = QualityTier.PREMIUM if "Multilingual" in short_name else QualityTier.NEURAL
            profiles.append(VoiceProfile(
                id=short_name,
                language=record.get("Locale", ""),
                gender=Gender.parse(record.get("Gender")),
                quality=quality,
            ))
        return cls(profiles)

    def __len__(self):
        return len(self._profiles)

    def __iter__(self):
        return iter(self._profiles)

    def __contains__(self, voice_id):
        return voice_id in self._by_id

    def get(self, voice_id: str) -> VoiceProfile:
        """Look up a profile by id. Raises KeyError if not in the pool."""
        return self._by_id[voice_id]

    def filter(self, language: str | None = None, gender: Gender | None = None) -> list[VoiceProfile]:
        return [
            p for p in self._profiles
            if (language is None or language_matches(p.language, language))
            and (gender is None or p.gender == gender)
        ]

    def best_for(self, language: str | None = None) -> VoiceProfile:
        """Highest-quality voice for a language (first in pool order on ties)."""
        if not self._profiles:
            raise PoolExhausted("Voice pool is empty")
        candidates = self.filter(language=language) if language else []
        if not candidates:
            candidates = list(self._profiles)
        return max(candidates, key=lambda p: p.quality.value)


def load_voice_pool() -> VoicePool:
    """Fetch the live edge-tts voice catalog."""
    records = asyncio.run(edge_tts.list_voices())
    pool = VoicePool.from_edge_voices(records)
    logger.info("Loaded %d voices from edge-tts", len(pool))
    return pool


def language_matches(voice_language: str, story_language: str) -> bool:
    """Compare language tags; a bare story language ("en") matches any region."""
    voice_language = voice_language.lower()
    story_language = story_language.lower()
    if "-" in story_language:
        return voice_language == story_language
    return voice_language.split("-")[0] == story_language


def baseline_parameters(character: CharacterDescriptor) -> tuple[float, float, float]:
    """Baseline (rate, pitch, volume) for a character's gender/age category."""
    gender = character.gender.value
    age = character.age.value
    for key in ((gender, age), (gender, AgeRange.UNSPECIFIED.value), (Gender.UNSPECIFIED.value, age)):
        if key in BASELINE_PARAMETERS:
            return BASELINE_PARAMETERS[key]
    return (DEFAULT_RATE, DEFAULT_PITCH, DEFAULT_VOLUME)


def default_config(character: CharacterDescriptor, profile: VoiceProfile) -> VoiceConfig:
    rate, pitch, volume = baseline_parameters(character)
    return VoiceConfig(profile=profile, rate=rate, pitch=pitch, volume=volume)


def narrator_config(pool: VoicePool, language: str | None = None) -> VoiceConfig:
    """Voice used for narration segments."""
    if NARRATOR_VOICE in pool:
        return VoiceConfig(profile=pool.get(NARRATOR_VOICE))
    return VoiceConfig(profile=pool.best_for(language))


def fallback_config(pool: VoicePool, language: str | None = None) -> VoiceConfig:
    """Narrator-quality voice substituted when a character's voice fails."""
    if FALLBACK_VOICE in pool:
        return VoiceConfig(profile=pool.get(FALLBACK_VOICE))
    return VoiceConfig(profile=pool.best_for(language))


@dataclass
class Assignment:
    voices: dict[str, VoiceConfig] = field(default_factory=dict)
    degraded: list[DegradedAssignment] = field(default_factory=list)


def assign_voices(
    characters: list[CharacterDescriptor],
    pool: VoicePool,
    language: str | None = None,
    reserved: Iterable[str] = (),
    on_degraded: Callable[[DegradedAssignment], None] | None = None,
) -> Assignment:
    """Give every character a VoiceConfig drawn from the pool.

    Preference, first match wins:
      1. unused voice, same gender, same language as the story
      2. unused voice, same gender
      3. any unused voice
      4. reuse the least-recently-assigned voice (degraded, logged)

    Characters are processed in the given order and ties go to pool order, so
    the same input always yields the same mapping. `reserved` voice ids (e.g.
    the narrator's) start out claimed.
    """
    result = Assignment()
    if not characters:
        return result
    if len(pool) == 0:
        raise PoolExhausted("Voice pool is empty")

    claimed = {vid for vid in reserved if vid in pool}
    holders = {}    # voice id → character id that last received it
    # voice id → assignment order; reserved voices rank before every assignment
    reserved_in_order = [p.id for p in pool if p.id in claimed]
    last_used = {vid: i - len(reserved_in_order) for i, vid in enumerate(reserved_in_order)}

    for order, character in enumerate(characters):
        unused = [p for p in pool if p.id not in claimed]
        if unused:
            profile = _pick_unused(character, unused, language)
        else:
            profile = _pick_reuse(pool, last_used)
            record = DegradedAssignment(
                character_id=character.id,
                voice_id=profile.id,
                shared_with=holders.get(profile.id),
            )
            logger.warning(
                "Voice pool exhausted: %s reuses %s (shared with %s)",
                character.id, profile.id, record.shared_with or "reserved voice",
            )
            result.degraded.append(record)
            if on_degraded is not None:
                on_degraded(record)

        claimed.add(profile.id)
        holders[profile.id] = character.id
        last_used[profile.id] = order
        result.voices[character.id] = default_config(character, profile)

    return result


def _pick_unused(character, unused, language):
    if character.gender is not Gender.UNSPECIFIED:
        same_gender = [p for p in unused if p.gender == character.gender]
        if language:
            for profile in same_gender:
                if language_matches(profile.language, language):
                    return profile
        if same_gender:
            return same_gender[0]
    return unused[0]


def _pick_reuse(pool, last_used):
    voice_id = min(last_used, key=last_used.get)
    return pool.get(voice_id)


def override_voice(
    voices: dict[str, VoiceConfig],
    character_id: str,
    config: VoiceConfig,
) -> dict[str, VoiceConfig]:
    """Replace one character's config. Other assignments are left untouched."""
    if character_id not in voices:
        raise KeyError(f"Unknown character: {character_id}")
    updated = dict(voices)
    updated[character_id] = config
    logger.info("Voice override: %s → %s", character_id, config.voice_id)
    return updated
