"""Tests for constants and models."""

import dataclasses

import pytest

from storycast import constants
from storycast.models import (
    AgeRange,
    CharacterDescriptor,
    Gender,
    Segment,
    Tag,
    VoiceConfig,
    VoiceProfile,
    slugify,
)


PROFILE = VoiceProfile(id="en-US-AriaNeural", language="en-US", gender=Gender.FEMALE)


def test_gender_parse():
    assert Gender.parse("Female") is Gender.FEMALE
    assert Gender.parse("m") is Gender.MALE
    assert Gender.parse(None) is Gender.UNSPECIFIED
    assert Gender.parse("robot") is Gender.UNSPECIFIED


def test_age_parse():
    assert AgeRange.parse("teen") is AgeRange.TEENAGER
    assert AgeRange.parse("Adult") is AgeRange.ADULT
    assert AgeRange.parse("") is AgeRange.UNSPECIFIED


def test_tag_absent_vs_present():
    assert not Tag.of(None).present
    assert not Tag.of("   ").present
    tag = Tag.of(" British ")
    assert tag.present
    assert str(tag) == "British"


def test_character_defaults_are_unspecified():
    c = CharacterDescriptor(id="bob", name="Bob")
    assert c.gender is Gender.UNSPECIFIED
    assert c.age is AgeRange.UNSPECIFIED
    assert not c.accent.present


def test_character_edit_replaces_under_same_id():
    c = CharacterDescriptor(id="bob", name="Bob")
    edited = dataclasses.replace(c, gender=Gender.MALE)
    assert edited.id == "bob"
    assert c.gender is Gender.UNSPECIFIED


def test_voice_config_bounds():
    with pytest.raises(ValueError):
        VoiceConfig(profile=PROFILE, rate=3.0)
    with pytest.raises(ValueError):
        VoiceConfig(profile=PROFILE, volume=1.5)
    with pytest.raises(ValueError):
        VoiceConfig(profile=PROFILE, pitch=0.1)


def test_voice_config_edge_strings():
    config = VoiceConfig(profile=PROFILE, rate=1.1, pitch=0.9, volume=0.8)
    assert config.edge_rate() == "+10%"
    assert config.edge_pitch() == "-10Hz"
    assert config.edge_volume() == "-20%"
    assert config.voice_id == "en-US-AriaNeural"


def test_segment_narration_flag():
    assert Segment(index=0, speaker=None, text="Dark.").is_narration
    assert not Segment(index=1, speaker="bob", text="Hi.").is_narration


def test_slugify():
    assert slugify("Old Man") == "old_man"
    assert slugify("  Dr. Watson ") == "dr_watson"


def test_baseline_table_within_bounds():
    for rate, pitch, volume in constants.BASELINE_PARAMETERS.values():
        assert constants.RATE_MIN <= rate <= constants.RATE_MAX
        assert constants.PITCH_MIN <= pitch <= constants.PITCH_MAX
        assert constants.VOLUME_MIN <= volume <= constants.VOLUME_MAX
