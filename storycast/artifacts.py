"""Project directories, JSON artifacts, and (de)serialization of the data model."""

import json
import logging
import os

from storycast.constants import (
    OUTPUT_DIR,
    SCRIPT_FILE,
    VOICES_FILE,
    CHARACTERS_FILE,
    STORY_FILE,
)
from storycast.models import (
    AgeRange,
    CharacterDescriptor,
    Gender,
    Segment,
    Tag,
    VoiceConfig,
    slugify,
)
from storycast.voices import VoicePool

logger = logging.getLogger(__name__)


def slug_from_path(story_path: str) -> str:
    """Convert story filename to output directory slug.

    "Tell-Tale Heart.txt" → "tell_tale_heart"
    """
    basename = os.path.splitext(os.path.basename(story_path))[0]
    return slugify(basename)


def init_output_dir(story_path: str, output_base: str = OUTPUT_DIR) -> str:
    """Create output/<slug>/segments/ and return the project directory."""
    project_dir = os.path.join(output_base, slug_from_path(story_path))
    os.makedirs(os.path.join(project_dir, "segments"), exist_ok=True)
    return project_dir


def write_artifact(project_dir: str, filename: str, data: dict) -> str:
    """Write JSON artifact to project_dir/filename. Returns the path."""
    path = os.path.join(project_dir, filename)
    with open(path, "w") as f:
        json.dump(data, f, indent=2)
    return path


def load_artifact(project_dir: str, filename: str) -> dict | None:
    """Read JSON artifact. Returns None if file doesn't exist."""
    path = os.path.join(project_dir, filename)
    if not os.path.exists(path):
        return None
    with open(path) as f:
        return json.load(f)


def load_cast(story_path: str) -> dict:
    """Load the `<story>.cast.json` sidecar if it exists.

    Keys: "language", "characters", "annotation", "overrides".
    Returns an empty dict if the file is missing or malformed.
    """
    cast_path = os.path.splitext(story_path)[0] + ".cast.json"
    if not os.path.exists(cast_path):
        return {}
    try:
        with open(cast_path) as f:
            data = json.load(f)
    except json.JSONDecodeError:
        logger.warning("Malformed cast file: %s; ignoring it", cast_path)
        return {}
    if not isinstance(data, dict):
        logger.warning("Cast file %s is not a JSON object; ignoring it", cast_path)
        return {}
    return data


def list_projects(output_base: str = OUTPUT_DIR) -> list[str]:
    """Sorted slugs of project directories that contain a script."""
    if not os.path.exists(output_base):
        return []
    return sorted(
        name for name in os.listdir(output_base)
        if os.path.exists(os.path.join(output_base, name, SCRIPT_FILE))
    )


def get_project_status(project_dir: str) -> dict:
    """Return dict describing the state of each pipeline step."""
    status = {}

    script = load_artifact(project_dir, SCRIPT_FILE)
    if script:
        status["segment"] = {"state": "done", "segments": len(script.get("segments", []))}
    else:
        status["segment"] = {"state": "pending"}

    voices = load_artifact(project_dir, VOICES_FILE)
    if voices:
        status["voices"] = {"state": "done", "voices": len(voices.get("voices", {}))}
    else:
        status["voices"] = {"state": "pending"}

    story = os.path.join(project_dir, STORY_FILE)
    status["render"] = {"state": "done" if os.path.exists(story) else "pending"}
    return status


# --- serialization ---

def character_from_record(record: dict) -> CharacterDescriptor:
    """Decode one character record as produced by the extraction step."""
    name = record.get("name")
    if not isinstance(name, str) or not name.strip():
        raise ValueError(f"Character record has no name: {record!r}")
    return CharacterDescriptor(
        id=record.get("id") or slugify(name),
        name=name.strip(),
        gender=Gender.parse(record.get("gender")),
        age=AgeRange.parse(record.get("ageRange", record.get("age"))),
        accent=Tag.of(record.get("accent")),
        personality=Tag.of(record.get("personality")),
    )


def character_to_record(character: CharacterDescriptor) -> dict:
    record = {"id": character.id, "name": character.name}
    if character.gender is not Gender.UNSPECIFIED:
        record["gender"] = character.gender.value
    if character.age is not AgeRange.UNSPECIFIED:
        record["ageRange"] = character.age.value
    if character.accent.present:
        record["accent"] = character.accent.value
    if character.personality.present:
        record["personality"] = character.personality.value
    return record


def characters_from_data(records: list[dict]) -> list[CharacterDescriptor]:
    characters = [character_from_record(r) for r in records]
    seen = set()
    for character in characters:
        if character.id in seen:
            raise ValueError(f"Duplicate character id: {character.id}")
        seen.add(character.id)
    return characters


def segments_to_data(segments: list[Segment]) -> dict:
    return {"segments": [
        {"index": s.index, "speaker": s.speaker, "text": s.text}
        for s in segments
    ]}


def segments_from_data(data: dict) -> list[Segment]:
    return [
        Segment(index=s["index"], speaker=s.get("speaker"), text=s["text"])
        for s in data.get("segments", [])
    ]


def config_to_record(config: VoiceConfig) -> dict:
    return {
        "voice": config.voice_id,
        "rate": config.rate,
        "pitch": config.pitch,
        "volume": config.volume,
    }


def config_from_record(record: dict, pool: VoicePool) -> VoiceConfig:
    """Rebuild a VoiceConfig; the voice must exist in the pool (KeyError if not)."""
    return VoiceConfig(
        profile=pool.get(record["voice"]),
        rate=record.get("rate", 1.0),
        pitch=record.get("pitch", 1.0),
        volume=record.get("volume", 1.0),
    )


def voices_to_data(voices: dict[str, VoiceConfig], language: str | None = None) -> dict:
    return {
        "language": language,
        "voices": {cid: config_to_record(cfg) for cid, cfg in voices.items()},
    }


def voices_from_data(data: dict, pool: VoicePool) -> dict[str, VoiceConfig]:
    return {
        cid: config_from_record(record, pool)
        for cid, record in data.get("voices", {}).items()
    }


def save_project(project_dir, segments, characters, voices, language=None) -> None:
    """Write the script, cast, and voice map artifacts."""
    write_artifact(project_dir, SCRIPT_FILE, segments_to_data(segments))
    write_artifact(project_dir, CHARACTERS_FILE,
                   {"characters": [character_to_record(c) for c in characters]})
    write_artifact(project_dir, VOICES_FILE, voices_to_data(voices, language))
