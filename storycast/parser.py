"""Split story text into speaker-attributed segments."""

import abc
import logging
import re

from storycast.constants import NARRATOR_NAMES
from storycast.errors import EmptyInput, InvalidCharacters, UnmatchedSpeaker
from storycast.models import AnnotatedLine, CharacterDescriptor, Segment

logger = logging.getLogger(__name__)

# "Alice: Hello there." → ("Alice", "Hello there.")
_SPEAKER_LINE_RE = re.compile(r"^\s*([^:\n]+?)\s*:\s*(.*?)\s*$")


def _validate(text: str, characters: list[CharacterDescriptor]) -> dict[str, str]:
    """Check inputs and return a lowercase-name → character id index."""
    if not text or not text.strip():
        raise EmptyInput("Story text is empty")

    index = {}
    for character in characters:
        key = character.name.strip().lower()
        if not key:
            raise InvalidCharacters(f"Character {character.id!r} has a blank name")
        if key in index:
            raise InvalidCharacters(f"Duplicate character name: {character.name!r}")
        index[key] = character.id
    return index


class Segmenter(abc.ABC):
    """Turns raw text plus the known characters into an ordered segment list."""

    @abc.abstractmethod
    def segment(self, text: str, characters: list[CharacterDescriptor]) -> list[Segment]:
        ...


class HeuristicSegmenter(Segmenter):
    """Line-based attribution of `<name>: <content>` lines.

    A line whose prefix names a known character (case-insensitive) becomes its
    own segment. Everything else is narration, and consecutive narration lines
    are merged into one segment.
    """

    def segment(self, text, characters):
        by_name = _validate(text, characters)
        segments = []
        narration = []

        def flush():
            joined = "\n".join(narration).strip()
            if joined:
                segments.append(Segment(index=len(segments), speaker=None, text=joined))
            narration.clear()

        for line in text.splitlines():
            match = _SPEAKER_LINE_RE.match(line)
            if match and match.group(2) and match.group(1).lower() in by_name:
                flush()
                segments.append(Segment(
                    index=len(segments),
                    speaker=by_name[match.group(1).lower()],
                    text=match.group(2),
                ))
            else:
                narration.append(line)
        flush()

        logger.debug("Heuristic segmentation produced %d segments", len(segments))
        return segments


class AnnotationSegmenter(Segmenter):
    """Segments supplied by an external annotator, mapped onto character ids.

    Speaker names must match a known character exactly (ignoring case); an
    unknown name raises UnmatchedSpeaker rather than falling back to narration.
    """

    def __init__(self, lines: list[AnnotatedLine]):
        self.lines = list(lines)

    def _resolve(self, name: str | None, by_name: dict[str, str]) -> str | None:
        if name is None:
            return None
        key = name.strip().lower()
        if key in by_name:
            return by_name[key]
        if key in NARRATOR_NAMES:
            return None
        raise UnmatchedSpeaker(name)

    def segment(self, text, characters):
        by_name = _validate(text, characters)
        segments = []
        for line in self.lines:
            content = line.text.strip()
            if not content:
                logger.debug("Dropping blank annotation line for %r", line.speaker)
                continue
            speaker = self._resolve(line.speaker, by_name)
            segments.append(Segment(index=len(segments), speaker=speaker, text=content))

        if not segments:
            raise EmptyInput("Annotation contains no text")
        return segments


def parse_annotation(records: list[dict]) -> list[AnnotatedLine]:
    """Decode `[{"speaker": ..., "text": ...}]` records from an annotator.

    Accepts "speakerName" as an alias for "speaker"; a missing or null
    speaker means narration.
    """
    lines = []
    for i, record in enumerate(records):
        if not isinstance(record, dict) or not isinstance(record.get("text"), str):
            raise ValueError(f"Malformed annotation record at position {i}: {record!r}")
        speaker = record.get("speaker", record.get("speakerName"))
        if speaker is not None and not isinstance(speaker, str):
            raise ValueError(f"Malformed speaker at position {i}: {speaker!r}")
        if speaker is not None and not speaker.strip():
            speaker = None
        lines.append(AnnotatedLine(speaker=speaker, text=record["text"]))
    return lines


def parse_story(
    text: str,
    characters: list[CharacterDescriptor],
    annotation: list[AnnotatedLine] | None = None,
) -> list[Segment]:
    """Segment a story, using the annotation when one is supplied."""
    if annotation is not None:
        segmenter = AnnotationSegmenter(annotation)
    else:
        segmenter = HeuristicSegmenter()
    return segmenter.segment(text, characters)


def render_script(segments: list[Segment], characters: list[CharacterDescriptor]) -> str:
    """Render segments back into `<name>: <text>` script form."""
    names = {c.id: c.name for c in characters}
    lines = []
    for seg in segments:
        if seg.is_narration:
            lines.append(seg.text)
        else:
            lines.append(f"{names.get(seg.speaker, seg.speaker)}: {seg.text}")
    return "\n".join(lines)
