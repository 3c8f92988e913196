"""Join rendered utterances into one story file with speaker-aware pauses."""

import logging

from pydub import AudioSegment

from storycast.constants import (
    PAUSE_SAME_SPEAKER_MS,
    PAUSE_SPEAKER_CHANGE_MS,
    PAUSE_NARRATION_TRANSITION_MS,
    OUTPUT_BITRATE,
)
from storycast.models import Segment

logger = logging.getLogger(__name__)


def calculate_pause(prev: Segment, curr: Segment) -> int:
    """Pause in ms between two consecutive segments.

    Uses max() when several rules apply (narration→dialogue is also a speaker change).
    """
    pause = PAUSE_SAME_SPEAKER_MS

    if prev.is_narration != curr.is_narration:
        pause = max(pause, PAUSE_NARRATION_TRANSITION_MS)

    if prev.speaker != curr.speaker:
        pause = max(pause, PAUSE_SPEAKER_CHANGE_MS)

    return pause


def assemble(segments: list[Segment], audio: list[AudioSegment]) -> AudioSegment:
    """Concatenate per-segment audio in order with pauses between them."""
    if len(segments) != len(audio):
        raise ValueError(f"{len(segments)} segments but {len(audio)} audio clips")
    if not audio:
        return AudioSegment.silent(duration=0)

    result = audio[0]
    for i in range(1, len(audio)):
        pause_ms = calculate_pause(segments[i - 1], segments[i])
        result += AudioSegment.silent(duration=pause_ms) + audio[i]
    return result


def assemble_files(segments: list[Segment], paths: list[str], output_path: str) -> str:
    """Load rendered clips, assemble them, and export an MP3."""
    clips = [AudioSegment.from_file(path) for path in paths]
    story = assemble(segments, clips)
    story.export(output_path, format="mp3", bitrate=OUTPUT_BITRATE)
    logger.info("Exported %d ms of audio to %s", len(story), output_path)
    return output_path
