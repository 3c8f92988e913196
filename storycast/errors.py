"""Domain errors raised by segmentation, casting, and playback."""


class StorycastError(Exception):
    """Base class for all storycast errors."""


class EmptyInput(StorycastError, ValueError):
    """Raw text (or an annotation) has no content to segment."""


class InvalidCharacters(StorycastError, ValueError):
    """Character list has blank or duplicate (case-insensitive) names."""


class UnmatchedSpeaker(StorycastError):
    """An external annotation names a speaker that is not a known character."""

    def __init__(self, name: str):
        super().__init__(f"Unknown speaker in annotation: {name!r}")
        self.name = name


class PoolExhausted(StorycastError):
    """The voice pool is empty; there is nothing to assign."""


class VoiceUnavailable(StorycastError):
    """A voice could not be realized by the speech engine."""

    def __init__(self, voice_id: str, reason: str = ""):
        message = f"Voice unavailable: {voice_id}"
        if reason:
            message += f" ({reason})"
        super().__init__(message)
        self.voice_id = voice_id
        self.reason = reason


class InvalidScript(StorycastError, ValueError):
    """A segment sequence is empty or malformed and cannot be played."""


# Reason codes for rejected controller commands and discarded signals
OUT_OF_RANGE_SKIP = "out_of_range"
STALE_COMPLETION = "stale_completion"
