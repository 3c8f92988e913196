"""All magic numbers and configuration constants."""

# Delivery parameter bounds (multipliers relative to the voice's natural delivery)
RATE_MIN, RATE_MAX = 0.5, 2.0
PITCH_MIN, PITCH_MAX = 0.5, 2.0
VOLUME_MIN, VOLUME_MAX = 0.0, 1.0

DEFAULT_RATE = 0.9                  # 10% slower than the voice default
DEFAULT_PITCH = 1.0
DEFAULT_VOLUME = 1.0
PITCH_HZ_PER_UNIT = 100             # edge-tts pitch offset (Hz) for a 1.0 multiplier change

# Baseline (rate, pitch, volume) per (gender, age). Keys use the enum values
# from models.Gender / models.AgeRange; "unspecified" acts as a wildcard.
BASELINE_PARAMETERS = {
    ("male", "child"): (1.0, 1.25, 1.0),
    ("male", "teenager"): (1.0, 1.1, 1.0),
    ("male", "adult"): (0.9, 0.9, 1.0),
    ("male", "elderly"): (0.8, 0.85, 0.9),
    ("male", "unspecified"): (0.9, 0.95, 1.0),
    ("female", "child"): (1.0, 1.3, 1.0),
    ("female", "teenager"): (1.0, 1.15, 1.0),
    ("female", "adult"): (0.9, 1.0, 1.0),
    ("female", "elderly"): (0.8, 0.95, 0.9),
    ("female", "unspecified"): (0.9, 1.05, 1.0),
    ("unspecified", "child"): (1.0, 1.25, 1.0),
    ("unspecified", "teenager"): (1.0, 1.1, 1.0),
    ("unspecified", "elderly"): (0.8, 0.9, 0.9),
}

NARRATOR_VOICE = "en-US-RogerNeural"         # narration default: deep, authoritative
FALLBACK_VOICE = "en-US-GuyNeural"           # used when a character's voice fails at synthesis
NARRATOR_NAMES = ("narrator",)               # annotation speaker names that mean narration

PAUSE_SAME_SPEAKER_MS = 225         # ms pause between segments of the same speaker
PAUSE_SPEAKER_CHANGE_MS = 375       # ms pause at speaker changes
PAUSE_NARRATION_TRANSITION_MS = 525 # ms pause at narration/dialogue transitions

TTS_RETRY_COUNT = 3                 # max retries per TTS utterance
TTS_RETRY_BASE_DELAY = 1.0          # seconds, base delay for exponential backoff
OUTPUT_BITRATE = "192k"             # MP3 output bitrate

OUTPUT_DIR = "output"
SCRIPT_FILE = "script.json"
VOICES_FILE = "voices.json"
CHARACTERS_FILE = "characters.json"
STORY_FILE = "story.mp3"
VERSION = "0.2.0"
