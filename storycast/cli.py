"""CLI interface with subcommand routing."""

import argparse
import logging
import os
import shutil
import sys

from storycast.artifacts import (
    characters_from_data,
    config_from_record,
    get_project_status,
    init_output_dir,
    list_projects,
    load_artifact,
    load_cast,
    save_project,
    segments_from_data,
    slug_from_path,
    voices_from_data,
    voices_to_data,
    write_artifact,
)
from storycast.assembly import assemble_files
from storycast.constants import (
    OUTPUT_DIR,
    SCRIPT_FILE,
    VOICES_FILE,
    CHARACTERS_FILE,
    STORY_FILE,
    NARRATOR_VOICE,
    FALLBACK_VOICE,
    VERSION,
)
from storycast.errors import StorycastError
from storycast.models import EventKind, VoiceConfig
from storycast.parser import parse_annotation, parse_story
from storycast.player import PlaybackController
from storycast.tts import EdgeSpeechPort
from storycast.voices import (
    VoicePool,
    assign_voices,
    fallback_config,
    load_voice_pool,
    narrator_config,
    override_voice,
)


def _fail(message: str, hint: str | None = None):
    print(f"Error: {message}", file=sys.stderr)
    if hint:
        print(hint, file=sys.stderr)
    raise SystemExit(1)


def _check_ffmpeg():
    """Verify ffmpeg is installed."""
    if not shutil.which("ffmpeg"):
        _fail("ffmpeg is required but not found.", "Install with: brew install ffmpeg")


def _get_project_dir(slug: str) -> str:
    """Get project directory path, verify it has a script."""
    project_dir = os.path.join(OUTPUT_DIR, slug)
    if not os.path.exists(os.path.join(project_dir, SCRIPT_FILE)):
        _fail(f"Project '{slug}' not found.", "Run 'storycast new <file>' to create a project.")
    return project_dir


def _load_project(project_dir: str, pool: VoicePool):
    script = load_artifact(project_dir, SCRIPT_FILE) or {}
    voices_data = load_artifact(project_dir, VOICES_FILE) or {}
    cast_data = load_artifact(project_dir, CHARACTERS_FILE) or {}
    try:
        segments = segments_from_data(script)
        voices = voices_from_data(voices_data, pool)
        characters = characters_from_data(cast_data.get("characters", []))
    except (KeyError, ValueError) as e:
        _fail(f"Project artifacts are invalid: {e}")
    return segments, characters, voices, voices_data.get("language")


def cmd_new(args):
    """Segment a story and cast its characters."""
    file_path = args.file
    if not os.path.exists(file_path):
        _fail(f"File not found: {file_path}")

    with open(file_path, encoding="utf-8") as f:
        text = f.read()

    slug = slug_from_path(file_path)
    if os.path.exists(os.path.join(OUTPUT_DIR, slug, SCRIPT_FILE)):
        _fail(f"Project '{slug}' already exists.",
              f"Use 'storycast render {slug}' to generate audio, or 'storycast set {slug} ...' to recast.")

    cast = load_cast(file_path)
    language = args.language or cast.get("language")
    pool = VoicePool.default()

    try:
        characters = characters_from_data(cast.get("characters", []))
        annotation = parse_annotation(cast["annotation"]) if "annotation" in cast else None
        segments = parse_story(text, characters, annotation=annotation)
        assignment = assign_voices(characters, pool, language=language,
                                   reserved=[NARRATOR_VOICE, FALLBACK_VOICE])
        voices = assignment.voices
        for character_id, record in cast.get("overrides", {}).items():
            voices = override_voice(voices, character_id, config_from_record(record, pool))
    except (StorycastError, KeyError, ValueError) as e:
        _fail(str(e))

    project_dir = init_output_dir(file_path, output_base=OUTPUT_DIR)
    save_project(project_dir, segments, characters, voices, language)

    narration_count = sum(1 for s in segments if s.is_narration)
    print(f"Created project: {slug}")
    print(f"Segmented {len(segments)} segments ({narration_count} narration, "
          f"{len(segments) - narration_count} dialogue)")
    print(f"Cast {len(voices)} characters")
    for record in assignment.degraded:
        print(f"  [shared] {record.character_id} reuses {record.voice_id}")
    print(f"Run 'storycast status {slug}' to review, or 'storycast render {slug}' to generate audio.")


def cmd_status(args):
    """Show project status."""
    slug = args.slug
    project_dir = _get_project_dir(slug)
    segments, characters, voices, language = _load_project(project_dir, VoicePool.default())

    narration = sum(1 for s in segments if s.is_narration)
    print(f"Project: {slug}")
    print(f"Language: {language or 'unspecified'}")
    print(f"Segments: {len(segments)} ({narration} narration, {len(segments) - narration} dialogue)")
    print("Cast:")
    names = {c.id: c.name for c in characters}
    for character_id, config in voices.items():
        label = names.get(character_id, character_id)
        print(f"  {label:<15} → {config.voice_id} "
              f"(rate {config.rate:.2f}, pitch {config.pitch:.2f}, volume {config.volume:.2f})")

    print("Steps:")
    for step, info in get_project_status(project_dir).items():
        marker = "[done]" if info["state"] == "done" else "[----]"
        print(f"  {marker} {step}")


def cmd_set(args):
    """Override one character's voice."""
    project_dir = _get_project_dir(args.slug)
    pool = VoicePool.default()
    _, _, voices, language = _load_project(project_dir, pool)

    if args.voice not in pool:
        _fail(f"Unknown voice: {args.voice}", "Run 'storycast voices' to list voices.")
    current = voices.get(args.character)
    if current is None:
        _fail(f"Unknown character: {args.character}")

    try:
        config = VoiceConfig(
            profile=pool.get(args.voice),
            rate=current.rate if args.rate is None else args.rate,
            pitch=current.pitch if args.pitch is None else args.pitch,
            volume=current.volume if args.volume is None else args.volume,
        )
    except ValueError as e:
        _fail(str(e))

    voices = override_voice(voices, args.character, config)
    write_artifact(project_dir, VOICES_FILE, voices_to_data(voices, language))
    print(f"Updated: {args.character} → {args.voice}")

    story = os.path.join(project_dir, STORY_FILE)
    if os.path.exists(story):
        os.remove(story)
        print("Invalidated: story.mp3 (will regenerate on next render)")


def cmd_render(args):
    """Play the script through edge-tts, rendering each segment, then assemble."""
    _check_ffmpeg()
    slug = args.slug
    project_dir = _get_project_dir(slug)
    pool = VoicePool.default()
    segments, _, voices, language = _load_project(project_dir, pool)

    port = EdgeSpeechPort(os.path.join(project_dir, "segments"), pool=pool)
    total = len(segments)
    failed = []

    def report(event):
        if event.kind is EventKind.SEGMENT_STARTED:
            print(f"  Rendering segment {event.index + 1}/{total}")
        elif event.kind is EventKind.VOICE_SUBSTITUTED:
            print(f"  [fallback] Segment {event.index + 1}: {event.reason}")
        elif event.kind is EventKind.SEGMENT_FAILED:
            failed.append(event.index)
            print(f"  [failed] Segment {event.index + 1}: {event.reason}", file=sys.stderr)

    with PlaybackController(port, narrator_config(pool, language), fallback_config(pool, language)) as controller:
        controller.subscribe(report)
        try:
            controller.play(segments, voices)
        except StorycastError as e:
            _fail(str(e))
        rendered = port.drain()

    clips = [u for u in rendered if u.index is not None]
    if not clips:
        _fail(f"No segment of '{slug}' could be voiced.", "Run 'storycast voices --online' to check voice availability.")
    output_path = assemble_files(
        [segments[u.index] for u in clips],
        [u.path for u in clips],
        os.path.join(project_dir, STORY_FILE),
    )
    if failed:
        print(f"Warning: {len(failed)} segment(s) could not be voiced and were left out.", file=sys.stderr)
    print(f"Done: {output_path}")


def cmd_list(args):
    """List all projects."""
    projects = list_projects(output_base=OUTPUT_DIR)
    if not projects:
        print("No projects found.")
        return
    print("Projects:")
    for name in projects:
        status = get_project_status(os.path.join(OUTPUT_DIR, name))
        marker = "[done]" if status["render"]["state"] == "done" else "[----]"
        print(f"  {marker} {name}")


def cmd_voices(args):
    """List available voices."""
    if args.online:
        try:
            pool = load_voice_pool()
        except Exception as e:
            _fail(f"Could not fetch voice list: {e}")
    else:
        pool = VoicePool.default()

    filter_str = args.filter.lower() if args.filter else None
    voices = [p for p in pool if not filter_str or filter_str in p.id.lower()]
    if not voices:
        print("No matching voices found.")
        return
    print("Available voices:")
    for p in voices:
        print(f"  {p.id:<28} {p.language:<7} {p.gender.value:<8} {p.quality.name.lower()}")


def main(argv=None):
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="storycast",
        description="Storycast: turn stories into voiced, speaker-tagged scripts",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log progress details")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    new_parser = subparsers.add_parser("new", help="Segment a story and cast its characters")
    new_parser.add_argument("file", help="Path to the story text file")
    new_parser.add_argument("--language", help="Story language tag, e.g. en-US")
    new_parser.set_defaults(func=cmd_new)

    status_parser = subparsers.add_parser("status", help="Show project status")
    status_parser.add_argument("slug", help="Project slug")
    status_parser.set_defaults(func=cmd_status)

    set_parser = subparsers.add_parser("set", help="Override a character's voice")
    set_parser.add_argument("slug", help="Project slug")
    set_parser.add_argument("character", help="Character id")
    set_parser.add_argument("voice", help="Voice id")
    set_parser.add_argument("--rate", type=float, help="Speaking rate multiplier")
    set_parser.add_argument("--pitch", type=float, help="Pitch multiplier")
    set_parser.add_argument("--volume", type=float, help="Volume (0.0-1.0)")
    set_parser.set_defaults(func=cmd_set)

    render_parser = subparsers.add_parser("render", help="Render the story to audio")
    render_parser.add_argument("slug", help="Project slug")
    render_parser.set_defaults(func=cmd_render)

    list_parser = subparsers.add_parser("list", help="List all projects")
    list_parser.set_defaults(func=cmd_list)

    voices_parser = subparsers.add_parser("voices", help="List available voices")
    voices_parser.add_argument("--filter", help="Filter voices by substring")
    voices_parser.add_argument("--online", action="store_true", help="Fetch the live edge-tts catalog")
    voices_parser.set_defaults(func=cmd_voices)

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if not args.command:
        parser.print_help()
        return

    args.func(args)
