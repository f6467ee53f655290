"""CLI interface: project creation, marker editing, markup preview and synthesis."""

import argparse
import json
import logging
import os
import shutil
import sys

from speechcraft.backends import BACKENDS, create_backend
from speechcraft.constants import (
    DEFAULT_PREVIEW_DURATION,
    EMPHASIS_LEVELS,
    GOOGLE_API_KEY_ENV,
    VERSION,
    VOLUME_LEVELS,
)
from speechcraft.models import ProsodySettings
from speechcraft.orchestrator import RunState, Session, pair_segments
from speechcraft.parser import (
    has_voice_tags,
    parse_voice_segments,
    process_voice_tags,
    split_paragraphs,
)
from speechcraft.project import (
    load_project,
    project_from_timeline,
    project_path_for,
    prosody_from_project,
    timeline_from_project,
    write_project,
)
from speechcraft.ssml import build_cloud_request, build_preview
from speechcraft.timeline import Timeline


def _check_ffmpeg():
    """Verify ffmpeg is installed (needed for MP3 and edge-tts output)."""
    if not shutil.which("ffmpeg"):
        print("Error: ffmpeg is required but not found.", file=sys.stderr)
        print("Install it and make sure it is on PATH.", file=sys.stderr)
        raise SystemExit(1)


def _make_backend(name: str, api_key: str | None):
    api_key = api_key or os.environ.get(GOOGLE_API_KEY_ENV)
    try:
        return create_backend(name, api_key=api_key)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        if name == "google":
            print(f"Pass --api-key or set {GOOGLE_API_KEY_ENV}.", file=sys.stderr)
        raise SystemExit(1)


def _read_text(file_path: str) -> str:
    if not os.path.exists(file_path):
        print(f"Error: File not found: {file_path}", file=sys.stderr)
        raise SystemExit(1)
    with open(file_path) as f:
        text = f.read()
    if not text.strip():
        print(f"Error: File is empty: {file_path}", file=sys.stderr)
        raise SystemExit(1)
    return text


def _load(project_path: str):
    """Load project data and rebuild its timeline."""
    data = load_project(project_path)
    if data is None:
        print(f"Error: Project not found or unreadable: {project_path}", file=sys.stderr)
        print("Run 'speechcraft new <file>' to create a project.", file=sys.stderr)
        raise SystemExit(1)
    timeline = timeline_from_project(data, available_voices=data.get("voices"))
    return data, timeline


def _save(project_path: str, data: dict, timeline: Timeline) -> None:
    updated = project_from_timeline(
        timeline,
        data.get("text", ""),
        prosody_from_project(data),
        data.get("backend", "local"),
    )
    write_project(project_path, updated)


def _print_segments(timeline: Timeline) -> None:
    for i, seg in enumerate(timeline.segments):
        prosody = seg.prosody or ProsodySettings()
        preview = seg.text if len(seg.text) <= 40 else seg.text[:40] + "..."
        print(
            f"  {i + 1:>3}  {seg.start_time:6.2f}s - {seg.end_time:6.2f}s  {seg.voice_name:<28} "
            f"rate={prosody.rate_percent:+d}% pitch={prosody.pitch_semitones:+d}st "
            f"vol={prosody.volume_level} emph={prosody.emphasis_level} break={prosody.break_ms}ms"
        )
        if preview:
            print(f"       \"{preview}\"")


def _report(result, action: str) -> None:
    if result.state is RunState.COMPLETED and not result.failed:
        print(f"{action}: {result.completed}/{result.total} done")
    else:
        print(
            f"{action} {result.state.value}: {result.completed}/{result.total} done, "
            f"{len(result.failed)} failed",
            file=sys.stderr,
        )
    for path in result.paths:
        print(f"  {path}")
    if result.failed:
        raise SystemExit(1)


def cmd_voices(args):
    """List available voices for a backend."""
    backend = _make_backend(args.backend, args.api_key)
    voices = backend.list_voices()
    if args.filter:
        voices = [v for v in voices if args.filter.lower() in v.lower()]
    if not voices:
        print("No matching voices found.")
        return
    print(f"Available voices ({backend.name}):")
    for i, voice in enumerate(voices, start=1):
        print(f"  {i:>2}. {voice}")


def cmd_tags(args):
    """Rewrite <voice=N> tags as <split> tags and summarize the segments."""
    text = _read_text(args.file)
    if not has_voice_tags(text):
        print("No voice tags found in the text.")
        print("Use tags like <voice=1>, <voice=2> to pick voices, e.g. <voice=1>Hello, <voice=2>How are you?")
        return

    voices = _make_backend(args.backend, args.api_key).list_voices()
    if not voices:
        print("Error: No voices available for this backend.", file=sys.stderr)
        raise SystemExit(1)

    segments = parse_voice_segments(text, voices)
    print(process_voice_tags(text, voices))
    print()
    print(f"Processed {len(segments)} voice segments:")
    for i, seg in enumerate(segments[:5]):
        preview = seg.text if len(seg.text) <= 50 else seg.text[:50] + "..."
        print(f"  Segment {i + 1}: Voice {seg.voice_index + 1} ({seg.voice_name})")
        print(f"    \"{preview}\"")
    if len(segments) > 5:
        print(f"  ... and {len(segments) - 5} more segments.")


def cmd_new(args):
    """Create a project from a text file: derive markers and segments."""
    text = _read_text(args.file)
    project_path = args.output or project_path_for(args.file)
    if os.path.exists(project_path) and not args.force:
        print(f"Error: Project already exists: {project_path}", file=sys.stderr)
        print("Use --force to overwrite it.", file=sys.stderr)
        raise SystemExit(1)

    if args.split_paragraphs:
        text = split_paragraphs(text)

    voices = _make_backend(args.backend, args.api_key).list_voices()
    timeline = Timeline(available_voices=voices, duration=args.duration)
    text = timeline.load_text(text)

    write_project(project_path, project_from_timeline(timeline, text, ProsodySettings(), args.backend))
    print(f"Created project: {project_path}")
    print(f"Derived {len(timeline.markers)} markers, {len(timeline.segments)} segments")
    _print_segments(timeline)


def cmd_status(args):
    """Show markers and segments."""
    data, timeline = _load(args.project)
    print(f"Project: {args.project}")
    print(f"Backend: {data.get('backend', 'local')}")
    print(f"Duration: {timeline.duration:.1f}s")
    print("Markers:")
    for i, marker in enumerate(timeline.sorted_markers()):
        print(f"  {i + 1:>3}  {marker.time_seconds:6.2f}s  {marker.voice_name}")
    print("Segments:")
    _print_segments(timeline)


def cmd_marker(args):
    """Add or delete a marker."""
    data, timeline = _load(args.project)

    if args.action == "add":
        marker = timeline.add_marker(args.value, voice_name=args.voice)
        print(f"Marker added at {marker.time_seconds:.2f}s ({marker.voice_name})")
    else:
        ordered = timeline.sorted_markers()
        index = int(args.value) - 1
        if not 0 <= index < len(ordered):
            print(f"Error: No marker {args.value:g}", file=sys.stderr)
            raise SystemExit(1)
        if not timeline.delete_marker(ordered[index].id):
            print("Error: At least two markers must remain.", file=sys.stderr)
            raise SystemExit(1)
        print("Marker deleted")

    _save(args.project, data, timeline)
    print(f"{len(timeline.segments)} segments")


def cmd_set(args):
    """Apply voice/prosody settings to a segment (written back to its marker)."""
    data, timeline = _load(args.project)
    index = args.segment - 1
    if not 0 <= index < len(timeline.segments):
        print(f"Error: No segment {args.segment}", file=sys.stderr)
        raise SystemExit(1)

    segment = timeline.segments[index]
    prosody = (segment.prosody or ProsodySettings()).clone()
    if args.rate is not None:
        prosody.rate_percent = args.rate
    if args.pitch is not None:
        prosody.pitch_semitones = args.pitch
    if args.volume is not None:
        prosody.volume_level = args.volume
    if args.emphasis is not None:
        prosody.emphasis_level = args.emphasis
    if args.break_ms is not None:
        prosody.break_ms = max(0, args.break_ms)
    voice = args.voice or segment.voice_name

    timeline.apply_segment_settings(index, voice, prosody)
    _save(args.project, data, timeline)
    print(f"Applied voice '{timeline.segments[index].voice_name}' to segment {args.segment}")


def cmd_ssml(args):
    """Print the markup for the project."""
    data, timeline = _load(args.project)
    prosody = prosody_from_project(data)
    text = data.get("text", "")

    if args.dialect == "local":
        print(build_preview(text, prosody, timeline.segments))
        return

    requests_body = [
        build_cloud_request(chunk, segment.prosody or prosody, segment.voice_name)
        for _, segment, chunk in pair_segments(timeline.segments, text)
    ]
    print(json.dumps(requests_body, indent=2))


def _session_for(data: dict, args) -> Session:
    backend_name = args.backend or data.get("backend", "local")
    if backend_name == "edge":
        _check_ffmpeg()
    return Session(_make_backend(backend_name, args.api_key))


def cmd_speak(args):
    """Speak every segment in its voice."""
    data, timeline = _load(args.project)
    session = _session_for(data, args)
    result = session.speak_all(timeline.segments, data.get("text", ""), prosody_from_project(data))
    _report(result, "Speak")


def cmd_save(args):
    """Save all segments into one WAV or MP3 file."""
    data, timeline = _load(args.project)
    if args.output.lower().endswith(".mp3"):
        _check_ffmpeg()
    session = _session_for(data, args)
    result = session.save_all(timeline.segments, data.get("text", ""), args.output, prosody_from_project(data))
    _report(result, "Save")


def cmd_split(args):
    """Save one numbered file per split chunk."""
    data, timeline = _load(args.project)
    if args.format == "mp3":
        _check_ffmpeg()
    session = _session_for(data, args)
    result = session.save_split(
        data.get("text", ""),
        args.base,
        prosody_from_project(data),
        fmt=args.format,
        segments=timeline.segments or None,
    )
    _report(result, "Split")


def main(argv=None):
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="speechcraft",
        description="SpeechCraft: multi-voice text-to-speech with SSML prosody control",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.add_argument("--api-key", help=f"Google Cloud API key (default: ${GOOGLE_API_KEY_ENV})")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # voices
    voices_parser = subparsers.add_parser("voices", help="List available voices")
    voices_parser.add_argument("--backend", choices=BACKENDS, default="local")
    voices_parser.add_argument("--filter", help="Filter voices by substring")
    voices_parser.set_defaults(func=cmd_voices)

    # tags
    tags_parser = subparsers.add_parser("tags", help="Convert <voice=N> tags into <split> tags")
    tags_parser.add_argument("file", help="Path to the text file")
    tags_parser.add_argument("--backend", choices=BACKENDS, default="local")
    tags_parser.set_defaults(func=cmd_tags)

    # new
    new_parser = subparsers.add_parser("new", help="Create a project from a text file")
    new_parser.add_argument("file", help="Path to the text file")
    new_parser.add_argument("--backend", choices=BACKENDS, default="local")
    new_parser.add_argument("--duration", type=float, default=DEFAULT_PREVIEW_DURATION,
                            help="Timeline length in seconds")
    new_parser.add_argument("-o", "--output", help="Project file path")
    new_parser.add_argument("--force", action="store_true", help="Overwrite an existing project")
    new_parser.add_argument("--split-paragraphs", action="store_true",
                            help="Add <split> tags at blank lines (text without split tags only)")
    new_parser.set_defaults(func=cmd_new)

    # status
    status_parser = subparsers.add_parser("status", help="Show markers and segments")
    status_parser.add_argument("project", help="Project file")
    status_parser.set_defaults(func=cmd_status)

    # marker
    marker_parser = subparsers.add_parser("marker", help="Add or delete a marker")
    marker_parser.add_argument("action", choices=("add", "delete"))
    marker_parser.add_argument("project", help="Project file")
    marker_parser.add_argument("value", type=float, help="Time in seconds (add) or marker number (delete)")
    marker_parser.add_argument("--voice", help="Voice for a new marker")
    marker_parser.set_defaults(func=cmd_marker)

    # set
    set_parser = subparsers.add_parser("set", help="Change a segment's voice and prosody")
    set_parser.add_argument("project", help="Project file")
    set_parser.add_argument("segment", type=int, help="Segment number")
    set_parser.add_argument("--voice")
    set_parser.add_argument("--rate", type=int, help="Rate change in percent")
    set_parser.add_argument("--pitch", type=int, help="Pitch change in semitones")
    set_parser.add_argument("--volume", choices=VOLUME_LEVELS)
    set_parser.add_argument("--emphasis", choices=EMPHASIS_LEVELS)
    set_parser.add_argument("--break", dest="break_ms", type=int, help="Pause after the segment in ms")
    set_parser.set_defaults(func=cmd_set)

    # ssml
    ssml_parser = subparsers.add_parser("ssml", help="Print the SSML for the project")
    ssml_parser.add_argument("project", help="Project file")
    ssml_parser.add_argument("--dialect", choices=("local", "cloud"), default="local")
    ssml_parser.set_defaults(func=cmd_ssml)

    # speak / save / split
    speak_parser = subparsers.add_parser("speak", help="Speak all segments")
    speak_parser.add_argument("project", help="Project file")
    speak_parser.add_argument("--backend", choices=BACKENDS)
    speak_parser.set_defaults(func=cmd_speak)

    save_parser = subparsers.add_parser("save", help="Save all segments to one audio file")
    save_parser.add_argument("project", help="Project file")
    save_parser.add_argument("output", help="Output .wav or .mp3 path")
    save_parser.add_argument("--backend", choices=BACKENDS)
    save_parser.set_defaults(func=cmd_save)

    split_parser = subparsers.add_parser("split", help="Save one numbered file per segment")
    split_parser.add_argument("project", help="Project file")
    split_parser.add_argument("base", help="Base output path, e.g. out/story.wav")
    split_parser.add_argument("--format", choices=("wav", "mp3"), default="wav")
    split_parser.add_argument("--backend", choices=BACKENDS)
    split_parser.set_defaults(func=cmd_split)

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if not args.command:
        parser.print_help()
        return

    args.func(args)
