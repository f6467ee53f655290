"""Concatenate, convert and name synthesized audio files."""

import logging
import os

from pydub import AudioSegment

from speechcraft.constants import (
    MP3_BITRATE,
    OUTPUT_CHANNELS,
    OUTPUT_FRAME_RATE,
    OUTPUT_SAMPLE_WIDTH,
    SPLIT_INDEX_WIDTH,
)

logger = logging.getLogger(__name__)


def numbered_path(base_path: str, index: int, ext: str | None = None) -> str:
    """Numbered output path for split export.

    ("out/story.wav", 1) → "out/story_001.wav"
    ("out/story.wav", 12, "mp3") → "out/story_012.mp3"
    """
    directory = os.path.dirname(base_path)
    name, base_ext = os.path.splitext(os.path.basename(base_path))
    ext = (ext or base_ext.lstrip(".") or "wav").lstrip(".")
    return os.path.join(directory, f"{name}_{index:0{SPLIT_INDEX_WIDTH}d}.{ext}")


def format_for_path(path: str) -> str:
    """Export format from a file extension, defaulting to wav."""
    ext = os.path.splitext(path)[1].lstrip(".").lower()
    return ext if ext in ("wav", "mp3") else "wav"


def _normalize_format(audio: AudioSegment) -> AudioSegment:
    return (
        audio.set_frame_rate(OUTPUT_FRAME_RATE)
        .set_sample_width(OUTPUT_SAMPLE_WIDTH)
        .set_channels(OUTPUT_CHANNELS)
    )


def concatenate_files(paths: list[str], output_path: str, fmt: str | None = None) -> bool:
    """Join audio files in order into one 44.1 kHz / 16-bit / mono file.

    Returns False (and logs) if any input can't be read or the export fails.
    """
    fmt = fmt or format_for_path(output_path)
    try:
        combined = AudioSegment.empty()
        for path in paths:
            combined += _normalize_format(AudioSegment.from_file(path))
        combined = _normalize_format(combined)

        kwargs = {"bitrate": MP3_BITRATE} if fmt == "mp3" else {}
        combined.export(output_path, format=fmt, **kwargs)
    except Exception as e:
        logger.warning("Could not combine %d files into %s: %s", len(paths), output_path, e)
        return False
    return True


def convert_wav_to_mp3(wav_path: str, mp3_path: str, bitrate: str = MP3_BITRATE) -> bool:
    try:
        AudioSegment.from_wav(wav_path).export(mp3_path, format="mp3", bitrate=bitrate)
    except Exception as e:
        logger.warning("MP3 conversion failed for %s: %s", wav_path, e)
        return False
    return True


def remove_quietly(paths: list[str]) -> None:
    """Best-effort deletion; failures are ignored."""
    for path in paths:
        try:
            os.remove(path)
        except OSError as e:
            logger.debug("Could not delete %s: %s", path, e)
