"""Parse tagged input text into voice segments and split chunks."""

import re

from speechcraft.models import VoiceSegment
from speechcraft.constants import DEFAULT_VOICE_NAME, SPLIT_TAG

# <voice=2>, < Voice = 2 >
VOICE_TAG_RE = re.compile(r"<\s*voice\s*=\s*(\d+)\s*>", re.IGNORECASE)

# <split>, <split/>, < SPLIT / >
SPLIT_TAG_RE = re.compile(r"<\s*split\s*/?\s*>", re.IGNORECASE)

# one or more blank lines
PARAGRAPH_BREAK_RE = re.compile(r"\r?\n\r?\n+")


def _clamp_index(index: int, available_voices: list[str]) -> int:
    """Clamp a 0-based voice index into the available range."""
    if index >= len(available_voices):
        index = len(available_voices) - 1
    return max(0, index)


def _voice_name(index: int, available_voices: list[str]) -> str:
    if not available_voices:
        return DEFAULT_VOICE_NAME
    return available_voices[_clamp_index(index, available_voices)]


def parse_voice_segments(text: str, available_voices: list[str]) -> list[VoiceSegment]:
    """Split text on <voice=N> tags into VoiceSegments.

    Tag numbers are 1-based and clamped into the available voices, so
    <voice=0> selects the first voice and <voice=99> the last. Text before
    the first tag uses the first voice. Spans are trimmed and empty spans
    are dropped. Text without any voice tag becomes one segment.
    """
    if text is None or available_voices is None:
        raise ValueError("text and available_voices are required")

    matches = list(VOICE_TAG_RE.finditer(text))
    if not matches:
        return [VoiceSegment(
            text=text.strip(),
            voice_index=0,
            voice_name=_voice_name(0, available_voices),
        )]

    segments = []
    position = 0
    voice_index = 0

    for match in matches:
        before = text[position:match.start()].strip()
        if before:
            segments.append(VoiceSegment(
                text=before,
                voice_index=voice_index,
                voice_name=_voice_name(voice_index, available_voices),
            ))
        voice_index = _clamp_index(int(match.group(1)) - 1, available_voices)
        position = match.end()

    remaining = text[position:].strip()
    if remaining:
        segments.append(VoiceSegment(
            text=remaining,
            voice_index=voice_index,
            voice_name=_voice_name(voice_index, available_voices),
        ))

    return segments


def build_output_with_split_tags(segments: list[VoiceSegment]) -> str:
    """Join segment texts with spaces, adding a split tag at each voice change."""
    parts = []
    for i, seg in enumerate(segments):
        parts.append(seg.text)
        if i < len(segments) - 1 and seg.voice_index != segments[i + 1].voice_index:
            parts.append(SPLIT_TAG)
    return " ".join(parts)


def process_voice_tags(text: str, available_voices: list[str]) -> str:
    """Rewrite voice-tagged text as split-tagged text.

    Returns the input unchanged when it is empty or no voices are configured.
    """
    if not text or not available_voices:
        return text
    return build_output_with_split_tags(parse_voice_segments(text, available_voices))


def get_voice_assignments(text: str, available_voices: list[str]) -> dict[int, str]:
    """Map split-chunk index -> voice name for voice-tagged text.

    Indices follow the non-empty chunks of process_voice_tags(), including
    chunks made by split tags already in the text. A segment continuing the
    previous segment's voice extends its last chunk.
    """
    chunks = []   # [text, voice_name]
    previous = None
    for seg in parse_voice_segments(text, available_voices):
        parts = split_raw(seg.text)
        if previous is not None and seg.voice_index == previous.voice_index:
            chunks[-1][0] += " " + parts[0]
        else:
            chunks.append([parts[0], seg.voice_name])
        chunks.extend([part, seg.voice_name] for part in parts[1:])
        previous = seg

    voices = [voice for chunk_text, voice in chunks if chunk_text.strip()]
    return dict(enumerate(voices))


def split_raw(text: str | None) -> list[str]:
    """Split on split tags without trimming. k tags always give k+1 parts."""
    return SPLIT_TAG_RE.split(text or "")


def split_by_tag(text: str | None) -> list[str]:
    """Split on split tags, trim, drop empty chunks.

    Never returns an empty list: text with no content yields [""].
    """
    chunks = [part.strip() for part in split_raw(text)]
    chunks = [chunk for chunk in chunks if chunk]
    return chunks if chunks else [""]


def has_split_tags(text: str | None) -> bool:
    return bool(text) and SPLIT_TAG_RE.search(text) is not None


def split_paragraphs(text: str | None) -> str | None:
    """Insert a split tag at every paragraph break (blank line).

    Text that already has split tags is returned unchanged.
    """
    if not text or has_split_tags(text):
        return text
    return PARAGRAPH_BREAK_RE.sub(f" {SPLIT_TAG} ", text)


def has_voice_tags(text: str | None) -> bool:
    return bool(text) and VOICE_TAG_RE.search(text) is not None


def remove_voice_tags(text: str | None) -> str | None:
    """Remove voice tags for display."""
    if not text:
        return text
    return VOICE_TAG_RE.sub("", text).strip()


def strip_split_tags(text: str | None) -> str:
    """Replace split tags with spaces for single-voice synthesis of the whole text."""
    return SPLIT_TAG_RE.sub(" ", text or "")
