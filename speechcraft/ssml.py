"""Render text and prosody settings into SSML for the local and cloud dialects.

The local dialect (OS speech engine) carries everything in the markup:
voice, prosody rate/pitch/volume, emphasis and breaks. The cloud dialect
(Google Cloud TTS) only puts emphasis and breaks in the markup; voice,
speaking rate, pitch and volume gain travel in a separate synthesis config.
"""

from enum import Enum

from speechcraft.constants import (
    GOOGLE_AUDIO_ENCODING,
    PREVIEW_PLACEHOLDER,
    SSML_LANGUAGE,
    SSML_NAMESPACE,
    SSML_VERSION,
    VOLUME_GAIN_DB,
)
from speechcraft.models import ProsodySettings, Segment
from speechcraft.parser import split_raw


class Dialect(Enum):
    LOCAL = "local"
    CLOUD = "cloud"


def escape_text(text: str) -> str:
    """Escape &, <, >, and both quote characters."""
    return (
        text
        .replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&apos;")
    )


def format_rate(rate_percent: int) -> str:
    """Relative rate as an absolute percentage: 10 -> "110%"."""
    return f"{100 + rate_percent}%"


def format_pitch(pitch_semitones: int) -> str:
    """Signed semitones: 0 -> "+0st", -2 -> "-2st"."""
    if pitch_semitones >= 0:
        return f"+{pitch_semitones}st"
    return f"{pitch_semitones}st"


def speaking_rate(rate_percent: int) -> float:
    """Cloud speaking-rate factor: 10 -> 1.1."""
    return 1.0 + rate_percent / 100.0


def volume_gain_db(volume_level: str) -> float:
    return VOLUME_GAIN_DB.get(volume_level, 0.0)


def _speak_open() -> str:
    return (
        f'<speak version="{SSML_VERSION}" xmlns="{SSML_NAMESPACE}" '
        f'xml:lang="{SSML_LANGUAGE}">'
    )


def _emphasis(content: str, prosody: ProsodySettings) -> str:
    if prosody.emphasis_level and prosody.emphasis_level != "none":
        return f'<emphasis level="{prosody.emphasis_level}">{content}</emphasis>'
    return content


def _break(prosody: ProsodySettings) -> str:
    if prosody.break_ms > 0:
        return f'<break time="{prosody.break_ms}ms"/>'
    return ""


def _prosody_fragment(text: str, prosody: ProsodySettings) -> str:
    """<prosody ...>[<emphasis>]text[</emphasis>]</prosody><break/>"""
    return (
        f'<prosody rate="{format_rate(prosody.rate_percent)}" '
        f'pitch="{format_pitch(prosody.pitch_semitones)}" '
        f'volume="{prosody.volume_level}">'
        f"{_emphasis(escape_text(text), prosody)}"
        "</prosody>"
        f"{_break(prosody)}"
    )


def _voice_fragment(text: str, prosody: ProsodySettings, voice_name: str) -> str:
    return f'<voice name="{escape_text(voice_name)}">{_prosody_fragment(text, prosody)}</voice>'


def build_ssml(
    text: str,
    prosody: ProsodySettings,
    dialect: Dialect,
    voice_name: str | None = None,
) -> str:
    """Build a single-segment SSML document.

    LOCAL: speak > voice (if voice_name) > prosody > emphasis? > text, then break.
    CLOUD: speak > emphasis? > text, then break.
    """
    if text is None or prosody is None:
        raise ValueError("text and prosody are required")

    if dialect is Dialect.CLOUD:
        content = _emphasis(escape_text(text), prosody) + _break(prosody)
        return f"<speak>{content}</speak>"

    if voice_name:
        content = _voice_fragment(text, prosody, voice_name)
    else:
        content = _prosody_fragment(text, prosody)
    return f"{_speak_open()}{content}</speak>"


def build_cloud_config(
    prosody: ProsodySettings,
    voice_name: str,
    gender: str = "NEUTRAL",
    language_code: str = SSML_LANGUAGE,
    audio_encoding: str = GOOGLE_AUDIO_ENCODING,
) -> dict:
    """Synthesis config sent alongside cloud markup."""
    return {
        "voice": {
            "languageCode": language_code,
            "name": voice_name,
            "ssmlGender": gender,
        },
        "audioConfig": {
            "audioEncoding": audio_encoding,
            "speakingRate": speaking_rate(prosody.rate_percent),
            "pitch": prosody.pitch_semitones,
            "volumeGainDb": volume_gain_db(prosody.volume_level),
        },
    }


def build_cloud_request(
    text: str,
    prosody: ProsodySettings,
    voice_name: str,
    gender: str = "NEUTRAL",
) -> dict:
    """Full cloud synthesize request body: input plus synthesis config."""
    if prosody.use_ssml:
        synthesis_input = {"ssml": build_ssml(text, prosody, Dialect.CLOUD)}
    else:
        synthesis_input = {"text": text}
    return {"input": synthesis_input, **build_cloud_config(prosody, voice_name, gender)}


def build_multi_voice_ssml(
    segments: list[Segment],
    source_text: str,
    default_prosody: ProsodySettings,
) -> str:
    """One LOCAL document with a voice element per segment.

    Segment i is paired with split chunk i of the source text; pairing stops
    at the shorter of the two lists and empty chunks are skipped.
    """
    chunks = split_raw(source_text)
    lines = [_speak_open()]
    for segment, chunk in zip(segments, chunks):
        text = chunk.strip()
        if not text:
            continue
        prosody = segment.prosody or default_prosody
        lines.append("  " + _voice_fragment(text, prosody, segment.voice_name))
    lines.append("</speak>")
    return "\n".join(lines)


def build_preview(
    source_text: str | None,
    prosody: ProsodySettings,
    segments: list[Segment] | None = None,
) -> str:
    """Markup preview for the current text and settings.

    Multi-voice document when segments exist, otherwise a single-voice LOCAL
    document for the first chunk.
    """
    if not source_text:
        return f"<speak>{PREVIEW_PLACEHOLDER}</speak>"
    if segments:
        return build_multi_voice_ssml(segments, source_text, prosody)

    first = split_raw(source_text)[0].strip() or PREVIEW_PLACEHOLDER
    return build_ssml(first, prosody, Dialect.LOCAL)
