"""Data models for segmentation and synthesis."""

import uuid
from dataclasses import dataclass, field, replace

from speechcraft.constants import VOLUME_LEVELS, EMPHASIS_LEVELS


@dataclass
class ProsodySettings:
    rate_percent: int = 0          # relative to normal speed, 10 = 10% faster
    pitch_semitones: int = 0
    volume_level: str = "medium"   # one of VOLUME_LEVELS
    emphasis_level: str = "none"   # one of EMPHASIS_LEVELS
    break_ms: int = 0              # pause appended after the text
    use_ssml: bool = True

    def clone(self) -> "ProsodySettings":
        return replace(self)

    def to_dict(self) -> dict:
        return {
            "rate_percent": self.rate_percent,
            "pitch_semitones": self.pitch_semitones,
            "volume_level": self.volume_level,
            "emphasis_level": self.emphasis_level,
            "break_ms": self.break_ms,
            "use_ssml": self.use_ssml,
        }

    @classmethod
    def from_dict(cls, data: dict | None) -> "ProsodySettings":
        """Build settings from a project-file dict.

        Unknown volume/emphasis strings fall back to the defaults and a
        negative break is treated as no break.
        """
        data = data or {}
        volume = data.get("volume_level", "medium")
        emphasis = data.get("emphasis_level", "none")
        return cls(
            rate_percent=int(data.get("rate_percent", 0)),
            pitch_semitones=int(data.get("pitch_semitones", 0)),
            volume_level=volume if volume in VOLUME_LEVELS else "medium",
            emphasis_level=emphasis if emphasis in EMPHASIS_LEVELS else "none",
            break_ms=max(0, int(data.get("break_ms", 0))),
            use_ssml=bool(data.get("use_ssml", True)),
        )


@dataclass
class TimeMarker:
    time_seconds: float
    voice_name: str
    rate_percent: int = 0
    pitch_semitones: int = 0
    volume_level: str = "medium"
    emphasis_level: str = "none"
    break_ms: int = 0
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def prosody(self) -> ProsodySettings:
        """Fresh ProsodySettings copied from this marker's fields."""
        return ProsodySettings(
            rate_percent=self.rate_percent,
            pitch_semitones=self.pitch_semitones,
            volume_level=self.volume_level,
            emphasis_level=self.emphasis_level,
            break_ms=self.break_ms,
        )

    def apply(self, voice_name: str, prosody: ProsodySettings) -> None:
        """Write a segment edit back into this marker."""
        self.voice_name = voice_name
        self.rate_percent = prosody.rate_percent
        self.pitch_semitones = prosody.pitch_semitones
        self.volume_level = prosody.volume_level
        self.emphasis_level = prosody.emphasis_level
        self.break_ms = prosody.break_ms


@dataclass
class Segment:
    start_time: float
    end_time: float
    voice_name: str
    text: str = ""
    prosody: ProsodySettings | None = None
    marker_id: str | None = None   # id of the start marker this was derived from


@dataclass
class VoiceSegment:
    text: str
    voice_index: int
    voice_name: str
