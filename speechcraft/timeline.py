"""Time markers and the segments derived from them."""

import logging

from speechcraft.constants import (
    DEFAULT_PREVIEW_DURATION,
    DEFAULT_VOICE_NAME,
    MARKER_MATCH_EPSILON,
)
from speechcraft.models import ProsodySettings, Segment, TimeMarker
from speechcraft.parser import (
    get_voice_assignments,
    has_voice_tags,
    process_voice_tags,
    split_by_tag,
    split_raw,
)

logger = logging.getLogger(__name__)


class Timeline:
    """Ordered time markers and the segment list derived from them.

    Every adjacent pair of markers (sorted by time) defines one segment that
    inherits the voice and prosody of its start marker. Segments are a
    derived view: edits go through apply_segment_settings(), which writes
    them back into the start marker before recomputing.

    on_change, if given, is called with the new segment list after every
    recompute.
    """

    def __init__(
        self,
        available_voices: list[str] | None = None,
        duration: float = DEFAULT_PREVIEW_DURATION,
        on_change=None,
    ):
        self.available_voices = list(available_voices or [])
        self.duration = duration
        self.on_change = on_change
        self.markers: list[TimeMarker] = []
        self.segments: list[Segment] = []
        self.source_text = ""

    def _default_voice(self) -> str:
        return self.available_voices[0] if self.available_voices else DEFAULT_VOICE_NAME

    def _clamp_time(self, time_seconds: float) -> float:
        return max(0.0, min(float(time_seconds), self.duration))

    def _append_marker(self, time_seconds: float, voice_name: str | None) -> TimeMarker:
        marker = TimeMarker(
            time_seconds=self._clamp_time(time_seconds),
            voice_name=voice_name or self._default_voice(),
        )
        self.markers.append(marker)
        return marker

    def sorted_markers(self) -> list[TimeMarker]:
        """Markers by time; ties keep insertion order."""
        return sorted(self.markers, key=lambda m: m.time_seconds)

    def recompute(self, source_text: str | None = None) -> list[Segment]:
        """Rebuild segments from the current markers.

        Segment i spans markers[i] to markers[i + 1] and takes text chunk i of
        the source text (split on split tags), or "" when there are fewer
        chunks than segments.
        """
        if source_text is not None:
            self.source_text = source_text

        ordered = self.sorted_markers()
        segments = []
        if len(ordered) >= 2:
            chunks = split_by_tag(self.source_text)
            for i in range(len(ordered) - 1):
                start = ordered[i]
                segments.append(Segment(
                    start_time=start.time_seconds,
                    end_time=ordered[i + 1].time_seconds,
                    voice_name=start.voice_name,
                    text=chunks[i] if i < len(chunks) else "",
                    prosody=start.prosody(),
                    marker_id=start.id,
                ))

        self.segments = segments
        if self.on_change is not None:
            self.on_change(list(segments))
        return segments

    def add_marker(self, time_seconds: float, voice_name: str | None = None) -> TimeMarker:
        """Add a marker, clamped into [0, duration]."""
        marker = self._append_marker(time_seconds, voice_name)
        logger.debug("Marker added at %.2fs (%s)", marker.time_seconds, marker.voice_name)
        self.recompute()
        return marker

    def delete_marker(self, marker_id: str) -> bool:
        """Delete a marker. Refused while only two markers remain."""
        if len(self.markers) <= 2:
            return False
        for marker in self.markers:
            if marker.id == marker_id:
                self.markers.remove(marker)
                self.recompute()
                return True
        return False

    def clear(self) -> None:
        self.markers = []
        self.recompute()

    def find_marker(self, segment: Segment) -> TimeMarker | None:
        """Return the start marker a segment was derived from.

        Segments built elsewhere (no marker_id) are matched to the marker
        closest to their start time, within MARKER_MATCH_EPSILON.
        """
        if segment.marker_id is not None:
            for marker in self.markers:
                if marker.id == segment.marker_id:
                    return marker
            return None

        candidates = [
            m for m in self.markers
            if abs(m.time_seconds - segment.start_time) < MARKER_MATCH_EPSILON
        ]
        if not candidates:
            return None
        return min(candidates, key=lambda m: abs(m.time_seconds - segment.start_time))

    def apply_segment_settings(
        self,
        index: int,
        voice_name: str,
        prosody: ProsodySettings,
    ) -> bool:
        """Apply a voice/prosody edit to segment `index` and its start marker."""
        if not 0 <= index < len(self.segments):
            return False
        segment = self.segments[index]
        marker = self.find_marker(segment)
        if marker is None:
            logger.warning("No marker found for segment %d at %.2fs", index, segment.start_time)
            return False

        if self.available_voices and voice_name not in self.available_voices:
            logger.info("Voice '%s' not available, using %s", voice_name, self._default_voice())
            voice_name = self._default_voice()
        voice_name = voice_name or self._default_voice()

        # copy, with out-of-range levels and breaks normalized
        settings = ProsodySettings.from_dict(prosody.to_dict())
        segment.voice_name = voice_name
        segment.prosody = settings
        marker.apply(voice_name, settings)
        self.recompute()
        return True

    def segment_at(self, time_seconds: float) -> Segment | None:
        for segment in self.segments:
            if segment.start_time <= time_seconds <= segment.end_time:
                return segment
        return None

    def derive_markers_from_text(self, text: str) -> list[Segment]:
        """Replace all markers with evenly spaced ones, one segment per text part.

        n parts (k split tags) get n + 1 markers at i * duration / n, voices
        assigned round-robin. Text without split tags gets a start and an end
        marker.
        """
        self.markers = []
        parts = split_raw(text)
        if len(parts) > 1:
            step = self.duration / len(parts)
            for i in range(len(parts) + 1):
                voice = (
                    self.available_voices[i % len(self.available_voices)]
                    if self.available_voices else DEFAULT_VOICE_NAME
                )
                self._append_marker(i * step, voice)
        else:
            self._append_marker(0.0, None)
            self._append_marker(self.duration, None)
        return self.recompute(text)

    def apply_voice_assignments(self, assignments: dict[int, str]) -> list[Segment]:
        """Set the voice of sorted marker i for every assignment i."""
        ordered = self.sorted_markers()
        for index, voice in assignments.items():
            if 0 <= index < len(ordered):
                ordered[index].voice_name = voice
        return self.recompute()

    def load_text(self, text: str) -> str:
        """Derive markers and segments for text, honouring voice tags.

        Voice-tagged text is rewritten to split-tagged text first and the tag
        voices override the round-robin defaults. Returns the text the
        segments were derived from.
        """
        assignments = {}
        if has_voice_tags(text) and self.available_voices:
            assignments = get_voice_assignments(text, self.available_voices)
            text = process_voice_tags(text, self.available_voices)

        self.derive_markers_from_text(text)
        if assignments:
            self.apply_voice_assignments(assignments)
        return text

    def to_dict(self) -> dict:
        return {
            "duration": self.duration,
            "markers": [
                {
                    "id": m.id,
                    "time_seconds": m.time_seconds,
                    "voice_name": m.voice_name,
                    "prosody": m.prosody().to_dict(),
                }
                for m in self.markers
            ],
        }

    @classmethod
    def from_dict(
        cls,
        data: dict,
        available_voices: list[str] | None = None,
        source_text: str = "",
        on_change=None,
    ) -> "Timeline":
        timeline = cls(
            available_voices=available_voices,
            duration=float(data.get("duration", DEFAULT_PREVIEW_DURATION)),
            on_change=on_change,
        )
        for item in data.get("markers", []):
            marker = timeline._append_marker(item["time_seconds"], item.get("voice_name"))
            if item.get("id"):
                marker.id = item["id"]
            marker.apply(marker.voice_name, ProsodySettings.from_dict(item.get("prosody")))
        timeline.recompute(source_text)
        return timeline
