"""Sequential multi-segment synthesis: speak-all, save-all and save-split."""

import logging
import os
import tempfile
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum

from speechcraft.audio import (
    concatenate_files,
    convert_wav_to_mp3,
    format_for_path,
    numbered_path,
    remove_quietly,
)
from speechcraft.backends import TTSBackend
from speechcraft.models import ProsodySettings, Segment
from speechcraft.parser import split_by_tag, split_raw, strip_split_tags

logger = logging.getLogger(__name__)


class RunState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"


class RunInProgressError(RuntimeError):
    """A second run was started on a session that is already running."""


@dataclass
class RunResult:
    state: RunState
    completed: int = 0
    total: int = 0
    paths: list[str] = field(default_factory=list)
    failed: list[int] = field(default_factory=list)   # segment/chunk indices

    @property
    def ok(self) -> bool:
        return self.state is RunState.COMPLETED and not self.failed


def _temp_wav() -> str:
    fd, path = tempfile.mkstemp(suffix=".wav")
    os.close(fd)
    return path


def pair_segments(
    segments: list[Segment],
    source_text: str | None = None,
) -> list[tuple[int, Segment, str]]:
    """Pair segment i with split chunk i of the source text.

    Pairing stops at the shorter list. Without source text each segment's
    own text is used. Pairs whose text is empty are left out.
    """
    if source_text is None:
        texts = [segment.text for segment in segments]
    else:
        texts = split_raw(source_text)
    pairs = []
    for index, (segment, text) in enumerate(zip(segments, texts)):
        text = text.strip()
        if text:
            pairs.append((index, segment, text))
    return pairs


class Session:
    """Drives one TTS backend through sequential, cancellable runs.

    Only one run may be active per session; the backend's current voice is
    restored when a run ends, however it ends.
    """

    def __init__(self, backend: TTSBackend):
        if backend is None:
            raise ValueError("backend is required")
        self.backend = backend
        self.state = RunState.IDLE
        self._cancel = threading.Event()
        self._guard = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self.state is RunState.RUNNING

    def cancel(self) -> None:
        """Stop the active run before its next segment."""
        self._cancel.set()
        self.backend.cancel_current()

    @contextmanager
    def _run(self, total: int):
        if not self._guard.acquire(blocking=False):
            raise RunInProgressError("a run is already in progress on this session")
        result = RunResult(state=RunState.RUNNING, total=total)
        previous_voice = self.backend.current_voice
        self._cancel.clear()
        self.state = RunState.RUNNING
        try:
            yield result
        except BaseException:
            result.state = RunState.ABORTED
            raise
        finally:
            if previous_voice and self.backend.current_voice != previous_voice:
                self.backend.select_voice(previous_voice)
            if result.state is RunState.RUNNING:
                result.state = RunState.COMPLETED
            self.state = result.state
            self._guard.release()
            logger.debug(
                "Run %s: %d/%d done, failed=%s",
                result.state.value, result.completed, result.total, result.failed,
            )

    def _cancelled(self, result: RunResult) -> bool:
        if self._cancel.is_set():
            result.state = RunState.ABORTED
            return True
        return False

    def _switch_voice(self, voice_name: str) -> None:
        if voice_name in self.backend.list_voices():
            self.backend.select_voice(voice_name)

    def _synthesize(self, text: str, output_path: str, prosody: ProsodySettings) -> bool:
        """Synthesize to output_path; MP3 goes through a temporary WAV."""
        if format_for_path(output_path) != "mp3":
            return self.backend.synthesize_to_file(text, output_path, prosody)
        temp_path = _temp_wav()
        try:
            return (
                self.backend.synthesize_to_file(text, temp_path, prosody)
                and convert_wav_to_mp3(temp_path, output_path)
            )
        finally:
            remove_quietly([temp_path])

    def speak_text(self, source_text: str | None, prosody: ProsodySettings | None = None) -> RunResult:
        """Speak the whole text in the current voice, split tags removed."""
        prosody = prosody or ProsodySettings()
        text = strip_split_tags(source_text).strip()
        with self._run(1 if text else 0) as result:
            if text and not self._cancelled(result):
                if self.backend.speak(text, prosody):
                    result.completed = 1
                else:
                    result.failed.append(0)
                    result.state = RunState.ABORTED
        return result

    def speak_all(
        self,
        segments: list[Segment],
        source_text: str | None = None,
        default_prosody: ProsodySettings | None = None,
    ) -> RunResult:
        """Speak each segment in its own voice; stop at the first failure.

        With no segments the whole text is spoken in the current voice.
        """
        default_prosody = default_prosody or ProsodySettings()
        if not segments:
            return self.speak_text(source_text, default_prosody)

        pairs = pair_segments(segments, source_text)
        with self._run(len(pairs)) as result:
            for index, segment, text in pairs:
                if self._cancelled(result):
                    break
                self._switch_voice(segment.voice_name)
                logger.debug("Speaking segment %d with %s", index + 1, segment.voice_name)
                if not self.backend.speak(text, segment.prosody or default_prosody):
                    result.failed.append(index)
                    result.state = RunState.ABORTED
                    break
                result.completed += 1
        return result

    def speak_segment(
        self,
        segments: list[Segment],
        index: int,
        source_text: str | None = None,
        default_prosody: ProsodySettings | None = None,
    ) -> RunResult:
        """Speak a single selected segment. Nothing to speak returns an IDLE result."""
        pairs = [p for p in pair_segments(segments, source_text) if p[0] == index]
        if not pairs:
            return RunResult(state=RunState.IDLE)
        _, segment, text = pairs[0]
        with self._run(1) as result:
            if not self._cancelled(result):
                self._switch_voice(segment.voice_name)
                if self.backend.speak(text, segment.prosody or default_prosody or ProsodySettings()):
                    result.completed = 1
                else:
                    result.failed.append(index)
                    result.state = RunState.ABORTED
        return result

    def save_all(
        self,
        segments: list[Segment],
        source_text: str | None,
        output_path: str,
        default_prosody: ProsodySettings | None = None,
    ) -> RunResult:
        """Synthesize every segment to a temp file and join them into output_path.

        A failed segment aborts the run and nothing is written. A cancelled run
        still joins the segments finished so far. Temp files are always removed.
        """
        if not output_path:
            raise ValueError("output_path is required")
        default_prosody = default_prosody or ProsodySettings()
        pairs = pair_segments(segments, source_text)
        temp_paths = []

        with self._run(len(pairs)) as result:
            try:
                for index, segment, text in pairs:
                    if self._cancelled(result):
                        break
                    self._switch_voice(segment.voice_name)
                    temp_path = _temp_wav()
                    temp_paths.append(temp_path)
                    logger.debug("Saving segment %d/%d with %s", index + 1, len(pairs), segment.voice_name)
                    if not self.backend.synthesize_to_file(text, temp_path, segment.prosody or default_prosody):
                        result.failed.append(index)
                        result.state = RunState.ABORTED
                        break
                    result.completed += 1

                if not result.failed and result.completed:
                    if concatenate_files(temp_paths[:result.completed], output_path):
                        result.paths.append(output_path)
                    else:
                        result.state = RunState.ABORTED
            finally:
                remove_quietly(temp_paths)
        return result

    def save_split(
        self,
        source_text: str | None,
        base_path: str,
        prosody: ProsodySettings | None = None,
        fmt: str | None = None,
        segments: list[Segment] | None = None,
    ) -> RunResult:
        """Write one numbered file per split chunk: base_001.wav, base_002.wav, ...

        Failed chunks are left out of result.paths and the run continues.
        When segments are given, chunk i uses segment i's voice and prosody and
        the run stops at the shorter of the two lists.
        """
        if not base_path:
            raise ValueError("base_path is required")
        prosody = prosody or ProsodySettings()
        fmt = fmt or format_for_path(base_path)

        chunks = split_by_tag(source_text)
        if segments is not None:
            chunks = chunks[:len(segments)]
        items = [(i, chunk) for i, chunk in enumerate(chunks) if chunk]

        with self._run(len(items)) as result:
            for index, chunk in items:
                if self._cancelled(result):
                    break
                chunk_prosody = prosody
                if segments is not None:
                    self._switch_voice(segments[index].voice_name)
                    chunk_prosody = segments[index].prosody or prosody

                path = numbered_path(base_path, index + 1, fmt)
                if self._synthesize(chunk, path, chunk_prosody):
                    result.paths.append(path)
                    result.completed += 1
                else:
                    logger.warning("Chunk %d could not be saved to %s", index + 1, path)
                    result.failed.append(index)
        return result

    def save_text(
        self,
        source_text: str | None,
        output_path: str,
        prosody: ProsodySettings | None = None,
    ) -> RunResult:
        """Save the whole text, split tags removed, to one file in the current voice."""
        if not output_path:
            raise ValueError("output_path is required")
        prosody = prosody or ProsodySettings()
        text = strip_split_tags(source_text).strip()
        with self._run(1 if text else 0) as result:
            if text and not self._cancelled(result):
                if self._synthesize(text, output_path, prosody):
                    result.completed = 1
                    result.paths.append(output_path)
                else:
                    result.failed.append(0)
                    result.state = RunState.ABORTED
        return result
