"""Tests for orchestrator module (speak-all, save-all, save-split)."""

import os
import shutil

import pytest
from pydub import AudioSegment

from conftest import FakeBackend
from speechcraft.models import ProsodySettings, Segment
from speechcraft.orchestrator import (
    RunInProgressError,
    RunState,
    Session,
    pair_segments,
)


def _segments(*voices, prosody=None):
    return [
        Segment(float(i), float(i + 1), voice, prosody=prosody)
        for i, voice in enumerate(voices)
    ]


def test_session_requires_backend():
    with pytest.raises(ValueError):
        Session(None)


def test_pair_segments_truncates_and_skips_empty():
    segments = _segments("Alice", "Bob", "Carol")
    pairs = pair_segments(segments, "A <split>  <split> C <split> D")
    assert [(i, s.voice_name, t) for i, s, t in pairs] == [(0, "Alice", "A"), (2, "Carol", "C")]


def test_pair_segments_uses_segment_text():
    segments = [Segment(0.0, 1.0, "Alice", "One"), Segment(1.0, 2.0, "Bob", "")]
    assert [t for _, _, t in pair_segments(segments)] == ["One"]


def test_speak_all_uses_segment_voices(fake_backend, loud_prosody):
    segments = _segments("Bob", "Carol")
    segments[1].prosody = loud_prosody
    result = Session(fake_backend).speak_all(segments, "Hi <split> There")

    assert result.state is RunState.COMPLETED
    assert result.ok
    assert result.completed == result.total == 2
    assert [(v, t) for v, t, _ in fake_backend.spoken] == [("Bob", "Hi"), ("Carol", "There")]
    assert fake_backend.spoken[0][2] == ProsodySettings()
    assert fake_backend.spoken[1][2] is loud_prosody


def test_speak_all_restores_voice(fake_backend):
    Session(fake_backend).speak_all(_segments("Bob", "Carol"), "a <split> b")
    assert fake_backend.current_voice == "Alice"
    assert fake_backend.selected[-1] == "Alice"


def test_speak_all_skips_unknown_voice(fake_backend):
    Session(fake_backend).speak_all(_segments("Zed"), "hello")
    assert "Zed" not in fake_backend.selected
    assert fake_backend.spoken[0][0] == "Alice"


def test_speak_all_without_segments_speaks_text(fake_backend):
    result = Session(fake_backend).speak_all([], "one <split> two")
    assert result.completed == 1
    assert fake_backend.spoken[0][1] == "one   two"


def test_speak_all_stops_at_first_failure():
    backend = FakeBackend(fail_on={"b"})
    result = Session(backend).speak_all(_segments("Alice", "Bob", "Carol"), "a <split> b <split> c")
    assert result.state is RunState.ABORTED
    assert result.failed == [1]
    assert result.completed == 1
    assert [t for _, t, _ in backend.spoken] == ["a", "b"]
    assert backend.current_voice == "Alice"


def test_speak_all_fewer_chunks_than_segments(fake_backend):
    result = Session(fake_backend).speak_all(_segments("Alice", "Bob", "Carol"), "a <split> b")
    assert result.total == 2
    assert [t for _, t, _ in fake_backend.spoken] == ["a", "b"]


def test_speak_segment(fake_backend):
    session = Session(fake_backend)
    result = session.speak_segment(_segments("Alice", "Bob"), 1, "a <split> b")
    assert result.completed == 1
    assert fake_backend.spoken == [("Bob", "b", ProsodySettings())]
    assert session.speak_segment(_segments("Alice"), 3, "a").state is RunState.IDLE


def test_cancel_stops_before_next_segment(fake_backend):
    session = Session(fake_backend)
    fake_backend.on_synthesize = lambda text: session.cancel() if text == "a" else None

    result = session.speak_all(_segments("Alice", "Bob", "Carol"), "a <split> b <split> c")

    assert result.state is RunState.ABORTED
    assert result.completed == 1
    assert [t for _, t, _ in fake_backend.spoken] == ["a"]
    assert fake_backend.cancelled == 1
    assert session.state is RunState.ABORTED


def test_second_run_is_rejected(fake_backend):
    session = Session(fake_backend)
    errors = []

    def reenter(text):
        if text == "a":
            try:
                session.speak_text("nested")
            except RunInProgressError as e:
                errors.append(e)

    fake_backend.on_synthesize = reenter
    result = session.speak_all(_segments("Alice", "Bob"), "a <split> b")

    assert len(errors) == 1
    assert result.completed == 2
    assert not session.is_running


def test_session_reusable_after_run(fake_backend):
    session = Session(fake_backend)
    session.speak_text("one")
    assert session.speak_text("two").state is RunState.COMPLETED


def test_save_all_joins_segments(fake_backend, tmp_path):
    output = str(tmp_path / "story.wav")
    result = Session(fake_backend).save_all(_segments("Alice", "Bob"), "a <split> b", output)

    assert result.ok
    assert result.paths == [output]
    audio = AudioSegment.from_wav(output)
    assert audio.frame_rate == 44100
    assert audio.channels == 1
    assert abs(len(audio) - 200) < 10
    assert [v for v, _, _ in fake_backend.saved] == ["Alice", "Bob"]
    assert not any(os.path.exists(p) for _, _, p in fake_backend.saved)


def test_save_all_failure_writes_nothing(tmp_path):
    backend = FakeBackend(fail_on={"b"})
    output = tmp_path / "story.wav"
    result = Session(backend).save_all(_segments("Alice", "Bob", "Carol"), "a <split> b <split> c", str(output))

    assert result.state is RunState.ABORTED
    assert result.failed == [1]
    assert not output.exists()
    assert not any(os.path.exists(p) for _, _, p in backend.saved)


def test_save_all_cancelled_keeps_finished_segments(fake_backend, tmp_path):
    session = Session(fake_backend)
    fake_backend.on_synthesize = lambda text: session.cancel() if text == "b" else None
    output = str(tmp_path / "story.wav")

    result = session.save_all(_segments("Alice", "Bob", "Carol"), "a <split> b <split> c", output)

    assert result.state is RunState.ABORTED
    assert result.completed == 2
    assert result.paths == [output]
    assert abs(len(AudioSegment.from_wav(output)) - 200) < 10


def test_save_all_requires_output(fake_backend):
    with pytest.raises(ValueError):
        Session(fake_backend).save_all(_segments("Alice"), "a", "")


def test_save_split_numbers_chunks(fake_backend, tmp_path):
    base = str(tmp_path / "story.wav")
    result = Session(fake_backend).save_split("one <split> two <split> three", base)

    assert result.ok
    assert result.paths == [str(tmp_path / f"story_00{i}.wav") for i in (1, 2, 3)]
    assert all(os.path.exists(p) for p in result.paths)


def test_save_split_skips_failures(tmp_path):
    backend = FakeBackend(fail_on={"two"})
    result = Session(backend).save_split("one <split> two <split> three", str(tmp_path / "x.wav"))
    assert result.state is RunState.COMPLETED
    assert result.failed == [1]
    assert result.paths == [str(tmp_path / "x_001.wav"), str(tmp_path / "x_003.wav")]
    assert not result.ok


def test_save_split_with_segments(fake_backend, tmp_path):
    base = str(tmp_path / "story.wav")
    segments = _segments("Carol", "Bob")
    result = Session(fake_backend).save_split("one <split> two <split> three", base, segments=segments)

    assert len(result.paths) == 2
    assert [(v, t) for v, t, _ in fake_backend.saved] == [("Carol", "one"), ("Bob", "two")]
    assert fake_backend.current_voice == "Alice"


@pytest.mark.skipif(shutil.which("ffmpeg") is None, reason="ffmpeg not installed")
def test_save_text_mp3(fake_backend, tmp_path):
    output = str(tmp_path / "story.mp3")
    result = Session(fake_backend).save_text("a <split> b", output)
    assert result.ok
    assert os.path.getsize(output) > 0


def test_save_text_wav(fake_backend, tmp_path):
    output = str(tmp_path / "story.wav")
    result = Session(fake_backend).save_text("a <split> b", output)
    assert result.paths == [output]
    assert fake_backend.saved[0][1] == "a   b"
