"""Shared fixtures for SpeechCraft tests."""

import pytest
from pydub import AudioSegment

from speechcraft.backends import TTSBackend
from speechcraft.models import ProsodySettings


class FakeBackend(TTSBackend):
    """In-memory backend recording every call.

    fail_on: texts whose synthesis reports failure.
    """

    name = "fake"

    def __init__(self, voices=None, fail_on=()):
        super().__init__()
        self.voices = list(voices if voices is not None else ["Alice", "Bob", "Carol"])
        self.current_voice = self.voices[0] if self.voices else None
        self.fail_on = set(fail_on)
        self.spoken = []        # (voice, text, prosody)
        self.saved = []         # (voice, text, path)
        self.selected = []
        self.cancelled = 0
        self.on_synthesize = None

    def list_voices(self):
        return list(self.voices)

    def select_voice(self, voice_name):
        self.selected.append(voice_name)
        if voice_name in self.voices:
            self.current_voice = voice_name

    def speak(self, text, prosody):
        if self.on_synthesize:
            self.on_synthesize(text)
        self.spoken.append((self.current_voice, text, prosody))
        return text not in self.fail_on

    def synthesize_to_file(self, text, output_path, prosody):
        if self.on_synthesize:
            self.on_synthesize(text)
        if text in self.fail_on:
            return False
        AudioSegment.silent(duration=100, frame_rate=22050).export(output_path, format="wav")
        self.saved.append((self.current_voice, text, output_path))
        return True

    def cancel_current(self):
        self.cancelled += 1


@pytest.fixture
def fake_backend():
    return FakeBackend()


@pytest.fixture
def voices():
    return ["Alice", "Bob", "Carol"]


@pytest.fixture
def loud_prosody():
    return ProsodySettings(rate_percent=10, pitch_semitones=-2, volume_level="loud", break_ms=300)


@pytest.fixture
def tiny_wav(tmp_path):
    """Generate a 100ms silent WAV for testing."""
    path = tmp_path / "test.wav"
    AudioSegment.silent(duration=100).export(str(path), format="wav")
    return path
