"""Speech backends: OS engine (pyttsx3), Google Cloud TTS, and edge-tts.

Every backend exposes the same capability: list voices, select a voice
(best effort, never raises), synthesize to live playback or to a file
(reporting success as a bool), and cancel the current utterance.
"""

import asyncio
import base64
import logging
import os
import tempfile
import time
from abc import ABC, abstractmethod

import edge_tts
import pyttsx3
import requests
from pydub import AudioSegment
from pydub.playback import play

from speechcraft.audio import format_for_path, remove_quietly
from speechcraft.constants import (
    EDGE_HZ_PER_SEMITONE,
    EDGE_VOICES,
    EDGE_VOLUME,
    GOOGLE_DEFAULT_VOICE,
    GOOGLE_FALLBACK_VOICE,
    GOOGLE_TIMEOUT_SECONDS,
    GOOGLE_TTS_URL,
    GOOGLE_VOICES,
    LOCAL_BASE_RATE_WPM,
    LOCAL_VOLUME,
    TTS_RETRY_BASE_DELAY,
    TTS_RETRY_COUNT,
)
from speechcraft.models import ProsodySettings
from speechcraft.ssml import Dialect, build_cloud_request, build_ssml

logger = logging.getLogger(__name__)


class TTSBackend(ABC):
    name = "base"

    def __init__(self):
        self.current_voice: str | None = None

    @abstractmethod
    def list_voices(self) -> list[str]:
        ...

    @abstractmethod
    def select_voice(self, voice_name: str) -> None:
        ...

    @abstractmethod
    def synthesize_to_file(self, text: str, output_path: str, prosody: ProsodySettings) -> bool:
        ...

    def speak(self, text: str, prosody: ProsodySettings) -> bool:
        """Synthesize to a temporary WAV and play it."""
        fd, temp_path = tempfile.mkstemp(suffix=".wav")
        os.close(fd)
        try:
            if not self.synthesize_to_file(text, temp_path, prosody):
                return False
            play(AudioSegment.from_wav(temp_path))
            return True
        except Exception as e:
            logger.warning("%s playback failed: %s", self.name, e)
            return False
        finally:
            remove_quietly([temp_path])

    def cancel_current(self) -> None:
        pass


class LocalBackend(TTSBackend):
    """The operating system's speech engine through pyttsx3.

    With markup rendering on, the engine receives a local-dialect SSML
    document naming the current voice (SAPI5 parses it); otherwise rate and
    volume are set as engine properties and the plain text is spoken.
    """

    name = "local"

    def __init__(self, engine=None):
        self._current_voice = None
        self._engine = engine
        super().__init__()
        if engine is not None:
            self._init_current_voice()

    @property
    def engine(self):
        if self._engine is None:
            self._engine = pyttsx3.init()
            self._init_current_voice()
        return self._engine

    @property
    def current_voice(self) -> str | None:
        """The selected voice; reading it starts the engine."""
        if self._current_voice is None:
            self.engine
        return self._current_voice

    @current_voice.setter
    def current_voice(self, value: str | None) -> None:
        self._current_voice = value

    def _init_current_voice(self):
        voices = self._voices()
        if voices and self._current_voice is None:
            self._current_voice = voices[0].name

    def _voices(self) -> list:
        return list(self.engine.getProperty("voices") or [])

    def list_voices(self) -> list[str]:
        return [voice.name for voice in self._voices()]

    def select_voice(self, voice_name: str) -> None:
        """Select by exact name, then by substring; keep the current voice otherwise."""
        voices = self._voices()
        match = next((v for v in voices if v.name == voice_name), None)
        if match is None and voice_name:
            match = next(
                (v for v in voices if voice_name in v.name or v.name in voice_name),
                None,
            )
        if match is None:
            logger.info("Voice '%s' not installed, keeping %s", voice_name, self.current_voice)
            return
        try:
            self.engine.stop()
            self.engine.setProperty("voice", match.id)
        except Exception as e:
            logger.warning("Could not select voice %s: %s", match.name, e)
            return
        self._current_voice = match.name
        logger.debug("Voice set to: %s", match.name)

    def _prepare(self, text: str, prosody: ProsodySettings) -> str:
        if prosody.use_ssml:
            self.engine.setProperty("rate", LOCAL_BASE_RATE_WPM)
            self.engine.setProperty("volume", 1.0)
            return build_ssml(text, prosody, Dialect.LOCAL, voice_name=self.current_voice)

        rate = LOCAL_BASE_RATE_WPM * (100 + prosody.rate_percent) / 100
        self.engine.setProperty("rate", max(1, int(rate)))
        self.engine.setProperty("volume", LOCAL_VOLUME.get(prosody.volume_level, LOCAL_VOLUME["medium"]))
        return text

    def speak(self, text: str, prosody: ProsodySettings) -> bool:
        try:
            self.engine.say(self._prepare(text, prosody))
            self.engine.runAndWait()
        except Exception as e:
            logger.warning("Local speech failed: %s", e)
            return False
        return True

    def synthesize_to_file(self, text: str, output_path: str, prosody: ProsodySettings) -> bool:
        try:
            self.engine.save_to_file(self._prepare(text, prosody), output_path)
            self.engine.runAndWait()
        except Exception as e:
            logger.warning("Local synthesis to %s failed: %s", output_path, e)
            return False
        if not os.path.exists(output_path):
            logger.warning("Local engine produced no file at %s", output_path)
            return False
        return True

    def cancel_current(self) -> None:
        if self._engine is not None:
            self._engine.stop()


def _gender_from_suffix(voice_id: str) -> str:
    if any(s in voice_id for s in ("Female", "-C", "-E", "-F", "-H")):
        return "FEMALE"
    if any(s in voice_id for s in ("Male", "-A", "-B", "-D", "-I", "-J")):
        return "MALE"
    return "NEUTRAL"


class GoogleCloudBackend(TTSBackend):
    """Google Cloud Text-to-Speech over its REST API.

    Markup carries only emphasis and breaks; voice, speaking rate, pitch and
    volume gain go in the request's voice/audioConfig objects.
    """

    name = "google"

    def __init__(self, api_key: str):
        super().__init__()
        if not api_key:
            raise ValueError("Google Cloud TTS requires an API key")
        self.api_key = api_key
        self.current_voice = GOOGLE_DEFAULT_VOICE

    def list_voices(self) -> list[str]:
        return list(GOOGLE_VOICES)

    def select_voice(self, voice_name: str) -> None:
        """Accept a display name or a voice id; unknown names fall back to a standard voice."""
        if voice_name in GOOGLE_VOICES:
            self.current_voice = GOOGLE_VOICES[voice_name]
        elif voice_name in GOOGLE_VOICES.values():
            self.current_voice = voice_name
        else:
            match = None
            if voice_name:
                match = next(
                    (vid for display, vid in GOOGLE_VOICES.items()
                     if voice_name in display or voice_name in vid),
                    None,
                )
            if match:
                self.current_voice = match
            else:
                self.current_voice = GOOGLE_FALLBACK_VOICE
                logger.info("Voice '%s' not found, using default: %s", voice_name, GOOGLE_FALLBACK_VOICE)
        logger.debug("Google TTS voice set to: %s", self.current_voice)

    def gender(self) -> str:
        for display, vid in GOOGLE_VOICES.items():
            if vid == self.current_voice:
                if "(Female)" in display:
                    return "FEMALE"
                if "(Male)" in display:
                    return "MALE"
        return _gender_from_suffix(self.current_voice)

    def synthesize_to_file(self, text: str, output_path: str, prosody: ProsodySettings) -> bool:
        body = build_cloud_request(text, prosody, self.current_voice, self.gender())
        try:
            response = requests.post(
                GOOGLE_TTS_URL,
                params={"key": self.api_key},
                json=body,
                timeout=GOOGLE_TIMEOUT_SECONDS,
            )
        except requests.RequestException as e:
            logger.warning("Google TTS network error: %s", e)
            return False

        if response.status_code != 200:
            try:
                message = response.json().get("error", {}).get("message", "Unknown error")
            except ValueError:
                message = response.text or "Unknown error"
            if response.status_code == 403:
                logger.warning("Google TTS 403: API key may be invalid or Text-to-Speech API not enabled")
            logger.warning(
                "Google TTS error %s (voice %s, gender %s): %s",
                response.status_code, self.current_voice, self.gender(), message,
            )
            return False

        audio_content = response.json().get("audioContent")
        if not audio_content:
            logger.warning("Google TTS returned no audio content")
            return False

        with open(output_path, "wb") as f:
            f.write(base64.b64decode(audio_content))
        logger.debug("Saved %s using voice %s", output_path, self.current_voice)
        return True


class EdgeBackend(TTSBackend):
    """Microsoft Edge neural voices via edge-tts, with retry logic.

    Rate, pitch and volume map onto edge-tts's prosody arguments and breaks
    are appended as silence. Emphasis has no edge-tts equivalent.
    """

    name = "edge"

    def __init__(
        self,
        voices: list[str] | None = None,
        retry_count: int = TTS_RETRY_COUNT,
        retry_delay: float = TTS_RETRY_BASE_DELAY,
    ):
        super().__init__()
        self.voices = list(voices or EDGE_VOICES)
        self.retry_count = retry_count
        self.retry_delay = retry_delay
        self.current_voice = self.voices[0]

    def list_voices(self) -> list[str]:
        return list(self.voices)

    def select_voice(self, voice_name: str) -> None:
        if voice_name in self.voices:
            self.current_voice = voice_name
        else:
            logger.info("Voice '%s' not in pool, keeping %s", voice_name, self.current_voice)

    @staticmethod
    def prosody_args(prosody: ProsodySettings) -> dict:
        """edge-tts keyword arguments, e.g. rate="+10%", volume="+25%", pitch="-24Hz"."""
        return {
            "rate": f"{prosody.rate_percent:+d}%",
            "volume": EDGE_VOLUME.get(prosody.volume_level, EDGE_VOLUME["medium"]),
            "pitch": f"{prosody.pitch_semitones * EDGE_HZ_PER_SEMITONE:+d}Hz",
        }

    def _save_mp3(self, text: str, mp3_path: str, prosody: ProsodySettings) -> bool:
        """Save edge-tts MP3 output. Retries on errors or 0-byte output."""
        last_error = None
        for attempt in range(self.retry_count):
            try:
                communicate = edge_tts.Communicate(text, self.current_voice, **self.prosody_args(prosody))
                asyncio.run(communicate.save(mp3_path))

                if os.path.exists(mp3_path) and os.path.getsize(mp3_path) > 0:
                    return True
                last_error = f"0-byte file for: {text[:50]}"
            except Exception as e:
                last_error = e

            # Exponential backoff
            if attempt < self.retry_count - 1:
                time.sleep(self.retry_delay * (2 ** attempt))

        logger.warning("edge-tts failed after %d attempts: %s", self.retry_count, last_error)
        return False

    def synthesize_to_file(self, text: str, output_path: str, prosody: ProsodySettings) -> bool:
        fmt = format_for_path(output_path)
        if fmt == "mp3" and prosody.break_ms <= 0:
            return self._save_mp3(text, output_path, prosody)

        temp_mp3 = output_path + ".part.mp3"
        try:
            if not self._save_mp3(text, temp_mp3, prosody):
                return False
            audio = AudioSegment.from_mp3(temp_mp3)
            if prosody.break_ms > 0:
                audio += AudioSegment.silent(duration=prosody.break_ms)
            audio.export(output_path, format=fmt)
        except Exception as e:
            logger.warning("edge-tts conversion to %s failed: %s", output_path, e)
            return False
        finally:
            remove_quietly([temp_mp3])
        return True


BACKENDS = ("local", "google", "edge")


def create_backend(name: str, api_key: str | None = None) -> TTSBackend:
    """Backend factory for "local", "google" or "edge"."""
    if name == "local":
        return LocalBackend()
    if name == "google":
        return GoogleCloudBackend(api_key)
    if name == "edge":
        return EdgeBackend()
    raise ValueError(f"Unknown backend: {name}")
