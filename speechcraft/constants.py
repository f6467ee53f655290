"""All magic numbers and configuration constants."""

DEFAULT_VOICE_NAME = "Default"              # voice name used when no voices are configured
MARKER_MATCH_EPSILON = 0.01                 # seconds: nearest-marker tolerance for legacy segments
DEFAULT_PREVIEW_DURATION = 10.0             # seconds: timeline length for a text preview
SPLIT_TAG = "<split>"                       # token inserted between voice changes
SPLIT_INDEX_WIDTH = 3                       # zero-padding for numbered split exports
PREVIEW_PLACEHOLDER = "Sample text"         # markup preview text when input is empty

SSML_VERSION = "1.0"
SSML_LANGUAGE = "en-US"
SSML_NAMESPACE = "http://www.w3.org/2001/10/synthesis"

VOLUME_LEVELS = ("silent", "x-soft", "soft", "medium", "loud", "x-loud")
EMPHASIS_LEVELS = ("none", "reduced", "moderate", "strong")

# Cloud dialect volume gain in decibels
VOLUME_GAIN_DB = {
    "silent": -96.0,
    "x-soft": -12.0,
    "soft": -6.0,
    "medium": 0.0,
    "loud": 6.0,
    "x-loud": 12.0,
}

# OS engine volume (0.0–1.0) when markup rendering is off
LOCAL_VOLUME = {
    "silent": 0.0,
    "x-soft": 0.2,
    "soft": 0.4,
    "medium": 0.6,
    "loud": 0.8,
    "x-loud": 1.0,
}
LOCAL_BASE_RATE_WPM = 200                   # pyttsx3 default words per minute

# edge-tts volume offsets
EDGE_VOLUME = {
    "silent": "-100%",
    "x-soft": "-50%",
    "soft": "-25%",
    "medium": "+0%",
    "loud": "+25%",
    "x-loud": "+50%",
}
EDGE_HZ_PER_SEMITONE = 12                   # ~1 semitone around a 200 Hz voice

OUTPUT_FRAME_RATE = 44100                   # concatenated output sample rate
OUTPUT_SAMPLE_WIDTH = 2                     # bytes: 16 bit
OUTPUT_CHANNELS = 1                         # mono
MP3_BITRATE = "128k"

TTS_RETRY_COUNT = 3                         # max attempts per edge-tts segment
TTS_RETRY_BASE_DELAY = 1.0                  # seconds: base delay for exponential backoff

GOOGLE_TTS_URL = "https://texttospeech.googleapis.com/v1/text:synthesize"
GOOGLE_TIMEOUT_SECONDS = 30
GOOGLE_DEFAULT_VOICE = "en-US-Wavenet-D"
GOOGLE_FALLBACK_VOICE = "en-US-Standard-A"
GOOGLE_AUDIO_ENCODING = "LINEAR16"
GOOGLE_API_KEY_ENV = "GOOGLE_API_KEY"

# Display name -> voice id
GOOGLE_VOICES = {
    "en-US-Wavenet-A (Female)": "en-US-Wavenet-A",
    "en-US-Wavenet-B (Male)": "en-US-Wavenet-B",
    "en-US-Wavenet-C (Female)": "en-US-Wavenet-C",
    "en-US-Wavenet-D (Male)": "en-US-Wavenet-D",
    "en-US-Wavenet-E (Female)": "en-US-Wavenet-E",
    "en-US-Wavenet-F (Female)": "en-US-Wavenet-F",
    "en-US-Neural2-A (Male)": "en-US-Neural2-A",
    "en-US-Neural2-C (Female)": "en-US-Neural2-C",
    "en-US-Neural2-D (Male)": "en-US-Neural2-D",
    "en-US-Neural2-E (Female)": "en-US-Neural2-E",
    "en-US-Standard-A (Male)": "en-US-Standard-A",
    "en-US-Standard-B (Male)": "en-US-Standard-B",
    "en-US-Standard-C (Female)": "en-US-Standard-C",
    "en-US-Standard-D (Male)": "en-US-Standard-D",
    "en-US-Standard-E (Female)": "en-US-Standard-E",
}

# Hardcoded English voice pool for edge-tts (avoids network call at startup)
EDGE_VOICES = [
    "en-US-AriaNeural",
    "en-US-GuyNeural",
    "en-US-JennyNeural",
    "en-US-DavisNeural",
    "en-US-TonyNeural",
    "en-US-SaraNeural",
    "en-GB-SoniaNeural",
    "en-GB-RyanNeural",
    "en-AU-NatashaNeural",
    "en-AU-WilliamNeural",
]

PROJECT_SUFFIX = ".speechcraft.json"
VERSION = "0.1.0"
