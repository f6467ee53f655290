"""Project files: source text, markers and settings persisted as JSON."""

import json
import logging
import os
from datetime import datetime, timezone

from speechcraft.constants import PROJECT_SUFFIX, VERSION
from speechcraft.models import ProsodySettings
from speechcraft.timeline import Timeline

logger = logging.getLogger(__name__)


def project_path_for(text_path: str) -> str:
    """Project file next to a text file.

    "scripts/intro.txt" → "scripts/intro.speechcraft.json"
    """
    base = os.path.splitext(text_path)[0]
    return base + PROJECT_SUFFIX


def write_project(path: str, data: dict) -> str:
    """Write project JSON to path. Returns the path."""
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(path, "w") as f:
        json.dump(data, f, indent=2)
    return path


def load_project(path: str) -> dict | None:
    """Read project JSON. Returns None if missing or malformed."""
    if not os.path.exists(path):
        return None
    try:
        with open(path) as f:
            return json.load(f)
    except json.JSONDecodeError:
        logger.warning("Malformed project file: %s", path)
        return None


def project_from_timeline(
    timeline: Timeline,
    text: str,
    prosody: ProsodySettings,
    backend: str,
) -> dict:
    return {
        "version": VERSION,
        "saved_at": datetime.now(timezone.utc).isoformat(),
        "backend": backend,
        "voices": list(timeline.available_voices),
        "text": text,
        "prosody": prosody.to_dict(),
        "timeline": timeline.to_dict(),
    }


def timeline_from_project(
    data: dict,
    available_voices: list[str] | None = None,
    on_change=None,
) -> Timeline:
    """Rebuild the timeline (markers and derived segments) from project data.

    Uses the voices stored in the project unless available_voices is given.
    """
    if available_voices is None:
        available_voices = data.get("voices")
    return Timeline.from_dict(
        data.get("timeline", {}),
        available_voices=available_voices,
        source_text=data.get("text", ""),
        on_change=on_change,
    )


def prosody_from_project(data: dict) -> ProsodySettings:
    return ProsodySettings.from_dict(data.get("prosody"))
