"""
Tracked channel files

``channels.json`` (Twitch logins) and ``kick_channels.json`` (Kick slugs)
live in DATA_DIR and hold a JSON list of names.
"""

import json
from pathlib import Path
from typing import List

from streamalert.errors import ConfigurationError

TWITCH_CHANNELS_FILE = "channels.json"
KICK_CHANNELS_FILE = "kick_channels.json"


def load_channels(path: Path, required: bool = True) -> List[str]:
    """
    Read a channel list.

    Raises:
        ConfigurationError: file missing (when required) or not a list of strings
    """
    if not path.exists():
        if required:
            raise ConfigurationError(f"Channels file not found at {path}")
        return []

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise ConfigurationError(f"Could not read channels file {path}: {exc}") from exc

    if not isinstance(data, list) or not all(isinstance(item, str) for item in data):
        raise ConfigurationError(f"Channels file {path} must contain a JSON list of names")

    # Preserve order, drop blanks and duplicates
    seen = set()
    channels = []
    for item in data:
        name = item.strip()
        if name and name.lower() not in seen:
            seen.add(name.lower())
            channels.append(name)
    return channels
