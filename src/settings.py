"""Static configuration for the topic monitor.

All user-editable settings (Mattermost connection, channels, topics,
classifier, logging) live in a single JSON file for quick edits without
touching Python. Secrets stay in the environment (.env).
"""

import json
import os

from dotenv import load_dotenv

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

# config.local.json wins so a deployment can keep its overrides out of git.
LOCAL_CONFIG_PATH = os.path.join(PROJECT_ROOT, "config.local.json")
CONFIG_PATH = os.path.join(PROJECT_ROOT, "config.json")


def _load_json_config() -> dict:
    """Load config.local.json or config.json with a flat, user-friendly schema."""

    path = LOCAL_CONFIG_PATH if os.path.exists(LOCAL_CONFIG_PATH) else CONFIG_PATH
    if not os.path.exists(path):
        raise FileNotFoundError(f"Config file not found: {CONFIG_PATH}")

    with open(path, "r", encoding="utf-8") as handle:
        return json.load(handle)


def resolve_path(path: str) -> str:
    """Resolve config-relative paths against the project root."""

    if os.path.isabs(path):
        return path
    return os.path.join(PROJECT_ROOT, path)


load_dotenv()

_CONFIG = _load_json_config()

# Expose the raw config for modules that need structured access.
CONFIG = _CONFIG

# Mattermost connection. Environment values override config.json so tokens
# never have to be committed.
_mattermost = _CONFIG.get("mattermost", {})
MATTERMOST_URL = os.getenv("MATTERMOST_URL") or _mattermost.get("url", "")
MATTERMOST_TEAM_ID = os.getenv("MATTERMOST_TEAM_ID") or _mattermost.get("team_id", "")
MATTERMOST_TOKEN = os.getenv("MATTERMOST_TOKEN") or _mattermost.get("token", "")
MATTERMOST_TIMEOUT_SECONDS = float(_mattermost.get("timeout_seconds", 10))

# Classification backend key; without it the monitor runs keyword-only.
ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY", "")

# Raw monitoring section, validated by core.config.build_monitoring_config.
MONITORING = _CONFIG.get("monitoring", {})

# Logging configuration (optional).
LOGGING = _CONFIG.get("logging", {})
