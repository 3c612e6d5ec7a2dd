"""Mattermost client factory for the topic monitor.

The client owns one pooled HTTP connection for the process lifetime; the app
closes it explicitly on shutdown.
"""

from __future__ import annotations

import logging

import settings
from adapters.mattermost_client import MattermostClient


def build_client() -> MattermostClient:
    """Create a Mattermost client from settings and environment variables.

    MATTERMOST_TOKEN is read via python-dotenv to keep secrets out of the repo.
    """

    # Fail fast on missing connection details.
    missing = [
        name
        for name, value in (
            ("MATTERMOST_URL", settings.MATTERMOST_URL),
            ("MATTERMOST_TOKEN", settings.MATTERMOST_TOKEN),
            ("MATTERMOST_TEAM_ID", settings.MATTERMOST_TEAM_ID),
        )
        if not value
    ]
    if missing:
        raise RuntimeError(f"Missing {', '.join(missing)} in environment or config.json")

    logging.getLogger(__name__).info("Initializing Mattermost client for %s", settings.MATTERMOST_URL)

    return MattermostClient(
        url=settings.MATTERMOST_URL,
        token=settings.MATTERMOST_TOKEN,
        team_id=settings.MATTERMOST_TEAM_ID,
        timeout=settings.MATTERMOST_TIMEOUT_SECONDS,
    )
