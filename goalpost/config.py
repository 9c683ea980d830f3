"""Settings for goalpost: goalpost.yaml overridden by environment variables.

The workspace timezone is read by goalpost.workspace.get_user_timezone.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from goalpost.fileio import read_yaml
from goalpost.workspace import settings_path, workspace_root


DEFAULT_APP_URL = "http://localhost:5173"


@dataclass
class SlackSettings:
    client_id: str = ""
    client_secret: str = ""
    signing_secret: str = ""

    @property
    def has_client_credentials(self) -> bool:
        return bool(self.client_id and self.client_secret)


@dataclass
class Settings:
    app_url: str = DEFAULT_APP_URL
    cron_secret: str = ""
    api_username: str = ""
    api_password: str = ""
    slack: SlackSettings = field(default_factory=SlackSettings)

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Settings:
        if not d or not isinstance(d, dict):
            return cls()
        slack = d.get("slack") or {}
        if not isinstance(slack, dict):
            slack = {}
        return cls(
            app_url=str(d.get("app_url", DEFAULT_APP_URL)).rstrip("/"),
            cron_secret=str(d.get("cron_secret", "")),
            slack=SlackSettings(
                client_id=str(slack.get("client_id", "")),
                client_secret=str(slack.get("client_secret", "")),
                signing_secret=str(slack.get("signing_secret", "")),
            ),
        )


def load_settings(root: Path | None = None) -> Settings:
    """Load goalpost.yaml, then apply environment overrides."""
    if root is None:
        root = workspace_root()
    settings = Settings.from_dict(read_yaml(settings_path(root)))

    env = os.environ
    settings.slack.client_id = env.get("SLACK_CLIENT_ID", settings.slack.client_id)
    settings.slack.client_secret = env.get("SLACK_CLIENT_SECRET", settings.slack.client_secret)
    settings.slack.signing_secret = env.get("SLACK_SIGNING_SECRET", settings.slack.signing_secret)
    settings.app_url = env.get("APP_URL", settings.app_url).rstrip("/")
    settings.cron_secret = env.get("CRON_SECRET", settings.cron_secret)
    settings.api_username = env.get("GOALPOST_USERNAME", "")
    settings.api_password = env.get("GOALPOST_PASSWORD", "")
    return settings
