"""Shared test fixtures for goalpost tests."""

from __future__ import annotations

import os
from pathlib import Path

import pytest
import yaml

from goalpost.store import DocumentStore

OWNER = "alice"

ENV_VARS = (
    "GOALPOST_ROOT",
    "GOALPOST_USERNAME",
    "GOALPOST_PASSWORD",
    "SLACK_CLIENT_ID",
    "SLACK_CLIENT_SECRET",
    "SLACK_SIGNING_SECRET",
    "APP_URL",
    "CRON_SECRET",
)


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """Create a temporary workspace with a settings file."""
    root = tmp_path / "workspace"
    (root / "users").mkdir(parents=True)

    settings = {
        "timezone": "UTC",
        "app_url": "http://app.test",
        "slack": {
            "client_id": "cid",
            "client_secret": "csecret",
            "signing_secret": "",
        },
    }
    (root / "goalpost.yaml").write_text(
        yaml.dump(settings, default_flow_style=False), encoding="utf-8"
    )

    saved = {k: os.environ.pop(k) for k in ENV_VARS if k in os.environ}
    os.environ["GOALPOST_ROOT"] = str(root)
    yield root
    # Cleanup
    for k in ENV_VARS:
        os.environ.pop(k, None)
    os.environ.update(saved)


@pytest.fixture
def store(workspace: Path) -> DocumentStore:
    return DocumentStore(workspace)


@pytest.fixture
def owner() -> str:
    return OWNER
