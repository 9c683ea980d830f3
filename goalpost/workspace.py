"""Workspace root, timezone and path helpers for goalpost."""

from __future__ import annotations

import os
from datetime import date, datetime
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from goalpost.errors import ValidationError
from goalpost.fileio import read_yaml


SETTINGS_FILENAME = "goalpost.yaml"


def workspace_root() -> Path:
    """Get the workspace root directory (holds goalpost.yaml and users/)."""
    return Path(
        os.environ.get("GOALPOST_ROOT", str(Path.home() / "goalpost"))
    ).expanduser().resolve()


def get_user_timezone(root: Path | None = None) -> ZoneInfo:
    """Timezone from goalpost.yaml, defaulting to UTC."""
    if root is None:
        root = workspace_root()
    name = read_yaml(settings_path(root)).get("timezone")
    if name:
        try:
            return ZoneInfo(str(name))
        except (ZoneInfoNotFoundError, ValueError):
            pass
    return ZoneInfo("UTC")


def now_local(root: Path | None = None) -> datetime:
    """Current datetime in the workspace timezone."""
    return datetime.now(get_user_timezone(root))


def today_local(root: Path | None = None) -> date:
    """Today's calendar date in the workspace timezone."""
    return now_local(root).date()


# ── Path helpers ──────────────────────────────────────────────

def settings_path(root: Path | None = None) -> Path:
    if root is None:
        root = workspace_root()
    return root / SETTINGS_FILENAME


def users_dir(root: Path | None = None) -> Path:
    if root is None:
        root = workspace_root()
    return root / "users"


def is_valid_owner(owner: str) -> bool:
    """Owner ids name a single directory under users/."""
    return bool(owner) and owner not in (".", "..") and not any(c in owner for c in "/\\\0")


def collection_path(owner: str, collection: str, root: Path | None = None) -> Path:
    if not is_valid_owner(owner):
        raise ValidationError(f"Invalid owner id: {owner!r}")
    return users_dir(root) / owner / f"{collection}.json"
