"""Settings storage for application configuration."""

from __future__ import annotations

import json
import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any


SETTINGS_PATH = Path(
    os.environ.get(
        "MTP_EXPLORER_SETTINGS_PATH",
        Path.home() / ".config" / "mtp-explorer" / "settings.json",
    )
)

MTP_MODE_KALAM = "kalam"
MTP_MODE_LEGACY = "legacy"

DEFAULT_CLI_NAME = "mtp-cli"
DEFAULT_LEGACY_POLL_INTERVAL = 1.0

DEFAULT_SETTINGS: dict[str, Any] = {
    "mtp_mode": MTP_MODE_KALAM,
    "mtp_cli_path": None,
    "hide_hidden_files": {"local": True, "mtp": True},
    "files_preprocessing_before_transfer": {"localtoMtp": False, "mtpToLocal": False},
    "legacy_poll_interval_seconds": DEFAULT_LEGACY_POLL_INTERVAL,
}


@dataclass
class SettingsStore:
    values: dict[str, Any] = field(default_factory=dict)


settings_store = SettingsStore()


def load_settings() -> None:
    settings_store.values = json.loads(json.dumps(DEFAULT_SETTINGS))
    if not SETTINGS_PATH.exists():
        return
    try:
        data = json.loads(SETTINGS_PATH.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return
    if isinstance(data, dict):
        settings_store.values.update(data)


def save_settings() -> None:
    SETTINGS_PATH.parent.mkdir(parents=True, exist_ok=True)
    SETTINGS_PATH.write_text(
        json.dumps(settings_store.values, indent=2, sort_keys=True),
        encoding="utf-8",
    )


def get_setting(key: str, default: Any | None = None) -> Any:
    return settings_store.values.get(key, default)


def set_setting(key: str, value: Any) -> None:
    settings_store.values[key] = value
    save_settings()


def get_bool(key: str, default: bool = False) -> bool:
    return bool(get_setting(key, default))


def set_bool(key: str, value: bool) -> None:
    set_setting(key, bool(value))


def is_legacy_mode() -> bool:
    return get_setting("mtp_mode", MTP_MODE_KALAM) == MTP_MODE_LEGACY


def preprocessing_enabled(direction: str) -> bool:
    """Whether source trees are walked up front for the given paste direction."""
    flags = get_setting("files_preprocessing_before_transfer") or {}
    return bool(flags.get(direction, False))


def resolve_cli_path() -> str:
    """Locate the MTP CLI binary.

    Lookup order: ``mtp_cli_path`` setting, ``MTP_EXPLORER_CLI`` environment
    variable, then ``mtp-cli`` on ``PATH``. Falls back to the bare name so the
    spawn failure surfaces at call time rather than at import.
    """
    configured = get_setting("mtp_cli_path")
    if configured:
        return str(configured)
    from_env = os.environ.get("MTP_EXPLORER_CLI")
    if from_env:
        return from_env
    return shutil.which(DEFAULT_CLI_NAME) or DEFAULT_CLI_NAME


load_settings()
