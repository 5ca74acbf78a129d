"""
Tests for mtp_explorer.config.settings module.

This test suite covers:
- Settings loading and saving
- Default settings initialization
- Error handling for corrupted settings files
- Transfer mode and preprocessing lookups
- CLI binary resolution order
"""

import json

from mtp_explorer.config import settings


class TestLoadSettings:
    """Tests for load_settings() function."""

    def test_load_defaults_when_no_file(self, tmp_path, monkeypatch):
        """Test that default settings are loaded when file doesn't exist."""
        monkeypatch.setattr(settings, "SETTINGS_PATH", tmp_path / "missing" / "s.json")

        settings.settings_store.values = {}
        settings.load_settings()

        assert settings.settings_store.values["mtp_mode"] == "kalam"
        assert settings.settings_store.values["hide_hidden_files"] == {
            "local": True,
            "mtp": True,
        }

    def test_load_merges_with_defaults(self):
        """Test that loaded settings merge with defaults."""
        settings.SETTINGS_PATH.write_text(json.dumps({"mtp_mode": "legacy"}))

        settings.settings_store.values = {}
        settings.load_settings()

        assert settings.settings_store.values["mtp_mode"] == "legacy"
        assert "legacy_poll_interval_seconds" in settings.settings_store.values

    def test_load_handles_corrupted_json(self):
        settings.SETTINGS_PATH.write_text("{invalid json")

        settings.load_settings()

        assert settings.settings_store.values["mtp_mode"] == "kalam"

    def test_load_ignores_non_dict_json(self):
        settings.SETTINGS_PATH.write_text("[1, 2, 3]")

        settings.load_settings()

        assert settings.settings_store.values["mtp_mode"] == "kalam"

    def test_defaults_are_not_shared(self):
        """Test that mutating loaded values leaves DEFAULT_SETTINGS untouched."""
        settings.load_settings()
        settings.settings_store.values["hide_hidden_files"]["local"] = False

        assert settings.DEFAULT_SETTINGS["hide_hidden_files"]["local"] is True


class TestSaveSettings:
    """Tests for save_settings() and setters."""

    def test_set_setting_persists(self):
        settings.set_setting("mtp_mode", "legacy")

        data = json.loads(settings.SETTINGS_PATH.read_text())
        assert data["mtp_mode"] == "legacy"

    def test_save_creates_parent_directory(self, tmp_path, monkeypatch):
        path = tmp_path / "nested" / "dir" / "settings.json"
        monkeypatch.setattr(settings, "SETTINGS_PATH", path)

        settings.save_settings()

        assert path.exists()

    def test_get_set_bool(self):
        settings.set_bool("confirm_overwrite", 1)

        assert settings.get_setting("confirm_overwrite") is True
        assert settings.get_bool("confirm_overwrite") is True
        assert settings.get_bool("unknown", default=False) is False


class TestTransferSettings:
    """Tests for mode and preprocessing helpers."""

    def test_default_is_kalam_mode(self):
        assert settings.is_legacy_mode() is False

    def test_legacy_mode(self):
        settings.settings_store.values["mtp_mode"] = settings.MTP_MODE_LEGACY
        assert settings.is_legacy_mode() is True

    def test_preprocessing_per_direction(self):
        settings.settings_store.values["files_preprocessing_before_transfer"] = {
            "localtoMtp": True,
            "mtpToLocal": False,
        }

        assert settings.preprocessing_enabled("localtoMtp") is True
        assert settings.preprocessing_enabled("mtpToLocal") is False

    def test_preprocessing_missing_setting(self):
        settings.settings_store.values["files_preprocessing_before_transfer"] = None
        assert settings.preprocessing_enabled("localtoMtp") is False


class TestResolveCliPath:
    """Tests for resolve_cli_path() lookup order."""

    def test_setting_wins(self, monkeypatch):
        settings.settings_store.values["mtp_cli_path"] = "/opt/bin/mtp-cli"
        monkeypatch.setenv("MTP_EXPLORER_CLI", "/env/mtp-cli")

        assert settings.resolve_cli_path() == "/opt/bin/mtp-cli"

    def test_environment_variable(self, monkeypatch):
        monkeypatch.setenv("MTP_EXPLORER_CLI", "/env/mtp-cli")

        assert settings.resolve_cli_path() == "/env/mtp-cli"

    def test_path_lookup(self, mocker):
        mocker.patch(
            "mtp_explorer.config.settings.shutil.which",
            return_value="/usr/local/bin/mtp-cli",
        )

        assert settings.resolve_cli_path() == "/usr/local/bin/mtp-cli"

    def test_bare_name_fallback(self, mocker):
        mocker.patch("mtp_explorer.config.settings.shutil.which", return_value=None)

        assert settings.resolve_cli_path() == "mtp-cli"
