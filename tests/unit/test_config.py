"""
Unit tests for TallyConfig file loading, env overrides and validation.
"""

import json

from medal_tally.config import TallyConfig
from medal_tally.models import MedalValues


class TestConfigLoading:
    """File handling and defaults."""

    def test_creates_default_file(self, tmp_path):
        path = tmp_path / "tally_config.json"
        config = TallyConfig(str(path))

        assert path.exists()
        assert json.loads(path.read_text())["storage"]["data_key"] == "intramurals_data"
        assert config.get("replication", "channel") == "intramurals_updates"

    def test_file_merges_over_defaults(self, tmp_path):
        path = tmp_path / "tally_config.json"
        path.write_text(json.dumps({"event_name": "Sports Fest", "features": {"json_export": False}}))

        config = TallyConfig(str(path))

        assert config.get("event_name") == "Sports Fest"
        assert not config.is_feature_enabled("json_export")
        assert config.is_feature_enabled("admin_enabled")

    def test_invalid_json_uses_defaults(self, tmp_path):
        path = tmp_path / "tally_config.json"
        path.write_text("{not json")

        config = TallyConfig(str(path))

        assert config.get("replication", "poll_interval") == 5

    def test_missing_key_returns_none(self, config):
        assert config.get("storage", "nope") is None
        assert not config.is_feature_enabled("nope")

    def test_defaults_are_not_shared(self, tmp_path):
        first = TallyConfig(str(tmp_path / "a.json"))
        first.config["medal_values"]["gold"] = 99

        second = TallyConfig(str(tmp_path / "b.json"))
        assert second.get("medal_values", "gold") == 3


class TestEnvOverrides:
    """Environment variables win over the file."""

    def test_overrides(self, tmp_path, monkeypatch):
        monkeypatch.setenv("EVENT_NAME", "Foundation Week")
        monkeypatch.setenv("POLL_INTERVAL", "2")
        monkeypatch.setenv("LIVE_UPDATES", "off")
        monkeypatch.setenv("GOLD_VALUE", "1")
        monkeypatch.setenv("DEFAULT_DATA", "https://example.org/data.json")

        config = TallyConfig(str(tmp_path / "tally_config.json"))

        assert config.get("event_name") == "Foundation Week"
        assert config.get("replication", "poll_interval") == 2
        assert not config.is_feature_enabled("live_updates")
        assert config.get("medal_values", "gold") == 1
        assert config.get("bootstrap", "default_data") == "https://example.org/data.json"

    def test_medal_values(self, tmp_path, monkeypatch):
        monkeypatch.setenv("SILVER_VALUE", "4")

        config = TallyConfig(str(tmp_path / "tally_config.json"))

        assert config.get_medal_values() == MedalValues(3, 4, 1)


class TestValidation:
    """Invalid values fall back to defaults."""

    def test_invalid_values_reset(self, tmp_path, monkeypatch):
        path = tmp_path / "tally_config.json"
        path.write_text(
            json.dumps(
                {
                    "replication": {"poll_interval": -1, "refresh_interval": "soon"},
                    "medal_values": {"gold": 0},
                    "storage": {"data_key": ""},
                }
            )
        )
        monkeypatch.setenv("BRONZE_VALUE", "yes")

        config = TallyConfig(str(path))

        assert config.get("replication", "poll_interval") == 5
        assert config.get("replication", "refresh_interval") == 30
        assert config.get("medal_values", "gold") == 3
        assert config.get("medal_values", "bronze") == 1
        assert config.get("storage", "data_key") == "intramurals_data"
