#!/usr/bin/env python3
"""
Test suite for configuration loading
"""

import pytest

from warstats.config import (DEFAULT_CONFIG, ConfigError, is_valid_api_key, load_config,
                             mask_api_key, parse_boundary_time)

KEY = "eyJ0eXAiOiJKV1QiLCJhbGciOiJIUzUxMiJ9.example"


class TestLoadConfig:

    def test_defaults(self):
        config = load_config(use_env=False)
        assert config["WAR_POINT_REQUIREMENT"] == 1600
        assert config["PROMOTION_STREAK_WEEKS"] == 12
        assert config["BOUNDARY_TIMEZONE"] == "America/Chicago"
        assert config is not DEFAULT_CONFIG

    def test_yaml_overrides(self, temp_data_dir):
        path = temp_data_dir / "war_config.yaml"
        path.write_text("war_point_requirement: 1500\nCLAN_TAG: '#abc123'\n", encoding="utf-8")
        config = load_config(path, use_env=False)
        assert config["WAR_POINT_REQUIREMENT"] == 1500
        assert config["CLAN_TAG"] == "ABC123"

    def test_missing_yaml(self, temp_data_dir):
        with pytest.raises(ConfigError):
            load_config(temp_data_dir / "nope.yaml", use_env=False)

    def test_yaml_must_be_a_mapping(self, temp_data_dir):
        path = temp_data_dir / "list.yaml"
        path.write_text("- 1\n- 2\n", encoding="utf-8")
        with pytest.raises(ConfigError):
            load_config(path, use_env=False)

    def test_environment(self, monkeypatch, temp_data_dir):
        monkeypatch.setenv("CLASH_ROYALE_API_KEY", KEY)
        monkeypatch.setenv("CLAN_TAG", "#xyz")
        monkeypatch.setenv("WARSTATS_DATA_DIR", str(temp_data_dir))
        config = load_config()
        assert config["API_KEY"] == KEY
        assert config["CLAN_TAG"] == "XYZ"
        assert config["DATA_DIR"] == str(temp_data_dir)

    def test_overrides_win_and_none_is_ignored(self):
        config = load_config(overrides={"DISPLAY_WEEKS": 4, "DATA_DIR": None}, use_env=False)
        assert config["DISPLAY_WEEKS"] == 4
        assert config["DATA_DIR"] == "data"

    @pytest.mark.parametrize("overrides", [
        {"BOUNDARY_TIMEZONE": "Mars/Olympus_Mons"},
        {"BOUNDARY_TIME": "25:00"},
        {"BOUNDARY_TIME": "noon"},
        {"BOUNDARY_WEEKDAY": 7},
        {"ROLL_DIRECTION": "sideways"},
        {"DISPLAY_WEEKS": 0},
        {"DEMOTION_WINDOW_BEFORE_HOURS": -1},
    ])
    def test_invalid_values(self, overrides):
        with pytest.raises(ConfigError):
            load_config(overrides=overrides, use_env=False)


class TestHelpers:

    def test_api_key_validity(self):
        assert is_valid_api_key(KEY)
        assert not is_valid_api_key("")
        assert not is_valid_api_key("short")
        assert not is_valid_api_key(f" {KEY} ")
        assert not is_valid_api_key(None)

    def test_mask_api_key(self):
        assert mask_api_key(KEY) == "eyJ0...mple"
        assert mask_api_key("") == "<not set>"

    def test_parse_boundary_time(self):
        assert parse_boundary_time("04:30").hour == 4
        assert parse_boundary_time(" 9:05 ").minute == 5


if __name__ == "__main__":
    pytest.main([__file__])
