"""
WordCard Configuration Tests
"""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from wordcard.core.config import LogLevel, WordCardConfig


class TestWordCardConfig:
    def test_defaults(self):
        config = WordCardConfig()
        assert config.lan.enabled is False
        assert config.lan.file_name == "sync.json"
        assert config.lan.poll_interval == 3.0
        assert config.lan.self_echo_window == 2.0
        assert config.lan.debounce == 0.3
        assert config.cloud.file_name == "WordCardSync.json"
        assert config.cloud.poll_interval == 5.0
        assert config.cloud.self_echo_window == 3.0
        assert config.cloud.debounce == 0.5
        assert config.monitoring.log_level == LogLevel.INFO

    def test_store_path_defaults_into_data_dir(self, tmp_path):
        config = WordCardConfig(data_dir=str(tmp_path))
        assert config.store_path == tmp_path / "cards.json"

    def test_environment_overrides(self, monkeypatch, tmp_path):
        monkeypatch.setenv("WORDCARD_PORT", "9001")
        monkeypatch.setenv("WORDCARD_LAN__ENABLED", "true")
        monkeypatch.setenv("WORDCARD_LAN__DIRECTORY", str(tmp_path))
        monkeypatch.setenv("WORDCARD_LAN__POLL_INTERVAL", "1.5")
        config = WordCardConfig()
        assert config.port == 9001
        assert config.lan.enabled is True
        assert config.lan.directory == tmp_path
        assert config.lan.poll_interval == 1.5

    def test_invalid_interval_rejected(self):
        with pytest.raises(ValidationError):
            WordCardConfig(lan={"poll_interval": 0})

    def test_file_round_trip(self, tmp_path):
        config = WordCardConfig(port=9100, cloud={"enabled": True, "container": str(tmp_path)})
        path = tmp_path / "config" / "wordcard.json"
        config.to_file(path)

        loaded = WordCardConfig.from_file(path)
        assert loaded.port == 9100
        assert loaded.cloud.enabled is True
        assert loaded.cloud.container == Path(tmp_path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            WordCardConfig.from_file(tmp_path / "absent.json")
