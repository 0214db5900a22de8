"""Tests for application settings and gang configuration loading."""

import json
import os

import pytest
import yaml

from gangflow.config import (
    PREDEFINED_GANGS, AppConfig, LogLevel, get_config, load_config, load_workflow_config,
    reset_config, resolve_gang_config
)
from gangflow.core.engine import validate_config
from gangflow.core.exceptions import ConfigurationError


class TestAppConfig:
    """Test cases for AppConfig."""

    def test_defaults(self):
        config = AppConfig()
        assert config.port == 8000
        assert config.llm_max_concurrency == 1
        assert config.log_level == LogLevel.INFO
        assert config.mcp_server_url is None

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("GANGFLOW_PORT", "9001")
        monkeypatch.setenv("GANGFLOW_DEBUG", "yes")
        monkeypatch.setenv("GANGFLOW_LOG_LEVEL", "debug")
        monkeypatch.setenv("GANGFLOW_MCP_SERVER_URL", "http://mcp.local")
        config = AppConfig.from_env()
        assert config.port == 9001
        assert config.debug is True
        assert config.log_level == LogLevel.DEBUG
        assert config.mcp_server_url == "http://mcp.local"

    @pytest.mark.parametrize("field,value", [("port", 0), ("llm_max_concurrency", 0), ("llm_timeout", -1)])
    def test_invalid_values(self, field, value):
        with pytest.raises(ValueError):
            AppConfig(**{field: value})

    def test_reports_path(self, tmp_path):
        assert AppConfig(base_dir=str(tmp_path)).reports_path == (tmp_path / "gang_reports").resolve()

    def test_global_instance(self, monkeypatch):
        first = get_config()
        assert get_config() is first
        monkeypatch.setenv("GANGFLOW_APP_NAME", "Renamed")
        reset_config()
        assert get_config().app_name == "Renamed"

    def test_load_config_reads_env_file(self, tmp_path, monkeypatch):
        env_file = tmp_path / "settings.env"
        env_file.write_text("GANGFLOW_REPORTS_DIR=out\n")
        monkeypatch.delenv("GANGFLOW_REPORTS_DIR", raising=False)
        try:
            assert load_config(str(env_file)).reports_dir == "out"
        finally:
            os.environ.pop("GANGFLOW_REPORTS_DIR", None)


class TestWorkflowConfigFiles:
    """Test cases for gang configuration files."""

    def test_load_json(self, tmp_path, single_member_config):
        path = tmp_path / "gang.json"
        path.write_text(json.dumps(single_member_config))
        assert load_workflow_config(path) == single_member_config

    def test_load_yaml(self, tmp_path, single_member_config):
        path = tmp_path / "gang.yaml"
        path.write_text(yaml.safe_dump(single_member_config))
        assert load_workflow_config(path)["members"][0]["name"] == "m1"

    def test_unsupported_suffix(self, tmp_path):
        path = tmp_path / "gang.toml"
        path.write_text("x = 1")
        with pytest.raises(ConfigurationError):
            load_workflow_config(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            load_workflow_config(tmp_path / "absent.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "gang.json"
        path.write_text("{not json")
        with pytest.raises(ConfigurationError):
            load_workflow_config(path)

    def test_non_mapping(self, tmp_path):
        path = tmp_path / "gang.yml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigurationError):
            load_workflow_config(path)

    @pytest.mark.parametrize("name", sorted(PREDEFINED_GANGS))
    def test_predefined_templates_are_valid(self, name):
        config = resolve_gang_config(name)
        assert validate_config(config).tests

    def test_templates_are_copies(self):
        resolve_gang_config("research")["members"].clear()
        assert PREDEFINED_GANGS["research"]["members"]

    def test_unknown_template(self):
        with pytest.raises(ConfigurationError):
            resolve_gang_config("nonexistent")
