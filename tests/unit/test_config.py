"""
Configuration Unit Tests
"""

import json
import logging

import pytest

from vschema.config import (
    ResponseFormat,
    RuntimeConfig,
    config_from_dict,
    load_config_from_env,
    load_config_from_file,
    setup_logging,
    validate_config,
)


class TestDefaults:
    """Test default configuration"""

    def test_defaults(self):
        """Test documented defaults"""
        config = RuntimeConfig()
        assert config.base_url is None
        assert config.response_format.code_field == "code"
        assert config.response_format.success_code == 200
        assert config.expression_cache_size == 1000
        assert validate_config(config) == []

    def test_success_code_list(self):
        """Test code list policy"""
        policy = ResponseFormat(success_code=[0, 200])
        assert policy.is_success_code(0)
        assert not policy.is_success_code(500)


class TestFileLoading:
    """Test YAML / JSON loading"""

    def test_yaml(self, tmp_path):
        """Test camelCase keys"""
        path = tmp_path / "vschema.yaml"
        path.write_text(
            "baseURL: https://api.test\n"
            "responseFormat:\n"
            "  codeField: status\n"
            "  successCode: [0, 1]\n"
            "log_level: DEBUG\n"
        )
        config = load_config_from_file(path)
        assert config.base_url == "https://api.test"
        assert config.response_format.code_field == "status"
        assert config.response_format.success_code == [0, 1]
        assert config.log_level == "DEBUG"

    def test_json(self, tmp_path):
        """Test JSON file"""
        path = tmp_path / "vschema.json"
        path.write_text(json.dumps({"defaultHeaders": {"X-App": "demo"}, "request_timeout": 5}))
        config = load_config_from_file(path)
        assert config.default_headers == {"X-App": "demo"}
        assert config.request_timeout == 5

    def test_missing_file(self, tmp_path):
        """Test missing path"""
        with pytest.raises(FileNotFoundError):
            load_config_from_file(tmp_path / "nope.yaml")

    def test_unsupported_format(self, tmp_path):
        """Test unknown extension"""
        path = tmp_path / "config.toml"
        path.write_text("")
        with pytest.raises(ValueError):
            load_config_from_file(path)

    def test_unknown_key(self):
        """Test typos are rejected"""
        with pytest.raises(ValueError):
            config_from_dict({"baseUrl": "x"})


class TestEnvLoading:
    """Test environment variables"""

    def test_env(self, monkeypatch):
        """Test mapped variables"""
        monkeypatch.setenv("VSCHEMA_BASE_URL", "https://env.test")
        monkeypatch.setenv("VSCHEMA_REQUEST_TIMEOUT", "2.5")
        monkeypatch.setenv("VSCHEMA_RESPONSE_SUCCESS_CODE", "0,200")
        monkeypatch.setenv("VSCHEMA_DEFAULT_HEADERS", '{"X-Env": "1"}')
        config = load_config_from_env()
        assert config.base_url == "https://env.test"
        assert config.request_timeout == 2.5
        assert config.response_format.success_code == [0, 200]
        assert config.default_headers == {"X-Env": "1"}

    def test_invalid_env(self, monkeypatch):
        """Test conversion failure"""
        monkeypatch.setenv("VSCHEMA_MAX_ARRAY_LENGTH", "many")
        with pytest.raises(ValueError):
            load_config_from_env()


class TestValidation:
    """Test validate_config and logging setup"""

    def test_issues(self):
        """Test invalid values are reported"""
        issues = validate_config(RuntimeConfig(expression_cache_size=0, log_level="LOUD"))
        assert len(issues) == 2

    def test_setup_logging(self):
        """Test level is applied to the package logger"""
        setup_logging(RuntimeConfig(log_level="DEBUG"))
        assert logging.getLogger("vschema").level == logging.DEBUG
