"""
Unit tests for configuration loading.
"""

import dataclasses

import pytest

from helloserver import config
from helloserver.config import Configuration, load


class TestLoad:
    """Tests for load()."""

    def test_defaults_when_unset(self, capsys):
        cfg = load({})

        assert cfg.port == 3000
        assert cfg.host == "localhost"
        assert cfg.environment == "development"

        err = capsys.readouterr().err
        assert "PORT environment variable not set, using default port: 3000" in err
        assert "HOST environment variable not set" in err
        assert "APP_ENV environment variable not set" in err

    def test_valid_values(self, capsys):
        cfg = load({"PORT": "8080", "HOST": "0.0.0.0", "APP_ENV": "production"})

        assert (cfg.port, cfg.host, cfg.environment) == (8080, "0.0.0.0", "production")

        captured = capsys.readouterr()
        assert "[WARN]" not in captured.err
        assert "Server configuration loaded - Port: 8080, Host: 0.0.0.0, Environment: production" in captured.out

    def test_values_are_trimmed(self):
        cfg = load({"PORT": " 8080 ", "HOST": "  example.local ", "APP_ENV": "\tstaging\n"})

        assert (cfg.port, cfg.host, cfg.environment) == (8080, "example.local", "staging")

    @pytest.mark.parametrize("raw", [
        "abc", "80", "1024", "65536", "70000", "-1", "3000.5", "0x1F90",
        "8_080", "\uff18\uff10\uff18\uff10",
    ])
    def test_invalid_port_falls_back(self, capsys, raw: str):
        cfg = load({"PORT": raw, "HOST": "h", "APP_ENV": "e"})

        assert cfg.port == 3000
        assert f'Invalid PORT environment variable "{raw}"' in capsys.readouterr().err

    @pytest.mark.parametrize("raw", ["1025", "65535"])
    def test_port_bounds_inclusive(self, raw: str):
        assert load({"PORT": raw}).port == int(raw)

    @pytest.mark.parametrize("name, attr, default", [
        ("HOST", "host", "localhost"),
        ("APP_ENV", "environment", "development"),
    ])
    def test_blank_text_falls_back(self, capsys, name, attr, default):
        cfg = load({name: "   "})

        assert getattr(cfg, attr) == default
        assert f'Invalid {name} environment variable "   "' in capsys.readouterr().err

    def test_fields_are_independent(self):
        cfg = load({"PORT": "not-a-port", "HOST": "api.internal", "APP_ENV": "qa"})

        assert cfg.port == 3000
        assert cfg.host == "api.internal"
        assert cfg.environment == "qa"

    def test_reads_process_environment_by_default(self, monkeypatch):
        monkeypatch.setenv("PORT", "4321")
        monkeypatch.delenv("HOST", raising=False)

        cfg = load()

        assert cfg.port == 4321
        assert cfg.host == "localhost"


class TestConfiguration:
    """Tests for the Configuration dataclass."""

    def test_is_frozen(self):
        cfg = Configuration()
        with pytest.raises(dataclasses.FrozenInstanceError):
            cfg.port = 9999

    @pytest.mark.parametrize("kwargs", [
        {"port": 80},
        {"port": 65536},
        {"host": "  "},
        {"environment": ""},
    ])
    def test_invariants_enforced(self, kwargs):
        with pytest.raises(ValueError):
            Configuration(**kwargs)

    def test_urls(self):
        cfg = Configuration(port=8080, host="example.local")

        assert cfg.url == "http://example.local:8080"
        assert cfg.endpoint_url == "http://example.local:8080/hello"

    def test_server_limits(self):
        cfg = Configuration()

        assert cfg.backlog == 128
        assert cfg.keep_alive_timeout == 5.0
        assert cfg.request_timeout == 30.0
        assert cfg.shutdown_timeout == 10.0
        assert cfg.max_header_bytes == 16 * 1024
        assert cfg.max_headers == 100
        assert cfg.max_body_bytes == 1024 * 1024

    def test_defaults_match_module_constants(self):
        cfg = Configuration()
        assert (cfg.port, cfg.host, cfg.environment) == (
            config.DEFAULT_PORT, config.DEFAULT_HOST, config.DEFAULT_ENVIRONMENT
        )
