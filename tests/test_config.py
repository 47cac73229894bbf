"""
Tests for configuration loading.
"""

from pathlib import Path

import pytest

from common.config import Config, ConfigError, load_config


def test_config_defaults():
    """Test basic Config creation."""
    config = Config()

    assert config.bridge.server_url == "https://mcp.prompt-hub.cc"
    assert config.bridge.api_key is None
    assert config.bridge.timeout_ms == 60000
    assert config.bridge.timeout_seconds == 60.0
    assert config.updater.max_age_seconds == 24 * 60 * 60
    assert config.updater.artifact_path.name == "bridge_server.py"
    assert config.updater.version_path.name == "version.txt"
    assert config.log_level == "INFO"


def test_missing_yaml_uses_defaults(tmp_path: Path):
    config = load_config(tmp_path / "absent.yaml", environ={})

    assert config.bridge.server_url == "https://mcp.prompt-hub.cc"


def test_environment_overrides_backend_settings(tmp_path: Path):
    environ = {
        "MCP_SERVER_URL": "http://localhost:9010",
        "API_KEY": "secret",
        "MCP_TIMEOUT": "1500",
    }

    config = load_config(tmp_path / "absent.yaml", environ=environ)

    assert config.bridge.server_url == "http://localhost:9010"
    assert config.bridge.api_key == "secret"
    assert config.bridge.timeout_ms == 1500
    assert config.bridge.timeout_seconds == 1.5


def test_mcp_api_key_fallback(tmp_path: Path):
    config = load_config(tmp_path / "absent.yaml", environ={"MCP_API_KEY": "fallback"})

    assert config.bridge.api_key == "fallback"


def test_api_key_takes_precedence(tmp_path: Path):
    config = load_config(
        tmp_path / "absent.yaml", environ={"API_KEY": "primary", "MCP_API_KEY": "fallback"}
    )

    assert config.bridge.api_key == "primary"


def test_invalid_timeout_raises(tmp_path: Path):
    with pytest.raises(ConfigError):
        load_config(tmp_path / "absent.yaml", environ={"MCP_TIMEOUT": "soon"})


def test_non_positive_timeout_raises(tmp_path: Path):
    with pytest.raises(ConfigError):
        load_config(tmp_path / "absent.yaml", environ={"MCP_TIMEOUT": "0"})


def test_yaml_sections(tmp_path: Path):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        "\n".join(
            [
                "bridge:",
                "  server_url: http://from-yaml.test",
                "updater:",
                f"  cache_dir: {tmp_path / 'cache'}",
                "  max_age_seconds: 60",
                "logging:",
                "  level: DEBUG",
                "  enable_pretty_print: true",
            ]
        ),
        encoding="utf-8",
    )

    config = load_config(config_path, environ={"MCP_SERVER_URL": "http://from-env.test"})

    assert config.bridge.server_url == "http://from-env.test"
    assert config.updater.cache_dir == tmp_path / "cache"
    assert config.updater.max_age_seconds == 60
    assert config.log_level == "DEBUG"
    assert config.enable_pretty_print is True


def test_yaml_must_be_mapping(tmp_path: Path):
    config_path = tmp_path / "config.yaml"
    config_path.write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(ConfigError):
        load_config(config_path, environ={})


@pytest.mark.parametrize("section", ["logging", "bridge", "updater"])
def test_nested_section_must_be_mapping(tmp_path: Path, section: str):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(f"{section}: 5\n", encoding="utf-8")

    with pytest.raises(ConfigError, match=section):
        load_config(config_path, environ={})


def test_code_url_has_no_default(tmp_path: Path):
    config = load_config(tmp_path / "missing.yaml", environ={})

    assert config.updater.code_url is None
