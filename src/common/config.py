"""
Configuration loader for the PromptHub MCP bridge.

Loads optional settings from config.yaml. The backend connection is taken
from the process environment, and only from these variables:

- MCP_SERVER_URL: backend base URL
- API_KEY (fallback MCP_API_KEY): sent as X-Api-Key, never logged
- MCP_TIMEOUT: per-call timeout in milliseconds
"""

import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError


class ConfigError(Exception):
    """Raised when configuration cannot be loaded or is invalid."""


class BridgeConfig(BaseModel):
    """Connection settings for the prompt-serving backend."""

    server_url: str = Field(
        default="https://mcp.prompt-hub.cc", description="Backend base URL"
    )
    api_key: Optional[str] = Field(default=None, description="API key sent as X-Api-Key")
    timeout_ms: int = Field(default=60000, gt=0, description="Per-call timeout in milliseconds")

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000.0


class UpdaterConfig(BaseModel):
    """Configuration for the self-update loader."""

    code_url: Optional[str] = Field(
        default=None,
        description="HTTPS URL serving the bridge server module; required to update",
    )
    version_url: str = Field(
        default="https://api.github.com/repos/xiiizoux/PromptHub/commits/main",
        description="HTTPS URL returning the latest version identifier",
    )
    cache_dir: Path = Field(
        default_factory=lambda: Path.home() / ".prompthub-mcp",
        description="Per-user cache directory",
    )
    artifact_name: str = Field(default="bridge_server.py", description="Cached module file name")
    version_file: str = Field(default="version.txt", description="Version marker file name")
    max_age_seconds: int = Field(default=24 * 60 * 60, description="Cache TTL (24 hours)")
    min_size_bytes: int = Field(default=2000, description="Smallest acceptable artifact size")
    required_markers: List[str] = Field(
        default_factory=lambda: [
            "class BridgeServer",
            "async def main",
            "StdioTransport",
            "ToolRegistry",
        ],
        description="Strings the downloaded module must contain",
    )
    probe_timeout: float = Field(default=10.0, description="Timeout for version probe/download")

    @property
    def artifact_path(self) -> Path:
        return self.cache_dir / self.artifact_name

    @property
    def version_path(self) -> Path:
        return self.cache_dir / self.version_file


class Config(BaseModel):
    """Main configuration object."""

    bridge: BridgeConfig = Field(default_factory=BridgeConfig)
    updater: UpdaterConfig = Field(default_factory=UpdaterConfig)
    log_level: str = Field(default="INFO", description="Logging level")
    enable_pretty_print: bool = Field(
        default=False, description="Enable custom pretty print for debugging"
    )
    save_to_file: bool = Field(default=False, description="Save logs to file")
    log_file_path: str = Field(default="bridge.log", description="Log file path")
    max_log_file_size: int = Field(
        default=10485760, description="Max log file size in bytes (10MB)"
    )
    backup_count: int = Field(default=5, description="Number of backup log files to keep")


_LOGGING_KEYS = (
    "enable_pretty_print",
    "save_to_file",
    "log_file_path",
    "max_log_file_size",
    "backup_count",
)


def _bridge_from_environ(environ: Mapping[str, str]) -> Dict[str, Any]:
    """Collect the enumerated backend settings from the environment."""
    overrides: Dict[str, Any] = {}

    server_url = environ.get("MCP_SERVER_URL")
    if server_url:
        overrides["server_url"] = server_url

    api_key = environ.get("API_KEY") or environ.get("MCP_API_KEY")
    if api_key:
        overrides["api_key"] = api_key

    timeout = environ.get("MCP_TIMEOUT")
    if timeout:
        try:
            overrides["timeout_ms"] = int(timeout)
        except ValueError:
            raise ConfigError(f"MCP_TIMEOUT must be an integer (milliseconds), got {timeout!r}")

    return overrides


def load_config(
    config_path: Optional[Path] = None, environ: Optional[Mapping[str, str]] = None
) -> Config:
    """
    Load configuration from YAML file and environment.

    Args:
        config_path: Path to config.yaml file. Defaults to ./config.yaml
        environ: Environment mapping. Defaults to os.environ

    Returns:
        Loaded configuration object
    """
    if config_path is None:
        config_path = Path("config.yaml")
    if environ is None:
        environ = os.environ

    config_data: Dict[str, Any] = {}

    if config_path.exists():
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                config_data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {config_path}: {e}")

    if not isinstance(config_data, dict):
        raise ConfigError(f"{config_path} must contain a mapping at the top level")

    for section in ("logging", "bridge", "updater"):
        if not isinstance(config_data.get(section) or {}, dict):
            raise ConfigError(f"'{section}' in {config_path} must be a mapping")

    # Handle nested logging configuration
    if "logging" in config_data:
        logging_config = config_data.pop("logging") or {}
        if "level" in logging_config:
            config_data["log_level"] = logging_config["level"]
        for key in _LOGGING_KEYS:
            if key in logging_config:
                config_data[key] = logging_config[key]

    bridge_data = dict(config_data.get("bridge") or {})
    bridge_data.update(_bridge_from_environ(environ))
    config_data["bridge"] = bridge_data

    try:
        return Config(**config_data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}")
