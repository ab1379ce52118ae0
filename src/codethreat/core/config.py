"""
Configuration Resolver - Builds the effective configuration for one run.

Sources are folded left to right, each overriding only the fields it sets:

1. Built-in defaults
2. The first existing config file (project before user home)
3. Saved credentials (API key and server URL only)
4. Process environment (``.env`` values underneath real variables)
5. Per-invocation overrides such as command-line flags

The merged result is validated once and frozen. Validation failures raise
ConfigurationError before any request reaches the server.
"""

import os
import re
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import structlog
import yaml
from dotenv import dotenv_values
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .credentials import CredentialStore
from .exceptions import ConfigurationError
from .models import ExportFormat, ScanType


CONFIG_DIR_NAME = ".codethreat"
USER_CONFIG_FILE = "config.yml"

TIMEOUT_BOUNDS = (60, 3600)
POLL_INTERVAL_BOUNDS = (5, 60)

DEFAULTS: Dict[str, Any] = {
    "server_url": "https://api.codethreat.com",
    "default_scan_types": ["sast", "sca", "secrets"],
    "default_branch": "main",
    "default_timeout": 1800,
    "default_poll_interval": 10,
    "default_format": "json",
    "output_dir": "./codethreat-results",
    "fail_on_high": False,
    "fail_on_critical": True,
    "verbose": False,
    "colors": True,
    "api_timeout": 30,
}

# Environment variable -> config field
ENV_VARIABLES = {
    "CT_SERVER_URL": "server_url",
    "CT_API_KEY": "api_key",
    "CT_ORG_SLUG": "organization_slug",
    "CT_ORG_ID": "organization_id",
    "CT_DEFAULT_SCAN_TYPES": "default_scan_types",
    "CT_DEFAULT_BRANCH": "default_branch",
    "CT_TIMEOUT": "default_timeout",
    "CT_POLL_INTERVAL": "default_poll_interval",
    "CT_DEFAULT_FORMAT": "default_format",
    "CT_OUTPUT_DIR": "output_dir",
    "CT_FAIL_ON_HIGH": "fail_on_high",
    "CT_FAIL_ON_CRITICAL": "fail_on_critical",
    "CT_MAX_VIOLATIONS": "max_violations",
    "CT_VERBOSE": "verbose",
    "CT_COLORS": "colors",
    "CT_API_TIMEOUT": "api_timeout",
}

# Booleans that default to true and are only disabled by an explicit "false"
_OPT_OUT_FLAGS = {"fail_on_critical", "colors"}


class EffectiveConfig(BaseModel):
    """Merged, validated settings used for the rest of the process"""

    model_config = ConfigDict(frozen=True, extra="ignore")

    server_url: str
    api_key: Optional[str] = None
    organization_slug: Optional[str] = None
    organization_id: Optional[str] = None

    default_scan_types: List[ScanType] = Field(default_factory=list)
    default_branch: str = "main"
    default_timeout: int = 1800
    default_poll_interval: int = 10

    default_format: ExportFormat = ExportFormat.JSON
    output_dir: str = "./codethreat-results"

    fail_on_critical: bool = True
    fail_on_high: bool = False
    max_violations: Optional[int] = None

    verbose: bool = False
    colors: bool = True
    api_timeout: int = 30

    def redacted(self) -> Dict[str, Any]:
        """Serializable view with the API key masked"""
        data = self.model_dump(mode="json")
        if data.get("api_key"):
            data["api_key"] = "***hidden***"
        return data


def _snake_case(key: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", key).lower().replace("-", "_")


def _split_list(value: Any) -> Any:
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    return value


class ConfigResolver:
    """
    Resolves, updates and saves the CLI configuration.

    Example:
        >>> resolver = ConfigResolver()
        >>> config = resolver.resolve({"verbose": True})
        >>> config.server_url
        'https://api.codethreat.com'
    """

    def __init__(
        self,
        config_path: Optional[Path] = None,
        cwd: Optional[Path] = None,
        home: Optional[Path] = None,
        environ: Optional[Mapping[str, str]] = None,
        credentials: Optional[CredentialStore] = None,
    ):
        """
        Initialize the resolver.

        Args:
            config_path: Explicit config file; replaces the candidate list
            cwd: Project directory (defaults to the working directory)
            home: User home directory
            environ: Environment mapping (defaults to os.environ)
            credentials: Credential store (defaults to the user's store)
        """
        self.config_path = Path(config_path) if config_path else None
        self.cwd = Path(cwd) if cwd else Path.cwd()
        self.home = Path(home) if home else Path.home()
        self.environ = os.environ if environ is None else environ
        self.credentials = credentials or CredentialStore(home=self.home)

        self.loaded_from: Optional[Path] = None
        self._merged: Dict[str, Any] = {}
        self._config: Optional[EffectiveConfig] = None

        self.logger = structlog.get_logger(__name__)

    @property
    def user_config_path(self) -> Path:
        return self.home / CONFIG_DIR_NAME / USER_CONFIG_FILE

    def candidate_paths(self) -> List[Path]:
        """Config file locations, in order of precedence"""
        if self.config_path:
            return [self.config_path]
        return [
            self.cwd / ".codethreat.yml",
            self.cwd / ".codethreat.yaml",
            self.user_config_path,
            self.home / ".codethreat.yml",
        ]

    @property
    def is_resolved(self) -> bool:
        return self._config is not None

    @property
    def config(self) -> EffectiveConfig:
        if self._config is None:
            return self.resolve()
        return self._config

    def resolve(self, overrides: Optional[Mapping[str, Any]] = None) -> EffectiveConfig:
        """
        Merge every source into one validated snapshot.

        Args:
            overrides: Per-invocation values; None entries are ignored

        Returns:
            The frozen EffectiveConfig

        Raises:
            ConfigurationError: If any field is missing or out of bounds
        """
        layers = [
            ("defaults", dict(DEFAULTS)),
            ("file", self._file_layer()),
            ("credentials", self.credentials.load()),
            ("environment", self._environment_layer()),
            ("overrides", dict(overrides or {})),
        ]

        merged: Dict[str, Any] = {}
        for name, layer in layers:
            applied = {key: value for key, value in layer.items() if value is not None}
            merged.update(applied)
            if applied and name != "defaults":
                self.logger.debug("config_layer_applied", layer=name, fields=sorted(applied))

        self._config = self._build(merged)
        self._merged = merged
        return self._config

    def update(self, partial: Mapping[str, Any]) -> EffectiveConfig:
        """Re-merge values into the in-memory snapshot without reading files"""
        merged = dict(self._merged or self.config.model_dump())
        merged.update({key: value for key, value in partial.items() if value is not None})

        self._config = self._build(merged)
        self._merged = merged
        return self._config

    def save(self, partial: Mapping[str, Any]) -> Path:
        """
        Persist the current snapshot plus ``partial`` to the user config file.

        The API key is never written. Keys explicitly set to None in
        ``partial`` are cleared.

        Returns:
            Path of the written file
        """
        merged = dict(self._merged or self.config.model_dump())
        for key, value in partial.items():
            if value is None:
                merged.pop(key, None)
            else:
                merged[key] = value

        config = self._build(merged)

        to_save = config.model_dump(mode="json", exclude={"api_key"}, exclude_none=True)

        path = self.user_config_path
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            yaml.safe_dump(to_save, f, indent=2, width=120, sort_keys=False)

        self.logger.info("config_saved", path=str(path))

        self._config = config
        self._merged = merged
        return path

    def _file_layer(self) -> Dict[str, Any]:
        for path in self.candidate_paths():
            if not path.is_file():
                continue

            try:
                with open(path, "r", encoding="utf-8") as f:
                    data = yaml.safe_load(f) or {}
            except (OSError, yaml.YAMLError) as e:
                raise ConfigurationError(
                    f"Failed to load config from {path}: {e}", field="config_file"
                ) from e

            if not isinstance(data, dict):
                raise ConfigurationError(
                    f"Config file {path} must contain a mapping", field="config_file"
                )

            self.loaded_from = path
            self.logger.info("config_loaded", path=str(path))

            layer = {_snake_case(str(key)): value for key, value in data.items()}
            if "default_scan_types" in layer:
                layer["default_scan_types"] = _split_list(layer["default_scan_types"])
            return layer

        if self.config_path:
            raise ConfigurationError(
                f"Config file not found: {self.config_path}", field="config_file"
            )
        return {}

    def _environment_layer(self) -> Dict[str, Any]:
        source: Dict[str, Optional[str]] = {}
        for env_path in (self.cwd / ".env", self.home / CONFIG_DIR_NAME / ".env"):
            if env_path.is_file():
                source.update(dotenv_values(env_path))
                self.logger.debug("env_file_loaded", path=str(env_path))
                break
        source.update(self.environ)

        layer: Dict[str, Any] = {}
        for variable, field_name in ENV_VARIABLES.items():
            value = source.get(variable)
            if value is None or value == "":
                continue
            layer[field_name] = self._parse_env_value(field_name, value)

        if "server_url" not in layer and source.get("CT_PRODUCTION_URL"):
            layer["server_url"] = source["CT_PRODUCTION_URL"]

        return layer

    @staticmethod
    def _parse_env_value(field_name: str, value: str) -> Any:
        if field_name in _OPT_OUT_FLAGS:
            return value.strip().lower() != "false"
        if field_name in ("fail_on_high", "verbose"):
            return value.strip().lower() == "true"
        if field_name == "default_scan_types":
            return _split_list(value)
        return value

    def _build(self, merged: Mapping[str, Any]) -> EffectiveConfig:
        try:
            config = EffectiveConfig.model_validate(dict(merged))
        except ValidationError as e:
            error = e.errors()[0]
            field_name = str(error["loc"][0]) if error["loc"] else None
            raise ConfigurationError(
                f"Invalid configuration value for {field_name}: {error['msg']}",
                field=field_name,
            ) from e

        self._validate(config)
        return config

    @staticmethod
    def _validate(config: EffectiveConfig) -> None:
        if not config.server_url:
            raise ConfigurationError("Server URL is required", field="server_url")

        if not config.server_url.startswith(("http://", "https://")):
            raise ConfigurationError(
                "Server URL must start with http:// or https://", field="server_url"
            )

        low, high = TIMEOUT_BOUNDS
        if not low <= config.default_timeout <= high:
            raise ConfigurationError(
                f"Default timeout must be between {low} and {high} seconds",
                field="default_timeout",
            )

        low, high = POLL_INTERVAL_BOUNDS
        if not low <= config.default_poll_interval <= high:
            raise ConfigurationError(
                f"Default poll interval must be between {low} and {high} seconds",
                field="default_poll_interval",
            )


def config_template() -> str:
    """Commented YAML template written by ``codethreat config init``"""
    return """# CodeThreat CLI Configuration
# This file can be placed in your project root or home directory

# Server configuration
server_url: "https://api.codethreat.com"
organization_slug: "your-org"  # Optional: default organization for scans

# Default scan settings
default_scan_types: ["sast", "sca", "secrets"]
default_branch: "main"
default_timeout: 1800  # 30 minutes
default_poll_interval: 10  # 10 seconds

# Output settings
default_format: "json"
output_dir: "./codethreat-results"

# CI/CD behavior
fail_on_high: false
fail_on_critical: true
max_violations: 50  # Optional: Fail if more than N violations

# CLI behavior
verbose: false
colors: true

# Note: API key should be set via environment variable CT_API_KEY
# for security reasons, not in this config file
"""
