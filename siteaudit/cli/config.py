"""Configuration system for the SiteAudit CLI.

Sources are merged with this precedence:
CLI flags > environment variables > config file > auto-discovered file > defaults
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from ..audit.exceptions import ConfigurationError
from ..audit.models.config import AuditOptions, PoolOptions
from ..audit.utils.url_filter import compile_patterns, is_http_url


class InputConfig(BaseModel):
    """Where URLs come from and how they are filtered."""
    urls: List[str] = Field(default_factory=list, description="URLs to audit")
    sitemap_url: Optional[str] = Field(default=None, description="Sitemap URL")
    include: List[str] = Field(default_factory=list, description="Case-insensitive include regexes")
    exclude: List[str] = Field(default_factory=list, description="Case-insensitive exclude regexes")
    max_pages: int = Field(default=1000, ge=1, description="Maximum pages to audit")


class OutputConfig(BaseModel):
    """Artifact location and console output."""
    output_dir: Path = Field(default=Path("./artifacts"), description="Artifact directory")
    verbose: bool = Field(default=False, description="Verbose output")
    quiet: bool = Field(default=False, description="Quiet mode")
    json_output: bool = Field(default=False, description="Emit events as JSON lines")


class ServerConfig(BaseModel):
    """Event bridge server."""
    enabled: bool = Field(default=False, description="Serve the WebSocket event bridge")
    host: str = Field(default="0.0.0.0", description="Bind address")
    port: int = Field(default=8080, ge=1, le=65535, description="Bind port")


class BatchConfig(BaseModel):
    """Batch mode worker pool."""
    workers: int = Field(default=4, ge=1, le=32, description="Concurrent batch workers")
    max_retries: int = Field(default=3, ge=0, le=10, description="Re-queues per failed job")
    timeout_seconds: float = Field(default=300.0, gt=0, description="Per-job timeout")
    continue_on_error: bool = Field(default=True, description="Keep going after a permanent failure")


class CLIConfiguration(BaseModel):
    """Complete CLI configuration with all sections."""

    input: InputConfig = Field(default_factory=InputConfig)
    audit: AuditOptions = Field(default_factory=AuditOptions)
    browser: PoolOptions = Field(default_factory=PoolOptions)
    output: OutputConfig = Field(default_factory=OutputConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    batch: BatchConfig = Field(default_factory=BatchConfig)

    # Metadata
    config_file_path: Optional[Path] = Field(default=None, description="Source config file")
    loaded_from: List[str] = Field(default_factory=list, description="Configuration sources")


class ConfigurationLoader:
    """Loads and merges configuration from multiple sources."""

    ENV_PREFIX = "SITEAUDIT_"

    # Searched in order
    DEFAULT_CONFIG_FILES = [
        "siteaudit.yaml",
        "siteaudit.yml",
        ".siteaudit.yaml",
        "siteaudit.json",
    ]

    BOOL_KEYS = ('.headless', '.screenshots', '.verbose', '.quiet', '.json_output',
                 '.enabled', '.continue_on_error')
    INT_KEYS = ('.concurrency', '.max_retries', '.base_delay_ms', '.delay_between_requests_ms',
                '.max_requests_per_second', '.max_redirect_hops', '.navigation_timeout_ms',
                '.max_pages', '.port', '.workers')
    FLOAT_KEYS = ('.timeout_seconds',)
    LIST_KEYS = ('.urls', '.include', '.exclude', '.enabled_audits')

    def __init__(self):
        self.loaded_sources: List[str] = []

    def load_configuration(
        self,
        config_file: Optional[Path] = None,
        cli_overrides: Optional[Dict[str, Any]] = None,
        search_paths: Optional[List[Path]] = None
    ) -> CLIConfiguration:
        """Load configuration with proper precedence.

        Raises:
            ConfigurationError: If a file cannot be read or the merged
                configuration does not validate
        """
        self.loaded_sources = ["defaults"]
        config_data: Dict[str, Any] = {}

        if not config_file:
            discovered = self._discover_config_file(search_paths or [Path.cwd()])
            if discovered:
                source = discovered.pop("_source_file")
                config_data = self._merge_config(config_data, discovered)
                self.loaded_sources.append(f"auto-discovered: {source}")

        if config_file:
            if not config_file.exists():
                raise ConfigurationError(f"Configuration file not found: {config_file}")
            config_data = self._merge_config(config_data, self._load_config_file(config_file))
            self.loaded_sources.append(f"config file: {config_file}")

        env_config = self._load_environment_variables()
        if env_config:
            config_data = self._merge_config(config_data, env_config)
            self.loaded_sources.append("environment variables")

        if cli_overrides:
            config_data = self._merge_config(config_data, cli_overrides)
            self.loaded_sources.append("CLI flags")

        config_data["loaded_from"] = self.loaded_sources
        if config_file:
            config_data["config_file_path"] = config_file

        try:
            return CLIConfiguration(**config_data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

    def _discover_config_file(self, search_paths: List[Path]) -> Optional[Dict[str, Any]]:
        for search_path in search_paths:
            for filename in self.DEFAULT_CONFIG_FILES:
                config_path = search_path / filename
                if config_path.is_file():
                    config_data = self._load_config_file(config_path)
                    config_data["_source_file"] = str(config_path)
                    return config_data
        return None

    def _load_config_file(self, config_path: Path) -> Dict[str, Any]:
        suffix = config_path.suffix.lower()
        if suffix not in ('.yaml', '.yml', '.json'):
            raise ConfigurationError(f"Unsupported config file format: {config_path.suffix}")

        try:
            content = config_path.read_text(encoding='utf-8')
            data = yaml.safe_load(content) if suffix in ('.yaml', '.yml') else json.loads(content)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in config file {config_path}: {e}") from e
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in config file {config_path}: {e}") from e
        except OSError as e:
            raise ConfigurationError(f"Error reading config file {config_path}: {e}") from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {config_path} must contain a mapping")
        return data

    def _load_environment_variables(self) -> Dict[str, Any]:
        config: Dict[str, Any] = {}

        env_mapping = {
            f"{self.ENV_PREFIX}URLS": "input.urls",
            f"{self.ENV_PREFIX}SITEMAP": "input.sitemap_url",
            f"{self.ENV_PREFIX}INCLUDE": "input.include",
            f"{self.ENV_PREFIX}EXCLUDE": "input.exclude",
            f"{self.ENV_PREFIX}MAX_PAGES": "input.max_pages",
            f"{self.ENV_PREFIX}CONCURRENCY": "audit.concurrency",
            f"{self.ENV_PREFIX}MAX_RETRIES": "audit.max_retries",
            f"{self.ENV_PREFIX}BASE_DELAY_MS": "audit.base_delay_ms",
            f"{self.ENV_PREFIX}DELAY_MS": "audit.delay_between_requests_ms",
            f"{self.ENV_PREFIX}RATE_LIMIT": "audit.max_requests_per_second",
            f"{self.ENV_PREFIX}REDIRECTS": "audit.redirect_policy",
            f"{self.ENV_PREFIX}MAX_REDIRECT_HOPS": "audit.max_redirect_hops",
            f"{self.ENV_PREFIX}AUDITS": "audit.enabled_audits",
            f"{self.ENV_PREFIX}BUDGET": "audit.performance_budget",
            f"{self.ENV_PREFIX}NAVIGATION_TIMEOUT_MS": "audit.navigation_timeout_ms",
            f"{self.ENV_PREFIX}SCREENSHOTS": "audit.screenshots",
            f"{self.ENV_PREFIX}AXE_SOURCE": "audit.axe_source",
            f"{self.ENV_PREFIX}ENGINE": "browser.engine",
            f"{self.ENV_PREFIX}HEADLESS": "browser.headless",
            f"{self.ENV_PREFIX}OUTPUT_DIR": "output.output_dir",
            f"{self.ENV_PREFIX}VERBOSE": "output.verbose",
            f"{self.ENV_PREFIX}QUIET": "output.quiet",
            f"{self.ENV_PREFIX}JSON": "output.json_output",
            f"{self.ENV_PREFIX}SERVE": "server.enabled",
            f"{self.ENV_PREFIX}HOST": "server.host",
            f"{self.ENV_PREFIX}PORT": "server.port",
            f"{self.ENV_PREFIX}WORKERS": "batch.workers",
            f"{self.ENV_PREFIX}JOB_TIMEOUT": "batch.timeout_seconds",
        }

        for env_var, config_path in env_mapping.items():
            env_value = os.getenv(env_var)
            if env_value is not None:
                self._set_nested_value(config, config_path, self._convert_env_value(env_value, config_path))

        return config

    def _convert_env_value(self, value: str, config_path: str) -> Any:
        """Convert an environment string to the type its config key expects.

        Raises:
            ConfigurationError: If a numeric value does not parse
        """
        if config_path.endswith(self.BOOL_KEYS):
            return value.lower() in ('true', '1', 'yes', 'on')

        if config_path.endswith(self.LIST_KEYS):
            return [item.strip() for item in value.split(',') if item.strip()]

        try:
            if config_path.endswith(self.INT_KEYS):
                return int(value)
            if config_path.endswith(self.FLOAT_KEYS):
                return float(value)
        except ValueError as e:
            raise ConfigurationError(f"Invalid value for {config_path}: {value!r}") from e

        return value

    def _set_nested_value(self, config: Dict[str, Any], path: str, value: Any) -> None:
        keys = path.split('.')
        current = config
        for key in keys[:-1]:
            current = current.setdefault(key, {})
        current[keys[-1]] = value

    def _merge_config(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        if not override:
            return base

        result = base.copy()
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_config(result[key], value)
            else:
                result[key] = value
        return result


def load_configuration(
    config_file: Optional[Path] = None,
    cli_overrides: Optional[Dict[str, Any]] = None,
    search_paths: Optional[List[Path]] = None
) -> CLIConfiguration:
    """Convenience wrapper around :class:`ConfigurationLoader`."""
    return ConfigurationLoader().load_configuration(config_file, cli_overrides, search_paths)


def print_configuration(config: CLIConfiguration, format: str = "yaml") -> str:
    """Render configuration as YAML or JSON."""
    config_dict = config.model_dump(
        mode="json",
        exclude={'loaded_from', 'config_file_path'},
    )

    if format.lower() == "json":
        return json.dumps(config_dict, indent=2, default=str)
    return yaml.safe_dump(config_dict, default_flow_style=False, sort_keys=True)


def validate_configuration(config: CLIConfiguration, require_input: bool = False) -> List[str]:
    """Return validation error messages; empty when the configuration is usable."""
    errors = []

    if config.input.urls and config.input.sitemap_url:
        errors.append("Both URLs and a sitemap specified - use only one")
    elif require_input and not config.input.urls and not config.input.sitemap_url:
        errors.append("No input specified - pass URLs or --sitemap")

    for url in config.input.urls:
        if not is_http_url(url):
            errors.append(f"Not an http(s) URL: {url}")

    if config.input.sitemap_url and not is_http_url(config.input.sitemap_url):
        errors.append(f"Sitemap is not an http(s) URL: {config.input.sitemap_url}")

    for kind in ("include", "exclude"):
        try:
            compile_patterns(getattr(config.input, kind), kind)
        except ConfigurationError as e:
            errors.append(str(e))

    if config.audit.axe_source and not config.audit.axe_source.exists():
        errors.append(f"axe-core source not found: {config.audit.axe_source}")

    if config.output.verbose and config.output.quiet:
        errors.append("--verbose and --quiet are mutually exclusive")

    try:
        config.output.output_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        errors.append(f"Cannot create output directory {config.output.output_dir}: {e}")

    return errors
