"""Run configuration: defaults, config file, environment and CLI flags."""

import json
import logging
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field, SecretStr, ValidationError

from synthetics_ci.errors import ConfigurationError
from synthetics_ci.models.base import Model
from synthetics_ci.models.suite import TestOverrides

log = logging.getLogger(__name__)

DEFAULT_POLLING_TIMEOUT = 2 * 60 * 1000
DEFAULT_CONFIG_PATH = "datadog-ci.json"
DEFAULT_SUITE_PATTERN = "**/*.synthetics.json"
LOCATIONS_ENV_VAR = "DATADOG_SYNTHETICS_LOCATIONS"

ENV_TO_CONFIG_KEY: Mapping[str, str] = {
    "DATADOG_API_KEY": "apiKey",
    "DATADOG_APP_KEY": "appKey",
    "DATADOG_SITE": "datadogSite",
    "DATADOG_SUBDOMAIN": "subdomain",
}

# pollingTimeout is left out so that it can be back-filled from the global
# overrides when no tier sets it.
DEFAULT_COMMAND_CONFIG: Mapping[str, Any] = {
    "apiKey": "",
    "appKey": "",
    "configPath": DEFAULT_CONFIG_PATH,
    "datadogSite": "datadoghq.com",
    "failOnCriticalErrors": False,
    "failOnTimeout": True,
    "files": [DEFAULT_SUITE_PATTERN],
    "global": {},
    "locations": [],
    "proxy": {"protocol": "http"},
    "publicIds": [],
    "subdomain": "app",
    "tunnel": False,
    "variableStrings": [],
}


class ProxyConfig(Model):
    """HTTP proxy used to reach the API."""

    protocol: str = "http"
    host: str | None = None
    port: int | None = None

    @property
    def url(self) -> str | None:
        """Proxy URL, or None when no proxy host is configured."""
        if not self.host:
            return None
        if self.port is None:
            return f"{self.protocol}://{self.host}"
        return f"{self.protocol}://{self.host}:{self.port}"


class RunConfig(Model):
    """Effective configuration of a run."""

    api_key: SecretStr = SecretStr("")
    app_key: SecretStr = SecretStr("")
    config_path: str = DEFAULT_CONFIG_PATH
    datadog_site: str = "datadoghq.com"
    fail_on_critical_errors: bool = False
    fail_on_timeout: bool = True
    files: Sequence[str] = Field(default_factory=lambda: [DEFAULT_SUITE_PATTERN])
    global_overrides: TestOverrides = Field(
        default_factory=TestOverrides, alias="global"
    )
    locations: Sequence[str] = Field(default_factory=list)
    polling_timeout: int = DEFAULT_POLLING_TIMEOUT
    proxy: ProxyConfig = Field(default_factory=ProxyConfig)
    public_ids: Sequence[str] = Field(default_factory=list)
    subdomain: str = "app"
    test_search_query: str | None = None
    tunnel: bool = False
    variable_strings: Sequence[str] = Field(default_factory=list)


def resolve_config(
    defaults: Mapping[str, Any],
    file_config: Mapping[str, Any],
    env: Mapping[str, str],
    cli: Mapping[str, Any],
) -> RunConfig:
    """Merge the configuration tiers into the effective configuration.

    Layers are folded from lowest to highest precedence: defaults, config
    file, environment, CLI flags. Each key is resolved on its own and a
    layer only contributes the keys it sets to a non-None value.

    Args:
        defaults: Built-in defaults (camelCase keys)
        file_config: Parsed configuration file
        env: Process environment
        cli: Values of the command-line flags that were provided

    Returns:
        The effective configuration

    Raises:
        ConfigurationError: If the merged values are invalid

    """
    merged: dict[str, Any] = {}
    for layer in (defaults, file_config, env_layer(env), cli):
        merged.update(
            {key: value for key, value in layer.items() if value is not None}
        )

    global_overrides = dict(merged.get("global") or {})

    if merged.get("pollingTimeout") is None:
        global_timeout = global_overrides.get("pollingTimeout")
        merged["pollingTimeout"] = (
            global_timeout if global_timeout is not None else DEFAULT_POLLING_TIMEOUT
        )
    if global_overrides.get("pollingTimeout") is None:
        global_overrides["pollingTimeout"] = merged["pollingTimeout"]

    if merged.get("locations") and not global_overrides.get("locations"):
        global_overrides["locations"] = list(merged["locations"])

    if variables := parse_variables(merged.get("variableStrings") or []):
        global_overrides["variables"] = {
            **(global_overrides.get("variables") or {}),
            **variables,
        }

    merged["global"] = global_overrides

    try:
        return RunConfig.model_validate(merged)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


def env_layer(env: Mapping[str, str]) -> Mapping[str, Any]:
    """Extract the configuration keys set through environment variables."""
    return {
        config_key: env[env_key]
        for env_key, config_key in ENV_TO_CONFIG_KEY.items()
        if env.get(env_key)
    }


def parse_variables(variable_strings: Sequence[str]) -> Mapping[str, str]:
    """Parse ``KEY=VALUE`` strings into a variables mapping."""
    variables: dict[str, str] = {}
    for variable in variable_strings:
        key, separator, value = variable.partition("=")
        if not separator or not key.strip():
            log.warning("Ignoring invalid variable '%s', expected KEY=VALUE", variable)
            continue
        variables[key.strip()] = value
    return variables


def load_config_file(path: Path, *, required: bool) -> Mapping[str, Any]:
    """Load a JSON or YAML configuration file.

    Args:
        path: Path to the configuration file
        required: Whether a missing file is an error. The default config
            path is optional, an explicitly requested one is not.

    Returns:
        The parsed configuration, empty when an optional file is missing

    Raises:
        ConfigurationError: If the file is missing (when required),
            unreadable or not a valid document

    """
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        if not required:
            log.debug("No configuration file at %s", path)
            return {}
        raise ConfigurationError(f"Config file not found: {path}") from e
    except OSError as e:
        raise ConfigurationError(f"Unable to read config file {path}: {e}") from e

    try:
        data = json.loads(text) if path.suffix == ".json" else yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Invalid config file {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ConfigurationError(f"Invalid config file {path}: expected a mapping")

    log.info("Loaded configuration from %s", path)
    return data


def parse_env_locations(env: Mapping[str, str]) -> Sequence[str]:
    """Parse the semicolon-separated locations environment variable."""
    raw = env.get(LOCATIONS_ENV_VAR, "")
    return [location.strip() for location in raw.split(";") if location.strip()]


def resolve_locations(
    test_locations: Sequence[str] | None,
    env: Mapping[str, str],
    global_locations: Sequence[str] | None,
) -> Sequence[str] | None:
    """Pick the locations of a test: test override > environment > global."""
    if test_locations is not None:
        return list(test_locations)
    if env_locations := parse_env_locations(env):
        return env_locations
    if global_locations is not None:
        return list(global_locations)
    return None


def get_app_base_url(config: RunConfig) -> str:
    """Base URL of the web application, used for result links."""
    return f"https://{config.subdomain}.{config.datadog_site}/"


def get_api_base_url(config: RunConfig) -> str:
    """Base URL of the public API."""
    return f"https://api.{config.datadog_site}/api/v1/"
