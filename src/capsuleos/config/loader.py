"""Configuration loading with pydantic-settings.

Sources, highest precedence first:
1. Direct kwargs
2. Environment variables (CAPSULEOS__SECTION__KEY)
3. Data-root config (<data_root>/.capsuleos/config.yaml)
4. Global config (~/.config/capsuleos/config.yaml)
5. Built-in defaults
"""

from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from capsuleos.config.constants import STATE_DIR
from capsuleos.config.models import (
    CapsuleConfig,
    LoggingConfig,
    SearchConfig,
    ServerConfig,
    StorageConfig,
    TimeoutsConfig,
    WatcherConfig,
)
from capsuleos.core.errors import ConfigError

GLOBAL_CONFIG_PATH = Path("~/.config/capsuleos/config.yaml").expanduser()


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        with path.open() as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError.parse_error(str(path), str(e)) from e
    if not isinstance(data, dict):
        raise ConfigError.parse_error(str(path), "top level must be a mapping")
    return data


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


class _YamlSource(PydanticBaseSettingsSource):
    """Settings source that reads from pre-loaded YAML config."""

    def __init__(self, settings_cls: type[BaseSettings], yaml_config: dict[str, Any]) -> None:
        super().__init__(settings_cls)
        self._yaml_config = yaml_config

    def get_field_value(
        self,
        field: Any,  # noqa: ARG002
        field_name: str,
    ) -> tuple[Any, str, bool]:
        val = self._yaml_config.get(field_name)
        return val, field_name, val is not None

    def __call__(self) -> dict[str, Any]:
        return self._yaml_config


def _make_settings_class(yaml_config: dict[str, Any]) -> type[BaseSettings]:
    """Create a Settings class bound to one YAML snapshot."""

    class CapsuleSettings(BaseSettings):
        """Root config. Env vars: CAPSULEOS__LOGGING__LEVEL, CAPSULEOS__SERVER__PORT, etc."""

        model_config = SettingsConfigDict(
            env_prefix="CAPSULEOS__",
            env_nested_delimiter="__",
            case_sensitive=False,
        )

        logging: LoggingConfig = LoggingConfig()
        server: ServerConfig = ServerConfig()
        storage: StorageConfig = StorageConfig()
        search: SearchConfig = SearchConfig()
        watcher: WatcherConfig = WatcherConfig()
        timeouts: TimeoutsConfig = TimeoutsConfig()

        @classmethod
        def settings_customise_sources(
            cls,
            settings_cls: type[BaseSettings],
            init_settings: PydanticBaseSettingsSource,
            env_settings: PydanticBaseSettingsSource,
            dotenv_settings: PydanticBaseSettingsSource,  # noqa: ARG003
            file_secret_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        ) -> tuple[PydanticBaseSettingsSource, ...]:
            # Precedence (first wins): init kwargs > env vars > yaml files
            return (init_settings, env_settings, _YamlSource(settings_cls, yaml_config))

    return CapsuleSettings


def config_path(data_root: Path) -> Path:
    """Location of the data-root config file."""
    return data_root / STATE_DIR / "config.yaml"


def load_config(data_root: Path | None = None, **kwargs: Any) -> CapsuleConfig:
    """Load config: defaults < global yaml < data-root yaml < env vars < kwargs.

    Args:
        data_root: Data root to load config from. Defaults to ./data.
        **kwargs: Override values (highest precedence).

    Returns:
        Fully resolved configuration object.

    Raises:
        ConfigError: On invalid YAML syntax or validation errors.
    """
    data_root = data_root or Path.cwd() / "data"

    yaml_config = _deep_merge(_load_yaml(GLOBAL_CONFIG_PATH), _load_yaml(config_path(data_root)))

    settings_cls = _make_settings_class(yaml_config)
    try:
        settings = settings_cls(**kwargs)
    except ValidationError as e:
        err = e.errors()[0]
        field = ".".join(str(loc) for loc in err["loc"])
        raise ConfigError.invalid_value(field, err.get("input"), err["msg"]) from e
    return CapsuleConfig.model_validate(settings.model_dump())


def write_default_config(data_root: Path) -> Path:
    """Write a commented config.yaml for the data root if none exists."""
    path = config_path(data_root)
    if path.exists():
        return path
    defaults = CapsuleConfig()
    lines = [
        "# CapsuleOS configuration",
        "# Environment variables override this file: CAPSULEOS__SECTION__KEY",
        "",
        "server:",
        f"  port: {defaults.server.port}",
        "",
        "logging:",
        f"  level: {defaults.logging.level}",
        "",
        "search:",
        "  # Minimum per-field fuzzy similarity (0-100)",
        f"  min_similarity: {defaults.search.min_similarity:g}",
        "",
        "watcher:",
        f"  debounce_sec: {defaults.watcher.debounce_sec}",
        "",
    ]
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("\n".join(lines))
    return path
