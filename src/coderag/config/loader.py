"""Configuration loading with pydantic-settings.

Sources, highest precedence first:
1. Keyword overrides passed to load_config()
2. Environment variables (CODERAG__SECTION__KEY)
3. Per-root YAML (<root>/.coderag/config.yaml)
4. User YAML (~/.config/coderag/config.yaml)
5. Model defaults
"""

from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from coderag.config.constants import CONFIG_DIR_NAME, CONFIG_FILE_NAME
from coderag.config.models import (
    ChatConfig,
    CodeRagConfig,
    EmbeddingConfig,
    IndexerConfig,
    LoggingConfig,
    SearchConfig,
    SegmentationConfig,
    VectorStoreConfig,
    WatchConfig,
)
from coderag.core.errors import ConfigError

GLOBAL_CONFIG_PATH = Path("~/.config/coderag/config.yaml").expanduser()


def _load_yaml(path: Path) -> dict[str, Any]:
    """Read one YAML layer. A missing file is an empty layer."""
    if not path.is_file():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigError.parse_error(str(path), str(e)) from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError.parse_error(str(path), "top level must be a mapping")
    return data


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Merge override into a copy of base, recursing into nested sections."""
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = _deep_merge(current, value)
        else:
            merged[key] = value
    return merged


class _YamlLayers(PydanticBaseSettingsSource):
    """Feeds the merged YAML layers to pydantic-settings below env vars."""

    def __init__(self, settings_cls: type[BaseSettings], data: dict[str, Any]) -> None:
        super().__init__(settings_cls)
        self._data = data

    def get_field_value(self, field: Any, field_name: str) -> tuple[Any, str, bool]:  # noqa: ARG002
        value = self._data.get(field_name)
        return value, field_name, isinstance(value, dict)

    def __call__(self) -> dict[str, Any]:
        return self._data


def _settings_for(data: dict[str, Any]) -> type[BaseSettings]:
    """Build a settings class bound to one load's YAML data.

    A fresh class per call keeps concurrent loads for different roots apart.
    """

    class CodeRagSettings(BaseSettings):
        model_config = SettingsConfigDict(
            env_prefix="CODERAG__",
            env_nested_delimiter="__",
            case_sensitive=False,
        )

        logging: LoggingConfig = LoggingConfig()
        watch: WatchConfig = WatchConfig()
        segmentation: SegmentationConfig = SegmentationConfig()
        indexer: IndexerConfig = IndexerConfig()
        embedding: EmbeddingConfig = EmbeddingConfig()
        vector_store: VectorStoreConfig = VectorStoreConfig()
        chat: ChatConfig = ChatConfig()
        search: SearchConfig = SearchConfig()

        @classmethod
        def settings_customise_sources(
            cls,
            settings_cls: type[BaseSettings],
            init_settings: PydanticBaseSettingsSource,
            env_settings: PydanticBaseSettingsSource,
            dotenv_settings: PydanticBaseSettingsSource,  # noqa: ARG003
            file_secret_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        ) -> tuple[PydanticBaseSettingsSource, ...]:
            return (init_settings, env_settings, _YamlLayers(settings_cls, data))

    return CodeRagSettings


def load_config(root: Path | None = None, **kwargs: Any) -> CodeRagConfig:
    """Resolve the configuration for a source root.

    Args:
        root: Directory whose .coderag/config.yaml is read. Defaults to cwd.
        **kwargs: Per-section overrides, e.g. ``logging={"level": "DEBUG"}``.

    Raises:
        ConfigError: Unparseable YAML or a value that fails validation.
    """
    root = root or Path.cwd()
    layers = _deep_merge(
        _load_yaml(GLOBAL_CONFIG_PATH),
        _load_yaml(root / CONFIG_DIR_NAME / CONFIG_FILE_NAME),
    )

    try:
        settings = _settings_for(layers)(**kwargs)
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first["loc"])
        raise ConfigError.invalid_value(field, first.get("input"), first["msg"]) from e
    return CodeRagConfig.model_validate(settings.model_dump())
