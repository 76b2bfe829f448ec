"""Configuration loading with hierarchy support."""

import os
from pathlib import Path
from typing import Any, Optional, get_args, get_origin

import yaml
from pydantic import BaseModel

from agentgate.config.defaults import (
    DEFAULT_CONFIG_FILE,
    ENV_ALIASES,
    ENV_PREFIX,
    PROJECT_CONFIG_NAME,
    SYSTEM_CONFIG_FILE,
)
from agentgate.config.schemas import AgentGateConfig
from agentgate.telemetry.logger import get_logger

logger = get_logger(__name__)

ConfigKey = tuple[str, ...]


def get_default_config_path() -> Path:
    """Get the default user configuration path."""
    return DEFAULT_CONFIG_FILE


def get_config_paths() -> list[Path]:
    """Get ordered list of configuration paths to check."""
    candidates = [
        SYSTEM_CONFIG_FILE,
        get_default_config_path(),
        Path.cwd() / PROJECT_CONFIG_NAME,
    ]
    return [path for path in candidates if path.exists()]


def load_yaml_config(path: Path) -> dict[str, Any]:
    """Load a YAML configuration file.

    Raises:
        ValueError: If the document is not a mapping
    """
    with open(path, "r") as f:
        content = yaml.safe_load(f) or {}
    if not isinstance(content, dict):
        raise ValueError(f"Configuration root must be a mapping: {path}")
    return content


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dictionaries, with override taking precedence."""
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def string_list_fields(model: type[BaseModel] = AgentGateConfig, prefix: ConfigKey = ()) -> set[ConfigKey]:
    """Keys of ``list[str]`` fields, which accept comma-separated env values."""
    found: set[ConfigKey] = set()
    for name, info in model.model_fields.items():
        annotation = info.annotation
        origin = get_origin(annotation)
        if origin is list:
            if get_args(annotation) == (str,):
                found.add((*prefix, name))
        elif origin is None and isinstance(annotation, type) and issubclass(annotation, BaseModel):
            found |= string_list_fields(annotation, (*prefix, name))
    return found


def get_env_overrides() -> dict[str, Any]:
    """Get configuration overrides from environment variables.

    Environment variables are prefixed with AGENTGATE_ and use double
    underscores for nested keys. For example:
    - AGENTGATE_LOG_LEVEL=DEBUG -> {"log_level": "DEBUG"}
    - AGENTGATE_SECURITY__NETWORK_ACCESS=true -> {"security": {"network_access": True}}

    Short aliases from ENV_ALIASES (AGENTGATE_POLICY, AGENTGATE_WORKSPACE, ...)
    are applied first, so the explicit nested form wins when both are set.
    List-of-string settings take a comma-separated value.
    """
    list_fields = string_list_fields()
    aliased: dict[str, Any] = {}
    nested: dict[str, Any] = {}

    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue

        name = key[len(ENV_PREFIX):]
        if name in ENV_ALIASES:
            parts, target = ENV_ALIASES[name], aliased
        else:
            parts, target = tuple(name.lower().split("__")), nested

        if parts in list_fields:
            parsed: Any = [p.strip() for p in value.split(",") if p.strip()]
        else:
            parsed = _parse_env_value(value)
        _set_nested(target, parts, parsed)

    return deep_merge(aliased, nested)


def _set_nested(target: dict[str, Any], parts: ConfigKey, value: Any) -> None:
    current = target
    for part in parts[:-1]:
        current = current.setdefault(part, {})
    current[parts[-1]] = value


def _parse_env_value(value: str) -> Any:
    """Parse an environment variable value to appropriate type."""
    if value.lower() in ("true", "yes", "1"):
        return True
    if value.lower() in ("false", "no", "0"):
        return False

    try:
        return int(value)
    except ValueError:
        pass

    try:
        return float(value)
    except ValueError:
        pass

    return value


def load_config(
    config_path: Optional[Path] = None,
    include_env: bool = True,
) -> AgentGateConfig:
    """Load configuration from all sources with proper hierarchy.

    Loading order (later overrides earlier):
    1. Default values (from schema)
    2. System config (/etc/agentgate/config.yaml)
    3. User config (~/.agentgate/config.yaml)
    4. Project config (.agentgate.yaml in cwd)
    5. Explicit config file (--config argument)
    6. Environment variables (AGENTGATE_*)

    Unreadable files found in steps 2-4 are skipped with a warning; an
    explicit file must exist and parse.

    Args:
        config_path: Optional explicit configuration file path
        include_env: Whether to include environment variable overrides

    Returns:
        Validated AgentGateConfig instance

    Raises:
        FileNotFoundError: If config_path does not exist
    """
    merged_config: dict[str, Any] = {}
    sources: list[str] = []

    for path in get_config_paths():
        try:
            merged_config = deep_merge(merged_config, load_yaml_config(path))
            sources.append(str(path))
        except (OSError, ValueError, yaml.YAMLError) as e:
            logger.warning("Skipping unreadable config", path=str(path), error=str(e))

    if config_path:
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")
        merged_config = deep_merge(merged_config, load_yaml_config(config_path))
        sources.append(str(config_path))

    if include_env:
        env_overrides = get_env_overrides()
        if env_overrides:
            merged_config = deep_merge(merged_config, env_overrides)
            sources.append("environment")

    config = AgentGateConfig(**merged_config)
    logger.debug("Configuration loaded", sources=sources)
    return config


def render_default_config() -> str:
    """Render the default configuration as YAML, one comment per setting."""
    defaults = AgentGateConfig().model_dump(mode="json", exclude_none=True)
    lines = [
        "# agentgate configuration",
        "# approval_policy: never | on-request | untrusted | on-failure",
        "",
    ]

    for section, value in defaults.items():
        info = AgentGateConfig.model_fields[section]
        if info.description:
            lines.append(f"# {info.description}")

        if not isinstance(value, dict):
            lines.extend(_dump_key(section, value))
            lines.append("")
            continue

        lines.append(f"{section}:")
        section_model = info.annotation
        for key, item in value.items():
            description = section_model.model_fields[key].description
            if description:
                lines.append(f"  # {description}")
            lines.extend(f"  {line}" for line in _dump_key(key, item))
        lines.append("")

    return "\n".join(lines)


def _dump_key(key: str, value: Any) -> list[str]:
    return yaml.safe_dump({key: value}, default_flow_style=False, sort_keys=False).splitlines()


def create_default_config(path: Path) -> None:
    """Create a default configuration file.

    Args:
        path: Path where to create the config file
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        f.write(render_default_config())
    logger.info("Default configuration written", path=str(path))
