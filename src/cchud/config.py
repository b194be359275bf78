"""Configuration for cchud.

Settings come from up to three YAML layers, later layers winning key by key:

1. the user config (``$XDG_CONFIG_HOME/cchud/config.yaml``)
2. the project's ``.cchud.yaml``
3. the project's ``.cchud.yaml.local`` (personal, normally git-ignored)

A project layer that sets ``ignore_parent_configs: true`` drops the user layer.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from functools import reduce
from pathlib import Path
from typing import Any, cast

import yaml
from pydantic import BaseModel, Field, ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from cchud.xdg_paths import get_config_file_path

PROJECT_CONFIG_NAME = ".cchud.yaml"
LOCAL_CONFIG_NAME = ".cchud.yaml.local"


class TransportConfig(BaseModel):
    """Configuration for the event transport reader."""

    path: str = ""  # empty means the XDG default pipe
    poll_interval: float = Field(default=0.1, gt=0)
    reconnect_base: float = Field(default=0.1, gt=0)
    reconnect_cap: float = Field(default=30.0, gt=0)
    rescan_interval: float = Field(default=1.0, gt=0)


class TrackerConfig(BaseModel):
    """Configuration for the session aggregators."""

    max_tools: int = Field(default=30, ge=1)
    context_max_tokens: int = Field(default=200_000, ge=1)
    token_history: int = Field(default=50, ge=1)
    burn_window: float = Field(default=60.0, gt=0)


class DashboardConfig(BaseModel):
    """Configuration for the live dashboard."""

    refresh_per_second: float = Field(default=4.0, gt=0)
    show_git: bool = True
    git_poll_interval: float = Field(default=5.0, gt=0)
    show_breakdown: bool = True
    max_tools_visible: int = Field(default=12, ge=1)


@dataclass
class ConfigWarning:
    """A problem found while loading config; loading continues past it."""

    file: str
    field_name: str
    message: str
    value: object = field(default=None, repr=False)


class Config(BaseModel):
    """Configuration settings for cchud."""

    model: str = "sonnet"
    log_level: str = "WARNING"

    # Set in a project layer to skip the user layer
    ignore_parent_configs: bool = False

    transport: TransportConfig = TransportConfig()
    trackers: TrackerConfig = TrackerConfig()
    dashboard: DashboardConfig = DashboardConfig()


def _deep_merge(base: dict[str, object], override: dict[str, object]) -> dict[str, object]:
    """Merge ``override`` onto ``base`` without mutating either.

    Mappings present on both sides merge key by key; any other value in
    ``override`` replaces the one in ``base``.
    """
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = _deep_merge(cast(dict[str, object], current), cast(dict[str, object], value))
        else:
            merged[key] = value
    return merged


def _load_yaml_file(path: Path) -> tuple[dict[str, object], list[ConfigWarning]]:
    """Read one config layer.

    Args:
        path: YAML file; it need not exist.

    Returns:
        The layer's mapping (empty when missing, unreadable or not a mapping)
        and any warnings raised while reading it.
    """
    if not path.exists():
        return {}, []
    try:
        data: Any = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        return {}, [ConfigWarning(file=str(path), field_name="(file)", message=f"YAML parse error: {e}")]
    except OSError as e:
        return {}, [ConfigWarning(file=str(path), field_name="(file)", message=f"File read error: {e}")]
    if not isinstance(data, dict):
        return {}, []
    return cast(dict[str, object], data), []


def _to_warning(error: Mapping[str, Any]) -> ConfigWarning:
    return ConfigWarning(
        file="merged config",
        field_name=".".join(str(part) for part in error["loc"]),
        message=error["msg"],
        value=error.get("input"),
    )


def load_config(
    config_path: Path | None = None,
    project_dir: Path | None = None,
    strict: bool = False,
) -> tuple[Config, list[ConfigWarning]]:
    """Load and validate the layered configuration.

    Args:
        config_path: User config file; the XDG default when None.
        project_dir: Directory holding the project layers, if any.
        strict: Return defaults on any validation error instead of dropping
            only the offending sections.

    Returns:
        The config and every warning collected on the way.
    """
    paths = [config_path or get_config_file_path()]
    if project_dir:
        paths += [project_dir / PROJECT_CONFIG_NAME, project_dir / LOCAL_CONFIG_NAME]

    layers: list[dict[str, object]] = []
    warnings: list[ConfigWarning] = []
    for path in paths:
        data, layer_warnings = _load_yaml_file(path)
        layers.append(data)
        warnings.extend(layer_warnings)

    if any(layer.get("ignore_parent_configs") for layer in layers[1:]):
        layers = layers[1:]
    merged = reduce(_deep_merge, layers, {})

    try:
        return Config.model_validate(merged), warnings
    except ValidationError as e:
        errors = e.errors()
    warnings.extend(_to_warning(error) for error in errors)
    if strict:
        return Config(), warnings

    # Drop each section that failed and keep the rest
    failed = {str(error["loc"][0]) for error in errors if error["loc"]}
    recovered = {key: value for key, value in merged.items() if key not in failed}
    try:
        return Config.model_validate(recovered), warnings
    except ValidationError:
        return Config(), warnings


def display_config_warnings(warnings: list[ConfigWarning], console: Console) -> None:
    """Print warnings in a single yellow panel; prints nothing when there are none."""
    if not warnings:
        return

    lines: list[Text] = []
    for warning in warnings:
        line = Text.assemble(
            (f"  {warning.file}: ", "dim"),
            (warning.field_name, "bold"),
            (f": {warning.message}", "yellow"),
        )
        if warning.value is not None:
            line.append(f" (got: {warning.value!r})", style="dim")
        lines.append(line)

    console.print(Panel(Text("\n").join(lines), title="[yellow]Config Warnings[/]", border_style="yellow"))


def save_config(config: Config, config_path: Path | None = None) -> Path:
    """Write ``config`` as YAML, creating parent directories.

    Args:
        config: Settings to write.
        config_path: Target file; the XDG default when None.

    Returns:
        The path written.
    """
    path = config_path or get_config_file_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.dump(config.model_dump(mode="json"), default_flow_style=False), encoding="utf-8")
    return path
