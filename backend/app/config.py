"""Configuration loader for the naumu backend."""
from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from typing_extensions import Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

LOGGER = logging.getLogger(__name__)

REPO_ROOT = Path(__file__).resolve().parents[2]
DEFAULT_ENV_FILE = REPO_ROOT / ".env"

ENV_FILE_ENV_VAR = "NAUMU_ENV_FILE"
PROVIDER_MODEL_ENV_VAR = "NAUMU_PROVIDER_MODEL"


def _split_csv(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


# Environment variable -> (config section, key, converter).
ENVIRONMENT_OVERRIDES: Dict[str, Tuple[str, str, Callable[[str], Any]]] = {
    PROVIDER_MODEL_ENV_VAR: ("provider", "model", str),
    "NAUMU_SNAPSHOT_PATH": ("storage", "snapshot_path", str),
    "NAUMU_ALLOWED_ORIGINS": ("ui", "allowed_origins", _split_csv),
}


class ConfigError(RuntimeError):
    """Raised when configuration cannot be loaded."""


class _FrozenModel(BaseModel):
    """Base model enforcing immutability for config sections."""

    model_config = ConfigDict(frozen=True)


class PipelineConfig(_FrozenModel):
    """Pipeline-level configuration."""

    version: str = Field(..., min_length=1)


class ForceProfileConfig(_FrozenModel):
    """Force parameters applied to one kind of displayed graph.

    Strengths follow the usual many-body convention where negative values
    repel. Alpha values control the cooling schedule: every step moves
    ``alpha`` towards ``alpha_target`` by ``alpha_decay`` and the simulation is
    considered settled once ``alpha`` drops below ``alpha_min``.
    """

    charge_strength: float = Field(..., lt=0.0)
    link_distance: float = Field(..., gt=0.0)
    link_strength: Optional[float] = Field(default=None, gt=0.0)
    center_strength: float = Field(..., ge=0.0, le=1.0)
    velocity_decay: float = Field(..., gt=0.0, lt=1.0)
    alpha_min: float = Field(..., gt=0.0, lt=1.0)
    alpha_decay: float = Field(..., gt=0.0, lt=1.0)
    reheat_alpha: float = Field(1.0, gt=0.0, le=1.0)
    reheat_velocity: float = Field(..., gt=0.0)
    drag_alpha_target: float = Field(0.3, ge=0.0, le=1.0)
    distance_min: float = Field(1.0, gt=0.0)
    distance_max: Optional[float] = Field(default=None, gt=0.0)

    @model_validator(mode="after")
    def _validate_distances(self) -> "ForceProfileConfig":
        if self.distance_max is not None and self.distance_max <= self.distance_min:
            msg = "distance_max must be greater than distance_min"
            raise ValueError(msg)
        return self


class LayoutConfig(_FrozenModel):
    """Layout engine configuration."""

    ambient: ForceProfileConfig
    result: ForceProfileConfig
    initial_radius: float = Field(10.0, gt=0.0)
    center_x: float = 0.0
    center_y: float = 0.0

    def profile(self, name: str) -> ForceProfileConfig:
        """Return the force profile registered under ``name``."""

        if name == "ambient":
            return self.ambient
        if name == "result":
            return self.result
        raise KeyError(f"Unknown force profile: {name}")


class RenderConfig(_FrozenModel):
    """Visual encoding settings used by the renderer."""

    node_radius: float = Field(4.0, gt=0.0)
    hit_radius_scale: float = Field(3.0, ge=1.0)
    label_font_size: float = Field(12.0, gt=0.0)
    type_font_size: float = Field(8.0, gt=0.0)
    type_label_gap: float = Field(2.0, ge=0.0)
    font_family: str = Field("Comfortaa, sans-serif", min_length=1)
    label_color: str = Field("#333", min_length=1)
    type_label_color: str = Field("rgba(100, 100, 100, 0.8)", min_length=1)
    edge_color: str = Field("rgba(0, 0, 0, 0.2)", min_length=1)
    edge_width: float = Field(1.0, gt=0.0)
    arrow_length: float = Field(3.5, ge=0.0)
    arrow_relative_position: float = Field(1.0, ge=0.0, le=1.0)
    scale_by_value: bool = False


class InteractionConfig(_FrozenModel):
    """Pointer, touch and wheel handling settings."""

    zoom_min: float = Field(0.1, gt=0.0)
    zoom_max: float = Field(8.0, gt=0.0)
    zoom_sensitivity: float = Field(0.0025, gt=0.0)
    pan_move_threshold: float = Field(4.0, ge=0.0)
    form_control_tags: List[str] = Field(default_factory=lambda: ["input", "textarea", "button", "select"])

    @field_validator("form_control_tags")
    @classmethod
    def _normalize_tags(cls, values: List[str]) -> List[str]:
        return [value.strip().lower() for value in values if value and value.strip()]

    @model_validator(mode="after")
    def _validate_zoom_limits(self) -> "InteractionConfig":
        if self.zoom_min >= self.zoom_max:
            msg = "interaction.zoom_min must be lower than interaction.zoom_max"
            raise ValueError(msg)
        return self


class AmbientGraphConfig(_FrozenModel):
    """Settings for the generated background graph."""

    node_count: int = Field(40, ge=0)
    max_outgoing_edges: int = Field(2, ge=0)
    seed: Optional[int] = None


class ViewConfig(_FrozenModel):
    """View adapter settings."""

    frame_interval_ms: float = Field(16.0, gt=0.0)
    default_width: int = Field(1280, ge=1)
    default_height: int = Field(800, ge=1)
    ambient_while_loading: bool = True


class ProviderConfig(_FrozenModel):
    """Settings required for the Anthropic graph provider."""

    model: str = Field(..., min_length=1)
    api_base: str = Field(..., min_length=1)
    api_version: str = Field(..., min_length=1)
    timeout_seconds: float = Field(..., gt=0)
    max_retries: int = Field(..., ge=0)
    temperature: float = Field(0.0, ge=0.0, le=1.0)
    max_output_tokens: int = Field(..., ge=1)
    prompt_version: str = Field(..., min_length=1)
    backoff_initial_seconds: float = Field(..., gt=0)
    backoff_max_seconds: float = Field(..., gt=0)
    retry_statuses: List[int] = Field(default_factory=list)
    entity_types: List[str] = Field(..., min_length=1)


class StorageConfig(_FrozenModel):
    """Snapshot persistence settings."""

    snapshot_path: str = Field(..., min_length=1)


class UIConfig(_FrozenModel):
    """UI-specific configuration values."""

    title: str = Field("naumu", min_length=1)
    tagline: str = Field("ideas, structured.")
    allowed_origins: List[str] = Field(default_factory=list)
    default_profile: Literal["ambient", "result"] = "ambient"


class AppConfig(_FrozenModel):
    """Top-level application configuration composed from config.yaml."""

    pipeline: PipelineConfig
    layout: LayoutConfig
    render: RenderConfig
    interaction: InteractionConfig
    ambient: AmbientGraphConfig
    view: ViewConfig
    provider: ProviderConfig
    storage: StorageConfig
    ui: UIConfig

    @staticmethod
    def default_path() -> Path:
        """Return the default location of the configuration file.

        Returns:
            Path: Absolute path to config.yaml at the repository root.
        """
        return Path(__file__).resolve().parents[2] / "config.yaml"


def _env_file_path() -> Optional[Path]:
    """Return the ``.env`` file to read, honouring ``NAUMU_ENV_FILE``."""

    override = os.getenv(ENV_FILE_ENV_VAR)
    if not override:
        return DEFAULT_ENV_FILE if DEFAULT_ENV_FILE.is_file() else None
    candidate = Path(override).expanduser()
    if candidate.is_file():
        return candidate
    LOGGER.warning("Environment file named by %s not found: %s", ENV_FILE_ENV_VAR, candidate)
    return None


def _parse_env_assignment(line: str) -> Optional[Tuple[str, str]]:
    """Split one ``.env`` line into a key and value.

    Blank lines, comments and lines without ``=`` yield ``None``. Quoted
    values keep their content verbatim; unquoted values lose trailing
    ``# comments``.
    """

    stripped = line.strip()
    if stripped.startswith("export "):
        stripped = stripped[len("export ") :].lstrip()
    if not stripped or stripped.startswith("#") or "=" not in stripped:
        return None
    key, _, value = stripped.partition("=")
    key, value = key.strip(), value.strip()
    if not key:
        return None
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        return key, value[1:-1]
    return key, value.split("#", 1)[0].rstrip()


def _load_env_file(path: Path) -> int:
    """Export ``path``'s assignments without replacing non-empty variables.

    Returns:
        int: Number of variables that were set.
    """

    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except OSError:
        LOGGER.warning("Unable to read environment file at %s", path)
        return 0
    exported = 0
    for line in lines:
        assignment = _parse_env_assignment(line)
        if assignment is None:
            continue
        key, value = assignment
        if os.environ.get(key, "").strip():
            continue
        os.environ[key] = value
        exported += 1
    LOGGER.debug("Exported %d variable(s) from %s", exported, path)
    return exported


def _apply_environment_overrides(raw_content: Dict[str, Any]) -> Dict[str, Any]:
    """Apply ``NAUMU_*`` overrides to the raw mapping before validation.

    Args:
        raw_content: Parsed YAML configuration prior to Pydantic validation.

    Returns:
        Dict[str, Any]: Configuration mapping with environment overrides applied.
    """

    env_file = _env_file_path()
    if env_file is not None:
        _load_env_file(env_file)

    for env_var, (section, key, convert) in ENVIRONMENT_OVERRIDES.items():
        value = os.getenv(env_var, "").strip()
        if not value:
            continue
        raw_content.setdefault(section, {})[key] = convert(value)
        LOGGER.info("Config %s.%s overridden from %s", section, key, env_var)
    return raw_content


def _read_yaml(path: Path) -> Dict[str, Any]:
    """Read YAML content from disk.

    Args:
        path: Location of the YAML file.

    Returns:
        Dict[str, Any]: Parsed YAML content.

    Raises:
        ConfigError: If the file cannot be read or parsed.
    """
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except FileNotFoundError as exc:
        LOGGER.error("Configuration file missing at %s", path)
        raise ConfigError("Configuration file not found") from exc
    except yaml.YAMLError as exc:
        LOGGER.error("Invalid YAML syntax in %s", path)
        raise ConfigError("Invalid YAML syntax") from exc
    if not isinstance(data, dict):
        LOGGER.error("Configuration root must be a mapping: %s", path)
        raise ConfigError("Configuration root must be a mapping")
    return data


@lru_cache(maxsize=1)
def load_config(path: Optional[Path] = None) -> AppConfig:
    """Load application configuration from YAML.

    Args:
        path: Optional override path to the YAML file.

    Returns:
        AppConfig: Parsed configuration object.

    Raises:
        ConfigError: If the configuration cannot be loaded or validated.
    """
    config_path = path or AppConfig.default_path()
    raw_content = _read_yaml(config_path)
    raw_content = _apply_environment_overrides(raw_content)
    try:
        return AppConfig(**raw_content)
    except ValidationError as exc:
        LOGGER.error("Invalid configuration values: %s", exc)
        raise ConfigError("Configuration validation failed") from exc
