"""
Configuration loading and validation for siblingcast.

Two kinds of settings exist:

- the YAML configuration file (roster, timeouts, metrics aggregation,
  server and logging settings), validated with pydantic;
- the process identity, resolved once from the environment at startup
  and passed into the cluster machinery instead of being read ad hoc.
"""
import os
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..utils.exceptions import ConfigError

# PM2-compatible environment variable names
PM2_ID_VAR = "pm_id"
PM2_NAME_VAR = "name"
PM2_EXEC_MODE_VAR = "exec_mode"
PM2_INSTANCE_VAR = "instance_var"
PM2_CLUSTER_MODE = "cluster_mode"

DEFAULT_INSTANCE_VAR = "NODE_APP_INSTANCE"
DEFAULT_SERVICE_NAME = "siblingcast"

_TRUTHY = {"1", "true", "yes", "on"}


class AggregationStrategy(str, Enum):
    """How samples of one metric are combined across workers."""
    SUM = "sum"
    FIRST = "first"
    MIN = "min"
    MAX = "max"
    AVERAGE = "average"
    OMIT = "omit"


class SiblingConfig(BaseModel):
    """One worker of the cluster roster."""
    process_id: str
    instance_id: Optional[str] = None
    url: str

    @field_validator("process_id", "instance_id", mode="before")
    @classmethod
    def coerce_to_str(cls, v):
        """Allow numeric ids in YAML."""
        if v is None:
            return v
        return str(v)

    @field_validator("url")
    @classmethod
    def strip_trailing_slash(cls, v):
        """Normalize base URL."""
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"Sibling url must be http(s): {v}")
        return v.rstrip("/")


class ClusterConfig(BaseModel):
    """Broadcast round and roster settings."""
    include_self: bool = True
    default_timeout_seconds: float = Field(default=10.0, gt=0)
    probe_timeout_seconds: float = Field(default=1.0, gt=0)
    siblings: List[SiblingConfig] = Field(default_factory=list)

    @field_validator("siblings")
    @classmethod
    def validate_unique_ids(cls, v):
        """Validate that roster process ids are unique."""
        seen = set()
        for sibling in v:
            if sibling.process_id in seen:
                raise ValueError(f"Duplicate sibling process_id: {sibling.process_id}")
            seen.add(sibling.process_id)
        return v


class MetricsConfig(BaseModel):
    """Metrics aggregation settings."""
    aggregators: Dict[str, AggregationStrategy] = Field(default_factory=dict)
    worker_stats: bool = True


class ServerConfig(BaseModel):
    """HTTP endpoint settings."""
    host: str = "127.0.0.1"
    port: int = Field(default=9100, ge=1, le=65535)


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = "INFO"
    file: Optional[str] = None
    console: bool = True


class Config(BaseModel):
    """Main configuration object."""
    cluster: ClusterConfig = Field(default_factory=ClusterConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    def get_sibling(self, process_id: str) -> SiblingConfig:
        """Get roster entry for a specific worker."""
        for sibling in self.cluster.siblings:
            if sibling.process_id == process_id:
                return sibling
        raise ConfigError(f"Unknown sibling: {process_id}")


class ProcessIdentity(BaseModel):
    """Identity of this worker, fixed at process start."""
    model_config = ConfigDict(frozen=True)

    self_id: str
    instance_id: str
    service_name: str = DEFAULT_SERVICE_NAME
    clustered: bool = False


def resolve_identity(
    environ: Optional[Mapping[str, str]] = None,
    overrides: Optional[Dict[str, Any]] = None
) -> ProcessIdentity:
    """
    Resolve the process identity from environment variables.

    ``SIBLINGCAST_*`` variables take precedence over the PM2 ones
    (``pm_id``, ``name``, ``exec_mode``, ``instance_var``).

    Args:
        environ: Environment mapping (default: os.environ)
        overrides: Explicit field values, e.g. from the command line

    Returns:
        Validated ProcessIdentity

    Raises:
        ConfigError: If the resolved values are invalid
    """
    env = os.environ if environ is None else environ

    self_id = env.get("SIBLINGCAST_PROCESS_ID") or env.get(PM2_ID_VAR) or "0"
    service_name = (
        env.get("SIBLINGCAST_SERVICE_NAME")
        or env.get(PM2_NAME_VAR)
        or DEFAULT_SERVICE_NAME
    )

    clustered_flag = env.get("SIBLINGCAST_CLUSTERED")
    if clustered_flag is not None:
        clustered = clustered_flag.strip().lower() in _TRUTHY
    else:
        clustered = env.get(PM2_EXEC_MODE_VAR) == PM2_CLUSTER_MODE

    instance_var = env.get(PM2_INSTANCE_VAR) or DEFAULT_INSTANCE_VAR
    instance_id = (
        env.get("SIBLINGCAST_INSTANCE_ID")
        or env.get(instance_var)
        or self_id
    )

    values: Dict[str, Any] = {
        "self_id": self_id,
        "instance_id": instance_id,
        "service_name": service_name,
        "clustered": clustered,
    }
    if overrides:
        values.update({k: v for k, v in overrides.items() if v is not None})

    try:
        return ProcessIdentity(**values)
    except Exception as e:
        raise ConfigError(f"Invalid process identity: {e}")


_process_identity: Optional[ProcessIdentity] = None


def get_process_identity() -> ProcessIdentity:
    """Get the identity of this process, resolving it on first use."""
    global _process_identity
    if _process_identity is None:
        _process_identity = resolve_identity()
    return _process_identity


def set_process_identity(identity: Optional[ProcessIdentity]) -> None:
    """Pin the process identity (startup code and tests)."""
    global _process_identity
    _process_identity = identity


def is_clustered_mode() -> bool:
    """Whether this process takes part in a multi-worker cluster."""
    return get_process_identity().clustered


def load_yaml_file(file_path: Path) -> Dict[str, Any]:
    """
    Load and parse a YAML file.

    Args:
        file_path: Path to YAML file

    Returns:
        Parsed YAML content as dictionary

    Raises:
        ConfigError: If file doesn't exist or is invalid
    """
    if not file_path.exists():
        raise ConfigError(f"Configuration file not found: {file_path}")

    try:
        with open(file_path, "r") as f:
            data = yaml.safe_load(f)
            if data is None:
                return {}
            if not isinstance(data, dict):
                raise ConfigError(f"Top level of {file_path} must be a mapping")
            return data
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {file_path}: {e}")
    except ConfigError:
        raise
    except Exception as e:
        raise ConfigError(f"Error reading {file_path}: {e}")


def load_config(config_path: Optional[Path] = None) -> Config:
    """
    Load siblingcast configuration from YAML file.

    Args:
        config_path: Path to config file (default: built-in defaults)

    Returns:
        Validated Config object

    Raises:
        ConfigError: If configuration is invalid
    """
    if config_path is None:
        return Config()

    data = load_yaml_file(Path(config_path))

    try:
        return Config(**data)
    except Exception as e:
        raise ConfigError(f"Invalid configuration: {e}")


def save_config(config: Config, config_path: Path) -> None:
    """
    Save configuration to YAML file.

    Args:
        config: Config object to save
        config_path: Path to save configuration

    Raises:
        ConfigError: If unable to save configuration
    """
    try:
        config_dict = config.model_dump(mode="json", exclude_none=True)

        config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(config_path, "w") as f:
            yaml.dump(config_dict, f, default_flow_style=False, sort_keys=False)

    except Exception as e:
        raise ConfigError(f"Error saving configuration: {e}")
