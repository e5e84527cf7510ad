"""Configuration management for the clusterkit application.

Configuration is loaded from multiple sources with the following precedence:
1. Environment variables (CLUSTERKIT_*, also read from a .env file)
2. Configuration file
3. Default values
"""
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

# Load environment variables from .env file if it exists
load_dotenv()

logger = logging.getLogger("clusterkit.config")

DEFAULT_CONFIG_PATHS = [
    Path("~/.config/clusterkit/config.yaml"),
    Path("clusterkit.yaml"),
]

ENV_PREFIX = "CLUSTERKIT_"


class EngineConfig(BaseModel):
    """Container engine and Docker Desktop settings."""
    start_attempts: int = Field(
        default=60,
        description="How many times to poll the engine after launching Docker Desktop"
    )
    poll_interval: float = Field(
        default=1.0,
        description="Seconds between engine polls"
    )
    restart_wait_attempts: int = Field(
        default=60,
        description="How many times to poll the engine after a settings write"
    )
    settings_settle_delay: float = Field(
        default=2.0,
        description="Seconds to wait after a settings write before polling"
    )
    desktop_socket_dir: str = Field(
        default="~/Library/Containers/com.docker.docker/Data",
        description="Directory holding the Docker Desktop backend sockets"
    )

    @field_validator('desktop_socket_dir')
    @classmethod
    def expand_socket_dir(cls, v: str) -> str:
        """Expand the user home directory in the socket path."""
        return os.path.expanduser(v)


class KubeConfig(BaseModel):
    """Kubeconfig and cluster API settings."""
    kubeconfig: Optional[str] = Field(
        default=None,
        description="Kubeconfig path; defaults to $KUBECONFIG, then ~/.kube/config"
    )
    kind_node_image: str = Field(
        default="kindest/node",
        description="Node image repository used when a Kubernetes version is requested"
    )
    healthy_wait_attempts: int = Field(
        default=120,
        description="How many times to poll a recorded cluster that is not answering yet"
    )


class RegistryConfig(BaseModel):
    """Local registry settings."""
    image: str = Field(default="registry:2", description="Registry container image")
    container_port: int = Field(default=5000, description="Port the registry listens on")
    help_url: str = Field(
        default="https://github.com/clusterkit/clusterkit",
        description="Help link published in the local-registry-hosting descriptor"
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log record format"
    )


class ClusterkitConfig(BaseModel):
    """clusterkit configuration."""
    engine: EngineConfig = Field(default_factory=EngineConfig)
    kube: KubeConfig = Field(default_factory=KubeConfig)
    registry: RegistryConfig = Field(default_factory=RegistryConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"extra": "ignore"}

    @classmethod
    def load(cls, config_path: Optional[Union[str, Path]] = None) -> 'ClusterkitConfig':
        """Load configuration from file and environment variables."""
        config_data: Dict[str, Any] = {}

        if config_path:
            config_path = Path(config_path).expanduser().absolute()
            if config_path.exists():
                config_data = cls._load_config_file(config_path)
        else:
            for path in DEFAULT_CONFIG_PATHS:
                path = path.expanduser().absolute()
                if path.exists():
                    config_data = cls._load_config_file(path)
                    break

        return cls(**_apply_env_overrides(config_data, os.environ))

    @classmethod
    def _load_config_file(cls, path: Path) -> Dict[str, Any]:
        """Load configuration from a YAML file."""
        try:
            with open(path, 'r') as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Failed to load config from {path}: {e}")
            return {}
        if not isinstance(data, dict):
            logger.warning(f"Ignoring config file {path}: expected a mapping")
            return {}
        logger.debug(f"Loaded config from {path}")
        return data


def _apply_env_overrides(data: Dict[str, Any], environ) -> Dict[str, Any]:
    """Overlay CLUSTERKIT_<SECTION>__<FIELD> variables onto file data."""
    result = {k: dict(v) if isinstance(v, dict) else v for k, v in data.items()}
    for key, value in environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        parts: List[str] = key[len(ENV_PREFIX):].lower().split("__")
        if len(parts) != 2:
            continue
        section, name = parts
        result.setdefault(section, {})
        if isinstance(result[section], dict):
            result[section][name] = value
    return result


# Global configuration instance
_config: Optional[ClusterkitConfig] = None


def get_config(config_path: Optional[Union[str, Path]] = None) -> ClusterkitConfig:
    """Get or create the global configuration instance."""
    global _config
    if _config is None:
        _config = ClusterkitConfig.load(config_path)
    return _config


def set_config(config: Optional[ClusterkitConfig]) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
