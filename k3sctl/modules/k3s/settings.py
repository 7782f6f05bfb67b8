"""Wizard defaults.

Defaults are loaded from the following sources, later ones winning:
1. Built-in values
2. The first existing configuration file in ``DEFAULT_CONFIG_PATHS``
3. ``K3SCTL_*`` environment variables (``K3SCTL_INGRESS__HTTP_PORT=31080``)
"""
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, Field, field_validator

from ...config import Config

logger = logging.getLogger("k3s.settings")

ENV_PREFIX = "K3SCTL_"
ENV_NESTED_DELIMITER = "__"

DEFAULT_CONFIG_PATHS = [
    Path("/etc/k3sctl/config.yaml"),
    Path("~/.config/k3sctl/config.yaml").expanduser(),
    Path("k3sctl-config.yaml").absolute(),
]


class IngressDefaults(BaseModel):
    """Defaults offered when placing the ingress controller."""
    label_key: str = Field(default="ingress", description="Node label key selecting ingress nodes")
    label_value: str = Field(default="true", description="Node label value selecting ingress nodes")
    node_port: bool = Field(default=True, description="Expose ingress through NodePort")
    http_port: int = Field(default=30080, description="HTTP NodePort")
    https_port: int = Field(default=30443, description="HTTPS NodePort")
    tolerate_dedicated_taint: bool = Field(
        default=True, description="Tolerate the dedicated=ingress:NoSchedule taint"
    )


class StorageDefaults(BaseModel):
    """Defaults offered when deploying NFS dynamic storage."""
    export_path: str = Field(default="/data/k3s", description="NFS export path")
    class_name: str = Field(default="nfs-rwx", description="StorageClass name")
    set_as_default: bool = Field(default=False, description="Mark the class as cluster default")
    namespace: str = Field(default="nfs-system", description="Namespace of the provisioner")
    provisioner_image: str = Field(
        default="registry.k8s.io/sig-storage/nfs-subdir-external-provisioner:v4.0.2",
        description="Provisioner container image",
    )
    archive_on_delete: bool = Field(default=True, description="Archive volume data on delete")

    @field_validator('export_path')
    @classmethod
    def absolute_export_path(cls, v: str) -> str:
        if not v.startswith('/'):
            raise ValueError(f"export_path must be absolute, got {v!r}")
        return v


class LoggingSettings(BaseModel):
    """Logging configuration."""
    level: str = Field(default=Config.LOG_LEVEL, description="Logging level")
    file: Optional[str] = Field(default=None, description="Path to log file (if None, logs to stderr)")

    @field_validator('level')
    @classmethod
    def upper_level(cls, v: str) -> str:
        return v.upper()


class WizardSettings(BaseModel):
    """k3sctl wizard settings."""
    mirror_cn: bool = Field(default=False, description="Use the China installer mirror by default")
    disable_servicelb: bool = Field(default=True, description="Disable servicelb on server nodes by default")
    ingress: IngressDefaults = Field(default_factory=IngressDefaults)
    storage: StorageDefaults = Field(default_factory=StorageDefaults)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @classmethod
    def load(cls, config_path: Optional[Union[str, Path]] = None,
             environ: Optional[Dict[str, str]] = None) -> 'WizardSettings':
        """Load settings from file and environment variables."""
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

        _apply_env_overrides(config_data, os.environ if environ is None else environ)
        return cls(**config_data)

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
            logger.warning(f"Ignoring config {path}: top level must be a mapping")
            return {}
        logger.debug(f"Loaded settings from {path}")
        return data

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.model_dump(exclude_none=True),
                              default_flow_style=False, sort_keys=False)

    def save(self, path: Union[str, Path]) -> Path:
        """Save settings to a file readable only by its owner."""
        path = Path(path).expanduser().absolute()
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, 'w') as f:
            f.write(self.to_yaml())
        path.chmod(0o600)
        logger.info(f"Saved settings to {path}")
        return path


def _apply_env_overrides(data: Dict[str, Any], environ) -> None:
    """Fold ``K3SCTL_SECTION__KEY=value`` variables into ``data``."""
    for name, value in environ.items():
        if not name.startswith(ENV_PREFIX):
            continue
        keys: List[str] = name[len(ENV_PREFIX):].lower().split(ENV_NESTED_DELIMITER)
        if not all(keys):
            continue
        target = data
        for key in keys[:-1]:
            node = target.get(key)
            if not isinstance(node, dict):
                node = target[key] = {}
            target = node
        target[keys[-1]] = value


# Global settings instance
_settings: Optional[WizardSettings] = None


def get_settings(config_path: Optional[Union[str, Path]] = None) -> WizardSettings:
    """Get or create the global settings instance."""
    global _settings
    if _settings is None:
        _settings = WizardSettings.load(config_path)
    return _settings


def set_settings(settings: Optional[WizardSettings]) -> None:
    """Set (or reset with None) the global settings instance."""
    global _settings
    _settings = settings
