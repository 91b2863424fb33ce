"""Settings for rke2boot.

Settings are loaded from several sources with the following precedence:
1. Explicitly passed overrides (CLI options)
2. Environment variables (``RKE2BOOT_`` prefix, ``__`` between nested keys),
   then a ``.env`` file
3. A YAML settings file
4. Default values
"""
import logging
import os
from contextvars import ContextVar
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Type, Union

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    SettingsError,
    YamlConfigSettingsSource,
)

from .exceptions import ConfigurationError

logger = logging.getLogger("rke2boot.config")

ENV_PREFIX = "RKE2BOOT_"
ENV_NESTED_DELIMITER = "__"

DEFAULT_CONFIG_PATHS = [
    Path("/etc/rke2boot/config.yaml"),
    Path("~/.config/rke2boot/config.yaml").expanduser(),
    Path("rke2boot.yaml").absolute(),
]

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class RKE2Config(BaseModel):
    """Where RKE2 lives on the host and how it is configured."""
    config_file: str = Field(
        default="/etc/rancher/rke2/config.yaml",
        description="RKE2 server configuration file"
    )
    verbosity: int = Field(
        default=3,
        ge=0,
        le=10,
        description="Log verbosity written as the 'v' key"
    )
    debug: bool = Field(
        default=True,
        description="Value of the 'debug' key"
    )
    write_kubeconfig_mode: str = Field(
        default="0644",
        description="Mode RKE2 applies to the kubeconfig it writes"
    )
    install_url: str = Field(
        default="https://get.rke2.io",
        description="Upstream install script"
    )
    version: Optional[str] = Field(
        default=None,
        description="Pin INSTALL_RKE2_VERSION (e.g. v1.30.4+rke2r1)"
    )
    channel: Optional[str] = Field(
        default=None,
        description="INSTALL_RKE2_CHANNEL (stable, latest, ...)"
    )
    service_name: str = Field(default="rke2-server.service")
    unit_search_paths: List[str] = Field(
        default_factory=lambda: [
            "/usr/local/lib/systemd/system",
            "/usr/lib/systemd/system",
            "/etc/systemd/system",
        ]
    )
    unit_patch_marker: str = Field(
        default="nm-cloud-setup",
        description="ExecStartPre lines containing this text are commented out"
    )
    data_dir: str = Field(default="/var/lib/rancher/rke2")
    kubeconfig_path: str = Field(default="/etc/rancher/rke2/rke2.yaml")
    kubectl_target: str = Field(default="/usr/local/bin/kubectl")

    @field_validator("write_kubeconfig_mode", mode="before")
    @classmethod
    def check_mode(cls, v: Any) -> str:
        # Unquoted 0644 in YAML arrives as the integer 420
        if isinstance(v, int):
            return f"{v:04o}"
        try:
            int(v, 8)
        except ValueError:
            raise ValueError(f"not an octal file mode: {v!r}")
        return v

    @property
    def config_dir(self) -> str:
        return os.path.dirname(self.config_file)

    @property
    def bin_dir(self) -> str:
        return os.path.join(self.data_dir, "bin")

    @property
    def kubectl_source(self) -> str:
        return os.path.join(self.bin_dir, "kubectl")

    @property
    def node_token_path(self) -> str:
        return os.path.join(self.data_dir, "server", "node-token")

    @property
    def ca_cert_path(self) -> str:
        return os.path.join(self.data_dir, "server", "tls", "server-ca.crt")


class SystemConfig(BaseModel):
    """Host files and packages touched during preparation."""
    fstab_path: str = Field(default="/etc/fstab")
    os_release_path: str = Field(default="/etc/os-release")
    prerequisite_packages: List[str] = Field(default_factory=lambda: ["curl"])
    extra_path: List[str] = Field(
        default_factory=lambda: ["/var/lib/rancher/rke2/bin", "/usr/local/bin"],
        description="Directories appended to PATH if missing"
    )


class NetworkConfig(BaseModel):
    """Public IP lookup."""
    ip_echo_url: str = Field(default="https://ifconfig.me/ip")
    timeout: int = Field(default=10, gt=0, description="HTTP timeout in seconds")


class ReadinessConfig(BaseModel):
    """Polling used instead of fixed sleeps."""
    service_timeout: int = Field(default=300, gt=0)
    node_timeout: int = Field(default=600, gt=0)
    interval: float = Field(default=5.0, gt=0)
    wait_for_node: bool = Field(
        default=True,
        description="Poll the Kubernetes API until the node is Ready"
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = Field(default="INFO")
    file: Optional[str] = Field(
        default=None,
        description="Path to log file (if None, logs only to the console)"
    )
    max_size_mb: int = Field(default=10, gt=0)
    backup_count: int = Field(default=3, ge=0)

    @field_validator("level")
    @classmethod
    def normalize_level(cls, v: str) -> str:
        level = v.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"log level must be one of {', '.join(LOG_LEVELS)}")
        return level


class SettingsFileSource(YamlConfigSettingsSource):
    """The YAML settings file, with read errors reported as ConfigurationError."""

    def _read_file(self, file_path: Path) -> Dict[str, Any]:
        try:
            data = super()._read_file(file_path)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Failed to load settings from {file_path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"Settings file {file_path} must contain a mapping")
        logger.debug(f"Loaded settings from {file_path}")
        return data


# (settings file, read environment) for the BootstrapConfig being built
_sources: ContextVar[Tuple[Optional[Path], bool]] = ContextVar("rke2boot_settings_sources", default=(None, True))


class BootstrapConfig(BaseSettings):
    """Complete rke2boot settings.

    ``RKE2BOOT_RKE2__VERBOSITY=5`` sets ``rke2.verbosity``. List values are
    given as JSON, e.g. ``RKE2BOOT_SYSTEM__PREREQUISITE_PACKAGES='["curl", "jq"]'``.
    """
    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_nested_delimiter=ENV_NESTED_DELIMITER,
        env_file=".env",
        extra="ignore",
    )

    rke2: RKE2Config = Field(default_factory=RKE2Config)
    system: SystemConfig = Field(default_factory=SystemConfig)
    network: NetworkConfig = Field(default_factory=NetworkConfig)
    readiness: ReadinessConfig = Field(default_factory=ReadinessConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        config_file, read_env = _sources.get()
        sources = [init_settings]
        if read_env:
            sources += [env_settings, dotenv_settings]
        if config_file is not None:
            sources.append(SettingsFileSource(settings_cls, yaml_file=config_file))
        return tuple(sources)

    @classmethod
    def load(
        cls,
        config_path: Optional[Union[str, Path]] = None,
        overrides: Optional[Mapping[str, Any]] = None,
        read_env: bool = True,
    ) -> "BootstrapConfig":
        """Build settings from file, environment and explicit overrides.

        Args:
            config_path: Settings file. When None, the first existing
                entry of DEFAULT_CONFIG_PATHS is used.
            overrides: Nested dict applied last, e.g. {"rke2": {"verbosity": 5}}
            read_env: Apply RKE2BOOT_* variables and .env

        Raises:
            ConfigurationError: If a file is unreadable or a value is invalid
        """
        path = find_config_file(config_path)
        if path is None and config_path:
            raise ConfigurationError(f"Settings file not found: {config_path}")

        token = _sources.set((path, read_env))
        try:
            return cls(**dict(overrides or {}))
        except (ValidationError, SettingsError) as e:
            raise ConfigurationError(f"Invalid settings: {e}") from e
        finally:
            _sources.reset(token)

    def save(self, path: Union[str, Path]) -> Path:
        """Write settings to a YAML file with owner-only permissions."""
        path = Path(path).expanduser().absolute()
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            yaml.safe_dump(self.model_dump(exclude_none=True), f, default_flow_style=False, sort_keys=False)
        path.chmod(0o600)
        return path


def find_config_file(config_path: Optional[Union[str, Path]] = None) -> Optional[Path]:
    """Return the settings file that load() would read, or None."""
    if config_path:
        path = Path(config_path).expanduser().absolute()
        return path if path.exists() else None
    for path in DEFAULT_CONFIG_PATHS:
        path = path.expanduser().absolute()
        if path.exists():
            return path
    return None
