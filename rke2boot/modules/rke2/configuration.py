"""RKE2 server configuration file.

The file is rendered from templates/config.yaml.j2 with the following context:
- public_ip: address added to the API server certificate (tls-san)
- write_kubeconfig_mode: mode RKE2 applies to rke2.yaml
- debug: RKE2 debug flag
- verbosity: RKE2 log verbosity ('v')
- service_name: systemd unit that reads the file

The rendered YAML is parsed back and checked against CONFIG_SCHEMA before it
is written, so the file always holds exactly the documented keys.
"""

import ipaddress
import logging
import os
from typing import Any, Dict

import yaml
from jinja2 import (
    Environment,
    FileSystemLoader,
    StrictUndefined,
    TemplateNotFound,
    TemplateSyntaxError,
    UndefinedError,
)
from jsonschema import ValidationError, validate

from rke2boot.config import RKE2Config
from rke2boot.exceptions import ConfigurationError

logger = logging.getLogger("rke2boot.rke2.configuration")

TEMPLATE_NAME = 'config.yaml.j2'

CONFIG_SCHEMA = {
    "type": "object",
    "properties": {
        "write-kubeconfig-mode": {"type": "string", "pattern": "^0?[0-7]{3}$"},
        "tls-san": {
            "type": "array",
            "items": {"type": "string"},
            "minItems": 1,
            "maxItems": 1,
        },
        "debug": {"type": "boolean"},
        "v": {"type": "integer", "minimum": 0},
    },
    "required": ["write-kubeconfig-mode", "tls-san", "debug", "v"],
    "additionalProperties": False,
}


def get_template_path() -> str:
    """Get the absolute path to the templates directory."""
    return os.path.join(os.path.dirname(os.path.abspath(__file__)), 'templates')


def render_config(public_ip: str, settings: RKE2Config) -> str:
    """Render config.yaml for a single-node server.

    Args:
        public_ip: The host's public address, written as the only tls-san
        settings: RKE2 settings (verbosity, debug flag, kubeconfig mode)

    Returns:
        str: Rendered YAML, already validated

    Raises:
        ConfigurationError: If the IP is invalid, the template fails, or the
            result does not match CONFIG_SCHEMA
    """
    try:
        ipaddress.ip_address(public_ip)
    except ValueError:
        raise ConfigurationError(f"tls-san must be an IP address, got {public_ip!r}")

    env = Environment(
        loader=FileSystemLoader(get_template_path()),
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
        undefined=StrictUndefined
    )

    try:
        template = env.get_template(TEMPLATE_NAME)
        rendered = template.render(
            public_ip=public_ip,
            write_kubeconfig_mode=settings.write_kubeconfig_mode,
            debug=settings.debug,
            verbosity=settings.verbosity,
            service_name=settings.service_name,
        )
    except TemplateNotFound as e:
        raise ConfigurationError(f"Configuration template not found: {e}") from e
    except TemplateSyntaxError as e:
        raise ConfigurationError(f"Template syntax error: {e}") from e
    except UndefinedError as e:
        raise ConfigurationError(f"Missing required template variable: {e}") from e

    validate_config_text(rendered)
    return rendered


def validate_config_text(text: str) -> Dict[str, Any]:
    """Parse a config.yaml body and check it against CONFIG_SCHEMA.

    Returns:
        dict: The parsed configuration

    Raises:
        ConfigurationError: If the text is not valid YAML or breaks the schema
    """
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Rendered config is not valid YAML: {e}") from e

    try:
        validate(instance=data, schema=CONFIG_SCHEMA)
    except ValidationError as ve:
        raise ConfigurationError(f"Rendered config failed validation: {ve.message}") from ve
    return data


def ensure_config_dir(path: str, dry_run: bool = False) -> None:
    """Create the directory holding config.yaml."""
    if dry_run:
        logger.info(f"[dry-run] mkdir -p {path}")
        return
    os.makedirs(path, mode=0o755, exist_ok=True)


def write_config(path: str, text: str, dry_run: bool = False) -> None:
    """Write the rendered config with owner-only permissions.

    Raises:
        OSError: If the file cannot be written
    """
    if dry_run:
        logger.info(f"[dry-run] would write {path}:\n{text}")
        return

    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, 'w', encoding='utf-8') as f:
        f.write(text)
    os.chmod(path, 0o600)
    logger.debug(f"Wrote config to {path}")
