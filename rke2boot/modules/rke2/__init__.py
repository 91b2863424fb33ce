"""
RKE2 single-node server bootstrap.

- bootstrap: ordered step pipeline with fail-fast semantics
- configuration: config.yaml rendering and validation
- service: upstream installer, systemd unit patch, systemctl wrappers
- verification: readiness polling for the service and the node
- credentials: kubectl, kubeconfig, node token and CA certificate export
- models: data models shared by the above
"""

from .bootstrap import RKE2Bootstrapper, Step
from .configuration import render_config, validate_config_text, write_config
from .credentials import read_credentials
from .models import BootstrapState, Credentials, Distribution, InvokingUser, PackageManager
from .verification import wait_for_node_ready, wait_for_service

__all__ = [
    'RKE2Bootstrapper',
    'Step',
    'render_config',
    'validate_config_text',
    'write_config',
    'read_credentials',
    'BootstrapState',
    'Credentials',
    'Distribution',
    'InvokingUser',
    'PackageManager',
    'wait_for_node_ready',
    'wait_for_service',
]
