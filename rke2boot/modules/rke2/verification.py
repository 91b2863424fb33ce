"""RKE2 readiness checks.

Polls systemd and the Kubernetes API instead of sleeping for a fixed time.
"""

import logging
import time
from typing import Any, Callable, Dict, List

from kubernetes import client, config

from rke2boot.exceptions import ReadinessError
from rke2boot.modules.rke2 import service
from rke2boot.modules.shell import CommandRunner

logger = logging.getLogger("rke2boot.rke2.verification")


def wait_for_service(
    runner: CommandRunner,
    service_name: str,
    timeout: float = 300,
    interval: float = 5,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> None:
    """Block until systemd reports the service active.

    Raises:
        ReadinessError: If the service is not active before the timeout, or
            it enters the failed state
    """
    logger.info(f"⏳ Waiting for {service_name} to become active (timeout: {timeout}s)")
    deadline = clock() + timeout
    state = 'unknown'

    while True:
        state = service.service_state(runner, service_name)
        if state == 'active':
            return
        if state == 'failed':
            raise ReadinessError(f"{service_name} entered the failed state; see journalctl -u {service_name}")
        if clock() >= deadline:
            break
        logger.debug(f"{service_name} is {state}, checking again in {interval}s")
        sleep(interval)

    raise ReadinessError(f"{service_name} not active after {timeout}s (last state: {state})")


def node_is_ready(node: Any) -> bool:
    """True if a V1Node carries the condition Ready=True."""
    conditions = getattr(getattr(node, 'status', None), 'conditions', None) or []
    return any(c.type == 'Ready' and c.status == 'True' for c in conditions)


def list_nodes(kubeconfig: str) -> List[Dict[str, Any]]:
    """Summarize the cluster's nodes.

    Returns:
        list: One dict per node with name, ready, version and internal_ip
    """
    api_client = config.new_client_from_config(config_file=kubeconfig)
    try:
        nodes = client.CoreV1Api(api_client).list_node(_request_timeout=10)
    finally:
        api_client.close()

    summary = []
    for n in nodes.items:
        addresses = getattr(n.status, 'addresses', None) or []
        node_info = getattr(n.status, 'node_info', None)
        summary.append({
            'name': n.metadata.name,
            'ready': node_is_ready(n),
            'version': getattr(node_info, 'kubelet_version', '') or '',
            'internal_ip': next((a.address for a in addresses if a.type == 'InternalIP'), ''),
        })
    return summary


def ready_node_names(kubeconfig: str) -> List[str]:
    """Names of the nodes the API server reports as Ready."""
    return [n['name'] for n in list_nodes(kubeconfig) if n['ready']]


def wait_for_node_ready(
    kubeconfig: str,
    timeout: float = 600,
    interval: float = 5,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> List[str]:
    """Block until the API server reports at least one Ready node.

    Connection and API errors are expected while the control plane starts;
    they are logged and polling continues until the deadline.

    Returns:
        list: Names of the Ready nodes

    Raises:
        ReadinessError: If no node is Ready before the timeout
    """
    logger.info(f"⏳ Waiting for the node to report Ready (timeout: {timeout}s)")
    deadline = clock() + timeout
    last_error = "no Ready node reported"

    while True:
        try:
            ready = ready_node_names(kubeconfig)
            if ready:
                logger.info(f"✅ Ready nodes: {', '.join(ready)}")
                return ready
            last_error = "no Ready node reported"
        except Exception as e:
            last_error = str(e)
            logger.debug(f"API server not answering yet: {e}")

        if clock() >= deadline:
            break
        sleep(interval)

    raise ReadinessError(f"No Ready node after {timeout}s: {last_error}")
