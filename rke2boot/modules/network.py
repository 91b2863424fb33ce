import ipaddress
import logging

import requests

from rke2boot.exceptions import NetworkError

logger = logging.getLogger("rke2boot.network")


def get_public_ip(url: str = "https://ifconfig.me/ip", timeout: int = 10) -> str:
    """Ask an IP-echo service for this host's public address.

    Raises:
        NetworkError: On connection errors, non-2xx responses, or a body
            that is not an IP address
    """
    try:
        response = requests.get(url, timeout=timeout, headers={"Accept": "text/plain"})
        response.raise_for_status()
    except requests.RequestException as e:
        raise NetworkError(f"Public IP lookup via {url} failed: {e}") from e

    answer = response.text.strip()
    try:
        ip = ipaddress.ip_address(answer)
    except ValueError:
        raise NetworkError(f"{url} returned something that is not an IP address: {answer[:64]!r}")

    logger.debug(f"Public IP from {url}: {ip}")
    return str(ip)
