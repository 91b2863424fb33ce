"""RKE2 service management.

This module installs RKE2 with the upstream script, patches the server unit
and drives systemd.
"""

import logging
import os
import re
from typing import Dict, Optional, Sequence, Tuple

import requests

from rke2boot.config import RKE2Config
from rke2boot.exceptions import NetworkError
from rke2boot.modules.shell import CommandRunner

logger = logging.getLogger("rke2boot.rke2.service")


def download_installer(url: str, timeout: int = 30) -> str:
    """Fetch the upstream install script.

    Raises:
        NetworkError: If the script cannot be downloaded or is empty
    """
    try:
        response = requests.get(url, timeout=timeout)
        response.raise_for_status()
    except requests.RequestException as e:
        raise NetworkError(f"Failed to download RKE2 installer from {url}: {e}") from e

    script = response.text
    if not script.strip():
        raise NetworkError(f"RKE2 installer from {url} is empty")
    return script


def installer_env(settings: RKE2Config) -> Dict[str, str]:
    """Environment understood by the upstream install script."""
    env = {'INSTALL_RKE2_TYPE': 'server'}
    if settings.version:
        env['INSTALL_RKE2_VERSION'] = settings.version
    if settings.channel:
        env['INSTALL_RKE2_CHANNEL'] = settings.channel
    return env


def install_rke2(runner: CommandRunner, settings: RKE2Config, timeout: int = 30) -> None:
    """Install the RKE2 server binaries and unit files.

    Raises:
        NetworkError: If the installer cannot be downloaded
        CommandError: If the installer exits non-zero
    """
    env = installer_env(settings)
    if runner.dry_run:
        logger.info(f"[dry-run] would download {settings.install_url} and run it with {env}")
        return

    logger.info(f"📦 Installing RKE2 server from {settings.install_url}")
    script = download_installer(settings.install_url, timeout=timeout)
    runner.run(['sh', '-'], env=env, input_text=script)


def find_unit_file(service_name: str, search_paths: Sequence[str]) -> str:
    """Locate the installed unit file.

    Raises:
        FileNotFoundError: If no search path holds the unit
    """
    for directory in search_paths:
        candidate = os.path.join(directory, service_name)
        if os.path.isfile(candidate):
            return candidate
    raise FileNotFoundError(f"{service_name} not found in {', '.join(search_paths)}")


def patch_unit_text(text: str, marker: str) -> Tuple[str, int]:
    """Comment out active ExecStartPre lines mentioning ``marker``.

    Lines that are already commented never match, so patching twice gives the
    same result as patching once.

    Returns:
        tuple: (patched text, number of lines commented out)
    """
    pattern = re.compile(r'^(ExecStartPre=.*' + re.escape(marker) + r'.*)$', re.MULTILINE)
    return pattern.subn(r'#\1', text)


def patch_unit_file(path: str, marker: str, dry_run: bool = False) -> int:
    """Apply patch_unit_text to a unit file in place.

    Returns:
        int: Number of lines commented out (0 when already patched)

    Raises:
        OSError: If the unit cannot be read or written
    """
    with open(path, 'r') as f:
        original = f.read()

    patched, count = patch_unit_text(original, marker)
    if count == 0:
        if re.search(r'^#ExecStartPre=.*' + re.escape(marker), original, re.MULTILINE):
            logger.info(f"{path} already patched")
        else:
            logger.warning(f"⚠️  No ExecStartPre line mentioning '{marker}' in {path}")
        return 0

    if dry_run:
        logger.info(f"[dry-run] would comment out {count} ExecStartPre line(s) in {path}")
        return count

    with open(path, 'w') as f:
        f.write(patched)
    logger.info(f"Commented out {count} ExecStartPre line(s) in {path}")
    return count


def daemon_reload(runner: CommandRunner) -> None:
    runner.run(['systemctl', 'daemon-reload'])


def enable_service(runner: CommandRunner, service_name: str) -> None:
    runner.run(['systemctl', 'enable', service_name])


def start_service(runner: CommandRunner, service_name: str) -> None:
    runner.run(['systemctl', 'start', service_name])


def service_state(runner: CommandRunner, service_name: str) -> str:
    """Return the output of ``systemctl is-active`` (active, activating, failed, ...)."""
    result = runner.run(['systemctl', 'is-active', service_name], check=False)
    if runner.dry_run:
        return 'active'
    return result.stdout.strip() or 'unknown'


def is_service_active(runner: CommandRunner, service_name: str) -> bool:
    return service_state(runner, service_name) == 'active'
