"""Host preparation: swap, PATH, distribution detection and packages."""
import logging
import os
import shlex
from typing import Dict, List, MutableMapping, Optional, Sequence

from rke2boot.exceptions import UnsupportedDistributionError
from rke2boot.modules.rke2.models import Distribution, PackageManager
from rke2boot.modules.shell import CommandRunner

logger = logging.getLogger("rke2boot.system")

APT_IDS = {'ubuntu', 'debian'}
YUM_IDS = {'centos', 'rhel', 'rocky', 'almalinux', 'fedora', 'amzn', 'ol'}
APT_LIKE = {'debian', 'ubuntu'}
YUM_LIKE = {'rhel', 'fedora', 'centos'}


def disable_swap(runner: CommandRunner) -> None:
    """Turn off all active swap devices."""
    runner.run(['swapoff', '-a'])


def remove_swap_entries(fstab_path: str = '/etc/fstab', dry_run: bool = False) -> List[str]:
    """Drop swap mounts from fstab so swap stays off after a reboot.

    Returns:
        The removed lines

    Raises:
        OSError: If fstab cannot be read or written
    """
    with open(fstab_path, 'r') as f:
        lines = f.readlines()

    kept: List[str] = []
    removed: List[str] = []
    for line in lines:
        stripped = line.strip()
        fields = stripped.split()
        if stripped and not stripped.startswith('#') and len(fields) >= 3 and fields[2] == 'swap':
            removed.append(line.rstrip('\n'))
        else:
            kept.append(line)

    if not removed:
        logger.debug(f"No swap entries in {fstab_path}")
        return removed

    for line in removed:
        logger.info(f"Removing swap entry from {fstab_path}: {line}")

    if not dry_run:
        tmp_path = f"{fstab_path}.rke2boot.tmp"
        try:
            with open(tmp_path, 'w') as f:
                f.writelines(kept)
            os.chmod(tmp_path, os.stat(fstab_path).st_mode & 0o7777)
            os.replace(tmp_path, fstab_path)
        except OSError:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
    return removed


def extend_path(directories: Sequence[str], environ: Optional[MutableMapping[str, str]] = None) -> List[str]:
    """Append directories missing from PATH.

    Only the environment of this process (and its children) changes.

    Returns:
        The directories that were added
    """
    if environ is None:
        environ = os.environ
    current = [p for p in environ.get('PATH', '').split(os.pathsep) if p]
    added = [d for d in directories if d not in current]
    if added:
        environ['PATH'] = os.pathsep.join(current + added)
    return added


def parse_os_release(text: str) -> Dict[str, str]:
    """Parse the KEY=value format of os-release(5)."""
    values: Dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith('#') or '=' not in line:
            continue
        key, _, raw = line.partition('=')
        try:
            parts = shlex.split(raw)
        except ValueError:
            parts = [raw.strip('"\'')]
        values[key.strip()] = parts[0] if parts else ''
    return values


def package_manager_for(distro_id: str, id_like: Sequence[str] = ()) -> Optional[PackageManager]:
    if distro_id in APT_IDS:
        return PackageManager.APT
    if distro_id in YUM_IDS:
        return PackageManager.YUM
    like = set(id_like)
    if like & APT_LIKE:
        return PackageManager.APT
    if like & YUM_LIKE:
        return PackageManager.YUM
    return None


def detect_distribution(os_release_path: str = '/etc/os-release') -> Distribution:
    """Identify the distribution and its package manager.

    Raises:
        OSError: If the os-release file cannot be read
        UnsupportedDistributionError: If no package manager is known for it
    """
    with open(os_release_path, 'r') as f:
        values = parse_os_release(f.read())

    distro_id = values.get('ID', '').lower()
    id_like = values.get('ID_LIKE', '').lower().split()
    manager = package_manager_for(distro_id, id_like)
    if manager is None:
        raise UnsupportedDistributionError(distro_id)

    distro = Distribution(
        id=distro_id,
        id_like=id_like,
        version_id=values.get('VERSION_ID'),
        package_manager=manager,
    )
    logger.info(f"Detected distribution {distro.id} (version: {distro.version_id or 'unknown'}, package manager: {manager.value})")
    return distro


def install_packages(runner: CommandRunner, distro: Distribution, packages: Sequence[str]) -> None:
    """Install packages with the distribution's package manager.

    Raises:
        UnsupportedDistributionError: If the distribution has no package manager
        CommandError: If the package manager fails
    """
    packages = list(packages)
    if not packages:
        logger.info("No prerequisite packages configured")
        return

    if distro.package_manager == PackageManager.APT:
        env = {'DEBIAN_FRONTEND': 'noninteractive'}
        runner.run(['apt-get', 'update'], env=env)
        runner.run(['apt-get', 'install', '-y'] + packages, env=env)
    elif distro.package_manager == PackageManager.YUM:
        runner.run(['yum', 'install', '-y'] + packages)
    else:
        raise UnsupportedDistributionError(distro.id)
