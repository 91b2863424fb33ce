"""Cluster credential export: kubectl, kubeconfig, node token and CA certificate."""

import logging
import os
import pwd
import shutil
from typing import Mapping, MutableMapping, Optional

from rke2boot.config import RKE2Config
from rke2boot.exceptions import CredentialsError
from rke2boot.modules.rke2.models import Credentials, InvokingUser

logger = logging.getLogger("rke2boot.rke2.credentials")


def install_kubectl(source: str, target: str, dry_run: bool = False) -> None:
    """Copy the kubectl shipped with RKE2 into a directory on PATH."""
    if dry_run:
        logger.info(f"[dry-run] cp {source} {target}")
        return
    os.makedirs(os.path.dirname(target) or '.', exist_ok=True)
    shutil.copyfile(source, target)


def make_executable(path: str, mode: int = 0o755, dry_run: bool = False) -> None:
    if dry_run:
        logger.info(f"[dry-run] chmod {mode:o} {path}")
        return
    os.chmod(path, mode)


def resolve_invoking_user(environ: Optional[Mapping[str, str]] = None) -> InvokingUser:
    """Find the user who started the run.

    Under sudo this is SUDO_USER rather than root, so the kubeconfig lands in
    the operator's own home directory.

    Raises:
        CredentialsError: If SUDO_USER names an unknown account
    """
    if environ is None:
        environ = os.environ
    sudo_user = environ.get('SUDO_USER')
    if sudo_user and sudo_user != 'root':
        try:
            entry = pwd.getpwnam(sudo_user)
        except KeyError:
            raise CredentialsError(f"SUDO_USER {sudo_user!r} does not exist")
    else:
        entry = pwd.getpwuid(os.getuid())
    return InvokingUser(name=entry.pw_name, home=entry.pw_dir, uid=entry.pw_uid, gid=entry.pw_gid)


def user_kubeconfig_path(user: InvokingUser) -> str:
    return os.path.join(user.home, '.kube', 'config')


def copy_kubeconfig(source: str, user: InvokingUser, dry_run: bool = False) -> str:
    """Copy the admin kubeconfig to ~/.kube/config of the invoking user.

    Returns:
        str: Destination path
    """
    dest = user_kubeconfig_path(user)
    if dry_run:
        logger.info(f"[dry-run] cp {source} {dest}")
        return dest
    os.makedirs(os.path.dirname(dest), mode=0o700, exist_ok=True)
    shutil.copyfile(source, dest)
    os.chmod(dest, 0o600)
    return dest


def chown_kubeconfig(path: str, user: InvokingUser, dry_run: bool = False) -> None:
    """Give the kubeconfig and its directory to the invoking user."""
    if dry_run:
        logger.info(f"[dry-run] chown {user.uid}:{user.gid} {os.path.dirname(path)} {path}")
        return
    os.chown(os.path.dirname(path), user.uid, user.gid)
    os.chown(path, user.uid, user.gid)


def export_kubeconfig(path: str, environ: Optional[MutableMapping[str, str]] = None) -> None:
    """Point KUBECONFIG at ``path`` for this process and its children."""
    if environ is None:
        environ = os.environ
    environ['KUBECONFIG'] = path


def read_secret(path: str, what: str) -> str:
    """Read a credential file verbatim.

    Raises:
        CredentialsError: If the file is missing, unreadable or empty
    """
    try:
        with open(path, 'r') as f:
            value = f.read()
    except OSError as e:
        raise CredentialsError(f"Cannot read {what} at {path}: {e}") from e
    if not value.strip():
        raise CredentialsError(f"{what} at {path} is empty")
    return value


def read_node_token(settings: RKE2Config) -> str:
    return read_secret(settings.node_token_path, "node token").strip()


def read_ca_certificate(settings: RKE2Config) -> str:
    return read_secret(settings.ca_cert_path, "CA certificate")


def read_credentials(settings: RKE2Config, kubeconfig_path: str = '') -> Credentials:
    """Load the credentials of an existing installation."""
    return Credentials(
        kubeconfig_path=kubeconfig_path or settings.kubeconfig_path,
        node_token=read_node_token(settings),
        ca_certificate=read_ca_certificate(settings),
        node_token_path=settings.node_token_path,
        ca_certificate_path=settings.ca_cert_path,
    )
