"""Data models for the RKE2 bootstrap."""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class PackageManager(str, Enum):
    """Package managers the bootstrap knows how to drive."""
    APT = 'apt'
    YUM = 'yum'


@dataclass(frozen=True)
class Distribution:
    """Host distribution as read from /etc/os-release."""
    id: str
    id_like: List[str] = field(default_factory=list)
    version_id: Optional[str] = None
    package_manager: Optional[PackageManager] = None


@dataclass(frozen=True)
class InvokingUser:
    """The user who ran the bootstrap (through sudo or directly)."""
    name: str
    home: str
    uid: int
    gid: int


@dataclass
class Credentials:
    """Cluster credentials exported at the end of a run."""
    kubeconfig_path: str
    node_token: str
    ca_certificate: str
    node_token_path: str = ''
    ca_certificate_path: str = ''


@dataclass
class BootstrapState:
    """Values produced by earlier steps and consumed by later ones."""
    distribution: Optional[Distribution] = None
    public_ip: Optional[str] = None
    unit_path: Optional[str] = None
    user: Optional[InvokingUser] = None
    kubeconfig_path: Optional[str] = None
    node_token: Optional[str] = None
    ca_certificate: Optional[str] = None
    completed: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed: Optional[str] = None
    start_time: float = field(default_factory=time.time)

    def credentials(self, node_token_path: str = '', ca_certificate_path: str = '') -> Credentials:
        return Credentials(
            kubeconfig_path=self.kubeconfig_path or '',
            node_token=self.node_token or '',
            ca_certificate=self.ca_certificate or '',
            node_token_path=node_token_path,
            ca_certificate_path=ca_certificate_path,
        )

    @property
    def elapsed(self) -> float:
        return time.time() - self.start_time
