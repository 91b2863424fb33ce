import logging
import os
from typing import Dict, List, Optional, Sequence, Tuple

import pytest

from rke2boot.config import BootstrapConfig, NetworkConfig, ReadinessConfig, RKE2Config, SystemConfig
from rke2boot.exceptions import CommandError
from rke2boot.modules import network
from rke2boot.modules.rke2 import credentials, service
from rke2boot.modules.rke2.models import InvokingUser
from rke2boot.modules.shell import CommandResult, CommandRunner

UNIT_TEXT = """[Unit]
Description=Rancher Kubernetes Engine v2 (server)
Wants=network-online.target

[Service]
Type=notify
EnvironmentFile=-/etc/default/%N
ExecStartPre=/bin/sh -xc '! /usr/bin/systemctl is-enabled --quiet nm-cloud-setup.service'
ExecStartPre=-/sbin/modprobe br_netfilter
ExecStartPre=-/sbin/modprobe overlay
ExecStart=/usr/local/bin/rke2 server

[Install]
WantedBy=multi-user.target
"""

UBUNTU_OS_RELEASE = """NAME="Ubuntu"
VERSION_ID="22.04"
ID=ubuntu
ID_LIKE=debian
PRETTY_NAME="Ubuntu 22.04.4 LTS"
"""

FSTAB = """# /etc/fstab
UUID=1234 / ext4 defaults 0 1
/swap.img none swap sw 0 0
"""

NODE_TOKEN = "K10abcdef::server:0123456789\n"
CA_CERT = "-----BEGIN CERTIFICATE-----\nMIIBdzCCAR2gAwIBAgIBADAKBggqhkjOPQQDAjAjMSEwHwYDVQQDDBhya2Uy\n-----END CERTIFICATE-----\n"


class FakeRunner(CommandRunner):
    """Records commands instead of running them.

    ``fail_on`` holds argv prefixes that make the command exit 1.
    ``outputs`` maps argv tuples to the stdout they produce.
    """

    def __init__(self, fail_on: Sequence[Sequence[str]] = (), outputs: Optional[Dict[Tuple[str, ...], str]] = None):
        super().__init__(dry_run=False)
        self.calls: List[List[str]] = []
        self.envs: List[Dict[str, str]] = []
        self.inputs: List[Optional[str]] = []
        self.fail_on = [tuple(f) for f in fail_on]
        self.outputs = outputs or {}

    def run(self, argv, check=True, env=None, input_text=None, timeout=None):
        argv = list(argv)
        self.calls.append(argv)
        self.envs.append(dict(env or {}))
        self.inputs.append(input_text)
        failed = any(tuple(argv[:len(f)]) == f for f in self.fail_on)
        result = CommandResult(
            argv=argv,
            returncode=1 if failed else 0,
            stdout=self.outputs.get(tuple(argv), ""),
            stderr="boom" if failed else "",
        )
        if check and failed:
            raise CommandError(argv, 1, "boom")
        return result

    def called(self, *prefix: str) -> bool:
        return any(tuple(c[:len(prefix)]) == prefix for c in self.calls)


@pytest.fixture(autouse=True)
def reset_package_logger():
    yield
    logger = logging.getLogger("rke2boot")
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def host(tmp_path):
    """A fake host filesystem laid out like a machine right after RKE2 starts."""
    root = tmp_path / "host"
    paths = {
        "fstab": root / "etc" / "fstab",
        "os_release": root / "etc" / "os-release",
        "rke2_etc": root / "etc" / "rancher" / "rke2",
        "data_dir": root / "var" / "lib" / "rancher" / "rke2",
        "unit_dir": root / "usr" / "local" / "lib" / "systemd" / "system",
        "bin": root / "usr" / "local" / "bin",
        "home": tmp_path / "home" / "alice",
    }
    for key in ("rke2_etc", "unit_dir", "home"):
        paths[key].mkdir(parents=True)
    paths["fstab"].parent.mkdir(parents=True, exist_ok=True)
    paths["fstab"].write_text(FSTAB)
    paths["os_release"].write_text(UBUNTU_OS_RELEASE)

    data_dir = paths["data_dir"]
    (data_dir / "bin").mkdir(parents=True)
    (data_dir / "bin" / "kubectl").write_text("#!/bin/sh\necho kubectl\n")
    (data_dir / "server" / "tls").mkdir(parents=True)
    (data_dir / "server" / "node-token").write_text(NODE_TOKEN)
    (data_dir / "server" / "tls" / "server-ca.crt").write_text(CA_CERT)

    (paths["rke2_etc"] / "rke2.yaml").write_text("apiVersion: v1\nkind: Config\n")
    (paths["unit_dir"] / "rke2-server.service").write_text(UNIT_TEXT)
    return paths


@pytest.fixture
def settings(host):
    return BootstrapConfig(
        rke2=RKE2Config(
            config_file=str(host["rke2_etc"] / "config.yaml"),
            data_dir=str(host["data_dir"]),
            kubeconfig_path=str(host["rke2_etc"] / "rke2.yaml"),
            kubectl_target=str(host["bin"] / "kubectl"),
            unit_search_paths=[str(host["unit_dir"])],
        ),
        system=SystemConfig(
            fstab_path=str(host["fstab"]),
            os_release_path=str(host["os_release"]),
        ),
        network=NetworkConfig(ip_echo_url="https://ip.example.test"),
        readiness=ReadinessConfig(service_timeout=10, node_timeout=10, interval=1, wait_for_node=False),
    )


@pytest.fixture
def invoking_user(host):
    return InvokingUser(name="alice", home=str(host["home"]), uid=os.getuid(), gid=os.getgid())


@pytest.fixture
def active_runner():
    return FakeRunner(outputs={("systemctl", "is-active", "rke2-server.service"): "active\n"})


@pytest.fixture
def fake_host(monkeypatch, invoking_user):
    """Stub out the network and user lookup; everything else uses the tmp host.

    Returns the list of paths passed to os.chown.
    """
    monkeypatch.setattr(network, "get_public_ip", lambda url, timeout: "203.0.113.7")
    monkeypatch.setattr(service, "download_installer", lambda url, timeout: "#!/bin/sh\n")
    monkeypatch.setattr(credentials, "resolve_invoking_user", lambda environ=None: invoking_user)
    chowned = []
    monkeypatch.setattr(credentials.os, "chown", lambda path, uid, gid: chowned.append(path))
    return chowned
