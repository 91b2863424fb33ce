"""Single-node RKE2 server bootstrap.

The bootstrap is a fixed, ordered list of steps. Each step performs one
host-level action. The first failing step stops the run: nothing after it is
executed and nothing before it is undone.
"""

import logging
import os
import time
from dataclasses import dataclass
from typing import Callable, Iterable, List, MutableMapping, Optional

from rke2boot.config import BootstrapConfig
from rke2boot.exceptions import ConfigurationError, StepFailed
from rke2boot.logging import log_success
from rke2boot.modules import network, system
from rke2boot.modules.rke2 import configuration, credentials, service, verification
from rke2boot.modules.rke2.models import BootstrapState
from rke2boot.modules.shell import CommandRunner

logger = logging.getLogger("rke2boot.rke2.bootstrap")


@dataclass(frozen=True)
class Step:
    """A named action in the bootstrap sequence."""
    step_id: str
    description: str
    action: Callable[[], None]


class RKE2Bootstrapper:
    """Runs the bootstrap sequence on the local host.

    Args:
        settings: Loaded rke2boot settings
        runner: Command runner (default: a new CommandRunner honouring dry_run)
        dry_run: Log commands and file changes without performing them
        environ: Process environment to extend (default: os.environ)
        public_ip: Use this address instead of asking the IP-echo service
        sleep: Sleep function used while polling
        clock: Monotonic clock used for polling deadlines
    """

    def __init__(
        self,
        settings: BootstrapConfig,
        runner: Optional[CommandRunner] = None,
        dry_run: bool = False,
        environ: Optional[MutableMapping[str, str]] = None,
        public_ip: Optional[str] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings
        self.dry_run = dry_run
        self.runner = runner or CommandRunner(dry_run=dry_run)
        self.environ = os.environ if environ is None else environ
        self.public_ip_override = public_ip
        self.sleep = sleep
        self.clock = clock
        self.state = BootstrapState(public_ip=public_ip)
        self.steps = self._build_steps()

    def _build_steps(self) -> List[Step]:
        return [
            Step('swap-off', 'Disable swap', self._swap_off),
            Step('fstab-swap', 'Remove swap entries from fstab', self._fstab_swap),
            Step('path', 'Extend PATH', self._extend_path),
            Step('detect-distro', 'Detect Linux distribution', self._detect_distro),
            Step('install-prereqs', 'Install prerequisite packages', self._install_prereqs),
            Step('public-ip', 'Fetch public IP', self._public_ip),
            Step('config-dir', 'Create RKE2 config directory', self._config_dir),
            Step('write-config', 'Write RKE2 config file', self._write_config),
            Step('install-rke2', 'Install RKE2 server', self._install_rke2),
            Step('patch-unit', 'Patch RKE2 systemd unit', self._patch_unit),
            Step('daemon-reload', 'Reload systemd', self._daemon_reload),
            Step('enable-service', 'Enable RKE2 server service', self._enable_service),
            Step('start-service', 'Start RKE2 server service', self._start_service),
            Step('wait-service', 'Wait for RKE2 server service', self._wait_service),
            Step('install-kubectl', 'Install kubectl', self._install_kubectl),
            Step('chmod-kubectl', 'Make kubectl executable', self._chmod_kubectl),
            Step('copy-kubeconfig', 'Copy kubeconfig to user home', self._copy_kubeconfig),
            Step('chown-kubeconfig', 'Set kubeconfig ownership', self._chown_kubeconfig),
            Step('export-kubeconfig', 'Export KUBECONFIG', self._export_kubeconfig),
            Step('wait-node', 'Wait for node to become Ready', self._wait_node),
            Step('node-token', 'Read node token', self._node_token),
            Step('ca-cert', 'Read CA certificate', self._ca_cert),
        ]

    @property
    def step_ids(self) -> List[str]:
        return [s.step_id for s in self.steps]

    def run(self, from_step: Optional[str] = None, skip: Iterable[str] = ()) -> BootstrapState:
        """Run every step in order, stopping at the first failure.

        Args:
            from_step: Start at this step; earlier steps are recorded as skipped
            skip: Step ids not to run

        Returns:
            BootstrapState: Values gathered by the steps

        Raises:
            ConfigurationError: If from_step or skip name an unknown step
            StepFailed: If a step fails; its exception is the cause
        """
        skip = set(skip)
        unknown = ({from_step} if from_step else set()) | skip
        unknown -= set(self.step_ids)
        if unknown:
            raise ConfigurationError(
                f"Unknown step(s): {', '.join(sorted(unknown))}. Valid steps: {', '.join(self.step_ids)}"
            )

        started = from_step is None
        total = len(self.steps)
        for index, step in enumerate(self.steps, 1):
            if not started and step.step_id == from_step:
                started = True
            if not started or step.step_id in skip:
                logger.info(f"⏭️  [{index}/{total}] Skipping: {step.description}")
                self.state.skipped.append(step.step_id)
                continue

            logger.info(f"[{index}/{total}] {step.description}...")
            try:
                step.action()
            except Exception as e:
                self.state.failed = step.step_id
                logger.error(f"❌ {step.description} failed: {e}")
                raise StepFailed(step.step_id, step.description, e) from e
            if step.step_id in self.state.skipped:
                continue
            log_success(logger, f"✅ {step.description}")
            self.state.completed.append(step.step_id)

        log_success(
            logger,
            f"🎉 RKE2 server bootstrap finished in {self.state.elapsed:.0f}s "
            f"({len(self.state.completed)} steps run, {len(self.state.skipped)} skipped)"
        )
        return self.state

    def _skip(self, step_id: str, reason: str) -> None:
        logger.info(f"Skipping {step_id}: {reason}")
        self.state.skipped.append(step_id)

    # Steps

    def _swap_off(self) -> None:
        system.disable_swap(self.runner)

    def _fstab_swap(self) -> None:
        system.remove_swap_entries(self.settings.system.fstab_path, dry_run=self.dry_run)

    def _extend_path(self) -> None:
        added = system.extend_path(self.settings.system.extra_path, self.environ)
        if added:
            logger.info(f"Added to PATH: {', '.join(added)}")

    def _detect_distro(self) -> None:
        self.state.distribution = system.detect_distribution(self.settings.system.os_release_path)

    def _install_prereqs(self) -> None:
        if self.state.distribution is None:
            self._detect_distro()
        system.install_packages(self.runner, self.state.distribution, self.settings.system.prerequisite_packages)

    def _public_ip(self) -> None:
        if self.public_ip_override:
            logger.info(f"Using provided public IP {self.public_ip_override}")
            self.state.public_ip = self.public_ip_override
            return
        net = self.settings.network
        self.state.public_ip = network.get_public_ip(net.ip_echo_url, timeout=net.timeout)
        logger.info(f"Public IP: {self.state.public_ip}")

    def _config_dir(self) -> None:
        configuration.ensure_config_dir(self.settings.rke2.config_dir, dry_run=self.dry_run)

    def _write_config(self) -> None:
        if not self.state.public_ip:
            raise ConfigurationError("Public IP unknown; run the public-ip step or pass a public IP")
        text = configuration.render_config(self.state.public_ip, self.settings.rke2)
        configuration.write_config(self.settings.rke2.config_file, text, dry_run=self.dry_run)

    def _install_rke2(self) -> None:
        service.install_rke2(self.runner, self.settings.rke2, timeout=self.settings.network.timeout * 3)

    def _patch_unit(self) -> None:
        rke2 = self.settings.rke2
        if self.dry_run:
            logger.info(f"[dry-run] would patch {rke2.service_name} ExecStartPre lines mentioning '{rke2.unit_patch_marker}'")
            return
        self.state.unit_path = service.find_unit_file(rke2.service_name, rke2.unit_search_paths)
        service.patch_unit_file(self.state.unit_path, rke2.unit_patch_marker)

    def _daemon_reload(self) -> None:
        service.daemon_reload(self.runner)

    def _enable_service(self) -> None:
        service.enable_service(self.runner, self.settings.rke2.service_name)

    def _start_service(self) -> None:
        service.start_service(self.runner, self.settings.rke2.service_name)

    def _wait_service(self) -> None:
        readiness = self.settings.readiness
        verification.wait_for_service(
            self.runner,
            self.settings.rke2.service_name,
            timeout=readiness.service_timeout,
            interval=readiness.interval,
            sleep=self.sleep,
            clock=self.clock,
        )

    def _install_kubectl(self) -> None:
        rke2 = self.settings.rke2
        credentials.install_kubectl(rke2.kubectl_source, rke2.kubectl_target, dry_run=self.dry_run)

    def _chmod_kubectl(self) -> None:
        credentials.make_executable(self.settings.rke2.kubectl_target, dry_run=self.dry_run)

    def _copy_kubeconfig(self) -> None:
        self.state.user = credentials.resolve_invoking_user(self.environ)
        self.state.kubeconfig_path = credentials.copy_kubeconfig(
            self.settings.rke2.kubeconfig_path, self.state.user, dry_run=self.dry_run
        )
        logger.info(f"Kubeconfig for {self.state.user.name}: {self.state.kubeconfig_path}")

    def _user_kubeconfig(self) -> str:
        if self.state.user is None:
            self.state.user = credentials.resolve_invoking_user(self.environ)
        if not self.state.kubeconfig_path:
            self.state.kubeconfig_path = credentials.user_kubeconfig_path(self.state.user)
        return self.state.kubeconfig_path

    def _chown_kubeconfig(self) -> None:
        path = self._user_kubeconfig()
        credentials.chown_kubeconfig(path, self.state.user, dry_run=self.dry_run)

    def _export_kubeconfig(self) -> None:
        credentials.export_kubeconfig(self._user_kubeconfig(), self.environ)

    def _wait_node(self) -> None:
        readiness = self.settings.readiness
        if not readiness.wait_for_node:
            return self._skip('wait-node', 'disabled in settings')
        if self.dry_run:
            return self._skip('wait-node', 'dry run')
        verification.wait_for_node_ready(
            self.settings.rke2.kubeconfig_path,
            timeout=readiness.node_timeout,
            interval=readiness.interval,
            sleep=self.sleep,
            clock=self.clock,
        )

    def _node_token(self) -> None:
        if self.dry_run:
            return self._skip('node-token', 'dry run')
        self.state.node_token = credentials.read_node_token(self.settings.rke2)

    def _ca_cert(self) -> None:
        if self.dry_run:
            return self._skip('ca-cert', 'dry run')
        self.state.ca_certificate = credentials.read_ca_certificate(self.settings.rke2)
