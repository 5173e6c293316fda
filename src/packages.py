"""
Kubernetes package management on a single node (apt based).
"""

import logging
from typing import Iterable, List

import commands
from commands import RemoteCommand
from config import UPGRADE_PACKAGES
from executor import RemoteExecutor
from models import CommandResult

logger = logging.getLogger(__name__)


class PackageManager:
    """Repository pointing, pinned installs and kubelet restarts on one host.

    Every method runs its commands in order and stops at the first failure,
    returning that failed CommandResult (or the last result when all passed).
    """

    def __init__(self, executor: RemoteExecutor, host: str, command_timeout: int = 600):
        self.executor = executor
        self.host = host
        self.command_timeout = command_timeout

    def _run_all(self, cmds: List[RemoteCommand]) -> CommandResult:
        result = None
        for cmd in cmds:
            result = self.executor.run(self.host, cmd, timeout=self.command_timeout)
            if not result.succeeded:
                return result
        return result

    def point_repository_at(self, minor_version: str) -> CommandResult:
        """
        Point the apt source at the repository of a Kubernetes minor version.

        A sources file already at the target version is left untouched.
        Otherwise it is copied to ``<file>.backup.<timestamp>`` first, and
        the signing keyring must exist once the file is rewritten.

        Args:
            minor_version: Major.minor, e.g. '1.33'
        """
        current = self.executor.run_soft(
            self.host, commands.repository_configured(minor_version)
        )
        if current.succeeded and not current.dry_run:
            logger.info(
                f"[{self.host}] Repository is already configured for version v{minor_version}"
            )
            return current

        logger.info(
            f"[{self.host}] Updating Kubernetes repository to v{minor_version}: "
            f"{commands.repository_line(minor_version)}"
        )
        keyring_check = commands.keyring_present()
        result = self._run_all(
            [
                commands.backup_repository_file(),
                commands.write_repository_file(minor_version),
                keyring_check,
            ]
        )
        if not result.succeeded and result.command.endswith(keyring_check.command):
            logger.error(
                f"[{self.host}] Kubernetes keyring not found: {commands.K8S_KEYRING}. "
                "Please ensure the repository GPG key is installed"
            )
        return result

    def install_pinned(
        self, packages: Iterable[str] = UPGRADE_PACKAGES, version: str = ""
    ) -> CommandResult:
        """
        Install packages at exactly ``version`` and hold them there.

        Args:
            packages: Package names
            version: Full package version, e.g. '1.33.1-1.1'
        """
        packages = tuple(packages)
        return self._run_all(
            [
                commands.unhold(packages),
                commands.apt_update(),
                commands.install_pinned(packages, version),
                commands.hold(packages),
            ]
        )

    def restart_service_after_upgrade(self) -> CommandResult:
        return self._run_all([commands.daemon_reload(), commands.restart_kubelet()])

    def upgrade_node_configuration(self) -> CommandResult:
        return self._run_all([commands.kubeadm_upgrade_node()])

    def plan_control_plane_upgrade(self) -> CommandResult:
        """Run ``kubeadm upgrade plan``; its output is what the operator reviews."""
        return self._run_all([commands.kubeadm_upgrade_plan()])

    def apply_control_plane_upgrade(self, kubernetes_version: str) -> CommandResult:
        return self._run_all([commands.kubeadm_upgrade_apply(kubernetes_version)])
