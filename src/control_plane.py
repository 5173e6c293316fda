"""
Cluster control-plane operations, issued through kubectl on the control node.
"""

import logging

import commands
from executor import RemoteExecutor
from models import CommandResult

logger = logging.getLogger(__name__)


class ControlPlane:
    """Drain, uncordon and readiness queries against the control node."""

    def __init__(self, executor: RemoteExecutor, control_host: str):
        self.executor = executor
        self.control_host = control_host

    def drain(self, node_name: str, timeout: int) -> CommandResult:
        """Cordon node_name and evict its workloads."""
        # leave the transport some headroom over kubectl's own timeout
        return self.executor.run(
            self.control_host, commands.drain(node_name, timeout), timeout=timeout + 30
        )

    def uncordon(self, node_name: str) -> CommandResult:
        return self.executor.run(self.control_host, commands.uncordon(node_name))

    def is_ready(self, node_name: str) -> bool:
        """
        Ask the control node whether node_name reports Ready.

        Returns:
            True only if the Ready condition status is 'True'
        """
        cmd = commands.node_ready_status(node_name)
        result = self.executor.execute_soft(
            self.control_host, cmd.command, cmd.description, cmd.elevated
        )
        if result.dry_run:
            return True
        return result.succeeded and result.output.strip() == "True"

    def cluster_health_summary(self) -> str:
        """Node table as printed by kubectl, or an empty string when unavailable."""
        result = self.executor.run_soft(self.control_host, commands.cluster_nodes())
        return result.output if result.succeeded else ""
