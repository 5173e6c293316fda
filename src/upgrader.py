"""
Rolling upgrade orchestration for a kubeadm-managed Kubernetes cluster.
"""

import logging
import threading
import time
from datetime import datetime
from typing import Callable, List, Optional

from clients import PackageRepositoryClient, SSHTransport
from config import UpgradePlan
from control_plane import ControlPlane
from exceptions import ConfigurationError, ConnectivityError
from executor import RemoteExecutor
from lifecycle import NodeLifecycle
from models import NodeDescriptor, NodeOutcome, NodeRole, NodeStatus, RunSummary
from poller import ReadinessPoller
from report import Reporter
from verify import ClusterVerifier

logger = logging.getLogger(__name__)


class ClusterUpgrader:
    """Upgrades the control node, then every worker one at a time."""

    def __init__(
        self,
        transport=None,
        confirm: Optional[Callable[[str], bool]] = None,
        cancel_event: Optional[threading.Event] = None,
        repository_client: Optional[PackageRepositoryClient] = None,
        reporter: Optional[Reporter] = None,
    ):
        """
        Initialize the upgrader.

        Args:
            transport: Remote transport; an SSHTransport is built from the plan
                when omitted
            confirm: Asked to approve the control plane upgrade plan and whether
                to continue after a worker failure when the plan is not
                auto-approved. Without it the run stops at the first question.
            cancel_event: Set to stop the run before the next node
            repository_client: Client for the package repository check
            reporter: Reporter used once the run is over
        """
        self.transport = transport
        self.confirm = confirm
        self.cancel_event = cancel_event or threading.Event()
        self.repository_client = repository_client
        self.reporter = reporter or Reporter()

    def _build_transport(self, plan: UpgradePlan) -> SSHTransport:
        return SSHTransport(
            username=plan.ssh_user,
            key_filename=plan.ssh_key_path,
            port=plan.ssh_port,
            connect_timeout=plan.connect_timeout,
        )

    def _log_banner(self, plan: UpgradePlan) -> None:
        logger.info("=" * 70)
        logger.info("Kubernetes Cluster Rolling Upgrade")
        logger.info("=" * 70)
        logger.info(f"Target version: {plan.version}")
        logger.info(f"Control plane: {plan.control_node}")
        if plan.workers:
            logger.info(f"Workers: {', '.join(str(w) for w in plan.workers)}")
        else:
            logger.info("Workers: none")
        logger.info(f"SSH user: {plan.ssh_user}")
        logger.info(f"Dry run: {plan.dry_run}")
        logger.info(f"Workers only: {plan.workers_only}")
        logger.info(f"Skip drain: {plan.skip_drain}")
        logger.info(f"Skip repository update: {plan.skip_repo_update}")
        logger.info(f"Skip verification: {plan.skip_verification}")
        logger.info(f"Auto approve: {plan.auto_approve}")
        logger.info(f"Start time: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
        logger.info("=" * 70)

    def _preflight(self, plan: UpgradePlan, executor: RemoteExecutor) -> None:
        """
        Check every host before anything is changed.

        Raises:
            ConnectivityError: If any host is unreachable
            ConfigurationError: If the target repository does not exist
        """
        logger.info("Checking SSH connectivity to all nodes...")
        hosts = [plan.control_node.host] + [w.host for w in plan.workers]
        unreachable = [h for h in hosts if not executor.check_connection(h)]
        if unreachable:
            raise ConnectivityError(
                ", ".join(unreachable), "SSH connectivity check failed"
            )

        if plan.dry_run or plan.skip_repo_update:
            return

        client = self.repository_client or PackageRepositoryClient()
        try:
            exists = client.repository_exists(plan.minor_version)
        except RuntimeError as e:
            logger.warning(f"Could not verify package repository: {e}")
            return
        if not exists:
            raise ConfigurationError(
                f"Kubernetes package repository for v{plan.minor_version} does not exist"
            )

    def _pause(self, seconds: float, reason: str) -> None:
        if seconds <= 0:
            return
        logger.info(f"Waiting {seconds:.0f}s {reason}...")
        self.cancel_event.wait(seconds)

    def _ask_to_continue(self, plan: UpgradePlan, node: NodeDescriptor) -> bool:
        if plan.auto_approve:
            logger.warning(f"Continuing after failure on {node} (auto-approve)")
            return True
        if self.confirm is None:
            return False
        return bool(
            self.confirm(f"Upgrade of {node} failed. Continue with remaining workers?")
        )

    def _skipped(self, node: NodeDescriptor, role: NodeRole) -> NodeOutcome:
        return NodeOutcome(node=node, role=role, status=NodeStatus.SKIPPED)

    def _upgrade_workers(
        self, plan: UpgradePlan, lifecycle: NodeLifecycle
    ) -> List[NodeOutcome]:
        outcomes: List[NodeOutcome] = []
        workers = list(plan.workers)
        stop_reason = None

        for index, node in enumerate(workers):
            if stop_reason is None and self.cancel_event.is_set():
                stop_reason = "cancelled by operator"
            if stop_reason is not None:
                logger.warning(f"Skipping worker {node}: {stop_reason}")
                outcomes.append(self._skipped(node, NodeRole.WORKER))
                continue

            logger.info("=" * 70)
            logger.info(f"Upgrading worker {index + 1}/{len(workers)}: {node}")
            logger.info("=" * 70)
            outcome = lifecycle.execute(node)
            outcomes.append(outcome)

            remaining = index < len(workers) - 1
            if outcome.status == NodeStatus.FAILED:
                if self.cancel_event.is_set():
                    continue
                if remaining and not self._ask_to_continue(plan, node):
                    stop_reason = "operator stopped the upgrade after a failure"
            elif remaining and not plan.dry_run:
                self._pause(plan.inter_node_pause, "before next worker")

        return outcomes

    def run(self, plan: UpgradePlan) -> RunSummary:
        """
        Execute the rolling upgrade.

        Args:
            plan: Upgrade plan

        Returns:
            RunSummary with one outcome per planned node

        Raises:
            ConfigurationError: If the plan is invalid; nothing remote is touched
        """
        plan.validate()

        summary = RunSummary(plan=plan, start_time=time.time())
        self._log_banner(plan)

        owns_transport = self.transport is None
        transport = self._build_transport(plan) if owns_transport else self.transport
        executor = RemoteExecutor(transport, plan.dry_run, plan.command_timeout)
        control_plane = ControlPlane(executor, plan.control_node.host)
        poller = ReadinessPoller(control_plane, plan.dry_run, self.cancel_event)
        lifecycle = NodeLifecycle(
            plan, executor, control_plane, poller, confirm=self.confirm
        )

        try:
            try:
                self._preflight(plan, executor)
            except (ConnectivityError, ConfigurationError) as e:
                logger.error(f"Pre-flight check failed: {e}")
                summary.abort_reason = str(e)

            if summary.abort_reason is None and self.cancel_event.is_set():
                summary.abort_reason = "cancelled by operator"

            if summary.abort_reason is None and not plan.workers_only:
                logger.info("=" * 70)
                logger.info(f"Upgrading control plane: {plan.control_node}")
                logger.info("=" * 70)
                summary.control_outcome = lifecycle.execute_control_plane(
                    plan.control_node
                )
                if summary.control_outcome.status == NodeStatus.FAILED:
                    summary.abort_reason = (
                        f"Control plane upgrade failed: {summary.control_outcome.error_message}"
                    )
                elif summary.control_outcome.status == NodeStatus.SKIPPED:
                    summary.abort_reason = "Control plane upgrade declined by operator"
                elif plan.workers and not plan.dry_run:
                    self._pause(
                        plan.control_plane_settle, "for the control plane to stabilize"
                    )

            if summary.control_outcome is None:
                summary.control_outcome = self._skipped(
                    plan.control_node, NodeRole.CONTROL_PLANE
                )

            if summary.abort_reason is None:
                summary.worker_outcomes = self._upgrade_workers(plan, lifecycle)
                if not plan.skip_verification and not self.cancel_event.is_set():
                    summary.verification = ClusterVerifier(executor, control_plane).run()
            else:
                summary.worker_outcomes = [
                    self._skipped(w, NodeRole.WORKER) for w in plan.workers
                ]
        finally:
            if owns_transport:
                transport.close()

        summary.end_time = time.time()
        self.reporter.print_report(summary)
        return summary
