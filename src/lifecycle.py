"""
Per-node upgrade lifecycle.

Worker nodes go through drain, package-upgrade, wait-ready, uncordon and
verify, strictly in that order. The control node runs package-upgrade and
verify only. A failed fatal phase ends the node; when the node had been
drained, uncordon is still attempted as compensation before the node is
finalized as failed.
"""

import logging
import time
from typing import Callable, Optional

import commands
from config import UPGRADE_PACKAGES, UpgradePlan
from control_plane import ControlPlane
from exceptions import (
    PhaseError,
    ReadinessTimeoutError,
    SoftCheckWarning,
    UpgradeDeclinedError,
)
from executor import RemoteExecutor
from models import (
    CommandResult,
    NodeDescriptor,
    NodeOutcome,
    NodeRole,
    NodeStatus,
    Phase,
    StepResult,
)
from packages import PackageManager
from poller import ReadinessPoller

logger = logging.getLogger(__name__)


class NodeLifecycle:
    """Drives single nodes through the upgrade phases."""

    def __init__(
        self,
        plan: UpgradePlan,
        executor: RemoteExecutor,
        control_plane: ControlPlane,
        poller: ReadinessPoller,
        confirm: Optional[Callable[[str], bool]] = None,
    ):
        self.plan = plan
        self.executor = executor
        self.control_plane = control_plane
        self.poller = poller
        self.confirm = confirm

    # Phase plumbing

    def _check(
        self, result: Optional[CommandResult], phase: Phase, node: NodeDescriptor
    ) -> Optional[CommandResult]:
        if result is not None and not result.succeeded:
            raise PhaseError(phase.value, node.name, result.error_detail, result.command)
        return result

    def _run_phase(
        self,
        outcome: NodeOutcome,
        phase: Phase,
        action: Callable[[], object],
        fatal: bool = True,
    ) -> bool:
        """
        Run one phase and record its StepResult.

        Args:
            outcome: Outcome the step is appended to
            phase: Phase being run
            action: Callable raising PhaseError on failure
            fatal: Whether a failure finalizes the node as failed

        Returns:
            True if the phase succeeded
        """
        logger.info(f"[{outcome.node.name}] Phase {phase.value} started")
        start = time.monotonic()
        try:
            action()
        except PhaseError as e:
            duration = time.monotonic() - start
            logger.error(f"[{outcome.node.name}] Phase {phase.value} FAILED: {e.detail}")
            outcome.steps.append(
                StepResult(
                    phase=phase,
                    succeeded=False,
                    duration_seconds=duration,
                    error_message=e.detail,
                    command=e.command,
                )
            )
            if fatal and outcome.error_message is None:
                outcome.error_message = str(e)
            return False

        duration = time.monotonic() - start
        logger.info(
            f"[{outcome.node.name}] Phase {phase.value} completed in {duration:.1f}s"
        )
        outcome.steps.append(
            StepResult(phase=phase, succeeded=True, duration_seconds=duration)
        )
        return True

    def _finish(self, outcome: NodeOutcome, status: NodeStatus) -> NodeOutcome:
        outcome.status = status
        outcome.end_time = time.time()
        if status == NodeStatus.SUCCEEDED:
            logger.info(f"✓ Node {outcome.node} upgrade completed successfully")
        elif status == NodeStatus.SKIPPED:
            logger.warning(f"Node {outcome.node} upgrade skipped: {outcome.error_message}")
        else:
            logger.error(f"Node {outcome.node} upgrade FAILED: {outcome.error_message}")
        return outcome

    # Phase actions

    def _drain(self, node: NodeDescriptor) -> None:
        result = self.control_plane.drain(node.name, self.plan.drain_timeout)
        self._check(result, Phase.DRAIN, node)

    def _upgrade_worker_packages(self, node: NodeDescriptor) -> None:
        pm = PackageManager(self.executor, node.host, self.plan.command_timeout)
        phase = Phase.PACKAGE_UPGRADE
        if self.plan.skip_repo_update:
            logger.warning(f"[{node.host}] Skipping Kubernetes repository update as requested")
        else:
            self._check(pm.point_repository_at(self.plan.minor_version), phase, node)
        self._check(pm.install_pinned(UPGRADE_PACKAGES, self.plan.version), phase, node)
        self._check(pm.upgrade_node_configuration(), phase, node)
        self._check(pm.restart_service_after_upgrade(), phase, node)

    def _upgrade_control_plane_packages(self, node: NodeDescriptor) -> None:
        pm = PackageManager(self.executor, node.host, self.plan.command_timeout)
        phase = Phase.PACKAGE_UPGRADE
        if self.plan.skip_repo_update:
            logger.warning(f"[{node.host}] Skipping Kubernetes repository update as requested")
        else:
            self._check(pm.point_repository_at(self.plan.minor_version), phase, node)
        self._check(pm.install_pinned(("kubeadm",), self.plan.version), phase, node)
        plan_result = self._check(pm.plan_control_plane_upgrade(), phase, node)
        self._confirm_apply(node, plan_result)
        self._check(
            pm.apply_control_plane_upgrade(self.plan.kubernetes_version), phase, node
        )
        self._check(
            pm.install_pinned(("kubelet", "kubectl"), self.plan.version), phase, node
        )
        self._check(pm.restart_service_after_upgrade(), phase, node)

    def _confirm_apply(self, node: NodeDescriptor, plan_result: CommandResult) -> None:
        """
        Ask the operator to review ``kubeadm upgrade plan`` before applying.

        Raises:
            UpgradeDeclinedError: If the operator answers no, or nobody can be asked
        """
        if self.plan.auto_approve or self.plan.dry_run:
            return
        for line in plan_result.output.strip().splitlines():
            logger.info(f"  {line}")
        prompt = (
            f"Review the upgrade plan for {node}. "
            f"Do you want to continue with the upgrade to v{self.plan.kubernetes_version}?"
        )
        if self.confirm is None or not self.confirm(prompt):
            raise UpgradeDeclinedError(node.name)

    def _wait_ready(self, node: NodeDescriptor) -> None:
        result = self.poller.wait_until_ready(
            node.name, self.plan.ready_poll_interval, self.plan.ready_timeout
        )
        if not result.ready:
            raise ReadinessTimeoutError(node.name, result.waited, result.cancelled)

    def _uncordon(self, node: NodeDescriptor) -> None:
        self._check(self.control_plane.uncordon(node.name), Phase.UNCORDON, node)

    def _verify(self, outcome: NodeOutcome, checks) -> None:
        """Run soft checks; failures become warnings, never PhaseErrors."""
        for host, cmd in checks:
            result = self.executor.run_soft(host, cmd)
            if not result.succeeded:
                outcome.warnings.append(
                    SoftCheckWarning(host, cmd.description, result.error_detail)
                )
            elif result.output.strip() and not result.dry_run:
                logger.info(f"[{host}] {result.output.strip()}")

    def _run_verify(self, outcome: NodeOutcome, checks) -> None:
        before = len(outcome.warnings)
        start = time.monotonic()
        self._verify(outcome, checks)
        failed = outcome.warnings[before:]
        outcome.steps.append(
            StepResult(
                phase=Phase.VERIFY,
                succeeded=not failed,
                duration_seconds=time.monotonic() - start,
                error_message="; ".join(str(w) for w in failed) or None,
            )
        )

    # Entry points

    def execute(self, node: NodeDescriptor) -> NodeOutcome:
        """
        Upgrade one worker node.

        Args:
            node: Worker to upgrade

        Returns:
            Finalized NodeOutcome (succeeded or failed)
        """
        outcome = NodeOutcome(node=node, role=NodeRole.WORKER, start_time=time.time())
        control_host = self.control_plane.control_host

        drained = False
        if self.plan.skip_drain:
            logger.warning(f"[{node.name}] Skipping drain as requested")
        else:
            if not self._run_phase(outcome, Phase.DRAIN, lambda: self._drain(node)):
                # nothing has changed on the node yet
                return self._finish(outcome, NodeStatus.FAILED)
            drained = True

        upgraded = self._run_phase(
            outcome, Phase.PACKAGE_UPGRADE, lambda: self._upgrade_worker_packages(node)
        )
        ready = upgraded and self._run_phase(
            outcome, Phase.WAIT_READY, lambda: self._wait_ready(node)
        )

        if drained:
            if not (upgraded and ready):
                logger.warning(
                    f"[{node.name}] Attempting best-effort uncordon after failure"
                )
            if not self._run_phase(
                outcome, Phase.UNCORDON, lambda: self._uncordon(node), fatal=False
            ):
                outcome.warnings.append(
                    SoftCheckWarning(
                        control_host,
                        f"Uncordoning node {node.name}",
                        f"node left cordoned, run 'kubectl uncordon {node.name}' manually",
                    )
                )

        if not (upgraded and ready):
            return self._finish(outcome, NodeStatus.FAILED)

        if self.plan.skip_verification:
            logger.info(f"[{node.name}] Skipping verification as requested")
        else:
            self._run_verify(
                outcome,
                [
                    (node.host, commands.kubelet_version()),
                    (control_host, commands.node_status(node.name)),
                ],
            )
        return self._finish(outcome, NodeStatus.SUCCEEDED)

    def execute_control_plane(self, node: NodeDescriptor) -> NodeOutcome:
        """
        Upgrade the control node. There is nothing to drain to on a single
        control node, so the sequence is package-upgrade then verify.
        """
        outcome = NodeOutcome(
            node=node, role=NodeRole.CONTROL_PLANE, start_time=time.time()
        )
        try:
            upgraded = self._run_phase(
                outcome,
                Phase.PACKAGE_UPGRADE,
                lambda: self._upgrade_control_plane_packages(node),
            )
        except UpgradeDeclinedError as e:
            outcome.error_message = str(e)
            return self._finish(outcome, NodeStatus.SKIPPED)
        if not upgraded:
            return self._finish(outcome, NodeStatus.FAILED)

        if not self.plan.skip_verification:
            self._run_verify(
                outcome,
                [
                    (node.host, commands.kubectl_client_version()),
                    (node.host, commands.kubeadm_version()),
                    (node.host, commands.kubelet_version()),
                ],
            )
        return self._finish(outcome, NodeStatus.SUCCEEDED)
