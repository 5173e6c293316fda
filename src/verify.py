"""
Cluster health verification through the control node.

Used after an upgrade run (never fatal) and standalone with --verify-only.
Each check group passes only if all of its required checks succeed; a
check with a fallback also passes when the fallback does. Detailed mode adds
the infrastructure group and logs extra diagnostics that are never counted.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple

import commands
from commands import RemoteCommand
from control_plane import ControlPlane
from executor import RemoteExecutor

logger = logging.getLogger(__name__)


class CheckStatus(Enum):
    """Status of a verification check group."""

    PASSED = "passed"
    FAILED = "failed"


class CheckResult:
    """Result of a single verification check group."""

    def __init__(
        self,
        check_name: str,
        status: CheckStatus,
        message: str,
        details: Optional[Dict] = None,
    ):
        self.check_name = check_name
        self.status = status
        self.message = message
        self.details = details or {}
        self.timestamp = datetime.now()

    @property
    def passed(self) -> bool:
        return self.status == CheckStatus.PASSED

    def to_dict(self) -> Dict:
        """Convert to dictionary for logging/reporting."""
        return {
            "check_name": self.check_name,
            "status": self.status.value,
            "message": self.message,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
        }


class VerificationReport:
    """Aggregated verification results."""

    def __init__(self, results: List[CheckResult]):
        self.results = results

    @property
    def passed(self) -> int:
        return sum(1 for r in self.results if r.passed)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def exit_code(self) -> int:
        """0 when every group passed, 2 when most did, 1 otherwise."""
        if self.passed == self.total:
            return 0
        if self.passed > self.total // 2:
            return 2
        return 1

    def to_dict(self) -> Dict:
        return {
            "checks_passed": self.passed,
            "total_checks": self.total,
            "results": [r.to_dict() for r in self.results],
        }


@dataclass(frozen=True)
class Check:
    """One verification command, with a legacy alternative tried on failure."""

    command: RemoteCommand
    fallback: Optional[RemoteCommand] = None
    required: bool = True


CHECK_GROUPS: List[Tuple[str, List[Check]]] = [
    ("connectivity", [Check(commands.cluster_info())]),
    (
        "versions",
        [
            Check(commands.kubectl_client_version()),
            Check(commands.kubeadm_version()),
            Check(commands.kubelet_version()),
        ],
    ),
    ("nodes", [Check(commands.all_nodes_ready())]),
    ("system_pods", [Check(commands.system_pods_running())]),
    (
        "cluster_health",
        [
            Check(commands.api_livez(), fallback=commands.component_statuses_healthy()),
            Check(commands.api_readyz()),
        ],
    ),
]

DETAILED_GROUPS: List[Tuple[str, List[Check]]] = [
    (
        "infrastructure",
        [
            Check(commands.storage_classes()),
            Check(commands.persistent_volumes()),
            Check(commands.cni_pods()),
            Check(commands.dns_pods()),
            Check(commands.ingress_controllers(), required=False),
        ],
    ),
]

# Logged in detailed mode only
DETAILED_INFO: List[RemoteCommand] = [
    commands.node_conditions(),
    commands.system_pods_wide(),
    commands.problem_pods(),
    commands.component_statuses(),
    commands.recent_events(),
]

TROUBLESHOOTING_TIPS = [
    "1. Check node resources: kubectl describe nodes",
    "2. Check pod logs: kubectl logs -n kube-system <pod-name>",
    "3. Check events: kubectl get events --sort-by='.lastTimestamp'",
    "4. Restart kubelet: sudo systemctl restart kubelet",
    "5. Check network connectivity between nodes",
    "6. Verify DNS resolution: nslookup kubernetes.default",
]


class ClusterVerifier:
    """Runs the verification check groups on the control node."""

    def __init__(
        self, executor: RemoteExecutor, control_plane: ControlPlane, detailed: bool = False
    ):
        self.executor = executor
        self.control_plane = control_plane
        self.control_host = control_plane.control_host
        self.detailed = detailed

    def _run_check(self, check: Check) -> Optional[str]:
        """Returns a failure description, or None when the check passed."""
        result = self.executor.run_soft(self.control_host, check.command)
        if result.succeeded:
            return None
        if check.fallback is not None:
            logger.info(
                f"{check.command.description} failed, trying {check.fallback.description}"
            )
            if self.executor.run_soft(self.control_host, check.fallback).succeeded:
                return None
        return f"{check.command.description}: {result.error_detail}"

    def _run_group(self, name: str, checks: List[Check]) -> CheckResult:
        failures = []
        optional_failures = []
        for check in checks:
            failure = self._run_check(check)
            if failure is None:
                continue
            if check.required:
                failures.append(failure)
            else:
                optional_failures.append(failure)

        details = {}
        if optional_failures:
            details["optional_failures"] = optional_failures
        if failures:
            details["failures"] = failures
            return CheckResult(
                check_name=name,
                status=CheckStatus.FAILED,
                message=f"{len(failures)}/{len(checks)} command(s) failed",
                details=details,
            )
        return CheckResult(
            check_name=name,
            status=CheckStatus.PASSED,
            message=f"{len(checks) - len(optional_failures)} command(s) passed",
            details=details,
        )

    def _log_details(self) -> None:
        for cmd in DETAILED_INFO:
            result = self.executor.run_soft(self.control_host, cmd)
            if not result.succeeded or result.dry_run:
                continue
            logger.info(f"{cmd.description}:")
            for line in result.output.strip().splitlines():
                logger.info(f"  {line}")

    def run(self) -> VerificationReport:
        """
        Run every check group.

        Returns:
            VerificationReport; individual failures are logged, never raised
        """
        logger.info("=" * 70)
        logger.info(f"CLUSTER VERIFICATION ({self.control_host})")
        if self.detailed:
            logger.info("Detailed mode: enabled")
        logger.info("=" * 70)

        groups = CHECK_GROUPS + (DETAILED_GROUPS if self.detailed else [])
        results: List[CheckResult] = []
        for name, checks in groups:
            check = self._run_group(name, checks)
            results.append(check)
            logger.info(f"  {name:15s}: {check.status.value} - {check.message}")

        report = VerificationReport(results)
        logger.info(f"Checks passed: {report.passed}/{report.total}")
        if report.exit_code == 0:
            logger.info("✓ All verification checks passed! Cluster appears healthy.")
        elif report.exit_code == 2:
            logger.warning(
                "Most checks passed, but some issues detected. Review the output above."
            )
        else:
            logger.error(
                "Multiple verification checks failed. Cluster may have issues."
            )
        if self.executor.dry_run:
            logger.info("DRY RUN: no checks were actually executed")
        else:
            nodes_table = self.control_plane.cluster_health_summary()
            for line in nodes_table.strip().splitlines():
                logger.info(f"  {line}")
            if self.detailed:
                self._log_details()

        if report.exit_code != 0:
            logger.info("=== TROUBLESHOOTING TIPS ===")
            logger.info("If you see issues, try these common troubleshooting steps:")
            for tip in TROUBLESHOOTING_TIPS:
                logger.info(tip)
        return report
