"""
Data models for the Kubernetes rolling upgrade orchestrator.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional

from exceptions import ConfigurationError, SoftCheckWarning


class Phase(Enum):
    """Lifecycle phases, in execution order."""

    DRAIN = "drain"
    PACKAGE_UPGRADE = "package-upgrade"
    WAIT_READY = "wait-ready"
    UNCORDON = "uncordon"
    VERIFY = "verify"


PHASE_ORDER = [
    Phase.DRAIN,
    Phase.PACKAGE_UPGRADE,
    Phase.WAIT_READY,
    Phase.UNCORDON,
    Phase.VERIFY,
]


class NodeStatus(Enum):
    """Final status of a node."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


class NodeRole(Enum):
    CONTROL_PLANE = "control-plane"
    WORKER = "worker"


@dataclass(frozen=True)
class NodeDescriptor:
    """A cluster node.

    ``host`` is the SSH address used for remote commands and ``name`` is the
    node name the control plane knows it by (drain, uncordon, readiness).
    """

    host: str
    name: str

    @classmethod
    def parse(cls, spec: str) -> "NodeDescriptor":
        """
        Parse ``HOST`` or ``HOST=NAME``.

        Args:
            spec: Node specification from the command line

        Returns:
            NodeDescriptor instance

        Raises:
            ConfigurationError: If host or name is empty
        """
        host, sep, name = spec.strip().partition("=")
        host = host.strip()
        name = name.strip() if sep else host
        if not host or not name:
            raise ConfigurationError(f"Invalid node specification: '{spec}'")
        return cls(host=host, name=name)

    def __str__(self) -> str:
        if self.host == self.name:
            return self.host
        return f"{self.name} ({self.host})"


@dataclass(frozen=True)
class CommandResult:
    """Result of a single remote command."""

    host: str
    command: str  # full command as sent, including any sudo prefix
    succeeded: bool
    exit_code: Optional[int] = None
    output: str = ""
    error: str = ""
    dry_run: bool = False
    soft: bool = False

    @property
    def error_detail(self) -> str:
        if self.succeeded:
            return ""
        detail = self.error.strip() or self.output.strip()
        if self.exit_code is not None:
            prefix = f"exit code {self.exit_code}"
            return f"{prefix}: {detail}" if detail else prefix
        return detail or "unknown error"


@dataclass(frozen=True)
class StepResult:
    """Outcome of one lifecycle phase on one node."""

    phase: Phase
    succeeded: bool
    duration_seconds: float
    error_message: Optional[str] = None
    command: Optional[str] = None


@dataclass
class NodeOutcome:
    """Everything that happened to one node during the run."""

    node: NodeDescriptor
    role: NodeRole
    status: NodeStatus = NodeStatus.SKIPPED
    steps: List[StepResult] = field(default_factory=list)
    warnings: List[SoftCheckWarning] = field(default_factory=list)
    error_message: Optional[str] = None
    start_time: Optional[float] = None
    end_time: Optional[float] = None

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.start_time is None or self.end_time is None:
            return None
        return self.end_time - self.start_time

    @property
    def phases(self) -> List[Phase]:
        return [s.phase for s in self.steps]

    def step(self, phase: Phase) -> Optional[StepResult]:
        for s in self.steps:
            if s.phase == phase:
                return s
        return None

    @property
    def needs_manual_uncordon(self) -> bool:
        uncordon = self.step(Phase.UNCORDON)
        return uncordon is not None and not uncordon.succeeded


@dataclass
class RunSummary:
    """Result of a cluster upgrade run, built by the orchestrator."""

    plan: Any  # UpgradePlan
    control_outcome: Optional[NodeOutcome] = None
    worker_outcomes: List[NodeOutcome] = field(default_factory=list)
    start_time: Optional[float] = None
    end_time: Optional[float] = None
    abort_reason: Optional[str] = None
    verification: Optional[Any] = None  # VerificationReport

    @property
    def outcomes(self) -> List[NodeOutcome]:
        """Outcomes in plan order; the control node only when it is upgraded."""
        result: List[NodeOutcome] = []
        if self.control_outcome is not None and not self.plan.workers_only:
            result.append(self.control_outcome)
        result.extend(self.worker_outcomes)
        return result

    @property
    def totals(self) -> dict:
        """Worker totals."""
        succeeded = sum(
            1 for o in self.worker_outcomes if o.status == NodeStatus.SUCCEEDED
        )
        failed = sum(1 for o in self.worker_outcomes if o.status == NodeStatus.FAILED)
        skipped = sum(
            1 for o in self.worker_outcomes if o.status == NodeStatus.SKIPPED
        )
        return {
            "attempted": succeeded + failed,
            "succeeded": succeeded,
            "failed": failed,
            "skipped": skipped,
        }

    @property
    def has_failures(self) -> bool:
        return any(o.status == NodeStatus.FAILED for o in self.outcomes)

    @property
    def succeeded(self) -> bool:
        """True when the run was not aborted and every planned node succeeded."""
        if self.abort_reason:
            return False
        return all(o.status == NodeStatus.SUCCEEDED for o in self.outcomes)

    @property
    def exit_code(self) -> int:
        return 0 if self.succeeded else 1

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.start_time is None or self.end_time is None:
            return None
        return self.end_time - self.start_time
