"""
Configuration management for the Kubernetes rolling upgrade orchestrator.
"""

import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

from exceptions import ConfigurationError
from models import NodeDescriptor

VERSION_PATTERN = re.compile(r"^(\d+)\.(\d+)\.(\d+)-(\d+)\.(\d+)$")

UPGRADE_PACKAGES = ("kubelet", "kubectl", "kubeadm")


def parse_node_list(value: Optional[str]) -> List[NodeDescriptor]:
    """
    Parse a comma-separated list of ``HOST[=NAME]`` entries.

    Args:
        value: Raw command-line value (may be None or empty)

    Returns:
        List of NodeDescriptor in the given order
    """
    if not value:
        return []
    return [NodeDescriptor.parse(item) for item in value.split(",") if item.strip()]


@dataclass(frozen=True)
class UpgradePlan:
    """Validated, immutable description of a cluster upgrade run."""

    version: str
    control_node: NodeDescriptor
    workers: Tuple[NodeDescriptor, ...] = ()
    dry_run: bool = False
    skip_drain: bool = False
    skip_verification: bool = False
    skip_repo_update: bool = False
    workers_only: bool = False
    auto_approve: bool = False
    ssh_user: str = "ubuntu"
    ssh_key_path: Optional[str] = None
    ssh_port: int = 22
    connect_timeout: int = 30
    command_timeout: int = 600
    drain_timeout: int = 300
    inter_node_pause: float = 30.0
    control_plane_settle: float = 30.0
    ready_timeout: float = 300.0
    ready_poll_interval: float = 10.0
    verbose: bool = False

    @property
    def minor_version(self) -> str:
        """Major.minor of the target version, e.g. ``1.33`` for ``1.33.1-1.1``."""
        match = VERSION_PATTERN.match(self.version)
        if not match:
            raise ConfigurationError(f"Invalid version format: {self.version}")
        return f"{match.group(1)}.{match.group(2)}"

    @property
    def kubernetes_version(self) -> str:
        """Version without the package revision, e.g. ``1.33.1``."""
        return self.version.split("-", 1)[0]

    @property
    def upgrades_control_plane(self) -> bool:
        return not self.workers_only

    def validate(self) -> "UpgradePlan":
        """
        Check the plan for configuration errors.

        Returns:
            The plan itself, for chaining

        Raises:
            ConfigurationError: If any setting is invalid
        """
        if not self.version:
            raise ConfigurationError("Kubernetes version is required")
        if not VERSION_PATTERN.match(self.version):
            raise ConfigurationError(
                f"Invalid version format '{self.version}'. "
                "Expected format: X.Y.Z-A.B (e.g., 1.33.0-1.1)"
            )
        if self.control_node is None:
            raise ConfigurationError("Control plane host is required")
        if self.workers_only and not self.workers:
            raise ConfigurationError(
                "Workers-only mode requires at least one worker node"
            )
        if not self.ssh_user:
            raise ConfigurationError("SSH user is required")

        hosts = [self.control_node.host] + [w.host for w in self.workers]
        names = [self.control_node.name] + [w.name for w in self.workers]
        if len(set(hosts)) != len(hosts):
            raise ConfigurationError(f"Duplicate host in plan: {', '.join(hosts)}")
        if len(set(names)) != len(names):
            raise ConfigurationError(
                f"Duplicate node name in plan: {', '.join(names)}"
            )

        if self.ready_poll_interval <= 0:
            raise ConfigurationError("Readiness poll interval must be positive")
        if self.ready_timeout <= 0:
            raise ConfigurationError("Readiness timeout must be positive")
        for label, value in (
            ("Connect timeout", self.connect_timeout),
            ("Command timeout", self.command_timeout),
            ("Drain timeout", self.drain_timeout),
        ):
            if value <= 0:
                raise ConfigurationError(f"{label} must be positive")
        if self.inter_node_pause < 0 or self.control_plane_settle < 0:
            raise ConfigurationError("Pause durations cannot be negative")
        return self

    @classmethod
    def from_args(cls, args) -> "UpgradePlan":
        """
        Create a validated plan from command-line arguments.

        Args:
            args: Parsed argparse arguments

        Returns:
            UpgradePlan instance

        Raises:
            ConfigurationError: If the arguments describe an invalid plan
        """
        if not args.control_plane:
            raise ConfigurationError(
                "Control plane host is required. Use --control-plane"
            )
        return cls(
            version=args.version,
            control_node=NodeDescriptor.parse(args.control_plane),
            workers=tuple(parse_node_list(args.workers)),
            dry_run=args.dry_run,
            skip_drain=args.skip_drain,
            skip_verification=args.skip_verification,
            skip_repo_update=args.skip_repo_update,
            workers_only=args.workers_only,
            auto_approve=args.auto_approve,
            ssh_user=args.ssh_user,
            ssh_key_path=args.ssh_key,
            ssh_port=args.ssh_port,
            connect_timeout=args.ssh_timeout,
            command_timeout=args.command_timeout,
            drain_timeout=args.drain_timeout,
            inter_node_pause=args.wait_between,
            control_plane_settle=args.control_plane_settle,
            ready_timeout=args.ready_timeout,
            ready_poll_interval=args.poll_interval,
            verbose=args.verbose,
        ).validate()
