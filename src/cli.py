"""Console entry point for the Kubernetes rolling upgrade CLI."""

from __future__ import annotations

import argparse
import logging
import signal
import threading
from typing import List

from clients import SSHTransport
from config import UpgradePlan
from control_plane import ControlPlane
from exceptions import ConfigurationError
from executor import RemoteExecutor
from log_utils import setup_logging
from models import NodeDescriptor
from upgrader import ClusterUpgrader
from verify import ClusterVerifier

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build and return the CLI argument parser."""
    parser = argparse.ArgumentParser(
        description=(
            "Kubernetes Cluster Rolling Upgrade Tool\n\n"
            "Upgrades a kubeadm-managed cluster over SSH: the control plane first,\n"
            "then each worker node one at a time (drain, upgrade, wait, uncordon)."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  # Preview the full upgrade\n"
            "  k8s-rolling-upgrade --version 1.33.1-1.1 --control-plane 10.0.0.10 \\\n"
            "      --workers 10.0.0.11,10.0.0.12 --dry-run\n\n"
            "  # Upgrade workers only, continuing past failures\n"
            "  k8s-rolling-upgrade --version 1.33.1-1.1 --control-plane 10.0.0.10 \\\n"
            "      --workers 10.0.0.11=worker-1,10.0.0.12=worker-2 --workers-only --auto-approve\n\n"
            "  # Check cluster health only\n"
            "  k8s-rolling-upgrade --control-plane 10.0.0.10 --verify-only\n\n"
            "  # Detailed health check with infrastructure checks\n"
            "  k8s-rolling-upgrade --control-plane 10.0.0.10 --verify-only --detailed"
        ),
    )

    target = parser.add_argument_group("target")
    target.add_argument(
        "--version",
        metavar="X.Y.Z-A.B",
        help="Target Kubernetes package version (e.g., 1.33.1-1.1)",
    )
    target.add_argument(
        "--control-plane",
        metavar="HOST[=NAME]",
        help=(
            "Control plane node. NAME is the node name known to the cluster "
            "(defaults to HOST). kubectl commands run here."
        ),
    )
    target.add_argument(
        "--workers",
        metavar="HOST[=NAME],...",
        help="Comma-separated worker nodes, upgraded in the given order",
    )

    ssh = parser.add_argument_group("ssh")
    ssh.add_argument("--ssh-user", default="ubuntu", help="SSH user (default: ubuntu)")
    ssh.add_argument("--ssh-key", metavar="PATH", help="SSH private key file")
    ssh.add_argument("--ssh-port", type=int, default=22, help="SSH port (default: 22)")
    ssh.add_argument(
        "--ssh-timeout",
        type=int,
        default=30,
        metavar="SECONDS",
        help="SSH connection timeout (default: 30)",
    )

    mode = parser.add_argument_group("operation mode")
    mode.add_argument(
        "--dry-run",
        action="store_true",
        help="Show the commands that would run without changing anything (RECOMMENDED first)",
    )
    mode.add_argument(
        "--workers-only",
        action="store_true",
        help="Skip the control plane upgrade and upgrade workers only",
    )
    mode.add_argument(
        "--verify-only",
        action="store_true",
        help="Run the cluster verification checks and exit",
    )
    mode.add_argument(
        "--detailed",
        action="store_true",
        help="With --verify-only: add infrastructure checks and detailed output",
    )

    safety = parser.add_argument_group("safety and control")
    safety.add_argument(
        "--skip-drain",
        action="store_true",
        help="Do not drain workers before upgrading (NOT RECOMMENDED)",
    )
    safety.add_argument(
        "--skip-repo-update",
        action="store_true",
        help="Do not repoint the Kubernetes apt repository",
    )
    safety.add_argument(
        "--skip-verification",
        action="store_true",
        help="Skip per-node and post-upgrade verification",
    )
    safety.add_argument(
        "--auto-approve",
        action="store_true",
        help="Continue with remaining workers after a failure without asking",
    )

    timeouts = parser.add_argument_group("timeouts")
    timeouts.add_argument(
        "--command-timeout",
        type=int,
        default=600,
        metavar="SECONDS",
        help="Maximum time for a single remote command (default: 600)",
    )
    timeouts.add_argument(
        "--drain-timeout",
        type=int,
        default=300,
        metavar="SECONDS",
        help="kubectl drain timeout (default: 300)",
    )
    timeouts.add_argument(
        "--ready-timeout",
        type=float,
        default=300.0,
        metavar="SECONDS",
        help="Maximum wait for a node to report Ready (default: 300)",
    )
    timeouts.add_argument(
        "--poll-interval",
        type=float,
        default=10.0,
        metavar="SECONDS",
        help="Time between readiness checks (default: 10)",
    )
    timeouts.add_argument(
        "--wait-between",
        type=float,
        default=30.0,
        metavar="SECONDS",
        help="Pause between worker upgrades (default: 30)",
    )
    timeouts.add_argument(
        "--control-plane-settle",
        type=float,
        default=30.0,
        metavar="SECONDS",
        help="Pause after the control plane upgrade before workers (default: 30)",
    )

    logging_group = parser.add_argument_group("logging and output")
    logging_group.add_argument(
        "--verbose", action="store_true", help="Enable debug logging"
    )
    return parser


def confirm_from_stdin(prompt: str) -> bool:
    """Ask the operator a yes/no question; anything but y/yes is a no."""
    try:
        answer = input(f"{prompt} (y/N): ")
    except EOFError:
        return False
    return answer.strip().lower() in ("y", "yes")


def _install_interrupt_handler(cancel_event: threading.Event) -> None:
    def handler(signum, frame):
        if cancel_event.is_set():
            raise KeyboardInterrupt
        logger.warning(
            "Interrupt received: finishing the current step, remaining nodes will be skipped"
        )
        cancel_event.set()

    signal.signal(signal.SIGINT, handler)


def run_verify_only(args: argparse.Namespace) -> int:
    if not args.control_plane:
        raise ConfigurationError("Control plane host is required. Use --control-plane")
    control = NodeDescriptor.parse(args.control_plane)
    transport = SSHTransport(
        username=args.ssh_user,
        key_filename=args.ssh_key,
        port=args.ssh_port,
        connect_timeout=args.ssh_timeout,
    )
    try:
        executor = RemoteExecutor(transport, args.dry_run, args.command_timeout)
        report = ClusterVerifier(
            executor, ControlPlane(executor, control.host), detailed=args.detailed
        ).run()
    finally:
        transport.close()
    return report.exit_code


def main(argv: List[str] | None = None) -> int:
    """CLI main for console_scripts entry point."""
    parser = build_parser()
    args = parser.parse_args(args=argv)

    log_file = "k8s-verify.log" if args.verify_only else "k8s-upgrade.log"
    setup_logging(verbose=args.verbose, log_file=log_file)

    try:
        if args.verify_only:
            return run_verify_only(args)
        if not args.version:
            raise ConfigurationError("Kubernetes version is required. Use --version")
        plan = UpgradePlan.from_args(args)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return 1

    cancel_event = threading.Event()
    _install_interrupt_handler(cancel_event)

    upgrader = ClusterUpgrader(confirm=confirm_from_stdin, cancel_event=cancel_event)
    summary = upgrader.run(plan)
    return summary.exit_code
