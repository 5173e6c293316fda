"""
Kubernetes Cluster Rolling Upgrade Tool.
"""

from clients import PackageRepositoryClient, SSHTransport
from config import UpgradePlan
from log_utils import setup_logging
from models import NodeDescriptor, NodeOutcome, RunSummary
from rollback import RollbackAdvisor
from upgrader import ClusterUpgrader
from verify import ClusterVerifier

__all__ = [
    "SSHTransport",
    "PackageRepositoryClient",
    "UpgradePlan",
    "setup_logging",
    "NodeDescriptor",
    "NodeOutcome",
    "RunSummary",
    "RollbackAdvisor",
    "ClusterUpgrader",
    "ClusterVerifier",
]
