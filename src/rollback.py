"""
Rollback guidance for failed upgrades.

The guidance is printed for the operator and never executed.
"""

import logging
from typing import List

from commands import K8S_SOURCES_FILE
from models import RunSummary

logger = logging.getLogger(__name__)

ROLLBACK_GUIDANCE: List[str] = [
    "If you need to rollback this upgrade, consider:",
    f"1. Check backup files next to {K8S_SOURCES_FILE} (*.backup.*)",
    "2. Restore previous Kubernetes repository configuration",
    "3. Downgrade packages manually:",
    "   sudo apt-mark unhold kubeadm kubelet kubectl",
    "   sudo apt-get install kubeadm=<old-version> kubelet=<old-version> kubectl=<old-version>",
    "   sudo apt-mark hold kubeadm kubelet kubectl",
    "4. For control plane nodes, you may need to restore etcd backup",
    "5. Check Kubernetes documentation for version-specific rollback procedures",
]


class RollbackAdvisor:
    """Emits static remediation guidance when a run had failed nodes."""

    def guidance(self) -> List[str]:
        return list(ROLLBACK_GUIDANCE)

    def advise(self, summary: RunSummary) -> List[str]:
        """
        Log rollback guidance if any node failed.

        Args:
            summary: Finished run summary

        Returns:
            The guidance lines that were logged (empty when nothing failed)
        """
        if not summary.has_failures:
            return []

        lines = self.guidance()
        logger.error("=" * 70)
        logger.error("ROLLBACK SUGGESTIONS")
        logger.error("=" * 70)
        for line in lines:
            logger.error(line)
        logger.error("=" * 70)
        return lines
