"""
Error types for the Kubernetes rolling upgrade orchestrator.
"""

from typing import Optional


class UpgradeError(Exception):
    """Base class for orchestrator errors."""


class ConfigurationError(UpgradeError):
    """Invalid upgrade plan. Always raised before any remote action."""


class ConnectivityError(UpgradeError):
    """A host could not be reached over SSH."""

    def __init__(self, host: str, message: str):
        super().__init__(f"{host}: {message}")
        self.host = host


class PhaseError(UpgradeError):
    """A lifecycle phase failed on a node."""

    def __init__(
        self,
        phase: str,
        node_name: str,
        detail: str,
        command: Optional[str] = None,
    ):
        super().__init__(f"{phase} failed on {node_name}: {detail}")
        self.phase = phase
        self.node_name = node_name
        self.detail = detail
        self.command = command


class ReadinessTimeoutError(PhaseError):
    """Node did not report Ready within the poll budget."""

    def __init__(self, node_name: str, waited: float, cancelled: bool = False):
        if cancelled:
            detail = f"readiness wait cancelled after {waited:.0f}s"
        else:
            detail = f"node not Ready after {waited:.0f}s"
        super().__init__("wait-ready", node_name, detail)
        self.waited = waited
        self.cancelled = cancelled


class SoftCheckWarning(UserWarning):
    """A diagnostic command failed. Recorded on the outcome, never fatal."""

    def __init__(self, host: str, description: str, detail: str):
        super().__init__(f"{description} failed on {host}: {detail}")
        self.host = host
        self.description = description
        self.detail = detail


class UpgradeDeclinedError(UpgradeError):
    """The operator answered no when asked to go on with an upgrade."""

    def __init__(self, node_name: str):
        super().__init__(f"upgrade of {node_name} declined by operator")
        self.node_name = node_name
