"""
Bounded, cancellable readiness polling.
"""

import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Optional

from control_plane import ControlPlane

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReadyResult:
    """Outcome of a readiness wait."""

    ready: bool
    waited: float
    attempts: int
    cancelled: bool = False


class ReadinessPoller:
    """Polls the control plane until a node reports Ready or time runs out.

    The number of status queries is bounded by ``ceil(timeout / poll_interval)``.
    The cancel event is checked before every query and wakes the wait
    between queries.
    """

    def __init__(
        self,
        control_plane: ControlPlane,
        dry_run: bool = False,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.control_plane = control_plane
        self.dry_run = dry_run
        self.cancel_event = cancel_event or threading.Event()

    def wait_until_ready(
        self, node_name: str, poll_interval: float, timeout: float
    ) -> ReadyResult:
        """
        Wait for node_name to become Ready.

        Args:
            node_name: Cluster node name
            poll_interval: Seconds between status queries
            timeout: Total wait budget in seconds

        Returns:
            ReadyResult; ready=False on timeout or cancellation, never raises
        """
        if self.dry_run:
            logger.info(f"DRY RUN: Would wait for node {node_name} to be ready")
            return ReadyResult(ready=True, waited=0.0, attempts=0)

        max_attempts = max(1, math.ceil(timeout / poll_interval))
        logger.info(
            f"Waiting for node {node_name} to be ready (max {timeout:.0f}s, every {poll_interval:.0f}s)..."
        )

        start = time.monotonic()
        attempts = 0
        while attempts < max_attempts:
            if self.cancel_event.is_set():
                waited = time.monotonic() - start
                logger.warning(
                    f"Readiness wait for {node_name} cancelled after {waited:.0f}s"
                )
                return ReadyResult(False, waited, attempts, cancelled=True)

            attempts += 1
            if self.control_plane.is_ready(node_name):
                waited = time.monotonic() - start
                logger.info(f"✓ Node {node_name} is ready after {waited:.0f}s")
                return ReadyResult(True, waited, attempts)

            logger.debug(
                f"  {node_name}: not ready (attempt {attempts}/{max_attempts})"
            )
            if attempts < max_attempts:
                self.cancel_event.wait(poll_interval)

        waited = time.monotonic() - start
        logger.error(
            f"Node {node_name} did not become ready within {timeout:.0f}s ({attempts} checks)"
        )
        return ReadyResult(False, waited, attempts)
