"""
Run summary reporting: log tables and a JSON export.
"""

import json
import logging
import os
from datetime import datetime
from typing import Dict, List, Optional

from models import NodeOutcome, RunSummary
from rollback import RollbackAdvisor

logger = logging.getLogger(__name__)


def format_duration(seconds: Optional[float]) -> str:
    """Format duration in human-readable format."""
    if seconds is None:
        return "N/A"
    if seconds < 60:
        return f"{seconds:.1f}s"
    elif seconds < 3600:
        mins = int(seconds // 60)
        secs = seconds % 60
        return f"{mins}m {secs:.0f}s"
    else:
        hours = int(seconds // 3600)
        mins = int((seconds % 3600) // 60)
        secs = seconds % 60
        return f"{hours}h {mins}m {secs:.0f}s"


def _timestamp(ts: Optional[float]) -> Optional[str]:
    return datetime.fromtimestamp(ts).isoformat() if ts else None


class Reporter:
    """Renders a RunSummary to the log and to a JSON file."""

    def __init__(
        self,
        advisor: Optional[RollbackAdvisor] = None,
        report_dir: str = ".",
        export_json: bool = True,
    ):
        self.advisor = advisor or RollbackAdvisor()
        self.report_dir = report_dir
        self.export_json = export_json

    def _log_node(self, outcome: NodeOutcome) -> None:
        logger.info(
            f"{outcome.node.name:<20} {outcome.node.host:<20} {outcome.role.value:<14} "
            f"{outcome.status.value:<10} {format_duration(outcome.duration_seconds)}"
        )
        for step in outcome.steps:
            mark = "✓" if step.succeeded else "✗"
            line = f"    {mark} {step.phase.value:<16} {format_duration(step.duration_seconds)}"
            if step.error_message:
                error = step.error_message
                if len(error) > 60:
                    error = error[:60] + "..."
                line += f"  {error}"
            logger.info(line)

    def print_report(self, summary: RunSummary) -> None:
        """Log timing, per-node phases, statistics and follow-ups."""
        plan = summary.plan

        logger.info("")
        logger.info("=" * 70)
        logger.info("UPGRADE REPORT")
        logger.info("=" * 70)

        logger.info("")
        logger.info("TIMING SUMMARY")
        logger.info("-" * 40)
        if summary.start_time:
            logger.info(
                f"Start time:      {datetime.fromtimestamp(summary.start_time).strftime('%Y-%m-%d %H:%M:%S')}"
            )
        if summary.end_time:
            logger.info(
                f"End time:        {datetime.fromtimestamp(summary.end_time).strftime('%Y-%m-%d %H:%M:%S')}"
            )
        logger.info(f"Total duration:  {format_duration(summary.duration_seconds)}")
        logger.info(f"Target version:  {plan.version}")
        if plan.dry_run:
            logger.info("Mode:            DRY RUN")

        if summary.abort_reason:
            logger.info("")
            logger.error(f"RUN ABORTED: {summary.abort_reason}")

        logger.info("")
        logger.info("NODES")
        logger.info("-" * 40)
        logger.info(f"{'Node':<20} {'Host':<20} {'Role':<14} {'Status':<10} Duration")
        logger.info("-" * 70)
        if summary.control_outcome is not None:
            self._log_node(summary.control_outcome)
        for outcome in summary.worker_outcomes:
            self._log_node(outcome)

        logger.info("")
        logger.info("STATISTICS (workers)")
        logger.info("-" * 40)
        for k, v in summary.totals.items():
            logger.info(f"{k:20s}: {v}")

        warned = [o for o in summary.outcomes if o.warnings]
        if warned:
            logger.info("")
            logger.info("WARNINGS")
            logger.info("-" * 40)
            for o in warned:
                for w in o.warnings:
                    logger.warning(f"  {o.node.name}: {w}")

        manual = [o for o in summary.outcomes if o.needs_manual_uncordon]
        if manual:
            logger.info("")
            logger.info("MANUAL FOLLOW-UP REQUIRED")
            logger.info("-" * 40)
            for o in manual:
                logger.warning(f"  kubectl uncordon {o.node.name}")

        if summary.verification is not None:
            logger.info("")
            logger.info("POST-UPGRADE VERIFICATION")
            logger.info("-" * 40)
            logger.info(
                f"Checks passed: {summary.verification.passed}/{summary.verification.total}"
            )

        logger.info("")
        logger.info("=" * 70)
        if summary.succeeded:
            logger.info("✓ Kubernetes cluster upgrade completed successfully!")
        else:
            logger.error("Kubernetes cluster upgrade finished with failures")
        logger.info("=" * 70)

        self.advisor.advise(summary)

        if self.export_json:
            self.export_results_json(summary)

    def _outcome_to_dict(self, outcome: NodeOutcome) -> Dict:
        return {
            "name": outcome.node.name,
            "host": outcome.node.host,
            "role": outcome.role.value,
            "status": outcome.status.value,
            "start_time": _timestamp(outcome.start_time),
            "end_time": _timestamp(outcome.end_time),
            "duration_seconds": outcome.duration_seconds,
            "error_message": outcome.error_message,
            "warnings": [str(w) for w in outcome.warnings],
            "steps": [
                {
                    "phase": s.phase.value,
                    "succeeded": s.succeeded,
                    "duration_seconds": s.duration_seconds,
                    "error_message": s.error_message,
                    "command": s.command,
                }
                for s in outcome.steps
            ],
        }

    def build_report(self, summary: RunSummary) -> Dict:
        plan = summary.plan
        nodes: List[Dict] = []
        if summary.control_outcome is not None:
            nodes.append(self._outcome_to_dict(summary.control_outcome))
        nodes.extend(self._outcome_to_dict(o) for o in summary.worker_outcomes)
        return {
            "version": plan.version,
            "control_plane": plan.control_node.host,
            "workers": [w.host for w in plan.workers],
            "dry_run": plan.dry_run,
            "workers_only": plan.workers_only,
            "start_time": _timestamp(summary.start_time),
            "end_time": _timestamp(summary.end_time),
            "total_duration_seconds": summary.duration_seconds,
            "succeeded": summary.succeeded,
            "abort_reason": summary.abort_reason,
            "statistics": summary.totals,
            "nodes": nodes,
            "verification": (
                summary.verification.to_dict() if summary.verification else None
            ),
        }

    def export_results_json(self, summary: RunSummary) -> str:
        """
        Export the run to a JSON file for further processing.

        Returns:
            Path of the written report
        """
        filename = os.path.join(
            self.report_dir,
            f"upgrade-report-{datetime.now().strftime('%Y%m%d-%H%M%S')}.json",
        )
        with open(filename, "w") as f:
            json.dump(self.build_report(summary), f, indent=2)
        logger.info(f"Detailed report exported to: {filename}")
        return filename
