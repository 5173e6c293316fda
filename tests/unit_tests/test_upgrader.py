"""
Unit tests for ClusterUpgrader orchestration.
"""

import threading
import unittest
from unittest.mock import MagicMock, patch

from config import UpgradePlan
from exceptions import ConfigurationError
from fakes import FakeTransport
from models import NodeDescriptor, NodeStatus, Phase
from upgrader import ClusterUpgrader

CP = NodeDescriptor("10.0.0.10", "cp1")
W1 = NodeDescriptor("10.0.0.11", "w1")
W2 = NodeDescriptor("10.0.0.12", "w2")
W3 = NodeDescriptor("10.0.0.13", "w3")


def make_plan(**overrides):
    values = dict(
        version="1.33.1-1.1",
        control_node=CP,
        workers=(W1, W2),
        inter_node_pause=0,
        control_plane_settle=0,
        ready_timeout=0.04,
        ready_poll_interval=0.02,
    )
    values.update(overrides)
    return UpgradePlan(**values)


class TestClusterUpgrader(unittest.TestCase):
    """Test the rolling upgrade run."""

    def setUp(self):
        self.reporter = MagicMock()
        self.repository_client = MagicMock()
        self.repository_client.repository_exists.return_value = True

    def make_upgrader(self, transport, **kwargs):
        kwargs.setdefault("reporter", self.reporter)
        kwargs.setdefault("repository_client", self.repository_client)
        kwargs.setdefault("confirm", MagicMock(return_value=True))
        return ClusterUpgrader(transport=transport, **kwargs)

    def test_auto_approve_continues_after_failure(self):
        transport = FakeTransport(failures=[(W1.host, "apt-get install")])
        plan = make_plan(auto_approve=True)

        summary = self.make_upgrader(transport).run(plan)

        self.assertEqual(
            summary.totals,
            {"attempted": 2, "succeeded": 1, "failed": 1, "skipped": 0},
        )
        w1, w2 = summary.worker_outcomes
        self.assertEqual(w1.status, NodeStatus.FAILED)
        self.assertIsNotNone(w1.step(Phase.UNCORDON))
        self.assertEqual(w2.status, NodeStatus.SUCCEEDED)
        self.assertEqual(len(w2.phases), 5)
        self.assertEqual(summary.control_outcome.status, NodeStatus.SUCCEEDED)
        self.assertFalse(summary.succeeded)
        self.assertEqual(summary.exit_code, 1)
        self.reporter.print_report.assert_called_once_with(summary)

    def test_outcomes_preserve_plan_order(self):
        transport = FakeTransport()
        summary = self.make_upgrader(transport).run(make_plan(workers=(W2, W1, W3)))

        self.assertEqual(len(summary.outcomes), 4)
        self.assertEqual(
            [o.node.name for o in summary.outcomes], ["cp1", "w2", "w1", "w3"]
        )
        self.assertTrue(summary.succeeded)
        self.assertEqual(summary.exit_code, 0)

    def test_interactive_decline_skips_remaining(self):
        transport = FakeTransport(failures=[(W1.host, "kubeadm upgrade node")])
        confirm = MagicMock(return_value=False)
        plan = make_plan(workers=(W1, W2, W3), workers_only=True)

        summary = self.make_upgrader(transport, confirm=confirm).run(plan)

        confirm.assert_called_once()
        self.assertIn("w1", confirm.call_args[0][0])
        self.assertEqual(
            [o.status for o in summary.worker_outcomes],
            [NodeStatus.FAILED, NodeStatus.SKIPPED, NodeStatus.SKIPPED],
        )
        self.assertEqual(summary.worker_outcomes[1].steps, [])
        self.assertEqual(transport.commands_for(W2.host), ["echo 'SSH connection successful'"])
        self.assertEqual(
            summary.totals,
            {"attempted": 1, "succeeded": 0, "failed": 1, "skipped": 2},
        )

    def test_interactive_accept_continues(self):
        transport = FakeTransport(failures=[(W1.host, "kubeadm upgrade node")])
        confirm = MagicMock(return_value=True)

        summary = self.make_upgrader(transport, confirm=confirm).run(make_plan())

        self.assertEqual(summary.worker_outcomes[1].status, NodeStatus.SUCCEEDED)

    def test_no_confirm_callback_stops(self):
        transport = FakeTransport(failures=[(W1.host, "kubeadm upgrade node")])
        summary = self.make_upgrader(transport, confirm=None).run(
            make_plan(workers_only=True)
        )
        self.assertEqual(summary.worker_outcomes[1].status, NodeStatus.SKIPPED)

    def test_failure_on_last_worker_does_not_prompt(self):
        transport = FakeTransport(failures=[(W2.host, "kubeadm upgrade node")])
        confirm = MagicMock(return_value=False)
        self.make_upgrader(transport, confirm=confirm).run(
            make_plan(workers_only=True)
        )
        confirm.assert_not_called()

    def test_control_plane_plan_is_confirmed_before_apply(self):
        transport = FakeTransport()
        confirm = MagicMock(return_value=True)

        summary = self.make_upgrader(transport, confirm=confirm).run(make_plan())

        confirm.assert_called_once()
        self.assertIn("cp1", confirm.call_args[0][0])
        self.assertIn("v1.33.1", confirm.call_args[0][0])
        cp_cmds = transport.commands_for(CP.host)
        plan_index = next(i for i, c in enumerate(cp_cmds) if "kubeadm upgrade plan" in c)
        apply_index = next(
            i for i, c in enumerate(cp_cmds) if "kubeadm upgrade apply" in c
        )
        self.assertLess(plan_index, apply_index)
        self.assertEqual(summary.control_outcome.status, NodeStatus.SUCCEEDED)
        self.assertTrue(summary.succeeded)

    def test_declined_control_plane_plan_stops_the_run(self):
        transport = FakeTransport()
        confirm = MagicMock(return_value=False)

        summary = self.make_upgrader(transport, confirm=confirm).run(make_plan())

        confirm.assert_called_once()
        self.assertTrue(transport.issued("kubeadm upgrade plan"))
        self.assertFalse(transport.issued("kubeadm upgrade apply"))
        self.assertEqual(summary.control_outcome.status, NodeStatus.SKIPPED)
        self.assertIn("declined", summary.control_outcome.error_message)
        self.assertEqual(
            summary.abort_reason, "Control plane upgrade declined by operator"
        )
        self.assertTrue(
            all(o.status == NodeStatus.SKIPPED for o in summary.worker_outcomes)
        )
        self.assertFalse(transport.issued("kubectl drain"))
        self.assertIsNone(summary.verification)
        self.assertFalse(summary.has_failures)
        self.assertEqual(summary.exit_code, 1)

    def test_control_plane_plan_without_confirm_callback_stops(self):
        transport = FakeTransport()
        summary = self.make_upgrader(transport, confirm=None).run(make_plan())
        self.assertEqual(summary.control_outcome.status, NodeStatus.SKIPPED)
        self.assertFalse(transport.issued("kubeadm upgrade apply"))

    def test_auto_approve_and_dry_run_do_not_prompt(self):
        for overrides in ({"auto_approve": True}, {"dry_run": True}):
            confirm = MagicMock(return_value=False)
            summary = self.make_upgrader(FakeTransport(), confirm=confirm).run(
                make_plan(**overrides)
            )
            confirm.assert_not_called()
            self.assertEqual(summary.control_outcome.status, NodeStatus.SUCCEEDED)

    def test_workers_only_without_workers_rejected(self):
        transport = FakeTransport()
        plan = make_plan(workers=(), workers_only=True)

        with self.assertRaises(ConfigurationError):
            self.make_upgrader(transport).run(plan)

        self.assertEqual(transport.calls, [])
        self.reporter.print_report.assert_not_called()

    def test_preflight_failure_aborts_before_changes(self):
        transport = FakeTransport(unreachable=[W2.host])

        summary = self.make_upgrader(transport).run(make_plan())

        self.assertIn(W2.host, summary.abort_reason)
        self.assertEqual(summary.control_outcome.status, NodeStatus.SKIPPED)
        self.assertTrue(
            all(o.status == NodeStatus.SKIPPED for o in summary.worker_outcomes)
        )
        self.assertEqual(len(transport.calls), 3)
        self.assertFalse(transport.issued("sudo"))
        self.assertEqual(summary.exit_code, 1)

    def test_missing_repository_aborts(self):
        self.repository_client.repository_exists.return_value = False
        transport = FakeTransport()

        summary = self.make_upgrader(transport).run(make_plan())

        self.repository_client.repository_exists.assert_called_once_with("1.33")
        self.assertIn("does not exist", summary.abort_reason)
        self.assertFalse(transport.issued("apt-get"))

    def test_unreachable_repository_only_warns(self):
        self.repository_client.repository_exists.side_effect = RuntimeError("offline")
        summary = self.make_upgrader(FakeTransport()).run(make_plan())
        self.assertIsNone(summary.abort_reason)
        self.assertTrue(summary.succeeded)

    def test_skip_repo_update_skips_repository_check(self):
        self.make_upgrader(FakeTransport()).run(make_plan(skip_repo_update=True))
        self.repository_client.repository_exists.assert_not_called()

    def test_control_plane_failure_skips_workers(self):
        transport = FakeTransport(failures=[(CP.host, "kubeadm upgrade apply")])

        summary = self.make_upgrader(transport).run(make_plan(auto_approve=True))

        self.assertEqual(summary.control_outcome.status, NodeStatus.FAILED)
        self.assertIn("Control plane upgrade failed", summary.abort_reason)
        self.assertTrue(
            all(o.status == NodeStatus.SKIPPED for o in summary.worker_outcomes)
        )
        self.assertFalse(transport.issued("kubectl drain"))
        self.assertTrue(summary.has_failures)

    def test_dry_run_succeeds_without_remote_calls(self):
        transport = FakeTransport(failures=[(None, "apt-get")])

        summary = self.make_upgrader(transport).run(make_plan(dry_run=True))

        self.assertEqual(transport.calls, [])
        self.repository_client.repository_exists.assert_not_called()
        self.assertTrue(
            all(o.status == NodeStatus.SUCCEEDED for o in summary.outcomes)
        )
        self.assertEqual(len(summary.outcomes), 3)
        self.assertTrue(summary.succeeded)

    def test_workers_only_leaves_control_plane_alone(self):
        transport = FakeTransport()

        summary = self.make_upgrader(transport).run(make_plan(workers_only=True))

        self.assertEqual(summary.control_outcome.status, NodeStatus.SKIPPED)
        self.assertEqual([o.node.name for o in summary.outcomes], ["w1", "w2"])
        self.assertFalse(transport.issued("kubeadm upgrade apply"))
        self.assertTrue(transport.issued("kubectl drain w1"))
        self.assertTrue(summary.succeeded)

    def test_pauses_between_nodes(self):
        cancel_event = MagicMock(spec=threading.Event)
        cancel_event.is_set.return_value = False
        plan = make_plan(inter_node_pause=30, control_plane_settle=45)

        self.make_upgrader(FakeTransport(), cancel_event=cancel_event).run(plan)

        self.assertEqual(
            [c[0][0] for c in cancel_event.wait.call_args_list], [45, 30]
        )

    def test_no_pauses_in_dry_run(self):
        cancel_event = MagicMock(spec=threading.Event)
        cancel_event.is_set.return_value = False
        plan = make_plan(inter_node_pause=30, control_plane_settle=45, dry_run=True)

        self.make_upgrader(FakeTransport(), cancel_event=cancel_event).run(plan)

        cancel_event.wait.assert_not_called()

    def test_cancel_before_run(self):
        cancel_event = threading.Event()
        cancel_event.set()
        transport = FakeTransport()

        summary = self.make_upgrader(transport, cancel_event=cancel_event).run(
            make_plan()
        )

        self.assertEqual(summary.abort_reason, "cancelled by operator")
        self.assertFalse(transport.issued("sudo"))
        self.assertTrue(
            all(o.status == NodeStatus.SKIPPED for o in summary.outcomes)
        )

    def test_cancel_during_worker_skips_the_rest(self):
        cancel_event = threading.Event()
        transport = FakeTransport()
        original_run = transport.run

        def run(host, command, timeout):
            if host == W1.host and "kubeadm upgrade node" in command:
                cancel_event.set()
            return original_run(host, command, timeout)

        transport.run = run
        confirm = MagicMock(return_value=True)

        summary = self.make_upgrader(
            transport, cancel_event=cancel_event, confirm=confirm
        ).run(make_plan(workers_only=True))

        w1, w2 = summary.worker_outcomes
        self.assertEqual(w1.status, NodeStatus.FAILED)
        self.assertTrue(w1.step(Phase.UNCORDON).succeeded)
        self.assertEqual(w2.status, NodeStatus.SKIPPED)
        confirm.assert_not_called()
        self.assertIsNone(summary.verification)

    def test_post_run_verification(self):
        summary = self.make_upgrader(FakeTransport()).run(make_plan())
        self.assertIsNotNone(summary.verification)
        self.assertEqual(summary.verification.exit_code, 0)

        summary = self.make_upgrader(FakeTransport()).run(
            make_plan(skip_verification=True)
        )
        self.assertIsNone(summary.verification)

    def test_verification_failure_does_not_fail_run(self):
        transport = FakeTransport(failures=[(CP.host, "readyz")])
        summary = self.make_upgrader(transport).run(make_plan())
        self.assertNotEqual(summary.verification.exit_code, 0)
        self.assertTrue(summary.succeeded)

    @patch("upgrader.SSHTransport")
    def test_builds_and_closes_ssh_transport(self, mock_transport_class):
        transport = FakeTransport()
        mock_transport_class.return_value = transport
        plan = make_plan(ssh_user="admin", ssh_key_path="/tmp/id", ssh_port=2222)

        ClusterUpgrader(
            reporter=self.reporter, repository_client=self.repository_client
        ).run(plan)

        mock_transport_class.assert_called_once_with(
            username="admin", key_filename="/tmp/id", port=2222, connect_timeout=30
        )
        self.assertTrue(transport.closed)


if __name__ == "__main__":
    unittest.main()
