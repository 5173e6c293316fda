"""
Scripted remote transport shared by the orchestration tests.
"""

from typing import Iterable, List, Optional, Tuple

from exceptions import ConnectivityError


class FakeTransport:
    """Records every command and answers from simple rules.

    Args:
        failures: (host or None, substring) pairs; a matching command exits 1
        not_ready: Node names whose readiness query answers 'False'
        unreachable: Hosts that raise ConnectivityError
        repository_minor: Minor version the apt sources file currently
            points at (None: an older one)
    """

    def __init__(
        self,
        failures: Iterable[Tuple[Optional[str], str]] = (),
        not_ready: Iterable[str] = (),
        unreachable: Iterable[str] = (),
        repository_minor: Optional[str] = None,
    ):
        self.failures = list(failures)
        self.not_ready = set(not_ready)
        self.unreachable = set(unreachable)
        self.repository_minor = repository_minor
        self.calls: List[Tuple[str, str]] = []
        self.closed = False

    def run(self, host: str, command: str, timeout: int):
        self.calls.append((host, command))
        if host in self.unreachable:
            raise ConnectivityError(host, "connection refused")
        for fail_host, needle in self.failures:
            if (fail_host is None or fail_host == host) and needle in command:
                return 1, "", f"{needle}: simulated failure"
        if command.startswith("grep -qs "):
            current = f"/v{self.repository_minor}/deb/"
            return (0 if self.repository_minor and current in command else 1), "", ""
        if "-o jsonpath=" in command:
            name = command.split("get node ", 1)[1].split()[0]
            return 0, "False" if name in self.not_ready else "True", ""
        return 0, "", ""

    def close(self):
        self.closed = True

    def commands_for(self, host: str) -> List[str]:
        return [c for h, c in self.calls if h == host]

    def issued(self, needle: str) -> bool:
        return any(needle in c for _, c in self.calls)
