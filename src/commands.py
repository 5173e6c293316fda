"""
Builders for the remote commands issued during an upgrade.

Every builder is a pure function from typed parameters to a RemoteCommand.
Node names and versions are quoted here; nothing else in the orchestrator
concatenates shell strings.
"""

import shlex
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

K8S_SOURCES_FILE = "/etc/apt/sources.list.d/kubernetes.list"
K8S_KEYRING = "/etc/apt/keyrings/kubernetes-apt-keyring.gpg"
K8S_REPO_BASE = "https://pkgs.k8s.io/core:/stable:/"


@dataclass(frozen=True)
class RemoteCommand:
    """A command to run on a host."""

    command: str
    description: str
    elevated: bool = True


def _shell(script: str) -> str:
    # sudo only covers the first word, so compound scripts run under one sh
    return f"sh -c {shlex.quote(script)}"


def repository_url(minor_version: str) -> str:
    return f"{K8S_REPO_BASE}v{minor_version}/deb/"


def repository_line(minor_version: str) -> str:
    return f"deb [signed-by={K8S_KEYRING}] {repository_url(minor_version)} /"


def backup_path(path: str, timestamp: Optional[datetime] = None) -> str:
    """Backup location for a repository file: ``<path>.backup.<YYYYmmdd_HHMMSS>``."""
    ts = (timestamp or datetime.now()).strftime("%Y%m%d_%H%M%S")
    return f"{path}.backup.{ts}"


# Connectivity


def connectivity_check() -> RemoteCommand:
    return RemoteCommand("echo 'SSH connection successful'", "SSH connectivity check", False)


# Control plane


def drain(node_name: str, timeout_s: int) -> RemoteCommand:
    return RemoteCommand(
        f"kubectl drain {shlex.quote(node_name)} --ignore-daemonsets "
        f"--delete-emptydir-data --force --timeout={int(timeout_s)}s",
        f"Draining node {node_name}",
        elevated=False,
    )


def uncordon(node_name: str) -> RemoteCommand:
    return RemoteCommand(
        f"kubectl uncordon {shlex.quote(node_name)}",
        f"Uncordoning node {node_name}",
        elevated=False,
    )


def node_ready_status(node_name: str) -> RemoteCommand:
    jsonpath = "{.status.conditions[?(@.type==\"Ready\")].status}"
    return RemoteCommand(
        f"kubectl get node {shlex.quote(node_name)} -o jsonpath={shlex.quote(jsonpath)}",
        f"Checking readiness of node {node_name}",
        elevated=False,
    )


def node_status(node_name: str) -> RemoteCommand:
    return RemoteCommand(
        f"kubectl get node {shlex.quote(node_name)} -o wide",
        f"Checking status of node {node_name}",
        elevated=False,
    )


def cluster_nodes() -> RemoteCommand:
    return RemoteCommand(
        "kubectl get nodes -o wide", "Getting cluster nodes status", elevated=False
    )


# Packages


def backup_repository_file(
    path: str = K8S_SOURCES_FILE, timestamp: Optional[datetime] = None
) -> RemoteCommand:
    src = shlex.quote(path)
    dst = shlex.quote(backup_path(path, timestamp))
    return RemoteCommand(
        _shell(f"if [ -f {src} ]; then cp {src} {dst}; fi"),
        "Backing up current Kubernetes sources file",
    )


def write_repository_file(
    minor_version: str, path: str = K8S_SOURCES_FILE
) -> RemoteCommand:
    line = shlex.quote(repository_line(minor_version))
    return RemoteCommand(
        _shell(f"echo {line} > {shlex.quote(path)}"),
        f"Pointing Kubernetes repository at v{minor_version}",
    )


def repository_configured(
    minor_version: str, path: str = K8S_SOURCES_FILE
) -> RemoteCommand:
    """Succeeds only if the sources file already points at ``minor_version``."""
    return RemoteCommand(
        f"grep -qs {shlex.quote(f'/v{minor_version}/deb/')} {shlex.quote(path)}",
        f"Checking whether the Kubernetes repository is at v{minor_version}",
        elevated=False,
    )


def keyring_present(path: str = K8S_KEYRING) -> RemoteCommand:
    return RemoteCommand(
        f"test -f {shlex.quote(path)}", "Verifying Kubernetes repository keyring", False
    )


def apt_update() -> RemoteCommand:
    return RemoteCommand("apt-get update", "Updating package list")


def unhold(packages: Iterable[str]) -> RemoteCommand:
    names = " ".join(shlex.quote(p) for p in packages)
    return RemoteCommand(f"apt-mark unhold {names}", f"Unholding {names}")


def hold(packages: Iterable[str]) -> RemoteCommand:
    names = " ".join(shlex.quote(p) for p in packages)
    return RemoteCommand(f"apt-mark hold {names}", f"Holding {names}")


def install_pinned(packages: Iterable[str], version: str) -> RemoteCommand:
    pins = " ".join(shlex.quote(f"{p}={version}") for p in packages)
    return RemoteCommand(
        f"env DEBIAN_FRONTEND=noninteractive apt-get install -y "
        f"--allow-change-held-packages {pins}",
        f"Installing {pins}",
    )


def kubeadm_upgrade_node() -> RemoteCommand:
    return RemoteCommand("kubeadm upgrade node", "Upgrading node configuration")


def kubeadm_upgrade_plan() -> RemoteCommand:
    return RemoteCommand("kubeadm upgrade plan", "Checking upgrade plan")


def kubeadm_upgrade_apply(kubernetes_version: str) -> RemoteCommand:
    return RemoteCommand(
        f"kubeadm upgrade apply {shlex.quote('v' + kubernetes_version)} --yes",
        f"Applying cluster upgrade to v{kubernetes_version}",
    )


def daemon_reload() -> RemoteCommand:
    return RemoteCommand("systemctl daemon-reload", "Reloading systemd daemon")


def restart_kubelet() -> RemoteCommand:
    return RemoteCommand("systemctl restart kubelet", "Restarting kubelet service")


# Diagnostics


def kubelet_version() -> RemoteCommand:
    return RemoteCommand("kubelet --version", "Checking kubelet version", False)


def kubectl_client_version() -> RemoteCommand:
    return RemoteCommand(
        _shell("kubectl version --client --short 2>/dev/null || kubectl version --client"),
        "Checking kubectl version",
        elevated=False,
    )


def kubeadm_version() -> RemoteCommand:
    return RemoteCommand("kubeadm version -o short", "Checking kubeadm version", False)


def cluster_info() -> RemoteCommand:
    return RemoteCommand(
        "kubectl cluster-info --request-timeout=10s",
        "Testing API server connectivity",
        elevated=False,
    )


def all_nodes_ready() -> RemoteCommand:
    return RemoteCommand(
        _shell("test \"$(kubectl get nodes --no-headers | awk '$2 != \"Ready\"' | wc -l)\" -eq 0"),
        "Checking all nodes are ready",
        elevated=False,
    )


def system_pods_running() -> RemoteCommand:
    return RemoteCommand(
        _shell(
            "test \"$(kubectl get pods -n kube-system --no-headers "
            "| grep -v -e Running -e Completed | wc -l)\" -eq 0"
        ),
        "Checking all system pods are running",
        elevated=False,
    )


def problem_pods() -> RemoteCommand:
    return RemoteCommand(
        "kubectl get pods --all-namespaces "
        "--field-selector=status.phase!=Running,status.phase!=Succeeded",
        "Checking for non-running pods",
        elevated=False,
    )


def api_readyz() -> RemoteCommand:
    return RemoteCommand(
        _shell("kubectl get --raw='/readyz?verbose' | grep -q 'readyz check passed'"),
        "Checking cluster readiness",
        elevated=False,
    )


def api_livez() -> RemoteCommand:
    return RemoteCommand(
        _shell("kubectl get --raw='/livez?verbose' | grep -q 'livez check passed'"),
        "Checking cluster liveness",
        elevated=False,
    )


def component_statuses_healthy() -> RemoteCommand:
    return RemoteCommand(
        _shell(
            "test \"$(kubectl get componentstatuses | grep -v Healthy "
            "| grep -v NAME | wc -l)\" -eq 0"
        ),
        "Checking component health (legacy)",
        elevated=False,
    )


def component_statuses() -> RemoteCommand:
    return RemoteCommand(
        "kubectl get componentstatuses", "Component status details", elevated=False
    )


def system_pods_wide() -> RemoteCommand:
    return RemoteCommand(
        "kubectl get pods -n kube-system -o wide",
        "System pods detailed status",
        elevated=False,
    )


def node_conditions() -> RemoteCommand:
    return RemoteCommand(
        _shell("kubectl describe nodes | grep -A 10 'Conditions:'"),
        "Node conditions",
        elevated=False,
    )


def recent_events(count: int = 10) -> RemoteCommand:
    return RemoteCommand(
        _shell(
            "kubectl get events --sort-by='.lastTimestamp' --all-namespaces "
            f"| tail -{int(count)}"
        ),
        "Recent cluster events",
        elevated=False,
    )


# Infrastructure


def storage_classes() -> RemoteCommand:
    return RemoteCommand("kubectl get storageclass", "Storage classes", False)


def persistent_volumes() -> RemoteCommand:
    return RemoteCommand("kubectl get pv", "Persistent volumes", False)


def cni_pods() -> RemoteCommand:
    return RemoteCommand(
        _shell(
            "kubectl get pods -n kube-system "
            "| grep -E '(calico|flannel|weave|cilium|antrea)'"
        ),
        "CNI pods",
        elevated=False,
    )


def dns_pods() -> RemoteCommand:
    return RemoteCommand(
        _shell("kubectl get pods -n kube-system | grep -E '(coredns|kube-dns)'"),
        "DNS pods",
        elevated=False,
    )


def ingress_controllers() -> RemoteCommand:
    return RemoteCommand(
        _shell(
            "kubectl get pods --all-namespaces "
            "| grep -E '(ingress|nginx|traefik|istio)'"
        ),
        "Ingress controllers",
        elevated=False,
    )
