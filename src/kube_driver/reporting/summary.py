"""Operator-facing summaries printed at the end of a successful run.

These phases only print. Listing commands that fail are shown inline and
never fail the run.
"""

import time
from dataclasses import dataclass

from kube_driver.actions.network import calico_pod_status
from kube_driver.common import ActionResult, kubectl_env, run_command
from kube_driver.config import NodeConfig
from kube_driver.host_probe import HostProfile

BANNER = "==============================================="


def _kubectl_listing(args: list[str]) -> str:
    rc, out, err = run_command(['kubectl', *args], env=kubectl_env(), timeout=60)
    if rc != 0:
        return f"(kubectl {' '.join(args)} failed: {(err or out).strip()})"
    return out.rstrip()


def _banner(title: str) -> list[str]:
    return ["", BANNER, title, BANNER, ""]


def control_plane_summary(join_command: str, nodes: str, pods: str) -> str:
    """Text shown after the control plane is up."""
    lines = _banner("Control Plane setup completed successfully!")
    lines += [
        "=== Cluster Information ===",
        nodes,
        "",
        pods,
        "",
        "=== Worker Node Join Command ===",
        "Run this command on worker nodes to join them to the cluster:",
        "",
        join_command or "(join command unavailable: run 'kubeadm token create --print-join-command')",
        "",
        "=== Next Steps ===",
        "1. Save the join command above for worker nodes",
        "2. Copy /etc/kubernetes/admin.conf to other machines for kubectl access",
        "3. Run 'kubectl get nodes' to verify cluster status",
        "4. Install additional cluster components as needed",
        "",
        "=== Useful Commands ===",
        "Check cluster status: kubectl get nodes",
        "Check all pods: kubectl get pods -A",
        "Check Calico status: kubectl get pods -n kube-system | grep calico",
        "Get cluster info: kubectl cluster-info",
        "",
    ]
    return '\n'.join(lines)


def node_setup_summary(node_ip: str) -> str:
    """Text shown after host preparation."""
    lines = _banner("Kubernetes setup completed successfully!")
    lines += [
        f"Local IP configured for kubelet: {node_ip}",
        "",
        "=== Verification Commands ===",
        "Check containerd: sudo systemctl status containerd",
        "Check kubelet: sudo systemctl status kubelet",
        "Test crictl: sudo crictl version",
        "Test kubectl: kubectl version --client",
        "Test kubeadm: kubeadm version",
        "",
        "=== Next Steps ===",
        "1. For Control Plane: kube-driver scenario run control-plane",
        "2. For Worker Nodes: set join.* in node.yaml, then kube-driver scenario run worker-join",
        "",
    ]
    return '\n'.join(lines)


def worker_summary(endpoint: str) -> str:
    """Text shown after a worker joins."""
    lines = _banner("Worker node joined successfully!")
    lines += [
        f"Control plane endpoint: {endpoint}",
        "",
        "=== Next Steps ===",
        "1. On the control plane, run 'kubectl get nodes' to confirm this node is Ready",
        "2. Label the node if workloads need it: kubectl label node <name> <key>=<value>",
        "",
    ]
    return '\n'.join(lines)


def network_summary(calico_status: str) -> str:
    """Text shown after a Calico repair."""
    lines = _banner("Calico installation fixed!")
    lines += [
        calico_status,
        "",
        "Check status with: kubectl get pods -n kube-system",
        "",
    ]
    return '\n'.join(lines)


@dataclass
class SummaryAction:
    """Print the closing summary for a scenario."""
    name: str
    kind: str  # 'node', 'control-plane', 'worker', 'network'

    def run(self, config: NodeConfig, host: HostProfile, context: dict) -> ActionResult:
        start = time.time()
        if self.kind == 'control-plane':
            text = control_plane_summary(
                context.get('join_command', ''),
                _kubectl_listing(['get', 'nodes', '-o', 'wide']),
                _kubectl_listing(['get', 'pods', '-A', '-o', 'wide']),
            )
        elif self.kind == 'worker':
            text = worker_summary(context.get('join_endpoint') or config.join.endpoint)
        elif self.kind == 'network':
            text = network_summary(calico_pod_status())
        else:
            text = node_setup_summary(context.get('node_ip') or host.private_ip)

        print(text)
        return ActionResult(success=True, message=f"{self.kind} summary printed", duration=time.time() - start)
