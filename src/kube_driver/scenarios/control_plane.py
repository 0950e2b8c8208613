"""Control plane scenario.

Initializes the control plane with kubeadm, hands kubectl access to the
invoking user, installs Calico, and prints the worker join command.

The advertise address is the detected private IP unless
public_ip_access is true, in which case the public IP is detected
before any phase runs. If detection fails the run stops with exit code 1
and kubeadm init is never invoked.
"""

from kube_driver.actions import (
    CleanupCalicoAction,
    ConfigureKubeconfigAction,
    InstallCalicoAction,
    JoinCommandAction,
    KubeadmInitAction,
    PullImagesAction,
    UntaintControlPlaneAction,
    VerifyClusterAction,
    WaitForCalicoAction,
)
from kube_driver.config import NodeConfig
from kube_driver.reporting.summary import SummaryAction
from kube_driver.scenarios import register_scenario


def control_plane_phases(config: NodeConfig) -> list[tuple[str, object, str]]:
    """Control plane init and CNI install phases."""
    phases = [
        ('pull_images', PullImagesAction(name='pull-images'), 'Pull Kubernetes images'),
        ('kubeadm_init', KubeadmInitAction(name='kubeadm-init'), 'Initialize control plane'),
        ('configure_kubeconfig', ConfigureKubeconfigAction(name='kubeconfig'), 'Configure kubectl access'),
        ('verify_cluster', VerifyClusterAction(name='cluster-info'), 'Verify kubectl configuration'),
        ('cleanup_calico', CleanupCalicoAction(name='calico-cleanup'), 'Remove previous Calico install'),
        ('install_calico', InstallCalicoAction(name='calico'), 'Install Calico network plugin'),
        ('wait_for_calico', WaitForCalicoAction(name='calico-ready'), 'Wait for Calico pods'),
    ]
    if config.allow_control_plane_pods:
        phases.append((
            'untaint_control_plane',
            UntaintControlPlaneAction(name='untaint'),
            'Allow pods on the control plane',
        ))
    phases.extend([
        ('join_command', JoinCommandAction(name='join-command'), 'Generate worker join command'),
        ('cluster_summary', SummaryAction(name='cluster-summary', kind='control-plane'), 'Show cluster status'),
    ])
    return phases


@register_scenario
class ControlPlane:
    """Initialize a control plane on an already prepared node."""

    name = 'control-plane'
    description = 'Initialize control plane and install Calico'
    requires_root = True
    required_commands = ('kubeadm', 'kubectl', 'ip')
    expected_runtime = 420

    def probe_public_ip(self, config: NodeConfig) -> bool:
        return config.public_ip_access

    def get_phases(self, config: NodeConfig) -> list[tuple[str, object, str]]:
        return control_plane_phases(config)
