"""Node setup scenario.

Prepares an Amazon Linux 2 / AL2023 host to run Kubernetes: swap off,
kernel modules and sysctl, containerd + runc + crictl, kubelet/kubeadm/
kubectl from pkgs.k8s.io, SELinux permissive, firewalld ports.

Order matters: swap must be off and the runtime installed before kubelet
is enabled.
"""

from kube_driver.actions import (
    ConfigureContainerdAction,
    ContainerdServiceAction,
    DisableSwapAction,
    EnableServiceAction,
    EnsureCurlAction,
    FirewallAction,
    InstallContainerdAction,
    InstallCrictlAction,
    InstallRuncAction,
    KernelModulesAction,
    KubeletNodeIPAction,
    KubernetesRepoAction,
    PackageInstallAction,
    PackageUpdateAction,
    SelinuxPermissiveAction,
    SysctlAction,
    VersionLockAction,
)
from kube_driver.actions.packages import KUBERNETES_PACKAGES
from kube_driver.config import NodeConfig
from kube_driver.reporting.summary import SummaryAction
from kube_driver.scenarios import register_scenario

BASE_PACKAGES = ('ca-certificates', 'gnupg', 'wget', 'tar', 'gzip')


def node_setup_phases(include_summary: bool = True) -> list[tuple[str, object, str]]:
    """Host preparation phases shared by node-setup and cluster-bootstrap."""
    phases = [
        ('disable_swap', DisableSwapAction(name='disable-swap'), 'Disable swap'),
        ('update_packages', PackageUpdateAction(name='update-packages'), 'Update system packages'),
        ('install_base_packages',
         PackageInstallAction(name='base-packages', packages=BASE_PACKAGES),
         'Install essential packages'),
        ('ensure_curl', EnsureCurlAction(name='ensure-curl'), 'Install curl if missing'),
        ('kernel_modules', KernelModulesAction(name='kernel-modules'), 'Configure kernel modules'),
        ('sysctl', SysctlAction(name='sysctl'), 'Configure sysctl parameters'),
        ('install_containerd', InstallContainerdAction(name='containerd'), 'Install containerd runtime'),
        ('install_runc', InstallRuncAction(name='runc'), 'Install runc'),
        ('configure_containerd', ConfigureContainerdAction(name='containerd-config'), 'Configure containerd'),
        ('containerd_service', ContainerdServiceAction(name='containerd-service'), 'Start containerd service'),
        ('install_crictl', InstallCrictlAction(name='crictl'), 'Install crictl'),
        ('kubernetes_repo', KubernetesRepoAction(name='kubernetes-repo'), 'Set up Kubernetes repository'),
        # --disableexcludes: lock_kubernetes may have added exclude= on a previous run
        ('install_kubernetes',
         PackageInstallAction(
             name='kubernetes-packages',
             packages=KUBERNETES_PACKAGES,
             extra_args=('--disableexcludes=main',),
         ),
         'Install kubelet, kubectl, kubeadm'),
        ('lock_kubernetes', VersionLockAction(name='versionlock'), 'Lock Kubernetes package versions'),
        ('install_jq', PackageInstallAction(name='jq', packages=('jq',)), 'Install jq'),
        ('enable_kubelet', EnableServiceAction(name='kubelet', unit='kubelet'), 'Enable kubelet service'),
        ('kubelet_node_ip', KubeletNodeIPAction(name='kubelet-node-ip'), 'Configure kubelet node IP'),
        ('selinux_permissive', SelinuxPermissiveAction(name='selinux'), 'Configure SELinux'),
        ('firewall', FirewallAction(name='firewall'), 'Configure firewalld'),
    ]
    if include_summary:
        phases.append(('node_summary', SummaryAction(name='node-summary', kind='node'), 'Show setup summary'))
    return phases


@register_scenario
class NodeSetup:
    """Prepare the host with container runtime and Kubernetes packages."""

    name = 'node-setup'
    description = 'Install container runtime and Kubernetes packages'
    requires_root = True
    required_commands = ('ip', 'systemctl')
    expected_runtime = 300

    def get_phases(self, _config: NodeConfig) -> list[tuple[str, object, str]]:
        return node_setup_phases()
