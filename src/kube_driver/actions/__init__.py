"""Reusable provisioning actions."""

from kube_driver.actions.host import (
    DisableSwapAction,
    KernelModulesAction,
    SysctlAction,
    EnableServiceAction,
    KubeletNodeIPAction,
    SelinuxPermissiveAction,
    FirewallAction,
    ShellAliasAction,
)
from kube_driver.actions.packages import (
    PackageUpdateAction,
    PackageInstallAction,
    EnsureCurlAction,
    KubernetesRepoAction,
    VersionLockAction,
)
from kube_driver.actions.runtime import (
    InstallContainerdAction,
    InstallRuncAction,
    ConfigureContainerdAction,
    ContainerdServiceAction,
    InstallCrictlAction,
)
from kube_driver.actions.kubeadm import (
    PullImagesAction,
    KubeadmInitAction,
    ConfigureKubeconfigAction,
    VerifyClusterAction,
    UntaintControlPlaneAction,
    JoinCommandAction,
    KubeadmJoinAction,
)
from kube_driver.actions.network import CleanupCalicoAction, InstallCalicoAction, WaitForCalicoAction

__all__ = [
    'DisableSwapAction',
    'KernelModulesAction',
    'SysctlAction',
    'EnableServiceAction',
    'KubeletNodeIPAction',
    'SelinuxPermissiveAction',
    'FirewallAction',
    'ShellAliasAction',
    'PackageUpdateAction',
    'PackageInstallAction',
    'EnsureCurlAction',
    'KubernetesRepoAction',
    'VersionLockAction',
    'InstallContainerdAction',
    'InstallRuncAction',
    'ConfigureContainerdAction',
    'ContainerdServiceAction',
    'InstallCrictlAction',
    'PullImagesAction',
    'KubeadmInitAction',
    'ConfigureKubeconfigAction',
    'VerifyClusterAction',
    'UntaintControlPlaneAction',
    'JoinCommandAction',
    'KubeadmJoinAction',
    'CleanupCalicoAction',
    'InstallCalicoAction',
    'WaitForCalicoAction',
]
