"""Repair network scenario.

Cleans up a failed operator-based Calico install and re-applies the
pinned manifest.
"""

from kube_driver.actions import CleanupCalicoAction, InstallCalicoAction, WaitForCalicoAction
from kube_driver.config import NodeConfig
from kube_driver.reporting.summary import SummaryAction
from kube_driver.scenarios import register_scenario


@register_scenario
class RepairNetwork:
    """Reinstall Calico after a failed install."""

    name = 'repair-network'
    description = 'Remove a failed Calico install and reinstall it'
    requires_root = True
    requires_host_profile = False
    required_commands = ('kubectl',)
    expected_runtime = 120

    def get_phases(self, _config: NodeConfig) -> list[tuple[str, object, str]]:
        return [
            ('cleanup_calico', CleanupCalicoAction(name='calico-cleanup', settle_delay=10),
             'Remove tigera-operator namespace and CRDs'),
            ('install_calico', InstallCalicoAction(name='calico'), 'Install Calico network plugin'),
            ('wait_for_calico', WaitForCalicoAction(name='calico-ready'), 'Wait for Calico pods'),
            ('network_summary', SummaryAction(name='network-summary', kind='network'), 'Show Calico status'),
        ]
