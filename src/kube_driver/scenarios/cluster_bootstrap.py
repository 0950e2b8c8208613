"""Cluster bootstrap scenario.

Full single-node run: host preparation followed by the branch the
configured role selects (control plane init or worker join).
"""

from kube_driver.config import NodeConfig
from kube_driver.scenarios import register_scenario
from kube_driver.scenarios.control_plane import control_plane_phases
from kube_driver.scenarios.node_setup import node_setup_phases
from kube_driver.scenarios.worker_join import worker_phases


@register_scenario
class ClusterBootstrap:
    """Prepare the node, then initialize or join according to role."""

    name = 'cluster-bootstrap'
    description = 'Node setup plus control plane init or worker join (by role)'
    requires_root = True
    required_commands = ('ip', 'systemctl')
    expected_runtime = 720

    def probe_public_ip(self, config: NodeConfig) -> bool:
        return config.is_control_plane and config.public_ip_access

    def get_phases(self, config: NodeConfig) -> list[tuple[str, object, str]]:
        phases = node_setup_phases(include_summary=False)
        if config.is_control_plane:
            return phases + control_plane_phases(config)
        return phases + worker_phases()
