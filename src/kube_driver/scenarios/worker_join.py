"""Worker join scenario.

Joins a prepared node to an existing cluster using join.endpoint,
join.token and join.ca_cert_hash from the node config.
"""

from kube_driver.actions import KubeadmJoinAction
from kube_driver.config import NodeConfig
from kube_driver.reporting.summary import SummaryAction
from kube_driver.scenarios import register_scenario


def worker_phases() -> list[tuple[str, object, str]]:
    return [
        ('kubeadm_join', KubeadmJoinAction(name='kubeadm-join'), 'Join the cluster'),
        ('worker_summary', SummaryAction(name='worker-summary', kind='worker'), 'Show join summary'),
    ]


@register_scenario
class WorkerJoin:
    """Join this node to a cluster as a worker."""

    name = 'worker-join'
    description = 'Join an existing cluster as a worker'
    requires_root = True
    required_commands = ('kubeadm', 'ip')
    expected_runtime = 60

    def get_phases(self, _config: NodeConfig) -> list[tuple[str, object, str]]:
        return worker_phases()
