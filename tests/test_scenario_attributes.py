#!/usr/bin/env python3
"""Tests for scenario registration, attributes and phase order.

These tests verify that:
1. Every scenario is registered and exposes the expected attributes
2. Phase lists follow the required order
3. cluster-bootstrap selects its branch by role
"""

import dataclasses
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

import pytest
from kube_driver.config import ClusterRole, NodeConfig
from kube_driver.scenarios import get_scenario, list_scenarios

NODE_SETUP_PHASES = [
    'disable_swap', 'update_packages', 'install_base_packages', 'ensure_curl',
    'kernel_modules', 'sysctl', 'install_containerd', 'install_runc',
    'configure_containerd', 'containerd_service', 'install_crictl',
    'kubernetes_repo', 'install_kubernetes', 'lock_kubernetes', 'install_jq',
    'enable_kubelet', 'kubelet_node_ip', 'selinux_permissive', 'firewall',
]


def _phase_names(scenario_name, config):
    return [name for name, _action, _desc in get_scenario(scenario_name).get_phases(config)]


class TestRegistry:

    def test_all_scenarios_registered(self):
        assert list_scenarios() == [
            'cluster-bootstrap', 'control-plane', 'node-setup',
            'repair-network', 'shell-alias', 'worker-join',
        ]

    def test_unknown_scenario(self):
        with pytest.raises(ValueError, match='Unknown scenario'):
            get_scenario('master-node')


class TestScenarioAttributes:
    """Attributes read by the CLI and Orchestrator."""

    @pytest.mark.parametrize('name', [
        'node-setup', 'control-plane', 'worker-join', 'cluster-bootstrap', 'repair-network',
    ])
    def test_requires_root(self, name):
        assert getattr(get_scenario(name), 'requires_root', False) is True

    def test_shell_alias_does_not_require_root(self):
        assert getattr(get_scenario('shell-alias'), 'requires_root', True) is False

    @pytest.mark.parametrize('name', list_scenarios())
    def test_has_description_and_runtime(self, name):
        scenario = get_scenario(name)
        assert scenario.description
        assert scenario.expected_runtime > 0

    def test_repair_network_skips_host_probe(self):
        assert getattr(get_scenario('repair-network'), 'requires_host_profile', True) is False

    def test_control_plane_public_ip_probe(self):
        scenario = get_scenario('control-plane')
        assert scenario.probe_public_ip(NodeConfig(name='n', public_ip_access=True)) is True
        assert scenario.probe_public_ip(NodeConfig(name='n')) is False

    def test_bootstrap_worker_never_probes_public_ip(self):
        scenario = get_scenario('cluster-bootstrap')
        config = NodeConfig(name='n', role=ClusterRole.WORKER, public_ip_access=True)
        assert scenario.probe_public_ip(config) is False


class TestPhaseOrder:
    """Phase sequences."""

    def test_node_setup(self, node_config):
        assert _phase_names('node-setup', node_config) == NODE_SETUP_PHASES + ['node_summary']

    def test_swap_before_kubelet(self, node_config):
        names = _phase_names('node-setup', node_config)
        assert names.index('disable_swap') < names.index('enable_kubelet')
        assert names.index('containerd_service') < names.index('enable_kubelet')

    def test_kubernetes_install_ignores_exclude(self, node_config):
        phases = dict((n, a) for n, a, _ in get_scenario('node-setup').get_phases(node_config))
        assert '--disableexcludes=main' in phases['install_kubernetes'].extra_args

    def test_control_plane(self, node_config):
        assert _phase_names('control-plane', node_config) == [
            'pull_images', 'kubeadm_init', 'configure_kubeconfig', 'verify_cluster',
            'cleanup_calico', 'install_calico', 'wait_for_calico',
            'join_command', 'cluster_summary',
        ]

    def test_control_plane_untaint_optional(self, node_config):
        config = dataclasses.replace(node_config, allow_control_plane_pods=True)
        names = _phase_names('control-plane', config)
        assert names.index('untaint_control_plane') == names.index('wait_for_calico') + 1

    def test_worker_join(self, worker_config):
        assert _phase_names('worker-join', worker_config) == ['kubeadm_join', 'worker_summary']

    def test_bootstrap_control_plane_branch(self, node_config):
        names = _phase_names('cluster-bootstrap', node_config)
        assert names[:len(NODE_SETUP_PHASES)] == NODE_SETUP_PHASES
        assert 'kubeadm_init' in names
        assert 'kubeadm_join' not in names
        assert 'node_summary' not in names

    def test_bootstrap_worker_branch(self, worker_config):
        names = _phase_names('cluster-bootstrap', worker_config)
        assert names[len(NODE_SETUP_PHASES):] == ['kubeadm_join', 'worker_summary']

    def test_repair_network(self, node_config):
        phases = get_scenario('repair-network').get_phases(node_config)
        assert [n for n, _, _ in phases] == ['cleanup_calico', 'install_calico', 'wait_for_calico', 'network_summary']
        assert phases[0][1].settle_delay == 10

    def test_shell_alias(self, node_config):
        assert _phase_names('shell-alias', node_config) == ['shell_alias']
