"""Tests for readiness.py - pre-flight checks."""

import sys
from pathlib import Path
from unittest.mock import patch, MagicMock

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

import requests

from kube_driver.readiness import (
    format_preflight_results,
    run_preflight_checks,
    scenario_endpoints,
    validate_commands_available,
    validate_join_inputs,
    validate_readiness,
    validate_root,
    validate_url_reachable,
)
from kube_driver.scenarios import get_scenario


class TestValidateRoot:

    def test_root(self):
        with patch('kube_driver.readiness.os.geteuid', return_value=0):
            assert validate_root()[0] is True

    def test_not_root(self):
        with patch('kube_driver.readiness.os.geteuid', return_value=1000):
            ok, message = validate_root()
        assert ok is False
        assert 'sudo' in message


class TestValidateCommands:

    def test_missing_commands(self):
        with patch('kube_driver.readiness.shutil.which', side_effect=lambda c: None if c == 'kubeadm' else f'/usr/bin/{c}'):
            errors = validate_commands_available(['ip', 'kubeadm'])
        assert errors == ['Required command not found: kubeadm']


class TestValidateUrlReachable:

    def test_any_http_response_is_reachable(self):
        resp = MagicMock(status_code=403)
        with patch('kube_driver.readiness.requests.head', return_value=resp):
            ok, message = validate_url_reachable('https://pkgs.k8s.io/')
        assert ok is True
        assert '403' in message

    def test_timeout(self):
        with patch('kube_driver.readiness.requests.head', side_effect=requests.exceptions.Timeout()):
            ok, message = validate_url_reachable('https://pkgs.k8s.io/', timeout=1)
        assert ok is False
        assert 'Timeout' in message

    def test_connection_error(self):
        with patch('kube_driver.readiness.requests.head', side_effect=requests.exceptions.ConnectionError('refused')):
            ok, _ = validate_url_reachable('https://pkgs.k8s.io/')
        assert ok is False


class TestScenarioEndpoints:

    def test_node_setup_endpoints(self, node_config):
        urls = scenario_endpoints(get_scenario('node-setup'), node_config)
        assert 'https://pkgs.k8s.io/core:/stable:/v1.32/rpm/' in urls
        assert any('containerd-2.2.0-linux-amd64' in u for u in urls)

    def test_repair_network_endpoints(self, node_config):
        assert scenario_endpoints(get_scenario('repair-network'), node_config) == [node_config.calico.url]

    def test_shell_alias_has_none(self, node_config):
        assert scenario_endpoints(get_scenario('shell-alias'), node_config) == []


class TestValidateJoinInputs:

    def test_worker_join_needs_inputs(self, node_config):
        errors = validate_join_inputs(node_config, get_scenario('worker-join'))
        assert errors == [
            "Worker join requires join.endpoint, join.token, join.ca_cert_hash in the node config"
        ]

    def test_worker_with_inputs_passes(self, worker_config):
        assert validate_join_inputs(worker_config, get_scenario('cluster-bootstrap')) == []

    def test_control_plane_ignores_join(self, node_config):
        assert validate_join_inputs(node_config, get_scenario('cluster-bootstrap')) == []

    def test_listed_under_configuration(self, node_config):
        with patch('kube_driver.readiness.os.geteuid', return_value=0), \
             patch('kube_driver.readiness.shutil.which', return_value='/usr/bin/x'):
            success, results = run_preflight_checks(node_config, get_scenario('worker-join'))
        assert success is False
        assert results['config']['failed']
        text = format_preflight_results('w-1', results)
        assert 'Configuration:' in text
        assert '✗ Worker join requires join.endpoint' in text


class TestValidateReadiness:

    def test_collects_errors(self, node_config):
        with patch('kube_driver.readiness.os.geteuid', return_value=1000), \
             patch('kube_driver.readiness.shutil.which', return_value=None), \
             patch('kube_driver.readiness.requests.head', side_effect=requests.exceptions.ConnectionError('x')):
            errors = validate_readiness(node_config, get_scenario('repair-network'))
        assert errors[0].startswith('Root privileges required')
        assert 'Required command not found: kubectl' in errors
        assert len(errors) == 3

    def test_shell_alias_passes_as_user(self, node_config):
        with patch('kube_driver.readiness.os.geteuid', return_value=1000):
            assert validate_readiness(node_config, get_scenario('shell-alias')) == []


class TestPreflight:

    def test_results_and_format(self, node_config):
        with patch('kube_driver.readiness.os.geteuid', return_value=0), \
             patch('kube_driver.readiness.shutil.which', return_value='/usr/bin/x'), \
             patch('kube_driver.readiness.requests.head', return_value=MagicMock(status_code=200)):
            success, results = run_preflight_checks(node_config, get_scenario('repair-network'))
        assert success is True
        text = format_preflight_results('cp-1', results)
        assert "Preflight checks for 'cp-1'" in text
        assert 'all checks passed' in text

    def test_failure_reported(self, node_config):
        with patch('kube_driver.readiness.os.geteuid', return_value=1000), \
             patch('kube_driver.readiness.shutil.which', return_value='/usr/bin/x'), \
             patch('kube_driver.readiness.requests.head', return_value=MagicMock(status_code=200)):
            success, results = run_preflight_checks(node_config)
        assert success is False
        assert '✗ Root privileges required' in format_preflight_results('cp-1', results)
