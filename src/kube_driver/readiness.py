"""Pre-flight readiness checks for scenarios.

Validates prerequisites before any phase runs:
- Root privileges
- Required binaries on PATH
- Reachability of the download endpoints the scenario uses

validate_join_inputs() is a config check: the CLI applies it even with
--skip-preflight.
"""

import logging
import os
import shutil
from typing import Iterable

import requests

from kube_driver.actions import (
    InstallCalicoAction,
    InstallContainerdAction,
    KubeadmJoinAction,
    KubernetesRepoAction,
)
from kube_driver.actions.packages import PKGS_K8S_IO
from kube_driver.actions.runtime import CONTAINERD_URL
from kube_driver.config import NodeConfig

logger = logging.getLogger(__name__)


def validate_root() -> tuple[bool, str]:
    """Check that the process runs as root."""
    if os.geteuid() == 0:
        return True, "Running as root"
    return False, "Root privileges required. Run with sudo or as root."


def validate_commands_available(commands: Iterable[str]) -> list[str]:
    """Return an error for every command missing from PATH."""
    errors = []
    for cmd in commands:
        if shutil.which(cmd) is None:
            errors.append(f"Required command not found: {cmd}")
    return errors


def validate_url_reachable(url: str, timeout: float = 10.0) -> tuple[bool, str]:
    """Check that an HTTP(S) endpoint answers.

    Any HTTP response counts as reachable; only connection failures and
    timeouts fail the check.

    Args:
        url: Endpoint to probe
        timeout: Request timeout in seconds

    Returns:
        (success, message) tuple
    """
    try:
        resp = requests.head(url, timeout=timeout, allow_redirects=True)
        return True, f"{url} reachable (HTTP {resp.status_code})"
    except requests.exceptions.Timeout:
        return False, f"Timeout connecting to {url}"
    except requests.exceptions.RequestException as e:
        return False, f"Cannot connect to {url}: {e}"


def validate_join_inputs(config: NodeConfig, scenario) -> list[str]:
    """Join inputs must be set before a scenario that ends in kubeadm join starts."""
    joins = any(isinstance(action, KubeadmJoinAction) for _n, action, _d in scenario.get_phases(config))
    missing = config.join.missing() if joins else []
    if not missing:
        return []
    keys = ', '.join(f"join.{name}" for name in missing)
    return [f"Worker join requires {keys} in the node config"]


def scenario_endpoints(scenario, config: NodeConfig) -> list[str]:
    """Download endpoints used by the scenario's phases."""
    urls = []
    for _name, action, _desc in scenario.get_phases(config):
        if isinstance(action, KubernetesRepoAction):
            urls.append(PKGS_K8S_IO.format(version=config.kubernetes_version))
        elif isinstance(action, InstallContainerdAction):
            urls.append(CONTAINERD_URL.format(version=config.containerd_version, arch=config.arch))
        elif isinstance(action, InstallCalicoAction):
            urls.append(config.calico.url)
    return list(dict.fromkeys(urls))


def validate_readiness(config: NodeConfig, scenario, timeout: float = 10.0) -> list[str]:
    """Run all readiness checks for a scenario.

    Args:
        config: NodeConfig instance
        scenario: Scenario instance with requirement attributes
        timeout: Connection timeout for network checks

    Returns:
        Combined list of all validation errors
    """
    errors = []

    if getattr(scenario, 'requires_root', True):
        ok, message = validate_root()
        if not ok:
            errors.append(message)

    errors.extend(validate_commands_available(getattr(scenario, 'required_commands', ())))

    for url in scenario_endpoints(scenario, config):
        ok, message = validate_url_reachable(url, timeout=timeout)
        if ok:
            logger.debug(message)
        else:
            errors.append(message)

    return errors


def run_preflight_checks(config: NodeConfig, scenario=None, timeout: float = 10.0) -> tuple[bool, dict]:
    """Run preflight checks grouped by category, for --preflight.

    Without a scenario only host-level checks run.

    Returns:
        (success, results) where results maps category to
        {'passed': [...], 'failed': [...]}
    """
    results: dict[str, dict[str, list[str]]] = {
        'config': {'passed': [], 'failed': []},
        'privileges': {'passed': [], 'failed': []},
        'commands': {'passed': [], 'failed': []},
        'network': {'passed': [], 'failed': []},
    }

    if scenario:
        join_errors = validate_join_inputs(config, scenario)
        results['config']['failed'].extend(join_errors)
        if not join_errors:
            results['config']['passed'].append(f"{config.config_file or 'defaults'} valid for {scenario.name}")

    ok, message = validate_root()
    results['privileges']['passed' if ok else 'failed'].append(message)

    commands = getattr(scenario, 'required_commands', ('ip', 'systemctl')) if scenario else ('ip', 'systemctl')
    for cmd in commands:
        if shutil.which(cmd):
            results['commands']['passed'].append(f"{cmd} found")
        else:
            results['commands']['failed'].append(f"Required command not found: {cmd}")

    urls = scenario_endpoints(scenario, config) if scenario else [config.calico.url]
    for url in urls:
        ok, message = validate_url_reachable(url, timeout=timeout)
        results['network']['passed' if ok else 'failed'].append(message)

    success = not any(category['failed'] for category in results.values())
    return success, results


def format_preflight_results(hostname: str, results: dict) -> str:
    """Format preflight check results for display."""
    lines = [f"\nPreflight checks for '{hostname}':\n"]

    category_names = {
        'config': 'Configuration',
        'privileges': 'Privileges',
        'commands': 'Commands',
        'network': 'Network',
    }

    for key, name in category_names.items():
        category = results.get(key, {'passed': [], 'failed': []})
        if category['passed'] or category['failed']:
            lines.append(f"{name}:")
            for item in category['passed']:
                lines.append(f"✓ {item}")
            for item in category['failed']:
                lines.append(f"✗ {item}")
            lines.append("")

    failed_count = sum(len(c['failed']) for c in results.values())
    if failed_count:
        lines.append(f"Preflight: {failed_count} check(s) failed")
    else:
        lines.append("Preflight: all checks passed")
    return '\n'.join(lines)
