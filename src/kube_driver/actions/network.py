"""Calico CNI install actions.

Install sequence:
1. Remove leftovers of a failed operator-based install (tigera-operator
   namespace and its CRDs). Missing objects are fine.
2. Let deletion settle.
3. Fetch the manifest for the pinned Calico version.
4. Replace Calico's default pod CIDR with the configured one.
5. kubectl apply.
6. Poll calico-node pods for Ready. Running out of time is a warning:
   Calico can legitimately take longer than the bound to converge.
"""

import json
import logging
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path

import requests

from kube_driver.common import ActionResult, TimeoutWarning, failed, kubectl_env, run_command, wait_until
from kube_driver.config import NodeConfig
from kube_driver.host_probe import HostProfile

logger = logging.getLogger(__name__)

CALICO_NAMESPACE = 'kube-system'
CALICO_NODE_SELECTOR = 'k8s-app=calico-node'
OPERATOR_NAMESPACE = 'tigera-operator'
OPERATOR_CRDS = (
    'installations.operator.tigera.io',
    'tigerastatuses.operator.tigera.io',
)


def substitute_cidr(manifest: str, default_cidr: str, pod_cidr: str) -> str:
    """Literal replacement of every default_cidr occurrence with pod_cidr."""
    return manifest.replace(default_cidr, pod_cidr)


def delete_if_exists(kind: str, name: str) -> tuple[bool, str]:
    """kubectl delete that treats a missing object as success."""
    rc, out, err = run_command(
        ['kubectl', 'delete', kind, name, '--ignore-not-found=true'],
        env=kubectl_env(),
        timeout=300
    )
    if rc == 0 or 'NotFound' in err or 'not found' in err:
        return True, out.strip()
    return False, (err or out).strip()


def pods_ready(pods_json: str) -> bool:
    """True when at least one pod is listed and all have condition Ready=True."""
    try:
        items = json.loads(pods_json).get('items', [])
    except (json.JSONDecodeError, AttributeError):
        return False
    if not items:
        return False
    for pod in items:
        conditions = (pod.get('status') or {}).get('conditions') or []
        ready = any(c.get('type') == 'Ready' and c.get('status') == 'True' for c in conditions)
        if not ready:
            return False
    return True


def calico_pods_ready() -> bool:
    rc, out, _ = run_command(
        ['kubectl', 'get', 'pods', '-n', CALICO_NAMESPACE, '-l', CALICO_NODE_SELECTOR, '-o', 'json'],
        env=kubectl_env(),
        timeout=60
    )
    return rc == 0 and pods_ready(out)


def calico_pod_status() -> str:
    """Calico rows from `kubectl get pods -n kube-system`, for diagnostics."""
    rc, out, err = run_command(['kubectl', 'get', 'pods', '-n', CALICO_NAMESPACE], env=kubectl_env(), timeout=60)
    if rc != 0:
        return f"(kubectl get pods failed: {err.strip()})"
    lines = out.splitlines()
    header, rows = lines[:1], [line for line in lines[1:] if 'calico' in line]
    return '\n'.join(header + rows)


@dataclass
class CleanupCalicoAction:
    """Best-effort removal of a previous failed Calico operator install."""
    name: str
    settle_delay: int = -1  # -1: use calico.cleanup_delay from config

    def run(self, config: NodeConfig, _host: HostProfile, _context: dict) -> ActionResult:
        start = time.time()
        logger.info(f"[{self.name}] Cleaning up any previous Calico installation...")

        ok, detail = delete_if_exists('namespace', OPERATOR_NAMESPACE)
        if not ok:
            return failed(f"Failed to delete namespace {OPERATOR_NAMESPACE}: {detail}", start)

        for crd in OPERATOR_CRDS:
            ok, detail = delete_if_exists('crd', crd)
            if not ok:
                return failed(f"Failed to delete CRD {crd}: {detail}", start)

        delay = config.calico.cleanup_delay if self.settle_delay < 0 else self.settle_delay
        if delay:
            logger.info(f"[{self.name}] Waiting {delay}s for cleanup to complete...")
            time.sleep(delay)

        return ActionResult(success=True, message="Previous Calico resources removed", duration=time.time() - start)


@dataclass
class InstallCalicoAction:
    """Fetch the pinned Calico manifest, patch its CIDR, and apply it."""
    name: str
    timeout: int = 120

    def run(self, config: NodeConfig, _host: HostProfile, _context: dict) -> ActionResult:
        start = time.time()
        url = config.calico.url
        logger.info(f"[{self.name}] Downloading Calico {config.calico.version} manifest...")
        try:
            resp = requests.get(url, timeout=self.timeout)
            resp.raise_for_status()
        except requests.exceptions.RequestException as e:
            return failed(f"Failed to download {url}: {e}", start)

        manifest = resp.text
        occurrences = manifest.count(config.calico.default_cidr)
        manifest = substitute_cidr(manifest, config.calico.default_cidr, config.pod_cidr)
        logger.info(
            f"[{self.name}] Replaced {occurrences} occurrence(s) of "
            f"{config.calico.default_cidr} with {config.pod_cidr}"
        )

        with tempfile.TemporaryDirectory() as workdir:
            manifest_path = Path(workdir) / 'calico.yaml'
            manifest_path.write_text(manifest, encoding="utf-8")
            cmd = ['kubectl', 'apply', '-f', str(manifest_path)]
            rc, out, err = run_command(
                cmd,
                env=kubectl_env(),
                timeout=300
            )
        if rc != 0:
            return failed(f"kubectl apply failed: {err or out}", start, rc, cmd)

        return ActionResult(
            success=True,
            message=f"Calico {config.calico.version} applied (pod CIDR {config.pod_cidr})",
            duration=time.time() - start,
            context_updates={'calico_version': config.calico.version}
        )


@dataclass
class WaitForCalicoAction:
    """Wait for calico-node pods to become Ready; timeout is non-fatal."""
    name: str
    timeout: int = -1  # -1: use calico.wait_timeout from config
    interval: int = 5

    def run(self, config: NodeConfig, _host: HostProfile, _context: dict) -> ActionResult:
        start = time.time()
        timeout = config.calico.wait_timeout if self.timeout < 0 else self.timeout
        logger.info(f"[{self.name}] Waiting for Calico pods to be ready...")
        try:
            wait_until(calico_pods_ready, timeout=timeout, interval=self.interval, description='calico-node pods')
        except TimeoutWarning as e:
            logger.warning(f"[{self.name}] Calico pods not ready yet, checking status...")
            logger.warning(f"{e}\n{calico_pod_status()}")
            return ActionResult(
                success=True,
                message=f"Calico not ready after {timeout}s (continuing)",
                duration=time.time() - start,
                warning=True
            )

        return ActionResult(success=True, message="Calico pods ready", duration=time.time() - start)
