"""kubeadm/kubectl actions: control-plane init, worker join, kubeconfig, join tokens.

The control plane is initialized at most once: when admin.conf already
exists the init phase reports success without touching the cluster.
Likewise a worker whose kubelet.conf exists is treated as joined.
"""

import logging
import os
import re
import shutil
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from kube_driver.common import (
    ActionResult,
    AddressDetectionError,
    failed,
    kubectl_env,
    resolve_invoking_user,
    run_command,
)
from kube_driver.config import InvalidConfigurationError, NodeConfig
from kube_driver.host_probe import HostProfile

logger = logging.getLogger(__name__)

ADMIN_CONF = Path('/etc/kubernetes/admin.conf')
KUBELET_CONF = Path('/etc/kubernetes/kubelet.conf')

_JOIN_RE = re.compile(
    r'kubeadm\s+join\s+(?P<endpoint>\S+)\s+'
    r'--token\s+(?P<token>\S+)\s+'
    r'--discovery-token-ca-cert-hash\s+sha256:(?P<hash>[0-9a-fA-F]+)'
)


@dataclass(frozen=True)
class JoinCommand:
    """What a worker needs to run to join the cluster."""
    endpoint: str
    token: str
    ca_cert_hash: str  # hex digest without the sha256: prefix

    def __str__(self) -> str:
        return (
            f"kubeadm join {self.endpoint} --token {self.token} "
            f"--discovery-token-ca-cert-hash sha256:{self.ca_cert_hash}"
        )


def parse_join_command(output: str) -> Optional[JoinCommand]:
    """Extract the join command from `kubeadm token create --print-join-command` output."""
    match = _JOIN_RE.search(output)
    if not match:
        return None
    return JoinCommand(
        endpoint=match.group('endpoint'),
        token=match.group('token'),
        ca_cert_hash=match.group('hash').lower(),
    )


def build_init_command(config: NodeConfig, host: HostProfile) -> list[str]:
    """kubeadm init arguments for the configured address mode.

    Raises:
        AddressDetectionError: the address for the chosen mode is missing.
    """
    if config.public_ip_access:
        address = host.public_ip
        if not address:
            raise AddressDetectionError("Could not detect public IP address")
        address_args = [f'--control-plane-endpoint={address}']
    else:
        address = host.private_ip
        if not address:
            raise AddressDetectionError("Could not detect private IP address")
        address_args = [f'--apiserver-advertise-address={address}']

    return [
        'kubeadm', 'init',
        *address_args,
        f'--apiserver-cert-extra-sans={address}',
        f'--pod-network-cidr={config.pod_cidr}',
        f'--node-name={config.name}',
        '--ignore-preflight-errors=Swap',
        f'--cri-socket={config.cri_socket}',
    ]


def build_join_command(config: NodeConfig) -> list[str]:
    """kubeadm join arguments for a worker.

    Raises:
        InvalidConfigurationError: join inputs are missing.
    """
    missing = config.join.missing()
    if missing:
        raise InvalidConfigurationError(
            f"Worker join requires join.{', join.'.join(missing)} in the node config"
        )
    ca_hash = config.join.ca_cert_hash
    if not ca_hash.startswith('sha256:'):
        ca_hash = f'sha256:{ca_hash}'
    return [
        'kubeadm', 'join', config.join.endpoint,
        '--token', config.join.token,
        '--discovery-token-ca-cert-hash', ca_hash,
        f'--node-name={config.name}',
        '--ignore-preflight-errors=Swap',
        f'--cri-socket={config.cri_socket}',
    ]


@dataclass
class PullImagesAction:
    """Pre-pull control plane images."""
    name: str
    timeout: int = 900

    def run(self, config: NodeConfig, _host: HostProfile, _context: dict) -> ActionResult:
        start = time.time()
        logger.info(f"[{self.name}] Pulling Kubernetes images...")
        cmd = ['kubeadm', 'config', 'images', 'pull', f'--cri-socket={config.cri_socket}']
        rc, out, err = run_command(cmd, timeout=self.timeout)
        if rc != 0:
            return failed(f"Image pull failed: {err or out}", start, rc, cmd)
        return ActionResult(success=True, message="Images pulled", duration=time.time() - start)


@dataclass
class KubeadmInitAction:
    """Bootstrap the control plane with kubeadm init."""
    name: str
    admin_conf: Path = ADMIN_CONF
    timeout: int = 900

    def run(self, config: NodeConfig, host: HostProfile, _context: dict) -> ActionResult:
        """Run kubeadm init unless the cluster is already initialized."""
        start = time.time()
        if self.admin_conf.exists():
            logger.info(f"[{self.name}] {self.admin_conf} exists, control plane already initialized")
            return ActionResult(
                success=True,
                message="Control plane already initialized - skipped",
                duration=time.time() - start
            )

        cmd = build_init_command(config, host)
        mode = 'public' if config.public_ip_access else 'private'
        address = host.public_ip if config.public_ip_access else host.private_ip
        logger.info(f"[{self.name}] Setting up for {mode} IP access, using {address}")

        rc, out, err = run_command(cmd, timeout=self.timeout)
        logger.debug(out)
        if rc != 0:
            return failed(f"kubeadm init failed: {err[-500:] if err else out[-500:]}", start, rc, cmd)

        return ActionResult(
            success=True,
            message=f"Control plane initialized at {address}",
            duration=time.time() - start,
            context_updates={'advertise_address': address}
        )


@dataclass
class ConfigureKubeconfigAction:
    """Copy admin.conf into the invoking user's ~/.kube/config."""
    name: str
    admin_conf: Path = ADMIN_CONF

    def run(self, config: NodeConfig, _host: HostProfile, _context: dict) -> ActionResult:
        start = time.time()
        if not self.admin_conf.exists():
            return failed(f"{self.admin_conf} not found; was kubeadm init run?", start)

        user = resolve_invoking_user(config.kubeconfig_user)
        kube_dir = user.home / '.kube'
        dest = kube_dir / 'config'
        logger.info(f"[{self.name}] Configuring kubectl access for {user.name}...")

        kube_dir.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(self.admin_conf, dest)
        os.chmod(dest, 0o600)
        os.chown(kube_dir, user.uid, user.gid)
        os.chown(dest, user.uid, user.gid)

        return ActionResult(
            success=True,
            message=f"Kubeconfig written to {dest}",
            duration=time.time() - start,
            context_updates={'kubeconfig': str(dest)}
        )


@dataclass
class VerifyClusterAction:
    """Check the API server answers with kubectl cluster-info."""
    name: str
    timeout: int = 60

    def run(self, _config: NodeConfig, _host: HostProfile, _context: dict) -> ActionResult:
        start = time.time()
        cmd = ['kubectl', 'cluster-info']
        rc, out, err = run_command(cmd, env=kubectl_env(), timeout=self.timeout)
        if rc != 0:
            return failed(f"kubectl cluster-info failed: {err or out}", start, rc, cmd)
        first_line = out.strip().splitlines()[0] if out.strip() else 'cluster reachable'
        return ActionResult(success=True, message=first_line, duration=time.time() - start)


@dataclass
class UntaintControlPlaneAction:
    """Allow regular pods on the control plane node."""
    name: str

    def run(self, _config: NodeConfig, _host: HostProfile, _context: dict) -> ActionResult:
        start = time.time()
        cmd = ['kubectl', 'taint', 'nodes', '--all', 'node-role.kubernetes.io/control-plane-']
        rc, out, err = run_command(
            cmd,
            env=kubectl_env(),
            timeout=60
        )
        if rc != 0 and 'not found' not in (err + out):
            return failed(f"Failed to remove control-plane taint: {err or out}", start, rc, cmd)
        return ActionResult(
            success=True,
            message="Control plane schedulable for workloads",
            duration=time.time() - start
        )


@dataclass
class JoinCommandAction:
    """Create a time-bounded bootstrap token and capture the worker join command."""
    name: str

    def run(self, config: NodeConfig, _host: HostProfile, _context: dict) -> ActionResult:
        start = time.time()
        cmd = ['kubeadm', 'token', 'create', '--print-join-command', '--ttl', config.token_ttl]
        rc, out, err = run_command(
            cmd,
            env=kubectl_env(),
            timeout=60
        )
        if rc != 0:
            return failed(f"kubeadm token create failed: {err or out}", start, rc, cmd)

        join = parse_join_command(out)
        if join is None:
            return failed(f"Unexpected join command output: {out.strip()[:200]}", start)

        return ActionResult(
            success=True,
            message=f"Join token valid for {config.token_ttl}",
            duration=time.time() - start,
            context_updates={'join_command': str(join), 'join_endpoint': join.endpoint}
        )


@dataclass
class KubeadmJoinAction:
    """Join this node to an existing cluster as a worker."""
    name: str
    kubelet_conf: Path = KUBELET_CONF
    timeout: int = 600

    def run(self, config: NodeConfig, _host: HostProfile, _context: dict) -> ActionResult:
        start = time.time()
        if self.kubelet_conf.exists():
            logger.info(f"[{self.name}] {self.kubelet_conf} exists, node already joined")
            return ActionResult(
                success=True,
                message="Node already joined - skipped",
                duration=time.time() - start
            )

        cmd = build_join_command(config)
        logger.info(f"[{self.name}] Joining cluster at {config.join.endpoint}...")
        rc, out, err = run_command(cmd, timeout=self.timeout)
        logger.debug(out)
        if rc != 0:
            # token and CA hash stay out of the report
            return failed(
                f"kubeadm join failed: {err[-500:] if err else out[-500:]}",
                start, rc, ['kubeadm', 'join', config.join.endpoint]
            )

        return ActionResult(
            success=True,
            message=f"Joined cluster at {config.join.endpoint}",
            duration=time.time() - start,
            context_updates={'join_endpoint': config.join.endpoint}
        )
