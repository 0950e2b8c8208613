"""Package manager actions (dnf/yum) and the Kubernetes package repo."""

import logging
import shutil
import time
from dataclasses import dataclass, field
from pathlib import Path

import requests

from kube_driver.actions.files import ensure_line, write_config_file
from kube_driver.common import ActionResult, failed, run_command
from kube_driver.config import NodeConfig
from kube_driver.host_probe import HostProfile

logger = logging.getLogger(__name__)

KUBERNETES_PACKAGES = ('kubelet', 'kubectl', 'kubeadm')
PKGS_K8S_IO = 'https://pkgs.k8s.io/core:/stable:/{version}/rpm/'

KUBERNETES_REPO = """[kubernetes]
name=Kubernetes
baseurl={baseurl}
enabled=1
gpgcheck=1
gpgkey={baseurl}repodata/repomd.xml.key
"""


@dataclass
class PackageUpdateAction:
    """Update all installed packages."""
    name: str
    timeout: int = 1800

    def run(self, _config: NodeConfig, host: HostProfile, _context: dict) -> ActionResult:
        start = time.time()
        logger.info(f"[{self.name}] Updating system packages with {host.package_manager}...")
        cmd = [host.package_manager, 'update', '-y']
        rc, out, err = run_command(cmd, timeout=self.timeout)
        if rc != 0:
            return failed(f"{host.package_manager} update failed: {err or out}", start, rc, cmd)
        return ActionResult(success=True, message="System packages updated", duration=time.time() - start)


@dataclass
class PackageInstallAction:
    """Install packages with the detected package manager."""
    name: str
    packages: tuple = field(default_factory=tuple)
    extra_args: tuple = field(default_factory=tuple)
    timeout: int = 1200

    def run(self, _config: NodeConfig, host: HostProfile, _context: dict) -> ActionResult:
        start = time.time()
        logger.info(f"[{self.name}] Installing {', '.join(self.packages)}...")
        cmd = [host.package_manager, 'install', '-y', *self.extra_args, *self.packages]
        rc, out, err = run_command(cmd, timeout=self.timeout)
        if rc != 0:
            return failed(f"Failed to install {' '.join(self.packages)}: {err or out}", start, rc, cmd)
        return ActionResult(
            success=True,
            message=f"Installed {', '.join(self.packages)}",
            duration=time.time() - start
        )


@dataclass
class EnsureCurlAction:
    """Install full curl when missing, replacing curl-minimal if it conflicts."""
    name: str

    def run(self, _config: NodeConfig, host: HostProfile, _context: dict) -> ActionResult:
        start = time.time()
        if shutil.which('curl'):
            return ActionResult(success=True, message="curl already installed", duration=time.time() - start)

        logger.info(f"[{self.name}] curl not found, installing...")
        rc, _, err = run_command([host.package_manager, 'remove', '-y', 'curl-minimal'], timeout=300)
        if rc != 0:
            logger.debug(f"curl-minimal not removed: {err.strip()}")

        cmd = [host.package_manager, 'install', '-y', 'curl']

        rc, out, err = run_command(cmd, timeout=600)
        if rc != 0:
            return failed(f"Failed to install curl: {err or out}", start, rc, cmd)
        return ActionResult(success=True, message="curl installed", duration=time.time() - start)


@dataclass
class KubernetesRepoAction:
    """Configure the pkgs.k8s.io rpm repository and import its signing key."""
    name: str
    repo_path: Path = Path('/etc/yum.repos.d/kubernetes.repo')
    key_path: Path = Path('/etc/pki/rpm-gpg/RPM-GPG-KEY-kubernetes')
    timeout: int = 60

    def run(self, config: NodeConfig, host: HostProfile, _context: dict) -> ActionResult:
        """Write repo file, dearmor the key, refresh package cache."""
        start = time.time()
        baseurl = PKGS_K8S_IO.format(version=config.kubernetes_version)

        logger.info(f"[{self.name}] Setting up Kubernetes {config.kubernetes_version} repository...")
        write_config_file(self.repo_path, KUBERNETES_REPO.format(baseurl=baseurl))

        key_url = f'{baseurl}repodata/repomd.xml.key'
        logger.info(f"[{self.name}] Importing Kubernetes GPG key...")
        try:
            resp = requests.get(key_url, timeout=self.timeout)
            resp.raise_for_status()
        except requests.exceptions.RequestException as e:
            return failed(f"Failed to fetch {key_url}: {e}", start)

        self.key_path.parent.mkdir(parents=True, exist_ok=True)
        cmd = ['gpg', '--batch', '--yes', '--dearmor', '-o', str(self.key_path)]
        rc, out, err = run_command(
            cmd,
            input_text=resp.text,
            timeout=60
        )
        if rc != 0:
            return failed(f"gpg --dearmor failed: {err or out}", start, rc, cmd)

        cmd = [host.package_manager, 'makecache']

        rc, out, err = run_command(cmd, timeout=600)
        if rc != 0:
            return failed(f"{host.package_manager} makecache failed: {err or out}", start, rc, cmd)

        return ActionResult(
            success=True,
            message=f"Kubernetes repository configured ({baseurl})",
            duration=time.time() - start
        )


@dataclass
class VersionLockAction:
    """Stop routine updates from moving kubelet/kubectl/kubeadm.

    Uses the versionlock plugin when the package manager offers it,
    otherwise an exclude= line in yum.conf.
    """
    name: str
    packages: tuple = KUBERNETES_PACKAGES
    yum_conf: Path = Path('/etc/yum.conf')

    def run(self, _config: NodeConfig, host: HostProfile, _context: dict) -> ActionResult:
        start = time.time()
        pm = host.package_manager
        logger.info(f"[{self.name}] Locking Kubernetes package versions...")

        _, help_out, _ = run_command([pm, '--help'], timeout=60)
        if 'versionlock' in help_out:
            for plugin in ('python3-dnf-plugin-versionlock', 'yum-plugin-versionlock'):
                rc, _, _ = run_command([pm, 'install', '-y', plugin], timeout=600)
                if rc == 0:
                    break
            rc, _, err = run_command([pm, 'versionlock', *self.packages], timeout=120)
            if rc != 0:
                logger.warning(f"versionlock failed, using exclude method: {err.strip()}")

        rc, out, _ = run_command([pm, 'versionlock', 'list'], timeout=120)
        if rc == 0 and self.packages[0] in out:
            return ActionResult(
                success=True,
                message=f"Locked with {pm} versionlock",
                duration=time.time() - start
            )

        added = ensure_line(self.yum_conf, f"exclude={' '.join(self.packages)}")
        logger.info(f"[{self.name}] Using exclude method for package locking")
        return ActionResult(
            success=True,
            message=f"Locked with exclude= in {self.yum_conf}{'' if added else ' (already present)'}",
            duration=time.time() - start
        )
