"""Container runtime actions: containerd, runc, crictl."""

import logging
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import requests

from kube_driver.actions.files import download_file, write_config_file
from kube_driver.common import ActionResult, failed, run_command
from kube_driver.config import NodeConfig
from kube_driver.host_probe import HostProfile

logger = logging.getLogger(__name__)

CONTAINERD_URL = (
    'https://github.com/containerd/containerd/releases/download/'
    'v{version}/containerd-{version}-linux-{arch}.tar.gz'
)
RUNC_URL = 'https://github.com/opencontainers/runc/releases/download/v{version}/runc.{arch}'
CRICTL_URL = (
    'https://github.com/kubernetes-sigs/cri-tools/releases/download/'
    '{version}/crictl-{version}-linux-{arch}.tar.gz'
)

CONTAINERD_UNIT = """[Unit]
Description=containerd container runtime
Documentation=https://containerd.io
After=network.target local-fs.target

[Service]
ExecStartPre=-/sbin/modprobe overlay
ExecStart=/usr/local/bin/containerd
Type=notify
Delegate=yes
KillMode=process
Restart=always
RestartSec=5
LimitNPROC=infinity
LimitCORE=infinity
LimitNOFILE=infinity
TasksMax=infinity
OOMScoreAdjust=-999

[Install]
WantedBy=multi-user.target
"""

CRICTL_CONFIG = """runtime-endpoint: {socket}
image-endpoint: {socket}
timeout: 10
debug: false
"""


def installed_version(cmd: list[str]) -> Optional[str]:
    """Output of a --version style command, or None when not installed."""
    rc, out, _ = run_command(cmd, timeout=30)
    if rc != 0:
        return None
    return out.strip()


def _has_version(cmd: list[str], version: str) -> bool:
    out = installed_version(cmd)
    return bool(out) and version.lstrip('v') in out


@dataclass
class InstallContainerdAction:
    """Download the containerd release tarball and unpack it under /usr/local."""
    name: str
    prefix: Path = Path('/usr/local')
    timeout: int = 600

    def run(self, config: NodeConfig, _host: HostProfile, _context: dict) -> ActionResult:
        start = time.time()
        version = config.containerd_version
        if _has_version([str(self.prefix / 'bin' / 'containerd'), '--version'], version):
            return ActionResult(
                success=True,
                message=f"containerd {version} already installed",
                duration=time.time() - start
            )

        url = CONTAINERD_URL.format(version=version, arch=config.arch)
        logger.info(f"[{self.name}] Installing containerd {version}...")
        with tempfile.TemporaryDirectory() as workdir:
            try:
                tarball = download_file(url, Path(workdir) / url.rsplit('/', 1)[-1], timeout=self.timeout)
            except requests.exceptions.RequestException as e:
                return failed(f"Failed to download {url}: {e}", start)
            cmd = ['tar', 'Cxzf', str(self.prefix), str(tarball)]
            rc, out, err = run_command(cmd, timeout=300)
            if rc != 0:
                return failed(f"Failed to extract containerd: {err or out}", start, rc, cmd)

        return ActionResult(
            success=True,
            message=f"containerd {version} installed",
            duration=time.time() - start
        )


@dataclass
class InstallRuncAction:
    """Install the runc binary."""
    name: str
    dest: Path = Path('/usr/local/sbin/runc')
    timeout: int = 300

    def run(self, config: NodeConfig, _host: HostProfile, _context: dict) -> ActionResult:
        start = time.time()
        version = config.runc_version
        if _has_version([str(self.dest), '--version'], version):
            return ActionResult(success=True, message=f"runc {version} already installed", duration=time.time() - start)

        url = RUNC_URL.format(version=version, arch=config.arch)
        logger.info(f"[{self.name}] Installing runc {version}...")
        with tempfile.TemporaryDirectory() as workdir:
            try:
                binary = download_file(url, Path(workdir) / f'runc.{config.arch}', timeout=self.timeout)
            except requests.exceptions.RequestException as e:
                return failed(f"Failed to download {url}: {e}", start)
            cmd = ['install', '-m', '755', str(binary), str(self.dest)]
            rc, out, err = run_command(cmd, timeout=60)
            if rc != 0:
                return failed(f"Failed to install runc: {err or out}", start, rc, cmd)

        return ActionResult(success=True, message=f"runc {version} installed", duration=time.time() - start)


def render_containerd_config(default_config: str) -> str:
    """Turn on the systemd cgroup driver in containerd's default config."""
    return default_config.replace('SystemdCgroup = false', 'SystemdCgroup = true')


@dataclass
class ConfigureContainerdAction:
    """Generate /etc/containerd/config.toml with SystemdCgroup enabled."""
    name: str
    config_path: Path = Path('/etc/containerd/config.toml')
    containerd_bin: str = '/usr/local/bin/containerd'

    def run(self, _config: NodeConfig, _host: HostProfile, _context: dict) -> ActionResult:
        start = time.time()
        cmd = [self.containerd_bin, 'config', 'default']
        rc, out, err = run_command(cmd, timeout=60)
        if rc != 0:
            return failed(f"containerd config default failed: {err or out}", start, rc, cmd)

        content = render_containerd_config(out)
        if 'SystemdCgroup = true' not in content:
            logger.warning(f"[{self.name}] SystemdCgroup setting not found in default config")
        changed = write_config_file(self.config_path, content)
        return ActionResult(
            success=True,
            message=f"{self.config_path} {'written' if changed else 'unchanged'}",
            duration=time.time() - start,
            context_updates={'containerd_config_changed': changed}
        )


@dataclass
class ContainerdServiceAction:
    """Install the containerd systemd unit and start the service."""
    name: str
    unit_path: Path = Path('/etc/systemd/system/containerd.service')

    def run(self, _config: NodeConfig, _host: HostProfile, context: dict) -> ActionResult:
        start = time.time()
        unit_changed = write_config_file(self.unit_path, CONTAINERD_UNIT)

        commands = [
            ['systemctl', 'daemon-reload'],
            ['systemctl', 'enable', 'containerd', '--now'],
        ]
        if unit_changed or context.get('containerd_config_changed'):
            commands.append(['systemctl', 'restart', 'containerd.service'])
        else:
            commands.append(['systemctl', 'start', 'containerd.service'])

        for cmd in commands:
            rc, out, err = run_command(cmd, timeout=120)
            if rc != 0:
                return failed(f"{' '.join(cmd)} failed: {err or out}", start, rc, cmd)

        return ActionResult(
            success=True,
            message="Containerd runtime installed successfully",
            duration=time.time() - start
        )


@dataclass
class InstallCrictlAction:
    """Install crictl and point it at the containerd socket."""
    name: str
    bin_dir: Path = Path('/usr/local/bin')
    config_path: Path = Path('/etc/crictl.yaml')
    timeout: int = 300

    def run(self, config: NodeConfig, _host: HostProfile, _context: dict) -> ActionResult:
        start = time.time()
        version = config.crictl_version
        if not _has_version([str(self.bin_dir / 'crictl'), '--version'], version):
            url = CRICTL_URL.format(version=version, arch=config.arch)
            logger.info(f"[{self.name}] Installing crictl {version}...")
            with tempfile.TemporaryDirectory() as workdir:
                try:
                    tarball = download_file(url, Path(workdir) / url.rsplit('/', 1)[-1], timeout=self.timeout)
                except requests.exceptions.RequestException as e:
                    return failed(f"Failed to download {url}: {e}", start)
                cmd = ['tar', 'zxf', str(tarball), '-C', str(self.bin_dir)]
                rc, out, err = run_command(cmd, timeout=120)
                if rc != 0:
                    return failed(f"Failed to extract crictl: {err or out}", start, rc, cmd)

        write_config_file(self.config_path, CRICTL_CONFIG.format(socket=config.cri_socket))
        return ActionResult(
            success=True,
            message="crictl installed and configured successfully",
            duration=time.time() - start
        )
