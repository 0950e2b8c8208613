"""Host preparation actions: swap, kernel, sysctl, SELinux, firewall."""

import logging
import os
import time
from dataclasses import dataclass, field
from pathlib import Path

from kube_driver.actions.files import ensure_line, remove_matching_lines, replace_exact_line, write_config_file
from kube_driver.common import ActionResult, failed, resolve_invoking_user, run_command
from kube_driver.config import NodeConfig
from kube_driver.host_probe import HostProfile

logger = logging.getLogger(__name__)

K8S_MODULES = ('overlay', 'br_netfilter')

K8S_SYSCTL = (
    "net.bridge.bridge-nf-call-iptables  = 1\n"
    "net.bridge.bridge-nf-call-ip6tables = 1\n"
    "net.ipv4.ip_forward                 = 1\n"
)


@dataclass
class DisableSwapAction:
    """Turn swap off now and remove swap entries from fstab."""
    name: str
    fstab: Path = Path('/etc/fstab')

    def run(self, _config: NodeConfig, _host: HostProfile, _context: dict) -> ActionResult:
        """Disable swap persistently."""
        start = time.time()
        logger.info(f"[{self.name}] Disabling swap...")
        cmd = ['swapoff', '-a']
        rc, out, err = run_command(cmd, timeout=120)
        if rc != 0:
            return failed(f"swapoff failed: {err or out}", start, rc, cmd)

        removed = remove_matching_lines(self.fstab, 'swap')
        message = f"Swap disabled, removed {removed} fstab entries" if removed else "Swap disabled permanently"
        return ActionResult(success=True, message=message, duration=time.time() - start)


@dataclass
class KernelModulesAction:
    """Persist and load the kernel modules containerd and kube-proxy need."""
    name: str
    modules: tuple = K8S_MODULES
    conf_path: Path = Path('/etc/modules-load.d/k8s.conf')

    def run(self, _config: NodeConfig, _host: HostProfile, _context: dict) -> ActionResult:
        """Rewrite the module list then modprobe each module."""
        start = time.time()
        # Delete-then-write so stale entries from older runs cannot survive
        self.conf_path.unlink(missing_ok=True)
        write_config_file(self.conf_path, ''.join(f"{m}\n" for m in self.modules))

        for module in self.modules:
            cmd = ['modprobe', module]
            rc, out, err = run_command(cmd, timeout=60)
            if rc != 0:
                return failed(f"modprobe {module} failed: {err or out}", start, rc, cmd)

        return ActionResult(
            success=True,
            message=f"Loaded {', '.join(self.modules)}",
            duration=time.time() - start
        )


@dataclass
class SysctlAction:
    """Persist bridge/forwarding sysctl parameters and apply them."""
    name: str
    conf_path: Path = Path('/etc/sysctl.d/k8s.conf')
    content: str = K8S_SYSCTL

    def run(self, _config: NodeConfig, _host: HostProfile, _context: dict) -> ActionResult:
        """Write sysctl params and apply without reboot."""
        start = time.time()
        changed = write_config_file(self.conf_path, self.content)
        cmd = ['sysctl', '--system']
        rc, out, err = run_command(cmd, timeout=60)
        if rc != 0:
            return failed(f"sysctl --system failed: {err or out}", start, rc, cmd)
        return ActionResult(
            success=True,
            message=f"sysctl parameters {'written and ' if changed else ''}applied",
            duration=time.time() - start
        )


@dataclass
class EnableServiceAction:
    """Enable (and optionally start) a systemd unit."""
    name: str
    unit: str
    now: bool = False

    def run(self, _config: NodeConfig, _host: HostProfile, _context: dict) -> ActionResult:
        start = time.time()
        cmd = ['systemctl', 'enable', self.unit] + (['--now'] if self.now else [])
        rc, out, err = run_command(cmd, timeout=120)
        if rc != 0:
            return failed(f"Failed to enable {self.unit}: {err or out}", start, rc, cmd)
        return ActionResult(success=True, message=f"{self.unit} enabled", duration=time.time() - start)


@dataclass
class KubeletNodeIPAction:
    """Pin kubelet to the detected private IP via KUBELET_EXTRA_ARGS."""
    name: str
    path: Path = Path('/etc/default/kubelet')

    def run(self, _config: NodeConfig, host: HostProfile, _context: dict) -> ActionResult:
        start = time.time()
        changed = write_config_file(self.path, f"KUBELET_EXTRA_ARGS=--node-ip={host.private_ip}\n")
        logger.info(f"[{self.name}] Local IP configured for kubelet: {host.private_ip}")
        return ActionResult(
            success=True,
            message=f"kubelet node IP {host.private_ip}{'' if changed else ' (unchanged)'}",
            duration=time.time() - start,
            context_updates={'node_ip': host.private_ip}
        )


@dataclass
class SelinuxPermissiveAction:
    """Switch SELinux to permissive, now and across reboots.

    Hosts without SELinux are left alone.
    """
    name: str
    config_path: Path = Path('/etc/selinux/config')

    def run(self, _config: NodeConfig, _host: HostProfile, _context: dict) -> ActionResult:
        start = time.time()
        rc, _, err = run_command(['setenforce', '0'], timeout=30)
        if rc != 0:
            logger.debug(f"setenforce 0 skipped: {err.strip()}")

        if not self.config_path.exists():
            return ActionResult(
                success=True,
                message="SELinux not configured on this host",
                duration=time.time() - start
            )

        replaced = replace_exact_line(self.config_path, 'SELINUX=enforcing', 'SELINUX=permissive')
        return ActionResult(
            success=True,
            message="SELinux set to permissive" if replaced else "SELinux already permissive",
            duration=time.time() - start
        )


@dataclass
class FirewallAction:
    """Open Kubernetes ports in firewalld when it is running."""
    name: str
    ports: tuple = field(default_factory=tuple)

    def run(self, config: NodeConfig, _host: HostProfile, _context: dict) -> ActionResult:
        start = time.time()
        rc, _, _ = run_command(['systemctl', 'is-active', '--quiet', 'firewalld'], timeout=30)
        if rc != 0:
            logger.info(f"[{self.name}] Firewalld not active, skipping firewall configuration")
            return ActionResult(
                success=True,
                message="firewalld not active - skipped",
                duration=time.time() - start
            )

        ports = self.ports or config.firewall_ports
        for port in ports:
            cmd = ['firewall-cmd', '--permanent', f'--add-port={port}']
            rc, out, err = run_command(cmd, timeout=60)
            if rc != 0:
                return failed(f"firewall-cmd --add-port={port} failed: {err or out}", start, rc, cmd)

        cmd = ['firewall-cmd', '--reload']

        rc, out, err = run_command(cmd, timeout=60)
        if rc != 0:
            return failed(f"firewall-cmd --reload failed: {err or out}", start, rc, cmd)

        return ActionResult(
            success=True,
            message=f"Firewall configured for Kubernetes ({len(ports)} ports)",
            duration=time.time() - start
        )


@dataclass
class ShellAliasAction:
    """Add `alias k=kubectl` to the invoking user's shell rc files."""
    name: str
    alias_line: str = 'alias k=kubectl'
    rc_files: tuple = ('.bashrc', '.bash_profile')

    def run(self, config: NodeConfig, _host: HostProfile, _context: dict) -> ActionResult:
        start = time.time()
        user = resolve_invoking_user(config.kubeconfig_user)
        added = []
        for name in self.rc_files:
            rc_file = user.home / name
            if ensure_line(rc_file, self.alias_line):
                os.chown(rc_file, user.uid, user.gid)
                added.append(name)
        if added:
            message = f"Added '{self.alias_line}' to {', '.join(added)}"
        else:
            message = "Alias already present"
        return ActionResult(success=True, message=message, duration=time.time() - start)
