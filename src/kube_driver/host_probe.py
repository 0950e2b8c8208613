"""Host environment detection.

Builds the HostProfile once per run: package manager, primary interface,
private IPv4 and (when public access is requested) public IPv4.

Every lookup is an ordered list of providers; the first one that yields a
value wins. When every provider comes back empty a DetectionError is
raised. There is no silent fallback to loopback or to the private address.
"""

import ipaddress
import json
import logging
import shutil
import socket
from dataclasses import dataclass
from typing import Optional, Sequence

import requests

from kube_driver.common import DetectionError, first_result, run_command

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HostProfile:
    """Facts about the host, detected once at process start."""
    hostname: str
    package_manager: str
    interface: str
    private_ip: str
    public_ip: Optional[str] = None


def detect_package_manager() -> str:
    """Return 'dnf' when available, otherwise 'yum'."""
    if shutil.which('dnf'):
        logger.debug("Using DNF package manager")
        return 'dnf'
    logger.debug("Using YUM package manager")
    return 'yum'


def _is_ipv4(value: str) -> bool:
    try:
        ipaddress.IPv4Address(value)
    except ValueError:
        return False
    return True


def interface_ipv4(name: str) -> Optional[str]:
    """First IPv4 address assigned to an interface, or None."""
    rc, out, _ = run_command(['ip', '-j', 'addr', 'show', 'dev', name], timeout=10)
    if rc != 0 or not out.strip():
        return None
    try:
        links = json.loads(out)
    except json.JSONDecodeError:
        logger.debug(f"Unparseable 'ip -j addr' output for {name}")
        return None
    for link in links:
        for addr in link.get('addr_info', []):
            if addr.get('family') == 'inet' and addr.get('local'):
                ip: str = addr['local']
                return ip
    return None


def default_route_interface() -> Optional[str]:
    """Output interface of the default route, or None."""
    rc, out, _ = run_command(['ip', 'route', 'show', 'default'], timeout=10)
    if rc != 0:
        return None
    for line in out.splitlines():
        fields = line.split()
        if fields and fields[0] == 'default' and 'dev' in fields:
            idx = fields.index('dev')
            if idx + 1 < len(fields):
                return fields[idx + 1]
    return None


def detect_primary_interface(candidates: Sequence[str]) -> str:
    """Return the first candidate interface with an IPv4 address.

    Falls back to the default-route interface when no candidate has one.
    """
    for iface in candidates:
        if interface_ipv4(iface):
            logger.debug(f"Interface {iface} has an IPv4 address")
            return iface
    iface = default_route_interface()
    if iface:
        logger.debug(f"No candidate interface matched, using default route via {iface}")
        return iface
    raise DetectionError(
        f"Could not detect primary network interface (tried {', '.join(candidates)} and the default route)"
    )


def _route_source_ip() -> Optional[str]:
    rc, out, _ = run_command(['ip', 'route', 'get', '8.8.8.8'], timeout=10)
    if rc != 0:
        return None
    fields = out.split()
    if 'src' in fields:
        idx = fields.index('src')
        if idx + 1 < len(fields):
            return fields[idx + 1]
    return None


def _hostname_ip() -> Optional[str]:
    rc, out, _ = run_command(['hostname', '-I'], timeout=10)
    if rc != 0:
        return None
    for token in out.split():
        if _is_ipv4(token):
            return token
    return None


def detect_private_ip(interface: str) -> str:
    """Private IPv4 of this host.

    Providers, in order: the primary interface, the source address of the
    route to 8.8.8.8, the first IPv4 from `hostname -I`.
    """
    ip = first_result([
        (f'interface {interface}', lambda: interface_ipv4(interface)),
        ('route to 8.8.8.8', _route_source_ip),
        ('hostname -I', _hostname_ip),
    ])
    if not ip:
        raise DetectionError("Could not detect private IP address")
    return ip


def fetch_echo_ip(url: str, timeout: float) -> Optional[str]:
    """Ask one IP-echo service for our address. None on any failure."""
    try:
        resp = requests.get(url, timeout=timeout, headers={'User-Agent': 'curl/8'})
    except requests.exceptions.Timeout:
        logger.debug(f"Timeout contacting {url}")
        return None
    except requests.exceptions.RequestException as e:
        logger.debug(f"Cannot reach {url}: {e}")
        return None

    if resp.status_code != 200:
        logger.debug(f"{url} returned HTTP {resp.status_code}")
        return None
    body = resp.text.strip()
    if not _is_ipv4(body):
        logger.debug(f"{url} returned non-IPv4 body: {body[:40]!r}")
        return None
    return body


def detect_public_ip(services: Sequence[str], timeout: float = 10) -> str:
    """Public IPv4 via the first IP-echo service that answers."""
    ip = first_result([
        (url, lambda url=url: fetch_echo_ip(url, timeout)) for url in services
    ])
    if not ip:
        raise DetectionError(
            "Could not detect public IP address. Please check internet connectivity and try again"
        )
    return ip


def probe_host(config, want_public: bool = False) -> HostProfile:
    """Detect the HostProfile for this run."""
    package_manager = detect_package_manager()
    interface = detect_primary_interface(config.interfaces)
    logger.info(f"Detected primary network interface: {interface}")
    private_ip = detect_private_ip(interface)
    logger.info(f"Detected private IP: {private_ip}")

    public_ip = None
    if want_public:
        logger.info("Detecting public IP address...")
        public_ip = detect_public_ip(config.ip_echo_services, timeout=config.ip_echo_timeout)
        logger.info(f"Detected public IP: {public_ip}")

    return HostProfile(
        hostname=config.name or socket.gethostname().split('.')[0],
        package_manager=package_manager,
        interface=interface,
        private_ip=private_ip,
        public_ip=public_ip,
    )
