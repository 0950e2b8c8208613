"""Node configuration management.

Configuration is loaded from a single YAML file (node.yaml). Every key is
optional; anything missing falls back to the defaults below, which match a
stock Amazon Linux control plane.

Resolution order for the config file:
1. --config PATH (must exist)
2. $KUBE_DRIVER_CONFIG environment variable (must exist)
3. ./node.yaml
4. /etc/kube-driver/node.yaml
5. Built-in defaults

The resulting NodeConfig is frozen: phases read it, never change it.
CLI overrides are applied with dataclasses.replace() before the run starts.
"""

import enum
import os
import socket
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml


class ConfigError(Exception):
    """Configuration error."""


class InvalidConfigurationError(ConfigError):
    """A configuration value is not one of the recognized literals."""


class ClusterRole(enum.Enum):
    """Which branch of cluster initialization this node runs."""
    CONTROL_PLANE = 'control-plane'
    WORKER = 'worker'


DEFAULT_CONFIG_PATHS = (
    Path('node.yaml'),
    Path('/etc/kube-driver/node.yaml'),
)

DEFAULT_INTERFACES = ('eth0', 'ens5', 'enp0s3', 'eth1')
DEFAULT_IP_ECHO_SERVICES = (
    'https://ifconfig.me',
    'https://icanhazip.com',
    'https://ipecho.net/plain',
)
DEFAULT_FIREWALL_PORTS = (
    '6443/tcp',         # API server
    '2379-2380/tcp',    # etcd
    '10250/tcp',        # kubelet
    '10251/tcp',        # kube-scheduler
    '10252/tcp',        # kube-controller-manager
    '10255/tcp',        # kubelet read-only
    '30000-32767/tcp',  # NodePort services
)
CALICO_MANIFEST_URL = (
    'https://raw.githubusercontent.com/projectcalico/calico/{version}/manifests/calico.yaml'
)


@dataclass(frozen=True)
class JoinConfig:
    """Inputs a worker needs to join an existing control plane."""
    endpoint: str = ''
    token: str = ''
    ca_cert_hash: str = ''

    def missing(self) -> list[str]:
        """Names of required join inputs that are empty."""
        return [name for name in ('endpoint', 'token', 'ca_cert_hash') if not getattr(self, name)]


@dataclass(frozen=True)
class CalicoConfig:
    """Calico manifest source and install timing.

    The version is pinned rather than 'latest'; whenever it or the
    Kubernetes version changes, compatibility must be revalidated.
    """
    version: str = 'v3.25.1'
    manifest_url: str = CALICO_MANIFEST_URL
    default_cidr: str = '192.168.0.0/16'
    wait_timeout: int = 300
    cleanup_delay: int = 5

    @property
    def url(self) -> str:
        return self.manifest_url.format(version=self.version)


@dataclass(frozen=True)
class NodeConfig:
    """Configuration for the node being provisioned."""
    name: str = field(default_factory=lambda: socket.gethostname().split('.')[0])
    config_file: Optional[Path] = None
    role: ClusterRole = ClusterRole.CONTROL_PLANE
    public_ip_access: bool = False
    pod_cidr: str = '192.168.0.0/16'
    arch: str = 'amd64'

    kubernetes_version: str = 'v1.32'
    containerd_version: str = '2.2.0'
    runc_version: str = '1.3.3'
    crictl_version: str = 'v1.32.0'

    interfaces: tuple = DEFAULT_INTERFACES
    ip_echo_services: tuple = DEFAULT_IP_ECHO_SERVICES
    ip_echo_timeout: int = 10

    calico: CalicoConfig = field(default_factory=CalicoConfig)
    join: JoinConfig = field(default_factory=JoinConfig)

    kubeconfig_user: str = ''
    allow_control_plane_pods: bool = False
    token_ttl: str = '24h'
    cri_socket: str = 'unix:///run/containerd/containerd.sock'
    firewall_ports: tuple = DEFAULT_FIREWALL_PORTS

    @property
    def is_control_plane(self) -> bool:
        return self.role is ClusterRole.CONTROL_PLANE


def parse_role(value: Any) -> ClusterRole:
    """Parse the role literal."""
    try:
        return ClusterRole(str(value).strip().lower())
    except ValueError:
        valid = ', '.join(f"'{r.value}'" for r in ClusterRole)
        raise InvalidConfigurationError(
            f"role has an invalid value: {value!r}. Valid values are {valid}"
        ) from None


def parse_bool_literal(key: str, value: Any) -> bool:
    """Parse a boolean setting; only the literals true/false are accepted."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip() in ('true', 'false'):
        return value.strip() == 'true'
    raise InvalidConfigurationError(
        f"{key} has an invalid value: {value!r}. Valid values are 'true' or 'false'"
    )


def parse_public_ip_access(value: Any) -> bool:
    """Parse public_ip_access."""
    return parse_bool_literal('public_ip_access', value)


def _section(data: dict, key: str) -> dict:
    """Return a nested mapping such as 'calico', or {} when absent."""
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise InvalidConfigurationError(f"{key} must be a mapping, got {type(value).__name__}")
    return value


def _parse_int(key: str, value: Any, minimum: int = 0) -> int:
    """Parse an integer setting such as a timeout in seconds."""
    if isinstance(value, bool):
        raise InvalidConfigurationError(f"{key} must be an integer, got {value!r}")
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise InvalidConfigurationError(f"{key} must be an integer, got {value!r}") from None
    if number < minimum:
        raise InvalidConfigurationError(f"{key} must be at least {minimum}, got {number}")
    return number


def _parse_list(key: str, value: Any) -> tuple:
    if not isinstance(value, (list, tuple)):
        raise InvalidConfigurationError(f"{key} must be a list, got {value!r}")
    return tuple(str(item) for item in value)


def _parse_yaml(path: Path) -> dict:
    """Parse a YAML file and return contents."""
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping at the top level")
    return data


def find_config_file(explicit: Optional[Path] = None) -> Optional[Path]:
    """Locate node.yaml following the documented resolution order."""
    if explicit is not None:
        if not explicit.exists():
            raise ConfigError(f"Config file not found: {explicit}")
        return explicit

    if env_path := os.environ.get('KUBE_DRIVER_CONFIG'):
        path = Path(env_path)
        if path.exists():
            return path
        raise ConfigError(f"KUBE_DRIVER_CONFIG={env_path} does not exist")

    for candidate in DEFAULT_CONFIG_PATHS:
        if candidate.exists():
            return candidate
    return None


def config_from_dict(data: dict, config_file: Optional[Path] = None) -> NodeConfig:
    """Build a NodeConfig from parsed YAML, validating literals."""
    kwargs: dict[str, Any] = {'config_file': config_file}

    if node_name := data.get('node_name'):
        kwargs['name'] = str(node_name)
    if 'role' in data:
        kwargs['role'] = parse_role(data['role'])
    if 'public_ip_access' in data:
        kwargs['public_ip_access'] = parse_public_ip_access(data['public_ip_access'])

    for key in ('pod_cidr', 'arch', 'kubeconfig_user', 'token_ttl', 'cri_socket'):
        if data.get(key):
            kwargs[key] = str(data[key])
    if 'allow_control_plane_pods' in data:
        kwargs['allow_control_plane_pods'] = parse_bool_literal(
            'allow_control_plane_pods', data['allow_control_plane_pods']
        )
    if ports := data.get('firewall_ports'):
        kwargs['firewall_ports'] = _parse_list('firewall_ports', ports)

    versions = _section(data, 'versions')
    for key in ('kubernetes', 'containerd', 'runc', 'crictl'):
        if versions.get(key):
            kwargs[f'{key}_version'] = str(versions[key])

    network = _section(data, 'network')
    if interfaces := network.get('interfaces'):
        kwargs['interfaces'] = _parse_list('network.interfaces', interfaces)
    if services := network.get('ip_echo_services'):
        kwargs['ip_echo_services'] = _parse_list('network.ip_echo_services', services)
    if network.get('ip_echo_timeout') is not None:
        kwargs['ip_echo_timeout'] = _parse_int('network.ip_echo_timeout', network['ip_echo_timeout'], minimum=1)

    if calico := _section(data, 'calico'):
        calico_kwargs = {k: str(calico[k]) for k in ('version', 'manifest_url', 'default_cidr') if calico.get(k)}
        for key in ('wait_timeout', 'cleanup_delay'):
            if calico.get(key) is not None:
                calico_kwargs[key] = _parse_int(f'calico.{key}', calico[key])
        if calico_kwargs.get('version') == 'latest':
            raise InvalidConfigurationError("calico.version must be pinned, not 'latest'")
        kwargs['calico'] = CalicoConfig(**calico_kwargs)

    if join := _section(data, 'join'):
        kwargs['join'] = JoinConfig(
            endpoint=str(join.get('endpoint') or ''),
            token=str(join.get('token') or ''),
            ca_cert_hash=str(join.get('ca_cert_hash') or ''),
        )

    return NodeConfig(**kwargs)


def load_node_config(path: Optional[Path] = None) -> NodeConfig:
    """Load configuration for this node."""
    config_file = find_config_file(path)
    if config_file is None:
        return NodeConfig()
    return config_from_dict(_parse_yaml(config_file), config_file=config_file)
