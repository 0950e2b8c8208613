"""Shared pytest fixtures for kube-driver tests."""

import sys
from pathlib import Path

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))


@pytest.fixture
def node_config():
    """Default control-plane NodeConfig with a fixed node name."""
    from kube_driver.config import NodeConfig
    return NodeConfig(name='cp-1')


@pytest.fixture
def worker_config():
    """Worker NodeConfig with complete join inputs."""
    from kube_driver.config import ClusterRole, JoinConfig, NodeConfig
    return NodeConfig(
        name='worker-1',
        role=ClusterRole.WORKER,
        join=JoinConfig(
            endpoint='10.0.5.12:6443',
            token='abcdef.0123456789abcdef',
            ca_cert_hash='a' * 64,
        ),
    )


@pytest.fixture
def host_profile():
    """HostProfile for a typical EC2 instance with a private address only."""
    from kube_driver.host_probe import HostProfile
    return HostProfile(
        hostname='cp-1',
        package_manager='dnf',
        interface='ens5',
        private_ip='10.0.5.12',
    )


@pytest.fixture
def node_yaml(tmp_path):
    """Write a node.yaml into tmp_path and return its path."""
    def _write(content: str) -> Path:
        path = tmp_path / 'node.yaml'
        path.write_text(content)
        return path
    return _write


@pytest.fixture
def invoking_user(tmp_path):
    """InvokingUser whose home is tmp_path."""
    from kube_driver.common import InvokingUser
    return InvokingUser(name='ec2-user', uid=1000, gid=1000, home=tmp_path)
