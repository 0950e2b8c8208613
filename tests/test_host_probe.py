"""Tests for host_probe.py - interface, IP and package manager detection."""

import json
import sys
from pathlib import Path
from unittest.mock import patch, MagicMock

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

import pytest
import requests

from kube_driver.common import DetectionError
from kube_driver.config import NodeConfig
from kube_driver.host_probe import (
    HostProfile,
    default_route_interface,
    detect_package_manager,
    detect_primary_interface,
    detect_private_ip,
    detect_public_ip,
    fetch_echo_ip,
    interface_ipv4,
    probe_host,
)


def _addr_json(ip=None):
    addr_info = [{'family': 'inet6', 'local': 'fe80::1'}]
    if ip:
        addr_info.insert(0, {'family': 'inet', 'local': ip, 'prefixlen': 24})
    return json.dumps([{'ifname': 'ens5', 'addr_info': addr_info}])


def _response(status=200, text=''):
    resp = MagicMock()
    resp.status_code = status
    resp.text = text
    return resp


class TestDetectPackageManager:
    """dnf preferred, yum otherwise."""

    def test_prefers_dnf(self):
        with patch('kube_driver.host_probe.shutil.which', return_value='/usr/bin/dnf'):
            assert detect_package_manager() == 'dnf'

    def test_falls_back_to_yum(self):
        with patch('kube_driver.host_probe.shutil.which', return_value=None):
            assert detect_package_manager() == 'yum'


class TestInterfaceIpv4:
    """Parsing `ip -j addr show dev <name>`."""

    def test_returns_inet_address(self):
        with patch('kube_driver.host_probe.run_command', return_value=(0, _addr_json('10.0.5.12'), '')):
            assert interface_ipv4('ens5') == '10.0.5.12'

    def test_ipv6_only_returns_none(self):
        with patch('kube_driver.host_probe.run_command', return_value=(0, _addr_json(), '')):
            assert interface_ipv4('ens5') is None

    def test_missing_device_returns_none(self):
        with patch('kube_driver.host_probe.run_command', return_value=(1, '', 'Device "eth9" does not exist.')):
            assert interface_ipv4('eth9') is None

    def test_garbage_output_returns_none(self):
        with patch('kube_driver.host_probe.run_command', return_value=(0, 'not json', '')):
            assert interface_ipv4('ens5') is None


class TestDetectPrimaryInterface:
    """First candidate with IPv4, then default route."""

    def test_first_candidate_with_ip(self):
        """eth0 absent, ens5 present: ens5 is chosen."""
        ips = {'eth0': None, 'ens5': '10.0.5.12'}
        with patch('kube_driver.host_probe.interface_ipv4', side_effect=lambda name: ips.get(name)):
            assert detect_primary_interface(('eth0', 'ens5', 'enp0s3')) == 'ens5'

    def test_default_route_fallback(self):
        with patch('kube_driver.host_probe.interface_ipv4', return_value=None), \
             patch('kube_driver.host_probe.run_command', return_value=(0, 'default via 10.0.0.1 dev enX0 proto dhcp\n', '')):
            assert detect_primary_interface(('eth0',)) == 'enX0'

    def test_nothing_found_raises(self):
        with patch('kube_driver.host_probe.interface_ipv4', return_value=None), \
             patch('kube_driver.host_probe.default_route_interface', return_value=None):
            with pytest.raises(DetectionError):
                detect_primary_interface(('eth0', 'ens5'))

    def test_default_route_parsing(self):
        with patch('kube_driver.host_probe.run_command', return_value=(0, '', '')):
            assert default_route_interface() is None


class TestDetectPrivateIp:
    """Ordered fallbacks with no loopback default."""

    def test_interface_address_first(self):
        with patch('kube_driver.host_probe.interface_ipv4', return_value='10.0.5.12'):
            assert detect_private_ip('ens5') == '10.0.5.12'

    def test_route_source_fallback(self):
        def fake_run(cmd, **_kwargs):
            if cmd[:3] == ['ip', 'route', 'get']:
                return (0, '8.8.8.8 via 10.0.0.1 dev ens5 src 10.0.5.13 uid 0\n', '')
            return (1, '', '')
        with patch('kube_driver.host_probe.interface_ipv4', return_value=None), \
             patch('kube_driver.host_probe.run_command', side_effect=fake_run):
            assert detect_private_ip('ens5') == '10.0.5.13'

    def test_hostname_fallback(self):
        def fake_run(cmd, **_kwargs):
            if cmd == ['hostname', '-I']:
                return (0, 'fe80::1 10.0.5.14 172.17.0.1\n', '')
            return (1, '', '')
        with patch('kube_driver.host_probe.interface_ipv4', return_value=None), \
             patch('kube_driver.host_probe.run_command', side_effect=fake_run):
            assert detect_private_ip('ens5') == '10.0.5.14'

    def test_no_loopback_fallback(self):
        """When every provider fails, detection fails instead of using 127.0.0.1."""
        with patch('kube_driver.host_probe.interface_ipv4', return_value=None), \
             patch('kube_driver.host_probe.run_command', return_value=(1, '', '')):
            with pytest.raises(DetectionError, match='private IP'):
                detect_private_ip('ens5')


class TestPublicIp:
    """IP-echo services with per-request timeouts."""

    def test_fetch_strips_body(self):
        with patch('kube_driver.host_probe.requests.get', return_value=_response(200, '203.0.113.7\n')) as mock_get:
            assert fetch_echo_ip('https://ifconfig.me', timeout=10) == '203.0.113.7'
        assert mock_get.call_args.kwargs['timeout'] == 10

    def test_fetch_rejects_non_ip_body(self):
        with patch('kube_driver.host_probe.requests.get', return_value=_response(200, '<html>rate limited</html>')):
            assert fetch_echo_ip('https://ifconfig.me', timeout=10) is None

    def test_fetch_rejects_http_error(self):
        with patch('kube_driver.host_probe.requests.get', return_value=_response(503, '203.0.113.7')):
            assert fetch_echo_ip('https://ifconfig.me', timeout=10) is None

    def test_fetch_timeout(self):
        with patch('kube_driver.host_probe.requests.get', side_effect=requests.exceptions.Timeout()):
            assert fetch_echo_ip('https://ifconfig.me', timeout=1) is None

    def test_falls_through_services(self):
        """First service times out, second answers."""
        responses = [requests.exceptions.Timeout(), _response(200, '198.51.100.4')]
        with patch('kube_driver.host_probe.requests.get', side_effect=responses) as mock_get:
            ip = detect_public_ip(['https://ifconfig.me', 'https://icanhazip.com'], timeout=10)
        assert ip == '198.51.100.4'
        assert mock_get.call_count == 2

    def test_all_services_fail(self):
        with patch('kube_driver.host_probe.requests.get', side_effect=requests.exceptions.ConnectionError()):
            with pytest.raises(DetectionError, match='Could not detect public IP address'):
                detect_public_ip(['https://ifconfig.me', 'https://icanhazip.com'])


class TestProbeHost:
    """Assembling the HostProfile."""

    def test_private_only(self):
        config = NodeConfig(name='cp-1')
        with patch('kube_driver.host_probe.detect_package_manager', return_value='dnf'), \
             patch('kube_driver.host_probe.detect_primary_interface', return_value='ens5'), \
             patch('kube_driver.host_probe.detect_private_ip', return_value='10.0.5.12'), \
             patch('kube_driver.host_probe.detect_public_ip') as mock_public:
            profile = probe_host(config)
        assert profile == HostProfile(
            hostname='cp-1', package_manager='dnf', interface='ens5', private_ip='10.0.5.12'
        )
        mock_public.assert_not_called()

    def test_public_requested(self):
        config = NodeConfig(name='cp-1', public_ip_access=True)
        with patch('kube_driver.host_probe.detect_package_manager', return_value='yum'), \
             patch('kube_driver.host_probe.detect_primary_interface', return_value='eth0'), \
             patch('kube_driver.host_probe.detect_private_ip', return_value='10.0.5.12'), \
             patch('kube_driver.host_probe.detect_public_ip', return_value='203.0.113.7'):
            profile = probe_host(config, want_public=True)
        assert profile.public_ip == '203.0.113.7'
        assert profile.package_manager == 'yum'
