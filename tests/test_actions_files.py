"""Tests for actions/files.py - idempotent file helpers."""

import sys
from pathlib import Path
from unittest.mock import patch, MagicMock

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

import pytest
import requests

from kube_driver.actions.files import (
    download_file,
    ensure_line,
    remove_matching_lines,
    replace_exact_line,
    replace_in_file,
    write_config_file,
)


class TestWriteConfigFile:
    """Content is compared before writing."""

    def test_writes_new_file(self, tmp_path):
        path = tmp_path / 'etc' / 'k8s.conf'
        assert write_config_file(path, 'overlay\n') is True
        assert path.read_text() == 'overlay\n'

    def test_unchanged_file_not_rewritten(self, tmp_path):
        path = tmp_path / 'k8s.conf'
        write_config_file(path, 'overlay\n')
        mtime = path.stat().st_mtime_ns
        assert write_config_file(path, 'overlay\n') is False
        assert path.stat().st_mtime_ns == mtime

    def test_applies_mode(self, tmp_path):
        path = tmp_path / 'secret'
        write_config_file(path, 'x', mode=0o600)
        assert path.stat().st_mode & 0o777 == 0o600


class TestRemoveMatchingLines:
    """Line removal used for fstab swap entries."""

    def test_removes_every_match(self, tmp_path):
        path = tmp_path / 'fstab'
        path.write_text("UUID=a / xfs defaults 0 0\n/swapfile none swap sw 0 0\n/dev/xvdb swap swap defaults 0 0\n")
        assert remove_matching_lines(path, 'swap') == 2
        assert path.read_text() == "UUID=a / xfs defaults 0 0\n"

    def test_missing_file(self, tmp_path):
        assert remove_matching_lines(tmp_path / 'nope', 'swap') == 0


class TestReplace:
    """Literal and whole-line replacement."""

    def test_replace_in_file_counts(self, tmp_path):
        path = tmp_path / 'f'
        path.write_text('a a b a')
        assert replace_in_file(path, 'a', 'c') == 3
        assert path.read_text() == 'c c b c'

    def test_replace_exact_line_only_whole_lines(self, tmp_path):
        path = tmp_path / 'selinux'
        path.write_text("# SELINUX=enforcing is the default\nSELINUX=enforcing\nSELINUXTYPE=targeted\n")
        assert replace_exact_line(path, 'SELINUX=enforcing', 'SELINUX=permissive') == 1
        assert path.read_text() == (
            "# SELINUX=enforcing is the default\nSELINUX=permissive\nSELINUXTYPE=targeted\n"
        )


class TestEnsureLine:
    """Append-if-absent."""

    def test_appends_once(self, tmp_path):
        path = tmp_path / '.bashrc'
        path.write_text('export EDITOR=vi')
        assert ensure_line(path, 'alias k=kubectl') is True
        assert ensure_line(path, 'alias k=kubectl') is False
        assert path.read_text() == 'export EDITOR=vi\nalias k=kubectl\n'

    def test_creates_file(self, tmp_path):
        path = tmp_path / 'new'
        assert ensure_line(path, 'x') is True
        assert path.read_text() == 'x\n'


class TestDownloadFile:
    """Streaming downloads with requests."""

    def test_writes_chunks(self, tmp_path):
        resp = MagicMock()
        resp.iter_content.return_value = [b'abc', b'def']
        resp.__enter__.return_value = resp
        with patch('kube_driver.actions.files.requests.get', return_value=resp) as mock_get:
            dest = download_file('https://example.test/runc.amd64', tmp_path / 'runc')
        assert dest.read_bytes() == b'abcdef'
        assert mock_get.call_args.kwargs['stream'] is True

    def test_http_error_propagates(self, tmp_path):
        resp = MagicMock()
        resp.__enter__.return_value = resp
        resp.raise_for_status.side_effect = requests.exceptions.HTTPError('404')
        with patch('kube_driver.actions.files.requests.get', return_value=resp):
            with pytest.raises(requests.exceptions.RequestException):
                download_file('https://example.test/missing', tmp_path / 'x')
