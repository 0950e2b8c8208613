"""File writing and download helpers.

All writers are idempotent: they compare before touching the file and
report whether anything changed, so re-running a scenario on an already
provisioned host leaves configuration untouched.
"""

import logging
import os
from pathlib import Path

import requests

logger = logging.getLogger(__name__)


def write_config_file(path: Path, content: str, mode: int = 0o644) -> bool:
    """Write content to path unless it already matches. Returns True if written."""
    path = Path(path)
    if path.exists() and path.read_text(encoding="utf-8") == content:
        logger.debug(f"{path} already up to date")
        return False
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    os.chmod(path, mode)
    logger.debug(f"Wrote {path}")
    return True


def remove_matching_lines(path: Path, needle: str) -> int:
    """Delete every line containing needle. Returns the number removed."""
    path = Path(path)
    if not path.exists():
        return 0
    lines = path.read_text(encoding="utf-8").splitlines(keepends=True)
    kept = [line for line in lines if needle not in line]
    removed = len(lines) - len(kept)
    if removed:
        path.write_text(''.join(kept), encoding="utf-8")
    return removed


def replace_in_file(path: Path, old: str, new: str) -> int:
    """Literal replacement of every occurrence. Returns the count replaced."""
    path = Path(path)
    text = path.read_text(encoding="utf-8")
    count = text.count(old)
    if count:
        path.write_text(text.replace(old, new), encoding="utf-8")
    return count


def replace_exact_line(path: Path, old: str, new: str) -> int:
    """Replace whole lines equal to old. Returns the count replaced."""
    path = Path(path)
    lines = path.read_text(encoding="utf-8").splitlines(keepends=True)
    count = 0
    for i, line in enumerate(lines):
        if line.rstrip('\n') == old:
            lines[i] = new + ('\n' if line.endswith('\n') else '')
            count += 1
    if count:
        path.write_text(''.join(lines), encoding="utf-8")
    return count


def ensure_line(path: Path, line: str) -> bool:
    """Append line unless the file already contains it exactly. Returns True if added."""
    path = Path(path)
    existing = path.read_text(encoding="utf-8") if path.exists() else ''
    if line in existing.splitlines():
        return False
    if existing and not existing.endswith('\n'):
        existing += '\n'
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(f"{existing}{line}\n", encoding="utf-8")
    return True


def download_file(url: str, dest: Path, timeout: int = 300) -> Path:
    """Stream url to dest. Raises requests.RequestException on failure."""
    dest = Path(dest)
    dest.parent.mkdir(parents=True, exist_ok=True)
    logger.debug(f"Downloading {url} -> {dest}")
    with requests.get(url, stream=True, timeout=timeout, allow_redirects=True) as resp:
        resp.raise_for_status()
        with open(dest, 'wb') as f:
            for chunk in resp.iter_content(chunk_size=1 << 16):
                f.write(chunk)
    return dest

