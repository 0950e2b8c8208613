"""Common utilities and types for node provisioning."""

import logging
import os
import pwd
import subprocess
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

logger = logging.getLogger(__name__)

KUBECONFIG_ENV = {'KUBECONFIG': '/etc/kubernetes/admin.conf'}


class DetectionError(Exception):
    """No usable interface or IP address could be determined."""


class AddressDetectionError(DetectionError):
    """The advertise address chosen for the control plane is unavailable."""


class ExternalCommandError(Exception):
    """A delegated command exited non-zero."""

    def __init__(self, cmd: list[str], returncode: int, stderr: str = ''):
        self.cmd = cmd
        self.returncode = returncode
        self.stderr = stderr
        detail = stderr.strip()[-500:] if stderr else ''
        msg = f"'{' '.join(cmd)}' exited with {returncode}"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class TimeoutWarning(Warning):
    """A bounded wait ran out. Logged, never fatal."""


@dataclass
class ActionResult:
    """Result returned by an action."""
    success: bool
    message: str = ''
    duration: float = 0.0
    context_updates: dict = field(default_factory=dict)
    returncode: int = 1  # exit code surfaced when the run aborts on this result
    warning: bool = False
    command: str = ''  # external command behind a failure, for the run report


def run_command(
    cmd: list[str],
    cwd: Optional[Path] = None,
    timeout: int = 600,
    capture: bool = True,
    env: Optional[dict] = None,
    input_text: Optional[str] = None
) -> tuple[int, str, str]:
    """Run a command and return (returncode, stdout, stderr)."""
    logger.debug(f"Running: {' '.join(cmd)}")
    try:
        result = subprocess.run(
            cmd,
            cwd=cwd,
            capture_output=capture,
            text=True,
            timeout=timeout,
            env=env,
            input=input_text,
            check=False  # We handle return codes explicitly
        )
        return result.returncode, result.stdout or '', result.stderr or ''
    except subprocess.TimeoutExpired:
        return -1, '', f'Command timed out after {timeout}s'
    except OSError as e:
        return 127, '', str(e)


def run_checked(cmd: list[str], **kwargs) -> str:
    """Run a command, raising ExternalCommandError on failure. Returns stdout."""
    rc, out, err = run_command(cmd, **kwargs)
    if rc != 0:
        raise ExternalCommandError(cmd, rc, err or out)
    return out


def kubectl_env() -> dict:
    """Environment for kubectl calls made as root against the admin kubeconfig."""
    env = os.environ.copy()
    env.update(KUBECONFIG_ENV)
    return env


def first_result(providers: list[tuple[str, Callable[[], Optional[str]]]]) -> Optional[str]:
    """Evaluate named providers in order, returning the first non-empty value.

    A provider that raises is logged and treated as empty.
    """
    for name, provider in providers:
        try:
            value = provider()
        except (OSError, ValueError, DetectionError) as e:
            logger.debug(f"Provider {name} failed: {e}")
            continue
        if value:
            logger.debug(f"Provider {name} returned {value}")
            return value
        logger.debug(f"Provider {name} returned nothing")
    return None


def wait_until(
    predicate: Callable[[], bool],
    timeout: float,
    interval: float = 5,
    description: str = 'condition'
) -> None:
    """Poll predicate until it holds; raise TimeoutWarning when timeout elapses."""
    logger.debug(f"Waiting up to {timeout}s for {description}...")
    start = time.time()
    while True:
        if predicate():
            logger.debug(f"{description} reached after {time.time() - start:.1f}s")
            return
        if time.time() - start >= timeout:
            raise TimeoutWarning(f"Timed out after {timeout}s waiting for {description}")
        time.sleep(interval)


def failed(
    message: str,
    start: float,
    returncode: int = 1,
    command: Optional[list[str]] = None
) -> ActionResult:
    """Shorthand for a failed ActionResult."""
    return ActionResult(
        success=False,
        message=message,
        duration=time.time() - start,
        returncode=returncode,
        command=' '.join(command) if command else ''
    )


@dataclass(frozen=True)
class InvokingUser:
    """The (usually non-root) user who invoked the run via sudo."""
    name: str
    uid: int
    gid: int
    home: Path


def resolve_invoking_user(override: str = '') -> InvokingUser:
    """Resolve the user that should own per-user files.

    Order: explicit override, $SUDO_USER, then the current user.
    """
    name = override or os.environ.get('SUDO_USER', '')
    try:
        entry = pwd.getpwnam(name) if name else pwd.getpwuid(os.getuid())
    except KeyError:
        raise DetectionError(f"Unknown user: {name}") from None
    return InvokingUser(
        name=entry.pw_name,
        uid=entry.pw_uid,
        gid=entry.pw_gid,
        home=Path(entry.pw_dir),
    )
