"""Run reports for a provisioning scenario.

A report answers "what did this run do to the node": the host probe, each
phase in order, the external command and exit status behind a failure, and
any readiness waits that ran out. It is written as JSON and Markdown when a
report directory is given, and returned as a dict for --json-output.
"""

import json
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional

PROBE = 'probe'
STEP = 'step'

STATUS_MARKERS = {'passed': '✅', 'warning': '⚠️', 'failed': '❌', 'skipped': '⏭️'}


@dataclass
class PhaseResult:
    """Outcome of one phase (or of the host probe)."""
    name: str
    description: str
    status: str  # 'passed', 'warning', 'failed', 'skipped'
    kind: str = STEP
    message: str = ''
    duration: float = 0.0
    command: str = ''
    returncode: Optional[int] = None

    def as_dict(self) -> dict:
        data = {
            'name': self.name,
            'kind': self.kind,
            'status': self.status,
            'duration': round(self.duration, 1),
        }
        if self.message:
            data['message'] = self.message
        if self.command:
            data['command'] = self.command
        if self.returncode is not None:
            data['returncode'] = self.returncode
        return data


@dataclass
class RunReport:
    """Phase results for one scenario run on one node."""
    host: str
    report_dir: Optional[Path]
    scenario: str = ''
    phases: list[PhaseResult] = field(default_factory=list)
    started_at: Optional[datetime] = None
    success: bool = False
    exit_code: int = 0
    duration: float = 0.0

    _run_start: float = field(default=0.0, repr=False)
    _open: dict = field(default_factory=dict, repr=False)  # name -> (description, kind, start)

    def start(self):
        self.started_at = datetime.now()
        self._run_start = time.monotonic()

    def start_phase(self, name: str, description: str, kind: str = STEP):
        self._open[name] = (description, kind, time.monotonic())

    def record(
        self,
        name: str,
        status: str,
        message: str = '',
        duration: Optional[float] = None,
        command: str = '',
        returncode: Optional[int] = None,
    ):
        """Close an open phase with its outcome.

        A phase that was never started (e.g. the timeout check failing before
        it) is recorded with its name as description and zero duration.
        """
        description, kind, started = self._open.pop(name, (name, STEP, None))
        if not duration and started is not None:
            duration = time.monotonic() - started
        self.phases.append(PhaseResult(
            name=name,
            description=description,
            status=status,
            kind=kind,
            message=message,
            duration=duration or 0.0,
            command=command,
            returncode=returncode,
        ))

    def pass_phase(self, name: str, message: str = '', duration: Optional[float] = None):
        self.record(name, 'passed', message, duration)

    def warn_phase(self, name: str, message: str = '', duration: Optional[float] = None):
        self.record(name, 'warning', message, duration)

    def fail_phase(
        self,
        name: str,
        message: str = '',
        duration: Optional[float] = None,
        command: str = '',
        returncode: Optional[int] = None,
    ):
        self.record(name, 'failed', message, duration, command, returncode)

    def skip_phase(self, name: str, description: str):
        self.phases.append(PhaseResult(name=name, description=description, status='skipped'))

    @property
    def probe(self) -> Optional[PhaseResult]:
        return next((p for p in self.phases if p.kind == PROBE), None)

    @property
    def failure(self) -> Optional[PhaseResult]:
        return next((p for p in self.phases if p.status == 'failed'), None)

    @property
    def warnings(self) -> list[PhaseResult]:
        return [p for p in self.phases if p.status == 'warning']

    def finish(self, success: bool, exit_code: int = 0):
        """Finalize the run; write report files when a directory was given."""
        self.success = success
        self.exit_code = exit_code
        if self._run_start:
            self.duration = time.monotonic() - self._run_start
        if self.report_dir:
            self.report_dir.mkdir(parents=True, exist_ok=True)
            self._report_path('json').write_text(json.dumps(self.to_dict(), indent=2), encoding="utf-8")
            self._report_path('md').write_text(self.to_markdown(), encoding="utf-8")

    def _report_path(self, ext: str) -> Path:
        """<timestamp>.<scenario>.<passed|failed>.<ext>"""
        timestamp = self.started_at.strftime('%Y%m%d-%H%M%S') if self.started_at else 'unknown'
        status = 'passed' if self.success else 'failed'
        return self.report_dir / f"{timestamp}.{self.scenario or 'run'}.{status}.{ext}"

    def to_dict(self, context: Optional[dict] = None) -> dict:
        """Report as a dictionary.

        Args:
            context: Optional run context. Keys starting with '_' and values
                that are not JSON-serializable are left out.
        """
        result = {
            'scenario': self.scenario,
            'host': self.host,
            'success': self.success,
            'exit_code': self.exit_code,
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'duration_seconds': round(self.duration, 1),
            'phases': [p.as_dict() for p in self.phases],
        }
        if failure := self.failure:
            result['error'] = failure.message
            if failure.command:
                result['failed_command'] = failure.command
        if warnings := self.warnings:
            result['warnings'] = [f"{p.name}: {p.message}" for p in warnings]

        if context:
            serializable = {}
            for key, value in context.items():
                if key.startswith('_'):
                    continue
                try:
                    json.dumps(value)
                except (TypeError, ValueError):
                    continue
                serializable[key] = value
            if serializable:
                result['context'] = serializable
        return result

    def to_markdown(self) -> str:
        lines = [
            f"# {self.scenario} on {self.host}",
            "",
            f"**Result**: {'PASSED' if self.success else 'FAILED'} (exit code {self.exit_code})",
            f"**Started**: {self.started_at.strftime('%Y-%m-%d %H:%M:%S') if self.started_at else 'N/A'}",
            f"**Duration**: {self.duration:.1f}s",
            "",
        ]

        if probe := self.probe:
            lines += ["## Host", "", f"{STATUS_MARKERS.get(probe.status, '')} {_cell(probe.message)}", ""]

        lines += [
            "## Phases",
            "",
            "| Phase | Status | Duration | Detail |",
            "|-------|--------|----------|--------|",
        ]
        for p in self.phases:
            if p.kind == PROBE:
                continue
            detail = f"`{p.command}` exited {p.returncode}" if p.command else p.message
            marker = STATUS_MARKERS.get(p.status, '')
            lines.append(f"| {p.name} | {marker} {p.status} | {p.duration:.1f}s | {_cell(detail)} |")

        if warnings := self.warnings:
            lines += ["", "## Warnings", ""]
            lines += [f"- **{p.name}**: {_cell(p.message)}" for p in warnings]

        if failure := self.failure:
            lines += ["", "## Failure", "", f"Phase `{failure.name}` failed: {_cell(failure.message)}"]
            if failure.command:
                lines.append(f"Command: `{failure.command}` (exit code {failure.returncode})")

        return '\n'.join(lines) + '\n'


def _cell(text: str) -> str:
    return text.replace('\n', ' ').replace('|', '\\|')
