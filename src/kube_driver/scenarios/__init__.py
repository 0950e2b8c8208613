"""Scenario definitions and orchestration.

A scenario is an ordered list of phases. The Orchestrator probes the host
once, then runs the phases strictly in order and stops at the first
failure. Nothing is rolled back: every phase is idempotent, so the remedy
for a failed run is to fix the cause and run again.

Running two orchestrators against the same host at once is not supported
and not guarded against.
"""

import logging
import time
from pathlib import Path
from typing import Any, Callable, Optional, Protocol, runtime_checkable

from kube_driver.common import DetectionError, ExternalCommandError
from kube_driver.config import ConfigError, NodeConfig
from kube_driver.host_probe import HostProfile, probe_host
from kube_driver.reporting import PROBE, RunReport

logger = logging.getLogger(__name__)


@runtime_checkable
class Scenario(Protocol):
    """Protocol for scenario definitions.

    Class attributes:
        name: Scenario identifier (e.g., 'node-setup')
        description: Human-readable description
        requires_root: If True, the run must be started as root (default: True)
        requires_host_profile: If False, host detection is skipped (default: True)
        required_commands: Binaries that must be on PATH before the run (default: ())
        expected_runtime: Expected runtime in seconds for --list-scenarios display (default: None)
    """
    name: str
    description: str

    def get_phases(self, config: NodeConfig) -> list[tuple[str, Any, str]]:
        """Return list of (phase_name, action, description) tuples."""
        ...


def _exit_code(returncode: int) -> int:
    """Process exit code for a failed command; timeouts (-1) and 0 map to 1."""
    return returncode if returncode > 0 else 1


def wants_public_ip(scenario: Scenario, config: NodeConfig) -> bool:
    """Whether the run needs the public IP detected up front."""
    probe_public = getattr(scenario, 'probe_public_ip', None)
    return bool(probe_public(config)) if callable(probe_public) else False


class Orchestrator:
    """Coordinates scenario execution."""

    def __init__(
        self,
        scenario: Scenario,
        config: NodeConfig,
        report_dir: Optional[Path],
        skip_phases: Optional[list[str]] = None,
        timeout: Optional[int] = None,
        dry_run: bool = False,
        prober: Callable[..., HostProfile] = probe_host
    ):
        self.scenario = scenario
        self.config = config
        self.report_dir = report_dir
        self.skip_phases = skip_phases or []
        self.timeout = timeout  # Overall scenario timeout in seconds
        self.dry_run = dry_run
        self.prober = prober
        self.report = RunReport(host=config.name, report_dir=report_dir, scenario=scenario.name)
        self.context: dict[str, Any] = {}
        self.host: Optional[HostProfile] = None
        self.exit_code = 0

    def preview(self) -> bool:
        """Show what would be executed without running. Returns True."""
        phases = self.scenario.get_phases(self.config)

        print("")
        print("═══════════════════════════════════════════════════════════════")
        print(f"  DRY-RUN: {self.scenario.name}")
        print(f"  Node: {self.config.name} ({self.config.role.value})")
        print("═══════════════════════════════════════════════════════════════")
        print("")

        print("Phases to execute:")
        phase_count = 0
        skip_count = 0

        for phase_name, action, description in phases:
            action_type = type(action).__name__
            if phase_name in self.skip_phases:
                print(f"  [SKIP] {phase_name}: {description}")
                print(f"         Action: {action_type}")
                skip_count += 1
            else:
                print(f"  [ OK ] {phase_name}: {description}")
                print(f"         Action: {action_type}")
                if packages := getattr(action, 'packages', None):
                    print(f"         Packages: {' '.join(packages)}")
                if hasattr(action, 'timeout') and action.timeout > 0:
                    print(f"         Timeout: {action.timeout}s")
                phase_count += 1
            print("")

        print("═══════════════════════════════════════════════════════════════")
        print(f"  Summary: {phase_count} phases to execute, {skip_count} to skip")
        if wants_public_ip(self.scenario, self.config):
            print("  Address: public IP (detected at run time)")
        if self.timeout:
            print(f"  Timeout: {self.timeout}s")
        print("  Mode: DRY-RUN (no changes made)")
        print("═══════════════════════════════════════════════════════════════")
        print("")
        print("Remove --dry-run to execute the scenario.")
        print("")

        return True

    def _probe(self) -> bool:
        """Detect the host profile. Returns False (and records why) on failure."""
        if not getattr(self.scenario, 'requires_host_profile', True):
            return True

        self.report.start_phase('probe_host', 'Detect host environment', kind=PROBE)
        try:
            self.host = self.prober(self.config, want_public=wants_public_ip(self.scenario, self.config))
        except DetectionError as e:
            logger.error(f"Error: {e}")
            self.report.fail_phase('probe_host', str(e))
            self.exit_code = 1
            return False

        detected = f"{self.host.hostname}: {self.host.interface} {self.host.private_ip}"
        if self.host.public_ip:
            detected += f", public {self.host.public_ip}"
        self.report.pass_phase('probe_host', f"{detected} ({self.host.package_manager})")
        return True

    def _run_phase(self, phase_name: str, action: Any) -> bool:
        """Run one phase. Returns True when the run may continue."""
        try:
            result = action.run(self.config, self.host, self.context)
        except ExternalCommandError as e:
            logger.error(f"Phase {phase_name} failed: {e}")
            self.report.fail_phase(phase_name, str(e), command=' '.join(e.cmd), returncode=e.returncode)
            self.exit_code = _exit_code(e.returncode)
            return False
        except (DetectionError, ConfigError) as e:
            logger.error(f"Phase {phase_name} failed: {e}")
            self.report.fail_phase(phase_name, str(e))
            self.exit_code = 1
            return False
        except Exception as e:  # pylint: disable=broad-except
            logger.exception(f"Phase {phase_name} raised exception")
            self.report.fail_phase(phase_name, str(e))
            self.exit_code = 1
            return False

        if not result.success:
            logger.error(f"Phase {phase_name} failed: {result.message}")
            self.report.fail_phase(
                phase_name, result.message, result.duration,
                command=result.command, returncode=result.returncode if result.command else None
            )
            self.exit_code = _exit_code(result.returncode)
            return False

        if result.warning:
            logger.warning(f"Phase {phase_name} passed with warning: {result.message}")
            self.report.warn_phase(phase_name, result.message, result.duration)
        else:
            logger.info(f"Phase {phase_name} passed")
            self.report.pass_phase(phase_name, result.message, result.duration)
        self.context.update(result.context_updates or {})
        return True

    def run(self) -> bool:
        """Run all phases. Returns True if all passed."""
        if self.dry_run:
            return self.preview()

        timeout_msg = f" (timeout: {self.timeout}s)" if self.timeout else ""
        logger.info(f"Starting scenario '{self.scenario.name}' on node: {self.config.name}{timeout_msg}")
        self.report.start()
        start_time = time.time()

        all_passed = self._probe()
        if all_passed:
            for phase_name, action, description in self.scenario.get_phases(self.config):
                if self.timeout:
                    elapsed = time.time() - start_time
                    if elapsed >= self.timeout:
                        logger.error(f"Scenario timeout ({self.timeout}s) exceeded after {elapsed:.1f}s")
                        self.report.fail_phase(phase_name, f"Timeout exceeded ({elapsed:.1f}s >= {self.timeout}s)")
                        self.exit_code = 1
                        all_passed = False
                        break

                if phase_name in self.skip_phases:
                    logger.info(f"Skipping phase: {phase_name}")
                    self.report.skip_phase(phase_name, description)
                    continue

                logger.info(f"Running phase: {phase_name} - {description}")
                self.report.start_phase(phase_name, description)
                if not self._run_phase(phase_name, action):
                    all_passed = False
                    break

        total_time = time.time() - start_time
        logger.info(f"Scenario completed in {total_time:.1f}s")
        self.report.finish(all_passed, self.exit_code)
        return all_passed


# Registry of available scenarios
_scenarios: dict[str, type] = {}


def register_scenario(cls: type) -> type:
    """Decorator to register a scenario class."""
    _scenarios[cls.name] = cls
    return cls


def get_scenario(name: str) -> Scenario:
    """Get a scenario instance by name."""
    if name not in _scenarios:
        available = list(_scenarios.keys())
        raise ValueError(f"Unknown scenario: {name}. Available: {available}")
    scenario: Scenario = _scenarios[name]()
    return scenario


def list_scenarios() -> list[str]:
    """List available scenario names."""
    return sorted(_scenarios.keys())


# Import scenarios to trigger registration
from kube_driver.scenarios import node_setup  # noqa: E402, F401
from kube_driver.scenarios import control_plane  # noqa: E402, F401
from kube_driver.scenarios import worker_join  # noqa: E402, F401
from kube_driver.scenarios import cluster_bootstrap  # noqa: E402, F401
from kube_driver.scenarios import repair_network  # noqa: E402, F401
from kube_driver.scenarios import shell_alias  # noqa: E402, F401
