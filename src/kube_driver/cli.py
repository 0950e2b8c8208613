#!/usr/bin/env python3
"""CLI entry point for kube-driver.

Runs provisioning scenarios on the local node:
- kube-driver scenario run node-setup
- kube-driver scenario run control-plane --public-ip true
- kube-driver --scenario worker-join --config /etc/kube-driver/node.yaml
"""

import argparse
import contextlib
import dataclasses
import json
import logging
import socket
import subprocess
import sys
from pathlib import Path

from kube_driver.config import (
    ConfigError,
    InvalidConfigurationError,
    load_node_config,
    parse_public_ip_access,
    parse_role,
)
from kube_driver.readiness import (
    format_preflight_results,
    run_preflight_checks,
    validate_join_inputs,
    validate_readiness,
)
from kube_driver.scenarios import Orchestrator, get_scenario, list_scenarios


def get_version():
    """Get version from git tags (do not use hardcoded VERSION constant)."""
    try:
        result = subprocess.run(
            ['git', 'describe', '--tags', '--abbrev=0'],
            capture_output=True, text=True,
            cwd=Path(__file__).parent,
            check=False,
        )
        return result.stdout.strip() if result.returncode == 0 else 'dev'
    except OSError:
        return 'dev'

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [%(levelname)s] %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger(__name__)


def print_usage():
    """Print top-level usage."""
    print(f"kube-driver {get_version()}")
    print()
    print("Usage: kube-driver scenario run <name> [options]")
    print()
    print("Scenarios:")
    for name in list_scenarios():
        print(f"  {name:<20} {get_scenario(name).description}")
    print()
    print("Examples:")
    print("  kube-driver scenario run node-setup")
    print("  kube-driver scenario run control-plane --public-ip true")
    print("  kube-driver scenario run worker-join --config node.yaml")
    print("  kube-driver scenario run cluster-bootstrap --dry-run")


def _handle_scenario_verb(argv: list[str]) -> tuple[list[str], int | None]:
    """Rewrite 'scenario run <name>' to '--scenario <name>' format.

    Returns:
        (argv, exit_code): rewritten arguments. If exit_code is not None,
        main() should return it.
    """
    if not argv or argv[0] != 'scenario':
        return (argv, None)

    if len(argv) >= 2 and argv[1] == 'run':
        if len(argv) < 3 or argv[2].startswith('-'):
            if '--help' in argv or '-h' in argv:
                return (['--list-scenarios'], None)
            print("Usage: kube-driver scenario run <name> [options]")
            print("\nRun 'kube-driver scenario --help' to list available scenarios.")
            return (argv, 1)
        return (['--scenario', argv[2]] + argv[3:], None)

    if len(argv) < 2 or argv[1].startswith('-'):
        if '--help' in argv or '-h' in argv:
            return (['--list-scenarios'], None)
        print("Usage: kube-driver scenario run <name> [options]")
        print("\nRun 'kube-driver scenario --help' to list available scenarios.")
        return (argv, 1)

    # Short form: scenario node-setup
    return (['--scenario', argv[1]] + argv[2:], None)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Kubernetes node driver - bootstraps containerd, kubeadm and Calico on Amazon Linux'
    )
    parser.add_argument(
        '--version',
        action='version',
        version=f'kube-driver {get_version()}'
    )
    parser.add_argument(
        '--scenario', '-S',
        choices=list_scenarios(),
        help=argparse.SUPPRESS  # Hidden: use 'scenario run' verb instead
    )
    parser.add_argument(
        '--config', '-c',
        type=Path,
        help='Node config file (default: $KUBE_DRIVER_CONFIG, ./node.yaml, /etc/kube-driver/node.yaml)'
    )
    parser.add_argument(
        '--role',
        help='Cluster role: control-plane or worker. Overrides the config file.'
    )
    parser.add_argument(
        '--public-ip',
        metavar='true|false',
        help='Advertise the public IP instead of the private one. Overrides public_ip_access.'
    )
    parser.add_argument(
        '--pod-cidr',
        help='Pod network CIDR (default: 192.168.0.0/16)'
    )
    parser.add_argument(
        '--calico-version',
        help='Pinned Calico release (e.g., v3.25.1). Overrides calico.version.'
    )
    parser.add_argument(
        '--report-dir', '-r',
        type=Path,
        help='Write JSON and Markdown run reports to this directory (e.g., /var/log/kube-driver)'
    )
    parser.add_argument(
        '--skip', '-s',
        action='append',
        default=[],
        help='Phases to skip (can be repeated)'
    )
    parser.add_argument(
        '--list-scenarios',
        action='store_true',
        help='List available scenarios and exit'
    )
    parser.add_argument(
        '--list-phases',
        action='store_true',
        help='List phases for the selected scenario and exit'
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose logging'
    )
    parser.add_argument(
        '--timeout', '-t',
        type=int,
        help='Overall scenario timeout in seconds. Checked between phases (does not interrupt running phases).'
    )
    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Show what would be executed without running actions'
    )
    parser.add_argument(
        '--preflight',
        action='store_true',
        help='Run preflight checks only (no scenario execution)'
    )
    parser.add_argument(
        '--skip-preflight',
        action='store_true',
        help='Skip preflight checks before scenario execution'
    )
    parser.add_argument(
        '--json-output',
        action='store_true',
        help='Output structured JSON to stdout (logs go to stderr)'
    )
    return parser


def apply_overrides(config, args):
    """Return config with CLI overrides applied (CLI takes precedence)."""
    changes = {}
    if args.role:
        changes['role'] = parse_role(args.role)
    if args.public_ip is not None:
        changes['public_ip_access'] = parse_public_ip_access(args.public_ip)
    if args.pod_cidr:
        changes['pod_cidr'] = args.pod_cidr
    if args.calico_version:
        if args.calico_version == 'latest':
            raise InvalidConfigurationError("--calico-version must be pinned, not 'latest'")
        changes['calico'] = dataclasses.replace(config.calico, version=args.calico_version)
    if changes:
        logger.debug(f"CLI overrides: {sorted(changes)}")
        config = dataclasses.replace(config, **changes)
    return config


def _load_config(args):
    """Load and override node config. Returns (config, exit_code)."""
    try:
        config = apply_overrides(load_node_config(args.config), args)
    except ConfigError as e:
        print(f"Error: {e}")
        return (None, 1)
    if config.config_file:
        logger.info(f"Using config: {config.config_file}")
    return (config, None)


def _redirect_logs_to_stderr():
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(logging.Formatter(
        '%(asctime)s [%(levelname)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    ))
    root_logger.addHandler(stderr_handler)


def _list_scenarios():
    print("Available scenarios:")
    for name in list_scenarios():
        scenario = get_scenario(name)
        runtime = getattr(scenario, 'expected_runtime', None)
        if runtime:
            # Format runtime nicely (e.g., 30 -> "~30s", 540 -> "~9m")
            if runtime >= 60:
                runtime_str = f"~{runtime // 60}m"
            else:
                runtime_str = f"~{runtime}s"
            print(f"  {name:20} {runtime_str:>6}  {scenario.description}")
        else:
            print(f"  {name:20}         {scenario.description}")


def _handle_results(args, orchestrator, success: bool) -> int:
    """Print JSON output if requested and return the exit code."""
    if args.json_output:
        report_data = orchestrator.report.to_dict(orchestrator.context)
        print(json.dumps(report_data, indent=2, default=str))

    if success:
        return 0
    code: int = orchestrator.exit_code or 1
    print(f"Error: scenario '{args.scenario}' failed (exit code {code})", file=sys.stderr)
    return code


def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    argv = list(sys.argv[1:] if argv is None else argv)
    argv, exit_code = _handle_scenario_verb(argv)
    if exit_code is not None:
        return exit_code

    if not argv:
        print_usage()
        return 0

    if not argv[0].startswith('-'):
        print(f"Error: Unknown command '{argv[0]}'")
        print_usage()
        return 1

    args = build_parser().parse_args(argv)

    if args.json_output:
        _redirect_logs_to_stderr()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if args.list_scenarios:
        _list_scenarios()
        return 0

    config, exit_code = _load_config(args)
    if exit_code is not None:
        return exit_code

    scenario = get_scenario(args.scenario) if args.scenario else None

    # Handle --preflight mode (standalone check)
    if args.preflight:
        hostname = socket.gethostname()
        logger.info(f"Running preflight checks for {hostname}")
        success, results = run_preflight_checks(config, scenario)
        print(format_preflight_results(hostname, results))
        return 0 if success else 1

    if scenario is None:
        _list_scenarios()
        print("\nUsage: kube-driver scenario run <name>")
        return 0

    if args.list_phases:
        print(f"Phases for scenario '{args.scenario}':")
        for name, _action, desc in scenario.get_phases(config):
            print(f"  {name}: {desc}")
        return 0

    if not args.dry_run:
        if join_errors := validate_join_inputs(config, scenario):
            print(f"Error: {join_errors[0]}")
            return 1

    # Pre-flight validation (skip for --skip-preflight, --dry-run)
    if not args.skip_preflight and not args.dry_run:
        errors = validate_readiness(config, scenario)
        if errors:
            out = sys.stderr if args.json_output else sys.stdout
            print("\nPre-flight validation failed:", file=out)
            for error in errors:
                print(f"  ✗ {error}", file=out)
            print("\nUse --skip-preflight to bypass these checks", file=out)
            print(file=out)
            return 1
        logger.info("Pre-flight validation passed")

    orchestrator = Orchestrator(
        scenario=scenario,
        config=config,
        report_dir=args.report_dir,
        skip_phases=args.skip,
        timeout=args.timeout,
        dry_run=args.dry_run
    )

    if args.json_output:
        # stdout carries only the JSON report; phase output goes to stderr
        with contextlib.redirect_stdout(sys.stderr):
            success = orchestrator.run()
    else:
        success = orchestrator.run()
    return _handle_results(args, orchestrator, success)


if __name__ == '__main__':
    sys.exit(main())
