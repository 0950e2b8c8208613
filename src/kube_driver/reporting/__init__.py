"""Run reports and operator summaries."""

from kube_driver.reporting.report import PROBE, STEP, PhaseResult, RunReport

__all__ = ['PROBE', 'STEP', 'PhaseResult', 'RunReport']
