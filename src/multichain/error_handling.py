"""
Error Handling and Validation Utilities for the MCMC Engine

This module provides the exception types raised by the engine, the
run-configuration validator, and post-run diagnostic checks.
"""

from typing import Any, Dict, Iterable, Optional

import numpy as np

import logging
logger = logging.getLogger('multichain')


class InvalidConfigurationError(ValueError):
    """Raised when a run configuration fails validation.

    All violated constraints are collected and reported together in
    ``errors``; no chain advances once this has been raised.
    """

    def __init__(self, errors):
        self.errors = list(errors)
        super().__init__("Invalid MCMC configuration:\n  " + "\n  ".join(self.errors))


class ResumeError(RuntimeError):
    """Raised when chains cannot be resumed from an existing run state."""


def validate_run_config(config, number_of_parameters: Optional[int] = None,
                        extra_errors: Optional[Iterable[str]] = None) -> None:
    """
    Validates that a run configuration is sensible.

    Args:
        config: RunConfiguration to check
        number_of_parameters: Number of priors supplied (checked when given)
        extra_errors: Errors reported by the transition strategy's own checks

    Raises:
        InvalidConfigurationError: If any constraint is violated
    """
    errors = []

    if config.number_of_chains < 1:
        errors.append(f"number_of_chains must be >= 1, got {config.number_of_chains}")

    if config.iterations < 100:
        errors.append(f"iterations must be >= 100, got {config.iterations}")

    if config.warmup_iterations < 1:
        errors.append(f"warmup_iterations must be >= 1, got {config.warmup_iterations}")
    elif config.warmup_iterations > config.iterations // 2:
        errors.append(
            f"warmup_iterations ({config.warmup_iterations}) cannot exceed half of "
            f"iterations ({config.iterations // 2})"
        )

    if config.thinning_interval < 1:
        errors.append(f"thinning_interval must be >= 1, got {config.thinning_interval}")

    if config.initial_iterations < config.number_of_chains:
        errors.append(
            f"initial_iterations ({config.initial_iterations}) cannot be less than "
            f"number_of_chains ({config.number_of_chains})"
        )

    if not isinstance(config.prng_seed, (int, np.integer)) or config.prng_seed < 0:
        errors.append(f"prng_seed must be a non-negative integer, got {config.prng_seed!r}")

    if config.output_length < 100:
        errors.append(f"output_length must be >= 100, got {config.output_length}")

    if not 0 < config.progress_rate <= 1:
        errors.append(f"progress_rate must be in (0, 1], got {config.progress_rate}")

    if config.max_workers is not None and config.max_workers < 1:
        errors.append(f"max_workers must be >= 1, got {config.max_workers}")

    if number_of_parameters is not None and number_of_parameters < 1:
        errors.append(f"At least one prior distribution is required, got {number_of_parameters}")

    if extra_errors:
        errors.extend(extra_errors)

    if errors:
        raise InvalidConfigurationError(errors)


def diagnose_sampler_issues(run_state, diagnostics: Optional[Dict[str, Any]] = None,
                            low_acceptance: float = 0.1,
                            high_acceptance: float = 0.9) -> Dict[str, Any]:
    """
    Analyzes a finished run to identify common issues.

    Args:
        run_state: RunState returned by MCMCSampler.sample()
        diagnostics: Existing diagnostics dict; new findings are appended
            to its issues, warnings and info lists
        low_acceptance: Acceptance rate below which a chain is flagged
        high_acceptance: Acceptance rate above which a chain is flagged

    Returns:
        diagnostics: Dictionary with issues, warnings, and info
    """
    diagnostics = diagnostics if diagnostics is not None else {}
    for key in ('issues', 'warnings', 'info'):
        diagnostics.setdefault(key, [])

    output = [
        np.array([point.values for point in buffer])
        for buffer in run_state.output_buffers if buffer
    ]

    if output:
        # Check for NaN/Inf in the posterior output
        if not all(np.all(np.isfinite(chain)) for chain in output):
            diagnostics['issues'].append(
                "Output contains NaN or Inf values - sampler became unstable"
            )

        # Check for stuck chains (variance near zero)
        stuck_chains = sum(
            1 for chain in output
            if len(chain) > 1 and np.all(np.var(chain, axis=0) < 1e-10)
        )
        if stuck_chains > 0:
            diagnostics['warnings'].append(
                f"{stuck_chains} chain(s) appear stuck (near-zero variance)"
            )

    rates = run_state.acceptance_rates
    with np.errstate(invalid='ignore'):
        low = np.sum(rates < low_acceptance)
        high = np.sum(rates > high_acceptance)
    if low > 0:
        diagnostics['warnings'].append(
            f"{low} chain(s) have acceptance rate below {low_acceptance:.0%}"
        )
    if high > 0:
        diagnostics['warnings'].append(
            f"{high} chain(s) have acceptance rate above {high_acceptance:.0%}"
        )

    # Summary info
    diagnostics['info'].append(f"Total output samples: {run_state.output_count}")
    diagnostics['info'].append(f"Number of chains: {len(run_state.chain_traces)}")
    diagnostics['info'].append(
        f"Recorded iterations per chain: {len(run_state.chain_traces[0]) if run_state.chain_traces else 0}"
    )

    return diagnostics


def print_diagnostics(diagnostics: Dict[str, Any]) -> None:
    """Pretty-print diagnostics from diagnose_sampler_issues."""
    if diagnostics['issues']:
        logger.error("[ERROR] ISSUES:")
        for issue in diagnostics['issues']:
            logger.error(f"  - {issue}")

    if diagnostics['warnings']:
        logger.warning("[WARN] WARNINGS:")
        for warning in diagnostics['warnings']:
            logger.warning(f"  - {warning}")

    if diagnostics['info']:
        logger.info("[INFO] INFO:")
        for info in diagnostics['info']:
            logger.info(f"  - {info}")

    if not diagnostics['issues'] and not diagnostics['warnings']:
        logger.info("[OK] No issues detected")
