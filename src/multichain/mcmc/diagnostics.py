"""
MCMC Diagnostics.

Convergence and efficiency diagnostics for finished runs:
- compute_rhat: Gelman-Rubin potential scale reduction factor per parameter
- autocorrelation: Sample autocorrelation function of a series
- effective_sample_size: ESS from the ACF truncated at the first lag below 0.05
- minimum_sample_size: Output length needed to estimate a quantile
- print_rhat_summary: Log R-hat statistics with a convergence check
- print_acceptance_summary: Log acceptance rate statistics

None of these are needed to run the sampler; they only read its run state.
"""

import math
from typing import Optional

import jax
import jax.numpy as jnp
import numpy as np
from scipy.stats import norm

import logging
logger = logging.getLogger('multichain')


RHAT_THRESHOLD = 1.1


@jax.jit
def _gelman_rubin(history: jnp.ndarray) -> jnp.ndarray:
    n_samples = history.shape[0]

    chain_means = jnp.mean(history, axis=0)                   # (n_chains, n_params)
    # B = n * var(chain_means)
    B = n_samples * jnp.var(chain_means, axis=0, ddof=1)
    # W = average within-chain variance
    W = jnp.mean(jnp.var(history, axis=0, ddof=1), axis=0)

    V = ((n_samples - 1) * W + B) / n_samples
    return jnp.sqrt(V / W)


def compute_rhat(history, warmup_iterations: int = 0) -> np.ndarray:
    """
    Gelman-Rubin R-hat.

    Args:
        history: Trace array (n_recorded, n_chains, n_params), as returned
            by RunState.history()
        warmup_iterations: Leading entries of every chain to discard

    Returns:
        (n_params,) array of R-hat values; all NaN with fewer than 2 chains

    Raises:
        ValueError: If fewer than 2 entries per chain remain after warmup
    """
    history = np.asarray(history, dtype=np.float64)
    if warmup_iterations < 0:
        raise ValueError(f"warmup_iterations must be non-negative, got {warmup_iterations}")

    n_params = history.shape[2]
    if history.shape[1] < 2:
        return np.full(n_params, np.nan)

    history = history[warmup_iterations:]
    if history.shape[0] < 2:
        raise ValueError("At least two post-warmup iterations are needed to compute R-hat")

    # Computed in JAX's default precision (float32 unless x64 is enabled)
    rhat = _gelman_rubin(jnp.asarray(history))
    return np.asarray(jax.device_get(rhat), dtype=np.float64)


def autocorrelation(x, max_lag: Optional[int] = None) -> np.ndarray:
    """
    Sample autocorrelation of a 1D series for lags 0..max_lag.

    Args:
        x: Series
        max_lag: Largest lag (default ceil(n / 2))

    Returns:
        Array of length max_lag + 1 with acf[0] == 1 (all NaN for a constant series)
    """
    x = np.asarray(x, dtype=np.float64)
    n = x.shape[0]
    if max_lag is None:
        max_lag = math.ceil(n / 2)
    max_lag = min(max_lag, n - 1)

    centered = x - x.mean()
    denominator = np.dot(centered, centered)
    if denominator == 0:
        return np.full(max_lag + 1, np.nan)
    return np.array([np.dot(centered[:n - k], centered[k:]) / denominator for k in range(max_lag + 1)])


def effective_sample_size(x) -> float:
    """
    Effective sample size of a 1D series.

    ESS = N / (1 + 2 * sum(rho_k)), summing the autocorrelations from lag 1
    until the first one below 0.05, capped at N.
    """
    n = len(x)
    if n < 2:
        return float(n)

    acf = autocorrelation(x)
    rho = 0.0
    for value in acf[1:]:
        if not value >= 0.05:
            break
        rho += value
    return float(min(n / (1.0 + 2.0 * rho), n))


def minimum_sample_size(quantile: float, tolerance: float, probability: float) -> int:
    """
    Output length needed to estimate a quantile within +/- tolerance with
    the given probability, rounded to the nearest hundred (Raftery-Lewis).
    """
    z = norm.ppf(0.5 * (probability + 1.0))
    n = quantile * (1.0 - quantile) * z ** 2 / tolerance ** 2
    return int(round(n / 100.0)) * 100


def print_rhat_summary(rhat: np.ndarray, threshold: float = RHAT_THRESHOLD) -> bool:
    """
    Log R-hat statistics.

    Returns:
        True when every finite R-hat is below threshold and none are NaN
    """
    rhat = np.asarray(rhat)
    if rhat.size == 0 or np.all(np.isnan(rhat)):
        logger.info("R-hat unavailable (fewer than two chains)")
        return False

    logger.info(f"--- Gelman-Rubin R-hat ({rhat.size} params) ---")
    logger.info(f"  Max: {np.nanmax(rhat):.4f}  Median: {np.nanmedian(rhat):.4f}")

    n_nan = int(np.sum(~np.isfinite(rhat)))
    if n_nan > 0:
        logger.warning(f"  {n_nan} param(s) have NaN/Inf R-hat (stuck chains)")

    converged = n_nan == 0 and np.nanmax(rhat) < threshold
    if converged:
        logger.info(f"  Converged (max < {threshold:.2f})")
    else:
        logger.warning(f"  Not Converged (max = {np.nanmax(rhat):.4f} >= {threshold:.2f})")
    return bool(converged)


def print_acceptance_summary(acceptance_rates: np.ndarray) -> None:
    """
    Log summary statistics for per-chain acceptance rates.

    Args:
        acceptance_rates: RunState.acceptance_rates
    """
    rates = np.asarray(acceptance_rates, dtype=np.float64)
    rates = rates[np.isfinite(rates)]
    if rates.size == 0:
        return

    logger.info(f"--- Acceptance Rates ({rates.size} chains) ---")
    logger.info(f"  Mean: {np.mean(rates):.1%}  Median: {np.median(rates):.1%}  "
                f"Min: {np.min(rates):.1%}  Max: {np.max(rates):.1%}")

    low_count = int(np.sum(rates < 0.10))
    if low_count:
        logger.warning(f"  {low_count} chain(s) have acceptance rate < 10%")
