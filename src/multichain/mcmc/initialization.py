"""
Chain Initialization.

Produces exactly one starting TrialPoint per chain before the first outer
iteration:
- randomize_chains: Elitist pick from stratified draws over the priors
- map_chains: Draws from a Laplace approximation around the mode; any
  failure falls back to randomize_chains with the same seed
- resume_chains: Last recorded state of each chain of an earlier run
- initialize_chains: Dispatch on RunConfiguration.initialization
"""

import math
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np
from scipy.stats import norm

from ..error_handling import ResumeError
from ..priors import Prior, prior_bounds, prior_means
from ..stratified import stratified_quantiles
from .mode_finder import DifferentialEvolutionModeFinder, ModeFinder
from .types import InitializationMethod, RunConfiguration, RunState, TrialPoint

import logging
logger = logging.getLogger('multichain')


# Inflation of the inverse negative Hessian, so initial draws cover more
# than the immediate neighbourhood of the mode.
MAP_COVARIANCE_SCALE = 3.0


@dataclass
class InitialPopulation:
    """
    Output of an initialization strategy.

    Attributes:
        states: One starting point per chain
        candidates: Every evaluated candidate, in evaluation order (seeds the
            population matrix of population-based strategies)
        method: Method that actually produced the states (RANDOMIZE after a
            MAP fallback)
        gaussian: (mean, covariance) of the Laplace approximation when MAP
            initialization succeeded
        mode: Best point found by the mode search when it succeeded
    """
    states: List[TrialPoint]
    candidates: List[TrialPoint] = field(default_factory=list)
    method: InitializationMethod = InitializationMethod.RANDOMIZE
    gaussian: Optional[Tuple[np.ndarray, np.ndarray]] = None
    mode: Optional[TrialPoint] = None


def _evaluate(log_likelihood: Callable, values) -> TrialPoint:
    values = np.asarray(values, dtype=np.float64)
    return TrialPoint(values, float(log_likelihood(values)))


def _fitness_rank(point: TrialPoint):
    """Sort key: descending fitness, NaN last."""
    return (math.isnan(point.fitness), -point.fitness if not math.isnan(point.fitness) else 0.0)


def initial_quantiles(config: RunConfiguration, number_of_parameters: int) -> np.ndarray:
    """Stratified quantile rows shared by the Randomize and MAP strategies."""
    return stratified_quantiles(config.initial_iterations, number_of_parameters, seed=config.prng_seed)


# ============================================================================
# RANDOMIZE
# ============================================================================

def randomize_chains(config: RunConfiguration, priors: Sequence[Prior],
                     log_likelihood: Callable,
                     quantiles: Optional[np.ndarray] = None) -> InitialPopulation:
    """
    Seed chains with the fittest of initial_iterations stratified candidates.

    Candidate 0 is the vector of prior means; candidate k (k >= 1) maps
    quantile row k through each prior's inverse CDF. Candidates are stably
    sorted by fitness, highest first, and the top number_of_chains are used.

    Args:
        config: Run configuration (initial_iterations, number_of_chains, prng_seed)
        priors: One prior per parameter
        log_likelihood: fn(values) -> float
        quantiles: Precomputed quantile matrix (defaults to initial_quantiles())

    Returns:
        InitialPopulation
    """
    if quantiles is None:
        quantiles = initial_quantiles(config, len(priors))

    candidates = [_evaluate(log_likelihood, prior_means(priors))]
    for row in quantiles[1:config.initial_iterations]:
        values = [float(prior.inverse_cdf(u)) for prior, u in zip(priors, row)]
        candidates.append(_evaluate(log_likelihood, values))

    ranked = sorted(candidates, key=_fitness_rank)
    states = [point.clone() for point in ranked[:config.number_of_chains]]
    return InitialPopulation(states, candidates, InitializationMethod.RANDOMIZE)


# ============================================================================
# MAP
# ============================================================================

def laplace_approximation(hessian: Optional[np.ndarray],
                          scale: float = MAP_COVARIANCE_SCALE) -> Tuple[np.ndarray, np.ndarray]:
    """
    Covariance and lower Cholesky factor from the Hessian at the mode.

    covariance = scale * inv(-H)

    Raises:
        np.linalg.LinAlgError: If the Hessian is missing, non-finite or
            singular, or the covariance is not positive definite
    """
    if hessian is None or not np.all(np.isfinite(hessian)):
        raise np.linalg.LinAlgError("Hessian is missing or not finite")

    covariance = scale * np.linalg.inv(-np.asarray(hessian, dtype=np.float64))
    covariance = 0.5 * (covariance + covariance.T)
    if not np.all(np.isfinite(covariance)):
        raise np.linalg.LinAlgError("Covariance is not finite")

    return covariance, np.linalg.cholesky(covariance)


def map_chains(config: RunConfiguration, priors: Sequence[Prior],
               log_likelihood: Callable,
               mode_finder: Optional[ModeFinder] = None) -> InitialPopulation:
    """
    Seed chains from a Laplace approximation around the mode.

    Candidate i is mode + L @ norm.ppf(u_i) for the same quantile rows
    Randomize would use; the first number_of_chains candidates are used.
    Mode search or covariance failures, including exceptions raised by the
    mode finder, are not raised: they are logged and randomize_chains() is
    returned instead.
    """
    quantiles = initial_quantiles(config, len(priors))
    finder = mode_finder if mode_finder is not None else DifferentialEvolutionModeFinder()
    lower, upper = prior_bounds(priors)

    reason = None
    try:
        result = finder.maximize(log_likelihood, lower, upper, seed=config.prng_seed)
        if result.success:
            covariance, cholesky = laplace_approximation(result.hessian)
        else:
            reason = f"mode search failed: {result.message}"
    except Exception as e:
        reason = f"{type(e).__name__}: {e}"

    if reason is not None:
        logger.info(f"MAP initialization unavailable ({reason}); falling back to {InitializationMethod.RANDOMIZE}")
        return randomize_chains(config, priors, log_likelihood, quantiles)

    mode = result.best
    tiny = np.finfo(np.float64).tiny
    z = norm.ppf(np.clip(quantiles, tiny, None))
    candidates = [_evaluate(log_likelihood, mode.values + cholesky @ row) for row in z]
    states = [point.clone() for point in candidates[:config.number_of_chains]]

    logger.info(f"Mode found with log-likelihood {mode.fitness:.6g}")
    return InitialPopulation(
        states,
        candidates,
        InitializationMethod.MAP,
        gaussian=(mode.values.copy(), covariance),
        mode=mode.clone(),
    )


# ============================================================================
# USER DEFINED (RESUME)
# ============================================================================

def resume_chains(config: RunConfiguration, previous: Optional[RunState]) -> InitialPopulation:
    """
    Start each chain from the last entry of its trace in an earlier run.

    Raises:
        ResumeError: If there is no earlier run state, a chain has an empty
            trace, or the chain count differs from the configuration
    """
    if previous is None or any(len(trace) == 0 for trace in previous.chain_traces):
        raise ResumeError(
            "User-defined initialization needs a recorded trace for every chain; "
            "run sample() or restore a checkpoint first"
        )
    if previous.number_of_chains != config.number_of_chains:
        raise ResumeError(
            f"Cannot resume {previous.number_of_chains} recorded chains with "
            f"number_of_chains={config.number_of_chains}"
        )

    states = [trace[-1].clone() for trace in previous.chain_traces]
    return InitialPopulation(states, [p.clone() for p in states], InitializationMethod.USER_DEFINED)


def initialize_chains(config: RunConfiguration, priors: Sequence[Prior],
                      log_likelihood: Callable,
                      mode_finder: Optional[ModeFinder] = None,
                      previous: Optional[RunState] = None) -> InitialPopulation:
    """
    Build the starting states for config.initialization.

    Args:
        config: Validated run configuration
        priors: One prior per parameter
        log_likelihood: fn(values) -> float
        mode_finder: Used by MAP initialization (default differential evolution)
        previous: Run state of an earlier run, used by USER_DEFINED

    Returns:
        InitialPopulation with exactly config.number_of_chains states
    """
    method = config.initialization
    logger.info(f"Initializing {config.number_of_chains} chain(s): {method}")

    if method == InitializationMethod.USER_DEFINED:
        return resume_chains(config, previous)
    if method == InitializationMethod.MAP:
        return map_chains(config, priors, log_likelihood, mode_finder)
    return randomize_chains(config, priors, log_likelihood)
