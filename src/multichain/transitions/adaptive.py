"""
Adaptive Random Walk Metropolis-Hastings (ARWMH)

Haario-style adaptive Metropolis with one running covariance per chain.

Proposal:
    x' ~ N(x, 0.1^2 / D * I)          first 100*D samples of a chain, or with probability beta
    x' ~ N(x, scale * Sigma_chain)    otherwise

where Sigma_chain is the running sample covariance of that chain's states
and scale defaults to 2.38^2 / D. Accepted states are always pushed into
the running covariance; rejected (repeated) states only once the chain has
taken more than thinning_interval * warmup_iterations samples.

When MAP initialization succeeded, every running covariance is hot-started
from the Laplace covariance.
"""

from typing import List, Optional

import numpy as np

from .base import TransitionStrategy, regularized_cholesky
from .rand_walk import default_sigma


class RunningCovariance:
    """Welford accumulator for the mean and covariance of pushed vectors."""

    def __init__(self, dimension: int, initial=None):
        self.n = 0
        self.mean = np.zeros(dimension)
        # Sum of outer products of deviations (M2)
        self.scatter = np.zeros((dimension, dimension))
        if initial is not None:
            # Hot start from a (mean, covariance) pair, weighted as two samples
            mean, covariance = initial
            self.n = 2
            self.mean = np.array(mean, dtype=np.float64)
            self.scatter = np.array(covariance, dtype=np.float64)

    def push(self, x: np.ndarray) -> None:
        self.n += 1
        delta = x - self.mean
        self.mean = self.mean + delta / self.n
        self.scatter = self.scatter + np.outer(delta, x - self.mean)

    @property
    def covariance(self) -> np.ndarray:
        if self.n < 2:
            return np.zeros_like(self.scatter)
        return self.scatter / (self.n - 1)


class AdaptiveMetropolis(TransitionStrategy):
    """Adaptive random walk Metropolis-Hastings."""

    name = 'arwmh'

    def __init__(self, scale: Optional[float] = None, beta: float = 0.05):
        super().__init__()
        self.scale = scale
        self.beta = beta
        self.running: List[RunningCovariance] = []

    def validate(self, config, number_of_parameters) -> List[str]:
        errors = []
        if self.scale is not None and not self.scale > 0:
            errors.append(f"ARWMH scale must be > 0, got {self.scale}")
        if not 0 <= self.beta <= 1:
            errors.append(f"ARWMH beta must be in [0, 1], got {self.beta}")
        return errors

    def bind(self, context):
        super().bind(context)
        d = context.number_of_parameters
        self.effective_scale = self.scale if self.scale is not None else 2.38 ** 2 / d
        self.identity_cholesky = regularized_cholesky(default_sigma(d))
        self.adapt_after = 100 * d
        self.warmup_samples = context.config.thinning_interval * context.config.warmup_iterations
        self.running = [RunningCovariance(d, context.gaussian) for _ in range(context.config.number_of_chains)]

    def _proposal_cholesky(self, chain_index: int, rng: np.random.Generator) -> np.ndarray:
        # Count the sample about to be taken
        samples = self.context.sample_count[chain_index] + 1
        if rng.random() <= self.beta or samples <= self.adapt_after:
            return self.identity_cholesky
        try:
            return regularized_cholesky(self.effective_scale * self.running[chain_index].covariance)
        except np.linalg.LinAlgError:
            return self.identity_cholesky

    def advance(self, chain_index, state):
        ctx = self.context
        rng = ctx.rngs[chain_index]
        cholesky = self._proposal_cholesky(chain_index, rng)

        proposal = state.values + cholesky @ rng.standard_normal(state.values.shape[0])
        new_state = self.metropolis_step(chain_index, state, proposal)

        if new_state is not state:
            self.running[chain_index].push(new_state.values)
        elif ctx.sample_count[chain_index] > self.warmup_samples:
            self.running[chain_index].push(state.values)
        return new_state
