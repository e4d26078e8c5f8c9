"""
Random Walk Metropolis-Hastings (RWMH)

Proposal: x' ~ N(x_current, sigma)

sigma is, in order of precedence:
    - the covariance passed to the constructor
    - the Laplace covariance from a successful MAP initialization
    - 0.1^2 / D * I

Hastings ratio: 0 (symmetric proposal). Proposals outside the prior
support are rejected without evaluating the log-likelihood.
"""

from typing import List, Optional

import numpy as np

from .base import TransitionStrategy, regularized_cholesky


def default_sigma(number_of_parameters: int) -> np.ndarray:
    """Small isotropic proposal covariance, 0.1^2 / D * I."""
    return np.eye(number_of_parameters) * (0.1 ** 2 / number_of_parameters)


class RandomWalkMetropolis(TransitionStrategy):
    """Random walk Metropolis-Hastings with a fixed Gaussian proposal."""

    name = 'rwmh'

    def __init__(self, proposal_sigma: Optional[np.ndarray] = None):
        super().__init__()
        self.proposal_sigma = None if proposal_sigma is None else np.atleast_2d(
            np.asarray(proposal_sigma, dtype=np.float64))
        self._cholesky = None

    def validate(self, config, number_of_parameters) -> List[str]:
        errors = []
        sigma = self.proposal_sigma
        if sigma is not None:
            if sigma.shape[0] != sigma.shape[1]:
                errors.append(f"RWMH proposal_sigma must be square, got shape {sigma.shape}")
            elif sigma.shape[0] != number_of_parameters:
                errors.append(
                    f"RWMH proposal_sigma is {sigma.shape[0]}x{sigma.shape[1]} but there are "
                    f"{number_of_parameters} parameters"
                )
            elif not np.all(np.isfinite(sigma)):
                errors.append("RWMH proposal_sigma contains NaN or Inf")
        return errors

    def bind(self, context):
        super().bind(context)
        if self.proposal_sigma is not None:
            sigma = self.proposal_sigma
        elif context.gaussian is not None:
            sigma = context.gaussian[1]
        else:
            sigma = default_sigma(context.number_of_parameters)
        self.sigma = sigma
        self._cholesky = regularized_cholesky(sigma)

    def advance(self, chain_index, state):
        rng = self.context.rngs[chain_index]
        proposal = state.values + self._cholesky @ rng.standard_normal(state.values.shape[0])
        return self.metropolis_step(chain_index, state, proposal)
