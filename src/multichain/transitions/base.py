"""
Chain transition strategies: shared interface and helpers.

A strategy advances one chain by one step:

    advance(chain_index, state) -> next_state

It may only touch the random stream and counter slots of chain_index, so
the scheduler can run chains concurrently. Shared inputs (priors,
log-likelihood, population matrix) arrive once per initialization through
bind() as a ChainContext.

Constants:
    COV_NUGGET: Diagonal regularization added before Cholesky factorization
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np

from ..mcmc.types import RunConfiguration, TrialPoint
from ..priors import Prior, prior_bounds


COV_NUGGET = 1e-10


@dataclass
class ChainContext:
    """
    Everything a strategy may read while advancing chains.

    accept_count and sample_count are the run state's own counters; a
    strategy increments only the slot of the chain it is advancing.
    population is the run state's population matrix; it grows only during
    the scheduler's reduction step and must not be modified by a strategy.
    """
    priors: Sequence[Prior]
    log_likelihood: Callable[[np.ndarray], float]
    config: RunConfiguration
    rngs: List[np.random.Generator]
    accept_count: np.ndarray
    sample_count: np.ndarray
    population: Sequence[TrialPoint] = field(default_factory=list)
    gaussian: Optional[Tuple[np.ndarray, np.ndarray]] = None

    def __post_init__(self):
        self.lower, self.upper = prior_bounds(self.priors)

    @property
    def number_of_parameters(self) -> int:
        return len(self.priors)

    def in_bounds(self, values: np.ndarray) -> bool:
        return bool(np.all(values >= self.lower) and np.all(values <= self.upper))


class TransitionStrategy(ABC):
    """
    Base class for chain transition rules.

    Subclasses implement advance(). is_population_sampler tells the
    scheduler to keep a population matrix of every committed chain state.
    """

    name = 'base'
    is_population_sampler = False

    def __init__(self):
        self.context: Optional[ChainContext] = None

    def validate(self, config: RunConfiguration, number_of_parameters: int) -> List[str]:
        """Strategy-specific configuration errors (empty when valid)."""
        return []

    def bind(self, context: ChainContext) -> None:
        """Attach run inputs; called after every (re)initialization."""
        self.context = context

    @abstractmethod
    def advance(self, chain_index: int, state: TrialPoint) -> TrialPoint:
        """Return the next state of chain chain_index."""

    def metropolis_step(self, chain_index: int, state: TrialPoint, proposal: np.ndarray) -> TrialPoint:
        """
        Accept or reject a symmetric proposal and update the counters.

        Proposals outside the prior support are rejected without evaluating
        the log-likelihood. Otherwise the proposal is accepted when
        log(u) <= f(proposal) - f(state).
        """
        ctx = self.context
        ctx.sample_count[chain_index] += 1

        if not ctx.in_bounds(proposal):
            return state

        fitness = float(ctx.log_likelihood(proposal))
        log_u = np.log(ctx.rngs[chain_index].random())
        if log_u <= fitness - state.fitness:
            ctx.accept_count[chain_index] += 1
            return TrialPoint(proposal, fitness)
        return state

    def __repr__(self):
        return f"{type(self).__name__}()"


class FunctionTransition(TransitionStrategy):
    """
    Wrap a plain callable fn(chain_index, state) -> TrialPoint.

    Every call counts as a sample; a call that returns a different object
    than it was given counts as an acceptance.
    """

    name = 'function'

    def __init__(self, fn: Callable[[int, TrialPoint], TrialPoint]):
        super().__init__()
        self.fn = fn

    def advance(self, chain_index, state):
        new_state = self.fn(chain_index, state)
        self.context.sample_count[chain_index] += 1
        if new_state is not state:
            self.context.accept_count[chain_index] += 1
        return new_state

    def __repr__(self):
        return f"FunctionTransition({getattr(self.fn, '__name__', self.fn)!r})"


def regularized_cholesky(covariance: np.ndarray) -> np.ndarray:
    """Lower Cholesky factor of a symmetrized, nugget-regularized covariance."""
    covariance = 0.5 * (covariance + covariance.T)
    return np.linalg.cholesky(covariance + COV_NUGGET * np.eye(covariance.shape[0]))
