"""
MCMC Data Structures and Type Definitions.

This module contains the core data structures used by the sampling engine:
- TrialPoint: Immutable (parameter vector, fitness) pair
- InitializationMethod: How chains are seeded before the first iteration
- RunConfiguration: Immutable run settings, validated as a whole
- RunState: Per-run traces, output buffers, counters and running MAP
"""

import math
from dataclasses import dataclass, field
from enum import IntEnum
from typing import List, Optional, Sequence

import numpy as np


# ============================================================================
# TRIAL POINT
# ============================================================================

@dataclass(frozen=True, eq=False)
class TrialPoint:
    """
    A parameter vector paired with its fitness (log-likelihood).

    The values array is copied on construction and made read-only, so a
    TrialPoint stored in a trace can never be changed through another
    reference. Use clone() or build a new point to change it.
    """
    values: np.ndarray
    fitness: float = -math.inf

    def __post_init__(self):
        values = np.array(self.values, dtype=np.float64).reshape(-1)
        values.setflags(write=False)
        object.__setattr__(self, 'values', values)
        object.__setattr__(self, 'fitness', float(self.fitness))

    def __eq__(self, other):
        if not isinstance(other, TrialPoint):
            return NotImplemented
        same_fitness = self.fitness == other.fitness or (
            math.isnan(self.fitness) and math.isnan(other.fitness)
        )
        return same_fitness and np.array_equal(self.values, other.values)

    __hash__ = None

    def __len__(self):
        return self.values.shape[0]

    def clone(self) -> 'TrialPoint':
        """Return an equal, independent copy."""
        return TrialPoint(self.values.copy(), self.fitness)

    @classmethod
    def empty(cls) -> 'TrialPoint':
        """Placeholder point with no values and fitness -inf."""
        return cls(np.empty(0), -math.inf)


# ============================================================================
# RUN CONFIGURATION
# ============================================================================

class InitializationMethod(IntEnum):
    """
    Strategies for choosing the starting state of each chain.
    """
    RANDOMIZE = 0     # Elitist pick from stratified draws over the priors
    MAP = 1           # Laplace approximation around the mode, falls back to RANDOMIZE
    USER_DEFINED = 2  # Continue from the last recorded state of each chain

    def __str__(self):
        return self.name.replace('_', ' ').title()


@dataclass(frozen=True)
class RunConfiguration:
    """
    Immutable run parameters.

    A configuration is validated as a whole before any chain advances
    (see error_handling.validate_run_config). To change a setting, build a
    new configuration, e.g. dataclasses.replace(config, iterations=5000),
    and pass it to MCMCSampler.reconfigure(), which resets the run state.
    """
    number_of_chains: int = 4
    iterations: int = 3000
    warmup_iterations: int = 1500
    thinning_interval: int = 20
    initial_iterations: int = 10
    output_length: int = 10000
    prng_seed: int = 12345
    initialization: InitializationMethod = InitializationMethod.RANDOMIZE
    parallelize_chains: bool = True
    max_workers: Optional[int] = None
    progress_rate: float = 0.01

    @property
    def output_iterations(self) -> int:
        """Outer iterations spent filling the output buffers."""
        return math.ceil(self.output_length / self.number_of_chains)

    @property
    def total_iterations(self) -> int:
        """Total outer iterations of a complete run."""
        return self.iterations + self.output_iterations


# ============================================================================
# RUN STATE
# ============================================================================

@dataclass
class RunState:
    """
    Everything a run records.

    Fields shared across chains (map, population_matrix, mean_log_likelihood,
    output_count) are only written during the sequential reduction step of
    each outer iteration. accept_count and sample_count are written by the
    transition strategy, each chain touching only its own slot.
    """
    chain_traces: List[List[TrialPoint]]
    output_buffers: List[List[TrialPoint]]
    accept_count: np.ndarray
    sample_count: np.ndarray
    population_matrix: List[TrialPoint] = field(default_factory=list)
    mean_log_likelihood: List[float] = field(default_factory=list)
    map: TrialPoint = field(default_factory=TrialPoint.empty)
    chain_states: List[TrialPoint] = field(default_factory=list)
    output_count: int = 0
    simulations: int = 0
    mode: Optional[TrialPoint] = None

    @classmethod
    def empty(cls, number_of_chains: int) -> 'RunState':
        """Fresh state with no recorded samples."""
        return cls(
            chain_traces=[[] for _ in range(number_of_chains)],
            output_buffers=[[] for _ in range(number_of_chains)],
            accept_count=np.zeros(number_of_chains, dtype=np.int64),
            sample_count=np.zeros(number_of_chains, dtype=np.int64),
        )

    @property
    def number_of_chains(self) -> int:
        return len(self.chain_traces)

    @property
    def acceptance_rates(self) -> np.ndarray:
        """Accepted / proposed per chain; NaN for chains with no samples."""
        rates = np.full(self.number_of_chains, np.nan)
        np.divide(self.accept_count, self.sample_count, out=rates,
                  where=self.sample_count > 0)
        return rates

    def clear_output(self) -> None:
        """Empty the output buffers before a new output phase."""
        self.output_buffers = [[] for _ in range(self.number_of_chains)]
        self.output_count = 0

    def trace_values(self, chain_index: int) -> np.ndarray:
        """Trace of one chain as an (n_recorded, n_params) array."""
        return _stack_values(self.chain_traces[chain_index])

    def trace_fitness(self, chain_index: int) -> np.ndarray:
        """Fitness of each recorded state of one chain."""
        return np.array([p.fitness for p in self.chain_traces[chain_index]])

    def history(self) -> np.ndarray:
        """
        All chain traces as one array.

        Returns:
            Array of shape (n_recorded, n_chains, n_params), truncated to the
            shortest trace.
        """
        n = min(len(trace) for trace in self.chain_traces)
        if n == 0:
            return np.empty((0, self.number_of_chains, 0))
        return np.stack([self.trace_values(j)[:n] for j in range(self.number_of_chains)], axis=1)

    def output_values(self) -> np.ndarray:
        """Pooled output of all chains as an (output_count, n_params) array."""
        pooled = [p for buffer in self.output_buffers for p in buffer]
        return _stack_values(pooled)


def _stack_values(points: Sequence[TrialPoint]) -> np.ndarray:
    if not points:
        return np.empty((0, 0))
    return np.stack([p.values for p in points])
