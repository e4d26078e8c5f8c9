"""
Differential Evolution Markov Chain with a past-state population (DE-MCz)

Proposal: x' = x + gamma * (z_r1 - z_r2) + e
where:
    - z_r1, z_r2 are two distinct rows of the population matrix, which holds
      the initialization candidates followed by every committed chain state
    - gamma = 1 with probability jump_threshold (mode hopping), else jump
    - e ~ N(0, noise^2) independently per parameter

Reference: ter Braak & Vrugt (2008), the DE-MCz sampler drawing difference
vectors from past states.
"""

from typing import List, Optional

import numpy as np

from .base import TransitionStrategy


class DifferentialEvolutionMCMC(TransitionStrategy):
    """Population-based DE-MCz sampler. Needs at least 3 chains."""

    name = 'demcz'
    is_population_sampler = True

    def __init__(self, jump: Optional[float] = None, jump_threshold: float = 0.1,
                 noise: float = 1e-3):
        super().__init__()
        self.jump = jump
        self.jump_threshold = jump_threshold
        self.noise = noise

    def validate(self, config, number_of_parameters) -> List[str]:
        errors = []
        if config.number_of_chains < 3:
            errors.append(f"DE-MCz needs at least 3 chains, got {config.number_of_chains}")
        if self.jump is not None and not 0 < self.jump < 2:
            errors.append(f"DE-MCz jump must be in (0, 2), got {self.jump}")
        if not 0 <= self.jump_threshold < 1:
            errors.append(f"DE-MCz jump_threshold must be in [0, 1), got {self.jump_threshold}")
        if self.noise < 0:
            errors.append(f"DE-MCz noise must be >= 0, got {self.noise}")
        return errors

    def bind(self, context):
        super().bind(context)
        d = context.number_of_parameters
        self.effective_jump = self.jump if self.jump is not None else 2.38 / np.sqrt(2 * d)

    def advance(self, chain_index, state):
        ctx = self.context
        rng = ctx.rngs[chain_index]
        population = ctx.population

        gamma = 1.0 if rng.random() < self.jump_threshold else self.effective_jump
        r1, r2 = rng.choice(len(population), size=2, replace=False)
        e = rng.normal(0.0, self.noise, size=state.values.shape[0])

        proposal = state.values + gamma * (population[r1].values - population[r2].values) + e
        return self.metropolis_step(chain_index, state, proposal)
