"""
Pytest configuration and shared fixtures for multichain tests.
"""

import numpy as np
import pytest

from multichain import (
    MCMCSampler,
    PriorDistribution,
    RunConfiguration,
    TrialPoint,
)
from multichain.registry import clear_registry


@pytest.fixture
def rng_seed():
    """Default RNG seed for reproducible tests."""
    return 42


@pytest.fixture
def small_config(rng_seed):
    """Smallest valid configuration: 2 chains, 100 iterations, 100 outputs."""
    return RunConfiguration(
        number_of_chains=2,
        iterations=100,
        warmup_iterations=50,
        thinning_interval=1,
        initial_iterations=4,
        output_length=100,
        prng_seed=rng_seed,
        parallelize_chains=False,
    )


@pytest.fixture
def single_chain_config(rng_seed):
    """One chain seeded from the prior means (initial_iterations=1)."""
    return RunConfiguration(
        number_of_chains=1,
        iterations=100,
        warmup_iterations=50,
        thinning_interval=1,
        initial_iterations=1,
        output_length=100,
        prng_seed=rng_seed,
        parallelize_chains=False,
    )


@pytest.fixture
def uniform_prior():
    """Single uniform prior on [0, 10]."""
    return [PriorDistribution('uniform', low=0.0, high=10.0)]


@pytest.fixture
def uniform_priors_2d():
    """Two uniform priors on [-5, 5]."""
    return [
        PriorDistribution('uniform', low=-5.0, high=5.0),
        PriorDistribution('uniform', low=-5.0, high=5.0),
    ]


def gaussian_log_likelihood(values):
    """Standard normal log-likelihood centered at 1.0 in every dimension (unnormalized)."""
    return float(-0.5 * np.sum((np.asarray(values) - 1.0) ** 2))


@pytest.fixture
def log_likelihood():
    return gaussian_log_likelihood


def identity_transition(chain_index, state):
    """Stub strategy that never moves."""
    return state


def add_one_transition(chain_index, state):
    """Stub strategy that adds 1 to every parameter and keeps the fitness."""
    return TrialPoint(state.values + 1.0, state.fitness)


@pytest.fixture
def make_sampler(uniform_priors_2d, log_likelihood, small_config):
    """
    Factory for samplers with sensible defaults.

    Usage:
        def test_something(make_sampler):
            sampler = make_sampler(transition='demcz', number_of_chains=3)
    """
    def _make(transition='rwmh', priors=None, config=None, **changes):
        config = config if config is not None else small_config
        if changes:
            from dataclasses import replace
            config = replace(config, **changes)
        return MCMCSampler(
            priors if priors is not None else uniform_priors_2d,
            log_likelihood,
            transition,
            config=config,
        )
    return _make


@pytest.fixture(autouse=True)
def restore_registry():
    """Drop transition strategies registered by a test."""
    yield
    clear_registry()
