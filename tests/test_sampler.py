"""
Sampler Tests - Scheduler Loop, Lifecycle and Run-State Invariants

Tests MCMCSampler:
- Trace and output lengths, MAP as the maximum of the output
- Determinism (sequential and parallel fan-out agree)
- Stub-strategy scenarios (identity, add-one with thinning)
- Cancellation, progress reporting
- Reset / reconfigure / resume / UserDefined initialization
- Validation before any chain advances, exception propagation

Run with: pytest tests/test_sampler.py -v
"""

import dataclasses
import math

import numpy as np
import pytest

from multichain import (
    CancellationToken,
    InitializationMethod,
    InvalidConfigurationError,
    MCMCSampler,
    ResumeError,
    TrialPoint,
)
from multichain.mcmc.initialization import randomize_chains
from multichain.transitions import TransitionStrategy

from conftest import add_one_transition, gaussian_log_likelihood, identity_transition


def trace_arrays(run_state):
    return [run_state.trace_values(j) for j in range(run_state.number_of_chains)]


class CancelOnFirstCall(TransitionStrategy):
    """Stub strategy that requests cancellation during the first fan-out."""

    def __init__(self, token):
        super().__init__()
        self.token = token

    def advance(self, chain_index, state):
        self.token.cancel()
        self.context.sample_count[chain_index] += 1
        return state


class FailAfter(TransitionStrategy):
    """Stub strategy whose chain 1 raises on its n-th call."""

    def __init__(self, n):
        super().__init__()
        self.n = n
        self.calls = 0

    def advance(self, chain_index, state):
        if chain_index == 1:
            self.calls += 1
            if self.calls == self.n:
                raise RuntimeError("likelihood blew up")
        return TrialPoint(state.values + 0.01, state.fitness)


# ============================================================================
# RUN-STATE INVARIANTS
# ============================================================================

class TestRunStateInvariants:
    """Test lengths and MAP after a complete run."""

    @pytest.mark.parametrize("n_chains,output_length", [(1, 100), (2, 100), (3, 100), (4, 150)])
    def test_trace_and_output_lengths(self, make_sampler, n_chains, output_length):
        sampler = make_sampler(number_of_chains=n_chains, initial_iterations=max(4, n_chains),
                               output_length=output_length)
        state = sampler.sample()

        assert all(len(trace) == 100 for trace in state.chain_traces)
        assert len(state.mean_log_likelihood) == 100
        assert sum(len(buffer) for buffer in state.output_buffers) == output_length
        assert state.output_count == output_length
        assert state.simulations == 1

    def test_map_is_output_maximum(self, make_sampler):
        state = make_sampler(number_of_chains=3).sample()
        output_fitness = [p.fitness for buffer in state.output_buffers for p in buffer]
        assert state.map.fitness == max(output_fitness)
        assert all(state.map.fitness >= f for f in output_fitness)

    def test_map_first_found_wins_ties(self, make_sampler):
        state = make_sampler(transition=identity_transition, number_of_chains=2).sample()
        # All output points have equal fitness per chain; MAP is the first best one seen
        best = max(p.fitness for buffer in state.output_buffers for p in buffer)
        first_best = next(p for buffer in zip(*state.output_buffers) for p in buffer if p.fitness == best)
        assert state.map is first_best

    def test_mean_log_likelihood_is_chain_average(self, make_sampler):
        state = make_sampler(number_of_chains=3).sample()
        expected = np.mean([state.trace_fitness(j) for j in range(3)], axis=0)
        np.testing.assert_allclose(state.mean_log_likelihood, expected)

    def test_counters(self, make_sampler):
        state = make_sampler(thinning_interval=2).sample()
        # (100 recorded + 50 output) iterations * thinning 2
        np.testing.assert_array_equal(state.sample_count, [300, 300])
        assert np.all(state.accept_count <= state.sample_count)
        assert np.all((state.acceptance_rates > 0) & (state.acceptance_rates <= 1))


# ============================================================================
# DETERMINISM
# ============================================================================

class TestDeterminism:
    """Test reproducibility for a fixed seed."""

    def test_sequential_runs_identical(self, make_sampler):
        first = make_sampler(number_of_chains=3).sample()
        second = make_sampler(number_of_chains=3).sample()
        for a, b in zip(trace_arrays(first), trace_arrays(second)):
            np.testing.assert_array_equal(a, b)

    def test_parallel_matches_sequential(self, make_sampler):
        sequential = make_sampler(transition='demcz', number_of_chains=4).sample()
        parallel = make_sampler(transition='demcz', number_of_chains=4,
                                parallelize_chains=True).sample()
        for a, b in zip(trace_arrays(sequential), trace_arrays(parallel)):
            np.testing.assert_array_equal(a, b)
        assert parallel.map == sequential.map

    def test_seed_changes_traces(self, make_sampler):
        a = make_sampler(prng_seed=1).sample()
        b = make_sampler(prng_seed=2).sample()
        assert not np.array_equal(trace_arrays(a)[0], trace_arrays(b)[0])


# ============================================================================
# STUB-STRATEGY SCENARIOS
# ============================================================================

class TestStubScenarios:
    """Test the scheduler with deterministic stub strategies."""

    def test_identity_strategy(self, uniform_prior, single_chain_config):
        sampler = MCMCSampler(uniform_prior, gaussian_log_likelihood, identity_transition,
                              config=single_chain_config)
        state = sampler.sample()

        initial = TrialPoint([5.0], gaussian_log_likelihood([5.0]))
        assert len(state.chain_traces[0]) == 100
        assert all(point == initial for point in state.chain_traces[0])
        assert state.map.fitness == initial.fitness
        np.testing.assert_array_equal(state.accept_count, [0])

    def test_add_one_with_thinning(self, uniform_prior, single_chain_config):
        config = dataclasses.replace(single_chain_config, thinning_interval=5)
        sampler = MCMCSampler(uniform_prior, gaussian_log_likelihood, add_one_transition, config=config)
        state = sampler.sample()

        np.testing.assert_array_equal(state.chain_traces[0][0].values, [10.0])
        np.testing.assert_array_equal(state.chain_traces[0][1].values, [15.0])
        np.testing.assert_array_equal(state.sample_count, [5 * 200])

    def test_population_grows_for_population_samplers(self, make_sampler):
        sampler = make_sampler(transition='demcz', number_of_chains=3)
        state = sampler.sample()
        config = sampler.config
        assert len(state.population_matrix) == config.initial_iterations + 3 * config.total_iterations

    def test_no_population_for_single_chain_samplers(self, make_sampler):
        assert make_sampler().sample().population_matrix == []


# ============================================================================
# CANCELLATION AND PROGRESS
# ============================================================================

class TestCancellationAndProgress:
    """Test cooperative cancellation and progress callbacks."""

    @pytest.mark.parametrize("parallel", [False, True])
    def test_cancel_during_first_iteration(self, make_sampler, parallel):
        token = CancellationToken()
        sampler = make_sampler(transition=CancelOnFirstCall(token), parallelize_chains=parallel)
        state = sampler.sample(cancellation=token)

        assert token.cancelled
        assert all(len(trace) == 1 for trace in state.chain_traces)
        assert state.output_count == 0

    def test_cancelled_before_start_still_runs_one_iteration(self, make_sampler):
        token = CancellationToken()
        token.cancel()
        state = make_sampler().sample(cancellation=token)
        assert all(len(trace) == 1 for trace in state.chain_traces)

    def test_progress_reports(self, make_sampler):
        reports = []
        sampler = make_sampler(progress_rate=0.1)
        sampler.sample(progress=lambda fraction, text: reports.append((fraction, text)))

        total = sampler.config.total_iterations  # 150
        assert len(reports) == 10
        assert reports[-1] == (1.0, "100%")
        assert reports[0] == (15 / total, "10%")
        assert [f for f, _ in reports] == sorted(f for f, _ in reports)

    def test_progress_every_iteration_when_rate_is_tiny(self, make_sampler):
        reports = []
        make_sampler(progress_rate=1e-6).sample(progress=lambda f, t: reports.append(f))
        assert len(reports) == 150

    def test_cancel_after_timer(self):
        token = CancellationToken()
        timer = token.cancel_after(0.0)
        timer.join()
        assert token.cancelled


# ============================================================================
# LIFECYCLE
# ============================================================================

class TestLifecycle:
    """Test reset, reconfigure, resume and UserDefined initialization."""

    def test_sample_twice_starts_fresh(self, make_sampler):
        sampler = make_sampler()
        first = trace_arrays(sampler.sample())
        second = trace_arrays(sampler.sample())
        for a, b in zip(first, second):
            np.testing.assert_array_equal(a, b)
        assert sampler.run_state.simulations == 1

    def test_resume_continues_chains(self, make_sampler):
        sampler = make_sampler()
        first = sampler.sample()
        first_trace = first.trace_values(0).copy()
        state = sampler.sample(resume=True)

        assert state is first
        assert state.simulations == 2
        assert all(len(trace) == 200 for trace in state.chain_traces)
        assert state.output_count == 100
        assert sum(len(b) for b in state.output_buffers) == 100
        # Counters keep running across both runs
        np.testing.assert_array_equal(state.sample_count, [300, 300])
        np.testing.assert_array_equal(state.trace_values(0)[:100], first_trace)

    def test_resume_without_previous_run_starts_fresh(self, make_sampler):
        a = make_sampler().sample(resume=True)
        b = make_sampler().sample()
        np.testing.assert_array_equal(trace_arrays(a)[0], trace_arrays(b)[0])
        assert a.simulations == 1

    def test_reset_discards_state(self, make_sampler):
        sampler = make_sampler()
        sampler.sample()
        sampler.reset()
        state = sampler.run_state
        assert all(trace == [] for trace in state.chain_traces)
        assert state.map.fitness == -math.inf
        assert state.simulations == 0

    def test_reconfigure_resets(self, make_sampler):
        sampler = make_sampler()
        sampler.sample()
        sampler.reconfigure(number_of_chains=3)
        assert sampler.config.number_of_chains == 3
        assert sampler.run_state.number_of_chains == 3
        assert sampler.run_state.simulations == 0

        state = sampler.sample()
        assert len(state.chain_traces) == 3

    def test_assigning_config_resets(self, make_sampler):
        sampler = make_sampler()
        sampler.sample()
        sampler.config = dataclasses.replace(sampler.config, number_of_chains=3)

        assert sampler.run_state.number_of_chains == 3
        assert sampler.run_state.simulations == 0

        # Nothing left to resume, so the run starts fresh with 3 chains
        state = sampler.sample(resume=True)
        assert len(state.chain_traces) == 3
        assert all(len(trace) == 100 for trace in state.chain_traces)
        assert state.simulations == 1

    def test_reconfigure_from_dict(self, make_sampler):
        sampler = make_sampler()
        sampler.reconfigure({'number_of_chains': 2, 'iterations': 200, 'warmup_iterations': 100,
                             'output_length': 100, 'initial_iterations': 2})
        assert sampler.config.iterations == 200
        assert sampler.config.thinning_interval == 20

    def test_user_defined_continues_from_last_trace(self, make_sampler):
        sampler = make_sampler(transition=add_one_transition)
        sampler.sample()
        last = [trace[-1] for trace in sampler.run_state.chain_traces]

        sampler.reconfigure(initialization=InitializationMethod.USER_DEFINED)
        state = sampler.sample()
        for j in range(2):
            np.testing.assert_array_equal(state.chain_traces[j][0].values, last[j].values + 1.0)

    def test_user_defined_without_trace_raises(self, make_sampler):
        sampler = make_sampler(initialization=InitializationMethod.USER_DEFINED)
        with pytest.raises(ResumeError):
            sampler.sample()

    def test_initial_states_come_from_randomize(self, make_sampler, uniform_priors_2d, log_likelihood):
        sampler = make_sampler(transition=identity_transition)
        state = sampler.sample()
        expected = randomize_chains(sampler.config, uniform_priors_2d, log_likelihood).states
        assert [trace[0] for trace in state.chain_traces] == expected


# ============================================================================
# VALIDATION AND ERRORS
# ============================================================================

class TestValidationAndErrors:
    """Test that invalid runs fail before any chain advances."""

    def test_invalid_config_raises_before_advance(self, make_sampler):
        calls = []

        def strategy(chain_index, state):
            calls.append(chain_index)
            return state

        sampler = make_sampler(transition=strategy, thinning_interval=0, output_length=10)
        with pytest.raises(InvalidConfigurationError) as excinfo:
            sampler.sample()
        assert len(excinfo.value.errors) == 2
        assert calls == []
        assert all(trace == [] for trace in sampler.run_state.chain_traces)

    def test_strategy_errors_are_merged(self, make_sampler):
        sampler = make_sampler(transition='demcz', number_of_chains=2, iterations=10)
        with pytest.raises(InvalidConfigurationError) as excinfo:
            sampler.sample()
        errors = excinfo.value.errors
        assert any("at least 3 chains" in e for e in errors)
        assert any("iterations must be >= 100" in e for e in errors)

    def test_no_priors(self, log_likelihood, small_config):
        with pytest.raises(InvalidConfigurationError, match="At least one prior"):
            MCMCSampler([], log_likelihood, 'rwmh', config=small_config).sample()

    @pytest.mark.parametrize("parallel", [False, True])
    def test_exception_propagates_without_partial_reduction(self, make_sampler, parallel):
        strategy = FailAfter(n=7)
        sampler = make_sampler(transition=strategy, parallelize_chains=parallel)
        with pytest.raises(RuntimeError, match="likelihood blew up"):
            sampler.sample()

        state = sampler.run_state
        # 6 complete outer iterations were reduced; the 7th was not
        assert [len(trace) for trace in state.chain_traces] == [6, 6]
        assert len(state.mean_log_likelihood) == 6


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
