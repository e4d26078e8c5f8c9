"""
MCMC Sampler - multi-chain scheduling engine.

MCMCSampler drives number_of_chains independent chains through:
1. Initialization (Randomize, MAP or UserDefined; see initialization.py)
2. iterations recorded outer iterations (traces + mean log-likelihood)
3. ceil(output_length / number_of_chains) output iterations (output buffers + MAP)

Each outer iteration fans out over chains (thread pool or sequential loop),
advancing every chain thinning_interval times, then reduces the new chain
states into the run state on the calling thread, checks for cancellation
and reports progress.

Example:
    sampler = MCMCSampler(priors, log_likelihood, 'rwmh',
                          config=RunConfiguration(number_of_chains=4))
    run_state = sampler.sample()
    print(run_state.map)
"""

import time
from concurrent.futures import ThreadPoolExecutor
from contextlib import nullcontext
from dataclasses import replace
from typing import Any, Callable, Dict, Optional, Sequence, Union

import numpy as np

from ..checkpoint_io import restore_rngs, restore_run_state
from ..error_handling import validate_run_config
from ..priors import Prior
from ..registry import get_transition
from ..transitions.base import ChainContext, FunctionTransition, TransitionStrategy
from .cancellation import CancellationToken
from .config import configure_run, gen_chain_rngs
from .initialization import initialize_chains
from .mode_finder import ModeFinder
from .types import RunConfiguration, RunState, TrialPoint

import logging
logger = logging.getLogger('multichain')

__all__ = ['MCMCSampler', 'resolve_transition']


ProgressCallback = Callable[[float, str], None]


def resolve_transition(transition, options: Optional[Dict[str, Any]] = None) -> TransitionStrategy:
    """
    Turn a strategy name, class, instance or callable into a TransitionStrategy.

    Args:
        transition: A TransitionStrategy instance, a TransitionStrategy
            subclass, a registered name such as 'rwmh', or a plain callable
            fn(chain_index, state) -> TrialPoint
        options: Constructor keyword arguments for a class or name

    Returns:
        TransitionStrategy
    """
    options = options or {}
    if isinstance(transition, TransitionStrategy):
        if options:
            raise ValueError("transition_options only apply to a strategy name or class")
        return transition
    if isinstance(transition, str):
        return get_transition(transition, **options)
    if isinstance(transition, type) and issubclass(transition, TransitionStrategy):
        return transition(**options)
    if callable(transition):
        return FunctionTransition(transition)
    raise TypeError(f"Cannot use {transition!r} as a transition strategy")


def _progress_text(fraction: float) -> str:
    return f"{fraction * 100:g}%"


class MCMCSampler:
    """
    Multi-chain MCMC engine.

    Args:
        priors: One prior per parameter (mean, minimum, maximum, inverse_cdf)
        log_likelihood: fn(values: np.ndarray) -> float
        transition: Strategy instance, class, registered name or callable
        config: RunConfiguration or config dict (defaults when None)
        mode_finder: Mode finder for MAP initialization (default differential evolution)
        transition_options: Keyword arguments when transition is a name or class

    The configuration is immutable. Replacing it, through reconfigure() or by
    assigning sampler.config, resets the run state. Neither may happen while
    sample() is running.
    """

    def __init__(self, priors: Sequence[Prior], log_likelihood: Callable[[np.ndarray], float],
                 transition: Union[str, TransitionStrategy, Callable] = 'rwmh',
                 config: Optional[Union[RunConfiguration, Dict[str, Any]]] = None,
                 mode_finder: Optional[ModeFinder] = None,
                 transition_options: Optional[Dict[str, Any]] = None):
        self.priors = list(priors)
        self.log_likelihood = log_likelihood
        self.transition = resolve_transition(transition, transition_options)
        self.mode_finder = mode_finder
        self.rngs = []
        self._run_state: Optional[RunState] = None
        self._previous_state: Optional[RunState] = None
        self.config = config

    @staticmethod
    def _as_config(config) -> RunConfiguration:
        if config is None:
            return RunConfiguration()
        if isinstance(config, RunConfiguration):
            return config
        return configure_run(config)

    @property
    def config(self) -> RunConfiguration:
        return self._config

    @config.setter
    def config(self, config: Optional[Union[RunConfiguration, Dict[str, Any]]]) -> None:
        # Every configuration change discards the run state
        self._config = self._as_config(config)
        self.reset()

    @property
    def number_of_parameters(self) -> int:
        return len(self.priors)

    @property
    def run_state(self) -> RunState:
        return self._run_state

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def validate(self) -> None:
        """
        Check the configuration, prior count and strategy settings together.

        Raises:
            InvalidConfigurationError: Listing every violated constraint
        """
        validate_run_config(
            self.config,
            self.number_of_parameters,
            self.transition.validate(self.config, self.number_of_parameters),
        )

    def reset(self) -> None:
        """
        Discard the run state and start over on the next sample() call.

        The discarded state is kept (when it recorded anything) so that
        UserDefined initialization can continue from it.
        """
        if self._run_state is not None and any(self._run_state.chain_traces):
            self._previous_state = self._run_state
        self._run_state = RunState.empty(max(self.config.number_of_chains, 0))
        self.rngs = []

    def reconfigure(self, config: Union[RunConfiguration, Dict[str, Any]] = None, **changes) -> None:
        """
        Replace the configuration and reset.

        Args:
            config: New RunConfiguration or config dict (current one when None)
            **changes: Field overrides applied with dataclasses.replace
        """
        config = self.config if config is None else self._as_config(config)
        self.config = replace(config, **changes) if changes else config

    def restore(self, checkpoint: Dict[str, Any]) -> None:
        """
        Install a run state loaded with checkpoint_io.load_checkpoint().

        Afterwards sample(resume=True) continues the restored chains and
        random streams, and UserDefined initialization starts from their
        last recorded states.

        Raises:
            ResumeError: If the checkpoint does not fit this sampler
        """
        run_state = restore_run_state(checkpoint, self.config, self.number_of_parameters)
        self._run_state = run_state
        self._previous_state = run_state
        self.rngs = restore_rngs(checkpoint)
        self._bind(None)
        logger.info(f"Restored run state: {len(run_state.chain_traces[0])} recorded iterations per chain")

    def _bind(self, gaussian) -> None:
        state = self._run_state
        self.transition.bind(ChainContext(
            priors=self.priors,
            log_likelihood=self.log_likelihood,
            config=self.config,
            rngs=self.rngs,
            accept_count=state.accept_count,
            sample_count=state.sample_count,
            population=state.population_matrix,
            gaussian=gaussian,
        ))

    def _start(self) -> None:
        """Reset, build random streams, initialize chains and bind the strategy."""
        self.reset()
        state = self._run_state
        self.rngs = gen_chain_rngs(self.config.prng_seed, self.config.number_of_chains)

        init = initialize_chains(self.config, self.priors, self.log_likelihood,
                                 self.mode_finder, self._previous_state)
        state.chain_states = list(init.states)
        state.mode = init.mode
        if self.transition.is_population_sampler:
            state.population_matrix.extend(init.candidates)
        self._bind(init.gaussian)

    # =========================================================================
    # SAMPLING
    # =========================================================================

    def _advance_chain(self, chain_index: int) -> TrialPoint:
        state = self._run_state.chain_states[chain_index]
        for _ in range(self.config.thinning_interval):
            state = self.transition.advance(chain_index, state)
        return state

    def _reduce(self, iteration: int, new_states) -> None:
        """Commit one outer iteration's chain states into the run state."""
        config = self.config
        state = self._run_state
        state.chain_states = list(new_states)

        if self.transition.is_population_sampler:
            state.population_matrix.extend(new_states)

        if iteration <= config.iterations:
            for trace, point in zip(state.chain_traces, new_states):
                trace.append(point)
            state.mean_log_likelihood.append(sum(p.fitness for p in new_states) / len(new_states))
            return

        for buffer, point in zip(state.output_buffers, new_states):
            if state.output_count >= config.output_length:
                break
            buffer.append(point)
            state.output_count += 1
            if point.fitness > state.map.fitness:
                state.map = point

    def sample(self, resume: bool = False,
               cancellation: Optional[CancellationToken] = None,
               progress: Optional[ProgressCallback] = None) -> RunState:
        """
        Run the sampler.

        Args:
            resume: Continue the current chains, random streams, traces and
                MAP instead of reinitializing (only once a run has completed;
                otherwise the sampler starts fresh)
            cancellation: Token checked once per outer iteration; a cancelled
                run returns normally with whatever was recorded
            progress: fn(fraction_complete, text) called every
                progress_rate of the outer iterations

        Returns:
            The RunState (same object as self.run_state)

        Raises:
            InvalidConfigurationError: Before any chain advances
            ResumeError: UserDefined initialization without a recorded trace
        """
        self.validate()
        config = self.config

        if resume and self._run_state.simulations > 0 and self._run_state.chain_states:
            logger.info("Resuming existing chains")
            self._run_state.clear_output()
        else:
            self._start()

        state = self._run_state
        total = config.total_iterations
        report_every = max(1, int(total * config.progress_rate))
        workers = config.max_workers or config.number_of_chains
        parallel = config.parallelize_chains and config.number_of_chains > 1

        logger.info(
            f"Sampling {config.number_of_chains} chain(s) with {self.transition!r}: "
            f"{config.iterations} recorded + {config.output_iterations} output iterations, "
            f"thinning {config.thinning_interval}"
        )
        start_time = time.perf_counter()
        completed = 0

        with (ThreadPoolExecutor(max_workers=workers) if parallel else nullcontext()) as pool:
            for iteration in range(1, total + 1):
                # Fan-out: nothing is committed until every chain has returned
                if pool is not None:
                    new_states = list(pool.map(self._advance_chain, range(config.number_of_chains)))
                else:
                    new_states = [self._advance_chain(j) for j in range(config.number_of_chains)]

                self._reduce(iteration, new_states)
                completed = iteration

                if cancellation is not None and cancellation.cancelled:
                    logger.info(f"Sampling cancelled after {iteration} of {total} iterations")
                    break

                if iteration % report_every == 0:
                    fraction = iteration / total
                    logger.debug(f"Progress: {_progress_text(fraction)}")
                    if progress is not None:
                        progress(fraction, _progress_text(fraction))

        state.simulations += 1
        elapsed = time.perf_counter() - start_time
        logger.info(f"Sampling finished: {completed}/{total} iterations in {elapsed:.2f}s")
        return state

    def __repr__(self):
        return (f"MCMCSampler(parameters={self.number_of_parameters}, "
                f"chains={self.config.number_of_chains}, transition={self.transition!r})")
