"""
multichain - Multi-chain MCMC Sampling Engine

Public API:
    Sampler:
        MCMCSampler - Multi-chain scheduler (sample, reset, reconfigure, restore)
        RunConfiguration - Immutable run settings
        InitializationMethod - RANDOMIZE, MAP or USER_DEFINED
        RunState - Traces, output buffers, counters and MAP of a run
        TrialPoint - Immutable (values, fitness) pair
        CancellationToken - Cooperative cancellation for sample()
        configure_run - Build a RunConfiguration from a config dict

    Priors:
        PriorDistribution - scipy.stats-backed prior
        Prior - Protocol any prior object must satisfy

    Transition Strategies:
        TransitionStrategy - Base class for custom strategies
        RandomWalkMetropolis - 'rwmh'
        AdaptiveMetropolis - 'arwmh'
        DifferentialEvolutionMCMC - 'demcz' (population-based)
        register_transition - Register a strategy by name
        get_transition - Build a registered strategy
        list_transitions - List registered strategy names

    Checkpointing:
        save_checkpoint - Save a sampler's run state to disk
        load_checkpoint - Load a checkpoint from disk

    Diagnostics:
        MCMCResults - Post-run per-parameter summaries
        compute_rhat - Gelman-Rubin R-hat
        effective_sample_size - ESS of a series
        diagnose_sampler_issues - Check a finished run for common problems
        InvalidConfigurationError, ResumeError - Errors raised by the engine

Example:
    from multichain import MCMCSampler, PriorDistribution, RunConfiguration

    priors = [PriorDistribution('uniform', low=-10.0, high=10.0)]
    sampler = MCMCSampler(priors, lambda x: -0.5 * x[0] ** 2, 'rwmh',
                          config=RunConfiguration(number_of_chains=4, iterations=2000,
                                                  warmup_iterations=1000))
    run_state = sampler.sample()
"""
# Import mcmc subpackage first: the transition strategies and checkpoint
# helpers build on its types
from .mcmc import (
    MCMCSampler,
    RunConfiguration,
    InitializationMethod,
    RunState,
    TrialPoint,
    CancellationToken,
    configure_run,
    MCMCResults,
    compute_rhat,
    effective_sample_size,
)

from .priors import Prior, PriorDistribution
from .transitions import (
    TransitionStrategy,
    RandomWalkMetropolis,
    AdaptiveMetropolis,
    DifferentialEvolutionMCMC,
)
from .registry import register_transition, get_transition, list_transitions
from .checkpoint_io import save_checkpoint, load_checkpoint
from .error_handling import (
    InvalidConfigurationError,
    ResumeError,
    diagnose_sampler_issues,
    print_diagnostics,
)

__all__ = [
    'MCMCSampler',
    'RunConfiguration',
    'InitializationMethod',
    'RunState',
    'TrialPoint',
    'CancellationToken',
    'configure_run',
    'Prior',
    'PriorDistribution',
    'TransitionStrategy',
    'RandomWalkMetropolis',
    'AdaptiveMetropolis',
    'DifferentialEvolutionMCMC',
    'register_transition',
    'get_transition',
    'list_transitions',
    'save_checkpoint',
    'load_checkpoint',
    'MCMCResults',
    'compute_rhat',
    'effective_sample_size',
    'InvalidConfigurationError',
    'ResumeError',
    'diagnose_sampler_issues',
    'print_diagnostics',
]

__version__ = '0.1.0'
