"""
MCMC Subpackage - Core multi-chain sampling implementation.

This package contains the sampling engine:
- types: Core data structures (TrialPoint, RunConfiguration, RunState)
- config: Configuration dicts, defaults and per-chain random streams
- cancellation: Cooperative cancellation token
- mode_finder: Mode search and numerical Hessian for MAP initialization
- initialization: Randomize / MAP / UserDefined chain initialization
- sampler: MCMCSampler scheduler (fan-out, reduction, progress)
- diagnostics: R-hat, ESS and acceptance summaries
- results: Post-run parameter summaries
"""

# Import types first (needed by other modules)
from .types import InitializationMethod, RunConfiguration, RunState, TrialPoint

from .config import clean_config, configure_run, gen_chain_rngs
from .cancellation import CancellationToken
from .mode_finder import DifferentialEvolutionModeFinder, ModeFinder, ModeResult, numerical_hessian
from .initialization import (
    InitialPopulation,
    initialize_chains,
    map_chains,
    randomize_chains,
    resume_chains,
)

# Main entry point
from .sampler import MCMCSampler

from .diagnostics import (
    compute_rhat,
    autocorrelation,
    effective_sample_size,
    minimum_sample_size,
    print_rhat_summary,
    print_acceptance_summary,
)
from .results import MCMCResults, ParameterResults, ParameterSummary

__all__ = [
    # Main entry point
    'MCMCSampler',
    # Types
    'TrialPoint',
    'InitializationMethod',
    'RunConfiguration',
    'RunState',
    # Config
    'clean_config',
    'configure_run',
    'gen_chain_rngs',
    'CancellationToken',
    # Initialization
    'DifferentialEvolutionModeFinder',
    'ModeFinder',
    'ModeResult',
    'numerical_hessian',
    'InitialPopulation',
    'initialize_chains',
    'map_chains',
    'randomize_chains',
    'resume_chains',
    # Diagnostics
    'compute_rhat',
    'autocorrelation',
    'effective_sample_size',
    'minimum_sample_size',
    'print_rhat_summary',
    'print_acceptance_summary',
    'MCMCResults',
    'ParameterResults',
    'ParameterSummary',
]
